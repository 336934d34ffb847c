"""
parsing, formatting and sizing of FORTRAN-style field descriptors (TFORM and
TDISP values of ASCII tables) and binary table 'rTa' descriptors.
"""
from __future__ import annotations
import re
from types import MappingProxyType
from typing import Any, NamedTuple, Optional, Sequence, Union

import numpy as np

from fitscodec.datatypes import BINTABLE_WIDTHS, TFORM_CHARS
from fitscodec.errors import InvalidFormatDescriptor, UnsupportedDataType

FORTRAN_CHARACTERS = frozenset("AIBOZFEGDNS.0123456789")
"""every character a FORTRAN output descriptor may contain"""
FORTRAN_TYPES = "AIBOZFEGD"
"""primary type letters of FORTRAN output descriptors"""
ASCII_TABLE_DATATYPES = ("Aw", "Iw", "Fw.d", "Ew.d", "Dw.d")
"""descriptor shapes allowed as TFORMn of an ASCII table"""
BINTABLE_PATTERN = re.compile(r"^(?P<repeat>\d*)(?P<char>[A-Z])(?P<aux>.*)$")


class FortranFormat(NamedTuple):
    """A FORTRAN output descriptor decomposed into its fields."""
    # descriptor shape, e.g. "Iw.m", "Ew.dEe", "ENw.d"
    datatype: str
    # primary type letter
    char: str
    # 'N' (engineering) or 'S' (scientific) modifier of E descriptors
    engsci: Optional[str]
    width: int
    # minimum number of digits (I, B, O, Z)
    nmin: int = 0
    # digits to the right of the decimal point
    ndec: int = 0
    # digits in the exponent
    nexp: int = 0


class BintableFormat(NamedTuple):
    """A binary table 'rTa' descriptor decomposed into its fields."""
    repeat: int
    char: str
    # bytes per element
    nbyte: int
    aux: str = ""

    @property
    def field_bytes(self) -> int:
        """bytes this field occupies in every row"""
        if self.char == "X":
            return -(-self.repeat // 8)
        return self.repeat * self.nbyte


def normalize_format(text: str) -> str:
    """strip surrounding quotes and blanks and upper-case a descriptor."""
    return text.strip(" '").upper()


def _number(descriptor: str, field: str, reason: str) -> int:
    if not field.isdigit():
        raise InvalidFormatDescriptor(descriptor, reason)
    return int(field)


def parse_fortran_format(text: str) -> FortranFormat:
    """
    Decompose a FORTRAN output descriptor (Aw, Iw.m, Bw.m, Ow.m, Zw.m, Fw.d,
    Ew.dEe, ENw.d, ESw.d, Gw.dEe, Dw.dEe) into a FortranFormat. Raises
    InvalidFormatDescriptor, naming the first check that failed.
    """
    s = normalize_format(text)
    if any(c not in FORTRAN_CHARACTERS for c in s):
        raise InvalidFormatDescriptor(s, "unknown type character")
    if len(s) < 2:
        raise InvalidFormatDescriptor(s, "width field not specified")
    char = s[0]
    if char not in FORTRAN_TYPES:
        raise InvalidFormatDescriptor(s, "unknown type character")
    engsci, rest = None, s[1:]
    if rest[0] in "NS":
        if char != "E":
            raise InvalidFormatDescriptor(s, "modifier incompatible with type")
        engsci, rest = rest[0], rest[1:]
    modifier = engsci or ""
    if len(rest) == 0:
        raise InvalidFormatDescriptor(s, "width field not specified")
    if "." not in rest:
        width = _number(s, rest, "width field not numeric")
        if char in "FEGD":
            raise InvalidFormatDescriptor(s, "decimal field not specified")
        return FortranFormat(f"{char}{modifier}w", char, engsci, width)
    if char == "A":
        raise InvalidFormatDescriptor(
            s, "decimal point incompatible with type"
        )
    parts = rest.split(".")
    if len(parts) > 2:
        raise InvalidFormatDescriptor(s, "two decimal points not allowed")
    lhs, rhs = parts
    if len(lhs) == 0:
        raise InvalidFormatDescriptor(s, "width field not specified")
    if len(rhs) == 0:
        raise InvalidFormatDescriptor(s, "decimal field not specified")
    width = _number(s, lhs, "width field not numeric")
    if "E" not in rhs:
        precision = _number(s, rhs, "decimal field not numeric")
        if char in "IBOZ":
            return FortranFormat(
                f"{char}w.m", char, engsci, width, nmin=precision
            )
        return FortranFormat(
            f"{char}{modifier}w.d", char, engsci, width, ndec=precision
        )
    if char in "FIBOZ":
        raise InvalidFormatDescriptor(s, "exponent incompatible with type")
    eparts = rhs.split("E")
    if len(eparts) > 2:
        raise InvalidFormatDescriptor(s, "unexpected E character")
    decimals, exponent = eparts
    if len(decimals) == 0:
        raise InvalidFormatDescriptor(s, "decimal field not specified")
    if len(exponent) == 0:
        raise InvalidFormatDescriptor(s, "exponent field not specified")
    return FortranFormat(
        f"{char}{modifier}w.dEe",
        char,
        engsci,
        width,
        ndec=_number(s, decimals, "decimal field not numeric"),
        nexp=_number(s, exponent, "exponent field not numeric"),
    )


def format_fortran_format(fmt: FortranFormat) -> str:
    """inverse of `parse_fortran_format()`."""
    head = f"{fmt.char}{fmt.engsci or ''}{fmt.width}"
    if fmt.datatype.endswith("w"):
        return head
    if fmt.datatype.endswith("w.m"):
        return f"{head}.{fmt.nmin}"
    if fmt.datatype.endswith("w.d"):
        return f"{head}.{fmt.ndec}"
    return f"{head}.{fmt.ndec}E{fmt.nexp}"


def check_ascii_table_format(fmt: FortranFormat) -> FortranFormat:
    """ASCII tables accept only Aw, Iw, Fw.d, Ew.d and Dw.d as TFORMn."""
    if fmt.datatype not in ASCII_TABLE_DATATYPES:
        raise InvalidFormatDescriptor(
            format_fortran_format(fmt), "not allowed in an ASCII table"
        )
    return fmt


def parse_bintable_format(text: str) -> BintableFormat:
    """
    Decompose a binary table descriptor 'rTa': optional repeat count, one
    type letter, optional auxiliary text.
    """
    s = text.strip(" '")
    match = BINTABLE_PATTERN.match(s.upper())
    if match is None:
        raise InvalidFormatDescriptor(s, "unknown type character")
    char = match.group("char")
    if char not in BINTABLE_WIDTHS:
        raise InvalidFormatDescriptor(s, "unknown type character")
    repeat = match.group("repeat")
    return BintableFormat(
        repeat=int(repeat) if repeat else 1,
        char=char,
        nbyte=BINTABLE_WIDTHS[char],
        aux=s[match.start("aux"):],
    )


def format_bintable_format(fmt: BintableFormat) -> str:
    """inverse of `parse_bintable_format()`, always writing the repeat."""
    return f"{fmt.repeat}{fmt.char}{fmt.aux}"


def bintable_format_for(
    dtype: Union[np.dtype, str], repeat: int = 1
) -> BintableFormat:
    """binary table descriptor for elements of `dtype`"""
    dtype = np.dtype(dtype)
    if dtype.kind in "US":
        width = dtype.itemsize // 4 if dtype.kind == "U" else dtype.itemsize
        return BintableFormat(max(width, 1) * repeat, "A", 1)
    try:
        char = TFORM_CHARS[dtype.name]
    except KeyError:
        raise UnsupportedDataType(
            f"no binary table type letter for {dtype.name} columns"
        ) from None
    return BintableFormat(repeat, char, BINTABLE_WIDTHS[char])


def _positional_parts(value) -> tuple[str, str]:
    integer, _, fraction = np.format_float_positional(
        value, unique=True, trim="0"
    ).partition(".")
    return integer, fraction


def _scientific_fraction(value) -> str:
    mantissa = np.format_float_scientific(
        value, unique=True, trim="0"
    ).split("e")[0]
    return mantissa.partition(".")[2]


def _float_format(column: np.ndarray) -> FortranFormat:
    if not np.all(np.isfinite(column)):
        raise UnsupportedDataType(
            "non-finite values can't be written to an ASCII table"
        )
    if any("e" in str(value) for value in column):
        char = "E" if column.dtype.itemsize == 4 else "D"
        ndec = max(len(_scientific_fraction(value)) for value in column)
        width = max(len(f"{float(value):.{ndec}E}") for value in column)
        return FortranFormat(f"{char}w.d", char, None, width, ndec=ndec)
    parts = [_positional_parts(value) for value in column]
    nint = max(len(p[0]) for p in parts)
    ndec = max(len(p[1]) for p in parts)
    return FortranFormat("Fw.d", "F", None, nint + 1 + ndec, ndec=ndec)


def column_format(values: Sequence[Any]) -> FortranFormat:
    """
    Smallest lossless ASCII-table descriptor for a column: I1 for booleans,
    Iw for integers, Fw.d for floats that print without an exponent, Ew.d
    (single precision) or Dw.d (double precision) for those that need one,
    and Aw for strings (A1 for single characters).
    """
    column = np.asarray(values)
    if column.ndim != 1:
        raise UnsupportedDataType("ASCII table columns must be 1-dimensional")
    if len(column) == 0:
        raise UnsupportedDataType("can't size an empty column")
    kind = column.dtype.kind
    if kind == "b":
        return FortranFormat("Iw", "I", None, 1)
    if kind in "iu":
        width = max(len(str(int(value))) for value in column)
        return FortranFormat("Iw", "I", None, width)
    if kind == "f" and column.dtype.itemsize in (4, 8):
        return _float_format(column)
    if kind in "US":
        width = max(len(_as_text(value)) for value in column)
        return FortranFormat("Aw", "A", None, max(width, 1))
    raise UnsupportedDataType(
        f"no ASCII table descriptor for {column.dtype.name} columns"
    )


def _as_text(value) -> str:
    if isinstance(value, bytes):
        return value.decode("ascii", errors="replace")
    return str(value)


def render_field(value: Any, fmt: FortranFormat) -> str:
    """
    Render one value at exactly `fmt.width` characters: strings
    left-justified, numbers right-justified.
    """
    if fmt.char == "A":
        text = _as_text(value).ljust(fmt.width)
    elif fmt.char == "I":
        if isinstance(value, (bool, np.bool_)):
            value = int(value)
        text = str(int(value)).rjust(fmt.width)
    elif fmt.char == "F":
        text = f"{float(value):{fmt.width}.{fmt.ndec}f}"
    elif fmt.char in "ED":
        text = f"{float(value):{fmt.width}.{fmt.ndec}E}"
        if fmt.char == "D":
            text = text.replace("E", "D")
    else:
        raise InvalidFormatDescriptor(
            format_fortran_format(fmt), "not allowed in an ASCII table"
        )
    if len(text) != fmt.width:
        raise ValueError(
            f"{value!r} overruns a {format_fortran_format(fmt)} field"
        )
    return text


INTEGER_BASES = MappingProxyType({"I": 10, "B": 2, "O": 8, "Z": 16})
"""radix of each integer descriptor letter"""


def parse_field(text: str, fmt: FortranFormat) -> Any:
    """
    Parse one ASCII table field by its descriptor's type letter. Blank
    numeric fields are undefined and come back as None.
    """
    if fmt.char == "A":
        return text.rstrip(" ")
    stripped = text.strip()
    if stripped == "":
        return None
    if fmt.char in INTEGER_BASES:
        return int(stripped, INTEGER_BASES[fmt.char])
    # the host float parser doesn't understand FORTRAN D exponents
    return float(stripped.replace("D", "E").replace("d", "e"))
