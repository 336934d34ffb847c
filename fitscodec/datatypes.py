"""
definitions of block geometry, element types / BITPIX codes / zero offsets,
binary table type letters, and the mandatory keyword sets of each HDU type.
"""
from __future__ import annotations
from types import MappingProxyType
from typing import TYPE_CHECKING, Union

import numpy as np

from fitscodec.errors import UnsupportedDataType

if TYPE_CHECKING:
    from fitscodec.fitstypes import ElementInfo, HDUType

BLOCK_SIZE = 2880
"""every HDU's header and data areas are padded to a multiple of this"""
RECORD_LENGTH = 80
"""length of one header record ('card image')"""
RECORDS_PER_BLOCK = BLOCK_SIZE // RECORD_LENGTH
"""36 records fill one block"""
VALUE_WIDTH = 20
"""width of the fixed-format value field, columns 11-30"""
MAX_AXES = 3
"""primary and image arrays deeper than this are refused"""

HDU_TYPES = ("PRIMARY", "IMAGE", "TABLE", "BINTABLE")
"""hdutype tags we know how to build and decode"""

BITPIX_DTYPES = MappingProxyType(
    {8: ">u1", 16: ">i2", 32: ">i4", 64: ">i8", -32: ">f4", -64: ">f8"}
)
"""BITPIX -> numpy dtype string of the stored (big-endian) elements"""

ELEMENT_STORAGE = MappingProxyType(
    {
        "bool": (">u1", 8, 0),
        "uint8": (">u1", 8, 0),
        "int8": (">u1", 8, -128),
        "int16": (">i2", 16, 0),
        "uint16": (">i2", 16, 32768),
        "int32": (">i4", 32, 0),
        "uint32": (">i4", 32, 2147483648),
        "int64": (">i8", 64, 0),
        "uint64": (">i8", 64, 9223372036854775808),
        "float32": (">f4", -32, 0),
        "float64": (">f8", -64, 0),
        "complex64": (">f4", -32, 0),
        "complex128": (">f8", -64, 0),
    }
)
"""
element dtype name -> (stored dtype, BITPIX, BZERO). complex elements are
stored as (real, imaginary) pairs of floats along an extra leading axis.
"""

COMPLEX_ELEMENTS = MappingProxyType({-32: "complex64", -64: "complex128"})
"""BITPIX of the stored pairs -> complex element dtype name"""
COMPLEX_AXIS = "COMPLEX"
"""CTYPE1 of an image whose first axis holds (real, imaginary) pairs"""

OFFSET_TYPES = MappingProxyType(
    {
        ("uint8", -128): "int8",
        ("int16", 32768): "uint16",
        ("int32", 2147483648): "uint32",
        ("int64", 9223372036854775808): "uint64",
    }
)
"""
(stored dtype name, zero offset) -> element dtype name. these are the only
offsets we can undo exactly; anything else goes through generic scaling.
"""

BINTABLE_WIDTHS = MappingProxyType(
    {
        "L": 1, "X": 1, "B": 1, "I": 2, "J": 4, "K": 8, "A": 1,
        "E": 4, "D": 8, "C": 8, "M": 16, "P": 8, "Q": 16,
    }
)
"""binary table type letter -> bytes per element (X counts bits, see
fortran.BintableFormat.field_bytes)"""

BINTABLE_DTYPES = MappingProxyType(
    {
        "L": ">u1", "X": ">u1", "B": ">u1", "I": ">i2", "J": ">i4",
        "K": ">i8", "E": ">f4", "D": ">f8", "C": ">c8", "M": ">c16",
    }
)
"""binary table type letter -> stored numpy dtype string"""

HEAP_DESCRIPTORS = ("P", "Q")
"""array descriptor letters; their payload lives in the heap"""

TFORM_CHARS = MappingProxyType(
    {
        "bool": "L",
        "uint8": "B",
        "int8": "B",
        "int16": "I",
        "uint16": "I",
        "int32": "J",
        "uint32": "J",
        "int64": "K",
        "uint64": "K",
        "float32": "E",
        "float64": "D",
        "complex64": "C",
        "complex128": "M",
    }
)
"""element dtype name -> binary table type letter"""

MANDATORY_KEYWORDS = MappingProxyType(
    {
        "PRIMARY": frozenset({"SIMPLE", "BITPIX", "NAXIS", "END"}),
        "IMAGE": frozenset(
            {"XTENSION", "BITPIX", "NAXIS", "PCOUNT", "GCOUNT", "END"}
        ),
        "TABLE": frozenset(
            {
                "XTENSION", "BITPIX", "NAXIS", "PCOUNT", "GCOUNT",
                "TFIELDS", "END",
            }
        ),
        "BINTABLE": frozenset(
            {
                "XTENSION", "BITPIX", "NAXIS", "PCOUNT", "GCOUNT",
                "TFIELDS", "END",
            }
        ),
    }
)
"""keywords each HDU type can't do without"""

INDEXED_MANDATORY = MappingProxyType(
    {
        "PRIMARY": frozenset({"NAXIS"}),
        "IMAGE": frozenset({"NAXIS"}),
        "TABLE": frozenset({"NAXIS", "TBCOL", "TFORM"}),
        "BINTABLE": frozenset({"NAXIS", "TFORM"}),
    }
)
"""mandatory keyword roots that carry a trailing index (NAXISn, TFORMn...)"""


def element_info(dtype: Union[np.dtype, str]) -> ElementInfo:
    """
    Translation from an in-memory numpy element type to the stored dtype,
    BITPIX code, zero offset and stored byte width of a primary/image array.
    """
    dtype = np.dtype(dtype)
    try:
        stored, bitpix, bzero = ELEMENT_STORAGE[dtype.name]
    except KeyError:
        raise UnsupportedDataType(
            f"no BITPIX code for {dtype.name} arrays"
        ) from None
    return {
        "stored": stored,
        "bitpix": bitpix,
        "bzero": bzero,
        "nbytes": abs(bitpix) // 8,
    }


def stored_to_element(stored: Union[np.dtype, str], zero) -> str:
    """
    Name of the element dtype that a stored dtype plus zero offset decodes
    to exactly, or the stored dtype's own name if the offset isn't one of the
    standard unsigned/signed reinterpretations.
    """
    name = np.dtype(stored).name
    if isinstance(zero, float) and zero.is_integer():
        zero = int(zero)
    if not isinstance(zero, int):
        return name
    return OFFSET_TYPES.get((name, zero), name)


def is_mandatory(keyword: str, hdutype: HDUType) -> bool:
    """
    Is `keyword` in the mandatory set for `hdutype`? Indexed keywords
    (NAXIS3, TFORM12) are checked by their root.
    """
    keyword = keyword.strip().upper()
    if keyword in MANDATORY_KEYWORDS[hdutype]:
        return True
    root = keyword.rstrip("0123456789")
    if root == keyword or root == "":
        return False
    return root in INDEXED_MANDATORY[hdutype]


def mandatory_sequence(hdutype: HDUType, naxis: int = 0) -> tuple[str, ...]:
    """
    The keywords that must open a header of `hdutype`, in the order they
    must appear, for a header declaring `naxis` axes.
    """
    opening = ("SIMPLE",) if hdutype == "PRIMARY" else ("XTENSION",)
    axes = tuple(f"NAXIS{n}" for n in range(1, naxis + 1))
    closing = () if hdutype == "PRIMARY" else ("PCOUNT", "GCOUNT")
    if hdutype in ("TABLE", "BINTABLE"):
        closing += ("TFIELDS",)
    return opening + ("BITPIX", "NAXIS") + axes + closing
