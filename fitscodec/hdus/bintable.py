"""row codec for binary table (XTENSION = 'BINTABLE') HDUs."""
from __future__ import annotations
from collections.abc import Mapping
from numbers import Number
from typing import Any, NamedTuple, Optional, Sequence, TYPE_CHECKING, Union

import numpy as np
import pandas as pd

from fitscodec.bit_handling import bit_string_to_bytes, bytes_to_bit_string
from fitscodec.datatypes import (
    BINTABLE_DTYPES,
    ELEMENT_STORAGE,
    HEAP_DESCRIPTORS,
    TFORM_CHARS,
    stored_to_element,
)
from fitscodec.errors import (
    HeapNotImplemented,
    ShapeMismatch,
    TruncatedData,
    UnparsableValue,
    UnsupportedDataType,
)
from fitscodec.fortran import (
    BintableFormat,
    bintable_format_for,
    column_format,
    format_bintable_format,
    format_fortran_format,
    parse_bintable_format,
)
from fitscodec.hdus.table import check_row_types
from fitscodec.np_utils import (
    apply_offset, from_big_endian, remove_offset, to_big_endian
)
from fitscodec.pd_utils import frame_from_rows, row_dtypes

if TYPE_CHECKING:
    from fitscodec.header import Header

NUMERIC_CHARS = "BIJKEDCM"
"""type letters of fields holding numbers"""


class FieldLayout(NamedTuple):
    name: str
    # byte offset of the field within a row
    offset: int
    fmt: BintableFormat
    # in-memory element type of numeric fields
    element: Optional[np.dtype] = None
    zero: Number = 0
    scale: Number = 1
    tdim: Optional[tuple[int, ...]] = None

    @property
    def window(self) -> slice:
        """byte slice of this field within a row"""
        return slice(self.offset, self.offset + self.fmt.field_bytes)


class BintableLayout(NamedTuple):
    fields: tuple[FieldLayout, ...]
    # bytes per row
    naxis1: int

    @property
    def names(self) -> list[str]:
        return [f.name for f in self.fields]


def _text(value) -> str:
    if isinstance(value, bytes):
        return value.decode("ascii", errors="replace")
    return str(value)


def _element_for(
    fmt: BintableFormat, dtype: Optional[np.dtype] = None
) -> Optional[np.dtype]:
    """
    element type a numeric field is written from: the column's own dtype
    when it maps to the field's type letter, else the letter's stored type.
    """
    if fmt.char not in NUMERIC_CHARS:
        return None
    if dtype is not None and TFORM_CHARS.get(dtype.name) == fmt.char:
        return dtype.newbyteorder("=")
    return np.dtype(BINTABLE_DTYPES[fmt.char]).newbyteorder("=")


def check_field_range(
    values: np.ndarray, fmt: BintableFormat, element: Optional[np.dtype]
):
    """
    refuse a column whose values don't fit the element type its TFORM
    stores them as, rather than letting the cast wrap them
    """
    if element is None or values.size == 0 or values.dtype.kind not in "biuf":
        return
    if element.kind == "c" or np.can_cast(values.dtype, element):
        return
    if element.kind in "iu":
        info = np.iinfo(element)
        whole = values.dtype.kind != "f" or bool(
            np.all(np.isfinite(values) & (values == np.round(values)))
        )
    else:
        info = np.finfo(element)
        values, whole = values[np.isfinite(values)], True
        if values.size == 0:
            return
    low, high = values.min().item(), values.max().item()
    if not whole or low < info.min or high > info.max:
        raise UnsupportedDataType(
            f"TFORM {format_bintable_format(fmt)} stores {element.name} "
            f"elements; column values {low}..{high} don't fit"
        )


def _zero_for(element: Optional[np.dtype]) -> int:
    if element is None or element.kind == "c":
        return 0
    return ELEMENT_STORAGE[element.name][2]


def field_format(
    values: np.ndarray, tform: Optional[str] = None
) -> tuple[BintableFormat, Optional[tuple[int, ...]]]:
    """
    Descriptor and (when cells are multidimensional, or are arrays of
    strings) TDIM of one column. Cells are the column's rows: a 2-D column
    holds one vector per row.
    """
    cell_shape = values.shape[1:]
    ncells = int(np.prod(cell_shape))
    if tform is not None:
        fmt = parse_bintable_format(tform)
    elif values.dtype.kind in "US":
        width = max((len(_text(v)) for v in values.ravel()), default=0)
        fmt = BintableFormat(max(width, 1) * ncells, "A", 1)
    else:
        fmt = bintable_format_for(values.dtype, ncells)
    if fmt.char in HEAP_DESCRIPTORS:
        raise HeapNotImplemented(
            f"{format_bintable_format(fmt)}: variable-length array columns "
            f"are not supported"
        )
    if fmt.char in NUMERIC_CHARS + "L" and fmt.repeat != ncells:
        raise ShapeMismatch(
            f"{format_bintable_format(fmt)} holds {fmt.repeat} elements per "
            f"row; the column has {ncells}"
        )
    if fmt.char == "A" and len(cell_shape) > 0:
        return fmt, (fmt.repeat // ncells, *cell_shape)
    if fmt.char != "X" and len(cell_shape) > 1:
        return fmt, tuple(cell_shape)
    return fmt, None


def _tform_list(
    columns: Sequence[tuple[str, np.ndarray]],
    tforms: Union[Mapping, Sequence, None],
) -> list[Optional[str]]:
    if tforms is None:
        return [None] * len(columns)
    if isinstance(tforms, Mapping):
        return [tforms.get(name) for name, _ in columns]
    if len(tforms) != len(columns):
        raise ShapeMismatch(
            f"{len(tforms)} TFORMs given for {len(columns)} columns"
        )
    return list(tforms)


def bintable_layout(
    columns: Sequence[tuple[str, np.ndarray]],
    tforms: Union[Mapping, Sequence, None] = None,
) -> BintableLayout:
    """
    Lay out the fields of a binary table row. `tforms` optionally forces
    descriptors (by column name, or positionally); bit ('X') columns need
    one, since nothing else says how many bits a cell holds.
    """
    fields, offset = [], 0
    for (name, values), tform in zip(columns, _tform_list(columns, tforms)):
        fmt, tdim = field_format(values, tform)
        element = _element_for(fmt, values.dtype)
        check_field_range(values, fmt, element)
        fields.append(
            FieldLayout(
                name, offset, fmt, element, _zero_for(element), 1, tdim
            )
        )
        offset += fmt.field_bytes
    return BintableLayout(tuple(fields), offset)


def parse_tdim(value: Any) -> Optional[tuple[int, ...]]:
    """TDIMn text '(a,b,...)' -> (a, b, ...)"""
    if value is None:
        return None
    if isinstance(value, tuple):
        return tuple(int(v) for v in value)
    try:
        return tuple(
            int(v) for v in str(value).strip().strip("()").split(",")
        )
    except ValueError:
        raise UnparsableValue(
            f"{value!r} is not a list of dimensions", "TDIM"
        ) from None


def format_tdim(tdim: Sequence[int]) -> str:
    return "(" + ",".join(map(str, tdim)) + ")"


def layout_from_header(header: Header) -> BintableLayout:
    """read TTYPEn / TFORMn / TZEROn / TSCALn / TDIMn into a BintableLayout"""
    fields, offset = [], 0
    for n in range(1, header["TFIELDS"] + 1):
        fmt = parse_bintable_format(header[f"TFORM{n}"])
        if fmt.char in HEAP_DESCRIPTORS:
            raise HeapNotImplemented(
                f"TFORM{n} = {format_bintable_format(fmt)}: reading the heap "
                f"is not supported"
            )
        zero = header.get(f"TZERO{n}", 0)
        scale = header.get(f"TSCAL{n}", 1)
        tdim = parse_tdim(header.get(f"TDIM{n}"))
        if tdim is not None and np.prod(tdim) > fmt.repeat:
            raise ShapeMismatch(
                f"TDIM{n} = {format_tdim(tdim)} needs more than the "
                f"{fmt.repeat} elements of TFORM{n}"
            )
        element = None
        if fmt.char in NUMERIC_CHARS and scale == 1:
            element = np.dtype(
                stored_to_element(BINTABLE_DTYPES[fmt.char], zero)
            )
        fields.append(
            FieldLayout(
                str(header.get(f"TTYPE{n}", f"COL{n}")),
                offset,
                fmt,
                element,
                zero,
                scale,
                tdim,
            )
        )
        offset += fmt.field_bytes
    if offset > header["NAXIS1"]:
        raise ShapeMismatch(
            f"fields need {offset} bytes per row; NAXIS1 = {header['NAXIS1']}"
        )
    return BintableLayout(tuple(fields), header["NAXIS1"])


def _encode_text(value: Any, field: FieldLayout) -> bytes:
    width = field.fmt.repeat if field.tdim is None else field.tdim[0]
    cells = [value] if field.tdim is None else np.ravel(value, order="F")
    raw = b""
    for cell in cells:
        if not _text(cell).isascii():
            raise UnsupportedDataType(
                f"column {field.name}: {cell!r} is not ASCII text"
            )
        text = _text(cell).encode("ascii")
        if len(text) > width:
            raise ValueError(
                f"{_text(cell)!r} is wider than the {width} characters of "
                f"column {field.name}"
            )
        raw += text.ljust(width)
    return raw.ljust(field.fmt.repeat)


def _decode_text(raw: bytes, field: FieldLayout) -> Union[str, np.ndarray]:
    text = raw.decode("ascii", errors="replace")
    if field.tdim is None:
        return text.rstrip(" \x00")
    width, shape = field.tdim[0], field.tdim[1:]
    pieces = [
        text[ix * width:(ix + 1) * width].rstrip(" \x00")
        for ix in range(int(np.prod(shape)))
    ]
    if len(shape) == 0:
        return pieces[0]
    return np.array(pieces, dtype=str).reshape(shape, order="F")


def _encode_numbers(value: Any, field: FieldLayout) -> bytes:
    cells = np.asarray(value).astype(field.element).ravel(order="F")
    if cells.size != field.fmt.repeat:
        raise ShapeMismatch(
            f"column {field.name} holds {field.fmt.repeat} elements per row; "
            f"got {cells.size}"
        )
    if field.element.kind == "c":
        return to_big_endian(cells).tobytes()
    stored, _ = apply_offset(cells)
    return to_big_endian(stored).tobytes()


def _shape_cells(cells: np.ndarray, field: FieldLayout) -> Any:
    if field.tdim is not None:
        return cells[:int(np.prod(field.tdim))].reshape(field.tdim, order="F")
    if field.fmt.repeat == 1:
        return cells[0]
    return cells


def _decode_numbers(raw: bytes, field: FieldLayout) -> Any:
    stored = from_big_endian(
        raw, BINTABLE_DTYPES[field.fmt.char], field.fmt.repeat
    )
    exact = field.zero == 0 or (
        stored_to_element(stored.dtype, field.zero) != stored.dtype.name
    )
    if field.fmt.char in "CM":
        cells = stored
    elif field.scale == 1 and exact:
        cells = remove_offset(stored, field.zero)
    else:
        # every row of a column must decode to the same dtype
        cells = stored * float(field.scale) + float(field.zero)
    return _shape_cells(cells, field)


def _encode_field(value: Any, field: FieldLayout) -> bytes:
    char = field.fmt.char
    if char == "A":
        return _encode_text(value, field)
    if char == "X":
        return bit_string_to_bytes(value, field.fmt.repeat)
    if char == "L":
        cells = np.asarray(value, dtype=bool).ravel(order="F")
        if cells.size != field.fmt.repeat:
            raise ShapeMismatch(
                f"column {field.name} holds {field.fmt.repeat} flags per "
                f"row; got {cells.size}"
            )
        return cells.astype(np.uint8).tobytes()
    return _encode_numbers(value, field)


def _decode_field(raw: bytes, field: FieldLayout) -> Any:
    char = field.fmt.char
    if char == "A":
        return _decode_text(raw, field)
    if char == "X":
        return bytes_to_bit_string(raw, field.fmt.repeat)
    if char == "L":
        flags = [byte in (1, ord("T")) for byte in raw]
        if field.fmt.repeat == 1 and field.tdim is None:
            return flags[0]
        return _shape_cells(np.array(flags, dtype=bool), field)
    return _decode_numbers(raw, field)


def encode_bintable_row(
    values: Sequence[Any], layout: BintableLayout
) -> bytes:
    """pack one row: every field big-endian at its offset, NAXIS1 bytes."""
    row = b"".join(
        _encode_field(value, field)
        for value, field in zip(values, layout.fields)
    )
    return row.ljust(layout.naxis1, b"\x00")


def decode_bintable_row(row: bytes, layout: BintableLayout) -> tuple:
    return tuple(_decode_field(row[f.window], f) for f in layout.fields)


def display_format(values: np.ndarray) -> Optional[str]:
    """TDISPn for a scalar column, None if it has no ASCII rendering"""
    try:
        return format_fortran_format(column_format(values))
    except UnsupportedDataType:
        return None


def bintable_cards(
    layout: BintableLayout,
    nrows: int,
    displays: Optional[Sequence[Optional[str]]] = None,
) -> list[tuple]:
    """mandatory and per-column cards of a binary table (after XTENSION)"""
    if displays is None:
        displays = [None] * len(layout.fields)
    cards = [
        ("BITPIX", 8),
        ("NAXIS", 2),
        ("NAXIS1", layout.naxis1),
        ("NAXIS2", nrows),
        ("PCOUNT", 0),
        ("GCOUNT", 1),
        ("TFIELDS", len(layout.fields)),
    ]
    for n, (field, display) in enumerate(zip(layout.fields, displays), 1):
        cards += [
            (f"TTYPE{n}", field.name),
            (f"TFORM{n}", format_bintable_format(field.fmt)),
        ]
        if field.zero != 0:
            cards += [(f"TZERO{n}", field.zero), (f"TSCAL{n}", 1)]
        if field.tdim is not None:
            cards.append((f"TDIM{n}", format_tdim(field.tdim)))
        if display is not None:
            cards.append((f"TDISP{n}", display))
    return cards


def encode_bintable(
    columns: Sequence[tuple[str, np.ndarray]],
    tforms: Union[Mapping, Sequence, None] = None,
) -> tuple[list[tuple], bytes]:
    """cards and (unpadded) data area of a binary table"""
    layout = bintable_layout(columns, tforms)
    arrays = [values for _, values in columns]
    payload = b"".join(
        encode_bintable_row(row, layout) for row in zip(*arrays)
    )
    displays = [
        display_format(values)
        if field.fmt.char in "BIJKED" and values.ndim == 1
        else None
        for field, values in zip(layout.fields, arrays)
    ]
    return bintable_cards(layout, len(arrays[0]), displays), payload


def bintable_data_size(header: Header) -> int:
    """bytes of the fixed-width rows (PCOUNT heap bytes excluded)"""
    return header["NAXIS1"] * header["NAXIS2"]


def decode_bintable(
    header: Header, data: Union[bytes, memoryview]
) -> pd.DataFrame:
    """unpack every row of a binary table into a DataFrame."""
    layout = layout_from_header(header)
    naxis1, nrows = layout.naxis1, header["NAXIS2"]
    if len(data) < naxis1 * nrows:
        raise TruncatedData(
            f"data area holds {len(data)} bytes; table needs {naxis1 * nrows}"
        )
    rows = [
        decode_bintable_row(bytes(data[ix * naxis1:(ix + 1) * naxis1]), layout)
        for ix in range(nrows)
    ]
    check_row_types(rows, layout.names)
    dtypes = row_dtypes(rows[0]) if rows else [None] * len(layout.fields)
    return frame_from_rows(rows, layout.names, dtypes)
