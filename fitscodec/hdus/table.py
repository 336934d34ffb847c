"""row codec for ASCII table (XTENSION = 'TABLE') HDUs."""
from __future__ import annotations
from types import MappingProxyType
from typing import Any, NamedTuple, Sequence, TYPE_CHECKING, Union

import numpy as np
import pandas as pd

from fitscodec.errors import (
    InconsistentRowType, TruncatedData, UnsupportedDataType
)
from fitscodec.fortran import (
    FortranFormat,
    check_ascii_table_format,
    column_format,
    format_fortran_format,
    parse_field,
    parse_fortran_format,
    render_field,
)
from fitscodec.pd_utils import frame_from_rows, row_dtypes

if TYPE_CHECKING:
    from fitscodec.header import Header

COLUMN_SEPARATION = 1
"""blanks between adjacent fields of rows we write"""
FLOAT_DTYPES = MappingProxyType(
    {
        "E": np.dtype("float32"),
        "D": np.dtype("float64"),
        "F": np.dtype("float64"),
    }
)
"""
TFORM letter -> dtype of a decoded float column. Fw.d says nothing about
precision, so single-precision columns written as F widen to float64.
"""


class ColumnLayout(NamedTuple):
    name: str
    # 1-based starting character of the field (TBCOLn)
    tbcol: int
    fmt: FortranFormat

    @property
    def window(self) -> slice:
        """character slice of this field within a row"""
        return slice(self.tbcol - 1, self.tbcol - 1 + self.fmt.width)


class TableLayout(NamedTuple):
    columns: tuple[ColumnLayout, ...]
    # characters per row
    naxis1: int

    @property
    def names(self) -> list[str]:
        return [c.name for c in self.columns]


def ascii_layout(columns: Sequence[tuple[str, np.ndarray]]) -> TableLayout:
    """
    Size every column (the chosen width is fixed for all rows) and place
    the fields left to right, one blank apart.
    """
    layouts, tbcol = [], 1
    for name, values in columns:
        fmt = column_format(values)
        layouts.append(ColumnLayout(name, tbcol, fmt))
        tbcol += fmt.width + COLUMN_SEPARATION
    return TableLayout(tuple(layouts), tbcol - 1 - COLUMN_SEPARATION)


def layout_from_header(header: Header) -> TableLayout:
    """read TTYPEn / TBCOLn / TFORMn back into a TableLayout"""
    layouts = []
    for n in range(1, header["TFIELDS"] + 1):
        fmt = check_ascii_table_format(
            parse_fortran_format(header[f"TFORM{n}"])
        )
        layouts.append(
            ColumnLayout(
                str(header.get(f"TTYPE{n}", f"COL{n}")),
                header[f"TBCOL{n}"],
                fmt,
            )
        )
    return TableLayout(tuple(layouts), header["NAXIS1"])


def encode_ascii_row(values: Sequence[Any], layout: TableLayout) -> bytes:
    """
    Render one row: every field at its fixed width and TBCOL, blanks
    elsewhere; the result is exactly NAXIS1 bytes.
    """
    row = [" "] * layout.naxis1
    for value, column in zip(values, layout.columns):
        window = column.window
        if window.stop > layout.naxis1:
            raise ValueError(
                f"field {column.name} overruns the {layout.naxis1}-byte row"
            )
        field = render_field(value, column.fmt)
        if not field.isascii():
            raise UnsupportedDataType(
                f"column {column.name}: {value!r} is not ASCII text"
            )
        row[window] = field
    return "".join(row).encode("ascii")


def decode_ascii_row(row: bytes, layout: TableLayout) -> tuple:
    """slice one row at each TBCOL..TBCOL+width and parse the fields."""
    text = row.decode("ascii")
    return tuple(
        parse_field(text[column.window], column.fmt)
        for column in layout.columns
    )


def check_row_types(rows: Sequence[tuple], names: Sequence[str]):
    """every row must decode to the same element types as row 1."""
    if len(rows) == 0:
        return
    expected = tuple(map(type, rows[0]))
    for number, row in enumerate(rows[1:], start=2):
        found = tuple(map(type, row))
        if found == expected:
            continue
        for name, want, got in zip(names, expected, found):
            if want != got:
                raise InconsistentRowType(
                    f"row {number}, column {name}: decoded to "
                    f"{got.__name__}, but row 1 decoded to {want.__name__}"
                )


def ascii_table_cards(layout: TableLayout, nrows: int) -> list[tuple]:
    """mandatory and per-column cards of an ASCII table (after XTENSION)"""
    cards = [
        ("BITPIX", 8),
        ("NAXIS", 2),
        ("NAXIS1", layout.naxis1),
        ("NAXIS2", nrows),
        ("PCOUNT", 0),
        ("GCOUNT", 1),
        ("TFIELDS", len(layout.columns)),
    ]
    for n, column in enumerate(layout.columns, start=1):
        tform = format_fortran_format(column.fmt)
        cards += [
            (f"TTYPE{n}", column.name),
            (f"TBCOL{n}", column.tbcol),
            (f"TFORM{n}", tform),
            (f"TDISP{n}", tform),
        ]
    return cards


def encode_ascii_table(
    columns: Sequence[tuple[str, np.ndarray]]
) -> tuple[list[tuple], bytes]:
    """cards and (unpadded) data area of an ASCII table"""
    layout = ascii_layout(columns)
    arrays = [values for _, values in columns]
    payload = b"".join(
        encode_ascii_row(row, layout) for row in zip(*arrays)
    )
    return ascii_table_cards(layout, len(arrays[0])), payload


def ascii_table_data_size(header: Header) -> int:
    return header["NAXIS1"] * header["NAXIS2"]


def decode_ascii_table(
    header: Header, data: Union[bytes, memoryview]
) -> pd.DataFrame:
    """parse every row of an ASCII table into a DataFrame."""
    layout = layout_from_header(header)
    naxis1, nrows = layout.naxis1, header["NAXIS2"]
    if len(data) < naxis1 * nrows:
        raise TruncatedData(
            f"data area holds {len(data)} bytes; table needs {naxis1 * nrows}"
        )
    rows = [
        decode_ascii_row(bytes(data[ix * naxis1:(ix + 1) * naxis1]), layout)
        for ix in range(nrows)
    ]
    check_row_types(rows, layout.names)
    dtypes = row_dtypes(rows[0]) if rows else [None] * len(layout.columns)
    dtypes = [
        FLOAT_DTYPES.get(column.fmt.char, dtype)
        if dtype is not None and dtype.kind == "f"
        else dtype
        for column, dtype in zip(layout.columns, dtypes)
    ]
    return frame_from_rows(rows, layout.names, dtypes)
