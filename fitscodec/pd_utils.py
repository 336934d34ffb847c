"""
Methods for moving table columns between pandas objects, ndarrays and the
row-oriented table codecs.
"""
from __future__ import annotations
from collections.abc import Mapping
from typing import Any, Optional, Sequence, TYPE_CHECKING

import numpy as np
import pandas as pd

from fitscodec.errors import ShapeMismatch, UnsupportedDataType

if TYPE_CHECKING:
    from fitscodec.fitstypes import ColumnInput


def default_names(ncols: int) -> list[str]:
    """COL1, COL2, ..."""
    return [f"COL{n}" for n in range(1, ncols + 1)]


def _object_column(values: np.ndarray) -> np.ndarray:
    """
    Resolve an object-dtype column: strings become a unicode array, and
    cells holding equal-length sequences are stacked into a 2-D array.
    """
    elements = list(values)
    if len(elements) == 0:
        return np.array([], dtype=str)
    if all(isinstance(e, str) for e in elements):
        return np.array(elements, dtype=str)
    if all(isinstance(e, bytes) for e in elements):
        return np.array(elements, dtype=bytes)
    if all(isinstance(e, (np.ndarray, list, tuple)) for e in elements):
        try:
            return np.stack([np.asarray(e) for e in elements])
        except ValueError:
            raise ShapeMismatch(
                "cells of a vector column must all have the same shape"
            ) from None
    raise UnsupportedDataType(
        "column mixes element types: "
        + ", ".join(sorted({type(e).__name__ for e in elements}))
    )


def column_array(values: Any) -> np.ndarray:
    """coerce one column's values to an ndarray with a concrete dtype"""
    if isinstance(values, pd.Series):
        values = values.to_numpy()
    array = np.asarray(values)
    if array.dtype == object:
        return _object_column(array)
    return array


def normalize_columns(
    data: ColumnInput, names: Optional[Sequence[str]] = None
) -> list[tuple[str, np.ndarray]]:
    """
    Convert table input (a DataFrame, a mapping of name -> values, or a
    sequence of columns) into ordered (name, ndarray) pairs of equal length.
    """
    if isinstance(data, pd.DataFrame):
        pairs = [(str(name), data[name]) for name in data.columns]
    elif isinstance(data, Mapping):
        pairs = [(str(name), values) for name, values in data.items()]
    else:
        pairs = list(zip(default_names(len(data)), data))
    if names is not None:
        if len(names) != len(pairs):
            raise ShapeMismatch(
                f"{len(names)} names given for {len(pairs)} columns"
            )
        pairs = [(name, values) for name, (_, values) in zip(names, pairs)]
    columns = [(name, column_array(values)) for name, values in pairs]
    if len(columns) == 0:
        raise ShapeMismatch("a table needs at least one column")
    lengths = {len(array) for _, array in columns}
    if len(lengths) > 1:
        raise ShapeMismatch(
            f"columns have different lengths: {sorted(lengths)}"
        )
    return columns


def object_series(values: Sequence[Any]) -> pd.Series:
    """a Series holding each element of `values` as one cell, unexpanded"""
    cells = np.empty(len(values), dtype=object)
    for ix, value in enumerate(values):
        cells[ix] = value
    return pd.Series(cells)


def columns_to_frame(
    columns: Sequence[tuple[str, np.ndarray]]
) -> pd.DataFrame:
    """
    inverse of `normalize_columns()`: 1-D columns become ordinary Series,
    vector columns hold one ndarray per cell.
    """
    return pd.DataFrame(
        {
            name: pd.Series(values) if values.ndim == 1
            else object_series(list(values))
            for name, values in columns
        }
    )


def row_dtypes(row: Sequence[Any]) -> list[Optional[np.dtype]]:
    """
    dtype each scalar cell of a decoded row should be cast to as a column;
    None for strings, bit strings, vectors and undefined cells.
    """
    dtypes = []
    for value in row:
        if isinstance(value, np.generic):
            dtypes.append(value.dtype)
        elif isinstance(value, (bool, int, float)):
            dtypes.append(np.dtype(type(value)))
        else:
            dtypes.append(None)
    return dtypes


def frame_from_rows(
    rows: Sequence[tuple],
    names: Sequence[str],
    dtypes: Sequence[Optional[np.dtype]],
) -> pd.DataFrame:
    """
    Assemble decoded rows into a DataFrame. Columns with a dtype are cast to
    it; the rest (strings, vectors, bit strings) are kept as object cells.
    """
    series = {}
    for ix, (name, dtype) in enumerate(zip(names, dtypes)):
        values = [row[ix] for row in rows]
        if dtype is not None:
            series[name] = pd.Series(np.array(values, dtype=dtype))
        else:
            series[name] = object_series(values)
    return pd.DataFrame(series)
