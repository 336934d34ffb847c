from __future__ import annotations

from typing import (
    Any, Literal, Mapping, Sequence, TYPE_CHECKING, TypedDict, Union
)
# TypeAlias is new in 3.10
# this is exactly how it's defined in python3.11/typing.py
try:
    from typing import TypeAlias
except ImportError:
    def TypeAlias(self, parameters):
        raise TypeError(f"{self} is not subscriptable")


if TYPE_CHECKING:
    import datetime as dt
    import numpy as np
    import pandas as pd

HDUType: TypeAlias = Literal["PRIMARY", "IMAGE", "TABLE", "BINTABLE"]
"""The HDU kinds this codec builds and decodes."""

CardValue: TypeAlias = Union[
    bool, int, float, complex, str, tuple, "dt.date", "dt.datetime", None
]
"""Python types a header card value can decode to"""

ColumnInput: TypeAlias = Union[
    "pd.DataFrame", Mapping[str, Sequence[Any]], Sequence[Sequence[Any]]
]
"""Things we accept as the columns of a table HDU"""

ImageInput: TypeAlias = Union["np.ndarray", Sequence[Any]]
"""Things we accept as the payload of a primary or image HDU"""


class ElementInfo(TypedDict):
    """How an array element type lands in the data area."""
    # numpy dtype string as stored, always big-endian
    stored: str
    # value of BITPIX for this element type
    bitpix: Literal[8, 16, 32, 64, -32, -64]
    # BZERO/TZERO that maps stored values back to the element type
    bzero: int
    # bytes per stored element
    nbytes: Literal[1, 2, 4, 8, 16]
