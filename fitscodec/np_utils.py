"""
Methods for working with numpy objects, primarily intended as components of
fitscodec's image- and table-encoding routines.
"""
from __future__ import annotations
from numbers import Number
from typing import Sequence, Union

import numpy as np

from fitscodec.datatypes import BLOCK_SIZE, element_info, stored_to_element
from fitscodec.errors import UnsupportedDataType


def enforce_native_order(array: np.ndarray) -> np.ndarray:
    """
    Return a writable copy of `array` in native byte order. Structured
    arrays are swapped field by field.
    """
    if len(array.dtype) == 0:
        if array.dtype.isnative:
            return array.copy()
        return array.byteswap().view(array.dtype.newbyteorder("="))
    swapped_dtype = []
    for name, field in array.dtype.fields.items():
        swapped_dtype.append((name, field[0].newbyteorder("=")))
    return np.array(array, dtype=swapped_dtype)


def to_big_endian(array: np.ndarray) -> np.ndarray:
    """cast `array` to the big-endian version of its dtype."""
    return array.astype(array.dtype.newbyteorder(">"), copy=False)


def from_big_endian(
    buffer: Union[bytes, memoryview],
    dtype: Union[np.dtype, str],
    count: int = -1,
    offset: int = 0,
) -> np.ndarray:
    """
    Read a 1D array of big-endian elements out of `buffer` and hand it back
    in native byte order.
    """
    dtype = np.dtype(dtype).newbyteorder(">")
    return enforce_native_order(
        np.frombuffer(buffer, dtype=dtype, count=count, offset=offset)
    )


def _flip_sign_bit(array: np.ndarray, target: Union[np.dtype, str]):
    """
    reinterpret integer `array` as `target` (same width, opposite
    signedness), flipping the most significant bit. this is exactly
    'subtract the midpoint' for unsigned -> signed and 'add it back' for
    signed -> unsigned.
    """
    width = array.dtype.itemsize
    unsigned = np.dtype(f"u{width}")
    native = np.ascontiguousarray(
        array, dtype=array.dtype.newbyteorder("=")
    )
    flipped = native.view(unsigned) ^ unsigned.type(1 << (8 * width - 1))
    return flipped.view(np.dtype(target).newbyteorder("="))


def apply_offset(array: np.ndarray) -> tuple[np.ndarray, int]:
    """
    Convert an array to the element type it will be stored as, returning the
    stored array (native byte order) and the zero offset (BZERO) needed to
    recover the original values.
    """
    if array.dtype.kind == "c":
        raise UnsupportedDataType(
            "complex elements are stored as float pairs, not with an offset"
        )
    info = element_info(array.dtype)
    stored = np.dtype(info["stored"]).newbyteorder("=")
    if info["bzero"] == 0:
        return array.astype(stored), 0
    return _flip_sign_bit(array, stored), info["bzero"]


def remove_offset(stored: np.ndarray, bzero: Number) -> np.ndarray:
    """
    Inverse of `apply_offset()`. Offsets that aren't one of the standard
    unsigned/signed reinterpretations are applied as generic scaling.
    """
    target = stored_to_element(stored.dtype, bzero)
    if target != stored.dtype.name:
        return _flip_sign_bit(stored, target)
    if bzero == 0:
        return stored
    from fitscodec._scaling import scale_array

    return scale_array(stored, 1, bzero)


def reshape_axes(flat: np.ndarray, naxes: Sequence[int]) -> np.ndarray:
    """
    Reshape a flat element sequence into an array whose shape is
    (NAXIS1, NAXIS2, ...). NAXIS1 varies fastest in the data area.
    """
    return flat.reshape(tuple(naxes), order="F")


def flatten_axes(array: np.ndarray) -> np.ndarray:
    """inverse of `reshape_axes()`"""
    return array.ravel(order="F")


def padded_length(nbytes: int, block: int = BLOCK_SIZE) -> int:
    """smallest multiple of `block` that holds `nbytes`"""
    return -(-nbytes // block) * block


def pad_to_block(payload: bytes, fill: bytes = b"\x00") -> bytes:
    """pad `payload` with `fill` out to the next block boundary."""
    return payload + fill * (padded_length(len(payload)) - len(payload))


def casting_to_float(array: np.ndarray, *operands: Number) -> bool:
    """
    check: will this operation cast the array to float?
    return True if array is integer-valued and any operands are not integers.
    """
    return (array.dtype.char in np.typecodes["AllInteger"]) and not all(
        [isinstance(operand, int) for operand in operands]
    )
