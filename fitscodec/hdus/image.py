"""encoding and decoding of primary / image HDU arrays."""
from __future__ import annotations
from typing import Optional, TYPE_CHECKING, Union

import numpy as np

from fitscodec._scaling import scale_array
from fitscodec.datatypes import (
    BITPIX_DTYPES, COMPLEX_AXIS, COMPLEX_ELEMENTS, MAX_AXES, element_info
)
from fitscodec.errors import (
    TooManyDimensions, TruncatedData, UnsupportedDataType
)
from fitscodec.np_utils import (
    apply_offset,
    flatten_axes,
    from_big_endian,
    remove_offset,
    reshape_axes,
    to_big_endian,
)

if TYPE_CHECKING:
    from fitscodec.fitstypes import ImageInput
    from fitscodec.header import Header


def as_image_array(data: Optional[ImageInput]) -> Optional[np.ndarray]:
    """
    Coerce image input to an ndarray, refusing element types and shapes an
    image HDU can't hold. None (no data at all) stays None.
    """
    if data is None:
        return None
    array = np.atleast_1d(np.asarray(data))
    element_info(array.dtype)
    if array.ndim > MAX_AXES:
        raise TooManyDimensions(
            f"{array.ndim} axes given; image HDUs hold at most {MAX_AXES}"
        )
    return array


def image_axes(array: Optional[np.ndarray]) -> tuple[int, ...]:
    """
    (NAXIS1, ...) of an array as written. Complex arrays gain a leading
    axis of length 2 holding the real and imaginary parts.
    """
    if array is None:
        return ()
    if array.dtype.kind == "c":
        return (2, *array.shape)
    return array.shape


def is_complex_image(header: Header) -> bool:
    """does the first axis of this image hold (real, imaginary) pairs?"""
    return (
        header.get("CTYPE1") == COMPLEX_AXIS
        and header["BITPIX"] in COMPLEX_ELEMENTS
        and header.get("NAXIS", 0) > 1
        and header.get("NAXIS1") == 2
    )


def image_shape(header: Header) -> tuple[int, ...]:
    """shape of the array a primary / image header describes"""
    naxes = header.naxes()
    if is_complex_image(header):
        return naxes[1:]
    return naxes


def image_cards(array: Optional[np.ndarray]) -> list[tuple]:
    """BITPIX, NAXIS and NAXISn cards describing an array"""
    bitpix = 8 if array is None else element_info(array.dtype)["bitpix"]
    naxes = image_axes(array)
    cards = [
        ("BITPIX", bitpix),
        ("NAXIS", len(naxes)),
    ]
    cards += [(f"NAXIS{n}", length) for n, length in enumerate(naxes, 1)]
    return cards


def offset_cards(array: Optional[np.ndarray]) -> list[tuple]:
    """
    BZERO/BSCALE cards for element types stored with a zero offset, and the
    CTYPE1 card marking the pair axis of complex arrays
    """
    if array is None:
        return []
    if array.dtype.kind == "c":
        return [("CTYPE1", COMPLEX_AXIS, "axis 1 holds real, imaginary")]
    bzero = element_info(array.dtype)["bzero"]
    if bzero == 0:
        return []
    return [("BZERO", bzero), ("BSCALE", 1)]


def encode_image(array: Optional[np.ndarray]) -> bytes:
    """big-endian, zero-offset payload of an image array (unpadded)"""
    if array is None or array.size == 0:
        return b""
    if array.dtype.kind == "c":
        stored = np.stack([array.real, array.imag])
    else:
        stored, _ = apply_offset(array)
    return to_big_endian(flatten_axes(stored)).tobytes()


def image_data_size(header: Header) -> int:
    """bytes of data the header declares"""
    naxes = header.naxes()
    if len(naxes) == 0:
        return 0
    return int(np.prod(naxes)) * abs(header["BITPIX"]) // 8


def _pairs_to_complex(pairs: np.ndarray, bitpix: int) -> np.ndarray:
    values = np.empty(pairs.shape[1:], dtype=COMPLEX_ELEMENTS[bitpix])
    values.real, values.imag = pairs[0], pairs[1]
    return values


def decode_image(
    header: Header, data: Union[bytes, memoryview]
) -> Optional[np.ndarray]:
    """
    Reconstruct an image array from its header and data area: big-endian
    elements, zero offset undone, reshaped with NAXIS1 varying fastest.
    Returns None for a header with no axes. A zero-length axis gives an
    empty array of the declared shape.
    """
    bitpix = header["BITPIX"]
    if bitpix not in BITPIX_DTYPES:
        raise UnsupportedDataType(f"BITPIX = {bitpix} is not a valid code")
    dtype = np.dtype(BITPIX_DTYPES[bitpix])
    naxes = header.naxes()
    if len(image_shape(header)) > MAX_AXES:
        raise TooManyDimensions(
            f"NAXIS = {len(naxes)}; image HDUs hold at most {MAX_AXES} axes"
        )
    if len(naxes) == 0:
        return None
    count = int(np.prod(naxes))
    if len(data) < count * dtype.itemsize:
        raise TruncatedData(
            f"data area holds {len(data)} bytes; header declares "
            f"{count * dtype.itemsize}"
        )
    if count == 0:
        flat = np.empty(0, dtype=dtype.newbyteorder("="))
    else:
        flat = from_big_endian(data, dtype, count)
    bzero, bscale = header.get("BZERO", 0), header.get("BSCALE", 1)
    if bscale == 1:
        flat = remove_offset(flat, bzero)
    else:
        flat = scale_array(flat, bscale, bzero)
    if is_complex_image(header):
        return _pairs_to_complex(reshape_axes(flat, naxes), bitpix)
    return reshape_axes(flat, naxes)
