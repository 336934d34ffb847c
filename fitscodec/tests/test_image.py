import numpy as np
import pytest

import fitscodec
from fitscodec._scaling import scale_array
from fitscodec.datatypes import element_info
from fitscodec.errors import (
    ShapeMismatch, TooManyDimensions, TruncatedData, UnsupportedDataType
)
from fitscodec.hdus.image import decode_image, encode_image
from fitscodec.header import Header
from fitscodec.np_utils import apply_offset, pad_to_block, remove_offset

RNG = np.random.default_rng()

ELEMENT_TYPES = (
    np.uint8,
    np.int8,
    np.int16,
    np.uint16,
    np.int32,
    np.uint32,
    np.int64,
    np.uint64,
    np.float32,
    np.float64,
)


def _random_array(dtype, shape):
    dtype = np.dtype(dtype)
    if dtype.kind == "f":
        return RNG.normal(0, 1000, shape).astype(dtype)
    info = np.iinfo(dtype)
    return RNG.integers(info.min, info.max, shape, dtype=dtype, endpoint=True)


@pytest.mark.parametrize("dtype", ELEMENT_TYPES)
def test_image_round_trip(dtype):
    for shape in ((7,), (5, 3), (4, 3, 2)):
        array = _random_array(dtype, shape)
        for hdutype in ("PRIMARY", "IMAGE"):
            hdu = fitscodec.build(hdutype, array)
            decoded = decode_image(hdu.header, hdu.data.encode())
            assert decoded.dtype == array.dtype
            assert decoded.shape == array.shape
            assert np.array_equal(decoded, array)


def test_scenario_a():
    array = np.array([1, 2, 3], dtype=np.int32).reshape(3, 1, 1)
    hdu = fitscodec.build("PRIMARY", array)
    header = hdu.header
    assert header["BITPIX"] == 32
    assert header["NAXIS"] == 3
    assert header.naxes() == (3, 1, 1)
    assert "BZERO" not in header
    encoded = fitscodec.encode([hdu])
    assert len(encoded) == 2880 * 2
    data = encoded[2880:]
    assert data[:12] == np.array([1, 2, 3], dtype=">i4").tobytes()
    assert data[12:] == b"\x00" * (2880 - 12)


def test_scenario_b():
    array = np.array([0, 4294967295], dtype=np.uint32)
    fits = fitscodec.decode(
        fitscodec.encode([fitscodec.build("PRIMARY", array)])
    )
    header = fits[1].header
    assert header["BZERO"] == 2147483648
    assert header["BSCALE"] == 1
    assert fits[1].data.data.dtype == np.uint32
    assert np.array_equal(fits[1].data.data, array)


@pytest.mark.parametrize(
    "dtype", (np.uint16, np.uint32, np.uint64, np.int8)
)
def test_zero_offset_idempotence(dtype):
    info = np.iinfo(dtype)
    values = np.array(
        [info.min, info.min + 1, 0, 1, info.max - 1, info.max], dtype=dtype
    )
    stored, bzero = apply_offset(values)
    assert bzero != 0
    assert stored.dtype.kind != values.dtype.kind
    restored = remove_offset(stored, bzero)
    assert restored.dtype == values.dtype
    assert np.array_equal(restored, values)


def test_offset_storage_is_exact():
    stored, bzero = apply_offset(np.array([0, 65535], dtype=np.uint16))
    assert bzero == 32768
    assert stored.tolist() == [-32768, 32767]
    stored, bzero = apply_offset(np.array([-128, 127], dtype=np.int8))
    assert bzero == -128
    assert stored.tolist() == [0, 255]


def test_fortran_order():
    array = np.arange(6, dtype=np.int16).reshape(3, 2)
    payload = encode_image(array)
    # NAXIS1 (the first axis) varies fastest
    assert np.frombuffer(payload, ">i2").tolist() == [0, 2, 4, 1, 3, 5]


def test_bool_images_come_back_as_uint8():
    hdu = fitscodec.build("IMAGE", np.array([True, False, True]))
    assert hdu.header["BITPIX"] == 8
    decoded = decode_image(hdu.header, hdu.data.encode())
    assert decoded.dtype == np.uint8
    assert decoded.tolist() == [1, 0, 1]


def test_empty_primary():
    hdu = fitscodec.build("PRIMARY")
    assert hdu.data.data is None
    assert hdu.header["NAXIS"] == 0
    assert hdu.shape == ()
    assert hdu.data.encode() == b""
    assert len(hdu.encode()) == 2880


@pytest.mark.parametrize(
    "dtype, bitpix", ((np.complex64, -32), (np.complex128, -64))
)
def test_complex_images(dtype, bitpix):
    real = _random_array(np.float64, (4, 3))
    array = (real + 1j * real[::-1]).astype(dtype)
    hdu = fitscodec.build("IMAGE", array)
    header = hdu.header
    assert header["BITPIX"] == bitpix
    # real and imaginary parts interleave along a leading axis
    assert header.naxes() == (2, 4, 3)
    assert header["CTYPE1"] == "COMPLEX"
    assert hdu.shape == (4, 3)
    payload = hdu.data.encode()
    stored = np.frombuffer(payload, f">f{abs(bitpix) // 8}")
    assert stored[:4].tolist() == [
        array[0, 0].real, array[0, 0].imag, array[1, 0].real, array[1, 0].imag
    ]
    fits = fitscodec.decode(
        fitscodec.encode([fitscodec.build("PRIMARY", array)])
    )
    decoded = fits[1].data.data
    assert decoded.dtype == array.dtype
    assert decoded.shape == array.shape
    assert np.array_equal(decoded, array)
    assert fitscodec.encode(fits)[2880:] == pad_to_block(payload)


def test_zero_length_axis():
    array = np.empty((0, 5), dtype=np.int16)
    hdu = fitscodec.build("PRIMARY", array)
    assert hdu.header["NAXIS"] == 2
    assert hdu.header.naxes() == (0, 5)
    assert hdu.shape == (0, 5)
    buffer = fitscodec.encode([hdu])
    assert len(buffer) == 2880
    fits = fitscodec.decode(buffer)
    assert fits[1].shape == (0, 5)
    assert fits[1].data.data.dtype == np.int16
    assert fitscodec.encode(fits) == buffer
    # a header written elsewhere with the same zero-length axis
    header = Header.from_cards(
        [
            ("SIMPLE", True),
            ("BITPIX", 16),
            ("NAXIS", 2),
            ("NAXIS1", 0),
            ("NAXIS2", 5),
        ]
    )
    fits = fitscodec.decode(header.to_bytes())
    assert fits.info() == [(1, "PRIMARY", (0, 5))]


def test_scaled_image():
    header = Header.from_cards(
        [
            ("SIMPLE", True),
            ("BITPIX", 16),
            ("NAXIS", 1),
            ("NAXIS1", 3),
            ("BSCALE", 2.0),
            ("BZERO", 1.0),
        ]
    )
    data = np.array([1, 2, 3], dtype=">i2").tobytes()
    assert decode_image(header, data).tolist() == [3, 5, 7]
    header.edit_key("BSCALE", 0.5)
    assert decode_image(header, data).tolist() == [1.5, 2.0, 2.5]


def test_bad_images():
    with pytest.raises(UnsupportedDataType):
        fitscodec.build("IMAGE", np.array(["a", "b"]))
    with pytest.raises(TooManyDimensions):
        fitscodec.build("IMAGE", np.zeros((2, 2, 2, 2)))
    hdu = fitscodec.build("IMAGE", np.zeros((4, 4), dtype=np.float32))
    with pytest.raises(TruncatedData):
        decode_image(hdu.header, hdu.data.encode()[:20])


def test_header_must_match_data():
    hdu = fitscodec.build("IMAGE", np.zeros((4, 4), dtype=np.float32))
    other = fitscodec.build("IMAGE", np.zeros((4, 5), dtype=np.float32))
    with pytest.raises(ShapeMismatch):
        fitscodec.HDU(None, hdu.header, other.data)


def test_generic_scaling():
    stored = np.array([0, 100, 255], dtype=np.uint8)
    assert scale_array(stored, 1, 0) is stored
    scaled = scale_array(stored, 1, 1000)
    assert scaled.dtype == np.uint16
    assert scaled.tolist() == [1000, 1100, 1255]
    # float results too large for the stored precision are widened
    scaled = scale_array(np.array([3e38], dtype=np.float32), 10.0, 0.5)
    assert scaled.dtype == np.float64
    assert np.isfinite(scaled).all()


def test_storage_helpers():
    assert element_info("uint32") == {
        "stored": ">i4", "bitpix": 32, "bzero": 2147483648, "nbytes": 4
    }
    assert element_info("complex64")["bitpix"] == -32
    with pytest.raises(UnsupportedDataType):
        element_info("U4")
    with pytest.raises(UnsupportedDataType):
        apply_offset(np.ones(2, dtype=np.complex128))
    padded = pad_to_block(b"abc", b" ")
    assert len(padded) == 2880
    assert padded.startswith(b"abc ")
    assert pad_to_block(b"") == b""
    assert pad_to_block(b"\x01" * 2880) == b"\x01" * 2880
