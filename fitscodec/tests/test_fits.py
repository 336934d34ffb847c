import gzip

import numpy as np
import pytest

import fitscodec
from fitscodec.errors import (
    MisalignedFile,
    MisorderedHDU,
    NonstandardHeaderWarning,
    UnsupportedDataType,
)
from fitscodec.utils import FitsName


def test_file_round_trip(multi_hdu_file):
    buffer = fitscodec.encode(multi_hdu_file)
    assert len(buffer) % 2880 == 0
    assert len(buffer) == sum(hdu.expected_size for hdu in multi_hdu_file)
    fits = fitscodec.decode(buffer, "stack_0042.fits")
    assert fits.info() == multi_hdu_file.info()
    assert fits.info() == [
        (1, "PRIMARY", (2, 3, 4)),
        (2, "IMAGE", (10,)),
        (3, "TABLE", (3, 2)),
        (4, "BINTABLE", (3, 3)),
    ]
    assert np.array_equal(fits[1].data.data, multi_hdu_file[1].data.data)
    assert fits[1].data.data.dtype == np.uint16
    assert np.array_equal(fits[2].data.data, multi_hdu_file[2].data.data)
    assert fits[3].data.data["id"].tolist() == [1, 22, 333]
    table = fits[4].data.data
    assert table["name"].tolist() == ["alpha", "b", "gamma ray"]
    assert table["counts"].tolist() == [0, 40000, 65535]
    assert np.array_equal(table["spectrum"][2], [8.0, 9.0, 10.0, 11.0])
    # decoded files re-encode to exactly the bytes they came from
    assert fitscodec.encode(fits) == buffer


def test_headers_survive_round_trip(multi_hdu_file):
    fits = fitscodec.decode(fitscodec.encode(multi_hdu_file))
    for original, decoded in zip(multi_hdu_file, fits):
        assert decoded.header.keys() == original.header.keys()
        assert decoded.header.records() == original.header.records()
    assert fits[1].header["BZERO"] == 32768
    assert fits[2].header["XTENSION"] == "IMAGE"
    assert fits[1].header["COMMENT"][0].startswith("FITS (Flexible")


def test_edited_header_round_trip(multi_hdu_file):
    multi_hdu_file[2].header.add_key("OBJECT", "M31", "target")
    for n in range(40):
        multi_hdu_file[2].header.add_key("HISTORY", f"step {n}")
    buffer = fitscodec.encode(multi_hdu_file)
    fits = fitscodec.decode(buffer)
    assert len(fits[2].header) == 72
    assert fits[2].header["OBJECT"] == "M31"
    assert len(fits[2].header["HISTORY"]) == 40
    assert fitscodec.encode(fits) == buffer


def test_indexing(multi_hdu_file):
    assert len(multi_hdu_file) == 4
    assert [hdu.index for hdu in multi_hdu_file] == [1, 2, 3, 4]
    assert multi_hdu_file[4].hdutype == "BINTABLE"
    for index in (0, 5):
        with pytest.raises(IndexError):
            multi_hdu_file[index]
    assert multi_hdu_file.fitsname == FitsName(
        "stack_0042.fits", "stack_", 42, ".fits"
    )
    assert fitscodec.FitsFile().fitsname is None


def test_hdu_order(multi_hdu_file):
    with pytest.raises(MisorderedHDU):
        multi_hdu_file.append("PRIMARY", np.zeros(3))
    assert len(multi_hdu_file) == 4
    image = fitscodec.build("IMAGE", np.zeros(3))
    with pytest.raises(MisorderedHDU):
        fitscodec.FitsFile(None, [image])
    with pytest.raises(MisorderedHDU):
        fitscodec.encode([])
    with pytest.raises(UnsupportedDataType):
        multi_hdu_file.append("GROUPS", np.zeros(3))


def test_header_must_describe_payload(multi_hdu_file):
    with pytest.raises(UnsupportedDataType):
        fitscodec.HDU(None, multi_hdu_file[1].header, multi_hdu_file[2].data)


def test_parse_table(multi_hdu_file):
    frame = fitscodec.parse_table(multi_hdu_file[3])
    assert frame["ratio"].tolist() == [0.5, 1.25, -3.0]
    with pytest.raises(UnsupportedDataType):
        fitscodec.parse_table(multi_hdu_file[2])


def test_trailing_bytes_warn(multi_hdu_file):
    buffer = fitscodec.encode(multi_hdu_file)
    with pytest.warns(NonstandardHeaderWarning):
        fits = fitscodec.decode(buffer + b"\x00" * 2880)
    assert fitscodec.encode(fits) == buffer


def test_bad_buffers(multi_hdu_file):
    buffer = fitscodec.encode(multi_hdu_file)
    with pytest.raises(MisalignedFile):
        fitscodec.decode(buffer[:-1])
    with pytest.raises(MisalignedFile):
        fitscodec.decode(buffer[2880:])


def test_write_and_read(multi_hdu_file, tmp_path, tracker_factory):
    path = fitscodec.write(multi_hdu_file, tmp_path / "stack_0042.fits")
    fits = fitscodec.read(path, debug=True, tracker=tracker_factory(path))
    assert fits.name == "stack_0042.fits"
    assert fits.info() == multi_hdu_file.info()
    with pytest.raises(FileExistsError):
        fitscodec.write(fits, path)
    fits.append("IMAGE", np.ones((2, 2), dtype=np.int16))
    fitscodec.write(fits, path, overwrite=True)
    assert len(fitscodec.open(path)) == 5
    # nothing is left behind by the staged write
    assert [p.name for p in tmp_path.iterdir()] == ["stack_0042.fits"]


def test_read_compressed(multi_hdu_file, tmp_path):
    buffer = fitscodec.encode(multi_hdu_file)
    path = tmp_path / "stack_0042.fits.gz"
    path.write_bytes(gzip.compress(buffer))
    fits = fitscodec.read(path)
    assert fits.fitsname.numerator == 42
    assert fits.fitsname.extension == ".fits"
    assert fitscodec.encode(fits) == buffer
