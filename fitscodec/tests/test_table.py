import numpy as np
import pytest

import fitscodec
from fitscodec.errors import (
    InconsistentRowType, ShapeMismatch, TruncatedData, UnsupportedDataType
)
from fitscodec.fortran import parse_field, parse_fortran_format
from fitscodec.hdus.table import decode_ascii_table


def test_scenario_e():
    flags = [True, False, True]
    values = [0.5, 1.25, -3.0]
    hdu = fitscodec.build("TABLE", {"flag": flags, "value": values})
    header = hdu.header
    naxis1 = header["NAXIS1"]
    assert header["NAXIS2"] == 3
    assert header["TFIELDS"] == 2
    assert header["TFORM1"] == "I1"
    assert header["TFORM2"] == "F5.2"
    assert (header["TBCOL1"], header["TBCOL2"]) == (1, 3)
    assert naxis1 == 7
    data = hdu.data.encode()
    assert len(data) == 2880
    assert set(data[naxis1 * 3:]) == {ord(" ")}
    for ix in range(3):
        row = data[ix * naxis1:(ix + 1) * naxis1].decode("ascii")
        assert len(row) == naxis1
        for n, expected in ((1, int(flags[ix])), (2, values[ix])):
            start = header[f"TBCOL{n}"] - 1
            fmt = parse_fortran_format(header[f"TFORM{n}"])
            field = row[start:start + fmt.width]
            assert parse_field(field, fmt) == expected
        # the separating blank is never written over
        assert row[1] == " "


def test_table_round_trip():
    hdu = fitscodec.build(
        "TABLE",
        {
            "id": [1, 22, 333],
            "label": ["a", "bcd", "ef"],
            "ratio": [0.5, 1.25, -3.0],
            "tiny": np.array([1e-7, -2.5e-8, 3e-9]),
        },
    )
    assert hdu.header["TFORM2"] == "A3"
    assert hdu.header["TFORM4"].startswith("D")
    frame = fitscodec.parse_table(hdu)
    assert list(frame.columns) == ["id", "label", "ratio", "tiny"]
    assert frame["id"].tolist() == [1, 22, 333]
    assert frame["id"].dtype == np.int64
    assert frame["label"].tolist() == ["a", "bcd", "ef"]
    assert frame["ratio"].tolist() == [0.5, 1.25, -3.0]
    assert frame["tiny"].tolist() == [1e-7, -2.5e-8, 3e-9]


def test_default_and_given_names():
    hdu = fitscodec.build("TABLE", [[1, 2], [3, 4]])
    assert (hdu.header["TTYPE1"], hdu.header["TTYPE2"]) == ("COL1", "COL2")
    hdu = fitscodec.build("TABLE", [[1, 2], [3, 4]], names=["x", "y"])
    assert list(fitscodec.parse_table(hdu).columns) == ["x", "y"]
    with pytest.raises(ShapeMismatch):
        fitscodec.build("TABLE", [[1, 2], [3, 4]], names=["x"])


def test_bad_tables():
    with pytest.raises(ShapeMismatch):
        fitscodec.build("TABLE", {"a": [1, 2], "b": [1, 2, 3]})
    with pytest.raises(UnsupportedDataType):
        fitscodec.build("TABLE", {"a": []})
    with pytest.raises(UnsupportedDataType):
        fitscodec.build("TABLE", {"a": [np.nan, 1.0]})
    with pytest.raises(UnsupportedDataType):
        fitscodec.build("TABLE", {"a": [[1, 2], [3, 4]]})
    with pytest.raises(UnsupportedDataType):
        fitscodec.build("TABLE", {"name": ["caf\u00e9", "tea"]})
    with pytest.raises(UnsupportedDataType):
        fitscodec.build("TABLE", {"name": np.array([b"\xe9t\xe9"])})


def test_undefined_field_breaks_row_types():
    hdu = fitscodec.build("TABLE", {"id": [1, 2], "ratio": [0.5, 1.25]})
    naxis1 = hdu.header["NAXIS1"]
    data = bytearray(hdu.data.encode())
    start = naxis1 + hdu.header["TBCOL2"] - 1
    data[start:start + 4] = b"    "
    with pytest.raises(InconsistentRowType):
        decode_ascii_table(hdu.header, bytes(data))


def test_truncated_table():
    hdu = fitscodec.build("TABLE", {"id": [1, 2, 3]})
    with pytest.raises(TruncatedData):
        decode_ascii_table(hdu.header, hdu.data.encode()[:2])


def test_float_dtype_follows_tform():
    small = np.array([1e-7, -2.5e-8], dtype=np.float32)
    plain = np.array([0.5, 1.5], dtype=np.float32)
    hdu = fitscodec.build("TABLE", {"small": small, "plain": plain})
    assert hdu.header["TFORM1"].startswith("E")
    assert hdu.header["TFORM2"].startswith("F")
    frame = fitscodec.parse_table(hdu)
    assert frame["small"].dtype == np.float32
    assert np.array_equal(frame["small"].to_numpy(), small)
    # Fw.d doesn't record precision
    assert frame["plain"].dtype == np.float64
    assert frame["plain"].tolist() == [0.5, 1.5]
