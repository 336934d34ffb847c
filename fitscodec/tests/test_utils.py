import builtins
import bz2
import gzip
from pathlib import Path
import zipfile

import pytest

from fitscodec.utils import (
    FitsName, decompose_filename, read_all, stem_path, write_all
)


def test_decompose_filename():
    assert decompose_filename("img_0042.fits") == FitsName(
        "img_0042.fits", "img_", 42, ".fits"
    )
    assert decompose_filename("/data/run/frame.FIT") == FitsName(
        "frame.FIT", "frame", None, ".fit"
    )
    assert decompose_filename("7.fts").numerator == 7
    assert decompose_filename("a.b.003.fits.gz") == FitsName(
        "a.b.003.fits.gz", "a.b.", 3, ".fits"
    )
    for name in ("table.csv", "noextension", "image.fits.tar"):
        with pytest.raises(ValueError):
            decompose_filename(name)


def test_stem_path():
    assert stem_path(Path("x.fits.bz2")) == ("x", ".fits")
    assert stem_path(Path("x.gz")) == ("x", ".gz")
    assert stem_path(Path("x")) == ("x", "")


def test_write_all(tmp_path):
    path = tmp_path / "out.fits"
    assert write_all(path, b"first") == path
    assert path.read_bytes() == b"first"
    with pytest.raises(FileExistsError):
        write_all(path, b"second")
    assert path.read_bytes() == b"first"
    write_all(path, b"second", overwrite=True)
    assert path.read_bytes() == b"second"
    assert [p.name for p in tmp_path.iterdir()] == ["out.fits"]
    with pytest.raises(FileNotFoundError):
        write_all(tmp_path / "missing" / "out.fits", b"")


def test_read_all(tmp_path):
    payload = b"SIMPLE  " * 360
    plain = tmp_path / "plain.fits"
    plain.write_bytes(payload)
    assert read_all(plain) == payload
    packed = tmp_path / "packed.fits.bz2"
    packed.write_bytes(bz2.compress(payload))
    assert read_all(packed) == payload
    zipped = tmp_path / "zipped.fits.zip"
    with zipfile.ZipFile(zipped, "w") as archive:
        archive.writestr("zipped.fits", payload)
    assert read_all(zipped) == payload
    with pytest.raises(FileNotFoundError):
        read_all(tmp_path / "nothing.fits")


@pytest.mark.parametrize("suffix", (".fits", ".fits.gz", ".fits.bz2", ".zip"))
def test_read_all_closes_the_file(tmp_path, monkeypatch, suffix):
    payload = b"END     " * 360
    path = tmp_path / f"frame{suffix}"
    if suffix == ".fits.gz":
        path.write_bytes(gzip.compress(payload))
    elif suffix == ".fits.bz2":
        path.write_bytes(bz2.compress(payload))
    elif suffix == ".zip":
        with zipfile.ZipFile(path, "w") as archive:
            archive.writestr("frame.fits", payload)
    else:
        path.write_bytes(payload)
    handles = []

    def recording_open(*args, **kwargs):
        handles.append(builtins.open(*args, **kwargs))
        return handles[-1]

    monkeypatch.setattr("fitscodec.utils.open", recording_open, raising=False)
    assert read_all(path) == payload
    assert len(handles) == 1
    assert handles[0].closed
