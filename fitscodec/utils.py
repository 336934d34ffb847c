"""generic i/o and filename utility functions for fitscodec."""
from __future__ import annotations
from contextlib import contextmanager
import os
from pathlib import Path
import re
import tempfile
from typing import IO, Iterator, NamedTuple, Optional, Union

FITS_EXTENSIONS = (".fits", ".fit", ".fts")
"""file extensions we accept for FITS files"""
SUPPORTED_COMPRESSION_EXTENSIONS = (".gz", ".bz2", ".zip")
NUMERATOR_PATTERN = re.compile(r"^(?P<prefix>.*?)(?P<numerator>\d*)$")


class FitsName(NamedTuple):
    """a FITS filename split into its parts: 'img_0042.fits' ->
    ('img_0042.fits', 'img_', 42, '.fits')"""
    name: str
    prefix: str
    numerator: Optional[int]
    extension: str


def stem_path(path: Path) -> tuple[str, str]:
    """
    split a Path into its stem and its (lowercased) extension, ignoring a
    trailing compression extension
    """
    suffixes = [s.lower() for s in path.suffixes]
    name = path.name
    if len(suffixes) > 1 and suffixes[-1] in SUPPORTED_COMPRESSION_EXTENSIONS:
        name = name[:-len(suffixes[-1])]
        suffixes = suffixes[:-1]
    if len(suffixes) == 0:
        return name, ""
    return name[:-len(suffixes[-1])], suffixes[-1]


def decompose_filename(path: Union[str, Path]) -> FitsName:
    """
    Split a FITS filename into prefix, numerator (a trailing run of digits
    in the stem, or None) and extension.
    """
    path = Path(path)
    stem, extension = stem_path(path)
    if extension not in FITS_EXTENSIONS:
        raise ValueError(
            f"{path.name} doesn't have a FITS extension "
            f"({', '.join(FITS_EXTENSIONS)})"
        )
    match = NUMERATOR_PATTERN.match(stem)
    numerator = match.group("numerator")
    return FitsName(
        path.name,
        match.group("prefix"),
        int(numerator) if numerator else None,
        extension,
    )


@contextmanager
def decompress(filename: Union[str, Path]) -> Iterator[IO[bytes]]:
    """Open FILENAME.  If its name suffix indicates one of the supported
    compression algorithms, transparently decompress it. Leaving the
    context closes every layer, the file itself included."""
    # open the file directly to ensure that we get a regular OSError
    # (subclass) if the file doesn't exist
    with open(filename, "rb") as fp:
        suffix = Path(filename).suffix.lower()
        if suffix == ".gz":
            import gzip

            with gzip.GzipFile(fileobj=fp) as stream:
                yield stream
        elif suffix == ".bz2":
            import bz2

            with bz2.BZ2File(fp) as stream:
                yield stream
        elif suffix == ".zip":
            from zipfile import ZipFile

            with ZipFile(fp) as archive:
                with archive.open(archive.infolist()[0]) as stream:
                    yield stream
        else:
            yield fp


def read_all(path: Union[str, Path]) -> bytes:
    """every byte of a (possibly compressed) file"""
    with decompress(path) as stream:
        return stream.read()


def write_all(
    path: Union[str, Path], buffer: bytes, overwrite: bool = False
) -> Path:
    """
    Write `buffer` to `path` without ever leaving a partial file behind:
    stage it in a temporary file in the same directory, then move it into
    place. Refuses to replace an existing file unless `overwrite` is True.
    """
    path = Path(path)
    if path.exists() and not overwrite:
        raise FileExistsError(f"{path} exists; pass overwrite=True to replace")
    fd, staged = tempfile.mkstemp(
        prefix=f".{path.name}.", suffix=".part", dir=path.parent
    )
    try:
        with os.fdopen(fd, "wb") as stream:
            stream.write(buffer)
        os.replace(staged, path)
    except BaseException:
        Path(staged).unlink(missing_ok=True)
        raise
    return path
