"""
HDUs and FITS files: assembling them from in-memory data, decoding them
from byte buffers, and encoding them back.
"""
from __future__ import annotations
from pathlib import Path
from types import MappingProxyType
from typing import Any, Iterator, Optional, Sequence, TYPE_CHECKING, Union
import warnings

from dustgoggles.tracker import Tracker, TrivialTracker

from fitscodec.conformance import check_conformance, check_header_area
from fitscodec.datatypes import RECORD_LENGTH
from fitscodec.errors import (
    MisorderedHDU,
    NonstandardHeaderWarning,
    ShapeMismatch,
    StructuralError,
    UnsupportedDataType,
)
from fitscodec.hdus.assembly import Payload, decode_payload, make_payload
from fitscodec.hdus.bintable import decode_bintable
from fitscodec.hdus.table import decode_ascii_table
from fitscodec.header import Header
from fitscodec.np_utils import padded_length
from fitscodec.pointers import block_pointers, header_records
from fitscodec.utils import FitsName, decompose_filename, read_all, write_all

if TYPE_CHECKING:
    import pandas as pd

    from fitscodec.fitstypes import HDUType


class HDU:
    """One header-data unit: a Header and the payload it describes."""

    def __init__(self, index: Optional[int], header: Header, data: Payload):
        if header.hdutype != data.hdutype:
            raise UnsupportedDataType(
                f"a {header.hdutype} header can't describe "
                f"{data.hdutype} data"
            )
        expected = data.expected_shape(header)
        if tuple(expected) != tuple(data.shape):
            raise ShapeMismatch(
                f"header declares shape {tuple(expected)}; data has shape "
                f"{tuple(data.shape)}"
            )
        self.index = index
        self.header = header
        self.data = data

    @property
    def hdutype(self) -> HDUType:
        return self.header.hdutype

    @property
    def shape(self) -> tuple[int, ...]:
        return self.data.shape

    @property
    def expected_size(self) -> int:
        """bytes this HDU occupies in a file: header and data blocks"""
        return len(self.header) * RECORD_LENGTH + padded_length(
            self.data.data_size(self.header)
        )

    def encode(self) -> bytes:
        return self.header.to_bytes() + self.data.encode()

    def __repr__(self):
        return f"HDU({self.index}, {self.hdutype}, shape={self.shape})"


def _init_tracker(
    filename: Optional[str],
    debug: bool,
    tracker: Optional[TrivialTracker],
) -> TrivialTracker:
    if (debug is True) and (tracker is None):
        tracker = Tracker(
            Path(filename or "buffer").name.replace(".", "_"),
            outdir=Path(__file__).parent / ".tracker_logs",
        )
        tracker.clear()
        return tracker
    if tracker is None:
        return TrivialTracker()
    return tracker


def _check_order(hdus: Sequence[HDU]):
    for position, hdu in enumerate(hdus):
        if (position == 0) != (hdu.hdutype == "PRIMARY"):
            raise MisorderedHDU(
                f"HDU {position + 1} is {hdu.hdutype}; a file holds one "
                f"PRIMARY HDU, and it comes first"
            )


class FitsFile:
    """
    A (possibly unnamed) FITS file: an ordered sequence of HDUs, the first
    of them PRIMARY. HDUs are indexed from 1.
    """

    def __init__(
        self, name: Optional[Union[str, Path]] = None, hdus: Sequence[HDU] = ()
    ):
        self.name = None if name is None else Path(name).name
        self.hdus = list(hdus)
        _check_order(self.hdus)
        for index, hdu in enumerate(self.hdus, start=1):
            hdu.index = index

    @property
    def fitsname(self) -> Optional[FitsName]:
        """the decomposed filename, if the file has a name"""
        if self.name is None:
            return None
        return decompose_filename(self.name)

    @classmethod
    def decode(
        cls,
        buffer: Union[bytes, bytearray, memoryview],
        filename: Optional[Union[str, Path]] = None,
        debug: bool = False,
        tracker: Optional[TrivialTracker] = None,
    ) -> FitsFile:
        """
        Index the blocks of `buffer` and decode every HDU in it. With
        `debug`, every decode attempt is logged to a Tracker.
        """
        filename = None if filename is None else str(filename)
        tracker = _init_tracker(filename, debug, tracker)
        view = memoryview(buffer)
        pointers = block_pointers(view)
        tracker.set_metadata(filename=filename, nhdu=pointers.nhdu)
        hdus = []
        for ix in range(pointers.nhdu):
            check_header_area(
                view[pointers.hdr_start[ix]:pointers.hdr_stop[ix]], ix + 1
            )
            header = Header.from_records(
                header_records(view, pointers, ix),
                card_count=(
                    pointers.hdr_stop[ix] - pointers.hdr_start[ix]
                ) // RECORD_LENGTH,
            )
            check_conformance(header, hdu=ix + 1)
            data = view[pointers.data_start[ix]:pointers.data_stop[ix]]
            payload = decode_payload(header, data, tracker, ix + 1)
            spare = len(data) - padded_length(payload.data_size(header))
            if spare > 0:
                warnings.warn(
                    f"HDU {ix + 1} is followed by {spare} bytes its header "
                    f"doesn't account for; they will not be re-encoded",
                    NonstandardHeaderWarning,
                )
            hdus.append(HDU(ix + 1, header, payload))
        return cls(filename, hdus)

    def encode(self) -> bytes:
        """every HDU, header and data blocks, concatenated"""
        if len(self.hdus) == 0:
            raise MisorderedHDU("a file needs at least a PRIMARY HDU")
        _check_order(self.hdus)
        staged = b"".join(hdu.encode() for hdu in self.hdus)
        expected = sum(hdu.expected_size for hdu in self.hdus)
        if len(staged) != expected:
            raise StructuralError(
                f"encoded {len(staged)} bytes; the headers account for "
                f"{expected}"
            )
        return staged

    def append(self, hdutype: HDUType, data: Any = None, **kwargs) -> HDU:
        """build a new HDU from `data` and add it to the end of the file."""
        hdu = build(hdutype, data, **kwargs)
        _check_order(self.hdus + [hdu])
        hdu.index = len(self.hdus) + 1
        self.hdus.append(hdu)
        return hdu

    def info(self) -> list[tuple[int, str, tuple[int, ...]]]:
        """(index, hdutype, shape) of every HDU"""
        return [(hdu.index, hdu.hdutype, hdu.shape) for hdu in self.hdus]

    def __getitem__(self, index: int) -> HDU:
        if not 1 <= index <= len(self.hdus):
            raise IndexError(
                f"HDU index {index} out of range 1..{len(self.hdus)}"
            )
        return self.hdus[index - 1]

    def __len__(self):
        return len(self.hdus)

    def __iter__(self) -> Iterator[HDU]:
        return iter(self.hdus)

    def __repr__(self):
        return f"FitsFile({self.name})\nhdus={self.info()}"


def build(hdutype: HDUType, data: Any = None, **kwargs) -> HDU:
    """
    Build an unattached HDU from in-memory data: an array for PRIMARY and
    IMAGE HDUs (None for an empty one), columns for TABLE and BINTABLE HDUs.
    Table HDUs take optional `names`; BINTABLE HDUs also take `tforms`.
    """
    payload = make_payload(hdutype, data, **kwargs)
    header = Header.from_cards(payload.cards(), payload.hdutype)
    return HDU(None, header, payload)


def decode(
    buffer: Union[bytes, bytearray, memoryview],
    filename: Optional[Union[str, Path]] = None,
    debug: bool = False,
    tracker: Optional[TrivialTracker] = None,
) -> FitsFile:
    return FitsFile.decode(buffer, filename, debug, tracker)


def encode(fits: Union[FitsFile, Sequence[HDU]]) -> bytes:
    if not isinstance(fits, FitsFile):
        fits = FitsFile(None, fits)
    return fits.encode()


TABLE_DECODERS = MappingProxyType(
    {"TABLE": decode_ascii_table, "BINTABLE": decode_bintable}
)
"""hdutype -> function decoding that kind of table's data area"""


def parse_table(hdu: HDU) -> pd.DataFrame:
    """decode the data area of a table HDU (as it would be written)."""
    if hdu.hdutype not in TABLE_DECODERS:
        raise UnsupportedDataType(f"{hdu.hdutype} HDUs don't hold tables")
    return TABLE_DECODERS[hdu.hdutype](hdu.header, hdu.data.encode())


def read(
    path: Union[str, Path],
    debug: bool = False,
    tracker: Optional[TrivialTracker] = None,
) -> FitsFile:
    """read and decode a (possibly compressed) FITS file."""
    return FitsFile.decode(read_all(path), Path(path).name, debug, tracker)


def write(
    fits: Union[FitsFile, Sequence[HDU]],
    path: Union[str, Path],
    overwrite: bool = False,
) -> Path:
    """encode `fits` and write it to `path` atomically."""
    return write_all(path, encode(fits), overwrite)
