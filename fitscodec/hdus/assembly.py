"""
Classes wrapping the data of each HDU type together with the codec
functions that build its cards and encode / decode its data area.
"""
from __future__ import annotations
from types import MappingProxyType
from typing import Any, Mapping, Optional, Sequence, TYPE_CHECKING, Union

from dustgoggles.dynamic import exc_report

from fitscodec.errors import UnsupportedDataType
from fitscodec.hdus.bintable import (
    bintable_data_size, decode_bintable, encode_bintable
)
from fitscodec.hdus.image import (
    as_image_array,
    decode_image,
    encode_image,
    image_cards,
    image_data_size,
    image_shape,
    offset_cards,
)
from fitscodec.hdus.table import (
    ascii_table_data_size, decode_ascii_table, encode_ascii_table
)
from fitscodec.np_utils import pad_to_block
from fitscodec.pd_utils import columns_to_frame, normalize_columns

if TYPE_CHECKING:
    from dustgoggles.tracker import TrivialTracker
    import pandas as pd

    from fitscodec.fitstypes import ColumnInput, HDUType, ImageInput
    from fitscodec.header import Header

STANDARD_COMMENTS = (
    "FITS (Flexible Image Transport System) format is defined in "
    "'Astronomy",
    "and Astrophysics', volume 376, page 359; bibcode: 2001A&A...376..359H",
)
"""COMMENT cards closing every primary header we build"""


def _format_exc_report(exc: Exception) -> dict:
    """format an exception report for inclusion in a tracker entry"""
    report = exc_report(exc)
    for k, v in tuple(report.items()):
        if k != "exception":
            del report[k]
            report[f"exception_{k}"] = v
    return report


class Payload:
    """
    The data of one HDU. Subclasses say how the data becomes cards and a
    data area and back. Decoded payloads keep the bytes they were decoded
    from and encode to exactly those bytes.
    """

    hdutype: HDUType
    # padding byte of the last data block
    fill = b"\x00"

    def __init__(self, data: Any, raw: Optional[bytes] = None):
        self.data = data
        self.raw = raw

    def cards(self) -> list[tuple]:
        """every card describing this payload, in header order, sans END"""
        raise NotImplementedError

    def _encode(self) -> bytes:
        raise NotImplementedError

    def encode(self) -> bytes:
        """the data area, padded out to a whole number of blocks"""
        payload = self._encode() if self.raw is None else self.raw
        if len(payload) == 0:
            return b""
        return pad_to_block(payload, self.fill)

    @property
    def shape(self) -> tuple[int, ...]:
        raise NotImplementedError

    @staticmethod
    def expected_shape(header: Header) -> tuple[int, ...]:
        """the shape a header says its data has"""
        raise NotImplementedError

    @staticmethod
    def data_size(header: Header) -> int:
        """unpadded bytes of data the header declares"""
        raise NotImplementedError

    @classmethod
    def decode(
        cls, header: Header, data: Union[bytes, memoryview]
    ) -> Payload:
        raise NotImplementedError

    def __repr__(self):
        return f"{self.__class__.__name__}(shape={self.shape})"


class ImageData(Payload):
    """an n-dimensional array in an IMAGE extension; None if it has none"""

    hdutype = "IMAGE"

    def __init__(
        self, data: Optional[ImageInput], raw: Optional[bytes] = None
    ):
        super().__init__(as_image_array(data), raw)

    def cards(self) -> list[tuple]:
        return (
            [("XTENSION", "IMAGE")]
            + image_cards(self.data)
            + [("PCOUNT", 0), ("GCOUNT", 1)]
            + offset_cards(self.data)
        )

    def _encode(self) -> bytes:
        return encode_image(self.data)

    @property
    def shape(self) -> tuple[int, ...]:
        return () if self.data is None else self.data.shape

    @staticmethod
    def expected_shape(header: Header) -> tuple[int, ...]:
        return image_shape(header)

    @staticmethod
    def data_size(header: Header) -> int:
        return image_data_size(header)

    @classmethod
    def decode(cls, header, data):
        raw = bytes(data[:cls.data_size(header)])
        return cls(decode_image(header, data), raw)


class PrimaryData(ImageData):
    """the array (possibly empty) of the primary HDU"""

    hdutype = "PRIMARY"

    def cards(self) -> list[tuple]:
        return (
            [("SIMPLE", True)]
            + image_cards(self.data)
            + offset_cards(self.data)
            + [("EXTEND", True)]
            + [("COMMENT", text) for text in STANDARD_COMMENTS]
        )


class TableData(Payload):
    """the rows of an ASCII table extension, as a DataFrame"""

    hdutype = "TABLE"
    fill = b" "

    def __init__(
        self,
        data: Union[ColumnInput, pd.DataFrame],
        raw: Optional[bytes] = None,
        names: Optional[Sequence[str]] = None,
    ):
        self.columns, self._encoded = None, None
        if raw is None:
            self.columns = normalize_columns(data, names)
            data = columns_to_frame(self.columns)
        super().__init__(data, raw)

    def _encode_table(self) -> tuple[list[tuple], bytes]:
        return encode_ascii_table(self.columns)

    def _table(self) -> tuple[list[tuple], bytes]:
        if self._encoded is None:
            self._encoded = self._encode_table()
        return self._encoded

    def cards(self) -> list[tuple]:
        return [("XTENSION", self.hdutype)] + self._table()[0]

    def _encode(self) -> bytes:
        return self._table()[1]

    @property
    def shape(self) -> tuple[int, ...]:
        return len(self.data), len(self.data.columns)

    @staticmethod
    def expected_shape(header: Header) -> tuple[int, ...]:
        return header["NAXIS2"], header["TFIELDS"]

    @staticmethod
    def data_size(header: Header) -> int:
        return ascii_table_data_size(header)

    @classmethod
    def decode(cls, header, data):
        raw = bytes(data[:cls.data_size(header)])
        return cls(decode_ascii_table(header, data), raw)


class BintableData(TableData):
    """the rows of a binary table extension, as a DataFrame"""

    hdutype = "BINTABLE"
    fill = b"\x00"

    def __init__(
        self,
        data: Union[ColumnInput, pd.DataFrame],
        raw: Optional[bytes] = None,
        names: Optional[Sequence[str]] = None,
        tforms: Union[Mapping[str, str], Sequence[str], None] = None,
    ):
        self.tforms = tforms
        super().__init__(data, raw, names)

    def _encode_table(self) -> tuple[list[tuple], bytes]:
        return encode_bintable(self.columns, self.tforms)

    @staticmethod
    def data_size(header: Header) -> int:
        return bintable_data_size(header)

    @classmethod
    def decode(cls, header, data):
        raw = bytes(data[:cls.data_size(header)])
        return cls(decode_bintable(header, data), raw)


PAYLOADS = MappingProxyType(
    {
        "PRIMARY": PrimaryData,
        "IMAGE": ImageData,
        "TABLE": TableData,
        "BINTABLE": BintableData,
    }
)
"""hdutype -> Payload subclass"""


def payload_class(hdutype: str) -> type[Payload]:
    try:
        return PAYLOADS[hdutype.strip().upper()]
    except KeyError:
        raise UnsupportedDataType(
            f"unknown HDU type {hdutype!r}; expected one of "
            f"{', '.join(PAYLOADS)}"
        ) from None


def make_payload(hdutype: str, data: Any = None, **kwargs) -> Payload:
    """wrap in-memory data as the payload of a new HDU"""
    return payload_class(hdutype)(data, **kwargs)


def decode_payload(
    header: Header,
    data: Union[bytes, memoryview],
    tracker: TrivialTracker,
    index: int,
) -> Payload:
    """decode a data area according to its header, recording the attempt."""
    cls = payload_class(header.hdutype)
    tracker.set_metadata(payload=cls.__name__, hdu=index)
    record = {"status": "decode_ok"}
    try:
        return cls.decode(header, data)
    except Exception as exc:
        record = {"status": "decode_failed"} | _format_exc_report(exc)
        raise exc
    finally:
        tracker.track(cls.decode, **record)
        tracker.dump()
