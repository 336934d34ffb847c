"""
format conformance checks for decoded headers: the geometry and character
set of the raw header area, and the presence, order and values of the
mandatory keywords.
"""
from __future__ import annotations
from typing import Any, Optional, TYPE_CHECKING, Union

from fitscodec.datatypes import (
    BITPIX_DTYPES,
    BLOCK_SIZE,
    INDEXED_MANDATORY,
    MANDATORY_KEYWORDS,
    RECORD_LENGTH,
    RECORDS_PER_BLOCK,
    mandatory_sequence,
)
from fitscodec.errors import NonconformingHeader

if TYPE_CHECKING:
    from fitscodec.header import Header

PRINTABLE_ASCII = bytes(range(0x20, 0x7F))
"""the only bytes a header record may contain"""
MAX_NAXIS = 999
MAX_TFIELDS = 999


def check_header_area(raw: Union[bytes, memoryview], hdu: int = 1):
    """
    The raw header of HDU number `hdu` must fill whole blocks with printable
    ASCII, and every record after END must be blank.
    """
    raw = bytes(raw)
    if len(raw) == 0 or len(raw) % BLOCK_SIZE != 0:
        raise NonconformingHeader(
            f"header of HDU {hdu} is {len(raw)} bytes, not a whole number "
            f"of {BLOCK_SIZE}-byte blocks",
            hdu,
        )
    stray = raw.translate(None, PRINTABLE_ASCII)
    if stray:
        position = raw.index(stray[:1])
        raise NonconformingHeader(
            f"record {position // RECORD_LENGTH + 1} of HDU {hdu} holds the "
            f"non-ASCII byte {stray[0]:#04x}",
            hdu,
        )
    records = [
        raw[start:start + RECORD_LENGTH]
        for start in range(0, len(raw), RECORD_LENGTH)
    ]
    ends = [ix for ix, r in enumerate(records) if r.rstrip(b" ") == b"END"]
    if len(ends) == 0:
        raise NonconformingHeader(f"header of HDU {hdu} has no END", hdu)
    for number, record in enumerate(records[ends[0] + 1:], ends[0] + 2):
        if record.strip(b" "):
            raise NonconformingHeader(
                f"record {number} of HDU {hdu} follows END but isn't blank",
                hdu,
            )


def _value(header: Header, keyword: str) -> Any:
    return header.card(keyword).value


def _count(
    header: Header,
    keyword: str,
    hdu: int,
    low: int = 0,
    high: Optional[int] = None,
) -> int:
    """a mandatory value that must be an integer in low..high"""
    value = _value(header, keyword)
    if (
        isinstance(value, bool)
        or not isinstance(value, int)
        or value < low
        or (high is not None and value > high)
    ):
        bounds = f"{low}..{high}" if high is not None else f">= {low}"
        raise NonconformingHeader(
            f"{keyword} = {value!r} in HDU {hdu}; it must be an integer "
            f"{bounds}",
            hdu,
        )
    return value


def _check_sequence(header: Header, hdu: int, naxis: int):
    expected = mandatory_sequence(header.hdutype, naxis)
    found = [card.keyword for card in header.cards[:len(expected)]]
    for position, (want, got) in enumerate(zip(expected, found), start=1):
        if want != got:
            raise NonconformingHeader(
                f"card {position} of HDU {hdu} is {got or 'blank'}; a "
                f"{header.hdutype} header needs {want} there",
                hdu,
            )


def check_mandatory(header: Header, hdu: int = 1):
    """
    Every mandatory keyword of the header's HDU type must be present, the
    fixed ones must open the header in order, and their values must be
    ones the format allows.
    """
    hdutype = header.hdutype
    order = mandatory_sequence(hdutype) + ("END",)
    missing = sorted(
        MANDATORY_KEYWORDS[hdutype].difference(header.keymap), key=order.index
    )
    if missing:
        raise NonconformingHeader(
            f"HDU {hdu} lacks mandatory keywords: {', '.join(missing)}", hdu
        )
    if _value(header, "BITPIX") not in BITPIX_DTYPES:
        raise NonconformingHeader(
            f"BITPIX = {_value(header, 'BITPIX')!r} in HDU {hdu} is not one "
            f"of {', '.join(map(str, BITPIX_DTYPES))}",
            hdu,
        )
    naxis = _count(header, "NAXIS", hdu, 0, MAX_NAXIS)
    _check_sequence(header, hdu, naxis)
    for n in range(1, naxis + 1):
        _count(header, f"NAXIS{n}", hdu)
    if hdutype == "PRIMARY":
        if _value(header, "SIMPLE") is not True:
            raise NonconformingHeader(
                f"SIMPLE must be T in a conforming file (HDU {hdu})", hdu
            )
        return
    _count(header, "PCOUNT", hdu, 0, 0 if hdutype == "IMAGE" else None)
    _count(header, "GCOUNT", hdu, 1, 1)
    if hdutype == "IMAGE":
        return
    if _value(header, "BITPIX") != 8 or naxis != 2:
        raise NonconformingHeader(
            f"{hdutype} HDU {hdu} must have BITPIX = 8 and NAXIS = 2", hdu
        )
    tfields = _count(header, "TFIELDS", hdu, 0, MAX_TFIELDS)
    roots = sorted(INDEXED_MANDATORY[hdutype].difference({"NAXIS"}))
    absent = [
        f"{root}{n}"
        for n in range(1, tfields + 1)
        for root in roots
        if f"{root}{n}" not in header.keymap
    ]
    if absent:
        raise NonconformingHeader(
            f"HDU {hdu} lacks mandatory keywords: {', '.join(absent)}", hdu
        )


def check_conformance(
    header: Header,
    raw: Optional[Union[bytes, memoryview]] = None,
    hdu: int = 1,
):
    """
    Check a header (and, if given, the raw bytes it was parsed from)
    against the structural rules of the format. Raises NonconformingHeader
    at the first violation.
    """
    if raw is not None:
        check_header_area(raw, hdu)
    if header.card_count % RECORDS_PER_BLOCK != 0:
        raise NonconformingHeader(
            f"header of HDU {hdu} occupies {header.card_count} records, not "
            f"a whole number of blocks",
            hdu,
        )
    check_mandatory(header, hdu)
