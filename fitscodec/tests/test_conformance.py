import numpy as np
import pytest

import fitscodec
from fitscodec.conformance import (
    check_conformance, check_header_area, check_mandatory
)
from fitscodec.errors import NonconformingHeader
from fitscodec.header import Header
from fitscodec.parseheader.cards import format_card


def _header_block(*cards):
    records = [record for card in cards for record in format_card(*card)]
    records.append("END".ljust(80))
    return "".join(records).ljust(2880).encode("ascii")


def _extension(cards):
    primary = fitscodec.build("PRIMARY").encode()
    return primary + Header.from_cards(cards).to_bytes()


def test_built_headers_conform(multi_hdu_file):
    for hdu in multi_hdu_file:
        check_conformance(hdu.header, hdu.header.to_bytes(), hdu.index)


def test_missing_mandatory_keywords():
    buffer = _header_block(("SIMPLE", True), ("FOO", 1))
    with pytest.raises(NonconformingHeader, match="BITPIX, NAXIS"):
        fitscodec.decode(buffer)


def test_mandatory_keywords_out_of_order():
    header = Header.from_cards(
        [("SIMPLE", True), ("NAXIS", 0), ("BITPIX", 8)]
    )
    with pytest.raises(NonconformingHeader, match="needs BITPIX"):
        fitscodec.decode(header.to_bytes())
    header = Header.from_cards(
        [
            ("SIMPLE", True),
            ("BITPIX", 8),
            ("NAXIS", 2),
            ("NAXIS2", 1),
            ("NAXIS1", 1),
        ]
    )
    with pytest.raises(NonconformingHeader, match="needs NAXIS1"):
        check_mandatory(header)


def test_impossible_mandatory_values():
    header = Header.from_cards(
        [("SIMPLE", True), ("BITPIX", 12), ("NAXIS", 0)]
    )
    with pytest.raises(NonconformingHeader, match="BITPIX"):
        check_mandatory(header)
    header = Header.from_cards(
        [("SIMPLE", True), ("BITPIX", 8), ("NAXIS", 1), ("NAXIS1", -4)]
    )
    with pytest.raises(NonconformingHeader, match="NAXIS1"):
        check_mandatory(header)
    with pytest.raises(NonconformingHeader, match="GCOUNT") as error:
        fitscodec.decode(
            _extension(
                [
                    ("XTENSION", "IMAGE"),
                    ("BITPIX", 16),
                    ("NAXIS", 0),
                    ("PCOUNT", 0),
                    ("GCOUNT", 2),
                ]
            )
        )
    assert error.value.hdu == 2


def test_table_field_keywords():
    with pytest.raises(NonconformingHeader, match="TBCOL1"):
        fitscodec.decode(
            _extension(
                [
                    ("XTENSION", "TABLE"),
                    ("BITPIX", 8),
                    ("NAXIS", 2),
                    ("NAXIS1", 3),
                    ("NAXIS2", 0),
                    ("PCOUNT", 0),
                    ("GCOUNT", 1),
                    ("TFIELDS", 1),
                    ("TFORM1", "I3"),
                ]
            )
        )


def test_header_area():
    buffer = bytearray(
        fitscodec.encode([fitscodec.build("PRIMARY", np.arange(3))])
    )
    # the first header block is mostly blank padding after END
    buffer[2000] = 0xE9
    with pytest.raises(NonconformingHeader, match="non-ASCII"):
        fitscodec.decode(bytes(buffer))
    buffer[2000] = ord("X")
    with pytest.raises(NonconformingHeader, match="follows END"):
        fitscodec.decode(bytes(buffer))
    with pytest.raises(NonconformingHeader, match="blocks"):
        check_header_area(b" " * 80)
