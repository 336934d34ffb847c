import numpy as np
import pytest

from fitscodec.errors import InvalidFormatDescriptor, UnsupportedDataType
from fitscodec.fortran import (
    BintableFormat,
    bintable_format_for,
    check_ascii_table_format,
    column_format,
    format_bintable_format,
    format_fortran_format,
    normalize_format,
    parse_bintable_format,
    parse_field,
    parse_fortran_format,
    render_field,
)

VALID_DESCRIPTORS = (
    "A20",
    "I6",
    "I6.3",
    "B8.8",
    "O12",
    "Z8.4",
    "F8.3",
    "E10.5",
    "E10.5E3",
    "EN12.4",
    "ES10.2E2",
    "G12.5E2",
    "D25.17",
    "'  f8.3 '",
)

INVALID_DESCRIPTORS = (
    ("I", "width field not specified"),
    ("F10", "decimal field not specified"),
    ("E10.5E3E1", "unexpected E character"),
    ("Q5", "unknown type character"),
    ("X5", "unknown type character"),
    ("A5.2", "decimal point incompatible with type"),
    ("F10.2.1", "two decimal points not allowed"),
    ("I10.2E3", "exponent incompatible with type"),
    ("FN10.2", "modifier incompatible with type"),
    ("E10.", "decimal field not specified"),
    ("E10.5E", "exponent field not specified"),
)


def test_scenario_c():
    fmt = parse_fortran_format("E10.5E3")
    assert fmt.char == "E"
    assert fmt.width == 10
    assert fmt.ndec == 5
    assert fmt.nexp == 3
    assert fmt.engsci is None


def test_parse_engsci():
    fmt = parse_fortran_format("ES10.2E2")
    assert (fmt.char, fmt.engsci, fmt.width, fmt.ndec, fmt.nexp) == (
        "E", "S", 10, 2, 2
    )
    assert parse_fortran_format("I6.3").nmin == 3


@pytest.mark.parametrize("descriptor", VALID_DESCRIPTORS)
def test_fortran_format_round_trip(descriptor):
    parsed = parse_fortran_format(descriptor)
    assert format_fortran_format(parsed) == normalize_format(descriptor)


@pytest.mark.parametrize("descriptor, reason", INVALID_DESCRIPTORS)
def test_invalid_descriptors(descriptor, reason):
    with pytest.raises(InvalidFormatDescriptor) as info:
        parse_fortran_format(descriptor)
    assert info.value.reason == reason


def test_ascii_table_formats():
    check_ascii_table_format(parse_fortran_format("F8.3"))
    for descriptor in ("I6.3", "EN12.4", "E10.5E3", "Z8"):
        with pytest.raises(InvalidFormatDescriptor):
            check_ascii_table_format(parse_fortran_format(descriptor))


def test_bintable_descriptors():
    assert parse_bintable_format("'1J'") == BintableFormat(1, "J", 4)
    assert parse_bintable_format("E") == BintableFormat(1, "E", 4)
    fmt = parse_bintable_format("20A:SSTR8")
    assert (fmt.repeat, fmt.char, fmt.aux) == (20, "A", ":SSTR8")
    assert format_bintable_format(fmt) == "20A:SSTR8"
    assert format_bintable_format(parse_bintable_format("D")) == "1D"
    assert parse_bintable_format("12X").field_bytes == 2
    assert parse_bintable_format("3M").field_bytes == 48
    with pytest.raises(InvalidFormatDescriptor):
        parse_bintable_format("3Y")
    with pytest.raises(InvalidFormatDescriptor):
        parse_bintable_format("")


def test_bintable_format_for():
    assert bintable_format_for(np.uint16) == BintableFormat(1, "I", 2)
    assert bintable_format_for(np.int8, 4) == BintableFormat(4, "B", 1)
    assert bintable_format_for(np.complex64).char == "C"
    assert bintable_format_for(np.dtype("U7")) == BintableFormat(7, "A", 1)
    with pytest.raises(UnsupportedDataType):
        bintable_format_for(np.float16)


def test_column_format_sizing():
    assert format_fortran_format(column_format([True, False])) == "I1"
    assert format_fortran_format(column_format([7, -120, 3])) == "I4"
    assert format_fortran_format(column_format([0.5, 1.25, -3.0])) == "F5.2"
    assert format_fortran_format(column_format(["a", "bcd"])) == "A3"
    assert format_fortran_format(
        column_format(np.array([1e-7, 2.5e-8]))
    ) == "D7.1"
    assert column_format(np.array([1e-7], dtype=np.float32)).char == "E"
    with pytest.raises(UnsupportedDataType):
        column_format([1.0, np.nan])


def test_render_and_parse_fields():
    fmt = column_format([0.5, 1.25, -3.0])
    for value in (0.5, 1.25, -3.0):
        text = render_field(value, fmt)
        assert len(text) == fmt.width
        assert parse_field(text, fmt) == value
    ifmt = parse_fortran_format("I3")
    assert render_field(True, ifmt) == "  1"
    assert parse_field("   ", ifmt) is None
    assert parse_field(" 1.5D2", parse_fortran_format("D6.1")) == 150.0
    assert parse_field("ab  ", parse_fortran_format("A4")) == "ab"
    assert parse_field("ff", parse_fortran_format("Z2")) == 255
    with pytest.raises(ValueError):
        render_field(12345, ifmt)
