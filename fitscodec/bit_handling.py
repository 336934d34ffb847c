"""utilities for packing and unpacking binary table bit ('X') fields."""
from __future__ import annotations
from typing import Sequence, Union

import numpy as np


def bit_field_bytes(nbits: int) -> int:
    """bytes needed to hold `nbits` bits"""
    return -(-nbits // 8)


def bytes_to_bit_string(raw: bytes, nbits: int) -> str:
    """
    Convert the leading `nbits` bits of a byte string into a binary string,
    most significant bit first (e.g. b"\xa0", 3 -> "101").
    """
    bits = "".join(bin(byte)[2:].zfill(8) for byte in raw)
    return bits[:nbits]


def normalize_bits(bits: Union[str, Sequence, np.ndarray]) -> str:
    """
    Accept a binary string or a sequence of truthy/falsy values and return a
    binary string.
    """
    if isinstance(bits, bytes):
        bits = bits.decode("ascii")
    if isinstance(bits, str):
        if set(bits) - {"0", "1"}:
            raise ValueError(f"{bits!r} is not a string of bits")
        return bits
    return "".join("1" if bit else "0" for bit in np.ravel(bits))


def bit_string_to_bytes(
    bits: Union[str, Sequence, np.ndarray], nbits: int
) -> bytes:
    """
    Pack up to `nbits` bits into the minimum covering number of bytes. Short
    bit strings are padded with zero bits on the right.
    """
    bits = normalize_bits(bits)
    if len(bits) > nbits:
        raise ValueError(f"{len(bits)} bits given for a {nbits}X field")
    nbytes = bit_field_bytes(nbits)
    if nbytes == 0:
        return b""
    return int(bits.ljust(nbytes * 8, "0"), 2).to_bytes(nbytes, "big")
