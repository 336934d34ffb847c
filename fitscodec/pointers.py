"""locate HDU, header and data boundaries inside a raw FITS byte buffer."""
from __future__ import annotations
from typing import NamedTuple, Union

from fitscodec.datatypes import BLOCK_SIZE, RECORD_LENGTH, RECORDS_PER_BLOCK
from fitscodec.errors import MisalignedFile, TruncatedHeader

HEADER_STARTS = (b"SIMPLE  ", b"XTENSION")
"""first 8 bytes of a block that opens a new HDU"""
END_RECORD_START = b"END     "
"""first 8 bytes of the record that closes a header"""


class BlockPointers(NamedTuple):
    """
    Parallel sequences of offsets, one entry per HDU. Blocks are counted from
    0; every stop is exclusive.
    """
    block_start: tuple[int, ...]
    block_stop: tuple[int, ...]
    hdu_start: tuple[int, ...]
    hdu_stop: tuple[int, ...]
    hdr_start: tuple[int, ...]
    hdr_stop: tuple[int, ...]
    data_start: tuple[int, ...]
    data_stop: tuple[int, ...]

    @property
    def nhdu(self) -> int:
        return len(self.hdu_start)

    def hdu(self, index: int) -> dict[str, int]:
        """all pointers of the HDU at 0-based position `index`"""
        return {field: getattr(self, field)[index] for field in self._fields}


def check_alignment(buffer: Union[bytes, memoryview]):
    """raise MisalignedFile unless `buffer` is a nonempty run of blocks."""
    if len(buffer) == 0:
        raise MisalignedFile("empty buffer; no FITS blocks to index")
    if len(buffer) % BLOCK_SIZE != 0:
        raise MisalignedFile(
            f"buffer length {len(buffer)} is not a multiple of {BLOCK_SIZE}"
        )
    if bytes(buffer[:8]) != HEADER_STARTS[0]:
        raise MisalignedFile("buffer does not begin with a SIMPLE card")


def candidate_header_starts(buffer: Union[bytes, memoryview]) -> list[int]:
    """byte offsets of every block that begins with SIMPLE or XTENSION"""
    return [
        offset
        for offset in range(0, len(buffer), BLOCK_SIZE)
        if bytes(buffer[offset:offset + 8]) in HEADER_STARTS
    ]


def find_header_end(
    buffer: Union[bytes, memoryview], hdr_start: int, limit: int
) -> int:
    """
    Scan the records of the header that opens at `hdr_start`, block by
    block, and return the offset of the block boundary after its END
    record. `limit` is the offset of the next known header start.
    """
    for block in range(hdr_start, limit, BLOCK_SIZE):
        for record in range(RECORDS_PER_BLOCK):
            offset = block + record * RECORD_LENGTH
            if bytes(buffer[offset:offset + 8]) == END_RECORD_START:
                return block + BLOCK_SIZE
    raise TruncatedHeader(
        f"no END record in the header starting at byte {hdr_start}"
    )


def block_pointers(buffer: Union[bytes, memoryview]) -> BlockPointers:
    """
    Index every HDU in `buffer`. A block that starts with SIMPLE or XTENSION
    opens a header unless it lies inside the header we are already scanning;
    the header closes at the block holding END, and the HDU's data runs from
    there to the next header start (or the end of the buffer).
    """
    check_alignment(buffer)
    candidates = candidate_header_starts(buffer)
    starts, ends = [], []
    for position, start in enumerate(candidates):
        if ends and start < ends[-1]:
            continue
        following = [c for c in candidates[position + 1:] if c > start]
        limit = following[0] if following else len(buffer)
        try:
            end = find_header_end(buffer, start, limit)
        except TruncatedHeader:
            if not following:
                raise
            # XTENSION inside a long header is plain text, not a new HDU
            end = find_header_end(buffer, start, len(buffer))
        starts.append(start)
        ends.append(end)
    stops = starts[1:] + [len(buffer)]
    for start, end, stop in zip(starts, ends, stops):
        if end > stop:
            raise TruncatedHeader(
                f"header starting at byte {start} runs into the next HDU"
            )
    return BlockPointers(
        block_start=tuple(s // BLOCK_SIZE for s in starts),
        block_stop=tuple(s // BLOCK_SIZE for s in stops),
        hdu_start=tuple(starts),
        hdu_stop=tuple(stops),
        hdr_start=tuple(starts),
        hdr_stop=tuple(ends),
        data_start=tuple(ends),
        data_stop=tuple(stops),
    )


def record_pointers(hdr_start: int, hdr_stop: int) -> tuple[int, ...]:
    """byte offsets of every 80-byte record between two block boundaries"""
    return tuple(range(hdr_start, hdr_stop, RECORD_LENGTH))


def header_records(
    buffer: Union[bytes, memoryview], pointers: BlockPointers, index: int
) -> list[str]:
    """
    Decoded records of the header of the HDU at 0-based position `index`,
    up to and including END. Blank padding records after END are dropped.
    """
    records = []
    for offset in record_pointers(
        pointers.hdr_start[index], pointers.hdr_stop[index]
    ):
        raw = bytes(buffer[offset:offset + RECORD_LENGTH])
        records.append(raw.decode("ascii", errors="replace"))
        if raw.startswith(END_RECORD_START):
            break
    return records
