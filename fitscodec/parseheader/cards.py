"""Parsing and formatting of 80-character FITS header records."""
import datetime as dt
import re
import textwrap
from typing import Any, Optional, Sequence

import numpy as np
from more_itertools import chunked

from fitscodec.datatypes import RECORD_LENGTH, VALUE_WIDTH
from fitscodec.errors import IllegalKeyword, IllegalValue, UnparsableValue

COMMENTARY_KEYWORDS = ("COMMENT", "HISTORY", "")
"""keywords whose records hold free text rather than a value"""
VALUE_INDICATOR = "= "
"""columns 9-10 of a record that carries a value"""
KEYWORD_PATTERN = re.compile(r"[A-Z0-9_-]{0,8}")
INT_PATTERN = re.compile(r"[+-]?\d+")
FLOAT_PATTERN = re.compile(r"[+-]?(\d+\.?\d*|\.\d+)([EDed][+-]?\d+)?")
DIMENSION_PATTERN = re.compile(r"\(\s*\d+(\s*,\s*\d+)*\s*\)")
COMPLEX_PATTERN = re.compile(
    r"\(\s*(?P<real>[^,\s]+)\s*,\s*(?P<imag>[^,\s]+)\s*\)"
)
DATE_PATTERN = re.compile(r"\d{4}-\d{2}-\d{2}")
DATETIME_PATTERN = re.compile(
    r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(\.\d{3}|\.\d{6})?"
)
STRING_CHUNK = 67
"""characters of a long string value carried by each record, leaving room
for the quotes and the '&' continuation marker"""
COMMENTARY_WIDTH = RECORD_LENGTH - 8
"""text carried by one COMMENT/HISTORY record"""
CONTINUED_COMMENT_WIDTH = 64
"""comment text carried by one "CONTINUE  '&' / " record"""
MIN_INLINE_COMMENT = 10
"""don't start a wrapped comment on a record with less room than this"""


class Card:
    """
    One logical header entry. `records` holds the 80-character record(s) it
    was parsed from or formats to, including any CONTINUE records.
    """

    def __init__(
        self,
        keyword: str,
        value: Any = None,
        comment: str = "",
        records: Sequence[str] = (),
        index: int = 0,
    ):
        self.keyword = keyword
        self.value = value
        self.comment = comment
        self.records = tuple(records)
        self.index = index

    @classmethod
    def from_value(
        cls, keyword: str, value: Any = None, comment: str = ""
    ) -> "Card":
        """format a new card from a keyword, value and comment"""
        value = _unwrap(value)
        keyword = keyword.strip().upper()
        comment = "" if comment is None else comment
        if keyword in COMMENTARY_KEYWORDS:
            # commentary text lives in the comment, as when parsed
            if value is not None:
                comment, value = str(value), None
            records = format_card(keyword, None, comment)
            return cls(keyword, None, comment.rstrip(" "), records)
        records = format_card(keyword, value, comment)
        return cls(keyword, value, comment.strip(), records)

    @property
    def record(self) -> str:
        """the record holding this card's keyword"""
        return self.records[0]

    @property
    def is_commentary(self) -> bool:
        return self.keyword in COMMENTARY_KEYWORDS

    @property
    def is_blank(self) -> bool:
        return self.records == (" " * RECORD_LENGTH,)

    def __len__(self):
        return len(self.records)

    def __repr__(self):
        return (
            f"Card({self.keyword!r}, {self.value!r}, {self.comment!r}, "
            f"records={len(self.records)})"
        )


def check_printable(text: str, what: str = "record"):
    """records may hold only printable ASCII (0x20-0x7E)."""
    if any(not (" " <= c <= "~") for c in text):
        raise UnparsableValue(f"{what} contains non-printable characters")


def split_value_comment(text: str) -> tuple[str, str]:
    """
    Split the text after the value indicator into the value token and the
    comment. String values may contain '/' and doubled quotes.
    """
    stripped = text.lstrip(" ")
    if not stripped.startswith("'"):
        value, _, comment = stripped.partition("/")
        return value.strip(), comment.strip()
    position = 1
    while position < len(stripped):
        if stripped[position] == "'":
            if stripped[position + 1:position + 2] == "'":
                position += 2
                continue
            break
        position += 1
    else:
        raise UnparsableValue(f"unterminated string in {text.strip()!r}")
    value, rest = stripped[:position + 1], stripped[position + 1:]
    _, _, comment = rest.partition("/")
    return value, comment.strip()


def _parse_string(token: str) -> Any:
    text = token[1:-1].replace("''", "'").rstrip(" ")
    if DATETIME_PATTERN.fullmatch(text):
        return dt.datetime.fromisoformat(text)
    if DATE_PATTERN.fullmatch(text):
        return dt.date.fromisoformat(text)
    return text


def classify_value(token: str, keyword: Optional[str] = None) -> Any:
    """
    Decide the type of a value token by its character composition and
    convert it. Raises UnparsableValue rather than guessing.
    """
    token = token.strip()
    if token == "":
        return None
    if token.startswith("'") and token.endswith("'") and len(token) > 1:
        try:
            return _parse_string(token)
        except ValueError:
            # looks like a date but isn't one
            return token[1:-1].replace("''", "'").rstrip(" ")
    if token in ("T", "F"):
        return token == "T"
    if INT_PATTERN.fullmatch(token):
        return int(token)
    if FLOAT_PATTERN.fullmatch(token):
        return float(token.replace("D", "E").replace("d", "e"))
    if DIMENSION_PATTERN.fullmatch(token):
        return tuple(int(n) for n in token.strip("()").split(","))
    if (match := COMPLEX_PATTERN.fullmatch(token)) is not None:
        real, imag = match.group("real"), match.group("imag")
        if all(FLOAT_PATTERN.fullmatch(part) for part in (real, imag)):
            return complex(
                float(real.replace("D", "E")), float(imag.replace("D", "E"))
            )
    raise UnparsableValue(
        f"can't determine the type of value {token!r}"
        + (f" of {keyword}" if keyword else ""),
        keyword,
    )


def parse_record(record: str, index: int = 0) -> Card:
    """
    Parse one 80-character record into a Card. Columns 1-8 hold the keyword;
    a value follows only if columns 9-10 are '= ', otherwise the rest of the
    record is commentary text.
    """
    if len(record) != RECORD_LENGTH:
        raise UnparsableValue(
            f"record {index} is {len(record)} characters, not {RECORD_LENGTH}"
        )
    check_printable(record, f"record {index}")
    keyword = record[:8].strip()
    if not KEYWORD_PATTERN.fullmatch(keyword):
        raise IllegalKeyword(
            f"illegal keyword {keyword!r} in record {index}", keyword
        )
    if keyword == "END":
        return Card(keyword, records=(record,), index=index)
    if keyword == "CONTINUE":
        token, comment = split_value_comment(record[8:])
        value = classify_value(token, keyword) if token else None
        return Card(keyword, value, comment, (record,), index)
    if record[8:10] == VALUE_INDICATOR and keyword not in COMMENTARY_KEYWORDS:
        token, comment = split_value_comment(record[10:])
        return Card(
            keyword, classify_value(token, keyword), comment, (record,), index
        )
    return Card(keyword, None, record[8:].rstrip(" "), (record,), index)


def join_continued(card: Card, continuations: Sequence[Card]) -> Card:
    """
    Merge a card with the CONTINUE cards that follow it. A string value
    ending in '&' is continued by the next record's string; comments of every
    record are joined with single spaces.
    """
    if len(continuations) == 0:
        return card
    value, comments = card.value, [card.comment]
    continuing = isinstance(value, str) and value.endswith("&")
    if continuing:
        value = value[:-1]
    for continuation in continuations:
        comments.append(continuation.comment)
        piece = continuation.value
        if not continuing or not isinstance(piece, str):
            continue
        continuing = piece.endswith("&")
        value += piece[:-1] if continuing else piece
    return Card(
        card.keyword,
        value,
        " ".join(c for c in comments if c),
        card.records + tuple(c.record for c in continuations),
        card.index,
    )


def format_keyword(keyword: str) -> str:
    """upper-case, validate and pad a keyword to 8 characters."""
    normalized = keyword.strip().upper()
    if not KEYWORD_PATTERN.fullmatch(normalized):
        raise IllegalKeyword(
            f"keyword {keyword!r} is longer than 8 characters or contains "
            f"characters outside [A-Z0-9_-]",
            keyword,
        )
    return normalized.ljust(8)


def _unwrap(value: Any) -> Any:
    if isinstance(value, np.generic):
        return value.item()
    return value


def _format_float(value: float) -> str:
    if not np.isfinite(value):
        raise IllegalValue(f"{value} can't be written to a header")
    return repr(float(value)).upper()


def format_value(value: Any) -> str:
    """
    Render a non-string value right-justified in the 20-character value
    field (booleans as T/F).
    """
    value = _unwrap(value)
    if isinstance(value, bool):
        text = "T" if value else "F"
    elif isinstance(value, int):
        text = str(value)
    elif isinstance(value, float):
        text = _format_float(value)
    elif isinstance(value, complex):
        text = (
            f"({_format_float(value.real)}, {_format_float(value.imag)})"
        )
    elif isinstance(value, tuple) and all(
        isinstance(n, (int, np.integer)) for n in value
    ):
        text = f"({','.join(str(int(n)) for n in value)})"
    else:
        raise IllegalValue(
            f"can't write a {type(value).__name__} value to a header"
        )
    return text.rjust(VALUE_WIDTH)


def _string_text(value: Any) -> Optional[str]:
    if isinstance(value, dt.datetime):
        return value.isoformat()
    if isinstance(value, dt.date):
        return value.isoformat()
    if isinstance(value, (str, np.str_)):
        return str(value)
    return None


def _string_chunks(escaped: str, size: int = STRING_CHUNK) -> list[str]:
    """split an escaped string without separating a doubled quote."""
    chunks = []
    while escaped:
        piece = escaped[:size]
        trailing = len(piece) - len(piece.rstrip("'"))
        if trailing % 2 == 1 and len(piece) < len(escaped):
            piece = piece[:-1]
        chunks.append(piece)
        escaped = escaped[len(piece):]
    return chunks


def _string_records(
    prefix: str, escaped: str, continue_last: bool
) -> list[str]:
    """
    records holding a quoted string value. `continue_last` forces a '&' on
    the final piece so that comment continuation records can follow.
    """
    if len(escaped) <= STRING_CHUNK + 1 and not continue_last:
        return [f"{prefix}{VALUE_INDICATOR}'{escaped.ljust(8)}'".ljust(30)]
    chunks = _string_chunks(escaped) or [""]
    if escaped.endswith("&") and not continue_last:
        # a final empty piece keeps the trailing '&' part of the value
        chunks.append("")
    records = []
    for position, chunk in enumerate(chunks):
        head = prefix + VALUE_INDICATOR if position == 0 else "CONTINUE  "
        last = position == len(chunks) - 1
        marker = "" if last and not continue_last else "&"
        records.append(f"{head}'{chunk}{marker}'")
    return records


def _wrap_comment(
    comment: str, first_width: int
) -> tuple[str, list[str]]:
    """
    wrap `comment` so that its first line fits `first_width` characters and
    the rest fit CONTINUE records.
    """
    if first_width < MIN_INLINE_COMMENT:
        head, rest = "", comment
    else:
        head = textwrap.wrap(
            comment, first_width, break_on_hyphens=False
        )[0]
        rest = comment[len(head):].strip(" ")
    return head, textwrap.wrap(
        rest, CONTINUED_COMMENT_WIDTH, break_on_hyphens=False
    )


def _commentary_records(keyword: str, text: str) -> list[str]:
    if len(text) <= COMMENTARY_WIDTH:
        return [keyword + text]
    return [
        keyword + "".join(line)
        for line in chunked(text, COMMENTARY_WIDTH)
    ]


def format_card(
    keyword: str, value: Any = None, comment: Optional[str] = ""
) -> list[str]:
    """
    Format a (keyword, value, comment) triple into one or more 80-character
    records. Long string values continue over CONTINUE records; a comment
    that doesn't fit is wrapped onto "CONTINUE  '&' / ..." records, starting
    on the last value record when it has room.
    """
    prefix = format_keyword(keyword)
    name = prefix.strip()
    comment = "" if comment is None else comment.strip(" ")
    check_printable(comment, f"comment of {name}")
    if name == "END":
        return ["END".ljust(RECORD_LENGTH)]
    if name in COMMENTARY_KEYWORDS:
        text = comment if value is None else str(_unwrap(value))
        check_printable(text, f"text of {name or 'blank card'}")
        records = _commentary_records(prefix, text)
        return [record.ljust(RECORD_LENGTH) for record in records]
    if name == "CONTINUE":
        raise IllegalKeyword("CONTINUE records are written implicitly", name)
    if (text := _string_text(value)) is not None:
        check_printable(text, f"value of {name}")
        escaped = text.replace("'", "''")
        records = _string_records(prefix, escaped, False)
        if comment and len(records[-1]) + 3 + len(comment) > RECORD_LENGTH:
            records = _string_records(prefix, escaped, True)
    elif value is None:
        records = [f"{prefix}{VALUE_INDICATOR}".ljust(30)]
    else:
        records = [f"{prefix}{VALUE_INDICATOR}{format_value(value)}"]
    if comment:
        records = _append_comment(records, comment)
    for record in records:
        if len(record) > RECORD_LENGTH:
            raise IllegalValue(
                f"value of {name} doesn't fit in a record", name
            )
    return [record.ljust(RECORD_LENGTH) for record in records]


def _append_comment(records: list[str], comment: str) -> list[str]:
    """
    attach a comment to the last value record, spilling whatever doesn't fit
    onto CONTINUE records; the final one carries an empty string.
    """
    *body, last = records
    room = RECORD_LENGTH - len(last) - 3
    if len(comment) <= room:
        return body + [f"{last} / {comment}"]
    head, lines = _wrap_comment(comment, room)
    if head:
        last = f"{last} / {head}"
    continued = [
        f"CONTINUE  '&' / {line}" for line in lines[:-1]
    ] + [f"CONTINUE  '' / {lines[-1]}"]
    return body + [last] + continued
