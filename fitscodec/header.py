"""
the Header object: ordered cards, keyword lookup, and block-preserving
mutation (add / delete / rename / edit).
"""
from __future__ import annotations
from typing import Any, Iterator, Optional, Sequence, TYPE_CHECKING
import warnings

from cytoolz import countby, identity
from multidict import MultiDict

from fitscodec.datatypes import (
    HDU_TYPES, RECORD_LENGTH, RECORDS_PER_BLOCK, is_mandatory
)
from fitscodec.dictionary import describe_keyword
from fitscodec.errors import (
    DuplicateKeyWarning,
    IllegalKeyword,
    KeywordInUse,
    KeywordNotFound,
    MandatoryKeywordProtected,
    NonstandardHeaderWarning,
    UnsupportedDataType,
)
from fitscodec.parseheader.cards import (
    Card, format_keyword, join_continued, parse_record
)

if TYPE_CHECKING:
    from fitscodec.fitstypes import HDUType

BLANK_RECORD = " " * RECORD_LENGTH
"""one record of header padding"""


def _blocks_for(nrecords: int) -> int:
    """smallest multiple of 36 records that holds `nrecords`"""
    return max(-(-nrecords // RECORDS_PER_BLOCK), 1) * RECORDS_PER_BLOCK


def _normalize(keyword: str) -> str:
    return keyword.strip().upper()


def group_continuations(cards: Sequence[Card]) -> list[Card]:
    """
    Attach every CONTINUE card to the card before it, producing one logical
    card per keyword.
    """
    logical, pending = [], []
    for card in cards:
        if card.keyword == "CONTINUE" and (logical or pending):
            pending.append(card)
            continue
        if card.keyword == "CONTINUE":
            warnings.warn(
                "CONTINUE record with nothing to continue",
                NonstandardHeaderWarning,
            )
        if logical:
            logical[-1] = join_continued(logical[-1], pending)
        pending = []
        logical.append(card)
    if logical:
        logical[-1] = join_continued(logical[-1], pending)
    return logical


def hdutype_of(cards: Sequence[Card]) -> HDUType:
    """PRIMARY for SIMPLE headers, otherwise the XTENSION value"""
    if len(cards) == 0:
        raise UnsupportedDataType("empty header has no HDU type")
    first = cards[0]
    if first.keyword == "SIMPLE":
        return "PRIMARY"
    if first.keyword == "XTENSION" and isinstance(first.value, str):
        xtension = first.value.strip().upper()
        if xtension in HDU_TYPES[1:]:
            return xtension
        raise UnsupportedDataType(f"unsupported extension type {xtension}")
    raise UnsupportedDataType(
        f"header opens with {first.keyword!r}, not SIMPLE or XTENSION"
    )


class Header:
    """
    Ordered header cards terminated by END. `keymap` maps each keyword to the
    position of its first card in `cards`; `card_count` is the number of
    80-character records the header occupies, blank padding included, and is
    always a multiple of 36.
    """

    def __init__(
        self,
        cards: Sequence[Card],
        hdutype: Optional[HDUType] = None,
        card_count: Optional[int] = None,
    ):
        cards = [c for c in cards if c.keyword != "END"]
        self.cards = cards + [Card.from_value("END")]
        self.hdutype = hdutype_of(self.cards) if hdutype is None else hdutype
        self.card_count = _blocks_for(self.used)
        if card_count is not None:
            self.card_count = max(self.card_count, _blocks_for(card_count))
        self.refresh()

    @classmethod
    def from_records(
        cls,
        records: Sequence[str],
        hdutype: Optional[HDUType] = None,
        card_count: Optional[int] = None,
    ) -> Header:
        """
        Parse raw records into a Header, stopping at END. Blank records
        after END are padding and are not kept as cards.
        """
        cards = []
        for index, record in enumerate(records, start=1):
            card = parse_record(record, index)
            if card.keyword == "END":
                break
            cards.append(card)
        cards = group_continuations(cards)
        # blank records directly before END are padding too
        while cards and cards[-1].is_blank:
            cards.pop()
        header = cls(cards, hdutype, card_count)
        for key, count in header.fieldcounts.items():
            if count > 1 and key not in ("COMMENT", "HISTORY", ""):
                warnings.warn(
                    f"{key} appears {count} times in this header",
                    DuplicateKeyWarning,
                )
        return header

    @classmethod
    def from_cards(
        cls, cards: Sequence[tuple], hdutype: Optional[HDUType] = None
    ) -> Header:
        """
        Format a Header from (keyword, value) or (keyword, value, comment)
        tuples. Reserved keywords given without a comment get their
        dictionary description.
        """
        formatted = []
        for keyword, value, *comment in cards:
            if comment:
                text = comment[0]
            else:
                text = describe_keyword(keyword) or ""
            formatted.append(Card.from_value(keyword, value, text))
        return cls(formatted, hdutype)

    @property
    def used(self) -> int:
        """records occupied by cards, END included"""
        return sum(len(card) for card in self.cards)

    def refresh(self):
        """renumber records and recompute the keyword map."""
        position = 1
        keymap = {}
        for index, card in enumerate(self.cards):
            card.index = position
            position += len(card)
            keymap.setdefault(card.keyword, index)
        self.keymap = keymap
        self.fieldcounts = countby(identity, [c.keyword for c in self.cards])
        while self.used > self.card_count:
            self.card_count += RECORDS_PER_BLOCK

    # read access

    def card(self, keyword: str) -> Card:
        """the first card with this keyword"""
        keyword = _normalize(keyword)
        if keyword not in self.keymap:
            raise KeywordNotFound(f"{keyword} is not in this header", keyword)
        return self.cards[self.keymap[keyword]]

    def __getitem__(self, keyword: str) -> Any:
        """
        value of the first card with this keyword. COMMENT and HISTORY
        return the text of every such card.
        """
        keyword = _normalize(keyword)
        if keyword in ("COMMENT", "HISTORY"):
            return [c.comment for c in self.cards if c.keyword == keyword]
        card = self.card(keyword)
        if self.fieldcounts.get(keyword, 0) > 1:
            warnings.warn(
                f"More than one value for {keyword} exists in the header. "
                f"Returning only the first.",
                DuplicateKeyWarning,
            )
        return card.value

    def get(self, keyword: str, default: Any = None) -> Any:
        if _normalize(keyword) not in self.keymap:
            return default
        return self[keyword]

    def comment(self, keyword: str) -> str:
        return self.card(keyword).comment

    def get_fuzzy(self, text: str) -> Any:
        """Like `get()`, but fuzzy-matches keywords."""
        import Levenshtein as lev

        levratio = {
            key: lev.ratio(key, text.upper())
            for key in self.keymap.keys()
            if key not in ("", "END")
        }
        if levratio == {}:
            return None
        peak = max(levratio.values())
        for k, v in filter(lambda kv: kv[1] == peak, levratio.items()):
            return self.get(k)

    def describe(self, keyword: str) -> Optional[str]:
        """dictionary description of a reserved keyword"""
        return describe_keyword(keyword)

    def __contains__(self, keyword: str) -> bool:
        return _normalize(keyword) in self.keymap

    def keys(self) -> list[str]:
        return [c.keyword for c in self.cards if c.keyword != "END"]

    def __iter__(self) -> Iterator[Card]:
        return iter(self.cards)

    def __len__(self) -> int:
        return self.card_count

    def records(self) -> list[str]:
        """every record of the header, blank padding included"""
        records = [record for card in self.cards for record in card.records]
        return records + [BLANK_RECORD] * (self.card_count - len(records))

    def to_bytes(self) -> bytes:
        return "".join(self.records()).encode("ascii")

    def to_multidict(self) -> MultiDict:
        """keyword -> value (text for commentary cards), in header order"""
        return MultiDict(
            (c.keyword, c.comment if c.is_commentary else c.value)
            for c in self.cards
            if c.keyword != "END"
        )

    def naxes(self) -> tuple[int, ...]:
        """(NAXIS1, ..., NAXISn)"""
        return tuple(
            self.get(f"NAXIS{n}", 0)
            for n in range(1, self.get("NAXIS", 0) + 1)
        )

    def __str__(self):
        return "\n".join(
            record.rstrip()
            for card in self.cards
            for record in card.records
        )

    def __repr__(self):
        return (
            f"Header({self.hdutype}, {len(self.cards) - 1} cards, "
            f"{self.card_count} records)"
        )

    # mutation

    def _protect(self, keyword: str, action: str):
        if is_mandatory(keyword, self.hdutype):
            description = describe_keyword(keyword)
            raise MandatoryKeywordProtected(
                f"can't {action} {keyword}"
                + (f" ({description})" if description else "")
                + f": it is mandatory for {self.hdutype} HDUs",
                keyword,
            )

    def add_key(
        self, keyword: str, value: Any = None, comment: Optional[str] = ""
    ) -> Header:
        """
        Insert a new card before END. The header grows by whole 36-record
        blocks, and only when the new card doesn't fit in the padding.
        """
        card = Card.from_value(keyword, value, comment)
        if card.keyword in ("END", "CONTINUE"):
            raise IllegalKeyword(f"can't add a {card.keyword} card", keyword)
        if not card.is_commentary and card.keyword in self.keymap:
            raise KeywordInUse(
                f"{card.keyword} is already in this header", card.keyword
            )
        self.cards.insert(len(self.cards) - 1, card)
        self.refresh()
        return self

    def delete_key(self, keyword: str) -> Header:
        """
        Remove the first card with this keyword, along with its CONTINUE
        records. Later cards shift up; the header never shrinks.
        """
        keyword = _normalize(keyword)
        self._protect(keyword, "delete")
        card = self.card(keyword)
        self.cards.remove(card)
        self.refresh()
        return self

    def rename_key(self, keyword: str, new_keyword: str) -> Header:
        """
        Overwrite the keyword columns (1-8) of a card, keeping its value
        and comment bytes.
        """
        keyword, new_keyword = _normalize(keyword), _normalize(new_keyword)
        prefix = format_keyword(new_keyword)
        if new_keyword in ("END", "CONTINUE"):
            raise IllegalKeyword(f"can't rename to {new_keyword}", new_keyword)
        card = self.card(keyword)
        self._protect(keyword, "rename")
        if new_keyword in self.keymap:
            raise KeywordInUse(
                f"{new_keyword} is already in this header", new_keyword
            )
        self._protect(new_keyword, "rename a card to")
        first, *rest = card.records
        renamed = [parse_record(prefix + first[8:])] + [
            parse_record(record) for record in rest
        ]
        self.cards[self.cards.index(card)] = group_continuations(renamed)[0]
        self.refresh()
        return self

    def edit_key(
        self, keyword: str, value: Any, comment: Optional[str] = None
    ) -> Header:
        """
        Replace the value (and optionally the comment) of an existing card,
        keeping its position. Mandatory cards describe the data and can't be
        edited here.
        """
        keyword = _normalize(keyword)
        card = self.card(keyword)
        self._protect(keyword, "edit")
        if comment is None:
            comment = card.comment
        self.cards[self.cards.index(card)] = Card.from_value(
            keyword, value, comment
        )
        self.refresh()
        return self


def add_key(
    header: Header, keyword: str, value: Any = None, comment: str = ""
) -> Header:
    """Add a card to `header` in place; returns the header."""
    return header.add_key(keyword, value, comment)


def delete_key(header: Header, keyword: str) -> Header:
    """Delete a card from `header` in place; returns the header."""
    return header.delete_key(keyword)


def rename_key(header: Header, keyword: str, new_keyword: str) -> Header:
    """Rename a card of `header` in place; returns the header."""
    return header.rename_key(keyword, new_keyword)


def edit_key(
    header: Header, keyword: str, value: Any, comment: Optional[str] = None
) -> Header:
    """Replace the value of a card of `header` in place; returns the header."""
    return header.edit_key(keyword, value, comment)
