"""Lexical helpers for administrator-supplied SQL statement templates.

Nothing here parses SQL. The scanner only finds quoted spans so that
semicolons and block keywords inside string literals or quoted identifiers
are never mistaken for statement structure.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Sequence

from .errors import MalformedInputError

QUOTE_CHARS = ("'", '"')
STATEMENT_TERMINATOR = ";"

_COMMENT = re.compile(r"--[^\n]*|/\*.*?\*/", re.DOTALL)


@dataclass(frozen=True, slots=True)
class QuotedSpan:
    """A quoted substring located at ``text[start:end]``, quotes included."""

    start: int
    end: int
    text: str


@dataclass(frozen=True, slots=True)
class BlockDelimiter:
    """A paired start/end marker whose body may legitimately hold semicolons."""

    name: str
    pattern: re.Pattern[str]

    @classmethod
    def compile(cls, name: str, pattern: str, flags: int = 0) -> BlockDelimiter:
        return cls(name=name, pattern=re.compile(pattern, flags | re.DOTALL))

    def matches(self, text: str) -> bool:
        return self.pattern.search(text) is not None


DOLLAR_QUOTED = BlockDelimiter.compile(
    "dollar_quoted",
    r"\$(?P<tag>(?:[A-Za-z_][A-Za-z0-9_]*)?)\$.*?\$(?P=tag)\$",
)
BEGIN_END = BlockDelimiter.compile("begin_end", r"\bBEGIN\b.*?\bEND\b", re.IGNORECASE)

DEFAULT_BLOCK_DELIMITERS: tuple[BlockDelimiter, ...] = (DOLLAR_QUOTED, BEGIN_END)


def _is_escaped(text: str, index: int) -> bool:
    backslashes = 0
    cursor = index - 1
    while cursor >= 0 and text[cursor] == "\\":
        backslashes += 1
        cursor -= 1
    return backslashes % 2 == 1


def scan(text: str) -> tuple[QuotedSpan, ...]:
    """Return every quoted span in ``text``, left to right.

    A span opens at an unescaped ``'`` or ``"`` and closes at the next
    occurrence of the same character. A quote that never closes raises
    :class:`MalformedInputError`.
    """

    spans: list[QuotedSpan] = []
    index = 0
    length = len(text)
    while index < length:
        char = text[index]
        if char in QUOTE_CHARS and not _is_escaped(text, index):
            close = text.find(char, index + 1)
            if close == -1:
                raise MalformedInputError(f"Unterminated {char} quote starting at offset {index}")
            spans.append(QuotedSpan(start=index, end=close + 1, text=text[index : close + 1]))
            index = close + 1
            continue
        index += 1
    return tuple(spans)


def strip_quoted(text: str, spans: Sequence[QuotedSpan] | None = None) -> str:
    """Blank out quoted spans, keeping a space so neighbouring words stay apart."""

    if spans is None:
        spans = scan(text)
    pieces: list[str] = []
    cursor = 0
    for span in spans:
        pieces.append(text[cursor : span.start])
        pieces.append(" ")
        cursor = span.end
    pieces.append(text[cursor:])
    return "".join(pieces)


def classify(text: str, delimiters: Iterable[BlockDelimiter] = DEFAULT_BLOCK_DELIMITERS) -> bool:
    """Return True when ``text`` holds a block that must run as one unit.

    Quoted spans and SQL comments are blanked before the delimiters are
    matched.
    """

    remainder = _COMMENT.sub(" ", strip_quoted(text))
    return any(delimiter.matches(remainder) for delimiter in delimiters)


def split_statements(text: str, spans: Sequence[QuotedSpan] | None = None) -> tuple[str, ...]:
    """Split on semicolons outside quoted spans; trim and drop empty units."""

    if spans is None:
        spans = scan(text)
    units: list[str] = []
    start = 0
    cursor = 0
    span_iter = iter(spans)
    next_span = next(span_iter, None)
    while cursor < len(text):
        if next_span is not None and cursor == next_span.start:
            cursor = next_span.end
            next_span = next(span_iter, None)
            continue
        if text[cursor] == STATEMENT_TERMINATOR:
            units.append(text[start:cursor])
            start = cursor + 1
        cursor += 1
    units.append(text[start:])
    return tuple(unit.strip() for unit in units if unit.strip())


__all__ = [
    "BEGIN_END",
    "BlockDelimiter",
    "DEFAULT_BLOCK_DELIMITERS",
    "DOLLAR_QUOTED",
    "QuotedSpan",
    "classify",
    "scan",
    "split_statements",
    "strip_quoted",
]
