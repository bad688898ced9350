"""
Comment Stripper

Comment- and literal-aware lexical pre-pass shared by every scanner in the
analyzer.  A single left-to-right pass classifies the text into spans:

  • ``//`` line comments   (up to, not including, the newline)
  • ``/* */`` block comments (delimiters included, may span lines)
  • ``"..."`` string literals and ``'.'`` char literals

Escape sequences inside literals consume two characters, so an escaped quote
never closes a literal and a ``//`` inside a string never opens a comment.
Anything left open at end-of-text (comment or literal) runs to the end.

``strip()`` blanks comment characters with spaces while keeping every
newline, so offsets, line numbers and columns computed on the stripped text
are identical to those of the original.
"""

import re
from typing import Iterator, NamedTuple

COMMENT = "comment"
STRING = "string"
CHAR = "char"

# Only these characters can open a span; everything else is skipped in bulk.
_SPAN_START = re.compile(r"[\"'/]")
_NOT_NEWLINE = re.compile(r"[^\r\n]")


class Span(NamedTuple):
    kind: str
    start: int
    end: int        # exclusive


def iter_spans(code: str) -> Iterator[Span]:
    """Yield comment and literal spans of *code* in text order."""
    n = len(code)
    i = 0
    while i < n:
        m = _SPAN_START.search(code, i)
        if m is None:
            return
        i = m.start()
        ch = code[i]

        if ch == '"' or ch == "'":
            start = i
            i += 1
            while i < n:
                c = code[i]
                if c == "\\":
                    i += 2
                    continue
                i += 1
                if c == ch:
                    break
            yield Span(STRING if ch == '"' else CHAR, start, min(i, n))
            continue

        nxt = code[i + 1] if i + 1 < n else ""
        if nxt == "*":
            end = code.find("*/", i + 2)
            stop = n if end == -1 else end + 2
            yield Span(COMMENT, i, stop)
            i = stop
        elif nxt == "/":
            end = code.find("\n", i + 2)
            stop = n if end == -1 else end
            yield Span(COMMENT, i, stop)
            i = stop
        else:
            i += 1


def _span_kind_at(code: str, offset: int):
    for span in iter_spans(code):
        if span.start > offset:
            return None
        if span.start <= offset < span.end:
            return span.kind
    return None


def is_in_comment(code: str, offset: int) -> bool:
    """True if *offset* falls inside a comment (delimiters included)."""
    return _span_kind_at(code, offset) == COMMENT


def is_in_literal(code: str, offset: int) -> bool:
    """True if *offset* falls inside a string or char literal."""
    return _span_kind_at(code, offset) in (STRING, CHAR)


def strip(code: str) -> str:
    """Return *code* with comments blanked; length and newlines preserved."""
    parts = []
    last = 0
    for span in iter_spans(code):
        if span.kind != COMMENT:
            continue
        parts.append(code[last:span.start])
        parts.append(_NOT_NEWLINE.sub(" ", code[span.start:span.end]))
        last = span.end
    parts.append(code[last:])
    return "".join(parts)
