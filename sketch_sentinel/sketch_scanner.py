"""
Lexical helpers shared by the pin tracker, memory estimator and rules.

Everything here works on comment-stripped text and plain offsets.  Scope is
approximated by counting braces: an offset is at global scope when the number
of ``{`` before it does not exceed the number of ``}``.  Braces inside string
literals or across asymmetric ``#ifdef`` branches can fool this; it is a known
limitation of brace counting, not something the helpers try to guess around.
"""

import re
from typing import Iterator, List, NamedTuple, Optional, Pattern, Tuple, Union

from .comment_stripper import COMMENT, iter_spans

_CONTROL_KEYWORDS = frozenset({
    "if", "while", "for", "switch", "catch", "return", "sizeof", "else", "do",
})

# Top-level function definition: ``<type> name(params) {``
_FUNC_DEF_RE = re.compile(
    r"(?<![\w.])([A-Za-z_][\w:<>]*(?:[ \t]+[A-Za-z_][\w:<>]*)*[\s*&]+)"
    r"([A-Za-z_]\w*)\s*\(([^(){};]*)\)\s*(?:const\s*)?\{"
)

# Used for the stack-depth estimate; only the common Arduino return types
FUNCTION_COUNT_RE = re.compile(
    r"\b(?:void|int|float|char|bool|long|short|byte)\s+\w+\s*\([^)]*\)\s*{"
)

_VECTOR_ISR_RE = re.compile(r"\b(ISR|SIGNAL)\s*\(\s*(\w+)[^)]*\)\s*\{")

_ATTACH_RE = re.compile(
    r"\battachInterrupt\s*\(\s*"
    r"(?:digitalPinToInterrupt\s*\([^)]*\)|[^,()]+)\s*,\s*&?\s*(\w+)\s*,"
)


class FunctionDef(NamedTuple):
    name: str
    return_type: str
    params: str
    start: int          # offset of the return type
    name_start: int
    body_start: int     # offset just after '{'
    body_end: int       # offset of the matching '}' (or len(text))


class IsrBody(NamedTuple):
    name: str
    start: int          # offset of the handler header
    body_start: int
    body_end: int


class Call(NamedTuple):
    name: str
    start: int              # offset of the callee name
    args: List[str]         # raw, stripped argument texts
    arg_offsets: List[int]  # offset of each argument's first character
    end: int                # offset just after ')'


# ────────────────────────────────────────────────────────────────
#  Scope
# ────────────────────────────────────────────────────────────────

def brace_depth_at(text: str, offset: int) -> int:
    return text.count("{", 0, offset) - text.count("}", 0, offset)


def is_global_scope(text: str, offset: int) -> bool:
    return brace_depth_at(text, offset) <= 0


def mask_literals(text: str) -> str:
    """Blank the inside of string and char literals; quotes and length are kept.

    Lets presence checks such as ``Serial.begin(`` ignore text that only
    appears inside a message string.
    """
    parts = []
    last = 0
    for span in iter_spans(text):
        if span.kind == COMMENT:
            continue
        inner_start = span.start + 1
        closed = span.end - span.start >= 2 and text[span.end - 1] == text[span.start]
        inner_end = span.end - 1 if closed else span.end
        if inner_end <= inner_start:
            continue
        parts.append(text[last:inner_start])
        parts.append(re.sub(r"[^\r\n]", " ", text[inner_start:inner_end]))
        last = inner_end
    parts.append(text[last:])
    return "".join(parts)


def find_matching_brace(text: str, open_index: int) -> int:
    """Index of the ``}`` closing the ``{`` at *open_index* (len(text) if unbalanced)."""
    depth = 0
    for i in range(open_index, len(text)):
        c = text[i]
        if c == "{":
            depth += 1
        elif c == "}":
            depth -= 1
            if depth == 0:
                return i
    return len(text)


def find_matching_paren(text: str, open_index: int) -> int:
    depth = 0
    for i in range(open_index, len(text)):
        c = text[i]
        if c == "(":
            depth += 1
        elif c == ")":
            depth -= 1
            if depth == 0:
                return i
    return len(text)


# ────────────────────────────────────────────────────────────────
#  Functions and interrupt handlers
# ────────────────────────────────────────────────────────────────

def iter_functions(text: str) -> Iterator[FunctionDef]:
    """Yield top-level function definitions in text order."""
    for m in _FUNC_DEF_RE.finditer(text):
        name = m.group(2)
        ret = " ".join(m.group(1).split())
        if name in _CONTROL_KEYWORDS or ret.split()[-1].strip("*&") in _CONTROL_KEYWORDS:
            continue
        if not is_global_scope(text, m.start()):
            continue
        open_brace = m.end() - 1
        yield FunctionDef(
            name=name,
            return_type=ret,
            params=m.group(3).strip(),
            start=m.start(),
            name_start=m.start(2),
            body_start=open_brace + 1,
            body_end=find_matching_brace(text, open_brace),
        )


def count_functions(text: str) -> int:
    return len(FUNCTION_COUNT_RE.findall(text))


def find_function(text: str, name: str) -> Optional[Tuple[int, int, int]]:
    """Locate the definition of *name*: (header_start, body_start, body_end)."""
    pattern = re.compile(rf"\b{re.escape(name)}\s*\([^(){{}};]*\)\s*\{{")
    for m in pattern.finditer(text):
        if not is_global_scope(text, m.start()):
            continue
        open_brace = m.end() - 1
        return m.start(), open_brace + 1, find_matching_brace(text, open_brace)
    return None


def iter_isr_bodies(text: str) -> Iterator[IsrBody]:
    """Yield interrupt handler bodies.

    Covers vector handlers (``ISR(TIMER1_COMPA_vect) { ... }``, ``SIGNAL``)
    and functions registered through ``attachInterrupt(pin, handler, MODE)``.
    Each handler is yielded once.
    """
    seen = set()
    for m in _VECTOR_ISR_RE.finditer(text):
        open_brace = m.end() - 1
        name = f"{m.group(1)}({m.group(2)})"
        seen.add(name)
        yield IsrBody(name, m.start(), open_brace + 1, find_matching_brace(text, open_brace))

    for m in _ATTACH_RE.finditer(text):
        handler = m.group(1)
        if handler in seen:
            continue
        seen.add(handler)
        found = find_function(text, handler)
        if found is None:
            continue
        header, body_start, body_end = found
        yield IsrBody(handler, header, body_start, body_end)


# ────────────────────────────────────────────────────────────────
#  Calls
# ────────────────────────────────────────────────────────────────

def split_args(text: str, open_paren: int) -> Tuple[List[str], List[int], int]:
    """Split the argument list starting at *open_paren* on top-level commas.

    Returns (args, arg_offsets, end) where *end* is just past the closing
    parenthesis (or len(text) when unbalanced).
    """
    args: List[str] = []
    offsets: List[int] = []
    depth = 0
    seg_start = open_paren + 1
    i = open_paren
    n = len(text)
    while i < n:
        c = text[i]
        if c in "([{":
            depth += 1
        elif c in ")]}":
            depth -= 1
            if depth == 0:
                break
        elif c == "," and depth == 1:
            _append_arg(text, seg_start, i, args, offsets)
            seg_start = i + 1
        elif c == '"' or c == "'":
            i = _skip_literal(text, i)
            continue
        i += 1
    _append_arg(text, seg_start, min(i, n), args, offsets)
    if len(args) == 1 and not args[0]:
        args, offsets = [], []
    return args, offsets, min(i + 1, n)


def _append_arg(text, start, end, args, offsets):
    raw = text[start:end]
    stripped = raw.strip()
    args.append(stripped)
    offsets.append(start + (len(raw) - len(raw.lstrip())) if stripped else start)


def _skip_literal(text: str, i: int) -> int:
    quote = text[i]
    i += 1
    while i < len(text):
        c = text[i]
        if c == "\\":
            i += 2
            continue
        i += 1
        if c == quote:
            break
    return i


def iter_calls(text: str, callee: Union[str, Pattern]) -> Iterator[Call]:
    """Yield calls to *callee* (a regex fragment or compiled pattern ending before '(')."""
    if isinstance(callee, str):
        pattern = re.compile(rf"(?<![\w.]){callee}\s*\(")
    else:
        pattern = callee
    for m in pattern.finditer(text):
        open_paren = m.end() - 1
        args, offsets, end = split_args(text, open_paren)
        name = text[m.start():open_paren].rstrip()
        yield Call(name, m.start(), args, offsets, end)
