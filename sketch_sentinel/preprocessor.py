"""
Sketch symbol table.

Sketches commonly name their pins through ``#define LED_PIN 13`` or
``const int BUTTON = 2;``.  The pin tracker and the rule engine resolve those
names through the table built here:

  • object-like macros come from running the text through ``pcpp`` so that
    only definitions in active ``#if`` branches survive;
  • integral ``const`` / ``constexpr`` declarations are matched lexically.

Values are kept as their replacement text (e.g. ``"13"``, ``"A0"``,
``"LED_BUILTIN"``); turning them into pin numbers is the resolver's job.
"""

import io
import re
import logging
from collections import OrderedDict
from typing import Dict, Optional

from pcpp import Preprocessor, OutputDirective, Action

logger = logging.getLogger(__name__)

_CACHE_SIZE = 16

_CONST_DECL_RE = re.compile(
    r"\b(?:static\s+)?(?:const|constexpr)\s+"
    r"(?:unsigned\s+|signed\s+)?"
    r"(?:int|byte|char|short|long|uint8_t|int8_t|uint16_t|int16_t|uint32_t|int32_t|size_t|pin_size_t)\s+"
    r"(\w+)\s*=\s*([^;,]+?)\s*;"
)

_INT_LITERAL_RE = re.compile(r"^([+-]?(?:0[xX][0-9a-fA-F]+|0[bB][01]+|\d+))[uUlL]*$")


def parse_int(token: str) -> Optional[int]:
    """Parse a C integer literal (hex, binary, octal, decimal, with U/L suffixes)."""
    s = token.strip()
    while s.startswith("(") and s.endswith(")"):
        s = s[1:-1].strip()
    m = _INT_LITERAL_RE.match(s)
    if not m:
        return None
    digits = m.group(1)
    body = digits.lstrip("+-")
    try:
        if len(body) > 1 and body[0] == "0" and body[1].isdigit():
            value = int(body, 8)
            return -value if digits.startswith("-") else value
        return int(digits, 0)
    except ValueError:
        return None


class _QuietPreprocessor(Preprocessor):
    """A pcpp Preprocessor that keeps missing-include noise out of stderr.

    Sketches include ``<Arduino.h>``, ``<Wire.h>`` and friends which are never
    available here.  Those includes are passed through untouched.  pcpp errors
    and the sketch's own ``#error`` / ``#warning`` lines go to ``logging`` at
    DEBUG level instead of stderr.
    """

    def on_include_not_found(self, is_malformed, is_system_include, curdir, includepath):
        logger.debug("pcpp: include not found: %s (system=%s)", includepath, is_system_include)
        raise OutputDirective(Action.IgnoreAndPassThrough)

    def on_error(self, file, line, msg):
        logger.debug("pcpp: %s:%s: %s", file, line, msg)

    def on_directive_unknown(self, directive, toks, ifpassthru, precedingtoks):
        if directive.value in ("error", "warning"):
            logger.debug("pcpp: %s:%s: #%s %s", directive.source, directive.lineno,
                         directive.value, "".join(tok.value for tok in toks).strip())
            return True
        return None


class SketchPreprocessor:
    """Build name -> replacement-text tables for a sketch.

    Results are cached per text so every scanner in one analysis pass shares
    a single pcpp run.
    """

    def __init__(self):
        self.defines: Dict[str, str] = {}
        self._cache: "OrderedDict[str, Dict[str, str]]" = OrderedDict()

    def add_define(self, name: str, value: str = "1"):
        """Add a predefined macro (e.g. ``ARDUINO=10819``)."""
        self.defines[name] = value
        self._cache.clear()

    def set_target(self, macros: Dict[str, str]) -> None:
        """Replace the predefined macros with a board's toolchain defines."""
        if macros == self.defines:
            return
        self.defines = {}
        self._cache.clear()
        for name, value in macros.items():
            self.add_define(name, value)

    def symbol_table(self, text: str) -> Dict[str, str]:
        """Return object-like macros and integral constants declared in *text*."""
        cached = self._cache.get(text)
        if cached is not None:
            self._cache.move_to_end(text)
            return dict(cached)

        table = self._macro_table(text)
        for m in _CONST_DECL_RE.finditer(text):
            table.setdefault(m.group(1), m.group(2).strip())

        self._cache[text] = table
        if len(self._cache) > _CACHE_SIZE:
            self._cache.popitem(last=False)
        return dict(table)

    def _macro_table(self, text: str) -> Dict[str, str]:
        pp = _QuietPreprocessor()
        for k, v in self.defines.items():
            pp.define(f"{k} {v}")

        try:
            pp.parse(text, source="sketch.ino")
            pp.write(io.StringIO())
        except Exception as e:
            logger.warning("Macro extraction failed: %s", e)
            return {}

        macros: Dict[str, str] = {}
        for name, macro in pp.macros.items():
            if name.startswith("__") or name in self.defines:
                continue
            # Function-like macros cannot name a pin
            if getattr(macro, "arglist", None) is not None:
                continue
            value = getattr(macro, "value", None)
            if isinstance(value, list):
                expansion = "".join(tok.value for tok in value).strip()
            elif value is None:
                expansion = ""
            else:
                expansion = str(value).strip()
            if expansion:
                macros[name] = expansion
        return macros
