"""
Allow-list pattern matching

Allow-list entries are either literal strings or regular expressions marked
with the ``regex:`` prefix. Entries are compiled once when configuration is
loaded; matching a value never raises.
"""
from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
import logging
import re


logger = logging.getLogger(__name__)

REGEX_PREFIX = "regex:"

_PCRE_FLAGS = {
    "i": re.IGNORECASE,
    "m": re.MULTILINE,
    "s": re.DOTALL,
    "x": re.VERBOSE,
    "u": 0,
}
_DELIMITED = re.compile(r"^([^\w\s\\])(.*)\1([a-zA-Z]*)$", re.DOTALL)
_BRACKET_PAIRS = {"(": ")", "{": "}", "[": "]", "<": ">"}


@dataclass(frozen=True, slots=True)
class LiteralEntry:
    """Exact string match."""
    value: str

    def matches(self, candidate: str) -> bool:
        return candidate == self.value


@dataclass(frozen=True, slots=True)
class RegexEntry:
    """Regular expression match (search semantics). ``pattern`` is None when invalid."""
    source: str
    pattern: re.Pattern[str] | None

    def matches(self, candidate: str) -> bool:
        if self.pattern is None:
            return False
        return self.pattern.search(candidate) is not None


AllowEntry = LiteralEntry | RegexEntry


def _split_delimiters(expression: str) -> tuple[str, int]:
    """Strip PCRE-style delimiters (``/abc/i``) and translate trailing flags."""
    if expression[:1] in _BRACKET_PAIRS:
        closing = _BRACKET_PAIRS[expression[0]]
        end = expression.rfind(closing)
        if end > 0:
            body, modifiers = expression[1:end], expression[end + 1:]
            if modifiers.isalpha() or not modifiers:
                return body, _translate_flags(modifiers)
        return expression, 0

    match = _DELIMITED.match(expression)
    if not match:
        return expression, 0
    return match.group(2), _translate_flags(match.group(3))


def _translate_flags(modifiers: str) -> int:
    flags = 0
    for modifier in modifiers:
        if modifier not in _PCRE_FLAGS:
            raise re.error(f"unsupported modifier '{modifier}'")
        flags |= _PCRE_FLAGS[modifier]
    return flags


def compile_entry(raw: str) -> AllowEntry:
    """
    Compile a single allow-list entry.

    Args:
        raw: Entry text, already trimmed

    Returns:
        LiteralEntry, or RegexEntry for ``regex:`` entries. Invalid expressions
        produce a RegexEntry that never matches.
    """
    if not raw.startswith(REGEX_PREFIX):
        return LiteralEntry(raw)

    expression = raw[len(REGEX_PREFIX):]
    try:
        body, flags = _split_delimiters(expression)
        return RegexEntry(source=expression, pattern=re.compile(body, flags))
    except re.error as exc:
        logger.warning("Ignoring invalid allow-list expression %r: %s", expression, exc)
        return RegexEntry(source=expression, pattern=None)


def compile_allow_list(raw: str | Sequence[str] | None) -> list[AllowEntry]:
    """
    Compile newline separated allow-list text (or a list of entries).

    Every line is trimmed and kept, including blank ones.
    """
    if raw is None:
        return []
    lines = raw.split("\n") if isinstance(raw, str) else list(raw)
    return [compile_entry(line.strip()) for line in lines]


def matches(value: str, allow_list: Sequence[AllowEntry]) -> bool:
    """Return True when any entry matches ``value``; first match wins."""
    return any(entry.matches(value) for entry in allow_list)
