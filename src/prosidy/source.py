"""Source positions and character classification helpers."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Position:
    """Source position, 1-based line and column, 0-based character offset."""

    line: int
    column: int
    offset: int


@dataclass(frozen=True, slots=True)
class Span:
    """Source range from start to end position."""

    start: Position
    end: Position


# Characters that may never appear in a key
KEY_RESERVED = frozenset('\\#{}[]:=",')

# Additionally forbidden as the first character of a key
_KEY_BAD_START = frozenset("123456789-")

# Characters introduced by a backslash, mapped to what they decode to
ESCAPES: dict[str, str] = {"\\": "\\", "n": "\n", "#": "#", "{": "{", "}": "}"}

HSPACE = " \t"


def is_key_char(ch: str) -> bool:
    """Return True if ch may appear in a key."""
    return bool(ch) and ch not in KEY_RESERVED and not ch.isspace()


def is_key_start(ch: str) -> bool:
    """Return True if ch may begin a key."""
    return is_key_char(ch) and ch not in _KEY_BAD_START


def is_valid_key(key: str) -> bool:
    """Return True if the whole string satisfies the key grammar."""
    return bool(key) and is_key_start(key[0]) and all(is_key_char(ch) for ch in key[1:])


def is_blank(line: str) -> bool:
    """Return True if line contains only spaces, tabs and stray carriage returns."""
    return all(ch in HSPACE or ch == "\r" for ch in line)
