"""Prosidy markup language parser."""

from __future__ import annotations

__version__ = "0.1.0"


def compile(source: str, filename: str = "input.pro", indent: int | None = 2) -> str:
    """Parse Prosidy source and return its AST as JSON."""
    from prosidy.codec import to_json
    from prosidy.parser import parse

    doc = parse(source, filename)
    return to_json(doc, indent=indent)
