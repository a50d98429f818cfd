"""Shared test fixtures and helpers."""

from __future__ import annotations

import pytest

from prosidy.ast import Block, Document, Inline, Paragraph
from prosidy.errors import ErrorKind, ParseError
from prosidy.parser import parse


@pytest.fixture
def parse_source():
    """Return a helper that parses complete source and returns a Document."""

    def _parse(source: str, filename: str = "test.pro") -> Document:
        return parse(source, filename)

    return _parse


@pytest.fixture
def parse_body():
    """Return a helper that parses source after an empty header and returns the body."""

    def _parse(source: str) -> tuple[Block, ...]:
        return parse("---\n" + source, "test.pro").body

    return _parse


def para(*inlines: Inline) -> Paragraph:
    """Build a Paragraph from inline nodes."""
    return Paragraph(inlines)


def parse_error(source: str) -> ParseError:
    """Parse source that must fail and return the raised ParseError."""
    with pytest.raises(ParseError) as exc_info:
        parse(source, "test.pro")
    return exc_info.value


def assert_error(
    source: str,
    kind: ErrorKind,
    line: int | None = None,
    column: int | None = None,
) -> ParseError:
    """Assert that parsing source fails with the given kind (and start position)."""
    err = parse_error(source)
    assert err.kind == kind, f"Expected {kind}, got {err.kind}: {err.message}"
    if line is not None:
        assert err.position.line == line, f"Expected line {line}, got {err.position.line}"
    if column is not None:
        assert err.position.column == column, (
            f"Expected column {column}, got {err.position.column}"
        )
    return err
