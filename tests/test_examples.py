"""Integration test: parse all example .pro files and exercise every output path."""

from __future__ import annotations

from pathlib import Path

import pytest

from prosidy.ast import walk
from prosidy.codec import from_json, to_json
from prosidy.parser import parse
from prosidy.writer import write

EXAMPLES_DIR = Path(__file__).resolve().parent.parent / "examples"


def _find_pro_files() -> list[Path]:
    """Find all .pro files in the examples directory."""
    return sorted(EXAMPLES_DIR.rglob("*.pro"))


@pytest.fixture(params=_find_pro_files(), ids=lambda p: str(p.relative_to(EXAMPLES_DIR)))
def pro_file(request: pytest.FixtureRequest) -> Path:
    return request.param


class TestExampleFiles:
    def test_examples_present(self) -> None:
        assert len(_find_pro_files()) >= 3

    def test_parses_with_title(self, pro_file: Path) -> None:
        doc = parse(pro_file.read_text(encoding="utf-8"), pro_file.name)
        assert doc.get("title")
        assert doc.body

    def test_json_round_trip(self, pro_file: Path) -> None:
        doc = parse(pro_file.read_text(encoding="utf-8"), pro_file.name)
        assert from_json(to_json(doc)) == doc

    def test_writer_round_trip(self, pro_file: Path) -> None:
        doc = parse(pro_file.read_text(encoding="utf-8"), pro_file.name)
        assert parse(write(doc)) == doc

    def test_spans_are_monotonic(self, pro_file: Path) -> None:
        """Node start offsets in document order should be non-decreasing."""
        doc = parse(pro_file.read_text(encoding="utf-8"), pro_file.name)
        prev_offset = -1
        for node in walk(doc):
            assert node.span is not None
            assert node.span.start.offset >= prev_offset, (
                f"Non-monotonic offset: {type(node).__name__} at {node.span.start.offset} "
                f"(prev was {prev_offset})"
            )
            assert node.span.end.offset >= node.span.start.offset
            prev_offset = node.span.start.offset


class TestArticle:
    def test_structure(self) -> None:
        doc = parse((EXAMPLES_DIR / "article.pro").read_text(encoding="utf-8"))
        assert doc.property_map() == {
            "title": "Writing in Prosidy",
            "author": "Jane Doe",
            "lang": "en",
            "draft": None,
        }
        keys = [getattr(block, "key", None) for block in doc.body]
        assert keys == ["h1", None, None, "section", None]


class TestFences:
    def test_literal_is_opaque(self) -> None:
        doc = parse((EXAMPLES_DIR / "fences.pro").read_text(encoding="utf-8"))
        code = doc.body[1]
        assert code.key == "code"
        assert code.raw.startswith("title: embedded\n---\n#-simple\n")
        assert code.raw.endswith("\n#")
        assert doc.body[2].raw == ""
