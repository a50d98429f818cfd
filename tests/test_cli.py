"""Tests for the CLI module: arg parsing, exit codes, output formats, end-to-end."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from prosidy.cli import CliOptions, build_parser, compile_file, main
from prosidy.parser import parse

VALID = "title: Hello\n---\nSome #b{body} text.\n"

# ---------------------------------------------------------------------------
# Arg parsing via build_parser
# ---------------------------------------------------------------------------


class TestArgParsing:
    def test_input_only(self) -> None:
        ns = build_parser().parse_args(["doc.pro"])
        assert ns.input == "doc.pro"
        assert ns.output is None
        assert ns.format is None
        assert ns.indent is None
        assert ns.log_level is None

    def test_output_flag(self) -> None:
        ns = build_parser().parse_args(["doc.pro", "-o", "out.json"])
        assert ns.output == "out.json"

    def test_format_and_indent(self) -> None:
        ns = build_parser().parse_args(["doc.pro", "--format", "prosidy", "--indent", "4"])
        assert ns.format == "prosidy"
        assert ns.indent == 4

    def test_log_level(self) -> None:
        ns = build_parser().parse_args(["doc.pro", "-l", "debug"])
        assert ns.log_level == "debug"

    def test_watch_and_debug(self) -> None:
        ns = build_parser().parse_args(["doc.pro", "--watch", "--debug"])
        assert ns.watch is True
        assert ns.debug is True

    def test_invalid_format_exits(self) -> None:
        with pytest.raises(SystemExit) as exc_info:
            build_parser().parse_args(["doc.pro", "--format", "html"])
        assert exc_info.value.code == 2


# ---------------------------------------------------------------------------
# Exit codes
# ---------------------------------------------------------------------------


class TestExitCodes:
    def test_success(self, tmp_path: Path) -> None:
        doc = tmp_path / "ok.pro"
        doc.write_text(VALID)
        assert main([str(doc)]) == 0

    def test_parse_error_returns_1(self, tmp_path: Path, capsys) -> None:
        doc = tmp_path / "bad.pro"
        doc.write_text("title: x\n---\n#-x:end\nnever closed\n")
        assert main([str(doc)]) == 1
        err = capsys.readouterr().err
        assert "error[unmatched-fence]" in err
        assert f"{doc}:3:4" in err

    def test_missing_header_returns_1(self, tmp_path: Path) -> None:
        doc = tmp_path / "bad.pro"
        doc.write_text("just text\n")
        assert main([str(doc)]) == 1

    def test_missing_input_returns_2(self, tmp_path: Path, capsys) -> None:
        assert main([str(tmp_path / "nope.pro")]) == 2
        assert "error:" in capsys.readouterr().err

    def test_bad_config_returns_2(self, tmp_path: Path, capsys) -> None:
        (tmp_path / "prosidy.toml").write_text('[output]\nformat = "html"\n')
        doc = tmp_path / "doc.pro"
        doc.write_text(VALID)
        assert main([str(doc)]) == 2
        assert "invalid output format" in capsys.readouterr().err

    def test_malformed_config_returns_2(self, tmp_path: Path, capsys) -> None:
        (tmp_path / "prosidy.toml").write_text("[output\n")
        doc = tmp_path / "doc.pro"
        doc.write_text(VALID)
        assert main([str(doc)]) == 2
        assert "invalid config file" in capsys.readouterr().err

    def test_non_utf8_input_returns_2(self, tmp_path: Path, capsys) -> None:
        doc = tmp_path / "latin.pro"
        doc.write_bytes(b"---\n\xff\xfe bad\n")
        assert main([str(doc)]) == 2
        assert "not valid UTF-8" in capsys.readouterr().err

    def test_watch_reports_non_utf8_input(self, tmp_path: Path, capsys, monkeypatch) -> None:
        doc = tmp_path / "latin.pro"
        doc.write_bytes(b"\xff")

        def stop(seconds: float) -> None:
            raise KeyboardInterrupt

        monkeypatch.setattr("prosidy.cli.time.sleep", stop)
        assert main([str(doc), "--watch"]) == 0
        assert "not valid UTF-8" in capsys.readouterr().err


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------


class TestOutput:
    def test_json_to_stdout(self, tmp_path: Path, capsys) -> None:
        doc = tmp_path / "doc.pro"
        doc.write_text(VALID)
        assert main([str(doc)]) == 0
        data = json.loads(capsys.readouterr().out)
        assert data["properties"] == [{"key": "title", "value": "Hello"}]
        assert data["body"][0]["type"] == "paragraph"

    def test_output_file(self, tmp_path: Path) -> None:
        doc = tmp_path / "doc.pro"
        doc.write_text(VALID)
        out = tmp_path / "out.json"
        assert main([str(doc), "-o", str(out)]) == 0
        assert json.loads(out.read_text())["properties"][0]["key"] == "title"

    def test_compact_json(self, tmp_path: Path, capsys) -> None:
        doc = tmp_path / "doc.pro"
        doc.write_text(VALID)
        assert main([str(doc), "--indent", "0"]) == 0
        out = capsys.readouterr().out
        assert out.count("\n") == 1

    def test_prosidy_format(self, tmp_path: Path) -> None:
        doc = tmp_path / "doc.pro"
        doc.write_text("title:   Hello\n---\nsoft\nbreak\n")
        out = tmp_path / "out.pro"
        assert main([str(doc), "--format", "prosidy", "-o", str(out)]) == 0
        assert out.read_text() == "title: Hello\n---\nsoft break\n"

    def test_parse_error_writes_no_output(self, tmp_path: Path) -> None:
        doc = tmp_path / "bad.pro"
        doc.write_text("---\n#-x{\n")
        out = tmp_path / "out.json"
        assert main([str(doc), "-o", str(out)]) == 1
        assert not out.exists()

    def test_debug_logging(self, tmp_path: Path, caplog) -> None:
        doc = tmp_path / "doc.pro"
        doc.write_text(VALID)
        out = tmp_path / "out.json"
        with caplog.at_level(logging.DEBUG, logger="prosidy"):
            assert main([str(doc), "-o", str(out), "--log-level", "debug"]) == 0
        messages = [r.getMessage() for r in caplog.records]
        assert any(m.startswith("parsed ") for m in messages)
        assert any("header: 1 properties" in m for m in messages)


# ---------------------------------------------------------------------------
# compile_file
# ---------------------------------------------------------------------------


def _options(path: Path, **overrides) -> CliOptions:
    values = dict(
        input_file=path,
        output_file=None,
        format="json",
        indent=2,
        log_level="warning",
        watch=False,
        debug=False,
    )
    values.update(overrides)
    return CliOptions(**values)


class TestCompileFile:
    def test_json(self, tmp_path: Path) -> None:
        doc = tmp_path / "simple.pro"
        doc.write_text(VALID)
        out = compile_file(_options(doc))
        assert out.endswith("}\n")
        assert json.loads(out)["properties"][0]["value"] == "Hello"

    def test_prosidy(self, tmp_path: Path) -> None:
        doc = tmp_path / "simple.pro"
        doc.write_text(VALID)
        out = compile_file(_options(doc, format="prosidy"))
        assert parse(out) == parse(VALID)
