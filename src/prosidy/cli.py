"""Command-line interface for Prosidy."""

from __future__ import annotations

import argparse
import logging
import sys
import time
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from prosidy.errors import ParseError

logger = logging.getLogger(__name__)

FORMATS = ("json", "prosidy")
LOG_LEVELS = ("debug", "info", "warning", "error", "critical")


@dataclass(frozen=True, slots=True)
class CliOptions:
    """Parsed CLI options."""

    input_file: Path
    output_file: Path | None
    format: str
    indent: int | None
    log_level: str
    watch: bool
    debug: bool


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser (separate function for testability)."""
    p = argparse.ArgumentParser(
        prog="prosidy",
        description="Parse a Prosidy document into an AST",
    )
    p.add_argument("input", help="Input .pro file")
    p.add_argument("-o", "--output", help="Output file (default: stdout)")
    p.add_argument(
        "-f",
        "--format",
        choices=FORMATS,
        default=None,
        help="Output format: JSON AST or canonical Prosidy source (default: json)",
    )
    p.add_argument(
        "--indent",
        type=int,
        default=None,
        metavar="N",
        help="JSON indentation, 0 for compact output (default: 2)",
    )
    p.add_argument(
        "--config",
        metavar="FILE",
        help="Config file (default: auto-discover prosidy.toml)",
    )
    p.add_argument(
        "-l",
        "--log-level",
        choices=LOG_LEVELS,
        default=None,
        help="Threshold for log messages printed to stderr (default: warning)",
    )
    p.add_argument("--watch", action="store_true", help="Watch for changes and recompile")
    p.add_argument("--debug", action="store_true", help="Dump AST to stderr")
    return p


def load_config(config_path: Path | None, input_dir: Path) -> dict[str, Any]:
    """Load a TOML config file, returning an empty dict on missing/absent file."""
    path = config_path if config_path is not None else input_dir / "prosidy.toml"

    if not path.is_file():
        return {}

    with open(path, "rb") as f:
        return tomllib.load(f)


def resolve_options(args: argparse.Namespace) -> CliOptions:
    """Merge config file and CLI args into CliOptions.

    Precedence: config file < CLI flags.
    """
    input_file = Path(args.input)
    input_dir = input_file.parent
    if not input_dir.parts:
        input_dir = Path(".")

    config_path = Path(args.config) if args.config else None
    config = load_config(config_path, input_dir)

    # Output format and indentation: config < CLI
    fmt = "json"
    indent: int | None = 2
    cfg_output = config.get("output")
    if isinstance(cfg_output, dict):
        cfg_format = cfg_output.get("format")
        if cfg_format is not None:
            if cfg_format not in FORMATS:
                raise argparse.ArgumentTypeError(
                    f"invalid output format in config: {cfg_format!r} "
                    f"(expected one of {', '.join(FORMATS)})"
                )
            fmt = cfg_format
        cfg_indent = cfg_output.get("indent")
        if isinstance(cfg_indent, int) and not isinstance(cfg_indent, bool):
            indent = cfg_indent
    if args.format is not None:
        fmt = args.format
    if args.indent is not None:
        indent = args.indent
    if indent is not None and indent <= 0:
        indent = None

    # Log level: config < CLI
    log_level = "warning"
    cfg_log = config.get("log")
    if isinstance(cfg_log, dict):
        cfg_level = cfg_log.get("level")
        if cfg_level is not None:
            if str(cfg_level).lower() not in LOG_LEVELS:
                raise argparse.ArgumentTypeError(f"invalid log level in config: {cfg_level!r}")
            log_level = str(cfg_level).lower()
    if args.log_level is not None:
        log_level = args.log_level

    output_file = Path(args.output) if args.output else None

    return CliOptions(
        input_file=input_file,
        output_file=output_file,
        format=fmt,
        indent=indent,
        log_level=log_level,
        watch=args.watch,
        debug=args.debug,
    )


def configure_logging(level: str) -> None:
    """Send log records at or above level to stderr."""
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    logging.getLogger("prosidy").setLevel(getattr(logging, level.upper()))


def compile_file(options: CliOptions) -> str:
    """Read and parse a Prosidy file, and render it in the requested format."""
    from prosidy.codec import to_json
    from prosidy.debug import dump_ast
    from prosidy.parser import parse
    from prosidy.writer import write

    logger.debug("reading %s", options.input_file)
    source = options.input_file.read_text(encoding="utf-8")
    logger.debug("parsing source into a Document")
    doc = parse(source, str(options.input_file))

    if options.debug:
        dump_ast(doc)

    logger.debug("rendering document as %s", options.format)
    if options.format == "prosidy":
        return write(doc)
    return to_json(doc, indent=options.indent) + "\n"


def _emit(options: CliOptions, text: str) -> None:
    if options.output_file:
        options.output_file.write_text(text, encoding="utf-8")
    else:
        sys.stdout.write(text)
        sys.stdout.flush()


def watch_loop(options: CliOptions) -> None:
    """Poll input file for changes, recompile on each modification."""
    last_mtime = 0.0
    print(f"Watching {options.input_file} for changes...", file=sys.stderr)
    try:
        while True:
            try:
                mtime = options.input_file.stat().st_mtime
            except OSError:
                time.sleep(0.5)
                continue
            if mtime != last_mtime:
                last_mtime = mtime
                try:
                    _emit(options, compile_file(options))
                    print(f"Compiled {options.input_file}", file=sys.stderr)
                except ParseError as exc:
                    print(exc.format(str(options.input_file)), file=sys.stderr)
                except UnicodeDecodeError as exc:
                    print(f"error: {options.input_file} is not valid UTF-8: {exc}", file=sys.stderr)
                except OSError as exc:
                    print(f"error: {exc}", file=sys.stderr)
            time.sleep(0.5)
    except KeyboardInterrupt:
        pass


def main(argv: list[str] | None = None) -> int:
    """CLI entry point. Returns exit code (0/1/2). Does not call sys.exit()."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        options = resolve_options(args)
    except argparse.ArgumentTypeError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2
    except tomllib.TOMLDecodeError as exc:
        print(f"error: invalid config file: {exc}", file=sys.stderr)
        return 2

    configure_logging(options.log_level)
    logger.debug("options: %s", options)

    if options.watch:
        watch_loop(options)
        return 0

    try:
        output = compile_file(options)
    except ParseError as exc:
        print(exc.format(str(options.input_file)), file=sys.stderr)
        return 1
    except OSError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2
    except UnicodeDecodeError as exc:
        print(f"error: {options.input_file} is not valid UTF-8: {exc}", file=sys.stderr)
        return 2

    _emit(options, output)
    return 0
