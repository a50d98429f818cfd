"""Error types with formatted source context."""

from __future__ import annotations

from enum import Enum

from prosidy.source import Position, Span


class ErrorKind(Enum):
    UNTERMINATED_HEADER = "unterminated-header"
    UNMATCHED_FENCE = "unmatched-fence"
    UNMATCHED_QUOTE = "unmatched-quote"
    UNMATCHED_BRACE = "unmatched-brace"
    INVALID_KEY = "invalid-key"
    INVALID_ESCAPE = "invalid-escape"
    RESERVED_PREFIX = "reserved-prefix"
    DUPLICATE_PROPERTY = "duplicate-property"
    UNEXPECTED_CHARACTER = "unexpected-character"
    UNEXPECTED_END = "unexpected-end"


class ParseError(Exception):
    """Raised on the first parse error, with kind, span and source context."""

    def __init__(self, kind: ErrorKind, message: str, span: Span, source: str) -> None:
        self.kind = kind
        self.message = message
        self.span = span
        self.source = source
        super().__init__(self.format())

    @property
    def position(self) -> Position:
        return self.span.start

    def format(self, filename: str = "input.pro") -> str:
        lines = self.source.splitlines(keepends=True)
        line_idx = self.span.start.line - 1
        col = self.span.start.column

        if 0 <= line_idx < len(lines):
            source_line = lines[line_idx].rstrip("\n").rstrip("\r")
        else:
            source_line = ""

        # Underline the full span when on one line, otherwise to end of line
        if self.span.end.line == self.span.start.line:
            underline_len = max(1, self.span.end.column - col)
        else:
            underline_len = max(1, len(source_line) - col + 1)

        pad = " " * (col - 1)
        carets = "^" * underline_len

        line_num = str(self.span.start.line)
        gutter_width = len(line_num) + 1

        blank_gutter = " " * gutter_width + "|"
        line_gutter = f"{line_num:>{gutter_width - 1}} |"

        return (
            f"error[{self.kind.value}]: {self.message}\n"
            f"{' ' * gutter_width}--> {filename}:{self.span.start.line}:{col}\n"
            f"{blank_gutter}\n"
            f"{line_gutter} {source_line}\n"
            f"{blank_gutter} {pad}{carets}"
        )


class InvalidNodeError(ValueError):
    """Raised when an AST node is constructed in violation of its validity rules."""


class DecodeError(ValueError):
    """Raised when serialized AST data does not describe a valid document."""

    def __init__(self, message: str, path: str = "$") -> None:
        self.message = message
        self.path = path
        super().__init__(f"{path}: {message}")
