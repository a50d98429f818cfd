"""Prosidy parser: converts source text into a Document AST.

The grammar is context sensitive: tag and literal fences are chosen by the
author, so there is no separate lexing pass. The parser walks the source
character by character and keeps a stack of pending delimiters (fence
tokens, braces and quotes). A fence only closes when its token is on top of
that stack.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from prosidy.ast import (
    Block,
    BlockTag,
    Document,
    Escape,
    Inline,
    InlineTag,
    Literal,
    Paragraph,
    Prop,
    Text,
)
from prosidy.errors import ErrorKind, ParseError
from prosidy.source import (
    ESCAPES,
    HSPACE,
    KEY_RESERVED,
    Position,
    Span,
    is_blank,
    is_key_char,
    is_key_start,
)

logger = logging.getLogger(__name__)

_HEADER_END = re.compile(r"^---(?:\r?\n|\Z)", re.MULTILINE)

# After '#' inside a paragraph these introduce block-level syntax
_RESERVED_PREFIXES = frozenset("-=+#")

# Stripped from the end of a line; a stray CR before the line end counts as space
_TRAILING_SPACE = HSPACE + "\r"


@dataclass(frozen=True, slots=True)
class _Delimiter:
    """An opened fence, brace or quote waiting for its closer."""

    kind: str  # "fence", "brace" or "quote"
    token: str
    span: Span


class Parser:
    """Single-pass recursive descent parser for Prosidy source text."""

    def __init__(self, source: str, filename: str = "input.pro") -> None:
        self._source = source
        self._filename = filename
        self._pos = 0
        self._line = 1
        self._col = 1
        self._pending: list[_Delimiter] = []

    # ------------------------------------------------------------------
    # Position helpers
    # ------------------------------------------------------------------

    def _current_pos(self) -> Position:
        return Position(self._line, self._col, self._pos)

    def _peek(self, offset: int = 0) -> str:
        idx = self._pos + offset
        if idx < len(self._source):
            return self._source[idx]
        return ""

    def _at(self, text: str) -> bool:
        return self._source.startswith(text, self._pos)

    def _at_eof(self) -> bool:
        return self._pos >= len(self._source)

    def _advance(self) -> str:
        ch = self._source[self._pos]
        self._pos += 1
        if ch == "\n":
            self._line += 1
            self._col = 1
        else:
            self._col += 1
        return ch

    def _advance_by(self, count: int) -> None:
        for _ in range(count):
            self._advance()

    def _span_from(self, start: Position) -> Span:
        return Span(start, self._current_pos())

    def _error(self, kind: ErrorKind, message: str, span: Span | None = None) -> ParseError:
        if span is None:
            start = self._current_pos()
            if self._at_eof():
                end = start
            else:
                end = Position(start.line, start.column + 1, start.offset + 1)
            span = Span(start, end)
        return ParseError(kind, message, span, self._source)

    # ------------------------------------------------------------------
    # Line helpers
    # ------------------------------------------------------------------

    def _at_line_end(self) -> bool:
        return self._at_eof() or self._at("\n") or self._at("\r\n")

    def _consume_line_end(self) -> None:
        if self._at("\r\n"):
            self._advance_by(2)
        elif self._at("\n"):
            self._advance()

    def _line_from(self, index: int) -> str:
        """Text from index to the end of its line, without the line end."""
        end = self._source.find("\n", index)
        if end == -1:
            return self._source[index:]
        line = self._source[index:end]
        return line[:-1] if line.endswith("\r") else line

    def _rest_of_line(self) -> str:
        return self._line_from(self._pos)

    def _next_line_start(self) -> int | None:
        """Index of the line after the current line end, or None at end of input."""
        if self._at("\r\n"):
            idx = self._pos + 2
        elif self._at("\n"):
            idx = self._pos + 1
        else:
            return None
        return idx if idx < len(self._source) else None

    def _skip_hspace(self) -> None:
        while self._peek() and self._peek() in HSPACE:
            self._advance()

    def _skip_ws(self) -> None:
        while self._peek() and self._peek().isspace():
            self._advance()

    def _skip_blank_lines(self) -> None:
        while not self._at_eof():
            rest = self._rest_of_line()
            if not is_blank(rest):
                return
            self._advance_by(len(rest))
            self._consume_line_end()

    def _finish_line(self, what: str) -> None:
        """Consume trailing whitespace and the line end after a block-level construct."""
        self._skip_hspace()
        if not self._at_line_end():
            raise self._error(
                ErrorKind.UNEXPECTED_CHARACTER,
                f"unexpected {_describe(self._peek())} after {what}",
            )
        self._consume_line_end()

    # ------------------------------------------------------------------
    # Delimiter stack
    # ------------------------------------------------------------------

    def _push(self, kind: str, token: str, span: Span) -> _Delimiter:
        delim = _Delimiter(kind, token, span)
        self._pending.append(delim)
        return delim

    def _pop(self, delim: _Delimiter) -> None:
        top = self._pending.pop()
        if top is not delim:
            raise RuntimeError(f"delimiter stack out of order: closed {delim.kind} {delim.token!r}")

    def _top_fence(self) -> _Delimiter | None:
        if self._pending and self._pending[-1].kind == "fence":
            return self._pending[-1]
        return None

    def _is_closer(self, line: str, fence: _Delimiter | None) -> bool:
        return fence is not None and line.strip(HSPACE) == "#" + fence.token

    # ------------------------------------------------------------------
    # Document level
    # ------------------------------------------------------------------

    def parse(self) -> Document:
        start = self._current_pos()
        properties = self._parse_header()
        body = self._parse_blocks()
        logger.debug(
            "parsed %s: %d properties, %d blocks", self._filename, len(properties), len(body)
        )
        return Document(tuple(properties), tuple(body), self._span_from(start))

    def _parse_header(self) -> list[Prop]:
        if _HEADER_END.search(self._source) is None:
            lines = self._source.split("\n")
            end = Position(len(lines), len(lines[-1]) + 1, len(self._source))
            raise self._error(
                ErrorKind.UNTERMINATED_HEADER,
                "document header is not terminated by a '---' line",
                Span(self._current_pos(), end),
            )

        props: list[Prop] = []
        seen: set[str] = set()
        while True:
            self._skip_blank_lines()
            if self._at_eof():
                raise self._error(
                    ErrorKind.UNTERMINATED_HEADER,
                    "document header is not terminated by a '---' line",
                )
            if self._rest_of_line() == "---":
                self._advance_by(3)
                self._consume_line_end()
                break
            self._skip_hspace()
            prop = self._parse_header_prop()
            if prop.key in seen:
                raise self._error(
                    ErrorKind.DUPLICATE_PROPERTY,
                    f"duplicate document property '{prop.key}'",
                    prop.span,
                )
            seen.add(prop.key)
            props.append(prop)

        logger.debug("header: %d properties", len(props))
        return props

    def _parse_header_prop(self) -> Prop:
        start = self._current_pos()
        key = self._parse_key("property", allowed_after=":=")
        self._skip_hspace()

        value: str | None = None
        if self._peek() in (":", "=") and not self._at_eof():
            self._advance()
            self._skip_hspace()
            value = self._parse_header_value()
        elif not self._at_line_end():
            raise self._error(
                ErrorKind.INVALID_KEY,
                f"unexpected {_describe(self._peek())} after property key '{key}'; "
                "keys may not contain whitespace",
            )

        span = self._span_from(start)
        self._consume_line_end()
        return Prop(key, value, span)

    def _parse_header_value(self) -> str:
        chars: list[str] = []
        keep = 0
        while not self._at_line_end():
            if self._peek() == "\\":
                chars.append(self._read_escape())
                keep = len(chars)
                continue
            ch = self._advance()
            chars.append(ch)
            if ch not in _TRAILING_SPACE:
                keep = len(chars)
        return "".join(chars[:keep])

    # ------------------------------------------------------------------
    # Blocks
    # ------------------------------------------------------------------

    def _parse_blocks(self) -> list[Block]:
        """Parse blocks until end of input or the closer of the top fence."""
        fence = self._top_fence()
        blocks: list[Block] = []

        while True:
            self._skip_blank_lines()
            self._skip_hspace()

            if self._at_eof():
                if fence is not None:
                    raise self._error(
                        ErrorKind.UNMATCHED_FENCE,
                        f"fence '{fence.token}' is never closed (expected a '#{fence.token}' line)",
                        fence.span,
                    )
                return blocks

            line = self._rest_of_line()
            if self._is_closer(line, fence):
                assert fence is not None
                self._advance_by(len(line))
                self._consume_line_end()
                self._pop(fence)
                logger.debug("closed fence %r at line %d", fence.token, self._line - 1)
                return blocks

            blocks.append(self._parse_block())

    def _parse_block(self) -> Block:
        if self._at("#-"):
            return self._parse_block_tag()
        if self._at("#="):
            return self._parse_literal()
        if self._at("#:"):
            start = self._current_pos()
            line = self._rest_of_line().rstrip(HSPACE)
            span = Span(start, Position(start.line, start.column + len(line), start.offset + len(line)))
            fence = self._top_fence()
            if fence is None:
                message = f"'{line}' closes a fence that was never opened"
            else:
                message = f"'{line}' does not close the open fence (expected '#{fence.token}')"
            raise self._error(ErrorKind.UNMATCHED_FENCE, message, span)
        return self._parse_paragraph()

    def _parse_block_tag(self) -> BlockTag:
        start = self._current_pos()
        self._advance_by(2)  # consume "#-"
        key = self._parse_key("tag", allowed_after="[{:")
        props = self._parse_props()

        content: Paragraph | tuple[Block, ...] | None = None
        if self._peek() == "{":
            content = self._parse_braced()
            end = self._current_pos()
            self._finish_line(f"tag '{key}'")
        elif self._peek() == ":":
            self._open_fence()
            logger.debug("block tag %r opened fence at line %d", key, start.line)
            content = tuple(self._parse_blocks())
            end = self._current_pos()
        else:
            end = self._current_pos()
            self._finish_line(f"tag '{key}'")

        return BlockTag(key, props, content, Span(start, end))

    def _parse_literal(self) -> Literal:
        start = self._current_pos()
        self._advance_by(2)  # consume "#="
        key = self._parse_key("literal", allowed_after="[:")
        props = self._parse_props()

        if self._peek() != ":":
            raise self._error(
                ErrorKind.UNEXPECTED_CHARACTER,
                f"expected ':' to open the content of literal '{key}', "
                f"found {_describe(self._peek())}",
            )
        fence = self._open_fence()
        raw = self._scan_raw(fence)
        return Literal(key, props, raw, self._span_from(start))

    def _open_fence(self) -> _Delimiter:
        """Consume ':' and the fence token to the end of the line, and push it."""
        start = self._current_pos()
        self._advance()  # consume ':'
        chars: list[str] = []
        while self._peek() and not self._peek().isspace():
            chars.append(self._advance())
        fence = self._push("fence", "".join(chars), self._span_from(start))
        self._finish_line("fence token")
        return fence

    def _scan_raw(self, fence: _Delimiter) -> str:
        content_start = self._pos
        while not self._at_eof():
            line = self._rest_of_line()
            if self._is_closer(line, fence):
                raw = self._source[content_start : self._pos]
                if raw.endswith("\r\n"):
                    raw = raw[:-2]
                elif raw.endswith("\n"):
                    raw = raw[:-1]
                self._advance_by(len(line))
                self._consume_line_end()
                self._pop(fence)
                return raw
            self._advance_by(len(line))
            self._consume_line_end()

        raise self._error(
            ErrorKind.UNMATCHED_FENCE,
            f"literal fence '{fence.token}' is never closed (expected a '#{fence.token}' line)",
            fence.span,
        )

    def _parse_paragraph(self) -> Paragraph:
        start = self._current_pos()
        inlines = self._parse_inlines(braced=False)
        span = self._span_from(start)
        self._consume_line_end()
        return Paragraph(tuple(inlines), span)

    def _parse_braced(self) -> Paragraph:
        start = self._current_pos()
        self._advance()  # consume '{'
        brace = self._push("brace", "}", self._span_from(start))

        inlines = self._parse_inlines(braced=True)

        if self._peek() != "}":
            raise self._error(ErrorKind.UNMATCHED_BRACE, "'{' is never closed", brace.span)
        self._advance()
        self._pop(brace)
        return Paragraph(tuple(inlines), self._span_from(start))

    # ------------------------------------------------------------------
    # Inline content
    # ------------------------------------------------------------------

    def _continues_paragraph(self, braced: bool) -> bool:
        """At a line end: does the next line continue the current paragraph?"""
        idx = self._next_line_start()
        if idx is None:
            return False
        line = self._line_from(idx)
        if is_blank(line):
            return False
        if braced:
            return True
        stripped = line.lstrip(HSPACE)
        if stripped.startswith(("#-", "#=", "#:")):
            return False
        return not self._is_closer(stripped, self._top_fence())

    def _parse_inlines(self, braced: bool) -> list[Inline]:
        result: list[Inline] = []
        text_parts: list[str] = []
        text_start: Position | None = None
        text_end: Position | None = None

        def add_text(value: str, start: Position) -> None:
            nonlocal text_start, text_end
            if text_start is None:
                text_start = start
            text_parts.append(value)
            text_end = self._current_pos()

        def strip_trailing() -> None:
            nonlocal text_start, text_end
            joined = "".join(text_parts)
            stripped = joined.rstrip(_TRAILING_SPACE)
            removed = len(joined) - len(stripped)
            text_parts.clear()
            if stripped:
                text_parts.append(stripped)
                assert text_end is not None
                text_end = Position(text_end.line, text_end.column - removed, text_end.offset - removed)
            else:
                text_start = None
                text_end = None

        def flush() -> None:
            nonlocal text_start, text_end
            if text_parts:
                assert text_start is not None
                assert text_end is not None
                result.append(Text("".join(text_parts), Span(text_start, text_end)))
                text_parts.clear()
                text_start = None
                text_end = None

        while not self._at_eof():
            ch = self._peek()

            if ch == "\n" or self._at("\r\n"):
                strip_trailing()
                if not self._continues_paragraph(braced):
                    break
                start = self._current_pos()
                self._consume_line_end()
                self._skip_hspace()
                add_text(" ", start)

            elif ch == "\\":
                flush()
                start = self._current_pos()
                value = self._read_escape()
                result.append(Escape(value, self._span_from(start)))

            elif ch == "#":
                nxt = self._peek(1)
                if nxt == ":":
                    start = self._current_pos()
                    self._advance_by(2)
                    add_text("#:", start)
                elif nxt and nxt in _RESERVED_PREFIXES:
                    raise self._error(
                        ErrorKind.RESERVED_PREFIX,
                        f"'#{nxt}' is reserved for block-level syntax; use \\# for a literal '#'",
                        Span(self._current_pos(), Position(self._line, self._col + 2, self._pos + 2)),
                    )
                else:
                    flush()
                    result.append(self._parse_inline_tag())

            elif ch == "{":
                raise self._error(
                    ErrorKind.UNEXPECTED_CHARACTER,
                    "unexpected '{' in text; use \\{ for a literal brace",
                )

            elif ch == "}":
                if braced:
                    break
                raise self._error(
                    ErrorKind.UNMATCHED_BRACE,
                    "unmatched '}' in text; use \\} for a literal brace",
                )

            else:
                start = self._current_pos()
                chars: list[str] = []
                while not self._at_eof() and not self._at_text_end():
                    chars.append(self._advance())
                add_text("".join(chars), start)

        if self._at_eof():
            strip_trailing()
        flush()
        return result

    def _at_text_end(self) -> bool:
        ch = self._peek()
        return ch in "\\#{}\n" or self._at("\r\n")

    def _parse_inline_tag(self) -> InlineTag:
        start = self._current_pos()
        self._advance()  # consume '#'
        key = self._parse_key("tag")
        props = self._parse_props()
        content = self._parse_braced() if self._peek() == "{" else None
        return InlineTag(key, props, content, self._span_from(start))

    def _read_escape(self) -> str:
        start = self._current_pos()
        self._advance()  # consume backslash

        if self._at_eof():
            raise self._error(
                ErrorKind.UNEXPECTED_END,
                "unexpected end of input after '\\'",
                self._span_from(start),
            )

        ch = self._peek()
        if ch not in ESCAPES:
            shown = "\\n" if ch == "\n" else ch
            raise self._error(
                ErrorKind.INVALID_ESCAPE,
                f"invalid escape sequence '\\{shown}'",
                Span(start, Position(self._line, self._col + 1, self._pos + 1)),
            )
        self._advance()
        return ESCAPES[ch]

    # ------------------------------------------------------------------
    # Keys and props
    # ------------------------------------------------------------------

    def _parse_key(self, what: str, allowed_after: str | None = None) -> str:
        """Read a key. With allowed_after, a reserved character straight after it is an error."""
        ch = self._peek()
        if self._at_eof():
            raise self._error(ErrorKind.UNEXPECTED_END, f"expected {what} key, found end of input")
        if not is_key_start(ch):
            raise self._error(
                ErrorKind.INVALID_KEY, f"expected {what} key, found {_describe(ch)}"
            )

        chars: list[str] = []
        while is_key_char(self._peek()):
            chars.append(self._advance())
        key = "".join(chars)

        nxt = self._peek()
        if allowed_after is not None and nxt and nxt in KEY_RESERVED and nxt not in allowed_after:
            raise self._error(
                ErrorKind.INVALID_KEY, f"{_describe(nxt)} may not appear in {what} key '{key}'"
            )
        return key

    def _parse_props(self) -> tuple[Prop, ...]:
        if self._peek() != "[":
            return ()

        open_start = self._current_pos()
        self._advance()  # consume '['
        open_span = self._span_from(open_start)
        props: list[Prop] = []

        self._skip_ws()
        if self._peek() == "]":
            self._advance()
            return ()

        while True:
            self._skip_ws()
            start = self._current_pos()
            key = self._parse_key("property", allowed_after=":=,]")
            self._skip_ws()

            value: str | None = None
            if self._peek() in (":", "=") and not self._at_eof():
                self._advance()
                self._skip_ws()
                value = self._parse_quoted(key)
            props.append(Prop(key, value, self._span_from(start)))

            self._skip_ws()
            ch = self._peek()
            if ch == ",":
                self._advance()
                continue
            if ch == "]":
                self._advance()
                break
            if self._at_eof():
                raise self._error(
                    ErrorKind.UNEXPECTED_END, "property list is never closed with ']'", open_span
                )
            raise self._error(
                ErrorKind.INVALID_KEY,
                f"unexpected {_describe(ch)} after property '{key}'; "
                "keys may not contain whitespace",
            )

        return tuple(props)

    def _parse_quoted(self, key: str) -> str:
        ch = self._peek()
        if self._at_eof():
            raise self._error(
                ErrorKind.UNEXPECTED_END, f"expected a quoted value for property '{key}'"
            )
        if ch not in "\"'":
            raise self._error(
                ErrorKind.UNEXPECTED_CHARACTER,
                f"expected a quoted value for property '{key}', found {_describe(ch)}",
            )

        start = self._current_pos()
        self._advance()
        quote = self._push("quote", ch, self._span_from(start))

        chars: list[str] = []
        while True:
            if self._at_line_end():
                raise self._error(
                    ErrorKind.UNMATCHED_QUOTE,
                    f"quoted value for property '{key}' is not closed with {quote.token} "
                    "before the end of the line",
                    quote.span,
                )
            c = self._peek()
            if c == "\\" and self._peek(1) in (quote.token, "\\") and self._peek(1):
                self._advance()
                chars.append(self._advance())
            elif c == quote.token:
                self._advance()
                break
            else:
                chars.append(self._advance())

        self._pop(quote)
        return "".join(chars)


def _describe(ch: str) -> str:
    if ch == "":
        return "end of input"
    if ch in "\r\n":
        return "end of line"
    return repr(ch)


def parse(source: str, filename: str = "input.pro") -> Document:
    """Convenience function: parse source text and return a Document AST."""
    return Parser(source, filename).parse()
