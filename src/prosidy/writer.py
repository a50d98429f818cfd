"""Canonical Prosidy writer: converts a Document AST back to source text.

The output is canonical rather than faithful to the source layout: one
header property per line, blocks separated by blank lines, paragraphs on a
single line, nested tags fenced with the empty token. Parsing the output
of write() gives back an equal document.
"""

from __future__ import annotations

from itertools import count

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
from prosidy.source import HSPACE

_ESCAPE_CODES = {"\\": "\\", "\n": "n", "#": "#", "{": "{", "}": "}"}


def write(doc: Document) -> str:
    """Write a document as canonical Prosidy source."""
    parts: list[str] = []
    for prop in doc.properties:
        parts.append(_header_prop(prop))
        parts.append("\n")
    parts.append("---\n")
    if doc.body:
        parts.append(_blocks(doc.body))
    return "".join(parts)


# ---------------------------------------------------------------------------
# Escaping
# ---------------------------------------------------------------------------


def _escape_header_value(value: str) -> str:
    """Escape a header value so it survives on a single line."""
    result: list[str] = []
    for ch in value:
        if ch in _ESCAPE_CODES:
            result.append("\\" + _ESCAPE_CODES[ch])
        else:
            result.append(ch)
    return "".join(result)


def _escape_quoted(value: str) -> str:
    """Escape a prop value for a single-quoted literal."""
    return value.replace("\\", "\\\\").replace("'", "\\'")


# ---------------------------------------------------------------------------
# Header and props
# ---------------------------------------------------------------------------


def _header_prop(prop: Prop) -> str:
    if prop.value is None:
        return prop.key
    if not prop.value:
        return f"{prop.key}:"
    return f"{prop.key}: {_escape_header_value(prop.value)}"


def _props(props: tuple[Prop, ...]) -> str:
    if not props:
        return ""
    items = []
    for prop in props:
        if prop.value is None:
            items.append(prop.key)
        else:
            items.append(f"{prop.key}='{_escape_quoted(prop.value)}'")
    return "[" + ", ".join(items) + "]"


# ---------------------------------------------------------------------------
# Blocks
# ---------------------------------------------------------------------------


def _blocks(blocks: tuple[Block, ...]) -> str:
    """Write a block sequence, separating blocks with a blank line."""
    return "\n".join(_block(block) for block in blocks)


def _block(block: Block) -> str:
    if isinstance(block, Paragraph):
        return _inlines(block.inlines) + "\n"
    if isinstance(block, BlockTag):
        head = f"#-{block.key}{_props(block.props)}"
        if block.content is None:
            return head + "\n"
        if isinstance(block.content, Paragraph):
            return head + "{" + _inlines(block.content.inlines) + "}\n"
        inner = _blocks(block.content)
        return head + ":\n" + inner + "#\n"
    if isinstance(block, Literal):
        token = _literal_token(block.raw)
        head = f"#={block.key}{_props(block.props)}:{token}\n"
        body = block.raw + "\n" if block.raw else ""
        return head + body + f"#{token}\n"
    raise TypeError(f"not a block node: {type(block).__name__}")


def _literal_token(raw: str) -> str:
    """Pick the shortest fence token whose closer does not occur in raw."""
    lines = set()
    for line in raw.split("\n"):
        if line.endswith("\r"):
            line = line[:-1]
        lines.add(line.strip(HSPACE))
    if "#" not in lines:
        return ""
    for n in count(1):
        token = str(n)
        if f"#{token}" not in lines:
            return token
    raise AssertionError("unreachable")


# ---------------------------------------------------------------------------
# Inlines
# ---------------------------------------------------------------------------


def _inlines(inlines: tuple[Inline, ...]) -> str:
    return "".join(_inline(inline) for inline in inlines)


def _inline(inline: Inline) -> str:
    if isinstance(inline, Text):
        return inline.value
    if isinstance(inline, Escape):
        return "\\" + _ESCAPE_CODES[inline.value]
    if isinstance(inline, InlineTag):
        out = f"#{inline.key}{_props(inline.props)}"
        if inline.content is not None:
            out += "{" + _inlines(inline.content.inlines) + "}"
        return out
    raise TypeError(f"not an inline node: {type(inline).__name__}")
