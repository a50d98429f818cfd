"""--debug AST dump to stderr."""

from __future__ import annotations

import sys
from typing import TextIO

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
)


def dump_ast(doc: Document, *, file: TextIO = sys.stderr) -> None:
    """Print a human-readable AST tree to *file*."""
    _dump_document(doc, 0, file)


def _indent(depth: int) -> str:
    return "  " * depth


def _dump_document(doc: Document, depth: int, f: TextIO) -> None:
    f.write(f"{_indent(depth)}Document\n")
    for prop in doc.properties:
        _dump_prop(prop, depth + 1, f)
    for block in doc.body:
        _dump_block(block, depth + 1, f)


def _dump_prop(prop: Prop, depth: int, f: TextIO) -> None:
    if prop.value is None:
        f.write(f"{_indent(depth)}Prop {prop.key}\n")
    else:
        f.write(f"{_indent(depth)}Prop {prop.key}={prop.value!r}\n")


def _dump_block(block: Block, depth: int, f: TextIO) -> None:
    if isinstance(block, Paragraph):
        _dump_paragraph(block, depth, f)
    elif isinstance(block, BlockTag):
        f.write(f"{_indent(depth)}BlockTag #-{block.key}\n")
        for prop in block.props:
            _dump_prop(prop, depth + 1, f)
        if isinstance(block.content, Paragraph):
            _dump_paragraph(block.content, depth + 1, f)
        elif block.content is not None:
            for child in block.content:
                _dump_block(child, depth + 1, f)
    elif isinstance(block, Literal):
        f.write(f"{_indent(depth)}Literal #={block.key}\n")
        for prop in block.props:
            _dump_prop(prop, depth + 1, f)
        f.write(f"{_indent(depth + 1)}Raw({block.raw!r})\n")


def _dump_paragraph(para: Paragraph, depth: int, f: TextIO) -> None:
    f.write(f"{_indent(depth)}Paragraph\n")
    for child in para.inlines:
        _dump_inline(child, depth + 1, f)


def _dump_inline(inline: Inline, depth: int, f: TextIO) -> None:
    if isinstance(inline, Escape):
        f.write(f"{_indent(depth)}Escape({inline.value!r})\n")
    elif isinstance(inline, InlineTag):
        f.write(f"{_indent(depth)}InlineTag #{inline.key}\n")
        for prop in inline.props:
            _dump_prop(prop, depth + 1, f)
        if inline.content is not None:
            _dump_paragraph(inline.content, depth + 1, f)
    else:
        f.write(f"{_indent(depth)}Text({inline.value!r})\n")
