"""Lossless JSON encoding of the Prosidy AST.

Variants are tagged with a ``"type"`` member::

    {"properties": [{"key": "title", "value": "Hello"}],
     "body": [{"type": "paragraph", "inlines": [{"type": "text", "value": "Hi"}]}]}

Spans are not encoded.
"""

from __future__ import annotations

import json
from typing import Any

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
from prosidy.errors import DecodeError, InvalidNodeError


def to_json(doc: Document, indent: int | None = 2) -> str:
    """Serialize a document to a JSON string."""
    return json.dumps(to_data(doc), indent=indent, ensure_ascii=False)


def from_json(text: str) -> Document:
    """Deserialize a document from a JSON string produced by to_json."""
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise DecodeError(f"invalid JSON: {exc.msg} at line {exc.lineno} column {exc.colno}") from exc
    return from_data(data)


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------


def to_data(doc: Document) -> dict[str, Any]:
    """Convert a document to plain JSON-compatible data."""
    return {
        "properties": [_encode_prop(p) for p in doc.properties],
        "body": [_encode_block(b) for b in doc.body],
    }


def _encode_prop(prop: Prop) -> dict[str, Any]:
    return {"key": prop.key, "value": prop.value}


def _encode_paragraph(para: Paragraph) -> dict[str, Any]:
    return {"type": "paragraph", "inlines": [_encode_inline(i) for i in para.inlines]}


def _encode_block(block: Block) -> dict[str, Any]:
    if isinstance(block, Paragraph):
        return _encode_paragraph(block)
    if isinstance(block, BlockTag):
        content: Any
        if block.content is None:
            content = None
        elif isinstance(block.content, Paragraph):
            content = _encode_paragraph(block.content)
        else:
            content = [_encode_block(b) for b in block.content]
        return {
            "type": "tag",
            "key": block.key,
            "props": [_encode_prop(p) for p in block.props],
            "content": content,
        }
    if isinstance(block, Literal):
        return {
            "type": "literal",
            "key": block.key,
            "props": [_encode_prop(p) for p in block.props],
            "raw": block.raw,
        }
    raise TypeError(f"not a block node: {type(block).__name__}")


def _encode_inline(inline: Inline) -> dict[str, Any]:
    if isinstance(inline, Text):
        return {"type": "text", "value": inline.value}
    if isinstance(inline, Escape):
        return {"type": "escape", "value": inline.value}
    if isinstance(inline, InlineTag):
        return {
            "type": "tag",
            "key": inline.key,
            "props": [_encode_prop(p) for p in inline.props],
            "content": None if inline.content is None else _encode_paragraph(inline.content),
        }
    raise TypeError(f"not an inline node: {type(inline).__name__}")


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------


def from_data(data: Any) -> Document:
    """Rebuild a document from data produced by to_data."""
    obj = _expect_object(data, "$")
    properties = [
        _decode_prop(p, f"$.properties[{i}]")
        for i, p in enumerate(_expect_list(obj.get("properties", []), "$.properties"))
    ]
    body = [
        _decode_block(b, f"$.body[{i}]")
        for i, b in enumerate(_expect_list(obj.get("body", []), "$.body"))
    ]
    return _build(Document, "$", tuple(properties), tuple(body))


def _decode_prop(data: Any, path: str) -> Prop:
    obj = _expect_object(data, path)
    value = obj.get("value")
    if value is not None and not isinstance(value, str):
        raise DecodeError("property value must be a string or null", f"{path}.value")
    return _build(Prop, path, _expect_str(obj, "key", path), value)


def _decode_props(obj: dict[str, Any], path: str) -> tuple[Prop, ...]:
    items = _expect_list(obj.get("props", []), f"{path}.props")
    return tuple(_decode_prop(p, f"{path}.props[{i}]") for i, p in enumerate(items))


def _decode_paragraph(obj: dict[str, Any], path: str) -> Paragraph:
    items = _expect_list(obj.get("inlines", []), f"{path}.inlines")
    inlines = [_decode_inline(item, f"{path}.inlines[{i}]") for i, item in enumerate(items)]
    return _build(Paragraph, path, tuple(inlines))


def _decode_block(data: Any, path: str) -> Block:
    obj = _expect_object(data, path)
    kind = obj.get("type")

    if kind == "paragraph":
        return _decode_paragraph(obj, path)

    if kind == "tag":
        raw_content = obj.get("content")
        content: Paragraph | tuple[Block, ...] | None
        if raw_content is None:
            content = None
        elif isinstance(raw_content, list):
            content = tuple(
                _decode_block(b, f"{path}.content[{i}]") for i, b in enumerate(raw_content)
            )
        else:
            content = _decode_paragraph_value(raw_content, f"{path}.content")
        return _build(BlockTag, path, _expect_str(obj, "key", path), _decode_props(obj, path), content)

    if kind == "literal":
        return _build(
            Literal,
            path,
            _expect_str(obj, "key", path),
            _decode_props(obj, path),
            _expect_str(obj, "raw", path),
        )

    raise DecodeError(f"unknown block type {kind!r}", f"{path}.type")


def _decode_paragraph_value(data: Any, path: str) -> Paragraph:
    obj = _expect_object(data, path)
    if obj.get("type") != "paragraph":
        raise DecodeError("expected a paragraph", f"{path}.type")
    return _decode_paragraph(obj, path)


def _decode_inline(data: Any, path: str) -> Inline:
    obj = _expect_object(data, path)
    kind = obj.get("type")

    if kind == "text":
        return _build(Text, path, _expect_str(obj, "value", path))
    if kind == "escape":
        return _build(Escape, path, _expect_str(obj, "value", path))
    if kind == "tag":
        raw_content = obj.get("content")
        content = None
        if raw_content is not None:
            content = _decode_paragraph_value(raw_content, f"{path}.content")
        return _build(InlineTag, path, _expect_str(obj, "key", path), _decode_props(obj, path), content)

    raise DecodeError(f"unknown inline type {kind!r}", f"{path}.type")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _build(cls: type, path: str, *args: Any) -> Any:
    try:
        return cls(*args)
    except InvalidNodeError as exc:
        raise DecodeError(str(exc), path) from exc


def _expect_object(data: Any, path: str) -> dict[str, Any]:
    if not isinstance(data, dict):
        raise DecodeError(f"expected an object, got {type(data).__name__}", path)
    return data


def _expect_list(data: Any, path: str) -> list[Any]:
    if not isinstance(data, list):
        raise DecodeError(f"expected an array, got {type(data).__name__}", path)
    return data


def _expect_str(obj: dict[str, Any], name: str, path: str) -> str:
    value = obj.get(name)
    if not isinstance(value, str):
        raise DecodeError(f"expected a string, got {type(value).__name__}", f"{path}.{name}")
    return value
