"""AST node types for parsed Prosidy documents.

Nodes are immutable. Spans record where a node came from in the source and
take no part in equality, so two documents compare equal when their
properties and bodies match, however they were written.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Union

from prosidy.errors import InvalidNodeError
from prosidy.source import ESCAPES, Span, is_valid_key

_TEXT_FORBIDDEN = frozenset("\\{}\n")
_ESCAPE_VALUES = frozenset(ESCAPES.values())


def _check_key(key: str, what: str) -> None:
    if not isinstance(key, str) or not is_valid_key(key):
        raise InvalidNodeError(f"invalid {what} key {key!r}")


def _freeze(node: object, name: str) -> None:
    value = getattr(node, name)
    if isinstance(value, list):
        object.__setattr__(node, name, tuple(value))


@dataclass(frozen=True, slots=True)
class Prop:
    """A key with an optional value, attached to a document, tag or literal."""

    key: str
    value: str | None = None
    span: Span | None = field(default=None, compare=False, repr=False)

    def __post_init__(self) -> None:
        _check_key(self.key, "property")
        if self.value is not None and not isinstance(self.value, str):
            raise InvalidNodeError(f"value of property {self.key!r} must be a string or None")


@dataclass(frozen=True, slots=True)
class Text:
    """Coalesced run of plain text."""

    value: str
    span: Span | None = field(default=None, compare=False, repr=False)

    def __post_init__(self) -> None:
        if not self.value:
            raise InvalidNodeError("text node must not be empty")
        bad = _TEXT_FORBIDDEN.intersection(self.value)
        if bad:
            raise InvalidNodeError(f"text node contains reserved character {min(bad)!r}")


@dataclass(frozen=True, slots=True)
class Escape:
    """The single character produced by decoding an escape sequence."""

    value: str
    span: Span | None = field(default=None, compare=False, repr=False)

    def __post_init__(self) -> None:
        if self.value not in _ESCAPE_VALUES:
            raise InvalidNodeError(f"{self.value!r} is not produced by any escape sequence")


@dataclass(frozen=True, slots=True)
class InlineTag:
    """#key[props]{...} inside a paragraph."""

    key: str
    props: tuple[Prop, ...] = ()
    content: Paragraph | None = None
    span: Span | None = field(default=None, compare=False, repr=False)

    def __post_init__(self) -> None:
        _check_key(self.key, "tag")
        _freeze(self, "props")
        if self.content is not None and not isinstance(self.content, Paragraph):
            raise InvalidNodeError("inline tag content must be a Paragraph or None")


@dataclass(frozen=True, slots=True)
class Paragraph:
    """Run of inline content."""

    inlines: tuple[Inline, ...] = ()
    span: Span | None = field(default=None, compare=False, repr=False)

    def __post_init__(self) -> None:
        _freeze(self, "inlines")


@dataclass(frozen=True, slots=True)
class BlockTag:
    """#-key[props] with no content, a braced paragraph, or fenced blocks."""

    key: str
    props: tuple[Prop, ...] = ()
    content: Paragraph | tuple[Block, ...] | None = None
    span: Span | None = field(default=None, compare=False, repr=False)

    def __post_init__(self) -> None:
        _check_key(self.key, "tag")
        _freeze(self, "props")
        _freeze(self, "content")
        if self.content is not None and not isinstance(self.content, (Paragraph, tuple)):
            raise InvalidNodeError("block tag content must be a Paragraph, a block sequence or None")

    @property
    def blocks(self) -> tuple[Block, ...]:
        """Nested blocks of a fenced tag, empty for the other forms."""
        if isinstance(self.content, tuple):
            return self.content
        return ()


@dataclass(frozen=True, slots=True)
class Literal:
    """#=key[props] with raw, unparsed content."""

    key: str
    props: tuple[Prop, ...] = ()
    raw: str = ""
    span: Span | None = field(default=None, compare=False, repr=False)

    def __post_init__(self) -> None:
        _check_key(self.key, "literal")
        _freeze(self, "props")


@dataclass(frozen=True, slots=True)
class Document:
    """Root document node: header properties and a body of blocks."""

    properties: tuple[Prop, ...] = ()
    body: tuple[Block, ...] = ()
    span: Span | None = field(default=None, compare=False, repr=False)

    def __post_init__(self) -> None:
        _freeze(self, "properties")
        _freeze(self, "body")
        seen: set[str] = set()
        for prop in self.properties:
            if prop.key in seen:
                raise InvalidNodeError(f"duplicate document property {prop.key!r}")
            seen.add(prop.key)

    def __contains__(self, key: object) -> bool:
        return any(prop.key == key for prop in self.properties)

    def get(self, key: str, default: str | None = None) -> str | None:
        for prop in self.properties:
            if prop.key == key:
                return prop.value
        return default

    def property_map(self) -> dict[str, str | None]:
        return {prop.key: prop.value for prop in self.properties}


Inline = Union[Text, Escape, InlineTag]
Block = Union[Paragraph, BlockTag, Literal]
Node = Union[Document, Block, Inline]


def children(node: Node) -> Iterator[Node]:
    """Yield the direct child nodes of node, in document order."""
    if isinstance(node, Document):
        yield from node.body
    elif isinstance(node, Paragraph):
        yield from node.inlines
    elif isinstance(node, BlockTag):
        if isinstance(node.content, Paragraph):
            yield node.content
        elif node.content is not None:
            yield from node.content
    elif isinstance(node, InlineTag):
        if node.content is not None:
            yield node.content
    elif isinstance(node, (Literal, Text, Escape)):
        return
    else:
        raise TypeError(f"not a Prosidy node: {type(node).__name__}")


def walk(node: Node) -> Iterator[Node]:
    """Yield node and all of its descendants, depth first, in document order."""
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        stack.extend(reversed(list(children(current))))
