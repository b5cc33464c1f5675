"""
Structural events for a chapter's content.

A chapter is seen by the numbering transform as a flat, ordered stream of events.
Headings are bracketed by `HeadingStart` / `HeadingEnd` with their inline content
in between; everything the transform does not care about travels as `Opaque`.

The set of event types is closed:

- `HeadingStart(level, attributes, node)`
- `HeadingEnd(level)`
- `Text(text)`
- `InlineMarkup(html)`
- `Opaque(node)`

Heading attributes use the trailing brace syntax understood by mdbook, e.g.
`## Setup {#setup .wide data-numbering=1.2.}`.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from typing import Union

Attribute = tuple[str, Union[str, None]]
"""A heading attribute as a `(key, value)` pair. `None` means a bare key."""


@dataclass(frozen=True)
class HeadingStart:
    """Opens a heading of the given level (1 for `#`, 2 for `##`, ...)."""

    level: int
    attributes: tuple[Attribute, ...] = ()
    # Back-reference to the tokenizer's node, used when re-serializing.
    node: object = None

    def with_attribute(self, key: str, value: str | None) -> HeadingStart:
        """Return a copy of this event with one more attribute appended."""
        return replace(self, attributes=self.attributes + ((key, value),))

    def get_attribute(self, key: str) -> str | None:
        """Value of the last attribute named `key`, or None."""
        for k, v in reversed(self.attributes):
            if k == key:
                return v
        return None


@dataclass(frozen=True)
class HeadingEnd:
    level: int


@dataclass(frozen=True)
class Text:
    text: str


@dataclass(frozen=True)
class InlineMarkup:
    html: str


@dataclass(frozen=True)
class Opaque:
    """Anything else. Passed through untouched."""

    node: object


Event = Union[HeadingStart, HeadingEnd, Text, InlineMarkup, Opaque]


# === Attribute blocks ===

_ATTRIBUTE_BLOCK = re.compile(r"^(?P<text>.*?)[ \t]*\{(?P<body>[^{}]*)\}[ \t]*$", re.DOTALL)

_ATTRIBUTE_TOKEN = re.compile(r'[^\s=]+(?:=(?:"[^"]*"|\S*))?')


def parse_attribute_block(text: str) -> tuple[str, tuple[Attribute, ...]] | None:
    """
    Split a trailing `{...}` attribute block off heading text.

    Returns `(remaining_text, attributes)`, or None if the text does not end with
    an attribute block.

    Examples:
        >>> parse_attribute_block("Setup {#setup .wide}")
        ('Setup', (('id', 'setup'), ('class', 'wide')))
        >>> parse_attribute_block("Setup") is None
        True
    """
    match = _ATTRIBUTE_BLOCK.match(text)
    if not match:
        return None

    attributes: list[Attribute] = []
    for token in _ATTRIBUTE_TOKEN.findall(match.group("body")):
        if token.startswith("#") and len(token) > 1:
            attributes.append(("id", token[1:]))
        elif token.startswith(".") and len(token) > 1:
            attributes.append(("class", token[1:]))
        elif "=" in token:
            key, value = token.split("=", 1)
            if len(value) >= 2 and value.startswith('"') and value.endswith('"'):
                value = value[1:-1]
            attributes.append((key, value))
        else:
            attributes.append((token, None))

    return match.group("text"), tuple(attributes)


def _is_simple(value: str) -> bool:
    return bool(value) and not any(c.isspace() for c in value)


def _format_value(value: str) -> str:
    return value if _is_simple(value) else f'"{value}"'


def format_attribute_block(attributes: tuple[Attribute, ...]) -> str:
    """
    Render attributes back into brace syntax, e.g. `{#setup .wide data-numbering=1.}`.
    """
    parts: list[str] = []
    for key, value in attributes:
        if value is None:
            parts.append(key)
        elif key == "id" and _is_simple(value):
            parts.append(f"#{value}")
        elif key == "class" and _is_simple(value):
            parts.append(f".{value}")
        else:
            parts.append(f"{key}={_format_value(value)}")
    return "{" + " ".join(parts) + "}"
