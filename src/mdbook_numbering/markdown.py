"""
Markdown tokenizer and re-serializer for chapter content.

Chapter text is parsed with Marko into a document tree, then flattened into the
event stream seen by the numbering transform. After the transform, `render()` folds
the stream back into text.

Only headings are rewritten, and only on their own source lines: every other byte
of the chapter is kept exactly as it was. Heading lines are found by parsing a copy
of the chapter with a marker placed in each candidate heading line, so the lines
are the ones Marko itself took as headings. Asset fragments that follow the last
content event are appended after the body.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Iterator
from dataclasses import dataclass

from marko import Markdown, block, inline
from marko.block import Document
from marko.element import Element

from mdbook_numbering.errors import SerializationError
from mdbook_numbering.events import (
    Attribute,
    Event,
    HeadingEnd,
    HeadingStart,
    InlineMarkup,
    Opaque,
    Text,
    format_attribute_block,
    parse_attribute_block,
)

logger = logging.getLogger(__name__)

HeadingElement = (block.Heading, block.SetextHeading)

# Block containers that can hold headings. Their own structure stays in the tree.
ContainerElement = (block.Quote, block.List, block.ListItem)

# Block quote and list item markers that may precede a heading on its line
_LEAD = r"(?:[ \t]*(?:>|(?:[-+*]|\d{1,9}[.)])(?=[ \t])))*[ \t]*"

_LEAD_PATTERN = re.compile(_LEAD)

_ATX_LINE = re.compile(
    rf"^(?P<lead>{_LEAD})(?P<hashes>#{{1,6}})(?P<body>(?:[ \t].*?)?)(?P<closing>(?:[ \t]+#+)?[ \t]*)$"
)

_SETEXT_UNDERLINE = re.compile(r"^(?:[ \t]*>)*[ \t]*(?P<rule>=+|-+)[ \t]*$")

_THEMATIC_BREAK = re.compile(r"^(?:(?:\*[ \t]*){3,}|(?:-[ \t]*){3,}|(?:_[ \t]*){3,})$")

# An HTML block made of one lone tag, which a trailing marker would turn into text
_LONE_TAG = re.compile(r"^</?[A-Za-z][^<>]*>$")

_QUOTE_PREFIX = re.compile(r"^(?:[ \t]*>)*")

_LINE = re.compile(r"[^\n]*\n|[^\n]+")

_EOL = re.compile(r"\r?\n$")

# Line markers, wrapped in private-use characters that Marko treats as plain text
_MARKER_RE = re.compile(r"\ue000(\d+)\ue001")


def _marker(index: int) -> str:
    return f"\ue000{index}\ue001"


def _split_eol(line: str) -> tuple[str, str]:
    match = _EOL.search(line)
    if match is None:
        return line, ""
    return line[: match.start()], match.group()


def _may_end_setext_content(text: str) -> bool:
    body = _QUOTE_PREFIX.sub("", text).strip()
    return bool(
        body
        and not body.startswith(("```", "~~~"))
        and not _LONE_TAG.match(body)
        and not _THEMATIC_BREAK.match(body)
        and not _SETEXT_UNDERLINE.match(text)
    )


def _walk_headings(elements: Iterable[Element]) -> Iterator[block.Heading | block.SetextHeading]:
    for element in elements:
        if isinstance(element, HeadingElement):
            yield element
        elif isinstance(element, ContainerElement):
            assert isinstance(element.children, list)
            yield from _walk_headings(element.children)  # pyright: ignore[reportUnknownArgumentType]


def _plain_text(element: Element) -> str:
    children = getattr(element, "children", None)
    if isinstance(children, str):
        return children
    if isinstance(children, list):
        return "".join(_plain_text(child) for child in children)  # pyright: ignore[reportUnknownVariableType]
    return ""


def _count_line_breaks(element: Element) -> int:
    if isinstance(element, inline.LineBreak):
        return 1
    children = getattr(element, "children", None)
    if isinstance(children, list):
        return sum(_count_line_breaks(child) for child in children)  # pyright: ignore[reportUnknownVariableType]
    return 0


def append_fragments(body: str, fragments: list[str]) -> str:
    """Append fragments after the body, separated by a blank line."""
    if not fragments:
        return body
    if body and not body.endswith("\n"):
        body += "\n"
    if body:
        body += "\n"
    return body + "".join(fragments)


@dataclass(frozen=True)
class HeadingLines:
    """
    Where a heading sits in the source, as 0-based line indexes.

    ATX headings use one line (`first == last`, no underline). Setext headings span
    `first..last` plus the underline line.
    """

    first: int
    last: int
    underline: int | None = None


@dataclass(frozen=True)
class _OriginalHeading:
    attributes: tuple[Attribute, ...]
    inline_events: tuple[Event, ...]
    # Whether the heading text ended with a `{...}` block, even an empty one
    had_block: bool


class MarkdownChapter:
    """
    A parsed chapter: the source text, its Marko tree, and the heading contents as
    they were at parse time.
    """

    def __init__(self, source: str, document: Document, markdown: Markdown):
        self.source = source
        self.document = document
        self.markdown = markdown
        # id(heading element) -> heading as tokenized
        self._original: dict[int, _OriginalHeading] = {}

    @classmethod
    def parse(cls, source: str) -> MarkdownChapter:
        markdown = Markdown()
        document = markdown.parse(source)
        return cls(source, document, markdown)

    # === Tokenizing ===

    def events(self) -> Iterator[Event]:
        """The chapter as a flat event stream, in document order."""
        yield from self._walk(self.document.children)

    def _walk(self, elements: Iterable[Element]) -> Iterator[Event]:
        for element in elements:
            if isinstance(element, HeadingElement):
                yield from self._heading_events(element)
            elif isinstance(element, ContainerElement):
                assert isinstance(element.children, list)
                yield from self._walk(element.children)  # pyright: ignore[reportUnknownArgumentType]
            else:
                yield Opaque(element)

    def _heading_events(self, heading: block.Heading | block.SetextHeading) -> Iterator[Event]:
        children: list[Element] = list(heading.children)  # pyright: ignore[reportArgumentType]
        attributes: tuple[Attribute, ...] = ()
        last_text: str | None = None

        # A trailing `{...}` block belongs to the heading, not to its text.
        if children and isinstance(children[-1], inline.RawText):
            assert isinstance(children[-1].children, str)
            parsed = parse_attribute_block(children[-1].children)
            if parsed is not None:
                last_text, attributes = parsed

        inline_events: list[Event] = []
        for i, child in enumerate(children):
            if isinstance(child, inline.RawText):
                assert isinstance(child.children, str)
                text = last_text if i == len(children) - 1 and last_text is not None else child.children
                if text:
                    inline_events.append(Text(text))
            elif isinstance(child, inline.InlineHTML):
                assert isinstance(child.children, str)
                inline_events.append(InlineMarkup(child.children))
            else:
                inline_events.append(Opaque(child))

        self._original[id(heading)] = _OriginalHeading(
            attributes, tuple(inline_events), had_block=last_text is not None
        )

        yield HeadingStart(heading.level, attributes, heading)
        yield from inline_events
        yield HeadingEnd(heading.level)

    # === Locating headings ===

    def locate_headings(self) -> dict[int, HeadingLines]:
        """
        Map each heading element (by id) to its source lines.

        Raises:
            SerializationError: If a heading cannot be matched to its lines.
        """
        lines = _LINE.findall(self.source)
        marked = list(lines)
        atx_lines: set[int] = set()
        setext_lines: set[int] = set()

        for i, line in enumerate(lines):
            text, eol = _split_eol(line)
            match = _ATX_LINE.match(text)
            if match:
                atx_lines.add(i)
                end = match.end("hashes")
                marked[i] = text[:end] + " " + _marker(i) + text[end:] + eol

        # A setext heading is marked at the end of its last content line.
        for i in range(1, len(lines)):
            previous = i - 1
            if previous in atx_lines or not _SETEXT_UNDERLINE.match(_split_eol(lines[i])[0]):
                continue
            if not _may_end_setext_content(_split_eol(lines[previous])[0]):
                continue
            setext_lines.add(previous)
            text, eol = _split_eol(marked[previous])
            content = text.rstrip(" \t")
            marked[previous] = content + _marker(previous) + text[len(content) :] + eol

        headings = list(_walk_headings(self.document.children))
        marked_headings = list(_walk_headings(self.markdown.parse("".join(marked)).children))
        if len(headings) != len(marked_headings):
            raise SerializationError(
                f"Found {len(marked_headings)} heading lines for {len(headings)} headings"
            )

        locations: dict[int, HeadingLines] = {}
        for heading, marked_heading in zip(headings, marked_headings):
            if type(heading) is not type(marked_heading) or heading.level != marked_heading.level:
                raise SerializationError("Heading lines do not match the parsed headings")
            indexes = [int(n) for n in _MARKER_RE.findall(_plain_text(marked_heading))]

            if isinstance(heading, block.SetextHeading):
                found = [n for n in indexes if n in setext_lines]
                if len(found) != 1:
                    raise SerializationError("Could not find the lines of a setext heading")
                last = found[0]
                first = last - _count_line_breaks(marked_heading)
                if first < 0 or not all(lines[n].strip() for n in range(first, last + 1)):
                    raise SerializationError("Could not find the lines of a setext heading")
                locations[id(heading)] = HeadingLines(first, last, underline=last + 1)
            else:
                found = [n for n in indexes if n in atx_lines]
                if len(found) != 1:
                    raise SerializationError("Could not find the line of a heading")
                locations[id(heading)] = HeadingLines(found[0], found[0])

        return locations

    # === Re-serializing ===

    def render(self, events: Iterable[Event]) -> str:
        """
        Fold a (rewritten) event stream back into Markdown text.

        Raises:
            SerializationError: If the stream does not fit the parsed document, e.g.
                unbalanced heading events or new top-level content before the tail.
        """
        rewrites: list[tuple[HeadingStart, str]] = []
        tail: list[str] = []
        current: HeadingStart | None = None
        inline_events: list[Event] = []

        for event in events:
            if current is not None:
                if isinstance(event, HeadingEnd):
                    prefix = self._heading_prefix(current, inline_events)
                    if prefix is not None:
                        rewrites.append((current, prefix))
                    current = None
                    inline_events = []
                elif isinstance(event, HeadingStart):
                    raise SerializationError("Heading started inside another heading")
                else:
                    inline_events.append(event)
            elif isinstance(event, InlineMarkup):
                tail.append(event.html)
            elif tail:
                raise SerializationError(
                    f"Content found after trailing fragments: {type(event).__name__}"
                )
            elif isinstance(event, HeadingStart):
                current = event
            elif isinstance(event, Opaque):
                pass
            else:
                raise SerializationError(f"Unexpected top-level event: {event!r}")

        if current is not None:
            raise SerializationError("Heading was never closed")

        body = self._splice(rewrites) if rewrites else self.source
        return append_fragments(body, tail)

    def _heading_prefix(self, start: HeadingStart, inline_events: list[Event]) -> str | None:
        """
        Check a heading's events against the tokenized heading. Returns the Markdown
        to insert before the original heading text, or None if nothing changed.

        Only content added in front of the original text can be written back.
        """
        heading = start.node
        if not isinstance(heading, HeadingElement) or id(heading) not in self._original:
            raise SerializationError("Heading event does not belong to this chapter")

        original = self._original[id(heading)]
        count = len(original.inline_events)
        if len(inline_events) < count or tuple(inline_events[len(inline_events) - count :]) != (
            original.inline_events
        ):
            raise SerializationError("Heading text was changed, not only prefixed")

        added = inline_events[: len(inline_events) - count]
        if start.level == heading.level and start.attributes == original.attributes and not added:
            return None

        parts: list[str] = []
        for event in added:
            if isinstance(event, Text):
                parts.append(event.text)
            elif isinstance(event, InlineMarkup):
                parts.append(event.html)
            else:
                raise SerializationError(f"Unexpected event inside heading: {event!r}")
        return "".join(parts)

    def _splice(self, rewrites: list[tuple[HeadingStart, str]]) -> str:
        lines = _LINE.findall(self.source)
        locations = self.locate_headings()
        for start, prefix in rewrites:
            heading = start.node
            original = self._original[id(heading)]
            location = locations[id(heading)]
            if location.underline is None:
                lines[location.first] = _rewrite_atx_line(
                    lines[location.first], start, prefix, original.had_block
                )
            else:
                _rewrite_setext_lines(lines, location, start, prefix, original.had_block)
        logger.debug("Rewrote %d heading(s)", len(rewrites))
        return "".join(lines)


def _with_attributes(text: str, attributes: tuple[Attribute, ...], had_block: bool) -> str:
    """Replace the trailing attribute block of heading text, if any."""
    if had_block:
        parsed = parse_attribute_block(text)
        if parsed is None:
            raise SerializationError(f"Attribute block not found in heading text: {text!r}")
        text = parsed[0]
    if not attributes:
        return text
    block_text = format_attribute_block(attributes)
    return f"{text.rstrip()} {block_text}" if text.strip() else block_text


def _rewrite_atx_line(line: str, start: HeadingStart, prefix: str, had_block: bool) -> str:
    text, eol = _split_eol(line)
    match = _ATX_LINE.match(text)
    if match is None:
        raise SerializationError(f"Not a heading line: {text!r}")
    content = _with_attributes(match.group("body").strip(), start.attributes, had_block)
    content = f"{prefix}{content}".rstrip()
    heading = match.group("lead") + "#" * start.level
    return (f"{heading} {content}" if content else heading) + eol


def _rewrite_setext_lines(
    lines: list[str], location: HeadingLines, start: HeadingStart, prefix: str, had_block: bool
) -> None:
    assert location.underline is not None
    if start.level not in (1, 2):
        raise SerializationError(f"A setext heading cannot have level {start.level}")

    # Attributes go at the end of the last content line, the prefix at the start of the first.
    text, eol = _split_eol(lines[location.last])
    lines[location.last] = _with_attributes(text.rstrip(" \t"), start.attributes, had_block) + eol

    text, eol = _split_eol(lines[location.first])
    lead = _LEAD_PATTERN.match(text)
    assert lead is not None
    lines[location.first] = text[: lead.end()] + prefix + text[lead.end() :] + eol

    underline, eol = _split_eol(lines[location.underline])
    match = _SETEXT_UNDERLINE.match(underline)
    if match is None:
        raise SerializationError(f"Not a setext underline: {underline!r}")
    rule = ("=" if start.level == 1 else "-") * len(match.group("rule"))
    head, rest = underline[: match.start("rule")], underline[match.end("rule") :]
    lines[location.underline] = head + rule + rest + eol
