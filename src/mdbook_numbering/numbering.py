"""
Hierarchical heading numbering for mdbook chapters.

This module provides:
- The two numbering styles (`consecutive` and `top`)
- `NumberStack`, the per-chapter counter state
- `transduce()`, a single pass over a chapter's event stream that labels headings

Key concepts:
- A chapter's own number (e.g. `1.2`) seeds the stack
- Each heading resolves to a depth; counters deeper than the seed are sibling
  counters, reset when a deeper level is first entered
- A heading exactly at the chapter's depth reuses the chapter number verbatim
- Irregular nesting is reported through diagnostics and never aborts the pass
- Labels are dotted decimal with a trailing dot: `[1, 2, 3]` -> `"1.2.3."`

Usage:
    from mdbook_numbering.numbering import NumberingStyle, transduce

    events = transduce(
        events,
        base_number=[1, 2],
        style=NumberingStyle.top,
        heading_enabled=True,
        emit=diagnostics.append,
        chapter_name="Setup",
    )
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator, Sequence
from dataclasses import dataclass
from enum import Enum

from mdbook_numbering.events import Event, HeadingStart, InlineMarkup

NUMBERING_ATTRIBUTE = "data-numbering"
"""Heading attribute carrying the label, for anchors and print styles."""

LABEL_CLASS = "heading numbering"


class NumberingStyle(str, Enum):
    """How heading levels map to numbering depth."""

    # Heading level is the depth. In chapter `1.2.3` the top heading should be `###`.
    consecutive = "consecutive"
    # The top heading of every chapter is `#`, pinned to the chapter's own depth.
    top = "top"


class DiagnosticKind(str, Enum):
    heading_skip = "heading-skip"
    shallow_heading = "shallow-heading"
    ordering = "ordering"
    config = "config"
    serialization = "serialization"
    protocol = "protocol"


@dataclass(frozen=True)
class Diagnostic:
    """
    A non-fatal irregularity found while processing a book.

    Diagnostics are collected and reported, never raised. Whether any of them is
    fatal is up to whoever receives them.
    """

    kind: DiagnosticKind
    message: str
    chapter: str | None = None

    def __str__(self) -> str:
        return self.message


DiagnosticSink = Callable[[Diagnostic], None]


def format_label(numbers: Sequence[int]) -> str:
    """
    Dotted decimal label with a trailing dot.

    >>> format_label([1, 2, 3])
    '1.2.3.'
    """
    return "".join(f"{n}." for n in numbers)


def label_markup(label: str) -> str:
    """The visible inline element placed right after a heading start."""
    return f'<span class="{LABEL_CLASS}">{label}</span> '


class NumberStack:
    """
    Counter state for one chapter.

    The stack starts as a copy of the chapter number. Its length always equals the
    depth of the most recent heading. Elements beyond the chapter number are sibling
    counters for nested headings.
    """

    def __init__(self, base_number: Sequence[int]):
        self.base: tuple[int, ...] = tuple(base_number)
        self.values: list[int] = list(base_number)

    def __len__(self) -> int:
        return len(self.values)

    def __str__(self) -> str:
        return format_label(self.values)

    def resolve_depth(self, level: int, style: NumberingStyle) -> int:
        """Depth for a heading of the given level under the given style."""
        if style == NumberingStyle.top and self.base:
            return level + len(self.base) - 1
        return level

    def enter(self, depth: int) -> list[int]:
        """
        Move to a heading at `depth` and return the numbers for it.

        Deeper counters left over from a previous subtree are dropped. A heading
        deeper than the chapter number counts as a new sibling at its depth.
        """
        if depth < 1:
            raise ValueError(f"Heading depth must be at least 1: {depth}")
        while len(self.values) < depth:
            self.values.append(0)
        del self.values[depth:]
        if depth > len(self.base):
            self.values[depth - 1] += 1
        return list(self.values)

    @property
    def label(self) -> str:
        return format_label(self.values)


def _check_heading(
    stack: NumberStack,
    level: int,
    depth: int,
    style: NumberingStyle,
    chapter_name: str,
    emit: DiagnosticSink,
) -> None:
    if depth > len(stack) + 1:
        emit(
            Diagnostic(
                DiagnosticKind.heading_skip,
                f"Heading level {level} found, "
                f'but only {len(stack)} levels in numbering "{stack}" '
                f'for chapter "{chapter_name}".',
                chapter_name,
            )
        )
    if style == NumberingStyle.consecutive and depth < len(stack.base):
        emit(
            Diagnostic(
                DiagnosticKind.shallow_heading,
                f"Heading level {level} found, "
                f'but numbering "{format_label(stack.base)}" for chapter "{chapter_name}" '
                "has more levels. "
                'Consider using `numbering-style = "top"` in the config, '
                "if you want the top heading to be level 1.",
                chapter_name,
            )
        )


def transduce(
    events: Iterable[Event],
    base_number: Sequence[int] | None,
    style: NumberingStyle,
    heading_enabled: bool,
    emit: DiagnosticSink,
    chapter_name: str = "",
) -> Iterator[Event]:
    """
    Label the headings of one chapter.

    Every event is passed through in order. Each heading start is replaced by a copy
    carrying a `data-numbering` attribute and is followed by an inline element
    showing the same label. Nothing else is touched.

    With headings disabled the stream is returned unchanged. For an unnumbered
    chapter no label is added, but headings get a bare `data-numbering` marker so
    print styles can tell them apart from headings that lost their number.
    """
    if not heading_enabled:
        yield from events
        return

    if base_number is None:
        for event in events:
            if isinstance(event, HeadingStart):
                yield event.with_attribute(NUMBERING_ATTRIBUTE, None)
            else:
                yield event
        return

    stack = NumberStack(base_number)
    for event in events:
        if not isinstance(event, HeadingStart):
            yield event
            continue

        depth = stack.resolve_depth(event.level, style)
        _check_heading(stack, event.level, depth, style, chapter_name, emit)
        stack.enter(depth)
        label = stack.label

        yield event.with_attribute(NUMBERING_ATTRIBUTE, label)
        yield InlineMarkup(label_markup(label))
