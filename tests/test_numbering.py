"""Tests for the heading numbering transducer."""

from __future__ import annotations

import pytest

from mdbook_numbering.events import Event, HeadingEnd, HeadingStart, InlineMarkup, Opaque, Text
from mdbook_numbering.numbering import (
    NUMBERING_ATTRIBUTE,
    Diagnostic,
    DiagnosticKind,
    NumberingStyle,
    NumberStack,
    format_label,
    label_markup,
    transduce,
)


def _headings(*levels: int) -> list[Event]:
    """A stream with one heading per level, each followed by a paragraph."""
    events: list[Event] = []
    for i, level in enumerate(levels):
        events.append(HeadingStart(level))
        events.append(Text(f"Heading {i + 1}"))
        events.append(HeadingEnd(level))
        events.append(Opaque(f"paragraph {i + 1}"))
    return events


def _run(
    events: list[Event],
    number: list[int] | None,
    style: NumberingStyle = NumberingStyle.consecutive,
    enabled: bool = True,
    name: str = "Chapter 1",
) -> tuple[list[Event], list[Diagnostic]]:
    diagnostics: list[Diagnostic] = []
    result = list(transduce(events, number, style, enabled, diagnostics.append, name))
    return result, diagnostics


def _labels(events: list[Event]) -> list[str | None]:
    return [e.get_attribute(NUMBERING_ATTRIBUTE) for e in events if isinstance(e, HeadingStart)]


# === Labels ===


class TestFormatLabel:
    """Tests for label rendering."""

    def test_dotted_with_trailing_dot(self) -> None:
        assert format_label([1, 2, 3]) == "1.2.3."

    def test_single(self) -> None:
        assert format_label([7]) == "7."

    def test_zero_counter(self) -> None:
        assert format_label([1, 0, 1]) == "1.0.1."

    def test_markup_carries_label(self) -> None:
        assert label_markup("1.2.") == '<span class="heading numbering">1.2.</span> '


# === NumberStack ===


class TestNumberStack:
    """Tests for the per-chapter counter state."""

    def test_seeded_from_copy(self) -> None:
        """The stack copies the chapter number and never mutates it."""
        number = [1, 2]
        stack = NumberStack(number)
        stack.enter(3)
        assert number == [1, 2]
        assert stack.values == [1, 2, 1]

    def test_chapter_depth_reuses_number(self) -> None:
        stack = NumberStack([3])
        assert stack.enter(1) == [3]
        assert stack.enter(1) == [3]

    def test_siblings_increment(self) -> None:
        stack = NumberStack([1])
        stack.enter(1)
        assert stack.enter(2) == [1, 1]
        assert stack.enter(2) == [1, 2]
        assert stack.enter(2) == [1, 3]

    def test_deeper_counters_reset(self) -> None:
        """Entering a new subtree starts its children from 1 again."""
        stack = NumberStack([1])
        stack.enter(2)
        stack.enter(3)
        stack.enter(3)
        assert stack.enter(2) == [1, 2]
        assert stack.enter(3) == [1, 2, 1]

    def test_skipped_level_pads_with_zero(self) -> None:
        stack = NumberStack([1])
        stack.enter(1)
        assert stack.enter(3) == [1, 0, 1]

    def test_depth_zero_invalid(self) -> None:
        with pytest.raises(ValueError):
            NumberStack([1]).enter(0)

    def test_resolve_depth_consecutive(self) -> None:
        stack = NumberStack([1, 2])
        assert stack.resolve_depth(1, NumberingStyle.consecutive) == 1
        assert stack.resolve_depth(3, NumberingStyle.consecutive) == 3

    def test_resolve_depth_top(self) -> None:
        stack = NumberStack([1, 2])
        assert stack.resolve_depth(1, NumberingStyle.top) == 2
        assert stack.resolve_depth(2, NumberingStyle.top) == 3

    def test_str_and_label(self) -> None:
        stack = NumberStack([4, 1])
        assert str(stack) == "4.1."
        assert stack.label == "4.1."
        assert len(stack) == 2


# === transduce() ===


class TestTransduce:
    """Tests for labeling the headings of one chapter."""

    def test_single_heading(self) -> None:
        result, diagnostics = _run(_headings(1), [1])
        assert _labels(result) == ["1."]
        assert diagnostics == []

    def test_two_subheadings(self) -> None:
        result, diagnostics = _run(_headings(1, 2, 2), [1])
        assert _labels(result) == ["1.", "1.1.", "1.2."]
        assert diagnostics == []

    def test_top_style_nested_chapter(self) -> None:
        result, diagnostics = _run(_headings(1, 2, 2), [1, 2], NumberingStyle.top)
        assert _labels(result) == ["1.2.", "1.2.1.", "1.2.2."]
        assert diagnostics == []

    def test_consecutive_style_nested_chapter(self) -> None:
        result, diagnostics = _run(_headings(2, 3, 3), [1, 2])
        assert _labels(result) == ["1.2.", "1.2.1.", "1.2.2."]
        assert diagnostics == []

    def test_deeper_tree(self) -> None:
        result, _ = _run(_headings(1, 2, 3, 3, 2, 3), [2])
        assert _labels(result) == ["2.", "2.1.", "2.1.1.", "2.1.2.", "2.2.", "2.2.1."]

    def test_skipped_level(self) -> None:
        """A `###` right after `#` is numbered best-effort and reported."""
        result, diagnostics = _run(_headings(1, 3), [1])
        assert _labels(result) == ["1.", "1.0.1."]
        assert len(diagnostics) == 1
        diagnostic = diagnostics[0]
        assert diagnostic.kind == DiagnosticKind.heading_skip
        assert diagnostic.chapter == "Chapter 1"
        assert str(diagnostic) == (
            'Heading level 3 found, but only 1 levels in numbering "1." for chapter "Chapter 1".'
        )

    def test_shallow_heading_suggests_top_style(self) -> None:
        result, diagnostics = _run(_headings(1), [1, 2])
        assert [d.kind for d in diagnostics] == [DiagnosticKind.shallow_heading]
        assert 'numbering-style = "top"' in diagnostics[0].message
        assert '"1.2."' in diagnostics[0].message
        # Numbered best-effort at the heading's own depth
        assert _labels(result) == ["1."]

    def test_shallow_heading_not_reported_for_top_style(self) -> None:
        _, diagnostics = _run(_headings(1, 2), [1, 2], NumberingStyle.top)
        assert diagnostics == []

    def test_label_follows_heading_start(self) -> None:
        """The visible label is the first thing inside the heading."""
        result, _ = _run(_headings(1), [3])
        assert isinstance(result[0], HeadingStart)
        assert result[1] == InlineMarkup('<span class="heading numbering">3.</span> ')
        assert result[2] == Text("Heading 1")
        assert result[3] == HeadingEnd(1)

    def test_attribute_and_markup_agree(self) -> None:
        result, _ = _run(_headings(1, 2, 3), [5])
        for i, event in enumerate(result):
            if isinstance(event, HeadingStart):
                label = event.get_attribute(NUMBERING_ATTRIBUTE)
                assert label is not None
                assert result[i + 1] == InlineMarkup(label_markup(label))

    def test_existing_attributes_kept(self) -> None:
        events: list[Event] = [HeadingStart(1, (("id", "intro"),)), Text("Intro"), HeadingEnd(1)]
        result, _ = _run(events, [1])
        start = result[0]
        assert isinstance(start, HeadingStart)
        assert start.attributes == (("id", "intro"), (NUMBERING_ATTRIBUTE, "1."))

    def test_other_events_untouched(self) -> None:
        events = _headings(1, 2)
        result, _ = _run(events, [1])
        assert [e for e in result if not isinstance(e, (HeadingStart, InlineMarkup))] == [
            e for e in events if not isinstance(e, HeadingStart)
        ]

    def test_disabled_passes_through(self) -> None:
        events = _headings(1, 3)
        result, diagnostics = _run(events, [1], enabled=False)
        assert result == events
        assert diagnostics == []

    def test_unnumbered_chapter_gets_marker_only(self) -> None:
        events = _headings(1, 2)
        result, diagnostics = _run(events, None)
        assert diagnostics == []
        assert not any(isinstance(e, InlineMarkup) for e in result)
        starts = [e for e in result if isinstance(e, HeadingStart)]
        assert [s.attributes for s in starts] == [((NUMBERING_ATTRIBUTE, None),)] * 2

    def test_fresh_state_per_call(self) -> None:
        """No numbering state leaks from one chapter to the next."""
        first, _ = _run(_headings(1, 2, 2), [1])
        second, _ = _run(_headings(1, 2), [2])
        assert _labels(first) == ["1.", "1.1.", "1.2."]
        assert _labels(second) == ["2.", "2.1."]

    def test_lazy(self) -> None:
        """Diagnostics are emitted as the stream is consumed."""
        diagnostics: list[Diagnostic] = []
        stream = transduce(
            _headings(1, 3), [1], NumberingStyle.consecutive, True, diagnostics.append, "c"
        )
        assert diagnostics == []
        list(stream)
        assert len(diagnostics) == 1
