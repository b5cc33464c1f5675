"""
The mdbook preprocessor: walks a book and numbers each chapter.

Per chapter, the content goes through

    tokenize -> transduce (heading labels) -> inject (assets) -> render

Chapters are independent. Diagnostics from all of them go to one sink, and a
chapter that cannot be rendered is reported and left as it was, without stopping
the rest of the book.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping, Sequence
from typing import Any, cast

from mdbook_numbering.assets import inject
from mdbook_numbering.book import Book, Chapter
from mdbook_numbering.config import (
    PREPROCESSOR_NAME,
    NumberingConfig,
    get_config,
    preprocessor_table,
)
from mdbook_numbering.errors import ConfigError, ProtocolError, SerializationError
from mdbook_numbering.markdown import MarkdownChapter
from mdbook_numbering.numbering import Diagnostic, DiagnosticKind, DiagnosticSink, transduce

logger = logging.getLogger(__name__)

KATEX_NAME = "katex"


def process_chapter_content(
    content: str,
    number: Sequence[int] | None,
    config: NumberingConfig,
    emit: DiagnosticSink,
    name: str = "",
) -> str:
    """
    Number the headings of one chapter's Markdown and append its assets.

    Raises:
        SerializationError: If the rewritten chapter cannot be rendered.
    """
    if not config.heading.enable and not config.code.enable:
        return content

    style = config.heading.numbering_style
    chapter = MarkdownChapter.parse(content)
    events = chapter.events()
    events = transduce(events, number, style, config.heading.enable, emit, name)
    events = inject(
        events,
        code_enabled=config.code.enable,
        heading_enabled=config.heading.enable,
        style=style,
        base_number_len=len(number) if number is not None else 0,
    )
    return chapter.render(events)


def _names(table: Mapping[str, Any] | None, key: str) -> frozenset[str]:
    if table is None:
        return frozenset()
    value = table.get(key)
    if not isinstance(value, list):
        return frozenset()
    return frozenset(name for name in cast(list[Any], value) if isinstance(name, str))


def check_ordering(
    config: NumberingConfig,
    katex_table: Mapping[str, Any] | None,
    emit: DiagnosticSink,
) -> None:
    """
    Warn if mdbook-katex is enabled but may run after this preprocessor.

    Re-rendering a chapter can alter math syntax, so math has to be typeset first.
    This only advises; mdbook decides the actual order.
    """
    if katex_table is None:
        return
    runs_after_katex = KATEX_NAME in config.after or PREPROCESSOR_NAME in _names(
        katex_table, "before"
    )
    runs_before_katex = KATEX_NAME in config.before or PREPROCESSOR_NAME in _names(
        katex_table, "after"
    )
    if runs_after_katex and not runs_before_katex:
        return
    emit(
        Diagnostic(
            DiagnosticKind.ordering,
            "mdbook-katex is enabled, but mdbook-numbering is not configured to run after it. "
            'Add `after = ["katex"]` to `[preprocessor.numbering]` so that math is '
            "rendered before headings are numbered.",
        )
    )


class NumberingPreprocessor:
    """mdbook preprocessor adding numbering to headings and code blocks."""

    name = PREPROCESSOR_NAME

    def __init__(self, emit: DiagnosticSink):
        self.emit = emit

    def supports_renderer(self, renderer: str) -> bool:
        # Labels and assets are plain Markdown and HTML, fine for every renderer.
        return True

    def load_config(self, book_config: Mapping[str, Any]) -> NumberingConfig:
        def on_error(error: ConfigError) -> None:
            self.emit(
                Diagnostic(
                    DiagnosticKind.config,
                    f"Using default config for mdbook-numbering due to config error: {error}",
                )
            )

        return get_config(book_config, on_error)

    def process_chapter(self, chapter: Chapter, config: NumberingConfig) -> None:
        """
        Rewrite one chapter in place. Drafts are skipped.

        A chapter that cannot be numbered is reported and left as it was.
        """
        if chapter.is_draft:
            logger.debug("Skipping draft chapter %r", chapter.name)
            return

        try:
            number = chapter.number
            logger.debug("Processing chapter %r (number=%s)", chapter.name, number)
            chapter.content = process_chapter_content(
                chapter.content, number, config, self.emit, chapter.name
            )
        except ProtocolError as e:
            self.emit(
                Diagnostic(
                    DiagnosticKind.protocol,
                    f'Chapter "{chapter.name}" left unchanged: {e}',
                    chapter.name,
                )
            )
        except SerializationError as e:
            self.emit(
                Diagnostic(
                    DiagnosticKind.serialization,
                    f'Chapter "{chapter.name}" left unchanged: {e}',
                    chapter.name,
                )
            )

    def run(self, context: Mapping[str, Any], book: Book) -> Book:
        """Process every chapter of the book, in place. Returns the same book."""
        raw_config = context.get("config")
        book_config = cast(Mapping[str, Any], raw_config) if isinstance(raw_config, Mapping) else {}

        config = self.load_config(book_config)
        logger.debug("Using config: %s", config)
        check_ordering(config, preprocessor_table(book_config, KATEX_NAME), self.emit)

        for chapter in book.chapters():
            self.process_chapter(chapter, config)
        return book


def parse_input(text: str) -> tuple[dict[str, Any], Book]:
    """
    Parse the `[context, book]` pair mdbook writes to a preprocessor's stdin.

    Raises:
        ProtocolError: If the input is not such a pair.
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ProtocolError(f"Input is not valid JSON: {e}") from e
    if not isinstance(data, list) or len(cast(list[Any], data)) != 2:
        raise ProtocolError("Input must be a JSON array of [context, book]")
    context, book = cast(list[Any], data)
    if not isinstance(context, dict):
        raise ProtocolError("Preprocessor context must be a JSON object")
    return cast(dict[str, Any], context), Book.from_json(book)
