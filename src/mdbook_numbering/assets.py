"""
Static presentation assets appended to chapters.

The script and style sources ship as package data under `assets/`. They are read
once per process and shared read-only afterwards.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from functools import cache
from importlib.resources import files

from mdbook_numbering.events import Event, InlineMarkup
from mdbook_numbering.numbering import NumberingStyle


@dataclass(frozen=True)
class AssetFragments:
    """HTML fragments ready to be appended to a chapter."""

    line_numbers_script: str
    line_numbers_style: str
    numbering_style: str
    print_hide_style: str


def read_asset(name: str) -> str:
    """Read an asset file from package data."""
    return files("mdbook_numbering").joinpath(f"assets/{name}").read_text(encoding="utf-8")


def _script(source: str) -> str:
    return f"<script defer>\n{source.strip()}\n</script>\n"


def _style(source: str) -> str:
    return f"<style>\n{source.strip()}\n</style>\n"


@cache
def get_fragments() -> AssetFragments:
    """
    Get the process-wide fragments, loaded on first use. Concurrent first calls may
    each load them, which is harmless: the result is immutable and always the same.
    """
    return AssetFragments(
        line_numbers_script=_script(read_asset("line-numbers.js")),
        line_numbers_style=_style(read_asset("line-numbers.css")),
        numbering_style=_style(read_asset("numbering.css")),
        print_hide_style=_style(read_asset("hide.css")),
    )


def tail_fragments(
    code_enabled: bool,
    heading_enabled: bool,
    style: NumberingStyle,
    base_number_len: int,
) -> list[str]:
    """
    The fragments a chapter needs, in order.

    - Line numbering for code blocks, when `code_enabled`.
    - Label styling, when heading numbering is on and the chapter is numbered.
    - A print rule hiding unlabeled headings, for chapters nested below the top
      level under the consecutive style, where print output brings its own
      top-level numbering.
    """
    fragments = get_fragments()
    result: list[str] = []
    if code_enabled:
        result.append(fragments.line_numbers_script)
        result.append(fragments.line_numbers_style)
    if heading_enabled and base_number_len > 0:
        result.append(fragments.numbering_style)
        if style == NumberingStyle.consecutive and base_number_len > 1:
            result.append(fragments.print_hide_style)
    return result


def inject(
    events: Iterable[Event],
    code_enabled: bool,
    heading_enabled: bool,
    style: NumberingStyle,
    base_number_len: int,
) -> Iterator[Event]:
    """Pass the stream through, then append the asset fragments at its tail."""
    yield from events
    for fragment in tail_fragments(code_enabled, heading_enabled, style, base_number_len):
        yield InlineMarkup(fragment)
