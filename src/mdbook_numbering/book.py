"""
Book and chapter model over mdbook's JSON representation.

mdbook hands a preprocessor its book as JSON:

    {"sections": [
        {"Chapter": {"name": "Intro", "content": "...", "number": [1],
                     "sub_items": [...], "path": "intro.md", ...}},
        "Separator",
        {"PartTitle": "Reference"}
    ], "__non_exhaustive": null}

Newer mdbook versions call the list `items`. The wrappers here read and write the
underlying dicts in place, so every key this package does not know about is passed
back to mdbook unchanged.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from typing import Any, Union, cast

from mdbook_numbering.errors import ProtocolError

_ITEM_KEYS = ("sections", "items")


@dataclass
class Chapter:
    """One chapter. Reads and writes go straight to mdbook's dict."""

    data: dict[str, Any]

    @property
    def name(self) -> str:
        return str(self.data.get("name", ""))

    @property
    def content(self) -> str:
        return str(self.data.get("content") or "")

    @content.setter
    def content(self, value: str) -> None:
        self.data["content"] = value

    @property
    def number(self) -> list[int] | None:
        """Position in the table of contents, outermost first. None if unnumbered."""
        number = self.data.get("number")
        if number is None:
            return None
        if not isinstance(number, list) or not all(
            isinstance(n, int) and n >= 0 for n in cast(list[Any], number)
        ):
            raise ProtocolError(f"Invalid number for chapter {self.name!r}: {number!r}")
        return list(cast(list[int], number))

    @property
    def path(self) -> str | None:
        return self.data.get("path")

    @property
    def is_draft(self) -> bool:
        """Draft chapters are listed in SUMMARY.md without a file."""
        return self.path is None

    @property
    def sub_items(self) -> list[Any]:
        return cast(list[Any], self.data.get("sub_items") or [])


@dataclass
class Separator:
    pass


@dataclass
class PartTitle:
    title: str


BookItem = Union[Chapter, Separator, PartTitle]


def parse_item(raw: Any) -> BookItem:
    if raw == "Separator":
        return Separator()
    if isinstance(raw, dict):
        item = cast(dict[str, Any], raw)
        if isinstance(item.get("Chapter"), dict):
            return Chapter(cast(dict[str, Any], item["Chapter"]))
        if "PartTitle" in item:
            return PartTitle(str(item["PartTitle"]))
    raise ProtocolError(f"Unrecognized book item: {raw!r}")


def walk_items(raw_items: Iterable[Any]) -> Iterator[BookItem]:
    """All book items depth-first, chapters before their sub-items."""
    for raw in raw_items:
        item = parse_item(raw)
        yield item
        if isinstance(item, Chapter):
            yield from walk_items(item.sub_items)


@dataclass
class Book:
    data: dict[str, Any]

    @classmethod
    def from_json(cls, obj: Any) -> Book:
        if not isinstance(obj, dict) or not any(key in obj for key in _ITEM_KEYS):
            raise ProtocolError("Book must be an object with a `sections` or `items` list")
        return cls(cast(dict[str, Any], obj))

    @property
    def raw_items(self) -> list[Any]:
        for key in _ITEM_KEYS:
            if key in self.data:
                items = self.data[key]
                if not isinstance(items, list):
                    raise ProtocolError(f"Book `{key}` must be a list")
                return cast(list[Any], items)
        return []

    def walk(self) -> Iterator[BookItem]:
        return walk_items(self.raw_items)

    def chapters(self) -> Iterator[Chapter]:
        for item in self.walk():
            if isinstance(item, Chapter):
                yield item
