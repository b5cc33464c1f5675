"""
Configuration for mdbook-numbering.

Settings live in the `[preprocessor.numbering]` table of `book.toml`:

    [preprocessor.numbering]
    after = ["katex"]

    [preprocessor.numbering.heading]
    enable = true
    numbering-style = "consecutive"   # or "top"

    [preprocessor.numbering.code]
    enable = true

Parsing is tolerant of unknown keys: mdbook stores its own settings (`command`,
`renderers`, `optional`, ...) in the same table, and keys added by newer versions
are ignored. Values of the wrong type are errors; callers that must keep going fall
back to the defaults via `get_config()`.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, cast

from mdbook_numbering.errors import ConfigError
from mdbook_numbering.numbering import NumberingStyle

if sys.version_info >= (3, 11):
    import tomllib  # pyright: ignore[reportUnreachable]
else:
    import tomli as tomllib  # type: ignore[no-redef]  # pyright: ignore[reportUnreachable]

logger = logging.getLogger(__name__)

PREPROCESSOR_NAME = "numbering"

BOOK_CONFIG_FILENAME = "book.toml"


@dataclass(frozen=True)
class HeadingConfig:
    """`[preprocessor.numbering.heading]`"""

    enable: bool = True
    numbering_style: NumberingStyle = NumberingStyle.consecutive


@dataclass(frozen=True)
class CodeConfig:
    """`[preprocessor.numbering.code]`"""

    enable: bool = True


@dataclass(frozen=True)
class NumberingConfig:
    """
    The whole `[preprocessor.numbering]` table.

    `before` and `after` are mdbook's ordering lists: names of the preprocessors
    this one should run before or after.
    """

    heading: HeadingConfig = field(default_factory=HeadingConfig)
    code: CodeConfig = field(default_factory=CodeConfig)
    before: frozenset[str] = frozenset()
    after: frozenset[str] = frozenset()


# Mapping from TOML kebab-case keys to Python snake_case field names
_KEBAB_TO_SNAKE: dict[str, str] = {
    "numbering-style": "numbering_style",
}


def _snake(key: str) -> str:
    return _KEBAB_TO_SNAKE.get(key, key.replace("-", "_"))


def _known_items(data: Mapping[str, Any], cls: type, where: str) -> dict[str, Any]:
    """Keep the keys that name a field of `cls`, mapped to snake_case."""
    valid = {f.name for f in fields(cls)}
    result: dict[str, Any] = {}
    for key, value in data.items():
        snake_key = _snake(key)
        if snake_key in valid:
            result[snake_key] = value
        else:
            logger.debug("Ignoring unknown config key `%s.%s`", where, key)
    return result


def _expect_table(value: Any, where: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise ConfigError(f"`{where}` must be a table, got {value!r}")
    return cast(Mapping[str, Any], value)


def _expect_bool(value: Any, where: str) -> bool:
    if not isinstance(value, bool):
        raise ConfigError(f"`{where}` must be a boolean, got {value!r}")
    return value


def _parse_style(value: Any, where: str) -> NumberingStyle:
    try:
        return NumberingStyle(value)
    except ValueError:
        choices = ", ".join(f'"{s.value}"' for s in NumberingStyle)
        raise ConfigError(f"`{where}` must be one of {choices}, got {value!r}") from None


def _parse_names(value: Any, where: str) -> frozenset[str]:
    if isinstance(value, str) or not isinstance(value, list):
        raise ConfigError(f"`{where}` must be a list of preprocessor names, got {value!r}")
    names = cast(list[Any], value)
    if not all(isinstance(name, str) for name in names):
        raise ConfigError(f"`{where}` must be a list of preprocessor names, got {value!r}")
    return frozenset(cast(list[str], names))


def parse_config(data: Mapping[str, Any], where: str = "preprocessor.numbering") -> NumberingConfig:
    """
    Parse the `[preprocessor.numbering]` table.

    Raises:
        ConfigError: If a known key has a value of the wrong type.
    """
    items = _known_items(data, NumberingConfig, where)

    heading = HeadingConfig()
    if "heading" in items:
        heading_where = f"{where}.heading"
        heading_items = _known_items(
            _expect_table(items["heading"], heading_where), HeadingConfig, heading_where
        )
        heading = HeadingConfig(
            enable=_expect_bool(heading_items.get("enable", True), f"{heading_where}.enable"),
            numbering_style=_parse_style(
                heading_items.get("numbering_style", NumberingStyle.consecutive.value),
                f"{heading_where}.numbering-style",
            ),
        )

    code = CodeConfig()
    if "code" in items:
        code_where = f"{where}.code"
        code_items = _known_items(_expect_table(items["code"], code_where), CodeConfig, code_where)
        code = CodeConfig(enable=_expect_bool(code_items.get("enable", True), f"{code_where}.enable"))

    return NumberingConfig(
        heading=heading,
        code=code,
        before=_parse_names(items.get("before", []), f"{where}.before"),
        after=_parse_names(items.get("after", []), f"{where}.after"),
    )


def preprocessor_table(book_config: Mapping[str, Any], name: str) -> Mapping[str, Any] | None:
    """The `[preprocessor.<name>]` table of a book config, or None if absent."""
    preprocessors = book_config.get("preprocessor")
    if not isinstance(preprocessors, Mapping):
        return None
    table = cast(Mapping[str, Any], preprocessors).get(name)
    if not isinstance(table, Mapping):
        return None
    return cast(Mapping[str, Any], table)


def get_config(
    book_config: Mapping[str, Any], on_error: Callable[[ConfigError], None]
) -> NumberingConfig:
    """
    Read this preprocessor's settings from a whole book config.

    A malformed table is reported to `on_error` and the defaults are used instead.
    """
    table = preprocessor_table(book_config, PREPROCESSOR_NAME)
    if table is None:
        return NumberingConfig()
    try:
        return parse_config(table)
    except ConfigError as e:
        on_error(e)
        return NumberingConfig()


# === book.toml ===


def find_book_toml(start_dir: Path) -> Path | None:
    """
    Walk up from `start_dir` looking for `book.toml`. Returns the first found,
    or `None`.
    """
    current = start_dir.resolve()
    while True:
        candidate = current / BOOK_CONFIG_FILENAME
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break
        current = parent
    return None


def load_book_config(config_path: Path) -> dict[str, Any]:
    """
    Load a whole `book.toml` as a dict.

    Raises:
        ConfigError: If the file is not valid TOML.
    """
    try:
        return tomllib.loads(config_path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML in {config_path}: {e}") from e
