#!/usr/bin/env python3
"""
mdbook-numbering: heading and code line numbering for mdbook

As an mdbook preprocessor (add to book.toml):
  [preprocessor.numbering]

Standalone, to preview the numbering of one chapter:
  mdbook-numbering render src/chapter_1.md --number 1
  mdbook-numbering render src/setup.md --number 2.1 --inplace

Set MDBOOK_NUMBERING_LOG=DEBUG for a trace of what is done per chapter.
"""

from __future__ import annotations

import argparse
import importlib.metadata
import json
import logging
import os
import sys
from pathlib import Path

from strif import atomic_output_file

from mdbook_numbering.config import find_book_toml, get_config, load_book_config
from mdbook_numbering.errors import ConfigError, NumberingError, ProtocolError
from mdbook_numbering.numbering import Diagnostic
from mdbook_numbering.preprocessor import (
    NumberingPreprocessor,
    parse_input,
    process_chapter_content,
)

logger = logging.getLogger(__name__)

PROG = "mdbook-numbering"


def _parse_number(value: str) -> list[int]:
    """Parse a chapter number like `1.2` or `1.2.`."""
    parts = value.strip().rstrip(".").split(".")
    try:
        numbers = [int(part) for part in parts]
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid chapter number: {value!r}") from None
    if any(n < 0 for n in numbers):
        raise argparse.ArgumentTypeError(f"invalid chapter number: {value!r}")
    return numbers


def _build_parser() -> argparse.ArgumentParser:
    # Use the module's docstring as the description
    module_doc = __doc__ or ""
    doc_parts = module_doc.split("\n\n")
    description = doc_parts[0]
    epilog = "\n\n".join(doc_parts[1:])

    parser = argparse.ArgumentParser(
        prog=PROG,
        description=description,
        epilog=epilog,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--log-level",
        default=os.getenv("MDBOOK_NUMBERING_LOG", "WARNING"),
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity, written to stderr (default: %(default)s)",
    )
    parser.add_argument(
        "--version",
        action="store_true",
        help="Show version information and exit",
    )
    sub = parser.add_subparsers(dest="command")

    supports_parser = sub.add_parser(
        "supports", help="Tell mdbook whether a renderer is supported (all are)"
    )
    supports_parser.add_argument("renderer", help="Renderer name, e.g. 'html'")

    render_parser = sub.add_parser("render", help="Number a single Markdown file")
    render_parser.add_argument("file", type=Path, help="Markdown file to number")
    render_parser.add_argument(
        "-n",
        "--number",
        type=_parse_number,
        default=None,
        help="Chapter number, e.g. '1.2' (default: treat the chapter as unnumbered)",
    )
    render_parser.add_argument(
        "--name", type=str, default=None, help="Chapter name used in warnings (default: file name)"
    )
    render_parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to book.toml (default: nearest book.toml above the file)",
    )
    render_parser.add_argument(
        "-o", "--output", type=str, default="-", help="Output file (use '-' for stdout)"
    )
    render_parser.add_argument(
        "-i", "--inplace", action="store_true", help="Edit the file in place (ignores --output)"
    )
    return parser


def _configure_logging(level: str) -> None:
    numeric_level = getattr(logging, level.upper(), logging.WARNING)
    # stdout carries the book for mdbook, so logs go to stderr.
    logging.basicConfig(
        level=numeric_level,
        format="%(name)s: [%(levelname)s] %(message)s",
        stream=sys.stderr,
        force=True,
    )


def _print_diagnostic(diagnostic: Diagnostic) -> None:
    print(f"{PROG}: {diagnostic}", file=sys.stderr)


def _run_preprocessor() -> int:
    """Read `[context, book]` from stdin, write the processed book to stdout."""
    try:
        context, book = parse_input(sys.stdin.read())
        NumberingPreprocessor(emit=_print_diagnostic).run(context, book)
    except ProtocolError as e:
        logger.debug("Bad input: %s", e)
        print("Unable to parse the input", file=sys.stderr)
        return 1

    json.dump(book.data, sys.stdout)
    return 0


def _render_file(args: argparse.Namespace) -> int:
    path: Path = args.file
    config_path: Path | None = args.config or find_book_toml(path.parent)
    book_config = load_book_config(config_path) if config_path else {}
    if config_path:
        logger.info("Using config from %s", config_path)

    def on_config_error(error: ConfigError) -> None:
        print(
            f"Using default config for {PROG} due to config error: {error}",
            file=sys.stderr,
        )

    config = get_config(book_config, on_config_error)
    content = path.read_text(encoding="utf-8")
    result = process_chapter_content(
        content, args.number, config, _print_diagnostic, args.name or path.stem
    )

    if args.inplace:
        with atomic_output_file(path) as tmp_path:
            Path(tmp_path).write_text(result, encoding="utf-8")
    elif args.output == "-":
        sys.stdout.write(result)
    else:
        Path(args.output).write_text(result, encoding="utf-8")
    return 0


def main(args: list[str] | None = None) -> int:
    """
    Main entry point for the mdbook-numbering CLI.

    Args:
        args: Command-line arguments (uses sys.argv if None)

    Returns:
        Exit code (0 for success, non-zero for errors)
    """
    opts = _build_parser().parse_args(args)
    _configure_logging(opts.log_level)

    if opts.version:
        try:
            version = importlib.metadata.version(PROG)
            print(f"v{version}")
        except importlib.metadata.PackageNotFoundError:
            print("unknown (package not installed)")
        return 0

    if opts.command == "supports":
        preprocessor = NumberingPreprocessor(emit=_print_diagnostic)
        return 0 if preprocessor.supports_renderer(opts.renderer) else 1

    if opts.command == "render":
        try:
            return _render_file(opts)
        except NumberingError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1
        except OSError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 2

    return _run_preprocessor()


if __name__ == "__main__":
    sys.exit(main())
