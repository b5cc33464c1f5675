"""Tests for CLI help text."""

from __future__ import annotations

import pytest

from mdbook_numbering.cli import main


def _render_help(capsys: pytest.CaptureFixture[str], *args: str) -> str:
    """Run `mdbook-numbering [args] --help` and return captured stdout."""
    with pytest.raises(SystemExit) as exc:
        main([*args, "--help"])
    assert exc.value.code == 0
    return capsys.readouterr().out


def test_help_includes_tagline(capsys: pytest.CaptureFixture[str]) -> None:
    out = _render_help(capsys)
    assert "mdbook-numbering: heading and code line numbering for mdbook" in out


def test_help_includes_usage(capsys: pytest.CaptureFixture[str]) -> None:
    """Help output should show both the book.toml setup and standalone use."""
    out = _render_help(capsys)
    assert "[preprocessor.numbering]" in out
    assert "mdbook-numbering render src/chapter_1.md --number 1" in out
    assert "MDBOOK_NUMBERING_LOG=DEBUG" in out


def test_help_lists_subcommands(capsys: pytest.CaptureFixture[str]) -> None:
    out = _render_help(capsys)
    assert "supports" in out
    assert "render" in out


def test_render_help(capsys: pytest.CaptureFixture[str]) -> None:
    out = _render_help(capsys, "render")
    assert "--number" in out
    assert "--inplace" in out
    assert "--config" in out
