"""
mdbook preprocessor adding hierarchical numbering to headings and line numbers
to code blocks.

Usage::

    from mdbook_numbering import NumberingConfig, process_chapter_content

    diagnostics = []
    text = process_chapter_content(
        "# Setup\n\n## Install\n", [2], NumberingConfig(), diagnostics.append, "Setup"
    )
"""

from mdbook_numbering.config import CodeConfig, HeadingConfig, NumberingConfig
from mdbook_numbering.numbering import (
    Diagnostic,
    DiagnosticKind,
    NumberingStyle,
    NumberStack,
    transduce,
)
from mdbook_numbering.preprocessor import NumberingPreprocessor, process_chapter_content

__all__ = [
    "CodeConfig",
    "Diagnostic",
    "DiagnosticKind",
    "HeadingConfig",
    "NumberStack",
    "NumberingConfig",
    "NumberingPreprocessor",
    "NumberingStyle",
    "process_chapter_content",
    "transduce",
]
