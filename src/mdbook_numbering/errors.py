"""Exceptions raised by mdbook-numbering."""


class NumberingError(Exception):
    """Base exception for mdbook-numbering operations."""


class ConfigError(NumberingError):
    """The `[preprocessor.numbering]` table could not be interpreted."""


class SerializationError(NumberingError):
    """A rewritten event stream could not be rendered back to Markdown."""


class ProtocolError(NumberingError):
    """The input handed over by mdbook could not be parsed."""
