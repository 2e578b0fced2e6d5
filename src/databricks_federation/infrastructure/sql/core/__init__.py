"""Core SQL utilities package."""

from .identifier import (
    QUOTE_CHAR,
    RESERVED_WORDS,
    is_reserved_word,
    needs_quoting,
    qualify_table,
    quote_identifier,
)
from .literals import format_literal, format_string_literal

__all__ = [
    "QUOTE_CHAR",
    "RESERVED_WORDS",
    "format_literal",
    "format_string_literal",
    "is_reserved_word",
    "needs_quoting",
    "qualify_table",
    "quote_identifier",
]
