"""Type registry and parser engine."""

from dokkan_datahub.parsing.builtin import BUILTIN_PARSERS
from dokkan_datahub.parsing.registry import (
    DEFAULT_PARSER,
    REQUIRED_FIELD_RATIO,
    Parser,
    TypeRegistry,
)

__all__ = [
    "BUILTIN_PARSERS",
    "DEFAULT_PARSER",
    "REQUIRED_FIELD_RATIO",
    "Parser",
    "TypeRegistry",
]
