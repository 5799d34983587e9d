"""Smart input parsing package."""

from willow.parsing.smart_input import (
    ParsedInput,
    parse_date_from_text,
    parse_smart_input,
    suggest_emoji,
)

__all__ = [
    "ParsedInput",
    "parse_date_from_text",
    "parse_smart_input",
    "suggest_emoji",
]
