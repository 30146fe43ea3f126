"""Parsers for the data types whose shape is known up front."""

from __future__ import annotations

from dokkan_datahub.core.models import FieldType
from dokkan_datahub.parsing.registry import Parser
from dokkan_datahub.parsing.transforms import strip_text, to_id, to_int

CARDS_PARSER = Parser.for_types(
    {
        "name": FieldType.STRING,
        "id": FieldType.STRING,
        "type": FieldType.STRING,
        "rarity": FieldType.STRING,
        "atk": FieldType.NUMBER,
        "def": FieldType.NUMBER,
        "hp": FieldType.NUMBER,
    },
    required_fields=("name", "id", "type", "rarity"),
    overrides={
        "name": strip_text,
        "id": to_id,
        "atk": to_int,
        "def": to_int,
        "hp": to_int,
    },
)

EVENTS_PARSER = Parser.for_types(
    {
        "title": FieldType.STRING,
        "description": FieldType.STRING,
        "startDate": FieldType.DATE,
        "endDate": FieldType.DATE,
    },
    required_fields=("title", "startDate", "endDate"),
)

EZAS_PARSER = Parser.for_types(
    {
        "name": FieldType.STRING,
        "card_id": FieldType.STRING,
        "stages": FieldType.ARRAY,
    },
    required_fields=("name", "card_id"),
)

BUILTIN_PARSERS: dict[str, Parser] = {
    "cards": CARDS_PARSER,
    "events": EVENTS_PARSER,
    "ezas": EZAS_PARSER,
}
