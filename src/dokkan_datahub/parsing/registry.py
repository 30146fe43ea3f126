"""Type registry and parser engine.

The registry is the single owner of parser state and the single place where
field-level type coercion happens. A parser is replaced wholesale, never
patched, whether it comes from static configuration or was learned from
sample records.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from dokkan_datahub.core.exceptions import ConfigurationError, ParseFieldError
from dokkan_datahub.core.models import DataType, FieldType, NormalizedRecord
from dokkan_datahub.parsing.transforms import (
    COERCIONS,
    TYPE_DEFAULTS,
    Transform,
    infer_field_type,
    parse_datetime,
    utcnow,
)

logger = logging.getLogger(__name__)

DEFAULT_CACHE_TTL_MS = 3_600_000

# A field seen in at least this share of samples is required
REQUIRED_FIELD_RATIO = 0.75

# Defaults keyed by field semantics, checked before the parser's type tags
FIELD_DEFAULTS: dict[str, Callable[[], Any]] = {
    "id": lambda: "0",
    "name": lambda: "Unknown",
    "title": lambda: "Unknown",
    "description": lambda: "",
    "startDate": utcnow,
    "endDate": utcnow,
    "type": lambda: "Unknown",
    "rarity": lambda: "N",
    "card_id": lambda: "0",
    "atk": lambda: 0,
    "def": lambda: 0,
    "hp": lambda: 0,
    "stages": list,
    "missions": list,
    "items": list,
}


@dataclass(frozen=True)
class Parser:
    """Required fields, per-field transformations, and per-field type tags."""

    required_fields: tuple[str, ...] = ()
    transformations: Mapping[str, Transform] = field(default_factory=dict)
    field_types: Mapping[str, FieldType] = field(default_factory=dict)

    @classmethod
    def for_types(
        cls,
        field_types: Mapping[str, FieldType],
        required_fields: Iterable[str] = (),
        overrides: Mapping[str, Transform] | None = None,
    ) -> Parser:
        """Build a parser whose transformations follow the type tags."""
        transformations: dict[str, Transform] = {
            name: COERCIONS[ftype] for name, ftype in field_types.items()
        }
        transformations.update(overrides or {})
        return cls(
            required_fields=tuple(required_fields),
            transformations=transformations,
            field_types=dict(field_types),
        )

    def default_for(self, field_name: str) -> Any:
        """Type-appropriate value for a missing required field."""
        if field_name in FIELD_DEFAULTS:
            return FIELD_DEFAULTS[field_name]()
        ftype = self.field_types.get(field_name)
        if ftype is not None:
            return TYPE_DEFAULTS[ftype]()
        return ""


DEFAULT_PARSER = Parser()


def _is_absent(record: Mapping[str, Any], field_name: str) -> bool:
    return record.get(field_name) is None


def as_records(raw: Any) -> list[Any]:
    """A single mapping is one record; lists and tuples are batches."""
    if raw is None:
        return []
    if isinstance(raw, Mapping):
        return [raw]
    if isinstance(raw, (list, tuple)):
        return list(raw)
    return [raw]


class TypeRegistry:
    """Per-type parsers and cache policies.

    Mutations (`register_type`, `register_parser`, `learn_parser`) are explicit
    calls and always logged; nothing on a read path adds types or parsers.
    """

    def __init__(self, default_cache_ttl_ms: int = DEFAULT_CACHE_TTL_MS) -> None:
        self._default_ttl = default_cache_ttl_ms
        self._types: dict[str, DataType] = {}
        self._parsers: dict[str, Parser] = {}

    # --- Data Types ---

    def register_type(self, name: str, cache_ttl_ms: int | None = None) -> DataType:
        data_type = DataType(
            name=name,
            cache_ttl_ms=cache_ttl_ms if cache_ttl_ms is not None else self._default_ttl,
        )
        self._types[name] = data_type
        logger.info("Registered data type %s (ttl=%dms)", name, data_type.cache_ttl_ms)
        return data_type

    def get_type(self, name: str) -> DataType:
        try:
            return self._types[name]
        except KeyError:
            raise ConfigurationError(
                f"Unknown data type: {name!r}",
                context={"data_type": name},
            ) from None

    def has_type(self, name: str) -> bool:
        return name in self._types

    def type_names(self) -> list[str]:
        return list(self._types)

    def cache_ttl_ms(self, name: str) -> int:
        data_type = self._types.get(name)
        return data_type.cache_ttl_ms if data_type else self._default_ttl

    @property
    def default_cache_ttl_ms(self) -> int:
        return self._default_ttl

    # --- Parsers ---

    def get_parser(self, data_type: str) -> Parser:
        return self._parsers.get(data_type, DEFAULT_PARSER)

    def has_parser(self, data_type: str) -> bool:
        return data_type in self._parsers

    def register_parser(self, data_type: str, parser: Parser) -> None:
        replaced = data_type in self._parsers
        self._parsers[data_type] = parser
        logger.info(
            "%s parser for %s (%d required fields, %d transformations)",
            "Replaced" if replaced else "Registered",
            data_type,
            len(parser.required_fields),
            len(parser.transformations),
        )

    def parse(
        self, data_type: str, raw_records: Any, source_id: str
    ) -> list[NormalizedRecord]:
        """Normalize raw records; see parse_with_errors()."""
        records, _ = self.parse_with_errors(data_type, raw_records, source_id)
        return records

    def parse_with_errors(
        self, data_type: str, raw_records: Any, source_id: str
    ) -> tuple[list[NormalizedRecord], list[ParseFieldError]]:
        """Backfill required fields and apply transformations to each record.

        Total: never drops or reorders records and never raises because of a
        bad record or a bad field. Inputs are not mutated.

        Returns:
            The normalized records and the field errors that were recovered.
        """
        parser = self.get_parser(data_type)
        records: list[NormalizedRecord] = []
        errors: list[ParseFieldError] = []
        backfilled = 0

        for index, raw in enumerate(as_records(raw_records)):
            record = dict(raw) if isinstance(raw, Mapping) else {"value": raw}

            for name in parser.required_fields:
                if _is_absent(record, name):
                    record[name] = parser.default_for(name)
                    backfilled += 1

            for name, transform in parser.transformations.items():
                if name not in record:
                    continue
                try:
                    record[name] = transform(record[name])
                except Exception as e:
                    err = ParseFieldError(
                        f"Transformation of {name!r} failed for {data_type} "
                        f"record {index} from {source_id}: {e}",
                        context={
                            "data_type": data_type,
                            "field": name,
                            "source": source_id,
                            "index": index,
                        },
                    )
                    logger.warning("%s", err)
                    errors.append(err)

            records.append(record)

        if backfilled:
            logger.info(
                "Backfilled %d missing required fields in %d %s records from %s",
                backfilled, len(records), data_type, source_id,
            )
        return records, errors

    def restore(
        self, data_type: str, records: list[NormalizedRecord]
    ) -> list[NormalizedRecord]:
        """Re-type date fields of records read back from the JSON cache."""
        date_fields = [
            name
            for name, ftype in self.get_parser(data_type).field_types.items()
            if ftype == FieldType.DATE
        ]
        if not date_fields:
            return records
        restored: list[NormalizedRecord] = []
        for record in records:
            copy = dict(record)
            for name in date_fields:
                value = copy.get(name)
                if isinstance(value, str):
                    parsed = parse_datetime(value)
                    if parsed is not None:
                        copy[name] = parsed
            restored.append(copy)
        return restored

    # --- Learning ---

    def learn_parser(self, data_type: str, sample_records: Any) -> Parser:
        """Synthesize and register a parser from sample records.

        A field is required when present in at least 75% of the samples. Its
        type comes from the first sample where it is present. Field order is
        first-seen order, so the result is deterministic for a given ordered
        sample.
        """
        samples = [
            s if isinstance(s, Mapping) else {"value": s}
            for s in as_records(sample_records)
        ]
        if not samples:
            logger.warning("Cannot learn parser for %s: no sample data", data_type)
            return DEFAULT_PARSER

        logger.info("Learning parser for %s from %d samples", data_type, len(samples))

        seen: dict[str, int] = {}
        field_types: dict[str, FieldType] = {}
        for sample in samples:
            for name in sample:
                seen.setdefault(name, 0)
        for sample in samples:
            for name in seen:
                if _is_absent(sample, name):
                    continue
                seen[name] += 1
                if name not in field_types:
                    field_types[name] = infer_field_type(sample[name])

        threshold = len(samples) * REQUIRED_FIELD_RATIO
        required = [name for name, count in seen.items() if count >= threshold]

        ordered_types = {name: field_types[name] for name in seen if name in field_types}
        parser = Parser.for_types(ordered_types, required_fields=required)
        self.register_parser(data_type, parser)
        logger.info(
            "Created parser for %s with %d required fields", data_type, len(required)
        )
        return parser
