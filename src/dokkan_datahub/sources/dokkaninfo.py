"""DokkanInfo adapter (HTML listings parsed with BeautifulSoup)."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any

from bs4 import BeautifulSoup, Tag

from dokkan_datahub.sources.base import RawRecord
from dokkan_datahub.sources.http import HttpSource

logger = logging.getLogger(__name__)


def _text(el: Tag, selector: str) -> str:
    found = el.select_one(selector)
    return found.get_text(strip=True) if found else ""


def _card_previews(soup: BeautifulSoup) -> list[RawRecord]:
    return [
        {
            "id": el.get("data-card-id", ""),
            "name": _text(el, ".preview-name"),
            "type": _text(el, ".preview-type"),
        }
        for el in soup.select(".card-preview")
    ]


def _event_items(soup: BeautifulSoup) -> list[RawRecord]:
    records: list[RawRecord] = []
    for el in soup.select(".event-item"):
        record: RawRecord = {
            "title": _text(el, ".event-name"),
            "date": _text(el, ".event-date"),
            "description": _text(el, ".event-desc"),
        }
        if el.get("data-start"):
            record["startDate"] = el["data-start"]
        if el.get("data-end"):
            record["endDate"] = el["data-end"]
        records.append(record)
    return records


def _data_records(soup: BeautifulSoup) -> list[RawRecord]:
    """Generic listing: one `[data-record]` element per record."""
    records: list[RawRecord] = []
    for el in soup.select("[data-record]"):
        record: RawRecord = {
            attr[len("data-") :]: value
            for attr, value in el.attrs.items()
            if attr.startswith("data-") and attr != "data-record"
        }
        for child in el.select("[data-field]"):
            record[child["data-field"]] = child.get_text(strip=True)
        records.append(record)
    return records


class DokkanInfoSource(HttpSource):
    """Scrapes the listing page mapped to each data type."""

    DEFAULT_CATEGORIES: Mapping[str, str] = {
        "cards": "cards",
        "events": "events",
        "ezas": "ezas",
        "dokkanEvents": "dokkan-events",
        "storyEvents": "story-events",
        "missions": "missions",
        "items": "items",
    }

    _EXTRACTORS: Mapping[str, Callable[[BeautifulSoup], list[RawRecord]]] = {
        "cards": _card_previews,
        "events": _event_items,
    }

    async def fetch(
        self, data_type: str, params: Mapping[str, Any] | None = None
    ) -> list[RawRecord]:
        params = dict(params or {})
        limit = params.pop("limit", None)
        url = f"{self.base_url}/{self.category_for(data_type).lstrip('/')}"
        html = await self._get_text(url, params=params or None)
        soup = BeautifulSoup(html, "html.parser")
        extractor = self._EXTRACTORS.get(data_type, _data_records)
        records = extractor(soup)
        logger.debug("DokkanInfo returned %d %s records", len(records), data_type)
        if limit is not None:
            records = records[: int(limit)]
        return records
