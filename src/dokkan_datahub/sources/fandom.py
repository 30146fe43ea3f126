"""Fandom wiki adapter (wikia.php JSON API)."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any

from dokkan_datahub.core.exceptions import TransientSourceError
from dokkan_datahub.sources.base import RawRecord
from dokkan_datahub.sources.http import HttpSource

logger = logging.getLogger(__name__)

_ENDPOINT = "/wikia.php"
_DEFAULT_LIMIT = 50


class FandomSource(HttpSource):
    """Lists wiki articles in the category mapped to each data type.

    Records carry `id`, `name`, `title`, `url`, and `updatedAt` (from the
    latest revision) so the freshness scorer has timestamps to work with.
    """

    DEFAULT_CATEGORIES: Mapping[str, str] = {
        "cards": "Cards",
        "events": "Events",
        "ezas": "Extreme Z-Awakening",
        "dokkanEvents": "Dokkan Events",
        "storyEvents": "Story Events",
        "missions": "Missions",
        "items": "Items",
    }

    async def get_data(self, controller: str, method: str, **params: Any) -> Any:
        """Call a wikia.php controller method and return the decoded JSON."""
        if not controller.endswith("Controller"):
            controller = f"{controller}Controller"
        query = {
            "controller": controller,
            "method": method,
            "format": "json",
            **{k: str(v) for k, v in params.items()},
        }
        return await self._get_json(f"{self.base_url}{_ENDPOINT}", params=query)

    async def fetch(
        self, data_type: str, params: Mapping[str, Any] | None = None
    ) -> list[RawRecord]:
        params = dict(params or {})
        limit = int(params.pop("limit", _DEFAULT_LIMIT))
        payload = await self.get_data(
            "ArticlesApi",
            "getList",
            category=self.category_for(data_type),
            limit=limit,
            expand=1,
            **params,
        )
        if not isinstance(payload, dict):
            raise TransientSourceError(
                f"Unexpected Fandom payload for {data_type}",
                context={"source": self.name, "data_type": data_type},
            )
        basepath = payload.get("basepath", self.base_url)
        items = payload.get("items") or []
        records = [_article_to_record(item, basepath) for item in items if isinstance(item, dict)]
        logger.debug("Fandom returned %d %s records", len(records), data_type)
        return records


def _article_to_record(item: dict[str, Any], basepath: str) -> RawRecord:
    title = str(item.get("title", "")).strip()
    record: RawRecord = {
        "id": str(item.get("id", "")),
        "name": title,
        "title": title,
        "url": f"{basepath}{item.get('url', '')}",
    }
    if item.get("abstract"):
        record["description"] = item["abstract"]
    revision = item.get("revision") or {}
    timestamp = revision.get("timestamp")
    if timestamp:
        try:
            record["updatedAt"] = datetime.fromtimestamp(
                int(timestamp), tz=timezone.utc
            ).isoformat()
        except (TypeError, ValueError, OverflowError):
            pass
    return record
