"""Anniversary campaign detection from event listings."""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
from typing import Any

from dokkan_datahub.core.models import AnniversaryForecast, AnniversaryStatus, GameVersion
from dokkan_datahub.parsing.transforms import parse_datetime

_KEYWORD = "anniversary"
_DAY_SECONDS = 86_400

# Usual (month, day) the anniversary campaign starts, per release
ANNIVERSARY_DATES: dict[GameVersion, tuple[int, int]] = {
    GameVersion.JP: (1, 29),
    GameVersion.GLOBAL: (7, 7),
}


def _days_ceil(later: datetime, earlier: datetime) -> int:
    return math.ceil((later - earlier).total_seconds() / _DAY_SECONDS)


def _mentions_anniversary(event: Mapping[str, Any]) -> bool:
    for field in ("title", "description"):
        value = event.get(field)
        if isinstance(value, str) and _KEYWORD in value.lower():
            return True
    return False


def predict_next_anniversary(
    version: GameVersion | str, now: datetime | None = None
) -> AnniversaryForecast:
    """Expected start of the next anniversary (this year's if not yet passed)."""
    now = now or datetime.now(timezone.utc)
    month, day = ANNIVERSARY_DATES[GameVersion(str(version).lower())]
    expected = datetime(now.year, month, day, tzinfo=timezone.utc)
    if now > expected:
        expected = expected.replace(year=now.year + 1)
    return AnniversaryForecast(expected_date=expected, days_until=_days_ceil(expected, now))


def anniversary_status(
    events: Iterable[Mapping[str, Any]],
    version: GameVersion | str,
    now: datetime | None = None,
) -> AnniversaryStatus:
    """Classify the latest anniversary event as active, upcoming, or past.

    Only events whose title or description mentions "anniversary" and whose
    start date parses are considered. When the latest one is neither running
    nor upcoming, the status carries a forecast instead.
    """
    now = now or datetime.now(timezone.utc)
    version = GameVersion(str(version).lower())

    candidates: list[tuple[datetime, Mapping[str, Any]]] = []
    for event in events:
        if not isinstance(event, Mapping) or not _mentions_anniversary(event):
            continue
        start = parse_datetime(event.get("startDate"))
        if start is not None:
            candidates.append((start, event))

    if candidates:
        start, latest = max(candidates, key=lambda pair: pair[0])
        end = parse_datetime(latest.get("endDate"))
        if end is not None and start <= now <= end:
            return AnniversaryStatus(
                version=version,
                is_active=True,
                event=dict(latest),
                days_remaining=_days_ceil(end, now),
            )
        if now < start:
            return AnniversaryStatus(
                version=version,
                is_active=False,
                is_upcoming=True,
                event=dict(latest),
                days_until=_days_ceil(start, now),
            )

    return AnniversaryStatus(
        version=version,
        is_active=False,
        next_expected=predict_next_anniversary(version, now),
    )
