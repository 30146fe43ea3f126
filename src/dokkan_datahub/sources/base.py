"""Source adapter protocol: the fetch interface the engine consumes."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Protocol, runtime_checkable

RawRecord = dict[str, Any]


@runtime_checkable
class SourceAdapter(Protocol):
    """Fetches raw records of a data type from one upstream source.

    Adapters raise on failure and return an empty list when the source has
    nothing for the type. They never rate-limit themselves: spacing between
    requests is the orchestrator's job.
    """

    @property
    def name(self) -> str: ...

    async def fetch(
        self, data_type: str, params: Mapping[str, Any] | None = None
    ) -> list[RawRecord]: ...

    async def sample(self, data_type: str, limit: int) -> list[RawRecord]: ...

    async def available_data_types(self) -> list[str]: ...

    async def close(self) -> None: ...
