"""Upstream source adapters.

Adding a new source:
1. Implement ``SourceAdapter`` (or subclass ``HttpSource``).
2. Add it to ``SOURCE_FACTORIES`` under the id used in configuration.
"""

from dokkan_datahub.sources.base import RawRecord, SourceAdapter
from dokkan_datahub.sources.dokkaninfo import DokkanInfoSource
from dokkan_datahub.sources.fandom import FandomSource
from dokkan_datahub.sources.http import HttpSource

SOURCE_FACTORIES = {
    "fandom": FandomSource,
    "dokkanInfo": DokkanInfoSource,
}

__all__ = [
    "DokkanInfoSource",
    "FandomSource",
    "HttpSource",
    "RawRecord",
    "SOURCE_FACTORIES",
    "SourceAdapter",
]
