"""dokkan-datahub: multi-source aggregation cache for Dokkan Battle game data."""

__version__ = "0.1.0"
