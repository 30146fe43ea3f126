"""Derived insights computed from aggregated data."""

from dokkan_datahub.insights.anniversary import (
    ANNIVERSARY_DATES,
    anniversary_status,
    predict_next_anniversary,
)

__all__ = ["ANNIVERSARY_DATES", "anniversary_status", "predict_next_anniversary"]
