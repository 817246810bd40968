"""Utility functions and helpers."""

from canton_analytics.utils.logging import setup_logging, get_logger
from canton_analytics.utils.time import (
    get_current_utc,
    to_utc,
    parse_timestamp,
    isoformat_z,
    difference_in_days,
)

__all__ = [
    "setup_logging",
    "get_logger",
    "get_current_utc",
    "to_utc",
    "parse_timestamp",
    "isoformat_z",
    "difference_in_days",
]
