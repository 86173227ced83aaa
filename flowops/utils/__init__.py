"""Shared utilities."""

from flowops.utils.datetime_utils import as_utc, to_iso, utcnow

__all__ = ["as_utc", "to_iso", "utcnow"]
