"""Shared helpers."""

from src.utils.timestamps import ensure_utc_aware, utcnow


__all__ = ["ensure_utc_aware", "utcnow"]
