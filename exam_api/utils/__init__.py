"""Utility modules."""
from exam_api.utils.time_utils import ensure_utc, isoformat_or_none, now_utc

__all__ = [
    "ensure_utc",
    "isoformat_or_none",
    "now_utc",
]
