"""Structured store: table definitions, repositories and registry seeds."""

from .db_models import Base, utcnow_iso
from .repositories import SegmentRepository, TimelineRepository, refresh_timeline_totals
from .seed import seed_defaults

__all__ = [
    "Base",
    "utcnow_iso",
    "SegmentRepository",
    "TimelineRepository",
    "refresh_timeline_totals",
    "seed_defaults",
]
