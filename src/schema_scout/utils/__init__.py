"""Shared helpers."""

from schema_scout.utils.locking import ReadWriteLock
from schema_scout.utils.cancellation import CancellationToken

__all__ = ["ReadWriteLock", "CancellationToken"]
