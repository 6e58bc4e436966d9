"""
Metadata provider interface.

Inference stages never issue queries themselves; they only call the methods
below. Concrete providers wrap a database driver or a directory of sample
files.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import List

from schema_scout.models import ColumnStats, ForeignKey, SchemaMetadata

logger = logging.getLogger(__name__)

TOP_VALUES_LIMIT = 10


class MetadataProvider(ABC):
    """
    Capability interface every metadata source implements.

    Providers raise MetadataUnavailableError when the source itself is
    unreachable; any other exception from sample_column_stats or
    estimate_row_count is treated as a per-item failure by the callers.
    """

    @abstractmethod
    def introspect_schema(self) -> SchemaMetadata:
        """Return tables, columns and indexes of the configured schema."""

    @abstractmethod
    def estimate_row_count(self, table: str) -> int:
        """Return an estimated row count for a table."""

    @abstractmethod
    def sample_column_stats(self, table: str, column: str, sample_size: int) -> ColumnStats:
        """Sample a column and return its statistics with up to ten top values."""

    def get_foreign_keys(self) -> List[ForeignKey]:
        """Return declared foreign keys. Sources without constraints return []."""
        return []

    def connect(self) -> None:
        """Open the underlying connection, if any."""

    def close(self) -> None:
        """Release the underlying connection, if any."""

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
