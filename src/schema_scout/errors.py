"""
Exception hierarchy for schema_scout.

Only metadata unavailability aborts a scan. Sampling and explanation failures
are caught by the stage that triggered them and recorded as skipped items.
"""

from __future__ import annotations


class SchemaScoutError(Exception):
    """Base class for all schema_scout errors."""


class MetadataUnavailableError(SchemaScoutError):
    """The metadata provider is unreachable or returned no tables."""


class StatsSamplingError(SchemaScoutError):
    """Sampling statistics for a single column failed."""

    def __init__(self, table: str, column: str, reason: str):
        super().__init__(f"Could not sample {table}.{column}: {reason}")
        self.table = table
        self.column = column
        self.reason = reason


class ExplanationError(SchemaScoutError):
    """A semantic source could not produce an explanation."""


class ScanCancelledError(SchemaScoutError):
    """The scan was cancelled or ran past its deadline."""


class ConfigError(SchemaScoutError):
    """Invalid configuration file or value."""
