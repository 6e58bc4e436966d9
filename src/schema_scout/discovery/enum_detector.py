"""
Enum Detector - flags small tables laid out like code/lookup tables.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Tuple

from schema_scout.config import EnumConfig
from schema_scout.errors import MetadataUnavailableError
from schema_scout.graph import Edge
from schema_scout.metadata.base import MetadataProvider
from schema_scout.models import Column, EnumTableCandidate, SkippedItem, Table
from schema_scout.utils.cancellation import CancellationToken

logger = logging.getLogger(__name__)


class EnumDetector:
    """
    Scores tables on three bands:

    - row count (fewer rows score higher; tables above max_rows are skipped)
    - presence of a key column and a value column
    - column-count compactness
    """

    def __init__(
        self,
        provider: MetadataProvider,
        config: Optional[EnumConfig] = None,
        cancel_token: Optional[CancellationToken] = None,
    ):
        self.provider = provider
        self.config = config or EnumConfig()
        self.cancel_token = cancel_token
        self.skipped: List[SkippedItem] = []

    def detect_enum_tables(
        self,
        tables: List[Table],
        edges: Optional[List[Edge]] = None,
    ) -> List[EnumTableCandidate]:
        """
        Detect enum tables.

        Args:
            tables: Tables to inspect
            edges: Optional column-level edges; used to fill referenced_by

        Returns:
            Candidates whose confidence exceeds the threshold
        """
        self.skipped = []
        referrers = self._referrers(edges or [])
        candidates: List[EnumTableCandidate] = []

        for table in tables:
            if self.cancel_token is not None:
                self.cancel_token.check()

            try:
                row_count = self.provider.estimate_row_count(table.name)
            except MetadataUnavailableError:
                raise
            except Exception as e:
                logger.warning(f"Row count for {table.name} unavailable, skipping: {e}")
                self.skipped.append(SkippedItem(stage="enums", item=table.name, reason=str(e)))
                continue

            if row_count > self.config.max_rows:
                continue

            if self.config.require_compact and len(table.columns) > self.config.max_compact_columns:
                logger.debug(f"{table.name} has {len(table.columns)} columns, not an enum table")
                continue

            key_col, value_col = self.find_enum_columns(table.columns)
            if key_col is None:
                continue

            confidence = self.calculate_confidence(table, row_count, key_col, value_col)
            if confidence > self.config.threshold:
                candidate = EnumTableCandidate(
                    name=table.name,
                    row_count=row_count,
                    key_column=key_col,
                    value_column=value_col,
                    confidence=confidence,
                    referenced_by=sorted(referrers.get(table.name, [])),
                )
                logger.debug(f"Enum candidate {table.name} ({confidence:.2f})")
                candidates.append(candidate)

        logger.info(f"Detected {len(candidates)} enum tables")
        return candidates

    def find_enum_columns(self, columns: List[Column]) -> Tuple[Optional[str], Optional[str]]:
        """First column matching a key pattern and first matching a value pattern."""
        key_col: Optional[str] = None
        value_col: Optional[str] = None

        for col in columns:
            name = col.name.lower()
            if key_col is None and any(p in name for p in self.config.key_patterns):
                key_col = col.name
            if value_col is None and any(p in name for p in self.config.value_patterns):
                value_col = col.name

        return key_col, value_col

    def calculate_confidence(
        self,
        table: Table,
        row_count: int,
        key_col: Optional[str],
        value_col: Optional[str],
    ) -> float:
        cfg = self.config
        score = 0.0

        if row_count < cfg.small_rows:
            score += cfg.small_rows_score
        elif row_count < cfg.medium_rows:
            score += cfg.medium_rows_score
        else:
            score += cfg.large_rows_score

        if key_col and value_col:
            score += cfg.key_value_score
        elif key_col:
            score += cfg.key_only_score

        if len(table.columns) <= cfg.max_compact_columns:
            score += cfg.compact_score

        # Band sums such as 0.2 + 0.2 + 0.2 must compare equal to the threshold
        return min(1.0, round(score, 6))

    @staticmethod
    def _referrers(edges: List[Edge]) -> Dict[str, List[str]]:
        referrers: Dict[str, List[str]] = {}
        for edge in edges:
            if edge.is_column_level:
                referrers.setdefault(edge.to_table, []).append(edge.from_id)
        return referrers
