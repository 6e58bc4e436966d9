"""
Relationship Inferrer - scores candidate foreign keys between tables.

Every non-key column is compared with every primary-key column of every other
table. Three independent signals are combined into the edge confidence:

1. Column naming similarity (weight 0.3)
2. Data type compatibility (weight 0.2)
3. Sampled value containment (weight 0.5)

Value containment is an approximation: the sampled values of the candidate
column are matched against the ten most frequent values of the key column
only. Keys with high cardinality and no skew are therefore underestimated,
which trades recall for a bounded number of sampling queries.
"""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from typing import Callable, Dict, List, Optional, Set, Tuple, Union

from schema_scout.config import (
    TYPE_CLOSE_LENGTH_SCORE,
    TYPE_COMPATIBLE_SCORE,
    TYPE_EXACT_LENGTH_SCORE,
    InferenceConfig,
    type_families,
)
from schema_scout.errors import MetadataUnavailableError, StatsSamplingError
from schema_scout.graph import Edge, EdgeKind, Evidence, SchemaGraph, edge_id
from schema_scout.metadata.base import MetadataProvider
from schema_scout.models import Column, ColumnStats, ForeignKey, SkippedItem, Table, column_id
from schema_scout.utils.cancellation import CancellationToken

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]

# Hungarian-style type prefix used by the ERP schemas this tool targets (cInvCode)
NAME_PREFIX = "c"

_StatsKey = Tuple[str, str, int]


def levenshtein(a: str, b: str) -> int:
    """Edit distance between two strings."""
    if a == "" or b == "":
        return max(len(a), len(b))

    previous = list(range(len(b) + 1))
    for i in range(1, len(a) + 1):
        current = [i] + [0] * len(b)
        for j in range(1, len(b) + 1):
            cost = 0 if a[i - 1] == b[j - 1] else 1
            current[j] = min(
                previous[j] + 1,
                current[j - 1] + 1,
                previous[j - 1] + cost,
            )
        previous = current

    return previous[len(b)]


class RelationshipInferrer:
    """
    Infers foreign-key candidates from metadata and sampled statistics.

    Column statistics are cached for the duration of one
    infer_relationships() call and discarded afterwards.
    """

    def __init__(
        self,
        provider: Optional[MetadataProvider] = None,
        config: Optional[InferenceConfig] = None,
        graph: Optional[SchemaGraph] = None,
        cancel_token: Optional[CancellationToken] = None,
        progress: Optional[ProgressCallback] = None,
    ):
        """
        Args:
            provider: Source of column statistics (containment is skipped without one)
            config: Weights and thresholds
            graph: When given, accepted edges are upserted as soon as they are found
            cancel_token: Checked at every comparison
            progress: Called with (completed, total) at the progress cadence
        """
        self.provider = provider
        self.config = config or InferenceConfig()
        self.graph = graph
        self.cancel_token = cancel_token
        self.progress = progress
        self.skipped: List[SkippedItem] = []
        self._string_types, self._integer_types = type_families(self.config)
        self._stats_cache: Dict[_StatsKey, Union[ColumnStats, StatsSamplingError]] = {}

    def infer_relationships(self, tables: List[Table]) -> List[Edge]:
        """
        Score all (non-key column, other table's key column) pairs.

        Returns:
            Accepted edges in comparison order
        """
        self.skipped = []
        self._stats_cache = {}
        edges: List[Edge] = []

        pairs = list(self._candidate_pairs(tables))
        total = len(pairs)
        logger.info(f"Analyzing relationships across {len(tables)} tables ({total} column comparisons)")

        try:
            if self.provider is not None and self.config.max_workers > 1:
                self._prefetch_stats(pairs)

            for completed, (from_table, from_col, to_table, to_col) in enumerate(pairs, start=1):
                if self.cancel_token is not None:
                    self.cancel_token.check()

                edge = self.calculate_relationship(from_table, from_col, to_table, to_col)
                if edge is not None:
                    edges.append(edge)
                    if self.graph is not None:
                        self.graph.add_edge(edge)

                if completed % self.config.progress_every == 0:
                    logger.info(f"Progress: {completed / total:.1%} ({completed}/{total})")
                    if self.progress:
                        self.progress(completed, total)
        finally:
            self._stats_cache = {}

        if self.progress and total:
            self.progress(total, total)
        logger.info(f"Found {len(edges)} inferred relationships ({len(self.skipped)} columns skipped)")
        return edges

    def _candidate_pairs(self, tables: List[Table]):
        for from_table in tables:
            for from_col in from_table.columns:
                if from_col.is_primary_key:
                    continue
                for to_table in tables:
                    if to_table.name == from_table.name:
                        continue
                    for to_col in to_table.columns:
                        if to_col.is_primary_key:
                            yield from_table.name, from_col, to_table.name, to_col

    def calculate_relationship(
        self,
        from_table: str,
        from_col: Column,
        to_table: str,
        to_col: Column,
    ) -> Optional[Edge]:
        """Combine the three signals for one column pair; None when rejected."""
        cfg = self.config
        evidence: List[Evidence] = []
        total_score = 0.0

        name_score = self.name_similarity(from_col.name, to_col.name)
        if name_score > cfg.name_evidence_min:
            evidence.append(Evidence(
                kind="naming_similarity",
                score=name_score,
                description="Column name similarity",
                details=f"{from_col.name} <-> {to_col.name} ({name_score:.2f})",
            ))
            total_score += name_score * cfg.naming_weight

        type_score = self.type_match(from_col, to_col)
        if type_score > 0:
            evidence.append(Evidence(
                kind="type_match",
                score=type_score,
                description="Data type match",
                details=(
                    f"{from_col.data_type}({from_col.length}) <-> "
                    f"{to_col.data_type}({to_col.length})"
                ),
            ))
            total_score += type_score * cfg.type_weight

        containment = self.value_containment(from_table, from_col.name, to_table, to_col.name)
        if containment is not None and containment > cfg.containment_evidence_min:
            evidence.append(Evidence(
                kind="value_containment",
                score=containment,
                description="Value containment",
                details=f"{containment:.1%} of sampled values found in target top values",
            ))
            total_score += containment * cfg.containment_weight

        if not evidence or total_score <= cfg.acceptance_threshold:
            return None

        return Edge(
            id=edge_id(from_table, to_table, from_col.name, to_col.name),
            kind=EdgeKind.INFERRED_FOREIGN_KEY,
            from_id=column_id(from_table, from_col.name),
            to_id=column_id(to_table, to_col.name),
            confidence=min(1.0, total_score),
            evidence=evidence,
            from_table=from_table,
            from_column=from_col.name,
            to_table=to_table,
            to_column=to_col.name,
        )

    def name_similarity(self, name1: str, name2: str) -> float:
        """
        Naming similarity in [0, 1].

        Names are lower-cased; the leading type prefix is stripped when both
        names carry it, so cDepCode/cDepCode compare as depcode while
        cDepCode/DepCode compare as a containment match.

        A one-sided prefix is kept, so cInvCode/InvCode scores 0.8 rather than
        1.0. The check runs after lower-casing, so a leading capital C counts
        as the prefix too: Code/cCode strips to ode/code and scores 0.8.
        """
        n1 = name1.lower()
        n2 = name2.lower()
        if n1.startswith(NAME_PREFIX) and n2.startswith(NAME_PREFIX):
            n1 = n1[len(NAME_PREFIX):]
            n2 = n2[len(NAME_PREFIX):]

        if n1 == n2:
            return 1.0

        if n1 and n2 and (n1 in n2 or n2 in n1):
            return 0.8

        max_len = max(len(n1), len(n2))
        if max_len == 0:
            return 0.0

        similarity = 1.0 - levenshtein(n1, n2) / max_len
        if similarity > self.config.name_similarity_floor:
            return similarity
        return 0.0

    def type_match(self, col1: Column, col2: Column) -> float:
        """Type compatibility score; 0 when the types are incompatible."""
        if not self.is_type_compatible(col1.data_type, col2.data_type):
            return 0.0

        if col1.length > 0 and col2.length > 0:
            if col1.length == col2.length:
                return TYPE_EXACT_LENGTH_SCORE
            ratio = min(col1.length, col2.length) / max(col1.length, col2.length)
            if ratio > self.config.length_ratio_min:
                return TYPE_CLOSE_LENGTH_SCORE

        return TYPE_COMPATIBLE_SCORE

    def is_type_compatible(self, type1: str, type2: str) -> bool:
        t1 = type1.lower()
        t2 = type2.lower()

        if t1 == t2:
            return True
        if t1 in self._string_types and t2 in self._string_types:
            return True
        if t1 in self._integer_types and t2 in self._integer_types:
            return True
        return False

    def value_containment(
        self,
        from_table: str,
        from_col: str,
        to_table: str,
        to_col: str,
    ) -> Optional[float]:
        """
        Frequency-weighted share of sampled values found among the key's top values.

        Returns None when either side could not be sampled.
        """
        if self.provider is None:
            return None

        from_stats = self._get_stats(from_table, from_col, self.config.from_sample_size)
        if from_stats is None:
            return None
        to_stats = self._get_stats(to_table, to_col, self.config.key_sample_size)
        if to_stats is None:
            return None

        to_values: Set[str] = {v.value for v in to_stats.top_values}

        match_count = 0
        total_count = 0
        for v in from_stats.top_values:
            total_count += v.count
            if v.value in to_values:
                match_count += v.count

        if total_count == 0:
            return 0.0
        return match_count / total_count

    def _get_stats(self, table: str, column: str, sample_size: int) -> Optional[ColumnStats]:
        key = (table, column, sample_size)
        if key not in self._stats_cache:
            self._stats_cache[key] = self._sample(table, column, sample_size)
        result = self._stats_cache[key]
        return None if isinstance(result, StatsSamplingError) else result

    def _sample(self, table: str, column: str, sample_size: int) -> Union[ColumnStats, StatsSamplingError]:
        try:
            return self.provider.sample_column_stats(table, column, sample_size)
        except MetadataUnavailableError:
            raise
        except Exception as e:
            return self._sampling_failed(table, column, e)

    def _sampling_failed(self, table: str, column: str, error: Exception) -> StatsSamplingError:
        logger.warning(f"Sampling {table}.{column} failed, skipping containment: {error}")
        self.skipped.append(SkippedItem(
            stage="relationships",
            item=column_id(table, column),
            reason=str(error),
        ))
        return StatsSamplingError(table, column, str(error))

    def _prefetch_stats(self, pairs: List[Tuple[str, Column, str, Column]]) -> None:
        """Sample every needed column on a bounded thread pool."""
        keys: List[_StatsKey] = []
        seen: Set[_StatsKey] = set()
        for from_table, from_col, to_table, to_col in pairs:
            for key in (
                (from_table, from_col.name, self.config.from_sample_size),
                (to_table, to_col.name, self.config.key_sample_size),
            ):
                if key not in seen:
                    seen.add(key)
                    keys.append(key)

        logger.debug(f"Prefetching {len(keys)} column samples with {self.config.max_workers} workers")
        executor = ThreadPoolExecutor(max_workers=self.config.max_workers)
        futures: Dict[Future, _StatsKey] = {
            executor.submit(self.provider.sample_column_stats, *key): key for key in keys
        }
        try:
            for future in as_completed(futures):
                if self.cancel_token is not None:
                    self.cancel_token.check()
                table, column, _ = key = futures[future]
                try:
                    self._stats_cache[key] = future.result()
                except MetadataUnavailableError:
                    raise
                except Exception as e:
                    self._stats_cache[key] = self._sampling_failed(table, column, e)
        finally:
            executor.shutdown(wait=False, cancel_futures=True)


def declared_foreign_key_edges(foreign_keys: List[ForeignKey]) -> List[Edge]:
    """Edges for catalog-declared foreign keys."""
    edges = []
    for fk in foreign_keys:
        edges.append(Edge(
            id=edge_id(fk.from_table, fk.to_table, fk.from_column, fk.to_column),
            kind=EdgeKind.FOREIGN_KEY,
            from_id=column_id(fk.from_table, fk.from_column),
            to_id=column_id(fk.to_table, fk.to_column),
            confidence=1.0,
            evidence=[Evidence(
                kind="catalog_constraint",
                score=1.0,
                description="Declared foreign key constraint",
                details=f"{fk.from_table}.{fk.from_column} -> {fk.to_table}.{fk.to_column}",
            )],
            from_table=fk.from_table,
            from_column=fk.from_column,
            to_table=fk.to_table,
            to_column=fk.to_column,
        ))
    return edges
