"""
Scan pipeline - runs every inference stage over one evidence graph.

Order: introspection, profiling (table/column/index nodes), rule-based
seeding, relationship inference, declared foreign keys, enum detection and
the semantic merge. Only introspection can abort a scan; every other stage
records what it could not process and carries on. A cancelled scan keeps the
graph built so far.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from schema_scout.config import ScanConfig
from schema_scout.discovery.enum_detector import EnumDetector
from schema_scout.discovery.hybrid import HybridAnalyzer
from schema_scout.discovery.relationship_inferrer import (
    RelationshipInferrer,
    declared_foreign_key_edges,
)
from schema_scout.errors import MetadataUnavailableError, ScanCancelledError
from schema_scout.graph import (
    Edge,
    EdgeKind,
    Evidence,
    Node,
    NodeKind,
    NodeProperties,
    SchemaGraph,
    edge_id,
)
from schema_scout.metadata.base import MetadataProvider
from schema_scout.models import (
    EnumTableCandidate,
    FieldContext,
    FieldExplanation,
    SchemaMetadata,
    SkippedItem,
    Table,
    column_id,
    is_custom_field,
)
from schema_scout.semantics.base import SemanticSource
from schema_scout.semantics.rules import RuleBasedExplainer
from schema_scout.utils.cancellation import CancellationToken

logger = logging.getLogger(__name__)

StageProgress = Callable[[str, int, int], None]


class ScanStatus(str, Enum):
    COMPLETED = "completed"
    CANCELLED = "cancelled"


@dataclass
class ScanReport:
    """Counts reported for every scan, including degraded and cancelled ones."""
    status: ScanStatus = ScanStatus.COMPLETED
    table_count: int = 0
    column_count: int = 0
    relationship_count: int = 0  # inferred edges only; declared ones are in declared_fk_count
    declared_fk_count: int = 0
    enum_count: int = 0
    enum_candidates: List[EnumTableCandidate] = field(default_factory=list)
    skipped: List[SkippedItem] = field(default_factory=list)
    source_counts: Dict[str, int] = field(default_factory=dict)
    elapsed_seconds: float = 0.0
    cancel_reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "status": self.status.value,
            "table_count": self.table_count,
            "column_count": self.column_count,
            "relationship_count": self.relationship_count,
            "declared_fk_count": self.declared_fk_count,
            "enum_count": self.enum_count,
            "enum_candidates": [c.to_dict() for c in self.enum_candidates],
            "skipped": [s.to_dict() for s in self.skipped],
            "source_counts": dict(self.source_counts),
            "elapsed_seconds": round(self.elapsed_seconds, 3),
            "cancel_reason": self.cancel_reason,
        }


def index_node_id(table: str, index: str) -> str:
    return f"index:{table}.{index}"


class SchemaScan:
    """
    One scan over one metadata provider.

    The scan owns its graph; callers read it through scan.graph (for example
    export_snapshot()) during or after run().
    """

    def __init__(
        self,
        provider: MetadataProvider,
        config: Optional[ScanConfig] = None,
        semantic_source: Optional[SemanticSource] = None,
        cancel_token: Optional[CancellationToken] = None,
        progress: Optional[StageProgress] = None,
    ):
        self.provider = provider
        self.config = config or ScanConfig()
        self.semantic_source = semantic_source
        self.cancel_token = cancel_token or CancellationToken(timeout=self.config.timeout_seconds)
        self.progress = progress
        self.graph = SchemaGraph()
        self.metadata: Optional[SchemaMetadata] = None

    def _report_progress(self, stage: str, completed: int, total: int) -> None:
        if self.progress:
            self.progress(stage, completed, total)

    def run(self) -> ScanReport:
        """
        Run every stage.

        Raises:
            MetadataUnavailableError: The provider is unreachable or has no tables
        """
        start = time.monotonic()
        report = ScanReport()

        try:
            self.metadata = self._introspect()
            report.table_count = len(self.metadata.tables)
            report.column_count = sum(len(t.columns) for t in self.metadata.tables)

            contexts = self._build_nodes(self.metadata, report)
            baseline = self._seed_explanations(contexts)
            self._infer_relationships(self.metadata.tables, report)
            edges = [e for e in self.graph.edges() if e.is_column_level]
            report.enum_candidates = self._detect_enums(self.metadata.tables, edges, report)
            self._merge_semantics(self.metadata.tables, edges, baseline, contexts, report)
        except ScanCancelledError as e:
            report.status = ScanStatus.CANCELLED
            report.cancel_reason = str(e)
            logger.warning(f"Scan cancelled: {e}; keeping partial results")

        report.relationship_count = len(self.graph.edges(EdgeKind.INFERRED_FOREIGN_KEY))
        report.enum_count = len(report.enum_candidates)
        report.source_counts = self._source_counts()
        report.elapsed_seconds = time.monotonic() - start

        logger.info(
            f"Scan {report.status.value}: {report.table_count} tables, "
            f"{report.relationship_count} inferred relationships, {report.enum_count} enum tables "
            f"in {report.elapsed_seconds:.1f}s"
        )
        return report

    def _introspect(self) -> SchemaMetadata:
        logger.info("Reading schema metadata")
        try:
            metadata = self.provider.introspect_schema()
        except MetadataUnavailableError:
            raise
        except Exception as e:
            raise MetadataUnavailableError(f"Metadata provider failed: {e}") from e

        if not metadata.tables:
            raise MetadataUnavailableError("Metadata provider returned no tables")
        logger.info(f"Found {len(metadata.tables)} tables")
        return metadata

    def _build_nodes(self, metadata: SchemaMetadata, report: ScanReport) -> Dict[str, FieldContext]:
        """Add table, column and index nodes; returns column id -> profiled context."""
        contexts: Dict[str, FieldContext] = {}
        total = len(metadata.tables)

        for i, table in enumerate(metadata.tables, start=1):
            self.graph.add_node(Node(
                id=table.name,
                kind=NodeKind.TABLE,
                name=table.name,
                properties=NodeProperties(schema=table.schema, columns=table.column_names),
            ))

            for col in table.columns:
                self.cancel_token.check()
                cid = column_id(table.name, col.name)
                props = NodeProperties(
                    table=table.name,
                    data_type=col.data_type,
                    length=col.length,
                    nullable=col.nullable,
                    is_primary_key=col.is_primary_key,
                )
                ctx = FieldContext(table_name=table.name, column_name=col.name, data_type=col.data_type)

                try:
                    ctx.stats = self.provider.sample_column_stats(table.name, col.name, self.config.sample_size)
                    props.null_ratio = ctx.stats.null_ratio
                    props.distinct_rate = ctx.stats.distinct_rate
                except MetadataUnavailableError:
                    raise
                except Exception as e:
                    logger.warning(f"Profiling {cid} failed: {e}")
                    report.skipped.append(SkippedItem(stage="profile", item=cid, reason=str(e)))

                self.graph.add_node(Node(id=cid, kind=NodeKind.COLUMN, name=col.name, properties=props))
                contexts[cid] = ctx

            self._report_progress("profile", i, total)

        for index in metadata.indexes:
            self.graph.add_node(Node(
                id=index_node_id(index.table, index.name),
                kind=NodeKind.INDEX,
                name=index.name,
                properties=NodeProperties(table=index.table, columns=list(index.columns), unique=index.unique),
            ))

        logger.info(f"Profiled {len(contexts)} columns")
        return contexts

    def _seed_explanations(self, contexts: Dict[str, FieldContext]) -> Dict[str, FieldExplanation]:
        """Rule-based baseline for standard columns; custom columns are left to the semantic merge."""
        semantic = self.config.semantic
        explainer = RuleBasedExplainer(semantic)
        standard = [
            ctx for ctx in contexts.values()
            if not is_custom_field(ctx.column_name, semantic.custom_prefixes, semantic.custom_exact_names)
        ]
        baseline = explainer.explain_batch(standard)
        for cid, explanation in baseline.items():
            self.graph.annotate_column(cid, explanation)
        return baseline

    def _infer_relationships(self, tables: List[Table], report: ScanReport) -> None:
        inferrer = RelationshipInferrer(
            self.provider,
            self.config.inference,
            graph=self.graph,
            cancel_token=self.cancel_token,
            progress=lambda done, total: self._report_progress("relationships", done, total),
        )
        try:
            inferrer.infer_relationships(tables)
        finally:
            report.skipped.extend(inferrer.skipped)

        try:
            foreign_keys = self.provider.get_foreign_keys()
        except MetadataUnavailableError:
            raise
        except Exception as e:
            logger.warning(f"Reading declared foreign keys failed: {e}")
            report.skipped.append(SkippedItem(stage="relationships", item="foreign_keys", reason=str(e)))
            return

        for edge in declared_foreign_key_edges(foreign_keys):
            self.graph.add_edge(edge)
        report.declared_fk_count = len(foreign_keys)
        if foreign_keys:
            logger.info(f"Added {len(foreign_keys)} declared foreign keys")

    def _detect_enums(self, tables: List[Table], edges: List[Edge], report: ScanReport) -> List[EnumTableCandidate]:
        detector = EnumDetector(self.provider, self.config.enum, cancel_token=self.cancel_token)
        try:
            candidates = detector.detect_enum_tables(tables, edges)
        finally:
            report.skipped.extend(detector.skipped)

        for candidate in candidates:
            self.graph.annotate_table(candidate.name, enum_candidate=candidate)
        return candidates

    def _merge_semantics(
        self,
        tables: List[Table],
        edges: List[Edge],
        baseline: Dict[str, FieldExplanation],
        contexts: Dict[str, FieldContext],
        report: ScanReport,
    ) -> None:
        source = self.semantic_source or RuleBasedExplainer(self.config.semantic)
        logger.info(f"Merging explanations from {source.name} source")

        analyzer = HybridAnalyzer(self.config.semantic, cancel_token=self.cancel_token)
        enhanced = analyzer.analyze(tables, edges, source, baseline=baseline, contexts=contexts)
        report.skipped.extend(enhanced.skipped)

        for cid, explanation in enhanced.explanations().items():
            self.graph.annotate_column(cid, explanation)

        for table in enhanced.tables.values():
            if table.explanation is not None:
                self.graph.annotate_table(table.name, explanation=table.explanation)

        for rel in enhanced.table_relationships:
            self.graph.add_edge(Edge(
                id=edge_id(rel.from_table, rel.to_table),
                kind=EdgeKind.DEPENDENCY,
                from_id=rel.from_table,
                to_id=rel.to_table,
                confidence=rel.confidence,
                evidence=[Evidence(
                    kind="semantic_inference",
                    score=rel.confidence,
                    description=rel.description or "Suggested by semantic source",
                    details=rel.relation_type,
                )],
                from_table=rel.from_table,
                to_table=rel.to_table,
                properties={"relation_type": rel.relation_type},
            ))

    def _source_counts(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for node in self.graph.nodes(NodeKind.COLUMN):
            explanation = node.properties.explanation
            if explanation is not None:
                key = explanation.source.value
                counts[key] = counts.get(key, 0) + 1
        return counts
