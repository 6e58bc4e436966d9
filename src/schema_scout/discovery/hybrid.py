"""
Hybrid Analyzer - merges semantic explanations with relationship evidence.

Standard columns are explained in batches by a semantic source. Custom
extension columns (cFree*, cDefine*, ufts) have no fixed meaning and are
explained through the known columns they reference, falling back to a
decayed copy of the best related explanation when the source cannot help.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from schema_scout.config import SemanticConfig
from schema_scout.errors import ExplanationError, ScanCancelledError
from schema_scout.graph import Edge
from schema_scout.models import (
    FieldContext,
    FieldExplanation,
    RelatedField,
    SkippedItem,
    SourceKind,
    Table,
    TableExplanation,
    TableRelationship,
    column_id,
    is_custom_field,
)
from schema_scout.semantics.base import SemanticSource
from schema_scout.utils.cancellation import CancellationToken

logger = logging.getLogger(__name__)


@dataclass
class EnhancedColumn:
    name: str
    data_type: str
    is_custom: bool = False
    explanation: Optional[FieldExplanation] = None


@dataclass
class EnhancedTable:
    name: str
    columns: Dict[str, EnhancedColumn] = field(default_factory=dict)
    explanation: Optional[TableExplanation] = None


@dataclass
class EnhancedSchema:
    """Tables with their merged explanations plus the evidence that fed them."""
    tables: Dict[str, EnhancedTable] = field(default_factory=dict)
    relationships: List[Edge] = field(default_factory=list)
    table_relationships: List[TableRelationship] = field(default_factory=list)
    skipped: List[SkippedItem] = field(default_factory=list)

    def get_column(self, table: str, column: str) -> Optional[EnhancedColumn]:
        enhanced_table = self.tables.get(table)
        if enhanced_table is None:
            return None
        return enhanced_table.columns.get(column)

    def explanations(self) -> Dict[str, FieldExplanation]:
        """Column id -> retained explanation."""
        result = {}
        for table in self.tables.values():
            for col in table.columns.values():
                if col.explanation is not None:
                    result[column_id(table.name, col.name)] = col.explanation
        return result

    def source_counts(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for explanation in self.explanations().values():
            key = explanation.source.value
            counts[key] = counts.get(key, 0) + 1
        return counts


class HybridAnalyzer:
    """Evidence merge over one semantic source."""

    def __init__(
        self,
        config: Optional[SemanticConfig] = None,
        cancel_token: Optional[CancellationToken] = None,
    ):
        self.config = config or SemanticConfig()
        self.cancel_token = cancel_token

    def analyze(
        self,
        tables: List[Table],
        edges: List[Edge],
        source: SemanticSource,
        baseline: Optional[Dict[str, FieldExplanation]] = None,
        contexts: Optional[Dict[str, FieldContext]] = None,
    ) -> EnhancedSchema:
        """
        Build the enhanced schema.

        Args:
            tables: Introspected tables
            edges: Relationship edges (inferred and declared)
            source: Semantic source used for batches, tables and custom fields
            baseline: Column id -> explanation to start from
            contexts: Column id -> context carrying sampled statistics

        Returns:
            EnhancedSchema with one explanation retained per column
        """
        enhanced = EnhancedSchema(relationships=list(edges))
        baseline = baseline or {}
        contexts = contexts or {}

        standard_fields: List[FieldContext] = []
        custom_fields: List[FieldContext] = []

        for table in tables:
            enhanced_table = EnhancedTable(name=table.name)
            for col in table.columns:
                custom = is_custom_field(
                    col.name, self.config.custom_prefixes, self.config.custom_exact_names
                )
                enhanced_col = EnhancedColumn(name=col.name, data_type=col.data_type, is_custom=custom)
                cid = column_id(table.name, col.name)
                enhanced_col.explanation = baseline.get(cid)
                enhanced_table.columns[col.name] = enhanced_col

                ctx = contexts.get(cid) or FieldContext(
                    table_name=table.name, column_name=col.name, data_type=col.data_type
                )
                (custom_fields if custom else standard_fields).append(ctx)
            enhanced.tables[table.name] = enhanced_table

        self._explain_tables(tables, source, enhanced)
        self._infer_table_relationships(tables, source, enhanced)
        self._explain_standard_fields(standard_fields, source, enhanced)
        self._explain_custom_fields(custom_fields, source, enhanced)

        logger.info(
            f"Explained {len(enhanced.explanations())} columns "
            f"({len(standard_fields)} standard, {len(custom_fields)} custom)"
        )
        return enhanced

    def _check_cancelled(self) -> None:
        if self.cancel_token is not None:
            self.cancel_token.check()

    def _explain_tables(self, tables: List[Table], source: SemanticSource, enhanced: EnhancedSchema) -> None:
        for table in tables:
            self._check_cancelled()
            try:
                explanation = source.explain_table_meaning(table)
            except ScanCancelledError:
                raise
            except Exception as e:
                logger.warning(f"Table meaning for {table.name} failed: {e}")
                enhanced.skipped.append(SkippedItem(stage="semantics", item=table.name, reason=str(e)))
                continue
            enhanced.tables[table.name].explanation = explanation

    def _infer_table_relationships(
        self,
        tables: List[Table],
        source: SemanticSource,
        enhanced: EnhancedSchema,
    ) -> None:
        self._check_cancelled()
        try:
            enhanced.table_relationships = source.infer_table_relationships(tables)
        except ScanCancelledError:
            raise
        except Exception as e:
            logger.warning(f"Table relationship inference failed: {e}")
            enhanced.skipped.append(SkippedItem(stage="semantics", item="table_relationships", reason=str(e)))
            return
        for rel in enhanced.table_relationships:
            logger.debug(f"Table relationship {rel.from_table} -> {rel.to_table} ({rel.relation_type})")

    def _explain_standard_fields(
        self,
        fields: List[FieldContext],
        source: SemanticSource,
        enhanced: EnhancedSchema,
    ) -> None:
        if not fields:
            return

        batch_size = self.config.batch_size
        total_batches = (len(fields) + batch_size - 1) // batch_size
        logger.info(f"Explaining {len(fields)} standard columns in {total_batches} batches")

        for start in range(0, len(fields), batch_size):
            self._check_cancelled()
            batch = fields[start:start + batch_size]
            batch_num = start // batch_size + 1
            try:
                explanations = source.explain_batch(batch)
            except ScanCancelledError:
                raise
            except Exception as e:
                logger.warning(f"Batch {batch_num}/{total_batches} failed, skipping: {e}")
                enhanced.skipped.append(SkippedItem(
                    stage="semantics",
                    item=f"batch {batch_num}/{total_batches}",
                    reason=str(e),
                ))
                continue

            for ctx in batch:
                explanation = explanations.get(ctx.column_id)
                if explanation is not None:
                    self._assign(enhanced, ctx.table_name, ctx.column_name, explanation)
            logger.debug(f"Batch {batch_num}/{total_batches} done")

    def _explain_custom_fields(
        self,
        fields: List[FieldContext],
        source: SemanticSource,
        enhanced: EnhancedSchema,
    ) -> None:
        if fields:
            logger.info(f"Inferring {len(fields)} custom columns from relationships")
        for ctx in fields:
            self._check_cancelled()
            explanation = self.infer_custom_field_meaning(
                ctx.table_name, ctx.column_name, enhanced, source
            )
            self._assign(enhanced, ctx.table_name, ctx.column_name, explanation)

    def infer_custom_field_meaning(
        self,
        table_name: str,
        column_name: str,
        enhanced: EnhancedSchema,
        source: Optional[SemanticSource] = None,
    ) -> FieldExplanation:
        related = self.find_related_fields(table_name, column_name, enhanced)

        if not related:
            return FieldExplanation(
                column_name=column_name,
                localized_name="自定义字段",
                description="No relationship found",
                business_meaning="Needs confirmation from the business owner",
                confidence=self.config.placeholder_confidence,
                source=SourceKind.RELATION,
            )

        if source is not None:
            try:
                return source.infer_custom_field(column_name, related)
            except ExplanationError as e:
                logger.debug(f"Custom field inference for {table_name}.{column_name} degraded: {e}")
            except ScanCancelledError:
                raise
            except Exception as e:
                logger.warning(f"Custom field inference for {table_name}.{column_name} failed: {e}")
                enhanced.skipped.append(SkippedItem(
                    stage="semantics",
                    item=column_id(table_name, column_name),
                    reason=str(e),
                ))

        return self.generate_relation_explanation(column_name, related)

    def find_related_fields(
        self,
        table_name: str,
        column_name: str,
        enhanced: EnhancedSchema,
    ) -> List[RelatedField]:
        """Explained target columns of the edges leaving this column."""
        related = []
        for edge in enhanced.relationships:
            if not edge.is_column_level:
                continue
            if edge.from_table != table_name or edge.from_column != column_name:
                continue
            target = enhanced.get_column(edge.to_table, edge.to_column)
            if target is None or target.explanation is None:
                continue
            related.append(RelatedField(
                table_name=edge.to_table,
                column_name=edge.to_column,
                localized_name=target.explanation.localized_name,
                relation=edge.kind.value,
                confidence=edge.confidence,
            ))
        return related

    def generate_relation_explanation(self, column_name: str, related: List[RelatedField]) -> FieldExplanation:
        """Deterministic fallback: decayed copy of the best related field."""
        best = related[0]
        for rf in related:
            if rf.confidence > best.confidence:
                best = rf

        return FieldExplanation(
            column_name=column_name,
            localized_name=f"关联{best.localized_name}",
            description=f"Linked to {best.table_name}.{best.column_name}",
            business_meaning=f"Inferred from relationship: probably related to {best.localized_name}",
            confidence=best.confidence * self.config.relation_decay,
            source=SourceKind.RELATION,
        )

    @staticmethod
    def _assign(enhanced: EnhancedSchema, table: str, column: str, explanation: FieldExplanation) -> None:
        col = enhanced.get_column(table, column)
        if col is None:
            return
        if col.explanation is None or explanation.confidence > col.explanation.confidence:
            col.explanation = explanation
