"""
Semantic explanation source interface.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Dict, List

from schema_scout.errors import ExplanationError
from schema_scout.models import (
    FieldContext,
    FieldExplanation,
    RelatedField,
    Table,
    TableExplanation,
    TableRelationship,
)


class SemanticSource(ABC):
    """
    Anything that can attach business meaning to columns and tables.

    Each operation may fail independently; failures are raised as
    ExplanationError and the caller degrades instead of aborting.
    """

    name = "semantic"

    @abstractmethod
    def explain_batch(self, contexts: List[FieldContext]) -> Dict[str, FieldExplanation]:
        """Explain a batch of columns. Returns column id -> explanation (may be partial)."""

    @abstractmethod
    def explain_table_meaning(self, table: Table) -> TableExplanation:
        """Explain what a table holds."""

    @abstractmethod
    def infer_table_relationships(self, tables: List[Table]) -> List[TableRelationship]:
        """Suggest table-to-table relationships."""

    def infer_custom_field(self, column_name: str, related: List[RelatedField]) -> FieldExplanation:
        """Explain a custom column from the known columns it references."""
        raise ExplanationError(f"{self.name} source cannot infer custom fields")

    def close(self) -> None:
        """Release network resources, if any."""
