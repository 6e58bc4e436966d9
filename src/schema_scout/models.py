"""
Core data models for the schema_scout package.

Defines the metadata delivered by providers, the sampled column statistics,
the semantic explanation records and the findings produced by the inference
stages.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from schema_scout.config import CUSTOM_EXACT_NAMES, CUSTOM_PREFIXES


class SourceKind(str, Enum):
    """Where a column explanation came from."""
    RULE_BASED = "rule_based"
    AI_STANDARD = "ai_standard"
    AI_INFERRED = "ai_inferred"
    RELATION = "relation"


@dataclass
class Column:
    """Metadata for a single column as exposed by introspection."""
    name: str
    data_type: str
    length: int = 0
    nullable: bool = True
    is_primary_key: bool = False
    default_value: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "name": self.name,
            "data_type": self.data_type,
            "length": self.length,
            "nullable": self.nullable,
            "is_primary_key": self.is_primary_key,
            "default_value": self.default_value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Column:
        """Create from dictionary."""
        return cls(
            name=data["name"],
            data_type=data.get("data_type", ""),
            length=int(data.get("length") or 0),
            nullable=data.get("nullable", True),
            is_primary_key=data.get("is_primary_key", False),
            default_value=data.get("default_value"),
        )


@dataclass
class Table:
    """Metadata for a database table."""
    name: str
    schema: Optional[str] = None
    columns: List[Column] = field(default_factory=list)

    @property
    def full_name(self) -> str:
        """Return schema-qualified table name."""
        return f"{self.schema}.{self.name}" if self.schema else self.name

    @property
    def column_names(self) -> List[str]:
        return [c.name for c in self.columns]

    def get_column(self, name: str) -> Optional[Column]:
        """Get column by name (case-insensitive)."""
        name_lower = name.lower()
        for col in self.columns:
            if col.name.lower() == name_lower:
                return col
        return None

    def get_pk_columns(self) -> List[Column]:
        return [c for c in self.columns if c.is_primary_key]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "name": self.name,
            "schema": self.schema,
            "columns": [c.to_dict() for c in self.columns],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Table:
        """Create from dictionary."""
        return cls(
            name=data["name"],
            schema=data.get("schema"),
            columns=[Column.from_dict(c) for c in data.get("columns", [])],
        )


@dataclass
class Index:
    """A secondary index."""
    table: str
    name: str
    columns: List[str] = field(default_factory=list)
    unique: bool = False


@dataclass
class ForeignKey:
    """A foreign key constraint declared in the catalog."""
    from_table: str
    from_column: str
    to_table: str
    to_column: str


@dataclass
class SchemaMetadata:
    """Everything introspection returned for one schema."""
    tables: List[Table] = field(default_factory=list)
    indexes: List[Index] = field(default_factory=list)

    def get_table(self, name: str) -> Optional[Table]:
        """Get table by name (case-insensitive)."""
        name_lower = name.lower()
        for table in self.tables:
            if table.name.lower() == name_lower:
                return table
        return None


@dataclass
class ValueCount:
    """Frequency of one sampled value."""
    value: str
    count: int


@dataclass
class ColumnStats:
    """
    Point-in-time sample of a column.

    top_values holds at most ten entries, most frequent first.
    """
    total_rows: int = 0
    null_count: int = 0
    distinct_count: int = 0
    top_values: List[ValueCount] = field(default_factory=list)
    min_value: Optional[str] = None
    max_value: Optional[str] = None

    @property
    def null_ratio(self) -> float:
        return self.null_count / self.total_rows if self.total_rows else 0.0

    @property
    def distinct_rate(self) -> float:
        return self.distinct_count / self.total_rows if self.total_rows else 0.0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "total_rows": self.total_rows,
            "null_count": self.null_count,
            "distinct_count": self.distinct_count,
            "top_values": [{"value": v.value, "count": v.count} for v in self.top_values],
            "min_value": self.min_value,
            "max_value": self.max_value,
        }


@dataclass
class FieldExplanation:
    """Business meaning attached to one column."""
    column_name: str
    localized_name: str = ""
    description: str = ""
    business_meaning: str = ""
    confidence: float = 0.0
    source: SourceKind = SourceKind.RULE_BASED
    semantic_type: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "column_name": self.column_name,
            "localized_name": self.localized_name,
            "description": self.description,
            "business_meaning": self.business_meaning,
            "confidence": self.confidence,
            "source": self.source.value,
            "semantic_type": self.semantic_type,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> FieldExplanation:
        """Create from dictionary."""
        return cls(
            column_name=data.get("column_name", ""),
            localized_name=data.get("localized_name", ""),
            description=data.get("description", ""),
            business_meaning=data.get("business_meaning", ""),
            confidence=float(data.get("confidence", 0.0)),
            source=SourceKind(data.get("source", SourceKind.RULE_BASED.value)),
            semantic_type=data.get("semantic_type"),
        )


@dataclass
class TableExplanation:
    """Business meaning attached to one table."""
    table_name: str
    localized_name: str = ""
    description: str = ""
    business_meaning: str = ""
    confidence: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "table_name": self.table_name,
            "localized_name": self.localized_name,
            "description": self.description,
            "business_meaning": self.business_meaning,
            "confidence": self.confidence,
        }


@dataclass
class TableRelationship:
    """Table-to-table relationship with no column component."""
    from_table: str
    to_table: str
    relation_type: str = "one_to_many"
    description: str = ""
    confidence: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "from_table": self.from_table,
            "to_table": self.to_table,
            "relation_type": self.relation_type,
            "description": self.description,
            "confidence": self.confidence,
        }


@dataclass
class FieldContext:
    """A column submitted to a semantic source for explanation."""
    table_name: str
    column_name: str
    data_type: str = ""
    stats: Optional[ColumnStats] = None

    @property
    def column_id(self) -> str:
        return column_id(self.table_name, self.column_name)


@dataclass
class RelatedField:
    """A known column that a custom column was found to reference."""
    table_name: str
    column_name: str
    localized_name: str
    relation: str
    confidence: float


@dataclass
class EnumTableCandidate:
    """A small table that looks like a code/lookup table."""
    name: str
    row_count: int
    key_column: str
    value_column: Optional[str]
    confidence: float
    referenced_by: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "name": self.name,
            "row_count": self.row_count,
            "key_column": self.key_column,
            "value_column": self.value_column,
            "confidence": self.confidence,
            "referenced_by": list(self.referenced_by),
        }


@dataclass
class SkippedItem:
    """An item a stage could not process; the scan carried on without it."""
    stage: str
    item: str
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        return {"stage": self.stage, "item": self.item, "reason": self.reason}


def column_id(table: str, column: str) -> str:
    """Node id of a column."""
    return f"{table}.{column}"


def is_custom_field(
    column_name: str,
    prefixes: Sequence[str] = CUSTOM_PREFIXES,
    exact_names: Sequence[str] = CUSTOM_EXACT_NAMES,
) -> bool:
    """
    True for user-extension slots with no fixed meaning.

    cFree1-10 and cDefine1-37 are free/defined extension columns; ufts is the
    row timestamp added by the ERP. Matching is case-insensitive.
    """
    lower = column_name.lower()
    if any(lower.startswith(p.lower()) for p in prefixes):
        return True
    return lower in {n.lower() for n in exact_names}
