"""
Schema Scout - Evidence-based documentation of unfamiliar relational databases

Infers which columns act as foreign keys, which tables are small code/lookup
tables and what business meaning columns carry, using only what schema
introspection and sampled statistics expose.

Features:
- Relationship inference from naming, type and sampled value evidence
- Enum/code table detection
- Rule-based and AI (DashScope) column explanations merged by confidence
- Oracle, SQLAlchemy and offline sample-file metadata providers
- JSON graph snapshot, Markdown data dictionary and Mermaid ER diagram output
"""

__version__ = "0.1.0"
__author__ = "Schema Scout Team"

from schema_scout.config import ScanConfig
from schema_scout.discovery import (
    EnumDetector,
    HybridAnalyzer,
    RelationshipInferrer,
    ScanReport,
    SchemaScan,
)
from schema_scout.graph import Edge, EdgeKind, Evidence, Node, NodeKind, SchemaGraph
from schema_scout.metadata import (
    MetadataProvider,
    OracleMetadataProvider,
    SampleFileProvider,
    SQLAlchemyMetadataProvider,
)
from schema_scout.models import (
    Column,
    ColumnStats,
    EnumTableCandidate,
    FieldExplanation,
    Table,
)
from schema_scout.render import render_markdown, render_mermaid

__all__ = [
    # Models
    "Column",
    "Table",
    "ColumnStats",
    "FieldExplanation",
    "EnumTableCandidate",
    # Graph
    "SchemaGraph",
    "Node",
    "NodeKind",
    "Edge",
    "EdgeKind",
    "Evidence",
    # Discovery
    "RelationshipInferrer",
    "EnumDetector",
    "HybridAnalyzer",
    "SchemaScan",
    "ScanReport",
    "ScanConfig",
    # Metadata
    "MetadataProvider",
    "OracleMetadataProvider",
    "SQLAlchemyMetadataProvider",
    "SampleFileProvider",
    # Rendering
    "render_markdown",
    "render_mermaid",
]
