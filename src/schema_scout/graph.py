"""
Evidence graph for one scan.

Nodes are tables, columns, indexes and views; edges are declared or inferred
relationships carrying the evidence that justified them. The graph is owned by
a single scan and shared between the stages that fill it and the readers that
export it, so every access goes through one reader/writer lock.
"""

from __future__ import annotations

import copy
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from schema_scout.models import (
    EnumTableCandidate,
    FieldExplanation,
    TableExplanation,
)
from schema_scout.utils.locking import ReadWriteLock

logger = logging.getLogger(__name__)


class NodeKind(str, Enum):
    TABLE = "table"
    COLUMN = "column"
    INDEX = "index"
    VIEW = "view"


class EdgeKind(str, Enum):
    FOREIGN_KEY = "foreign_key"
    INFERRED_FOREIGN_KEY = "inferred_fk"
    DEPENDENCY = "dependency"
    ENUM_REFERENCE = "enum_reference"


@dataclass(frozen=True)
class Evidence:
    """One scored signal supporting an edge."""
    kind: str
    score: float
    description: str
    details: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "score": self.score,
            "description": self.description,
            "details": self.details,
        }


@dataclass
class NodeProperties:
    """
    Typed property record of a node.

    Fields that do not apply to a node kind stay None and are left out of the
    exported map. Later stages only ever add annotations; extra carries keys
    no field covers.
    """
    table: Optional[str] = None
    schema: Optional[str] = None
    data_type: Optional[str] = None
    length: Optional[int] = None
    nullable: Optional[bool] = None
    is_primary_key: Optional[bool] = None
    null_ratio: Optional[float] = None
    distinct_rate: Optional[float] = None
    row_count: Optional[int] = None
    columns: Optional[List[str]] = None
    unique: Optional[bool] = None
    explanation: Optional[FieldExplanation] = None
    table_explanation: Optional[TableExplanation] = None
    enum_candidate: Optional[EnumTableCandidate] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        for key in (
            "table", "schema", "data_type", "length", "nullable",
            "is_primary_key", "null_ratio", "distinct_rate", "row_count", "unique",
        ):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        if self.columns is not None:
            data["columns"] = list(self.columns)
        if self.explanation is not None:
            data["explanation"] = self.explanation.to_dict()
        if self.table_explanation is not None:
            data["table_explanation"] = self.table_explanation.to_dict()
        if self.enum_candidate is not None:
            data["enum_candidate"] = self.enum_candidate.to_dict()
        data.update(copy.deepcopy(self.extra))
        return data


@dataclass
class Node:
    id: str
    kind: NodeKind
    name: str
    properties: NodeProperties = field(default_factory=NodeProperties)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "name": self.name,
            "properties": self.properties.to_dict(),
        }


@dataclass
class Edge:
    """
    Relationship between two nodes.

    from_id/to_id are weak references: the node may not exist, which is the
    case for table-level relationships suggested by a semantic source.
    """
    id: str
    kind: EdgeKind
    from_id: str
    to_id: str
    confidence: float
    evidence: List[Evidence] = field(default_factory=list)
    from_table: str = ""
    from_column: Optional[str] = None
    to_table: str = ""
    to_column: Optional[str] = None
    properties: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_column_level(self) -> bool:
        return self.from_column is not None and self.to_column is not None

    def to_dict(self) -> Dict[str, Any]:
        props: Dict[str, Any] = {"from_table": self.from_table, "to_table": self.to_table}
        if self.from_column is not None:
            props["from_column"] = self.from_column
        if self.to_column is not None:
            props["to_column"] = self.to_column
        props.update(copy.deepcopy(self.properties))
        return {
            "id": self.id,
            "kind": self.kind.value,
            "from": self.from_id,
            "to": self.to_id,
            "confidence": self.confidence,
            "evidence": [e.to_dict() for e in self.evidence],
            "properties": props,
        }


def edge_id(
    from_table: str,
    to_table: str,
    from_column: Optional[str] = None,
    to_column: Optional[str] = None,
) -> str:
    """Deterministic edge id; re-inserting the same pair replaces the edge."""
    if from_column is None or to_column is None:
        return f"{from_table}->{to_table}"
    return f"{from_table}.{from_column}->{to_table}.{to_column}"


class SchemaGraph:
    """Concurrency-safe node/edge container for one scan."""

    def __init__(self) -> None:
        self._lock = ReadWriteLock()
        self._nodes: Dict[str, Node] = {}
        self._edges: Dict[str, Edge] = {}

    def add_node(self, node: Node) -> None:
        """Insert or replace a node by id."""
        with self._lock.write():
            self._nodes[node.id] = node

    def add_edge(self, edge: Edge) -> None:
        """Insert or replace an edge by id."""
        with self._lock.write():
            self._edges[edge.id] = edge

    def get_node(self, node_id: str) -> Optional[Node]:
        with self._lock.read():
            return self._nodes.get(node_id)

    def get_edge(self, edge_id: str) -> Optional[Edge]:
        with self._lock.read():
            return self._edges.get(edge_id)

    def nodes(self, kind: Optional[NodeKind] = None) -> List[Node]:
        with self._lock.read():
            return [n for n in self._nodes.values() if kind is None or n.kind == kind]

    def edges(self, kind: Optional[EdgeKind] = None) -> List[Edge]:
        with self._lock.read():
            return [e for e in self._edges.values() if kind is None or e.kind == kind]

    def edges_from(self, node_id: str) -> List[Edge]:
        with self._lock.read():
            return [e for e in self._edges.values() if e.from_id == node_id]

    def update_node(self, node_id: str, mutate: Callable[[Node], None]) -> bool:
        """Apply mutate to a node under the write lock. Returns False if absent."""
        with self._lock.write():
            node = self._nodes.get(node_id)
            if node is None:
                return False
            mutate(node)
            return True

    def annotate_column(self, node_id: str, explanation: FieldExplanation) -> bool:
        """
        Attach an explanation to a column node.

        An existing explanation is only replaced by one with strictly higher
        confidence. Returns True when the node now carries the new explanation.
        """
        replaced = False

        def _merge(node: Node) -> None:
            nonlocal replaced
            current = node.properties.explanation
            if current is None or explanation.confidence > current.confidence:
                node.properties.explanation = explanation
                replaced = True

        if not self.update_node(node_id, _merge):
            logger.debug(f"No column node {node_id} to annotate")
        return replaced

    def annotate_table(
        self,
        node_id: str,
        explanation: Optional[TableExplanation] = None,
        enum_candidate: Optional[EnumTableCandidate] = None,
    ) -> bool:
        def _apply(node: Node) -> None:
            if explanation is not None:
                current = node.properties.table_explanation
                if current is None or explanation.confidence > current.confidence:
                    node.properties.table_explanation = explanation
            if enum_candidate is not None:
                node.properties.enum_candidate = enum_candidate

        return self.update_node(node_id, _apply)

    def export_snapshot(self) -> Dict[str, Any]:
        """Return a serializable deep copy of the graph."""
        with self._lock.read():
            return {
                "nodes": {node_id: n.to_dict() for node_id, n in self._nodes.items()},
                "edges": {eid: e.to_dict() for eid, e in self._edges.items()},
            }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.export_snapshot(), indent=indent, ensure_ascii=False, default=str)

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._nodes)
