"""
Shared fixtures: an in-memory metadata provider and a small ERP-like schema.
"""

from typing import Dict, List, Optional, Set, Tuple

import pytest

from schema_scout.errors import MetadataUnavailableError
from schema_scout.metadata.base import MetadataProvider
from schema_scout.models import (
    Column,
    ColumnStats,
    ForeignKey,
    SchemaMetadata,
    Table,
    ValueCount,
)


class InMemoryProvider(MetadataProvider):
    """Provider serving fixed metadata and statistics."""

    def __init__(
        self,
        tables: List[Table],
        stats: Optional[Dict[Tuple[str, str], ColumnStats]] = None,
        row_counts: Optional[Dict[str, int]] = None,
        foreign_keys: Optional[List[ForeignKey]] = None,
        failing_columns: Optional[Set[Tuple[str, str]]] = None,
        failing_row_counts: Optional[Set[str]] = None,
        unavailable: bool = False,
    ):
        self.tables = tables
        self.stats = stats or {}
        self.row_counts = row_counts or {}
        self.foreign_keys = foreign_keys or []
        self.failing_columns = failing_columns or set()
        self.failing_row_counts = failing_row_counts or set()
        self.unavailable = unavailable
        self.sample_calls: List[Tuple[str, str, int]] = []

    def introspect_schema(self) -> SchemaMetadata:
        if self.unavailable:
            raise MetadataUnavailableError("database is down")
        return SchemaMetadata(tables=self.tables)

    def estimate_row_count(self, table: str) -> int:
        if table in self.failing_row_counts:
            raise RuntimeError(f"no statistics for {table}")
        return self.row_counts.get(table, 0)

    def sample_column_stats(self, table: str, column: str, sample_size: int) -> ColumnStats:
        self.sample_calls.append((table, column, sample_size))
        if self.unavailable:
            raise MetadataUnavailableError("database is down")
        if (table, column) in self.failing_columns:
            raise RuntimeError(f"permission denied on {table}.{column}")
        return self.stats.get((table, column), ColumnStats())

    def get_foreign_keys(self) -> List[ForeignKey]:
        return list(self.foreign_keys)


def make_stats(values: Dict[str, int], nulls: int = 0) -> ColumnStats:
    """Stats whose top values are the given value -> count mapping."""
    top = sorted(values.items(), key=lambda kv: kv[1], reverse=True)[:10]
    total = sum(values.values()) + nulls
    return ColumnStats(
        total_rows=total,
        null_count=nulls,
        distinct_count=len(values),
        top_values=[ValueCount(value=v, count=c) for v, c in top],
    )


@pytest.fixture
def erp_tables():
    """Department, Person and a status code table."""
    department = Table(
        name="Department",
        schema="UFDATA",
        columns=[
            Column(name="DepCode", data_type="varchar", length=20, nullable=False, is_primary_key=True),
            Column(name="DepName", data_type="varchar", length=50),
        ],
    )
    person = Table(
        name="Person",
        schema="UFDATA",
        columns=[
            Column(name="PersonCode", data_type="varchar", length=20, nullable=False, is_primary_key=True),
            Column(name="cPersonName", data_type="nvarchar", length=40),
            Column(name="cDepCode", data_type="varchar", length=20),
            Column(name="cFree1", data_type="varchar", length=20),
        ],
    )
    status = Table(
        name="t_status",
        schema="UFDATA",
        columns=[
            Column(name="code", data_type="int", nullable=False, is_primary_key=True),
            Column(name="name", data_type="nvarchar", length=20),
            Column(name="memo", data_type="nvarchar", length=100),
        ],
    )
    return [department, person, status]


@pytest.fixture
def erp_provider(erp_tables):
    """Provider where Person.cDepCode and Person.cFree1 hold department codes."""
    departments = {"D01": 1, "D02": 1, "D03": 1}
    stats = {
        ("Department", "DepCode"): make_stats(departments),
        ("Department", "DepName"): make_stats({"Sales": 1, "Finance": 1, "R&D": 1}),
        ("Person", "PersonCode"): make_stats({f"P{i:02d}": 1 for i in range(10)}),
        ("Person", "cPersonName"): make_stats({f"Name{i}": 1 for i in range(10)}),
        ("Person", "cDepCode"): make_stats({"D01": 5, "D02": 3, "D03": 2}),
        ("Person", "cFree1"): make_stats({"D01": 4, "D02": 4}, nulls=2),
        ("t_status", "code"): make_stats({"1": 1, "2": 1}),
        ("t_status", "name"): make_stats({"open": 1, "closed": 1}),
        ("t_status", "memo"): make_stats({}, nulls=2),
    }
    return InMemoryProvider(
        erp_tables,
        stats=stats,
        row_counts={"Department": 3, "Person": 10, "t_status": 20},
    )
