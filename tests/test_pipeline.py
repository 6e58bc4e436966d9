"""
Tests for the scan pipeline.
"""

from typing import List

import pytest

from schema_scout.config import ScanConfig
from schema_scout.discovery.pipeline import SchemaScan, ScanStatus, index_node_id
from schema_scout.errors import MetadataUnavailableError
from schema_scout.graph import EdgeKind, NodeKind
from schema_scout.models import Column, ForeignKey, Index, SchemaMetadata, SourceKind, Table, TableRelationship
from schema_scout.semantics.rules import RuleBasedExplainer
from schema_scout.utils.cancellation import CancellationToken

from conftest import InMemoryProvider


class BrokenProvider(InMemoryProvider):
    """Provider whose introspection fails with a driver error."""

    def introspect_schema(self) -> SchemaMetadata:
        raise RuntimeError("ORA-12541: TNS:no listener")


class IndexedProvider(InMemoryProvider):
    def introspect_schema(self) -> SchemaMetadata:
        metadata = super().introspect_schema()
        metadata.indexes = [Index(table="Person", name="ix_person_dep", columns=["cDepCode"])]
        return metadata


class LinkingSource(RuleBasedExplainer):
    """Rule-based source that also suggests one table relationship."""

    def infer_table_relationships(self, tables: List[Table]) -> List[TableRelationship]:
        return [TableRelationship(
            from_table="Person",
            to_table="Department",
            relation_type="many_to_one",
            description="Employees belong to a department",
            confidence=0.85,
        )]


class TestScan:
    """Tests for a full scan over the ERP fixture."""

    def test_report(self, erp_provider):
        report = SchemaScan(erp_provider).run()

        assert report.status == ScanStatus.COMPLETED
        assert report.table_count == 3
        assert report.column_count == 9
        assert report.relationship_count == 2
        assert report.declared_fk_count == 0
        assert report.enum_count == 3
        assert report.skipped == []
        assert report.source_counts == {"rule_based": 8, "relation": 1}

    def test_graph_contents(self, erp_provider):
        scan = SchemaScan(erp_provider)
        scan.run()
        graph = scan.graph

        assert len(graph.nodes(NodeKind.TABLE)) == 3
        assert len(graph.nodes(NodeKind.COLUMN)) == 9
        assert all(n.properties.explanation is not None for n in graph.nodes(NodeKind.COLUMN))

        dep = graph.get_node("Person.cDepCode")
        assert dep.properties.null_ratio == 0.0
        assert dep.properties.explanation.localized_name == "部门编码"

        free = graph.get_node("Person.cFree1").properties.explanation
        assert free.localized_name == "关联部门编码"
        assert free.confidence == pytest.approx(0.49)

        status = graph.get_node("t_status").properties
        assert status.enum_candidate.key_column == "code"
        assert status.table_explanation.localized_name == "状态"

    def test_unlinked_custom_column_gets_placeholder(self):
        table = Table(name="T", columns=[
            Column(name="id", data_type="int", is_primary_key=True),
            Column(name="cFree9", data_type="varchar", length=20),
        ])
        scan = SchemaScan(InMemoryProvider([table]))
        report = scan.run()

        explanation = scan.graph.get_node("T.cFree9").properties.explanation
        assert explanation.source == SourceKind.RELATION
        assert explanation.confidence == 0.1
        assert explanation.description == "No relationship found"
        assert report.source_counts == {"rule_based": 1, "relation": 1}

    def test_snapshot_is_serializable(self, erp_provider):
        scan = SchemaScan(erp_provider)
        scan.run()

        snapshot = scan.graph.export_snapshot()
        assert "Person.cDepCode->Department.DepCode" in snapshot["edges"]
        assert "部门编码" in scan.graph.to_json()

    def test_index_nodes(self, erp_tables):
        scan = SchemaScan(IndexedProvider(erp_tables))
        scan.run()

        node = scan.graph.get_node(index_node_id("Person", "ix_person_dep"))
        assert node.kind == NodeKind.INDEX
        assert node.properties.columns == ["cDepCode"]

    def test_progress(self, erp_provider):
        calls = []
        SchemaScan(erp_provider, progress=lambda stage, done, total: calls.append((stage, done, total))).run()

        assert [c for c in calls if c[0] == "profile"] == [("profile", 1, 3), ("profile", 2, 3), ("profile", 3, 3)]
        assert ("relationships", 12, 12) in calls

    def test_profile_sample_size(self, erp_provider):
        config = ScanConfig(sample_size=50)
        SchemaScan(erp_provider, config=config).run()

        assert ("Department", "DepName", 50) in erp_provider.sample_calls


class TestDeclaredAndSemanticEdges:
    """Tests for catalog constraints and table-level suggestions."""

    def test_declared_fk_overwrites_inferred(self, erp_tables, erp_provider):
        erp_provider.foreign_keys = [ForeignKey("Person", "cDepCode", "Department", "DepCode")]
        scan = SchemaScan(erp_provider)
        report = scan.run()

        edge = scan.graph.get_edge("Person.cDepCode->Department.DepCode")
        assert edge.kind == EdgeKind.FOREIGN_KEY
        assert edge.confidence == 1.0
        assert report.declared_fk_count == 1
        assert report.relationship_count == 1

    def test_dependency_edges(self, erp_provider):
        scan = SchemaScan(erp_provider, semantic_source=LinkingSource())
        report = scan.run()

        edge = scan.graph.get_edge("Person->Department")
        assert edge.kind == EdgeKind.DEPENDENCY
        assert edge.properties["relation_type"] == "many_to_one"
        assert edge.evidence[0].kind == "semantic_inference"
        assert not edge.is_column_level
        assert report.relationship_count == 2


class TestDegradation:
    """Tests for fatal and non-fatal failures."""

    def test_no_tables_is_fatal(self):
        with pytest.raises(MetadataUnavailableError):
            SchemaScan(InMemoryProvider([])).run()

    def test_unavailable_is_fatal(self, erp_tables):
        with pytest.raises(MetadataUnavailableError):
            SchemaScan(InMemoryProvider(erp_tables, unavailable=True)).run()

    def test_driver_error_is_wrapped(self, erp_tables):
        with pytest.raises(MetadataUnavailableError, match="TNS"):
            SchemaScan(BrokenProvider(erp_tables)).run()

    def test_failing_column_is_skipped(self, erp_tables, erp_provider):
        erp_provider.failing_columns = {("Person", "cPersonName")}
        scan = SchemaScan(erp_provider)
        report = scan.run()

        assert report.status == ScanStatus.COMPLETED
        stages = {(s.stage, s.item) for s in report.skipped}
        assert ("profile", "Person.cPersonName") in stages
        assert ("relationships", "Person.cPersonName") in stages
        assert scan.graph.get_node("Person.cPersonName").properties.null_ratio is None
        assert report.relationship_count == 2

    def test_failing_foreign_keys_are_skipped(self, erp_tables):
        class NoConstraints(InMemoryProvider):
            def get_foreign_keys(self):
                raise RuntimeError("permission denied on sys.foreign_keys")

        report = SchemaScan(NoConstraints(erp_tables)).run()

        assert ("relationships", "foreign_keys") in {(s.stage, s.item) for s in report.skipped}

    def test_cancelled_scan_keeps_partial_graph(self, erp_provider):
        token = CancellationToken()
        token.cancel("user pressed Ctrl+C")
        scan = SchemaScan(erp_provider, cancel_token=token)

        report = scan.run()

        assert report.status == ScanStatus.CANCELLED
        assert report.cancel_reason == "user pressed Ctrl+C"
        assert report.table_count == 3
        assert report.relationship_count == 0
        assert scan.graph.get_node("Department") is not None

    def test_cancel_during_relationships(self, erp_provider):
        token = CancellationToken()

        def progress(stage, done, total):
            if stage == "relationships":
                token.cancel()

        config = ScanConfig()
        config.inference.progress_every = 1
        scan = SchemaScan(erp_provider, config=config, cancel_token=token, progress=progress)
        report = scan.run()

        assert report.status == ScanStatus.CANCELLED
        assert report.enum_count == 0
        columns = scan.graph.nodes(NodeKind.COLUMN)
        assert all(n.properties.explanation is not None for n in columns if n.name != "cFree1")
        assert scan.graph.get_node("Person.cFree1").properties.explanation is None
