"""
Tests for the relationship inferrer.

Tests the three scoring signals, edge acceptance, degradation, progress,
cancellation and the per-call statistics cache.
"""

import itertools

import pytest

from schema_scout.config import InferenceConfig
from schema_scout.discovery.relationship_inferrer import (
    RelationshipInferrer,
    declared_foreign_key_edges,
    levenshtein,
)
from schema_scout.errors import MetadataUnavailableError, ScanCancelledError
from schema_scout.graph import EdgeKind, SchemaGraph
from schema_scout.models import Column, ForeignKey, Table
from schema_scout.utils.cancellation import CancellationToken

from conftest import InMemoryProvider, make_stats


@pytest.fixture
def inferrer():
    return RelationshipInferrer()


def two_tables(from_col: Column, to_col: Column, from_name="A", to_name="B"):
    return [
        Table(name=from_name, columns=[Column(name="id", data_type="int", is_primary_key=True), from_col]),
        Table(name=to_name, columns=[to_col]),
    ]


class TestNameSimilarity:
    """Tests for naming similarity."""

    @pytest.mark.parametrize("name", ["DepCode", "cInvCode", "c", "ID", "cFree1", "x"])
    def test_reflexive(self, inferrer, name):
        assert inferrer.name_similarity(name, name) == 1.0

    def test_case_insensitive(self, inferrer):
        assert inferrer.name_similarity("DEPCODE", "depcode") == 1.0

    def test_substring_scores_point_eight(self, inferrer):
        assert inferrer.name_similarity("cDepCode", "DepCode") == 0.8
        assert inferrer.name_similarity("DepCode", "cDepCode") == 0.8

    def test_shared_prefix_is_stripped(self, inferrer):
        """Both names carry the c prefix, so it does not count."""
        assert inferrer.name_similarity("cInvCode", "cinvcode") == 1.0
        assert inferrer.name_similarity("cCode", "cInvCode") == 0.8

    def test_levenshtein_above_floor(self, inferrer):
        assert inferrer.name_similarity("DepCode", "DepCods") == pytest.approx(1 - 1 / 7)

    def test_levenshtein_below_floor(self, inferrer):
        assert inferrer.name_similarity("customer", "vendor") == 0.0

    def test_empty_names(self, inferrer):
        assert inferrer.name_similarity("", "DepCode") == 0.0
        assert inferrer.name_similarity("c", "cDepCode") == 0.0

    @pytest.mark.parametrize("a,b,distance", [
        ("", "", 0),
        ("", "abc", 3),
        ("kitten", "sitting", 3),
        ("depcode", "depcods", 1),
        ("invcode", "invcode", 0),
    ])
    def test_edit_distance(self, a, b, distance):
        assert levenshtein(a, b) == distance
        assert levenshtein(b, a) == distance


class TestTypeCompatibility:
    """Tests for type families and type scores."""

    TYPES = ["varchar", "nvarchar", "char", "nchar", "text", "int", "bigint", "smallint", "tinyint", "decimal", "datetime"]

    def test_symmetric(self, inferrer):
        for a, b in itertools.product(self.TYPES, repeat=2):
            assert inferrer.is_type_compatible(a, b) == inferrer.is_type_compatible(b, a)

    def test_families(self, inferrer):
        assert inferrer.is_type_compatible("varchar", "nvarchar")
        assert inferrer.is_type_compatible("INT", "bigint")
        assert inferrer.is_type_compatible("decimal", "DECIMAL")
        assert not inferrer.is_type_compatible("varchar", "int")
        assert not inferrer.is_type_compatible("datetime", "varchar")

    def test_custom_family(self):
        inferrer = RelationshipInferrer(config=InferenceConfig(integer_types=["int", "bigint", "number"]))
        assert inferrer.is_type_compatible("number", "int")

    def test_scores(self, inferrer):
        def col(data_type, length=0):
            return Column(name="x", data_type=data_type, length=length)

        assert inferrer.type_match(col("varchar", 20), col("nvarchar", 20)) == 1.0
        assert inferrer.type_match(col("varchar", 20), col("varchar", 22)) == 0.8
        assert inferrer.type_match(col("varchar", 10), col("varchar", 20)) == 0.6
        assert inferrer.type_match(col("int"), col("bigint")) == 0.6
        assert inferrer.type_match(col("varchar", 20), col("int")) == 0.0


class TestCalculateRelationship:
    """Tests for combining the signals into an edge."""

    def test_identical_columns_score_one(self):
        from_col = Column(name="DepCode", data_type="varchar", length=20)
        to_col = Column(name="DepCode", data_type="varchar", length=20, is_primary_key=True)
        provider = InMemoryProvider(
            two_tables(from_col, to_col),
            stats={
                ("A", "DepCode"): make_stats({"D01": 3, "D02": 1}),
                ("B", "DepCode"): make_stats({"D01": 1, "D02": 1, "D03": 1}),
            },
        )

        edge = RelationshipInferrer(provider).calculate_relationship("A", from_col, "B", to_col)

        assert edge is not None
        assert edge.confidence == pytest.approx(1.0)
        assert [e.kind for e in edge.evidence] == ["naming_similarity", "type_match", "value_containment"]
        assert edge.id == "A.DepCode->B.DepCode"
        assert edge.from_id == "A.DepCode"
        assert edge.to_id == "B.DepCode"
        assert edge.kind == EdgeKind.INFERRED_FOREIGN_KEY

    def test_type_only_is_rejected(self):
        """0.6 x 0.2 = 0.12 stays below the acceptance threshold."""
        from_col = Column(name="Remark", data_type="varchar", length=10)
        to_col = Column(name="VenCode", data_type="varchar", length=20, is_primary_key=True)
        provider = InMemoryProvider(
            two_tables(from_col, to_col),
            stats={
                ("A", "Remark"): make_stats({"hello": 2}),
                ("B", "VenCode"): make_stats({"V01": 1}),
            },
        )

        assert RelationshipInferrer(provider).calculate_relationship("A", from_col, "B", to_col) is None

    def test_frequency_weighted_containment(self):
        provider = InMemoryProvider(
            [],
            stats={
                ("A", "x"): make_stats({"1": 6, "2": 3, "9": 1}),
                ("B", "y"): make_stats({"1": 1, "2": 1}),
            },
        )
        inferrer = RelationshipInferrer(provider)

        assert inferrer.value_containment("A", "x", "B", "y") == pytest.approx(0.9)

    def test_empty_sample_has_zero_containment(self):
        provider = InMemoryProvider([], stats={("B", "y"): make_stats({"1": 1})})
        assert RelationshipInferrer(provider).value_containment("A", "x", "B", "y") == 0.0

    def test_containment_evidence_cutoff(self):
        """Containment of 0.3 or less contributes nothing."""
        from_col = Column(name="Ref", data_type="varchar", length=20)
        to_col = Column(name="Ref", data_type="varchar", length=20, is_primary_key=True)
        provider = InMemoryProvider(
            two_tables(from_col, to_col),
            stats={
                ("A", "Ref"): make_stats({"a": 3, "b": 7}),
                ("B", "Ref"): make_stats({"a": 1}),
            },
        )

        edge = RelationshipInferrer(provider).calculate_relationship("A", from_col, "B", to_col)

        assert edge is not None
        assert "value_containment" not in [e.kind for e in edge.evidence]
        assert edge.confidence == pytest.approx(0.5)

    def test_confidence_bounded(self):
        names = ["DepCode", "cDepCode", "Dep", "Other"]
        types = [("varchar", 20), ("nvarchar", 22), ("int", 0)]
        provider = InMemoryProvider([], stats={})
        inferrer = RelationshipInferrer(provider)
        for (n1, (t1, l1)), (n2, (t2, l2)) in itertools.product(
            itertools.product(names, types), repeat=2
        ):
            provider.stats = {("A", n1): make_stats({"x": 1}), ("B", n2): make_stats({"x": 1})}
            inferrer._stats_cache = {}
            edge = inferrer.calculate_relationship(
                "A", Column(name=n1, data_type=t1, length=l1),
                "B", Column(name=n2, data_type=t2, length=l2, is_primary_key=True),
            )
            if edge is not None:
                assert 0.3 < edge.confidence <= 1.0


class TestInferRelationships:
    """Tests for the full pairwise scan."""

    def test_finds_department_reference(self, erp_tables, erp_provider):
        edges = RelationshipInferrer(erp_provider).infer_relationships(erp_tables)
        by_id = {e.id: e for e in edges}

        assert set(by_id) == {
            "Person.cDepCode->Department.DepCode",
            "Person.cFree1->Department.DepCode",
        }
        assert by_id["Person.cDepCode->Department.DepCode"].confidence == pytest.approx(0.94)
        assert by_id["Person.cFree1->Department.DepCode"].confidence == pytest.approx(0.7)

    def test_no_self_loops_or_key_sources(self, erp_tables, erp_provider):
        edges = RelationshipInferrer(erp_provider).infer_relationships(erp_tables)
        pk = {(t.name, c.name) for t in erp_tables for c in t.columns if c.is_primary_key}

        for edge in edges:
            assert edge.from_table != edge.to_table
            assert (edge.from_table, edge.from_column) not in pk
            assert (edge.to_table, edge.to_column) in pk

    def test_edges_written_to_graph(self, erp_tables, erp_provider):
        graph = SchemaGraph()
        edges = RelationshipInferrer(erp_provider, graph=graph).infer_relationships(erp_tables)
        assert {e.id for e in graph.edges()} == {e.id for e in edges}

    def test_sampling_failure_degrades(self, erp_tables, erp_provider):
        """A failing column loses containment evidence and is reported."""
        erp_provider.failing_columns = {("Person", "cDepCode")}
        inferrer = RelationshipInferrer(erp_provider)

        edges = {e.id: e for e in inferrer.infer_relationships(erp_tables)}

        edge = edges["Person.cDepCode->Department.DepCode"]
        assert edge.confidence == pytest.approx(0.44)
        assert "value_containment" not in [e.kind for e in edge.evidence]
        assert [s.item for s in inferrer.skipped] == ["Person.cDepCode"]
        assert inferrer.skipped[0].stage == "relationships"

    def test_unavailable_is_fatal(self, erp_tables, erp_provider):
        erp_provider.unavailable = True
        with pytest.raises(MetadataUnavailableError):
            RelationshipInferrer(erp_provider).infer_relationships(erp_tables)

    def test_stats_cached_per_call(self, erp_tables, erp_provider):
        inferrer = RelationshipInferrer(erp_provider)

        inferrer.infer_relationships(erp_tables)
        first = list(erp_provider.sample_calls)
        assert len(first) == len(set(first))

        inferrer.infer_relationships(erp_tables)
        assert len(erp_provider.sample_calls) == 2 * len(first)

    def test_sample_sizes(self, erp_tables, erp_provider):
        RelationshipInferrer(erp_provider).infer_relationships(erp_tables)
        sizes = {(t, c): n for t, c, n in erp_provider.sample_calls}

        assert sizes[("Person", "cDepCode")] == 1000
        assert sizes[("Department", "DepCode")] == 10000

    def test_progress_cadence(self, erp_tables, erp_provider):
        calls = []
        inferrer = RelationshipInferrer(
            erp_provider,
            config=InferenceConfig(progress_every=5),
            progress=lambda done, total: calls.append((done, total)),
        )
        inferrer.infer_relationships(erp_tables)

        total = calls[-1][1]
        assert calls[-1] == (total, total)
        assert [done for done, _ in calls[:-1]] == list(range(5, total + 1, 5))

    def test_cancellation_keeps_found_edges(self, erp_tables, erp_provider):
        graph = SchemaGraph()
        token = CancellationToken()
        found = []

        def cancel_after_first_edge(done, total):
            if graph.edges():
                found.extend(graph.edges())
                token.cancel("stop")

        inferrer = RelationshipInferrer(
            erp_provider,
            config=InferenceConfig(progress_every=1),
            graph=graph,
            cancel_token=token,
            progress=cancel_after_first_edge,
        )

        with pytest.raises(ScanCancelledError):
            inferrer.infer_relationships(erp_tables)

        assert len(graph.edges()) == 1
        assert graph.edges()[0].id == found[0].id

    def test_parallel_prefetch_matches_sequential(self, erp_tables, erp_provider):
        sequential = RelationshipInferrer(erp_provider).infer_relationships(erp_tables)
        parallel = RelationshipInferrer(
            erp_provider, config=InferenceConfig(max_workers=4)
        ).infer_relationships(erp_tables)

        assert {(e.id, round(e.confidence, 9)) for e in sequential} == {
            (e.id, round(e.confidence, 9)) for e in parallel
        }

    def test_parallel_prefetch_records_failures(self, erp_tables, erp_provider):
        erp_provider.failing_columns = {("Person", "cDepCode")}
        inferrer = RelationshipInferrer(erp_provider, config=InferenceConfig(max_workers=4))

        inferrer.infer_relationships(erp_tables)

        assert [s.item for s in inferrer.skipped] == ["Person.cDepCode"]


class TestDeclaredForeignKeys:
    """Tests for catalog foreign key edges."""

    def test_declared_edges(self):
        edges = declared_foreign_key_edges([
            ForeignKey(from_table="Person", from_column="cDepCode", to_table="Department", to_column="DepCode")
        ])

        assert len(edges) == 1
        assert edges[0].id == "Person.cDepCode->Department.DepCode"
        assert edges[0].kind == EdgeKind.FOREIGN_KEY
        assert edges[0].confidence == 1.0
        assert edges[0].evidence[0].kind == "catalog_constraint"
