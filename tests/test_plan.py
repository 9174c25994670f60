"""
Tests for the query plan and result set stats models.
"""

import pytest
from pydantic import ValidationError

from plan_telemetry.plan import Kind, PlanNode, ResultSetStats, render_metadata_value

PROFILE = {
    "metadata": {"rowType": {"fields": []}},
    "rows": [],
    "stats": {
        "queryPlan": {
            "planNodes": [
                {
                    "index": 0,
                    "kind": "RELATIONAL",
                    "displayName": "Distributed Union",
                    "childLinks": [{"childIndex": 1}, {"childIndex": 2, "type": "Split Range"}],
                    "metadata": {"subquery_cluster_node": "1", "call_type": "Local"},
                    "executionStats": {
                        "execution_summary": {
                            "execution_start_timestamp": "1610000000.100000",
                            "execution_end_timestamp": "1610000000.200000",
                            "num_executions": "1",
                        }
                    },
                },
                {"index": 1, "kind": "RELATIONAL", "displayName": "Scan"},
                {
                    "index": 2,
                    "kind": "SCALAR",
                    "displayName": "Function",
                    "shortRepresentation": {"description": "($id = 1)"},
                },
            ]
        },
        "queryStats": {"query_text": "SELECT 1", "elapsed_time": "1.5 msecs", "rows_returned": "1"},
        "rowCountExact": "1",
    },
}


class TestResultSetStats:
    def test_from_result_set_payload(self):
        stats = ResultSetStats.from_response(PROFILE)

        nodes = stats.query_plan.plan_nodes
        assert [n.index for n in nodes] == [0, 1, 2]
        assert nodes[0].kind == Kind.RELATIONAL
        assert nodes[0].child_links[1].child_index == 2
        assert nodes[0].child_links[1].type == "Split Range"
        assert nodes[0].child_links[0].type == ""
        assert nodes[2].description == "($id = 1)"
        assert stats.row_count_exact == 1

    def test_from_bare_stats_payload(self):
        stats = ResultSetStats.from_response(PROFILE["stats"])
        assert stats.query_stat_string("query_text") == "SELECT 1"

    def test_snake_case_keys(self):
        stats = ResultSetStats.model_validate(
            {"query_plan": {"plan_nodes": [{"index": 0, "display_name": "Scan"}]}}
        )
        assert stats.query_plan.plan_nodes[0].display_name == "Scan"

    def test_no_plan(self):
        stats = ResultSetStats.from_response({"queryStats": {"query_text": "SELECT 1"}})
        assert stats.query_plan is None

    def test_query_stat_string_absent_or_structured(self):
        stats = ResultSetStats(query_stats={"elapsed_time": {"value": 1}})
        assert stats.query_stat_string("elapsed_time") == ""
        assert stats.query_stat_string("query_text") == ""

    def test_frozen(self):
        stats = ResultSetStats()
        with pytest.raises(ValidationError):
            stats.query_stats = {}


class TestPlanNode:
    def test_defaults(self):
        node = PlanNode()
        assert node.index == 0
        assert node.kind == Kind.KIND_UNSPECIFIED
        assert node.child_links == []
        assert node.execution_summary() is None
        assert node.description == ""

    @pytest.mark.parametrize(
        "raw, expected",
        [(1, Kind.RELATIONAL), (2, Kind.SCALAR), (0, Kind.KIND_UNSPECIFIED), ("UNSPECIFIED", Kind.KIND_UNSPECIFIED)],
    )
    def test_kind_coercion(self, raw, expected):
        assert PlanNode(kind=raw).kind == expected

    def test_negative_index_rejected(self):
        with pytest.raises(ValidationError):
            PlanNode(index=-1)

    def test_metadata_string_explicit_absence(self):
        node = PlanNode(metadata={"scan_type": "TableScan", "count": 3, "dropped": None})
        assert node.metadata_string("scan_type") == "TableScan"
        assert node.metadata_string("count") is None
        assert node.metadata_string("missing") is None
        assert "dropped" not in node.metadata

    def test_execution_summary_must_be_a_mapping(self):
        node = PlanNode(execution_stats={"execution_summary": "n/a"})
        assert node.execution_summary() is None


class TestRenderMetadataValue:
    def test_string(self):
        assert render_metadata_value("Orders") == "Orders"

    def test_structured(self):
        assert render_metadata_value({"b": 1, "a": [True]}) == '{"a":[true],"b":1}'
        assert render_metadata_value(3) == "3"
