"""
Tests for the plan-telemetry command line.
"""

import json
import re

import pytest
from click.testing import CliRunner

from plan_telemetry import telemetry
from plan_telemetry.cli import main

PROFILE = {
    "stats": {
        "queryPlan": {
            "planNodes": [
                {
                    "index": 0,
                    "kind": "RELATIONAL",
                    "displayName": "Distributed Union",
                    "childLinks": [{"childIndex": 1}],
                    "executionStats": {
                        "execution_summary": {
                            "execution_start_timestamp": "1610000000.000100",
                            "execution_end_timestamp": "1610000000.004100",
                        }
                    },
                },
                {
                    "index": 1,
                    "kind": "RELATIONAL",
                    "displayName": "Scan",
                    "childLinks": [{"childIndex": 2, "type": "Seek Condition"}],
                    "metadata": {"scan_type": "TableScan", "scan_target": "Singers"},
                    "executionStats": {
                        "execution_summary": {
                            "execution_start_timestamp": "1610000000.001100",
                            "execution_end_timestamp": "1610000000.003100",
                        }
                    },
                },
                {
                    "index": 2,
                    "kind": "SCALAR",
                    "displayName": "Function",
                    "shortRepresentation": {"description": "($SingerId = 1)"},
                },
            ]
        },
        "queryStats": {"query_text": "SELECT * FROM Singers", "elapsed_time": "4 msecs"},
    }
}


@pytest.fixture
def runner(monkeypatch, tmp_path):
    monkeypatch.delenv("PLAN_TELEMETRY_DB", raising=False)
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "xdg"))
    yield CliRunner()
    telemetry.end_session()


@pytest.fixture
def profile_file(tmp_path):
    path = tmp_path / "profile.json"
    path.write_text(json.dumps(PROFILE))
    return str(path)


def rendered_trace_id(output):
    return re.search(r"Stored trace ([0-9a-f]{32})", output).group(1)


class TestRender:
    def test_render_stores_and_prints_trace(self, runner, profile_file, tmp_path):
        db = str(tmp_path / "t.db")
        result = runner.invoke(main, ["render", profile_file, "--db", db])

        assert result.exit_code == 0, result.output
        assert "(3 spans)" in result.output
        assert "SELECT * FROM Singers" in result.output
        assert "0: Distributed Union" in result.output
        assert "1: Table Scan (Table: Singers)" in result.output

        trace_id = rendered_trace_id(result.output)
        rows = {row["name"]: row for row in telemetry.read_spans(db, trace_id)}
        root = rows["plan_trace"]
        assert root["attributes"]["query_text"] == "SELECT * FROM Singers"
        assert root["attributes"]["elapsed_time"] == "4 msecs"
        assert (root["start_time"], root["end_time"]) == (1_610_000_000_000_100, 1_610_000_000_004_100)
        scan = rows["1: Table Scan (Table: Singers)"]
        assert scan["attributes"]["Seek Condition"] == "($SingerId = 1)"

    def test_default_db_under_xdg(self, runner, profile_file, tmp_path):
        result = runner.invoke(main, ["render", profile_file, "--service", "svc"])

        assert result.exit_code == 0, result.output
        assert (tmp_path / "xdg" / "plan-telemetry" / "svc" / "telemetry.db").is_file()

    def test_profile_without_plan(self, runner, tmp_path):
        path = tmp_path / "noplan.json"
        path.write_text(json.dumps({"stats": {"queryStats": {}}}))

        result = runner.invoke(main, ["render", str(path), "--db", str(tmp_path / "t.db")])

        assert result.exit_code == 1
        assert "no query plan" in result.output

    def test_invalid_json(self, runner, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json")

        result = runner.invoke(main, ["render", str(path), "--db", str(tmp_path / "t.db")])

        assert result.exit_code == 1
        assert "cannot read profile" in result.output


class TestBrowse:
    @pytest.fixture
    def stored(self, runner, profile_file, tmp_path):
        db = str(tmp_path / "t.db")
        result = runner.invoke(main, ["render", profile_file, "--db", db])
        assert result.exit_code == 0, result.output
        return db, rendered_trace_id(result.output)

    def test_traces(self, runner, stored):
        db, trace_id = stored
        result = runner.invoke(main, ["traces", "--db", db])

        assert result.exit_code == 0, result.output
        assert f"{trace_id}\t3\t" in result.output

    def test_export(self, runner, stored):
        db, trace_id = stored
        result = runner.invoke(main, ["export", "--db", db, "--trace", trace_id])

        assert result.exit_code == 0, result.output
        lines = result.output.splitlines()
        assert "plan_trace;0: Distributed Union;1: Table Scan (Table: Singers) 2000" in lines

    def test_view_prompts_for_trace(self, runner, stored):
        db, trace_id = stored
        result = runner.invoke(main, ["view", "--db", db], input="1\n")

        assert result.exit_code == 0, result.output
        assert f"[1] {trace_id}" in result.output
        assert "1: Table Scan (Table: Singers)" in result.output

    def test_unknown_trace(self, runner, stored):
        db, _ = stored
        result = runner.invoke(main, ["export", "--db", db, "--trace", "0" * 32])

        assert result.exit_code == 1
        assert "No spans found" in result.output

    def test_missing_db(self, runner, tmp_path):
        result = runner.invoke(main, ["traces", "--db", str(tmp_path / "missing.db")])

        assert result.exit_code == 1
        assert "No telemetry database" in result.output
