import csv
import json

from truststore_tester import models
from truststore_tester.errors import DownloadNotObservedError, PersistenceError
from truststore_tester.exporters import export_results_csv, export_results_json
from truststore_tester.runner import Scenario, ScenarioRunner


def _passing(ctx):
    return {"checked": True}


def _failing(ctx):
    raise DownloadNotObservedError("TslDownloadHistoryHasEntry for seqNr 3", 65, 65.1)


def _broken(ctx):
    raise RuntimeError("boom")


def _persistence_lost(ctx):
    raise PersistenceError("disk full")


def test_outcomes_map_to_status(context):
    runner = ScenarioRunner(context)
    results = runner.run_all([
        Scenario("1", "passes", "tsl", _passing),
        Scenario("2", "fails", "tsl", _failing),
        Scenario("3", "errors", "tsl", _broken),
        Scenario("4", "disabled", "tsl", _passing, enabled=False),
    ])
    assert [r.status for r in results] == [
        models.TestStatus.PASS, models.TestStatus.FAIL, models.TestStatus.ERROR, models.TestStatus.SKIP,
    ]
    assert results[0].details["checked"] is True
    assert "sequence_state" in results[0].details
    assert results[1].details["error_type"] == "DownloadNotObservedError"
    assert "seqNr 3" in results[1].message
    assert all(r.ended_at is not None for r in results)


def test_persistence_error_aborts_run(context):
    runner = ScenarioRunner(context)
    results = runner.run_all([
        Scenario("1", "passes", "tsl", _passing),
        Scenario("2", "loses persistence", "tsl", _persistence_lost),
        Scenario("3", "never runs", "tsl", _passing),
    ])
    assert [r.status for r in results] == [models.TestStatus.PASS, models.TestStatus.ERROR, models.TestStatus.ERROR]
    assert "Run aborted" in results[2].message


def test_scenarios_share_sequence_state(context):
    seen = []

    def allocate(ctx):
        seen.append(ctx.sequence.next_sequence_number())

    ScenarioRunner(context).run_all([Scenario(str(i), "allocate", "seq", allocate) for i in range(3)])
    assert seen == [2, 3, 4]


def test_export_json_and_csv(context, tmp_path):
    results = ScenarioRunner(context).run_all([
        Scenario("1", "passes", "tsl", _passing),
        Scenario("2", "fails", "tsl", _failing),
    ])
    json_path = tmp_path / "results.json"
    export_results_json(results, str(json_path), context.sequence.snapshot())
    data = json.loads(json_path.read_text(encoding="utf-8"))
    assert [r["status"] for r in data["results"]] == ["PASS", "FAIL"]
    assert data["sequence_state"] == {"last_offered": 1, "expected_in_sut": 1, "current_in_sut": 1}

    csv_path = tmp_path / "results.csv"
    export_results_csv(results, str(csv_path))
    with open(csv_path, newline="", encoding="utf-8") as f:
        rows = list(csv.DictReader(f))
    assert [row["name"] for row in rows] == ["passes", "fails"]
    assert json.loads(rows[0]["details"])["checked"] is True
    assert "expected_in_sut" not in rows[0]

    export_results_csv(results, str(csv_path), context.sequence.snapshot())
    with open(csv_path, newline="", encoding="utf-8") as f:
        rows = list(csv.DictReader(f))
    assert [(row["last_offered"], row["expected_in_sut"], row["current_in_sut"]) for row in rows] == [("1", "1", "1")] * 2
