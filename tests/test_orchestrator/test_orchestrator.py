"""
Integration tests for the pipeline orchestrator.
"""

import os
import random
import tempfile
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from civiclens.errors import AnalysisInProgressError, StageError
from civiclens.models.audit import AnalysisRun
from civiclens.orchestrator import PipelineOrchestrator

NOW = datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc)

COMPLAINTS = [
    ("Water pipe is leaking badly near the market every single day", "Ward 4"),
    ("No water supply since three days, the tap is completely dry", "Ward 4"),
    ("Huge pothole on main road causing accidents for bikers", "Ward 2"),
    ("Road surface badly damaged after rains, needs urgent repair", "Ward 2"),
    ("Garbage not collected for a week, terrible smell everywhere", "Ward 5"),
    ("Overflowing trash bin attracting stray dogs and flies", "Ward 5"),
]


@pytest.fixture
def orchestrator():
    return PipelineOrchestrator(rng=random.Random(7), clock=lambda: NOW)


@pytest.fixture
def loaded(orchestrator):
    for text, location in COMPLAINTS:
        assert orchestrator.submit_complaint(text, location)["success"]
    return orchestrator


def test_submit_valid_complaint(orchestrator):
    """Test that a valid complaint is stored with its fingerprint."""
    response = orchestrator.submit_complaint(*COMPLAINTS[0])

    assert response["success"] is True
    assert response["message"] == "Complaint submitted successfully"

    complaint = orchestrator.repository.get_complaint(response["complaint_id"])
    assert complaint.status == "processing"
    assert complaint.location == "Ward 4"
    assert complaint.text == COMPLAINTS[0][0]
    assert len(complaint.fingerprint) == 384

    stages = [log["stage_name"] for log in orchestrator.get_agent_logs()["logs"]]
    assert sorted(stages) == ["ingestion", "understanding"]


def test_submit_rejected_complaint_is_not_stored(orchestrator):
    """Test that a rejected complaint is audited but not stored."""
    response = orchestrator.submit_complaint("Fix")

    assert response["success"] is False
    assert response["status"] == 400
    assert "short" in response["error"].lower()
    assert orchestrator.repository.count_complaints() == 0

    # The rejected ingestion is still audited; understanding never ran
    logs = orchestrator.get_agent_logs()["logs"]
    assert [log["stage_name"] for log in logs] == ["ingestion"]


@pytest.mark.parametrize("payload", [{"text": 42}, {}, {"text": "Water pipe leaking near school", "location": 7}])
def test_submit_bad_payload(orchestrator, payload):
    """Test that malformed submit payloads get a 400 response."""
    response = orchestrator.handle_request("submit_complaint", payload)

    assert response["success"] is False
    assert response["status"] == 400
    assert orchestrator.repository.count_complaints() == 0


def test_analyze_all_end_to_end(loaded):
    """Test a full discovery, priority and explainability run."""
    response = loaded.analyze_all()

    assert response["success"] is True
    assert response["total_complaints"] == 6
    assert response["stages_executed"] == ["discovery", "priority", "explainability"]
    assert 1 <= response["problems_discovered"] <= 3
    assert len(response["problems"]) == response["problems_discovered"]
    assert len(response["explanations"]) == response["problems_discovered"]

    scores = [p["priority_score"] for p in response["problems"]]
    assert scores == sorted(scores, reverse=True)
    assert sum(p["complaint_count"] for p in response["problems"]) == 6
    for problem in response["problems"]:
        assert 0 <= problem["priority_score"] <= 100
        assert "PRIORITY:" in problem["description"]

    assert loaded.repository.count_complaints(status="analyzed") == 6

    run = loaded.repository.get_run(response["run_id"])
    assert run.status == "completed"
    assert run.problems_discovered == response["problems_discovered"]
    assert run.completed_at == NOW


def test_analyze_all_with_no_complaints(orchestrator):
    """Test that an empty store still runs every stage."""
    response = orchestrator.analyze_all()

    assert response["success"] is True
    assert response["total_complaints"] == 0
    assert response["problems_discovered"] == 0
    assert response["problems"] == []
    assert response["stages_executed"] == ["discovery", "priority", "explainability"]


def test_stage_failure_marks_run_failed(loaded):
    """Test that a failing stage fails the run and stops later stages."""
    with patch("civiclens.agents.priority.composite_score", side_effect=RuntimeError("score exploded")):
        with pytest.raises(StageError) as exc_info:
            loaded.analyze_all()

    assert exc_info.value.stage == "priority"

    run = loaded.repository.recent_runs(1)[0]
    assert run.status == "failed"
    assert "priority stage failed" in run.error

    # Discovery writes from the failed run are kept
    problems = loaded.get_problems()["problems"]
    assert problems
    assert all(p["priority_score"] == 0 for p in problems)

    logs = loaded.get_agent_logs()["logs"]
    stage_status = {log["stage_name"]: log["status"] for log in logs}
    assert stage_status["discovery"] == "completed"
    assert stage_status["priority"] == "failed"
    assert "explainability" not in stage_status


def test_recent_processing_run_blocks_new_run(loaded):
    """Test that a recent processing run blocks a new one."""
    loaded.repository.add_run(AnalysisRun(id="r-active", started_at=NOW - timedelta(minutes=5)))

    with pytest.raises(AnalysisInProgressError):
        loaded.analyze_all()

    response = loaded.handle_request("analyze_all")
    assert response["success"] is False
    assert response["status"] == 409
    assert loaded.repository.count_complaints(status="processing") == 6


def test_stale_processing_run_is_failed(loaded):
    """Test that a stale processing run is failed and no longer blocks."""
    loaded.repository.add_run(AnalysisRun(id="r-stale", started_at=NOW - timedelta(hours=2)))

    response = loaded.analyze_all()

    assert response["success"] is True
    stale = loaded.repository.get_run("r-stale")
    assert stale.status == "failed"
    assert stale.completed_at == NOW


def test_concurrent_run_rejected_while_lock_held(loaded):
    """Test the in-process single-writer lock."""
    loaded._run_lock.acquire()
    try:
        with pytest.raises(AnalysisInProgressError):
            loaded.analyze_all()
    finally:
        loaded._run_lock.release()

    assert loaded.analyze_all()["success"] is True


def test_problem_details(loaded):
    """Test problem detail lookup through the request dispatcher."""
    loaded.analyze_all()
    problem = loaded.get_problems()["problems"][0]

    response = loaded.handle_request("get_problem_details", {"problem_id": problem["id"]})

    assert response["success"] is True
    assert response["problem"]["id"] == problem["id"]
    assert len(response["complaints"]) == problem["complaint_count"]


def test_problem_details_not_found(orchestrator):
    """Test the 404 response for an unknown problem."""
    response = orchestrator.get_problem_details("missing")
    assert response == {"success": False, "error": "Problem not found", "status": 404}


def test_invalid_action(orchestrator):
    """Test that unknown actions are rejected."""
    response = orchestrator.handle_request("drop_tables")
    assert response["status"] == 400
    assert response["error"] == "Invalid action"


def test_agent_logs_newest_first_with_limit(loaded):
    """Test agent log ordering and limit validation."""
    loaded.analyze_all()

    logs = loaded.handle_request("get_agent_logs", {"limit": 3})["logs"]

    assert [log["stage_name"] for log in logs] == ["explainability", "priority", "discovery"]

    assert loaded.handle_request("get_agent_logs", {"limit": 0})["status"] == 400


def test_analysis_runs_listing(loaded):
    """Test listing analysis runs."""
    loaded.analyze_all()

    runs = loaded.handle_request("get_analysis_runs")["runs"]

    assert len(runs) == 1
    assert runs[0]["status"] == "completed"
    assert runs[0]["total_complaints"] == 6


def test_json_store_persists_across_instances():
    """Test that pipeline state survives a restart with the JSON store."""
    with tempfile.TemporaryDirectory() as tmpdir:
        store_path = os.path.join(tmpdir, "store.json")

        first = PipelineOrchestrator(store_path=store_path, rng=random.Random(1), clock=lambda: NOW)
        for text, location in COMPLAINTS:
            first.submit_complaint(text, location)
        first.analyze_all()

        second = PipelineOrchestrator(store_path=store_path, clock=lambda: NOW)
        assert second.get_problems()["problems"] == first.get_problems()["problems"]
        assert second.repository.count_complaints(status="analyzed") == 6
        assert len(second.get_agent_logs(100)["logs"]) == 15


def test_orchestrators_sharing_a_store_keep_all_complaints():
    """Test that two pipelines on one store file never lose each other's complaints."""
    with tempfile.TemporaryDirectory() as tmpdir:
        store_path = os.path.join(tmpdir, "store.json")
        first = PipelineOrchestrator(store_path=store_path, clock=lambda: NOW)
        second = PipelineOrchestrator(store_path=store_path, clock=lambda: NOW)

        first_id = first.submit_complaint(*COMPLAINTS[0])["complaint_id"]
        second_id = second.submit_complaint(*COMPLAINTS[1])["complaint_id"]

        fresh = PipelineOrchestrator(store_path=store_path, clock=lambda: NOW)
        ids = {c["id"] for c in fresh.repository.store.select("complaints")}
        assert {first_id, second_id} <= ids
        assert fresh.repository.get_complaint(first_id).fingerprint is not None


def test_processing_run_from_other_orchestrator_blocks_analysis():
    """Test that the run-status guard sees runs started through another store instance."""
    with tempfile.TemporaryDirectory() as tmpdir:
        store_path = os.path.join(tmpdir, "store.json")
        first = PipelineOrchestrator(store_path=store_path, clock=lambda: NOW)
        second = PipelineOrchestrator(store_path=store_path, clock=lambda: NOW)

        second.repository.add_run(AnalysisRun(id="r-other", started_at=NOW - timedelta(minutes=1)))

        with pytest.raises(AnalysisInProgressError):
            first.analyze_all()


# Run tests if executed directly
if __name__ == "__main__":
    pytest.main([__file__, "-v"])
