"""
Unit tests for the Priority Agent.
"""

import math
from datetime import datetime, timedelta, timezone

import pytest

from civiclens.agents.explainability import priority_label
from civiclens.agents.priority import (
    PriorityAgent,
    composite_score,
    determine_trend,
    location_density,
    recency_score,
    severity_score,
)
from civiclens.models.complaint import Complaint, ComplaintProblemLink
from civiclens.models.problem import Problem
from civiclens.models.stages import PriorityFactors
from civiclens.storage.repository import PipelineRepository

NOW = datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc)


def make_complaint(cid, cleaned_text="bench paint faded park", location="", age=timedelta(days=10)):
    return Complaint(
        id=cid,
        text=cleaned_text,
        cleaned_text=cleaned_text,
        location=location,
        status="analyzed",
        created_at=NOW - age,
        updated_at=NOW - age,
    )


def test_midpoint_priority_scenario():
    """Scenario E: 10 old, mild complaints in one location score 44 (MEDIUM)."""
    complaints = [make_complaint(f"c-{i}", location="Ward 4") for i in range(10)]

    factors = PriorityAgent.compute_factors(complaints, NOW)

    assert factors.severity_score == 0
    assert factors.recency_score == 0.5
    assert factors.location_density == pytest.approx(math.log10(11) * 3)

    score = composite_score(factors)
    assert score == 44
    assert priority_label(score) == "MEDIUM"


def test_single_complaint_trend_is_stable():
    """Scenario D: one complaint never forms a trend."""
    recent = [make_complaint("c-1", cleaned_text="urgent flood emergency", age=timedelta(minutes=5))]
    assert determine_trend(recent, NOW) == "stable"

    old = [make_complaint("c-1", age=timedelta(days=90))]
    assert determine_trend(old, NOW) == "stable"


def test_severity_counts_urgent_and_important_keywords():
    """Test severity keyword weights."""
    complaints = [
        make_complaint("c-1", cleaned_text="urgent water leak"),  # 3 + 1
        make_complaint("c-2", cleaned_text="quiet street"),  # 0
    ]
    assert severity_score(complaints) == 2


def test_severity_matches_substrings():
    """Test substring keyword matching for severity."""
    complaints = [make_complaint("c-1", cleaned_text="pipe leaking overflowing")]
    assert severity_score(complaints) == 2  # leak, overflow


def test_severity_is_capped_at_ten():
    """Test the severity cap."""
    complaints = [make_complaint("c-1", cleaned_text="urgent emergency critical immediate severe dangerous")]
    assert severity_score(complaints) == 10


def test_recency_weights():
    """Test recency weights by complaint age."""
    complaints = [
        make_complaint("c-1", age=timedelta(hours=2)),
        make_complaint("c-2", age=timedelta(days=3)),
        make_complaint("c-3", age=timedelta(days=10)),
    ]
    assert recency_score(complaints, NOW) == pytest.approx((3 + 1.5 + 0.5) / 3)


def test_location_density_ignores_empty_locations():
    """Test location density scoring."""
    complaints = [make_complaint("c-1"), make_complaint("c-2")]
    assert location_density(complaints) == pytest.approx(math.log10(2) * 3)

    complaints = [
        make_complaint("c-1", location="Ward 1"),
        make_complaint("c-2", location="Ward 1"),
        make_complaint("c-3", location="Ward 2"),
    ]
    assert location_density(complaints) == pytest.approx(math.log10(3) * 3)


def test_composite_rounds_half_up():
    """Test half-up rounding of the composite score."""
    factors = PriorityFactors(complaint_count=0, severity_score=0, recency_score=0, location_density=2.5)
    assert composite_score(factors) == 3


@pytest.mark.parametrize("count", [0, 1, 5, 10, 50])
@pytest.mark.parametrize("severity", [0, 4.5, 10])
@pytest.mark.parametrize("recency", [0.5, 1.5, 3])
@pytest.mark.parametrize("density", [0, 0.9, 6.1])
def test_composite_score_is_bounded_integer(count, severity, recency, density):
    """Test that the composite score is an integer in range."""
    score = composite_score(PriorityFactors(count, severity, recency, density))

    assert isinstance(score, int)
    assert 0 <= score <= 100


def test_trend_two_complaints_is_stable():
    """Test the trend for two complaints."""
    complaints = [
        make_complaint("c-1", age=timedelta(days=5)),
        make_complaint("c-2", age=timedelta(hours=1)),
    ]
    assert determine_trend(complaints, NOW) == "stable"


def test_trend_rising_when_second_half_is_larger_and_close():
    """Test rising trend detection."""
    complaints = [
        make_complaint("c-1", age=timedelta(days=10)),
        make_complaint("c-2", age=timedelta(days=10) - timedelta(hours=1)),
        make_complaint("c-3", age=timedelta(days=10) - timedelta(hours=2)),
    ]
    assert determine_trend(complaints, NOW) == "rising"


def test_trend_stable_when_second_half_is_far_apart():
    """Test that spread-out complaints stay stable."""
    complaints = [
        make_complaint("c-1", age=timedelta(days=10)),
        make_complaint("c-2", age=timedelta(hours=2)),
        make_complaint("c-3", age=timedelta(hours=1)),
    ]
    assert determine_trend(complaints, NOW) == "stable"


def test_prioritize_updates_problems():
    """Test that prioritization writes scores back to problems."""
    repository = PipelineRepository()
    repository.add_problem(Problem(id="p-1", title="Bench & Paint Issues", cluster_index=0,
                                   description="keep me", complaint_count=99))
    repository.add_problem(Problem(id="p-empty", title="General Issues", cluster_index=1))

    for i in range(10):
        complaint = make_complaint(f"c-{i}", location="Ward 4")
        repository.add_complaint(complaint)
        repository.add_link(ComplaintProblemLink(complaint_id=complaint.id, problem_id="p-1", confidence=0.8))

    result = PriorityAgent(repository, clock=lambda: NOW).prioritize()

    assert [p.problem_id for p in result.updated] == ["p-1"]
    assert result.highest_priority == 44

    problem = repository.get_problem("p-1")
    assert problem.priority_score == 44
    assert problem.trend == "stable"
    assert problem.complaint_count == 10
    assert problem.description == "keep me"

    untouched = repository.get_problem("p-empty")
    assert untouched.priority_score == 0


def test_prioritize_with_no_problems():
    """Test prioritization with no problems."""
    result = PriorityAgent(PipelineRepository(), clock=lambda: NOW).prioritize()
    assert result.updated == []
    assert result.highest_priority == 0


# Run tests if executed directly
if __name__ == "__main__":
    pytest.main([__file__, "-v"])
