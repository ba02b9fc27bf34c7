"""
Unit tests for the Discovery Agent (clustering).
"""

import random
from unittest.mock import patch

import pytest

from civiclens.agents.discovery import (
    DiscoveryAgent,
    choose_cluster_count,
    generate_cluster_title,
    kmeans_cosine,
)
from civiclens.agents.understanding import FingerprintGenerator
from civiclens.errors import StorageError
from civiclens.models.complaint import Complaint
from civiclens.storage.repository import PipelineRepository


class FixedSeeds:
    """Random stand-in that returns predetermined seed indices."""

    def __init__(self, indices):
        self.indices = list(indices)

    def randrange(self, n):
        return self.indices.pop(0)

    def sample(self, population, k):
        return [self.indices.pop(0) for _ in range(k)]


COMPLAINT_TEXTS = [
    ("water pipe leaking every day", "Ward 4"),
    ("drinking water supply shortage colony", "Ward 4"),
    ("water tap dry three days", "Ward 4"),
    ("huge pothole main road accidents", "Ward 2"),
    ("road surface damaged needs repair", "Ward 2"),
    ("broken pavement road near school", "Ward 9"),
    ("garbage collected week terrible smell", "Ward 5"),
    ("overflowing trash bin stray dogs", "Ward 5"),
    ("waste dumped empty plot dirty", "Ward 3"),
]


@pytest.fixture
def repository():
    repository = PipelineRepository()
    generator = FingerprintGenerator(repository=repository)

    for i, (text, location) in enumerate(COMPLAINT_TEXTS):
        repository.add_complaint(Complaint(
            id=f"c-{i}",
            text=text.capitalize(),
            cleaned_text=text,
            location=location,
        ))
        generator.generate(text, complaint_id=f"c-{i}")

    return repository


@pytest.mark.parametrize("n, expected", [
    (0, 0), (1, 1), (2, 2), (3, 3), (9, 3), (10, 4), (24, 8), (100, 8),
])
def test_choose_cluster_count(n, expected):
    """Test cluster count selection."""
    assert choose_cluster_count(n) == expected


def test_kmeans_exact_membership_with_fixed_seeds():
    """Test k-means membership with fixed seeds."""
    vectors = [
        [1.0, 0.0, 0.0], [0.9, 0.1, 0.0],
        [0.0, 1.0, 0.0], [0.1, 0.9, 0.0],
        [0.0, 0.0, 1.0], [0.0, 0.1, 0.9],
    ]

    clusters = kmeans_cosine(vectors, 3, FixedSeeds([0, 2, 4]))

    assert [c.members for c in clusters] == [[0, 1], [2, 3], [4, 5]]
    assert [c.index for c in clusters] == [0, 1, 2]


def test_kmeans_centroids_are_not_renormalized():
    """Test that centroids are plain means."""
    vectors = [[1.0, 0.0], [0.0, 1.0]]

    clusters = kmeans_cosine(vectors, 1, FixedSeeds([0]))

    assert clusters[0].centroid == pytest.approx([0.5, 0.5])


def test_kmeans_drops_empty_clusters_from_duplicate_seeds():
    """Test that a duplicate seed whose centroid never wins is dropped."""
    # Vectors 0 and 1 are identical, so cluster 0's centroid never moves and
    # keeps winning the tie against the duplicate seed in cluster 1
    vectors = [[1.0, 0.0], [1.0, 0.0], [0.0, 1.0], [0.1, 0.9]]

    clusters = kmeans_cosine(vectors, 3, FixedSeeds([0, 0, 2]))

    assert len(clusters) == 2
    assert [c.index for c in clusters] == [0, 2]
    assert [c.members for c in clusters] == [[0, 1], [2, 3]]
    assert all(c.members for c in clusters)
    assert sorted(i for c in clusters for i in c.members) == [0, 1, 2, 3]


@pytest.mark.parametrize("seed", range(10))
def test_kmeans_partitions_every_input_once(seed):
    """Test that every vector lands in exactly one non-empty cluster."""
    rng = random.Random(seed)
    vectors = [[rng.random() for _ in range(8)] for _ in range(20)]
    k = choose_cluster_count(len(vectors))

    clusters = kmeans_cosine(vectors, k, random.Random(seed))

    assert 0 < len(clusters) <= k
    assert all(c.members for c in clusters)
    assert sorted(i for c in clusters for i in c.members) == list(range(20))


def test_kmeans_without_replacement_uses_distinct_seeds():
    """Test seeding without replacement."""
    vectors = [[1.0, 0.0], [0.0, 1.0], [0.7, 0.7]]

    clusters = kmeans_cosine(vectors, 3, random.Random(1), with_replacement=False)

    assert len(clusters) == 3


def test_cluster_title_from_top_words():
    """Test cluster title generation."""
    title = generate_cluster_title([
        "water pipe leaking",
        "water leaking badly",
        "water supply",
    ])
    assert title == "Water & Leaking & Pipe Issues"


def test_cluster_title_fallback():
    """Test the fallback cluster title."""
    assert generate_cluster_title(["bad day", "too hot"]) == "General Issues"
    assert generate_cluster_title([]) == "General Issues"


def test_discover_writes_problems_and_links(repository):
    """Test that discovery writes problems, links and statuses."""
    agent = DiscoveryAgent(repository, rng=random.Random(42))

    result = agent.discover()

    assert result.total_complaints == 9
    assert 1 <= result.problems_created <= 3

    problems = repository.list_problems()
    assert len(problems) == result.problems_created
    assert sum(p.complaint_count for p in problems) == 9
    for problem in problems:
        assert problem.priority_score == 0
        assert problem.trend == "stable"
        assert problem.keywords == []
        assert problem.title.endswith("Issues")

    assert repository.count_links() == 9
    assert repository.count_complaints(status="analyzed") == 9
    assert repository.count_complaints(status="processing") == 0


def test_every_complaint_linked_exactly_once(repository):
    """Test link exclusivity after discovery."""
    DiscoveryAgent(repository, rng=random.Random(3)).discover()

    linked = []
    for problem in repository.list_problems():
        linked.extend(c.id for c in repository.complaints_for_problem(problem.id))

    assert sorted(linked) == sorted(f"c-{i}" for i in range(9))


def test_links_carry_constant_confidence(repository):
    """Test the constant link confidence."""
    DiscoveryAgent(repository, rng=random.Random(3)).discover()

    links = repository.store.select("complaint_problems")
    assert {link["confidence"] for link in links} == {0.8}


def test_second_run_without_new_complaints_keeps_problem_set(repository):
    """Scenario F: nothing pending, so the existing set is left alone."""
    DiscoveryAgent(repository, rng=random.Random(5)).discover()
    problems_before = [p.id for p in repository.list_problems()]
    links_before = repository.count_links()

    result = DiscoveryAgent(repository, rng=random.Random(5)).discover()

    assert result.total_complaints == 0
    assert [p.id for p in repository.list_problems()] == problems_before
    assert repository.count_links() == links_before


def test_recluster_is_a_full_recompute(repository):
    """Scenario F: re-clustering the same set keeps counts, replaces identities."""
    DiscoveryAgent(repository, rng=random.Random(11)).discover()
    ids_before = {p.id for p in repository.list_problems()}
    problems_before = len(ids_before)
    links_before = repository.count_links()

    for i in range(9):
        repository.set_complaint_status(f"c-{i}", "processing")
    DiscoveryAgent(repository, rng=random.Random(11)).discover()

    ids_after = {p.id for p in repository.list_problems()}
    assert len(ids_after) == problems_before
    assert repository.count_links() == links_before
    assert ids_before.isdisjoint(ids_after)


def test_complaints_without_fingerprint_are_ignored(repository):
    """Test that unfingerprinted complaints are not clustered."""
    repository.add_complaint(Complaint(id="c-new", text="Pending", cleaned_text="pending complaint text"))

    result = DiscoveryAgent(repository, rng=random.Random(0)).discover()

    assert result.total_complaints == 9
    assert repository.get_complaint("c-new").status == "processing"


def test_failed_write_rolls_back_to_previous_problem_set(repository):
    """Test that a failed discovery write restores the previous problem set."""
    DiscoveryAgent(repository, rng=random.Random(8)).discover()
    ids_before = {p.id for p in repository.list_problems()}

    for i in range(9):
        repository.set_complaint_status(f"c-{i}", "processing")

    with patch.object(repository, "set_complaint_status", side_effect=StorageError("disk full")):
        with pytest.raises(StorageError):
            DiscoveryAgent(repository, rng=random.Random(8)).discover()

    assert {p.id for p in repository.list_problems()} == ids_before
    assert repository.count_links() == 9
    assert repository.count_complaints(status="processing") == 9


# Run tests if executed directly
if __name__ == "__main__":
    pytest.main([__file__, "-v"])
