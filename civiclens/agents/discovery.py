"""
Discovery Agent.

Groups fingerprinted complaints into problem clusters with cosine-similarity
k-means and replaces the stored problem set with the result.
"""

import logging
import math
import random
import uuid
from collections import Counter
from dataclasses import dataclass
from typing import List, Optional, Sequence

from civiclens.models.complaint import Complaint, ComplaintProblemLink
from civiclens.models.problem import Problem
from civiclens.models.stages import ClusterSummary, DiscoveryResult
from civiclens.storage.repository import PipelineRepository
from civiclens.utils.audit import AuditTrail
from civiclens.utils.vectors import cosine_similarity, mean_vector
import config.settings as settings

logger = logging.getLogger(__name__)


@dataclass
class Cluster:
    """One k-means cluster: its seed position and member indices into the input."""
    index: int
    centroid: List[float]
    members: List[int]


def choose_cluster_count(
    n: int,
    min_clusters: int = settings.MIN_CLUSTERS,
    max_clusters: int = settings.MAX_CLUSTERS,
    per_cluster: int = settings.COMPLAINTS_PER_CLUSTER
) -> int:
    """k = clamp(ceil(n / per_cluster), min, max), never more than n."""
    if n <= 0:
        return 0
    k = min(max(min_clusters, math.ceil(n / per_cluster)), max_clusters)
    return min(k, n)


def kmeans_cosine(
    vectors: Sequence[Sequence[float]],
    k: int,
    rng: random.Random,
    max_iterations: int = settings.MAX_ITERATIONS,
    convergence_threshold: float = settings.CONVERGENCE_THRESHOLD,
    with_replacement: bool = settings.SAMPLE_WITH_REPLACEMENT
) -> List[Cluster]:
    """
    k-means using highest cosine similarity as the assignment rule.

    Centroids are seeded from randomly sampled input vectors and recomputed
    as plain arithmetic means (never renormalized). A centroid only moves
    when its cosine similarity to the recomputed mean drops below
    `convergence_threshold`; iteration stops once no centroid moves.

    Returns:
        Non-empty clusters in seed order
    """
    if not vectors:
        return []

    k = min(k, len(vectors))
    if with_replacement:
        seeds = [rng.randrange(len(vectors)) for _ in range(k)]
    else:
        seeds = rng.sample(range(len(vectors)), k)

    clusters = [Cluster(index=i, centroid=list(vectors[seed]), members=[]) for i, seed in enumerate(seeds)]

    for iteration in range(max_iterations):
        for cluster in clusters:
            cluster.members = []

        for vec_idx, vector in enumerate(vectors):
            best_cluster = 0
            best_similarity = -1.0
            for cluster_idx, cluster in enumerate(clusters):
                similarity = cosine_similarity(vector, cluster.centroid)
                if similarity > best_similarity:
                    best_similarity = similarity
                    best_cluster = cluster_idx
            clusters[best_cluster].members.append(vec_idx)

        changed = False
        for cluster in clusters:
            if not cluster.members:
                continue

            new_centroid = mean_vector([vectors[i] for i in cluster.members])
            if cosine_similarity(cluster.centroid, new_centroid) < convergence_threshold:
                changed = True
                cluster.centroid = new_centroid

        if not changed:
            logger.debug(f"k-means converged after {iteration + 1} iterations")
            break

    return [c for c in clusters if c.members]


def generate_cluster_title(cleaned_texts: Sequence[str]) -> str:
    """
    Title from the three most frequent words longer than 3 characters.

    Example: "Water & Leaking & Pipe Issues"
    """
    word_freq = Counter(
        word
        for text in cleaned_texts
        for word in text.split()
        if len(word) > 3
    )

    top_words = [word for word, _ in word_freq.most_common(3)]
    if not top_words:
        return "General Issues"

    return " & ".join(w[0].upper() + w[1:] for w in top_words) + " Issues"


class DiscoveryAgent:
    """
    Clusters all fingerprinted, not-yet-analyzed complaints.

    Every run is a full recompute: the previous problems and links are
    deleted and the new clusters written in a single store transaction.
    """

    def __init__(
        self,
        repository: PipelineRepository,
        audit: Optional[AuditTrail] = None,
        rng: Optional[random.Random] = None,
        seed: Optional[int] = settings.CLUSTERING_SEED,
        sample_with_replacement: bool = settings.SAMPLE_WITH_REPLACEMENT,
        link_confidence: float = settings.LINK_CONFIDENCE
    ):
        """
        Initialize discovery agent.

        Args:
            repository: Pipeline repository
            audit: Audit trail for stage logging
            rng: Random source for centroid seeding (takes precedence over seed)
            seed: Seed for a private random source when rng is not given
            sample_with_replacement: Allow the same complaint to seed two centroids
            link_confidence: Confidence stored on every complaint-problem link
        """
        self.repository = repository
        self.audit = audit
        self.rng = rng if rng is not None else random.Random(seed)
        self.sample_with_replacement = sample_with_replacement
        self.link_confidence = link_confidence

    def discover(self) -> DiscoveryResult:
        """Cluster pending complaints and rewrite the problem set."""
        if self.audit is None:
            return self._discover()

        with self.audit.track("discovery", {"action": "cluster_complaints"}) as execution:
            result = self._discover()
            execution.output = result.to_dict()
        return result

    def _discover(self) -> DiscoveryResult:
        complaints = self.repository.complaints_ready_for_clustering()

        if not complaints:
            logger.info("No complaints to cluster")
            return DiscoveryResult(total_complaints=0)

        k = choose_cluster_count(len(complaints))
        clusters = kmeans_cosine(
            [c.fingerprint for c in complaints],
            k,
            self.rng,
            with_replacement=self.sample_with_replacement
        )
        logger.info(f"Clustered {len(complaints)} complaints into {len(clusters)} clusters (k={k})")

        summaries = []
        with self.repository.transaction():
            self.repository.clear_problems()

            for cluster in clusters:
                members = [complaints[i] for i in cluster.members]
                summaries.append(self._write_cluster(cluster.index, members))

        return DiscoveryResult(total_complaints=len(complaints), clusters=summaries)

    def _write_cluster(self, cluster_index: int, members: List[Complaint]) -> ClusterSummary:
        title = generate_cluster_title([c.cleaned_text for c in members])

        problem = Problem(
            id=str(uuid.uuid4()),
            title=title,
            cluster_index=cluster_index,
            complaint_count=len(members),
            priority_score=0,
            trend="stable",
            keywords=[],
        )
        self.repository.add_problem(problem)

        for complaint in members:
            self.repository.add_link(ComplaintProblemLink(
                complaint_id=complaint.id,
                problem_id=problem.id,
                confidence=self.link_confidence,
            ))
            self.repository.set_complaint_status(complaint.id, "analyzed")

        logger.info(f"Created problem {problem.id} - '{title}' ({len(members)} complaints)")

        return ClusterSummary(
            problem_id=problem.id,
            title=title,
            cluster_index=cluster_index,
            complaint_count=len(members),
        )
