"""
Pipeline repository.

Typed access to the record store for every stage and the orchestrator.
"""

import logging
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional

from civiclens.errors import NotFoundError, StorageError
from civiclens.models.audit import AgentExecutionLog, AnalysisRun
from civiclens.models.complaint import Complaint, ComplaintProblemLink
from civiclens.models.problem import Problem
from civiclens.storage.record_store import InMemoryRecordStore
from civiclens.utils.timestamps import to_iso, utc_now

logger = logging.getLogger(__name__)


class PipelineRepository:
    """
    Maps store rows to model objects.

    Stages never touch table names or raw rows directly; they go through
    this class so the storage backend can be swapped.
    """

    def __init__(self, store: Optional[InMemoryRecordStore] = None):
        self.store = store if store is not None else InMemoryRecordStore()

    @contextmanager
    def transaction(self) -> Iterator["PipelineRepository"]:
        with self.store.transaction():
            yield self

    # ------------------------------------------------------------------
    # Complaints
    # ------------------------------------------------------------------

    def add_complaint(self, complaint: Complaint) -> Complaint:
        self.store.insert("complaints", complaint.to_dict())
        logger.debug(f"Stored complaint {complaint.id}")
        return complaint

    def get_complaint(self, complaint_id: str) -> Complaint:
        row = self.store.get("complaints", complaint_id)
        if row is None:
            raise NotFoundError("complaints", complaint_id)
        return Complaint.from_dict(row)

    def set_fingerprint(self, complaint_id: str, fingerprint: List[float]) -> None:
        self.store.update("complaints", complaint_id, {
            "fingerprint": list(fingerprint),
            "updated_at": to_iso(utc_now()),
        })

    def set_complaint_status(self, complaint_id: str, status: str) -> None:
        self.store.update("complaints", complaint_id, {
            "status": status,
            "updated_at": to_iso(utc_now()),
        })

    def complaints_ready_for_clustering(self) -> List[Complaint]:
        """Complaints with status 'processing' that already carry a fingerprint."""
        rows = self.store.select(
            "complaints",
            where={"status": "processing"},
            predicate=lambda row: row.get("fingerprint") is not None
        )
        return [Complaint.from_dict(row) for row in rows]

    def count_complaints(self, status: Optional[str] = None) -> int:
        return self.store.count("complaints", where={"status": status} if status else None)

    def complaints_for_problem(self, problem_id: str) -> List[Complaint]:
        links = self.store.select("complaint_problems", where={"problem_id": problem_id})
        complaints = []
        for link in links:
            row = self.store.get("complaints", link["complaint_id"])
            if row is None:
                logger.warning(f"Link to missing complaint {link['complaint_id']}, skipping")
                continue
            complaints.append(Complaint.from_dict(row))
        return complaints

    # ------------------------------------------------------------------
    # Problems and links
    # ------------------------------------------------------------------

    def clear_problems(self) -> None:
        """Delete every Problem and every ComplaintProblemLink."""
        problems = self.store.delete_where("problems")
        links = self.store.delete_where("complaint_problems")
        logger.info(f"Cleared {problems} problems and {links} complaint links")

    def add_problem(self, problem: Problem) -> Problem:
        self.store.insert("problems", problem.to_dict())
        return problem

    def add_link(self, link: ComplaintProblemLink) -> ComplaintProblemLink:
        if self.store.get("complaint_problems", link.id) is not None:
            raise StorageError(f"Complaint {link.complaint_id} is already linked to a problem")
        self.store.insert("complaint_problems", link.to_dict())
        return link

    def count_links(self) -> int:
        return self.store.count("complaint_problems")

    def get_problem(self, problem_id: str) -> Problem:
        row = self.store.get("problems", problem_id)
        if row is None:
            raise NotFoundError("problems", problem_id)
        return Problem.from_dict(row)

    def list_problems(self) -> List[Problem]:
        """All problems, highest priority first (cluster index breaks ties)."""
        problems = [Problem.from_dict(row) for row in self.store.select("problems")]
        problems.sort(key=lambda p: (-p.priority_score, p.cluster_index))
        return problems

    def update_problem(self, problem_id: str, **fields) -> None:
        fields["updated_at"] = to_iso(utc_now())
        self.store.update("problems", problem_id, fields)

    # ------------------------------------------------------------------
    # Agent logs
    # ------------------------------------------------------------------

    def add_log(self, log: AgentExecutionLog) -> None:
        self.store.insert("agent_logs", log.to_dict())

    def finish_log(self, log: AgentExecutionLog) -> None:
        """
        Write the final state of a log entry.

        Raises:
            StorageError: If the stored entry is already completed or failed
        """
        row = self.store.get("agent_logs", log.id)
        if row is None:
            raise NotFoundError("agent_logs", log.id)
        if row.get("status") != "running":
            raise StorageError(f"Agent log {log.id} is immutable once {row.get('status')}")

        self.store.update("agent_logs", log.id, {
            "status": log.status,
            "output": log.output,
            "duration_ms": log.duration_ms,
        })

    def recent_logs(self, limit: int) -> List[AgentExecutionLog]:
        """Most recent first; entries with equal timestamps keep reverse insertion order."""
        logs = [AgentExecutionLog.from_dict(row) for row in reversed(self.store.select("agent_logs"))]
        logs.sort(key=lambda log: log.created_at, reverse=True)
        return logs[:limit]

    # ------------------------------------------------------------------
    # Analysis runs
    # ------------------------------------------------------------------

    def add_run(self, run: AnalysisRun) -> None:
        self.store.insert("analysis_runs", run.to_dict())

    def update_run(self, run: AnalysisRun) -> None:
        self.store.update("analysis_runs", run.id, run.to_dict())

    def get_run(self, run_id: str) -> AnalysisRun:
        row = self.store.get("analysis_runs", run_id)
        if row is None:
            raise NotFoundError("analysis_runs", run_id)
        return AnalysisRun.from_dict(row)

    def processing_runs(self) -> List[AnalysisRun]:
        rows = self.store.select("analysis_runs", where={"status": "processing"})
        return [AnalysisRun.from_dict(row) for row in rows]

    def recent_runs(self, limit: int) -> List[AnalysisRun]:
        runs = [AnalysisRun.from_dict(row) for row in reversed(self.store.select("analysis_runs"))]
        runs.sort(key=lambda run: run.started_at, reverse=True)
        return runs[:limit]

    def summary(self) -> Dict[str, int]:
        """Row counts per table, for CLI status output."""
        return {
            "complaints": self.store.count("complaints"),
            "problems": self.store.count("problems"),
            "links": self.store.count("complaint_problems"),
            "agent_logs": self.store.count("agent_logs"),
            "analysis_runs": self.store.count("analysis_runs"),
        }
