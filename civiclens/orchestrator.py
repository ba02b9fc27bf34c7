"""
Pipeline Orchestrator.

Sequences the agents for the two workflows (complaint submission and full
re-analysis) and answers read-only queries against persisted state.
"""

import logging
import random
import threading
import uuid
from datetime import datetime, timedelta
from typing import Callable, List, Optional, TypeVar

from civiclens.agents.discovery import DiscoveryAgent
from civiclens.agents.explainability import ExplainabilityAgent
from civiclens.agents.ingestion import IngestionAgent
from civiclens.agents.priority import PriorityAgent
from civiclens.agents.understanding import FingerprintGenerator
from civiclens.errors import (
    AnalysisInProgressError,
    CivicLensError,
    NotFoundError,
    StageError,
    ValidationError,
)
from civiclens.models.audit import AnalysisRun
from civiclens.models.complaint import Complaint
from civiclens.models.stages import ComplaintSubmission
from civiclens.storage.record_store import InMemoryRecordStore, JsonFileRecordStore
from civiclens.storage.repository import PipelineRepository
from civiclens.utils.audit import AuditTrail
from civiclens.utils.report import ProblemReportExporter
from civiclens.utils.timestamps import utc_now
import config.settings as settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

ANALYSIS_STAGES = ("discovery", "priority", "explainability")


class PipelineOrchestrator:
    """
    Orchestrates the complaint analysis pipeline.

    submit:      1. Ingestion -> 2. Understanding
    analyze_all: 1. Discovery -> 2. Priority -> 3. Explainability

    Stages run one at a time. A failing stage aborts the rest of the
    workflow; writes made by earlier stages of the same run are kept.
    """

    def __init__(
        self,
        repository: Optional[PipelineRepository] = None,
        store_path: Optional[str] = None,
        rng: Optional[random.Random] = None,
        seed: Optional[int] = settings.CLUSTERING_SEED,
        clock: Callable[[], datetime] = utc_now,
        stale_run_timeout: timedelta = timedelta(minutes=settings.STALE_RUN_TIMEOUT_MINUTES)
    ):
        """
        Initialize pipeline orchestrator.

        Args:
            repository: Pre-built repository (takes precedence over store_path)
            store_path: JSON store file; an in-memory store is used when omitted
            rng: Random source for cluster seeding
            seed: Seed used when rng is not given
            clock: Source of "now" for recency, trend and run bookkeeping
            stale_run_timeout: Age after which a "processing" run stops blocking new runs
        """
        if repository is None:
            store = JsonFileRecordStore(store_path) if store_path else InMemoryRecordStore()
            repository = PipelineRepository(store)

        self.repository = repository
        self.clock = clock
        self.stale_run_timeout = stale_run_timeout
        self.audit = AuditTrail(repository)
        self._run_lock = threading.Lock()

        logger.info("Initializing pipeline components...")

        self.ingestion_agent = IngestionAgent(audit=self.audit)
        self.understanding_agent = FingerprintGenerator(repository=repository, audit=self.audit)
        self.discovery_agent = DiscoveryAgent(repository, audit=self.audit, rng=rng, seed=seed)
        self.priority_agent = PriorityAgent(repository, audit=self.audit, clock=clock)
        self.explainability_agent = ExplainabilityAgent(repository, audit=self.audit, clock=clock)
        self.report_exporter = ProblemReportExporter(repository)

        logger.info("Pipeline initialized successfully")

    # ------------------------------------------------------------------
    # Workflows
    # ------------------------------------------------------------------

    def submit_complaint(self, text: str, location: Optional[str] = "") -> dict:
        """
        Validate, store and fingerprint one complaint.

        Returns:
            {success, complaint_id, message} or {success: False, error, status: 400}

        Raises:
            StageError: If ingestion or understanding fails
            StorageError: If the complaint cannot be stored
        """
        try:
            submission = ComplaintSubmission.from_payload({"text": text, "location": location})
        except ValidationError as e:
            return self._error(e.reason, 400)

        ingestion = self._run_stage(
            "ingestion",
            lambda: self.ingestion_agent.validate(submission.text, submission.location)
        )

        if not ingestion.is_valid:
            return self._error(ingestion.reason or "Complaint validation failed", 400)

        now = self.clock()
        complaint = Complaint(
            id=str(uuid.uuid4()),
            text=submission.text,
            cleaned_text=ingestion.cleaned_text,
            location=ingestion.location,
            status="processing",
            created_at=now,
            updated_at=now,
        )
        self.repository.add_complaint(complaint)

        self._run_stage(
            "understanding",
            lambda: self.understanding_agent.generate(ingestion.cleaned_text, complaint.id)
        )

        logger.info(f"Complaint {complaint.id} submitted")
        return {
            "success": True,
            "complaint_id": complaint.id,
            "message": "Complaint submitted successfully",
        }

    def analyze_all(self) -> dict:
        """
        Run discovery, priority and explainability over pending complaints.

        Returns:
            {success, run_id, total_complaints, problems_discovered, problems,
             explanations, stages_executed}

        Raises:
            AnalysisInProgressError: If another run holds the writer slot
            StageError: If any stage fails (the run is marked failed first)
        """
        if not self._run_lock.acquire(blocking=False):
            raise AnalysisInProgressError()

        try:
            # Check and claim the writer slot atomically across processes sharing the store
            with self.repository.transaction():
                self._guard_active_runs()

                run = AnalysisRun(
                    id=str(uuid.uuid4()),
                    status="processing",
                    total_complaints=self.repository.count_complaints(status="processing"),
                    started_at=self.clock(),
                )
                self.repository.add_run(run)
            logger.info(f"Starting analysis run {run.id} ({run.total_complaints} pending complaints)")

            stages_executed: List[str] = []
            try:
                self._run_stage("discovery", self.discovery_agent.discover)
                stages_executed.append("discovery")

                self._run_stage("priority", self.priority_agent.prioritize)
                stages_executed.append("priority")

                explanations = self._run_stage("explainability", self.explainability_agent.explain)
                stages_executed.append("explainability")

            except StageError as e:
                run.status = "failed"
                run.error = str(e)
                run.completed_at = self.clock()
                self.repository.update_run(run)
                logger.error(f"Analysis run {run.id} failed after {stages_executed or 'no stages'}: {e}")
                raise

            problems = self.repository.list_problems()

            run.status = "completed"
            run.problems_discovered = len(problems)
            run.completed_at = self.clock()
            self.repository.update_run(run)

            logger.info(f"Analysis run {run.id} complete: {len(problems)} problems discovered")

            return {
                "success": True,
                "run_id": run.id,
                "total_complaints": run.total_complaints,
                "problems_discovered": run.problems_discovered,
                "problems": [p.to_dict() for p in problems],
                "explanations": explanations.to_dict()["explanations"],
                "stages_executed": stages_executed,
            }
        finally:
            self._run_lock.release()

    # ------------------------------------------------------------------
    # Read queries
    # ------------------------------------------------------------------

    def get_problems(self) -> dict:
        problems = self.repository.list_problems()
        return {"success": True, "problems": [p.to_dict() for p in problems]}

    def get_problem_details(self, problem_id: str) -> dict:
        """Problem plus its linked complaints, or a 404 response."""
        try:
            problem = self.repository.get_problem(problem_id)
        except NotFoundError:
            return self._error("Problem not found", 404)

        complaints = self.repository.complaints_for_problem(problem_id)
        return {
            "success": True,
            "problem": problem.to_dict(),
            "complaints": [c.to_dict() for c in complaints],
        }

    def get_agent_logs(self, limit: int = settings.AGENT_LOG_LIMIT) -> dict:
        logs = self.repository.recent_logs(limit)
        return {"success": True, "logs": [log.to_dict() for log in logs]}

    def get_analysis_runs(self, limit: int = 10) -> dict:
        runs = self.repository.recent_runs(limit)
        return {"success": True, "runs": [run.to_dict() for run in runs]}

    def export_report(self, output_dir: str = str(settings.OUTPUT_ROOT)) -> str:
        """Write the ranked problem table to CSV; returns the CSV path."""
        runs = self.repository.recent_runs(1)
        return self.report_exporter.export(output_dir, run=runs[0] if runs else None)

    # ------------------------------------------------------------------
    # Request dispatch
    # ------------------------------------------------------------------

    def handle_request(self, action: str, data: Optional[dict] = None) -> dict:
        """
        Dispatch an action-style request and convert errors into responses.

        Actions: submit_complaint, analyze_all, get_problems,
        get_problem_details, get_agent_logs, get_analysis_runs.
        """
        data = data or {}
        if not isinstance(data, dict):
            return self._error("Request data must be an object", 400)

        try:
            if action == "submit_complaint":
                submission = ComplaintSubmission.from_payload(data)
                return self.submit_complaint(submission.text, submission.location)

            if action == "analyze_all":
                return self.analyze_all()

            if action == "get_problems":
                return self.get_problems()

            if action == "get_problem_details":
                problem_id = data.get("problem_id")
                if not isinstance(problem_id, str) or not problem_id:
                    raise ValidationError("Field 'problem_id' is required")
                return self.get_problem_details(problem_id)

            if action == "get_agent_logs":
                limit = data.get("limit", settings.AGENT_LOG_LIMIT)
                if not isinstance(limit, int) or isinstance(limit, bool) or limit < 1:
                    raise ValidationError("Field 'limit' must be a positive integer")
                return self.get_agent_logs(limit)

            if action == "get_analysis_runs":
                return self.get_analysis_runs()

        except ValidationError as e:
            return self._error(e.reason, 400)
        except NotFoundError as e:
            return self._error(str(e), 404)
        except AnalysisInProgressError as e:
            return self._error(str(e), 409)
        except CivicLensError as e:
            logger.error(f"Request {action} failed: {e}")
            return self._error(str(e), 500)

        return self._error("Invalid action", 400)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _run_stage(self, stage: str, fn: Callable[[], T]) -> T:
        """Invoke one stage, normalizing any failure into StageError."""
        try:
            return fn()
        except StageError:
            raise
        except Exception as e:
            raise StageError(stage, str(e), cause=e) from e

    def _guard_active_runs(self) -> None:
        """
        Reject a new run while a recent one is still processing.

        Runs left "processing" past the stale timeout are marked failed.
        """
        now = self.clock()
        for run in self.repository.processing_runs():
            if now - run.started_at < self.stale_run_timeout:
                raise AnalysisInProgressError(run.id)

            logger.warning(f"Marking stale analysis run {run.id} as failed")
            run.status = "failed"
            run.error = "Abandoned: run exceeded the stale timeout"
            run.completed_at = now
            self.repository.update_run(run)

    @staticmethod
    def _error(message: str, status: int) -> dict:
        return {"success": False, "error": message, "status": status}
