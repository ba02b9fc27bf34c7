"""
Audit trail.

Writes one AgentExecutionLog per stage invocation: inserted as "running",
then finalized exactly once as "completed" or "failed".
"""

import logging
import time
import uuid
from contextlib import contextmanager
from typing import Iterator, Optional

from civiclens.errors import CivicLensError
from civiclens.models.audit import AgentExecutionLog
from civiclens.storage.repository import PipelineRepository

logger = logging.getLogger(__name__)


class StageExecution:
    """Handle yielded to a running stage so it can attach its output."""

    def __init__(self, log: AgentExecutionLog):
        self.log = log
        self.output: dict = {}


class AuditTrail:
    """Tracks stage invocations in the agent_logs table."""

    def __init__(self, repository: PipelineRepository):
        self.repository = repository

    @contextmanager
    def track(self, stage_name: str, input_data: Optional[dict] = None) -> Iterator[StageExecution]:
        """
        Record a stage invocation around the wrapped block.

        Args:
            stage_name: One of the pipeline stage names
            input_data: Input snapshot stored with the entry

        Yields:
            StageExecution whose `output` becomes the entry's output snapshot
        """
        log = AgentExecutionLog(
            id=str(uuid.uuid4()),
            stage_name=stage_name,
            status="running",
            input=input_data or {},
        )
        self.repository.add_log(log)
        execution = StageExecution(log)
        start = time.perf_counter()

        try:
            yield execution
        except Exception as e:
            log.status = "failed"
            log.output = {"error": str(e)}
            log.duration_ms = self._elapsed_ms(start)
            logger.error(f"{stage_name} stage failed after {log.duration_ms}ms: {e}")
            self._finalize(log)
            raise

        log.status = "completed"
        log.output = execution.output
        log.duration_ms = self._elapsed_ms(start)
        self._finalize(log)
        logger.info(f"{stage_name} stage completed in {log.duration_ms}ms")

    def _finalize(self, log: AgentExecutionLog) -> None:
        try:
            self.repository.finish_log(log)
        except CivicLensError as e:
            if log.status == "failed":
                # Keep the stage's own error as the one that propagates
                logger.error(f"Could not finalize audit entry {log.id}: {e}")
            else:
                raise

    @staticmethod
    def _elapsed_ms(start: float) -> int:
        return int((time.perf_counter() - start) * 1000)
