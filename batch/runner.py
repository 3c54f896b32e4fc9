# ============================================================================
# File: batch/runner.py
# Description: Step run controller with guaranteed resource release
# ============================================================================
"""
Step Runner - opens, drives and closes one step run.

This module provides step-level control with:
- Step-run identity from (step name, run parameters)
- Resume from the last committed checkpoint of a FAILED/STOPPED run
- Rejection of runs that already COMPLETED unless a fresh run is requested
- Reader and writer always closed, whatever the exit path
- An immutable RunOutcome with per-attempt counts
"""

import asyncio
from typing import Any, Dict, Optional
from sqlalchemy.ext.asyncio import async_sessionmaker
import logging

from batch.chunk import ChunkOrchestrator, ChunkResult, ChunkState
from batch.context import ExecutionContextStore, step_run_id as build_step_run_id
from batch.readers.base import ItemReader
from batch.step import StepDefinition
from batch.writers.base import ItemWriter
from models.base import RunStatus
from schemas.outcome import RunOutcome
from core.exceptions import (
    BatchException,
    SourceReadError,
    SinkWriteError,
)

logger = logging.getLogger(__name__)

_STATUS_BY_STATE = {
    ChunkState.DONE: RunStatus.COMPLETED,
    ChunkState.STOPPED: RunStatus.STOPPED,
    ChunkState.FAILED: RunStatus.FAILED,
}


class StepRunner:
    """
    Step/Run Controller

    Responsibilities:
    - Resolve the execution context for the step-run identity
    - Open reader (restoring its checkpoint) and writer
    - Delegate to the chunk orchestrator until a terminal state
    - Close reader and writer on every exit path
    - Record and return the run outcome
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        context_store: Optional[ExecutionContextStore] = None,
    ):
        self.session_factory = session_factory
        self.context_store = context_store or ExecutionContextStore(session_factory)

    async def run(
        self,
        step: StepDefinition,
        parameters: Optional[Dict[str, Any]] = None,
        fresh: bool = False,
        stop_event: Optional[asyncio.Event] = None,
        recover: bool = False,
    ) -> RunOutcome:
        """
        Run a step to completion, failure or stop.

        Args:
            step: Step definition to execute
            parameters: Run parameters; together with the step name they
                identify the run for checkpointing
            fresh: Discard any stored state and start from zero, even if
                this identity already completed
            stop_event: When set, the run stops after the current chunk
            recover: Resume an identity left STARTED by an attempt that
                never finished (crashed process)

        Returns:
            RunOutcome with status COMPLETED, FAILED or STOPPED

        Raises:
            StepAlreadyCompletedError: identity already COMPLETED and fresh is False
            StepAlreadyRunningError: another attempt of the identity is in progress
            CheckpointPersistError: the execution context store is unavailable
        """
        parameters = dict(parameters or {})
        run_id = build_step_run_id(step.name, parameters)

        execution, resume_state = await self.context_store.begin(
            run_id, step.name, parameters, step.chunk_size, fresh=fresh, recover=recover
        )
        context = await self.context_store.load(run_id)
        started_at = execution.started_at

        logger.info(
            f"Starting step {step.name} ({run_id}, execution {execution.execution_id}"
            f"{', resuming' if resume_state else ''})"
        )

        reader: Optional[ItemReader] = None
        writer: Optional[ItemWriter] = None
        result: Optional[ChunkResult] = None
        error: Optional[BaseException] = None

        try:
            reader = step.reader_factory()
            writer = step.writer_factory()

            reader_state = (resume_state or {}).get("reader")
            try:
                await reader.open(reader_state)
            except BatchException:
                raise
            except Exception as e:
                raise SourceReadError(
                    "Failed to open reader",
                    context={"step_name": step.name, "reader": reader.name},
                    original_exception=e,
                )
            try:
                await writer.open()
            except BatchException:
                raise
            except Exception as e:
                raise SinkWriteError(
                    "Failed to open writer",
                    context={"step_name": step.name, "writer": writer.name},
                    original_exception=e,
                )

            orchestrator = ChunkOrchestrator(
                step=step,
                reader=reader,
                writer=writer,
                session_factory=self.session_factory,
                context_store=self.context_store,
                step_run_id=run_id,
                stop_event=stop_event,
                prior_counts=(resume_state or {}).get("counts"),
                context_version=context.version,
            )
            result = await orchestrator.execute()
            error = result.error

        except Exception as e:
            error = e
            if isinstance(e, BatchException):
                logger.error(
                    f"Step {step.name} failed: {e.message}",
                    extra={"error_context": e.to_dict()},
                )
            else:
                logger.exception(f"Unexpected error in step {step.name}")

        finally:
            await self._close_quietly(step, reader)
            await self._close_quietly(step, writer)

        if result is not None and error is None:
            status = _STATUS_BY_STATE[result.state]
        else:
            status = RunStatus.FAILED
        counts = result.counts.as_dict() if result is not None else {}

        error_message = None
        error_details = None
        if error is not None:
            error_message = error.message if isinstance(error, BatchException) else str(error)
            error_details = error.to_dict() if isinstance(error, BatchException) else {
                "error_type": type(error).__name__,
                "message": str(error),
            }

        ended_at, checkpoint = await self.context_store.finish(
            run_id,
            execution.execution_id,
            status,
            counts,
            error_message=error_message,
            error_details=error_details,
        )

        outcome = RunOutcome(
            step_name=step.name,
            step_run_id=run_id,
            execution_id=execution.execution_id,
            status=status,
            resumed=resume_state is not None,
            error=error_message,
            error_type=type(error).__name__ if error is not None else None,
            error_details=error_details,
            started_at=started_at,
            ended_at=ended_at,
            checkpoint=checkpoint,
            **counts,
        )

        log = logger.info if outcome.succeeded else logger.warning
        log(f"Step run finished: {outcome.summary()}")
        return outcome

    async def _close_quietly(self, step: StepDefinition, resource: Any) -> None:
        """Close a reader or writer; a close failure never masks the run's own error"""
        if resource is None:
            return
        try:
            await resource.close()
        except Exception:
            logger.exception(f"{step.name}: failed to close {resource!r}")
