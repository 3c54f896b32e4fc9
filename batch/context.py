"""
Execution context store: step-run identity → resumption state.

The store persists one StepExecutionContext row per step-run identity and
one StepExecution row per attempt. Checkpoints are written on the chunk's
own session so they commit atomically with the chunk.
"""

from datetime import datetime
from typing import Any, Dict, Optional, Tuple
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from models.base import RunStatus, utcnow
from models.execution_context import StepExecutionContext
from models.step_execution import StepExecution
from core.exceptions import (
    CheckpointPersistError,
    StepAlreadyCompletedError,
    StepAlreadyRunningError,
)
import hashlib
import json
import logging

logger = logging.getLogger(__name__)


def parameters_hash(parameters: Dict[str, Any]) -> str:
    """
    Deterministic SHA-256 of run parameters.

    Keys are sorted so logically equal parameter sets hash the same.
    """
    canonical = json.dumps(parameters or {}, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def step_run_id(step_name: str, parameters: Dict[str, Any]) -> str:
    """Checkpoint key: step name plus a short parameter hash"""
    return f"{step_name}:{parameters_hash(parameters)[:32]}"


class ExecutionContextStore:
    """
    Keyed, durable checkpoint store.

    Responsibilities:
    - load/save resumption state per step-run identity
    - status transitions of the identity (STARTED → COMPLETED/FAILED/STOPPED)
    - per-attempt StepExecution audit rows
    """

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def _get(self, session: AsyncSession, run_id: str) -> Optional[StepExecutionContext]:
        result = await session.execute(
            select(StepExecutionContext).where(StepExecutionContext.step_run_id == run_id)
        )
        return result.scalar_one_or_none()

    async def load(self, run_id: str) -> Optional[StepExecutionContext]:
        """Context for a step-run identity, or None on a first attempt"""
        try:
            async with self.session_factory() as session:
                return await self._get(session, run_id)
        except SQLAlchemyError as e:
            raise CheckpointPersistError(
                "Failed to load execution context",
                context={"step_run_id": run_id, "operation": "load"},
                original_exception=e,
            )

    async def load_state(self, run_id: str) -> Optional[Dict[str, Any]]:
        context = await self.load(run_id)
        return context.state if context is not None else None

    async def save(
        self,
        session: AsyncSession,
        run_id: str,
        state: Dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> Optional[int]:
        """
        Stage the checkpoint on the chunk session.

        The caller commits; the checkpoint becomes durable together with
        the chunk's rows. With expected_version the update only applies
        while the stored version still matches, so a chunk staged by an
        attempt that lost ownership of the identity is rejected. Returns
        the new version.
        """
        conditions = [StepExecutionContext.step_run_id == run_id]
        if expected_version is not None:
            conditions.append(StepExecutionContext.version == expected_version)

        try:
            result = await session.execute(
                update(StepExecutionContext)
                .where(*conditions)
                .values(
                    state=state,
                    version=StepExecutionContext.version + 1,
                    updated_at=utcnow(),
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                context = await self._get(session, run_id)
                if context is None:
                    raise CheckpointPersistError(
                        "Execution context does not exist",
                        context={"step_run_id": run_id, "operation": "save"},
                    )
                raise CheckpointPersistError(
                    "Checkpoint version conflict",
                    context={
                        "step_run_id": run_id,
                        "operation": "save",
                        "expected_version": expected_version,
                        "stored_version": context.version,
                    },
                )
        except SQLAlchemyError as e:
            raise CheckpointPersistError(
                "Failed to persist checkpoint",
                context={"step_run_id": run_id, "operation": "save"},
                original_exception=e,
            )

        return (expected_version + 1) if expected_version is not None else None

    async def begin(
        self,
        run_id: str,
        step_name: str,
        parameters: Dict[str, Any],
        chunk_size: int,
        fresh: bool = False,
        recover: bool = False,
    ) -> Tuple[StepExecution, Optional[Dict[str, Any]]]:
        """
        Claim the identity for a new attempt and record it.

        The claim is a conditional update in the attempt's own transaction:
        an identity already STARTED is refused unless recover is set, and a
        COMPLETED one is refused unless fresh is set.

        Returns the attempt row and the state to resume from (None when
        starting from zero).

        Raises:
            StepAlreadyRunningError: another attempt holds the identity
            StepAlreadyCompletedError: identity COMPLETED and fresh is False
        """
        now = utcnow()
        claim_conditions = [StepExecutionContext.step_run_id == run_id]
        if not recover:
            claim_conditions.append(StepExecutionContext.status != RunStatus.STARTED)
        if not fresh:
            claim_conditions.append(StepExecutionContext.status != RunStatus.COMPLETED)

        claim_values = {
            "status": RunStatus.STARTED,
            "last_run_at": now,
            "total_runs": StepExecutionContext.total_runs + 1,
        }
        if fresh:
            claim_values.update(state=None, version=0, error_message=None)

        try:
            async with self.session_factory() as session:
                # The write comes first so the transaction holds the row
                # before anything is read from it
                claimed = await session.execute(
                    update(StepExecutionContext)
                    .where(*claim_conditions)
                    .values(**claim_values)
                    .execution_options(synchronize_session=False)
                )
                context = await self._get(session, run_id)

                if claimed.rowcount != 1:
                    if context is not None:
                        status = context.status
                        await session.rollback()
                        self._refuse(run_id, step_name, status)
                    context = StepExecutionContext(
                        step_run_id=run_id,
                        step_name=step_name,
                        parameters=parameters,
                        parameters_hash=parameters_hash(parameters),
                        state=None,
                        version=0,
                        status=RunStatus.STARTED,
                        last_run_at=now,
                        total_runs=1,
                    )
                    session.add(context)
                elif recover:
                    logger.warning(
                        f"{step_name}: {run_id} claimed with recover, "
                        f"resuming from its last committed checkpoint"
                    )

                resume_state = context.state
                execution = StepExecution(
                    step_run_id=run_id,
                    step_name=step_name,
                    status=RunStatus.STARTED,
                    resumed=resume_state is not None,
                    chunk_size=chunk_size,
                    started_at=now,
                    checkpoint_before=resume_state,
                )
                session.add(execution)
                await session.commit()
                await session.refresh(execution)
                return execution, resume_state
        except IntegrityError as e:
            # Two first attempts raced to create the identity
            raise StepAlreadyRunningError(
                "Another attempt of this step run is in progress",
                context={"step_name": step_name, "step_run_id": run_id},
                original_exception=e,
            )
        except SQLAlchemyError as e:
            raise CheckpointPersistError(
                "Failed to start step execution",
                context={"step_run_id": run_id, "operation": "begin"},
                original_exception=e,
            )

    @staticmethod
    def _refuse(run_id: str, step_name: str, status: RunStatus) -> None:
        context = {"step_name": step_name, "step_run_id": run_id, "status": status.value}
        if status == RunStatus.COMPLETED:
            raise StepAlreadyCompletedError("Step run already completed", context=context)
        raise StepAlreadyRunningError("Another attempt of this step run is in progress", context=context)

    @staticmethod
    def _discard_state(context: StepExecutionContext) -> None:
        context.state = None
        context.version = 0
        context.error_message = None

    async def reset(self, run_id: str) -> bool:
        """
        Discard the stored state of an identity so its next run starts from zero.

        Status is kept, so a COMPLETED identity still needs fresh=True to
        run again. Returns False when the identity has never run.
        """
        try:
            async with self.session_factory() as session:
                context = await self._get(session, run_id)
                if context is None:
                    return False
                self._discard_state(context)
                context.updated_at = utcnow()
                await session.commit()
        except SQLAlchemyError as e:
            raise CheckpointPersistError(
                "Failed to reset execution context",
                context={"step_run_id": run_id, "operation": "reset"},
                original_exception=e,
            )

        logger.info(f"Execution context {run_id} reset")
        return True

    async def finish(
        self,
        run_id: str,
        execution_id: Any,
        status: RunStatus,
        counts: Dict[str, int],
        error_message: Optional[str] = None,
        error_details: Optional[Dict[str, Any]] = None,
    ) -> Tuple[datetime, Optional[Dict[str, Any]]]:
        """
        Record the terminal status of the attempt and of the identity.

        The committed checkpoint state is left untouched so a FAILED or
        STOPPED run can resume from it. Returns (ended_at, last state).
        """
        now = utcnow()
        try:
            async with self.session_factory() as session:
                context = await self._get(session, run_id)
                result = await session.execute(
                    select(StepExecution).where(StepExecution.execution_id == execution_id)
                )
                execution = result.scalar_one()

                execution.status = status
                execution.ended_at = now
                execution.duration_seconds = (now - execution.started_at).total_seconds()
                for key, value in counts.items():
                    setattr(execution, key, value)
                execution.error_message = error_message
                execution.error_details = error_details
                execution.checkpoint_after = context.state if context else None

                if context is not None:
                    context.status = status
                    context.error_message = error_message
                    if status == RunStatus.COMPLETED:
                        context.last_success_at = now
                    elif status == RunStatus.FAILED:
                        context.last_failure_at = now

                await session.commit()
                return now, execution.checkpoint_after
        except SQLAlchemyError as e:
            raise CheckpointPersistError(
                "Failed to record step execution outcome",
                context={"step_run_id": run_id, "operation": "finish"},
                original_exception=e,
            )
