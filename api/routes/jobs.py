"""
Job trigger endpoints: list steps, run a step, inspect a step-run identity
"""

import time
import logging
from typing import Dict, List, Optional

from fastapi import APIRouter, Body, Depends, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_db, get_registry, get_step_runner
from batch.registry import get_step
from batch.runner import StepRunner
from batch.step import StepDefinition
from core.exceptions import StepAlreadyCompletedError, StepAlreadyRunningError, UnknownStepError
from models.base import RunStatus
from models.execution_context import StepExecutionContext
from schemas.api import ExecutionContextInfo, RunRequest, StepInfo

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/jobs", tags=["Jobs"])


@router.get("", response_model=List[StepInfo])
async def list_steps(registry: Dict[str, StepDefinition] = Depends(get_registry)):
    """All registered steps, sorted by name"""
    return [
        StepInfo(name=step.name, description=step.description, chunk_size=step.chunk_size)
        for _, step in sorted(registry.items())
    ]


@router.post("/{step_name}")
async def run_job(
    step_name: str,
    body: Optional[RunRequest] = Body(None),
    registry: Dict[str, StepDefinition] = Depends(get_registry),
    runner: StepRunner = Depends(get_step_runner),
):
    """
    Run one step synchronously and return its outcome.

    Without parameters a `time` token (epoch millis) is supplied, so every
    call starts a new run. Re-posting the same parameters resumes a FAILED
    or STOPPED run.

    Responses:
    - 200: COMPLETED or STOPPED
    - 500: FAILED
    - 404: unknown step
    - 409: this step-run identity already COMPLETED (pass fresh=true to rerun)
      or another attempt of it is still running (pass recover=true after a crash)
    """
    body = body or RunRequest()
    parameters = body.parameters or {"time": int(time.time() * 1000)}

    logger.info(
        f"POST /api/jobs/{step_name} parameters={parameters} "
        f"fresh={body.fresh} recover={body.recover}"
    )

    try:
        step = get_step(registry, step_name)
    except UnknownStepError as e:
        raise HTTPException(status_code=404, detail=f"Unknown step: {step_name}") from e

    try:
        outcome = await runner.run(step, parameters, fresh=body.fresh, recover=body.recover)
    except (StepAlreadyCompletedError, StepAlreadyRunningError) as e:
        raise HTTPException(
            status_code=409,
            detail=f"{e.message}: {e.context.get('step_run_id')}",
        ) from e

    status_code = 500 if outcome.status == RunStatus.FAILED else 200
    return JSONResponse(
        status_code=status_code,
        content={"message": outcome.summary(), "outcome": outcome.model_dump(mode="json")},
    )


@router.get("/runs/{step_run_id}", response_model=ExecutionContextInfo)
async def get_run(step_run_id: str, db: AsyncSession = Depends(get_db)):
    """Stored execution context of a step-run identity"""
    result = await db.execute(
        select(StepExecutionContext).where(StepExecutionContext.step_run_id == step_run_id)
    )
    context = result.scalar_one_or_none()
    if context is None:
        raise HTTPException(status_code=404, detail=f"No execution context for {step_run_id}")
    return ExecutionContextInfo.model_validate(context)
