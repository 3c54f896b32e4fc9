"""
Health check endpoint with database and step-run status
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import func, select, text
from sqlalchemy.exc import SQLAlchemyError
from api.dependencies import get_db, get_registry
from schemas.api import HealthCheckResponse, ExecutionContextInfo
from models.base import RunStatus
from models.execution_context import StepExecutionContext
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthCheckResponse)
async def health_check(
    db: AsyncSession = Depends(get_db),
    registry=Depends(get_registry),
    limit: int = 10,
):
    """
    Health check endpoint.

    Returns:
    - Database connectivity status
    - Number of registered steps
    - Most recently run step-run identities
    """

    # Check database connectivity
    db_connected = False

    try:
        await db.execute(text("SELECT 1"))
        db_connected = True
    except SQLAlchemyError as e:
        logger.error(f"Database connection failed: {str(e)}")

    recent_contexts = []
    total_step_runs = 0
    failed_step_runs = 0

    if db_connected:
        try:
            total_step_runs = (
                await db.execute(select(func.count()).select_from(StepExecutionContext))
            ).scalar() or 0
            failed_step_runs = (
                await db.execute(
                    select(func.count())
                    .select_from(StepExecutionContext)
                    .where(StepExecutionContext.status == RunStatus.FAILED)
                )
            ).scalar() or 0

            result = await db.execute(
                select(StepExecutionContext)
                .order_by(StepExecutionContext.last_run_at.desc())
                .limit(limit)
            )
            recent_contexts = [
                ExecutionContextInfo.model_validate(context)
                for context in result.scalars().all()
            ]
        except SQLAlchemyError as e:
            logger.error(f"Failed to fetch execution contexts: {str(e)}")

    # Status is derived by the validator in HealthCheckResponse
    return HealthCheckResponse(
        status="healthy",
        database_connected=db_connected,
        registered_steps=len(registry),
        total_step_runs=total_step_runs,
        failed_step_runs=failed_step_runs,
        recent_contexts=recent_contexts,
    )
