"""
Request-scoped dependencies.

The application wires its session factory, step registry and runner onto
app.state at construction time; handlers receive them through Depends().
"""

from typing import AsyncGenerator, Dict
from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from batch.runner import StepRunner
from batch.step import StepDefinition


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Database session for the duration of one request"""
    async with request.app.state.session_factory() as session:
        yield session


def get_registry(request: Request) -> Dict[str, StepDefinition]:
    return request.app.state.registry


def get_step_runner(request: Request) -> StepRunner:
    return request.app.state.step_runner
