"""
Run outcome produced once per step run
"""

from pydantic import BaseModel, Field
from typing import Optional, Dict, Any
from datetime import datetime
from uuid import UUID
from models.base import RunStatus


class RunOutcome(BaseModel):
    """
    Terminal result of one StepRunner.run() invocation.

    Counts describe this attempt only; a resumed attempt does not repeat
    items committed by earlier attempts.
    """

    step_name: str
    step_run_id: str
    execution_id: Optional[UUID] = None
    status: RunStatus
    resumed: bool = False

    read_count: int = 0
    write_count: int = 0
    filter_count: int = 0
    skip_count: int = 0
    commit_count: int = 0
    rollback_count: int = 0

    error: Optional[str] = None
    error_type: Optional[str] = None
    error_details: Optional[Dict[str, Any]] = None

    started_at: datetime
    ended_at: datetime
    checkpoint: Optional[Dict[str, Any]] = Field(None, description="Last committed execution context state")

    @property
    def succeeded(self) -> bool:
        return self.status == RunStatus.COMPLETED

    def summary(self) -> str:
        """Free-text status line for triggers"""
        text = (
            f"{self.step_name} {self.status.value}: "
            f"read={self.read_count} written={self.write_count} "
            f"filtered={self.filter_count} skipped={self.skip_count} "
            f"commits={self.commit_count}"
        )
        if self.error:
            text += f" error={self.error}"
        return text

    class Config:
        frozen = True
