"""
Pydantic schemas for API request/response models
"""

from pydantic import BaseModel, Field, validator
from typing import Optional, List, Dict, Any
from datetime import datetime
from models.base import RunStatus, utcnow


# ============================================================================
# Job Trigger Schemas
# ============================================================================

class RunRequest(BaseModel):
    """Optional body of POST /api/jobs/{step_name}"""
    parameters: Dict[str, Any] = Field(
        default_factory=dict,
        description="Run parameters; defaults to a time token so every call is a new run",
    )
    fresh: bool = Field(False, description="Discard stored state and reprocess from zero")
    recover: bool = Field(False, description="Resume a run left STARTED by an attempt that never finished")

    @validator("parameters")
    def validate_parameters(cls, v):
        for key in v:
            if not isinstance(key, str) or not key.strip():
                raise ValueError("Parameter names must be non-empty strings")
        return v

    class Config:
        json_schema_extra = {
            "example": {
                "parameters": {"time": 1700000000000},
                "fresh": False,
                "recover": False
            }
        }


class StepInfo(BaseModel):
    """Registered step"""
    name: str
    description: str
    chunk_size: int


# ============================================================================
# Execution Context Schemas
# ============================================================================

class ExecutionContextInfo(BaseModel):
    """Stored execution context of one step-run identity"""
    step_run_id: str
    step_name: str
    parameters: Dict[str, Any]
    status: RunStatus
    version: int
    state: Optional[Dict[str, Any]] = None
    total_runs: int
    last_run_at: Optional[datetime] = None
    last_success_at: Optional[datetime] = None
    last_failure_at: Optional[datetime] = None
    error_message: Optional[str] = None

    class Config:
        from_attributes = True


# ============================================================================
# Health Check Schemas
# ============================================================================

class HealthCheckResponse(BaseModel):
    """Health check response model"""
    timestamp: datetime = Field(default_factory=utcnow)
    database_connected: bool
    registered_steps: int = 0
    total_step_runs: int = 0
    failed_step_runs: int = 0
    recent_contexts: List[ExecutionContextInfo] = Field(default_factory=list)
    # Declared last so the validator sees the fields above
    status: str = Field("healthy", description="Overall system status: healthy, degraded, unhealthy")

    @validator("status", pre=True, always=True)
    def determine_status(cls, v, values):
        """Determine overall health status"""
        if not values.get("database_connected", False):
            return "unhealthy"
        if values.get("failed_step_runs", 0) > 0:
            return "degraded"
        return "healthy"


# ============================================================================
# Error Response Schema
# ============================================================================

class ErrorResponse(BaseModel):
    """Standard error response"""
    error: str
    detail: Optional[str] = None
    context: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=utcnow)
