from sqlalchemy import Column, Integer, String, Enum, DateTime, Text, Index
from models.base import Base, JSONType, RunStatus, utcnow


class StepExecutionContext(Base):
    """
    Persisted execution context per step-run identity.

    Purpose:
    - Resume a failed step from its last committed chunk
    - Reject re-running a step-run that already completed
    - Keep resumption state isolated per (step name, run parameters)

    Design:
    - One row per step-run identity
    - state holds the opaque reader checkpoint plus running counters
    - version increments once per committed chunk
    """
    __tablename__ = "step_execution_contexts"

    id = Column(Integer, primary_key=True, autoincrement=True)

    # Step-run identity
    step_run_id = Column(String(150), nullable=False)
    step_name = Column(String(100), nullable=False, index=True)
    parameters = Column(JSONType, nullable=False, default=dict)
    parameters_hash = Column(String(64), nullable=False)

    # Checkpoint data
    state = Column(JSONType, nullable=True)
    version = Column(Integer, nullable=False, default=0)

    # Statistics
    last_run_at = Column(DateTime, nullable=True, index=True)
    last_success_at = Column(DateTime, nullable=True)
    last_failure_at = Column(DateTime, nullable=True)
    total_runs = Column(Integer, nullable=False, default=0)

    # Status
    status = Column(Enum(RunStatus), default=RunStatus.STARTED, nullable=False)
    error_message = Column(Text, nullable=True)

    # Timestamps
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    # Constraints
    __table_args__ = (
        Index("idx_context_step_run", "step_run_id", unique=True),
    )
