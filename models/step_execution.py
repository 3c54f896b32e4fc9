from sqlalchemy import Column, String, Enum, DateTime, Float, Integer, Text, Index, Boolean, Uuid
from models.base import Base, BigIntegerPK, JSONType, RunStatus, utcnow
import uuid


class StepExecution(Base):
    """
    Tracks metadata for each attempt of a step run.

    Purpose:
    - Audit trail of all attempts, including resumed ones
    - Read/write/filter/skip counters per attempt
    - Error tracking and debugging
    """
    __tablename__ = "step_executions"

    id = Column(BigIntegerPK, primary_key=True, autoincrement=True)
    execution_id = Column(Uuid, default=uuid.uuid4, unique=True, nullable=False, index=True)

    # Step-run identity
    step_run_id = Column(String(150), nullable=False, index=True)
    step_name = Column(String(100), nullable=False, index=True)

    # Run metadata
    status = Column(Enum(RunStatus), default=RunStatus.STARTED, nullable=False, index=True)
    resumed = Column(Boolean, nullable=False, default=False)
    chunk_size = Column(Integer, nullable=False)

    # Timestamps
    started_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    ended_at = Column(DateTime, nullable=True)
    duration_seconds = Column(Float, nullable=True)

    # Statistics
    read_count = Column(Integer, default=0)
    write_count = Column(Integer, default=0)
    filter_count = Column(Integer, default=0)
    skip_count = Column(Integer, default=0)
    commit_count = Column(Integer, default=0)
    rollback_count = Column(Integer, default=0)

    # Error tracking
    error_message = Column(Text, nullable=True)
    error_details = Column(JSONType, nullable=True)

    # Checkpoint info
    checkpoint_before = Column(JSONType, nullable=True)
    checkpoint_after = Column(JSONType, nullable=True)

    # Indexes
    __table_args__ = (
        Index("idx_step_execution_run_started", "step_run_id", "started_at"),
    )
