"""
Custom exceptions for the batch engine with structured error context.

This module provides the exception hierarchy used to classify failures
of a step run. Each exception carries context information for debugging
and for the run outcome recorded in the execution context store.

Exception Hierarchy:
    BatchException (base)
    ├── SourceReadError
    │   ├── ResourceNotFoundError
    │   └── DataFormatError
    ├── TransformError
    ├── SinkWriteError
    ├── CheckpointPersistError
    └── StepConfigurationError
        ├── UnknownStepError
        ├── StepAlreadyCompletedError
        └── StepAlreadyRunningError

Source exhaustion is not an exception: readers return None.
"""

from typing import Optional, Dict, Any
from datetime import datetime, timezone


class BatchException(Exception):
    """
    Base exception for all batch engine errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information (step, resource, position, etc.)
        original_exception: The original exception that was caught (if any)
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        self.message = message
        self.context = context or {}
        self.original_exception = original_exception
        self.timestamp = datetime.now(timezone.utc)

        # Add timestamp to context
        self.context["error_timestamp"] = self.timestamp.isoformat()

        # Chain original exception if provided
        super().__init__(message)
        if original_exception:
            self.__cause__ = original_exception

    def __str__(self) -> str:
        """Format error message with context."""
        base_msg = f"{self.__class__.__name__}: {self.message}"

        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base_msg += f" | Context: {context_str}"

        if self.original_exception:
            base_msg += f" | Caused by: {type(self.original_exception).__name__}: {str(self.original_exception)}"

        return base_msg

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/storage."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": {k: str(v) for k, v in self.context.items()},
            "timestamp": self.timestamp.isoformat(),
            "original_error": str(self.original_exception) if self.original_exception else None
        }


# ============================================================================
# Source Errors
# ============================================================================

class SourceReadError(BatchException):
    """
    Exception raised when an item source cannot produce the next record.

    Context should include:
        - reader: Name of the reader
        - resource: Resource locator (path, query) if applicable
        - read_count: Number of items read before the failure
    """
    pass


class ResourceNotFoundError(SourceReadError):
    """
    Exception raised by a strict reader whose resource does not exist.

    Tolerant readers (strict=False) treat the same situation as an empty
    source instead.
    """
    pass


class DataFormatError(SourceReadError):
    """
    Exception raised when a record cannot be parsed or mapped.

    Context should include:
        - resource: Path of the file or query
        - line_number / position: Where the malformed record was found
    """
    pass


# ============================================================================
# Transform Errors
# ============================================================================

class TransformError(BatchException):
    """
    Exception raised when a processor fails on a record and the failure
    is not skippable for the step.

    Context should include:
        - step_name: Name of the step
        - item_index: Position of the item in the run
    """
    pass


# ============================================================================
# Sink Errors
# ============================================================================

class SinkWriteError(BatchException):
    """
    Exception raised when a chunk cannot be written.

    Always fatal to the current attempt; the chunk transaction is rolled back.

    Context should include:
        - writer: Name of the writer
        - table_name: Target table
        - chunk_size: Number of items in the chunk
        - record_index: Index of the offending record (if determinable)
    """
    pass


# ============================================================================
# Checkpoint Errors
# ============================================================================

class CheckpointPersistError(BatchException):
    """
    Exception raised when the execution context cannot be persisted.

    A chunk is never reported as committed without its checkpoint, so this
    is always fatal.

    Context should include:
        - step_run_id: Identity of the step run
        - operation: Operation that failed (load, save, finish)
    """
    pass


# ============================================================================
# Step Errors
# ============================================================================

class StepConfigurationError(BatchException):
    """Base exception for invalid step definitions or invocations."""
    pass


class UnknownStepError(StepConfigurationError):
    """Exception raised when a trigger names a step that is not registered."""
    pass


class StepAlreadyCompletedError(StepConfigurationError):
    """
    Exception raised when a step run identity already reached COMPLETED
    and the caller did not ask for a fresh run.
    """
    pass


class StepAlreadyRunningError(StepConfigurationError):
    """
    Exception raised when another attempt of the same step run identity
    is in progress.

    An identity left STARTED by a crashed process can be resumed with
    recover=True.
    """
    pass
