"""
Core utilities and configuration for the chunkbatch engine.

This package provides foundational components used throughout the batch engine:

Modules:
    config: Application configuration and environment variable management
    database: Async engine and session factory
    exceptions: Custom exception hierarchy for error handling
    logging: Logging configuration and utilities

Usage:
    from core.config import settings
    from core.database import async_session_maker
    from core.exceptions import SourceReadError, SinkWriteError
    from core.logging import setup_logging

Example:
    # Initialize logging
    setup_logging()

    # Open a session
    async with async_session_maker() as session:
        # Perform database operations
        pass
"""

from core.config import settings
from core.logging import setup_logging
from core.exceptions import (
    BatchException,
    SourceReadError,
    ResourceNotFoundError,
    DataFormatError,
    TransformError,
    SinkWriteError,
    CheckpointPersistError,
    StepConfigurationError,
    UnknownStepError,
    StepAlreadyCompletedError,
    StepAlreadyRunningError,
)

__all__ = [
    "settings",
    "setup_logging",
    # Exceptions
    "BatchException",
    "SourceReadError",
    "ResourceNotFoundError",
    "DataFormatError",
    "TransformError",
    "SinkWriteError",
    "CheckpointPersistError",
    "StepConfigurationError",
    "UnknownStepError",
    "StepAlreadyCompletedError",
    "StepAlreadyRunningError",
]
