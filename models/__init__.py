"""
SQLAlchemy ORM models for database tables.

This package defines the database schema using SQLAlchemy ORM models:

Models:
    base: Base declarative class, portable column types and RunStatus
    execution_context: Checkpoint store, one row per step-run identity
    step_execution: Per-attempt run tracking and metrics
    customer: Sample customer source and processed-customer sink tables
    product: Sample product table (source and update target)

Usage:
    from models import StepExecutionContext, StepExecution
    from models.base import RunStatus

Relationships:
    - StepExecutionContext → StepExecution (one-to-many attempts)
"""

from models.base import Base, RunStatus
from models.execution_context import StepExecutionContext
from models.step_execution import StepExecution
from models.customer import Customer, CustomerProcessed
from models.product import Product

__all__ = [
    "Base",
    "RunStatus",
    "StepExecutionContext",
    "StepExecution",
    "Customer",
    "CustomerProcessed",
    "Product",
]
