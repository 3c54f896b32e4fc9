"""
Pydantic schemas for records, run outcomes and API payloads.

Schemas:
    records: Immutable record types flowing through readers, processors and writers
    outcome: RunOutcome returned once per step run
    api: Trigger endpoint request/response schemas

Usage:
    from schemas.records import CustomerRecord, ProductRecord
    from schemas.outcome import RunOutcome

Example:
    # Records are validated on read and frozen afterwards
    record = ProductRecord(name="Tablet", price="500000", category="electronics", stock=20)
    assert record.price == Decimal("500000")
"""

from schemas.records import CustomerRecord, CustomerProcessedRecord, ProductRecord
from schemas.outcome import RunOutcome
from schemas.api import RunRequest, StepInfo, ExecutionContextInfo, HealthCheckResponse

__all__ = [
    "CustomerRecord",
    "CustomerProcessedRecord",
    "ProductRecord",
    "RunOutcome",
    "RunRequest",
    "StepInfo",
    "ExecutionContextInfo",
    "HealthCheckResponse",
]
