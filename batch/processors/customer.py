"""
Re-shape customers into processed customers
"""

from typing import Callable, Optional
from datetime import datetime
from batch.processors.base import ItemProcessor
from models.base import utcnow
from schemas.records import CustomerRecord, CustomerProcessedRecord
import logging

logger = logging.getLogger(__name__)


class CustomerItemProcessor(ItemProcessor):
    """
    Customer → CustomerProcessed.

    Derives the full name and stamps processed_at; email and age are
    carried over unchanged.
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self.clock = clock or utcnow

    def process(self, customer: CustomerRecord) -> CustomerProcessedRecord:
        processed = CustomerProcessedRecord(
            customer_id=customer.id,
            full_name=f"{customer.first_name} {customer.last_name}",
            email=customer.email,
            age=customer.age,
            processed_at=self.clock(),
        )
        logger.debug(f"Processing customer: {processed.full_name}")
        return processed
