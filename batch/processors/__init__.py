"""
Item processors: pure record → record transforms (None drops the record)
"""

from batch.processors.base import CompositeItemProcessor, FunctionItemProcessor, ItemProcessor
from batch.processors.customer import CustomerItemProcessor
from batch.processors.product import ProductItemProcessor

__all__ = [
    "ItemProcessor",
    "FunctionItemProcessor",
    "CompositeItemProcessor",
    "CustomerItemProcessor",
    "ProductItemProcessor",
]
