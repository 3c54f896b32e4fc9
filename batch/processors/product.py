"""
Apply a price discount to products
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Optional
from batch.processors.base import ItemProcessor
from schemas.records import ProductRecord
import logging

logger = logging.getLogger(__name__)

DEFAULT_DISCOUNT = Decimal("0.9")
CENTS = Decimal("0.01")


class ProductItemProcessor(ItemProcessor):
    """Product → Product with price multiplied by the discount factor"""

    def __init__(self, discount: Decimal = DEFAULT_DISCOUNT):
        if discount < 0:
            raise ValueError("discount must not be negative")
        self.discount = discount

    def process(self, product: ProductRecord) -> Optional[ProductRecord]:
        if product.price is None:
            return product

        price = (product.price * self.discount).quantize(CENTS, rounding=ROUND_HALF_UP)
        discounted = product.model_copy(update={"price": price})
        logger.debug(f"Processing product: {discounted.name} - Price: {discounted.price}")
        return discounted
