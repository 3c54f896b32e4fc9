"""
Unit tests for item processors
"""

import pytest
from datetime import datetime
from decimal import Decimal

from batch.processors import (
    CompositeItemProcessor,
    CustomerItemProcessor,
    FunctionItemProcessor,
    ProductItemProcessor,
)
from schemas.records import CustomerRecord, ProductRecord


FIXED_NOW = datetime(2024, 1, 15, 10, 0, 0)


def test_customer_processor_builds_full_name():
    processor = CustomerItemProcessor(clock=lambda: FIXED_NOW)
    customer = CustomerRecord(id=7, first_name="Ada", last_name="Lovelace", email="ada@example.com", age=36)

    processed = processor.process(customer)

    assert processed.customer_id == 7
    assert processed.full_name == "Ada Lovelace"
    assert processed.email == "ada@example.com"
    assert processed.age == 36
    assert processed.processed_at == FIXED_NOW


def test_customer_record_accepts_camel_case_and_strips_text():
    customer = CustomerRecord.model_validate(
        {"id": "3", "firstName": "  Grace ", "lastName": "Hopper", "email": " grace@example.com "}
    )

    assert customer.id == 3
    assert customer.first_name == "Grace"
    assert customer.email == "grace@example.com"


def test_product_processor_applies_discount():
    processor = ProductItemProcessor()
    product = ProductRecord(name="Tablet", price=Decimal("500000"), category="electronics", stock=20)

    discounted = processor.process(product)

    assert discounted.price == Decimal("450000.00")
    assert discounted.name == "Tablet"
    # Input record is not mutated
    assert product.price == Decimal("500000")


def test_product_processor_rounds_to_cents():
    processor = ProductItemProcessor(discount=Decimal("0.333"))

    discounted = processor.process(ProductRecord(name="Pen", price=Decimal("10")))

    assert discounted.price == Decimal("3.33")


def test_product_processor_passes_through_missing_price():
    processor = ProductItemProcessor()
    product = ProductRecord(name="Mystery")

    assert processor.process(product) is product


def test_product_processor_rejects_negative_discount():
    with pytest.raises(ValueError):
        ProductItemProcessor(discount=Decimal("-1"))


def test_function_processor_can_drop_items():
    processor = FunctionItemProcessor(lambda x: x if x % 2 else None)

    assert processor.process(3) == 3
    assert processor.process(4) is None


def test_composite_processor_chains_in_order():
    processor = CompositeItemProcessor([
        FunctionItemProcessor(lambda x: x + 1),
        FunctionItemProcessor(lambda x: x * 10),
    ])

    assert processor.process(1) == 20


def test_composite_processor_short_circuits_on_drop():
    calls = []

    def record(x):
        calls.append(x)
        return x

    processor = CompositeItemProcessor([
        FunctionItemProcessor(lambda x: None),
        FunctionItemProcessor(record),
    ])

    assert processor.process(1) is None
    assert calls == []
