"""
Unit tests for SQL item writers
"""

import pytest
from datetime import datetime
from decimal import Decimal
from unittest.mock import AsyncMock
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from batch.writers import InsertItemWriter, UpdateItemWriter, UpsertItemWriter
from core.exceptions import SinkWriteError
from models.customer import CustomerProcessed
from models.product import Product
from schemas.records import CustomerProcessedRecord, ProductRecord


def processed(customer_id):
    return CustomerProcessedRecord(
        customer_id=customer_id,
        full_name=f"first{customer_id} last{customer_id}",
        email=f"user{customer_id}@example.com",
        age=30,
        processed_at=datetime(2024, 1, 15, 10, 0, 0),
    )


@pytest.mark.asyncio
async def test_insert_writer_writes_whole_chunk(session_factory):
    writer = InsertItemWriter(CustomerProcessed)
    await writer.open()

    async with session_factory() as session:
        await writer.write([processed(1), processed(2), processed(3)], session)
        await session.commit()

    async with session_factory() as session:
        rows = (await session.execute(select(CustomerProcessed).order_by(CustomerProcessed.customer_id))).scalars().all()

    assert [r.customer_id for r in rows] == [1, 2, 3]
    assert rows[0].full_name == "first1 last1"


@pytest.mark.asyncio
async def test_insert_writer_is_not_durable_without_commit(session_factory):
    writer = InsertItemWriter(CustomerProcessed)

    async with session_factory() as session:
        await writer.write([processed(1)], session)
        await session.rollback()

    async with session_factory() as session:
        count = (await session.execute(select(func.count()).select_from(CustomerProcessed))).scalar()

    assert count == 0


@pytest.mark.asyncio
async def test_insert_writer_wraps_constraint_violation(session_factory):
    writer = InsertItemWriter(Product)
    items = [
        {"id": 1, "name": "Dup", "price": Decimal("1")},
        {"id": 2, "name": "Dup", "price": Decimal("2")},
    ]

    async with session_factory() as session:
        with pytest.raises(SinkWriteError) as exc_info:
            await writer.write(items, session)
        await session.rollback()

    assert exc_info.value.context["table_name"] == "product"
    assert exc_info.value.context["operation"] == "INSERT"
    assert exc_info.value.context["chunk_size"] == 2


@pytest.mark.asyncio
async def test_insert_writer_single_record_violation_names_record(session_factory):
    writer = InsertItemWriter(Product)
    async with session_factory() as session:
        await writer.write([{"id": 1, "name": "Dup", "price": Decimal("1")}], session)
        await session.commit()

    async with session_factory() as session:
        with pytest.raises(SinkWriteError) as exc_info:
            await writer.write([{"id": 2, "name": "Dup", "price": Decimal("2")}], session)
        await session.rollback()

    assert exc_info.value.context["record_index"] == 0


@pytest.mark.asyncio
async def test_insert_writer_locates_record_from_driver_parameters():
    writer = InsertItemWriter(Product)
    items = [
        {"id": 1, "name": "First", "price": Decimal("1")},
        {"id": 2, "name": "Second", "price": Decimal("2")},
    ]
    session = AsyncMock()
    session.execute.side_effect = IntegrityError(
        "INSERT INTO product ...",
        {"id": 2, "name": "Second", "price": Decimal("2"), "category": None},
        Exception("UNIQUE constraint failed: product.name"),
    )

    with pytest.raises(SinkWriteError) as exc_info:
        await writer.write(items, session)

    assert exc_info.value.context["record_index"] == 1
    assert isinstance(exc_info.value.original_exception, IntegrityError)


@pytest.mark.asyncio
async def test_insert_writer_batched_failure_without_single_parameter_set(session_factory):
    writer = InsertItemWriter(Product)
    items = [
        {"id": 1, "name": "Dup", "price": Decimal("1")},
        {"id": 2, "name": "Dup", "price": Decimal("2")},
    ]

    async with session_factory() as session:
        with pytest.raises(SinkWriteError) as exc_info:
            await writer.write(items, session)
        await session.rollback()

    assert "record_index" not in exc_info.value.context


@pytest.mark.asyncio
async def test_insert_writer_rejects_unconvertible_record(session_factory):
    writer = InsertItemWriter(CustomerProcessed)

    async with session_factory() as session:
        with pytest.raises(SinkWriteError) as exc_info:
            await writer.write([processed(1), object()], session)

    assert exc_info.value.context["record_index"] == 1


@pytest.mark.asyncio
async def test_update_writer_updates_by_key(session_factory, seed_products):
    await seed_products(3)
    writer = UpdateItemWriter(Product, key="name", columns=["price"])

    async with session_factory() as session:
        await writer.write(
            [
                ProductRecord(name="Product-00001", price=Decimal("1.50")),
                ProductRecord(name="Product-00003", price=Decimal("3.50")),
                ProductRecord(name="Unknown", price=Decimal("9.99")),
            ],
            session,
        )
        await session.commit()

    async with session_factory() as session:
        rows = (await session.execute(select(Product).order_by(Product.id))).scalars().all()

    assert [r.price for r in rows] == [Decimal("1.50"), Decimal("1002"), Decimal("3.50")]
    # Columns outside the update set are untouched
    assert rows[0].category == "Category-1"


def test_update_writer_rejects_unknown_columns():
    with pytest.raises(ValueError):
        UpdateItemWriter(Product, key="sku", columns=["price"])


@pytest.mark.asyncio
async def test_update_writer_requires_key_value(session_factory):
    writer = UpdateItemWriter(Product, key="id", columns=["price"])

    async with session_factory() as session:
        with pytest.raises(SinkWriteError):
            await writer.write([ProductRecord(name="NoId", price=Decimal("1"))], session)


@pytest.mark.asyncio
async def test_upsert_writer_replays_without_duplicates(session_factory):
    writer = UpsertItemWriter(Product, index_elements=["id"])
    chunk = [
        ProductRecord(id=1, name="Tablet", price=Decimal("100"), category="electronics", stock=1),
        ProductRecord(id=2, name="Phone", price=Decimal("200"), category="electronics", stock=2),
    ]

    for _ in range(2):
        async with session_factory() as session:
            await writer.write(chunk, session)
            await session.commit()

    async with session_factory() as session:
        await writer.write([chunk[0].model_copy(update={"price": Decimal("90")})], session)
        await session.commit()

    async with session_factory() as session:
        rows = (await session.execute(select(Product).order_by(Product.id))).scalars().all()

    assert len(rows) == 2
    assert rows[0].price == Decimal("90")
    assert rows[1].price == Decimal("200")


def test_upsert_writer_default_update_columns_exclude_key():
    writer = UpsertItemWriter(Product, index_elements=["name"])

    assert "name" not in writer.update_columns
    assert "id" not in writer.update_columns
    assert set(writer.update_columns) == {"price", "category", "stock"}


def test_upsert_writer_unsupported_dialect():
    writer = UpsertItemWriter(Product, index_elements=["id"])

    with pytest.raises(SinkWriteError):
        writer.build_statement("mysql")


@pytest.mark.asyncio
async def test_writers_ignore_empty_chunks(session_factory):
    async with session_factory() as session:
        await InsertItemWriter(CustomerProcessed).write([], session)
        await UpdateItemWriter(Product, key="name", columns=["price"]).write([], session)
        await UpsertItemWriter(Product, index_elements=["id"]).write([], session)
