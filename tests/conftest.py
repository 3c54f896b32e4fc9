"""
Pytest configuration and fixtures
"""

import json
import pytest
import pytest_asyncio
from pathlib import Path
from sqlalchemy import insert
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.pool import NullPool
from typing import AsyncGenerator

from core.config import Settings
from core.database import build_engine, build_session_maker
from models.base import Base
from models.customer import Customer
from models.product import Product


def sqlite_url(directory: Path) -> str:
    return f"sqlite+aiosqlite:///{directory / 'batch_test.db'}"


def customer_rows(count: int, start: int = 1):
    return [
        {
            "id": i,
            "first_name": f"first{i:05d}",
            "last_name": f"last{i:05d}",
            "email": f"user{i:05d}@example.com",
            "age": (i % 60) + 20,
        }
        for i in range(start, start + count)
    ]


def product_rows(count: int, start: int = 1):
    return [
        {
            "id": i,
            "name": f"Product-{i:05d}",
            "price": 1000 + i,
            "category": f"Category-{i % 10}",
            "stock": (i * 7) % 1000,
        }
        for i in range(start, start + count)
    ]


def write_products_csv(path: Path, start: int, end: int) -> Path:
    lines = ["name,price,category,stock"]
    for i in range(start, end + 1):
        lines.append(f"Product-{i:05d},{1000 + i},Category-{i % 10},{(i * 7) % 1000}")
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


def write_customers_json(path: Path, count: int) -> Path:
    items = [
        {
            "id": i,
            "firstName": f"first{i:05d}",
            "lastName": f"last{i:05d}",
            "email": f"user{i:05d}@example.com",
            "age": (i % 60) + 20,
        }
        for i in range(1, count + 1)
    ]
    path.write_text(json.dumps(items, indent=2), encoding="utf-8")
    return path


def write_customers_xml(path: Path, count: int) -> Path:
    parts = ["<customers>"]
    for i in range(1, count + 1):
        parts.append(
            "  <customer>"
            f"<id>{i}</id>"
            f"<firstName>first{i:05d}</firstName>"
            f"<lastName>last{i:05d}</lastName>"
            f"<email>user{i:05d}@example.com</email>"
            f"<age>{(i % 60) + 20}</age>"
            "</customer>"
        )
    parts.append("</customers>")
    path.write_text("\n".join(parts) + "\n", encoding="utf-8")
    return path


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    """File-backed SQLite engine, one database per test"""
    engine = build_engine(
        sqlite_url(tmp_path),
        echo=False,
        poolclass=NullPool,  # Disable connection pooling for tests
    )

    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return build_session_maker(test_engine)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for tests"""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def seed_customers(session_factory):
    """Insert customers 1..count"""

    async def _seed(count: int):
        async with session_factory() as session:
            await session.execute(insert(Customer), customer_rows(count))
            await session.commit()

    return _seed


@pytest_asyncio.fixture
async def seed_products(session_factory):
    """Insert products 1..count"""

    async def _seed(count: int):
        async with session_factory() as session:
            await session.execute(insert(Product), product_rows(count))
            await session.commit()

    return _seed


@pytest.fixture
def data_dir(tmp_path) -> Path:
    directory = tmp_path / "data"
    directory.mkdir()
    return directory


@pytest.fixture
def test_settings(tmp_path, data_dir) -> Settings:
    return Settings(
        DATABASE_URL=sqlite_url(tmp_path),
        ENVIRONMENT="test",
        CHUNK_SIZE=2,
        PAGE_SIZE=3,
        FETCH_SIZE=2,
        DATA_DIR=str(data_dir),
        READER_STRICT=True,
    )


@pytest.fixture
def products_csv(data_dir):
    """Write products start..end as CSV with a header line"""

    def _write(name: str, start: int, end: int) -> Path:
        return write_products_csv(data_dir / name, start, end)

    return _write


@pytest.fixture
def customers_json(data_dir):
    def _write(count: int, name: str = "customers.json") -> Path:
        return write_customers_json(data_dir / name, count)

    return _write


@pytest.fixture
def customers_xml(data_dir):
    def _write(count: int, name: str = "customers.xml") -> Path:
        return write_customers_xml(data_dir / name, count)

    return _write
