"""
Explicit step wiring.

build_step_registry() assembles every step once at startup and returns a
plain mapping of step name → StepDefinition, which the API and CLI receive
by reference.
"""

from pathlib import Path
from typing import Dict, Optional
from decimal import Decimal
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker

from batch.processors import CustomerItemProcessor, ProductItemProcessor
from batch.readers import (
    CursorItemReader,
    FlatFileItemReader,
    JsonItemReader,
    ListItemReader,
    MultiResourceItemReader,
    PagingItemReader,
    ReaderHints,
    XmlItemReader,
)
from batch.step import StepDefinition
from batch.writers import InsertItemWriter, UpdateItemWriter
from core.config import Settings
from core.exceptions import UnknownStepError
from models.customer import Customer, CustomerProcessed
from models.product import Product
from schemas.records import CustomerRecord, ProductRecord

PRODUCT_COLUMNS = ["name", "price", "category", "stock"]

CUSTOMER_SQL = "SELECT id, first_name, last_name, email, age, created_at FROM customer ORDER BY id"

SAMPLE_PRODUCTS = [
    ProductRecord(name="Tablet", price=Decimal("500000"), category="electronics", stock=20),
    ProductRecord(name="Smartphone", price=Decimal("800000"), category="electronics", stock=100),
    ProductRecord(name="Earphones", price=Decimal("150000"), category="electronics", stock=300),
]


def map_customer_row(row) -> CustomerRecord:
    """Explicit column-by-column mapping for the mapping-SQL step"""
    return CustomerRecord(
        id=int(row["id"]),
        first_name=row["first_name"],
        last_name=row["last_name"],
        email=row["email"],
        age=row["age"],
        created_at=row["created_at"],
    )


def build_step_registry(
    settings: Settings,
    engine: AsyncEngine,
    session_factory: async_sessionmaker,
    chunk_size: Optional[int] = None,
) -> Dict[str, StepDefinition]:
    """Construct all steps from settings; nothing is looked up globally"""
    chunk_size = chunk_size or settings.CHUNK_SIZE
    data_dir = Path(settings.DATA_DIR)
    hints = ReaderHints(fetch_size=settings.FETCH_SIZE, read_only=settings.READ_ONLY_HINT)
    strict = settings.READER_STRICT

    customer_processor = CustomerItemProcessor()
    product_processor = ProductItemProcessor()

    def customer_writer():
        return InsertItemWriter(CustomerProcessed, name="customer_processed_writer")

    def product_writer():
        return UpdateItemWriter(Product, key="name", columns=["price"], name="product_price_writer")

    def product_file_reader(path, name="flat_file_product_reader"):
        return FlatFileItemReader(
            name,
            path,
            record_type=ProductRecord,
            names=PRODUCT_COLUMNS,
            lines_to_skip=1,
            strict=strict,
            hints=hints,
        )

    customers = select(Customer.__table__)
    products = select(Product.__table__)

    steps = [
        StepDefinition(
            name="cursor",
            description="Stream customers through one server-side cursor",
            reader_factory=lambda: CursorItemReader(
                "cursor_customer_reader", engine, customers,
                record_type=CustomerRecord, sort_key=Customer.__table__.c.id,
                hints=ReaderHints(fetch_size=hints.fetch_size),
            ),
            processor=customer_processor,
            writer_factory=customer_writer,
            chunk_size=chunk_size,
        ),
        StepDefinition(
            name="hinted-cursor",
            description="Cursor over customers with fetch size and read-only hints",
            reader_factory=lambda: CursorItemReader(
                "hinted_cursor_customer_reader", engine, customers,
                record_type=CustomerRecord, sort_key=Customer.__table__.c.id, hints=hints,
            ),
            processor=customer_processor,
            writer_factory=customer_writer,
            chunk_size=chunk_size,
        ),
        StepDefinition(
            name="mapping-sql",
            description="Raw SQL cursor with an explicit row mapper",
            reader_factory=lambda: CursorItemReader(
                "mapping_sql_customer_reader", engine, CUSTOMER_SQL,
                row_mapper=map_customer_row, hints=hints,
            ),
            processor=customer_processor,
            writer_factory=customer_writer,
            chunk_size=chunk_size,
        ),
        StepDefinition(
            name="paging",
            description="Page through customers with LIMIT/OFFSET",
            reader_factory=lambda: PagingItemReader(
                "paging_customer_reader", session_factory, customers,
                sort_key=Customer.__table__.c.id, page_size=settings.PAGE_SIZE,
                record_type=CustomerRecord,
            ),
            processor=customer_processor,
            writer_factory=customer_writer,
            chunk_size=chunk_size,
        ),
        StepDefinition(
            name="product-cursor",
            description="Discount every product read from the product table",
            reader_factory=lambda: CursorItemReader(
                "product_cursor_reader", engine, products,
                record_type=ProductRecord, sort_key=Product.__table__.c.id, hints=hints,
            ),
            processor=product_processor,
            writer_factory=product_writer,
            chunk_size=chunk_size,
        ),
        StepDefinition(
            name="flat-file",
            description="Discount products listed in a CSV file",
            reader_factory=lambda: product_file_reader(data_dir / "products.csv"),
            processor=product_processor,
            writer_factory=product_writer,
            chunk_size=chunk_size,
        ),
        StepDefinition(
            name="multi-resource",
            description="Discount products from several CSV files read in sequence",
            reader_factory=lambda: MultiResourceItemReader.from_pattern(
                "multi_resource_product_reader", data_dir, "products-part*.csv",
                delegate_factory=lambda path: product_file_reader(path, "multi_resource_delegate"),
                strict=strict,
            ),
            processor=product_processor,
            writer_factory=product_writer,
            chunk_size=chunk_size,
        ),
        StepDefinition(
            name="json",
            description="Process customers from a JSON array",
            reader_factory=lambda: JsonItemReader(
                "json_customer_reader", data_dir / "customers.json",
                record_type=CustomerRecord, strict=strict,
            ),
            processor=customer_processor,
            writer_factory=customer_writer,
            chunk_size=chunk_size,
        ),
        StepDefinition(
            name="xml",
            description="Stream customer fragments from an XML document",
            reader_factory=lambda: XmlItemReader(
                "xml_customer_reader", data_dir / "customers.xml", fragment_root="customer",
                record_type=CustomerRecord, strict=strict,
            ),
            processor=customer_processor,
            writer_factory=customer_writer,
            chunk_size=chunk_size,
        ),
        StepDefinition(
            name="list",
            description="Discount a literal list of products",
            reader_factory=lambda: ListItemReader("list_product_reader", SAMPLE_PRODUCTS),
            processor=product_processor,
            writer_factory=product_writer,
            chunk_size=chunk_size,
        ),
    ]

    return {step.name: step for step in steps}


def get_step(registry: Dict[str, StepDefinition], name: str) -> StepDefinition:
    """Look a step up by name, raising UnknownStepError if absent"""
    try:
        return registry[name]
    except KeyError:
        raise UnknownStepError(
            "Unknown step",
            context={"step_name": name, "available": ", ".join(sorted(registry))},
        )
