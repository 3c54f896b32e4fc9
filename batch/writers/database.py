"""
Batched SQL writers: insert, keyed update and idempotent upsert.

Each writer issues one executemany statement per chunk on the chunk's
session, bounding round-trips by the chunk size.
"""

from typing import Any, Dict, List, Optional, Sequence
from pydantic import BaseModel
from sqlalchemy import Table, bindparam, insert, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from batch.writers.base import ItemWriter
from core.exceptions import SinkWriteError
import logging

logger = logging.getLogger(__name__)


class SqlItemWriter(ItemWriter):
    """
    Shared record → row conversion and error classification.

    Records may be pydantic models or plain dicts; keys that are not
    columns of the target table are dropped.
    """

    operation = "WRITE"

    def __init__(self, model: Any, name: Optional[str] = None):
        self.table: Table = model.__table__ if hasattr(model, "__table__") else model
        super().__init__(name or f"{self.table.name}_writer")
        self.columns = set(self.table.c.keys())

    def to_row(self, item: Any) -> Dict[str, Any]:
        if isinstance(item, BaseModel):
            data = item.model_dump()
        elif isinstance(item, dict):
            data = dict(item)
        else:
            raise TypeError(f"Cannot convert {type(item).__name__} to a row")
        return {k: v for k, v in data.items() if k in self.columns}

    def to_rows(self, items: Sequence[Any]) -> List[Dict[str, Any]]:
        rows = []
        for index, item in enumerate(items):
            try:
                rows.append(self.to_row(item))
            except (TypeError, ValueError, KeyError) as e:
                raise SinkWriteError(
                    "Record cannot be converted to a row",
                    context=self._context(items, record_index=index),
                    original_exception=e,
                )
        return rows

    def _context(self, items: Sequence[Any], **extra) -> Dict[str, Any]:
        context = {
            "writer": self.name,
            "table_name": self.table.name,
            "operation": self.operation,
            "chunk_size": len(items),
        }
        context.update(extra)
        return context

    @staticmethod
    def _failed_record_index(error: SQLAlchemyError, rows: List[Dict[str, Any]]) -> Optional[int]:
        """Index of the row a driver error names, when it can be told apart"""
        if len(rows) == 1:
            return 0
        params = getattr(error, "params", None)
        # executemany failures carry the whole list; only a single set identifies a row
        if not isinstance(params, dict):
            return None
        for index, row in enumerate(rows):
            if all(params.get(key) == value for key, value in row.items()):
                return index
        return None

    async def _execute(self, statement, rows: List[Dict[str, Any]], items: Sequence[Any], session: AsyncSession) -> None:
        try:
            await session.execute(statement, rows)
        except SQLAlchemyError as e:
            extra = {}
            record_index = self._failed_record_index(e, rows)
            if record_index is not None:
                extra["record_index"] = record_index
            raise SinkWriteError(
                f"{self.operation} failed for chunk",
                context=self._context(items, **extra),
                original_exception=e,
            )
        logger.debug(f"{self.name}: {self.operation} {len(rows)} rows into {self.table.name}")


class InsertItemWriter(SqlItemWriter):
    """Insert every record of the chunk with one batched INSERT"""

    operation = "INSERT"

    async def write(self, items: Sequence[Any], session: AsyncSession) -> None:
        if not items:
            return
        rows = self.to_rows(items)
        await self._execute(insert(self.table), rows, items, session)


class UpdateItemWriter(SqlItemWriter):
    """
    Update rows matched by a key column with one batched UPDATE.

    Records whose key matches no row are ignored, as with a plain
    UPDATE ... WHERE statement.
    """

    operation = "UPDATE"

    def __init__(self, model: Any, key: str, columns: Sequence[str], name: Optional[str] = None):
        super().__init__(model, name=name)
        unknown = [c for c in [key, *columns] if c not in self.columns]
        if unknown:
            raise ValueError(f"Unknown columns for {self.table.name}: {unknown}")
        self.key = key
        self.update_columns = list(columns)

        # bindparam names must differ from the SET column names
        self.statement = (
            update(self.table)
            .where(self.table.c[key] == bindparam(f"b_{key}"))
            .values({c: bindparam(f"b_{c}") for c in self.update_columns})
        )

    async def write(self, items: Sequence[Any], session: AsyncSession) -> None:
        if not items:
            return
        params = []
        for index, row in enumerate(self.to_rows(items)):
            if row.get(self.key) is None:
                raise SinkWriteError(
                    "Record has no value for the update key",
                    context=self._context(items, record_index=index, key=self.key),
                )
            params.append({f"b_{c}": row.get(c) for c in [self.key, *self.update_columns]})
        await self._execute(self.statement, params, items, session)


class UpsertItemWriter(SqlItemWriter):
    """
    Keyed upsert (INSERT ... ON CONFLICT DO UPDATE).

    Ensures:
    - No duplicate rows when a chunk is replayed
    - Existing rows pick up changed values
    """

    operation = "UPSERT"

    def __init__(
        self,
        model: Any,
        index_elements: Sequence[str],
        update_columns: Optional[Sequence[str]] = None,
        name: Optional[str] = None,
    ):
        super().__init__(model, name=name)
        self.index_elements = list(index_elements)
        if update_columns is None:
            update_columns = [
                c.name for c in self.table.columns
                if c.name not in self.index_elements and not c.primary_key
            ]
        self.update_columns = list(update_columns)

    def build_statement(self, dialect_name: str):
        if dialect_name == "postgresql":
            stmt = postgresql.insert(self.table)
        elif dialect_name == "sqlite":
            stmt = sqlite.insert(self.table)
        else:
            raise SinkWriteError(
                "Upsert is not supported for this database",
                context={"writer": self.name, "dialect": dialect_name},
            )
        return stmt.on_conflict_do_update(
            index_elements=self.index_elements,
            set_={c: stmt.excluded[c] for c in self.update_columns},
        )

    async def write(self, items: Sequence[Any], session: AsyncSession) -> None:
        if not items:
            return
        rows = self.to_rows(items)
        statement = self.build_statement(session.bind.dialect.name)
        await self._execute(statement, rows, items, session)
