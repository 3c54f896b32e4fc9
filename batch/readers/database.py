"""
Database readers: server-side cursor streaming and offset/limit paging
"""

from typing import Any, Dict, List, Optional, Type, Union
from pydantic import BaseModel
from sqlalchemy import Select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, AsyncResult, async_sessionmaker
from batch.readers.base import CountingItemReader, ItemReader, ReaderHints, RowMapper, map_row
from core.exceptions import SourceReadError
import logging

logger = logging.getLogger(__name__)

Query = Union[str, Select]


def _build_statement(query: Query, sort_key: Optional[Any]):
    if isinstance(query, str):
        # Raw SQL carries its own ORDER BY
        return text(query)
    if sort_key is not None:
        return query.order_by(sort_key)
    return query


class CursorItemReader(CountingItemReader):
    """
    Stream rows one at a time from a single server-side cursor.

    Memory use is bounded by hints.fetch_size regardless of result size.
    The query must be ordered by a strictly monotonic key so that resuming
    by row offset lands on the same row.
    """

    def __init__(
        self,
        name: str,
        engine: AsyncEngine,
        query: Query,
        record_type: Optional[Type[BaseModel]] = None,
        row_mapper: Optional[RowMapper] = None,
        sort_key: Optional[Any] = None,
        hints: Optional[ReaderHints] = None,
    ):
        super().__init__(name, record_type=record_type, row_mapper=row_mapper)
        self.engine = engine
        self.query = query
        self.sort_key = sort_key
        self.hints = hints or ReaderHints()
        self._connection: Optional[AsyncConnection] = None
        self._result: Optional[AsyncResult] = None

    async def _do_open(self) -> None:
        statement = _build_statement(self.query, self.sort_key).execution_options(
            yield_per=self.hints.fetch_size
        )

        try:
            self._connection = await self.engine.connect()
            if self.hints.read_only:
                # Honoured by drivers that support it (asyncpg), ignored elsewhere
                await self._connection.execution_options(postgresql_readonly=True)
            self._result = await self._connection.stream(statement)
        except SQLAlchemyError as e:
            await self._do_close()
            raise SourceReadError(
                "Failed to open cursor",
                context={"reader": self.name, "query": str(statement)},
                original_exception=e,
            )

        logger.debug(f"{self.name}: cursor opened (fetch_size={self.hints.fetch_size})")

    async def _do_read(self) -> Optional[Dict[str, Any]]:
        try:
            row = await self._result.fetchone()
        except SQLAlchemyError as e:
            raise SourceReadError(
                "Cursor fetch failed",
                context={"reader": self.name, "read_count": self.read_count},
                original_exception=e,
            )
        if row is None:
            return None
        return dict(row._mapping)

    async def _do_close(self) -> None:
        if self._result is not None:
            await self._result.close()
            self._result = None
        if self._connection is not None:
            await self._connection.close()
            self._connection = None


class PagingItemReader(ItemReader):
    """
    Read fixed-size pages with LIMIT/OFFSET queries.

    Each page is fetched in its own short-lived session, so no connection is
    held between reads. Checkpoint state is (page index, offset in page).
    """

    def __init__(
        self,
        name: str,
        session_factory: async_sessionmaker,
        query: Select,
        sort_key: Any,
        page_size: int = 100,
        record_type: Optional[Type[BaseModel]] = None,
        row_mapper: Optional[RowMapper] = None,
    ):
        if page_size < 1:
            raise ValueError("page_size must be at least 1")
        if sort_key is None:
            raise ValueError("PagingItemReader requires a sort_key for stable pages")

        super().__init__(name)
        self.session_factory = session_factory
        self.query = query
        self.sort_key = sort_key
        self.page_size = page_size
        self.record_type = record_type
        self.row_mapper = row_mapper

        self.page = 0
        self.offset = 0
        self._buffer: List[Dict[str, Any]] = []
        self._last_page = False
        self._opened = False

    async def _fetch_page(self, page: int) -> List[Dict[str, Any]]:
        statement = (
            self.query.order_by(self.sort_key)
            .limit(self.page_size)
            .offset(page * self.page_size)
        )
        try:
            async with self.session_factory() as session:
                result = await session.execute(statement)
                rows = [dict(row._mapping) for row in result.all()]
        except SQLAlchemyError as e:
            raise SourceReadError(
                "Failed to fetch page",
                context={"reader": self.name, "page": page, "page_size": self.page_size},
                original_exception=e,
            )

        logger.debug(f"{self.name}: fetched page {page} ({len(rows)} rows)")
        return rows

    async def _load_page(self, page: int) -> None:
        self.page = page
        self.offset = 0
        self._buffer = await self._fetch_page(page)
        self._last_page = len(self._buffer) < self.page_size

    async def open(self, state: Optional[Dict[str, Any]] = None) -> None:
        state = state or {}
        await self._load_page(int(state.get("page", 0)))
        self.offset = min(int(state.get("offset", 0)), len(self._buffer))
        self._opened = True

        if state:
            logger.info(f"{self.name}: resumed at page {self.page}, offset {self.offset}")

    async def read(self) -> Optional[Any]:
        if not self._opened:
            raise SourceReadError("Reader is not open", context={"reader": self.name})

        if self.offset >= len(self._buffer):
            if self._last_page:
                return None
            await self._load_page(self.page + 1)
            if not self._buffer:
                return None

        row = self._buffer[self.offset]
        record = map_row(row, self.record_type, self.row_mapper, self._describe_position)
        self.offset += 1
        return record

    def _describe_position(self) -> Dict[str, Any]:
        return {"reader": self.name, "page": self.page, "offset": self.offset}

    def checkpoint(self) -> Dict[str, Any]:
        return {"page": self.page, "offset": self.offset}

    async def close(self) -> None:
        self._buffer = []
        self._opened = False

