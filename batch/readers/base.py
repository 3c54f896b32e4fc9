"""
Abstract item reader with open/read/checkpoint/close lifecycle
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Type
from pydantic import BaseModel, ValidationError
from core.exceptions import DataFormatError, SourceReadError
import logging

logger = logging.getLogger(__name__)

RowMapper = Callable[[Dict[str, Any]], Any]


@dataclass(frozen=True)
class ReaderHints:
    """
    Tuning values passed through to the underlying store or parser.

    fetch_size: rows buffered per driver round-trip (cursor reader) or
        rows parsed per block (flat file reader)
    read_only: ask the driver for a read-only connection where supported
    """
    fetch_size: int = 100
    read_only: bool = False


def map_row(
    row: Dict[str, Any],
    record_type: Optional[Type[BaseModel]],
    row_mapper: Optional[RowMapper],
    describe_position: Callable[[], Dict[str, Any]],
) -> Any:
    """Turn a raw row into a record, classifying failures as malformed"""
    try:
        if row_mapper is not None:
            return row_mapper(row)
        if record_type is not None:
            return record_type.model_validate(row)
        return row
    except (ValidationError, ValueError, TypeError, KeyError) as e:
        raise DataFormatError(
            "Malformed record",
            context=describe_position(),
            original_exception=e,
        )


class ItemReader(ABC):
    """
    Pull-based, stateful cursor over an external dataset.

    Lifecycle:
    - open(state) positions the reader, resuming from a prior checkpoint
    - read() returns the next record or None once exhausted
    - checkpoint() returns the current position as a JSON-serialisable dict
    - close() releases held resources and may be called more than once
    """

    def __init__(self, name: str):
        self.name = name

    @abstractmethod
    async def open(self, state: Optional[Dict[str, Any]] = None) -> None:
        """Initialise or resume positioning"""
        pass

    @abstractmethod
    async def read(self) -> Optional[Any]:
        """Return the next record, or None when the source is exhausted"""
        pass

    @abstractmethod
    def checkpoint(self) -> Dict[str, Any]:
        """Opaque current position"""
        pass

    async def close(self) -> None:
        """Release held resources"""
        pass

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r})"


class CountingItemReader(ItemReader):
    """
    Reader whose position is the number of items already returned.

    Subclasses implement _do_open/_do_read/_do_close. Resuming fast-forwards
    by reading and discarding read_count items, so the underlying ordering
    must be stable between attempts.
    """

    def __init__(
        self,
        name: str,
        record_type: Optional[Type[BaseModel]] = None,
        row_mapper: Optional[RowMapper] = None,
    ):
        super().__init__(name)
        self.record_type = record_type
        self.row_mapper = row_mapper
        self.read_count = 0
        self._opened = False

    @abstractmethod
    async def _do_open(self) -> None:
        pass

    @abstractmethod
    async def _do_read(self) -> Optional[Dict[str, Any]]:
        """Return the next raw row, or None when exhausted"""
        pass

    async def _do_close(self) -> None:
        pass

    def _describe_position(self) -> Dict[str, Any]:
        """Context attached to errors raised while mapping a row"""
        return {"reader": self.name, "item_number": self.read_count + 1}

    def map_row(self, row: Dict[str, Any]) -> Any:
        return map_row(row, self.record_type, self.row_mapper, self._describe_position)

    async def open(self, state: Optional[Dict[str, Any]] = None) -> None:
        self.read_count = 0
        await self._do_open()
        self._opened = True

        restore_to = int((state or {}).get("read_count", 0))
        if restore_to:
            await self._jump_to_item(restore_to)
            logger.info(f"{self.name}: resumed after {restore_to} items")

    async def _jump_to_item(self, target: int) -> None:
        while self.read_count < target:
            row = await self._do_read()
            if row is None:
                raise SourceReadError(
                    "Source ended before the checkpointed position",
                    context={"reader": self.name, "checkpoint": target, "available": self.read_count},
                )
            self.read_count += 1

    async def read(self) -> Optional[Any]:
        if not self._opened:
            raise SourceReadError("Reader is not open", context={"reader": self.name})

        row = await self._do_read()
        if row is None:
            return None

        record = self.map_row(row)
        self.read_count += 1
        return record

    def checkpoint(self) -> Dict[str, Any]:
        return {"read_count": self.read_count}

    async def close(self) -> None:
        # _do_close implementations tolerate partially opened state
        self._opened = False
        await self._do_close()
