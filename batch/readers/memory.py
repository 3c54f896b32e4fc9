"""
In-memory list reader for fixtures and small literal datasets
"""

from collections import deque
from typing import Any, Deque, Dict, Iterable, Optional
from batch.readers.base import ItemReader
import logging

logger = logging.getLogger(__name__)


class ListItemReader(ItemReader):
    """
    Pop records from the front of a pre-built list.

    Position is only tracked as "exhausted or not": a resumed reader whose
    checkpoint says exhausted yields nothing, otherwise it starts over.
    Items are copied on construction so the caller's list is left intact.
    """

    def __init__(self, name: str, items: Iterable[Any]):
        super().__init__(name)
        self._items = list(items)
        self._queue: Deque[Any] = deque()
        self.exhausted = False

    async def open(self, state: Optional[Dict[str, Any]] = None) -> None:
        self.exhausted = bool((state or {}).get("exhausted", False))
        self._queue = deque() if self.exhausted else deque(self._items)
        logger.debug(f"{self.name}: {len(self._queue)} items queued")

    async def read(self) -> Optional[Any]:
        if not self._queue:
            self.exhausted = True
            return None
        item = self._queue.popleft()
        if not self._queue:
            self.exhausted = True
        return item

    def checkpoint(self) -> Dict[str, Any]:
        return {"exhausted": self.exhausted}

    async def close(self) -> None:
        self._queue.clear()
