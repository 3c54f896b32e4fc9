"""
Item writer contract
"""

from abc import ABC, abstractmethod
from typing import Any, Sequence
from sqlalchemy.ext.asyncio import AsyncSession


class ItemWriter(ABC):
    """
    Persist a whole chunk as one logical operation.

    write() runs inside the chunk transaction owned by the orchestrator and
    must not commit or roll back the session itself. Either every record of
    the chunk becomes visible on commit or none does.
    """

    def __init__(self, name: str):
        self.name = name

    async def open(self) -> None:
        pass

    @abstractmethod
    async def write(self, items: Sequence[Any], session: AsyncSession) -> None:
        pass

    async def close(self) -> None:
        pass

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r})"
