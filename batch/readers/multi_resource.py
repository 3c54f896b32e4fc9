"""
Sequential reader over an ordered list of homogeneous resources
"""

from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Union
from batch.readers.base import ItemReader
from batch.readers.files import list_resources
from core.exceptions import ResourceNotFoundError
import logging

logger = logging.getLogger(__name__)

Resource = Union[str, Path]
DelegateFactory = Callable[[Resource], ItemReader]


class MultiResourceItemReader(ItemReader):
    """
    Present several resources as one logical record stream.

    A delegate reader is built per resource by delegate_factory and read
    until it is exhausted, then closed before the next resource is opened.
    Checkpoint state is (resource index, delegate's own checkpoint).
    """

    def __init__(
        self,
        name: str,
        resources: Sequence[Resource],
        delegate_factory: DelegateFactory,
        strict: bool = True,
    ):
        super().__init__(name)
        self.resources: List[Resource] = list(resources)
        self.delegate_factory = delegate_factory
        self.strict = strict

        self.resource_index = 0
        self._delegate: Optional[ItemReader] = None

    @classmethod
    def from_pattern(
        cls,
        name: str,
        directory: Resource,
        pattern: str,
        delegate_factory: DelegateFactory,
        strict: bool = True,
    ) -> "MultiResourceItemReader":
        """Build the resource list from a glob, ordered by file name"""
        return cls(name, list_resources(directory, pattern), delegate_factory, strict=strict)

    async def _open_delegate(self, index: int, state: Optional[Dict[str, Any]] = None) -> None:
        self.resource_index = index
        resource = self.resources[index]
        self._delegate = self.delegate_factory(resource)
        logger.info(f"{self.name}: opening resource {index + 1}/{len(self.resources)}: {resource}")
        await self._delegate.open(state)

    async def open(self, state: Optional[Dict[str, Any]] = None) -> None:
        state = state or {}

        if not self.resources:
            if self.strict:
                raise ResourceNotFoundError(
                    "No resources to read",
                    context={"reader": self.name},
                )
            logger.warning(f"{self.name}: no resources found, reading as empty")

        index = int(state.get("resource_index", 0))
        if index < len(self.resources):
            await self._open_delegate(index, state.get("delegate"))
        else:
            self.resource_index = len(self.resources)

    async def read(self) -> Optional[Any]:
        while self._delegate is not None:
            item = await self._delegate.read()
            if item is not None:
                return item

            await self._delegate.close()
            self._delegate = None

            next_index = self.resource_index + 1
            if next_index >= len(self.resources):
                self.resource_index = len(self.resources)
                return None
            await self._open_delegate(next_index)

        return None

    def checkpoint(self) -> Dict[str, Any]:
        return {
            "resource_index": self.resource_index,
            "delegate": self._delegate.checkpoint() if self._delegate is not None else None,
        }

    async def close(self) -> None:
        if self._delegate is not None:
            delegate, self._delegate = self._delegate, None
            await delegate.close()
