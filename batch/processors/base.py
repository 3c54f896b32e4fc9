"""
Item processor contract and generic processors
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Iterable, List, Optional


class ItemProcessor(ABC):
    """
    Transform one record into another.

    process() returns the transformed record, or None to drop it from the
    chunk without failing the step. Implementations are synchronous and
    free of side effects other than logging.
    """

    @abstractmethod
    def process(self, item: Any) -> Optional[Any]:
        pass


class FunctionItemProcessor(ItemProcessor):
    """Adapt a plain callable to the processor contract"""

    def __init__(self, func: Callable[[Any], Optional[Any]]):
        self.func = func

    def process(self, item: Any) -> Optional[Any]:
        return self.func(item)


class CompositeItemProcessor(ItemProcessor):
    """Chain processors in order; a dropped item short-circuits the chain"""

    def __init__(self, processors: Iterable[ItemProcessor]):
        self.processors: List[ItemProcessor] = list(processors)

    def process(self, item: Any) -> Optional[Any]:
        for processor in self.processors:
            item = processor.process(item)
            if item is None:
                return None
        return item
