"""
Step definition: one reader → one processor → one writer
"""

from dataclasses import dataclass, field
from typing import Callable, Optional, Tuple, Type
from batch.processors.base import ItemProcessor
from batch.readers.base import ItemReader
from batch.writers.base import ItemWriter
from core.exceptions import StepConfigurationError

ReaderFactory = Callable[[], ItemReader]
WriterFactory = Callable[[], ItemWriter]


@dataclass(frozen=True)
class StepDefinition:
    """
    Plain description of a step, assembled by the registry at startup.

    Readers and writers hold per-run resources, so the definition keeps
    factories and every run gets fresh instances.

    chunk_size: number of accepted (non-dropped) records per transaction
    skippable_exceptions: processor errors that skip the item instead of failing
    skip_limit: number of skips tolerated per attempt before failing
    """
    name: str
    reader_factory: ReaderFactory
    writer_factory: WriterFactory
    chunk_size: int
    processor: Optional[ItemProcessor] = None
    skippable_exceptions: Tuple[Type[Exception], ...] = field(default_factory=tuple)
    skip_limit: int = 0
    description: str = ""

    def __post_init__(self):
        if not self.name:
            raise StepConfigurationError("Step name is required")
        if self.chunk_size is None or self.chunk_size < 1:
            raise StepConfigurationError(
                "chunk_size must be at least 1",
                context={"step_name": self.name, "chunk_size": self.chunk_size},
            )
        if self.skip_limit < 0:
            raise StepConfigurationError(
                "skip_limit must not be negative",
                context={"step_name": self.name, "skip_limit": self.skip_limit},
            )
