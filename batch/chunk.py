"""
Chunk orchestrator: read → process → accumulate → write → checkpoint.

States:
    IDLE → READING → (ACCUMULATING ⇄ READING) → WRITING → CHECKPOINTING
         → (READING | DONE | STOPPED) | FAILED

A chunk holds chunk_size accepted records (fewer only at exhaustion). Its
rows and the reader checkpoint are committed in one transaction; any
failure rolls the transaction back and leaves the previous checkpoint as
the resume point. Stop requests are honoured only between chunks.
"""

import asyncio
import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from batch.context import ExecutionContextStore
from batch.readers.base import ItemReader
from batch.step import StepDefinition
from batch.writers.base import ItemWriter
from core.exceptions import (
    BatchException,
    CheckpointPersistError,
    SinkWriteError,
    SourceReadError,
    TransformError,
)

logger = logging.getLogger(__name__)


class ChunkState(str, enum.Enum):
    IDLE = "idle"
    READING = "reading"
    ACCUMULATING = "accumulating"
    WRITING = "writing"
    CHECKPOINTING = "checkpointing"
    DONE = "done"
    STOPPED = "stopped"
    FAILED = "failed"


TERMINAL_STATES = {ChunkState.DONE, ChunkState.STOPPED, ChunkState.FAILED}


@dataclass
class ChunkCounts:
    read_count: int = 0
    write_count: int = 0
    filter_count: int = 0
    skip_count: int = 0
    commit_count: int = 0
    rollback_count: int = 0

    def as_dict(self) -> Dict[str, int]:
        return dict(self.__dict__)


@dataclass
class ChunkResult:
    """What the orchestrator hands back to the step runner"""
    state: ChunkState
    counts: ChunkCounts
    error: Optional[BaseException] = None
    checkpoint: Optional[Dict[str, Any]] = None


@dataclass
class _Chunk:
    items: List[Any] = field(default_factory=list)
    exhausted: bool = False


class ChunkOrchestrator:
    """
    Drive one step attempt to DONE, STOPPED or FAILED.

    The reader and writer must already be open; the caller closes them.
    """

    def __init__(
        self,
        step: StepDefinition,
        reader: ItemReader,
        writer: ItemWriter,
        session_factory: async_sessionmaker,
        context_store: ExecutionContextStore,
        step_run_id: str,
        stop_event: Optional[asyncio.Event] = None,
        prior_counts: Optional[Dict[str, int]] = None,
        context_version: Optional[int] = None,
    ):
        self.step = step
        self.reader = reader
        self.writer = writer
        self.session_factory = session_factory
        self.context_store = context_store
        self.step_run_id = step_run_id
        self.stop_event = stop_event
        # Stored checkpoint version this attempt expects to advance
        self.context_version = context_version

        self.counts = ChunkCounts()
        # Totals across attempts, persisted with each checkpoint
        self.totals = ChunkCounts(**(prior_counts or {}))
        self.state = ChunkState.IDLE
        self.last_checkpoint: Optional[Dict[str, Any]] = None

    def _transition(self, new_state: ChunkState) -> None:
        logger.debug(f"{self.step.name}: {self.state.value} → {new_state.value}")
        self.state = new_state

    # ------------------------------------------------------------------
    # READING / ACCUMULATING
    # ------------------------------------------------------------------

    async def _read_one(self) -> Optional[Any]:
        try:
            return await self.reader.read()
        except SourceReadError:
            raise
        except Exception as e:
            raise SourceReadError(
                "Unexpected error while reading",
                context={"step_name": self.step.name, "reader": self.reader.name},
                original_exception=e,
            )

    def _process_one(self, item: Any) -> Optional[Any]:
        """Apply the processor; returns None for dropped or skipped items"""
        if self.step.processor is None:
            return item

        try:
            result = self.step.processor.process(item)
        except Exception as e:
            skippable = self.step.skippable_exceptions and isinstance(e, self.step.skippable_exceptions)
            if skippable and self.counts.skip_count < self.step.skip_limit:
                self.counts.skip_count += 1
                logger.warning(
                    f"{self.step.name}: skipping item {self.counts.read_count} "
                    f"({type(e).__name__}: {e})"
                )
                return None
            raise TransformError(
                "Processor failed",
                context={
                    "step_name": self.step.name,
                    "item_index": self.counts.read_count,
                    "skip_count": self.counts.skip_count,
                },
                original_exception=e,
            )

        if result is None:
            self.counts.filter_count += 1
        return result

    async def _fill_chunk(self) -> _Chunk:
        chunk = _Chunk()
        self._transition(ChunkState.READING)

        while len(chunk.items) < self.step.chunk_size:
            item = await self._read_one()
            if item is None:
                chunk.exhausted = True
                break

            self.counts.read_count += 1
            processed = self._process_one(item)
            if processed is None:
                continue

            self._transition(ChunkState.ACCUMULATING)
            chunk.items.append(processed)
            if len(chunk.items) < self.step.chunk_size:
                self._transition(ChunkState.READING)

        return chunk

    # ------------------------------------------------------------------
    # WRITING / CHECKPOINTING
    # ------------------------------------------------------------------

    def _build_checkpoint(self, chunk: _Chunk) -> Dict[str, Any]:
        totals = ChunkCounts(**self.totals.as_dict())
        totals.read_count += self.counts.read_count
        totals.write_count += self.counts.write_count + len(chunk.items)
        totals.filter_count += self.counts.filter_count
        totals.skip_count += self.counts.skip_count
        totals.commit_count += self.counts.commit_count + 1
        return {"reader": self.reader.checkpoint(), "counts": totals.as_dict()}

    async def _commit_chunk(self, chunk: _Chunk) -> None:
        """Write the chunk and its checkpoint in one transaction"""
        checkpoint = self._build_checkpoint(chunk)

        async with self.session_factory() as session:
            try:
                self._transition(ChunkState.WRITING)
                await self.writer.write(chunk.items, session)

                self._transition(ChunkState.CHECKPOINTING)
                version = await self.context_store.save(
                    session, self.step_run_id, checkpoint, expected_version=self.context_version
                )

                await session.commit()
            except BaseException:
                await session.rollback()
                self.counts.rollback_count += 1
                raise

        self.counts.write_count += len(chunk.items)
        self.counts.commit_count += 1
        self.last_checkpoint = checkpoint
        if self.context_version is not None:
            self.context_version = version
        logger.info(
            f"{self.step.name}: committed chunk {self.counts.commit_count} "
            f"({len(chunk.items)} items, {self.counts.write_count} written so far)"
        )

    async def _write_and_checkpoint(self, chunk: _Chunk) -> None:
        try:
            await self._commit_chunk(chunk)
        except BatchException:
            raise
        except SQLAlchemyError as e:
            # Commit itself failed: neither rows nor checkpoint are durable
            raise SinkWriteError(
                "Chunk commit failed",
                context={"step_name": self.step.name, "chunk_size": len(chunk.items)},
                original_exception=e,
            )
        except Exception as e:
            if self.state == ChunkState.CHECKPOINTING:
                raise CheckpointPersistError(
                    "Unexpected error while checkpointing",
                    context={"step_run_id": self.step_run_id, "operation": "save"},
                    original_exception=e,
                )
            raise SinkWriteError(
                "Unexpected error while writing chunk",
                context={"step_name": self.step.name, "writer": self.writer.name, "chunk_size": len(chunk.items)},
                original_exception=e,
            )

    # ------------------------------------------------------------------
    # Driver
    # ------------------------------------------------------------------

    def _stop_requested(self) -> bool:
        return self.stop_event is not None and self.stop_event.is_set()

    async def execute(self) -> ChunkResult:
        """Run chunks until the source is exhausted, a stop is requested or an error occurs"""
        logger.info(f"{self.step.name}: starting chunk loop (chunk_size={self.step.chunk_size})")

        try:
            while self.state not in TERMINAL_STATES:
                chunk = await self._fill_chunk()

                if not chunk.items:
                    # Exhausted with nothing pending
                    self._transition(ChunkState.DONE)
                    break

                await self._write_and_checkpoint(chunk)

                if chunk.exhausted:
                    self._transition(ChunkState.DONE)
                elif self._stop_requested():
                    logger.info(f"{self.step.name}: stop requested, halting after chunk {self.counts.commit_count}")
                    self._transition(ChunkState.STOPPED)
                else:
                    self._transition(ChunkState.READING)

        except BatchException as e:
            self._transition(ChunkState.FAILED)
            logger.error(
                f"{self.step.name}: chunk loop failed: {e.message}",
                extra={"error_context": e.to_dict()},
            )
            return ChunkResult(self.state, self.counts, error=e, checkpoint=self.last_checkpoint)

        return ChunkResult(self.state, self.counts, checkpoint=self.last_checkpoint)
