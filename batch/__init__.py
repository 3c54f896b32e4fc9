"""
Chunk-oriented batch engine.

This package contains the components of one batch step:

Modules:
    step: StepDefinition, the plain description of a step
    chunk: ChunkOrchestrator, the read/process/write/checkpoint state machine
    context: ExecutionContextStore, durable checkpoints per step-run identity
    runner: StepRunner, opens, drives and closes one step run
    registry: explicit wiring of the available steps
    cli: command-line trigger

Subpackages:
    readers: cursor, paging, multi-resource, in-memory and file sources
    processors: record transforms (None drops a record)
    writers: batched SQL sinks

Architecture:
    A step run pulls records from a reader, applies the processor and
    accumulates accepted records into chunks of chunk_size. Each chunk is
    written and checkpointed in one transaction, so a failed run resumes
    after its last committed chunk.

Example:
    registry = build_step_registry(settings, engine, async_session_maker)
    runner = StepRunner(async_session_maker)
    outcome = await runner.run(registry["cursor"], {"time": 1700000000000})

    print(outcome.summary())
"""

from batch.step import StepDefinition
from batch.chunk import ChunkOrchestrator
from batch.context import ExecutionContextStore
from batch.runner import StepRunner
from batch.registry import build_step_registry

__all__ = [
    "StepDefinition",
    "ChunkOrchestrator",
    "ExecutionContextStore",
    "StepRunner",
    "build_step_registry",
]
