"""
Integration tests for the step runner: completeness, atomicity, resume and
re-run rules against a real database
"""

import asyncio
import pytest
from datetime import datetime
from sqlalchemy import func, select

from batch.context import step_run_id
from batch.processors import CustomerItemProcessor
from batch.readers import CursorItemReader, FlatFileItemReader, ListItemReader
from batch.registry import PRODUCT_COLUMNS
from batch.runner import StepRunner
from batch.step import StepDefinition
from batch.writers import InsertItemWriter
from core.exceptions import StepAlreadyCompletedError, StepAlreadyRunningError
from models.base import RunStatus
from models.customer import Customer, CustomerProcessed
from models.execution_context import StepExecutionContext
from models.step_execution import StepExecution
from schemas.records import CustomerRecord, ProductRecord


class FailingInsertWriter(InsertItemWriter):
    """
    Insert writer that raises after its Nth write.

    The rows of that chunk have already been issued on the session, so the
    failure also exercises the rollback.
    """

    def __init__(self, model, fail_on_call=None):
        super().__init__(model)
        self.fail_on_call = fail_on_call
        self.calls = 0
        self.closed = False

    async def write(self, items, session):
        self.calls += 1
        await super().write(items, session)
        if self.calls == self.fail_on_call:
            raise RuntimeError("Simulated DB failure during write")

    async def close(self):
        self.closed = True


class TrackingListReader(ListItemReader):
    def __init__(self, name, items):
        super().__init__(name, items)
        self.closed = False

    async def close(self):
        self.closed = True
        await super().close()


def customer_step(engine, writer_holder, chunk_size=2, fail_on_call=None):
    def writer_factory():
        writer = FailingInsertWriter(CustomerProcessed, fail_on_call=writer_holder.get("fail_on_call"))
        writer_holder["writer"] = writer
        return writer

    writer_holder.setdefault("fail_on_call", fail_on_call)
    return StepDefinition(
        name="customers",
        reader_factory=lambda: CursorItemReader(
            "customer_reader",
            engine,
            select(Customer.__table__),
            record_type=CustomerRecord,
            sort_key=Customer.__table__.c.id,
        ),
        processor=CustomerItemProcessor(),
        writer_factory=writer_factory,
        chunk_size=chunk_size,
    )


async def processed_ids(session_factory):
    async with session_factory() as session:
        result = await session.execute(
            select(CustomerProcessed.customer_id).order_by(CustomerProcessed.customer_id)
        )
        return list(result.scalars().all())


@pytest.mark.asyncio
async def test_run_completes_with_ceil_k_over_n_commits(test_engine, session_factory, seed_customers):
    await seed_customers(5)
    runner = StepRunner(session_factory)

    outcome = await runner.run(customer_step(test_engine, {}), {"time": 1})

    assert outcome.status == RunStatus.COMPLETED
    assert outcome.succeeded
    assert outcome.read_count == 5
    assert outcome.write_count == 5
    assert outcome.commit_count == 3
    assert outcome.resumed is False
    assert outcome.checkpoint["reader"] == {"read_count": 5}
    assert await processed_ids(session_factory) == [1, 2, 3, 4, 5]


@pytest.mark.asyncio
async def test_run_over_empty_source_completes(test_engine, session_factory):
    outcome = await StepRunner(session_factory).run(customer_step(test_engine, {}), {"time": 1})

    assert outcome.status == RunStatus.COMPLETED
    assert outcome.read_count == 0
    assert outcome.commit_count == 0


@pytest.mark.asyncio
async def test_failed_chunk_leaves_no_rows(test_engine, session_factory, seed_customers):
    await seed_customers(2)

    outcome = await StepRunner(session_factory).run(
        customer_step(test_engine, {}, fail_on_call=1), {"time": 1}
    )

    assert outcome.status == RunStatus.FAILED
    assert outcome.error_type == "SinkWriteError"
    assert outcome.commit_count == 0
    assert outcome.rollback_count == 1
    assert await processed_ids(session_factory) == []


@pytest.mark.asyncio
async def test_resume_after_failure_does_not_repeat_committed_chunks(test_engine, session_factory, seed_customers):
    await seed_customers(5)
    runner = StepRunner(session_factory)
    holder = {}
    step = customer_step(test_engine, holder, fail_on_call=3)

    first = await runner.run(step, {"time": 42})

    assert first.status == RunStatus.FAILED
    assert first.commit_count == 2
    assert first.checkpoint["reader"] == {"read_count": 4}
    assert await processed_ids(session_factory) == [1, 2, 3, 4]

    holder["fail_on_call"] = None
    second = await runner.run(step, {"time": 42})

    assert second.status == RunStatus.COMPLETED
    assert second.resumed is True
    assert second.read_count == 1
    assert second.write_count == 1
    assert second.checkpoint["counts"]["write_count"] == 5
    assert await processed_ids(session_factory) == [1, 2, 3, 4, 5]

    async with session_factory() as session:
        attempts = (
            await session.execute(
                select(StepExecution).where(StepExecution.step_run_id == first.step_run_id).order_by(StepExecution.id)
            )
        ).scalars().all()
    assert [a.status for a in attempts] == [RunStatus.FAILED, RunStatus.COMPLETED]
    assert [a.resumed for a in attempts] == [False, True]


@pytest.mark.asyncio
async def test_completed_identity_is_rejected_unless_fresh(test_engine, session_factory, seed_customers):
    await seed_customers(3)
    runner = StepRunner(session_factory)
    step = customer_step(test_engine, {})

    await runner.run(step, {"time": 7})

    with pytest.raises(StepAlreadyCompletedError):
        await runner.run(step, {"time": 7})

    fresh = await runner.run(step, {"time": 7}, fresh=True)

    assert fresh.status == RunStatus.COMPLETED
    assert fresh.resumed is False
    assert fresh.read_count == 3
    assert await processed_ids(session_factory) == [1, 1, 2, 2, 3, 3]


@pytest.mark.asyncio
async def test_different_parameters_are_independent_runs(test_engine, session_factory, seed_customers):
    await seed_customers(2)
    runner = StepRunner(session_factory)
    step = customer_step(test_engine, {})

    first = await runner.run(step, {"time": 1})
    second = await runner.run(step, {"time": 2})

    assert first.step_run_id != second.step_run_id
    assert second.read_count == 2

    async with session_factory() as session:
        count = (await session.execute(select(func.count()).select_from(StepExecutionContext))).scalar()
    assert count == 2


@pytest.mark.asyncio
async def test_stop_then_resume_completes(test_engine, session_factory, seed_customers):
    await seed_customers(5)
    runner = StepRunner(session_factory)
    step = customer_step(test_engine, {})
    stop_event = asyncio.Event()
    stop_event.set()

    stopped = await runner.run(step, {"time": 3}, stop_event=stop_event)

    assert stopped.status == RunStatus.STOPPED
    assert stopped.commit_count == 1
    assert await processed_ids(session_factory) == [1, 2]

    resumed = await runner.run(step, {"time": 3})

    assert resumed.status == RunStatus.COMPLETED
    assert resumed.resumed is True
    assert await processed_ids(session_factory) == [1, 2, 3, 4, 5]


@pytest.mark.asyncio
async def test_reader_and_writer_closed_on_failure(session_factory):
    holder = {}

    def reader_factory():
        holder["reader"] = TrackingListReader("customers", [
            CustomerRecord(id=1, first_name="a", last_name="b", email="a@example.com"),
        ])
        return holder["reader"]

    def writer_factory():
        holder["writer"] = FailingInsertWriter(CustomerProcessed, fail_on_call=1)
        return holder["writer"]

    step = StepDefinition(
        name="closing",
        reader_factory=reader_factory,
        writer_factory=writer_factory,
        processor=CustomerItemProcessor(),
        chunk_size=10,
    )

    outcome = await StepRunner(session_factory).run(step, {"time": 1})

    assert outcome.status == RunStatus.FAILED
    assert holder["reader"].closed is True
    assert holder["writer"].closed is True


@pytest.mark.asyncio
async def test_missing_resource_strict_fails_and_tolerant_completes(session_factory, data_dir):
    def file_step(strict):
        return StepDefinition(
            name=f"file-{strict}",
            reader_factory=lambda: FlatFileItemReader(
                "products", data_dir / "absent.csv", record_type=ProductRecord,
                names=PRODUCT_COLUMNS, lines_to_skip=1, strict=strict,
            ),
            writer_factory=lambda: InsertItemWriter(CustomerProcessed),
            chunk_size=2,
        )

    runner = StepRunner(session_factory)

    strict = await runner.run(file_step(True), {"time": 1})
    tolerant = await runner.run(file_step(False), {"time": 1})

    assert strict.status == RunStatus.FAILED
    assert strict.error_type == "ResourceNotFoundError"
    assert strict.error_details["context"]["resource"] == str(data_dir / "absent.csv")
    assert tolerant.status == RunStatus.COMPLETED
    assert tolerant.read_count == 0


@pytest.mark.asyncio
async def test_malformed_line_fails_and_resumes_after_fix(session_factory, data_dir):
    path = data_dir / "customers.csv"
    path.write_text(
        "id,first_name,last_name,email\n"
        "1,a,b,a@example.com\n"
        "2,c,d,c@example.com\n"
        "x,e,f,e@example.com\n",
        encoding="utf-8",
    )
    step = StepDefinition(
        name="csv-customers",
        reader_factory=lambda: FlatFileItemReader("customers", path, record_type=CustomerRecord),
        processor=CustomerItemProcessor(),
        writer_factory=lambda: InsertItemWriter(CustomerProcessed),
        chunk_size=2,
    )
    runner = StepRunner(session_factory)

    failed = await runner.run(step, {"time": 1})

    assert failed.status == RunStatus.FAILED
    assert failed.error_type == "DataFormatError"
    assert failed.error_details["context"]["line_number"] == "4"
    assert await processed_ids(session_factory) == [1, 2]

    path.write_text(
        "id,first_name,last_name,email\n"
        "1,a,b,a@example.com\n"
        "2,c,d,c@example.com\n"
        "3,e,f,e@example.com\n",
        encoding="utf-8",
    )
    resumed = await runner.run(step, {"time": 1})

    assert resumed.status == RunStatus.COMPLETED
    assert resumed.read_count == 1
    assert await processed_ids(session_factory) == [1, 2, 3]


@pytest.mark.asyncio
async def test_context_records_status_and_version(test_engine, session_factory, seed_customers):
    await seed_customers(3)
    outcome = await StepRunner(session_factory).run(customer_step(test_engine, {}), {"time": 9})

    async with session_factory() as session:
        context = (
            await session.execute(
                select(StepExecutionContext).where(
                    StepExecutionContext.step_run_id == step_run_id("customers", {"time": 9})
                )
            )
        ).scalar_one()

    assert outcome.step_run_id == context.step_run_id
    assert context.status == RunStatus.COMPLETED
    assert context.version == 2
    assert context.total_runs == 1
    assert context.last_success_at is not None


def listed_customers_step(holder, count=4):
    """One item per chunk, so every item is its own commit"""
    rows = [
        {
            "customer_id": i,
            "full_name": f"first{i} last{i}",
            "email": f"user{i}@example.com",
            "age": 30,
            "processed_at": datetime(2024, 1, 15, 10, 0, 0),
        }
        for i in range(1, count + 1)
    ]
    return StepDefinition(
        name="listed-customers",
        reader_factory=lambda: ListItemReader("customers", rows),
        writer_factory=lambda: FailingInsertWriter(CustomerProcessed, fail_on_call=holder.get("fail_on_call")),
        chunk_size=1,
    )


@pytest.mark.asyncio
async def test_concurrent_attempts_after_failure_write_each_row_once(session_factory):
    runner = StepRunner(session_factory)
    holder = {"fail_on_call": 1}
    step = listed_customers_step(holder)

    first = await runner.run(step, {"time": 1})
    assert first.status == RunStatus.FAILED

    holder["fail_on_call"] = None
    results = await asyncio.gather(
        runner.run(step, {"time": 1}),
        runner.run(step, {"time": 1}),
        return_exceptions=True,
    )

    outcomes = [r for r in results if not isinstance(r, BaseException)]
    refused = [r for r in results if isinstance(r, BaseException)]
    assert [o.status for o in outcomes] == [RunStatus.COMPLETED]
    assert len(refused) == 1
    assert isinstance(refused[0], StepAlreadyRunningError)
    assert await processed_ids(session_factory) == [1, 2, 3, 4]


@pytest.mark.asyncio
async def test_interrupted_attempt_needs_recover(session_factory):
    runner = StepRunner(session_factory)
    step = listed_customers_step({})
    run_id = step_run_id(step.name, {"time": 2})

    # An attempt that never reached finish() leaves the identity STARTED
    await runner.context_store.begin(run_id, step.name, {"time": 2}, step.chunk_size)

    with pytest.raises(StepAlreadyRunningError):
        await runner.run(step, {"time": 2})

    recovered = await runner.run(step, {"time": 2}, recover=True)

    assert recovered.status == RunStatus.COMPLETED
    assert recovered.write_count == 4
    assert await processed_ids(session_factory) == [1, 2, 3, 4]
