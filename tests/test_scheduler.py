from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

import pytest
import pytest_asyncio

from conftest import BOB, FIXED_NOW
from wallet_intents.core.chain import CancelSubscription, Recurring, Scheduled
from wallet_intents.core.intents import Success, TransferSol
from wallet_intents.core.schedule import DAILY
from wallet_intents.workers.scheduler import IntentScheduler


def transfer() -> Success:
    return Success(TransferSol(Decimal(1), "bob", BOB), 0.95, "send 1 SOL to bob")


@pytest_asyncio.fixture
async def scheduler():
    executed: list = []

    async def execute(result) -> None:
        executed.append(result)

    sched = IntentScheduler(execute)
    sched.executed = executed
    # Paused so nothing fires while the test inspects the job table.
    sched.scheduler.start(paused=True)
    yield sched
    sched.stop()


@pytest.mark.asyncio
async def test_schedule_and_cancel_by_subscription(scheduler: IntentScheduler) -> None:
    job_id = scheduler.schedule(Scheduled(transfer(), FIXED_NOW + timedelta(days=365 * 10)))
    assert scheduler.job_ids() == [job_id]

    assert scheduler.cancel(CancelSubscription(job_id)) == 1
    assert scheduler.job_ids() == []
    assert scheduler.cancel(job_id) == 0


@pytest.mark.asyncio
async def test_recurring_job_is_an_interval(scheduler: IntentScheduler) -> None:
    job_id = scheduler.schedule(Recurring(DAILY, transfer(), FIXED_NOW))
    job = scheduler.scheduler.get_job(job_id)
    assert job.trigger.interval == timedelta(days=1)
    assert job.max_instances == 1


@pytest.mark.asyncio
async def test_cancel_without_id_removes_everything(scheduler: IntentScheduler) -> None:
    scheduler.schedule(Recurring(DAILY, transfer(), FIXED_NOW))
    scheduler.schedule(Scheduled(transfer(), FIXED_NOW + timedelta(days=365 * 10)))
    assert scheduler.cancel(CancelSubscription()) == 2
    assert scheduler.job_ids() == []


@pytest.mark.asyncio
async def test_run_passes_result_to_executor(scheduler: IntentScheduler) -> None:
    result = Scheduled(transfer(), FIXED_NOW)
    await scheduler._run("job", result)
    assert scheduler.executed == [result]


@pytest.mark.asyncio
async def test_run_logs_executor_failures() -> None:
    async def explode(result) -> None:
        raise RuntimeError("rpc down")

    sched = IntentScheduler(explode)
    await sched._run("job", Scheduled(transfer(), FIXED_NOW))
    sched.stop()
