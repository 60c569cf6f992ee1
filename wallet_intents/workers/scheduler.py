from __future__ import annotations

import logging
from typing import Awaitable, Callable, Union
from uuid import uuid4

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from wallet_intents.core.chain import CancelSubscription, Recurring, Scheduled

logger = logging.getLogger(__name__)

Timed = Union[Scheduled, Recurring]
Executor = Callable[[Timed], Awaitable[None]]


async def _log_only(result: Timed) -> None:
    logger.info("scheduled_intent_due", extra={"event": "scheduled_intent_due", "summary": result.summary()})


class IntentScheduler:
    """Runs scheduled and recurring results. The parser only says when;
    this owns the waiting and the cancellation."""

    def __init__(self, execute: Executor | None = None, *, timezone: str = "UTC") -> None:
        self.execute = execute or _log_only
        self.scheduler = AsyncIOScheduler(timezone=timezone)

    async def _run(self, job_id: str, result: Timed) -> None:
        try:
            await self.execute(result)
            logger.info("scheduled_intent_executed", extra={"event": "scheduled_intent_executed", "job_id": job_id})
        except Exception:  # noqa: BLE001
            logger.exception("scheduled_intent_failed", extra={"event": "scheduled_intent_failed", "job_id": job_id})

    def schedule(self, result: Timed) -> str:
        job_id = uuid4().hex[:12]
        if isinstance(result, Scheduled):
            self.scheduler.add_job(
                self._run,
                "date",
                run_date=result.execution_time,
                args=[job_id, result],
                id=job_id,
                name=result.summary(),
            )
        else:
            # First run is one period after the command was given.
            self.scheduler.add_job(
                self._run,
                "interval",
                seconds=result.interval.seconds,
                start_date=result.start_time + result.interval.period,
                args=[job_id, result],
                id=job_id,
                name=result.summary(),
                max_instances=1,
            )
        logger.info("intent_scheduled", extra={"event": "intent_scheduled", "job_id": job_id, "kind": result.kind})
        return job_id

    def job_ids(self) -> list[str]:
        return [job.id for job in self.scheduler.get_jobs()]

    def cancel(self, target: CancelSubscription | str | None = None) -> int:
        """Removes one job by id, or every job when no id is given. Returns the count removed."""
        job_id = target.subscription_id if isinstance(target, CancelSubscription) else target
        if not job_id:
            ids = self.job_ids()
            self.scheduler.remove_all_jobs()
            logger.info("intents_cancelled", extra={"event": "intents_cancelled", "count": len(ids)})
            return len(ids)
        try:
            self.scheduler.remove_job(job_id)
        except JobLookupError:
            logger.info("intent_cancel_missing", extra={"event": "intent_cancel_missing", "job_id": job_id})
            return 0
        logger.info("intent_cancelled", extra={"event": "intent_cancelled", "job_id": job_id})
        return 1

    def start(self) -> None:
        self.scheduler.start()

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
