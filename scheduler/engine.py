"""
Batch scheduler — the control loop that drives one dispatch job.

Each job runs as one detached asyncio task (see worker/pool.py) executing
BatchScheduler.run(job). The loop:

    queued ──> running ──> completed   (every recipient attempted)
                      ├──> cancelled   (flag seen at a checkpoint)
                      └──> failed      (an exception escaped the loop)

    for each batch of `batch_size` recipients:
        checkpoint: cancel requested? → mark the rest cancelled, stop
        for each recipient in the batch:
            checkpoint: cancel requested? → mark the rest cancelled, stop
            send it (through the shared ConcurrencyLimiter)
            fold the outcome into counters / recent events / failures
            publish the new snapshot
        not the last batch and delay > 0? → sleep(batch_delay_seconds)
    materialize the result file, mark completed

Checking at both levels means a cancel waits for at most the send that is
already in flight, never a whole batch. Recipients inside a batch are sent
one after another, so a job has at most one send in flight; the limiter
ceiling matters when several jobs run at once.

ETA is deliberately simple: it assumes each remaining batch costs exactly
one batch delay and ignores how long sends actually take.

    remaining = max(0, total_batches - processed // batch_size - 1) * delay
"""

import asyncio
import logging
import math
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Optional

from jobs.record import (
    FailureRecord,
    JobRecord,
    RecentEvent,
    RecipientOutcome,
    RecipientUnit,
)
from jobs.registry import JobRegistry
from jobs.results import AbstractResultMaterializer, ResultStore
from models.enums import JobStatus, RecipientStatus, TerminalStatus
from scheduler.limiter import ConcurrencyLimiter
from scheduler.listener import DispatchListener
from worker.executor import RecipientExecutor, describe_error
from worker.senders import AbstractRecipientSender

logger = logging.getLogger(__name__)

INTERRUPTED_MESSAGE = "Dispatch interrupted before it finished"


@dataclass
class DispatchJob:
    """
    Everything one run needs, captured when the job is started.

    The recipient tuple is fixed for the life of the job; it is never
    re-queried, so later edits to a segment don't affect a running send.
    """
    job_id: str
    recipients: tuple[RecipientUnit, ...]
    sender: AbstractRecipientSender
    batch_size: int = 1
    batch_delay_seconds: float = 0.0
    materializer: Optional[AbstractResultMaterializer] = None
    listener: Optional[DispatchListener] = None

    def __post_init__(self):
        self.recipients = tuple(self.recipients)
        self.batch_size = max(1, int(self.batch_size))
        self.batch_delay_seconds = max(0.0, float(self.batch_delay_seconds))

    @property
    def total_batches(self) -> int:
        return math.ceil(len(self.recipients) / self.batch_size)


@dataclass
class _Tally:
    """Running aggregates, owned by the scheduler task for one job."""
    recent: deque
    processed: int = 0
    sent: int = 0
    errors: int = 0
    failures: list[FailureRecord] = field(default_factory=list)
    outcomes: list[tuple[RecipientUnit, RecipientOutcome]] = field(default_factory=list)


def estimate_remaining_seconds(total_batches: int, processed: int, batch_size: int, delay: float) -> float:
    waits_remaining = max(0, total_batches - processed // batch_size - 1)
    return waits_remaining * delay


class BatchScheduler:

    def __init__(
        self,
        registry: JobRegistry,
        results: ResultStore,
        limiter: ConcurrencyLimiter,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._registry = registry
        self._results = results
        self._limiter = limiter
        self._sleep = sleep

    async def run(self, job: DispatchJob) -> Optional[JobRecord]:
        """
        Drive a job to a terminal status.

        Never raises for ordinary failures: anything escaping the loop turns
        the job `failed` with the exception text as its error message.
        Task cancellation (process shutdown) also marks it failed, then
        propagates so the task really ends.
        """
        try:
            return await self._run(job)
        except asyncio.CancelledError:
            logger.warning(f"Job {job.job_id} interrupted")
            record = self._registry.complete(job.job_id, TerminalStatus.FAILED, INTERRUPTED_MESSAGE)
            if record is not None:
                await self._notify(job, "on_finished", record)
            raise
        except Exception as e:
            logger.error(f"Job {job.job_id} failed: {e}", exc_info=True)
            record = self._registry.complete(job.job_id, TerminalStatus.FAILED, describe_error(e))
            if record is not None:
                await self._notify(job, "on_finished", record)
            return record

    async def _run(self, job: DispatchJob) -> Optional[JobRecord]:
        job_id = job.job_id
        recipients = job.recipients
        batch_size = job.batch_size
        delay = job.batch_delay_seconds
        total_batches = job.total_batches

        # ── queued → running ────────────────────────────────────
        started_at = datetime.now(timezone.utc)
        initial_remaining = max(0, total_batches - 1) * delay
        record = self._registry.update(
            job_id,
            status=JobStatus.RUNNING,
            started_at=started_at,
            updated_at=started_at,
            batch_size=batch_size,
            batch_delay_seconds=delay,
            estimated_remaining_seconds=initial_remaining,
            estimated_completion_at=started_at + timedelta(seconds=initial_remaining),
        )
        if record is None:
            logger.warning(f"Job {job_id} is not in the registry, nothing to run")
            return None

        logger.info(
            f"Job {job_id} started: {len(recipients)} recipients in "
            f"{total_batches} batches of {batch_size}, {delay:.1f}s apart"
        )
        await self._notify(job, "on_started", record)

        executor = RecipientExecutor(self._limiter, job.sender)
        tally = _Tally(recent=deque(maxlen=self._registry.recent_events_limit))

        # ── main loop ───────────────────────────────────────────
        for start in range(0, len(recipients), batch_size):
            if self._registry.is_cancel_requested(job_id):
                return await self._finish_cancelled(job, tally, start)

            for offset, unit in enumerate(recipients[start:start + batch_size]):
                if self._registry.is_cancel_requested(job_id):
                    return await self._finish_cancelled(job, tally, start + offset)

                outcome = await executor.execute(unit)
                record = self._apply_outcome(job, tally, unit, outcome)
                await self._notify(job, "on_recipient", unit, outcome, record)

            is_last_batch = start + batch_size >= len(recipients)
            if not is_last_batch and delay > 0:
                logger.debug(f"Job {job_id} pausing {delay:.1f}s before next batch")
                await self._sleep(delay)

        # ── running → completed ─────────────────────────────────
        await self._materialize(job, tally)
        record = self._registry.complete(job_id, TerminalStatus.COMPLETED)
        logger.info(
            f"Job {job_id} completed: {tally.sent} sent, {tally.errors} errors "
            f"of {len(recipients)}"
        )
        await self._notify(job, "on_finished", record)
        return record

    def _apply_outcome(
        self,
        job: DispatchJob,
        tally: _Tally,
        unit: RecipientUnit,
        outcome: RecipientOutcome,
    ) -> Optional[JobRecord]:
        """Fold one outcome into the tally and publish the resulting snapshot."""
        now = outcome.timestamp
        tally.processed += 1
        tally.outcomes.append((unit, outcome))

        fields = {}
        if outcome.status is RecipientStatus.ACCEPTED:
            tally.sent += 1
            last_status = "sent"
        else:
            tally.errors += 1
            last_status = "error"
            tally.failures.append(FailureRecord(unit.name, unit.email, outcome.error or ""))
            fields["failures"] = list(tally.failures)

        tally.recent.append(RecentEvent(
            timestamp=now,
            client_name=unit.name,
            client_email=unit.email,
            status=outcome.status,
            error=outcome.error,
        ))

        remaining = estimate_remaining_seconds(
            job.total_batches, tally.processed, job.batch_size, job.batch_delay_seconds
        )
        return self._registry.update(
            job.job_id,
            processed=tally.processed,
            sent=tally.sent,
            errors=tally.errors,
            last_to=unit.email,
            last_client_name=unit.name,
            last_status=last_status,
            recent_events=list(tally.recent),
            updated_at=now,
            estimated_remaining_seconds=remaining,
            estimated_completion_at=now + timedelta(seconds=remaining),
            **fields,
        )

    async def _finish_cancelled(self, job: DispatchJob, tally: _Tally, next_index: int) -> Optional[JobRecord]:
        """Mark every recipient from next_index on as cancelled and close the job."""
        now = datetime.now(timezone.utc)
        skipped = job.recipients[next_index:]
        for unit in skipped:
            tally.outcomes.append((unit, RecipientOutcome(status=RecipientStatus.CANCELLED, timestamp=now)))

        await self._materialize(job, tally)
        record = self._registry.complete(job.job_id, TerminalStatus.CANCELLED)
        logger.info(
            f"Job {job.job_id} cancelled after {tally.processed}/{len(job.recipients)} "
            f"recipients ({len(skipped)} skipped)"
        )
        await self._notify(job, "on_finished", record)
        return record

    async def _materialize(self, job: DispatchJob, tally: _Tally) -> None:
        if job.materializer is None:
            return
        # openpyxl serialization is CPU-bound; keep it off the event loop
        artifact = await asyncio.to_thread(job.materializer.materialize, job.job_id, list(tally.outcomes))
        self._results.put(job.job_id, artifact)

    async def _notify(self, job: DispatchJob, hook: str, *args) -> None:
        if job.listener is None:
            return
        try:
            await getattr(job.listener, hook)(*args)
        except Exception:
            logger.warning(f"Listener {hook} failed for job {job.job_id}", exc_info=True)
