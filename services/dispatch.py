"""
Dispatcher — the one entry point request handlers use to start a send.

    dispatcher.start(recipients, sender, ...)
        1. registry.create(total)            → job id, status queued
        2. DispatchJob(...)                  → owned copy of the inputs
        3. launcher.launch(scheduler.run())  → background task, not awaited
        4. return the queued JobRecord

The dispatcher is built once in create_app() and stored on app.state; it
holds no per-job state of its own.
"""

import logging
from typing import Optional, Sequence
from uuid import UUID

from jobs.record import JobRecord, RecipientUnit
from jobs.registry import JobRegistry
from jobs.results import AbstractResultMaterializer, ResultStore
from scheduler.engine import BatchScheduler, DispatchJob
from scheduler.limiter import ConcurrencyLimiter
from scheduler.listener import DispatchListener
from services.templating import add_tracking, render_html
from worker.pool import JobLauncher
from worker.senders import AbstractRecipientSender, HtmlRenderer

logger = logging.getLogger(__name__)


class Dispatcher:

    def __init__(
        self,
        registry: JobRegistry,
        results: ResultStore,
        limiter: ConcurrencyLimiter,
        launcher: JobLauncher,
        scheduler: Optional[BatchScheduler] = None,
    ):
        self.registry = registry
        self.results = results
        self.launcher = launcher
        self.scheduler = scheduler or BatchScheduler(registry, results, limiter)

    def start(
        self,
        recipients: Sequence[RecipientUnit],
        sender: AbstractRecipientSender,
        *,
        batch_size: int,
        batch_delay_seconds: float,
        materializer: Optional[AbstractResultMaterializer] = None,
        listener: Optional[DispatchListener] = None,
    ) -> JobRecord:
        """Register a job and launch its scheduler in the background."""
        batch_size = max(1, batch_size)
        batch_delay_seconds = max(0.0, batch_delay_seconds)
        record = self.registry.create(
            len(recipients),
            batch_size=batch_size,
            batch_delay_seconds=batch_delay_seconds,
        )
        job = DispatchJob(
            job_id=record.job_id,
            recipients=tuple(recipients),
            sender=sender,
            batch_size=batch_size,
            batch_delay_seconds=batch_delay_seconds,
            materializer=materializer,
            listener=listener,
        )
        self.launcher.launch(record.job_id, self.scheduler.run(job))
        logger.info(f"Queued job {record.job_id} for {len(recipients)} recipients")
        return record


def make_renderer(
    template: str,
    *,
    tracking_base_url: Optional[str] = None,
    tracking_secret: str = "",
    campaign_id: Optional[UUID] = None,
) -> HtmlRenderer:
    """
    Per-recipient HTML renderer for a message template.

    Placeholders resolve from the recipient's metadata, with clientName
    falling back to the recipient's name. Campaign sends also get click and
    open tracking; click links are signed with tracking_secret.
    """

    def render(unit: RecipientUnit) -> str:
        variables = {"clientName": unit.name, **unit.metadata}
        html = render_html(template, variables)
        if tracking_base_url and campaign_id is not None:
            html = add_tracking(html, tracking_base_url, str(campaign_id), unit.email, tracking_secret)
        return html

    return render
