"""
Dispatch listener — optional hooks into a job's lifecycle.

The scheduler itself only knows about the registry. Anything else that wants
to follow a job (e.g. mirroring counters onto a campaign row) implements this
class and passes it in the DispatchJob. All hooks are no-ops by default.

Hooks are best-effort: if one raises, the scheduler logs it and carries on.
A listener failure is never counted as a send failure and never fails the job.
"""

from jobs.record import JobRecord, RecipientOutcome, RecipientUnit


class DispatchListener:

    async def on_started(self, record: JobRecord) -> None:
        """Job moved to running."""

    async def on_recipient(self, unit: RecipientUnit, outcome: RecipientOutcome, record: JobRecord) -> None:
        """One recipient was attempted; record already reflects it."""

    async def on_finished(self, record: JobRecord) -> None:
        """Job reached a terminal status (completed, failed or cancelled)."""
