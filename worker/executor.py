"""
Recipient executor — runs a single send and reports what happened.

This is the per-recipient protective boundary. The scheduler calls
executor.execute(unit) for each recipient, and this method:

    1. Waits for a slot in the shared ConcurrencyLimiter
    2. Calls sender.send(unit)
    3. On success: returns an ACCEPTED outcome
    4. On failure: logs it and returns an ERROR outcome carrying the message

It never raises for a send failure, so one bad address can't abort a batch.
asyncio.CancelledError is a BaseException and is deliberately not caught:
task cancellation must still unwind the scheduler.

There is no per-send timeout here; the SMTP transport enforces its own.
"""

import logging
from datetime import datetime, timezone

from jobs.record import RecipientOutcome, RecipientUnit
from models.enums import RecipientStatus
from scheduler.limiter import ConcurrencyLimiter
from worker.senders import AbstractRecipientSender

logger = logging.getLogger(__name__)


def describe_error(exc: BaseException) -> str:
    """Exception text for failure records; falls back to the class name."""
    return str(exc).strip() or exc.__class__.__name__


class RecipientExecutor:

    def __init__(self, limiter: ConcurrencyLimiter, sender: AbstractRecipientSender):
        self._limiter = limiter
        self._sender = sender

    async def execute(self, unit: RecipientUnit) -> RecipientOutcome:
        try:
            await self._limiter.run(lambda: self._sender.send(unit))
        except Exception as e:
            message = describe_error(e)
            logger.warning(f"Send to {unit.email} failed: {message}")
            return RecipientOutcome(
                status=RecipientStatus.ERROR,
                timestamp=datetime.now(timezone.utc),
                error=message,
            )

        return RecipientOutcome(
            status=RecipientStatus.ACCEPTED,
            timestamp=datetime.now(timezone.utc),
        )
