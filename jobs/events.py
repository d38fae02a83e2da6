"""
Progress event bus — per-job publish/subscribe.

Each job gets one channel. The registry publishes two kinds of events on it:

    progress  → emitted on every registry.update() (full snapshot)
    complete  → emitted exactly once when the job reaches a terminal status

Subscribers register a pair of plain callbacks. Delivery is synchronous and
in emission order, which is what the SSE endpoint needs: its callbacks just
push onto an asyncio.Queue that the response generator drains.

Late joiners are not blind: subscribe() immediately replays the channel's
latest snapshot through on_progress, and if the job already finished it also
fires on_complete right away, so a stream opened after the fact still ends.

Everything runs on the event loop thread, so no locks are needed.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

from jobs.record import JobRecord

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[JobRecord], None]


@dataclass(eq=False)
class _Subscription:
    on_progress: ProgressCallback
    on_complete: ProgressCallback


@dataclass
class _Channel:
    latest: JobRecord
    completed: bool = False
    subscribers: list[_Subscription] = field(default_factory=list)


class ProgressEventBus:

    def __init__(self):
        self._channels: dict[str, _Channel] = {}

    def open(self, job_id: str, snapshot: JobRecord) -> None:
        """Create the channel for a new job. Called by the registry on create()."""
        self._channels[job_id] = _Channel(latest=snapshot)

    def publish(self, job_id: str, snapshot: JobRecord) -> None:
        """Broadcast a progress snapshot to every current subscriber."""
        channel = self._channels.get(job_id)
        if channel is None or channel.completed:
            return
        channel.latest = snapshot
        for sub in list(channel.subscribers):
            self._deliver(job_id, "progress", sub.on_progress, snapshot)

    def close(self, job_id: str, snapshot: JobRecord) -> None:
        """Broadcast the terminal snapshot, then drop all subscribers."""
        channel = self._channels.get(job_id)
        if channel is None or channel.completed:
            return
        channel.latest = snapshot
        channel.completed = True
        subscribers, channel.subscribers = channel.subscribers, []
        for sub in subscribers:
            self._deliver(job_id, "complete", sub.on_complete, snapshot)

    def subscribe(
        self,
        job_id: str,
        on_progress: ProgressCallback,
        on_complete: ProgressCallback,
    ) -> Optional[Callable[[], None]]:
        """
        Register callbacks for a job and replay its current state.

        Returns:
            A disposer that removes the subscription (safe to call twice),
            or None if the job has no channel.
        """
        channel = self._channels.get(job_id)
        if channel is None:
            return None

        if channel.completed:
            on_progress(channel.latest)
            on_complete(channel.latest)
            return lambda: None

        sub = _Subscription(on_progress, on_complete)
        channel.subscribers.append(sub)
        on_progress(channel.latest)

        def unsubscribe() -> None:
            if sub in channel.subscribers:
                channel.subscribers.remove(sub)

        return unsubscribe

    def subscriber_count(self, job_id: str) -> int:
        channel = self._channels.get(job_id)
        return len(channel.subscribers) if channel else 0

    @staticmethod
    def _deliver(job_id: str, kind: str, callback: ProgressCallback, snapshot: JobRecord) -> None:
        # One broken subscriber must not starve the others or the publishing scheduler
        try:
            callback(snapshot)
        except Exception:
            logger.exception(f"Subscriber for job {job_id} failed on {kind} event")
