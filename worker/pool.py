"""
Job launcher — runs dispatch jobs as detached background tasks.

The request handler that starts a job must return right away with the job
id, so the scheduler loop can't run inside the request. Instead:

    handler ──> launcher.launch(job_id, scheduler.run(job)) ──> returns job id
                          │
                          └─ asyncio.Task "dispatch-<job_id>" runs on the loop

asyncio only keeps weak references to tasks, so the launcher holds a strong
reference to each one until it finishes. A done-callback logs anything that
escaped the task; BatchScheduler.run already turns ordinary faults into a
`failed` job, so this is a last line of defence, not the normal path.

On application shutdown, shutdown() cancels whatever is still running and
waits for those tasks to unwind (they mark their jobs failed on the way out).
"""

import asyncio
import logging
from typing import Any, Coroutine

logger = logging.getLogger(__name__)


class JobLauncher:

    def __init__(self):
        self._tasks: set[asyncio.Task] = set()

    @property
    def active_count(self) -> int:
        return len(self._tasks)

    def launch(self, job_id: str, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        """Start coro as a background task; the caller must not await it."""
        task = asyncio.create_task(coro, name=f"dispatch-{job_id}")
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        logger.debug(f"Launched dispatch task for job {job_id}")
        return task

    async def shutdown(self) -> None:
        """Cancel in-flight dispatch tasks and wait for them to finish."""
        tasks = list(self._tasks)
        if not tasks:
            return
        logger.info(f"Cancelling {len(tasks)} in-flight dispatch tasks")
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    def _on_task_done(self, task: asyncio.Task) -> None:
        """
        Callback fired when a dispatch task ends, however it ends.

        We use it only for bookkeeping and for logging exceptions that got
        past BatchScheduler.run — job state handling happens there.
        """
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Unhandled exception in {task.get_name()}: {exc}", exc_info=exc)
