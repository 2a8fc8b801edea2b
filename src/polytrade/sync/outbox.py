"""Auto-sync outbox -- queued, retried delivery of deal changes to the sheet.

Event handlers only enqueue SyncTask records here. A single background
worker drains the queue in order, running each task under tenacity with
``stop_after_attempt(retry_attempts)`` and exponential backoff. One consumer
means event-driven pushes never race each other for the same sheet row.
"""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone

import structlog
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential

from src.polytrade.sync.config_store import SyncConfigStore
from src.polytrade.sync.schemas import SyncConfig, SyncTask, SyncTaskAction, SyncTaskStatus

logger = structlog.get_logger(__name__)

TaskHandler = Callable[[SyncTask], Awaitable[SyncTaskStatus]]


class SyncOutbox:
    """In-process queue of pending auto-sync actions.

    The handler returns the terminal status for a task (SUCCEEDED or
    SKIPPED) or raises to request a retry.

    Args:
        handler: Coroutine that performs one task.
        config_store: Source of the current ``retry_attempts``.
        backoff_multiplier: Base seconds for exponential backoff between attempts.
        backoff_max: Upper bound in seconds for a single backoff wait.
        history_size: Number of finished and pending tasks kept for inspection.
    """

    def __init__(
        self,
        handler: TaskHandler,
        config_store: SyncConfigStore,
        backoff_multiplier: float = 1.0,
        backoff_max: float = 30.0,
        history_size: int = 100,
    ) -> None:
        self._handler = handler
        self._config_store = config_store
        self._backoff_multiplier = backoff_multiplier
        self._backoff_max = backoff_max
        self._queue: asyncio.Queue[SyncTask] = asyncio.Queue()
        self._tasks: deque[SyncTask] = deque(maxlen=history_size)
        self._worker: asyncio.Task | None = None

    @property
    def pending_count(self) -> int:
        return self._queue.qsize()

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def enqueue(self, action: SyncTaskAction, deal_id: str) -> SyncTask:
        """Queue one action for a deal and return its task record."""
        task = SyncTask(action=action, deal_id=deal_id)
        self._tasks.append(task)
        self._queue.put_nowait(task)
        logger.debug(
            "sync_outbox.enqueued",
            task_id=task.task_id,
            action=action.value,
            deal_id=deal_id,
        )
        return task

    async def process_next(self) -> SyncTask:
        """Wait for the next queued task and run it to a terminal status."""
        task = await self._queue.get()
        try:
            await self._run(task)
        finally:
            self._queue.task_done()
        return task

    def _max_attempts(self) -> int:
        """Current retry_attempts, or the default when the stored value is unusable."""
        value = self._config_store.get().retry_attempts
        try:
            return max(1, int(value))
        except (TypeError, ValueError):
            logger.warning("sync_outbox.invalid_retry_attempts", value=repr(value))
            return SyncConfig.model_fields["retry_attempts"].default

    async def _run(self, task: SyncTask) -> None:
        max_attempts = self._max_attempts()
        task.status = SyncTaskStatus.RUNNING

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(max_attempts),
                wait=wait_exponential(
                    multiplier=self._backoff_multiplier, max=self._backoff_max
                ),
                reraise=True,
            ):
                with attempt:
                    task.attempts = attempt.retry_state.attempt_number
                    status = await self._handler(task)
        except Exception as exc:
            task.status = SyncTaskStatus.FAILED
            task.last_error = str(exc)
            logger.error(
                "sync_outbox.task_failed",
                task_id=task.task_id,
                action=task.action.value,
                deal_id=task.deal_id,
                attempts=task.attempts,
                error=str(exc),
            )
        else:
            task.status = status
            logger.info(
                "sync_outbox.task_done",
                task_id=task.task_id,
                action=task.action.value,
                deal_id=task.deal_id,
                status=status.value,
                attempts=task.attempts,
            )
        task.completed_at = datetime.now(timezone.utc)

    async def run(self) -> None:
        """Drain the queue forever. Cancel the task to stop."""
        while True:
            await self.process_next()

    def start(self) -> None:
        if self.running:
            return
        self._worker = asyncio.create_task(self.run(), name="sync_outbox_worker")
        logger.info("sync_outbox.started")

    async def stop(self) -> None:
        if self._worker is None:
            return
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None
        logger.info("sync_outbox.stopped", pending=self.pending_count)

    async def join(self) -> None:
        """Wait until every queued task has finished."""
        await self._queue.join()

    def list_tasks(self, status: SyncTaskStatus | None = None) -> list[SyncTask]:
        """Return recent tasks, newest first, optionally filtered by status."""
        tasks = reversed(self._tasks)
        if status is None:
            return list(tasks)
        return [task for task in tasks if task.status == status]
