"""Cancellable scheduling primitives for a single form instance.

- Debouncer: arms a delayed task; arming again cancels the previous one.
  Every task carries a monotonically increasing sequence number and only the
  task holding the latest sequence may commit its result.
- RequestTokens: per-field monotonically increasing tokens used to discard
  late responses (e.g. a slow blur validation overtaken by a newer edit).
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional

logger = logging.getLogger(__name__)

CoroFactory = Callable[[], Awaitable[Any]]
CommitCallback = Callable[[Any], None]


@dataclass
class ScheduledTask:
    """Handle for one armed debounce task."""

    sequence: int
    task: "asyncio.Task[Any]"

    def cancel(self) -> bool:
        return self.task.cancel()

    @property
    def done(self) -> bool:
        return self.task.done()

    @property
    def cancelled(self) -> bool:
        return self.task.cancelled()


class Debouncer:
    """
    Runs the most recently scheduled coroutine after ``delay`` seconds of quiet.

    ``schedule`` cancels any pending or in-flight task before arming a new
    one. Must be used from within a running event loop.
    """

    def __init__(self, delay: float, name: str = "debounce"):
        self.delay = delay
        self.name = name
        self._sequence = 0
        self._current: Optional[ScheduledTask] = None
        self._closed = False

    @property
    def sequence(self) -> int:
        return self._sequence

    @property
    def closed(self) -> bool:
        return self._closed

    def is_latest(self, sequence: int) -> bool:
        return not self._closed and sequence == self._sequence

    def schedule(self, coro_factory: CoroFactory, on_commit: Optional[CommitCallback] = None) -> ScheduledTask:
        """
        Arm a new delayed task, replacing the previous one.

        Args:
            coro_factory: Called after the delay to produce the work coroutine
            on_commit: Receives the coroutine result, only if this task is
                still the latest when the work finishes

        Raises:
            RuntimeError: If the debouncer was closed
        """
        if self._closed:
            raise RuntimeError(f"{self.name} debouncer is closed")

        self.cancel()
        self._sequence += 1
        sequence = self._sequence
        task = asyncio.create_task(self._run(sequence, coro_factory, on_commit))
        self._current = ScheduledTask(sequence=sequence, task=task)
        return self._current

    async def _run(self, sequence: int, coro_factory: CoroFactory, on_commit: Optional[CommitCallback]) -> Any:
        await asyncio.sleep(self.delay)
        if not self.is_latest(sequence):
            return None

        result = await coro_factory()

        if not self.is_latest(sequence):
            logger.debug(f"{self.name}: discarding stale result #{sequence} (latest #{self._sequence})")
            return None
        if on_commit is not None:
            on_commit(result)
        return result

    def cancel(self) -> None:
        """Cancel the pending task, if any."""
        if self._current is not None and not self._current.done:
            self._current.cancel()

    async def wait(self) -> None:
        """Wait until the current task (if any) has finished or been cancelled."""
        current = self._current
        if current is None:
            return
        try:
            await current.task
        except asyncio.CancelledError:
            if not current.task.cancelled():
                raise

    def close(self) -> None:
        """Cancel pending work and refuse further scheduling."""
        self._closed = True
        self.cancel()


class RequestTokens:
    """Per-field request tokens drawn from one monotonically increasing counter."""

    def __init__(self):
        self._counter = 0
        self._latest: Dict[str, int] = {}

    def issue(self, field_ids: Iterable[str]) -> int:
        """Issue a new token and make it the latest for every given field."""
        self._counter += 1
        for field_id in field_ids:
            self._latest[field_id] = self._counter
        return self._counter

    def is_latest(self, field_id: str, token: int) -> bool:
        return self._latest.get(field_id) == token

    def latest(self, field_id: str) -> Optional[int]:
        return self._latest.get(field_id)
