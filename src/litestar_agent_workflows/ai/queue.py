"""Per-user request serialization with minimum spacing."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, TypeVar

from litestar_agent_workflows.exceptions import RequestCancelledError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

__all__ = ["RequestQueue"]

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class _UserQueue:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    pending: int = 0
    generation: int = 0
    last_processed: float | None = None


class RequestQueue:
    """Serializes the calls of each user and spaces them out.

    At most one call per user is in flight at any time, and two consecutive
    calls of one user start at least ``min_interval`` seconds apart. Calls of
    different users never wait on each other.
    """

    def __init__(
        self,
        min_interval: float = 2.0,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize the queue.

        Args:
            min_interval: Minimum spacing in seconds between calls of one user.
            clock: Monotonic time source, injectable for tests.
            sleep: Awaitable sleep function, injectable for tests.
        """
        self.min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._queues: dict[str, _UserQueue] = {}

    async def enqueue(self, user_id: str, fn: Callable[[], Awaitable[T]]) -> T:
        """Run ``fn`` once every earlier call of ``user_id`` has finished.

        Args:
            user_id: Queue key.
            fn: Zero argument coroutine factory.

        Returns:
            Whatever ``fn`` returns.

        Raises:
            RequestCancelledError: If the queue was cleared while waiting.
        """
        queue = self._queues.setdefault(user_id, _UserQueue())
        generation = queue.generation
        queue.pending += 1
        try:
            async with queue.lock:
                if queue.generation != generation:
                    raise RequestCancelledError(user_id)
                if queue.last_processed is not None:
                    remaining = self.min_interval - (self._clock() - queue.last_processed)
                    if remaining > 0:
                        logger.debug("Throttling user '%s' for %.2fs", user_id, remaining)
                        await self._sleep(remaining)
                try:
                    return await fn()
                finally:
                    queue.last_processed = self._clock()
        finally:
            queue.pending -= 1

    def get_queue_length(self, user_id: str) -> int:
        """Return the number of calls of ``user_id`` waiting or in flight."""
        queue = self._queues.get(user_id)
        return queue.pending if queue else 0

    def clear_queue(self, user_id: str) -> int:
        """Drop the calls of ``user_id`` that have not started yet.

        Dropped calls raise ``RequestCancelledError``; the call in flight, if
        any, is left to finish.

        Returns:
            The number of dropped calls.
        """
        queue = self._queues.get(user_id)
        if queue is None:
            return 0
        queue.generation += 1
        dropped = queue.pending - (1 if queue.lock.locked() else 0)
        return max(dropped, 0)

    def cleanup(self) -> int:
        """Forget users without pending calls. Returns how many were removed."""
        idle = [user_id for user_id, queue in self._queues.items() if queue.pending == 0]
        for user_id in idle:
            del self._queues[user_id]
        return len(idle)
