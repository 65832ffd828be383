"""
Single-flight FIFO delivery of tracking calls with bounded retries.
"""

import asyncio
import logging
from collections import deque
from typing import Any, Awaitable, Callable, Deque, Optional, Tuple

import httpx

logger = logging.getLogger(__name__)

Job = Callable[[], Awaitable[Any]]


class TrackingQueue:
    """
    Sends queued jobs one at a time, in the order they were queued.

    A failing job is retried with linear backoff (attempt * backoff_seconds)
    and dropped after max_attempts. Client errors (4xx) are not retried.
    Delivery failures are logged and never raised to the caller.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        backoff_seconds: float = 0.5,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self._sleep = sleep
        self._pending: Deque[Tuple[Job, str]] = deque()
        self._worker: Optional[asyncio.Task] = None
        self.sent = 0
        self.dropped = 0

    def __len__(self) -> int:
        return len(self._pending)

    def enqueue(self, job: Job, description: str = 'tracking call') -> None:
        self._pending.append((job, description))
        if self._worker is None or self._worker.done():
            self._worker = asyncio.get_running_loop().create_task(self._drain())

    async def join(self) -> None:
        """Wait until every queued job was sent or dropped."""
        while self._worker is not None and not self._worker.done():
            await self._worker

    async def _drain(self) -> None:
        while self._pending:
            job, description = self._pending.popleft()
            await self._run(job, description)

    async def _run(self, job: Job, description: str) -> bool:
        for attempt in range(1, self.max_attempts + 1):
            try:
                await job()
                self.sent += 1
                return True
            except httpx.HTTPStatusError as e:
                if e.response.status_code < 500:
                    logger.error(f"Dropping {description}: server rejected it with {e.response.status_code}")
                    break
                error = e
            except (httpx.HTTPError, ValueError) as e:
                error = e

            if attempt < self.max_attempts:
                logger.warning(f"Attempt {attempt} to send {description} failed: {error}")
                await self._sleep(self.backoff_seconds * attempt)
            else:
                logger.error(f"Dropping {description} after {attempt} attempts: {error}")

        self.dropped += 1
        return False
