"""Best-effort live-update notifier for the front-end facing service."""

import asyncio
from collections import deque
from typing import Any, Optional

import httpx

from app.config import settings
from app.logging_config import get_logger

logger = get_logger("notifier_service")


class UpdateNotifier:
    """Queue tenant updates and push them to ``notify_url`` in the background.

    ``emit`` never blocks and never raises. Failed pushes keep the event at
    the head of the queue and use up one unit of the retry budget; once the
    budget is spent the queue is dropped and later events are discarded.
    A successful push resets the budget.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        *,
        max_retries: int = 3,
        queue_limit: int = 100,
        retry_interval: float = 1.0,
        timeout: float = 5.0,
    ):
        self.url = url
        self.max_retries = max_retries
        self.retry_interval = retry_interval
        self.timeout = timeout
        self._queue: deque[dict[str, Any]] = deque(maxlen=queue_limit)
        self._failures = 0
        self._exhausted = False
        self._wakeup = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    @property
    def enabled(self) -> bool:
        return bool(self.url) and not self._exhausted

    @property
    def pending(self) -> int:
        return len(self._queue)

    def emit(self, tenant_id: str, data: dict[str, Any]) -> None:
        if not self.enabled:
            return
        if len(self._queue) == self._queue.maxlen:
            logger.debug("Notifier queue full, dropping oldest event")
        self._queue.append({"tenant_id": str(tenant_id), "data": data})
        self._wakeup.set()

    async def flush(self) -> int:
        """Push queued events in order. Returns how many were delivered."""
        if not self._queue or not self.url:
            return 0

        delivered = 0
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            while self._queue:
                event = self._queue[0]
                try:
                    response = await client.post(self.url, json=event)
                    response.raise_for_status()
                except httpx.HTTPError as e:
                    self._failures += 1
                    logger.warning(
                        "Notifier push failed",
                        extra={"context": {"attempt": self._failures, "error": str(e) or e.__class__.__name__}},
                    )
                    if self._failures >= self.max_retries:
                        self._give_up()
                    return delivered

                self._queue.popleft()
                self._failures = 0
                delivered += 1
        return delivered

    def _give_up(self) -> None:
        logger.warning(
            "Notifier retry budget exhausted, discarding updates",
            extra={"context": {"dropped": len(self._queue)}},
        )
        self._queue.clear()
        self._exhausted = True

    async def _run(self) -> None:
        while True:
            try:
                await self._wakeup.wait()
                self._wakeup.clear()
                await self.flush()
                if self._queue and not self._exhausted:
                    await asyncio.sleep(self.retry_interval)
                    self._wakeup.set()
            except asyncio.CancelledError:
                break
            except Exception as exc:
                logger.error("Notifier loop failed", extra={"context": {"error": str(exc)}})

    def start(self) -> None:
        if not self.url:
            logger.info("Notifier disabled: NOTIFY_URL not set")
            return
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None


notifier = UpdateNotifier(
    settings.notify_url,
    max_retries=settings.notify_max_retries,
    queue_limit=settings.notify_queue_limit,
)
