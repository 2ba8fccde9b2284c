"""Cancellable periodic refresh task."""

import asyncio
import contextlib
import logging

logger = logging.getLogger(__name__)


class PeriodicRefresher:
    """
    Base class for a refresh loop: runs `tick()` on start and then every `interval_s` seconds.

    `stop()` cancels the background task and marks the refresher torn down; subclasses check
    `is_torn_down` before committing results so a response arriving after teardown is dropped.
    """

    def __init__(self, interval_s: float, *, name: str) -> None:
        if interval_s <= 0:
            raise ValueError(f"interval_s must be positive, got: {interval_s}")
        self.interval_s = interval_s
        self.name = name
        self._active = False
        self._torn_down = False
        self._task: asyncio.Task | None = None

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def is_torn_down(self) -> bool:
        return self._torn_down

    async def tick(self, first: bool) -> None:
        """One scheduled refresh. Must record its own failures rather than raise."""
        raise NotImplementedError

    async def start(self) -> asyncio.Task | None:
        """Start the background loop and return its task handle."""
        if self._active:
            logger.debug("%s already running, ignoring start request", self.name)
            return self._task
        self._active = True
        self._torn_down = False
        self._task = asyncio.create_task(self._run_loop(), name=self.name)
        logger.info("%s started (interval=%ss)", self.name, self.interval_s)
        return self._task

    async def stop(self) -> None:
        """Cancel the background loop. In-flight refreshes will not commit."""
        self._torn_down = True
        if not self._active:
            return
        self._active = False
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        logger.info("%s stopped", self.name)

    async def _run_loop(self) -> None:
        first = True
        while self._active:
            try:
                await self.tick(first)
            except Exception:  # pylint: disable=broad-exception-caught
                logger.exception("%s: unexpected error in refresh loop", self.name)
            first = False
            await asyncio.sleep(self.interval_s)
