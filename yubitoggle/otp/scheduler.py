"""
Polling Scheduler - Fixed-Delay Refresh Loop

Runs a refresh coroutine, waits a fixed interval, and repeats until
stopped. The interval is measured from the end of one refresh to the
start of the next.
"""

from typing import Any, Awaitable, Callable, Optional
import asyncio
import logging

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 10.0


class PollingScheduler:
    """
    Cancellable fixed-delay polling loop.

    The stop flag is checked before every refresh and before every
    sleep. stop() wakes a sleeping loop immediately; a refresh already
    in progress is cancelled at its next await, and a running ykman
    process is left to finish.

    Attributes:
        interval: Seconds to wait between refreshes
        cycles: Number of refreshes started
    """

    def __init__(
        self,
        refresh: Callable[[], Awaitable[Any]],
        interval: float = DEFAULT_POLL_INTERVAL
    ):
        """
        Initialize scheduler.

        Args:
            refresh: Coroutine function run once per cycle
            interval: Seconds between the end of one refresh and the
                start of the next
        """
        if interval <= 0:
            raise ValueError(f"Poll interval must be positive, got {interval}")
        self.refresh = refresh
        self.interval = interval
        self.cycles = 0
        self._stop_event: Optional[asyncio.Event] = None
        self._task: Optional[asyncio.Task[None]] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def stopped(self) -> bool:
        return self._stop_event is None or self._stop_event.is_set()

    def start(self) -> None:
        """Start polling. The first refresh runs immediately."""
        if self.is_running:
            logger.warning("Polling already running")
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.info(f"Polling started (every {self.interval:g}s)")

    async def stop(self) -> None:
        """Stop polling and wait for the loop to exit."""
        if self._stop_event is not None:
            self._stop_event.set()

        task = self._task
        self._task = None
        if task and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            logger.info("Polling stopped")

    async def _run(self) -> None:
        assert self._stop_event is not None
        stop_event = self._stop_event

        while not stop_event.is_set():
            self.cycles += 1
            try:
                await self.refresh()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Polling refresh failed: {e}")

            if stop_event.is_set():
                break

            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                continue
