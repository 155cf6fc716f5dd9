import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


class PeriodicTimer:
    def __init__(
        self,
        interval_seconds: float,
        callback: Callable[[], Awaitable[None] | None],
        name: str = "timer",
    ) -> None:
        self._interval = interval_seconds
        self._callback = callback
        self._name = name
        self._task: asyncio.Task | None = None
        self._ticks = 0
        self._stopped = True

    @property
    def running(self) -> bool:
        return not self._stopped and self._task is not None and not self._task.done()

    @property
    def ticks(self) -> int:
        return self._ticks

    def start(self) -> None:
        if self.running:
            return
        self._ticks = 0
        self._stopped = False
        self._task = asyncio.create_task(self._run(), name=self._name)
        logger.debug("Timer %s started (interval=%.2fs)", self._name, self._interval)

    def stop(self) -> None:
        self._stopped = True
        if self._task and not self._task.done():
            # A callback may stop its own timer; the loop exits on the flag.
            if self._task is not asyncio.current_task():
                self._task.cancel()
        self._task = None

    async def _run(self) -> None:
        try:
            while not self._stopped:
                await asyncio.sleep(self._interval)
                if self._stopped:
                    break
                self._ticks += 1
                result = self._callback()
                if inspect.isawaitable(result):
                    await result
        except asyncio.CancelledError:
            pass
