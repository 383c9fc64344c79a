# shelter/utils/debounce.py
import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


def _consume_exception(task: asyncio.Task) -> None:
    # _run already logged it; flush() still re-raises to a caller that awaits
    if not task.cancelled():
        task.exception()


class Debouncer:
    """
    Trailing-edge debounce for async callables.

    Each call() cancels the pending one and restarts the wait, so a burst
    of calls runs `func` once with the last arguments, `delay` seconds after
    the burst ends.
    """

    def __init__(self, func: Callable[..., Awaitable[Any]], delay: float = 0.3):
        self.func = func
        self.delay = delay
        self._task: Optional[asyncio.Task] = None

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    def call(self, *args, **kwargs) -> asyncio.Task:
        self.cancel()
        self._task = asyncio.create_task(self._run(args, kwargs))
        self._task.add_done_callback(_consume_exception)
        return self._task

    async def _run(self, args, kwargs) -> Any:
        await asyncio.sleep(self.delay)
        try:
            return await self.func(*args, **kwargs)
        except Exception:
            logger.error("Debounced call failed", exc_info=True)
            raise

    def cancel(self) -> None:
        if self.pending:
            self._task.cancel()
        self._task = None

    async def flush(self) -> Any:
        """Wait for the pending call, if any, and return its result."""
        if self._task is None:
            return None
        try:
            return await self._task
        except asyncio.CancelledError:
            return None
