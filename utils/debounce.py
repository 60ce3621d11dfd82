import asyncio
import logging
from typing import Awaitable, Callable, Dict, Hashable, Optional

logger = logging.getLogger(__name__)


class Debouncer:
    """
    Coalescing per-key debounce on the running asyncio loop.

    `schedule(key, factory)` cancels whatever is pending for `key` and starts a
    new task that sleeps for `delay` seconds and then awaits `factory()`.
    Only the last call inside the window ever runs.
    """

    def __init__(self, delay: float):
        self.delay = delay
        self._tasks: Dict[Hashable, asyncio.Task] = {}
        self._closed = False

    def schedule(self, key: Hashable, factory: Callable[[], Awaitable[None]]) -> Optional[asyncio.Task]:
        if self._closed:
            return None
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(f"No running event loop; debounced work for {key!r} skipped")
            return None
        self.cancel(key)
        task = loop.create_task(self._run(key, factory))
        self._tasks[key] = task
        return task

    async def _run(self, key: Hashable, factory: Callable[[], Awaitable[None]]) -> None:
        try:
            await asyncio.sleep(self.delay)
            await factory()
        except asyncio.CancelledError:
            raise
        except Exception:
            # Auxiliary work: logged, never raised
            logger.exception(f"Debounced task for {key!r} failed")
        finally:
            if self._tasks.get(key) is asyncio.current_task():
                del self._tasks[key]

    def cancel(self, key: Hashable) -> None:
        task = self._tasks.pop(key, None)
        if task is not None and not task.done():
            task.cancel()

    def pending(self, key: Optional[Hashable] = None) -> bool:
        if key is not None:
            task = self._tasks.get(key)
            return task is not None and not task.done()
        return any(not task.done() for task in self._tasks.values())

    async def wait_idle(self) -> None:
        """Waits until no task is pending, including ones scheduled meanwhile."""
        while True:
            tasks = [task for task in self._tasks.values() if not task.done()]
            if not tasks:
                return
            await asyncio.gather(*tasks, return_exceptions=True)

    def close(self) -> None:
        self._closed = True
        for key in list(self._tasks):
            self.cancel(key)
