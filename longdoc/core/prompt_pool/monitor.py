"""
Background resurrection ticker for the prompt pool.
"""
import asyncio
import logging
from typing import Awaitable, Callable, List, Optional

from longdoc.config import HEALTH_CHECK_INTERVAL_SECONDS

logger = logging.getLogger(__name__)


class HealthMonitor:
    """Runs ``pool.check_for_resurrection()`` every ``interval`` seconds and
    flushes pool writes the save debounce deferred.

    The sleep function is injectable so tests can drive ticks without
    waiting on the wall clock.
    """

    def __init__(self, pool, interval: float = HEALTH_CHECK_INTERVAL_SECONDS,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        self.pool = pool
        self.interval = interval
        self._sleep = sleep
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self):
        """Schedule the ticker on the running loop (no-op if already running)."""
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.debug(f"[HealthMonitor] Started, interval {self.interval}s")

    async def stop(self):
        """Cancel the ticker and wait for it to finish."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.debug("[HealthMonitor] Stopped")

    def tick(self) -> List[str]:
        """One resurrection pass, honoring ``resurrection_enabled``, then a flush of deferred writes."""
        resurrected = []
        if self.pool.get_health_config().resurrection_enabled:
            resurrected = self.pool.check_for_resurrection()
            if resurrected:
                logger.info(f"[HealthMonitor] Resurrected {len(resurrected)} prompt(s): {', '.join(resurrected)}")
        self.pool.flush()
        return resurrected

    async def _run(self):
        while True:
            await self._sleep(self.interval)
            try:
                self.tick()
            except Exception:
                logger.exception("[HealthMonitor] Resurrection check failed")
