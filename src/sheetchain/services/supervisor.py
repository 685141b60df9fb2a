"""Auto-restart for the relayer's long-running monitors and worker.

A supervised coroutine that raises is restarted after an exponential backoff
(``base * 2 ** (failures - 1)`` capped at ``max_delay``). The failure count is
reset when the coroutine returns normally or after a run that stayed up longer
than ``reset_after``. Every wait is cut short by the shared stop event.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

logger = logging.getLogger(__name__)


async def wait_for_stop(stop: asyncio.Event, timeout: float) -> bool:
    """Sleep up to ``timeout`` seconds; return True if ``stop`` was set."""
    try:
        await asyncio.wait_for(stop.wait(), timeout=max(0.0, timeout))
    except TimeoutError:
        return False
    return True


@dataclass(frozen=True)
class RestartPolicy:
    base_delay: float = 1.0
    max_delay: float = 60.0
    reset_after: float = 300.0

    def delay_for(self, failures: int) -> float:
        if failures <= 0:
            return 0.0
        return min(self.base_delay * 2 ** (failures - 1), self.max_delay)


class Supervisor:
    """Runs ``target(stop)`` until ``stop`` is set, restarting it on failure."""

    def __init__(
        self,
        name: str,
        target: Callable[[asyncio.Event], Awaitable[None]],
        policy: RestartPolicy,
        stop: asyncio.Event,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[asyncio.Event, float], Awaitable[bool]] = wait_for_stop,
    ) -> None:
        self.name = name
        self._target = target
        self.policy = policy
        self._stop = stop
        self._clock = clock
        self._sleep = sleep
        self.failures = 0
        self.restarts = 0

    async def run(self) -> None:
        while not self._stop.is_set():
            started = self._clock()
            try:
                await self._target(self._stop)
            except asyncio.CancelledError:
                raise
            except Exception as exc:  # supervised tasks must never take the relayer down
                if self._clock() - started >= self.policy.reset_after:
                    self.failures = 0
                self.failures += 1
                delay = self.policy.delay_for(self.failures)
                logger.error(
                    "%s failed: %s. Restarting in %.1fs (attempt %d)",
                    self.name,
                    exc,
                    delay,
                    self.failures,
                    exc_info=True,
                )
                if await self._sleep(self._stop, delay):
                    break
                self.restarts += 1
                continue

            self.failures = 0
            if self._stop.is_set():
                break
            logger.warning("%s returned; restarting", self.name)
            if await self._sleep(self._stop, self.policy.base_delay):
                break
            self.restarts += 1

        logger.info("%s stopped", self.name)
