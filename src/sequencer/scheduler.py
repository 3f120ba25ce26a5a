"""
Timer substrate for actors.

1. Keeps every pending wake-up in a min-heap ordered by due time
2. Re-arms persisted wake-ups on startup so timers survive restarts
3. Clears the persisted wake-up, then runs the owning actor's ``alarm()`` in its own task
4. Re-arms an actor whose alarm raised, after ``retry_delay``
"""
import asyncio
import heapq
import logging
import time
from typing import Any, Callable, Protocol

import sequencer.constants as C
from sequencer.store import Store

log = logging.getLogger("sequencer.scheduler")


class Alarmed(Protocol):
    async def alarm(self) -> None: ...


class Scheduler:
    def __init__(
        self,
        store: Store,
        resolver: Callable[[str], Alarmed],
        *,
        clock: Callable[[], float] = time.time,
        retry_delay: float = C.SCHEDULER_RETRY_DELAY,
    ) -> None:
        self.store = store
        self.resolver = resolver
        self.clock = clock
        self.retry_delay = retry_delay
        self._heap: list[tuple[float, str]] = []
        self._changed = asyncio.Event()
        self._tasks: set[asyncio.Task] = set()

    def arm(self, namespace: str, due: float) -> None:
        heapq.heappush(self._heap, (due, namespace))
        self._changed.set()

    async def load(self) -> int:
        wakeups = await self.store.all_wakeups()
        for namespace, due in wakeups:
            self.arm(namespace, due)
        if wakeups:
            log.info("Re-armed %s persisted wake-ups", len(wakeups))
        return len(wakeups)

    def next_due(self) -> float | None:
        return self._heap[0][0] if self._heap else None

    def pending(self) -> list[tuple[float, str]]:
        return sorted(self._heap)

    async def fire_due(self) -> int:
        """Dispatch every wake-up whose time has come. Returns how many fired."""
        now = self.clock()
        fired = 0
        while self._heap and self._heap[0][0] <= now:
            due, namespace = heapq.heappop(self._heap)
            # Entries whose persisted wake-up is gone or different are stale
            if not await self.store.clear_wakeup(namespace, due):
                log.debug("dropping stale wake-up %s@%.3f", namespace, due)
                continue
            task = asyncio.create_task(self._dispatch(namespace), name=f"alarm:{namespace}")
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            fired += 1
        return fired

    async def _dispatch(self, namespace: str) -> None:
        try:
            actor = self.resolver(namespace)
            await actor.alarm()
        except asyncio.CancelledError:
            raise
        except Exception:
            log.exception("alarm for %s failed; retrying in %ss", namespace, self.retry_delay)
            due = self.clock() + self.retry_delay
            if await self.store.set_wakeup_if_absent(namespace, due):
                self.arm(namespace, due)

    async def drain(self) -> None:
        """Wait for every dispatched alarm to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def run(self, stop: asyncio.Event) -> None:
        await self.load()
        log.info("Scheduler starting")
        stop_waiter = asyncio.create_task(stop.wait(), name="scheduler_stop")
        try:
            while not stop.is_set():
                self._changed.clear()
                await self.fire_due()
                next_due = self.next_due()
                timeout = None if next_due is None else max(0.0, next_due - self.clock())
                changed_waiter = asyncio.create_task(self._changed.wait())
                try:
                    await asyncio.wait(
                        {changed_waiter, stop_waiter},
                        timeout=timeout,
                        return_when=asyncio.FIRST_COMPLETED,
                    )
                finally:
                    changed_waiter.cancel()
        except asyncio.CancelledError:
            log.debug("Scheduler cancelled")
            raise
        finally:
            stop_waiter.cancel()
            for task in list(self._tasks):
                task.cancel()
            log.info("Scheduler stopped")
