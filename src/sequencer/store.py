"""Durable per-actor state: key-value pairs plus one wake-up time per actor."""

import asyncio
import copy
import logging
from typing import Any, Awaitable, Callable, Protocol, TypeVar, TYPE_CHECKING

if TYPE_CHECKING:
    from sequencer.scheduler import Scheduler

log = logging.getLogger("sequencer.store")

T = TypeVar("T")


class Store(Protocol):
    async def get(self, namespace: str, key: str) -> Any | None: ...
    async def put(self, namespace: str, key: str, value: Any) -> None: ...
    async def put_batch(self, namespace: str, entries: dict[str, Any]) -> None: ...
    async def get_wakeup(self, namespace: str) -> float | None: ...
    async def set_wakeup_if_absent(self, namespace: str, due: float) -> bool: ...
    async def clear_wakeup(self, namespace: str, due: float | None = None) -> bool: ...
    async def all_wakeups(self) -> list[tuple[str, float]]: ...


class InMemoryStore:
    """Process-local store. Values are copied in and out so callers never share state with it."""

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._data: dict[str, dict[str, Any]] = {}
        self._wakeups: dict[str, float] = {}

    async def get(self, namespace: str, key: str) -> Any | None:
        async with self._lock:
            return copy.deepcopy(self._data.get(namespace, {}).get(key))

    async def put(self, namespace: str, key: str, value: Any) -> None:
        async with self._lock:
            self._data.setdefault(namespace, {})[key] = copy.deepcopy(value)

    async def put_batch(self, namespace: str, entries: dict[str, Any]) -> None:
        async with self._lock:
            self._data.setdefault(namespace, {}).update(copy.deepcopy(entries))

    async def get_wakeup(self, namespace: str) -> float | None:
        async with self._lock:
            return self._wakeups.get(namespace)

    async def set_wakeup_if_absent(self, namespace: str, due: float) -> bool:
        async with self._lock:
            if namespace in self._wakeups:
                return False
            self._wakeups[namespace] = due
            return True

    async def clear_wakeup(self, namespace: str, due: float | None = None) -> bool:
        async with self._lock:
            current = self._wakeups.get(namespace)
            if current is None or (due is not None and current != due):
                return False
            del self._wakeups[namespace]
            return True

    async def all_wakeups(self) -> list[tuple[str, float]]:
        async with self._lock:
            return list(self._wakeups.items())


class ActorStorage:
    """A Store bound to one actor's namespace.

    This is the whole storage surface an actor sees: reads, writes, an atomic
    batch write, one idempotent wake-up and a blocking exclusive section for
    first-access initialization.
    """

    def __init__(self, store: Store, namespace: str, scheduler: "Scheduler | None" = None) -> None:
        self.store = store
        self.namespace = namespace
        self.scheduler = scheduler
        self._exclusive = asyncio.Lock()

    async def get(self, key: str) -> Any | None:
        return await self.store.get(self.namespace, key)

    async def put(self, key: str, value: Any) -> None:
        await self.store.put(self.namespace, key, value)

    async def put_batch(self, entries: dict[str, Any]) -> None:
        await self.store.put_batch(self.namespace, entries)

    async def get_scheduled_wakeup(self) -> float | None:
        return await self.store.get_wakeup(self.namespace)

    async def set_wakeup_if_absent(self, due: float) -> bool:
        """Persist a wake-up unless one is already pending. Never moves an existing one."""
        created = await self.store.set_wakeup_if_absent(self.namespace, due)
        if created:
            log.debug("wake-up for %s set at %.3f", self.namespace, due)
            if self.scheduler is not None:
                self.scheduler.arm(self.namespace, due)
        return created

    async def run_exclusive(self, critical_section: Callable[[], Awaitable[T]]) -> T:
        async with self._exclusive:
            return await critical_section()
