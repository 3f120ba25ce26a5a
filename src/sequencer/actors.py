"""One serialized execution context per key.

Every actor owns its namespace in the store and nothing else. Its ``_lock``
serializes read-modify-write of that state; different actors never share a
lock or any mutable memory.
"""

import asyncio
import logging
from typing import Callable

import sequencer.constants as C
from sequencer.errors import NotFound
from sequencer.store import ActorStorage

log = logging.getLogger("sequencer.actors")


class Actor:
    def __init__(self, key: str, storage: ActorStorage) -> None:
        self.key = key
        self.storage = storage
        self._lock = asyncio.Lock()

    async def alarm(self) -> None:
        raise NotImplementedError


class ActorRegistry:
    """Lazily creates actors and resolves scheduler namespaces back to them."""

    def __init__(self, factories: dict[str, Callable[[str], Actor]]) -> None:
        # namespace prefix -> factory(namespace)
        self._factories = factories
        self._actors: dict[str, Actor] = {}

    def get(self, namespace: str) -> Actor:
        actor = self._actors.get(namespace)
        if actor is None:
            factory = self._factory_for(namespace)
            actor = factory(namespace)
            self._actors[namespace] = actor
            log.debug("Created actor %s", namespace)
        return actor

    def _factory_for(self, namespace: str) -> Callable[[str], Actor]:
        # Longest prefix wins so "pool" never shadows a more specific prefix
        for prefix in sorted(self._factories, key=len, reverse=True):
            if namespace.startswith(prefix):
                return self._factories[prefix]
        raise NotFound(f"No actor type for {namespace!r}")

    def __contains__(self, namespace: str) -> bool:
        return namespace in self._actors

    def __len__(self) -> int:
        return len(self._actors)


def wallet_namespace(address: str) -> str:
    return f"{C.WALLET_NS}{address}"
