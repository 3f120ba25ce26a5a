"""Round-robin wallet selection over the addresses with enough balance to pay fees.

The pool never touches nonce state. It only decides which wallet a caller
should submit through next, and rechecks balances at least every
``refresh_interval`` while it is being used.
"""
import logging
import random
import time
from typing import Callable

import sequencer.constants as C
from sequencer.actors import Actor
from sequencer.chain.base import ChainClient
from sequencer.errors import NoWalletsAvailable
from sequencer.store import ActorStorage

log = logging.getLogger("sequencer.pool")


class WalletPool(Actor):
    def __init__(
        self,
        storage: ActorStorage,
        chain: ChainClient,
        address_source: Callable[[], list[str]],
        *,
        min_balance: int = 0,
        refresh_interval: float = C.POOL_REFRESH_INTERVAL,
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        super().__init__(C.POOL_NS, storage)
        self.chain = chain
        self.address_source = address_source
        self.min_balance = min_balance
        self.refresh_interval = refresh_interval
        self.rng = rng or random.Random()
        self.clock = clock
        self._cached_addresses: list[str] | None = None
        self._cached_disabled: set[str] | None = None

    def get_addresses(self) -> list[str]:
        if self._cached_addresses is None:
            self._cached_addresses = list(self.address_source())
        return self._cached_addresses

    async def _disabled(self) -> set[str]:
        if self._cached_disabled is None:
            stored = await self.storage.get(C.DISABLED_KEY)
            self._cached_disabled = set(stored or [])
        return self._cached_disabled

    async def get_disabled_wallets(self) -> list[str]:
        disabled = await self._disabled()
        # Keep the pool's own ordering in responses
        return [a for a in self.get_addresses() if a in disabled]

    async def next_wallet(self) -> str:
        async with self._lock:
            disabled = await self._disabled()
            enabled = [a for a in self.get_addresses() if a not in disabled]
            if not enabled:
                raise NoWalletsAvailable(
                    f"All {len(self.get_addresses())} wallets are disabled (balance below {self.min_balance})"
                )

            cursor = await self.storage.get(C.CURSOR_KEY)
            if cursor is None:
                # Random start so restarted deployments don't all begin on wallet 0
                cursor = self.rng.randrange(len(enabled))
            index = cursor % len(enabled)
            address = enabled[index]
            await self.storage.put(C.CURSOR_KEY, (index + 1) % len(enabled))

        await self.storage.set_wakeup_if_absent(self.clock() + self.refresh_interval)
        return address

    async def refresh(self) -> list[str]:
        """Recheck every balance and rebuild the disabled set from scratch."""
        async with self._lock:
            previous = set(await self._disabled())
            disabled: set[str] = set()
            for address in self.get_addresses():
                balance = await self.chain.balance(address)
                if balance < self.min_balance:
                    disabled.add(address)
                    log.debug("%s balance %s below %s", address, balance, self.min_balance)

            await self.storage.put(C.DISABLED_KEY, sorted(disabled))
            self._cached_disabled = disabled

        if disabled != previous:
            log.info(
                "Pool refresh: %s/%s disabled (newly disabled %s, re-enabled %s)",
                len(disabled), len(self.get_addresses()),
                sorted(disabled - previous), sorted(previous - disabled),
            )
        return await self.get_disabled_wallets()

    async def alarm(self) -> None:
        # No reschedule here; next_wallet() re-arms the recheck while the pool is in use
        await self.refresh()
