import logging
import time
from pathlib import Path
from typing import Callable

import sequencer.constants as C
from sequencer.actors import ActorRegistry, wallet_namespace
from sequencer.chain import ChainClient, build_chain_client
from sequencer.errors import NotFound, ValidationError
from sequencer.keys import derive_signers
from sequencer.pool import WalletPool
from sequencer.scheduler import Scheduler
from sequencer.sqlite_store import SQLiteStore
from sequencer.store import ActorStorage, InMemoryStore, Store
from sequencer.wallet import WalletActor

log = logging.getLogger("sequencer.core")


class Sequencer:
    """Wires the store, scheduler, chain client and actors together.

    Wallet actors only exist for managed addresses; every other address is
    unknown to the service because nothing could sign for it.
    """

    def __init__(
        self,
        store: Store,
        chain: ChainClient,
        addresses: list[str],
        *,
        max_in_flight: int = C.DEFAULT_MAX_IN_FLIGHT,
        poll_interval: float = C.POLL_INTERVAL,
        min_balance: int = 0,
        refresh_interval: float = C.POOL_REFRESH_INTERVAL,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.chain = chain
        self.addresses = list(addresses)
        self._managed = set(self.addresses)
        self.max_in_flight = max_in_flight
        self.poll_interval = poll_interval
        self.min_balance = min_balance
        self.refresh_interval = refresh_interval
        self.clock = clock

        self.registry = ActorRegistry({
            C.WALLET_NS: self._make_wallet,
            C.POOL_NS: self._make_pool,
        })
        self.scheduler = Scheduler(store, self.registry.get, clock=clock)

    @classmethod
    def from_config(cls, config: dict) -> "Sequencer":
        kind = config["chain"]["kind"]
        signers = derive_signers(kind, config["signing"]["keys"])
        if not signers:
            log.warning("No signing keys configured; every request will be refused")
        chain = build_chain_client(config, signers)

        db_path = config["store"]["path"]
        store = InMemoryStore() if db_path == ":memory:" else SQLiteStore(db_path=Path(db_path))
        return cls(
            store,
            chain,
            list(signers),
            max_in_flight=config["wallet"]["max_in_flight"],
            poll_interval=config["wallet"]["poll_interval"],
            min_balance=config["pool"]["min_balance"],
            refresh_interval=config["pool"]["refresh_interval"],
        )

    def _storage(self, namespace: str) -> ActorStorage:
        return ActorStorage(self.store, namespace, self.scheduler)

    def _make_wallet(self, namespace: str) -> WalletActor:
        address = namespace.removeprefix(C.WALLET_NS)
        return WalletActor(
            address,
            self._storage(namespace),
            self.chain,
            max_in_flight=self.max_in_flight,
            poll_interval=self.poll_interval,
            clock=self.clock,
        )

    def _make_pool(self, namespace: str) -> WalletPool:
        return WalletPool(
            self._storage(namespace),
            self.chain,
            lambda: self.addresses,
            min_balance=self.min_balance,
            refresh_interval=self.refresh_interval,
            clock=self.clock,
        )

    def wallet(self, address: str) -> WalletActor:
        try:
            address = self.chain.normalize_address(address)
        except ValidationError as e:
            raise NotFound(str(e)) from e
        if address not in self._managed:
            raise NotFound(f"{address} is not a managed wallet")
        return self.registry.get(wallet_namespace(address))

    @property
    def pool(self) -> WalletPool:
        return self.registry.get(C.POOL_NS)

    async def submit_next(self, request: dict) -> dict:
        """Pick a wallet from the pool and queue the transaction on it."""
        address = await self.pool.next_wallet()
        result = await self.wallet(address).submit(request)
        return {"address": address, **result}
