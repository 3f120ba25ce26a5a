"""
Per-wallet nonce sequencing.

Each WalletActor owns three watermarks (pending / submitted / confirmed) and an
append-only log of transaction records, one per assigned nonce. ``submit``
assigns nonces and returns at once; ``process_queue`` runs on a wake-up and
pushes records to the chain strictly in nonce order, at most
``max_in_flight`` ahead of what the ledger has confirmed.
"""
import asyncio
import logging
import re
import time
from typing import Any, Callable, Mapping

import sequencer.constants as C
from sequencer import abi
from sequencer.actors import Actor
from sequencer.chain.base import ChainClient
from sequencer.classify import as_chain_error
from sequencer.errors import NotFound, SkipFailure, UninitializedWallet, ValidationError
from sequencer.models import NonceState, TransactionRecord, TxParams, tx_key
from sequencer.store import ActorStorage

log = logging.getLogger("sequencer.wallet")

_HEX = re.compile(r"^(0x)?([0-9a-fA-F]{2})*$")


def parse_uint(name: str, value: Any, default: int | None = None) -> int | None:
    """Decimal-string (or JSON integer) to a non-negative int."""
    if value is None or value == "":
        return default
    if isinstance(value, bool) or not isinstance(value, (str, int)):
        raise ValidationError(f"'{name}' must be a decimal integer string")
    if isinstance(value, str):
        if not (value.strip().isascii() and value.strip().isdigit()):
            raise ValidationError(f"'{name}' must be a decimal integer string, got {value!r}")
        value = int(value.strip())
    if value < 0:
        raise ValidationError(f"'{name}' must not be negative")
    return value


def parse_hex(name: str, value: Any) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str) or not _HEX.match(value):
        raise ValidationError(f"'{name}' must be hex bytes")
    body = value.removeprefix("0x").lower()
    return f"0x{body}" if body else None


class WalletActor(Actor):
    def __init__(
        self,
        address: str,
        storage: ActorStorage,
        chain: ChainClient,
        *,
        max_in_flight: int = C.DEFAULT_MAX_IN_FLIGHT,
        poll_interval: float = C.POLL_INTERVAL,
        encoder: Callable[[str, list], bytes] = abi.encode,
        clock: Callable[[], float] = time.time,
    ) -> None:
        super().__init__(address, storage)
        self.address = address
        self.chain = chain
        self.max_in_flight = max_in_flight
        self.poll_interval = poll_interval
        self.encoder = encoder
        self.clock = clock
        # Only one queue run at a time; submissions don't wait on it
        self._processing = asyncio.Lock()

    # =========================================================================
    # Storage helpers
    # =========================================================================

    async def _load_state(self) -> NonceState | None:
        data = await self.storage.get(C.STATE_KEY)
        return NonceState.from_dict(data) if data is not None else None

    async def _load_record(self, nonce: int) -> TransactionRecord | None:
        data = await self.storage.get(tx_key(nonce))
        return TransactionRecord.from_dict(data) if data is not None else None

    async def _ensure_wakeup(self) -> None:
        await self.storage.set_wakeup_if_absent(self.clock() + self.poll_interval)

    async def _bootstrap(self) -> NonceState:
        # A submission that queued behind us on the exclusive section finds the state already there
        state = await self._load_state()
        if state is not None:
            return state
        confirmed_count = await self.chain.confirmed_count(self.address)
        state = NonceState.bootstrap(confirmed_count)
        await self.storage.put(C.STATE_KEY, state.to_dict())
        log.info("Initialized %s at nonce %s", self.address, state.pending_nonce)
        return state

    async def _commit(self, record: TransactionRecord) -> None:
        """Persist a sent record and advance the submitted watermark together."""
        async with self._lock:
            state = await self._load_state()
            state.submitted_nonce = max(state.submitted_nonce, record.nonce)
            await self.storage.put_batch({
                C.STATE_KEY: state.to_dict(),
                tx_key(record.nonce): record.to_dict(),
            })

    # =========================================================================
    # Requests
    # =========================================================================

    def build_params(self, request: Mapping[str, Any]) -> TxParams:
        to = request.get("to")
        if not to:
            raise ValidationError("'to' is required")
        to = self.chain.normalize_address(to)
        value = parse_uint("value", request.get("value"), default=0)
        gas = parse_uint("gas_limit", request.get("gas_limit"))
        data = parse_hex("data", request.get("data"))

        signature = request.get("function_signature")
        if signature:
            if data is not None:
                log.warning("%s: function_signature given with raw data; using the ABI encoding", self.address)
            data = "0x" + self.encoder(signature, request.get("function_args") or []).hex()
        return TxParams(to=to, value=value, data=data, gas=gas)

    async def submit(self, request: Mapping[str, Any]) -> dict:
        params = self.build_params(request)

        async with self._lock:
            state = await self._load_state()
            if state is None:
                state = await self.storage.run_exclusive(self._bootstrap)

            nonce = state.pending_nonce
            state.pending_nonce += 1
            record = TransactionRecord(nonce=nonce, params=params, created_at=int(self.clock() * 1000))
            await self.storage.put_batch({
                C.STATE_KEY: state.to_dict(),
                tx_key(nonce): record.to_dict(),
            })

        await self._ensure_wakeup()
        log.info("Queued nonce %s for %s -> %s", nonce, self.address, params.to)
        return {"nonce": nonce, "status": C.TxStatus.PENDING.value}

    async def get_status(self) -> dict:
        state = await self._load_state()
        if state is None:
            raise UninitializedWallet(f"No transactions submitted for {self.address}")
        return state.status()

    async def get_transaction(self, nonce: int) -> dict:
        record = await self._load_record(nonce)
        if record is None:
            raise NotFound(f"No transaction with nonce {nonce} for {self.address}")
        state = await self._load_state()
        return record.view(state.confirmed_nonce)

    # =========================================================================
    # Queue processing
    # =========================================================================

    async def alarm(self) -> None:
        await self.process_queue()

    async def process_queue(self) -> None:
        async with self._processing:
            if await self._load_state() is None:
                log.debug("%s has no state; nothing to process", self.address)
                return

            # Step 1: Check chain for confirmations
            confirmed_count = await self.chain.confirmed_count(self.address)
            async with self._lock:
                state = await self._load_state()
                state.observe_confirmed(confirmed_count)
                await self.storage.put(C.STATE_KEY, state.to_dict())

            # Step 2: Submit new txs up to max_in_flight in flight
            budget = max(0, self.max_in_flight - state.in_flight)
            last_nonce = min(state.submitted_nonce + budget, state.pending_nonce - 1)
            log.debug(
                "%s confirmed=%s submitted=%s pending=%s window=(%s, %s]",
                self.address, state.confirmed_nonce, state.submitted_nonce,
                state.pending_nonce, state.submitted_nonce, last_nonce,
            )

            sent = 0
            for nonce in range(state.submitted_nonce + 1, last_nonce + 1):
                if not await self._send(nonce):
                    # Later nonces depend on this one
                    break
                sent += 1

            # Reschedule if there's still work to do
            state = await self._load_state()
            if state.has_work:
                await self._ensure_wakeup()
            if sent:
                log.info(
                    "%s sent %s; submitted=%s confirmed=%s queued=%s",
                    self.address, sent, state.submitted_nonce, state.confirmed_nonce, state.queue_depth,
                )

    async def _send(self, nonce: int) -> bool:
        """Submit one nonce. False means stop the loop and leave the rest for the next wake-up."""
        record = await self._load_record(nonce)
        if record is None:
            log.error("%s has no record for nonce %s; halting queue", self.address, nonce)
            return False

        try:
            tx_hash = await self.chain.submit(self.address, record.params, nonce)
        except Exception as e:
            err = as_chain_error(e)
            if err.retriable:
                log.warning("%s nonce %s deferred (retriable): %s", self.address, nonce, err)
                return False
            return await self._skip(record, str(err))

        record.hash = tx_hash
        await self._commit(record)
        log.debug("%s nonce %s submitted %s", self.address, nonce, tx_hash)
        return True

    async def _skip(self, record: TransactionRecord, reason: str) -> bool:
        """Consume a nonce the ledger will never accept with a zero-value self-transfer."""
        log.warning("%s nonce %s rejected (%s); skipping with self-transfer", self.address, record.nonce, reason)
        try:
            skip_hash = await self.chain.submit(
                self.address, self.chain.self_transfer(self.address), record.nonce
            )
        except Exception as e:
            failure = SkipFailure(f"skip of nonce {record.nonce} failed: {e}")
            log.warning("%s %s; retrying next wake-up", self.address, failure)
            return False

        record.hash = skip_hash
        record.error = f"{C.SKIP_PREFIX}{reason}"
        await self._commit(record)
        log.info("%s nonce %s skipped with %s", self.address, record.nonce, skip_hash)
        return True
