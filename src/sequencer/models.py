"""Nonce watermarks and transaction records persisted per wallet."""

import time
from dataclasses import dataclass, field

import sequencer.constants as C


@dataclass(slots=True)
class NonceState:
    pending_nonce: int    # Next nonce to assign
    submitted_nonce: int  # Last nonce handed to the chain
    confirmed_nonce: int  # Last nonce the ledger reports settled

    @classmethod
    def bootstrap(cls, confirmed_count: int) -> "NonceState":
        """Seed a fresh wallet from the ledger's transaction count."""
        last_confirmed = confirmed_count - 1
        return cls(
            pending_nonce=confirmed_count,
            submitted_nonce=last_confirmed,
            confirmed_nonce=last_confirmed,
        )

    @property
    def queue_depth(self) -> int:
        return self.pending_nonce - 1 - self.confirmed_nonce

    @property
    def in_flight(self) -> int:
        return self.submitted_nonce - self.confirmed_nonce

    @property
    def has_work(self) -> bool:
        return self.confirmed_nonce < self.pending_nonce - 1

    def observe_confirmed(self, confirmed_count: int) -> None:
        """Move the confirmed watermark forward, never back.

        Nonces the ledger has settled are submitted by definition, so the
        submitted watermark follows if it lags. If the ledger settled nonces
        this wallet never assigned (used by another signer), the next nonce
        handed out starts after them.
        """
        last_confirmed = confirmed_count - 1
        if last_confirmed > self.confirmed_nonce:
            self.confirmed_nonce = last_confirmed
        if self.submitted_nonce < self.confirmed_nonce:
            self.submitted_nonce = self.confirmed_nonce
        if self.pending_nonce <= self.confirmed_nonce:
            self.pending_nonce = self.confirmed_nonce + 1

    def status(self) -> dict:
        return {
            "pending_nonce": self.pending_nonce,
            "submitted_nonce": self.submitted_nonce,
            "confirmed_nonce": self.confirmed_nonce,
            "queue_depth": self.queue_depth,
            "in_flight": self.in_flight,
        }

    def to_dict(self) -> dict:
        return {
            "pending_nonce": self.pending_nonce,
            "submitted_nonce": self.submitted_nonce,
            "confirmed_nonce": self.confirmed_nonce,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "NonceState":
        return cls(
            pending_nonce=int(data["pending_nonce"]),
            submitted_nonce=int(data["submitted_nonce"]),
            confirmed_nonce=int(data["confirmed_nonce"]),
        )


@dataclass(frozen=True, slots=True)
class TxParams:
    to: str
    value: int = 0
    data: str | None = None
    gas: int | None = None

    def to_dict(self) -> dict:
        # Values can exceed 2**63, keep them as strings on disk
        return {
            "to": self.to,
            "value": str(self.value),
            "data": self.data,
            "gas": str(self.gas) if self.gas is not None else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TxParams":
        gas = data.get("gas")
        return cls(
            to=data["to"],
            value=int(data.get("value") or 0),
            data=data.get("data"),
            gas=int(gas) if gas is not None else None,
        )


@dataclass(slots=True)
class TransactionRecord:
    nonce: int
    params: TxParams
    created_at: int = field(default_factory=lambda: int(time.time() * 1000))
    hash: str | None = None
    error: str | None = None

    def __str__(self):
        return f"nonce={self.nonce} -- {self.params.to} -- {self.hash or 'unsent'}"

    def status(self, confirmed_nonce: int) -> C.TxStatus:
        if self.hash is None:
            return C.TxStatus.PENDING
        if self.error is not None:
            return C.TxStatus.SKIPPED
        if self.nonce <= confirmed_nonce:
            return C.TxStatus.CONFIRMED
        return C.TxStatus.SUBMITTED

    def to_dict(self) -> dict:
        return {
            "nonce": self.nonce,
            "params": self.params.to_dict(),
            "created_at": self.created_at,
            "hash": self.hash,
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TransactionRecord":
        return cls(
            nonce=int(data["nonce"]),
            params=TxParams.from_dict(data["params"]),
            created_at=int(data["created_at"]),
            hash=data.get("hash"),
            error=data.get("error"),
        )

    def view(self, confirmed_nonce: int) -> dict:
        """Flattened record for API responses."""
        return {
            "nonce": self.nonce,
            "to": self.params.to,
            "value": str(self.params.value),
            "data": self.params.data,
            "gas_limit": str(self.params.gas) if self.params.gas is not None else None,
            "hash": self.hash,
            "error": self.error,
            "created_at": self.created_at,
            "status": self.status(confirmed_nonce),
        }


def tx_key(nonce: int) -> str:
    return f"{C.TX_PREFIX}{nonce}"
