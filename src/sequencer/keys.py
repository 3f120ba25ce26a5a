"""Signing material -> ordered managed addresses."""

import logging

from eth_account import Account
from eth_account.signers.local import LocalAccount
from xrpl.wallet import Wallet

import sequencer.constants as C
from sequencer.errors import ConfigError

log = logging.getLogger("sequencer.keys")


def split_keys(raw: str | list[str] | None) -> list[str]:
    """Accept a comma-separated string (the PRIVATE_KEYS env form) or a list."""
    if raw is None:
        return []
    items = raw.split(",") if isinstance(raw, str) else raw
    return [item.strip() for item in items if item and item.strip()]


def derive_signers(kind: C.ChainKind, keys: list[str]) -> dict[str, LocalAccount | Wallet]:
    """Map each managed address to its signer, in the order the keys were configured.

    EVM addresses are lower-cased so that lookups from any casing agree.
    Duplicate keys collapse to one address.
    """
    signers: dict[str, LocalAccount | Wallet] = {}
    for index, key in enumerate(keys):
        try:
            if kind == C.ChainKind.EVM:
                account = Account.from_key(key)
                signers.setdefault(account.address.lower(), account)
            else:
                wallet = Wallet.from_seed(key)
                signers.setdefault(wallet.classic_address, wallet)
        except Exception as exc:
            # Never echo the key itself
            raise ConfigError(f"Signing key #{index} is not a valid {kind} key: {exc.__class__.__name__}") from exc
    log.info("Derived %s managed %s addresses", len(signers), kind)
    return signers
