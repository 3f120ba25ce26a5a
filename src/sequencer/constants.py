from typing import Final
from enum import StrEnum


class TxStatus(StrEnum):
    PENDING    = "pending"
    SUBMITTED  = "submitted"
    CONFIRMED  = "confirmed"
    SKIPPED    = "skipped"


class ErrorKind(StrEnum):
    RETRIABLE     = "retriable"
    NON_RETRIABLE = "non_retriable"


class ChainKind(StrEnum):
    EVM  = "evm"
    XRPL = "xrpl"


# Storage keys
STATE_KEY: Final = "state"
TX_PREFIX: Final = "tx:"
CURSOR_KEY: Final = "cursor"
DISABLED_KEY: Final = "disabled"

# Actor namespaces
WALLET_NS: Final = "wallet:"
POOL_NS: Final = "pool"

POLL_INTERVAL = 5.0  # seconds between queue wake-ups
DEFAULT_MAX_IN_FLIGHT = 3
POOL_REFRESH_INTERVAL = 60.0
SCHEDULER_RETRY_DELAY = 5.0
RPC_TIMEOUT = 2.0
SUBMIT_TIMEOUT = 20.0
STARTUP_TIMEOUT = 60.0

SKIP_PREFIX: Final = "skipped: "

__all__ = [
    "CURSOR_KEY",
    "DEFAULT_MAX_IN_FLIGHT",
    "DISABLED_KEY",
    "POLL_INTERVAL",
    "POOL_NS",
    "POOL_REFRESH_INTERVAL",
    "RPC_TIMEOUT",
    "SCHEDULER_RETRY_DELAY",
    "SKIP_PREFIX",
    "STARTUP_TIMEOUT",
    "STATE_KEY",
    "SUBMIT_TIMEOUT",
    "TX_PREFIX",
    "WALLET_NS",

    ######
    "ChainKind",
    "ErrorKind",
    "TxStatus",
]
