"""Retriable / non-retriable classification of chain failures.

Chain clients raise ``ChainError`` subclasses that already carry an
``ErrorKind``. The tables here are the fallback for opaque failures coming
out of a generic transport, where all we get is an exception or a string.
"""

import asyncio
import logging

import httpx

import sequencer.constants as C
from sequencer.errors import ChainError, NonRetriableChainError, TransientChainError

log = logging.getLogger("sequencer.classify")

# Lower-cased substrings of JSON-RPC error messages that clear up on their own.
RETRIABLE_PATTERNS: tuple[str, ...] = (
    # transport
    "timeout",
    "timed out",
    "connection",
    "temporarily unavailable",
    "service unavailable",
    "bad gateway",
    "502",
    "503",
    "504",
    # rate limiting
    "rate limit",
    "too many requests",
    "429",
    "exceeded the quota",
    "request limit",
    # node not ready
    "header not found",
    "syncing",
    "not synced",
    "missing trie node",
    # fee below current base fee
    "underpriced",
    "fee too low",
    "max fee per gas less than block base fee",
    "txpool is full",
)

# XRPL engine results by prefix.
#   tel: local node refused (fee/queue), ter: retry later
#   tem: malformed, tef: failed without claiming a fee
#   tes/tec: applied, the sequence is consumed
XRPL_RETRIABLE_PREFIXES = ("tel", "ter")
XRPL_REJECTED_PREFIXES = ("tem", "tef")
XRPL_APPLIED_PREFIXES = ("tes", "tec")
# terQUEUED means the transaction sits in the open ledger queue
XRPL_ACCEPTED = {"terQUEUED"}


def classify_message(message: str) -> C.ErrorKind:
    lowered = message.lower()
    if any(pattern in lowered for pattern in RETRIABLE_PATTERNS):
        return C.ErrorKind.RETRIABLE
    return C.ErrorKind.NON_RETRIABLE


def classify(exc: BaseException) -> C.ErrorKind:
    if isinstance(exc, ChainError):
        return exc.kind
    # ConnectionError and aiohttp's ClientOSError are both OSErrors
    if isinstance(exc, (asyncio.TimeoutError, OSError, httpx.TransportError)):
        return C.ErrorKind.RETRIABLE
    return classify_message(f"{exc.__class__.__name__}: {exc}")


def as_chain_error(exc: BaseException) -> ChainError:
    """Wrap an arbitrary transport exception in the matching ChainError."""
    if isinstance(exc, ChainError):
        return exc
    message = str(exc) or exc.__class__.__name__
    kind = classify(exc)
    log.debug("classified %s(%s) as %s", exc.__class__.__name__, message, kind)
    if kind == C.ErrorKind.RETRIABLE:
        return TransientChainError(message)
    return NonRetriableChainError(message)


def is_engine_accepted(engine_result: str) -> bool:
    return engine_result in XRPL_ACCEPTED or engine_result.startswith(XRPL_APPLIED_PREFIXES)


def classify_engine_result(engine_result: str) -> C.ErrorKind:
    if engine_result.startswith(XRPL_RETRIABLE_PREFIXES):
        return C.ErrorKind.RETRIABLE
    # tem/tef and anything we don't recognise cannot be fixed by waiting
    return C.ErrorKind.NON_RETRIABLE
