import sequencer.constants as C


class SequencerError(Exception):
    """Base class for sequencer errors."""

    status_code = 500


class ConfigError(SequencerError):
    """Raised when configuration is missing or malformed."""


class ValidationError(SequencerError):
    """Raised when a submit request is missing or has a malformed field."""

    status_code = 400


class NoWalletsAvailable(SequencerError):
    """Raised when every pool address is disabled."""

    status_code = 503


class UninitializedWallet(SequencerError):
    """Raised when a wallet has no persisted nonce state yet."""

    status_code = 404


class NotFound(SequencerError):
    """Raised for an unknown transaction nonce or an unmanaged wallet."""

    status_code = 404


class ChainError(SequencerError):
    """A chain client failure tagged with how the queue should react."""

    status_code = 502
    kind: C.ErrorKind = C.ErrorKind.NON_RETRIABLE

    def __init__(self, message: str, *, kind: C.ErrorKind | None = None):
        super().__init__(message)
        if kind is not None:
            self.kind = kind

    @property
    def retriable(self) -> bool:
        return self.kind == C.ErrorKind.RETRIABLE


class TransientChainError(ChainError):
    """Network, rate limit, node sync or underpriced conditions."""

    status_code = 503
    kind = C.ErrorKind.RETRIABLE


class NonRetriableChainError(ChainError):
    """The ledger will never accept this transaction as built."""

    kind = C.ErrorKind.NON_RETRIABLE


class SkipFailure(TransientChainError):
    """The self-transfer that consumes a failed nonce could not be sent."""
