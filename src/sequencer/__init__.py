"""Per-wallet nonce sequencing and pool-level wallet selection."""

__version__ = "0.1.0"
