from typing import Protocol

import sequencer.constants as C
from sequencer.models import TxParams


class ChainClient(Protocol):
    """What the sequencer needs from a ledger.

    ``submit`` returns the transaction hash or raises a ``ChainError`` whose
    ``kind`` tells the queue whether waiting can fix it.
    """

    kind: C.ChainKind

    def normalize_address(self, value: str) -> str: ...
    def self_transfer(self, sender: str) -> TxParams: ...
    async def confirmed_count(self, address: str) -> int: ...
    async def submit(self, sender: str, params: TxParams, nonce: int) -> str: ...
    async def balance(self, address: str) -> int: ...
