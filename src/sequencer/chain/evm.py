"""EVM chain client: nonce = transaction count, local signing with eth-account."""

import asyncio
import logging
from typing import Any, Awaitable

from eth_account.signers.local import LocalAccount
from web3 import AsyncWeb3, AsyncHTTPProvider, Web3

import sequencer.constants as C
from sequencer.classify import as_chain_error
from sequencer.errors import ChainError, NonRetriableChainError, ValidationError
from sequencer.models import TxParams

log = logging.getLogger("sequencer.chain.evm")

MAX_PRIORITY_FEE_GWEI = 1.5
PLAIN_TRANSFER_GAS = 21_000


class EvmChainClient:
    kind = C.ChainKind.EVM

    def __init__(
        self,
        rpc_url: str,
        chain_id: int,
        signers: dict[str, LocalAccount],
        *,
        w3: AsyncWeb3 | None = None,
        rpc_timeout: float = C.RPC_TIMEOUT,
        submit_timeout: float = C.SUBMIT_TIMEOUT,
    ) -> None:
        self.rpc_url = rpc_url
        self.chain_id = chain_id
        self.signers = signers
        self.w3 = w3 or AsyncWeb3(AsyncHTTPProvider(rpc_url))
        self.rpc_timeout = rpc_timeout
        self.submit_timeout = submit_timeout

    def normalize_address(self, value: str) -> str:
        if not isinstance(value, str) or not Web3.is_address(value):
            raise ValidationError(f"Invalid EVM address: {value!r}")
        return value.lower()

    def self_transfer(self, sender: str) -> TxParams:
        return TxParams(to=sender, value=0, gas=PLAIN_TRANSFER_GAS)

    async def _rpc(self, call: Awaitable[Any], *, t: float | None = None) -> Any:
        try:
            return await asyncio.wait_for(call, timeout=t or self.rpc_timeout)
        except ChainError:
            raise
        except Exception as e:
            raise as_chain_error(e) from e

    async def confirmed_count(self, address: str) -> int:
        checksum = Web3.to_checksum_address(address)
        return int(await self._rpc(self.w3.eth.get_transaction_count(checksum, "latest")))

    async def balance(self, address: str) -> int:
        checksum = Web3.to_checksum_address(address)
        return int(await self._rpc(self.w3.eth.get_balance(checksum)))

    async def _fee_fields(self) -> dict:
        """EIP-1559 fields from the latest base fee, legacy gas price otherwise."""
        latest = await self._rpc(self.w3.eth.get_block("latest"))
        base_fee = latest.get("baseFeePerGas")
        if base_fee is not None:
            max_priority = Web3.to_wei(MAX_PRIORITY_FEE_GWEI, "gwei")
            return {
                "maxFeePerGas": base_fee * 2 + max_priority,
                "maxPriorityFeePerGas": max_priority,
            }
        return {"gasPrice": await self._rpc(self.w3.eth.gas_price)}

    async def submit(self, sender: str, params: TxParams, nonce: int) -> str:
        account = self.signers.get(sender)
        if account is None:
            raise NonRetriableChainError(f"No signing key for {sender}")

        tx: dict = {
            "from": account.address,
            "to": Web3.to_checksum_address(params.to),
            "value": params.value,
            "nonce": nonce,
            "chainId": self.chain_id,
        }
        if params.data:
            tx["data"] = params.data
        tx.update(await self._fee_fields())
        if params.gas is not None:
            tx["gas"] = params.gas
        else:
            tx["gas"] = await self._rpc(self.w3.eth.estimate_gas(tx))

        signed = account.sign_transaction(tx)
        local_hash = Web3.to_hex(signed.hash)
        log.debug("sending %s nonce=%s hash=%s", sender, nonce, local_hash)
        try:
            tx_hash = await asyncio.wait_for(
                self.w3.eth.send_raw_transaction(signed.raw_transaction),
                timeout=self.submit_timeout,
            )
        except Exception as e:
            # The node already holds this exact transaction (resent after a restart)
            if "already known" in str(e).lower():
                log.info("nonce %s for %s already known to node, keeping %s", nonce, sender, local_hash)
                return local_hash
            raise as_chain_error(e) from e
        return Web3.to_hex(tx_hash)
