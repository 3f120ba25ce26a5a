"""XRPL chain client: nonce = account Sequence, engine results classified by prefix."""

import asyncio
import logging

from xrpl.asyncio.clients import AsyncJsonRpcClient
from xrpl.asyncio.transaction import autofill_and_sign, submit
from xrpl.core.addresscodec import is_valid_classic_address
from xrpl.models.response import Response
from xrpl.models.requests import AccountInfo
from xrpl.models.requests.request import Request
from xrpl.models.transactions import AccountSet, Memo, Payment
from xrpl.models.transactions.transaction import Transaction
from xrpl.wallet import Wallet

import sequencer.constants as C
from sequencer.classify import as_chain_error, classify_engine_result, is_engine_accepted
from sequencer.errors import (
    ChainError,
    NonRetriableChainError,
    TransientChainError,
    ValidationError,
)
from sequencer.models import TxParams

log = logging.getLogger("sequencer.chain.xrpl")

ACCOUNT_NOT_FOUND = "actNotFound"


class XrplChainClient:
    kind = C.ChainKind.XRPL

    def __init__(
        self,
        rpc_url: str,
        signers: dict[str, Wallet],
        *,
        client: AsyncJsonRpcClient | None = None,
        rpc_timeout: float = C.RPC_TIMEOUT,
        submit_timeout: float = C.SUBMIT_TIMEOUT,
    ) -> None:
        self.rpc_url = rpc_url
        self.signers = signers
        self.client = client or AsyncJsonRpcClient(rpc_url)
        self.rpc_timeout = rpc_timeout
        self.submit_timeout = submit_timeout

    def normalize_address(self, value: str) -> str:
        if not isinstance(value, str) or not is_valid_classic_address(value):
            raise ValidationError(f"Invalid XRPL address: {value!r}")
        return value

    def self_transfer(self, sender: str) -> TxParams:
        # Turned into a no-op AccountSet by submit(); XRPL rejects payments to self
        return TxParams(to=sender, value=0)

    async def _rpc(self, req: Request, *, t: float | None = None) -> Response:
        try:
            return await asyncio.wait_for(self.client.request(req), timeout=t or self.rpc_timeout)
        except Exception as e:
            raise as_chain_error(e) from e

    async def _account_data(self, address: str) -> dict | None:
        resp = await self._rpc(AccountInfo(account=address, ledger_index="validated"))
        if resp.is_successful():
            return resp.result["account_data"]
        error = resp.result.get("error")
        if error == ACCOUNT_NOT_FOUND:
            return None
        raise as_chain_error(RuntimeError(f"account_info failed: {error}"))

    async def confirmed_count(self, address: str) -> int:
        data = await self._account_data(address)
        if data is None:
            # Nothing can be sequenced until the account is funded
            raise TransientChainError(f"{address} not found in validated ledger")
        return int(data["Sequence"])

    async def balance(self, address: str) -> int:
        data = await self._account_data(address)
        return int(data["Balance"]) if data is not None else 0

    def _build(self, sender: str, params: TxParams, nonce: int) -> Transaction:
        if params.to == sender and params.value == 0 and not params.data:
            return AccountSet(account=sender, sequence=nonce)
        memos = None
        if params.data:
            memos = [Memo(memo_data=params.data.removeprefix("0x").upper())]
        return Payment(
            account=sender,
            destination=params.to,
            amount=str(params.value),
            sequence=nonce,
            memos=memos,
        )

    async def submit(self, sender: str, params: TxParams, nonce: int) -> str:
        wallet = self.signers.get(sender)
        if wallet is None:
            raise NonRetriableChainError(f"No signing key for {sender}")

        try:
            txn = self._build(sender, params, nonce)
            signed = await asyncio.wait_for(
                autofill_and_sign(txn, self.client, wallet), timeout=self.rpc_timeout
            )
            resp = await asyncio.wait_for(submit(signed, self.client), timeout=self.submit_timeout)
        except ChainError:
            raise
        except Exception as e:
            raise as_chain_error(e) from e

        res = resp.result
        er = res.get("engine_result", "")
        tx_hash = res.get("tx_json", {}).get("hash") or signed.get_hash()
        if is_engine_accepted(er):
            log.debug("%s seq=%s accepted: %s %s", sender, nonce, er, tx_hash)
            return tx_hash

        message = f"{er}: {res.get('engine_result_message', '')}".strip()
        if classify_engine_result(er) == C.ErrorKind.RETRIABLE:
            raise TransientChainError(message)
        raise NonRetriableChainError(message)
