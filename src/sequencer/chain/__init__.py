import sequencer.constants as C
from sequencer.chain.base import ChainClient
from sequencer.chain.evm import EvmChainClient
from sequencer.chain.xrpl_client import XrplChainClient


def build_chain_client(config: dict, signers: dict) -> ChainClient:
    chain = config["chain"]
    to = config["timeout"]
    if chain["kind"] == C.ChainKind.XRPL:
        return XrplChainClient(
            chain["rpc_url"], signers, rpc_timeout=to["rpc"], submit_timeout=to["submit"]
        )
    return EvmChainClient(
        chain["rpc_url"], chain["chain_id"], signers, rpc_timeout=to["rpc"], submit_timeout=to["submit"]
    )


__all__ = [
    "ChainClient",
    "EvmChainClient",
    "XrplChainClient",
    "build_chain_client",
]
