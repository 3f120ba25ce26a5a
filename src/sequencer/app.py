import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any

import httpx
from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

import sequencer.constants as C
from sequencer.config import cfg
from sequencer.core import Sequencer
from sequencer.errors import SequencerError
from sequencer.logging_config import setup_logging

setup_logging()
log = logging.getLogger("sequencer.app")

TIMEOUT = 3.0

PROBE_PAYLOADS = {
    C.ChainKind.EVM: {"jsonrpc": "2.0", "method": "eth_chainId", "params": [], "id": 1},
    C.ChainKind.XRPL: {"method": "server_info", "params": [{}]},
}


async def _probe_rpc(url: str, kind: C.ChainKind, max_retries: int = 30, retry_delay: float = 2.0) -> None:
    """Probe the ledger RPC endpoint with retries until it responds.

    Args:
        url: RPC endpoint URL
        kind: which JSON-RPC dialect to speak
        max_retries: Maximum number of retry attempts (default: 30 = 1 minute with 2s delay)
        retry_delay: Seconds to wait between retries
    """
    payload = PROBE_PAYLOADS[kind]

    for attempt in range(1, max_retries + 1):
        try:
            async with httpx.AsyncClient(timeout=TIMEOUT) as http:
                r = await http.post(url, json=payload)
                r.raise_for_status()
                log.info(f"RPC endpoint responding (attempt {attempt}/{max_retries})")
                return
        except httpx.HTTPError as e:
            if attempt < max_retries:
                log.info(f"RPC not ready yet (attempt {attempt}/{max_retries}): {e.__class__.__name__} - retrying in {retry_delay}s...")
                await asyncio.sleep(retry_delay)
            else:
                log.error(f"RPC failed after {max_retries} attempts")
                raise


@asynccontextmanager
async def lifespan(app: FastAPI):
    stop = asyncio.Event()

    seq: Sequencer | None = getattr(app.state, "sequencer", None)
    if seq is None:
        chain = cfg["chain"]
        async with asyncio.timeout(cfg["timeout"]["startup"]):
            log.info("Probing %s RPC endpoint %s...", chain["kind"], chain["rpc_url"])
            await _probe_rpc(chain["rpc_url"], chain["kind"])
        seq = Sequencer.from_config(cfg)
        app.state.sequencer = seq

    log.info(
        "Managing %s wallets (max_in_flight=%s, poll_interval=%ss)",
        len(seq.addresses), seq.max_in_flight, seq.poll_interval,
    )

    async with asyncio.TaskGroup() as tg:
        tg.create_task(seq.scheduler.run(stop), name="scheduler")
        try:
            yield
        finally:
            log.info("Shutting down...")
            stop.set()

    log.info("Shutdown complete")


class SubmitReq(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    # Optional here so a missing destination is reported as a 400, like any other bad field
    to: str | None = None
    value: str | int | None = None
    data: str | None = None
    function_signature: str | None = Field(default=None, alias="functionSignature")
    function_args: list[Any] | None = Field(default=None, alias="functionArgs")
    gas_limit: str | int | None = Field(default=None, alias="gasLimit")


class SubmitResp(BaseModel):
    nonce: int
    status: str


class PoolSubmitResp(SubmitResp):
    address: str


class CamelResp(BaseModel):
    """Built from snake_case dicts, sent as camelCase like the request fields."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class StatusResp(CamelResp):
    pending_nonce: int
    submitted_nonce: int
    confirmed_nonce: int
    queue_depth: int
    in_flight: int


class TxResp(CamelResp):
    nonce: int
    to: str
    value: str
    data: str | None
    gas_limit: str | None
    hash: str | None
    error: str | None
    created_at: int
    status: C.TxStatus


r_wallets = APIRouter(prefix="/wallets", tags=["Wallets"])
r_pool = APIRouter(prefix="/pool", tags=["Pool"])
r_send = APIRouter(tags=["Wallets"])


def _seq(request: Request) -> Sequencer:
    return request.app.state.sequencer


@r_wallets.post("/{address}/send", response_model=SubmitResp)
async def wallet_send(address: str, req: SubmitReq, request: Request):
    return await _seq(request).wallet(address).submit(req.model_dump())


@r_wallets.get("/{address}/status", response_model=StatusResp)
async def wallet_status(address: str, request: Request):
    return await _seq(request).wallet(address).get_status()


@r_wallets.get("/{address}/tx/{nonce}", response_model=TxResp)
async def wallet_tx(address: str, nonce: int, request: Request):
    return await _seq(request).wallet(address).get_transaction(nonce)


@r_send.post("/send", response_model=PoolSubmitResp)
async def pool_send(req: SubmitReq, request: Request):
    """Queue a transaction on whichever wallet the pool hands out next."""
    return await _seq(request).submit_next(req.model_dump())


@r_pool.get("/addresses")
async def pool_addresses(request: Request):
    return {"addresses": _seq(request).pool.get_addresses()}


@r_pool.get("/disabled")
async def pool_disabled(request: Request):
    return {"disabled": await _seq(request).pool.get_disabled_wallets()}


@r_pool.post("/refresh")
async def pool_refresh(request: Request):
    return {"disabled": await _seq(request).pool.refresh()}


async def sequencer_error_handler(request: Request, exc: SequencerError):
    if exc.status_code >= 500:
        log.warning("%s %s -> %s: %s", request.method, request.url.path, exc.__class__.__name__, exc)
    return JSONResponse({"error": str(exc), "type": exc.__class__.__name__}, status_code=exc.status_code)


def create_app(sequencer: Sequencer | None = None) -> FastAPI:
    """Build the API. Passing a ready Sequencer skips the RPC probe and config wiring."""
    app = FastAPI(
        title="Wallet Sequencer",
        lifespan=lifespan,
        openapi_tags=[
            {"name": "Wallets", "description": "Queue transactions and inspect nonce state"},
            {"name": "Pool", "description": "Managed addresses and balance-based admission"},
        ],
    )
    if sequencer is not None:
        app.state.sequencer = sequencer

    @app.get("/health")
    def health():
        return {"status": "ok"}

    app.add_exception_handler(SequencerError, sequencer_error_handler)
    app.include_router(r_wallets)
    app.include_router(r_send)
    app.include_router(r_pool)
    return app


app = create_app()
