import os
import tomllib
from pathlib import Path
from typing import Mapping

import sequencer.constants as C
from sequencer.errors import ConfigError
from sequencer.keys import split_keys

pkg_root = Path(__file__).parent
config_file = Path(os.getenv("SEQUENCER_CONFIG", pkg_root / "config.toml"))

# env var -> (section, key, type)
ENV_OVERRIDES = {
    "CHAIN_KIND": ("chain", "kind", str),
    "RPC_URL": ("chain", "rpc_url", str),
    "CHAIN_ID": ("chain", "chain_id", int),
    "MAX_SUBMITTED": ("wallet", "max_in_flight", int),  # legacy name, MAX_IN_FLIGHT wins
    "MAX_IN_FLIGHT": ("wallet", "max_in_flight", int),
    "POLL_INTERVAL": ("wallet", "poll_interval", float),
    "MIN_BALANCE": ("pool", "min_balance", int),
    "POOL_REFRESH_INTERVAL": ("pool", "refresh_interval", float),
    "STATE_DB": ("store", "path", str),
}


def _coerce(name: str, value, type_):
    try:
        return type_(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{name} must be {type_.__name__}, got {value!r}") from exc


def load_config(path: Path = config_file, env: Mapping[str, str] = os.environ) -> dict:
    try:
        cfg = tomllib.loads(Path(path).read_text())
    except (OSError, tomllib.TOMLDecodeError) as exc:
        raise ConfigError(f"Cannot read config {path}: {exc}") from exc

    for section in ("chain", "signing", "wallet", "pool", "store", "timeout"):
        cfg.setdefault(section, {})

    for name, (section, key, type_) in ENV_OVERRIDES.items():
        value = env.get(name)
        if value is not None and value != "":
            cfg[section][key] = _coerce(name, value, type_)

    chain = cfg["chain"]
    chain["kind"] = _coerce("chain.kind", chain.get("kind", C.ChainKind.EVM), C.ChainKind)
    chain.setdefault("rpc_url", "http://localhost:8545")
    chain["chain_id"] = _coerce("chain.chain_id", chain.get("chain_id", 1), int)

    # PRIVATE_KEYS is a comma-separated secret
    cfg["signing"]["keys"] = split_keys(env.get("PRIVATE_KEYS") or cfg["signing"].get("keys"))

    wallet = cfg["wallet"]
    wallet["max_in_flight"] = _coerce("wallet.max_in_flight", wallet.get("max_in_flight", C.DEFAULT_MAX_IN_FLIGHT), int)
    wallet["poll_interval"] = _coerce("wallet.poll_interval", wallet.get("poll_interval", C.POLL_INTERVAL), float)
    if wallet["max_in_flight"] < 1:
        raise ConfigError("wallet.max_in_flight must be >= 1")

    pool = cfg["pool"]
    pool["min_balance"] = _coerce("pool.min_balance", pool.get("min_balance", 0), int)
    pool["refresh_interval"] = _coerce("pool.refresh_interval", pool.get("refresh_interval", C.POOL_REFRESH_INTERVAL), float)

    cfg["store"].setdefault("path", "state.db")

    to = cfg["timeout"]
    to["rpc"] = _coerce("timeout.rpc", to.get("rpc", C.RPC_TIMEOUT), float)
    to["submit"] = _coerce("timeout.submit", to.get("submit", C.SUBMIT_TIMEOUT), float)
    to["startup"] = _coerce("timeout.startup", to.get("startup", C.STARTUP_TIMEOUT), float)
    return cfg


cfg = load_config()
