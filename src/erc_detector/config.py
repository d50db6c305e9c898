"""Environment configuration loading."""

from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

from erc_detector.analysis.proxy import DEFAULT_PROBE_WORKERS
from erc_detector.analysis.resolver import DEFAULT_MAX_NODES

DEFAULT_RPC_URL = "https://ethereum-rpc.publicnode.com"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ConfigError(Exception):
    """Raised when configuration values are malformed."""


@dataclass(frozen=True, slots=True)
class Config:
    rpc_url: str
    max_proxy_nodes: int = DEFAULT_MAX_NODES
    probe_workers: int = DEFAULT_PROBE_WORKERS
    log_level: str = "INFO"


def _positive_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "")
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from e
    if value < 1:
        raise ConfigError(f"{name} must be positive, got {value}")
    return value


def _log_level() -> str:
    level = os.environ.get("LOG_LEVEL", "") or "INFO"
    if level.upper() not in LOG_LEVELS:
        raise ConfigError(f"LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}, got {level!r}")
    return level.upper()


def load_config() -> Config:
    """Load configuration from environment variables (and a .env file).

    Raises ConfigError if a numeric setting is not a positive integer or
    LOG_LEVEL is not a standard level name.
    """
    load_dotenv()

    return Config(
        rpc_url=os.environ.get("RPC_URL", "") or DEFAULT_RPC_URL,
        max_proxy_nodes=_positive_int("MAX_PROXY_NODES", DEFAULT_MAX_NODES),
        probe_workers=_positive_int("PROBE_WORKERS", DEFAULT_PROBE_WORKERS),
        log_level=_log_level(),
    )
