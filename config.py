"""
Configuration loaded from environment variables. Fail-fast on invalid values.

The chain registry lives here too: an ordered, immutable list of chains. The
order is significant, it is the order results are returned in.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings

# Simple ETH transfer
DEFAULT_GAS_LIMIT = 21_000

# Native-unit -> USD multiplier used when no live rate is configured.
FIXED_USD_RATE = 2_734_856.0


class Chain(BaseModel):
    """One registered chain. Immutable for the process lifetime."""

    model_config = {"frozen": True}

    name: str = Field(min_length=1)
    rpc_url: str = Field(min_length=1)
    gas_limit: int = Field(default=DEFAULT_GAS_LIMIT, gt=0)


DEFAULT_CHAINS: tuple[Chain, ...] = (
    Chain(name="Ethereum", rpc_url="https://eth.llamarpc.com"),
    Chain(name="Polygon", rpc_url="https://polygon-rpc.com"),
    Chain(name="Arbitrum", rpc_url="https://arb1.arbitrum.io/rpc"),
)


class Config(BaseSettings):
    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "frozen": True, "extra": "ignore"}

    # Chain registry. Override with CHAINS='[{"name": ..., "rpc_url": ...}]'
    chains: list[Chain] = Field(default_factory=lambda: list(DEFAULT_CHAINS))

    # Upstream RPC
    rpc_timeout_sec: float = Field(default=5.0, gt=0)
    fetch_workers: int = Field(default=8, ge=1, le=32)

    # USD conversion: "fixed" uses fixed_usd_rate, "onchain" reads the
    # Uniswap v3 USDC/WETH pool and falls back to fixed_usd_rate on failure.
    usd_rate_source: Literal["fixed", "onchain"] = "fixed"
    fixed_usd_rate: float = Field(default=FIXED_USD_RATE, gt=0)
    eth_usd_rpc_url: str = "https://eth.llamarpc.com"
    eth_usd_pool_address: str = "0x8ad599c3a0ff1de082011efddc58f1908eb6e6d8"
    usd_rate_cache_sec: float = Field(default=60.0, ge=0)

    # History file (JSON array, rewritten on every append)
    history_path: str = "data/GasHistory.json"

    # Poller
    poll_interval_sec: float = Field(default=60.0, gt=0)
    poll_amount_eth: float = Field(default=1.0, gt=0)

    # HTTP server
    server_host: str = "0.0.0.0"
    server_port: int = Field(default=5000, ge=1, le=65535)
    serve_history_route: bool = True

    log_level: str = "INFO"

    @field_validator("chains")
    @classmethod
    def _unique_chain_names(cls, chains: list[Chain]) -> list[Chain]:
        seen: set[str] = set()
        for chain in chains:
            if chain.name in seen:
                raise ValueError(f"duplicate chain name: {chain.name}")
            seen.add(chain.name)
        if not chains:
            raise ValueError("at least one chain must be configured")
        return chains


def chain_names(cfg: Config) -> list[str]:
    """Registry order of configured chain names."""
    return [c.name for c in cfg.chains]


def load_config() -> Config:
    """Load and validate config from environment. Raises on invalid fields."""
    return Config()
