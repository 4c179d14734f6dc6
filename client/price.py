"""
Native-unit -> USD rate oracle.

One source of truth for the conversion used by cost estimates. In "fixed" mode
the configured constant is returned as-is. In "onchain" mode the ETH/USD price
is derived from slot0() of the Uniswap v3 USDC/WETH pool, cached for
``cache_sec`` and replaced by the fixed constant whenever the read fails.
"""

from __future__ import annotations

import logging
import threading
import time

import httpx

from client.gas import rpc_payload
from config import Config, FIXED_USD_RATE

logger = logging.getLogger(__name__)

_TIMEOUT = 5.0

# keccak256("slot0()")[:4]
_SLOT0_SELECTOR = "0x3850c7bd"

# USDC (token0) has 6 decimals, WETH (token1) has 18
_DECIMALS_SHIFT = 10 ** (18 - 6)


def eth_usd_from_sqrt_price(sqrt_price_x96: int) -> float:
    """Convert a USDC/WETH pool sqrtPriceX96 into USD per ETH."""
    if sqrt_price_x96 <= 0:
        raise ValueError("sqrtPriceX96 must be positive")
    # raw price = WETH wei per USDC unit = sqrtP^2 / 2^192
    return (_DECIMALS_SHIFT * 2**192) / (sqrt_price_x96 * sqrt_price_x96)


class UsdRateOracle:
    """Cached USD rate with a fixed-constant fallback."""

    def __init__(
        self,
        source: str = "fixed",
        fixed_rate: float = FIXED_USD_RATE,
        rpc_url: str = "https://eth.llamarpc.com",
        pool_address: str = "0x8ad599c3a0ff1de082011efddc58f1908eb6e6d8",
        cache_sec: float = 60.0,
        timeout: float = _TIMEOUT,
    ):
        if source not in ("fixed", "onchain"):
            raise ValueError(f"unknown USD rate source: {source}")
        self._source = source
        self._fixed_rate = fixed_rate
        self._rpc_url = rpc_url
        self._pool_address = pool_address
        self._cache_sec = cache_sec
        self._timeout = timeout

        self._lock = threading.Lock()
        self._cached_rate: float | None = None
        self._rate_ts: float = 0.0

    @classmethod
    def from_config(cls, cfg: Config) -> "UsdRateOracle":
        return cls(
            source=cfg.usd_rate_source,
            fixed_rate=cfg.fixed_usd_rate,
            rpc_url=cfg.eth_usd_rpc_url,
            pool_address=cfg.eth_usd_pool_address,
            cache_sec=cfg.usd_rate_cache_sec,
            timeout=cfg.rpc_timeout_sec,
        )

    @property
    def source(self) -> str:
        return self._source

    def get_rate(self) -> float:
        """Return the current USD rate. Never raises."""
        if self._source == "fixed":
            return self._fixed_rate

        with self._lock:
            now = time.time()
            if self._cached_rate is not None and (now - self._rate_ts) < self._cache_sec:
                return self._cached_rate
            try:
                rate = self._read_pool_rate()
            except Exception as e:
                logger.warning("ETH/USD pool read failed, using fixed rate %.2f: %s", self._fixed_rate, e)
                return self._fixed_rate
            self._cached_rate = rate
            self._rate_ts = now
            logger.debug("ETH/USD: $%.2f", rate)
            return rate

    def _read_pool_rate(self) -> float:
        resp = httpx.post(
            self._rpc_url,
            json=rpc_payload("eth_call", [{"to": self._pool_address, "data": _SLOT0_SELECTOR}, "latest"]),
            timeout=self._timeout,
        )
        resp.raise_for_status()
        body = resp.json()
        if body.get("error"):
            raise RuntimeError(f"eth_call error: {body['error']}")
        result = body["result"]
        # First 32-byte word of the return data is sqrtPriceX96
        sqrt_price_x96 = int(result[2:66], 16)
        return eth_usd_from_sqrt_price(sqrt_price_x96)
