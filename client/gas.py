"""
Multi-chain gas price fetcher. Queries each chain's JSON-RPC endpoint with
eth_gasPrice and normalizes the result to gwei.

Failures are per chain: an unreachable endpoint, a timeout, a JSON-RPC error or
an empty price all map to None for that chain. Nothing raises past this module.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Iterable

import httpx

from config import Chain

logger = logging.getLogger(__name__)

_TIMEOUT = 5.0
_WEI_PER_GWEI = 1e9


def rpc_payload(method: str, params: list | None = None) -> dict:
    """JSON-RPC 2.0 request envelope."""
    return {"jsonrpc": "2.0", "method": method, "params": params or [], "id": 1}


def fetch_gas_price(chain: Chain, timeout: float = _TIMEOUT) -> float | None:
    """Return the current gas price for *chain* in gwei, or None if unavailable."""
    try:
        resp = httpx.post(chain.rpc_url, json=rpc_payload("eth_gasPrice"), timeout=timeout)
        resp.raise_for_status()
        body = resp.json()
        if body.get("error"):
            logger.warning("Gas price RPC error for %s: %s", chain.name, body["error"])
            return None
        hex_price = body.get("result")
        if not hex_price:
            logger.warning("Gas price unavailable for %s", chain.name)
            return None
        wei = int(hex_price, 16)
    except Exception as e:
        logger.warning("Failed to fetch gas price for %s: %s", chain.name, e)
        return None

    if wei <= 0:
        logger.warning("Gas price unavailable for %s", chain.name)
        return None

    gwei = wei / _WEI_PER_GWEI
    logger.debug("Gas price %s: %.4f gwei", chain.name, gwei)
    return gwei


def fetch_gas_prices(
    chains: Iterable[Chain],
    timeout: float = _TIMEOUT,
    max_workers: int = 8,
) -> dict[str, float | None]:
    """
    Fetch gas prices for every chain in parallel threads.

    Returns a mapping of chain name -> gwei (or None) in registry order.
    Total latency is bounded by the slowest chain, not the sum.
    """
    chains = list(chains)
    if not chains:
        return {}

    workers = max(1, min(max_workers, len(chains)))
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="gas-fetch") as executor:
        futures = [executor.submit(fetch_gas_price, chain, timeout) for chain in chains]
        prices = {chain.name: future.result() for chain, future in zip(chains, futures)}

    missing = [name for name, price in prices.items() if price is None]
    if missing:
        logger.info("Gas prices unavailable for %d/%d chains: %s", len(missing), len(prices), ", ".join(missing))
    return prices
