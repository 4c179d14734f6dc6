"""
Gas cost aggregation cycle.

One cycle = fetch every chain's gas price up front, resolve the USD rate once,
then walk the registry in order: estimate the cost per chain, append it to the
history file and collect the wire-form result. A chain without a price gets an
inline error marker instead of failing the whole cycle.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Iterable, Sequence

from client.gas import fetch_gas_prices
from client.price import UsdRateOracle
from config import Chain, Config
from pipeline.gas_utils import build_estimate
from report.history import HistoryStore

logger = logging.getLogger(__name__)

PRICE_UNAVAILABLE = "Gas price unavailable"
ESTIMATION_FAILED = "Estimation failed"

Fetcher = Callable[..., dict]


class CycleFailed(Exception):
    """The cycle could not start (e.g. the price fetch itself blew up)."""


@dataclass(frozen=True)
class CycleSummary:
    n_chains: int
    n_ok: int
    n_failed: int
    n_recorded: int
    usd_rate: float
    elapsed_sec: float


class GasAggregator:
    """Runs fetch -> estimate -> record cycles over a fixed chain registry."""

    def __init__(
        self,
        chains: Sequence[Chain],
        store: HistoryStore,
        rate_oracle: UsdRateOracle | None = None,
        fetcher: Fetcher | None = None,
        timeout: float = 5.0,
        max_workers: int = 8,
    ):
        self._chains = tuple(chains)
        self._store = store
        self._rate_oracle = rate_oracle or UsdRateOracle()
        self._fetcher = fetcher or fetch_gas_prices
        self._timeout = timeout
        self._max_workers = max_workers
        self.last_summary: CycleSummary | None = None

    @classmethod
    def from_config(cls, cfg: Config, store: HistoryStore | None = None) -> "GasAggregator":
        return cls(
            chains=cfg.chains,
            store=store or HistoryStore(cfg.history_path),
            rate_oracle=UsdRateOracle.from_config(cfg),
            timeout=cfg.rpc_timeout_sec,
            max_workers=cfg.fetch_workers,
        )

    @property
    def chains(self) -> tuple[Chain, ...]:
        return self._chains

    @property
    def store(self) -> HistoryStore:
        return self._store

    def snapshot(self) -> dict[str, float | None]:
        """Current gas price per chain in registry order. Raises CycleFailed."""
        try:
            prices = self._fetcher(self._chains, timeout=self._timeout, max_workers=self._max_workers)
        except Exception as e:
            raise CycleFailed(f"gas price fetch failed: {e}") from e
        return {chain.name: prices.get(chain.name) for chain in self._chains}

    def run_cycle(self, amount: float | Decimal) -> list[dict]:
        """
        Estimate and record costs for every chain.

        Always returns exactly one result per registered chain, in registry
        order. Raises CycleFailed only when the cycle cannot start.
        """
        start = time.time()
        prices = self.snapshot()
        try:
            usd_rate = self._rate_oracle.get_rate()
        except Exception as e:
            raise CycleFailed(f"USD rate lookup failed: {e}") from e

        results: list[dict] = []
        n_ok = n_recorded = 0
        for chain in self._chains:
            price = prices.get(chain.name)
            if not price:
                results.append({"chain": chain.name, "error": PRICE_UNAVAILABLE})
                continue
            try:
                estimate = build_estimate(
                    chain.name, price, amount, usd_rate=usd_rate, gas_limit=chain.gas_limit,
                )
            except Exception as e:
                logger.error("Estimate failed for %s: %s", chain.name, e, exc_info=True)
                results.append({"chain": chain.name, "error": ESTIMATION_FAILED})
                continue

            n_ok += 1
            try:
                recorded = self._store.record(
                    chain.name,
                    estimate.gas_price_gwei,
                    estimate.gas_limit,
                    estimate.gas_cost_native,
                    estimate.gas_cost_usd,
                )
            except Exception as e:
                logger.error("History write failed for %s: %s", chain.name, e, exc_info=True)
                recorded = False
            if recorded:
                n_recorded += 1
            results.append(estimate.to_dict())

        summary = CycleSummary(
            n_chains=len(self._chains),
            n_ok=n_ok,
            n_failed=len(self._chains) - n_ok,
            n_recorded=n_recorded,
            usd_rate=float(usd_rate),
            elapsed_sec=time.time() - start,
        )
        self.last_summary = summary
        logger.info(
            "Cycle done: %d/%d chains priced, %d recorded, rate=%.2f, %.2fs",
            summary.n_ok, summary.n_chains, summary.n_recorded, summary.usd_rate, summary.elapsed_sec,
        )
        return results


def run_cycle(
    chains: Iterable[Chain],
    amount: float | Decimal,
    store: HistoryStore,
    rate_oracle: UsdRateOracle | None = None,
) -> list[dict]:
    """One-shot cycle without keeping an aggregator around."""
    return GasAggregator(list(chains), store, rate_oracle=rate_oracle).run_cycle(amount)


__all__ = [
    "CycleFailed",
    "CycleSummary",
    "GasAggregator",
    "run_cycle",
    "PRICE_UNAVAILABLE",
    "ESTIMATION_FAILED",
]
