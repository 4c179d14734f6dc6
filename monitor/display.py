"""
Console output for gas cycles.

Pure formatting functions that emit log lines using box-drawing characters.
No side effects beyond logging. All data arrives via arguments.
"""

from __future__ import annotations

import logging
import time

from config import Config, chain_names
from pipeline.aggregator import CycleSummary

logger = logging.getLogger(__name__)

_TOP = "\u250c"  # ┌
_MID = "\u2502"  # │
_BOT = "\u2514"  # └
_DASH = "\u2500"  # ─
_VERT_SEP = "\u2502"  # │ (inline separator)


def print_startup(cfg: Config, mode: str) -> None:
    """Compact config block emitted once after the banner."""
    logger.info("  Mode: %-8s Chains: %s", mode, "  ".join(chain_names(cfg)))
    logger.info(
        "  USD rate: %s%s  RPC timeout: %.1fs  History: %s",
        cfg.usd_rate_source,
        f" ({cfg.fixed_usd_rate:,.2f})" if cfg.usd_rate_source == "fixed" else "",
        cfg.rpc_timeout_sec,
        cfg.history_path,
    )


def print_cycle_header(cycle: int) -> None:
    """Horizontal divider with cycle number and wall-clock time."""
    ts = time.strftime("%H:%M:%S")
    label = f" Cycle {cycle} "
    right_pad = max(2, 60 - 2 - len(label) - len(ts) - 3)
    logger.info(f"{_DASH * 2}{label}{_DASH * right_pad} {ts} {_DASH * 2}")


def print_cycle_results(results: list[dict], summary: CycleSummary | None = None) -> None:
    """Boxed per-chain table. Chains without a price show their error marker."""
    logger.info("  %s  %-12s %14s %10s %14s %14s", _TOP, "Chain", "Gas (gwei)", "Limit", "Cost (ETH)", "Cost (USD)")
    for row in results:
        if "error" in row:
            logger.info("  %s  %-12s %s", _MID, row["chain"], row["error"])
            continue
        logger.info(
            "  %s  %-12s %14.4f %10d %14.6f %14s",
            _MID,
            row["chain"],
            row["gasPriceGwei"],
            row["gasLimit"],
            row["gasCostInEth"],
            f"${row['gasCostInUsd']:,.2f}",
        )
    if summary is not None:
        logger.info(
            "  %s %d/%d priced %s %d recorded %s %.2fs",
            _BOT, summary.n_ok, summary.n_chains, _VERT_SEP, summary.n_recorded, _VERT_SEP, summary.elapsed_sec,
        )


def print_cycle_error(error: Exception) -> None:
    """Compact error box when a cycle fails before any chain is processed."""
    logger.info("  %s Cycle failed: %s", _TOP, error)
