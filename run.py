#!/usr/bin/env python3
"""
Gas Tracker -- multi-chain gas cost service.

Modes:
  1. Serve the HTTP API (default)
  2. Poll: every interval, fetch gas prices on all chains, estimate the cost
     of a transfer and append it to the history file
  3. Once: run a single cycle and print the results as JSON

Usage:
  python run.py                         # serve API on SERVER_HOST:SERVER_PORT
  python run.py --poll                  # record history every POLL_INTERVAL_SEC
  python run.py --serve --poll          # both: API in background thread + poller
  python run.py --once --amount 0.5     # single cycle to stdout
"""

from __future__ import annotations

import argparse
import json
import logging
import signal
import sys
import time

from config import Config, load_config
from monitor.display import print_cycle_error, print_cycle_header, print_cycle_results, print_startup
from monitor.logger import setup_logging
from pipeline.aggregator import CycleFailed, GasAggregator
from report import create_history_store
from report.server import start_server

logger = logging.getLogger(__name__)

_BANNER = r"""
  ____              _____               _
 / ___| __ _ ___   |_   _| __ __ _  ___| | _____ _ __
| |  _ / _` / __|    | || '__/ _` |/ __| |/ / _ \ '__|
| |_| | (_| \__ \    | || | | (_| | (__|   <  __/ |
 \____|\__,_|___/    |_||_|  \__,_|\___|_|\_\___|_|
"""

_shutdown = False


def _handle_signal(signum, frame) -> None:
    global _shutdown
    logger.info("Received signal %d, finishing current cycle...", signum)
    _shutdown = True


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Multi-chain gas cost tracker")
    parser.add_argument("--serve", action="store_true", help="Serve the HTTP API (default when no mode is given)")
    parser.add_argument("--poll", action="store_true", help="Run estimate cycles on a timer and record history")
    parser.add_argument("--once", action="store_true", help="Run a single cycle and print the results as JSON")
    parser.add_argument("--amount", type=float, default=None, help="Transfer amount in ETH (default: POLL_AMOUNT_ETH)")
    parser.add_argument("--interval", type=float, default=None, help="Seconds between poll cycles (default: POLL_INTERVAL_SEC)")
    parser.add_argument("--max-cycles", type=int, default=0, help="Stop polling after N cycles (0 = forever)")
    parser.add_argument("--host", type=str, default=None, help="API bind address (default: SERVER_HOST)")
    parser.add_argument("--port", type=int, default=None, help="API port (default: SERVER_PORT)")
    parser.add_argument("--json-log", type=str, default=None, help="Path to JSON log file for machine-readable output")
    args = parser.parse_args(argv)
    if not (args.serve or args.poll or args.once):
        args.serve = True
    if args.amount is not None and args.amount <= 0:
        parser.error("--amount must be positive")
    if args.interval is not None and args.interval <= 0:
        parser.error("--interval must be positive")
    return args


def _mode_label(args: argparse.Namespace) -> str:
    if args.once:
        return "ONCE"
    parts = []
    if args.serve:
        parts.append("SERVE")
    if args.poll:
        parts.append("POLL")
    return "+".join(parts)


def run_once(aggregator: GasAggregator, amount: float) -> int:
    """Single cycle, results as JSON on stdout. Returns the exit code."""
    try:
        results = aggregator.run_cycle(amount)
    except CycleFailed as e:
        print_cycle_error(e)
        return 1
    print_cycle_results(results, aggregator.last_summary)
    json.dump({"data": results}, sys.stdout, indent=2)
    sys.stdout.write("\n")
    return 0


def poll_loop(aggregator: GasAggregator, amount: float, interval: float, max_cycles: int = 0) -> int:
    """Run cycles until shutdown (or max_cycles). Returns the number of cycles run."""
    cycle = 0
    while not _shutdown:
        cycle += 1
        print_cycle_header(cycle)
        start = time.time()
        try:
            results = aggregator.run_cycle(amount)
            print_cycle_results(results, aggregator.last_summary)
        except CycleFailed as e:
            print_cycle_error(e)
        if max_cycles and cycle >= max_cycles:
            break
        remaining = interval - (time.time() - start)
        # Sleep in short slices so signals are honored promptly
        while remaining > 0 and not _shutdown:
            time.sleep(min(remaining, 0.5))
            remaining -= 0.5
    return cycle


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    cfg: Config = load_config()

    log_file_path = setup_logging(cfg.log_level, json_log_file=args.json_log)
    logger.info(_BANNER.strip("\n"))
    logger.info("  Log file: %s", log_file_path)
    print_startup(cfg, _mode_label(args))

    store = create_history_store(cfg.history_path)
    aggregator = GasAggregator.from_config(cfg, store=store)
    amount = args.amount if args.amount is not None else cfg.poll_amount_eth

    if args.once:
        return run_once(aggregator, amount)

    host = args.host or cfg.server_host
    port = args.port or cfg.server_port

    if not args.poll:
        start_server(aggregator, host=host, port=port, include_history_route=cfg.serve_history_route, background=False)
        return 0

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)
    if args.serve:
        start_server(aggregator, host=host, port=port, include_history_route=cfg.serve_history_route)

    interval = args.interval or cfg.poll_interval_sec
    cycles = poll_loop(aggregator, amount, interval, max_cycles=args.max_cycles)
    logger.info("Stopped after %d cycles (%d history entries)", cycles, len(store.read_all()))
    return 0


if __name__ == "__main__":
    sys.exit(main())
