"""
Unit tests for pipeline/aggregator.py -- fetch/estimate/record cycle.
"""

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from client.price import UsdRateOracle
from config import Chain, Config
from pipeline.aggregator import (
    CycleFailed,
    GasAggregator,
    PRICE_UNAVAILABLE,
    ESTIMATION_FAILED,
    run_cycle,
)
from pipeline.gas_utils import build_estimate as real_build_estimate
from report.history import HistoryStore


CHAINS = [
    Chain(name="Ethereum", rpc_url="https://eth.example"),
    Chain(name="Polygon", rpc_url="https://polygon.example"),
    Chain(name="Arbitrum", rpc_url="https://arb.example"),
]


def _fetcher(prices: dict):
    def _fetch(chains, timeout=5.0, max_workers=8):
        return {c.name: prices.get(c.name) for c in chains}
    return _fetch


@pytest.fixture
def store(tmp_path: Path) -> HistoryStore:
    return HistoryStore(tmp_path / "GasHistory.json")


def _aggregator(store, prices, rate=2000.0):
    return GasAggregator(
        CHAINS, store,
        rate_oracle=UsdRateOracle(source="fixed", fixed_rate=rate),
        fetcher=_fetcher(prices),
    )


class TestRunCycle:
    def test_all_chains_priced(self, store):
        agg = _aggregator(store, {"Ethereum": 50.0, "Polygon": 30.0, "Arbitrum": 0.1})
        results = agg.run_cycle(1)
        assert [r["chain"] for r in results] == ["Ethereum", "Polygon", "Arbitrum"]
        assert all("error" not in r for r in results)
        assert results[0]["gasCostInEth"] == pytest.approx(0.00105)
        assert results[0]["gasCostInUsd"] == pytest.approx(2.10)
        assert len(store.read_all()) == 3

    def test_polygon_failure_scenario(self, store):
        """Polygon RPC fails, Ethereum and Arbitrum succeed."""
        agg = _aggregator(store, {"Ethereum": 50.0, "Polygon": None, "Arbitrum": 0.1})
        results = agg.run_cycle(1)

        assert len(results) == 3
        assert results[1] == {"chain": "Polygon", "error": "Gas price unavailable"}
        assert results[0]["chain"] == "Ethereum" and "gasPriceGwei" in results[0]
        assert results[2]["chain"] == "Arbitrum" and "gasPriceGwei" in results[2]

        history = store.read_all()
        assert [e.chain for e in history] == ["Ethereum", "Arbitrum"]

    def test_zero_price_treated_as_unavailable(self, store):
        agg = _aggregator(store, {"Ethereum": 0.0, "Polygon": 1.0, "Arbitrum": 1.0})
        results = agg.run_cycle(1)
        assert results[0] == {"chain": "Ethereum", "error": PRICE_UNAVAILABLE}
        assert len(store.read_all()) == 2

    def test_all_unavailable_writes_nothing(self, store):
        agg = _aggregator(store, {})
        results = agg.run_cycle(1)
        assert [r["error"] for r in results] == [PRICE_UNAVAILABLE] * 3
        assert store.read_all() == []

    def test_history_entry_matches_estimate(self, store):
        agg = _aggregator(store, {"Ethereum": 50.0}, rate=2000.0)
        agg.run_cycle(2)
        [entry] = store.read_all()
        assert entry.chain == "Ethereum"
        assert entry.gasPrice == 50.0
        assert entry.gasLimit == 21000
        assert entry.gasCostEth == pytest.approx(0.00105)
        assert entry.gasCostUsd == pytest.approx(4.20)

    def test_uses_chain_gas_limit(self, store):
        chains = [Chain(name="Custom", rpc_url="https://x.example", gas_limit=100_000)]
        agg = GasAggregator(chains, store, rate_oracle=UsdRateOracle(fixed_rate=1.0), fetcher=_fetcher({"Custom": 10.0}))
        [result] = agg.run_cycle(1)
        assert result["gasLimit"] == 100_000
        assert result["gasCostInEth"] == pytest.approx(0.001)

    def test_store_failure_does_not_break_cycle(self, store):
        store.record = MagicMock(return_value=False)
        agg = _aggregator(store, {"Ethereum": 50.0, "Polygon": 30.0, "Arbitrum": 0.1})
        results = agg.run_cycle(1)
        assert all("error" not in r for r in results)
        assert agg.last_summary.n_recorded == 0
        assert agg.last_summary.n_ok == 3

    def test_store_exception_does_not_break_cycle(self, store):
        store.record = MagicMock(side_effect=[True, RecursionError("deep"), True])
        agg = _aggregator(store, {"Ethereum": 50.0, "Polygon": 30.0, "Arbitrum": 0.1})
        results = agg.run_cycle(1)
        assert [r["chain"] for r in results] == ["Ethereum", "Polygon", "Arbitrum"]
        assert all("error" not in r for r in results)
        assert agg.last_summary.n_recorded == 2

    def test_deeply_nested_history_file_is_replaced(self, store):
        store.path.parent.mkdir(parents=True, exist_ok=True)
        store.path.write_text("[" * 100_000)
        agg = _aggregator(store, {"Ethereum": 50.0, "Polygon": 30.0, "Arbitrum": 0.1})
        results = agg.run_cycle(1)
        assert all("error" not in r for r in results)
        assert [e.chain for e in store.read_all()] == ["Ethereum", "Polygon", "Arbitrum"]

    def test_huge_amount_is_priced(self):
        agg = _aggregator(MagicMock(), {"Ethereum": 50.0}, rate=2734856.0)
        results = agg.run_cycle(1e25)
        assert "error" not in results[0]
        assert results[0]["gasCostInUsd"] == pytest.approx(2.8715988e28)

    @patch("pipeline.aggregator.build_estimate")
    def test_unexpected_per_chain_error_is_contained(self, mock_build, store):
        def _build(chain, *args, **kwargs):
            if chain == "Polygon":
                raise ArithmeticError("bad")
            return real_build_estimate(chain, *args, **kwargs)

        mock_build.side_effect = _build
        agg = _aggregator(store, {"Ethereum": 50.0, "Polygon": 30.0, "Arbitrum": 0.1})
        results = agg.run_cycle(1)
        assert len(results) == 3
        assert results[1] == {"chain": "Polygon", "error": ESTIMATION_FAILED}
        assert len(store.read_all()) == 2

    def test_fetch_failure_is_cycle_level(self, store):
        def _boom(chains, timeout=5.0, max_workers=8):
            raise RuntimeError("pool exploded")

        agg = GasAggregator(CHAINS, store, fetcher=_boom)
        with pytest.raises(CycleFailed):
            agg.run_cycle(1)
        assert store.read_all() == []

    def test_rate_failure_is_cycle_level(self, store):
        oracle = MagicMock()
        oracle.get_rate.side_effect = RuntimeError("no rate")
        agg = GasAggregator(CHAINS, store, rate_oracle=oracle, fetcher=_fetcher({"Ethereum": 1.0}))
        with pytest.raises(CycleFailed):
            agg.run_cycle(1)

    def test_summary(self, store):
        agg = _aggregator(store, {"Ethereum": 50.0, "Arbitrum": 0.1})
        agg.run_cycle(1)
        s = agg.last_summary
        assert (s.n_chains, s.n_ok, s.n_failed, s.n_recorded) == (3, 2, 1, 2)
        assert s.usd_rate == 2000.0

    def test_rate_resolved_once_per_cycle(self, store):
        oracle = MagicMock()
        oracle.get_rate.return_value = 1000.0
        agg = GasAggregator(CHAINS, store, rate_oracle=oracle, fetcher=_fetcher({"Ethereum": 1.0, "Polygon": 2.0}))
        agg.run_cycle(1)
        assert oracle.get_rate.call_count == 1


class TestSnapshot:
    def test_registry_order_and_none(self, store):
        agg = _aggregator(store, {"Arbitrum": 0.1, "Ethereum": 50.0})
        snap = agg.snapshot()
        assert list(snap) == ["Ethereum", "Polygon", "Arbitrum"]
        assert snap["Polygon"] is None

    def test_snapshot_does_not_record(self, store):
        _aggregator(store, {"Ethereum": 50.0}).snapshot()
        assert store.read_all() == []

    def test_fetcher_receives_timeout_and_workers(self, store):
        fetcher = MagicMock(return_value={})
        agg = GasAggregator(CHAINS, store, fetcher=fetcher, timeout=1.5, max_workers=2)
        agg.snapshot()
        fetcher.assert_called_once_with(agg.chains, timeout=1.5, max_workers=2)


class TestFromConfig:
    def test_wires_config(self, tmp_path):
        cfg = Config(
            _env_file=None,
            history_path=str(tmp_path / "h.json"),
            rpc_timeout_sec=2.0,
            fetch_workers=3,
            fixed_usd_rate=1500.0,
        )
        agg = GasAggregator.from_config(cfg)
        assert [c.name for c in agg.chains] == ["Ethereum", "Polygon", "Arbitrum"]
        assert agg.store.path == tmp_path / "h.json"


class TestRunCycleFunction:
    @patch("pipeline.aggregator.fetch_gas_prices")
    def test_one_shot(self, mock_fetch, store):
        mock_fetch.return_value = {"Ethereum": 50.0, "Polygon": None, "Arbitrum": 0.1}
        results = run_cycle(CHAINS, 1, store, rate_oracle=UsdRateOracle(fixed_rate=1.0))
        assert len(results) == 3
        assert len(store.read_all()) == 2
