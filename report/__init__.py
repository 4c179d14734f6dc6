"""
Report module: gas history persistence + HTTP API.

Usage:
    from report import create_history_store
    store = create_history_store("data/GasHistory.json")
"""

from __future__ import annotations

from report.history import HistoryEntry, HistoryStore


def create_history_store(path: str | None = None) -> HistoryStore:
    """Factory: history store at *path* (default data/GasHistory.json)."""
    return HistoryStore(path)


__all__ = ["HistoryEntry", "HistoryStore", "create_history_store"]
