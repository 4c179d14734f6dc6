"""
Append-only gas history persisted as a single JSON array file.

Every append reads the whole array, adds one entry and rewrites the file.
No failure ever propagates to callers: unreadable files read as empty, and a
corrupt file is set aside (``<name>.corrupt-<ts>``) and replaced by a fresh
sequence. Appends are serialized with a process-wide lock and written via a
temp file + rename so readers never see a partial array.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
import tempfile
import threading
import time
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

HISTORY_FILE = Path("data") / "GasHistory.json"


class HistoryCorrupt(ValueError):
    """Backing file exists but does not hold a JSON array."""


def utc_timestamp() -> str:
    """ISO-8601 UTC with millisecond precision, e.g. 2024-05-01T12:00:00.000Z."""
    now = datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


@dataclass(frozen=True)
class HistoryEntry:
    chain: str
    gasPrice: float
    gasLimit: int
    gasCostEth: float
    gasCostUsd: float
    timestamp: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "HistoryEntry":
        return cls(
            chain=str(raw["chain"]),
            gasPrice=float(raw["gasPrice"]),
            gasLimit=int(raw["gasLimit"]),
            gasCostEth=float(raw["gasCostEth"]),
            gasCostUsd=float(raw["gasCostUsd"]),
            timestamp=str(raw["timestamp"]),
        )


class HistoryStore:
    """Thread-safe JSON-array history file."""

    def __init__(self, path: str | Path | None = None) -> None:
        self._path = Path(path or HISTORY_FILE)
        self._lock = threading.Lock()
        self.corruption_count = 0

    @property
    def path(self) -> Path:
        return self._path

    # ── Write ──

    def append(self, entry: HistoryEntry) -> bool:
        """Append one entry. Returns False if the file could not be written."""
        with self._lock:
            try:
                records = self._load_raw()
            except HistoryCorrupt as e:
                self._quarantine(e)
                records = []
            except (OSError, ValueError) as e:
                logger.warning("History file unreadable, starting new sequence: %s", e)
                records = []

            records.append(entry.to_dict())
            try:
                self._write_raw(records)
            except (OSError, TypeError, ValueError) as e:
                logger.error("Failed to write gas history to %s: %s", self._path, e)
                return False
        return True

    def record(
        self,
        chain: str,
        gas_price: float,
        gas_limit: int,
        gas_cost_eth: float,
        gas_cost_usd: float,
    ) -> bool:
        """Build an entry stamped with the current UTC time and append it."""
        entry = HistoryEntry(
            chain=chain,
            gasPrice=float(gas_price),
            gasLimit=int(gas_limit),
            gasCostEth=float(gas_cost_eth),
            gasCostUsd=float(gas_cost_usd),
            timestamp=utc_timestamp(),
        )
        return self.append(entry)

    # ── Read ──

    def read_all(self) -> list[HistoryEntry]:
        """All entries in append order. Empty on any read or parse failure."""
        try:
            records = self._load_raw()
        except (OSError, ValueError) as e:
            logger.error("Failed to read gas history: %s", e)
            return []

        entries: list[HistoryEntry] = []
        for i, raw in enumerate(records):
            try:
                entries.append(HistoryEntry.from_dict(raw))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping malformed history record #%d: %s", i, e)
        return entries

    # ── Internals ──

    def _load_raw(self) -> list[dict[str, Any]]:
        if not self._path.exists():
            return []
        text = self._path.read_text(encoding="utf-8")
        if not text.strip():
            return []
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise HistoryCorrupt(f"invalid JSON in {self._path}: {e}") from e
        except RecursionError as e:
            raise HistoryCorrupt(f"JSON nested too deeply in {self._path}") from e
        if not isinstance(data, list):
            raise HistoryCorrupt(f"expected a JSON array in {self._path}, got {type(data).__name__}")
        return data

    def _write_raw(self, records: list[dict[str, Any]]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps(records, indent=2)
        fd, tmp_path = tempfile.mkstemp(prefix=f".{self._path.name}.", dir=self._path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(tmp_path, self._path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def _quarantine(self, err: HistoryCorrupt) -> None:
        """Keep a copy of a corrupt history file before it is overwritten."""
        self.corruption_count += 1
        backup = self._path.with_name(f"{self._path.name}.corrupt-{int(time.time() * 1000)}")
        try:
            shutil.copy2(self._path, backup)
        except OSError as e:
            logger.warning("%s; could not back it up (%s), prior history discarded", err, e)
            return
        logger.warning("%s; copied to %s, starting new sequence", err, backup)
