"""
In-memory, append-only trade history for the current process.

Rows are written right after a transaction is submitted and never change.
The outcome of each submitted transaction is recorded once, separately,
keyed by its hash. Nothing survives a restart.
"""

from __future__ import annotations

import threading
from typing import Callable, Dict, List, Optional

from swapbot.models import HistoryEntry, SwapResult

EntryListener = Callable[[HistoryEntry], None]


class HistoryRepository:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: List[HistoryEntry] = []
        self._results: Dict[str, SwapResult] = {}
        self._listeners: List[EntryListener] = []

    def subscribe(self, listener: EntryListener) -> None:
        self._listeners.append(listener)

    def append(self, entry: HistoryEntry) -> None:
        with self._lock:
            self._entries.append(entry)
        for listener in list(self._listeners):
            listener(entry)

    def settle(self, result: SwapResult) -> None:
        """Record the final outcome of a submitted transaction."""
        if not result.tx_hash:
            raise ValueError("only submitted transactions can be settled")
        with self._lock:
            if result.tx_hash in self._results:
                raise ValueError(f"{result.tx_hash} already settled")
            self._results[result.tx_hash] = result

    def result_for(self, tx_hash: str) -> Optional[SwapResult]:
        with self._lock:
            return self._results.get(tx_hash)

    def list_all(self) -> List[HistoryEntry]:
        with self._lock:
            return list(self._entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
