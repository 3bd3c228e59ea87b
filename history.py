"""Most-recent-first list of looked-up barcodes, persisted in the state store."""

import logging

logger = logging.getLogger("scanner")

HISTORY_KEY = "barcodeSearchHistory"


class ScanHistory:
    """Unique values, newest first, capped at `limit`."""

    def __init__(self, store, key: str = HISTORY_KEY, limit: int = 10):
        self._store = store
        self._key = key
        self._limit = limit
        self._entries = self._load()

    def _load(self) -> list[str]:
        saved = self._store.get(self._key)
        if saved is None:
            return []
        if not isinstance(saved, list) or not all(isinstance(v, str) for v in saved):
            logger.warning("Ignoring malformed search history in state store")
            return []
        return saved[: self._limit]

    @property
    def entries(self) -> list[str]:
        return list(self._entries)

    def __len__(self):
        return len(self._entries)

    def add(self, value: str):
        self._entries = [value] + [v for v in self._entries if v != value]
        self._entries = self._entries[: self._limit]
        self._store.set(self._key, self._entries)

    def clear(self):
        self._entries = []
        self._store.remove(self._key)
