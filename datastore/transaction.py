"""All-or-nothing write buffering for one service call."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Dict, Iterator, Mapping, Optional

from datastore.kv_store import KeyValueStore

logger = logging.getLogger(__name__)


class StoreTransaction:
    """Buffers writes; reads see the buffered value before the backing store."""

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store
        self._pending: Dict[bytes, bytes] = {}
        self._closed = False

    @property
    def pending(self) -> Mapping[bytes, bytes]:
        return dict(self._pending)

    def get(self, key: bytes) -> Optional[bytes]:
        if key in self._pending:
            return self._pending[key]
        return self._store.get(key)

    def set(self, key: bytes, value: bytes) -> None:
        if self._closed:
            raise RuntimeError("Transaction is already closed.")
        self._pending[key] = value

    def write_batch(self, items: Mapping[bytes, bytes]) -> None:
        for key, value in items.items():
            self.set(key, value)

    def commit(self) -> None:
        if self._closed:
            raise RuntimeError("Transaction is already closed.")
        self._closed = True
        self._store.write_batch(self._pending)

    def rollback(self) -> None:
        self._closed = True
        self._pending.clear()


@contextmanager
def transaction(store: KeyValueStore) -> Iterator[StoreTransaction]:
    """Commit buffered writes only if the block finishes without raising."""
    txn = StoreTransaction(store)
    try:
        yield txn
    except BaseException:
        if txn.pending:
            logger.debug("Discarding %d buffered write(s)", len(txn.pending))
        txn.rollback()
        raise
    txn.commit()
