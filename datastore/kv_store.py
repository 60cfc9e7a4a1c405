from __future__ import annotations
import json
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Dict, Mapping, Optional, Protocol

from settings import get_settings


class KeyValueStore(Protocol):
    """Exact-key get/set; no range scans are assumed."""

    def get(self, key: bytes) -> Optional[bytes]: ...

    def set(self, key: bytes, value: bytes) -> None: ...

    def write_batch(self, items: Mapping[bytes, bytes]) -> None: ...


class MockKeyValueStore:

    def __init__(self, name: str, persistence_path: Optional[Path] = None) -> None:
        self.name = name
        self._items: Dict[bytes, bytes] = {}
        self.persistence_path = persistence_path
        self._lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    def get(self, key: bytes) -> Optional[bytes]:
        with self._lock:
            return self._items.get(key)

    def set(self, key: bytes, value: bytes) -> None:
        self.write_batch({key: value})

    def write_batch(self, items: Mapping[bytes, bytes]) -> None:
        """Apply every item under one lock acquisition and persist once."""

        if not items:
            return
        with self._lock:
            self._items.update(items)
            self._persist()

    def keys(self) -> list[bytes]:
        with self._lock:
            return sorted(self._items)

    def _persist(self) -> None:
        if not self.persistence_path:
            return
        payload = {key.hex(): value.hex() for key, value in self._items.items()}
        self.persistence_path.write_text(json.dumps(payload, indent=2, sort_keys=True))

    def _load_from_disk(self) -> None:
        if not self.persistence_path or not self.persistence_path.exists():
            return

        try:
            raw = self.persistence_path.read_text() or "{}"
            data = json.loads(raw)
        except (OSError, json.JSONDecodeError):
            data = {}

        for key, value in data.items():
            self._items[bytes.fromhex(key)] = bytes.fromhex(value)


@lru_cache
def build_default_store(
    name: str = "telemetry",
    path: Optional[str] = None,
) -> MockKeyValueStore:
    settings = get_settings()
    store_path = settings.store_path if path is None else path
    persistence = Path(store_path) if store_path else None
    return MockKeyValueStore(name=name, persistence_path=persistence)
