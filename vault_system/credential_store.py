"""
Credential Store - whole-collection key-value persistence

The vault keeps each collection (credentials, bundles, revocation list,
digital id) under a fixed logical key and always reads or writes the
whole collection. No partial updates, no transactions.
"""

import json
import logging
import threading
from pathlib import Path
from typing import Optional, Any, Dict, Union

logger = logging.getLogger("CredentialStore")

CREDENTIALS_KEY = "credentials"
BUNDLES_KEY = "bundles"
REVOCATION_KEY = "revocationList"
DIGITAL_ID_KEY = "digitalId"


class CredentialStore:
    """
    Key-value store backed by a JSON file, or memory when no path is given

    Values must be JSON-serializable.
    """

    def __init__(self, storage_path: Optional[Union[str, Path]] = None):
        self.storage_path = Path(storage_path) if storage_path else None
        self._data: Dict[str, Any] = {}
        self._lock = threading.Lock()

        if self.storage_path and self.storage_path.exists():
            self._load()

    def _load(self):
        with open(self.storage_path, "r", encoding="utf-8") as f:
            self._data = json.load(f)
        logger.info("Loaded %d collection(s) from %s", len(self._data), self.storage_path)

    def _save(self):
        if not self.storage_path:
            return
        self.storage_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.storage_path, "w", encoding="utf-8") as f:
            json.dump(self._data, f, indent=2, ensure_ascii=False)

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            value = self._data.get(key, default)
        # Callers get a copy; writes go through set()
        return json.loads(json.dumps(value))

    def set(self, key: str, value: Any):
        with self._lock:
            self._data[key] = json.loads(json.dumps(value))
            self._save()

    def remove(self, key: str):
        with self._lock:
            if self._data.pop(key, None) is not None:
                self._save()

    def keys(self) -> list:
        with self._lock:
            return list(self._data.keys())
