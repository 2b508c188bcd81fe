"""Key-value stores backing draft persistence.

A store keeps UTF-8 text under string keys and knows nothing about
expiry or versions; those rules live in :mod:`feedback_wizard.drafts`.
Every failure surfaces as :class:`StorageError`.
"""

from __future__ import annotations

import hashlib
import logging
import os
import re
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional

from .models import StorageError

logger = logging.getLogger("feedback_wizard.storage")


class KeyValueStore(ABC):
    """Minimal get/set/delete text store."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the stored text, or None when the key is absent."""

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store text under key, replacing any previous value."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove key; deleting an absent key is not an error."""


class MemoryStore(KeyValueStore):
    """Process-local store, one per browser-tab equivalent."""

    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._lock = threading.Lock()
        self._items: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._items.get(key)

    def set(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise StorageError(f"MemoryStore only stores text, got {type(value).__name__}")
        with self._lock:
            self._items[key] = value

    def delete(self, key: str) -> None:
        with self._lock:
            self._items.pop(key, None)

    def keys(self) -> List[str]:
        with self._lock:
            return sorted(self._items)


def _sanitize_for_filename(key: str) -> str:
    # letters, digits, _ . - only
    return re.sub(r"[^A-Za-z0-9_.-]", "_", key)


class FileStore(KeyValueStore):
    """One JSON text file per key inside a directory.

    Keys are sanitised for the filesystem and suffixed with a short hash
    of the original key, so two keys that sanitise alike never collide.
    Writes go through a temp file and ``os.replace`` so a reader never
    sees a half-written draft.
    """

    SUFFIX = ".json"

    def __init__(self, directory: Path | str) -> None:
        self.directory = Path(directory).expanduser().resolve()
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Could not create draft directory {self.directory}: {e}") from e

    def path_for(self, key: str) -> Path:
        digest = hashlib.sha256(key.encode("utf-8")).hexdigest()[:12]
        return self.directory / f"{_sanitize_for_filename(key)[:80]}-{digest}{self.SUFFIX}"

    def get(self, key: str) -> Optional[str]:
        path = self.path_for(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            raise StorageError(f"Could not read draft {path}: {e}") from e

    def set(self, key: str, value: str) -> None:
        path = self.path_for(key)
        temp_name: Optional[str] = None
        try:
            fd, temp_name = tempfile.mkstemp(prefix=".tmp-", dir=str(self.directory))
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(value)
            os.replace(temp_name, path)
        except OSError as e:
            raise StorageError(f"Could not write draft {path}: {e}") from e
        finally:
            if temp_name and os.path.exists(temp_name):
                os.unlink(temp_name)
        logger.debug(f"Wrote draft file {path}")

    def delete(self, key: str) -> None:
        path = self.path_for(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise StorageError(f"Could not delete draft {path}: {e}") from e
