"""Client-resident key/value storage for session credentials.

Two backends share the ClientStorage protocol:
- MemoryStorage: process-local dict, used by tests and embedded callers.
- JsonFileStorage: a single JSON document on disk, used by the CLI so a
  session survives between invocations.

Both enforce an optional byte quota over the serialized document. A write
that would exceed it raises StorageQuotaExceeded and leaves the stored
data unchanged.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Protocol

import structlog

logger = structlog.get_logger(__name__)


class StorageQuotaExceeded(Exception):
    """Raised when a write would push the store past its byte quota."""

    def __init__(self, key: str, size: int, quota: int) -> None:
        self.key = key
        self.size = size
        self.quota = quota
        super().__init__(f"Storage quota exceeded writing {key!r}: {size} > {quota} bytes")


class ClientStorage(Protocol):
    """Minimal key/value surface the session store depends on."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...

    def keys(self) -> list[str]: ...


def _encoded_size(data: dict[str, str]) -> int:
    return len(json.dumps(data, sort_keys=True).encode("utf-8"))


class MemoryStorage:
    """In-memory ClientStorage with an optional byte quota.

    Args:
        initial: Seed values.
        quota_bytes: Maximum serialized size; 0 or None disables the check.
    """

    def __init__(self, initial: dict[str, str] | None = None, quota_bytes: int | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})
        self._quota = quota_bytes or 0

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        candidate = {**self._data, key: value}
        if self._quota:
            size = _encoded_size(candidate)
            if size > self._quota:
                raise StorageQuotaExceeded(key, size, self._quota)
        self._data = candidate

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data)


class JsonFileStorage:
    """ClientStorage persisted as one JSON object on disk.

    The file is re-read on every access so that several processes (CLI
    invocations) observe each other's writes. A missing or corrupt file
    reads as empty.

    Args:
        path: Location of the JSON document. Parent dirs are created on write.
        quota_bytes: Maximum serialized size; 0 or None disables the check.
    """

    def __init__(self, path: Path, quota_bytes: int | None = None) -> None:
        self._path = Path(path)
        self._quota = quota_bytes or 0

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> dict[str, str]:
        if not self._path.is_file():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            logger.warning("json_storage.read_failed", path=str(self._path), exc_info=True)
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(k): str(v) for k, v in data.items() if v is not None}

    def _dump(self, data: dict[str, str]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(data, indent=2, sort_keys=True), encoding="utf-8")

    def get(self, key: str) -> str | None:
        return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        candidate = {**self._load(), key: value}
        if self._quota:
            size = _encoded_size(candidate)
            if size > self._quota:
                raise StorageQuotaExceeded(key, size, self._quota)
        self._dump(candidate)

    def remove(self, key: str) -> None:
        data = self._load()
        if key in data:
            del data[key]
            self._dump(data)

    def keys(self) -> list[str]:
        return list(self._load())
