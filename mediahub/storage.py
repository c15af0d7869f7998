"""
Key-value storage backends for persisted cache records and user state.

The persistent cache and the continue-watching store only talk to the
`StorageBackend` protocol, so the SQLite engine in `mediahub.database`
and the dict-backed `InMemoryStorage` here are interchangeable.
"""

import logging
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised when the backing store cannot complete an operation."""


class QuotaExceededError(StorageError):
    """Raised by `set_item` when the backing store has no room left."""


@runtime_checkable
class StorageBackend(Protocol):
    """Protocol for string key-value stores."""

    async def get_item(self, key: str) -> str | None: ...
    async def set_item(self, key: str, value: str) -> None: ...
    async def remove_item(self, key: str) -> None: ...
    async def keys(self) -> list[str]: ...


def entry_size(key: str, value: str) -> int:
    """Estimated footprint of a stored entry in bytes (key + value, UTF-8)."""
    return len(key.encode("utf-8")) + len(value.encode("utf-8"))


class InMemoryStorage:
    """
    Dict-backed storage backend.

    Args:
        quota_bytes: Optional hard limit on the summed size of all entries.
            Writes that would exceed it raise QuotaExceededError, the same
            way a full browser store or disk would.
    """

    def __init__(self, quota_bytes: int | None = None):
        self._items: dict[str, str] = {}
        self._quota_bytes = quota_bytes

    @property
    def quota_bytes(self) -> int | None:
        return self._quota_bytes

    def used_bytes(self) -> int:
        return sum(entry_size(k, v) for k, v in self._items.items())

    async def get_item(self, key: str) -> str | None:
        return self._items.get(key)

    async def set_item(self, key: str, value: str) -> None:
        if self._quota_bytes is not None:
            used = self.used_bytes()
            if key in self._items:
                used -= entry_size(key, self._items[key])
            if used + entry_size(key, value) > self._quota_bytes:
                raise QuotaExceededError(
                    f"Storage quota of {self._quota_bytes} bytes exceeded"
                )
        self._items[key] = value

    async def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    async def keys(self) -> list[str]:
        return list(self._items)
