from __future__ import annotations

import copy
import threading
from abc import ABC, abstractmethod
from typing import Any

from flowforge.errors import StorageError


class Store(ABC):
    """Namespaced key-value store holding JSON-compatible documents.

    ``list`` returns documents in insertion order; ``set`` on an existing key
    keeps its position.
    """

    def __enter__(self) -> "Store":
        self.open()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @abstractmethod
    def open(self) -> None:
        raise NotImplementedError

    @abstractmethod
    def close(self) -> None:
        raise NotImplementedError

    @abstractmethod
    def get(self, namespace: str, key: str) -> dict[str, Any] | None:
        raise NotImplementedError

    @abstractmethod
    def set(self, namespace: str, key: str, value: dict[str, Any]) -> None:
        raise NotImplementedError

    @abstractmethod
    def list(self, namespace: str) -> list[dict[str, Any]]:
        raise NotImplementedError

    @abstractmethod
    def delete(self, namespace: str, key: str) -> bool:
        raise NotImplementedError


class MemoryStore(Store):
    """Process-local store. Contents survive close() and a later open()."""

    def __init__(self) -> None:
        self._data: dict[str, dict[str, dict[str, Any]]] = {}
        self._opened = False
        self._lock = threading.Lock()

    def open(self) -> None:
        with self._lock:
            self._opened = True

    def close(self) -> None:
        with self._lock:
            self._opened = False

    def _namespace(self, namespace: str) -> dict[str, dict[str, Any]]:
        if not self._opened:
            raise StorageError("store is not open")
        return self._data.setdefault(namespace, {})

    def get(self, namespace: str, key: str) -> dict[str, Any] | None:
        with self._lock:
            value = self._namespace(namespace).get(key)
            return copy.deepcopy(value) if value is not None else None

    def set(self, namespace: str, key: str, value: dict[str, Any]) -> None:
        with self._lock:
            self._namespace(namespace)[key] = copy.deepcopy(value)

    def list(self, namespace: str) -> list[dict[str, Any]]:
        with self._lock:
            return [copy.deepcopy(value) for value in self._namespace(namespace).values()]

    def delete(self, namespace: str, key: str) -> bool:
        with self._lock:
            return self._namespace(namespace).pop(key, None) is not None
