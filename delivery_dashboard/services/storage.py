from abc import ABC, abstractmethod
from threading import Lock
from typing import Any, Dict, Optional


class KeyValueStore(ABC):
    """Session-scoped key/value storage handed to the components that need state."""

    @abstractmethod
    def get(self, key: str, default: Optional[Any] = None) -> Any:
        pass

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        pass

    @abstractmethod
    def clear(self, key: Optional[str] = None) -> None:
        """Drop ``key``, or everything when no key is given."""
        pass


class InMemoryStore(KeyValueStore):
    def __init__(self, initial: Optional[Dict[str, Any]] = None) -> None:
        self._data: Dict[str, Any] = dict(initial or {})
        self._lock = Lock()

    def get(self, key: str, default: Optional[Any] = None) -> Any:
        with self._lock:
            return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._data[key] = value

    def clear(self, key: Optional[str] = None) -> None:
        with self._lock:
            if key is None:
                self._data.clear()
            else:
                self._data.pop(key, None)
