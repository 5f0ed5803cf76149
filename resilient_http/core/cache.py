from __future__ import annotations
import time
from typing import Any, Dict, List, Optional, Protocol, Tuple


class Store(Protocol):
    """Key/value storage used for cookies and memoized responses.

    Entries written with a ttl are treated as absent once it has elapsed.
    """

    async def get(self, key: str) -> Optional[Any]: ...

    async def set(self, key: str, value: Any, ttl_ms: Optional[float] = None) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def entries(self) -> List[Tuple[str, Any]]: ...

    async def clear(self) -> None: ...


class MemoryStore:
    """Process-local TTL store. Expiry is checked lazily on read."""
    def __init__(self, max_items: int = 500):
        self._max = max_items
        self._store: Dict[str, Tuple[Optional[float], Any]] = {}

    def _expired(self, exp: Optional[float]) -> bool:
        return exp is not None and exp <= time.time()

    async def get(self, key: str) -> Optional[Any]:
        item = self._store.get(key)
        if not item:
            return None
        exp, val = item
        if self._expired(exp):
            self._store.pop(key, None)
            return None
        return val

    async def set(self, key: str, value: Any, ttl_ms: Optional[float] = None) -> None:
        if key not in self._store and len(self._store) >= self._max:
            # drop the entry closest to expiry; session entries go last
            oldest = min(
                self._store.items(),
                key=lambda p: p[1][0] if p[1][0] is not None else float("inf"),
            )[0]
            self._store.pop(oldest, None)
        exp = time.time() + ttl_ms / 1000 if ttl_ms is not None else None
        self._store[key] = (exp, value)

    async def delete(self, key: str) -> None:
        self._store.pop(key, None)

    async def entries(self) -> List[Tuple[str, Any]]:
        out: List[Tuple[str, Any]] = []
        for key, (exp, val) in list(self._store.items()):
            if self._expired(exp):
                self._store.pop(key, None)
                continue
            out.append((key, val))
        return out

    async def clear(self) -> None:
        self._store.clear()


# namespace ("cookies:<host>", "memoize:<host>") -> store, shared by every client
_stores: Dict[str, MemoryStore] = {}


def open_store(namespace: str) -> Store:
    store = _stores.get(namespace)
    if store is None:
        store = _stores[namespace] = MemoryStore()
    return store


def reset_stores() -> None:
    _stores.clear()
