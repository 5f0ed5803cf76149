from typing import Callable, Dict

import httpx
import pytest

from resilient_http import Http
from resilient_http.core.cache import MemoryStore
from resilient_http.core.http import HttpRetryingClient


@pytest.fixture
def stores() -> Dict[str, MemoryStore]:
    return {}


@pytest.fixture
def store_factory(stores):
    def _open(namespace: str) -> MemoryStore:
        return stores.setdefault(namespace, MemoryStore())
    return _open


@pytest.fixture
def no_backoff(monkeypatch):
    monkeypatch.setattr(HttpRetryingClient, "retry_delay", staticmethod(lambda _e: 0))


@pytest.fixture
def make_client(store_factory) -> Callable[..., Http]:
    def _make(handler, **options) -> Http:
        transport = httpx.MockTransport(handler)
        return Http(
            options,
            client=httpx.AsyncClient(transport=transport),
            store_factory=store_factory,
        )
    return _make
