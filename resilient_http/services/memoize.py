# resilient_http/services/memoize.py
from __future__ import annotations

import hashlib
import json
import logging
from typing import Callable, Optional

import httpx

from ..core.cache import Store, open_store
from ..domain.models import MemoRecord
from .request_builder import PreparedRequest

logger = logging.getLogger(__name__)

# the snapshot body is already decoded; these would make httpx decode or size-check it again
_DROP_HEADERS = {"content-encoding", "content-length", "transfer-encoding"}


def fingerprint(prepared: PreparedRequest) -> str:
    """Stable hash of method, resolved URL, header entries and body."""
    key = json.dumps(
        [
            prepared.method,
            str(prepared.url),
            [[k, v] for k, v in prepared.headers.multi_items()],
            prepared.body_key,
        ],
        separators=(",", ":"),
        default=str,
    )
    return hashlib.sha256(key.encode("utf-8")).hexdigest()


async def snapshot(response: httpx.Response) -> MemoRecord:
    """Read ``response`` into a storable record.

    The body is buffered by httpx, so the caller can still read the same
    response afterwards.
    """
    await response.aread()
    return MemoRecord(
        body=response.text,
        encoding=response.encoding or "utf-8",
        headers=[(k, v) for k, v in response.headers.multi_items() if k not in _DROP_HEADERS],
        status_code=response.status_code,
        reason_phrase=response.reason_phrase,
        http_version=response.http_version,
    )


def restore(record: MemoRecord, request: Optional[httpx.Request] = None) -> httpx.Response:
    return httpx.Response(
        record.status_code,
        headers=record.headers,
        content=record.body.encode(record.encoding, errors="replace"),
        request=request,
        extensions={
            "reason_phrase": record.reason_phrase.encode("ascii", errors="replace"),
            "http_version": record.http_version.encode("ascii"),
            "memoized": True,
        },
    )


class MemoCache:
    """Response memoization, one ``memoize:<hostname>`` store per origin.

    Concurrent identical calls can both miss and both dispatch; nothing
    coalesces in-flight requests.
    """
    def __init__(self, store_factory: Callable[[str], Store] = open_store):
        self._open = store_factory

    def _store(self, hostname: str) -> Store:
        return self._open(f"memoize:{hostname}")

    async def lookup(self, prepared: PreparedRequest, key: str) -> Optional[httpx.Response]:
        raw = await self._store(prepared.url.host).get(key)
        if raw is None:
            return None
        logger.debug("memoize hit %s %s", prepared.method, prepared.url)
        record = raw if isinstance(raw, MemoRecord) else MemoRecord.model_validate(raw)
        return restore(record, prepared.to_httpx())

    async def store(self, prepared: PreparedRequest, key: str, response: httpx.Response, ttl_ms: float) -> None:
        record = await snapshot(response)
        await self._store(prepared.url.host).set(key, record.model_dump(), ttl_ms)
        logger.debug("memoized %s %s for %sms", prepared.method, prepared.url, ttl_ms)
