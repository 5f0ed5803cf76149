# resilient_http/services/cookies.py
from __future__ import annotations

import logging
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Callable, Dict, Optional

import httpx

from ..core.cache import Store, open_store
from ..domain.models import Cookie

logger = logging.getLogger(__name__)

ATTRIBUTES = {"domain", "expires", "httponly", "maxage", "max-age", "path", "samesite", "secure"}


def _pairs(header: str) -> Dict[str, str]:
    out: Dict[str, str] = {}
    for part in header.split(";"):
        key, _, value = part.partition("=")
        key = key.strip()
        if key:
            out[key] = value.strip()
    return out


def _parse_date(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        date = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        return None
    if date is None:
        return None
    return date if date.tzinfo else date.replace(tzinfo=timezone.utc)


def parse_set_cookie(header: str, origin: str = "") -> Optional[Cookie]:
    """Parse one ``set-cookie`` value.

    The cookie name is the first key that is not a known attribute; attribute-only
    or malformed values give None.
    """
    pairs = _pairs(header)
    name = next((k for k in pairs if k.lower() not in ATTRIBUTES), None)
    if name is None:
        return None
    attrs = {k.lower(): v for k, v in pairs.items() if k != name}
    max_age = None
    raw_max_age = attrs.get("max-age", attrs.get("maxage"))
    if raw_max_age:
        try:
            max_age = int(raw_max_age)
        except ValueError:
            max_age = None
    return Cookie(
        name=name,
        value=pairs[name],
        origin=origin,
        expires=_parse_date(attrs.get("expires")),
        max_age=max_age,
    )


def cookie_ttl_ms(cookie: Cookie, now: Optional[datetime] = None) -> Optional[float]:
    """Remaining lifetime in ms; None for a session cookie, <= 0 once expired."""
    if cookie.max_age is not None:
        return cookie.max_age * 1000.0
    if cookie.expires is None:
        return None
    now = now or datetime.now(timezone.utc)
    return (cookie.expires - now).total_seconds() * 1000


class CookieJar:
    """Per-origin cookie storage, one ``cookies:<hostname>`` store per host."""
    def __init__(self, store_factory: Callable[[str], Store] = open_store):
        self._open = store_factory

    def _store(self, hostname: str) -> Store:
        return self._open(f"cookies:{hostname}")

    async def header(self, hostname: str) -> str:
        return "; ".join(f"{name}={value}" for name, value in await self._store(hostname).entries())

    async def inject(self, hostname: str, headers: httpx.Headers) -> None:
        """Add the jar's cookies for ``hostname`` to the outgoing ``cookie`` header."""
        jar = await self.header(hostname)
        if not jar:
            return
        existing = headers.get("cookie")
        headers["cookie"] = f"{existing}; {jar}" if existing else jar

    async def absorb(self, hostname: str, headers: httpx.Headers) -> None:
        """Store every ``set-cookie`` of a response; expired ones are removed instead."""
        store = self._store(hostname)
        for value in headers.get_list("set-cookie"):
            cookie = parse_set_cookie(value, hostname)
            if cookie is None:
                continue
            ttl = cookie_ttl_ms(cookie)
            if ttl is not None and ttl <= 0:
                await store.delete(cookie.name)
                logger.debug("cookie %s expired for %s", cookie.name, hostname)
                continue
            await store.set(cookie.name, cookie.value, ttl)
            logger.debug("cookie %s stored for %s", cookie.name, hostname)

    async def clear(self, hostname: str) -> None:
        await self._store(hostname).clear()
