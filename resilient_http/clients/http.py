# resilient_http/clients/http.py
from __future__ import annotations

import email.parser
import email.policy
import logging
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Tuple, Union
from urllib.parse import parse_qsl

import httpx

from ..core.cache import Store, open_store
from ..core.config import RETRY_METHODS, RETRY_STATUS_CODES, get_settings
from ..core.http import HttpRetryingClient
from ..domain.models import RequestConfig
from ..services.cookies import CookieJar
from ..services.memoize import MemoCache, fingerprint
from ..services.merge import Overrides, merge
from ..services.request_builder import build_request, pace

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Blob:
    data: bytes
    content_type: str = ""

    @property
    def size(self) -> int:
        return len(self.data)


class Http:
    """
    Resilient HTTP client over an ``httpx.AsyncClient``.

    One call runs: merge options -> hooks, URL, query, body -> memoize lookup
    -> cookies -> delay/randelay -> dispatch with timeout + retries
    -> store set-cookie -> memoize store.

    Options are keyword arguments named after ``RequestConfig`` fields
    (``json``, ``form``, ``multipart``, ``search_params``, ``prefix_url``,
    ``timeout``, ``retries``, ``memoize``, ``cookies`` ...).
    """

    # ------------ lifecycle ------------
    def __init__(
        self,
        options: Overrides | None = None,
        *,
        client: Optional[httpx.AsyncClient] = None,
        store_factory: Callable[[str], Store] = open_store,
        dispatcher: Optional[HttpRetryingClient] = None,
    ):
        self.options = merge(self.defaults(), options)
        self._store_factory = store_factory
        self._dispatcher = dispatcher or HttpRetryingClient(client)
        self._jar = CookieJar(store_factory)
        self._memo = MemoCache(store_factory)

    @staticmethod
    def defaults() -> RequestConfig:
        s = get_settings()
        return RequestConfig(
            method="GET",
            headers={"user-agent": s.user_agent},
            retries=s.retries,
            retry_methods=set(RETRY_METHODS),
            retry_status_codes=set(RETRY_STATUS_CODES),
            search_params={},
            timeout=s.timeout_ms,
            build_request=[],
        )

    def extend(self, options: Overrides | None = None, **kw: Any) -> "Http":
        """New client whose options are this client's merged with ``options``; shares transport and stores."""
        return Http(
            merge(self.options, merge(options, kw)),
            store_factory=self._store_factory,
            dispatcher=self._dispatcher,
        )

    async def aclose(self) -> None:
        await self._dispatcher.aclose()

    async def __aenter__(self) -> "Http":
        return self

    async def __aexit__(self, *_exc) -> None:
        await self.aclose()

    @property
    def cookie_jar(self) -> CookieJar:
        return self._jar

    # ------------ core ------------
    async def request(self, input: str, options: Overrides | None = None, **kw: Any) -> httpx.Response:
        config = merge(self.options, merge(options, kw))
        prepared = await build_request(input, config)
        host = prepared.url.host

        key = None
        if config.memoizing:
            key = fingerprint(prepared)
            memoized = await self._memo.lookup(prepared, key)
            if memoized is not None:
                return memoized

        if config.cookies:
            await self._jar.inject(host, prepared.headers)

        await pace(config)

        if config.debug:
            logger.info("[%s] %s%s %s", config.method, host, prepared.url.path, config.model_dump(exclude={"build_request"}))
        response = await self._dispatcher.send(str(prepared.url), prepared.to_httpx(), config)

        if config.cookies:
            await self._jar.absorb(host, response.headers)

        if key is not None:
            await self._memo.store(prepared, key, response, config.memoize)

        return response

    def _with_method(self, method: str, options: Overrides | None, kw: dict) -> RequestConfig:
        return merge(merge(options, kw), {"method": method})

    async def get(self, input: str, options: Overrides | None = None, **kw: Any) -> httpx.Response:
        return await self.request(input, self._with_method("GET", options, kw))

    async def post(self, input: str, options: Overrides | None = None, **kw: Any) -> httpx.Response:
        return await self.request(input, self._with_method("POST", options, kw))

    async def put(self, input: str, options: Overrides | None = None, **kw: Any) -> httpx.Response:
        return await self.request(input, self._with_method("PUT", options, kw))

    async def patch(self, input: str, options: Overrides | None = None, **kw: Any) -> httpx.Response:
        return await self.request(input, self._with_method("PATCH", options, kw))

    async def head(self, input: str, options: Overrides | None = None, **kw: Any) -> httpx.Response:
        return await self.request(input, self._with_method("HEAD", options, kw))

    async def delete(self, input: str, options: Overrides | None = None, **kw: Any) -> httpx.Response:
        return await self.request(input, self._with_method("DELETE", options, kw))

    # ------------ body accessors ------------
    def _accepting(self, accept: str, options: Overrides | None, kw: dict) -> RequestConfig:
        # caller's accept header wins over the accessor default
        return merge({"headers": {"accept": accept}}, merge(options, kw))

    async def text(self, input: str, options: Overrides | None = None, **kw: Any) -> str:
        response = await self.request(input, self._accepting("text/*", options, kw))
        return response.text

    async def json(self, input: str, options: Overrides | None = None, **kw: Any) -> Any:
        """Decoded JSON body, or ``{}`` when the body is not valid JSON."""
        response = await self.request(input, self._accepting("application/json", options, kw))
        try:
            return response.json()
        except ValueError:
            return {}

    async def array_buffer(self, input: str, options: Overrides | None = None, **kw: Any) -> bytes:
        response = await self.request(input, merge(options, kw))
        return response.content

    async def blob(self, input: str, options: Overrides | None = None, **kw: Any) -> Blob:
        response = await self.request(input, merge(options, kw))
        return Blob(response.content, response.headers.get("content-type", ""))

    async def form_data(
        self, input: str, options: Overrides | None = None, **kw: Any
    ) -> List[Tuple[str, Union[str, bytes]]]:
        response = await self.request(input, self._accepting("multipart/form-data", options, kw))
        return parse_form(response)


def parse_form(response: httpx.Response) -> List[Tuple[str, Union[str, bytes]]]:
    """Read a url-encoded or multipart body as ordered (name, value) pairs.

    File parts (those with a filename) keep their raw bytes.
    """
    content_type = response.headers.get("content-type", "")
    if content_type.startswith("multipart/"):
        raw = b"Content-Type: " + content_type.encode("latin-1") + b"\r\n\r\n" + response.content
        message = email.parser.BytesParser(policy=email.policy.HTTP).parsebytes(raw)
        out: List[Tuple[str, Union[str, bytes]]] = []
        for part in message.iter_parts():
            name = part.get_param("name", header="content-disposition")
            if name is None:
                continue
            payload = part.get_payload(decode=True) or b""
            if part.get_filename() is None:
                out.append((name, payload.decode(part.get_content_charset() or "utf-8", errors="replace")))
            else:
                out.append((name, payload))
        return out
    return parse_qsl(response.text, keep_blank_values=True)


http = Http()
