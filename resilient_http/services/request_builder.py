# resilient_http/services/request_builder.py
from __future__ import annotations

import asyncio
import inspect
import json
import logging
from dataclasses import dataclass
from typing import Any, Optional, Tuple

import httpx

from ..core.http import randelay
from ..domain.models import RequestConfig
from .encoding import FORM_CONTENT_TYPE, FormBody, MultipartBody, populate

logger = logging.getLogger(__name__)

# inputs starting with one of these are appended to the prefix as-is
_APPEND_MARKERS = ("#", "&", "?")


@dataclass
class PreparedRequest:
    """Everything needed to dispatch one call, before cookies and pacing."""
    input: str
    url: httpx.URL
    config: RequestConfig
    headers: httpx.Headers
    content: Optional[bytes] = None
    multipart: Optional[MultipartBody] = None
    # body as it should be fingerprinted (multipart boundaries are random)
    body_key: Any = None

    @property
    def method(self) -> str:
        return self.config.method

    def to_httpx(self) -> httpx.Request:
        if self.multipart is not None:
            return httpx.Request(
                self.method, self.url, headers=self.headers, files=self.multipart.files()
            )
        return httpx.Request(self.method, self.url, headers=self.headers, content=self.content)


async def run_hooks(config: RequestConfig) -> None:
    """Run ``build_request`` hooks in order, awaiting each before the next."""
    for hook in config.build_request:
        result = hook(config)
        if inspect.isawaitable(result):
            await result


def resolve_url(input: str, prefix_url: Optional[str] = None) -> httpx.URL:
    if not prefix_url:
        url = httpx.URL(input)
        if not url.is_absolute_url:
            raise httpx.InvalidURL(f"Relative URL {input!r} requires a prefix_url")
        return url
    if input.startswith(_APPEND_MARKERS):
        # a bare origin gets its "/" path first so the marker cannot end up in the host
        _, _, rest = prefix_url.partition("://")
        if not any(c in rest for c in "/?#"):
            prefix_url += "/"
        return httpx.URL(prefix_url + input)
    base = prefix_url if prefix_url.endswith("/") else prefix_url + "/"
    return httpx.URL(base).join(input[1:] if input.startswith("/") else input)


def encode_body(config: RequestConfig, headers: httpx.Headers) -> Tuple[Optional[bytes], Optional[MultipartBody], Any]:
    """Pick the body source (json, then form, then multipart) and encode it."""
    if config.json_body is not None:
        text = json.dumps(config.json_body)
        if "content-type" not in headers:
            headers["content-type"] = "application/json"
        return text.encode("utf-8"), None, text
    if config.form is not None:
        encoded = populate(FormBody(), config.form).encode()
        if "content-type" not in headers:
            headers["content-type"] = FORM_CONTENT_TYPE
        return encoded, None, encoded.decode("ascii")
    if config.multipart is not None:
        body = populate(MultipartBody(), config.multipart)
        return None, body, [[k, repr(v)] for k, v in body.fields]
    return None, None, None


async def build_request(input: str, config: RequestConfig) -> PreparedRequest:
    """Resolve URL, query and body for one call. ``config`` is the call's own copy."""
    await run_hooks(config)

    url = resolve_url(input, config.prefix_url)
    if config.search_params:
        url = url.copy_with(params=populate(url.params, config.search_params))

    headers = httpx.Headers(config.headers)
    content, multipart, body_key = encode_body(config, headers)
    return PreparedRequest(
        input=input,
        url=url,
        config=config,
        headers=headers,
        content=content,
        multipart=multipart,
        body_key=body_key,
    )


async def pace(config: RequestConfig) -> None:
    """Fixed ``delay`` then randomized ``randelay`` wait before dispatch."""
    if config.delay:
        await asyncio.sleep(config.delay / 1000)
    if config.randelay:
        wait = randelay(config.randelay)
        logger.debug("randelay %sms", wait)
        await asyncio.sleep(wait / 1000)
