from __future__ import annotations
import asyncio
import logging
import math
import random
import time
from datetime import timezone
from email.utils import parsedate_to_datetime
from http import HTTPStatus
from typing import Optional
import httpx

from ..domain.models import RequestConfig

logger = logging.getLogger(__name__)

DEFAULT_BACKOFF_MS = 1000


class RequestError(Exception):
    """Base for failures raised by the dispatcher; carries the call's input and config."""
    def __init__(self, message: str, input: str, config: RequestConfig):
        super().__init__(message)
        self.input = input
        self.config = config


class HttpError(RequestError):
    """The transport answered, but with a non-success status."""
    def __init__(self, input: str, config: RequestConfig, response: httpx.Response):
        self.response = response
        self.status = response.status_code
        super().__init__(_status_text(response), input, config)

    @property
    def code(self) -> int:
        return self.status


class AbortError(RequestError):
    """The timeout elapsed before the transport resolved."""
    def __init__(self, input: str, config: RequestConfig):
        super().__init__("Aborted", input, config)


def _status_text(response: httpx.Response) -> str:
    if response.reason_phrase:
        return response.reason_phrase
    try:
        return HTTPStatus(response.status_code).phrase
    except ValueError:
        return f"HTTP {response.status_code}"


def randelay(delay: float) -> int:
    """Random wait in ms between ``delay * e * 0.1`` and ``delay``."""
    lo, hi = delay * math.e * 0.1, delay
    return math.ceil(math.floor(random.random() * (hi - lo + 1)) + lo)


def retry_after_ms(response: httpx.Response) -> Optional[float]:
    """Delay requested by a ``retry-after`` header (HTTP date or seconds), if usable."""
    after = response.headers.get("retry-after")
    if after is None:
        return None
    try:
        date = parsedate_to_datetime(after)
    except (TypeError, ValueError, IndexError):
        date = None
    if date is not None:
        if date.tzinfo is None:
            date = date.replace(tzinfo=timezone.utc)
        return abs(date.timestamp() - time.time()) * 1000
    try:
        delay = float(after) * 1000
    except ValueError:
        return None
    return delay if math.isfinite(delay) else None


class HttpRetryingClient:
    """httpx dispatcher: timeout-bounded sends, typed errors, retry/backoff."""
    def __init__(self, client: Optional[httpx.AsyncClient] = None):
        # timeouts are enforced per attempt by send(), not by httpx
        self._http = client or httpx.AsyncClient(timeout=None)

    async def aclose(self) -> None:
        await self._http.aclose()

    async def attempt(self, input: str, request: httpx.Request, config: RequestConfig) -> httpx.Response:
        """One dispatch, raced against ``config.timeout`` when it is finite and positive."""
        timeout = config.timeout
        try:
            if timeout is not None and math.isfinite(timeout) and timeout > 0:
                response = await asyncio.wait_for(self._http.send(request), timeout / 1000)
            else:
                response = await self._http.send(request)
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            raise AbortError(input, config) from e
        if not response.is_success:
            raise HttpError(input, config, response)
        return response

    @staticmethod
    def should_retry(error: RequestError, config: RequestConfig, remaining: int) -> bool:
        if remaining <= 0 or config.method not in config.retry_methods:
            return False
        if isinstance(error, AbortError):
            return True
        return isinstance(error, HttpError) and error.status in config.retry_status_codes

    @staticmethod
    def retry_delay(error: RequestError) -> float:
        delay = None
        if isinstance(error, HttpError):
            delay = retry_after_ms(error.response)
        if delay is None or not math.isfinite(delay):
            delay = randelay(DEFAULT_BACKOFF_MS)
        return delay

    async def send(self, input: str, request: httpx.Request, config: RequestConfig) -> httpx.Response:
        """Dispatch ``request``, retrying transient failures until the budget runs out."""
        remaining = config.retries
        while True:
            try:
                return await self.attempt(input, request, config)
            except RequestError as e:
                if not self.should_retry(e, config, remaining):
                    raise
                delay = self.retry_delay(e)
                logger.warning(
                    "%s %s failed (%s); retrying in %.0fms, %s retries left after this one.",
                    config.method, input, e, delay, remaining - 1,
                )
                await asyncio.sleep(delay / 1000)
                remaining -= 1
