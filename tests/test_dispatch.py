import asyncio
import time
from datetime import datetime, timedelta, timezone
from email.utils import format_datetime

import httpx
import pytest

from resilient_http import AbortError, HttpError, RequestConfig
from resilient_http.core.http import HttpRetryingClient, randelay, retry_after_ms


def _config(**kw) -> RequestConfig:
    base = dict(
        retries=2,
        retry_methods={"GET", "HEAD", "DELETE", "OPTIONS"},
        retry_status_codes={403, 408, 413, 429, 500, 502, 503, 504},
        timeout=10000,
    )
    base.update(kw)
    return RequestConfig(**base)


def _dispatcher(handler) -> HttpRetryingClient:
    return HttpRetryingClient(httpx.AsyncClient(transport=httpx.MockTransport(handler)))


URL = "https://api.example.com/items"


@pytest.mark.asyncio
async def test_success_returns_response():
    d = _dispatcher(lambda request: httpx.Response(200, text="ok"))
    response = await d.send(URL, httpx.Request("GET", URL), _config())
    assert response.text == "ok"


@pytest.mark.asyncio
async def test_retries_then_raises_http_error(no_backoff):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(503)

    config = _config()
    with pytest.raises(HttpError) as exc_info:
        await _dispatcher(handler).send(URL, httpx.Request("GET", URL), config)

    assert len(calls) == 3
    err = exc_info.value
    assert err.status == err.code == 503
    assert err.input == URL
    assert err.config is config
    assert err.response.status_code == 503
    assert str(err) == "Service Unavailable"
    # the budget lives in the retry loop, not on the config
    assert config.retries == 2


@pytest.mark.asyncio
async def test_retries_then_succeeds(no_backoff):
    responses = iter([httpx.Response(500), httpx.Response(429), httpx.Response(200, text="done")])
    d = _dispatcher(lambda request: next(responses))
    response = await d.send(URL, httpx.Request("GET", URL), _config())
    assert response.text == "done"


@pytest.mark.asyncio
async def test_non_retryable_method_fails_once(no_backoff):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(503)

    with pytest.raises(HttpError):
        await _dispatcher(handler).send(URL, httpx.Request("POST", URL), _config(method="POST"))
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_non_retryable_status_fails_once(no_backoff):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(404)

    with pytest.raises(HttpError) as exc_info:
        await _dispatcher(handler).send(URL, httpx.Request("GET", URL), _config())
    assert exc_info.value.status == 404
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_timeout_aborts_near_deadline():
    async def never(request):
        await asyncio.sleep(60)

    started = time.monotonic()
    with pytest.raises(AbortError) as exc_info:
        await _dispatcher(never).send(URL, httpx.Request("GET", URL), _config(timeout=50, retries=0))
    elapsed = time.monotonic() - started

    assert 0.04 <= elapsed < 1.0
    assert exc_info.value.input == URL
    assert str(exc_info.value) == "Aborted"


@pytest.mark.asyncio
async def test_aborted_attempts_use_the_retry_budget(no_backoff):
    calls = []

    async def slow_then_fast(request):
        calls.append(request)
        if len(calls) == 1:
            await asyncio.sleep(60)
        return httpx.Response(200, text="second")

    response = await _dispatcher(slow_then_fast).send(URL, httpx.Request("GET", URL), _config(timeout=50))
    assert response.text == "second"
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_transport_timeout_is_an_abort():
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(AbortError):
        await _dispatcher(handler).send(URL, httpx.Request("GET", URL), _config(retries=0))


@pytest.mark.asyncio
@pytest.mark.parametrize("timeout", [0, -1, None, float("inf")])
async def test_non_positive_or_infinite_timeout_means_no_timer(timeout):
    async def handler(request):
        await asyncio.sleep(0.05)
        return httpx.Response(204)

    response = await _dispatcher(handler).send(URL, httpx.Request("GET", URL), _config(timeout=timeout, retries=0))
    assert response.status_code == 204


def test_retry_after_seconds():
    response = httpx.Response(503, headers={"retry-after": "2"})
    assert retry_after_ms(response) == 2000


def test_retry_after_http_date():
    when = datetime.now(timezone.utc) + timedelta(seconds=30)
    response = httpx.Response(503, headers={"retry-after": format_datetime(when, usegmt=True)})
    assert 28000 <= retry_after_ms(response) <= 31000


def test_retry_after_garbage_falls_back_to_jitter(monkeypatch):
    monkeypatch.setattr("random.random", lambda: 0.0)
    response = httpx.Response(503, headers={"retry-after": "soon"})
    assert retry_after_ms(response) is None
    err = HttpError(URL, _config(), response)
    assert HttpRetryingClient.retry_delay(err) == 272


def test_abort_delay_is_jittered(monkeypatch):
    monkeypatch.setattr("random.random", lambda: 0.5)
    # floor(0.5 * (1000 - 271.8 + 1)) + 271.8, rounded up
    assert HttpRetryingClient.retry_delay(AbortError(URL, _config())) == 636


def test_randelay_bounds():
    for _ in range(200):
        assert 272 <= randelay(1000) <= 1001
