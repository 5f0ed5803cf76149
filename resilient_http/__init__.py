from .clients.http import Blob, Http, http
from .core.logging import configure_logging
from .core.http import AbortError, HttpError, RequestError
from .domain.models import RequestConfig
from .services.merge import merge

__all__ = [
    "AbortError",
    "Blob",
    "Http",
    "HttpError",
    "RequestConfig",
    "RequestError",
    "configure_logging",
    "http",
    "merge",
]
