# resilient_http/services/encoding.py
from __future__ import annotations

from typing import Any, List, Mapping, Tuple, TypeVar
from urllib.parse import urlencode

import httpx

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


class FormBody:
    """Multi-valued, ordered ``application/x-www-form-urlencoded`` body."""

    def __init__(self) -> None:
        self.fields: List[Tuple[str, Any]] = []

    def append(self, key: str, value: Any) -> None:
        self.fields.append((key, value))

    def encode(self) -> bytes:
        return urlencode([(k, _to_str(v)) for k, v in self.fields]).encode("ascii")

    def __len__(self) -> int:
        return len(self.fields)


class MultipartBody(FormBody):
    """Multi-valued ``multipart/form-data`` body.

    Plain values become form fields; ``bytes``, open binary files and
    ``(filename, content[, type])`` tuples become file parts. Open files are
    passed to httpx as-is and read at send time. The encoding itself
    (boundary, headers) is left to httpx.
    """

    def files(self) -> List[Tuple[str, Any]]:
        out: List[Tuple[str, Any]] = []
        for key, value in self.fields:
            if isinstance(value, tuple):
                out.append((key, value))
            elif isinstance(value, (bytes, bytearray)):
                out.append((key, (None, bytes(value))))
            elif hasattr(value, "read"):
                out.append((key, value))
            else:
                out.append((key, (None, _to_str(value).encode("utf-8"))))
        return out


C = TypeVar("C", httpx.QueryParams, FormBody, MultipartBody)


def _to_str(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def populate(container: C, values: Mapping[str, Any]) -> C:
    """Copy ``values`` into ``container``.

    None is skipped and lists expand to one entry per element. Scalars
    overwrite existing query parameters (last value wins) but are appended to
    form and multipart bodies, which allow repeated keys.

    ``httpx.QueryParams`` is immutable, so always use the returned container.
    """
    for key, value in values.items():
        if value is None:
            continue
        if isinstance(value, list):
            for v in value:
                container = _append(container, key, v)
        elif isinstance(container, httpx.QueryParams):
            container = container.set(key, _to_str(value))
        else:
            container.append(key, value)
    return container


def _append(container: C, key: str, value: Any) -> C:
    if isinstance(container, httpx.QueryParams):
        return container.add(key, _to_str(value))
    container.append(key, value)
    return container
