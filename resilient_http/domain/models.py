from __future__ import annotations

from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Literal, Optional, Set, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

Method = Literal["GET", "POST", "PUT", "PATCH", "HEAD", "DELETE", "OPTIONS"]

# hooks receive the per-call config and may mutate it (sync or async)
Hook = Callable[..., Union[Awaitable[None], None]]


def _header_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class RequestConfig(BaseModel):
    """Every option a request recognises.

    Field defaults are neutral; the client defaults (user-agent, retry sets,
    timeout) come from ``Http.defaults()``. Only fields a caller actually passed
    (``model_fields_set``) take part in a merge.
    """
    model_config = ConfigDict(
        extra="forbid",
        populate_by_name=True,
        arbitrary_types_allowed=True,
    )

    method: Method = "GET"
    headers: Dict[str, str] = Field(default_factory=dict)

    # body sources, first one present wins: json -> form -> multipart
    json_body: Any = Field(default=None, alias="json")
    form: Optional[Dict[str, Any]] = None
    multipart: Optional[Dict[str, Any]] = None

    prefix_url: Optional[str] = None
    search_params: Dict[str, Any] = Field(default_factory=dict)

    cookies: bool = False
    debug: bool = False
    memoize: Optional[float] = Field(default=None, description="ms; 0/None disables")
    delay: Optional[float] = Field(default=None, description="fixed pacing wait, ms")
    randelay: Optional[float] = Field(default=None, description="randomized pacing ceiling, ms")
    timeout: Optional[float] = Field(default=None, description="ms; non-positive disables")

    retries: int = 0
    retry_methods: Set[Method] = Field(default_factory=set)
    retry_status_codes: Set[int] = Field(default_factory=set)

    build_request: List[Hook] = Field(default_factory=list)

    @field_validator("headers", mode="before")
    @classmethod
    def _lowercase_headers(cls, v: Any) -> Any:
        if isinstance(v, dict):
            return {str(k).lower(): _header_value(v[k]) for k in v}
        return v

    @field_validator("method", mode="before")
    @classmethod
    def _upper_method(cls, v: Any) -> Any:
        return v.upper() if isinstance(v, str) else v

    @property
    def memoizing(self) -> bool:
        return self.memoize is not None and self.memoize > 0


class MemoRecord(BaseModel):
    """Serializable snapshot of a response kept by the memoization cache."""
    body: str
    encoding: str = "utf-8"
    headers: List[Tuple[str, str]]
    status_code: int
    reason_phrase: str = ""
    http_version: str = "HTTP/1.1"


class Cookie(BaseModel):
    name: str
    value: str
    origin: str = ""
    expires: Optional[datetime] = None
    max_age: Optional[int] = None
