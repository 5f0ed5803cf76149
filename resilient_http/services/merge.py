# resilient_http/services/merge.py
from __future__ import annotations

import copy
from typing import Any, Callable, Dict, Iterator, Mapping, Optional, Union

from ..domain.models import RequestConfig

Overrides = Union[RequestConfig, Mapping[str, Any]]


def deep_merge(x: Any, y: Any, memo: Optional[Dict[int, Any]] = None) -> Any:
    """Dicts merge key-wise, lists concatenate, anything else takes ``y``.

    Objects whose id is in ``memo`` are reused instead of copied.
    """
    if isinstance(x, dict) and isinstance(y, dict):
        out = copy.deepcopy(x, memo)
        for k, v in y.items():
            out[k] = deep_merge(out[k], v, memo) if k in out else copy.deepcopy(v, memo)
        return out
    if isinstance(x, list) and isinstance(y, list):
        return copy.deepcopy(x, memo) + copy.deepcopy(y, memo)
    return copy.deepcopy(y, memo)


def _files(value: Any) -> Iterator[Any]:
    if isinstance(value, (list, tuple)):
        for item in value:
            yield from _files(item)
    elif isinstance(value, dict):
        for item in value.values():
            yield from _files(item)
    elif hasattr(value, "read"):
        yield value


def _file_memo(*values: Any) -> Dict[int, Any]:
    # open files cannot be deep-copied; they are shared by reference
    return {id(f): f for f in _files(list(values))}


def _merge_multipart(x: Any, y: Any) -> Any:
    return deep_merge(x, y, _file_memo(x, y))


def _merge_headers(x: Dict[str, str], y: Dict[str, str]) -> Dict[str, str]:
    return {**x, **y}


def _concat(x: list, y: list) -> list:
    return [*x, *y]


# fields not listed here are replaced by the override
STRATEGIES: Dict[str, Callable[[Any, Any], Any]] = {
    "headers": _merge_headers,
    "search_params": deep_merge,
    "json_body": deep_merge,
    "form": deep_merge,
    "multipart": _merge_multipart,
    "build_request": _concat,
}


def as_config(options: Overrides | None) -> RequestConfig:
    if options is None:
        return RequestConfig()
    if isinstance(options, RequestConfig):
        return options
    return RequestConfig.model_validate(dict(options))


def merge(base: Overrides | None, override: Overrides | None) -> RequestConfig:
    """Merge ``override`` on top of ``base`` without touching either.

    Only the fields the override explicitly carries are applied; the result
    remembers the union of both sides' explicit fields so it can be merged again.
    """
    base_cfg = as_config(base)
    over_cfg = as_config(override)
    update: Dict[str, Any] = {}
    for name in over_cfg.model_fields_set:
        value = getattr(over_cfg, name)
        strategy = STRATEGIES.get(name)
        if strategy is not None:
            update[name] = strategy(getattr(base_cfg, name), value)
        else:
            update[name] = copy.deepcopy(value)
    # hooks are shared by reference; a bound method must not drag its owner into the copy
    memo = {id(hook): hook for hook in base_cfg.build_request}
    memo.update(_file_memo(base_cfg.multipart))
    return copy.deepcopy(base_cfg, memo).model_copy(update=update)
