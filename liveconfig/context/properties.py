"""
Opt-in tag for components whose fields come from external configuration.

A component declares its configuration schema (a pydantic model) either on
its class:

    @configuration_properties(prefix="http.client")
    class HttpClientSettings(BaseModel):
        timeout_seconds: float = 5.0

or on the factory function that builds it:

    @configuration_properties(prefix="retry", schema=RetrySchema)
    def retry_policy() -> RetryPolicy:
        return RetryPolicy()
"""

from __future__ import annotations

import re
import typing
from dataclasses import dataclass
from typing import Any, Callable, Optional, Type, TypeVar

from pydantic import BaseModel

PROPERTIES_ATTR = "__liveconfig_properties__"

T = TypeVar("T")

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


def canonical_key(key: str) -> str:
    """
    Relaxed property name: lowercase, dot-separated, dashes inside segments.

    `cfg_a.maxRetries`, `CFG-A.MAX_RETRIES` and `cfg-a.max-retries` all map to
    `cfg-a.max-retries`.
    """
    parts = []
    for segment in str(key or "").strip().strip(".").split("."):
        seg = _CAMEL_BOUNDARY.sub("-", segment.strip())
        seg = seg.replace("_", "-").lower()
        if seg:
            parts.append(seg)
    return ".".join(parts)


@dataclass(frozen=True)
class PropertiesSpec:
    prefix: str
    schema: Type[BaseModel]


def _schema_from_return_annotation(fn: Callable[..., Any]) -> Optional[Type[BaseModel]]:
    try:
        hints = typing.get_type_hints(fn)
    except Exception:  # noqa: BLE001 (unresolvable forward refs mean "no hint")
        return None
    ret = hints.get("return")
    if isinstance(ret, type) and issubclass(ret, BaseModel):
        return ret
    return None


def configuration_properties(
    prefix: str = "", *, schema: Optional[Type[BaseModel]] = None
) -> Callable[[T], T]:
    """
    Tag a class or factory function as carrying external configuration.

    When `schema` is omitted the class itself (if it is a pydantic model) or
    the factory's return annotation is used.
    """

    def _decorate(target: T) -> T:
        resolved = schema
        if resolved is None:
            if isinstance(target, type) and issubclass(target, BaseModel):
                resolved = target
            elif callable(target):
                resolved = _schema_from_return_annotation(target)
        if resolved is None:
            raise TypeError(
                f"configuration_properties on {getattr(target, '__qualname__', target)!r} "
                "needs a pydantic schema"
            )
        setattr(target, PROPERTIES_ATTR, PropertiesSpec(prefix=canonical_key(prefix), schema=resolved))
        return target

    return _decorate


def find_properties_spec(target: Any) -> Optional[PropertiesSpec]:
    """
    Return the tag carried by `target`'s type (or by `target` itself when it is
    a class or factory function), searching base classes.
    """
    holder = target if isinstance(target, type) or _is_factory_function(target) else type(target)
    spec = getattr(holder, PROPERTIES_ATTR, None)
    return spec if isinstance(spec, PropertiesSpec) else None


def _is_factory_function(obj: Any) -> bool:
    return callable(obj) and not isinstance(obj, type) and hasattr(obj, "__code__")
