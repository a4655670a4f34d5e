"""
Binds environment values onto tagged components through their pydantic
schema.

Binding is applied in place: the schema is validated against the merge of the
instance's current values and the environment values under the component's
prefix, then every schema field is assigned back onto the same instance.
Keys absent from the environment keep their current value, so binding the
same environment twice is a no-op.
"""

from __future__ import annotations

import logging
import types
import typing
from typing import Any, Dict, Optional, Type

from pydantic import BaseModel, ValidationError

from liveconfig.common.logging import log_event
from liveconfig.context.container import ComponentContainer
from liveconfig.context.environment import Environment
from liveconfig.context.errors import BindingError
from liveconfig.context.properties import PropertiesSpec, canonical_key, find_properties_spec

logger = logging.getLogger(__name__)

_SEQUENCE_ORIGINS = (list, tuple, set, frozenset)


def _strip_optional(annotation: Any) -> Any:
    # Optional[X] / X | None -> X
    if typing.get_origin(annotation) in (typing.Union, types.UnionType):
        args = [a for a in typing.get_args(annotation) if a is not type(None)]
        if len(args) == 1:
            return args[0]
    return annotation


def _nested_model(annotation: Any) -> Optional[Type[BaseModel]]:
    annotation = _strip_optional(annotation)
    if typing.get_origin(annotation) is None and isinstance(annotation, type) and issubclass(annotation, BaseModel):
        return annotation
    return None


def _is_sequence(annotation: Any) -> bool:
    annotation = _strip_optional(annotation)
    origin = typing.get_origin(annotation) or annotation
    return origin in _SEQUENCE_ORIGINS


def _field_key(name: str, alias: Optional[str]) -> str:
    return alias or name


def _current_values(target: Any, schema: Type[BaseModel]) -> Dict[str, Any]:
    values: Dict[str, Any] = {}
    for name, info in schema.model_fields.items():
        if not hasattr(target, name):
            continue
        value = getattr(target, name)
        if isinstance(value, BaseModel):
            value = value.model_dump(by_alias=True)
        values[_field_key(name, info.alias)] = value
    return values


def _environment_values(env: Environment, schema: Type[BaseModel], prefix: str) -> Dict[str, Any]:
    values: Dict[str, Any] = {}
    for name, info in schema.model_fields.items():
        candidates = [name] + ([info.alias] if info.alias else [])
        nested = _nested_model(info.annotation)
        for candidate in candidates:
            key = canonical_key(f"{prefix}.{candidate}" if prefix else candidate)
            if nested is not None:
                sub = _environment_values(env, nested, key)
                if sub:
                    values[_field_key(name, info.alias)] = sub
                    break
                continue
            value = env.get_property(key)
            if value is None:
                continue
            if isinstance(value, str) and _is_sequence(info.annotation):
                value = [part.strip() for part in value.split(",") if part.strip()]
            values[_field_key(name, info.alias)] = value
            break
    return values


def _merge(current: Dict[str, Any], incoming: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(current)
    for k, v in incoming.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _merge(out[k], v)
        else:
            out[k] = v
    return out


class ConfigurationBinder:
    """
    Applies current environment values to tagged components. Registered as a
    container post-processor so components are bound before their
    @post_construct methods run.
    """

    def __init__(self, environment: Environment, container: Optional[ComponentContainer] = None) -> None:
        self._environment = environment
        self._container = container

    @property
    def environment(self) -> Environment:
        return self._environment

    def resolve_spec(self, instance: Any, name: str) -> Optional[PropertiesSpec]:
        spec = find_properties_spec(instance)
        if spec is None and self._container is not None:
            spec = self._container.find_factory_properties(name)
        return spec

    def bind_configuration(self, instance: Any, name: str) -> bool:
        """
        Bind `instance` in place. Returns False when it carries no
        configuration schema. Raises `BindingError` on validation failure;
        the instance is left untouched in that case.
        """
        spec = self.resolve_spec(instance, name)
        if spec is None:
            return False

        incoming = _environment_values(self._environment, spec.schema, spec.prefix)
        merged = _merge(_current_values(instance, spec.schema), incoming)
        try:
            validated = spec.schema.model_validate(merged)
        except ValidationError as e:
            log_event(
                logger,
                "binding.failed",
                severity="WARNING",
                component=name,
                prefix=spec.prefix,
                errors=[f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()],
            )
            raise BindingError(name, e.errors()) from e

        for field_name in spec.schema.model_fields:
            setattr(instance, field_name, getattr(validated, field_name))

        log_event(
            logger,
            "binding.applied",
            severity="DEBUG",
            component=name,
            prefix=spec.prefix,
            keys=sorted(incoming),
        )
        return True

    # ---- ComponentPostProcessor ----

    def before_init(self, component: Any, name: str) -> Any:
        self.bind_configuration(component, name)
        return component

    def after_init(self, component: Any, name: str) -> Any:
        return component
