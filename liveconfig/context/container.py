"""
Named component container with scopes, post-processors and an
initialization lifecycle.

Components are declared with a factory (a class or a callable) and a scope
name. `singleton` components are built once, `prototype` components on every
lookup, and any other scope name must be registered with `register_scope`.
Every new instance runs through `initialize_component`:

1. `before_init` of every post-processor (in registration order)
2. methods tagged with `@post_construct`
3. `after_init` of every post-processor
"""

from __future__ import annotations

import inspect
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Protocol, runtime_checkable

from liveconfig.common.logging import log_event
from liveconfig.context.errors import ComponentNotFoundError
from liveconfig.context.properties import PropertiesSpec, find_properties_spec

logger = logging.getLogger(__name__)

SINGLETON = "singleton"
PROTOTYPE = "prototype"

_POST_CONSTRUCT_ATTR = "__liveconfig_post_construct__"


def post_construct(fn: Callable[..., Any]) -> Callable[..., Any]:
    """Mark a no-argument method to run on every (re)initialization."""
    setattr(fn, _POST_CONSTRUCT_ATTR, True)
    return fn


@runtime_checkable
class ComponentPostProcessor(Protocol):
    """Hook into component initialization.

    - ``before_init``: called before @post_construct methods
    - ``after_init``: called after @post_construct methods

    Either may return a replacement instance; ``None`` keeps the current one.
    """

    def before_init(self, component: Any, name: str) -> Any: ...

    def after_init(self, component: Any, name: str) -> Any: ...


class Scope(Protocol):
    def get(self, name: str, object_factory: Callable[[], Any]) -> Any: ...

    def remove(self, name: str) -> Any: ...


class RefreshScope:
    """
    Caches instances until they are refreshed; the next lookup builds a fresh
    instance from the current environment. Components in this scope are
    owned by the scope and skipped by the rebinder.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._cache: Dict[str, Any] = {}

    def get(self, name: str, object_factory: Callable[[], Any]) -> Any:
        with self._lock:
            if name not in self._cache:
                self._cache[name] = object_factory()
            return self._cache[name]

    def remove(self, name: str) -> Any:
        with self._lock:
            return self._cache.pop(name, None)

    def refresh(self, name: str) -> bool:
        return self.remove(name) is not None

    def refresh_all(self) -> List[str]:
        with self._lock:
            names = sorted(self._cache)
            self._cache.clear()
        log_event(logger, "refresh_scope.refreshed", names=names)
        return names


@dataclass(frozen=True)
class ComponentDefinition:
    name: str
    factory: Callable[..., Any]
    scope: str = SINGLETON
    factory_properties: Optional[PropertiesSpec] = None


def _takes_container(factory: Callable[..., Any]) -> bool:
    if isinstance(factory, type):
        return False
    try:
        params = inspect.signature(factory).parameters.values()
    except (TypeError, ValueError):
        return False
    return any(
        p.kind in (p.POSITIONAL_ONLY, p.POSITIONAL_OR_KEYWORD) and p.default is p.empty for p in params
    )


class ComponentContainer:
    def __init__(self) -> None:
        # Re-entrant: factories may look up other components.
        self._lock = threading.RLock()
        self._definitions: Dict[str, ComponentDefinition] = {}
        self._singletons: Dict[str, Any] = {}
        self._scopes: Dict[str, Scope] = {}
        self._post_processors: List[ComponentPostProcessor] = []

    # ---- registration ----

    def register_definition(
        self, name: str, factory: Callable[..., Any], *, scope: str = SINGLETON
    ) -> ComponentDefinition:
        """
        Declare a component. `factory` is a class (called with no arguments) or
        a callable that may take the container as its only argument.
        """
        key = str(name or "").strip()
        if not key:
            raise ValueError("component name is required")
        factory_properties = None if isinstance(factory, type) else find_properties_spec(factory)
        definition = ComponentDefinition(
            name=key,
            factory=factory,
            scope=str(scope or SINGLETON),
            factory_properties=factory_properties,
        )
        with self._lock:
            self._definitions[key] = definition
            self._singletons.pop(key, None)
        return definition

    def register_singleton(self, name: str, instance: Any) -> None:
        """Register a pre-built instance. It is not run through initialization."""
        key = str(name or "").strip()
        if not key:
            raise ValueError("component name is required")
        with self._lock:
            self._singletons[key] = instance

    def register_scope(self, name: str, scope: Scope) -> None:
        if name in (SINGLETON, PROTOTYPE):
            raise ValueError(f"cannot replace built-in scope {name!r}")
        with self._lock:
            self._scopes[str(name)] = scope

    def add_post_processor(self, post_processor: ComponentPostProcessor) -> None:
        with self._lock:
            self._post_processors.append(post_processor)

    # ---- lookup ----

    def contains_component(self, name: str) -> bool:
        with self._lock:
            return name in self._singletons or name in self._definitions

    def contains_definition(self, name: str) -> bool:
        with self._lock:
            return name in self._definitions

    def get_definition(self, name: str) -> ComponentDefinition:
        with self._lock:
            definition = self._definitions.get(name)
        if definition is None:
            raise ComponentNotFoundError(name)
        return definition

    def find_factory_properties(self, name: str) -> Optional[PropertiesSpec]:
        with self._lock:
            definition = self._definitions.get(name)
        return definition.factory_properties if definition is not None else None

    def registered_scope_names(self) -> List[str]:
        with self._lock:
            return list(self._scopes)

    def get_registered_scope(self, name: str) -> Optional[Scope]:
        with self._lock:
            return self._scopes.get(name)

    def component_names(self) -> List[str]:
        with self._lock:
            return sorted(set(self._definitions) | set(self._singletons))

    def find_component_names_by_type(self, cls: type) -> List[str]:
        with self._lock:
            names = {n for n, inst in self._singletons.items() if isinstance(inst, cls)}
            names.update(
                n
                for n, d in self._definitions.items()
                if isinstance(d.factory, type) and issubclass(d.factory, cls)
            )
        return sorted(names)

    def get_component(self, name: str) -> Any:
        with self._lock:
            if name in self._singletons:
                return self._singletons[name]
            definition = self._definitions.get(name)
            if definition is None:
                raise ComponentNotFoundError(name)

            if definition.scope == SINGLETON:
                instance = self._create(definition)
                self._singletons[name] = instance
                return instance

        if definition.scope == PROTOTYPE:
            return self._create(definition)

        scope = self.get_registered_scope(definition.scope)
        if scope is None:
            raise ValueError(f"No scope registered for scope name {definition.scope!r} (component {name!r})")
        return scope.get(name, lambda: self._create(definition))

    # ---- lifecycle ----

    def _create(self, definition: ComponentDefinition) -> Any:
        factory = definition.factory
        instance = factory(self) if _takes_container(factory) else factory()
        instance = self.initialize_component(instance, definition.name)
        log_event(
            logger,
            "component.created",
            severity="DEBUG",
            component=definition.name,
            scope=definition.scope,
        )
        return instance

    def initialize_component(self, instance: Any, name: str) -> Any:
        with self._lock:
            post_processors = list(self._post_processors)

        for pp in post_processors:
            result = pp.before_init(instance, name)
            if result is not None:
                instance = result

        for method in _post_construct_methods(instance):
            method()

        for pp in post_processors:
            result = pp.after_init(instance, name)
            if result is not None:
                instance = result
        return instance


def _post_construct_methods(instance: Any) -> List[Callable[[], Any]]:
    methods: List[Callable[[], Any]] = []
    for attr, fn in inspect.getmembers(type(instance), predicate=inspect.isfunction):
        if getattr(fn, _POST_CONSTRUCT_ATTR, False):
            methods.append(getattr(instance, attr))
    return methods
