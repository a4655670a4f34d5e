"""
Rebinds configuration-tagged components when the environment changes.

The rebinder is a container post-processor: every component that carries a
configuration schema (on its class, or on the factory that built it) is
recorded by name as it is initialized. On an `environment.changed` event, or
an explicit `rebind` call, each recorded component is re-bound in place from
the current environment and its initialization lifecycle is re-run, so
@post_construct side effects fire again and every holder of a reference sees
the new values.

Components owned by a `RefreshScope` are never recorded or rebound; the
scope rebuilds them itself.

Failure policy: one failing component does not block the others. A pass
captures each failure, continues, and raises a single `RebindError` at the
end listing every failure.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Set

from liveconfig.common.logging import log_event
from liveconfig.common.ops_metrics import REGISTRY, MetricRegistry, errors_counter
from liveconfig.context.binder import ConfigurationBinder
from liveconfig.context.container import ComponentContainer
from liveconfig.context.errors import RebindError
from liveconfig.context.properties import find_properties_spec
from liveconfig.context.scope import ScopeClassifier
from liveconfig.messaging.envelope import ENVIRONMENT_CHANGED, EventEnvelope
from liveconfig.messaging.local import InMemoryEventBus

logger = logging.getLogger(__name__)

REBIND_STATS_COMPONENT = "rebind_stats_lifecycle"


@dataclass
class RebindReport:
    rebound: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failures: Dict[str, str] = field(default_factory=dict)
    duration_ms: int = 0

    @property
    def ok(self) -> bool:
        return not self.failures

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rebound": sorted(self.rebound),
            "skipped": sorted(self.skipped),
            "failures": dict(sorted(self.failures.items())),
            "duration_ms": self.duration_ms,
        }


class ConfigurationPropertiesRebinder:
    def __init__(
        self,
        container: ComponentContainer,
        binder: ConfigurationBinder,
        *,
        classifier: Optional[ScopeClassifier] = None,
        metrics: Optional[MetricRegistry] = None,
    ) -> None:
        self._container = container
        self._binder = binder
        self._classifier = classifier or ScopeClassifier(container)
        self._errors_total = errors_counter(metrics if metrics is not None else REGISTRY, "rebinder")
        # Guards `_components` and `_name_locks`; never held while binding.
        self._lock = threading.Lock()
        self._components: Dict[str, Any] = {}
        self._name_locks: Dict[str, threading.RLock] = {}

    # ---- registry ----

    def register(self, name: str, instance: Any) -> bool:
        """
        Record `instance` under `name` if it carries a configuration schema and
        is not refresh-scoped. Latest registration wins.
        """
        if self._classifier.is_excluded(name):
            return False
        has_schema = find_properties_spec(instance) is not None
        if not has_schema:
            has_schema = self._container.find_factory_properties(name) is not None
        if not has_schema:
            return False

        with self._lock:
            self._components[name] = instance
        log_event(logger, "component.registered", severity="DEBUG", component=name)
        return True

    def list_names(self) -> Set[str]:
        with self._lock:
            return set(self._components)

    def get_bean_names(self) -> Set[str]:
        """Snapshot copy of the tracked component names."""
        return self.list_names()

    def _lock_for(self, name: str) -> threading.RLock:
        with self._lock:
            lock = self._name_locks.get(name)
            if lock is None:
                lock = threading.RLock()
                self._name_locks[name] = lock
            return lock

    # ---- rebind ----

    def rebind(self, name: str) -> bool:
        """
        Re-bind one component in place and re-run its initialization.

        Returns False (no-op) when `name` no longer resolves to a component or
        is refresh-scoped. `BindingError` and errors raised by initialization
        propagate.
        """
        if not self._container.contains_component(name):
            log_event(logger, "rebind.skipped", severity="DEBUG", component=name, reason="not_found")
            return False
        if self._classifier.is_excluded(name):
            log_event(logger, "rebind.skipped", severity="DEBUG", component=name, reason="refresh_scope")
            return False

        # Same-name rebinds are serialized; different names run in parallel.
        with self._lock_for(name):
            instance = self._container.get_component(name)
            self._binder.bind_configuration(instance, name)
            self._container.initialize_component(instance, name)
        log_event(logger, "rebind.completed", severity="DEBUG", component=name)
        return True

    def rebind_all(self) -> RebindReport:
        """
        Rebind every tracked component. Raises `RebindError` after the pass if
        any component failed; the others are still rebound.
        """
        start = time.perf_counter()
        report = RebindReport()
        errors: Dict[str, Exception] = {}

        for name in sorted(self.get_bean_names()):
            try:
                if self.rebind(name):
                    report.rebound.append(name)
                else:
                    report.skipped.append(name)
            except Exception as e:  # noqa: BLE001
                errors[name] = e
                report.failures[name] = str(e)
                self._errors_total.inc(labels={"component": "rebinder"})
                log_event(
                    logger,
                    "rebind.failed",
                    severity="ERROR",
                    exc_info=True,
                    component=name,
                    error=type(e).__name__,
                )

        report.duration_ms = int(max(0.0, (time.perf_counter() - start) * 1000.0))
        self._record_stats(report)
        log_event(
            logger,
            "rebind.pass_completed",
            severity="WARNING" if errors else "INFO",
            rebound=len(report.rebound),
            skipped=len(report.skipped),
            failed=len(report.failures),
            duration_ms=report.duration_ms,
        )
        if errors:
            raise RebindError(errors, report)
        return report

    def _record_stats(self, report: RebindReport) -> None:
        if not self._container.contains_component(REBIND_STATS_COMPONENT):
            return
        self._container.get_component(REBIND_STATS_COMPONENT).record(report)

    # ---- change notification ----

    def on_environment_change(self, envelope: EventEnvelope) -> None:
        log_event(
            logger,
            "rebind.triggered",
            trace_id=envelope.trace_id,
            source=envelope.source,
            keys=list(envelope.payload.get("keys") or []),
        )
        self.rebind_all()

    def attach(self, bus: InMemoryEventBus) -> Callable[[], None]:
        """Subscribe to `environment.changed`; returns the unsubscribe callable."""
        return bus.subscribe(ENVIRONMENT_CHANGED, self.on_environment_change)

    # ---- ComponentPostProcessor ----

    def before_init(self, component: Any, name: str) -> Any:
        self.register(name, component)
        return component

    def after_init(self, component: Any, name: str) -> Any:
        return component
