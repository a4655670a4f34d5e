"""
In-process metrics with Prometheus text exposition (v0.0.4).

Counters and gauges, optionally labeled, held in a thread-safe
`MetricRegistry`. Components declare their series on the registry they are
given (the shared `REGISTRY` by default): `errors_total{component}` and
`environment_changes_total`, plus rebind statistics from `liveconfig.stats`
when enabled. No `prometheus_client` dependency.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

LabelKey = Tuple[Tuple[str, str], ...]


def _escape(value: str) -> str:
    return str(value).replace("\\", "\\\\").replace("\n", "\\n").replace('"', '\\"')


def _render_labels(key: LabelKey) -> str:
    if not key:
        return ""
    return "{" + ",".join(f'{k}="{_escape(v)}"' for k, v in key) + "}"


@dataclass
class _Family:
    name: str
    kind: str  # "counter" | "gauge"
    help: str = ""
    label_names: Tuple[str, ...] = ()
    samples: Dict[LabelKey, float] = field(default_factory=dict)

    def key_for(self, labels: Optional[Mapping[str, Any]]) -> LabelKey:
        if not self.label_names:
            return ()
        labels = labels or {}
        missing = [n for n in self.label_names if n not in labels]
        if missing:
            raise ValueError(f"{self.name}: missing label(s) {', '.join(missing)}")
        return tuple((n, str(labels[n])) for n in self.label_names)


class MetricRegistry:
    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._families: Dict[str, _Family] = {}

    def counter(self, name: str, *, help: str = "", label_names: Iterable[str] = ()) -> "Counter":
        return Counter(self, self._declare(name, "counter", help, tuple(label_names)))

    def gauge(self, name: str, *, help: str = "", label_names: Iterable[str] = ()) -> "Gauge":
        return Gauge(self, self._declare(name, "gauge", help, tuple(label_names)))

    def _declare(self, name: str, kind: str, help: str, label_names: Tuple[str, ...]) -> str:
        with self._lock:
            existing = self._families.get(name)
            if existing is None:
                self._families[name] = _Family(name=name, kind=kind, help=help, label_names=label_names)
            elif (existing.kind, existing.label_names) != (kind, label_names):
                raise ValueError(
                    f"Metric {name} already declared as {existing.kind}{list(existing.label_names)}, "
                    f"not {kind}{list(label_names)}"
                )
        return name

    def _family(self, name: str) -> _Family:
        family = self._families.get(name)
        if family is None:
            raise KeyError(f"unknown metric: {name}")
        return family

    def inc(self, name: str, *, by: float = 1.0, labels: Optional[Mapping[str, Any]] = None) -> None:
        with self._lock:
            family = self._family(name)
            key = family.key_for(labels)
            family.samples[key] = family.samples.get(key, 0.0) + float(by)

    def set(self, name: str, *, value: float, labels: Optional[Mapping[str, Any]] = None) -> None:
        with self._lock:
            family = self._family(name)
            family.samples[family.key_for(labels)] = float(value)

    def value(self, name: str, *, labels: Optional[Mapping[str, Any]] = None) -> float:
        """Current sample value; 0.0 for a series that was never touched."""
        with self._lock:
            family = self._family(name)
            return family.samples.get(family.key_for(labels), 0.0)

    def snapshot(self) -> Dict[str, Dict[LabelKey, float]]:
        with self._lock:
            return {name: dict(f.samples) for name, f in self._families.items()}

    def render_prometheus_text(self) -> str:
        out: list[str] = []
        with self._lock:
            for name in sorted(self._families):
                family = self._families[name]
                if family.help:
                    out.append(f"# HELP {name} {family.help}")
                out.append(f"# TYPE {name} {family.kind}")
                out.extend(f"{name}{_render_labels(k)} {v}" for k, v in sorted(family.samples.items()))
        return "\n".join(out) + "\n"


class Counter:
    def __init__(self, registry: MetricRegistry, name: str) -> None:
        self._registry = registry
        self.name = name

    def inc(self, by: float = 1.0, *, labels: Optional[Mapping[str, Any]] = None) -> None:
        if by < 0:
            raise ValueError(f"counter {self.name} cannot decrease")
        self._registry.inc(self.name, by=by, labels=labels)


class Gauge:
    def __init__(self, registry: MetricRegistry, name: str) -> None:
        self._registry = registry
        self.name = name

    def set(self, value: float, *, labels: Optional[Mapping[str, Any]] = None) -> None:
        self._registry.set(self.name, value=value, labels=labels)


# Process-wide default; `build_context(metrics=...)` may supply another registry.
REGISTRY = MetricRegistry()


def errors_counter(registry: MetricRegistry, component: str) -> Counter:
    """
    `errors_total{component}` on `registry`, with the `component` series
    exported at zero before the first error.
    """
    counter = registry.counter(
        "errors_total",
        help="Errors contained by liveconfig, labeled by component.",
        label_names=("component",),
    )
    counter.inc(0, labels={"component": component})
    return counter


def environment_changes_counter(registry: MetricRegistry) -> Counter:
    counter = registry.counter(
        "environment_changes_total",
        help="Environment change events published.",
    )
    counter.inc(0)
    return counter
