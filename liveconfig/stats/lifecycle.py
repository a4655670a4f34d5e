"""
Rebind statistics recorded into the in-process metric registry.

`configure_rebind_stats` registers the lifecycle component only when both
hold:
- property `liveconfig.stats.metrics.enabled` is "true"
- a `MetricRegistry` component is present in the container
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from liveconfig.common.logging import log_event
from liveconfig.common.ops_metrics import MetricRegistry
from liveconfig.context.container import ComponentContainer
from liveconfig.context.environment import Environment
from liveconfig.context.rebinder import REBIND_STATS_COMPONENT, RebindReport

logger = logging.getLogger(__name__)

STATS_ENABLED_PROPERTY = "liveconfig.stats.metrics.enabled"


class RebindStatsLifecycle:
    def __init__(self, registry: MetricRegistry) -> None:
        self._registry = registry
        self._rebind_total = registry.counter(
            "rebind_total",
            help="Components processed by rebind passes, labeled by outcome.",
            label_names=("outcome",),
        )
        self._passes_total = registry.counter(
            "rebind_passes_total",
            help="Total rebind passes run.",
        )
        self._last_duration = registry.gauge(
            "rebind_last_pass_duration_seconds",
            help="Wall time of the most recent rebind pass.",
        )
        for outcome in ("rebound", "skipped", "failed"):
            self._rebind_total.inc(0.0, labels={"outcome": outcome})

    def record(self, report: RebindReport) -> None:
        self._passes_total.inc()
        self._rebind_total.inc(len(report.rebound), labels={"outcome": "rebound"})
        self._rebind_total.inc(len(report.skipped), labels={"outcome": "skipped"})
        self._rebind_total.inc(len(report.failures), labels={"outcome": "failed"})
        self._last_duration.set(report.duration_ms / 1000.0)


def _property_is_true(env: Environment, key: str) -> bool:
    value: Any = env.get_property(key)
    return value is not None and str(value).strip().lower() == "true"


def configure_rebind_stats(container: ComponentContainer, environment: Environment) -> Optional[str]:
    """
    Conditionally register `RebindStatsLifecycle`. Returns the component name
    when registered, otherwise None.
    """
    if not _property_is_true(environment, STATS_ENABLED_PROPERTY):
        return None
    registries = container.find_component_names_by_type(MetricRegistry)
    if not registries:
        log_event(
            logger,
            "rebind_stats.skipped",
            severity="DEBUG",
            reason="no MetricRegistry component",
        )
        return None

    registry_name = registries[0]
    container.register_definition(
        REBIND_STATS_COMPONENT,
        lambda c: RebindStatsLifecycle(c.get_component(registry_name)),
    )
    log_event(logger, "rebind_stats.registered", registry=registry_name)
    return REBIND_STATS_COMPONENT
