"""Composition root: wires environment, container, binder and rebinder."""

from __future__ import annotations

from dataclasses import dataclass
from typing import MutableMapping, Optional

from liveconfig.common.config import Settings, get_settings
from liveconfig.common.ops_metrics import REGISTRY, MetricRegistry
from liveconfig.context.binder import ConfigurationBinder
from liveconfig.context.container import ComponentContainer, RefreshScope
from liveconfig.context.environment import Environment
from liveconfig.context.rebinder import ConfigurationPropertiesRebinder
from liveconfig.messaging.envelope import ENVIRONMENT_CHANGED
from liveconfig.messaging.local import InMemoryEventBus
from liveconfig.stats.lifecycle import STATS_ENABLED_PROPERTY, configure_rebind_stats

REFRESH_SCOPE = "refresh"
METRIC_REGISTRY_COMPONENT = "metric_registry"


@dataclass
class LiveConfigContext:
    settings: Settings
    bus: InMemoryEventBus
    environment: Environment
    container: ComponentContainer
    binder: ConfigurationBinder
    rebinder: ConfigurationPropertiesRebinder
    refresh_scope: RefreshScope
    metrics: MetricRegistry


def build_context(
    settings: Optional[Settings] = None,
    *,
    environ: Optional[MutableMapping[str, str]] = None,
    metrics: Optional[MetricRegistry] = None,
) -> LiveConfigContext:
    """
    Build the default dependency graph. Components are declared on
    `context.container` afterwards; the refresh scope and post-processors are
    in place before the first component is created.
    """
    resolved = settings or get_settings()
    registry = metrics if metrics is not None else REGISTRY

    bus = InMemoryEventBus(metrics=registry)
    environment = Environment(
        bus=bus,
        files=resolved.config_file_paths,
        env_prefix=resolved.ENV_PREFIX,
        environ=environ,
        metrics=registry,
    )
    if resolved.STATS_METRICS_ENABLED:
        environment.set_properties({STATS_ENABLED_PROPERTY: "true"}, source="bootstrap")

    container = ComponentContainer()
    refresh_scope = RefreshScope()
    container.register_scope(REFRESH_SCOPE, refresh_scope)
    container.register_singleton(METRIC_REGISTRY_COMPONENT, registry)

    binder = ConfigurationBinder(environment, container)
    rebinder = ConfigurationPropertiesRebinder(container, binder, metrics=registry)
    container.add_post_processor(binder)
    container.add_post_processor(rebinder)

    # Rebind tracked components first, then drop refresh-scoped instances.
    rebinder.attach(bus)
    bus.subscribe(ENVIRONMENT_CHANGED, lambda _envelope: refresh_scope.refresh_all())

    configure_rebind_stats(container, environment)

    return LiveConfigContext(
        settings=resolved,
        bus=bus,
        environment=environment,
        container=container,
        binder=binder,
        rebinder=rebinder,
        refresh_scope=refresh_scope,
        metrics=registry,
    )
