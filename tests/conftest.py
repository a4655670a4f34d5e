from __future__ import annotations

import logging

import pytest

from liveconfig.bootstrap import LiveConfigContext, build_context
from liveconfig.common.config import Settings, get_settings
from liveconfig.common.ops_metrics import MetricRegistry


@pytest.fixture(autouse=True)
def _clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def restore_root_logging():
    """`init_structured_logging` replaces root handlers; put them back afterwards."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield root
    root.handlers = handlers
    root.setLevel(level)


@pytest.fixture
def make_context(monkeypatch):
    """
    Build an isolated context: no OS environment variables, no config files
    unless given, and a private metric registry.
    """
    for k in ("LIVECONFIG_CONFIG_FILES", "LIVECONFIG_ENV_PREFIX", "LIVECONFIG_ADMIN_TOKEN", "LIVECONFIG_STATS_METRICS_ENABLED"):
        monkeypatch.delenv(k, raising=False)

    def _make(*, environ=None, **settings_overrides) -> LiveConfigContext:
        settings = Settings(**settings_overrides)
        return build_context(settings, environ=dict(environ or {}), metrics=MetricRegistry())

    return _make


@pytest.fixture
def context(make_context) -> LiveConfigContext:
    return make_context()
