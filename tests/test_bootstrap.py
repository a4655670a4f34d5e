from __future__ import annotations

from pydantic import BaseModel

from liveconfig.bootstrap import METRIC_REGISTRY_COMPONENT, REFRESH_SCOPE, build_context
from liveconfig.common.config import get_settings
from liveconfig.common.ops_metrics import MetricRegistry
from liveconfig.context import RefreshScope, configuration_properties
from liveconfig.messaging import ENVIRONMENT_CHANGED


@configuration_properties(prefix="cfg-a")
class RetrySettings(BaseModel):
    retries: int = 3


def test_settings_are_read_from_prefixed_env(monkeypatch, tmp_path):
    a = tmp_path / "a.yaml"
    b = tmp_path / "b.yaml"
    monkeypatch.setenv("LIVECONFIG_CONFIG_FILES", f"{a}, {b}")
    monkeypatch.setenv("LIVECONFIG_LOG_LEVEL", "debug")
    monkeypatch.setenv("LIVECONFIG_PORT", "9090")

    s = get_settings()

    assert s.config_file_paths == [a, b]
    assert s.LOG_LEVEL == "DEBUG"
    assert s.PORT == 9090
    assert get_settings() is s


def test_build_context_wires_files_and_components(monkeypatch, tmp_path):
    cfg = tmp_path / "app.yaml"
    cfg.write_text("cfg-a:\n  retries: 6\n", encoding="utf-8")
    monkeypatch.setenv("LIVECONFIG_CONFIG_FILES", str(cfg))

    ctx = build_context(environ={}, metrics=MetricRegistry())

    assert isinstance(ctx.container.get_registered_scope(REFRESH_SCOPE), RefreshScope)
    assert ctx.container.get_component(METRIC_REGISTRY_COMPONENT) is ctx.metrics
    assert ctx.bus.subscriber_count(ENVIRONMENT_CHANGED) == 2

    ctx.container.register_definition("cfg-a", RetrySettings)
    settings = ctx.container.get_component("cfg-a")
    assert settings.retries == 6

    cfg.write_text("cfg-a:\n  retries: 8\n", encoding="utf-8")
    ctx.environment.reload_files(source="test")
    assert settings.retries == 8


def test_env_prefix_setting_applies_to_environment(make_context):
    ctx = make_context(ENV_PREFIX="app", environ={"APP_CFG_A_RETRIES": "11"})
    ctx.container.register_definition("cfg-a", RetrySettings)

    assert ctx.container.get_component("cfg-a").retries == 11


def test_context_registry_exports_error_and_change_counters(make_context):
    ctx = make_context()

    text = ctx.metrics.render_prometheus_text()
    assert 'errors_total{component="event-bus"} 0.0' in text
    assert 'errors_total{component="rebinder"} 0.0' in text
    assert "environment_changes_total 0.0" in text

    ctx.environment.set_properties({"cfg-a.retries": 4}, source="test")

    assert ctx.metrics.value("environment_changes_total") == 1.0
