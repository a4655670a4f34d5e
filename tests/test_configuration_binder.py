from __future__ import annotations

from pathlib import Path
from typing import List, Optional

import pytest
from pydantic import BaseModel, Field

from liveconfig.context import (
    BindingError,
    ComponentContainer,
    ConfigurationBinder,
    Environment,
    configuration_properties,
    find_properties_spec,
)


class TlsSettings(BaseModel):
    enabled: bool = False
    ciphers: List[str] = []


@configuration_properties(prefix="http.client")
class HttpClientSettings(BaseModel):
    base_url: str = "http://localhost"
    timeout_seconds: float = 5.0
    tls: TlsSettings = TlsSettings()
    api_key: Optional[str] = Field(default=None, alias="apiKey")


class Pool(BaseModel):
    size: int = 1


def make_pool() -> Pool:
    return Pool()


def _write(path: Path, text: str) -> Path:
    path.write_text(text, encoding="utf-8")
    return path


def test_binds_nested_values_from_yaml(tmp_path):
    cfg = _write(
        tmp_path / "app.yaml",
        """
http:
  client:
    baseUrl: https://api.example.com
    timeout_seconds: 2.5
    tls:
      enabled: true
      ciphers: [aes128, aes256]
""",
    )
    binder = ConfigurationBinder(Environment(files=[cfg], environ={}))
    settings = HttpClientSettings()

    assert binder.bind_configuration(settings, "http-client") is True
    assert settings.base_url == "https://api.example.com"
    assert settings.timeout_seconds == 2.5
    assert settings.tls.enabled is True
    assert settings.tls.ciphers == ["aes128", "aes256"]


def test_os_environment_uses_relaxed_names_and_beats_files(tmp_path):
    cfg = _write(tmp_path / "app.yaml", "http:\n  client:\n    timeout-seconds: 2.5\n")
    environ = {
        "HTTP_CLIENT_TIMEOUT_SECONDS": "9",
        "HTTP_CLIENT_TLS_CIPHERS": "chacha20, aes256",
        "HTTP_CLIENT_API_KEY": "secret",
    }
    binder = ConfigurationBinder(Environment(files=[cfg], environ=environ))
    settings = HttpClientSettings()

    binder.bind_configuration(settings, "http-client")

    assert settings.timeout_seconds == 9.0
    assert settings.tls.ciphers == ["chacha20", "aes256"]
    assert settings.api_key == "secret"


def test_env_prefix_applies_to_variable_names():
    env = Environment(env_prefix="app", environ={"APP_HTTP_CLIENT_BASE_URL": "https://prefixed"})
    settings = HttpClientSettings()

    ConfigurationBinder(env).bind_configuration(settings, "http-client")

    assert settings.base_url == "https://prefixed"


def test_missing_keys_keep_current_values():
    env = Environment(environ={})
    settings = HttpClientSettings()
    settings.timeout_seconds = 42.0

    ConfigurationBinder(env).bind_configuration(settings, "http-client")

    assert settings.timeout_seconds == 42.0


def test_validation_failure_raises_and_leaves_instance_untouched():
    env = Environment(environ={})
    env.set_properties({"http.client.timeout-seconds": "slow", "http.client.base-url": "https://new"})
    settings = HttpClientSettings()

    with pytest.raises(BindingError) as excinfo:
        ConfigurationBinder(env).bind_configuration(settings, "http-client")

    assert excinfo.value.name == "http-client"
    assert "timeout_seconds" in str(excinfo.value)
    assert settings.base_url == "http://localhost"
    assert settings.timeout_seconds == 5.0


def test_untagged_component_is_not_bound():
    class Plain:
        timeout_seconds = 1.0

    assert ConfigurationBinder(Environment(environ={})).bind_configuration(Plain(), "plain") is False


def test_factory_schema_is_resolved_through_container():
    class Limits(BaseModel):
        max_items: int = 10

    class Holder:
        def __init__(self) -> None:
            self.max_items = 10

    @configuration_properties(prefix="limits", schema=Limits)
    def make_holder() -> Holder:
        return Holder()

    container = ComponentContainer()
    container.register_definition("limits", make_holder)
    env = Environment(environ={})
    env.set_properties({"limits.max-items": 25})

    holder = Holder()
    binder = ConfigurationBinder(env, container)

    assert binder.bind_configuration(holder, "limits") is True
    assert holder.max_items == 25
    assert binder.bind_configuration(Holder(), "unrelated") is False


def test_configuration_properties_requires_a_schema():
    with pytest.raises(TypeError):

        @configuration_properties(prefix="nope")
        class NotAModel:
            pass


def test_schema_taken_from_factory_return_annotation():
    tagged = configuration_properties(prefix="dbPool")(make_pool)
    spec = find_properties_spec(tagged)

    assert spec is not None
    assert spec.schema is Pool
    assert spec.prefix == "db-pool"


class ReplicaSettings(BaseModel):
    hosts: Optional[List[str]] = None
    zones: list[str] | None = None


@configuration_properties(prefix="replicas", schema=ReplicaSettings)
class ReplicaSet:
    def __init__(self) -> None:
        self.hosts = None
        self.zones = None


def test_optional_list_fields_split_comma_separated_values():
    env = Environment(environ={"REPLICAS_ZONES": "eu-1,eu-2"})
    env.set_properties({"replicas.hosts": "db1, db2"})
    replicas = ReplicaSet()

    ConfigurationBinder(env).bind_configuration(replicas, "replicas")

    assert replicas.hosts == ["db1", "db2"]
    assert replicas.zones == ["eu-1", "eu-2"]
