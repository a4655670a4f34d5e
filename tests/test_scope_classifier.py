from __future__ import annotations

import threading
import time

from liveconfig.context import (
    ComponentContainer,
    ConfigurationBinder,
    ConfigurationPropertiesRebinder,
    Environment,
    RefreshScope,
    ScopeClassifier,
)


class _Thing:
    pass


class _OtherScope:
    def get(self, name, object_factory):
        return object_factory()

    def remove(self, name):
        return None


def test_nothing_excluded_without_refresh_scope():
    container = ComponentContainer()
    container.register_scope("request", _OtherScope())
    container.register_definition("a", _Thing, scope="request")

    classifier = ScopeClassifier(container)

    assert classifier.refresh_scope_name is None
    assert classifier.is_excluded("a") is False


def test_scope_registry_is_scanned_once():
    container = ComponentContainer()
    container.register_definition("a", _Thing, scope="refresh")
    classifier = ScopeClassifier(container)
    assert classifier.is_excluded("a") is False

    # Registered after the first scan: never picked up.
    container.register_scope("refresh", RefreshScope())
    assert classifier.is_excluded("a") is False
    assert classifier.refresh_scope_name is None


def test_excludes_only_definitions_in_refresh_scope():
    container = ComponentContainer()
    container.register_scope("request", _OtherScope())
    container.register_scope("live", RefreshScope())
    container.register_definition("scoped", _Thing, scope="live")
    container.register_definition("single", _Thing)
    container.register_definition("per-request", _Thing, scope="request")
    container.register_singleton("prebuilt", _Thing())

    classifier = ScopeClassifier(container)

    assert classifier.refresh_scope_name == "live"
    assert classifier.is_excluded("scoped") is True
    assert classifier.is_excluded("single") is False
    assert classifier.is_excluded("per-request") is False
    assert classifier.is_excluded("prebuilt") is False
    assert classifier.is_excluded("unknown") is False
    assert classifier.is_excluded(None) is False


def test_scan_failure_is_treated_as_no_refresh_scope():
    class _BrokenContainer(ComponentContainer):
        def __init__(self) -> None:
            super().__init__()
            self.scans = 0

        def registered_scope_names(self):
            self.scans += 1
            raise RuntimeError("scope registry unavailable")

    container = _BrokenContainer()
    container.register_definition("a", _Thing, scope="refresh")
    classifier = ScopeClassifier(container)

    assert classifier.is_excluded("a") is False
    assert classifier.is_excluded("a") is False
    assert container.scans == 1


def test_definition_lookup_failure_is_not_excluded():
    class _FlakyContainer(ComponentContainer):
        def get_definition(self, name):
            raise RuntimeError("boom")

    container = _FlakyContainer()
    container.register_scope("refresh", RefreshScope())
    container.register_definition("a", _Thing, scope="refresh")

    assert ScopeClassifier(container).is_excluded("a") is False


def test_first_scan_does_not_block_component_creation():
    container = ComponentContainer()
    container.register_scope("refresh", RefreshScope())
    classifier = ScopeClassifier(container)
    binder = ConfigurationBinder(Environment(environ={}))
    container.add_post_processor(ConfigurationPropertiesRebinder(container, binder, classifier=classifier))

    building = threading.Event()

    def slow_factory():
        building.set()
        time.sleep(0.3)
        return _Thing()

    container.register_definition("slow", slow_factory)
    results = {}

    def build():
        results["component"] = container.get_component("slow")

    def classify():
        building.wait(2)
        results["excluded"] = classifier.is_excluded("slow")

    builder = threading.Thread(target=build)
    checker = threading.Thread(target=classify)
    builder.start()
    checker.start()
    builder.join(3)
    checker.join(3)

    assert not builder.is_alive() and not checker.is_alive()
    assert isinstance(results["component"], _Thing)
    assert results["excluded"] is False
    assert classifier.refresh_scope_name == "refresh"
