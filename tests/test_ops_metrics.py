from __future__ import annotations

import pytest

from liveconfig.common.ops_metrics import MetricRegistry


def test_render_prometheus_text_is_sorted_and_labeled():
    reg = MetricRegistry()
    c = reg.counter("rebind_total", help="Rebinds.", label_names=("outcome",))
    g = reg.gauge("rebind_last_pass_duration_seconds")
    c.inc(labels={"outcome": "rebound"})
    c.inc(2, labels={"outcome": "failed"})
    g.set(0.25)

    text = reg.render_prometheus_text()

    assert text.splitlines() == [
        "# TYPE rebind_last_pass_duration_seconds gauge",
        "rebind_last_pass_duration_seconds 0.25",
        "# HELP rebind_total Rebinds.",
        "# TYPE rebind_total counter",
        'rebind_total{outcome="failed"} 2.0',
        'rebind_total{outcome="rebound"} 1.0',
    ]


def test_label_values_are_escaped():
    reg = MetricRegistry()
    reg.counter("errors_total", label_names=("component",)).inc(labels={"component": 'a"b'})

    assert 'errors_total{component="a\\"b"} 1.0' in reg.render_prometheus_text()


def test_counter_rejects_negative_and_missing_labels():
    reg = MetricRegistry()
    c = reg.counter("errors_total", label_names=("component",))

    with pytest.raises(ValueError):
        c.inc(-1, labels={"component": "x"})
    with pytest.raises(ValueError):
        c.inc()


def test_redefinition_with_other_type_is_rejected():
    reg = MetricRegistry()
    reg.counter("x_total")
    reg.counter("x_total")

    with pytest.raises(ValueError):
        reg.gauge("x_total")
