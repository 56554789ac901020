"""Tests for the metrics registry and its HTTP export."""

from __future__ import annotations

import pytest

from app.monitoring.registry import MetricsRegistry


def test_registry_renders_prometheus_text():
    registry = MetricsRegistry()
    counter = registry.counter("demo_total", "Demo counter.", label_names=("kind",))
    gauge = registry.gauge("demo_open", "Demo gauge.")

    counter.labels("text").inc()
    counter.labels("text").inc(2)
    counter.labels('we"ird').inc()
    gauge.labels().set(3)
    gauge.labels().dec()

    lines = registry.render().splitlines()

    assert "# TYPE demo_total counter" in lines
    assert 'demo_total{kind="text"} 3' in lines
    assert 'demo_total{kind="we\\"ird"} 1' in lines
    assert "demo_open 2" in lines
    assert counter.value("text") == 3


def test_registry_rejects_duplicates_and_bad_labels():
    registry = MetricsRegistry()
    counter = registry.counter("demo_total", "Demo counter.", label_names=("kind",))

    with pytest.raises(ValueError):
        registry.counter("demo_total", "Again.")
    with pytest.raises(ValueError):
        counter.labels()
    with pytest.raises(ValueError):
        counter.labels("text").inc(-1)
    with pytest.raises(AttributeError):
        counter.labels("text").dec()


def test_metrics_endpoint_exposes_messaging_metrics(client):
    response = client.get("/metrics")

    assert response.status_code == 200
    assert "# TYPE messages_sent_total counter" in response.text
    assert "# TYPE realtime_active_connections gauge" in response.text


def test_health_and_root(client):
    assert client.get("/health").json()["status"] == "ok"
    assert client.get("/api/").json() == {"message": "Welcome to the Mesh API"}
