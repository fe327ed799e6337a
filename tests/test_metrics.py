import math

import pytest

from autoscaler.metrics import (
    Counter,
    GaugeFunc,
    Histogram,
    NopCollector,
    PrometheusCollector,
    Registry,
    default_registry,
)


def _by_name(registry):
    return {entry["name"]: entry for entry in registry.gather()}


def test_counter_counts_increments():
    counter = Counter("drone_servers_created", "Total number of servers created.")
    for _ in range(3):
        counter.inc()
    assert counter.value == 3


def test_counter_rejects_negative():
    counter = Counter("c", "help")
    with pytest.raises(ValueError):
        counter.add(-1)
    assert counter.value == 0


def test_histogram_buckets_are_cumulative():
    hist = Histogram("h", "help", [60, 150, 300])
    observations = [10, 60, 100, 250, 5000]
    for value in observations:
        hist.observe(value)
    registry = Registry()
    registry.register(hist)
    entry = registry.gather()[0]
    counts = list(entry["buckets"].values())
    assert counts == sorted(counts)
    assert entry["buckets"][math.inf] == len(observations)
    assert entry["count"] == len(observations)
    assert entry["sum"] == sum(observations)
    assert entry["buckets"][60.0] == 2


def test_gauge_func_evaluated_on_collect():
    values = [1.0, 2.0]
    gauge = GaugeFunc("g", "help", lambda: values[-1])
    assert gauge.collect() == 2.0
    values.append(7.0)
    assert gauge.collect() == 7.0


def test_registry_gather_sorted_and_duplicate_rejected():
    registry = Registry()
    registry.register(Counter("drone_servers_created_err", "errors"))
    registry.register(Counter("drone_servers_created", "created"))
    names = [entry["name"] for entry in registry.gather()]
    assert names == ["drone_servers_created", "drone_servers_created_err"]
    with pytest.raises(ValueError):
        registry.register(Counter("drone_servers_created", "again"))


def test_expose_text_format():
    registry = Registry()
    counter = registry.register(Counter("a", "help"))
    counter.add(2)
    assert registry.expose() == "# HELP a help\n# TYPE a counter\na 2\n"


def test_expose_histogram_lines():
    registry = Registry()
    hist = registry.register(Histogram("h", "help", [60]))
    hist.observe(30)
    text = registry.expose()
    assert "# TYPE h histogram\n" in text
    assert 'h_bucket{le="60"} 1\n' in text
    assert 'h_bucket{le="+Inf"} 1\n' in text
    assert "h_count 1\n" in text


def test_prometheus_collector_registers_metrics():
    registry = Registry()
    PrometheusCollector(registry)
    assert set(_by_name(registry)) == {
        "drone_server_create_time_seconds",
        "drone_server_boot_time_seconds",
        "drone_server_install_time_seconds",
        "drone_server_create_errors_total",
        "drone_server_boot_errors_total",
        "drone_server_install_errors_total",
    }
    with pytest.raises(ValueError):
        PrometheusCollector(registry)


def test_prometheus_collector_tracks_rounded_seconds():
    registry = Registry()
    collector = PrometheusCollector(registry, clock=lambda: 190.4)
    collector.track_server_create_time(100.0)
    entry = _by_name(registry)["drone_server_create_time_seconds"]
    assert entry["sum"] == 90
    assert entry["count"] == 1
    assert entry["sum"] == float(int(entry["sum"]))


def test_prometheus_collector_counts_errors():
    registry = Registry()
    collector = PrometheusCollector(registry)
    collector.incr_server_setup_error()
    collector.incr_server_setup_error()
    collector.incr_server_init_error()
    metrics = _by_name(registry)
    assert metrics["drone_server_install_errors_total"]["value"] == 2
    assert metrics["drone_server_boot_errors_total"]["value"] == 1
    assert metrics["drone_server_create_errors_total"]["value"] == 0


def test_nop_collector_records_nothing():
    collector = NopCollector()
    results = [
        collector.track_server_create_time(0),
        collector.track_server_init_time(0),
        collector.track_server_setup_time(0),
        collector.incr_server_create_error(),
        collector.incr_server_init_error(),
        collector.incr_server_setup_error(),
    ]
    assert results == [None] * 6


def test_default_registry_is_shared():
    name = "test_default_registry_shared_total"
    counter = default_registry().register(Counter(name, "help"))
    counter.add(4)
    metrics = _by_name(default_registry())
    assert metrics[name]["value"] == 4