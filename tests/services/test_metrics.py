from services.metrics import API_LATENCY, SAMPLE_WINDOW, MetricRegistry, Timer


def test_histogram_keeps_totals_but_bounds_samples():
    registry = MetricRegistry()
    labels = {"operation": "account_get"}

    for index in range(SAMPLE_WINDOW * 3):
        registry.observe(API_LATENCY, float(index), labels=labels)

    samples = registry.samples(API_LATENCY, labels=labels)
    assert len(samples) == SAMPLE_WINDOW
    assert samples[-1] == float(SAMPLE_WINDOW * 3 - 1)
    assert registry.observation_count(API_LATENCY, labels=labels) == SAMPLE_WINDOW * 3

    entry = registry.snapshot()["histograms"][API_LATENCY][0]
    assert entry["labels"] == labels
    assert entry["count"] == SAMPLE_WINDOW * 3
    assert entry["max"] == float(SAMPLE_WINDOW * 3 - 1)
    assert entry["sum"] == sum(float(index) for index in range(SAMPLE_WINDOW * 3))


def test_counters_sum_across_labels():
    registry = MetricRegistry()
    registry.inc("requests", labels={"outcome": "success"})
    registry.inc("requests", labels={"outcome": "failure"}, amount=2)

    assert registry.counter("requests", labels={"outcome": "failure"}) == 2.0
    assert registry.total("requests") == 3.0


def test_timer_records_with_late_label():
    registry = MetricRegistry()

    with Timer(registry, API_LATENCY, labels={"operation": "list_get"}) as timer:
        timer.label("outcome", "success")

    assert timer.elapsed >= 0.0
    assert registry.observation_count(API_LATENCY, labels={"operation": "list_get", "outcome": "success"}) == 1
    assert registry.samples(API_LATENCY, labels={"operation": "list_get"}) == []
