"""
Metric adapter tests.
"""

import threading

import pytest

from relic_agent.monitoring.datasource import HistogramStat, MeterStat, TimerStat
from relic_agent.monitoring.metrica import (
    CounterMetrica, FunctionDeltaMetrica, FunctionMetrica, GaugeDeltaMetrica, GaugeMetrica,
    HistogramMetrica, MeterMetrica, TimerMetrica, histogram_metricas, join_path,
    meter_metricas, timer_metricas
)
from relic_agent.monitoring.metrics import Counter, Gauge, Histogram, Meter, Timer
from relic_agent.runtime.errors import NotRegisteredError, TypeMismatchError


@pytest.mark.unit
class TestJoinPath:
    """Test display path joining."""

    def test_join(self):
        assert join_path("Runtime", "GC", "Calls") == "Runtime/GC/Calls"

    def test_strips_and_skips_empty_segments(self):
        assert join_path("/HTTP/", "", "Throughput/") == "HTTP/Throughput"


@pytest.mark.unit
class TestCounterMetrica:
    """Test counter adapter semantics."""

    def test_reads_total_then_clears_after_send(self, data_source):
        counter = data_source.register("requests", Counter())
        metrica = CounterMetrica(data_source, "requests", "HTTP/Requests", "count")

        counter.inc(5)
        counter.inc(3)
        assert metrica.get_value() == 8.0

        metrica.clear_sent_data()
        assert metrica.get_value() == 0.0
        assert metrica.name == "HTTP/Requests"
        assert metrica.units == "count"

    def test_clear_subtracts_only_reported_amount(self, data_source):
        counter = data_source.register("requests", Counter())
        metrica = CounterMetrica(data_source, "requests", "HTTP/Requests", "count")

        counter.inc(5)
        assert metrica.get_value() == 5.0
        counter.inc(2)
        metrica.clear_sent_data()
        assert metrica.get_value() == 2.0

    def test_clear_without_read_keeps_counter(self, data_source):
        counter = data_source.register("requests", Counter())
        counter.inc(4)
        CounterMetrica(data_source, "requests", "HTTP/Requests", "count").clear_sent_data()
        assert counter.count() == 4

    def test_clear_sent_data_ignores_missing_counter(self, data_source):
        CounterMetrica(data_source, "missing", "Missing", "count").clear_sent_data()


@pytest.mark.unit
class TestGaugeMetricas:
    """Test raw and delta gauge adapters."""

    def test_raw_gauge(self, data_source):
        gauge = data_source.register("depth", Gauge())
        metrica = GaugeMetrica(data_source, "depth", "Queue/Depth", "items")
        gauge.update(12)
        assert metrica.get_value() == 12.0
        assert metrica.get_value() == 12.0

    def test_delta_first_read_reports_full_value(self, data_source):
        gauge = data_source.register("objects", Gauge())
        metrica = GaugeDeltaMetrica(data_source, "objects", "Runtime/GC/Collected", "objects")

        for value in (3, 7, 10):
            gauge.update(value)
        assert metrica.get_value() == 10.0
        assert metrica.get_value() == 0.0

        gauge.update(15)
        assert metrica.get_value() == 5.0

    def test_delta_failed_read_keeps_baseline(self, data_source):
        metrica = GaugeDeltaMetrica(data_source, "objects", "Runtime/GC/Collected", "objects")
        with pytest.raises(NotRegisteredError):
            metrica.get_value()
        assert metrica.previous_value == 0.0

        gauge = data_source.register("objects", Gauge())
        gauge.update(4)
        assert metrica.get_value() == 4.0

    def test_kind_mismatch_propagates(self, data_source):
        data_source.register("objects", Counter())
        with pytest.raises(TypeMismatchError):
            GaugeMetrica(data_source, "objects", "X", "objects").get_value()


@pytest.mark.unit
class TestStatisticMetricas:
    """Test histogram, meter and timer adapters."""

    def test_fresh_instruments_read_zero(self, data_source):
        data_source.register("h", Histogram())
        data_source.register("m", Meter())
        data_source.register("t", Timer())

        metricas = (histogram_metricas(data_source, "h", "H", "bytes")
                    + meter_metricas(data_source, "m", "M", "events")
                    + timer_metricas(data_source, "t", "T", "calls"))
        assert all(metrica.get_value() == 0.0 for metrica in metricas)

    def test_histogram_metrica(self, data_source):
        histogram = data_source.register("sizes", Histogram())
        for value in (10, 20, 30):
            histogram.update(value)

        assert HistogramMetrica(data_source, "sizes", "Sizes/Max", "bytes", HistogramStat.MAX).get_value() == 30.0
        assert HistogramMetrica(data_source, "sizes", "Sizes/Mean", "bytes", HistogramStat.MEAN).get_value() == 20.0

    def test_percentile_validated_at_construction(self, data_source):
        with pytest.raises(ValueError):
            HistogramMetrica.for_percentile(data_source, "sizes", "Sizes/P", "bytes", 95)
        with pytest.raises(ValueError):
            TimerMetrica.for_percentile(data_source, "t", "T/P", "ms", -1)

    def test_meter_metrica(self, data_source, clock):
        meter = data_source.register("events", Meter(clock=clock))
        meter.mark(50)
        metrica = MeterMetrica(data_source, "events", "Events/Count", "events", MeterStat.COUNT)
        assert metrica.get_value() == 50.0

    def test_timer_metrica_in_milliseconds(self, data_source):
        timer = data_source.register("latency", Timer())
        timer.update(0.25)
        metrica = TimerMetrica(data_source, "latency", "Latency/Max", "ms", TimerStat.MAX)
        assert metrica.get_value() == pytest.approx(250.0)

    def test_timer_metricas_layout(self, data_source):
        metricas = timer_metricas(data_source, "t", "HTTP/Throughput", "rps")
        assert [m.name for m in metricas] == [
            "HTTP/Throughput/Rate1",
            "HTTP/Throughput/Rate5",
            "HTTP/Throughput/Rate15",
            "HTTP/Throughput/RateMean",
            "HTTP/Throughput/Max",
            "HTTP/Throughput/Mean",
            "HTTP/Throughput/Min",
            "HTTP/Throughput/Percentile95",
        ]
        assert [m.units for m in metricas] == ["rps"] * 4 + ["ms"] * 4

    def test_histogram_metricas_layout(self, data_source):
        names = [m.name for m in histogram_metricas(data_source, "h", "Runtime/GC/GCTime", "nanos")]
        assert names == [
            "Runtime/GC/GCTime/Max",
            "Runtime/GC/GCTime/Mean",
            "Runtime/GC/GCTime/Min",
            "Runtime/GC/GCTime/Percentile95",
        ]


@pytest.mark.unit
class TestFunctionMetricas:
    """Test callable-backed adapters."""

    def test_function_metrica(self):
        metrica = FunctionMetrica("Custom/Answer", "things", lambda: 42)
        assert metrica.get_value() == 42.0
        assert repr(metrica) == "FunctionMetrica('Custom/Answer', 'things')"

    def test_function_delta_metrica(self):
        readings = iter([10, 15, 15])
        metrica = FunctionDeltaMetrica("Runtime/General/NOContextSwitches", "switches",
                                       lambda: next(readings))
        assert metrica.get_value() == 10.0
        assert metrica.get_value() == 5.0
        assert metrica.get_value() == 0.0


def read_concurrently(metrica, produce, readers=8, reads=200):
    """Read ``metrica`` from several threads while ``produce`` runs; return every delta."""
    barrier = threading.Barrier(readers + 1)
    deltas = []
    lock = threading.Lock()

    def reader():
        barrier.wait()
        for _ in range(reads):
            value = metrica.get_value()
            with lock:
                deltas.append(value)

    def producer():
        barrier.wait()
        produce()

    threads = [threading.Thread(target=reader) for _ in range(readers)]
    threads.append(threading.Thread(target=producer))
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    deltas.append(metrica.get_value())
    return deltas


@pytest.mark.concurrency
class TestConcurrentDeltaReads:
    """Test delta adapters read from several harvesters at once."""

    def test_gauge_deltas_sum_to_final_value(self, data_source):
        gauge = data_source.register("objects", Gauge())
        metrica = GaugeDeltaMetrica(data_source, "objects", "Runtime/GC/Collected", "objects")

        def produce():
            for value in range(1, 2001):
                gauge.update(value)

        deltas = read_concurrently(metrica, produce)
        assert sum(deltas) == 2000.0
        assert all(delta >= 0 for delta in deltas)
        assert metrica.previous_value == 2000.0

    def test_function_deltas_sum_to_final_value(self):
        counter = Counter()
        metrica = FunctionDeltaMetrica("Runtime/General/NOContextSwitches", "switches", counter.count)

        def produce():
            for _ in range(2000):
                counter.inc()

        deltas = read_concurrently(metrica, produce)
        assert sum(deltas) == 2000.0
        assert all(delta >= 0 for delta in deltas)
