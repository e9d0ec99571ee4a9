"""
Harvest loop tests.
"""

import pytest

from relic_agent.monitoring.metrica import CounterMetrica, FunctionMetrica
from relic_agent.monitoring.metrics import Counter
from relic_agent.plugin import Plugin
from relic_agent.reporting import ReportingSink
from relic_agent.runtime.errors import ReportingError


@pytest.fixture
def counter_component(component, data_source):
    data_source.register("requests", Counter())
    component.add_metrica(CounterMetrica(data_source, "requests", "HTTP/Requests", "count"))
    return component


@pytest.mark.unit
class TestPlugin:
    """Test single harvest and push cycles."""

    def test_invalid_interval(self, recording_sink):
        with pytest.raises(ValueError):
            Plugin(recording_sink, 0)

    def test_successful_push_clears_counters(self, recording_sink, counter_component, data_source):
        plugin = Plugin(recording_sink, 60)
        plugin.add_component(counter_component)
        data_source.inc_counter_for_key("requests", 8)

        assert plugin.report_once() is True
        assert recording_sink.last_values() == {"HTTP/Requests": 8.0}
        assert data_source.get_counter_value("requests") == 0.0
        assert plugin.total_reports == 1

    def test_failed_push_keeps_counters(self, recording_sink, counter_component, data_source):
        plugin = Plugin(recording_sink, 60)
        plugin.add_component(counter_component)
        data_source.inc_counter_for_key("requests", 5)

        recording_sink.fail = True
        assert plugin.report_once() is False
        assert plugin.total_failures == 1
        assert data_source.get_counter_value("requests") == 5.0

        data_source.inc_counter_for_key("requests", 3)
        recording_sink.fail = False
        assert plugin.report_once() is True
        assert recording_sink.last_values() == {"HTTP/Requests": 8.0}

    def test_duration_since_last_success(self, recording_sink, component, clock):
        plugin = Plugin(recording_sink, 60, clock=clock)
        plugin.add_component(component)

        clock.advance(60)
        recording_sink.fail = True
        plugin.report_once()
        clock.advance(60)
        recording_sink.fail = False
        plugin.report_once()
        assert recording_sink.batches[-1][0].duration == pytest.approx(120)

        clock.advance(45)
        plugin.report_once()
        assert recording_sink.batches[-1][0].duration == pytest.approx(45)

    def test_verbose_logging(self, recording_sink, component, caplog):
        component.add_metrica(FunctionMetrica("Custom/Value", "things", lambda: 1))
        plugin = Plugin(recording_sink, 60, verbose=True)
        plugin.add_component(component)

        with caplog.at_level("INFO", logger="relic_agent.plugin"):
            plugin.report_once()
        assert "Reported 1 metrics for 1 components" in caplog.text


@pytest.mark.integration
class TestPluginLoop:
    """Test the background harvest loop."""

    def test_loop_reports_until_stopped(self, recording_sink, component):
        component.add_metrica(FunctionMetrica("Custom/Value", "things", lambda: 7))
        plugin = Plugin(recording_sink, 0.01)
        plugin.add_component(component)

        plugin.start()
        try:
            assert plugin.running
            assert recording_sink.reported.wait(5)
        finally:
            plugin.stop(timeout=5)

        assert not plugin.running
        assert recording_sink.batches[0][0].values() == {"Custom/Value": 7.0}


class CountingDuringPushSink(ReportingSink):
    """Sink bumping a counter while each push is in flight."""

    def __init__(self, counter):
        self.counter = counter
        self.batches = []
        self.fail = False

    def report(self, snapshots):
        self.counter.inc(1)
        if self.fail:
            raise ReportingError("sink unavailable", status_code=503)
        self.batches.append(snapshots)

    def last_values(self):
        return self.batches[-1][0].values()


@pytest.mark.unit
class TestInFlightCounts:
    """Test counts arriving while a push is in progress."""

    def test_counts_during_push_are_kept(self, counter_component, data_source):
        counter = data_source.get("requests")
        sink = CountingDuringPushSink(counter)
        plugin = Plugin(sink, 60)
        plugin.add_component(counter_component)
        counter.inc(5)

        assert plugin.report_once() is True
        assert plugin.report_once() is True

        reported = sum(batch[0].values()["HTTP/Requests"] for batch in sink.batches)
        assert reported == 6.0
        assert counter.count() == 1
        assert reported + counter.count() == 7

    def test_counts_during_failed_push_are_kept(self, counter_component, data_source):
        counter = data_source.get("requests")
        sink = CountingDuringPushSink(counter)
        plugin = Plugin(sink, 60)
        plugin.add_component(counter_component)
        counter.inc(5)

        sink.fail = True
        assert plugin.report_once() is False
        sink.fail = False
        assert plugin.report_once() is True

        assert sink.last_values() == {"HTTP/Requests": 6.0}
        assert counter.count() == 1
