"""
Shared fixtures:
- fresh data source and component per test
- controllable monotonic clock for rate and interval tests
- recording sink capturing harvested batches
"""
import threading

import pytest

from relic_agent.monitoring.component import PluginComponent
from relic_agent.monitoring.datasource import DataSource
from relic_agent.reporting import ReportingSink
from relic_agent.runtime.errors import ReportingError


class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSink(ReportingSink):
    """Sink keeping every batch; can be told to fail."""

    def __init__(self):
        self.batches = []
        self.fail = False
        self.reported = threading.Event()

    def report(self, snapshots):
        if self.fail:
            raise ReportingError("sink unavailable", status_code=503)
        self.batches.append(snapshots)
        self.reported.set()

    def last_values(self):
        values = {}
        for snapshot in self.batches[-1]:
            values.update(snapshot.values())
        return values


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def data_source():
    return DataSource()


@pytest.fixture
def component():
    return PluginComponent("Test Component", "com.example.test")


@pytest.fixture
def recording_sink():
    return RecordingSink()
