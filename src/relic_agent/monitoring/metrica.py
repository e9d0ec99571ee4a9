"""
Metric adapters ("metricas").

A metrica is a named, unit-tagged view over one registry entry plus an
extraction policy. The harvester enumerates metricas on every tick and
ships ``(name, units, value)`` for each one.
"""

import threading
from abc import ABC, abstractmethod
from typing import Callable, List, Union

from .datasource import DataSource, HistogramStat, MeterStat, TimerStat, check_percentile
from .metrics import Counter

Number = Union[int, float]


def join_path(*parts: str) -> str:
    """Join slash-separated display path segments, dropping empty ones."""
    segments = [part.strip("/") for part in parts]
    return "/".join(segment for segment in segments if segment)


class Metrica(ABC):
    """Interface of every reportable metric."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Hierarchical display path, e.g. ``Runtime/Memory/InUse/Rss``."""
        pass

    @property
    @abstractmethod
    def units(self) -> str:
        pass

    @abstractmethod
    def get_value(self) -> float:
        """
        Current value.

        Raises:
            MetricsError: When the backing data is absent or of the wrong kind
        """
        pass

    def clear_sent_data(self) -> None:
        """Hook invoked after a successful push. No-op unless overridden."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r}, {self.units!r})"


class DataSourceMetrica(Metrica):
    """Base for metricas that read one key of a :class:`DataSource`."""

    def __init__(self, data_source: DataSource, data_source_key: str, path: str, units: str):
        """
        Args:
            data_source: Registry holding the instrument
            data_source_key: Registry key of the instrument
            path: Display path
            units: Display units
        """
        self.data_source = data_source
        self.data_source_key = data_source_key
        self._path = path
        self._units = units

    @property
    def name(self) -> str:
        return self._path

    @property
    def units(self) -> str:
        return self._units


class CounterMetrica(DataSourceMetrica):
    """
    Raw counter read.

    After a successful push only the reported amount is subtracted, so
    increments made while the push was in flight go out with the next one.
    """

    def __init__(self, data_source: DataSource, data_source_key: str, path: str, units: str):
        super().__init__(data_source, data_source_key, path, units)
        self.sent_value = 0.0
        self._lock = threading.Lock()

    def get_value(self) -> float:
        with self._lock:
            value = self.data_source.get_counter_value(self.data_source_key)
            self.sent_value = value
            return value

    def clear_sent_data(self) -> None:
        with self._lock:
            sent = int(self.sent_value)
            self.sent_value = 0.0
        counter = self.data_source.get(self.data_source_key)
        if sent and isinstance(counter, Counter):
            counter.dec(sent)


class GaugeMetrica(DataSourceMetrica):
    """Raw gauge read."""

    def get_value(self) -> float:
        return self.data_source.get_gauge_value(self.data_source_key)


class GaugeDeltaMetrica(DataSourceMetrica):
    """
    Change of a gauge since the previous read.

    The baseline starts at zero, so the first read reports the full
    current value. A failed read leaves the baseline untouched.
    """

    def __init__(self, data_source: DataSource, data_source_key: str, path: str, units: str):
        super().__init__(data_source, data_source_key, path, units)
        self.previous_value = 0.0
        self._lock = threading.Lock()

    def get_value(self) -> float:
        with self._lock:
            current = self.data_source.get_gauge_value(self.data_source_key)
            value = current - self.previous_value
            self.previous_value = current
            return value


class HistogramMetrica(DataSourceMetrica):
    """One statistic of a histogram, in the recorded units."""

    def __init__(
        self,
        data_source: DataSource,
        data_source_key: str,
        path: str,
        units: str,
        stat: HistogramStat,
        percentile: float = 0.0
    ):
        super().__init__(data_source, data_source_key, path, units)
        self.stat = stat
        self.percentile = check_percentile(percentile)

    @classmethod
    def for_percentile(cls, data_source: DataSource, data_source_key: str, path: str,
                       units: str, percentile: float) -> "HistogramMetrica":
        return cls(data_source, data_source_key, path, units, HistogramStat.PERCENTILE, percentile)

    def get_value(self) -> float:
        return self.data_source.get_histogram_value(self.data_source_key, self.stat, self.percentile)


class MeterMetrica(DataSourceMetrica):
    """One statistic of a meter; rates in events per second."""

    def __init__(self, data_source: DataSource, data_source_key: str, path: str, units: str,
                 stat: MeterStat):
        super().__init__(data_source, data_source_key, path, units)
        self.stat = stat

    def get_value(self) -> float:
        return self.data_source.get_meter_value(self.data_source_key, self.stat)


class TimerMetrica(DataSourceMetrica):
    """One statistic of a timer; durations in milliseconds, rates per second."""

    def __init__(
        self,
        data_source: DataSource,
        data_source_key: str,
        path: str,
        units: str,
        stat: TimerStat,
        percentile: float = 0.0
    ):
        super().__init__(data_source, data_source_key, path, units)
        self.stat = stat
        self.percentile = check_percentile(percentile)

    @classmethod
    def for_percentile(cls, data_source: DataSource, data_source_key: str, path: str,
                       units: str, percentile: float) -> "TimerMetrica":
        return cls(data_source, data_source_key, path, units, TimerStat.PERCENTILE, percentile)

    def get_value(self) -> float:
        return self.data_source.get_timer_value(self.data_source_key, self.stat, self.percentile)


class FunctionMetrica(Metrica):
    """Value sampled synchronously from a callable at read time."""

    def __init__(self, path: str, units: str, func: Callable[[], Number]):
        self._path = path
        self._units = units
        self._func = func

    @property
    def name(self) -> str:
        return self._path

    @property
    def units(self) -> str:
        return self._units

    def get_value(self) -> float:
        return float(self._func())


class FunctionDeltaMetrica(FunctionMetrica):
    """Change of a callable's value since the previous read."""

    def __init__(self, path: str, units: str, func: Callable[[], Number]):
        super().__init__(path, units, func)
        self.last_value = 0.0
        self._lock = threading.Lock()

    def get_value(self) -> float:
        with self._lock:
            current = float(self._func())
            value = current - self.last_value
            self.last_value = current
            return value


# Adapter-set factories

def histogram_metricas(ds: DataSource, data_source_key: str, base_path: str, units: str) -> List[Metrica]:
    """Max, Mean, Min and Percentile95 views of a histogram."""
    return [
        HistogramMetrica(ds, data_source_key, join_path(base_path, "Max"), units, HistogramStat.MAX),
        HistogramMetrica(ds, data_source_key, join_path(base_path, "Mean"), units, HistogramStat.MEAN),
        HistogramMetrica(ds, data_source_key, join_path(base_path, "Min"), units, HistogramStat.MIN),
        HistogramMetrica.for_percentile(ds, data_source_key, join_path(base_path, "Percentile95"), units, 0.95),
    ]


def meter_metricas(ds: DataSource, data_source_key: str, base_path: str, units: str) -> List[Metrica]:
    return [
        MeterMetrica(ds, data_source_key, join_path(base_path, "Count"), units, MeterStat.COUNT),
        MeterMetrica(ds, data_source_key, join_path(base_path, "Rate1"), units, MeterStat.RATE1),
        MeterMetrica(ds, data_source_key, join_path(base_path, "Rate5"), units, MeterStat.RATE5),
        MeterMetrica(ds, data_source_key, join_path(base_path, "Rate15"), units, MeterStat.RATE15),
        MeterMetrica(ds, data_source_key, join_path(base_path, "RateMean"), units, MeterStat.RATE_MEAN),
    ]


def timer_meter_metricas(ds: DataSource, data_source_key: str, base_path: str, units: str) -> List[Metrica]:
    """Rate views of a timer."""
    return [
        TimerMetrica(ds, data_source_key, join_path(base_path, "Rate1"), units, TimerStat.RATE1),
        TimerMetrica(ds, data_source_key, join_path(base_path, "Rate5"), units, TimerStat.RATE5),
        TimerMetrica(ds, data_source_key, join_path(base_path, "Rate15"), units, TimerStat.RATE15),
        TimerMetrica(ds, data_source_key, join_path(base_path, "RateMean"), units, TimerStat.RATE_MEAN),
    ]


def timer_histogram_metricas(ds: DataSource, data_source_key: str, base_path: str) -> List[Metrica]:
    """Millisecond duration views of a timer."""
    return [
        TimerMetrica(ds, data_source_key, join_path(base_path, "Max"), "ms", TimerStat.MAX),
        TimerMetrica(ds, data_source_key, join_path(base_path, "Mean"), "ms", TimerStat.MEAN),
        TimerMetrica(ds, data_source_key, join_path(base_path, "Min"), "ms", TimerStat.MIN),
        TimerMetrica.for_percentile(ds, data_source_key, join_path(base_path, "Percentile95"), "ms", 0.95),
    ]


def timer_metricas(ds: DataSource, data_source_key: str, base_path: str, units: str) -> List[Metrica]:
    """Rate views followed by millisecond views."""
    return (timer_meter_metricas(ds, data_source_key, base_path, units)
            + timer_histogram_metricas(ds, data_source_key, base_path))


__all__ = [
    "Metrica",
    "DataSourceMetrica",
    "CounterMetrica",
    "GaugeMetrica",
    "GaugeDeltaMetrica",
    "HistogramMetrica",
    "MeterMetrica",
    "TimerMetrica",
    "FunctionMetrica",
    "FunctionDeltaMetrica",
    "join_path",
    "histogram_metricas",
    "meter_metricas",
    "timer_meter_metricas",
    "timer_histogram_metricas",
    "timer_metricas",
]
