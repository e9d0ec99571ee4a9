"""
Instrument registry keyed by string.

The data source binds each key to exactly one instrument for the life of
the process. Typed getters raise on absent or mismatched keys; the
update-by-key helpers silently ignore them so that producers can never
break request handling through a metrics misconfiguration.
"""

import threading
from enum import IntEnum
from typing import Any, Callable, Dict, List, Optional, Type, TypeVar

from ..runtime.errors import (
    DuplicateMetricError, InvalidPercentileError, NotRegisteredError,
    TypeMismatchError, UnsupportedStatisticError
)
from .metrics import (
    NANOS_PER_MILLISECOND, Counter, Duration, Gauge, Histogram, Meter, Metric, Timer
)

M = TypeVar("M", bound=Metric)
T = TypeVar("T")


class HistogramStat(IntEnum):
    """Statistics readable from a histogram."""
    COUNT = 0
    MAX = 1
    MEAN = 2
    MIN = 3
    PERCENTILE = 4
    STD_DEV = 5
    SUM = 6
    VARIANCE = 7


class MeterStat(IntEnum):
    """Statistics readable from a meter."""
    COUNT = 0
    RATE1 = 1
    RATE5 = 2
    RATE15 = 3
    RATE_MEAN = 4


class TimerStat(IntEnum):
    """Statistics readable from a timer."""
    COUNT = 0
    MAX = 1
    MEAN = 2
    MIN = 3
    PERCENTILE = 4
    RATE1 = 5
    RATE5 = 6
    RATE15 = 7
    RATE_MEAN = 8
    STD_DEV = 9
    SUM = 10
    VARIANCE = 11


def _millis(nanos: float) -> float:
    return nanos / NANOS_PER_MILLISECOND


_HISTOGRAM_READERS: Dict[HistogramStat, Callable[[Histogram, float], float]] = {
    HistogramStat.COUNT: lambda h, p: h.count(),
    HistogramStat.MAX: lambda h, p: h.max(),
    HistogramStat.MEAN: lambda h, p: h.mean(),
    HistogramStat.MIN: lambda h, p: h.min(),
    HistogramStat.PERCENTILE: lambda h, p: h.percentile(p),
    HistogramStat.STD_DEV: lambda h, p: h.std_dev(),
    HistogramStat.SUM: lambda h, p: h.sum(),
    HistogramStat.VARIANCE: lambda h, p: h.variance(),
}

_METER_READERS: Dict[MeterStat, Callable[[Meter], float]] = {
    MeterStat.COUNT: lambda m: m.count(),
    MeterStat.RATE1: lambda m: m.rate1(),
    MeterStat.RATE5: lambda m: m.rate5(),
    MeterStat.RATE15: lambda m: m.rate15(),
    MeterStat.RATE_MEAN: lambda m: m.rate_mean(),
}

# Duration statistics are reported in milliseconds, rates per second.
_TIMER_READERS: Dict[TimerStat, Callable[[Timer, float], float]] = {
    TimerStat.COUNT: lambda t, p: t.count(),
    TimerStat.MAX: lambda t, p: _millis(t.max()),
    TimerStat.MEAN: lambda t, p: _millis(t.mean()),
    TimerStat.MIN: lambda t, p: _millis(t.min()),
    TimerStat.PERCENTILE: lambda t, p: _millis(t.percentile(p)),
    TimerStat.RATE1: lambda t, p: t.rate1(),
    TimerStat.RATE5: lambda t, p: t.rate5(),
    TimerStat.RATE15: lambda t, p: t.rate15(),
    TimerStat.RATE_MEAN: lambda t, p: t.rate_mean(),
    TimerStat.STD_DEV: lambda t, p: t.std_dev(),
    TimerStat.SUM: lambda t, p: t.sum(),
    TimerStat.VARIANCE: lambda t, p: t.variance(),
}


def check_percentile(percentile: float) -> float:
    """Validate a percentile fraction, returning it unchanged."""
    if not 0.0 <= percentile <= 1.0:
        raise InvalidPercentileError(percentile)
    return percentile


class DataSource:
    """
    Registry for managing instruments.

    Thread-safe mapping from key to instrument. Keys are never removed.
    """

    def __init__(self):
        """Initialize data source."""
        self._instruments: Dict[str, Metric] = {}
        self._lock = threading.RLock()

    # Registration

    def register(self, key: str, instrument: Metric) -> Metric:
        """
        Bind a key to an instrument.

        Args:
            key: Registry key
            instrument: Instrument to bind

        Returns:
            The registered instrument

        Raises:
            DuplicateMetricError: If the key is already bound
        """
        with self._lock:
            if key in self._instruments:
                raise DuplicateMetricError(key)
            self._instruments[key] = instrument
            return instrument

    def get_or_register(self, key: str, factory: Callable[[], M]) -> M:
        """Return the instrument bound to ``key``, creating it with ``factory`` if absent."""
        with self._lock:
            instrument = self._instruments.get(key)
            if instrument is None:
                instrument = factory()
                self._instruments[key] = instrument
            return instrument

    def get(self, key: str) -> Optional[Metric]:
        """Get instrument by key."""
        with self._lock:
            return self._instruments.get(key)

    def keys(self) -> List[str]:
        """Get list of registered keys."""
        with self._lock:
            return list(self._instruments.keys())

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._instruments

    def __len__(self) -> int:
        with self._lock:
            return len(self._instruments)

    # Typed getters

    def _lookup(self, key: str, kind: Type[M]) -> M:
        instrument = self.get(key)
        if instrument is None:
            raise NotRegisteredError(key)
        if not isinstance(instrument, kind):
            raise TypeMismatchError(key, kind.__name__, type(instrument).__name__)
        return instrument

    def get_counter_value(self, key: str) -> float:
        return float(self._lookup(key, Counter).count())

    def get_gauge_value(self, key: str) -> float:
        return float(self._lookup(key, Gauge).value())

    def get_histogram_value(self, key: str, stat: HistogramStat, percentile: float = 0.0) -> float:
        """
        Read one statistic from a histogram.

        Args:
            key: Registry key
            stat: Statistic selector
            percentile: Fraction in [0, 1], used by ``HistogramStat.PERCENTILE``

        Raises:
            NotRegisteredError, TypeMismatchError, UnsupportedStatisticError,
            InvalidPercentileError
        """
        histogram = self._lookup(key, Histogram)
        reader = _HISTOGRAM_READERS.get(stat) if isinstance(stat, HistogramStat) else None
        if reader is None:
            raise UnsupportedStatisticError("histogram", stat)
        if stat is HistogramStat.PERCENTILE:
            check_percentile(percentile)
        return float(reader(histogram, percentile))

    def get_meter_value(self, key: str, stat: MeterStat) -> float:
        meter = self._lookup(key, Meter)
        reader = _METER_READERS.get(stat) if isinstance(stat, MeterStat) else None
        if reader is None:
            raise UnsupportedStatisticError("meter", stat)
        return float(reader(meter))

    def get_timer_value(self, key: str, stat: TimerStat, percentile: float = 0.0) -> float:
        """
        Read one statistic from a timer.

        ``MAX``, ``MEAN``, ``MIN`` and ``PERCENTILE`` are returned in
        milliseconds; rates in events per second; ``STD_DEV``, ``SUM`` and
        ``VARIANCE`` in the recorded nanoseconds.
        """
        timer = self._lookup(key, Timer)
        reader = _TIMER_READERS.get(stat) if isinstance(stat, TimerStat) else None
        if reader is None:
            raise UnsupportedStatisticError("timer", stat)
        if stat is TimerStat.PERCENTILE:
            check_percentile(percentile)
        return float(reader(timer, percentile))

    # Update by key

    def _instrument_for_key(self, key: str, kind: Type[M]) -> Optional[M]:
        instrument = self.get(key)
        if isinstance(instrument, kind):
            return instrument
        return None

    def inc_counter_for_key(self, key: str, delta: int = 1) -> None:
        counter = self._instrument_for_key(key, Counter)
        if counter is not None:
            counter.inc(delta)

    def update_gauge_for_key(self, key: str, value: Any) -> None:
        gauge = self._instrument_for_key(key, Gauge)
        if gauge is not None:
            gauge.update(value)

    def update_histogram_for_key(self, key: str, value: int) -> None:
        histogram = self._instrument_for_key(key, Histogram)
        if histogram is not None:
            histogram.update(value)

    def mark_meter_for_key(self, key: str, n: int = 1) -> None:
        meter = self._instrument_for_key(key, Meter)
        if meter is not None:
            meter.mark(n)

    def update_timer_for_key(self, key: str, duration: Duration) -> None:
        timer = self._instrument_for_key(key, Timer)
        if timer is not None:
            timer.update(duration)

    def update_timer_since_for_key(self, key: str, start: float) -> None:
        timer = self._instrument_for_key(key, Timer)
        if timer is not None:
            timer.update_since(start)

    def timer_func_for_key(self, key: str, func: Callable[..., T], *args, **kwargs) -> T:
        """Run ``func``, timing it only when ``key`` is bound to a timer."""
        timer = self._instrument_for_key(key, Timer)
        if timer is None:
            return func(*args, **kwargs)
        return timer.time(func, *args, **kwargs)


__all__ = [
    "DataSource",
    "HistogramStat",
    "MeterStat",
    "TimerStat",
    "check_percentile",
]
