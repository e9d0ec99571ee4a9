"""
Measurement instruments.

Provides thread-safe counters, gauges, histograms, meters and timers.
Each instrument guards its own state, so producers on request threads
never contend on a registry-wide lock.
"""

import threading
import time
from abc import ABC, abstractmethod
from datetime import timedelta
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, TypeVar, Union

from .sample import (
    DEFAULT_RESERVOIR_SIZE, EWMA, M1_ALPHA, M5_ALPHA, M15_ALPHA, TICK_INTERVAL,
    SampleSnapshot, UniformSample
)

T = TypeVar("T")

NANOS_PER_SECOND = 1_000_000_000
NANOS_PER_MILLISECOND = 1_000_000

Duration = Union[int, float, timedelta]


class MetricType(Enum):
    """Types of metrics."""
    COUNTER = "counter"
    GAUGE = "gauge"
    HISTOGRAM = "histogram"
    METER = "meter"
    TIMER = "timer"


class Metric(ABC):
    """
    Abstract base class for instruments.

    Instruments are anonymous accumulators; the registry binds them to
    a key. The description is informational only.
    """

    def __init__(self, description: str = ""):
        self.description = description
        self._lock = threading.RLock()
        self._created_at = time.time()

    @property
    @abstractmethod
    def metric_type(self) -> MetricType:
        """Get metric type."""
        pass

    def get_info(self) -> Dict[str, Any]:
        """Get metric information."""
        return {
            "type": self.metric_type.value,
            "description": self.description,
            "created_at": self._created_at,
        }


class Counter(Metric):
    """
    Integer counter.

    Adjustable in both directions; cleared by the harvester once its
    total has been shipped.
    """

    def __init__(self, description: str = ""):
        super().__init__(description)
        self._count = 0

    @property
    def metric_type(self) -> MetricType:
        return MetricType.COUNTER

    def inc(self, delta: int = 1) -> None:
        with self._lock:
            self._count += delta

    def dec(self, delta: int = 1) -> None:
        with self._lock:
            self._count -= delta

    def count(self) -> int:
        with self._lock:
            return self._count

    def clear(self) -> None:
        with self._lock:
            self._count = 0


class Gauge(Metric):
    """Last-write-wins numeric value."""

    def __init__(self, description: str = ""):
        super().__init__(description)
        self._value: Union[int, float] = 0

    @property
    def metric_type(self) -> MetricType:
        return MetricType.GAUGE

    def update(self, value: Union[int, float]) -> None:
        with self._lock:
            self._value = value

    def value(self) -> Union[int, float]:
        with self._lock:
            return self._value


class Histogram(Metric):
    """
    Distribution of observed integers.

    Backed by a uniform reservoir; ``count()`` is the number of updates
    and every other statistic is computed over the reservoir.
    """

    def __init__(self, description: str = "", reservoir_size: int = DEFAULT_RESERVOIR_SIZE):
        super().__init__(description)
        self._sample = UniformSample(reservoir_size)

    @property
    def metric_type(self) -> MetricType:
        return MetricType.HISTOGRAM

    def update(self, value: int) -> None:
        self._sample.update(value)

    def snapshot(self) -> SampleSnapshot:
        """Consistent view for reading several statistics at once."""
        with self._lock:
            return SampleSnapshot(self._sample.count(), self._sample.values())

    def count(self) -> int:
        return self._sample.count()

    def min(self) -> int:
        return self.snapshot().min()

    def max(self) -> int:
        return self.snapshot().max()

    def mean(self) -> float:
        return self.snapshot().mean()

    def std_dev(self) -> float:
        return self.snapshot().std_dev()

    def sum(self) -> int:
        return self.snapshot().sum()

    def variance(self) -> float:
        return self.snapshot().variance()

    def percentile(self, percentile: float) -> float:
        return self.snapshot().percentile(percentile)

    def percentiles(self, percentiles: Sequence[float]) -> List[float]:
        return self.snapshot().percentiles(percentiles)

    def clear(self) -> None:
        with self._lock:
            self._sample.clear()


class Meter(Metric):
    """
    Event rate meter.

    Tracks the total count plus 1, 5 and 15 minute exponentially-weighted
    rates. Ticks are applied lazily whenever the meter is touched, using
    the injected monotonic clock.
    """

    def __init__(self, description: str = "", clock: Callable[[], float] = time.monotonic):
        """
        Initialize meter.

        Args:
            description: Meter description
            clock: Monotonic clock in seconds
        """
        super().__init__(description)
        self._clock = clock
        self._count = 0
        self._start_time = clock()
        self._last_tick = self._start_time
        self._m1 = EWMA(M1_ALPHA)
        self._m5 = EWMA(M5_ALPHA)
        self._m15 = EWMA(M15_ALPHA)

    @property
    def metric_type(self) -> MetricType:
        return MetricType.METER

    def mark(self, n: int = 1) -> None:
        with self._lock:
            self._tick_if_necessary()
            self._count += n
            self._m1.update(n)
            self._m5.update(n)
            self._m15.update(n)

    def count(self) -> int:
        with self._lock:
            return self._count

    def rate1(self) -> float:
        with self._lock:
            self._tick_if_necessary()
            return self._m1.rate()

    def rate5(self) -> float:
        with self._lock:
            self._tick_if_necessary()
            return self._m5.rate()

    def rate15(self) -> float:
        with self._lock:
            self._tick_if_necessary()
            return self._m15.rate()

    def rate_mean(self) -> float:
        with self._lock:
            elapsed = self._clock() - self._start_time
            if self._count == 0 or elapsed <= 0:
                return 0.0
            return self._count / elapsed

    def _tick_if_necessary(self) -> None:
        now = self._clock()
        age = now - self._last_tick
        if age < TICK_INTERVAL:
            return
        ticks = int(age // TICK_INTERVAL)
        self._last_tick += ticks * TICK_INTERVAL
        for _ in range(ticks):
            self._m1.tick()
            self._m5.tick()
            self._m15.tick()


def to_nanoseconds(duration: Duration) -> int:
    """Convert seconds (int/float) or a timedelta to integer nanoseconds."""
    if isinstance(duration, timedelta):
        duration = duration.total_seconds()
    return int(round(duration * NANOS_PER_SECOND))


class Timer(Metric):
    """
    Timer metric for measuring durations.

    Fuses a histogram of durations (integer nanoseconds) with a meter
    of completed events.
    """

    def __init__(
        self,
        description: str = "",
        reservoir_size: int = DEFAULT_RESERVOIR_SIZE,
        clock: Callable[[], float] = time.monotonic
    ):
        """Initialize timer."""
        super().__init__(description)
        self._histogram = Histogram(f"{description} duration", reservoir_size)
        self._meter = Meter(f"{description} rate", clock)

    @property
    def metric_type(self) -> MetricType:
        return MetricType.TIMER

    def update(self, duration: Duration) -> None:
        """
        Record a duration.

        Args:
            duration: Seconds as int/float, or a timedelta
        """
        with self._lock:
            self._histogram.update(to_nanoseconds(duration))
            self._meter.mark(1)

    def update_since(self, start: float) -> None:
        """Record the time elapsed since a ``time.perf_counter()`` reading."""
        self.update(time.perf_counter() - start)

    def time(self, func: Callable[..., T], *args, **kwargs) -> T:
        """Run ``func`` and record its duration, also when it raises."""
        start = time.perf_counter()
        try:
            return func(*args, **kwargs)
        finally:
            self.update_since(start)

    def timing(self) -> "TimerContext":
        """Context manager for timing a block."""
        return TimerContext(self)

    def snapshot(self) -> SampleSnapshot:
        return self._histogram.snapshot()

    def count(self) -> int:
        return self._histogram.count()

    def min(self) -> int:
        return self._histogram.min()

    def max(self) -> int:
        return self._histogram.max()

    def mean(self) -> float:
        return self._histogram.mean()

    def std_dev(self) -> float:
        return self._histogram.std_dev()

    def sum(self) -> int:
        return self._histogram.sum()

    def variance(self) -> float:
        return self._histogram.variance()

    def percentile(self, percentile: float) -> float:
        return self._histogram.percentile(percentile)

    def percentiles(self, percentiles: Sequence[float]) -> List[float]:
        return self._histogram.percentiles(percentiles)

    def rate1(self) -> float:
        return self._meter.rate1()

    def rate5(self) -> float:
        return self._meter.rate5()

    def rate15(self) -> float:
        return self._meter.rate15()

    def rate_mean(self) -> float:
        return self._meter.rate_mean()


class TimerContext:
    """Context manager for timing operations."""

    def __init__(self, timer: Timer):
        self.timer = timer
        self.start_time: Optional[float] = None

    def __enter__(self):
        """Start timing."""
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Stop timing and record duration."""
        self.timer.update_since(self.start_time)


__all__ = [
    "Metric",
    "MetricType",
    "Counter",
    "Gauge",
    "Histogram",
    "Meter",
    "Timer",
    "TimerContext",
    "to_nanoseconds",
    "NANOS_PER_SECOND",
    "NANOS_PER_MILLISECOND",
]
