"""
Sampling primitives backing the histogram, meter and timer instruments.

Provides a uniform reservoir sample for distribution statistics and an
exponentially-weighted moving average for rate statistics.
"""

import math
import random
import statistics
import threading
from typing import List, Optional, Sequence

# Reservoir size used by histograms and timers
DEFAULT_RESERVOIR_SIZE = 1028

# Seconds between EWMA ticks
TICK_INTERVAL = 5.0

M1_ALPHA = 1 - math.exp(-TICK_INTERVAL / 60.0 / 1)
M5_ALPHA = 1 - math.exp(-TICK_INTERVAL / 60.0 / 5)
M15_ALPHA = 1 - math.exp(-TICK_INTERVAL / 60.0 / 15)


def sample_percentile(sorted_values: Sequence[float], percentile: float) -> float:
    """
    Interpolated percentile over an already sorted sequence.

    Args:
        sorted_values: Values in ascending order
        percentile: Fraction in [0, 1]

    Returns:
        Percentile value, 0.0 for an empty sequence
    """
    size = len(sorted_values)
    if size == 0:
        return 0.0

    pos = percentile * (size + 1)
    if pos < 1.0:
        return float(sorted_values[0])
    if pos >= size:
        return float(sorted_values[-1])

    lower = float(sorted_values[int(pos) - 1])
    upper = float(sorted_values[int(pos)])
    return lower + (pos - math.floor(pos)) * (upper - lower)


class UniformSample:
    """
    Fixed-size uniform reservoir (Vitter's algorithm R).

    Every observed value has the same probability of being retained,
    so statistics computed over the reservoir are unbiased estimates of
    the full stream.
    """

    def __init__(self, reservoir_size: int = DEFAULT_RESERVOIR_SIZE, rng: Optional[random.Random] = None):
        """
        Initialize sample.

        Args:
            reservoir_size: Maximum number of retained values
            rng: Random source (defaults to a private ``random.Random``)
        """
        if reservoir_size < 1:
            raise ValueError("reservoir_size must be >= 1")
        self.reservoir_size = reservoir_size
        self._rng = rng or random.Random()
        self._values: List[int] = []
        self._count = 0
        self._lock = threading.Lock()

    def update(self, value: int) -> None:
        """Offer a value to the reservoir."""
        with self._lock:
            self._count += 1
            if len(self._values) < self.reservoir_size:
                self._values.append(value)
            else:
                slot = self._rng.randrange(self._count)
                if slot < self.reservoir_size:
                    self._values[slot] = value

    def count(self) -> int:
        """Total number of values offered, not the reservoir length."""
        with self._lock:
            return self._count

    def values(self) -> List[int]:
        """Copy of the retained values."""
        with self._lock:
            return list(self._values)

    def size(self) -> int:
        with self._lock:
            return len(self._values)

    def clear(self) -> None:
        with self._lock:
            self._values.clear()
            self._count = 0


class SampleSnapshot:
    """Immutable statistics view over a copy of a sample."""

    def __init__(self, count: int, values: Sequence[int]):
        self._count = count
        self._values = sorted(values)

    def count(self) -> int:
        return self._count

    def min(self) -> int:
        return self._values[0] if self._values else 0

    def max(self) -> int:
        return self._values[-1] if self._values else 0

    def sum(self) -> int:
        return sum(self._values)

    def mean(self) -> float:
        if not self._values:
            return 0.0
        return statistics.fmean(self._values)

    def variance(self) -> float:
        if not self._values:
            return 0.0
        return statistics.pvariance(self._values)

    def std_dev(self) -> float:
        if not self._values:
            return 0.0
        return statistics.pstdev(self._values)

    def percentile(self, percentile: float) -> float:
        return sample_percentile(self._values, percentile)

    def percentiles(self, percentiles: Sequence[float]) -> List[float]:
        return [sample_percentile(self._values, p) for p in percentiles]


class EWMA:
    """
    Exponentially-weighted moving average of an event rate.

    Events are accumulated with :meth:`update` and folded into the
    average once per :data:`TICK_INTERVAL` by :meth:`tick`.
    """

    def __init__(self, alpha: float, tick_interval: float = TICK_INTERVAL):
        self.alpha = alpha
        self.tick_interval = tick_interval
        self._uncounted = 0
        self._rate = 0.0
        self._initialized = False
        self._lock = threading.Lock()

    def update(self, n: int) -> None:
        with self._lock:
            self._uncounted += n

    def tick(self) -> None:
        """Fold accumulated events into the average."""
        with self._lock:
            count = self._uncounted
            self._uncounted = 0
            instant_rate = count / self.tick_interval
            if self._initialized:
                self._rate += self.alpha * (instant_rate - self._rate)
            else:
                self._rate = instant_rate
                self._initialized = True

    def rate(self) -> float:
        """Rate in events per second."""
        with self._lock:
            return self._rate
