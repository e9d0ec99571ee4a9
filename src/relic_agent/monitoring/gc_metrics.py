"""
Garbage collector statistics.

Collection pauses are timed through ``gc.callbacks`` as they happen and
drained into a histogram on each poll, together with the collection
counters reported by ``gc.get_stats()``.
"""

import gc
import threading
import time
from collections import deque
from typing import Any, Deque, Dict, List, Optional

from .datasource import DataSource
from .metrica import GaugeDeltaMetrica, GaugeMetrica, Metrica, histogram_metricas, join_path
from .metrics import Gauge, Histogram
from .sampler import PeriodicSampler

DEFAULT_GC_POLL_INTERVAL = 10

NUM_GC_KEY = "gc.Stats.NumGC"
GC_SINCE_KEY = "gc.Stats.GCSince"
PAUSE_TOTAL_KEY = "gc.Stats.PauseTotal"
PAUSE_KEY = "gc.Stats.Pause"
COLLECTED_KEY = "gc.Stats.Collected"
UNCOLLECTABLE_KEY = "gc.Stats.Uncollectable"

GC_BASE_PATH = "Runtime/GC"


class GCStatsCollector(PeriodicSampler):
    """Samples GC counters and pause durations into the data source."""

    name = "GC stats"

    def __init__(self, data_source: DataSource, interval: float = DEFAULT_GC_POLL_INTERVAL,
                 gc_module: Any = gc):
        """
        Args:
            data_source: Registry receiving the sampled values
            interval: Poll interval in seconds
            gc_module: Object exposing ``get_stats()`` and ``callbacks``
        """
        super().__init__(data_source, interval)
        self._gc = gc_module
        self._pending_pauses: Deque[int] = deque()
        self._gc_start: Optional[int] = None
        self._last_num_gc = 0
        self._pause_total = 0
        self._hooked = False
        self._lock = threading.Lock()

    def register(self) -> None:
        for key in (NUM_GC_KEY, GC_SINCE_KEY, PAUSE_TOTAL_KEY, COLLECTED_KEY, UNCOLLECTABLE_KEY):
            self.data_source.register(key, Gauge())
        self.data_source.register(PAUSE_KEY, Histogram())

        if not self._hooked:
            self._gc.callbacks.append(self._on_gc)
            self._hooked = True

    def metricas(self) -> List[Metrica]:
        ds = self.data_source
        return [
            GaugeMetrica(ds, GC_SINCE_KEY, join_path(GC_BASE_PATH, "Calls"), "calls"),
            GaugeMetrica(ds, NUM_GC_KEY, join_path(GC_BASE_PATH, "TotalCalls"), "calls"),
            GaugeMetrica(ds, PAUSE_TOTAL_KEY, join_path(GC_BASE_PATH, "PauseTotalTime"), "nanos"),
            GaugeDeltaMetrica(ds, COLLECTED_KEY, join_path(GC_BASE_PATH, "Collected"), "objects"),
            GaugeMetrica(ds, UNCOLLECTABLE_KEY, join_path(GC_BASE_PATH, "Uncollectable"), "objects"),
        ] + histogram_metricas(ds, PAUSE_KEY, join_path(GC_BASE_PATH, "GCTime"), "nanos")

    def _on_gc(self, phase: str, info: Dict[str, Any]) -> None:
        if phase == "start":
            self._gc_start = time.perf_counter_ns()
        elif phase == "stop" and self._gc_start is not None:
            self.record_pause(time.perf_counter_ns() - self._gc_start)
            self._gc_start = None

    def record_pause(self, nanos: int) -> None:
        """Queue one collection pause for the next capture."""
        self._pending_pauses.append(nanos)

    def capture_once(self) -> None:
        stats = self._gc.get_stats()
        num_gc = sum(generation.get("collections", 0) for generation in stats)
        collected = sum(generation.get("collected", 0) for generation in stats)
        uncollectable = sum(generation.get("uncollectable", 0) for generation in stats)

        ds = self.data_source
        with self._lock:
            while self._pending_pauses:
                pause = self._pending_pauses.popleft()
                ds.update_histogram_for_key(PAUSE_KEY, pause)
                self._pause_total += pause

            ds.update_gauge_for_key(GC_SINCE_KEY, num_gc - self._last_num_gc)
            self._last_num_gc = num_gc
            ds.update_gauge_for_key(NUM_GC_KEY, num_gc)
            ds.update_gauge_for_key(PAUSE_TOTAL_KEY, self._pause_total)
            ds.update_gauge_for_key(COLLECTED_KEY, collected)
            ds.update_gauge_for_key(UNCOLLECTABLE_KEY, uncollectable)

    def close(self, timeout: Optional[float] = None) -> None:
        """Stop sampling and detach from ``gc.callbacks``."""
        super().close(timeout)
        if self._hooked:
            if self._on_gc in self._gc.callbacks:
                self._gc.callbacks.remove(self._on_gc)
            self._hooked = False


__all__ = [
    "GCStatsCollector",
    "DEFAULT_GC_POLL_INTERVAL",
    "NUM_GC_KEY",
    "GC_SINCE_KEY",
    "PAUSE_TOTAL_KEY",
    "PAUSE_KEY",
    "COLLECTED_KEY",
    "UNCOLLECTABLE_KEY",
]
