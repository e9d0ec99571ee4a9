"""
Memory allocator statistics.

Samples resident and virtual size through psutil, the interpreter's
allocated block count and, when enabled, tracemalloc's traced totals.
"""

import sys
import tracemalloc
from typing import Any, List, Optional

import psutil

from .datasource import DataSource
from .metrica import GaugeDeltaMetrica, GaugeMetrica, Metrica, join_path
from .metrics import Gauge
from .sampler import PeriodicSampler

DEFAULT_MEMORY_POLL_INTERVAL = 60

RSS_KEY = "runtime.MemStats.Rss"
VMS_KEY = "runtime.MemStats.Vms"
ALLOCATED_BLOCKS_KEY = "runtime.MemStats.AllocatedBlocks"
TRACED_KEY = "runtime.MemStats.Traced"
TRACED_PEAK_KEY = "runtime.MemStats.TracedPeak"

MEMORY_KEYS = (RSS_KEY, VMS_KEY, ALLOCATED_BLOCKS_KEY, TRACED_KEY, TRACED_PEAK_KEY)

MEMORY_BASE_PATH = "Runtime/Memory"


class MemoryStatsCollector(PeriodicSampler):
    """Samples process and interpreter memory usage into the data source."""

    name = "memory allocator stats"

    def __init__(self, data_source: DataSource, interval: float = DEFAULT_MEMORY_POLL_INTERVAL,
                 process: Optional[Any] = None):
        """
        Args:
            data_source: Registry receiving the sampled values
            interval: Poll interval in seconds
            process: ``psutil.Process`` to sample (defaults to the current process)
        """
        super().__init__(data_source, interval)
        self._process = process or psutil.Process()

    def register(self) -> None:
        for key in MEMORY_KEYS:
            self.data_source.register(key, Gauge())
        self.capture_once()

    def metricas(self) -> List[Metrica]:
        ds = self.data_source
        in_use = join_path(MEMORY_BASE_PATH, "InUse")
        operations = join_path(MEMORY_BASE_PATH, "Operations")
        sys_mem = join_path(MEMORY_BASE_PATH, "SysMem")
        return [
            GaugeMetrica(ds, RSS_KEY, join_path(in_use, "Rss"), "bytes"),
            GaugeMetrica(ds, VMS_KEY, join_path(in_use, "Virtual"), "bytes"),
            GaugeMetrica(ds, ALLOCATED_BLOCKS_KEY, join_path(in_use, "AllocatedBlocks"), "blocks"),
            GaugeMetrica(ds, TRACED_KEY, join_path(in_use, "Traced"), "bytes"),
            GaugeMetrica(ds, TRACED_PEAK_KEY, join_path(in_use, "TracedPeak"), "bytes"),
            GaugeDeltaMetrica(ds, ALLOCATED_BLOCKS_KEY, join_path(operations, "NoAllocatedBlocks"), "blocks"),
            GaugeDeltaMetrica(ds, VMS_KEY, join_path(sys_mem, "Total"), "bytes"),
            GaugeDeltaMetrica(ds, RSS_KEY, join_path(sys_mem, "Resident"), "bytes"),
        ]

    def capture_once(self) -> None:
        memory = self._process.memory_info()
        ds = self.data_source
        ds.update_gauge_for_key(RSS_KEY, memory.rss)
        ds.update_gauge_for_key(VMS_KEY, memory.vms)
        ds.update_gauge_for_key(ALLOCATED_BLOCKS_KEY, sys.getallocatedblocks())

        # tracemalloc reports zeros unless tracing was started by the host
        if tracemalloc.is_tracing():
            current, peak = tracemalloc.get_traced_memory()
        else:
            current, peak = 0, 0
        ds.update_gauge_for_key(TRACED_KEY, current)
        ds.update_gauge_for_key(TRACED_PEAK_KEY, peak)


__all__ = [
    "MemoryStatsCollector",
    "DEFAULT_MEMORY_POLL_INTERVAL",
    "RSS_KEY",
    "VMS_KEY",
    "ALLOCATED_BLOCKS_KEY",
    "TRACED_KEY",
    "TRACED_PEAK_KEY",
]
