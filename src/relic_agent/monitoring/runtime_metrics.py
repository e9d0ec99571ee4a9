"""
Runtime and OS status metricas.

Thread count and context switches are read synchronously at harvest
time. OS status fields come from a platform-specific key/value table
that is refreshed at most once per query interval.
"""

import logging
import os
import sys
import threading
import time
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional

import psutil

from ..runtime.errors import PlatformUnsupportedError, SystemDataError
from .component import PluginComponent
from .metrica import FunctionDeltaMetrica, FunctionMetrica, Metrica

# Seconds between refreshes of the OS status table
SYSTEM_QUERY_INTERVAL = 60

# Status fields carrying a size suffix
_SIZED_KEYS = frozenset({"VmSize", "VmPeak", "VmHWM", "VmRSS"})
_SIZE_MULTIPLIERS = {
    "kB": 1 << 10,
    "mB": 1 << 20,
    "gB": 1 << 30,
}


logger = logging.getLogger(__name__)


class SystemDataSource(ABC):
    """OS-specific process status source."""

    @abstractmethod
    def get_value(self, key: str) -> float:
        pass


class UnsupportedSystemDataSource(SystemDataSource):
    """Fallback for platforms without a status implementation."""

    def __init__(self, platform: str = sys.platform):
        self.platform = platform

    def get_value(self, key: str) -> float:
        raise PlatformUnsupportedError(self.platform)


class LinuxSystemDataSource(SystemDataSource):
    """Reads ``/proc/<pid>/status``."""

    def __init__(
        self,
        pid: Optional[int] = None,
        status_path: Optional[str] = None,
        query_interval: float = SYSTEM_QUERY_INTERVAL,
        clock: Callable[[], float] = time.monotonic
    ):
        """
        Args:
            pid: Process to inspect (defaults to the current process)
            status_path: Explicit status file path, overriding ``pid``
            query_interval: Minimum seconds between refreshes
            clock: Monotonic clock in seconds
        """
        self.status_path = status_path or f"/proc/{pid or os.getpid()}/status"
        self.query_interval = query_interval
        self._clock = clock
        self._last_update: Optional[float] = None
        self._system_data: Dict[str, str] = {}
        self._lock = threading.Lock()

    def get_value(self, key: str) -> float:
        with self._lock:
            self._check_and_update_data()
            raw = self._system_data.get(key)

        if raw is None:
            raise SystemDataError(f"system data with key {key} was not found", {"key": key})

        if key in _SIZED_KEYS:
            parts = raw.split()
            if len(parts) != 2:
                raise SystemDataError(f"invalid format for value {key}", {"key": key, "value": raw})
            value = self._parse_float(key, parts[0])
            return value * _SIZE_MULTIPLIERS.get(parts[1], 1)

        return self._parse_float(key, raw)

    def snapshot(self) -> Dict[str, str]:
        """Copy of the status table, refreshing it if stale."""
        with self._lock:
            self._check_and_update_data()
            return dict(self._system_data)

    @staticmethod
    def _parse_float(key: str, raw: str) -> float:
        try:
            return float(raw)
        except ValueError as e:
            raise SystemDataError(f"invalid format for value {key}", {"key": key, "value": raw}, e)

    def _check_and_update_data(self) -> None:
        now = self._clock()
        if self._last_update is not None and now - self._last_update <= self.query_interval:
            return

        try:
            with open(self.status_path, "r", encoding="utf-8") as f:
                lines = f.read().splitlines()
        except OSError as e:
            raise SystemDataError(f"failed to read {self.status_path}", {"path": self.status_path}, e)

        for line in lines:
            parts = line.split(":")
            if len(parts) == 2:
                self._system_data[parts[0].strip()] = parts[1].strip()
        self._last_update = now


def new_system_data_source(platform: str = sys.platform) -> SystemDataSource:
    """Pick the status source for ``platform``."""
    if platform.startswith("linux"):
        return LinuxSystemDataSource()
    return UnsupportedSystemDataSource(platform)


class SystemMetrica(Metrica):
    """One field of the OS status table."""

    def __init__(self, source_key: str, path: str, units: str, data_source: SystemDataSource):
        self.source_key = source_key
        self._path = path
        self._units = units
        self.data_source = data_source

    @property
    def name(self) -> str:
        return self._path

    @property
    def units(self) -> str:
        return self._units

    def get_value(self) -> float:
        return self.data_source.get_value(self.source_key)


# (status key, display path, units)
SYSTEM_METRICS = [
    ("Threads", "Runtime/System/Threads", "threads"),
    ("FDSize", "Runtime/System/FDSize", "fd"),
    # Peak virtual memory size
    ("VmPeak", "Runtime/System/Memory/VmPeakSize", "bytes"),
    # Virtual memory size
    ("VmSize", "Runtime/System/Memory/VmCurrent", "bytes"),
    # Peak resident set size
    ("VmHWM", "Runtime/System/Memory/RssPeak", "bytes"),
    # Resident set size
    ("VmRSS", "Runtime/System/Memory/RssCurrent", "bytes"),
]


def _context_switches(process: psutil.Process) -> int:
    switches = process.num_ctx_switches()
    return switches.voluntary + switches.involuntary


def runtime_metricas(
    system_data_source: Optional[SystemDataSource] = None,
    process: Optional[psutil.Process] = None
) -> List[Metrica]:
    """Thread, context-switch and OS status metricas."""
    process = process or psutil.Process()
    system_data_source = system_data_source or new_system_data_source()

    metricas: List[Metrica] = [
        FunctionMetrica("Runtime/General/NOThreads", "threads", threading.active_count),
        FunctionDeltaMetrica("Runtime/General/NOContextSwitches", "switches",
                             lambda: _context_switches(process)),
    ]
    for source_key, path, units in SYSTEM_METRICS:
        metricas.append(SystemMetrica(source_key, path, units, system_data_source))
    return metricas


def add_runtime_metrics_to_component(
    component: PluginComponent,
    system_data_source: Optional[SystemDataSource] = None,
    process: Optional[psutil.Process] = None
) -> None:
    component.add_metricas(runtime_metricas(system_data_source, process))
    logger.debug(f"Added runtime metrics to component {component.name}")


__all__ = [
    "SystemDataSource",
    "UnsupportedSystemDataSource",
    "LinuxSystemDataSource",
    "SystemMetrica",
    "SYSTEM_METRICS",
    "new_system_data_source",
    "runtime_metricas",
    "add_runtime_metrics_to_component",
]
