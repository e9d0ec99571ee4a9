"""
Measurement abstraction and harvest pipeline.

Provides instruments, the keyed instrument registry, metric adapters,
components, the tracer, background samplers and HTTP instrumentation.
"""

from .metrics import (
    Metric, MetricType, Counter, Gauge, Histogram, Meter, Timer, TimerContext
)
from .datasource import DataSource, HistogramStat, MeterStat, TimerStat
from .metrica import (
    Metrica, DataSourceMetrica, CounterMetrica, GaugeMetrica, GaugeDeltaMetrica,
    HistogramMetrica, MeterMetrica, TimerMetrica, FunctionMetrica, FunctionDeltaMetrica,
    join_path, histogram_metricas, meter_metricas, timer_meter_metricas,
    timer_histogram_metricas, timer_metricas
)
from .component import PluginComponent, ComponentSnapshot, MetricValue
from .tracer import Tracer, Trace, TraceTransaction
from .sampler import PeriodicSampler
from .gc_metrics import GCStatsCollector
from .memory_metrics import MemoryStatsCollector
from .runtime_metrics import (
    SystemDataSource, LinuxSystemDataSource, UnsupportedSystemDataSource, SystemMetrica,
    new_system_data_source, add_runtime_metrics_to_component
)
from .instrumentation import (
    WSGIInstrumentation, ASGIInstrumentation, StatusRecorder, HTTP_STATUSES, status_key
)

__all__ = [
    "Metric",
    "MetricType",
    "Counter",
    "Gauge",
    "Histogram",
    "Meter",
    "Timer",
    "TimerContext",
    "DataSource",
    "HistogramStat",
    "MeterStat",
    "TimerStat",
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
    "PluginComponent",
    "ComponentSnapshot",
    "MetricValue",
    "Tracer",
    "Trace",
    "TraceTransaction",
    "PeriodicSampler",
    "GCStatsCollector",
    "MemoryStatsCollector",
    "SystemDataSource",
    "LinuxSystemDataSource",
    "UnsupportedSystemDataSource",
    "SystemMetrica",
    "new_system_data_source",
    "add_runtime_metrics_to_component",
    "WSGIInstrumentation",
    "ASGIInstrumentation",
    "StatusRecorder",
    "HTTP_STATUSES",
    "status_key",
]
