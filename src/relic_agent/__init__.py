"""
Relic Agent - process-embedded telemetry for Python services

Keeps a typed registry of live instruments, samples runtime, GC, memory
and HTTP state into it, and pushes named, unit-tagged values to a
reporting platform on a fixed interval.
"""

# Instruments, registry and adapters
from .monitoring import (
    Counter, Gauge, Histogram, Meter, Timer, MetricType,
    DataSource, HistogramStat, MeterStat, TimerStat,
    Metrica, CounterMetrica, GaugeMetrica, GaugeDeltaMetrica,
    HistogramMetrica, MeterMetrica, TimerMetrica, FunctionMetrica, FunctionDeltaMetrica,
    PluginComponent, Tracer, Trace
)

# Agent, configuration and reporting
from .agent import Agent
from .config import AgentConfig
from .plugin import Plugin
from .reporting import ReportingSink, PlatformSink, LoggingSink

# Errors
from .runtime.errors import *

__version__ = "0.1.0"
__all__ = [
    "Agent",
    "AgentConfig",
    "Plugin",
    "ReportingSink",
    "PlatformSink",
    "LoggingSink",
    "Counter",
    "Gauge",
    "Histogram",
    "Meter",
    "Timer",
    "MetricType",
    "DataSource",
    "HistogramStat",
    "MeterStat",
    "TimerStat",
    "Metrica",
    "CounterMetrica",
    "GaugeMetrica",
    "GaugeDeltaMetrica",
    "HistogramMetrica",
    "MeterMetrica",
    "TimerMetrica",
    "FunctionMetrica",
    "FunctionDeltaMetrica",
    "PluginComponent",
    "Tracer",
    "Trace",
    "ErrorCode",
    "MetricsError",
    "NotRegisteredError",
    "TypeMismatchError",
    "UnsupportedStatisticError",
    "InvalidPercentileError",
    "DuplicateMetricError",
    "PlatformUnsupportedError",
    "SystemDataError",
    "ConfigurationError",
    "ReportingError",
]
