"""
Process-embedded telemetry agent.

The agent owns one component, one data source and the background
samplers, and drives the harvest loop that pushes the component to the
reporting sink. Construct it explicitly and pass it to whatever needs to
record metrics (HTTP middleware, code using the tracer).
"""

import logging
import threading
from typing import Any, Callable, List, Optional

from pydantic import ValidationError

from .config import AgentConfig
from .monitoring.component import PluginComponent
from .monitoring.datasource import DataSource
from .monitoring.gc_metrics import GCStatsCollector
from .monitoring.instrumentation import (
    HTTP_THROUGHPUT_KEY, ASGIInstrumentation, StatusRecorder, WSGIInstrumentation,
    http_metricas, http_status_metricas, init_status_counters
)
from .monitoring.memory_metrics import MemoryStatsCollector
from .monitoring.metrica import Metrica
from .monitoring.metrics import Timer
from .monitoring.runtime_metrics import SystemDataSource, add_runtime_metrics_to_component
from .monitoring.sampler import PeriodicSampler
from .monitoring.tracer import Tracer
from .plugin import Plugin
from .reporting import PlatformSink, ReportingSink
from .runtime.errors import ConfigurationError


logger = logging.getLogger(__name__)


class Agent:
    """
    Telemetry agent.

    Lifecycle: construct, adjust ``config``, then :meth:`run` once. Custom
    metricas may be added at any time; those added before :meth:`run` are
    present in the first harvest, those added afterwards in the next one.

    Example:
        ```python
        agent = Agent(license_key="...", collect_http_statuses=True)
        app = agent.wrap_wsgi_app(app)
        agent.run()

        with agent.tracer.begin_trace("checkout"):
            ...
        ```
    """

    def __init__(
        self,
        config: Optional[AgentConfig] = None,
        sink: Optional[ReportingSink] = None,
        data_source: Optional[DataSource] = None,
        system_data_source: Optional[SystemDataSource] = None,
        **overrides: Any
    ):
        """
        Initialize agent.

        Args:
            config: Agent configuration (built from ``overrides`` if omitted)
            sink: Reporting sink (defaults to a PlatformSink built at run time)
            data_source: Instrument registry (defaults to a fresh one)
            system_data_source: OS status source (defaults to the platform's)
            **overrides: AgentConfig fields overriding ``config``
        """
        try:
            if config is None:
                config = AgentConfig(**overrides)
            elif overrides:
                config = AgentConfig(**{**config.model_dump(), **overrides})
        except ValidationError as e:
            raise ConfigurationError(f"invalid agent configuration: {e}", cause=e)

        self.config = config
        self.sink = sink
        self.data_source = data_source or DataSource()
        self.http_timer: Optional[Timer] = None
        self.tracer: Optional[Tracer] = None
        self.custom_metrics: List[Metrica] = []
        self.component: Optional[PluginComponent] = None
        self.plugin: Optional[Plugin] = None

        self._system_data_source = system_data_source
        self._samplers: List[PeriodicSampler] = []
        self._status_recorder: Optional[StatusRecorder] = None
        self._owned_sink: Optional[ReportingSink] = None
        self._http_metricas_added = False
        self._status_metricas_added = False
        self._lock = threading.Lock()
        self._started = False
        self._running = False

    @property
    def running(self) -> bool:
        with self._lock:
            return self._running

    def _debug(self, message: str) -> None:
        if self.config.verbose:
            logger.info(message)
        else:
            logger.debug(message)

    # HTTP instrumentation

    def _init_timer(self) -> Timer:
        if self.http_timer is None:
            self.http_timer = self.data_source.get_or_register(HTTP_THROUGHPUT_KEY, Timer)
        return self.http_timer

    def _init_status_recorder(self) -> Optional[StatusRecorder]:
        if not self.config.collect_http_statuses:
            return None
        if self._status_recorder is None:
            init_status_counters(self.data_source)
            self._status_recorder = StatusRecorder(self.data_source)
        return self._status_recorder

    def _add_http_metricas(self) -> None:
        # Caller holds self._lock and self.component is set
        if self.config.collect_http_stats and not self._http_metricas_added:
            self.component.add_metricas(http_metricas(self.data_source))
            self._http_metricas_added = True
            self._debug("Init HTTP metrics collection.")
        if self.config.collect_http_statuses and not self._status_metricas_added:
            self.component.add_metricas(http_status_metricas(self.data_source))
            self._status_metricas_added = True
            self._debug("Init HTTP status metrics collection.")

    def _prepare_http(self):
        with self._lock:
            self.config.collect_http_stats = True
            timer = self._init_timer()
            recorder = self._init_status_recorder()
            if self._running:
                self._add_http_metricas()
        return timer, recorder

    def wrap_wsgi_app(self, app: Callable) -> WSGIInstrumentation:
        """Instrument a WSGI application to collect HTTP metrics."""
        timer, recorder = self._prepare_http()
        return WSGIInstrumentation(app, timer, recorder)

    def wrap_asgi_app(self, app: Callable) -> ASGIInstrumentation:
        """Instrument an ASGI application to collect HTTP metrics."""
        timer, recorder = self._prepare_http()
        return ASGIInstrumentation(app, timer, recorder)

    # Custom metrics

    def add_custom_metric(self, metrica: Metrica) -> None:
        """Add a metrica reported with every harvest, before or after :meth:`run`."""
        with self._lock:
            self.custom_metrics.append(metrica)
            if self._running:
                self.component.add_metrica(metrica)

    # Lifecycle

    def _build_component(self) -> PluginComponent:
        config = self.config
        component = PluginComponent(config.name, config.guid)

        add_runtime_metrics_to_component(component, self._system_data_source)
        self.tracer = Tracer(component, self.data_source)

        if config.collect_gc_stats:
            gc_collector = GCStatsCollector(self.data_source, config.gc_poll_interval)
            self._samplers.append(gc_collector)
            gc_collector.register()
            component.add_metricas(gc_collector.metricas())
            self._debug(f"Init GC metrics collection. Poll interval {config.gc_poll_interval} seconds.")

        if config.collect_memory_stats:
            memory_collector = MemoryStatsCollector(self.data_source, config.memory_poll_interval)
            self._samplers.append(memory_collector)
            memory_collector.register()
            component.add_metricas(memory_collector.metricas())
            self._debug(f"Init memory allocator metrics collection. "
                        f"Poll interval {config.memory_poll_interval} seconds.")

        return component

    def _close_samplers(self, timeout: Optional[float] = None) -> None:
        for sampler in self._samplers:
            sampler.close(timeout)
        self._samplers.clear()

    def run(self, block: bool = False) -> None:
        """
        Start sampling and reporting.

        Args:
            block: Wait for the harvest loop to exit instead of returning

        Raises:
            ConfigurationError: If no license key is configured
            RuntimeError: If the agent was already started
            MetricsError: If a collector cannot register its instruments; the
                samplers built so far are closed and run() may be retried
        """
        license_key = self.config.require_license()
        with self._lock:
            if self._started:
                raise RuntimeError("agent is already running")
            self._started = True

        try:
            component = self._build_component()
        except Exception:
            self._close_samplers()
            with self._lock:
                self._started = False
            raise

        sink = self.sink
        if sink is None:
            sink = PlatformSink(
                license_key,
                version=self.config.version,
                url=self.config.platform_url,
                timeout=self.config.request_timeout,
            )
            self._owned_sink = sink
        self.plugin = Plugin(sink, self.config.poll_interval, verbose=self.config.verbose)

        with self._lock:
            self.component = component
            if self.config.collect_http_stats:
                self._init_timer()
            if self.config.collect_http_statuses:
                init_status_counters(self.data_source)
            self._add_http_metricas()

            for metrica in self.custom_metrics:
                component.add_metrica(metrica)
                self._debug(f"Init {metrica.name} metric collection.")

            self.plugin.add_component(component)
            self._running = True

        for sampler in self._samplers:
            sampler.start()
        self.plugin.start()

        if block:
            self.plugin.wait()

    def stop(self, timeout: Optional[float] = None) -> None:
        """
        Stop the harvest loop and the samplers.

        The agent cannot be started again afterwards.
        """
        with self._lock:
            if not self._running:
                return
            self._running = False

        self.plugin.stop(timeout)
        self._close_samplers(timeout)
        if self._status_recorder is not None:
            self._status_recorder.shutdown(wait=True)
        if self._owned_sink is not None:
            self._owned_sink.close()
        self._debug("Agent stopped.")


__all__ = ["Agent"]
