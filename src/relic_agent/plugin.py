"""
Harvest loop.

On every reporting interval the plugin reads all of its components and
hands the snapshots to the sink. Counters are cleared only after a push
succeeds; a failed push leaves the data to accumulate into the next one.
"""

import logging
import threading
import time
from typing import Callable, List, Optional

from .monitoring.component import ComponentSnapshot, PluginComponent
from .reporting import ReportingSink
from .runtime.errors import ReportingError


logger = logging.getLogger(__name__)


class Plugin:
    """Periodic harvester pushing component snapshots to a sink."""

    def __init__(
        self,
        sink: ReportingSink,
        interval: float,
        verbose: bool = False,
        clock: Callable[[], float] = time.monotonic
    ):
        """
        Initialize plugin.

        Args:
            sink: Destination of every harvest
            interval: Seconds between harvests
            verbose: Log every push at INFO
            clock: Monotonic clock in seconds
        """
        if interval <= 0:
            raise ValueError("interval must be > 0")
        self.sink = sink
        self.interval = interval
        self.verbose = verbose
        self._clock = clock
        self._components: List[PluginComponent] = []
        self._lock = threading.Lock()
        self._last_report = clock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

        # Statistics
        self.total_reports = 0
        self.total_failures = 0

    def add_component(self, component: PluginComponent) -> None:
        with self._lock:
            self._components.append(component)

    def components(self) -> List[PluginComponent]:
        with self._lock:
            return list(self._components)

    def harvest(self) -> List[ComponentSnapshot]:
        """Read every component; duration is the time since the last successful push."""
        duration = self._clock() - self._last_report
        snapshots = []
        for component in self.components():
            snapshot = component.harvest()
            snapshot.duration = duration
            snapshots.append(snapshot)
        return snapshots

    def report_once(self) -> bool:
        """
        Harvest and push once.

        Returns:
            True if the sink accepted the batch
        """
        snapshots = self.harvest()
        try:
            self.sink.report(snapshots)
        except ReportingError as e:
            self.total_failures += 1
            logger.warning(f"Failed to report metrics: {e}")
            return False

        self.total_reports += 1
        self._last_report = self._clock()
        for component in self.components():
            component.clear_sent_data()

        if self.verbose:
            count = sum(len(snapshot.metrics) for snapshot in snapshots)
            logger.info(f"Reported {count} metrics for {len(snapshots)} components")
        return True

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the harvest loop on a daemon thread."""
        if self.running:
            return

        self._stop_event.clear()
        self._thread = threading.Thread(target=self._report_loop, name="relic-harvest", daemon=True)
        self._thread.start()
        logger.info(f"Started metrics reporting (interval: {self.interval}s)")

    def stop(self, timeout: Optional[float] = None) -> None:
        if self._thread is None:
            return

        self._stop_event.set()
        self._thread.join(timeout)
        self._thread = None
        logger.info("Stopped metrics reporting")

    def wait(self, timeout: Optional[float] = None) -> None:
        """Block until the harvest loop exits."""
        thread = self._thread
        if thread is not None:
            thread.join(timeout)

    def _report_loop(self) -> None:
        while not self._stop_event.wait(self.interval):
            try:
                self.report_once()
            except Exception as e:
                logger.error(f"Error in metrics reporting: {e}")


__all__ = ["Plugin"]
