"""
Background periodic sampling.

Samplers copy process state (GC, memory allocator) into registry
instruments on their own interval, independently of the reporting loop.
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import List, Optional

from .datasource import DataSource
from .metrica import Metrica


logger = logging.getLogger(__name__)


class PeriodicSampler(ABC):
    """
    Base class for background samplers.

    Subclasses register their instruments in :meth:`register`, describe
    their metricas in :meth:`metricas` and copy fresh data in
    :meth:`capture_once`.
    """

    name = "sampler"

    def __init__(self, data_source: DataSource, interval: float):
        """
        Initialize sampler.

        Args:
            data_source: Registry receiving the sampled values
            interval: Sampling interval in seconds
        """
        if interval <= 0:
            raise ValueError("interval must be > 0")
        self.data_source = data_source
        self.interval = interval
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @abstractmethod
    def register(self) -> None:
        """Register instruments in the data source."""
        pass

    @abstractmethod
    def metricas(self) -> List[Metrica]:
        """Metricas reading the sampled instruments."""
        pass

    @abstractmethod
    def capture_once(self) -> None:
        """Copy current process state into the instruments."""
        pass

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start sampling on a daemon thread."""
        if self.running:
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._collection_loop,
            name=f"relic-{self.name}",
            daemon=True
        )
        self._thread.start()
        logger.info(f"Started {self.name} collection (interval: {self.interval}s)")

    def stop(self, timeout: Optional[float] = None) -> None:
        """Stop sampling and wait for the thread to exit."""
        if self._thread is None:
            return

        self._stop_event.set()
        self._thread.join(timeout)
        self._thread = None
        logger.info(f"Stopped {self.name} collection")

    def close(self, timeout: Optional[float] = None) -> None:
        """Stop sampling and release any hooks held by the sampler."""
        self.stop(timeout)

    def _collection_loop(self) -> None:
        """Background collection loop."""
        while not self._stop_event.wait(self.interval):
            try:
                self.capture_once()
            except Exception as e:
                logger.error(f"Error in {self.name} collection: {e}")


__all__ = ["PeriodicSampler"]
