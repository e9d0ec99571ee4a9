"""
Plugin component: an ordered, named group of metricas reported together.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Dict, Iterable, List

from ..runtime.errors import MetricsError
from .metrica import Metrica


logger = logging.getLogger(__name__)


@dataclass
class MetricValue:
    """Value of a metrica at a point in time."""
    name: str
    units: str
    value: float
    timestamp: float = field(default_factory=time.time)


@dataclass
class ComponentSnapshot:
    """Result of one harvest of a component."""
    name: str
    guid: str
    metrics: List[MetricValue] = field(default_factory=list)
    errors: Dict[str, str] = field(default_factory=dict)
    duration: float = 0.0

    def values(self) -> Dict[str, float]:
        """Map of display path to value."""
        return {metric.name: metric.value for metric in self.metrics}


class PluginComponent:
    """
    Ordered, mutable collection of metricas under one grouping name.

    Appends may race with harvests; harvest reads a copy of the list
    taken under the lock, so a metrica added mid-harvest shows up on the
    next tick.
    """

    def __init__(self, name: str, guid: str):
        """
        Initialize component.

        Args:
            name: Component display name
            guid: Plugin GUID identifying the component type
        """
        self.name = name
        self.guid = guid
        self._metricas: List[Metrica] = []
        self._lock = threading.Lock()

    def add_metrica(self, metrica: Metrica) -> None:
        with self._lock:
            self._metricas.append(metrica)

    def add_metricas(self, metricas: Iterable[Metrica]) -> None:
        with self._lock:
            self._metricas.extend(metricas)

    def metricas(self) -> List[Metrica]:
        """Copy of the current metrica list."""
        with self._lock:
            return list(self._metricas)

    def __len__(self) -> int:
        with self._lock:
            return len(self._metricas)

    def harvest(self) -> ComponentSnapshot:
        """
        Read every metrica.

        A metrica whose read fails is logged and left out of the snapshot;
        the rest of the batch is unaffected.
        """
        snapshot = ComponentSnapshot(name=self.name, guid=self.guid)
        for metrica in self.metricas():
            try:
                value = metrica.get_value()
            except MetricsError as e:
                logger.debug(f"Skipping metrica {metrica.name}: {e}")
                snapshot.errors[metrica.name] = str(e)
                continue
            except Exception as e:
                logger.warning(f"Failed to read metrica {metrica.name}: {e}")
                snapshot.errors[metrica.name] = str(e)
                continue
            snapshot.metrics.append(MetricValue(metrica.name, metrica.units, value))
        return snapshot

    def clear_sent_data(self) -> None:
        for metrica in self.metricas():
            metrica.clear_sent_data()


__all__ = [
    "MetricValue",
    "ComponentSnapshot",
    "PluginComponent",
]
