"""
Reporting sinks.

A sink receives the component snapshots of one harvest tick and ships
them off-process. The platform sink posts them to the metrics endpoint;
the logging sink writes them to a logger for local diagnostics.
"""

import json
import logging
import os
import socket
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import requests

from .config import CURRENT_AGENT_VERSION, DEFAULT_PLATFORM_URL
from .monitoring.component import ComponentSnapshot, MetricValue
from .runtime.errors import ReportingError


logger = logging.getLogger(__name__)


def metric_display_name(metric: MetricValue) -> str:
    """Platform name of a metric, e.g. ``Component/HTTP/Throughput/Mean[ms]``."""
    return f"Component/{metric.name}[{metric.units}]"


class ReportingSink(ABC):
    """Abstract base class for reporting sinks."""

    @abstractmethod
    def report(self, snapshots: List[ComponentSnapshot]) -> None:
        """
        Ship one harvest.

        Args:
            snapshots: One snapshot per component

        Raises:
            ReportingError: If the batch was not accepted
        """
        pass

    def close(self) -> None:
        """Release sink resources."""


class PlatformSink(ReportingSink):
    """Posts harvests to the plugin platform's metrics endpoint."""

    def __init__(
        self,
        license_key: str,
        version: str = CURRENT_AGENT_VERSION,
        url: str = DEFAULT_PLATFORM_URL,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
        host: Optional[str] = None
    ):
        """
        Initialize platform sink.

        Args:
            license_key: License sent as ``X-License-Key``
            version: Agent version reported in the payload
            url: Metrics endpoint
            timeout: Request timeout in seconds
            session: Optional requests.Session (e.g. configured for a proxy)
            host: Host name reported in the payload (defaults to this host)
        """
        self.license_key = license_key
        self.version = version
        self.url = url
        self.timeout = timeout
        self.host = host or socket.gethostname()
        self._session = session or requests.Session()
        self._owns_session = session is None

    def build_payload(self, snapshots: List[ComponentSnapshot]) -> Dict[str, Any]:
        return {
            "agent": {
                "host": self.host,
                "pid": os.getpid(),
                "version": self.version,
            },
            "components": [
                {
                    "name": snapshot.name,
                    "guid": snapshot.guid,
                    "duration": int(round(snapshot.duration)),
                    "metrics": {
                        metric_display_name(metric): metric.value for metric in snapshot.metrics
                    },
                }
                for snapshot in snapshots
            ],
        }

    def report(self, snapshots: List[ComponentSnapshot]) -> None:
        payload = self.build_payload(snapshots)
        try:
            response = self._session.post(
                self.url,
                data=json.dumps(payload),
                headers={
                    "X-License-Key": self.license_key,
                    "Content-Type": "application/json",
                    "Accept": "application/json",
                },
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise ReportingError(f"failed to push metrics: {e}", cause=e)

        if not 200 <= response.status_code < 300:
            raise ReportingError(
                f"HTTP {response.status_code}: {response.reason}",
                status_code=response.status_code,
                details={"body": response.text[:512]},
            )

    def close(self) -> None:
        """Close the HTTP session if owned by this sink."""
        if self._owns_session:
            self._session.close()

    def __enter__(self) -> "PlatformSink":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


class LoggingSink(ReportingSink):
    """Logging-based sink."""

    def __init__(self, logger_name: str = "relic_agent.metrics", level: int = logging.INFO):
        """
        Initialize logging sink.

        Args:
            logger_name: Logger name to use
            level: Logging level
        """
        self.logger = logging.getLogger(logger_name)
        self.level = level

    def report(self, snapshots: List[ComponentSnapshot]) -> None:
        for snapshot in snapshots:
            self.logger.log(self.level, f"Component {snapshot.name} ({snapshot.guid}): "
                                        f"{len(snapshot.metrics)} metrics, {len(snapshot.errors)} errors")
            for metric in snapshot.metrics:
                self.logger.log(self.level, f"Metric {metric_display_name(metric)}: {metric.value}")


__all__ = [
    "ReportingSink",
    "PlatformSink",
    "LoggingSink",
    "metric_display_name",
]
