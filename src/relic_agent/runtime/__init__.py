"""Runtime helpers for the relic agent"""

from .errors import (
    ErrorCode, MetricsError, NotRegisteredError, TypeMismatchError,
    UnsupportedStatisticError, InvalidPercentileError, DuplicateMetricError,
    PlatformUnsupportedError, SystemDataError, ConfigurationError, ReportingError
)

__all__ = [
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
