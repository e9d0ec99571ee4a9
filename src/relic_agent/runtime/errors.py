"""
Relic Agent Error Model

This module provides the error taxonomy shared by the instrument registry,
metric adapters, OS status sources and the agent lifecycle.
"""

from __future__ import annotations
from typing import Optional, Dict, Any
from enum import IntEnum


class ErrorCode(IntEnum):
    """Relic agent error codes."""

    # Success
    OK = 0

    # General errors (1-99)
    UNKNOWN = 1
    INTERNAL = 2

    # Registry errors (100-199)
    NOT_REGISTERED = 100
    TYPE_MISMATCH = 101
    UNSUPPORTED_STATISTIC = 102
    INVALID_PERCENTILE = 103
    DUPLICATE_METRIC = 104

    # System data errors (200-299)
    PLATFORM_UNSUPPORTED = 200
    SYSTEM_DATA_UNAVAILABLE = 201

    # Configuration errors (300-399)
    CONFIGURATION_ERROR = 300
    MISSING_LICENSE = 301

    # Reporting errors (400-499)
    REPORTING_FAILED = 400


class MetricsError(Exception):
    """
    Base class for all relic agent errors.

    Carries a machine-readable code next to the message so the harvester
    can log and skip per-adapter failures without string matching.
    """

    def __init__(self, message: str, code: ErrorCode = ErrorCode.UNKNOWN,
                 details: Optional[Dict[str, Any]] = None, cause: Optional[Exception] = None):
        """
        Initialize a metrics error.

        Args:
            message: Error message
            code: Error code
            details: Additional error details
            cause: Underlying exception that caused this error
        """
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}
        self.cause = cause

    def __str__(self) -> str:
        """String representation of the error."""
        parts = [f"[{self.code.name}] {self.message}"]
        if self.details:
            parts.append(f"Details: {self.details}")
        if self.cause:
            parts.append(f"Caused by: {self.cause}")
        return " | ".join(parts)

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary representation."""
        result = {
            "code": self.code.value,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        if self.cause:
            result["cause"] = str(self.cause)
        return result


class NotRegisteredError(MetricsError):
    """No instrument is bound to the requested key."""

    def __init__(self, key: str):
        super().__init__(f"metrica with name {key} is not registered",
                         ErrorCode.NOT_REGISTERED, {"key": key})
        self.key = key


class TypeMismatchError(MetricsError):
    """The key is bound to an instrument of a different kind."""

    def __init__(self, key: str, expected: str, actual: str):
        super().__init__(f"metrica container {key} has unexpected type: {actual} (expected {expected})",
                         ErrorCode.TYPE_MISMATCH,
                         {"key": key, "expected": expected, "actual": actual})
        self.key = key
        self.expected = expected
        self.actual = actual


class UnsupportedStatisticError(MetricsError):
    """The statistic selector is not valid for the instrument kind."""

    def __init__(self, kind: str, statistic: Any):
        super().__init__(f"unsupported stat function for {kind}: {statistic!r}",
                         ErrorCode.UNSUPPORTED_STATISTIC,
                         {"kind": kind, "statistic": repr(statistic)})
        self.kind = kind
        self.statistic = statistic


class InvalidPercentileError(MetricsError, ValueError):
    """Percentile outside the closed range [0, 1]."""

    def __init__(self, percentile: float):
        super().__init__(f"percentile must be within [0, 1], got {percentile}",
                         ErrorCode.INVALID_PERCENTILE, {"percentile": percentile})
        self.percentile = percentile


class DuplicateMetricError(MetricsError):
    """A key was registered twice."""

    def __init__(self, key: str):
        super().__init__(f"metrica with name {key} is already registered",
                         ErrorCode.DUPLICATE_METRIC, {"key": key})
        self.key = key


class PlatformUnsupportedError(MetricsError):
    """The OS-specific status source has no implementation for this platform."""

    def __init__(self, platform: str):
        super().__init__(f"this metrica was not implemented yet for {platform}",
                         ErrorCode.PLATFORM_UNSUPPORTED, {"platform": platform})
        self.platform = platform


class SystemDataError(MetricsError):
    """OS status data could not be read or parsed."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None,
                 cause: Optional[Exception] = None):
        super().__init__(message, ErrorCode.SYSTEM_DATA_UNAVAILABLE, details, cause)


class ConfigurationError(MetricsError):
    """Invalid or incomplete agent configuration."""

    def __init__(self, message: str, code: ErrorCode = ErrorCode.CONFIGURATION_ERROR,
                 details: Optional[Dict[str, Any]] = None, cause: Optional[Exception] = None):
        super().__init__(message, code, details, cause)


class ReportingError(MetricsError):
    """Pushing a batch to the reporting sink failed."""

    def __init__(self, message: str, status_code: Optional[int] = None,
                 details: Optional[Dict[str, Any]] = None, cause: Optional[Exception] = None):
        super().__init__(message, ErrorCode.REPORTING_FAILED, details, cause)
        self.status_code = status_code


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
