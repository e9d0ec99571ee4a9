"""
Agent configuration.

A fixed set of named options controlling which metric families are
collected, the poll intervals and the reporting target.
"""

from __future__ import annotations
import os
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, Field, ValidationError

from .runtime.errors import ConfigurationError, ErrorCode

# How often metrics are reported to the platform, in seconds
DEFAULT_POLL_INTERVAL = 60

# How often GC statistics are sampled, in seconds
DEFAULT_GC_POLL_INTERVAL = 10

# How often memory allocator statistics are sampled, in seconds
DEFAULT_MEMORY_POLL_INTERVAL = 60

# Plugin GUID on the platform; change it only for a separate plugin type
DEFAULT_AGENT_GUID = "com.github.relic-agent.PythonPlugin"

DEFAULT_AGENT_NAME = "Python Plugin"

CURRENT_AGENT_VERSION = "0.1.0"

DEFAULT_PLATFORM_URL = "https://platform-api.newrelic.com/platform/v1/metrics"

ENV_PREFIX = "RELIC_AGENT_"


class AgentConfig(BaseModel):
    """
    Options for :class:`relic_agent.agent.Agent`.

    Intervals are in seconds. ``license_key`` is only validated when the
    agent starts, so a config can be built before the key is known.
    """
    name: str = Field(default=DEFAULT_AGENT_NAME, min_length=1, description="Component name shown on the platform")
    license_key: str = Field(default="", alias="license", description="Platform license key")
    guid: str = Field(default=DEFAULT_AGENT_GUID, min_length=1, description="Plugin GUID")
    version: str = Field(default=CURRENT_AGENT_VERSION, description="Agent version reported with every push")
    poll_interval: float = Field(default=DEFAULT_POLL_INTERVAL, gt=0, description="Reporting interval")
    gc_poll_interval: float = Field(default=DEFAULT_GC_POLL_INTERVAL, gt=0, description="GC sampling interval")
    memory_poll_interval: float = Field(
        default=DEFAULT_MEMORY_POLL_INTERVAL, gt=0, description="Memory sampling interval"
    )
    verbose: bool = Field(default=False, description="Log agent setup and each push")
    collect_gc_stats: bool = True
    collect_memory_stats: bool = True
    collect_http_stats: bool = False
    collect_http_statuses: bool = False
    platform_url: str = Field(default=DEFAULT_PLATFORM_URL, description="Metrics endpoint")
    request_timeout: float = Field(default=30.0, gt=0, description="Push timeout")

    model_config = {"populate_by_name": True, "validate_assignment": True}

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, prefix: str = ENV_PREFIX,
                 **overrides: Any) -> AgentConfig:
        """
        Build a config from environment variables.

        Every field maps to ``<prefix><FIELD_NAME>``, e.g.
        ``RELIC_AGENT_LICENSE_KEY`` or ``RELIC_AGENT_POLL_INTERVAL``.
        Explicit keyword overrides win over the environment.

        Raises:
            ConfigurationError: If a value fails validation
        """
        environ = os.environ if environ is None else environ
        values: Dict[str, Any] = {}
        for field_name in cls.model_fields:
            raw = environ.get(f"{prefix}{field_name.upper()}")
            if raw is not None:
                values[field_name] = raw
        values.update(overrides)

        try:
            return cls(**values)
        except ValidationError as e:
            raise ConfigurationError(f"invalid agent configuration: {e}", cause=e)

    def require_license(self) -> str:
        """Return the license key, failing if it is blank."""
        if not self.license_key.strip():
            raise ConfigurationError("please, pass a valid license key", ErrorCode.MISSING_LICENSE)
        return self.license_key


__all__ = [
    "AgentConfig",
    "DEFAULT_POLL_INTERVAL",
    "DEFAULT_GC_POLL_INTERVAL",
    "DEFAULT_MEMORY_POLL_INTERVAL",
    "DEFAULT_AGENT_GUID",
    "DEFAULT_AGENT_NAME",
    "CURRENT_AGENT_VERSION",
    "DEFAULT_PLATFORM_URL",
]
