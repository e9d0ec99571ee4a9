"""
Ad-hoc named timing spans.

The first use of a trace name materializes a timer in the data source and
appends its metricas to the owning component. Later uses of the same
name reuse that transaction. Transactions are never removed, so trace
names should come from a small static set, not from request data.
"""

import asyncio
import functools
import logging
import threading
import time
from typing import Callable, Dict, List, Optional, TypeVar

from ..runtime.errors import TypeMismatchError
from .component import PluginComponent
from .datasource import DataSource
from .metrica import Metrica, join_path, timer_histogram_metricas, timer_meter_metricas
from .metrics import Timer

T = TypeVar("T")

TRACE_KEY_PREFIX = "relic_agent.trace."
TRACE_BASE_PATH = "Trace"


logger = logging.getLogger(__name__)


class TraceTransaction:
    """Timer and metricas backing one trace name."""

    def __init__(self, name: str, timer: Timer, data_source_key: str, base_path: str):
        self.name = name
        self.timer = timer
        self.data_source_key = data_source_key
        self.base_path = base_path
        self.metricas: List[Metrica] = []

    def build_metricas(self, data_source: DataSource) -> List[Metrica]:
        self.metricas = (timer_meter_metricas(data_source, self.data_source_key, self.base_path, "calls")
                         + timer_histogram_metricas(data_source, self.data_source_key, self.base_path))
        return self.metricas


class Trace:
    """
    Handle for one in-flight span.

    Usable as a context manager; the duration is recorded on exit even
    when the block raises.
    """

    def __init__(self, transaction: TraceTransaction):
        self.transaction = transaction
        self.start_time = time.perf_counter()
        self._ended = False

    def end_trace(self) -> None:
        """Record the elapsed time. Only the first call records."""
        if self._ended:
            return
        self._ended = True
        self.transaction.timer.update_since(self.start_time)

    def __enter__(self) -> "Trace":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.end_trace()


class Tracer:
    """Factory for named timing spans backed by lazily created timers."""

    def __init__(self, component: PluginComponent, data_source: DataSource):
        """
        Args:
            component: Component receiving the metricas of new transactions
            data_source: Registry receiving the timers of new transactions
        """
        self.component = component
        self.data_source = data_source
        self._transactions: Dict[str, TraceTransaction] = {}
        self._lock = threading.Lock()

    @staticmethod
    def normalize(name: str) -> str:
        """Strip separators from a trace name; empty results are rejected."""
        normalized = name.strip("/")
        if not normalized:
            raise ValueError(f"invalid trace name: {name!r}")
        return normalized

    def transaction(self, name: str) -> TraceTransaction:
        """Get the transaction for ``name``, materializing it on first use."""
        name = self.normalize(name)
        base_path = join_path(TRACE_BASE_PATH, name)

        transaction = self._transactions.get(base_path)
        if transaction is not None:
            return transaction

        with self._lock:
            transaction = self._transactions.get(base_path)
            if transaction is None:
                key = TRACE_KEY_PREFIX + name
                timer = self.data_source.get_or_register(key, Timer)
                if not isinstance(timer, Timer):
                    raise TypeMismatchError(key, "Timer", type(timer).__name__)
                transaction = TraceTransaction(name, timer, key, base_path)
                self.component.add_metricas(transaction.build_metricas(self.data_source))
                self._transactions[base_path] = transaction
                logger.debug(f"Created trace transaction {base_path}")
            return transaction

    def transactions(self) -> Dict[str, TraceTransaction]:
        """Copy of the display path to transaction mapping."""
        with self._lock:
            return dict(self._transactions)

    def __len__(self) -> int:
        with self._lock:
            return len(self._transactions)

    def begin_trace(self, name: str) -> Trace:
        return Trace(self.transaction(name))

    def trace(self, name: str, func: Callable[..., T], *args, **kwargs) -> T:
        """Run ``func`` inside a span named ``name`` and return its result."""
        with self.begin_trace(name):
            return func(*args, **kwargs)

    def traced(self, name: Optional[str] = None):
        """
        Decorator tracing every call of a function.

        Args:
            name: Trace name (defaults to the function's qualified name)

        Returns:
            Decorated function
        """
        def decorator(func: Callable) -> Callable:
            trace_name = name or func.__qualname__.replace(".", "/")

            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs):
                with self.begin_trace(trace_name):
                    return await func(*args, **kwargs)

            @functools.wraps(func)
            def sync_wrapper(*args, **kwargs):
                with self.begin_trace(trace_name):
                    return func(*args, **kwargs)

            if asyncio.iscoroutinefunction(func):
                return async_wrapper
            else:
                return sync_wrapper

        return decorator


__all__ = [
    "Tracer",
    "Trace",
    "TraceTransaction",
    "TRACE_KEY_PREFIX",
]
