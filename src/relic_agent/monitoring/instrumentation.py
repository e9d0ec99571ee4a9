"""
HTTP instrumentation.

Wraps WSGI and ASGI applications to time every request into a shared
timer and, optionally, count responses per status code. Status counters
are bumped on a background worker so the response path never waits on
metrics bookkeeping.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Iterable, List, Optional, Sequence

from .datasource import DataSource
from .metrica import (
    CounterMetrica, Metrica, join_path, timer_histogram_metricas, timer_meter_metricas
)
from .metrics import Counter, Timer

HTTP_THROUGHPUT_KEY = "relic_agent.http.throughput"
HTTP_STATUS_KEY_PREFIX = "relic_agent.http.status."

HTTP_THROUGHPUT_PATH = "HTTP/Throughput"
HTTP_STATUS_PATH = "HTTP/Status"

# Well-known status codes with a dedicated counter
HTTP_STATUSES = (
    100, 101,
    200, 201, 202, 203, 204, 205, 206,
    300, 301, 302, 303, 304, 305, 307,
    400, 401, 402, 403, 404, 405, 406, 407, 408, 409, 410, 411, 412, 413, 414, 415, 416, 417, 418,
    500, 501, 502, 503, 504, 505,
)


logger = logging.getLogger(__name__)


def status_key(status: int) -> str:
    """Data source key of the counter for ``status``."""
    return f"{HTTP_STATUS_KEY_PREFIX}{status}"


def parse_status(status_line: str) -> Optional[int]:
    """Extract the numeric code from a WSGI status line such as ``"404 Not Found"``."""
    code = status_line.split(" ", 1)[0]
    if not code.isdigit():
        return None
    return int(code)


def init_status_counters(data_source: DataSource, statuses: Sequence[int] = HTTP_STATUSES) -> None:
    for status in statuses:
        data_source.get_or_register(status_key(status), Counter)


def http_metricas(data_source: DataSource, timer_key: str = HTTP_THROUGHPUT_KEY) -> List[Metrica]:
    """Request rate (``rps``) and latency (``ms``) views of the HTTP timer."""
    return (timer_meter_metricas(data_source, timer_key, HTTP_THROUGHPUT_PATH, "rps")
            + timer_histogram_metricas(data_source, timer_key, HTTP_THROUGHPUT_PATH))


def http_status_metricas(data_source: DataSource, statuses: Sequence[int] = HTTP_STATUSES) -> List[Metrica]:
    return [
        CounterMetrica(data_source, status_key(status), join_path(HTTP_STATUS_PATH, str(status)), "count")
        for status in statuses
    ]


class StatusRecorder:
    """Fire-and-forget status counter updates on a single worker thread."""

    def __init__(self, data_source: DataSource, executor: Optional[ThreadPoolExecutor] = None):
        """
        Args:
            data_source: Registry holding the status counters
            executor: Executor running the updates (defaults to one worker)
        """
        self.data_source = data_source
        self._executor = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix="relic-http-status")

    def record(self, status: int) -> None:
        """Queue an increment of the counter for ``status``."""
        try:
            self._executor.submit(self.data_source.inc_counter_for_key, status_key(status), 1)
        except RuntimeError:
            logger.debug(f"Status recorder is shut down, dropping status {status}")

    def flush(self, timeout: Optional[float] = None) -> None:
        """Wait until every queued update has been applied."""
        self._executor.submit(lambda: None).result(timeout)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)


class _ClosingIterator:
    """WSGI response wrapper running a callback once the server closes it."""

    def __init__(self, iterable: Iterable[bytes], on_close: Callable[[], None]):
        self._iterable = iterable
        self._iterator = iter(iterable)
        self._on_close = on_close

    def __iter__(self):
        return self

    def __next__(self) -> bytes:
        return next(self._iterator)

    def close(self) -> None:
        try:
            close = getattr(self._iterable, "close", None)
            if close is not None:
                close()
        finally:
            self._on_close()


class WSGIInstrumentation:
    """
    WSGI middleware recording request timing and status codes.

    The request is measured until the server closes the response, so
    streamed bodies are included. Applications that raise are measured
    up to the exception.
    """

    def __init__(self, app: Callable, timer: Timer, status_recorder: Optional[StatusRecorder] = None):
        self.app = app
        self.timer = timer
        self.status_recorder = status_recorder

    def __call__(self, environ: dict, start_response: Callable) -> Iterable[bytes]:
        start = time.perf_counter()
        statuses: List[str] = []
        finished = False

        def recording_start_response(status: str, headers: list, exc_info: Any = None):
            statuses.append(status)
            if exc_info is None:
                return start_response(status, headers)
            return start_response(status, headers, exc_info)

        def finish() -> None:
            nonlocal finished
            if finished:
                return
            finished = True
            self.timer.update_since(start)
            if self.status_recorder is not None and statuses:
                code = parse_status(statuses[-1])
                if code is not None:
                    self.status_recorder.record(code)

        try:
            response = self.app(environ, recording_start_response)
        except BaseException:
            finish()
            raise
        return _ClosingIterator(response, finish)


class ASGIInstrumentation:
    """ASGI middleware recording request timing and status codes for HTTP scopes."""

    def __init__(self, app: Callable, timer: Timer, status_recorder: Optional[StatusRecorder] = None):
        self.app = app
        self.timer = timer
        self.status_recorder = status_recorder

    async def __call__(self, scope: dict, receive: Callable, send: Callable) -> None:
        if scope.get("type") != "http":
            await self.app(scope, receive, send)
            return

        start = time.perf_counter()
        status: Optional[int] = None

        async def recording_send(message: dict) -> None:
            nonlocal status
            if message.get("type") == "http.response.start":
                status = int(message["status"])
            await send(message)

        try:
            await self.app(scope, receive, recording_send)
        finally:
            self.timer.update_since(start)
            if self.status_recorder is not None and status is not None:
                self.status_recorder.record(status)


__all__ = [
    "HTTP_THROUGHPUT_KEY",
    "HTTP_STATUS_KEY_PREFIX",
    "HTTP_STATUSES",
    "status_key",
    "parse_status",
    "init_status_counters",
    "http_metricas",
    "http_status_metricas",
    "StatusRecorder",
    "WSGIInstrumentation",
    "ASGIInstrumentation",
]
