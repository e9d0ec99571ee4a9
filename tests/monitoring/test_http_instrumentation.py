"""
HTTP instrumentation tests for the WSGI and ASGI wrappers.
"""

import pytest

from relic_agent.monitoring.datasource import TimerStat
from relic_agent.monitoring.instrumentation import (
    HTTP_STATUSES, HTTP_THROUGHPUT_KEY, ASGIInstrumentation, StatusRecorder,
    WSGIInstrumentation, http_metricas, http_status_metricas, init_status_counters,
    parse_status, status_key
)
from relic_agent.monitoring.metrics import Timer


@pytest.fixture
def http_timer(data_source):
    return data_source.register(HTTP_THROUGHPUT_KEY, Timer())


@pytest.fixture
def recorder(data_source):
    init_status_counters(data_source)
    status_recorder = StatusRecorder(data_source)
    yield status_recorder
    status_recorder.shutdown()


def status_counts(data_source):
    return {status: data_source.get_counter_value(status_key(status)) for status in HTTP_STATUSES}


def run_wsgi(app, environ=None):
    started = []

    def start_response(status, headers, exc_info=None):
        started.append(status)

    body = app(environ or {"PATH_INFO": "/"}, start_response)
    chunks = list(body)
    body.close()
    return started, chunks


@pytest.mark.unit
class TestHelpers:
    """Test status parsing and metrica sets."""

    def test_parse_status(self):
        assert parse_status("404 Not Found") == 404
        assert parse_status("200 OK") == 200
        assert parse_status("bogus") is None

    def test_status_counters_registered_once(self, data_source):
        init_status_counters(data_source)
        init_status_counters(data_source)
        assert len(data_source) == len(HTTP_STATUSES)

    def test_metrica_names(self, data_source):
        names = [m.name for m in http_metricas(data_source)]
        assert names[0] == "HTTP/Throughput/Rate1"
        assert names[-1] == "HTTP/Throughput/Percentile95"

        status_metricas = http_status_metricas(data_source)
        assert len(status_metricas) == len(HTTP_STATUSES)
        assert status_metricas[0].name == "HTTP/Status/100"
        assert all(m.units == "count" for m in status_metricas)


@pytest.mark.unit
class TestWSGIInstrumentation:
    """Test the WSGI middleware."""

    def test_not_found_counts_only_404(self, data_source, http_timer, recorder):
        def app(environ, start_response):
            start_response("404 Not Found", [("Content-Type", "text/plain")])
            return [b"missing"]

        started, chunks = run_wsgi(WSGIInstrumentation(app, http_timer, recorder))
        recorder.flush()

        assert started == ["404 Not Found"]
        assert chunks == [b"missing"]
        assert http_timer.count() == 1
        counts = status_counts(data_source)
        assert counts[404] == 1.0
        assert sum(counts.values()) == 1.0

    def test_streaming_body_recorded_on_close(self, data_source, http_timer, recorder):
        def app(environ, start_response):
            start_response("200 OK", [])
            yield b"a"
            yield b"b"

        wrapped = WSGIInstrumentation(app, http_timer, recorder)
        body = wrapped({}, lambda status, headers, exc_info=None: None)
        assert list(body) == [b"a", b"b"]
        assert http_timer.count() == 0

        body.close()
        body.close()
        recorder.flush()
        assert http_timer.count() == 1
        assert data_source.get_counter_value(status_key(200)) == 1.0

    def test_app_error_is_timed_and_propagated(self, data_source, http_timer, recorder):
        def app(environ, start_response):
            raise RuntimeError("handler crashed")

        wrapped = WSGIInstrumentation(app, http_timer, recorder)
        with pytest.raises(RuntimeError):
            wrapped({}, lambda status, headers, exc_info=None: None)
        recorder.flush()

        assert http_timer.count() == 1
        assert sum(status_counts(data_source).values()) == 0.0

    def test_timing_only_without_recorder(self, data_source, http_timer):
        def app(environ, start_response):
            start_response("500 Internal Server Error", [])
            return [b""]

        run_wsgi(WSGIInstrumentation(app, http_timer))
        assert data_source.get_timer_value(HTTP_THROUGHPUT_KEY, TimerStat.COUNT) == 1.0

    def test_uncommon_status_has_no_counter(self, data_source, http_timer, recorder):
        def app(environ, start_response):
            start_response("299 Custom", [])
            return [b""]

        run_wsgi(WSGIInstrumentation(app, http_timer, recorder))
        recorder.flush()
        assert sum(status_counts(data_source).values()) == 0.0
        assert status_key(299) not in data_source


@pytest.mark.unit
class TestASGIInstrumentation:
    """Test the ASGI middleware."""

    @pytest.mark.asyncio
    async def test_http_request(self, data_source, http_timer, recorder):
        async def app(scope, receive, send):
            await send({"type": "http.response.start", "status": 404, "headers": []})
            await send({"type": "http.response.body", "body": b"missing"})

        sent = []

        async def receive():
            return {"type": "http.request"}

        async def send(message):
            sent.append(message)

        wrapped = ASGIInstrumentation(app, http_timer, recorder)
        await wrapped({"type": "http", "path": "/"}, receive, send)
        recorder.flush()

        assert [message["type"] for message in sent] == ["http.response.start", "http.response.body"]
        assert http_timer.count() == 1
        assert data_source.get_counter_value(status_key(404)) == 1.0

    @pytest.mark.asyncio
    async def test_non_http_scope_passes_through(self, http_timer, recorder):
        calls = []

        async def app(scope, receive, send):
            calls.append(scope["type"])

        wrapped = ASGIInstrumentation(app, http_timer, recorder)
        await wrapped({"type": "lifespan"}, None, None)

        assert calls == ["lifespan"]
        assert http_timer.count() == 0

    @pytest.mark.asyncio
    async def test_app_error_is_timed(self, http_timer):
        async def app(scope, receive, send):
            raise ValueError("bad request body")

        wrapped = ASGIInstrumentation(app, http_timer)
        with pytest.raises(ValueError):
            await wrapped({"type": "http"}, None, None)
        assert http_timer.count() == 1


@pytest.mark.unit
class TestStatusRecorder:
    """Test the background status recorder."""

    def test_record_after_shutdown_is_dropped(self, data_source):
        init_status_counters(data_source, [200])
        status_recorder = StatusRecorder(data_source)
        status_recorder.record(200)
        status_recorder.shutdown()
        status_recorder.record(200)

        assert data_source.get_counter_value(status_key(200)) == 1.0
