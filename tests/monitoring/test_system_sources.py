"""
OS status source and runtime metrica tests.
"""

from types import SimpleNamespace

import pytest

from relic_agent.monitoring.runtime_metrics import (
    SYSTEM_METRICS, LinuxSystemDataSource, SystemMetrica, UnsupportedSystemDataSource,
    add_runtime_metrics_to_component, new_system_data_source, runtime_metricas
)
from relic_agent.runtime.errors import ErrorCode, PlatformUnsupportedError, SystemDataError

STATUS_TEXT = """Name:\tpython
State:\tS (sleeping)
Threads:\t5
FDSize:\t64
VmPeak:\t  204800 kB
VmSize:\t  102400 kB
VmHWM:\t    4096 kB
VmRSS:\t    2048 kB
"""


@pytest.fixture
def status_file(tmp_path):
    path = tmp_path / "status"
    path.write_text(STATUS_TEXT)
    return path


def fake_process(voluntary=0, involuntary=0):
    return SimpleNamespace(
        num_ctx_switches=lambda: SimpleNamespace(voluntary=voluntary, involuntary=involuntary)
    )


@pytest.mark.unit
class TestLinuxSystemDataSource:
    """Test parsing of the process status table."""

    def test_plain_values(self, status_file, clock):
        source = LinuxSystemDataSource(status_path=str(status_file), clock=clock)
        assert source.get_value("Threads") == 5.0
        assert source.get_value("FDSize") == 64.0

    def test_sized_values_in_bytes(self, status_file, clock):
        source = LinuxSystemDataSource(status_path=str(status_file), clock=clock)
        assert source.get_value("VmRSS") == 2048 * 1024
        assert source.get_value("VmPeak") == 204800 * 1024

    def test_missing_key(self, status_file, clock):
        source = LinuxSystemDataSource(status_path=str(status_file), clock=clock)
        with pytest.raises(SystemDataError) as exc_info:
            source.get_value("VmSwap")
        assert exc_info.value.code == ErrorCode.SYSTEM_DATA_UNAVAILABLE

    def test_invalid_values(self, tmp_path, clock):
        path = tmp_path / "status"
        path.write_text("VmRSS:\t2048\nThreads:\tmany\n")
        source = LinuxSystemDataSource(status_path=str(path), clock=clock)
        with pytest.raises(SystemDataError):
            source.get_value("VmRSS")
        with pytest.raises(SystemDataError):
            source.get_value("Threads")

    def test_unreadable_file(self, tmp_path, clock):
        source = LinuxSystemDataSource(status_path=str(tmp_path / "absent"), clock=clock)
        with pytest.raises(SystemDataError) as exc_info:
            source.get_value("Threads")
        assert isinstance(exc_info.value.cause, OSError)

    def test_refreshed_at_most_once_per_interval(self, status_file, clock):
        source = LinuxSystemDataSource(status_path=str(status_file), query_interval=60, clock=clock)
        assert source.get_value("Threads") == 5.0

        status_file.write_text(STATUS_TEXT.replace("Threads:\t5", "Threads:\t9"))
        clock.advance(30)
        assert source.get_value("Threads") == 5.0

        clock.advance(31)
        assert source.get_value("Threads") == 9.0

    def test_snapshot(self, status_file, clock):
        snapshot = LinuxSystemDataSource(status_path=str(status_file), clock=clock).snapshot()
        assert snapshot["Name"] == "python"
        assert snapshot["VmRSS"] == "2048 kB"


@pytest.mark.unit
class TestPlatformSelection:
    """Test status source selection per platform."""

    def test_linux(self):
        assert isinstance(new_system_data_source("linux"), LinuxSystemDataSource)

    @pytest.mark.parametrize("platform", ["darwin", "win32"])
    def test_unsupported(self, platform):
        source = new_system_data_source(platform)
        assert isinstance(source, UnsupportedSystemDataSource)
        for source_key, _, _ in SYSTEM_METRICS:
            with pytest.raises(PlatformUnsupportedError):
                source.get_value(source_key)


@pytest.mark.unit
class TestRuntimeMetricas:
    """Test the runtime metrica set."""

    def test_system_metrica(self, status_file, clock):
        source = LinuxSystemDataSource(status_path=str(status_file), clock=clock)
        metrica = SystemMetrica("VmRSS", "Runtime/System/Memory/RssCurrent", "bytes", source)
        assert metrica.get_value() == 2048 * 1024

    def test_layout(self):
        metricas = runtime_metricas(UnsupportedSystemDataSource("darwin"), fake_process())
        names = [m.name for m in metricas]
        assert names[:2] == ["Runtime/General/NOThreads", "Runtime/General/NOContextSwitches"]
        assert names[2:] == [path for _, path, _ in SYSTEM_METRICS]

    def test_thread_count_and_context_switch_delta(self):
        readings = iter([(10, 2), (13, 4)])

        def num_ctx_switches():
            voluntary, involuntary = next(readings)
            return SimpleNamespace(voluntary=voluntary, involuntary=involuntary)

        process = SimpleNamespace(num_ctx_switches=num_ctx_switches)
        threads, switches = runtime_metricas(UnsupportedSystemDataSource("darwin"), process)[:2]

        assert threads.get_value() >= 1
        assert switches.get_value() == 12.0
        assert switches.get_value() == 5.0

    def test_unsupported_platform_skipped_in_harvest(self, component):
        add_runtime_metrics_to_component(component, UnsupportedSystemDataSource("darwin"), fake_process())
        snapshot = component.harvest()

        assert "Runtime/General/NOThreads" in snapshot.values()
        assert set(snapshot.errors) == {path for _, path, _ in SYSTEM_METRICS}
