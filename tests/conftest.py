"""Shared fixtures for zkill tests."""

import io

import pytest
from rich.console import Console

from zkill.errors import CommandError
from zkill.models import ProcessRecord
from zkill.platforms.base import PlatformResolver
from zkill.process import ProcessDirectory
from zkill.project import ProjectDetector
from zkill.storage import Storage


class FakeRunner:
    """Stands in for native tools: maps a joined command line to its stdout."""

    def __init__(self, responses: dict | None = None) -> None:
        self.responses = dict(responses or {})
        self.calls: list[list[str]] = []

    def __call__(self, args: list[str]) -> str:
        self.calls.append(list(args))
        response = self.responses.get(" ".join(args))
        if response is None:
            raise CommandError(list(args), "command not found")
        if isinstance(response, Exception):
            raise response
        return response

    def ran(self, prefix: str) -> bool:
        return any(" ".join(call).startswith(prefix) for call in self.calls)


class StubResolver(PlatformResolver):
    """In-memory resolver with canned records and kill results."""

    CRITICAL_PROCESSES = ("systemd", "sshd")

    def __init__(self, records=(), kill_results=()) -> None:
        super().__init__(settle_delay=0)
        self.records = list(records)
        self.kill_results = list(kill_results)
        self.kill_calls: list[tuple[int, bool]] = []
        self.scan_count = 0

    def find_process_by_port(self, port):
        return next((r for r in self.records if r.port == port), None)

    def kill_process(self, pid, force=False):
        self.kill_calls.append((pid, force))
        return self.kill_results.pop(0) if self.kill_results else True

    def get_all_listening_ports(self):
        self.scan_count += 1
        return list(self.records)

    def _process_details(self, pid, port):
        return None


def make_record(pid: int = 4242, port: int = 3000, name: str = "node", **kwargs) -> ProcessRecord:
    kwargs.setdefault("command", f"{name} server.js")
    kwargs.setdefault("user", "alice")
    return ProcessRecord(pid=pid, port=port, process_name=name, **kwargs)


@pytest.fixture
def output():
    return io.StringIO()


@pytest.fixture
def console(output):
    return Console(file=output, width=200, color_system=None)


@pytest.fixture
def storage(tmp_path):
    return Storage(tmp_path / "zkill" / "config.json")


@pytest.fixture
def project_dir(tmp_path):
    path = tmp_path / "webapp"
    path.mkdir()
    (path / "package.json").write_text('{"name": "webapp", "dependencies": {"next": "14.0.0"}}')
    return path


@pytest.fixture
def project(project_dir):
    return ProjectDetector(project_dir)


@pytest.fixture
def stub_resolver():
    return StubResolver(
        records=[
            make_record(pid=4242, port=3000, name="node"),
            make_record(pid=801, port=22, name="sshd"),
            make_record(pid=1, port=5355, name="systemd-resolve", user="root"),
        ]
    )


@pytest.fixture
def directory(stub_resolver):
    return ProcessDirectory(resolver=stub_resolver, system="linux")
