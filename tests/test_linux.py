"""Tests for the Linux resolver."""

from datetime import datetime

import psutil
import pytest

from zkill.errors import CommandError
from zkill.models import ServiceManager
from zkill.platforms.linux import LinuxResolver, parse_netstat_line, parse_ss_line

from conftest import FakeRunner

SS_LISTEN = """\
State  Recv-Q Send-Q Local Address:Port  Peer Address:Port Process
LISTEN 0      511          0.0.0.0:3000       0.0.0.0:*     users:(("node",pid=4242,fd=20))
LISTEN 0      511             [::]:3000          [::]:*     users:(("node",pid=4242,fd=21))
LISTEN 0      128          0.0.0.0:22         0.0.0.0:*     users:(("sshd",pid=801,fd=3))
LISTEN 0      4096   127.0.0.53%lo:53         0.0.0.0:*
"""

NETSTAT_LISTEN = """\
Active Internet connections (only servers)
Proto Recv-Q Send-Q Local Address           Foreign Address         State       PID/Program name
tcp        0      0 0.0.0.0:30001           0.0.0.0:*               LISTEN      5151/python
tcp        0      0 0.0.0.0:3000            0.0.0.0:*               LISTEN      4242/node
tcp6       0      0 :::3000                 :::*                    LISTEN      4242/node
tcp        0      0 127.0.0.1:631           0.0.0.0:*               LISTEN      -
"""


class FakeProcess:
    def __init__(self, pid):
        self.pid = pid

    def cwd(self):
        raise psutil.NoSuchProcess(self.pid)


@pytest.fixture
def runner():
    return FakeRunner(
        {
            "ss -lptn sport = :3000": SS_LISTEN.splitlines()[0] + "\n" + SS_LISTEN.splitlines()[1] + "\n",
            "ss -lptn": SS_LISTEN,
            "netstat -ltnp": NETSTAT_LISTEN,
            "ps -p 4242 -o comm=": "node\n",
            "ps -p 4242 -o args=": "node /srv/app/server.js\n",
            "ps -p 4242 -o user=": "www-data\n",
            "ps -p 801 -o comm=": "sshd\n",
            "ps -p 801 -o args=": "sshd: /usr/sbin/sshd -D [listener] 0 of 10-100 startups\n",
            "ps -p 801 -o user=": "root\n",
            "ps -p 5151 -o comm=": "python\n",
            "ps -p 5151 -o args=": "python -m http.server 30001\n",
            "ps -p 5151 -o user=": "alice\n",
            "ps -p 4242 -o etime=,lstart=": "  2-10:30:45 Sat Dec 13 10:30:45 2025\n",
            "ps -p 4242 -o ppid=": "   1\n",
            "ps -p 1 -o comm=": "systemd\n",
            "systemctl status 4242 --no-pager --lines=0": (
                "● webapp.service - Web application\n     Loaded: loaded\n"
            ),
        }
    )


@pytest.fixture
def resolver(runner, monkeypatch):
    resolver = LinuxResolver(settle_delay=0)
    resolver._ss_available = True
    monkeypatch.setattr(resolver, "_run", runner)
    monkeypatch.setattr(resolver, "_read_cgroup", lambda pid: "0::/user.slice/user-1000.slice\n")
    monkeypatch.setattr("zkill.platforms.posix.psutil.Process", FakeProcess)
    return resolver


class TestLineParsers:
    """Tests for the ss and netstat line parsers."""

    def test_ss_line(self):
        """Test pid and port extraction from an ss line."""
        line = 'LISTEN 0 511 0.0.0.0:3000 0.0.0.0:* users:(("node",pid=12345,fd=20))'

        assert parse_ss_line(line) == ([12345], 3000)

    def test_ss_line_with_several_processes(self):
        """Test a socket shared by several processes yields every pid."""
        line = 'LISTEN 0 511 *:80 *:* users:(("nginx",pid=11,fd=6),("nginx",pid=10,fd=6))'

        assert parse_ss_line(line) == ([11, 10], 80)

    def test_ss_line_without_process(self):
        """Test a socket without visible owner yields no pids."""
        assert parse_ss_line("LISTEN 0 4096 127.0.0.53%lo:53 0.0.0.0:*") == ([], 53)

    def test_netstat_line(self):
        """Test pid and port extraction from a netstat line."""
        line = "tcp 0 0 0.0.0.0:3000 0.0.0.0:* LISTEN 12345/node"

        assert parse_netstat_line(line) == (12345, 3000)

    def test_netstat_header(self):
        """Test header lines are rejected."""
        line = "Proto Recv-Q Send-Q Local Address Foreign Address State PID/Program name"

        assert parse_netstat_line(line) == (None, None)

    def test_netstat_hidden_owner(self):
        """Test '-' as owner yields no pid."""
        assert parse_netstat_line("tcp 0 0 127.0.0.1:631 0.0.0.0:* LISTEN -") == (None, 631)


class TestFindProcessByPort:
    """Tests for single-port lookup."""

    def test_lookup_with_ss(self, resolver):
        """Test the ss path builds a full record."""
        record = resolver.find_process_by_port(3000)

        assert record.pid == 4242
        assert record.process_name == "node"
        assert record.command == "node /srv/app/server.js"
        assert record.user == "www-data"
        assert record.uptime_ms == 210645000
        assert record.start_time == datetime(2025, 12, 13, 10, 30, 45)
        assert record.parent_pid == 1
        assert record.parent_process_name == "systemd"
        assert record.working_directory is None
        assert record.service_manager is None

    def test_free_port_with_ss(self, resolver, runner):
        """Test ss output without a pid means the port is free."""
        runner.responses["ss -lptn sport = :4000"] = SS_LISTEN.splitlines()[0] + "\n"

        assert resolver.find_process_by_port(4000) is None

    def test_netstat_fallback_matches_exact_port(self, resolver):
        """Test the netstat path ignores ports that merely contain the digits."""
        resolver._ss_available = False

        record = resolver.find_process_by_port(3000)

        assert record.pid == 4242

    def test_systemd_service(self, resolver, monkeypatch):
        """Test a process in a systemd cgroup reports its unit."""
        monkeypatch.setattr(
            resolver, "_read_cgroup", lambda pid: "0::/system.slice/webapp.service\n1:name=systemd:/\n"
        )

        record = resolver.find_process_by_port(3000)

        assert record.service_manager == ServiceManager.SYSTEMD
        assert record.service_name == "webapp.service"

    def test_systemd_without_unit_name(self, resolver, runner, monkeypatch):
        """Test a failing systemctl keeps the manager and drops the name."""
        monkeypatch.setattr(resolver, "_read_cgroup", lambda pid: "1:name=systemd:/system.slice\n")
        del runner.responses["systemctl status 4242 --no-pager --lines=0"]

        record = resolver.find_process_by_port(3000)

        assert record.service_manager == ServiceManager.SYSTEMD
        assert record.service_name is None

    def test_unreadable_cgroup(self, resolver, monkeypatch):
        """Test an unreadable /proc entry only drops service detection."""

        def unreadable(pid):
            raise PermissionError(pid)

        monkeypatch.setattr(resolver, "_read_cgroup", unreadable)

        record = resolver.find_process_by_port(3000)

        assert record.pid == 4242
        assert record.service_manager is None

    def test_name_with_spaces(self, resolver, runner):
        """Test a process name containing spaces is kept whole."""
        runner.responses["ps -p 4242 -o comm="] = "tmux: server\n"
        runner.responses["ps -p 4242 -o args="] = "tmux new-session -d\n"

        record = resolver.find_process_by_port(3000)

        assert record.process_name == "tmux: server"
        assert record.command == "tmux new-session -d"
        assert record.user == "www-data"


class TestGetAllListeningPorts:
    """Tests for listening port enumeration."""

    def test_ss_enumeration(self, resolver):
        """Test dual-stack sockets collapse and ownerless sockets are skipped."""
        records = resolver.get_all_listening_ports()

        assert sorted((r.pid, r.port) for r in records) == [(801, 22), (4242, 3000)]
        sshd = next(r for r in records if r.pid == 801)
        assert sshd.command == "sshd: /usr/sbin/sshd -D [listener] 0 of 10-100 startups"
        assert sshd.user == "root"

    def test_netstat_enumeration(self, resolver):
        """Test the netstat fallback enumerates the same way."""
        resolver._ss_available = False

        records = resolver.get_all_listening_ports()

        assert sorted((r.pid, r.port) for r in records) == [(4242, 3000), (5151, 30001)]

    def test_tool_failure(self, resolver, runner):
        """Test an enumeration failure yields an empty list."""
        runner.responses["ss -lptn"] = CommandError(["ss"], "timed out after 10.0s")

        assert resolver.get_all_listening_ports() == []


def test_ss_is_looked_up_once(monkeypatch):
    """Test the ss availability check runs once per resolver."""
    lookups = []

    def fake_which(name):
        lookups.append(name)
        return None

    monkeypatch.setattr("zkill.platforms.linux.shutil.which", fake_which)
    resolver = LinuxResolver()

    assert resolver.has_ss is False
    assert resolver.has_ss is False
    assert lookups == ["ss"]


def test_critical_processes():
    """Test Linux core processes are flagged."""
    resolver = LinuxResolver()

    assert resolver.is_critical_process("systemd-journald")
    assert resolver.is_critical_process("NetworkManager")
    assert resolver.is_critical_process("sshd")
    assert not resolver.is_critical_process("node")
