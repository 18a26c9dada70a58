"""Linux resolver built on ss (or netstat), ps, /proc and systemctl."""

import logging
import re
import shutil
from pathlib import Path

from zkill.errors import CommandError
from zkill.models import ProcessRecord, ServiceManager
from zkill.platforms.base import port_from_address
from zkill.platforms.posix import PosixResolver

logger = logging.getLogger(__name__)

_SS_PID = re.compile(r"pid=(\d+)")
_SERVICE_UNIT = re.compile(r"(\S+\.service)")


def parse_ss_line(line: str) -> tuple[list[int], int | None]:
    """
    Extract pids and the local port from one `ss -lptn` line.

    Format: LISTEN 0 511 0.0.0.0:3000 0.0.0.0:* users:(("node",pid=12345,fd=20))
    """
    parts = line.split()
    port = port_from_address(parts[3]) if len(parts) >= 5 else None
    pids = [int(pid) for pid in _SS_PID.findall(line)]
    return [pid for pid in pids if pid > 0], port


def parse_netstat_line(line: str) -> tuple[int | None, int | None]:
    """
    Extract the pid and local port from one `netstat -ltnp` line.

    Format: tcp 0 0 0.0.0.0:3000 0.0.0.0:* LISTEN 12345/node
    """
    parts = line.split()
    if len(parts) < 7 or not parts[0].startswith("tcp"):
        return None, None
    pid_part = parts[6].split("/", 1)[0]
    pid = int(pid_part) if pid_part.isdigit() and int(pid_part) > 0 else None
    return pid, port_from_address(parts[3])


class LinuxResolver(PosixResolver):
    """Resolve listening ports on Linux."""

    CRITICAL_PROCESSES = (
        "systemd",
        "init",
        "kernel",
        "dbus",
        "NetworkManager",
        "sshd",
    )
    PS_COMMAND_FIELD = "args"

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._ss_available: bool | None = None

    @property
    def has_ss(self) -> bool:
        """Whether `ss` is installed; looked up once per resolver."""
        if self._ss_available is None:
            self._ss_available = shutil.which("ss") is not None
            if not self._ss_available:
                logger.debug("ss not found, falling back to netstat")
        return self._ss_available

    def find_process_by_port(self, port: int) -> ProcessRecord | None:
        """Resolve the listener on ``port`` via ss, or netstat without it."""
        try:
            if self.has_ss:
                pid = self._find_pid_with_ss(port)
            else:
                pid = self._find_pid_with_netstat(port)
        except CommandError as exc:
            logger.debug("Port lookup for %d failed: %s", port, exc)
            return None

        if pid is None:
            return None
        return self._process_details(pid, port)

    def get_all_listening_ports(self) -> list[ProcessRecord]:
        """Enumerate TCP listeners via ss, or netstat without it."""
        try:
            if self.has_ss:
                candidates = self._listening_with_ss()
            else:
                candidates = self._listening_with_netstat()
        except CommandError as exc:
            logger.debug("Listening port enumeration failed: %s", exc)
            return []
        return self._collect(candidates)

    def _find_pid_with_ss(self, port: int) -> int | None:
        """First pid ss reports for ``port``."""
        output = self._run(["ss", "-lptn", f"sport = :{port}"])
        match = _SS_PID.search(output)
        if not match or int(match.group(1)) <= 0:
            return None
        return int(match.group(1))

    def _find_pid_with_netstat(self, port: int) -> int | None:
        """First pid netstat reports for ``port``."""
        output = self._run(["netstat", "-ltnp"])
        for line in output.splitlines():
            pid, local_port = parse_netstat_line(line)
            if pid is not None and local_port == port:
                return pid
        return None

    def _listening_with_ss(self) -> list[tuple[int, int]]:
        """(pid, port) pairs from ``ss -lptn``."""
        output = self._run(["ss", "-lptn"])
        candidates: list[tuple[int, int]] = []
        for line in output.strip().splitlines()[1:]:
            pids, port = parse_ss_line(line)
            if port is None:
                continue
            candidates.extend((pid, port) for pid in pids)
        return candidates

    def _listening_with_netstat(self) -> list[tuple[int, int]]:
        """(pid, port) pairs from ``netstat -ltnp``."""
        output = self._run(["netstat", "-ltnp"])
        candidates: list[tuple[int, int]] = []
        for line in output.splitlines():
            pid, port = parse_netstat_line(line)
            if pid is not None and port is not None:
                candidates.append((pid, port))
        return candidates

    def _read_cgroup(self, pid: int) -> str:
        """Contents of /proc/<pid>/cgroup."""
        return Path(f"/proc/{pid}/cgroup").read_text()

    def _service_context(self, pid: int) -> dict | None:
        """Find the systemd unit when the pid runs under systemd."""
        if "systemd" not in self._read_cgroup(pid):
            return None

        context: dict = {"service_manager": ServiceManager.SYSTEMD}
        try:
            output = self._run(["systemctl", "status", str(pid), "--no-pager", "--lines=0"])
        except CommandError as exc:
            logger.debug("systemctl status for pid %d failed: %s", pid, exc)
            return context

        lines = output.strip().splitlines()
        match = _SERVICE_UNIT.search(lines[0]) if lines else None
        if match:
            context["service_name"] = match.group(1)
        return context
