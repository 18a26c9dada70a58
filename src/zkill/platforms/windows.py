"""Windows resolver built on netstat, tasklist, taskkill and wmic."""

import csv
import logging
import ntpath
from datetime import datetime

from zkill.errors import CommandError
from zkill.models import ProcessRecord, ServiceManager
from zkill.platforms.base import (
    ContextBuilder,
    PlatformResolver,
    parse_windows_creation_date,
    port_from_address,
)

logger = logging.getLogger(__name__)

NO_TASKS_MARKER = "INFO: No tasks"
# Parent pid of processes started by the service host
SERVICE_HOST_PID = 4


def parse_wmic_list(output: str) -> dict[str, str]:
    """Parse `wmic ... /format:list` output into a field mapping."""
    fields: dict[str, str] = {}
    for line in output.splitlines():
        key, sep, value = line.strip().partition("=")
        if sep and key:
            fields[key] = value.strip()
    return fields


def parse_netstat_listening(output: str) -> list[tuple[int, int]]:
    """
    Extract (pid, port) pairs for LISTENING rows of `netstat -ano`.

    Format: TCP    0.0.0.0:3000    0.0.0.0:0    LISTENING    12345
    """
    pairs: list[tuple[int, int]] = []
    for line in output.splitlines():
        parts = line.split()
        if len(parts) < 5 or parts[3] != "LISTENING":
            continue
        port = port_from_address(parts[1])
        if port is None or not parts[-1].isdigit():
            continue
        pid = int(parts[-1])
        if pid > 0:
            pairs.append((pid, port))
    return pairs


class WindowsResolver(PlatformResolver):
    """Resolve listening ports on Windows."""

    CRITICAL_PROCESSES = (
        "svchost.exe",
        "csrss.exe",
        "winlogon.exe",
        "explorer.exe",
        "System",
        "smss.exe",
        "services.exe",
        "lsass.exe",
    )

    def find_process_by_port(self, port: int) -> ProcessRecord | None:
        """Resolve the listener on ``port`` via netstat."""
        try:
            output = self._run(["netstat", "-ano"])
        except CommandError as exc:
            logger.debug("netstat lookup for port %d failed: %s", port, exc)
            return None

        for pid, local_port in parse_netstat_listening(output):
            if local_port == port:
                return self._process_details(pid, port)
        return None

    def get_all_listening_ports(self) -> list[ProcessRecord]:
        """Enumerate TCP listeners via netstat."""
        try:
            output = self._run(["netstat", "-ano"])
        except CommandError as exc:
            logger.debug("netstat enumeration failed: %s", exc)
            return []
        return self._collect(parse_netstat_listening(output))

    def kill_process(self, pid: int, force: bool = False) -> bool:
        """Run taskkill (with /F when forced) and check the pid is gone."""
        args = ["taskkill", "/PID", str(pid)]
        if force:
            args.append("/F")
        try:
            self._run(args)
        except CommandError as exc:
            logger.debug("taskkill for pid %d failed: %s", pid, exc)
            # Already gone counts as success
            return self._is_alive(pid) is False

        self._settle()
        # An unanswerable liveness check counts as terminated.
        return self._is_alive(pid) is not True

    def _is_alive(self, pid: int) -> bool | None:
        """Ask tasklist whether ``pid`` exists; None when tasklist itself failed."""
        try:
            output = self._run(["tasklist", "/FI", f"PID eq {pid}", "/NH"])
        except CommandError as exc:
            logger.debug("Liveness check for pid %d failed: %s", pid, exc)
            return None
        return NO_TASKS_MARKER not in output

    def _process_details(self, pid: int, port: int) -> ProcessRecord | None:
        """Build a record from tasklist, or None when the pid has vanished."""
        try:
            output = self._run(["tasklist", "/FI", f"PID eq {pid}", "/FO", "CSV", "/NH"])
        except CommandError as exc:
            logger.debug("tasklist lookup for pid %d failed: %s", pid, exc)
            return None

        lines = output.strip().splitlines()
        if not lines or NO_TASKS_MARKER in output:
            return None

        # "node.exe","12345","Console","1","45,678 K"
        row = next(csv.reader([lines[0]]), [])
        if len(row) < 2 or not row[0]:
            return None
        process_name = row[0]

        context = ContextBuilder(pid)
        context.absorb(self._command_context, pid)
        context.absorb(self._wmic_context, pid)
        context.absorb(
            self._service_context,
            context.get("parent_pid"),
            context.get("parent_process_name"),
        )
        fields = context.fields

        return ProcessRecord(
            pid=pid,
            port=port,
            process_name=process_name,
            command=fields.pop("command", process_name),
            **fields,
        )

    def _command_context(self, pid: int) -> dict:
        """Full command line from wmic."""
        # Needs elevated rights for processes owned by other users
        output = self._run(
            ["wmic", "process", "where", f"ProcessId={pid}", "get", "CommandLine", "/format:list"]
        )
        return {"command": parse_wmic_list(output).get("CommandLine") or None}

    def _wmic_context(self, pid: int) -> dict:
        """Start time, parent and executable directory from wmic."""
        output = self._run(
            [
                "wmic",
                "process",
                "where",
                f"ProcessId={pid}",
                "get",
                "CreationDate,ParentProcessId,ExecutablePath",
                "/format:list",
            ]
        )
        fields = parse_wmic_list(output)
        context: dict = {}

        start_time = parse_windows_creation_date(fields.get("CreationDate", ""))
        if start_time is not None:
            context["start_time"] = start_time
            elapsed = datetime.now() - start_time
            context["uptime_ms"] = max(0, int(elapsed.total_seconds() * 1000))

        parent = fields.get("ParentProcessId", "")
        if parent.isdigit() and int(parent) > 0:
            context["parent_pid"] = int(parent)
            context["parent_process_name"] = self._process_name(int(parent))

        executable = fields.get("ExecutablePath")
        if executable:
            context["working_directory"] = ntpath.dirname(executable)
        return context

    def _process_name(self, pid: int) -> str | None:
        """Image name of ``pid`` via wmic."""
        try:
            output = self._run(
                ["wmic", "process", "where", f"ProcessId={pid}", "get", "Name", "/format:list"]
            )
        except CommandError as exc:
            logger.debug("Name lookup for pid %d failed: %s", pid, exc)
            return None
        return parse_wmic_list(output).get("Name") or None

    def _service_context(self, parent_pid: int | None, parent_name: str | None) -> dict | None:
        """Approximate: services hang off the service host or services.exe."""
        if parent_pid == SERVICE_HOST_PID or "services" in (parent_name or "").lower():
            return {"service_manager": ServiceManager.WINDOWS_SERVICE}
        return None
