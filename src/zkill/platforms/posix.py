"""ps- and signal-based behaviour shared by the macOS and Linux resolvers."""

import logging
import os
import signal

import psutil

from zkill.errors import CommandError
from zkill.models import ProcessRecord
from zkill.platforms.base import (
    ContextBuilder,
    PlatformResolver,
    parse_elapsed_time,
    parse_start_time,
)

logger = logging.getLogger(__name__)


class PosixResolver(PlatformResolver):
    """Termination and ps enrichment common to Unix-like systems."""

    # ps format keyword for the full command line
    PS_COMMAND_FIELD = "command"

    def kill_process(self, pid: int, force: bool = False) -> bool:
        """Send SIGTERM (SIGKILL when forced) and check the pid is gone."""
        sig = signal.SIGKILL if force else signal.SIGTERM
        try:
            os.kill(pid, sig)
        except ProcessLookupError:
            return True
        except (OSError, OverflowError) as exc:
            # OverflowError: the pid does not fit the platform's pid_t
            logger.debug("Failed to signal pid %d: %s", pid, exc)
            return False

        self._settle()
        # An unanswerable liveness check counts as terminated.
        return self._is_alive(pid) is not True

    def _is_alive(self, pid: int) -> bool | None:
        """Ask ps whether ``pid`` exists; None when ps itself failed."""
        try:
            self._run(["ps", "-p", str(pid)])
        except CommandError as exc:
            if exc.returncode == 1:
                return False
            logger.debug("Liveness check for pid %d failed: %s", pid, exc)
            return None
        return True

    def _ps_field(self, pid: int, field: str) -> str:
        """Run ps for a single output column of ``pid``."""
        return self._run(["ps", "-p", str(pid), "-o", f"{field}="]).strip()

    def _name_from_comm(self, comm: str) -> str:
        """Turn the ps ``comm`` column into a process name."""
        return comm

    def _process_details(self, pid: int, port: int) -> ProcessRecord | None:
        """Build a record from ps, or None when the pid has vanished."""
        try:
            comm = self._ps_field(pid, "comm")
        except CommandError as exc:
            logger.debug("ps lookup for pid %d failed: %s", pid, exc)
            return None
        if not comm:
            return None

        # One column per ps call: names, paths and command lines may hold spaces
        process_name = self._name_from_comm(comm)

        context = ContextBuilder(pid)
        context.absorb(self._command_context, pid)
        context.absorb(self._user_context, pid)
        context.absorb(self._time_context, pid)
        context.absorb(self._parent_context, pid)
        context.absorb(self._cwd_context, pid)
        context.absorb(self._service_context, pid)

        fields = context.fields
        return ProcessRecord(
            pid=pid,
            port=port,
            process_name=process_name,
            command=fields.pop("command", None) or process_name,
            **fields,
        )

    def _command_context(self, pid: int) -> dict:
        """Full command line with arguments."""
        command = self._ps_field(pid, self.PS_COMMAND_FIELD)
        return {"command": command} if command else {}

    def _user_context(self, pid: int) -> dict:
        """Name of the user owning the process."""
        user = self._ps_field(pid, "user")
        return {"user": user} if user else {}

    def _time_context(self, pid: int) -> dict:
        """Uptime and start time from ps."""
        output = self._run(["ps", "-p", str(pid), "-o", "etime=,lstart="]).strip()
        parts = output.split()
        if len(parts) < 2:
            return {}
        return {
            "uptime_ms": parse_elapsed_time(parts[0]),
            "start_time": parse_start_time(" ".join(parts[1:])),
        }

    def _parent_context(self, pid: int) -> dict:
        """Parent pid and, when ps can name it, the parent's name."""
        ppid = int(self._ps_field(pid, "ppid"))
        if ppid <= 0:
            return {}

        context: dict = {"parent_pid": ppid}
        try:
            name = self._ps_field(ppid, "comm")
        except CommandError as exc:
            logger.debug("Parent name lookup for pid %d failed: %s", ppid, exc)
        else:
            if name:
                context["parent_process_name"] = self._name_from_comm(name)
        return context

    def _cwd_context(self, pid: int) -> dict:
        """Working directory via psutil."""
        try:
            cwd = psutil.Process(pid).cwd()
        except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess) as exc:
            logger.debug("Working directory of pid %d unavailable: %s", pid, exc)
            return {}
        return {"working_directory": cwd or None}

    def _service_context(self, pid: int) -> dict | None:
        """Detect the platform's service supervisor; override per platform."""
        return None
