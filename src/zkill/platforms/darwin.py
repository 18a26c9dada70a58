"""macOS resolver built on lsof, ps and launchctl."""

import logging
import posixpath

from zkill.errors import CommandError
from zkill.models import ProcessRecord, ServiceManager
from zkill.platforms.base import port_from_address
from zkill.platforms.posix import PosixResolver

logger = logging.getLogger(__name__)


class DarwinResolver(PosixResolver):
    """Resolve listening ports on macOS."""

    CRITICAL_PROCESSES = (
        "systemd",
        "init",
        "kernel",
        "launchd",
        "WindowServer",
        "loginwindow",
    )

    def find_process_by_port(self, port: int) -> ProcessRecord | None:
        """Resolve the listener on ``port`` via lsof."""
        try:
            output = self._run(["lsof", "-nP", f"-iTCP:{port}", "-sTCP:LISTEN", "-t"])
        except CommandError as exc:
            # lsof exits 1 when nothing matches
            logger.debug("lsof lookup for port %d failed: %s", port, exc)
            return None

        for line in output.split():
            if line.isdigit() and int(line) > 0:
                return self._process_details(int(line), port)
        return None

    def get_all_listening_ports(self) -> list[ProcessRecord]:
        """Enumerate TCP listeners via lsof."""
        try:
            output = self._run(["lsof", "-iTCP", "-sTCP:LISTEN", "-n", "-P"])
        except CommandError as exc:
            logger.debug("lsof enumeration failed: %s", exc)
            return []

        # COMMAND PID USER FD TYPE DEVICE SIZE/OFF NODE NAME (LISTEN)
        candidates: list[tuple[int, int]] = []
        for line in output.strip().splitlines()[1:]:
            parts = line.split()
            if len(parts) < 9 or not parts[1].isdigit():
                continue
            port = port_from_address(parts[8])
            if port is None:
                continue
            candidates.append((int(parts[1]), port))

        return self._collect(candidates)

    def _name_from_comm(self, comm: str) -> str:
        """macOS reports the full executable path as ``comm``."""
        return posixpath.basename(comm) or comm

    def _service_context(self, pid: int) -> dict | None:
        """Find the launchd job label running ``pid``."""
        output = self._run(["launchctl", "list"])
        # PID Status Label
        for line in output.splitlines():
            parts = line.split()
            if not parts or parts[0] != str(pid):
                continue
            if len(parts) >= 3:
                return {"service_manager": ServiceManager.LAUNCHD, "service_name": parts[2]}
            if len(parts) == 2:
                return {"service_manager": ServiceManager.LAUNCHD}
        return None
