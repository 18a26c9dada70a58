"""Background scan and kill execution for the port browser."""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from queue import Queue

from zkill.commands import terminate
from zkill.models import ProcessRecord
from zkill.process import ProcessDirectory

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ScanSnapshot:
    """Result of one listening-port enumeration."""

    platform_name: str
    records: list[ProcessRecord]
    critical_pids: frozenset[int] = frozenset()
    scanned_at: datetime = field(default_factory=datetime.now)


@dataclass(slots=True, frozen=True)
class KillOutcome:
    """Result of terminating the process behind one port."""

    pid: int
    port: int
    success: bool


class PortScanner:
    """
    Runs scans and kills for the port browser off the UI thread.

    Each request starts one daemon thread that does its work and pushes the
    result to a thread-safe Queue. Only one request runs at a time; there is
    no periodic polling.
    """

    def __init__(
        self,
        directory: ProcessDirectory,
        update_queue: "Queue[ScanSnapshot | KillOutcome]",
    ) -> None:
        """
        Initialize the PortScanner.

        Args:
            directory: Where lookups and kills are delegated.
            update_queue: Thread-safe queue to push results to.
        """
        self._directory = directory
        self._queue = update_queue
        self._thread: threading.Thread | None = None

    @property
    def is_running(self) -> bool:
        """Check if a request is still being processed."""
        return self._thread is not None and self._thread.is_alive()

    def request_scan(self) -> bool:
        """Start a scan. Returns False if another request is still running."""
        return self._start(self._scan, "PortScanner")

    def request_kill(self, record: ProcessRecord) -> bool:
        """Terminate ``record``'s process, then rescan. False if busy."""
        return self._start(lambda: self._kill(record), "PortKiller")

    def join(self, timeout: float | None = 5.0) -> None:
        """Wait for the running request to finish."""
        if self._thread is not None:
            self._thread.join(timeout=timeout)

    def _start(self, target, name: str) -> bool:
        """Run ``target`` on a daemon thread unless one is already busy."""
        if self.is_running:
            return False
        self._thread = threading.Thread(target=target, daemon=True, name=name)
        self._thread.start()
        return True

    def _scan(self) -> None:
        """Worker body: collect a snapshot and queue it."""
        try:
            self._queue.put(self.collect_snapshot())
        except Exception:
            # Thread boundary: report and let the UI keep its last snapshot
            logger.exception("Port scan failed")

    def _kill(self, record: ProcessRecord) -> None:
        """Worker body: terminate a record and queue the outcome."""
        try:
            success = terminate(self._directory, record.pid)
            self._queue.put(KillOutcome(pid=record.pid, port=record.port, success=success))
        except Exception:
            logger.exception("Terminating pid %d failed", record.pid)
        self._scan()

    def collect_snapshot(self) -> ScanSnapshot:
        """Enumerate listening ports synchronously."""
        records = self._directory.get_all_listening_ports()
        critical = frozenset(r.pid for r in records if self._directory.is_critical_process(r))
        return ScanSnapshot(
            platform_name=self._directory.platform_name,
            records=sorted(records, key=lambda r: (r.port, r.pid)),
            critical_pids=critical,
        )
