"""Resolver contract and helpers shared by every platform."""

import logging
import os
import re
import subprocess
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import datetime
from typing import Any

from zkill.errors import CommandError
from zkill.models import ProcessRecord

logger = logging.getLogger(__name__)

DEFAULT_COMMAND_TIMEOUT = 10.0
SETTLE_DELAY = 0.1

_PORT_SUFFIX = re.compile(r":(\d+)$")
_START_TIME_FORMATS = ("%a %b %d %H:%M:%S %Y", "%b %d %H:%M:%S %Y")


def command_timeout() -> float:
    """Timeout in seconds for a single native tool invocation."""
    value = os.environ.get("ZKILL_COMMAND_TIMEOUT")
    if not value:
        return DEFAULT_COMMAND_TIMEOUT
    try:
        return max(0.1, float(value))
    except ValueError:
        logger.warning("Ignoring invalid ZKILL_COMMAND_TIMEOUT=%r", value)
        return DEFAULT_COMMAND_TIMEOUT


def run_command(args: list[str], timeout: float | None = None) -> str:
    """
    Run a native tool to completion and return its stdout.

    Raises:
        CommandError: The tool is missing, timed out or exited non-zero.
    """
    try:
        result = subprocess.run(
            args,
            capture_output=True,
            text=True,
            errors="replace",
            timeout=timeout if timeout is not None else command_timeout(),
            check=False,
        )
    except FileNotFoundError as exc:
        raise CommandError(args, "command not found") from exc
    except subprocess.TimeoutExpired as exc:
        raise CommandError(args, f"timed out after {exc.timeout}s") from exc
    except OSError as exc:
        raise CommandError(args, str(exc)) from exc

    if result.returncode != 0:
        message = result.stderr.strip() or f"exit status {result.returncode}"
        raise CommandError(args, message, result.returncode)
    return result.stdout


def port_from_address(address: str) -> int | None:
    """Extract the port from '*:3000', '127.0.0.1:3000' or '[::]:3000'."""
    match = _PORT_SUFFIX.search(address)
    if not match:
        return None
    port = int(match.group(1))
    return port if 1 <= port <= 65535 else None


def parse_elapsed_time(etime: str) -> int | None:
    """
    Convert a ps elapsed time to milliseconds.

    Accepts DD-HH:MM:SS, HH:MM:SS and MM:SS. Returns None when unparseable.
    """
    text = etime.strip()
    days = 0
    try:
        if "-" in text:
            day_part, text = text.split("-", 1)
            days = int(day_part)
        fields = [int(field) for field in text.split(":")]
    except ValueError:
        return None

    if len(fields) == 3:
        hours, minutes, seconds = fields
    elif len(fields) == 2:
        hours = 0
        minutes, seconds = fields
    else:
        return None
    return (((days * 24 + hours) * 60 + minutes) * 60 + seconds) * 1000


def parse_start_time(lstart: str) -> datetime | None:
    """Parse a ps lstart value such as 'Sat Dec 13 10:30:45 2025'."""
    text = " ".join(lstart.split())
    for fmt in _START_TIME_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None


def parse_windows_creation_date(value: str) -> datetime | None:
    """Parse a WMI CreationDate ('20251213103045.123456+060'), ignoring the suffix."""
    digits = value.strip()[:14]
    if len(digits) != 14 or not digits.isdigit():
        return None
    try:
        return datetime(
            int(digits[0:4]),
            int(digits[4:6]),
            int(digits[6:8]),
            int(digits[8:10]),
            int(digits[10:12]),
            int(digits[12:14]),
        )
    except ValueError:
        return None


class ContextBuilder:
    """
    Accumulates best-effort enrichment for one process.

    Each step returns a partial mapping of ProcessRecord fields. A step that
    fails contributes nothing and never affects the other steps. Values that
    are already set are not overwritten.
    """

    def __init__(self, pid: int) -> None:
        self._pid = pid
        self._fields: dict[str, Any] = {}

    def absorb(self, step: Callable[..., dict[str, Any] | None], *args: Any) -> None:
        """Run one enrichment step and keep the values it found."""
        try:
            partial = step(*args)
        except (CommandError, OSError, ValueError, IndexError) as exc:
            logger.debug("pid %d: %s skipped: %s", self._pid, step.__name__, exc)
            return
        for key, value in (partial or {}).items():
            if value is not None:
                self._fields.setdefault(key, value)

    def get(self, key: str) -> Any:
        """Return a collected value, or None."""
        return self._fields.get(key)

    @property
    def fields(self) -> dict[str, Any]:
        """Copy of everything collected so far."""
        return dict(self._fields)


class PlatformResolver(ABC):
    """
    Capability set every operating system family must provide.

    Lookups never raise: any failure to resolve is reported as absence.
    """

    CRITICAL_PROCESSES: tuple[str, ...] = ()

    def __init__(self, settle_delay: float = SETTLE_DELAY) -> None:
        """
        Initialize the resolver.

        Args:
            settle_delay: Pause between a termination request and the
                liveness re-check (in seconds).
        """
        self.settle_delay = settle_delay

    @abstractmethod
    def find_process_by_port(self, port: int) -> ProcessRecord | None:
        """Return the process listening on ``port``, or None."""

    @abstractmethod
    def kill_process(self, pid: int, force: bool = False) -> bool:
        """Terminate ``pid`` and report whether it is gone afterwards."""

    @abstractmethod
    def get_all_listening_ports(self) -> list[ProcessRecord]:
        """Return one record per listening (pid, port) pair."""

    def is_critical_process(self, process_name: str) -> bool:
        """Check the name against this platform's core OS processes."""
        name = process_name.lower()
        return any(critical.lower() in name for critical in self.CRITICAL_PROCESSES)

    def _run(self, args: list[str]) -> str:
        """Run a native tool; replaced in tests."""
        return run_command(args)

    def _settle(self) -> None:
        """Give a signalled process time to exit."""
        time.sleep(self.settle_delay)

    def _collect(self, candidates: list[tuple[int, int]]) -> list[ProcessRecord]:
        """Build records for (pid, port) pairs, skipping repeats and vanished pids."""
        records: list[ProcessRecord] = []
        seen: set[tuple[int, int]] = set()
        for pid, port in candidates:
            if (pid, port) in seen:
                continue
            seen.add((pid, port))
            record = self._process_details(pid, port)
            if record is not None:
                records.append(record)
        return records

    @abstractmethod
    def _process_details(self, pid: int, port: int) -> ProcessRecord | None:
        """Build a full record for ``pid``, or None if it cannot be identified."""
