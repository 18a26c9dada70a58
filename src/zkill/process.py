"""Platform-independent entry point for port lookups and termination."""

import math
import sys

import psutil

from zkill.errors import InvalidPidError, InvalidPortError, UnsupportedPlatformError
from zkill.models import ProcessRecord
from zkill.platforms.base import PlatformResolver
from zkill.platforms.darwin import DarwinResolver
from zkill.platforms.linux import LinuxResolver
from zkill.platforms.windows import WindowsResolver

MIN_PORT = 1
MAX_PORT = 65535

RESOLVERS: dict[str, type[PlatformResolver]] = {
    "darwin": DarwinResolver,
    "linux": LinuxResolver,
    "windows": WindowsResolver,
}

PLATFORM_NAMES = {
    "darwin": "macOS",
    "linux": "Linux",
    "windows": "Windows",
}


def detect_system() -> str:
    """Identify the running operating system family."""
    if psutil.MACOS:
        return "darwin"
    if psutil.LINUX:
        return "linux"
    if psutil.WINDOWS:
        return "windows"
    return sys.platform


def validate_port(port: object) -> int:
    """
    Check that ``port`` is an integer in 1-65535.

    Raises:
        InvalidPortError: The value is not a usable port number.
    """
    if isinstance(port, float) and not math.isfinite(port):
        raise InvalidPortError(f"Port must be a finite number, got {port!r}")
    if isinstance(port, bool) or not isinstance(port, int):
        raise InvalidPortError(f"Port must be an integer, got {port!r}")
    if not MIN_PORT <= port <= MAX_PORT:
        raise InvalidPortError(f"Port must be between {MIN_PORT} and {MAX_PORT}, got {port}")
    return port


def validate_pid(pid: object) -> int:
    """
    Check that ``pid`` is a positive integer.

    Raises:
        InvalidPidError: The value is not a usable process id.
    """
    if isinstance(pid, bool) or not isinstance(pid, int) or pid <= 0:
        raise InvalidPidError(f"Invalid PID: {pid!r}")
    return pid


class ProcessDirectory:
    """
    Looks up and terminates the processes bound to local ports.

    Selects the resolver for the running operating system once, validates
    arguments and delegates everything else. Holds no other state.
    """

    def __init__(self, resolver: PlatformResolver | None = None, system: str | None = None) -> None:
        """
        Initialize the ProcessDirectory.

        Args:
            resolver: Resolver to delegate to. Chosen from ``system`` if omitted.
            system: Operating system family. Detected if omitted.

        Raises:
            UnsupportedPlatformError: No resolver exists for the system.
        """
        self._system = system or detect_system()
        if resolver is None:
            resolver_class = RESOLVERS.get(self._system)
            if resolver_class is None:
                raise UnsupportedPlatformError(f"Unsupported platform: {self._system}")
            resolver = resolver_class()
        self._resolver = resolver

    @property
    def resolver(self) -> PlatformResolver:
        """The resolver for the host platform."""
        return self._resolver

    @property
    def platform_name(self) -> str:
        """Human-readable name of the running platform."""
        return PLATFORM_NAMES.get(self._system, self._system)

    def find_by_port(self, port: int) -> ProcessRecord | None:
        """Return the process listening on ``port``, or None if it is free."""
        return self._resolver.find_process_by_port(validate_port(port))

    def kill_process(self, pid: int, force: bool = False) -> bool:
        """Terminate ``pid`` gracefully, or immediately when ``force`` is set."""
        return self._resolver.kill_process(validate_pid(pid), force)

    def get_all_listening_ports(self) -> list[ProcessRecord]:
        """Return every listening (pid, port) pair on the host."""
        return self._resolver.get_all_listening_ports()

    def is_critical_process(self, record: ProcessRecord) -> bool:
        """Whether ``record`` looks like a core operating system process."""
        return self._resolver.is_critical_process(record.process_name)
