"""Data models for zkill."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class ServiceManager(Enum):
    """Service supervisors a listening process may be managed by."""

    LAUNCHD = "launchd"
    SYSTEMD = "systemd"
    WINDOWS_SERVICE = "windows-service"


@dataclass(slots=True, frozen=True)
class ProcessRecord:
    """Immutable snapshot of a process bound to a listening port."""

    pid: int
    port: int
    process_name: str
    command: str  # Falls back to process_name when the command line is hidden
    user: str | None = None  # Never set on Windows
    start_time: datetime | None = None
    uptime_ms: int | None = None
    parent_pid: int | None = None
    parent_process_name: str | None = None
    working_directory: str | None = None
    service_manager: ServiceManager | None = None
    service_name: str | None = None


@dataclass(slots=True)
class PortMapping:
    """Association between a port and the project that last used it."""

    port: int
    project_name: str
    project_path: str
    last_used: datetime
    auto_kill: bool = False
