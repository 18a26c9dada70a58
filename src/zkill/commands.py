"""User-facing workflows: kill, scan, list, auto-kill and info."""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

import click
from rich.console import Console
from rich.markup import escape

from zkill.errors import InvalidPortError, InvalidPortRangeError
from zkill.formatting import format_duration, format_last_used, truncate
from zkill.models import ProcessRecord
from zkill.process import ProcessDirectory, validate_port
from zkill.project import ProjectDetector
from zkill.storage import Storage

logger = logging.getLogger(__name__)

# Pause before retrying a failed graceful kill with force
ESCALATION_DELAY = 0.5

Confirm = Callable[[str, bool], bool]


def click_confirm(message: str, default: bool) -> bool:
    """Ask on the terminal via click."""
    return click.confirm(message, default=default)


SHELL_INTEGRATION = {
    "Bash/Zsh (~/.bashrc or ~/.zshrc)": (
        "function cd() {\n"
        '  builtin cd "$@"\n'
        "  zkill auto check\n"
        "}"
    ),
    "Fish (~/.config/fish/config.fish)": (
        "function cd\n"
        "  builtin cd $argv\n"
        "  zkill auto check\n"
        "end"
    ),
    "PowerShell ($PROFILE)": (
        "function cd {\n"
        "  Set-Location $args\n"
        "  zkill auto check\n"
        "}"
    ),
}


def parse_port_range(text: str) -> tuple[int, int]:
    """
    Parse a 'min-max' port range.

    Raises:
        InvalidPortRangeError: The range is malformed, out of bounds or reversed.
    """
    parts = [part.strip() for part in text.split("-")]
    if len(parts) != 2:
        raise InvalidPortRangeError("Invalid port range format. Use: --range 3000-9000")
    try:
        low, high = int(parts[0]), int(parts[1])
    except ValueError as exc:
        raise InvalidPortRangeError("Port range must contain valid numbers") from exc
    try:
        validate_port(low)
        validate_port(high)
    except InvalidPortError as exc:
        raise InvalidPortRangeError("Invalid port range. Ports must be 1-65535 and min <= max") from exc
    if low > high:
        raise InvalidPortRangeError("Invalid port range. Ports must be 1-65535 and min <= max")
    return low, high


def terminate(directory: ProcessDirectory, pid: int, delay: float = ESCALATION_DELAY) -> bool:
    """Kill ``pid`` gracefully, retrying once with force if it survives."""
    if directory.kill_process(pid, force=False):
        return True
    logger.debug("Graceful termination of pid %d failed, forcing", pid)
    time.sleep(delay)
    return directory.kill_process(pid, force=True)


def describe_process(console: Console, record: ProcessRecord) -> None:
    """Print the details block for one process."""
    console.print("\n[bold]Process Details:[/bold]")
    console.print(f"[cyan]  Process:  {escape(record.process_name)}[/cyan]")
    console.print(f"[cyan]  PID:      {record.pid}[/cyan]")
    console.print(f"[cyan]  Command:  {escape(record.command)}[/cyan]", highlight=False)
    if record.user:
        console.print(f"[cyan]  User:     {record.user}[/cyan]")
    if record.uptime_ms is not None:
        console.print(f"[cyan]  Uptime:   {format_duration(record.uptime_ms)}[/cyan]")
    if record.parent_pid is not None:
        parent = record.parent_process_name or "unknown"
        console.print(f"[cyan]  Parent:   {escape(parent)} ({record.parent_pid})[/cyan]")
    if record.service_manager is not None:
        service = record.service_manager.value
        if record.service_name:
            service += f" ({record.service_name})"
        console.print(f"[cyan]  Service:  {service}[/cyan]")
    if record.working_directory:
        console.print(f"[cyan]  Cwd:      {escape(record.working_directory)}[/cyan]", highlight=False)


class KillCommand:
    """Frees one port: find the owner, confirm, terminate and remember the project."""

    def __init__(
        self,
        directory: ProcessDirectory,
        storage: Storage,
        project: ProjectDetector,
        console: Console | None = None,
        confirm: Confirm = click_confirm,
    ) -> None:
        self._directory = directory
        self._storage = storage
        self._project = project
        self._console = console or Console()
        self._confirm = confirm

    def execute(self, port: int, force: bool = False) -> bool:
        """Return True when the port was freed."""
        with self._console.status(f"Checking port {port}..."):
            record = self._directory.find_by_port(port)

        if record is None:
            self._console.print(f"[red]✖ Port {port} is not in use[/red]")
            return False

        self._console.print(f"[green]✔ Port {port} is in use[/green]")
        describe_process(self._console, record)

        mapping = self._storage.get_port_mapping(port)
        if mapping:
            self._console.print(
                f"\n[cyan]📁 Last used by project: [bold]{escape(mapping.project_name)}[/bold][/cyan]"
            )
            self._console.print(f"[dim]   Path: {escape(mapping.project_path)}[/dim]", highlight=False)

        if self._directory.is_critical_process(record):
            self._console.print("\n[bold yellow]⚠️  Warning: This appears to be a system process![/bold yellow]")
            self._console.print("[yellow]Killing it may cause system instability.[/yellow]")

        if not force and self._storage.is_confirm_kill_enabled():
            if not self._confirm(f"Are you sure you want to kill process {record.pid}?", False):
                self._console.print("\n[dim]Operation cancelled.[/dim]")
                return False

        if not self._terminate(record):
            return False

        if self._project.is_project_directory():
            name = self._project.project_name
            self._storage.add_port_mapping(port, name, self._project.project_path)
            self._console.print(f"\n[dim]📝 Port {port} now associated with project: {escape(name)}[/dim]")
        return True

    def _terminate(self, record: ProcessRecord) -> bool:
        """Terminate with a spinner and print the result."""
        with self._console.status("Terminating process..."):
            success = terminate(self._directory, record.pid)

        if success:
            self._console.print(f"[green]✔ Process {record.pid} terminated successfully[/green]")
            self._console.print(f"\n[green]Port {record.port} is now available.[/green]")
        else:
            self._console.print("[red]✖ Failed to terminate process[/red]")
            self._console.print(
                "\n[yellow]You may need elevated privileges "
                "(sudo on macOS/Linux, Administrator on Windows).[/yellow]"
            )
            self._console.print(f"\n[dim]Try: [white]sudo zkill {record.port}[/white][/dim]")
        return success


@dataclass(slots=True)
class ScanOptions:
    """Filters for the scan workflow."""

    port_range: str | None = None
    process: str | None = None
    show_system: bool = True


class ScanCommand:
    """Lists listening ports matching optional filters."""

    def __init__(
        self,
        directory: ProcessDirectory,
        storage: Storage,
        console: Console | None = None,
    ) -> None:
        self._directory = directory
        self._storage = storage
        self._console = console or Console()

    def scan(self, options: ScanOptions | None = None) -> list[ProcessRecord]:
        """Return (and print) the listening processes matching ``options``."""
        options = options or ScanOptions()
        # Validate before the potentially slow enumeration
        port_range = parse_port_range(options.port_range) if options.port_range else None

        with self._console.status("Scanning for active ports..."):
            records = self._directory.get_all_listening_ports()

        records = self.apply_filters(records, options, port_range)
        if not records:
            self._console.print("\n[yellow]No ports currently in use matching your filters.[/yellow]")
            return []

        self._show_active_filters(options)
        self._console.print(f"\n[bold]📊 Active Ports ({len(records)} found):[/bold]\n")
        for record in records:
            self._print_record(record)
        return records

    def apply_filters(
        self,
        records: list[ProcessRecord],
        options: ScanOptions,
        port_range: tuple[int, int] | None = None,
    ) -> list[ProcessRecord]:
        """Filter by port range, process name and criticality; sort by port."""
        filtered = list(records)
        if port_range is not None:
            low, high = port_range
            filtered = [r for r in filtered if low <= r.port <= high]
        if options.process:
            term = options.process.lower()
            filtered = [r for r in filtered if term in r.process_name.lower()]
        if not options.show_system:
            filtered = [r for r in filtered if not self._directory.is_critical_process(r)]
        return sorted(filtered, key=lambda r: (r.port, r.pid))

    def _show_active_filters(self, options: ScanOptions) -> None:
        """Print the filters in effect, if any."""
        filters = []
        if options.port_range:
            filters.append(f"Port range: {options.port_range}")
        if options.process:
            filters.append(f"Process: {options.process}")
        if not options.show_system:
            filters.append("Hiding system processes")
        if filters:
            self._console.print(f"\n[dim]🔍 Filters: [cyan]{', '.join(filters)}[/cyan][/dim]")

    def _print_record(self, record: ProcessRecord) -> None:
        """Print one listener with its last known project."""
        mapping = self._storage.get_port_mapping(record.port)
        project = f" [dim]({escape(mapping.project_name)})[/dim]" if mapping else ""
        self._console.print(
            f"[cyan]Port [bold]{record.port}[/bold][/cyan][dim] - [/dim]{escape(record.process_name)}{project}"
        )
        self._console.print(f"[dim]     PID: {record.pid}[/dim]")
        self._console.print(f"[dim]     Command: {escape(truncate(record.command, 60))}[/dim]", highlight=False)
        if record.user:
            self._console.print(f"[dim]     User: {record.user}[/dim]")
        if record.uptime_ms is not None:
            self._console.print(f"[dim]     Uptime: {format_duration(record.uptime_ms)}[/dim]")
        self._console.print()


def list_port_mappings(storage: Storage, console: Console | None = None) -> None:
    """Print every stored port mapping with its last-used time."""
    console = console or Console()
    mappings = storage.get_all_mappings()
    if not mappings:
        console.print("\n[yellow]No port mappings configured yet.[/yellow]")
        console.print(
            "\n[dim]Port mappings are created automatically when you kill "
            "a process from within a project directory.[/dim]"
        )
        return

    console.print(f"\n[bold]📋 Port Mappings ({len(mappings)} configured):[/bold]\n")
    for mapping in mappings:
        auto_kill = " [green]\\[auto-kill][/green]" if mapping.auto_kill else ""
        console.print(
            f"[cyan]Port [bold]{mapping.port}[/bold][/cyan][dim] → [/dim]"
            f"{escape(mapping.project_name)}{auto_kill}"
        )
        console.print(f"[dim]     {escape(mapping.project_path)}[/dim]", highlight=False)
        console.print(f"[dim]     Last used: {format_last_used(mapping.last_used)}[/dim]\n")

    console.print(f"[dim]Config file: {storage.config_path}[/dim]", highlight=False)


class AutoCommand:
    """Manages automatic cleanup of ports left behind by other projects."""

    def __init__(
        self,
        directory: ProcessDirectory,
        storage: Storage,
        project: ProjectDetector,
        console: Console | None = None,
        confirm: Confirm = click_confirm,
    ) -> None:
        self._directory = directory
        self._storage = storage
        self._project = project
        self._console = console or Console()
        self._confirm = confirm

    def enable(self) -> None:
        """Turn auto-kill on globally."""
        self._storage.set_auto_kill(True)
        self._console.print("[green]✅ Auto-kill enabled globally[/green]")
        self._console.print(
            "\n[dim]Zombie processes from other projects will be automatically "
            "killed when you switch projects.[/dim]"
        )
        self._print_integration_instructions()

    def disable(self) -> None:
        """Turn auto-kill off globally."""
        self._storage.set_auto_kill(False)
        self._console.print("[yellow]⚠️  Auto-kill disabled[/yellow]")
        self._console.print("\n[dim]You will need to manually kill processes using zkill <port>[/dim]")

    def check(self) -> int:
        """
        Kill processes still holding ports of other auto-kill projects.

        Silent when auto-kill is disabled or nothing is found, so it can run
        from a shell `cd` hook. Returns the number of processes killed.
        """
        if not self._storage.is_auto_kill_enabled():
            return 0

        current_path = self._project.project_path
        candidates = [
            m
            for m in self._storage.get_all_mappings()
            if m.project_path != current_path and m.auto_kill
        ]

        in_use = []
        for mapping in candidates:
            record = self._directory.find_by_port(mapping.port)
            if record is not None:
                in_use.append((mapping, record))
        if not in_use:
            return 0

        self._console.print(
            f"\n[cyan]🔄 Project switch detected: [bold]{escape(self._project.project_name)}[/bold][/cyan]"
        )
        self._console.print(f"\n[yellow]🔍 Found {len(in_use)} port(s) from previous project(s):[/yellow]")
        for mapping, record in in_use:
            self._console.print(
                f"[dim]   Port {mapping.port} ({escape(record.process_name)}, PID: {record.pid})"
                f" - {escape(mapping.project_name)}[/dim]"
            )

        if not self._confirm("Auto-kill these processes?", True):
            self._console.print("[dim]Skipped auto-kill.[/dim]")
            return 0

        killed = sum(1 for _, record in in_use if self._directory.kill_process(record.pid))
        ports = ", ".join(str(mapping.port) for mapping, _ in in_use)
        self._console.print(f"\n[green]✅ Killed {killed} process(es)[/green]")
        self._console.print(f"[green]📝 Ports {ports} now available[/green]")
        return killed

    def status(self) -> None:
        """Print the global switch and the ports marked for auto-kill."""
        self._console.print("\n[bold]⚙️  Auto-Kill Status:[/bold]\n")
        if self._storage.is_auto_kill_enabled():
            self._console.print("[green]✅ Enabled[/green]")
            self._console.print(
                "\n[dim]Auto-kill will prompt you to kill processes from other "
                "projects when you switch directories.[/dim]"
            )
        else:
            self._console.print("[red]❌ Disabled[/red]")
            self._console.print("\n[dim]To enable: zkill auto enable[/dim]")

        mappings = [m for m in self._storage.get_all_mappings() if m.auto_kill]
        if mappings:
            self._console.print(f"\n[bold]📋 Ports with auto-kill enabled ({len(mappings)}):[/bold]\n")
            for mapping in mappings:
                self._console.print(
                    f"[cyan]Port {mapping.port}[/cyan][dim] → [/dim]{escape(mapping.project_name)}"
                )

    def toggle_port(self, port: int) -> bool | None:
        """Flip auto-kill for one mapped port; None if the port has no mapping."""
        mapping = self._storage.get_port_mapping(validate_port(port))
        if mapping is None:
            self._console.print(
                f"\n[yellow]No mapping found for port {port}. "
                f"Use zkill {port} first to create a mapping.[/yellow]"
            )
            return None

        enabled = not mapping.auto_kill
        self._storage.add_port_mapping(port, mapping.project_name, mapping.project_path, enabled)
        if enabled:
            self._console.print(
                f"\n[green]✅ Auto-kill enabled for port {port} ({escape(mapping.project_name)})[/green]"
            )
        else:
            self._console.print(
                f"\n[yellow]❌ Auto-kill disabled for port {port} ({escape(mapping.project_name)})[/yellow]"
            )
        return enabled

    def _print_integration_instructions(self) -> None:
        """Print the shell hook that runs auto-kill on cd."""
        self._console.print("\n[bold]📝 Optional: Shell Integration[/bold]\n")
        self._console.print(
            "[dim]For automatic checking on directory change, add this to your shell config:[/dim]\n"
        )
        for shell, snippet in SHELL_INTEGRATION.items():
            self._console.print(f"[bold]{shell}:[/bold]")
            self._console.print(f"[cyan]{snippet}[/cyan]\n", highlight=False)
        self._console.print(
            "[dim]After adding, restart your shell or run: source ~/.bashrc (or equivalent)[/dim]\n"
        )


def show_info(
    directory: ProcessDirectory,
    storage: Storage,
    project: ProjectDetector,
    console: Console | None = None,
) -> None:
    """Print platform, configuration and current project details."""
    console = console or Console()
    auto_kill = "[green]Enabled[/green]" if storage.is_auto_kill_enabled() else "[red]Disabled[/red]"

    console.print("\n[bold]⚙️  System Information:[/bold]\n")
    console.print(f"[cyan]Platform:    [/cyan]{directory.platform_name}")
    console.print(f"[cyan]Config file: [/cyan][dim]{storage.config_path}[/dim]", highlight=False)
    console.print(f"[cyan]Auto-kill:   [/cyan]{auto_kill}")

    if project.is_project_directory():
        ports = ", ".join(str(port) for port in project.common_ports())
        console.print("\n[bold]📁 Current Project:[/bold]\n")
        console.print(f"[cyan]Name:        [/cyan]{escape(project.project_name)}")
        console.print(f"[cyan]Type:        [/cyan]{project.project_type or 'Unknown'}")
        console.print(f"[cyan]Path:        [/cyan][dim]{escape(project.project_path)}[/dim]", highlight=False)
        console.print(f"[cyan]Common ports:[/cyan] {ports}")
    else:
        console.print("\n[yellow]⚠️  Not in a project directory[/yellow]")

    mappings = storage.get_all_mappings()
    if mappings:
        console.print(f"\n[bold]📋 Port Mappings: {len(mappings)} configured[/bold]\n")
        console.print('[dim]Run "zkill list" to see all mappings[/dim]')
    console.print()
