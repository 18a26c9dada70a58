"""zkill browse - interactive Textual port browser."""

from enum import Enum
from queue import Empty, Queue

from rich.markup import escape
from textual.app import App, ComposeResult
from textual.containers import Container
from textual.widgets import DataTable, Footer, Static

from zkill.formatting import format_duration, truncate
from zkill.models import ProcessRecord
from zkill.monitor import KillOutcome, PortScanner, ScanSnapshot
from zkill.process import ProcessDirectory
from zkill.storage import Storage


class SortKey(Enum):
    """Sort keys for the port table."""

    PORT = "port"
    PID = "pid"
    NAME = "name"
    UPTIME = "uptime"


def row_key(record: ProcessRecord) -> str:
    """Stable DataTable row key for a record."""
    return f"{record.pid}:{record.port}"


class ScanHeader(Static):
    """Header line showing the platform and the last scan."""

    DEFAULT_CSS = """
    ScanHeader {
        height: auto;
        padding: 0 1;
        background: $surface;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        """Initialize ScanHeader."""
        super().__init__("Scanning for active ports...", *args, **kwargs)
        self._snapshot: ScanSnapshot | None = None
        self._message: str = ""

    def update_snapshot(self, snapshot: ScanSnapshot) -> None:
        """Show a new scan summary."""
        self._snapshot = snapshot
        self._refresh_display()

    @property
    def message(self) -> str:
        """Prompt shown below the scan summary."""
        return self._message

    def set_message(self, message: str) -> None:
        """Replace the prompt under the summary."""
        self._message = message
        self._refresh_display()

    def _refresh_display(self) -> None:
        """Redraw the header text."""
        if self._snapshot is None:
            text = "Scanning for active ports..."
        else:
            text = (
                f"[bold]{self._snapshot.platform_name}[/bold]  "
                f"{len(self._snapshot.records)} listening  "
                f"[dim]scanned {self._snapshot.scanned_at:%H:%M:%S}[/dim]"
            )
        if self._message:
            text += f"\n{self._message}"
        self.update(text)


class PortTable(Container):
    """Container for the listening port table."""

    DEFAULT_CSS = """
    PortTable {
        height: 1fr;
        border: solid $primary;
    }
    """

    def __init__(self, storage: Storage | None = None, *args, **kwargs) -> None:
        """Initialize PortTable."""
        super().__init__(*args, **kwargs)
        self._port_storage = storage
        self._records: dict[str, ProcessRecord] = {}
        self._critical_pids: frozenset[int] = frozenset()
        self._sort_key: SortKey = SortKey.PORT

    @property
    def sort_key(self) -> SortKey:
        """Get current sort key."""
        return self._sort_key

    def cycle_sort(self) -> SortKey:
        """Cycle to the next sort key, re-render and return it."""
        keys = list(SortKey)
        self._sort_key = keys[(keys.index(self._sort_key) + 1) % len(keys)]
        self._render_rows()
        return self._sort_key

    def compose(self) -> ComposeResult:
        """Compose the port table."""
        yield DataTable(id="port-table")

    def on_mount(self) -> None:
        """Initialize the data table when mounted."""
        table = self.query_one("#port-table", DataTable)
        table.cursor_type = "row"

        table.add_column("PORT", key="port", width=7)
        table.add_column("PID", key="pid", width=8)
        table.add_column("PROCESS", key="name", width=16)
        table.add_column("USER", key="user", width=10)
        table.add_column("UPTIME", key="uptime", width=8)
        table.add_column("PROJECT", key="project", width=16)
        table.add_column("Command", key="command")

    def update_records(self, snapshot: ScanSnapshot) -> None:
        """Replace the table contents with a new scan."""
        self._records = {row_key(record): record for record in snapshot.records}
        self._critical_pids = snapshot.critical_pids
        self._render_rows()

    def highlighted_record(self) -> ProcessRecord | None:
        """The record under the cursor, if any."""
        table = self.query_one("#port-table", DataTable)
        if table.row_count == 0:
            return None
        cell_key = table.coordinate_to_cell_key(table.cursor_coordinate)
        return self._records.get(cell_key.row_key.value)

    def is_critical(self, record: ProcessRecord) -> bool:
        """Whether the record belongs to a core OS process."""
        return record.pid in self._critical_pids

    def _sorted_records(self) -> list[ProcessRecord]:
        """Return records ordered by the current sort key."""
        key_func = {
            SortKey.PORT: lambda r: (r.port, r.pid),
            SortKey.PID: lambda r: (r.pid, r.port),
            SortKey.NAME: lambda r: (r.process_name.lower(), r.port),
            SortKey.UPTIME: lambda r: (-(r.uptime_ms or 0), r.port),
        }
        return sorted(self._records.values(), key=key_func[self._sort_key])

    def _render_rows(self) -> None:
        """Rebuild the table rows, keeping the cursor position."""
        table = self.query_one("#port-table", DataTable)
        table.clear()
        for record in self._sorted_records():
            mapping = self._port_storage.get_port_mapping(record.port) if self._port_storage else None
            name = escape(record.process_name[:16])
            if self.is_critical(record):
                name = f"[yellow]{name}[/yellow]"
            table.add_row(
                str(record.port),
                str(record.pid),
                name,
                escape((record.user or "-")[:10]),
                format_duration(record.uptime_ms),
                escape(mapping.project_name[:16]) if mapping else "",
                escape(truncate(record.command, 60)),
                key=row_key(record),
            )


class PortBrowserApp(App):
    """Interactive browser for listening ports."""

    TITLE = "zkill"
    SUB_TITLE = "Listening ports"

    CSS = """
    Screen {
        layout: vertical;
    }

    #scan-header {
        dock: top;
        height: auto;
        min-height: 1;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("r", "rescan", "Rescan"),
        ("k", "kill", "Kill"),
        ("f6", "sort", "Sort"),
    ]

    def __init__(self, directory: ProcessDirectory | None = None, storage: Storage | None = None) -> None:
        """Initialize the PortBrowserApp."""
        super().__init__()
        self._process_directory = directory or ProcessDirectory()
        self._port_storage = storage
        self._update_queue: Queue[ScanSnapshot | KillOutcome] = Queue()
        self._scanner = PortScanner(self._process_directory, self._update_queue)
        # Row armed by the first press of "k"
        self._armed_key: str | None = None

    def compose(self) -> ComposeResult:
        """Compose the application layout."""
        yield ScanHeader(id="scan-header")
        yield PortTable(self._port_storage)
        yield Footer()

    def on_mount(self) -> None:
        """Run the first scan when the app is mounted."""
        self._scanner.request_scan()
        self.set_interval(0.2, self._check_for_updates)

    def _check_for_updates(self) -> None:
        """Drain the queue and apply every result in order."""
        while True:
            try:
                update = self._update_queue.get_nowait()
            except Empty:
                break
            if isinstance(update, KillOutcome):
                self._show_kill_outcome(update)
            else:
                self.query_one("#scan-header", ScanHeader).update_snapshot(update)
                self.query_one(PortTable).update_records(update)

    def _show_kill_outcome(self, outcome: KillOutcome) -> None:
        """Report a finished kill and rescan."""
        if outcome.success:
            self.notify(f"Process {outcome.pid} terminated, port {outcome.port} is free")
        else:
            self.notify(
                f"Failed to terminate {outcome.pid}; elevated privileges may be required",
                severity="error",
            )

    def action_rescan(self) -> None:
        """Start a new scan unless one is already running."""
        if not self._scanner.request_scan():
            self.notify("A scan is already running")

    def action_sort(self) -> None:
        """Cycle through sort keys."""
        new_sort_key = self.query_one(PortTable).cycle_sort()
        self.notify(f"Sort: {new_sort_key.value.upper()}")

    def action_kill(self) -> None:
        """Arm the highlighted row on first press, terminate it on the second."""
        table = self.query_one(PortTable)
        record = table.highlighted_record()
        if record is None:
            return

        key = row_key(record)
        if self._armed_key != key:
            self._armed_key = key
            warning = " [yellow](system process!)[/yellow]" if table.is_critical(record) else ""
            self.query_one("#scan-header", ScanHeader).set_message(
                f"Press k again to kill {escape(record.process_name)} "
                f"(PID {record.pid}) on port {record.port}{warning}"
            )
            return

        self._armed_key = None
        self.query_one("#scan-header", ScanHeader).set_message("")
        if not self._scanner.request_kill(record):
            self.notify("Busy, try again in a moment")

    def action_quit(self) -> None:
        """Handle quit action."""
        self.exit()

