"""termdash - Main Textual application."""

import logging
import sys

from rich.markup import escape
from rich.text import Text
from textual.app import App, ComposeResult
from textual.containers import Container, Horizontal
from textual.widgets import DataTable, Footer, Static

from termdash.config import DashboardConfig, configure_logging
from termdash.errors import CapabilityError
from termdash.models import ProcessMetric
from termdash.monitor import DashboardSnapshot, SnapshotFacade

logger = logging.getLogger(__name__)

BAR_WIDTH = 20


def format_bytes(size: float) -> str:
    """Format bytes as human-readable string."""
    for unit in ["B", "K", "M", "G", "T"]:
        if size < 1024:
            return f"{size:5.1f}{unit}" if unit != "B" else f"{int(size):5d}{unit}"
        size = size / 1024
    return f"{size:.1f}P"


def format_rate(bytes_per_second: float) -> str:
    """Format a transfer rate."""
    return f"{format_bytes(bytes_per_second).strip()}/s"


def render_bar(fraction: float, color: str) -> str:
    """Render a fixed-width usage bar with escaped brackets."""
    filled = min(BAR_WIDTH, max(0, int(fraction * BAR_WIDTH)))
    bar = f"[{color}]█[/{color}]" * filled + "[dim]░[/dim]" * (BAR_WIDTH - filled)
    return f"\\[{bar}]"


class TextPanel(Static):
    """Static panel that remembers the markup it last showed."""

    def __init__(self, *args, **kwargs) -> None:
        """Initialize TextPanel."""
        super().__init__(*args, **kwargs)
        self.last_text = ""

    def show(self, text: str) -> None:
        """Replace the panel content."""
        self.last_text = text
        self.update(text)


class SystemPanel(TextPanel):
    """Header widget showing CPU, memory, storage and host details."""

    DEFAULT_CSS = """
    SystemPanel {
        width: 1fr;
        height: auto;
        padding: 0 1;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        """Initialize SystemPanel."""
        super().__init__(*args, **kwargs)
        self._snapshot: DashboardSnapshot | None = None

    def on_mount(self) -> None:
        """Show a placeholder until the first snapshot."""
        if self._snapshot is None:
            self.show(self._get_system_info())

    def update_stats(self, snapshot: DashboardSnapshot) -> None:
        """Update the statistics from a dashboard snapshot."""
        self._snapshot = snapshot
        self.show(self._get_system_info())

    def _get_system_info(self) -> str:
        snap = self._snapshot
        if snap is None:
            return "Loading system info..."
        mem_used_gb = snap.memory_used / (1024**3)
        mem_total_gb = snap.memory_total / (1024**3)
        return (
            f"CPU {render_bar(snap.cpu_load, 'green')} {snap.cpu_load * 100:5.1f}%"
            f"  {snap.cpu_temperature:.0f}°C\n"
            f"Mem {render_bar(snap.memory_usage, 'cyan')} {mem_used_gb:.1f}G/{mem_total_gb:.1f}G\n"
            f"Dsk {render_bar(snap.storage_usage, 'yellow')} {snap.storage_usage * 100:5.1f}%\n"
            f"Power: {snap.battery}  Fan: {snap.fan_speed}\n"
            f"Uptime: {snap.uptime}  Tasks: {snap.process_count}, {snap.thread_count} thr\n"
            f"OS: {escape(snap.os_name)}"
        )


class EnvironmentPanel(TextPanel):
    """Network throughput, weather and git branch."""

    DEFAULT_CSS = """
    EnvironmentPanel {
        width: 1fr;
        height: auto;
        padding: 0 1;
    }
    """

    def update_stats(self, snapshot: DashboardSnapshot) -> None:
        """Update the panel from a dashboard snapshot."""
        self.show(
            f"Down: {format_rate(snapshot.download_speed)}\n"
            f"Up:   {format_rate(snapshot.upload_speed)}\n"
            f"Weather: {escape(snapshot.weather)}\n"
            f"Branch: {escape(snapshot.git_branch)}"
        )


class MarketPanel(TextPanel):
    """Cached crypto prices."""

    DEFAULT_CSS = """
    MarketPanel {
        width: 1fr;
        height: auto;
        padding: 0 1;
    }
    """

    def update_prices(self, prices: dict[str, float], loaded: bool) -> None:
        """Update the price list."""
        if not prices:
            self.show("No assets tracked")
            return
        lines = [f"{escape(asset[:10].upper()):<10} {price:>12,.2f}" for asset, price in prices.items()]
        if not loaded:
            lines.append("[dim]waiting for prices...[/dim]")
        self.show("\n".join(lines))


class ProcessTable(Container):
    """Container for the top-process data table."""

    DEFAULT_CSS = """
    ProcessTable {
        height: 1fr;
        border: solid $primary;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        """Initialize ProcessTable."""
        super().__init__(*args, **kwargs)
        self._row_count = 0

    @property
    def row_count(self) -> int:
        """Number of rows currently shown."""
        return self._row_count

    def compose(self) -> ComposeResult:
        """Compose the process table."""
        yield DataTable(id="process-table")

    def on_mount(self) -> None:
        """Initialize the data table when mounted."""
        table = self.query_one("#process-table", DataTable)
        table.cursor_type = "row"
        table.add_column("#", key="rank", width=3)
        table.add_column("PID", key="pid", width=8)
        table.add_column("CPU%", key="cpu", width=8)
        table.add_column("Name", key="name")

    def update_processes(self, processes: list[ProcessMetric]) -> None:
        """
        Show the given processes, busiest first.

        Rows are keyed by rank so existing rows are updated in place.
        """
        table = self.query_one("#process-table", DataTable)

        for rank in range(len(processes), self._row_count):
            table.remove_row(str(rank))

        for rank, proc in enumerate(processes):
            cells = (str(rank + 1), str(proc.pid), f"{proc.cpu_percent:5.1f}", Text(proc.name[:40]))
            row_key = str(rank)
            if rank < self._row_count:
                for column, value in zip(("rank", "pid", "cpu", "name"), cells):
                    table.update_cell(row_key, column, value)
            else:
                table.add_row(*cells, key=row_key)

        self._row_count = len(processes)


class TermDashApp(App):
    """Main termdash application."""

    TITLE = "termdash"
    SUB_TITLE = "Terminal Dashboard"

    CSS = """
    Screen {
        layout: vertical;
    }

    #top-row {
        height: auto;
        min-height: 7;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("r", "refresh", "Refresh"),
    ]

    def __init__(self, facade: SnapshotFacade | None = None) -> None:
        """
        Initialize the TermDashApp.

        Args:
            facade: Metric read surface; built from the environment when omitted.
        """
        super().__init__()
        self._facade = facade if facade is not None else SnapshotFacade.create(DashboardConfig.from_env())
        self._render_interval = self._facade.config.render_interval

    def compose(self) -> ComposeResult:
        """Compose the application layout."""
        yield Horizontal(
            SystemPanel(id="system-panel"),
            EnvironmentPanel(id="environment-panel"),
            MarketPanel(id="market-panel"),
            id="top-row",
        )
        yield ProcessTable()
        yield Footer()

    def on_mount(self) -> None:
        """Start polling the facade when the app is mounted."""
        self._refresh_dashboard()
        self.set_interval(self._render_interval, self._refresh_dashboard)

    def _refresh_dashboard(self) -> None:
        """Read every metric and update the widgets."""
        try:
            snapshot = self._facade.snapshot()
            self.query_one("#system-panel", SystemPanel).update_stats(snapshot)
            self.query_one("#environment-panel", EnvironmentPanel).update_stats(snapshot)
            self.query_one("#market-panel", MarketPanel).update_prices(
                snapshot.crypto_prices, snapshot.crypto_loaded
            )
            self.query_one(ProcessTable).update_processes(snapshot.top_processes)
        except Exception:
            # A broken frame must not stop the render loop
            logger.exception("Dashboard refresh failed")

    def action_refresh(self) -> None:
        """Redraw immediately."""
        self._refresh_dashboard()

    def action_quit(self) -> None:
        """Handle quit action with graceful cleanup."""
        self._facade.close()
        self.exit()


def main() -> None:
    """Entry point for the termdash application."""
    config = DashboardConfig.from_env()
    configure_logging(config)
    try:
        facade = SnapshotFacade.create(config)
    except CapabilityError as exc:
        logger.critical("Startup failed: %s", exc)
        print(f"termdash: {exc}", file=sys.stderr)
        sys.exit(1)
    app = TermDashApp(facade)
    app.run()


if __name__ == "__main__":
    main()
