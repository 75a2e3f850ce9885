"""Rich utilities for formatting and display."""

from rich.console import Console
from rich.table import Table

from .status import ConnectionState, StatusSnapshot

# Global console instance
console = Console()

_STATE_STYLES = {
    ConnectionState.DISCONNECTED: "red",
    ConnectionState.CONNECTING: "yellow",
    ConnectionState.CONNECTED: "green",
}


def create_table(title: str, *columns: str, **kwargs) -> Table:
    """
    Create a table with standard styling.

    Args:
        title: Table title
        *columns: Column names
        **kwargs: Additional Table arguments

    Returns:
        Table instance
    """
    table = Table(title=title, **kwargs)
    for col in columns:
        table.add_column(col)
    return table


def _styled_state(state: ConnectionState) -> str:
    style = _STATE_STYLES[state]
    return f"[{style}]{state.value}[/{style}]"


def render_status(snapshot: StatusSnapshot, title: str = "GoPro link") -> Table:
    """
    Render a status snapshot as a two-column table.

    Args:
        snapshot: Snapshot to render
        title: Table title

    Returns:
        Table instance
    """
    table = create_table(title, "Field", "Value", show_header=False)
    table.add_row("Bluetooth", _styled_state(snapshot.bluetooth))
    table.add_row("WiFi", _styled_state(snapshot.wifi))
    table.add_row("Phase", snapshot.phase.value)
    table.add_row("Stream", snapshot.stream_endpoint or "-")
    if snapshot.telemetry:
        table.add_row(
            "Location",
            f"{snapshot.telemetry.latitude:.6f}, {snapshot.telemetry.longitude:.6f} "
            f"({snapshot.telemetry.captured_at:%H:%M:%S})",
        )
    else:
        table.add_row("Location", "-")
    table.add_row("Status", ("⏳ " if snapshot.is_busy else "") + (snapshot.status_message or "-"))
    return table


__all__ = [
    "console",
    "Console",
    "Table",
    "create_table",
    "render_status",
]
