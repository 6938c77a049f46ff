"""TUI Dashboard for fanout."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from textual.app import App, ComposeResult
from textual.message import Message
from textual.reactive import reactive
from textual.widgets import Footer, Header, Label, RichLog, Static
from textual.worker import Worker

from .executor import Executor
from .models import NodeStatus, ResolvedHost


STATUS_ICONS = {
    NodeStatus.PENDING: ("…", "dim"),
    NodeStatus.CONNECTING: ("⇄", "yellow"),
    NodeStatus.RUNNING: ("▶", "yellow"),
    NodeStatus.SUCCESS: ("✔", "green"),
    NodeStatus.FAILED: ("✘", "red"),
}


class HostPanel(Static):
    """A panel displaying output for a single host."""

    status: reactive[NodeStatus] = reactive(NodeStatus.PENDING)

    def __init__(self, display_name: str, address: str, user: str, **kwargs) -> None:
        super().__init__(**kwargs)
        self.display_name = display_name
        self.address = address
        self.user = user

    def compose(self) -> ComposeResult:
        yield Label(self._get_header(), classes="header")
        yield RichLog(highlight=True, markup=True, wrap=True, auto_scroll=True)

    def _get_header(self) -> str:
        icon, color = STATUS_ICONS.get(self.status, ("?", "white"))
        return f"[{color}]{icon}[/] [{color}][bold]{self.display_name}[/bold][/] [{color}]{self.user}@{self.address}[/]"

    def watch_status(self, status: NodeStatus) -> None:
        """Update header when status changes."""
        if not self.is_mounted:
            return
        self.query_one(".header", Label).update(self._get_header())

    def append_output(self, line: str) -> None:
        """Append a line of output to this panel."""
        log = self.query_one(RichLog)
        if line.startswith("STDERR:"):
            log.write(f"[red]{line}[/red]")
        elif line.startswith("ERROR:"):
            log.write(f"[bold red]{line}[/bold red]")
        else:
            log.write(line)


class StatusBar(Static):
    """Bottom status bar showing overall progress."""

    completed: reactive[int] = reactive(0)
    total: reactive[int] = reactive(0)
    running: reactive[bool] = reactive(True)

    def render(self) -> str:
        status = "Running..." if self.running else "Complete"
        return f"Progress: {self.completed}/{self.total} hosts complete | {status} | Press 'q' to quit"


@dataclass
class HostOutput(Message):
    """Message for host output."""
    display_name: str
    line: str


@dataclass
class HostStatusChange(Message):
    """Message for host status change."""
    display_name: str
    status: NodeStatus


class Dashboard(App):
    """Live view of a run, one panel per host."""

    CSS = """
    Screen {
        layout: grid;
        grid-size: 2;
        grid-gutter: 1;
    }

    HostPanel {
        border: solid $primary;
        height: 100%;
        min-height: 10;
    }

    HostPanel Label {
        dock: top;
        padding: 0 1;
        background: $surface;
    }

    HostPanel RichLog {
        height: 1fr;
        padding: 0 1;
    }

    StatusBar {
        dock: bottom;
        height: 1;
        background: $surface;
        padding: 0 1;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("escape", "quit", "Quit"),
    ]

    def __init__(self, executor: Executor, hosts: Sequence[ResolvedHost], **kwargs) -> None:
        super().__init__(**kwargs)
        self.executor = executor
        self.hosts = list(hosts)
        self.panels: dict[str, HostPanel] = {}
        self._worker: Worker | None = None

        executor.on_output = self._on_output
        executor.on_status = self._on_status

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)

        # Panel ids must be identifiers, so key them by host index
        for host in self.hosts:
            if not host.resolved:
                continue
            name = self.executor.display_name(host)
            panel = HostPanel(name, str(host.address), self.executor.user, id=f"panel-{host.index}")
            self.panels[name] = panel
            yield panel

        yield StatusBar(id="status-bar")
        yield Footer()

    def on_mount(self) -> None:
        """Start execution when the app mounts."""
        status_bar = self.query_one("#status-bar", StatusBar)
        status_bar.total = len(self.panels)

        # Start execution using Textual's worker system
        self._worker = self.run_worker(self._run_execution(), exclusive=True, thread=True)

    async def _run_execution(self) -> None:
        """Run the executor. Outcomes collect on ``executor.outcomes`` batch by batch."""
        await self.executor.run(self.hosts)

    def on_worker_state_changed(self, event: Worker.StateChanged) -> None:
        """Handle worker completion."""
        if event.worker == self._worker and event.state == event.worker.state.SUCCESS:
            status_bar = self.query_one("#status-bar", StatusBar)
            status_bar.running = False

    def _on_output(self, display_name: str, line: str) -> None:
        """Handle output from a host - posts message to main thread."""
        self.post_message(HostOutput(display_name, line))

    def _on_status(self, display_name: str, status: NodeStatus) -> None:
        """Handle status change for a host - posts message to main thread."""
        self.post_message(HostStatusChange(display_name, status))

    def on_host_output(self, message: HostOutput) -> None:
        if message.display_name in self.panels:
            self.panels[message.display_name].append_output(message.line)

    def on_host_status_change(self, message: HostStatusChange) -> None:
        if message.display_name in self.panels:
            self.panels[message.display_name].status = message.status

        if message.status in (NodeStatus.SUCCESS, NodeStatus.FAILED):
            status_bar = self.query_one("#status-bar", StatusBar)
            status_bar.completed += 1

    async def action_quit(self) -> None:
        """Quit the application."""
        if self._worker and self._worker.is_running:
            self._worker.cancel()
        self.exit()
