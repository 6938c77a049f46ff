"""Terminal rendering of host output and run summaries."""

from __future__ import annotations

import os
import sys
import threading
from os.path import commonprefix
from typing import Iterable, Optional, TextIO

from .models import ExecutionOutcome


class Ansi:
    YELLOW_BOLD = "\033[1;33m"
    GREEN = "\033[92m"
    RED = "\033[91m"
    DIM = "\033[2m"
    RESET = "\033[0m"


def use_color(stream: TextIO) -> bool:
    if os.environ.get("NO_COLOR"):
        return False
    isatty = getattr(stream, "isatty", None)
    return bool(isatty and isatty())


def colorize(text: str, color: Optional[str], enabled: bool) -> str:
    if not color or not enabled:
        return text
    return f"{color}{text}{Ansi.RESET}"


def shorten_names(names: Iterable[str], placeholder: str = "*") -> dict[str, str]:
    """Map each name to a display name with the shared domain replaced.

    ``["a.x.com", "b.x.com"]`` becomes ``{"a.x.com": "a*", "b.x.com": "b*"}``.
    Names are left alone when there are fewer than two or when they share
    no suffix starting with a dot.
    """
    names = list(names)
    display = {name: name for name in names}
    if len(set(names)) < 2:
        return display

    reversed_suffix = commonprefix([name[::-1] for name in names])
    suffix = reversed_suffix[::-1]
    dot = suffix.find(".")
    if dot == -1:
        return display
    suffix = suffix[dot:]

    for name in names:
        short = name[: -len(suffix)]
        if short:
            display[name] = f"{short}{placeholder}"
    return display


class BlockPresenter:
    """Writes concurrently produced host lines as per-host blocks.

    A new block is opened whenever the line's host differs from the host
    of the currently open block, so lines of different hosts never share
    a block.
    """

    def __init__(self, stream: TextIO | None = None, color: bool | None = None):
        self.stream = stream or sys.stdout
        self.color = use_color(self.stream) if color is None else color
        self._lock = threading.Lock()
        self._open_host: str | None = None

    @property
    def open_host(self) -> str | None:
        return self._open_host

    def line(self, host: str, text: str) -> None:
        with self._lock:
            if self._open_host != host:
                if self._open_host is not None:
                    self._write_footer(self._open_host)
                self._write_header(host)
                self._open_host = host
            self.stream.write(f"{colorize('│', Ansi.DIM, self.color)} {text}\n")
            self.stream.flush()

    def close(self) -> None:
        """Close the open block, if any."""
        with self._lock:
            if self._open_host is not None:
                self._write_footer(self._open_host)
                self._open_host = None
            self.stream.flush()

    def _write_header(self, host: str) -> None:
        self.stream.write(f"┌── {colorize(host, Ansi.YELLOW_BOLD, self.color)}\n")

    def _write_footer(self, host: str) -> None:
        self.stream.write(colorize(f"└── {host}", Ansi.DIM, self.color) + "\n")


def format_outcome(
    outcome: ExecutionOutcome,
    display_name: str | None = None,
    code_only: bool = False,
    show_output: bool = False,
    color: bool = False,
) -> str:
    """Render one host's final result."""
    name = colorize(display_name or outcome.host.name, Ansi.YELLOW_BOLD, color)
    if not outcome.connected:
        error = f"Can't access server: {outcome.connection_error}"
        return f"{name} {colorize(error, Ansi.RED, color)}"

    code_color = Ansi.GREEN if outcome.exit_code == 0 else Ansi.RED
    line = f"{name} {colorize(f'Code {outcome.exit_code}', code_color, color)}"
    if code_only:
        return line

    line += f" (stdout {len(outcome.stdout)} bytes, stderr {len(outcome.stderr)} bytes)"
    if show_output:
        stdout = outcome.stdout.decode("utf-8", errors="replace")
        stderr = outcome.stderr.decode("utf-8", errors="replace")
        line += f"\nSTDOUT:\n{stdout}\nSTDERR:\n{stderr}"
    return line


class Summary:
    """Final accounting of a run."""

    def __init__(self, unresolved: int = 0) -> None:
        self.succeeded = 0
        self.nonzero = 0
        self.unreachable = 0
        self.unresolved = unresolved

    def add(self, outcome: ExecutionOutcome) -> None:
        if not outcome.connected:
            self.unreachable += 1
        elif outcome.exit_code == 0:
            self.succeeded += 1
        else:
            self.nonzero += 1

    @property
    def total(self) -> int:
        return self.succeeded + self.nonzero + self.unreachable + self.unresolved

    @property
    def failed(self) -> bool:
        return bool(self.nonzero or self.unreachable or self.unresolved)

    def render(self) -> str:
        return (
            f"Summary: {self.total} hosts, {self.succeeded} succeeded, "
            f"{self.nonzero} exited non-zero, {self.unreachable} failed to connect, "
            f"{self.unresolved} failed to resolve"
        )
