"""SSH execution engine for fanout."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from ipaddress import IPv4Address, IPv6Address
from pathlib import Path
from typing import Callable, Iterator, Mapping, Protocol, Sequence

import asyncssh

from .exceptions import ConnectionFailed
from .models import ExecutionOutcome, NodeStatus, ResolvedHost

logger = logging.getLogger(__name__)

# Type aliases for callbacks
OutputCallback = Callable[[str, str], None]  # (display_name, line) -> None
StatusCallback = Callable[[str, NodeStatus], None]  # (display_name, status) -> None
BatchCallback = Callable[[list[ExecutionOutcome]], None]  # (ordered outcomes) -> None
LineCallback = Callable[[str, bool], None]  # (line, is_stderr) -> None


@dataclass
class CommandResult:
    """What a transport reports for a command that ran to completion."""

    exit_status: int | None
    stdout: bytes
    stderr: bytes
    exit_signal: str | None = None


class Transport(Protocol):
    async def execute(
        self,
        address: IPv4Address | IPv6Address,
        user: str,
        command: str,
        on_line: LineCallback,
        on_connect: Callable[[], None] | None = None,
    ) -> CommandResult: ...


class SSHTransport:
    """Runs a command over an asyncssh connection, streaming its output."""

    def __init__(
        self,
        port: int = 22,
        ssh_key: Path | None = None,
        connect_timeout: float | None = None,
    ):
        self.port = port
        self.ssh_key = ssh_key
        self.connect_timeout = connect_timeout

    async def execute(
        self,
        address: IPv4Address | IPv6Address,
        user: str,
        command: str,
        on_line: LineCallback,
        on_connect: Callable[[], None] | None = None,
    ) -> CommandResult:
        connect_kwargs = dict(
            host=str(address),
            port=self.port,
            username=user,
            known_hosts=None,  # Host key verification is out of scope
        )
        if self.ssh_key:
            connect_kwargs["client_keys"] = [str(self.ssh_key)]
        if self.connect_timeout:
            connect_kwargs["connect_timeout"] = self.connect_timeout

        try:
            async with asyncssh.connect(**connect_kwargs) as conn:
                if on_connect:
                    on_connect()
                # encoding=None keeps the streams as bytes
                async with conn.create_process(command, encoding=None) as proc:
                    stdout, stderr = await asyncio.gather(
                        self._read_stream(proc.stdout, on_line),
                        self._read_stream(proc.stderr, on_line, is_stderr=True),
                    )
                    await proc.wait()
                    if proc.exit_signal:
                        return CommandResult(None, stdout, stderr, exit_signal=proc.exit_signal[0])
                    return CommandResult(proc.exit_status, stdout, stderr)
        # KeyImportError is a ValueError, not an asyncssh.Error
        except (asyncssh.Error, asyncssh.KeyImportError, OSError, asyncio.TimeoutError) as e:
            raise ConnectionFailed(str(e) or type(e).__name__) from e

    @staticmethod
    async def _read_stream(
        stream: asyncssh.SSHReader, on_line: LineCallback, is_stderr: bool = False
    ) -> bytes:
        """Read ``stream`` to EOF, reporting each line as it arrives."""
        buffer = bytearray()
        while True:
            line = await stream.readline()
            if not line:
                break
            buffer.extend(line)
            on_line(line.decode("utf-8", errors="replace").rstrip("\r\n"), is_stderr)
        return bytes(buffer)


class Executor:
    """Runs one command across many hosts in sequential, concurrent batches."""

    def __init__(
        self,
        transport: Transport,
        user: str,
        command: str,
        concurrency: int = 100,
        on_output: OutputCallback | None = None,
        on_status: StatusCallback | None = None,
        on_batch: BatchCallback | None = None,
        display_names: Mapping[str, str] | None = None,
    ):
        if concurrency < 1:
            raise ValueError(f"Concurrency must be a positive integer, got {concurrency}")
        self.transport = transport
        self.user = user
        self.command = command
        self.concurrency = concurrency
        self.on_output = on_output
        self.on_status = on_status
        self.on_batch = on_batch
        self.display_names = dict(display_names or {})
        self.skipped: list[ResolvedHost] = []
        self.outcomes: list[ExecutionOutcome] = []

    def display_name(self, host: ResolvedHost) -> str:
        return self.display_names.get(host.name, host.name)

    def _emit_output(self, name: str, line: str) -> None:
        if self.on_output:
            self.on_output(name, line)

    def _emit_status(self, name: str, status: NodeStatus) -> None:
        if self.on_status:
            self.on_status(name, status)

    def batches(self, hosts: Sequence[ResolvedHost]) -> Iterator[list[ResolvedHost]]:
        """Split ``hosts`` into consecutive slices of at most ``concurrency``."""
        for start in range(0, len(hosts), self.concurrency):
            yield list(hosts[start : start + self.concurrency])

    async def run(self, hosts: Sequence[ResolvedHost]) -> list[ExecutionOutcome]:
        """Run the command on every resolved host.

        Unresolved hosts are recorded in ``skipped`` and never dispatched.
        Outcomes are returned in host index order.
        """
        self.skipped = [host for host in hosts if not host.resolved]
        if self.skipped:
            logger.warning(
                "Skipping %d of %d hosts that failed to resolve.",
                len(self.skipped),
                len(hosts),
            )
        runnable = sorted(
            (host for host in hosts if host.resolved), key=lambda host: host.index
        )

        self.outcomes = []
        for number, batch in enumerate(self.batches(runnable), start=1):
            logger.debug("Dispatching batch %d with %d hosts", number, len(batch))
            outcomes = await asyncio.gather(*(self._run_host(host) for host in batch))
            ordered = sorted(outcomes, key=lambda outcome: outcome.host.index)
            if self.on_batch:
                self.on_batch(ordered)
            self.outcomes.extend(ordered)

        return self.outcomes

    async def _run_host(self, host: ResolvedHost) -> ExecutionOutcome:
        """Run the command on a single host. Never raises for per-host failures."""
        name = self.display_name(host)
        self._emit_status(name, NodeStatus.CONNECTING)

        def on_connect() -> None:
            self._emit_status(name, NodeStatus.RUNNING)

        def on_line(line: str, is_stderr: bool) -> None:
            prefix = "STDERR: " if is_stderr else ""
            self._emit_output(name, f"{prefix}{line}")

        try:
            result = await self.transport.execute(
                host.address, self.user, self.command, on_line, on_connect
            )
        except ConnectionFailed as e:
            logger.debug("Connection to %s [%s] failed: %s", host.name, host.address, e)
            self._emit_status(name, NodeStatus.FAILED)
            self._emit_output(name, f"ERROR: {e}")
            return ExecutionOutcome(host=host, connection_error=str(e))

        if result.exit_status is None:
            if result.exit_signal:
                error = f"Killed by signal {result.exit_signal}"
            else:
                error = "Connection closed before the command reported an exit status"
            self._emit_status(name, NodeStatus.FAILED)
            self._emit_output(name, f"ERROR: {error}")
            return ExecutionOutcome(
                host=host,
                stdout=result.stdout,
                stderr=result.stderr,
                connection_error=error,
            )

        status = NodeStatus.SUCCESS if result.exit_status == 0 else NodeStatus.FAILED
        self._emit_status(name, status)
        return ExecutionOutcome(
            host=host,
            exit_code=result.exit_status,
            stdout=result.stdout,
            stderr=result.stderr,
        )
