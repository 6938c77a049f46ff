import asyncio
from ipaddress import ip_address

import asyncssh
import pytest

from fanout.exceptions import ConnectionFailed
from fanout.executor import Executor, SSHTransport
from tests.fakes import resolved_hosts

ADDRESS = ip_address("10.0.0.1")


class FakeReader:
    def __init__(self, lines: list[bytes]) -> None:
        self.lines = list(lines)

    async def readline(self) -> bytes:
        await asyncio.sleep(0)
        return self.lines.pop(0) if self.lines else b""


class FakeProcess:
    def __init__(self, stdout=(), stderr=(), exit_status=0, exit_signal=None) -> None:
        self.stdout = FakeReader(stdout)
        self.stderr = FakeReader(stderr)
        self.exit_status = exit_status
        self.exit_signal = exit_signal

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False

    async def wait(self):
        return None


class FakeConnection:
    def __init__(self, process: FakeProcess) -> None:
        self.process = process
        self.commands: list[tuple[str, dict]] = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False

    def create_process(self, command, **kwargs):
        self.commands.append((command, kwargs))
        return self.process


def collect():
    lines = []
    return lines, lambda line, is_stderr: lines.append((line, is_stderr))


@pytest.mark.asyncio
async def test_read_stream_reports_lines_and_keeps_bytes():
    reader = FakeReader([b"first\r\n", b"caf\xe9 \xff\n", b"no newline"])
    lines, on_line = collect()

    data = await SSHTransport._read_stream(reader, on_line, is_stderr=True)

    assert data == b"first\r\ncaf\xe9 \xff\nno newline"
    assert lines == [("first", True), ("caf� �", True), ("no newline", True)]


@pytest.mark.asyncio
async def test_execute_streams_output_and_returns_exit_status(monkeypatch):
    process = FakeProcess(stdout=[b"up 3 days\n"], stderr=[b"warning\n"], exit_status=2)
    conn = FakeConnection(process)
    connect_kwargs = {}

    def fake_connect(**kwargs):
        connect_kwargs.update(kwargs)
        return conn

    monkeypatch.setattr(asyncssh, "connect", fake_connect)
    lines, on_line = collect()
    connected = []

    result = await SSHTransport(port=2222, connect_timeout=5).execute(
        ADDRESS, "ops", "uptime", on_line, lambda: connected.append(True)
    )

    assert result.exit_status == 2
    assert result.exit_signal is None
    assert result.stdout == b"up 3 days\n"
    assert result.stderr == b"warning\n"
    assert sorted(lines) == [("up 3 days", False), ("warning", True)]
    assert connected == [True]
    assert conn.commands == [("uptime", {"encoding": None})]
    assert connect_kwargs == {
        "host": "10.0.0.1",
        "port": 2222,
        "username": "ops",
        "known_hosts": None,
        "connect_timeout": 5,
    }


@pytest.mark.asyncio
async def test_signal_exit_is_reported_without_exit_status(monkeypatch):
    process = FakeProcess(stdout=[b"working\n"], exit_status=-1, exit_signal=("TERM", False, "", "en-US"))
    monkeypatch.setattr(asyncssh, "connect", lambda **kwargs: FakeConnection(process))

    result = await SSHTransport().execute(ADDRESS, "ops", "sleep 100", lambda line, err: None)

    assert result.exit_status is None
    assert result.exit_signal == "TERM"
    assert result.stdout == b"working\n"


@pytest.mark.asyncio
async def test_signal_exit_becomes_connection_error_outcome(monkeypatch):
    process = FakeProcess(exit_status=-1, exit_signal=("KILL", False, "", "en-US"))
    monkeypatch.setattr(asyncssh, "connect", lambda **kwargs: FakeConnection(process))

    [outcome] = await Executor(SSHTransport(), "ops", "sleep 100").run(resolved_hosts(1))

    assert outcome.exit_code is None
    assert outcome.connection_error == "Killed by signal KILL"


@pytest.mark.parametrize(
    "error",
    [
        asyncssh.PermissionDenied("Permission denied"),
        ConnectionRefusedError(111, "Connection refused"),
        asyncio.TimeoutError(),
        asyncssh.KeyImportError("Invalid private key"),
    ],
)
@pytest.mark.asyncio
async def test_connection_errors_become_connection_failed(monkeypatch, error):
    def fake_connect(**kwargs):
        raise error

    monkeypatch.setattr(asyncssh, "connect", fake_connect)

    with pytest.raises(ConnectionFailed) as excinfo:
        await SSHTransport().execute(ADDRESS, "ops", "true", lambda line, err: None)

    assert excinfo.value.__cause__ is error
    assert str(excinfo.value)


@pytest.mark.asyncio
async def test_unreadable_key_fails_each_host_without_aborting_the_run(monkeypatch, tmp_path):
    key = tmp_path / "id_broken"
    key.write_text("not a key\n")

    def fake_connect(**kwargs):
        # asyncssh loads client keys before opening the socket
        asyncssh.read_private_key(kwargs["client_keys"][0])
        raise AssertionError("key should not load")

    monkeypatch.setattr(asyncssh, "connect", fake_connect)

    outcomes = await Executor(SSHTransport(ssh_key=key), "ops", "true").run(resolved_hosts(2))

    assert len(outcomes) == 2
    assert all(outcome.connection_error for outcome in outcomes)
    assert all(outcome.exit_code is None for outcome in outcomes)
