"""Value types passed between the pipeline stages."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from ipaddress import IPv4Address, IPv6Address


class NodeStatus(Enum):
    """Status of a host's execution."""

    PENDING = "pending"
    CONNECTING = "connecting"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass(frozen=True)
class ExpandedHost:
    """A host name produced by expansion or matching."""

    name: str


@dataclass(frozen=True)
class IndexedHost:
    """A deduplicated host tagged with its position in the host list."""

    host: ExpandedHost
    index: int

    @property
    def name(self) -> str:
        return self.host.name


@dataclass(frozen=True)
class ResolvedHost:
    """A host after DNS lookup. ``address`` is None when resolution failed."""

    name: str
    address: IPv4Address | IPv6Address | None
    index: int

    @property
    def resolved(self) -> bool:
        return self.address is not None


@dataclass(frozen=True)
class ExecutionOutcome:
    """Terminal result of running the command on one host."""

    host: ResolvedHost
    exit_code: int | None = None
    stdout: bytes = b""
    stderr: bytes = b""
    connection_error: str | None = None

    @property
    def connected(self) -> bool:
        return self.connection_error is None

    @property
    def ok(self) -> bool:
        return self.connected and self.exit_code == 0
