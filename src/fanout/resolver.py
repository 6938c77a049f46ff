"""Concurrent DNS resolution that keeps the host list order."""

from __future__ import annotations

import asyncio
import logging
import socket
from ipaddress import ip_address
from typing import Awaitable, Callable, Sequence

from .models import IndexedHost, ResolvedHost

logger = logging.getLogger(__name__)

# Type alias for a lookup function: name -> address strings
Lookup = Callable[[str], Awaitable[Sequence[str]]]


async def getaddrinfo_lookup(name: str) -> list[str]:
    """Look ``name`` up through the system resolver."""
    loop = asyncio.get_running_loop()
    infos = await loop.getaddrinfo(name, None, type=socket.SOCK_STREAM)
    return [info[4][0] for info in infos]


class Resolver:
    """Resolves host names to addresses, all lookups in flight at once."""

    def __init__(self, lookup: Lookup | None = None):
        self.lookup = lookup or getaddrinfo_lookup

    async def resolve(
        self, hosts: Sequence[IndexedHost], concurrency: int | None = None
    ) -> list[ResolvedHost]:
        """Resolve every host, returning results ordered by host index.

        A host that fails to resolve is kept with ``address=None``.
        """
        results: list[ResolvedHost] = []
        lock = asyncio.Lock()
        semaphore = asyncio.Semaphore(concurrency) if concurrency else None

        async def resolve_one(host: IndexedHost) -> None:
            if semaphore is None:
                resolved = await self._resolve_one(host)
            else:
                async with semaphore:
                    resolved = await self._resolve_one(host)
            async with lock:
                results.append(resolved)

        await asyncio.gather(*(resolve_one(host) for host in hosts))

        results.sort(key=lambda resolved: resolved.index)
        return results

    async def _resolve_one(self, host: IndexedHost) -> ResolvedHost:
        try:
            addresses = await self.lookup(host.name)
            # Only the first address is ever used
            address = ip_address(addresses[0]) if addresses else None
        except (OSError, UnicodeError, ValueError) as e:
            logger.debug("Lookup of %s failed: %s", host.name, e)
            address = None

        if address is None:
            logger.error("%s couldn't be resolved.", host.name)
        else:
            logger.info("%s [%s]", host.name, address)
        return ResolvedHost(name=host.name, address=address, index=host.index)
