from ipaddress import ip_address

import pytest

from fanout.expansion import dedup, expand_all
from fanout.resolver import Resolver
from tests.fakes import FakeLookup


@pytest.mark.asyncio
async def test_results_follow_host_index_despite_completion_order():
    hosts = dedup(expand_all(["h[0:4]"]))
    table = {f"h{i}": [f"10.0.0.{i + 1}"] for i in range(5)}
    # Earlier hosts finish last
    delays = {f"h{i}": 0.01 * (5 - i) for i in range(5)}

    resolved = await Resolver(FakeLookup(table, delays)).resolve(hosts)

    assert [host.name for host in resolved] == ["h0", "h1", "h2", "h3", "h4"]
    assert [host.index for host in resolved] == [0, 1, 2, 3, 4]
    assert resolved[3].address == ip_address("10.0.0.4")


@pytest.mark.asyncio
async def test_failures_are_kept_with_unresolved_marker():
    hosts = dedup(expand_all(["ok", "missing", "empty", "bad"]))
    lookup = FakeLookup({"ok": ["192.0.2.1"], "empty": [], "bad": ["not-an-ip"]})

    resolved = await Resolver(lookup).resolve(hosts)

    assert len(resolved) == len(hosts)
    assert [host.resolved for host in resolved] == [True, False, False, False]
    assert [host.address for host in resolved[1:]] == [None, None, None]


@pytest.mark.asyncio
async def test_first_address_is_used():
    hosts = dedup(expand_all(["multi"]))
    lookup = FakeLookup({"multi": ["2001:db8::1", "192.0.2.7"]})

    resolved = await Resolver(lookup).resolve(hosts)

    assert resolved[0].address == ip_address("2001:db8::1")


@pytest.mark.asyncio
async def test_all_lookups_run_concurrently_by_default():
    hosts = dedup(expand_all(["h[1:20]"]))
    lookup = FakeLookup({f"h{i}": ["10.1.1.1"] for i in range(1, 21)}, {f"h{i}": 0.01 for i in range(1, 21)})

    await Resolver(lookup).resolve(hosts)

    assert lookup.max_in_flight == 20


@pytest.mark.asyncio
async def test_concurrency_caps_simultaneous_lookups():
    hosts = dedup(expand_all(["h[1:20]"]))
    lookup = FakeLookup({f"h{i}": ["10.1.1.1"] for i in range(1, 21)}, {f"h{i}": 0.01 for i in range(1, 21)})

    resolved = await Resolver(lookup).resolve(hosts, concurrency=3)

    assert lookup.max_in_flight == 3
    assert len(resolved) == 20


@pytest.mark.asyncio
async def test_empty_input():
    assert await Resolver(FakeLookup({})).resolve([]) == []
