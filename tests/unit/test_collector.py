import asyncio

import pytest

from leakprobe.base.context import ProbeRunContext
from leakprobe.recon.collector import CandidateCollector, candidate_subscription

HOST = "candidate:1 1 UDP 2122260223 192.168.1.5 54321 typ host"
SRFLX = "candidate:2 1 udp 1677729535 203.0.113.9 54400 typ srflx raddr 192.168.1.5 rport 54321"


def _collector(peer, window=0.05):
    return CandidateCollector(["stun:stun.test:3478"], window, peer_factory=lambda servers: peer)


@pytest.mark.asyncio
async def test_collects_candidates_and_tears_down(fake_peer):
    peer = fake_peer(candidates=[HOST, SRFLX])
    collector = _collector(peer)
    ctx = ProbeRunContext()

    received = await collector.collect(collector.open(), ctx)

    assert received == 2
    assert ctx.raw_candidates == [HOST, SRFLX]
    assert peer.channels == [""]
    assert peer.closed is True
    # handler released before the connection was closed
    assert peer.listeners_at_close == 0


@pytest.mark.asyncio
async def test_negotiation_failure_still_waits_and_closes(fake_peer, caplog):
    peer = fake_peer(candidates=[HOST], fail_offer=True)
    collector = _collector(peer, window=0.05)
    ctx = ProbeRunContext()

    loop = asyncio.get_running_loop()
    started = loop.time()
    received = await collector.collect(peer, ctx)

    assert received == 0
    assert ctx.raw_candidates == []
    assert peer.closed is True
    assert loop.time() - started >= 0.04
    assert "COLLECT_002" in caplog.text


@pytest.mark.asyncio
async def test_zero_candidates_terminates(fake_peer):
    peer = fake_peer(candidates=[])
    ctx = ProbeRunContext()
    received = await asyncio.wait_for(_collector(peer).collect(peer, ctx), timeout=1.0)
    assert received == 0
    assert peer.closed is True


@pytest.mark.asyncio
async def test_window_is_a_hard_deadline_for_slow_negotiation(fake_peer):
    peer = fake_peer(candidates=[HOST], gather_delay=10.0)
    ctx = ProbeRunContext()

    received = await asyncio.wait_for(_collector(peer, window=0.05).collect(peer, ctx), timeout=1.0)

    assert received == 0
    assert peer.closed is True


@pytest.mark.asyncio
async def test_candidates_gathered_before_deadline_are_kept(fake_peer):
    # Gathering is still waiting on the discovery server when the window closes
    peer = fake_peer(candidates=[HOST, SRFLX], gather_delay=10.0, gathered=[HOST])
    ctx = ProbeRunContext()

    received = await asyncio.wait_for(_collector(peer, window=0.05).collect(peer, ctx), timeout=1.0)

    assert peer.flushed is True
    assert received == 1
    assert ctx.raw_candidates == [HOST]
    assert peer.listeners_at_close == 0


@pytest.mark.asyncio
async def test_late_events_after_teardown_are_ignored(fake_peer):
    peer = fake_peer(candidates=[HOST])
    ctx = ProbeRunContext()
    await _collector(peer).collect(peer, ctx)

    peer.emit(SRFLX)

    assert ctx.raw_candidates == [HOST]


@pytest.mark.asyncio
async def test_cancellation_still_releases_and_closes(fake_peer):
    peer = fake_peer(candidates=[])
    ctx = ProbeRunContext()
    task = asyncio.create_task(_collector(peer, window=5.0).collect(peer, ctx))
    await asyncio.sleep(0.01)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task

    assert peer.closed is True
    assert peer.listeners == []


@pytest.mark.asyncio
async def test_close_failure_is_absorbed(fake_peer, caplog):
    peer = fake_peer(candidates=[HOST], fail_close=True)
    ctx = ProbeRunContext()
    assert await _collector(peer).collect(peer, ctx) == 1
    assert "COLLECT_003" in caplog.text


def test_stale_subscription_reference_is_inert(fake_peer):
    peer = fake_peer()
    seen = []
    with candidate_subscription(peer, seen.append) as sub:
        peer.emit(HOST)
    sub.deliver(SRFLX)
    sub.release()

    assert seen == [HOST]
    assert sub.received == 1
    assert peer.listeners == []


def test_window_must_be_positive():
    with pytest.raises(ValueError):
        CandidateCollector(["stun:stun.test"], 0)
