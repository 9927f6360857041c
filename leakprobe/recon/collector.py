"""
leakprobe/recon/collector.py
Bounded-window ICE candidate harvesting.

Flow for one window:
  1) subscribe ctx.record_candidate to the connection's candidate events
  2) negotiate in the background: data channel -> offer -> local description
  3) wait for the deadline (a TimerHandle on the loop, always cancelled)
  4) flush candidates the backend gathered but has not delivered yet
  5) release the subscription FIRST, so late events are dropped
  6) stop any negotiation still in flight, then close the connection

Negotiation failures are logged and absorbed; steps 3-6 run regardless.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Iterator, Optional, Sequence

from leakprobe.base.context import ProbeRunContext
from leakprobe.errors import ErrorCode, LeakProbeError
from leakprobe.recon.peer import (
    CandidateHandler,
    PeerConnection,
    PeerFactory,
    create_peer_connection,
)
from leakprobe.utils.async_helpers import create_safe_task

logger = logging.getLogger(__name__)


@dataclass
class CandidateSubscription:
    """
    Handle for one registered candidate handler. release() is idempotent and
    after it runs the handler is never invoked again, even by a source that
    kept a stale reference.
    """
    handler: CandidateHandler
    _remove: Optional[Callable[[], None]] = None
    received: int = 0
    active: bool = field(default=True)

    def deliver(self, candidate: str) -> None:
        if not self.active:
            return
        self.received += 1
        self.handler(candidate)

    def release(self) -> None:
        if not self.active:
            return
        self.active = False
        remove, self._remove = self._remove, None
        if remove is not None:
            remove()


@contextmanager
def candidate_subscription(peer: PeerConnection, handler: CandidateHandler) -> Iterator[CandidateSubscription]:
    sub = CandidateSubscription(handler=handler)
    sub._remove = peer.add_candidate_listener(sub.deliver)
    try:
        yield sub
    finally:
        sub.release()


class CandidateCollector:
    """
    Drives negotiation long enough to observe host, server-reflexive and relay
    candidates, then tears the connection down.
    """

    def __init__(
        self,
        ice_servers: Sequence[str],
        window_seconds: float,
        peer_factory: PeerFactory = create_peer_connection,
    ):
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.ice_servers = tuple(ice_servers)
        self.window_seconds = window_seconds
        self._peer_factory = peer_factory

    def open(self) -> PeerConnection:
        """Build the connection object. Raises CapabilityUnavailableError when impossible."""
        return self._peer_factory(self.ice_servers)

    async def collect(self, peer: PeerConnection, ctx: ProbeRunContext) -> int:
        """
        Harvest candidates into ctx.raw_candidates for one window.
        Returns the number of candidate events received.
        """
        loop = asyncio.get_running_loop()
        window_closed = loop.create_future()

        def _close_window() -> None:
            if not window_closed.done():
                window_closed.set_result(None)

        deadline = loop.call_later(self.window_seconds, _close_window)
        negotiation: Optional[asyncio.Task] = None
        received = 0
        logger.debug(f"[Collector:{ctx.run_id}] Window open for {self.window_seconds}s via {len(self.ice_servers)} server(s)")

        try:
            with candidate_subscription(peer, ctx.record_candidate) as sub:
                negotiation = create_safe_task(self._negotiate(peer, ctx.run_id), name=f"negotiate-{ctx.run_id}")
                await window_closed
                self._flush(peer, ctx.run_id)
                received = sub.received
        finally:
            deadline.cancel()
            if negotiation is not None and not negotiation.done():
                negotiation.cancel()
                await asyncio.gather(negotiation, return_exceptions=True)
            await self._teardown(peer, ctx.run_id)

        logger.info(f"[Collector:{ctx.run_id}] Window closed with {received} candidate(s)")
        return received

    async def _negotiate(self, peer: PeerConnection, run_id: str) -> None:
        try:
            peer.create_data_channel("")
            offer = await peer.create_offer()
            await peer.set_local_description(offer)
        except Exception as e:
            err = LeakProbeError(ErrorCode.COLLECT_NEGOTIATION_FAILED, f"Error creating offer: {e}")
            logger.error(f"[Collector:{run_id}] {err}")

    def _flush(self, peer: PeerConnection, run_id: str) -> None:
        try:
            peer.flush()
        except Exception as e:
            err = LeakProbeError(ErrorCode.COLLECT_NEGOTIATION_FAILED, f"Could not flush gathered candidates: {e}")
            logger.warning(f"[Collector:{run_id}] {err}")

    async def _teardown(self, peer: PeerConnection, run_id: str) -> None:
        try:
            await peer.close()
        except Exception as e:
            err = LeakProbeError(ErrorCode.COLLECT_TEARDOWN_FAILED, f"Connection close failed: {e}")
            logger.warning(f"[Collector:{run_id}] {err}")
