"""
leakprobe/recon/peer.py
Connection-object contract used by the candidate collector, and the aiortc
implementation of it.

aiortc gathers all candidates while the local description is applied and
does not trickle them as events. AiortcPeerConnection bridges that: once
setLocalDescription() returns, every "a=candidate:" SDP line is delivered to
the registered candidate listeners, so the collector sees the same
event-shaped contract whether or not the backend trickles.

Gathering can outlast the collection window (aioice waits up to 5s for
server-reflexive answers). flush() emits whatever the ICE gatherers already
hold, so a window that closes mid-gather still keeps the host candidates.
Each candidate line is delivered at most once.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Iterator, List, Optional, Protocol, Sequence, Set

from aiortc import RTCConfiguration, RTCIceServer, RTCPeerConnection
from aiortc.sdp import candidate_to_sdp

from leakprobe.errors import CapabilityUnavailableError

logger = logging.getLogger(__name__)

CandidateHandler = Callable[[str], None]


class PeerConnection(Protocol):
    def add_candidate_listener(self, handler: CandidateHandler) -> Callable[[], None]: ...
    def create_data_channel(self, label: str) -> Any: ...
    async def create_offer(self) -> Any: ...
    async def set_local_description(self, description: Any) -> None: ...
    def flush(self) -> None: ...
    async def close(self) -> None: ...


PeerFactory = Callable[[Sequence[str]], PeerConnection]


@dataclass(frozen=True)
class IceServerSpec:
    url: str
    username: Optional[str] = None
    credential: Optional[str] = None


def parse_ice_server(uri: str) -> IceServerSpec:
    """
    Split credentials out of a discovery-server URI.

        stun:stun.l.google.com:19302
        turn:alice:s3cret@relay.example.net:3478?transport=udp
    """
    uri = uri.strip()
    scheme, sep, rest = uri.partition(":")
    if not sep or scheme.lower() not in ("stun", "stuns", "turn", "turns"):
        raise ValueError(f"Unsupported discovery server URI: {uri!r}")

    userinfo, at, hostpart = rest.rpartition("@")
    if not at:
        return IceServerSpec(url=uri)

    username, _, credential = userinfo.partition(":")
    return IceServerSpec(
        url=f"{scheme}:{hostpart}",
        username=username or None,
        credential=credential or None,
    )


class AiortcPeerConnection:
    """PeerConnection backed by aiortc.RTCPeerConnection."""

    def __init__(self, pc: RTCPeerConnection):
        self._pc = pc
        self._listeners: List[CandidateHandler] = []
        self._emitted: Set[str] = set()

    @classmethod
    def from_servers(cls, servers: Sequence[str]) -> "AiortcPeerConnection":
        ice_servers = []
        for uri in servers:
            spec = parse_ice_server(uri)
            ice_servers.append(
                RTCIceServer(urls=spec.url, username=spec.username, credential=spec.credential)
            )
        return cls(RTCPeerConnection(configuration=RTCConfiguration(iceServers=ice_servers)))

    def add_candidate_listener(self, handler: CandidateHandler) -> Callable[[], None]:
        """
        Register a listener for candidate lines.
        Returns: A callable that removes the listener when invoked.
        """
        self._listeners.append(handler)

        def remove() -> None:
            if handler in self._listeners:
                self._listeners.remove(handler)
        return remove

    def create_data_channel(self, label: str) -> Any:
        return self._pc.createDataChannel(label)

    async def create_offer(self) -> Any:
        return await self._pc.createOffer()

    async def set_local_description(self, description: Any) -> None:
        await self._pc.setLocalDescription(description)
        local = self._pc.localDescription
        if local is None:
            return
        for line in local.sdp.splitlines():
            if line.startswith("a=candidate:"):
                self._emit(line[2:])

    def flush(self) -> None:
        """Emit candidates gathered so far that have not been delivered yet."""
        for gatherer in self._gatherers():
            for candidate in gatherer.getLocalCandidates():
                self._emit(f"candidate:{candidate_to_sdp(candidate)}")

    def _gatherers(self) -> Iterator[Any]:
        # Data channels ride on the SCTP transport; media on transceivers
        dtls_transports = []
        sctp = self._pc.sctp
        if sctp is not None:
            dtls_transports.append(sctp.transport)
        for transceiver in self._pc.getTransceivers():
            dtls_transports.append(transceiver.sender.transport)

        seen = set()
        for dtls in dtls_transports:
            if dtls is None:
                continue
            gatherer = dtls.transport.iceGatherer
            if id(gatherer) not in seen:
                seen.add(id(gatherer))
                yield gatherer

    async def close(self) -> None:
        self._listeners.clear()
        await self._pc.close()

    def _emit(self, candidate: str) -> None:
        if candidate in self._emitted:
            return
        self._emitted.add(candidate)
        for handler in list(self._listeners):
            try:
                handler(candidate)
            except Exception as e:
                logger.error(f"[Peer] Candidate listener failed: {e}")


def create_peer_connection(servers: Sequence[str]) -> PeerConnection:
    """
    Default PeerFactory. Any failure to build the connection object means the
    runtime cannot do real-time negotiation at all.
    """
    try:
        return AiortcPeerConnection.from_servers(servers)
    except Exception as e:
        raise CapabilityUnavailableError(
            f"Real-time connection unavailable: {e}",
            details={"servers": list(servers), "original_type": type(e).__name__},
        ) from e
