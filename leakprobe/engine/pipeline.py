"""
leakprobe/engine/pipeline.py
One end-to-end probe run.

Phases, strictly in order within a single task:
  collect (bounded window, teardown) -> aggregate -> primary address ->
  fingerprint -> geo (joined batch) -> assemble -> format -> deliver once
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

import httpx

from leakprobe.base.config import LeakProbeConfig, get_config
from leakprobe.base.context import ProbeRunContext
from leakprobe.errors import CapabilityUnavailableError
from leakprobe.net.adapter import ProbeHTTPClient
from leakprobe.net.geo import UNKNOWN, GeoResolver, lookup_public_address
from leakprobe.recon.collector import CandidateCollector
from leakprobe.recon.fingerprint import CapabilityProbe, collect_fingerprint, default_probes
from leakprobe.recon.peer import PeerFactory, create_peer_connection
from leakprobe.reporting.composer import FingerprintAssembler, format_report, format_unsupported
from leakprobe.reporting.sink import HttpReportSink, ReportSink
from leakprobe.reporting.types import Report

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProbeResult:
    run_id: str
    content: str
    delivered: bool
    report: Optional[Report] = None

    @property
    def capability_available(self) -> bool:
        return self.report is not None


class LeakProbePipeline:
    """
    Runs the probe once per run() call. Nothing is shared between runs except
    the injected collaborators; all per-run state lives in a fresh
    ProbeRunContext.
    """

    def __init__(
        self,
        config: Optional[LeakProbeConfig] = None,
        *,
        peer_factory: PeerFactory = create_peer_connection,
        http_client: Optional[httpx.AsyncClient] = None,
        sink: Optional[ReportSink] = None,
        probes: Optional[Sequence[CapabilityProbe]] = None,
        assembler: Optional[FingerprintAssembler] = None,
    ):
        self.config = config or get_config()
        self._peer_factory = peer_factory
        self._http_client = http_client
        self._sink = sink
        self._probes = probes
        self._assembler = assembler or FingerprintAssembler()

    async def run(self) -> ProbeResult:
        cfg = self.config
        ctx = ProbeRunContext()
        http = ProbeHTTPClient(
            user_agent=cfg.lookup.user_agent,
            timeout=cfg.lookup.request_timeout,
            underlying_client=self._http_client,
        )
        sink = self._sink or HttpReportSink(http, cfg.sink.url)
        collector = CandidateCollector(
            cfg.collector.ice_servers,
            cfg.collector.window_seconds,
            peer_factory=self._peer_factory,
        )

        try:
            logger.info(f"[Pipeline:{ctx.run_id}] Starting WebRTC leak test")
            try:
                peer = collector.open()
            except CapabilityUnavailableError as e:
                logger.error(f"[Pipeline:{ctx.run_id}] {e}")
                content = format_unsupported()
                delivered = await sink.deliver(content)
                return ProbeResult(run_id=ctx.run_id, content=content, delivered=delivered)

            await collector.collect(peer, ctx)
            ctx.aggregate()
            logger.info(
                f"[Pipeline:{ctx.run_id}] {len(ctx.addresses)} unique address(es) "
                f"from {len(ctx.raw_candidates)} candidate(s)"
            )

            primary = await lookup_public_address(http, cfg.lookup.public_ip_url)
            probes = self._probes if self._probes is not None else default_probes(cfg.lookup.user_agent)
            fingerprint = collect_fingerprint(probes)

            targets = ([primary] if primary != UNKNOWN else []) + ctx.addresses.literals()
            resolver = GeoResolver(http, cfg.lookup.geo_url_template)
            geo = await resolver.resolve_all(targets)

            report = self._assembler.assemble(
                primary_address=primary,
                addresses=ctx.addresses,
                tally=ctx.tally,
                geo=geo,
                fingerprint=fingerprint,
                user_agent=cfg.lookup.user_agent,
                hostnames=ctx.hostname_list,
            )
            content = format_report(report)
            delivered = await sink.deliver(content)
            logger.info(f"[Pipeline:{ctx.run_id}] Leak test finished (delivered={delivered})")
            return ProbeResult(run_id=ctx.run_id, content=content, delivered=delivered, report=report)
        finally:
            await http.aclose()
