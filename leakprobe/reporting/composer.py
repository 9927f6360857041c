"""
leakprobe/reporting/composer.py
Turns one run's collected state into an immutable Report and renders it as
the plain-text entry the receiver appends.
"""

from __future__ import annotations

import json
from types import MappingProxyType
from typing import Any, Iterable, List, Mapping, Optional, Union

from leakprobe.net.geo import UNKNOWN, GeoRecord
from leakprobe.recon.addresses import Address, is_private_address
from .types import AddressBlock, AddressLabel, Report, iso_now

UNSUPPORTED_MESSAGE = "WebRTC is not supported by this client."

# Block order within the IP section
_LABEL_RANK = {
    AddressLabel.PUBLIC_PRIMARY: 0,
    AddressLabel.LEAKED: 1,
    AddressLabel.LOCAL_PRIVATE: 2,
}


class FingerprintAssembler:
    """
    Merges the primary address, harvested addresses, candidate-type tally,
    geo records and fingerprint into one immutable Report.

    Labels come from the address classifier alone; geo records are attached
    afterwards and never influence them.
    """

    def assemble(
        self,
        *,
        primary_address: str,
        addresses: Iterable[Union[Address, str]],
        tally: Mapping[str, int],
        geo: Mapping[str, GeoRecord],
        fingerprint: Mapping[str, Any],
        user_agent: str,
        hostnames: Iterable[str] = (),
        created_at: Optional[str] = None,
    ) -> Report:
        literals: List[str] = []
        if primary_address and primary_address != UNKNOWN:
            literals.append(primary_address)
        for item in addresses:
            literal = item.literal if isinstance(item, Address) else str(item)
            if literal not in literals:
                literals.append(literal)

        blocks = [
            AddressBlock(
                address=literal,
                label=self.label_for(literal, primary_address),
                geo=geo.get(literal) or GeoRecord(),
            )
            for literal in literals
        ]
        # sorted() is stable, so first-seen order holds within a label
        blocks.sort(key=lambda b: _LABEL_RANK[b.label])

        return Report(
            created_at=created_at or iso_now(),
            user_agent=user_agent,
            primary_address=primary_address or UNKNOWN,
            blocks=tuple(blocks),
            tally=tuple(sorted((str(k), int(v)) for k, v in tally.items())),
            hostnames=tuple(dict.fromkeys(hostnames)),
            fingerprint=MappingProxyType(dict(fingerprint)),
        )

    @staticmethod
    def label_for(literal: str, primary_address: str) -> AddressLabel:
        if literal == primary_address:
            return AddressLabel.PUBLIC_PRIMARY
        if is_private_address(literal):
            return AddressLabel.LOCAL_PRIVATE
        return AddressLabel.LEAKED


# --------- Text rendering ---------

def format_report(report: Report) -> str:
    lines: List[str] = [
        f"--- New Client Entry: {report.created_at} ---",
        f"User Agent: {report.user_agent}",
        "",
        "--- Candidate Types ---",
    ]
    if report.tally:
        lines.extend(f"{ctype}: {count}" for ctype, count in report.tally)
    else:
        lines.append("(none observed)")
    lines.append("")

    if report.hostnames:
        lines.append("--- Local Discovery Hostnames ---")
        lines.extend(report.hostnames)
        lines.append("")

    lines.append("--- IP Information ---")
    for block in report.blocks:
        lines.extend(_render_block(block))
        lines.append("")

    lines.append("--- Client Fingerprint ---")
    lines.append(json.dumps(dict(report.fingerprint), indent=2))
    return "\n".join(lines)


def _render_block(block: AddressBlock) -> List[str]:
    geo = block.geo
    out = [
        f"IP: {block.address}",
        f"  - Type: {block.label.value}",
    ]
    if geo.is_proxy:
        out.append("  - Note: This IP may be a VPN/Proxy.")
    if geo.error:
        out.append(f"  - Error: {geo.error}")
    out.extend([
        f"  - Country: {geo.country}",
        f"  - City: {geo.city}",
        f"  - Postal Code: {geo.postal_code}",
        f"  - Time Zone: {geo.time_zone}",
        f"  - Coordinates: {geo.latitude}, {geo.longitude}",
        f"  - Organization: {geo.organization}",
        f"  - Network: {geo.network_id}",
    ])
    return out


def format_unsupported(created_at: Optional[str] = None) -> str:
    """Minimal report sent when no connection object can be built."""
    return f"--- New Client Entry: {created_at or iso_now()} ---\n{UNSUPPORTED_MESSAGE}\n"
