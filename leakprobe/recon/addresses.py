"""
leakprobe/recon/addresses.py
Address extraction and classification for ICE candidate strings.

Extraction is a pure function over one candidate line: every embedded
IPv4/IPv6 literal (dotted-quad with or without a ":port" suffix, full,
"::"-compressed, IPv4-mapped and zone-suffixed link-local forms), the "typ"
token, and any mDNS ".local" hostname. Malformed input yields empty results,
never an exception.

Classification is a fixed, offline policy and never looks at geo data.
"""

from __future__ import annotations

import ipaddress
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple, Union


class AddressFamily(str, Enum):
    V4 = "v4"
    V6 = "v6"


class AddressScope(str, Enum):
    PUBLIC = "public"
    PRIVATE = "private"
    UNKNOWN = "unknown"


# Runs of characters an address literal (with optional %zone) can be built from.
# Each run is then validated by the ipaddress module, which knows every textual
# IPv6 representation; a regex alone gets "::"-compressed forms wrong.
_TOKEN_RE = re.compile(r"[0-9A-Za-z_.:%-]+")
_CANDIDATE_TYPE_RE = re.compile(r"\btyp\s+([A-Za-z]+)")
_MDNS_HOST_RE = re.compile(r"^[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*\.local$", re.IGNORECASE)


def _parse_literal(token: str) -> Optional[Union[ipaddress.IPv4Address, ipaddress.IPv6Address]]:
    try:
        return ipaddress.ip_address(token)
    except ValueError:
        return None


@dataclass(frozen=True)
class Address:
    """An extracted address literal, kept exactly as it appeared in the candidate."""

    literal: str
    family: AddressFamily = field(compare=False)
    scope: AddressScope = field(compare=False)

    @classmethod
    def from_literal(cls, literal: str) -> Optional["Address"]:
        parsed = _parse_literal(literal)
        if parsed is None:
            return None
        family = AddressFamily.V4 if parsed.version == 4 else AddressFamily.V6
        return cls(literal=literal, family=family, scope=classify_address(literal))

    @property
    def is_private(self) -> bool:
        return self.scope is AddressScope.PRIVATE

    def __str__(self) -> str:
        return self.literal


@dataclass(frozen=True)
class CandidateParts:
    addresses: Tuple[Address, ...] = ()
    candidate_type: Optional[str] = None
    hostname: Optional[str] = None


def extract_addresses(text: str) -> List[Address]:
    """Return every address literal embedded in *text*, in order of appearance."""
    found: List[Address] = []
    for token in _TOKEN_RE.findall(text or ""):
        # Sentence punctuation glued to a literal ("... 10.0.0.1.") is not part of it
        token = token.rstrip(".-_")
        if ":" not in token and "." not in token:
            continue
        parsed = _parse_literal(token)
        if parsed is None and token.count(":") == 1:
            # host:port, e.g. "198.51.100.4:3478"
            host, _, port = token.partition(":")
            if port.isdigit():
                token = host
                parsed = _parse_literal(token)
        # raddr 0.0.0.0 / :: placeholders expose nothing
        if parsed is None or parsed.is_unspecified:
            continue
        found.append(Address.from_literal(token))
    return found


def extract_candidate(candidate: str) -> CandidateParts:
    """
    Pull addresses, the candidate type label, and an mDNS hostname out of one
    candidate line, e.g.

        candidate:1 1 UDP 2122260223 192.168.1.5 54321 typ host
    """
    if not candidate:
        return CandidateParts()

    addresses = tuple(extract_addresses(candidate))

    m = _CANDIDATE_TYPE_RE.search(candidate)
    ctype = m.group(1).lower() if m else None

    hostname = None
    for token in candidate.split():
        if _MDNS_HOST_RE.match(token):
            hostname = token
            break

    return CandidateParts(addresses=addresses, candidate_type=ctype, hostname=hostname)


def classify_address(literal: str) -> AddressScope:
    """
    Label a literal private or public.

    IPv4: 10/8, 172.16/12, 192.168/16 are private.
    IPv6: only literals starting "fc"/"fd" (unique local) are private.
    Link-local fe80::/10 stays public under this policy.
    Anything that is not an address literal at all is UNKNOWN.
    """
    parsed = _parse_literal(literal)
    if parsed is None:
        return AddressScope.UNKNOWN

    if parsed.version == 4:
        first, second = (int(part) for part in literal.split(".")[:2])
        if first == 10:
            return AddressScope.PRIVATE
        if first == 172 and 16 <= second <= 31:
            return AddressScope.PRIVATE
        if first == 192 and second == 168:
            return AddressScope.PRIVATE
        return AddressScope.PUBLIC

    if literal[:2].lower() in ("fc", "fd"):
        return AddressScope.PRIVATE
    return AddressScope.PUBLIC


def is_private_address(literal: str) -> bool:
    return classify_address(literal) is AddressScope.PRIVATE
