"""
leakprobe/reporting/types.py
Report data types: address labels, per-address blocks, and the frozen Report.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Optional, Tuple

from leakprobe.net.geo import GeoRecord


class AddressLabel(str, Enum):
    PUBLIC_PRIMARY = "Public (Primary)"
    LEAKED = "Leaked"
    LOCAL_PRIVATE = "Local (Private)"


@dataclass(frozen=True)
class AddressBlock:
    address: str
    label: AddressLabel
    geo: GeoRecord


@dataclass(frozen=True)
class Report:
    created_at: str  # ISO8601
    user_agent: str
    primary_address: str
    blocks: Tuple[AddressBlock, ...]
    tally: Tuple[Tuple[str, int], ...]  # sorted by candidate type
    hostnames: Tuple[str, ...]
    fingerprint: Mapping[str, Any]

    def block_for(self, address: str) -> Optional[AddressBlock]:
        for block in self.blocks:
            if block.address == address:
                return block
        return None

    @property
    def tally_dict(self) -> Mapping[str, int]:
        return MappingProxyType(dict(self.tally))


def iso_now() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")
