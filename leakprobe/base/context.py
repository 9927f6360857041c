"""
leakprobe/base/context.py
Run-scoped state for one probe execution.
"""

from __future__ import annotations

import uuid
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, Iterator, List

from leakprobe.recon.addresses import Address, CandidateParts, extract_candidate


class UniqueAddressSet:
    """
    Insertion-ordered set of Address values keyed by literal.
    Re-adding a literal that is already present is a no-op.
    """

    def __init__(self) -> None:
        self._items: Dict[str, Address] = {}

    def add(self, address: Address) -> bool:
        """Returns True only when the literal was not seen before."""
        if address.literal in self._items:
            return False
        self._items[address.literal] = address
        return True

    def literals(self) -> List[str]:
        return list(self._items)

    def __contains__(self, item: object) -> bool:
        key = item.literal if isinstance(item, Address) else item
        return key in self._items

    def __iter__(self) -> Iterator[Address]:
        return iter(list(self._items.values()))

    def __len__(self) -> int:
        return len(self._items)

    def __repr__(self) -> str:
        return f"UniqueAddressSet({self.literals()!r})"


@dataclass
class ProbeRunContext:
    """
    Created fresh at the start of every pipeline run and passed explicitly to
    each component. Only touched from the single task driving the run, so no
    locking; a threaded caller would need to guard these structures itself.
    """
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    raw_candidates: List[str] = field(default_factory=list)
    tally: Counter = field(default_factory=Counter)
    hostnames: Dict[str, None] = field(default_factory=dict)
    addresses: UniqueAddressSet = field(default_factory=UniqueAddressSet)
    # Candidates already run through aggregate()
    _aggregated: int = field(default=0, repr=False)

    def record_candidate(self, candidate: str) -> None:
        """Candidate-event handler body: buffer the raw line, nothing else."""
        if candidate:
            self.raw_candidates.append(candidate)

    def ingest(self, parts: CandidateParts) -> None:
        for addr in parts.addresses:
            self.addresses.add(addr)
        if parts.candidate_type:
            self.tally[parts.candidate_type] += 1
        if parts.hostname:
            self.hostnames.setdefault(parts.hostname, None)

    def aggregate(self) -> None:
        """Extract every buffered candidate into the address set, tally and hostnames."""
        for candidate in self.raw_candidates[self._aggregated:]:
            self.ingest(extract_candidate(candidate))
        self._aggregated = len(self.raw_candidates)

    @property
    def hostname_list(self) -> List[str]:
        return list(self.hostnames)
