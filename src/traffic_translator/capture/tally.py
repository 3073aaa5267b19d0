"""Bounded per-window source address tally."""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

# Longest legitimate text form is an IPv4-mapped IPv6 address with a scope id;
# anything beyond this is rejected before parsing.
MAX_ADDRESS_LENGTH = 64


def normalize_source_address(raw: Any) -> Optional[str]:
    """Return the canonical form of ``raw``, or None if it is not an IP address.

    The length check runs first so oversized producer input is never handed
    to the parser.
    """
    if not isinstance(raw, str):
        return None
    candidate = raw.strip()
    if not candidate or len(candidate) > MAX_ADDRESS_LENGTH:
        return None
    try:
        return str(ipaddress.ip_address(candidate))
    except ValueError:
        return None


@dataclass(slots=True)
class SourceEntry:
    """A tracked source address and its packet count in the current window."""

    address: str
    count: int = 0


class SourceTally:
    """Frequency counter over at most ``capacity`` distinct addresses.

    Once full, addresses not already tracked are ignored; nothing is evicted.
    """

    def __init__(self, capacity: int = 10):
        if capacity <= 0:
            raise ValueError("capacity must be > 0")
        self.capacity = capacity
        # dict keeps insertion order, which is the tie-break for ranking
        self._entries: Dict[str, SourceEntry] = {}

    def observe(self, address: str) -> bool:
        """Count one packet from ``address``. Returns False if it was dropped."""
        entry = self._entries.get(address)
        if entry is not None:
            entry.count += 1
            return True
        if len(self._entries) >= self.capacity:
            return False
        self._entries[address] = SourceEntry(address=address, count=1)
        return True

    def top_k(self, k: int) -> List[SourceEntry]:
        """The ``k`` busiest sources, highest count first.

        Equal counts keep insertion order. Returned entries are copies, so
        callers cannot disturb the live tally.
        """
        if k <= 0:
            return []
        ranked = sorted(self._entries.values(), key=lambda e: e.count, reverse=True)
        return [SourceEntry(e.address, e.count) for e in ranked[:k]]

    def count(self, address: str) -> int:
        entry = self._entries.get(address)
        return entry.count if entry is not None else 0

    def entries(self) -> List[SourceEntry]:
        return [SourceEntry(e.address, e.count) for e in self._entries.values()]

    def reset(self) -> None:
        self._entries.clear()

    @property
    def is_full(self) -> bool:
        return len(self._entries) >= self.capacity

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, address: object) -> bool:
        return address in self._entries
