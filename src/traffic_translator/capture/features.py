"""Feature records built from closed windows."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List, Tuple

from .aggregator import WindowState
from .events import ProtocolTag

logger = logging.getLogger(__name__)

# Column order is the contract with downstream training. DNS and DHCP are
# always zero: the header decoder cannot tell them apart from plain UDP.
FEATURE_COLUMNS: Tuple[str, ...] = (
    "record",
    "avg_packet_time",
    "src1_count",
    "src2_count",
    "src3_count",
    "arp",
    "dns",
    "dhcp",
    "html",
    "icmp",
    "tcp",
    "udp",
)

DEGENERATE_AVG_TIME = math.nan
_MILLIS = Decimal("0.001")


def feature_columns(top_sources: int = 3) -> Tuple[str, ...]:
    """Column names for records reporting ``top_sources`` source counts."""
    if top_sources == 3:
        return FEATURE_COLUMNS
    sources = tuple(f"src{i + 1}_count" for i in range(top_sources))
    return ("record", "avg_packet_time", *sources) + FEATURE_COLUMNS[5:]


def round_half_up(value: float, places: Decimal = _MILLIS) -> float:
    # Go through repr so 0.0005 rounds to 0.001 rather than the binary value.
    return float(Decimal(repr(value)).quantize(places, rounding=ROUND_HALF_UP))


@dataclass(frozen=True, slots=True)
class FeatureRecord:
    """One window's traffic summary."""

    record: int
    avg_packet_time: float
    source_counts: Tuple[int, ...]
    arp: int
    html: int
    icmp: int
    tcp: int
    udp: int
    dns: int = 0
    dhcp: int = 0
    unknown: int = 0
    ip_packets: int = 0
    degenerate: bool = False

    @property
    def columns(self) -> Tuple[str, ...]:
        return feature_columns(len(self.source_counts))

    def as_row(self) -> List[Any]:
        return [
            self.record,
            self.avg_packet_time,
            *self.source_counts,
            self.arp,
            self.dns,
            self.dhcp,
            self.html,
            self.icmp,
            self.tcp,
            self.udp,
        ]

    def as_dict(self) -> Dict[str, Any]:
        return dict(zip(self.columns, self.as_row()))


class FeatureRecordBuilder:
    """Turns a closed :class:`WindowState` into a :class:`FeatureRecord`."""

    def __init__(self, top_sources: int = 3):
        if top_sources <= 0:
            raise ValueError("top_sources must be > 0")
        self.top_sources = top_sources
        self.columns = feature_columns(top_sources)

    def build(self, record_number: int, state: WindowState) -> FeatureRecord:
        top = state.sources.top_k(self.top_sources)
        counts = [entry.count for entry in top]
        counts.extend([0] * (self.top_sources - len(counts)))

        degenerate = state.total_protocol == 0
        if degenerate:
            avg_time = DEGENERATE_AVG_TIME
            logger.warning(f"Record #{record_number} is degenerate: no packets in window")
        else:
            elapsed_seconds = (state.elapsed_ms or 0.0) / 1000
            avg_time = round_half_up(elapsed_seconds / state.total_protocol)

        return FeatureRecord(
            record=record_number,
            avg_packet_time=avg_time,
            source_counts=tuple(counts),
            arp=state.count(ProtocolTag.ARP),
            html=state.count(ProtocolTag.HTML),
            icmp=state.count(ProtocolTag.ICMP),
            tcp=state.count(ProtocolTag.TCP),
            udp=state.count(ProtocolTag.UDP),
            unknown=state.count(ProtocolTag.UNKNOWN),
            ip_packets=state.total_ip,
            degenerate=degenerate,
        )
