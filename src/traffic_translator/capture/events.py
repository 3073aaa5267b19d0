"""Packet events handed from producers to the window aggregator."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ProtocolTag(str, Enum):
    """Mutually exclusive protocol labels, one per tallied packet."""

    ARP = "arp"
    HTML = "html"
    ICMP = "icmp"
    TCP = "tcp"
    UDP = "udp"
    UNKNOWN = "unknown"


class NetworkLayer(str, Enum):
    IPV4 = "ipv4"
    IPV6 = "ipv6"
    NONE = "none"


@dataclass(frozen=True, slots=True)
class PacketEvent:
    """Header-level view of one captured packet.

    ``timestamp_ms`` must be non-decreasing across the events a producer
    delivers. The protocol flags mirror which headers the decoder found; they
    are not mutually exclusive, the classifier decides precedence.
    """

    timestamp_ms: int
    src_address: Optional[str] = None
    has_ipv4: bool = False
    has_ipv6: bool = False
    has_arp: bool = False
    has_dns: bool = False
    has_dhcp: bool = False
    has_html: bool = False
    has_icmp: bool = False
    has_tcp: bool = False
    has_udp: bool = False
