"""Precedence-ordered protocol classification."""

from __future__ import annotations

from operator import attrgetter
from typing import Callable, Sequence, Tuple

from .events import NetworkLayer, PacketEvent, ProtocolTag

Rule = Tuple[ProtocolTag, Callable[[PacketEvent], bool]]

# Headers are not mutually exclusive (an HTML response also carries TCP), so
# only the first matching rule counts.
DEFAULT_RULES: Tuple[Rule, ...] = (
    (ProtocolTag.ARP, attrgetter("has_arp")),
    (ProtocolTag.HTML, attrgetter("has_html")),
    (ProtocolTag.ICMP, attrgetter("has_icmp")),
    (ProtocolTag.TCP, attrgetter("has_tcp")),
    (ProtocolTag.UDP, attrgetter("has_udp")),
)


class ProtocolClassifier:
    """Assigns exactly one :class:`ProtocolTag` to each packet."""

    def __init__(self, rules: Sequence[Rule] = DEFAULT_RULES):
        self.rules = tuple(rules)

    def classify(self, packet: PacketEvent) -> ProtocolTag:
        for tag, matches in self.rules:
            if matches(packet):
                return tag
        return ProtocolTag.UNKNOWN

    @staticmethod
    def classify_network_layer(packet: PacketEvent) -> NetworkLayer:
        if packet.has_ipv4:
            return NetworkLayer.IPV4
        if packet.has_ipv6:
            return NetworkLayer.IPV6
        return NetworkLayer.NONE
