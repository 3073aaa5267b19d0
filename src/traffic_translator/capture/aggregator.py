"""Window-based packet aggregation.

The aggregator is a single-writer state machine: packets are fed one at a time
in arrival order and a window closes on the first packet whose timestamp is at
least ``window_size_ms`` past the window start. That packet only marks the
boundary; it is tallied into neither window.

The close time comes from the wall clock for live capture. Replayed captures
set ``use_packet_time`` so it is the triggering packet's timestamp instead.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from .classifier import ProtocolClassifier
from .events import NetworkLayer, PacketEvent, ProtocolTag
from .tally import SourceTally, normalize_source_address

logger = logging.getLogger(__name__)


def wall_clock_ms() -> float:
    return time.time() * 1000.0


@dataclass(slots=True)
class WindowState:
    """Running counters for one capture window."""

    sources: SourceTally
    window_start: Optional[int] = None
    last_observed: Optional[int] = None
    closed_at_ms: Optional[float] = None
    protocol_counts: Dict[ProtocolTag, int] = field(
        default_factory=lambda: {tag: 0 for tag in ProtocolTag}
    )
    total_protocol: int = 0
    total_ip: int = 0
    malformed_addresses: int = 0

    @classmethod
    def empty(cls, source_capacity: int) -> "WindowState":
        return cls(sources=SourceTally(source_capacity))

    def count(self, tag: ProtocolTag) -> int:
        return self.protocol_counts[tag]

    @property
    def elapsed_ms(self) -> Optional[float]:
        """Time from the first packet to the window close."""
        if self.window_start is None or self.closed_at_ms is None:
            return None
        return self.closed_at_ms - self.window_start

    def to_dict(self) -> Dict[str, Any]:
        return {
            "window_start": self.window_start,
            "last_observed": self.last_observed,
            "closed_at_ms": self.closed_at_ms,
            "protocol_counts": {tag.value: n for tag, n in self.protocol_counts.items()},
            "total_protocol": self.total_protocol,
            "total_ip": self.total_ip,
            "distinct_sources": len(self.sources),
            "malformed_addresses": self.malformed_addresses,
        }


class WindowAggregator:
    """Aggregates packets into fixed-length windows."""

    def __init__(
        self,
        window_size_ms: int = 500,
        source_capacity: int = 10,
        classifier: Optional[ProtocolClassifier] = None,
        clock: Callable[[], float] = wall_clock_ms,
        address_normalizer: Callable[[Any], Optional[str]] = normalize_source_address,
        use_packet_time: bool = False,
    ):
        if window_size_ms <= 0:
            raise ValueError("window_size_ms must be > 0")
        self.window_size_ms = window_size_ms
        self.source_capacity = source_capacity
        self.classifier = classifier or ProtocolClassifier()
        self._clock = clock
        self._normalize = address_normalizer
        self.use_packet_time = use_packet_time
        self._state = WindowState.empty(source_capacity)

    @property
    def state(self) -> WindowState:
        """The open window. Read-only by convention; only observe() mutates it."""
        return self._state

    def observe(self, event: PacketEvent) -> Optional[WindowState]:
        """Feed one packet; returns the closed window if this packet ended it."""
        state = self._state
        if state.window_start is None:
            state.window_start = event.timestamp_ms
        state.last_observed = event.timestamp_ms

        if state.last_observed - state.window_start >= self.window_size_ms:
            return self._close(event.timestamp_ms)

        self._tally_source(state, event)
        self._tally_protocol(state, event)
        return None

    def reset(self) -> None:
        """Discard the open window without emitting it."""
        self._state = WindowState.empty(self.source_capacity)

    def _close(self, trigger_ms: int) -> WindowState:
        closed = self._state
        # Replayed captures close on the triggering packet, not on the wall clock.
        closed.closed_at_ms = trigger_ms if self.use_packet_time else self._clock()
        self._state = WindowState.empty(self.source_capacity)
        logger.debug(
            f"Window closed: {closed.total_protocol} packets, "
            f"{len(closed.sources)} sources, {closed.total_ip} IP packets"
        )
        return closed

    def _tally_source(self, state: WindowState, event: PacketEvent) -> None:
        layer = self.classifier.classify_network_layer(event)
        if layer is NetworkLayer.NONE:
            return
        state.total_ip += 1
        if event.src_address is None:
            return

        address = self._normalize(event.src_address)
        if address is None:
            state.malformed_addresses += 1
            logger.debug(f"Rejected malformed {layer.value} source address")
            return
        state.sources.observe(address)

    def _tally_protocol(self, state: WindowState, event: PacketEvent) -> None:
        tag = self.classifier.classify(event)
        state.protocol_counts[tag] += 1
        state.total_protocol += 1
