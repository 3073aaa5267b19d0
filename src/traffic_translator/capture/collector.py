"""Packet capture engine built on scapy.

Captured packets are reduced to :class:`PacketEvent` header summaries and
handed to the aggregation loop through a bounded queue, so the sniffer thread
never waits on feature computation.
"""

from __future__ import annotations

import logging
import queue
from dataclasses import replace
from pathlib import Path
from threading import Event, Thread
from typing import Any, Dict, Optional

from scapy.error import Scapy_Exception
from scapy.layers.dhcp import DHCP
from scapy.layers.dns import DNS
from scapy.layers.http import HTTPResponse
from scapy.layers.inet import ICMP, IP, TCP, UDP
from scapy.layers.inet6 import IPv6
from scapy.layers.l2 import ARP
from scapy.sendrecv import AsyncSniffer

from .driver import END_OF_STREAM, QueueProducer
from .errors import CaptureError
from .events import PacketEvent

logger = logging.getLogger(__name__)


def _is_html(packet: Any) -> bool:
    if HTTPResponse not in packet:
        return False
    content_type = packet[HTTPResponse].Content_Type or b""
    if isinstance(content_type, str):
        content_type = content_type.encode("latin-1", "replace")
    return b"html" in content_type.lower()


def packet_to_event(packet: Any, timestamp_ms: Optional[int] = None) -> PacketEvent:
    """Summarize a scapy packet's headers as a :class:`PacketEvent`."""
    if timestamp_ms is None:
        timestamp_ms = int(round(float(packet.time) * 1000))

    src_address: Optional[str] = None
    has_ipv4 = IP in packet
    has_ipv6 = not has_ipv4 and IPv6 in packet
    if has_ipv4:
        src_address = packet[IP].src
    elif has_ipv6:
        src_address = packet[IPv6].src

    return PacketEvent(
        timestamp_ms=timestamp_ms,
        src_address=src_address,
        has_ipv4=has_ipv4,
        has_ipv6=has_ipv6,
        has_arp=ARP in packet,
        has_dns=DNS in packet,
        has_dhcp=DHCP in packet,
        has_html=_is_html(packet),
        has_icmp=ICMP in packet,
        has_tcp=TCP in packet,
        has_udp=UDP in packet,
    )


class CaptureEngine:
    """Live-interface or pcap-replay packet producer."""

    def __init__(
        self,
        interface: Optional[str] = None,
        pcap_file: Optional[Path] = None,
        bpf_filter: Optional[str] = None,
        promiscuous: bool = True,
        queue_size: int = 10000,
    ):
        if interface is None and pcap_file is None:
            raise CaptureError("either an interface or a pcap file is required")
        self.interface = interface
        self.pcap_file = Path(pcap_file) if pcap_file is not None else None
        self.bpf_filter = bpf_filter
        self.promiscuous = promiscuous

        self._queue: "queue.Queue[Any]" = queue.Queue(maxsize=queue_size)
        self._stop_event = Event()
        self._sniffer: Optional[AsyncSniffer] = None
        self._watch_thread: Optional[Thread] = None
        self._last_timestamp_ms = 0

        self._stats = {
            "packets_captured": 0,
            "packets_dropped": 0,
            "conversion_errors": 0,
        }

    @property
    def offline(self) -> bool:
        return self.pcap_file is not None

    def producer(self) -> QueueProducer:
        return QueueProducer(self._queue)

    def get_stats(self) -> Dict[str, Any]:
        return {
            **self._stats,
            "source": str(self.pcap_file) if self.offline else self.interface,
            "queue_size": self._queue.qsize(),
            "running": self.is_running(),
        }

    def is_running(self) -> bool:
        return self._sniffer is not None and bool(getattr(self._sniffer, "running", False))

    def start(self) -> QueueProducer:
        """Start sniffing; returns the producer end of the event queue."""
        if self.offline and not self.pcap_file.exists():
            raise CaptureError(f"pcap file not found: {self.pcap_file}")

        kwargs: Dict[str, Any] = {"prn": self._on_packet, "store": False}
        if self.offline:
            kwargs["offline"] = str(self.pcap_file)
        else:
            kwargs["iface"] = self.interface
            kwargs["promisc"] = self.promiscuous
        if self.bpf_filter:
            kwargs["filter"] = self.bpf_filter

        self._stop_event.clear()
        try:
            self._sniffer = AsyncSniffer(**kwargs)
            self._sniffer.start()
        except (OSError, PermissionError) as e:
            raise CaptureError(f"failed to start capture: {e}") from e

        self._watch_thread = Thread(target=self._await_sniffer, args=(self._sniffer,), daemon=True)
        self._watch_thread.start()

        source = self.pcap_file if self.offline else self.interface
        logger.info(f"Started scapy capture on {source}")
        return self.producer()

    def stop(self) -> None:
        """Stop capture; the producer sees end-of-stream once drained."""
        self._stop_event.set()
        if self.is_running():
            logger.info("Stopping packet capture")
            try:
                self._sniffer.stop(join=False)
            except Scapy_Exception as e:
                # Offline readers cannot be interrupted; _on_packet stops enqueuing instead.
                logger.debug(f"Sniffer stop not supported: {e}")
        if self._watch_thread is not None:
            self._watch_thread.join(timeout=5.0)
            if self._watch_thread.is_alive():
                logger.warning("Capture thread did not stop gracefully")

    def _await_sniffer(self, sniffer: AsyncSniffer) -> None:
        sniffer.join()
        logger.info(f"Capture finished after {self._stats['packets_captured']} packets")
        try:
            self._queue.put(END_OF_STREAM, timeout=5.0)
        except queue.Full:
            logger.warning("Event queue full; end-of-stream marker not delivered")

    def _on_packet(self, packet: Any) -> None:
        try:
            event = packet_to_event(packet)
        except (AttributeError, TypeError, ValueError) as e:
            self._stats["conversion_errors"] += 1
            logger.warning(f"Failed to convert packet: {e}")
            return

        # Producer contract: timestamps never go backwards.
        if event.timestamp_ms < self._last_timestamp_ms:
            event = replace(event, timestamp_ms=self._last_timestamp_ms)
        self._last_timestamp_ms = event.timestamp_ms

        self._stats["packets_captured"] += 1
        if self.offline:
            # Replay must not lose packets; wait for the consumer instead.
            while not self._stop_event.is_set():
                try:
                    self._queue.put(event, timeout=0.5)
                    return
                except queue.Full:
                    continue
            return

        try:
            self._queue.put_nowait(event)
        except queue.Full:
            self._stats["packets_dropped"] += 1