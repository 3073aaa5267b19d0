"""Continuous capture loop: producer -> aggregator -> builder -> sink."""

from __future__ import annotations

import logging
import queue
import threading
import time
from typing import Any, Callable, Dict, Iterable, Iterator, Optional, Protocol

from ..common.logging import log_event
from .aggregator import WindowAggregator, WindowState
from .errors import ProducerExhausted, SinkUnavailableError
from .events import PacketEvent
from .features import FeatureRecord, FeatureRecordBuilder

logger = logging.getLogger(__name__)

# Placed on a QueueProducer's queue by the capture thread when it finishes.
END_OF_STREAM = object()


class PacketProducer(Protocol):
    def next_event(self, timeout: float) -> Optional[PacketEvent]:
        """Next event, None on timeout; raises ProducerExhausted at the end."""
        ...


class FeatureSink(Protocol):
    def push(self, record: FeatureRecord) -> None:
        ...


class IterableProducer:
    """Adapts any iterable of events (a list, a generator) to a producer."""

    def __init__(self, events: Iterable[PacketEvent]):
        self._events: Iterator[PacketEvent] = iter(events)

    def next_event(self, timeout: float) -> Optional[PacketEvent]:
        try:
            return next(self._events)
        except StopIteration:
            raise ProducerExhausted() from None


class QueueProducer:
    """Single-consumer end of a bounded queue filled by a capture thread."""

    def __init__(self, packet_queue: "queue.Queue[Any]"):
        self._queue = packet_queue
        self._exhausted = False

    def next_event(self, timeout: float) -> Optional[PacketEvent]:
        if self._exhausted:
            raise ProducerExhausted()
        try:
            item = self._queue.get(timeout=timeout)
        except queue.Empty:
            return None
        if item is END_OF_STREAM:
            self._exhausted = True
            raise ProducerExhausted()
        return item


class CaptureLoopDriver:
    """Runs the aggregation loop until duration expiry, exhaustion or stop()."""

    def __init__(
        self,
        source_capacity: int = 10,
        top_sources: int = 3,
        poll_timeout_s: float = 0.25,
        monotonic: Callable[[], float] = time.monotonic,
        wall_clock: Optional[Callable[[], float]] = None,
        builder: Optional[FeatureRecordBuilder] = None,
        use_packet_time: bool = False,
        address_normalizer: Optional[Callable[[Any], Optional[str]]] = None,
    ):
        self.source_capacity = source_capacity
        self.poll_timeout_s = poll_timeout_s
        self.builder = builder or FeatureRecordBuilder(top_sources=top_sources)
        self._monotonic = monotonic
        self._wall_clock = wall_clock
        self.use_packet_time = use_packet_time
        self._address_normalizer = address_normalizer
        self._stop_event = threading.Event()
        self._record = 0
        self._running = False

        self._stats = {
            "events_processed": 0,
            "records_emitted": 0,
            "degenerate_records": 0,
            "poll_timeouts": 0,
            "windows_discarded": 0,
        }

    @property
    def record_count(self) -> int:
        return self._record

    def is_running(self) -> bool:
        return self._running

    def stop(self) -> None:
        """Request the loop to stop; safe to call from any thread."""
        self._stop_event.set()

    def get_stats(self) -> Dict[str, Any]:
        return {**self._stats, "record": self._record, "running": self._running}

    def run(
        self,
        producer: PacketProducer,
        sink: FeatureSink,
        total_duration_ms: int = 15000,
        window_size_ms: int = 500,
    ) -> int:
        """Drive the pipeline; returns how many records this call emitted."""
        aggregator_kwargs: Dict[str, Any] = {}
        if self._wall_clock is not None:
            aggregator_kwargs["clock"] = self._wall_clock
        if self._address_normalizer is not None:
            aggregator_kwargs["address_normalizer"] = self._address_normalizer
        aggregator = WindowAggregator(
            window_size_ms=window_size_ms,
            source_capacity=self.source_capacity,
            use_packet_time=self.use_packet_time,
            **aggregator_kwargs,
        )

        self._stop_event.clear()
        self._running = True
        emitted = 0
        deadline = self._monotonic() + total_duration_ms / 1000
        reason = "duration"

        log_event(
            logger,
            "capture loop started",
            window_size_ms=window_size_ms,
            total_duration_ms=total_duration_ms,
        )

        try:
            while True:
                if self._stop_event.is_set():
                    reason = "stopped"
                    break
                remaining = deadline - self._monotonic()
                if remaining <= 0:
                    break

                try:
                    event = producer.next_event(timeout=min(self.poll_timeout_s, remaining))
                except ProducerExhausted:
                    reason = "exhausted"
                    break

                if event is None:
                    self._stats["poll_timeouts"] += 1
                    continue
                if self._stop_event.is_set():
                    reason = "stopped"
                    break

                self._stats["events_processed"] += 1
                closed = aggregator.observe(event)
                if closed is not None:
                    self._emit(sink, closed)
                    emitted += 1
        finally:
            if aggregator.state.window_start is not None:
                self._stats["windows_discarded"] += 1
            aggregator.reset()
            self._running = False

        log_event(
            logger,
            "capture loop finished",
            reason=reason,
            records_emitted=emitted,
            events_processed=self._stats["events_processed"],
        )
        return emitted

    def _emit(self, sink: FeatureSink, closed: WindowState) -> None:
        self._record += 1
        record = self.builder.build(self._record, closed)
        if record.degenerate:
            self._stats["degenerate_records"] += 1

        try:
            sink.push(record)
        except Exception as e:
            logger.error(f"Sink rejected record #{record.record}: {e}")
            raise SinkUnavailableError(record.record, str(e)) from e

        self._stats["records_emitted"] += 1
