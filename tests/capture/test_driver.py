"""Unit tests for the capture loop driver and producers."""

from __future__ import annotations

import queue
import threading
import time
from unittest.mock import Mock

import pytest

from traffic_translator.capture.driver import (
    END_OF_STREAM,
    CaptureLoopDriver,
    IterableProducer,
    QueueProducer,
)
from traffic_translator.capture.errors import ProducerExhausted, SinkUnavailableError
from traffic_translator.capture.events import PacketEvent


class ListSink:
    def __init__(self):
        self.records = []

    def push(self, record):
        self.records.append(record)


class TickingClock:
    """Monotonic clock advancing a fixed step on every read."""

    def __init__(self, step: float):
        self.step = step
        self.now = 0.0

    def __call__(self) -> float:
        self.now += self.step
        return self.now


class TestProducers:
    """Test producer adapters."""

    def test_iterable_producer(self, event_factory):
        producer = IterableProducer([event_factory(0), event_factory(1)])

        assert producer.next_event(timeout=0.1).timestamp_ms == 0
        assert producer.next_event(timeout=0.1).timestamp_ms == 1
        with pytest.raises(ProducerExhausted):
            producer.next_event(timeout=0.1)

    def test_queue_producer_timeout_and_end(self, event_factory):
        q = queue.Queue()
        producer = QueueProducer(q)

        assert producer.next_event(timeout=0.01) is None

        q.put(event_factory(5))
        q.put(END_OF_STREAM)
        assert producer.next_event(timeout=0.01).timestamp_ms == 5
        with pytest.raises(ProducerExhausted):
            producer.next_event(timeout=0.01)
        with pytest.raises(ProducerExhausted):
            producer.next_event(timeout=0.01)


class TestCaptureLoopDriver:
    """Test CaptureLoopDriver end to end with in-memory collaborators."""

    def setup_method(self):
        self.sink = ListSink()
        self.driver = CaptureLoopDriver(wall_clock=lambda: 0.0)

    def test_records_numbered_from_one(self, event_factory):
        events = [event_factory(ts) for ts in (0, 100, 600, 700, 1300, 1400, 2000)]

        emitted = self.driver.run(IterableProducer(events), self.sink, total_duration_ms=60_000)

        assert emitted == 3
        assert [r.record for r in self.sink.records] == [1, 2, 3]

    def test_two_windows_from_event_sequence(self, event_factory):
        """[0, 100, 200, 600] from one TCP source with 500 ms windows."""
        events = [event_factory(ts) for ts in (0, 100, 200, 600)]

        self.driver.run(IterableProducer(events), self.sink, total_duration_ms=60_000, window_size_ms=500)

        assert len(self.sink.records) == 1
        record = self.sink.records[0]
        assert record.tcp == 3
        assert record.source_counts == (3, 0, 0)

    def test_single_letter_sources_with_pass_through_normalizer(self, event_factory):
        """Opaque source labels are tallied when address validation is swapped out."""
        driver = CaptureLoopDriver(wall_clock=lambda: 600.0, address_normalizer=lambda address: address)
        events = [event_factory(ts, src="A") for ts in (0, 100, 200, 600)]

        driver.run(IterableProducer(events), self.sink, total_duration_ms=60_000, window_size_ms=500)

        assert len(self.sink.records) == 1
        record = self.sink.records[0]
        assert record.record == 1
        assert record.source_counts == (3, 0, 0)
        assert record.tcp == 3
        assert record.avg_packet_time == 0.2
        assert record.as_row() == [1, 0.2, 3, 0, 0, 0, 0, 0, 0, 0, 3, 0]

    def test_packet_time_close(self, event_factory):
        driver = CaptureLoopDriver(wall_clock=lambda: 9.9e12, use_packet_time=True)
        events = [event_factory(ts) for ts in (5_000, 5_100, 5_200, 5_600)]

        driver.run(IterableProducer(events), self.sink, total_duration_ms=60_000)

        assert self.sink.records[0].avg_packet_time == 0.2

    def test_record_numbers_survive_runs(self, event_factory):
        for _ in range(2):
            events = [event_factory(ts) for ts in (0, 600)]
            self.driver.run(IterableProducer(events), self.sink, total_duration_ms=60_000)

        assert [r.record for r in self.sink.records] == [1, 2]
        assert self.driver.record_count == 2

    def test_partial_window_discarded(self, event_factory):
        events = [event_factory(ts) for ts in (0, 100, 200)]

        emitted = self.driver.run(IterableProducer(events), self.sink, total_duration_ms=60_000)

        assert emitted == 0
        assert self.sink.records == []
        stats = self.driver.get_stats()
        assert stats["events_processed"] == 3
        assert stats["windows_discarded"] == 1
        assert stats["running"] is False

    def test_duration_expiry_stops_loop(self, event_factory):
        """With 1 s per clock read and a 3 s duration, only a few events get in."""
        driver = CaptureLoopDriver(monotonic=TickingClock(step=1.0), wall_clock=lambda: 0.0)
        events = (event_factory(ts * 600) for ts in range(1000))

        driver.run(IterableProducer(events), self.sink, total_duration_ms=3000)

        assert driver.get_stats()["events_processed"] < 5

    def test_poll_timeouts_are_recovered(self, event_factory):
        producer = Mock()
        producer.next_event.side_effect = [
            None,
            event_factory(0),
            None,
            event_factory(600),
            ProducerExhausted(),
        ]

        emitted = self.driver.run(producer, self.sink, total_duration_ms=60_000)

        assert emitted == 1
        assert self.driver.get_stats()["poll_timeouts"] == 2

    def test_sink_failure_is_fatal(self, event_factory):
        sink = Mock()
        sink.push.side_effect = OSError("disk full")
        events = [event_factory(ts) for ts in (0, 600, 1200, 1800)]

        with pytest.raises(SinkUnavailableError) as exc_info:
            self.driver.run(IterableProducer(events), sink, total_duration_ms=60_000)

        assert exc_info.value.record_number == 1
        assert isinstance(exc_info.value.__cause__, OSError)
        assert sink.push.call_count == 1
        assert not self.driver.is_running()

    def test_stop_from_another_thread(self, event_factory):
        """stop() ends a run that is waiting on a quiet queue."""
        q = queue.Queue()
        q.put(event_factory(0))
        driver = CaptureLoopDriver(poll_timeout_s=0.01)
        result = {}

        def run():
            result["emitted"] = driver.run(QueueProducer(q), self.sink, total_duration_ms=60_000)

        worker = threading.Thread(target=run)
        worker.start()
        deadline = time.monotonic() + 5.0
        while not driver.is_running() and time.monotonic() < deadline:
            time.sleep(0.001)
        driver.stop()
        worker.join(timeout=5.0)

        assert not worker.is_alive()
        assert result["emitted"] == 0
        assert self.sink.records == []

    def test_stop_before_run_is_cleared(self, event_factory):
        """A stale stop request does not cancel the next run."""
        self.driver.stop()
        events = [event_factory(ts) for ts in (0, 600)]

        emitted = self.driver.run(IterableProducer(events), self.sink, total_duration_ms=60_000)

        assert emitted == 1

    def test_degenerate_records_counted(self, event_factory):
        builder = Mock()
        builder.build.return_value = Mock(record=1, degenerate=True)
        driver = CaptureLoopDriver(builder=builder, wall_clock=lambda: 0.0)
        events = [event_factory(ts) for ts in (0, 600)]

        driver.run(IterableProducer(events), self.sink, total_duration_ms=60_000)

        assert driver.get_stats()["degenerate_records"] == 1
        builder.build.assert_called_once()
        assert builder.build.call_args.args[0] == 1
