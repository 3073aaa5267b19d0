from __future__ import annotations

import sys
from pathlib import Path

import pytest


def pytest_configure() -> None:
    root = Path(__file__).resolve().parents[1]
    src = root / "src"
    if str(src) not in sys.path:
        sys.path.insert(0, str(src))


def make_event(timestamp_ms: int, src: str | None = "10.0.0.1", **flags):
    """TCP-over-IPv4 event unless other flags are given."""
    from traffic_translator.capture.events import PacketEvent

    if not flags:
        flags = {"has_ipv4": True, "has_tcp": True}
    return PacketEvent(timestamp_ms=timestamp_ms, src_address=src, **flags)


@pytest.fixture
def event_factory():
    return make_event


class FixedClock:
    """Settable clock for deterministic timing."""

    def __init__(self, value: float = 0.0):
        self.value = value

    def __call__(self) -> float:
        return self.value


@pytest.fixture
def fixed_clock():
    return FixedClock()
