"""Exceptions raised by the capture pipeline."""

from __future__ import annotations


class TranslatorError(Exception):
    """Base class for translator runtime errors."""


class ProducerExhausted(TranslatorError):
    """The packet source has no more events. Normal termination."""


class SinkUnavailableError(TranslatorError):
    """A feature sink rejected a record; the run cannot continue."""

    def __init__(self, record_number: int, message: str):
        self.record_number = record_number
        super().__init__(f"sink rejected record #{record_number}: {message}")


class CaptureError(TranslatorError):
    """The capture engine could not be started."""
