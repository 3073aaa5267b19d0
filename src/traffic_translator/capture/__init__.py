"""Traffic Translator capture pipeline.

Packet events flow from a producer through the window aggregator into
feature records handed to a sink.
"""

from __future__ import annotations

from .aggregator import WindowAggregator, WindowState
from .classifier import ProtocolClassifier
from .collector import CaptureEngine, packet_to_event
from .config import CaptureConfig, OutputConfig, TranslatorConfig, WindowConfig, load_config
from .driver import CaptureLoopDriver, IterableProducer, QueueProducer
from .errors import CaptureError, ProducerExhausted, SinkUnavailableError, TranslatorError
from .events import NetworkLayer, PacketEvent, ProtocolTag
from .features import FEATURE_COLUMNS, FeatureRecord, FeatureRecordBuilder
from .sinks import ArffFeatureSink, FanOutSink, LoggingFeatureSink, RotatingCSVFeatureSink
from .tally import SourceEntry, SourceTally, normalize_source_address

__all__ = [
    "ArffFeatureSink",
    "CaptureConfig",
    "CaptureEngine",
    "CaptureError",
    "CaptureLoopDriver",
    "FEATURE_COLUMNS",
    "FanOutSink",
    "FeatureRecord",
    "FeatureRecordBuilder",
    "IterableProducer",
    "LoggingFeatureSink",
    "NetworkLayer",
    "OutputConfig",
    "PacketEvent",
    "ProducerExhausted",
    "ProtocolClassifier",
    "ProtocolTag",
    "QueueProducer",
    "RotatingCSVFeatureSink",
    "SinkUnavailableError",
    "SourceEntry",
    "SourceTally",
    "TranslatorConfig",
    "TranslatorError",
    "WindowAggregator",
    "WindowConfig",
    "WindowState",
    "load_config",
    "normalize_source_address",
    "packet_to_event",
]
