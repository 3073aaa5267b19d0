"""Translator configuration components."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml

from ..common.validation import (
    ValidationError,
    ValidationIssue,
    as_bool,
    as_mapping,
    optional_non_empty_str,
    require_choice,
    require_non_empty_str,
    require_positive_int,
)

OUTPUT_FORMATS = ("arff", "csv", "log")


@dataclass(frozen=True, slots=True)
class WindowConfig:
    """Windowing and feature parameters."""

    window_size_ms: int = 500
    source_tally_capacity: int = 10
    top_sources_reported: int = 3
    total_capture_duration_ms: int = 15000
    poll_timeout_ms: int = 250

    @staticmethod
    def from_mapping(data: Mapping[str, Any], *, path: str) -> "WindowConfig":
        window_size_ms = require_positive_int(
            data.get("window_size_ms", 500),
            path=f"{path}.window_size_ms",
        )
        source_tally_capacity = require_positive_int(
            data.get("source_tally_capacity", 10),
            path=f"{path}.source_tally_capacity",
        )
        top_sources_reported = require_positive_int(
            data.get("top_sources_reported", 3),
            path=f"{path}.top_sources_reported",
        )
        if top_sources_reported > source_tally_capacity:
            raise ValidationError([
                ValidationIssue(
                    f"{path}.top_sources_reported",
                    "must be <= window.source_tally_capacity",
                )
            ])
        total_capture_duration_ms = require_positive_int(
            data.get("total_capture_duration_ms", 15000),
            path=f"{path}.total_capture_duration_ms",
        )
        poll_timeout_ms = require_positive_int(
            data.get("poll_timeout_ms", 250),
            path=f"{path}.poll_timeout_ms",
        )

        return WindowConfig(
            window_size_ms=window_size_ms,
            source_tally_capacity=source_tally_capacity,
            top_sources_reported=top_sources_reported,
            total_capture_duration_ms=total_capture_duration_ms,
            poll_timeout_ms=poll_timeout_ms,
        )


@dataclass(frozen=True, slots=True)
class CaptureConfig:
    """Packet capture configuration."""

    interface: Optional[str] = None
    pcap_file: Optional[Path] = None
    bpf_filter: Optional[str] = None
    promiscuous: bool = True
    queue_size: int = 10000

    @staticmethod
    def from_mapping(data: Mapping[str, Any], *, path: str) -> "CaptureConfig":
        interface = optional_non_empty_str(
            data.get("interface"),
            path=f"{path}.interface",
        )
        pcap_raw = optional_non_empty_str(
            data.get("pcap_file"),
            path=f"{path}.pcap_file",
        )
        bpf_filter = optional_non_empty_str(
            data.get("bpf_filter"),
            path=f"{path}.bpf_filter",
        )
        promiscuous = as_bool(
            data.get("promiscuous", True),
            path=f"{path}.promiscuous",
        )
        queue_size = require_positive_int(
            data.get("queue_size", 10000),
            path=f"{path}.queue_size",
        )

        if interface is not None and pcap_raw is not None:
            raise ValidationError([
                ValidationIssue(path, "set either 'interface' or 'pcap_file', not both")
            ])

        return CaptureConfig(
            interface=interface,
            pcap_file=Path(pcap_raw) if pcap_raw is not None else None,
            bpf_filter=bpf_filter,
            promiscuous=promiscuous,
            queue_size=queue_size,
        )


@dataclass(frozen=True, slots=True)
class OutputConfig:
    """Feature record output configuration."""

    format: str = "arff"
    output_dir: Path = field(default_factory=lambda: Path("features"))
    relation_name: str = "traffic_features"
    max_rows_per_file: int = 10000

    @staticmethod
    def from_mapping(data: Mapping[str, Any], *, path: str) -> "OutputConfig":
        fmt = require_choice(
            data.get("format", "arff"),
            OUTPUT_FORMATS,
            path=f"{path}.format",
        )
        output_dir = Path(require_non_empty_str(
            data.get("output_dir", "features"),
            path=f"{path}.output_dir",
        ))
        relation_name = require_non_empty_str(
            data.get("relation_name", "traffic_features"),
            path=f"{path}.relation_name",
        )
        if any(ch.isspace() for ch in relation_name):
            raise ValidationError([
                ValidationIssue(f"{path}.relation_name", "must not contain whitespace")
            ])
        max_rows_per_file = require_positive_int(
            data.get("max_rows_per_file", 10000),
            path=f"{path}.max_rows_per_file",
        )

        return OutputConfig(
            format=fmt,
            output_dir=output_dir,
            relation_name=relation_name,
            max_rows_per_file=max_rows_per_file,
        )


@dataclass(frozen=True, slots=True)
class TranslatorConfig:
    """Complete translator configuration."""

    window: WindowConfig = field(default_factory=WindowConfig)
    capture: CaptureConfig = field(default_factory=CaptureConfig)
    output: OutputConfig = field(default_factory=OutputConfig)

    def ensure_output_dirs(self) -> None:
        """Create output directories if they don't exist."""
        self.output.output_dir.mkdir(parents=True, exist_ok=True)

    def with_overrides(
        self,
        *,
        interface: Optional[str] = None,
        pcap_file: Optional[str] = None,
        duration_ms: Optional[int] = None,
    ) -> "TranslatorConfig":
        """Apply command line overrides; a given source replaces the configured one."""
        config = self
        if interface is not None:
            config = replace(config, capture=replace(config.capture, interface=interface, pcap_file=None))
        if pcap_file is not None:
            config = replace(config, capture=replace(config.capture, pcap_file=Path(pcap_file), interface=None))
        if duration_ms is not None:
            duration_ms = require_positive_int(duration_ms, path="--duration")
            config = replace(config, window=replace(config.window, total_capture_duration_ms=duration_ms))
        return config

    def to_safe_dict(self) -> dict[str, Any]:
        return {
            "window": {
                "window_size_ms": self.window.window_size_ms,
                "source_tally_capacity": self.window.source_tally_capacity,
                "top_sources_reported": self.window.top_sources_reported,
                "total_capture_duration_ms": self.window.total_capture_duration_ms,
                "poll_timeout_ms": self.window.poll_timeout_ms,
            },
            "capture": {
                "interface": self.capture.interface,
                "pcap_file": str(self.capture.pcap_file) if self.capture.pcap_file else None,
                "bpf_filter": self.capture.bpf_filter,
                "promiscuous": self.capture.promiscuous,
                "queue_size": self.capture.queue_size,
            },
            "output": {
                "format": self.output.format,
                "output_dir": str(self.output.output_dir),
                "relation_name": self.output.relation_name,
                "max_rows_per_file": self.output.max_rows_per_file,
            },
        }

    @staticmethod
    def from_mapping(data: Mapping[str, Any], *, path: str = "$") -> "TranslatorConfig":
        translator_data = as_mapping(
            data.get("translator", {}) or {},
            path=f"{path}.translator",
        )
        base = f"{path}.translator"

        window = WindowConfig.from_mapping(
            as_mapping(translator_data.get("window", {}) or {}, path=f"{base}.window"),
            path=f"{base}.window",
        )
        capture = CaptureConfig.from_mapping(
            as_mapping(translator_data.get("capture", {}) or {}, path=f"{base}.capture"),
            path=f"{base}.capture",
        )
        output = OutputConfig.from_mapping(
            as_mapping(translator_data.get("output", {}) or {}, path=f"{base}.output"),
            path=f"{base}.output",
        )

        return TranslatorConfig(window=window, capture=capture, output=output)


def load_config(path: str | os.PathLike[str]) -> TranslatorConfig:
    """Load and validate a translator YAML configuration file."""

    p = Path(path)
    raw = yaml.safe_load(p.read_text(encoding="utf-8"))
    if raw is None:
        raw = {}
    raw_map = as_mapping(raw, path="$")
    return TranslatorConfig.from_mapping(raw_map, path="$")
