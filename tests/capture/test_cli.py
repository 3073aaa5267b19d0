"""Unit tests for the command line interface."""

from __future__ import annotations

import csv

import yaml
from scapy.layers.inet import IP, TCP
from scapy.layers.l2 import Ether
from scapy.utils import wrpcap

from traffic_translator.capture.cli import build_sink, main, setup_argparser
from traffic_translator.capture.config import OutputConfig, TranslatorConfig
from traffic_translator.capture.sinks import (
    ArffFeatureSink,
    FanOutSink,
    LoggingFeatureSink,
    RotatingCSVFeatureSink,
)


def write_config(path, data):
    path.write_text(yaml.safe_dump(data))
    return path


class TestArgparser:
    """Test argument parsing."""

    def test_run_with_overrides(self):
        args = setup_argparser().parse_args(["--pcap", "trace.pcap", "run", "--duration", "3000"])

        assert args.command == "run"
        assert args.pcap == "trace.pcap"
        assert args.interface is None
        assert args.duration == 3000


class TestBuildSink:
    """Test sink selection from output config."""

    def test_log_format(self):
        config = TranslatorConfig(output=OutputConfig(format="log"))
        assert isinstance(build_sink(config), LoggingFeatureSink)

    def test_csv_format(self, tmp_path):
        config = TranslatorConfig(output=OutputConfig(format="csv", output_dir=tmp_path / "csv"))

        sink = build_sink(config)

        assert isinstance(sink, FanOutSink)
        assert isinstance(sink.sinks[0], RotatingCSVFeatureSink)
        assert isinstance(sink.sinks[1], LoggingFeatureSink)
        assert (tmp_path / "csv").is_dir()
        sink.close()

    def test_arff_format(self, tmp_path):
        config = TranslatorConfig(output=OutputConfig(output_dir=tmp_path, relation_name="lab"))

        sink = build_sink(config)

        arff = sink.sinks[0]
        assert isinstance(arff, ArffFeatureSink)
        assert arff.relation_name == "lab"
        assert arff.path.parent == tmp_path
        sink.close()


class TestMain:
    """Test CLI commands end to end."""

    def test_no_command_prints_help(self, capsys):
        assert main([]) == 1
        assert "traffic-translator" in capsys.readouterr().out

    def test_validate_defaults(self, capsys):
        assert main(["validate"]) == 0
        assert "(defaults) is valid" in capsys.readouterr().out

    def test_validate_bad_config(self, tmp_path, capsys):
        config_path = write_config(tmp_path / "bad.yaml", {"translator": {"output": {"format": "xml"}}})

        assert main(["--config", str(config_path), "validate"]) == 1
        assert "validation failed" in capsys.readouterr().out

    def test_run_without_source(self, tmp_path):
        config_path = write_config(tmp_path / "t.yaml", {"translator": {"output": {"format": "log"}}})

        assert main(["--config", str(config_path), "run"]) == 2

    def test_run_missing_pcap(self, tmp_path):
        config_path = write_config(
            tmp_path / "t.yaml",
            {"translator": {"output": {"format": "csv", "output_dir": str(tmp_path / "out")}}},
        )

        assert main(["--config", str(config_path), "--pcap", str(tmp_path / "none.pcap"), "run"]) == 1

    def test_run_pcap_replay_writes_csv(self, tmp_path):
        packets = []
        for ts in (0.0, 0.1, 0.2, 0.6):
            pkt = Ether() / IP(src="10.0.0.1", dst="10.0.0.254") / TCP(dport=80)
            pkt.time = 1401500000 + ts
            packets.append(pkt)
        pcap = tmp_path / "replay.pcap"
        wrpcap(str(pcap), packets)
        out = tmp_path / "out"
        config_path = write_config(
            tmp_path / "t.yaml",
            {"translator": {
                "window": {"poll_timeout_ms": 50},
                "output": {"format": "csv", "output_dir": str(out), "relation_name": "replay"},
            }},
        )

        assert main(["--config", str(config_path), "--pcap", str(pcap), "run", "--duration", "10000"]) == 0

        files = sorted(out.glob("replay_*.csv"))
        assert len(files) == 1
        with open(files[0], newline="", encoding="utf-8") as f:
            rows = list(csv.reader(f))
        assert rows[1][:3] == ["1", "0.2", "3"]
