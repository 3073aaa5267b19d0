#!/usr/bin/env python3
"""Traffic Translator CLI - capture packets and write per-window feature records."""

from __future__ import annotations

import argparse
import logging
import signal
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Optional, Sequence

from ..common.logging import add_file_handler, configure_logging, log_event
from ..common.validation import ValidationError
from .collector import CaptureEngine
from .config import TranslatorConfig, load_config
from .driver import CaptureLoopDriver
from .errors import TranslatorError
from .features import feature_columns
from .sinks import ArffFeatureSink, FanOutSink, LoggingFeatureSink, RotatingCSVFeatureSink


def setup_argparser() -> argparse.ArgumentParser:
    """Set up command line argument parser."""
    parser = argparse.ArgumentParser(
        prog="traffic-translator",
        description="Traffic Translator - windowed network traffic feature extractor",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s --config translator.yaml run
  %(prog)s --interface eth0 run --duration 60000
  %(prog)s --pcap capture.pcap run
  %(prog)s --config translator.yaml validate
        """
    )

    parser.add_argument(
        "--config",
        type=str,
        help="Path to YAML configuration file (defaults apply when omitted)"
    )

    source = parser.add_mutually_exclusive_group()
    source.add_argument(
        "--interface",
        type=str,
        help="Network interface to capture on (overrides config)"
    )
    source.add_argument(
        "--pcap",
        type=str,
        help="Replay a capture file instead of a live interface (overrides config)"
    )

    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Set logging level"
    )

    parser.add_argument(
        "--log-file",
        type=str,
        help="Also write JSON logs to this file"
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    run_parser = subparsers.add_parser("run", help="Capture traffic and write feature records")
    run_parser.add_argument(
        "--duration",
        type=int,
        help="Total capture duration in milliseconds (overrides config)"
    )

    subparsers.add_parser("validate", help="Validate configuration file")

    return parser


def load_translator_config(args: argparse.Namespace) -> TranslatorConfig:
    """Load configuration from --config (if any) and apply CLI overrides."""
    config = load_config(args.config) if args.config else TranslatorConfig()
    return config.with_overrides(
        interface=args.interface,
        pcap_file=args.pcap,
        duration_ms=getattr(args, "duration", None),
    )


def build_sink(config: TranslatorConfig) -> Any:
    """Create the configured feature sink; records are always logged too."""
    output = config.output
    columns = feature_columns(config.window.top_sources_reported)
    log_sink = LoggingFeatureSink()

    if output.format == "log":
        return log_sink

    config.ensure_output_dirs()
    if output.format == "csv":
        file_sink: Any = RotatingCSVFeatureSink(
            output_dir=output.output_dir,
            file_prefix=output.relation_name,
            max_rows_per_file=output.max_rows_per_file,
            columns=columns,
        )
    else:
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        file_sink = ArffFeatureSink(
            path=output.output_dir / f"{output.relation_name}_{timestamp}.arff",
            relation_name=output.relation_name,
            columns=columns,
        )
    return FanOutSink([file_sink, log_sink])


def configure_logging_from_args(args: argparse.Namespace) -> logging.Logger:
    """Configure logging based on command line arguments."""
    logger = configure_logging(level=getattr(args, "log_level", None))

    log_file = getattr(args, "log_file", None)
    if log_file:
        try:
            log_path = Path(log_file)
            log_path.parent.mkdir(parents=True, exist_ok=True)
            add_file_handler(log_path)
        except OSError as e:
            logger.error(f"Failed to setup file logging to {log_file}: {e}")

    return logger


def cmd_run(args: argparse.Namespace, logger: logging.Logger) -> int:
    """Capture until the configured duration elapses or a signal arrives."""
    config = load_translator_config(args)
    if config.capture.interface is None and config.capture.pcap_file is None:
        logger.error("No capture source: set capture.interface, --interface or --pcap")
        return 2

    window = config.window
    engine = CaptureEngine(
        interface=config.capture.interface,
        pcap_file=config.capture.pcap_file,
        bpf_filter=config.capture.bpf_filter,
        promiscuous=config.capture.promiscuous,
        queue_size=config.capture.queue_size,
    )
    driver = CaptureLoopDriver(
        source_capacity=window.source_tally_capacity,
        top_sources=window.top_sources_reported,
        poll_timeout_s=window.poll_timeout_ms / 1000,
        use_packet_time=engine.offline,
    )
    sink = build_sink(config)

    def signal_handler(signum, frame):
        logger.info(f"Received signal {signum}, shutting down...")
        driver.stop()

    previous_handlers = {
        signum: signal.signal(signum, signal_handler)
        for signum in (signal.SIGINT, signal.SIGTERM)
    }

    try:
        producer = engine.start()
        driver.run(
            producer,
            sink,
            total_duration_ms=window.total_capture_duration_ms,
            window_size_ms=window.window_size_ms,
        )
    finally:
        engine.stop()
        sink.close()
        for signum, handler in previous_handlers.items():
            signal.signal(signum, handler)
        log_event(logger, "capture complete", driver=driver.get_stats(), capture=engine.get_stats())

    return 0


def cmd_validate(args: argparse.Namespace, logger: logging.Logger) -> int:
    """Validate configuration file."""
    try:
        config = load_translator_config(args)
    except (OSError, ValidationError) as e:
        print(f"✗ Configuration validation failed: {e}")
        return 1

    print(f"✓ Configuration {args.config or '(defaults)'} is valid")
    log_event(logger, "configuration", level="DEBUG", **config.to_safe_dict())
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main CLI entry point."""
    parser = setup_argparser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    logger = configure_logging_from_args(args)
    log_event(logger, "Translator CLI starting", level="INFO", command=args.command)

    try:
        if args.command == "run":
            return cmd_run(args, logger)
        elif args.command == "validate":
            return cmd_validate(args, logger)
        else:
            logger.error(f"Unknown command: {args.command}")
            return 1

    except KeyboardInterrupt:
        logger.info("Operation cancelled by user")
        return 0
    except (TranslatorError, ValidationError, OSError) as e:
        logger.error(f"{type(e).__name__}: {e}")
        return 1
    finally:
        log_event(logger, "Translator CLI exiting", level="INFO")


if __name__ == "__main__":
    sys.exit(main())
