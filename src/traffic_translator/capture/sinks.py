"""Feature record sinks: ARFF, rotating CSV and log output."""

from __future__ import annotations

import csv
import logging
import math
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, TextIO

from ..common.logging import log_event
from .features import FEATURE_COLUMNS, FeatureRecord

logger = logging.getLogger(__name__)

ARFF_MISSING = "?"


class FileRotationError(Exception):
    """Exception raised during file rotation."""
    pass


def _format_value(value: Any, missing: str) -> str:
    if isinstance(value, float) and math.isnan(value):
        return missing
    return str(value)


class ArffFeatureSink:
    """Writes records to a Weka ARFF file.

    The header is written when the file is opened; NaN averages from
    degenerate windows are written as ARFF missing values.
    """

    def __init__(
        self,
        path: Path,
        relation_name: str = "traffic_features",
        columns: Sequence[str] = FEATURE_COLUMNS,
    ):
        self.path = Path(path)
        self.relation_name = relation_name
        self.columns = tuple(columns)
        self._lock = threading.Lock()
        self._handle: Optional[TextIO] = None
        self._closed = False
        self.rows_written = 0

    def open(self) -> None:
        with self._lock:
            self._open_locked()

    def push(self, record: FeatureRecord) -> None:
        row = record.as_row()
        if len(row) != len(self.columns):
            raise ValueError(f"record has {len(row)} fields, expected {len(self.columns)}")
        line = ",".join(_format_value(v, ARFF_MISSING) for v in row) + "\n"
        with self._lock:
            handle = self._open_locked()
            handle.write(line)
            handle.flush()
            self.rows_written += 1

    def close(self) -> None:
        with self._lock:
            self._closed = True
            if self._handle is not None:
                self._handle.close()
                self._handle = None
                logger.info(f"Closed ARFF output after {self.rows_written} records")

    def _open_locked(self) -> TextIO:
        if self._closed:
            raise FileRotationError(f"ARFF output already closed: {self.path}")
        if self._handle is None:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._handle = open(self.path, "w", encoding="utf-8", newline="\n")
            self._handle.write(self._header())
            self._handle.flush()
            logger.info(f"Opened ARFF output: {self.path}")
        return self._handle

    def _header(self) -> str:
        lines = [f"@RELATION {self.relation_name}", ""]
        lines.extend(f"@ATTRIBUTE {name} NUMERIC" for name in self.columns)
        lines.extend(["", "@DATA", ""])
        return "\n".join(lines)

    def __enter__(self) -> "ArffFeatureSink":
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


class RotatingCSVFeatureSink:
    """CSV writer that starts a new file every ``max_rows_per_file`` records."""

    def __init__(
        self,
        output_dir: Path,
        file_prefix: str = "features",
        max_rows_per_file: int = 10000,
        columns: Sequence[str] = FEATURE_COLUMNS,
        write_header: bool = True,
    ):
        self.output_dir = Path(output_dir)
        self.file_prefix = file_prefix
        self.max_rows_per_file = max_rows_per_file
        self.columns = list(columns)
        self.write_header = write_header

        self._lock = threading.RLock()

        self._current_file_path: Optional[Path] = None
        self._current_file_handle: Optional[TextIO] = None
        self._file_writer: Optional[Any] = None
        self._current_row_count = 0
        self._file_index = 0

        self._stats = {
            "files_written": 0,
            "total_rows": 0,
            "rotations": 0,
            "errors": 0,
        }

        self.output_dir.mkdir(parents=True, exist_ok=True)

    def get_current_file_path(self) -> Optional[Path]:
        return self._current_file_path

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                **self._stats,
                "current_file": str(self._current_file_path) if self._current_file_path else None,
                "current_row_count": self._current_row_count,
            }

    def push(self, record: FeatureRecord) -> None:
        with self._lock:
            if self._current_file_handle is None:
                self._open_new_file()
            self._write_row([_format_value(v, "") for v in record.as_row()])
            self._stats["total_rows"] += 1

    def flush(self) -> None:
        with self._lock:
            if self._current_file_handle:
                self._current_file_handle.flush()

    def rotate_file(self) -> Optional[Path]:
        """Close the current file and open the next one."""
        with self._lock:
            old_file = self._current_file_path
            self._close_current_file()
            self._open_new_file()
            self._stats["rotations"] += 1

            logger.info(f"File rotation: {old_file} -> {self._current_file_path}")
            return old_file

    def list_files(self) -> List[Path]:
        return sorted(self.output_dir.glob(f"{self.file_prefix}_*.csv"))

    def close(self) -> None:
        with self._lock:
            self._close_current_file()

    def _write_row(self, row: List[str]) -> None:
        if not self._file_writer or not self._current_file_handle:
            raise FileRotationError("No file handle available for writing")

        try:
            self._file_writer.writerow(row)
            self._current_file_handle.flush()
            self._current_row_count += 1
        except OSError as e:
            self._stats["errors"] += 1
            logger.error(f"Error writing CSV row: {e}")
            raise FileRotationError(f"Failed to write row: {e}") from e

        if self._current_row_count >= self.max_rows_per_file:
            self.rotate_file()

    def _open_new_file(self) -> None:
        self._file_index += 1
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        filename = f"{self.file_prefix}_{self._file_index:04d}_{timestamp}.csv"
        self._current_file_path = self.output_dir / filename

        try:
            self._current_file_handle = open(
                self._current_file_path,
                "w",
                newline="",
                encoding="utf-8",
            )
            self._file_writer = csv.writer(self._current_file_handle)
            if self.write_header:
                self._file_writer.writerow(self.columns)

            self._current_row_count = 0
            self._stats["files_written"] += 1
            logger.info(f"Opened new CSV file: {self._current_file_path}")

        except OSError as e:
            self._stats["errors"] += 1
            logger.error(f"Failed to open new file {self._current_file_path}: {e}")
            raise FileRotationError(f"Failed to open file: {e}") from e

    def _close_current_file(self) -> None:
        if self._current_file_handle:
            try:
                self._current_file_handle.flush()
                self._current_file_handle.close()
                logger.debug(f"Closed file: {self._current_file_path}")
            finally:
                self._current_file_handle = None
                self._file_writer = None
                self._current_file_path = None
                self._current_row_count = 0

    def __enter__(self) -> "RotatingCSVFeatureSink":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


class LoggingFeatureSink:
    """Emits each record as a structured log event (the console summary)."""

    def __init__(self, log: Optional[logging.Logger] = None):
        self._log = log or logger

    def push(self, record: FeatureRecord) -> None:
        log_event(
            self._log,
            f"record #{record.record}",
            degenerate=record.degenerate,
            unknown=record.unknown,
            ip_packets=record.ip_packets,
            **record.as_dict(),
        )

    def close(self) -> None:
        pass


class FanOutSink:
    """Pushes every record to each wrapped sink in order."""

    def __init__(self, sinks: Iterable[Any]):
        self.sinks = list(sinks)

    def push(self, record: FeatureRecord) -> None:
        for sink in self.sinks:
            sink.push(record)

    def close(self) -> None:
        for sink in self.sinks:
            close = getattr(sink, "close", None)
            if close is not None:
                close()
