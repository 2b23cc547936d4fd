"""
Append-only CSV log of battery samples.

The file is a fixed header followed by one line per sample::

    Timestamp,Battery,Percentage,State,Energy,Power_Usage,Health
    2025-03-01 10:00:00,battery_BAT0,81,discharging,42.1,9.8,90.00

Missing values are written as empty fields. All instances pointing at the
same file share one lock, so appends, clears and exports never interleave
and readers never see a half-written row.
"""

from __future__ import annotations

import csv
import io
import logging
import os
import shutil
import tempfile
import threading
from collections import deque
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from battman.models import TIMESTAMP_FORMAT, BatterySample, BatteryState

logger = logging.getLogger(__name__)

HEADER: tuple[str, ...] = (
    "Timestamp",
    "Battery",
    "Percentage",
    "State",
    "Energy",
    "Power_Usage",
    "Health",
)
HEADER_LINE = ",".join(HEADER)


class StoreIOError(OSError):
    """Raised when the log file cannot be read, extended, cleared or copied."""

    pass


_locks: dict[str, threading.RLock] = {}
_locks_guard = threading.Lock()


def _lock_for(path: Path) -> threading.RLock:
    key = str(path.resolve())
    with _locks_guard:
        lock = _locks.get(key)
        if lock is None:
            lock = threading.RLock()
            _locks[key] = lock
        return lock


def _fmt_float(value: float | None, digits: int | None = None) -> str:
    if value is None:
        return ""
    if digits is not None:
        return f"{value:.{digits}f}"
    return repr(float(value))


def _parse_float(raw: str) -> float | None:
    raw = raw.strip()
    if not raw or raw.upper() == "N/A":
        return None
    try:
        return float(raw)
    except ValueError:
        return None


def _parse_int(raw: str) -> int | None:
    value = _parse_float(raw)
    return None if value is None else int(round(value))


def format_row(sample: BatterySample) -> str:
    """Serialize a sample as one CSV line (with trailing newline)."""
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(
        [
            sample.timestamp.strftime(TIMESTAMP_FORMAT),
            sample.device_id,
            "" if sample.percentage is None else str(sample.percentage),
            sample.state.value,
            _fmt_float(sample.energy_now),
            _fmt_float(sample.power_rate),
            _fmt_float(sample.health_pct, 2),
        ]
    )
    return buf.getvalue()


def parse_row(fields: list[str]) -> BatterySample | None:
    """Parse CSV fields back into a sample; None for torn or unusable rows."""
    if len(fields) != len(HEADER):
        return None
    ts_raw, device_id = fields[0].strip(), fields[1].strip()
    if not ts_raw or not device_id:
        return None
    try:
        timestamp = datetime.strptime(ts_raw, TIMESTAMP_FORMAT)
    except ValueError:
        return None
    state_raw = fields[3].strip()
    return BatterySample(
        timestamp=timestamp,
        device_id=device_id,
        percentage=_parse_int(fields[2]),
        state=BatteryState.parse(state_raw) if state_raw else BatteryState.UNKNOWN,
        energy_now=_parse_float(fields[4]),
        power_rate=_parse_float(fields[5]),
        health_pct=_parse_float(fields[6]),
    )


class LogTail:
    """
    The last rows of a log, oldest first.

    Lines are captured when the tail is taken and parsed each time the tail
    is iterated, so it can be walked more than once.
    """

    def __init__(self, lines: list[str]):
        self._lines = lines

    def __len__(self) -> int:
        return len(self._lines)

    def __iter__(self) -> Iterator[BatterySample]:
        for fields in csv.reader(self._lines):
            sample = parse_row(fields)
            if sample is not None:
                yield sample


@dataclass(frozen=True)
class LogStats:
    """Aggregates over every row of the log."""

    rows: int
    average_percentage: float | None
    min_percentage: int | None
    average_discharge_power: float | None


class LogStore:
    """
    Durable, append-only battery sample log backed by a CSV file.

    Example:
        store = LogStore(Path("~/.local/share/battman/battery_log.csv").expanduser())
        store.append(sample)
        for row in store.tail(10):
            print(row.percentage)
    """

    def __init__(self, path: str | os.PathLike[str]):
        self.path = Path(path).expanduser()
        self._lock = _lock_for(self.path)

    # ------------------------------------------------------------------
    # Write side
    # ------------------------------------------------------------------
    def exists(self) -> bool:
        return self.path.is_file()

    def ensure_initialized(self) -> None:
        """Create the log with its header if it does not exist yet."""
        with self._lock:
            if self.path.exists():
                return
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with open(self.path, "x", encoding="utf-8", newline="") as f:
                    f.write(HEADER_LINE + "\n")
            except FileExistsError:
                return
            except OSError as e:
                raise StoreIOError(f"Cannot create log {self.path}: {e}") from e
            logger.debug("Created battery log %s", self.path)

    def append(self, sample: BatterySample) -> None:
        """Write one row at the end of the log."""
        line = format_row(sample)
        with self._lock:
            self.ensure_initialized()
            try:
                with open(self.path, "a", encoding="utf-8", newline="") as f:
                    f.write(line)
                    f.flush()
            except OSError as e:
                raise StoreIOError(f"Cannot append to {self.path}: {e}") from e

    def clear(self) -> None:
        """Drop every data row, keeping the header."""
        with self._lock:
            tmp: Path | None = None
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with tempfile.NamedTemporaryFile(
                    "w", delete=False, dir=str(self.path.parent), encoding="utf-8", newline=""
                ) as tf:
                    tmp = Path(tf.name)
                    tf.write(HEADER_LINE + "\n")
                if self.path.exists():
                    shutil.copymode(self.path, tmp)
                os.replace(tmp, self.path)
            except OSError as e:
                if tmp is not None:
                    tmp.unlink(missing_ok=True)
                raise StoreIOError(f"Cannot clear {self.path}: {e}") from e
        logger.info("Cleared battery log %s", self.path)

    def export_copy(self, destination: str | os.PathLike[str]) -> Path:
        """Copy the log byte for byte to ``destination`` and return its path."""
        dest = Path(destination).expanduser()
        with self._lock:
            self.ensure_initialized()
            try:
                shutil.copyfile(self.path, dest)
            except OSError as e:
                raise StoreIOError(f"Cannot export log to {dest}: {e}") from e
        logger.info("Exported battery log to %s", dest)
        return dest

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------
    def _read_data_lines(self) -> list[str]:
        """Return complete data lines (header and torn lines skipped)."""
        with self._lock:
            if not self.path.exists():
                return []
            try:
                with open(self.path, encoding="utf-8", newline="") as f:
                    next(f, None)
                    lines = [line for line in f if line.endswith("\n") and line.strip()]
            except OSError as e:
                raise StoreIOError(f"Cannot read {self.path}: {e}") from e
        return lines

    def _rows(self) -> Iterator[BatterySample]:
        for fields in csv.reader(self._read_data_lines()):
            sample = parse_row(fields)
            if sample is not None:
                yield sample

    def count_rows(self) -> int:
        return sum(1 for _ in self._rows())

    def tail(self, n: int) -> LogTail:
        """Return the last ``n`` rows, oldest first."""
        if n <= 0:
            return LogTail([])
        kept: deque[str] = deque(maxlen=n)
        for line in self._read_data_lines():
            # Unparseable lines must not take a slot in the tail.
            if parse_row(next(csv.reader([line]), [])) is not None:
                kept.append(line)
        return LogTail(list(kept))

    def average_percentage(self) -> float | None:
        values = [s.percentage for s in self._rows() if s.percentage is not None]
        if not values:
            return None
        return sum(values) / len(values)

    def min_percentage(self) -> int | None:
        values = [s.percentage for s in self._rows() if s.percentage is not None]
        return min(values) if values else None

    def average_discharge_power(
        self, filter_state: BatteryState | str = BatteryState.DISCHARGING
    ) -> float | None:
        """Mean power rate over rows in ``filter_state``; a rough discharge-rate estimate."""
        if isinstance(filter_state, BatteryState):
            state = filter_state
        else:
            state = BatteryState.parse(filter_state)
        values = [
            s.power_rate for s in self._rows() if s.state == state and s.power_rate is not None
        ]
        if not values:
            return None
        return sum(values) / len(values)

    def stats(self) -> LogStats:
        """Row count and aggregates computed in a single pass."""
        rows = 0
        pct_sum = 0
        pct_count = 0
        pct_min: int | None = None
        power_sum = 0.0
        power_count = 0
        for s in self._rows():
            rows += 1
            if s.percentage is not None:
                pct_sum += s.percentage
                pct_count += 1
                pct_min = s.percentage if pct_min is None else min(pct_min, s.percentage)
            if s.state == BatteryState.DISCHARGING and s.power_rate is not None:
                power_sum += s.power_rate
                power_count += 1
        return LogStats(
            rows=rows,
            average_percentage=pct_sum / pct_count if pct_count else None,
            min_percentage=pct_min,
            average_discharge_power=power_sum / power_count if power_count else None,
        )


def default_export_path(now: datetime | None = None) -> Path:
    stamp = (now or datetime.now()).strftime("%Y%m%d_%H%M%S")
    return Path.home() / f"battery_export_{stamp}.csv"
