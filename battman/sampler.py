"""
Background battery sampler.

A ``Sampler`` owns at most one daemon thread. Each tick reads every battery
from a sensor and appends one row per device to a ``LogStore``; the thread
then waits for the interval on a stop event, so ``stop()`` takes effect at
the next tick boundary and never interrupts a write.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from battman.config import validate_interval
from battman.log_store import LogStore, StoreIOError
from battman.models import BatterySample
from battman.sensors import BatterySensor, SensorUnavailableError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class SamplerHandle:
    """Handle to a running sampler thread."""

    thread: threading.Thread
    stop_event: threading.Event
    interval_seconds: int
    started_at: datetime

    @property
    def alive(self) -> bool:
        return self.thread.is_alive()


@dataclass
class SamplerState:
    running: bool
    interval_seconds: int
    task_handle: SamplerHandle


class Sampler:
    """
    Periodic battery sampler.

    Example:
        sampler = Sampler(default_sensor(), LogStore(cfg.log_file))
        sampler.start(300)
        ...
        sampler.stop()
    """

    def __init__(
        self,
        sensor: BatterySensor,
        store: LogStore,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.sensor = sensor
        self.store = store
        self._clock = clock
        self._state: SamplerState | None = None
        self._lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._state is not None and self._state.running

    @property
    def interval_seconds(self) -> int | None:
        with self._lock:
            return self._state.interval_seconds if self._state else None

    @property
    def handle(self) -> SamplerHandle | None:
        with self._lock:
            return self._state.task_handle if self._state else None

    def start(self, interval_seconds: int) -> SamplerHandle:
        """Start sampling every ``interval_seconds``.

        If the sampler is already running the existing handle is returned and
        nothing new is scheduled.

        Raises:
            ConfigInvalidError: If the interval is not a positive integer.
        """
        interval = validate_interval(interval_seconds)
        with self._lock:
            if self._state is not None:
                logger.info(
                    "Sampler already running (thread %s)", self._state.task_handle.thread.name
                )
                return self._state.task_handle

            stop_event = threading.Event()
            thread = threading.Thread(
                target=self._run,
                args=(stop_event, interval),
                name="battman-sampler",
                daemon=True,
            )
            handle = SamplerHandle(
                thread=thread,
                stop_event=stop_event,
                interval_seconds=interval,
                started_at=self._clock(),
            )
            self._state = SamplerState(running=True, interval_seconds=interval, task_handle=handle)
            thread.start()

        logger.info("Sampler started: every %ss -> %s", interval, self.store.path)
        return handle

    def stop(self) -> bool:
        """Stop the sampler and wait for its thread to exit.

        Returns:
            bool: True if a running sampler was stopped, False if it was not running.
        """
        with self._lock:
            state = self._state
            if state is None:
                return False
            state.running = False
            state.task_handle.stop_event.set()

        handle = state.task_handle
        if handle.thread is not threading.current_thread():
            handle.thread.join()

        with self._lock:
            if self._state is state:
                self._state = None
        logger.info("Sampler stopped")
        return True

    def tick(self) -> int:
        """Sample every battery once. Returns the number of rows written."""
        try:
            devices = self.sensor.enumerate_devices()
        except SensorUnavailableError as e:
            logger.warning("Battery enumeration failed: %s", e)
            return 0

        timestamp = self._clock()
        written = 0
        for device_id in devices:
            try:
                snapshot = self.sensor.read_snapshot(device_id)
            except SensorUnavailableError as e:
                logger.warning("Skipping %s this tick: %s", device_id, e)
                continue
            except Exception:
                logger.exception("Unexpected error reading %s; skipping this tick", device_id)
                continue

            sample = BatterySample.from_snapshot(timestamp, snapshot)
            try:
                self.store.append(sample)
            except StoreIOError as e:
                logger.error("Could not log %s: %s", device_id, e)
                continue
            written += 1

        logger.debug("Tick wrote %d row(s)", written)
        return written

    def _run(self, stop_event: threading.Event, interval: int) -> None:
        while not stop_event.is_set():
            try:
                self.tick()
            except Exception:
                logger.exception("Sampler tick failed")
            if stop_event.wait(interval):
                break
