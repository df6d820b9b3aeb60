"""
ppg/streaming.py — Threaded runtime around the pipeline
=========================================================
A capture thread produces samples; one worker thread owns the pipeline and
consumes them.  Readers (HTTP handlers, the CLI) only ever see immutable
snapshots.

    producer ──put()──▶ SampleChannel ──get()──▶ PipelineWorker ──set()──▶ LatestValue
                        (bounded, drops                                     (single slot)
                         the oldest)

Design notes
------------
* Freshness beats completeness: when the channel is full the *oldest*
  unconsumed sample is discarded and counted in `dropped`.
* Stop and reset requests are `threading.Event`s checked at the top of the
  worker loop.  Other pipeline commands (a BP cuff calibration) are queued
  and drained at the same point, so they also run on the worker thread.  A reset clears the pipeline, the backlog and the published
  snapshot before the next sample is processed; `request_reset()` blocks
  until that has happened.
* The pipeline is touched only by the worker thread while it runs, so it
  needs no lock of its own.
"""

import threading
from collections import deque
from typing import Generic, TypeVar

from config import CHANNEL_CAPACITY, WORKER_POLL_SECONDS
from ppg.pipeline import VitalSignsPipeline, VitalSignsSnapshot
from ppg.types import Sample
from utils.logger import get_logger

logger = get_logger("ppg.streaming")

T = TypeVar("T")


class SampleChannel:
    """Bounded single-producer / single-consumer queue that drops the oldest item."""

    def __init__(self, capacity: int = CHANNEL_CAPACITY):
        if capacity < 1:
            raise ValueError(f"Channel capacity must be at least 1, got {capacity}.")
        self._items: deque[Sample] = deque(maxlen=capacity)
        self._cond = threading.Condition()
        self._dropped = 0

    def put(self, sample: Sample) -> bool:
        """Enqueue a sample; returns True if the oldest one was discarded."""
        with self._cond:
            dropped = len(self._items) == self._items.maxlen
            if dropped:
                self._dropped += 1
            self._items.append(sample)
            self._cond.notify()
        return dropped

    def get(self, timeout: float | None = None) -> Sample | None:
        """Dequeue the oldest sample, waiting up to `timeout` seconds (None on timeout)."""
        with self._cond:
            if not self._items:
                self._cond.wait(timeout=timeout)
            return self._items.popleft() if self._items else None

    def clear(self) -> int:
        """Discard the backlog; returns how many samples were removed."""
        with self._cond:
            count = len(self._items)
            self._items.clear()
            return count

    @property
    def dropped(self) -> int:
        with self._cond:
            return self._dropped

    @property
    def capacity(self) -> int:
        return self._items.maxlen or 0

    def __len__(self) -> int:
        with self._cond:
            return len(self._items)


class LatestValue(Generic[T]):
    """Single-slot cell holding the most recently published value."""

    def __init__(self):
        self._lock = threading.Lock()
        self._value: T | None = None

    def set(self, value: T) -> None:
        with self._lock:
            self._value = value

    def get(self) -> T | None:
        with self._lock:
            return self._value

    def clear(self) -> None:
        with self._lock:
            self._value = None


class _Command:
    """A callable queued for the worker thread, with its completion flag."""

    def __init__(self, fn):
        self.fn = fn
        self.done = threading.Event()
        self.error: Exception | None = None


class PipelineWorker:
    """
    Consumer thread: channel → pipeline → latest snapshot.

    Parameters
    ----------
    pipeline : VitalSignsPipeline   Owned exclusively by the worker while running.
    channel  : SampleChannel        Input backlog (created if None).
    latest   : LatestValue          Output cell (created if None).
    poll_seconds : float            How long one `get()` waits before re-checking flags.
    """

    def __init__(
        self,
        pipeline: VitalSignsPipeline,
        channel: SampleChannel | None = None,
        latest: LatestValue[VitalSignsSnapshot] | None = None,
        poll_seconds: float = WORKER_POLL_SECONDS,
    ):
        self._pipeline = pipeline
        self.channel = channel if channel is not None else SampleChannel()
        self.latest: LatestValue[VitalSignsSnapshot] = latest if latest is not None else LatestValue()
        self._poll = poll_seconds

        self._stop_event = threading.Event()
        self._reset_event = threading.Event()
        self._reset_done = threading.Event()
        self._commands: deque[_Command] = deque()
        self._commands_lock = threading.Lock()
        self._pending = 0
        self._pending_cond = threading.Condition()
        self._thread: threading.Thread | None = None

        self._processed = 0
        self._error: str | None = None

    # ── Public API ───────────────────────────────────────────────────────────

    def start(self) -> None:
        if self.is_running:
            logger.warning("Worker already running — ignoring duplicate start().")
            return
        self._stop_event.clear()
        self._error = None
        self._thread = threading.Thread(target=self._run, name="ppg-worker", daemon=True)
        self._thread.start()
        logger.info("Pipeline worker started.")

    def stop(self, timeout: float = 2.0) -> None:
        """Signal the loop to exit and join the thread."""
        self._stop_event.set()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        self._thread = None
        logger.info("Pipeline worker stopped after %d samples.", self._processed)

    def submit(self, sample: Sample) -> bool:
        """Hand a sample to the worker; returns True if an old sample was dropped."""
        with self._pending_cond:
            dropped = self.channel.put(sample)
            if not dropped:
                self._pending += 1
        return dropped

    def request_reset(self, timeout: float = 2.0) -> bool:
        """
        Clear all pipeline state before the next sample is processed.

        Runs synchronously on the caller's thread when the worker is not
        running; otherwise waits (up to `timeout`) for the worker to do it.
        """
        if not self.is_running:
            self._reset_now()
            return True
        self._reset_done.clear()
        self._reset_event.set()
        return self._reset_done.wait(timeout=timeout)

    def request_calibration(self, systolic: float, diastolic: float, timeout: float = 2.0) -> bool:
        """
        Apply a cuff reading to the pipeline's BP estimator.

        Same contract as `request_reset()`: runs on the worker thread while it
        is running, and returns False if the worker did not get to it in time.
        """
        return self._call(lambda: self._pipeline.bp_estimator.calibrate(systolic, diastolic), timeout)

    def wait_idle(self, timeout: float = 5.0) -> bool:
        """Block until every submitted sample has been processed (False on timeout)."""
        with self._pending_cond:
            return self._pending_cond.wait_for(lambda: self._pending == 0, timeout=timeout)

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def processed(self) -> int:
        return self._processed

    @property
    def error(self) -> str | None:
        return self._error

    # ── Private ──────────────────────────────────────────────────────────────

    def _run(self) -> None:
        while not self._stop_event.is_set():
            self._drain_commands()
            if self._reset_event.is_set():
                self._reset_event.clear()
                self._reset_now()
                self._reset_done.set()
                continue

            sample = self.channel.get(timeout=self._poll)
            if sample is None:
                continue

            try:
                snapshot = self._pipeline.process(sample)
            except Exception as e:
                self._error = f"{type(e).__name__}: {e}"
                logger.exception("Pipeline worker failed on sample at %.0f ms:", sample.timestamp_ms)
                self._settle(1 + self.channel.clear())
                break
            self.latest.set(snapshot)
            self._processed += 1
            self._settle(1)

        self._drain_commands()
        logger.debug("Worker loop exited.")

    def _call(self, fn, timeout: float) -> bool:
        if not self.is_running:
            fn()
            return True
        command = _Command(fn)
        with self._commands_lock:
            self._commands.append(command)
        if not command.done.wait(timeout=timeout):
            return False
        if command.error is not None:
            raise command.error
        return True

    def _drain_commands(self) -> None:
        while True:
            with self._commands_lock:
                if not self._commands:
                    return
                command = self._commands.popleft()
            try:
                command.fn()
            except Exception as e:
                logger.warning("Worker command failed: %s", e)
                command.error = e
            finally:
                command.done.set()

    def _settle(self, count: int) -> None:
        with self._pending_cond:
            self._pending = max(0, self._pending - count)
            self._pending_cond.notify_all()

    def _reset_now(self) -> None:
        self._settle(self.channel.clear())
        self._pipeline.reset()
        self.latest.clear()
        self._processed = 0
