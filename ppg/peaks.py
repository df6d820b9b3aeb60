"""
ppg/peaks.py — Adaptive-threshold beat detector
================================================
Converts the conditioned waveform into discrete beats and inter-beat (RR)
intervals, one sample at a time.

Per sample
----------
1. Append to a ~3 s sliding window.
2. Once `PEAK_THRESHOLD_WARMUP` (30) samples are buffered, recompute the
   threshold  `median + k·IQR`  over the window.  Median and IQR are robust
   to the occasional motion spike, unlike mean + σ.  Nothing is accepted
   before that.
3. Test the sample `PEAK_NEIGHBOURHOOD` positions back (so that it has
   neighbours on both sides) for a **candidate**:
       * local maximum over ±3 samples (a flat top resolves to its last sample),
       * above the adaptive threshold,
       * prominence (value − valley over the preceding lookback) above
         `max(floor, 0.3·IQR)`.
4. **Accept** only if the refractory period has elapsed since the previous
   accepted beat — the state machine is  observing → refractory → observing.
5. On acceptance record the peak, derive the RR interval from the actual
   timestamps, keep it only inside the physiological bound, and refresh
   `bpm = 60000 / median(last 5 RR)`.

No exceptions are raised for any input; BPM stays 0 until two valid RR
intervals exist.
"""

from dataclasses import dataclass
from enum import Enum

import numpy as np

from config import (
    BPM_MEDIAN_INTERVALS,
    BPM_MIN_INTERVALS,
    PEAK_HISTORY,
    PEAK_IQR_FACTOR,
    PEAK_MIN_PROMINENCE,
    PEAK_NEIGHBOURHOOD,
    PEAK_PROMINENCE_IQR_FACTOR,
    PEAK_PROMINENCE_LOOKBACK,
    PEAK_THRESHOLD_WARMUP,
    PEAK_WINDOW,
    REFRACTORY_PERIOD_MS,
    RR_HISTORY,
    RR_MAX_MS,
    RR_MIN_MS,
)
from features.hr import median_bpm
from ppg.buffer import RingBuffer
from ppg.types import Peak
from utils.logger import get_logger

logger = get_logger("ppg.peaks")


class DetectorState(str, Enum):
    OBSERVING = "observing"
    REFRACTORY = "refractory"


@dataclass(frozen=True)
class PeakResult:
    """Per-sample detector output."""

    is_peak: bool
    bpm: float
    peak: Peak | None = None
    rr_ms: float | None = None   # RR interval closed by this peak, if valid


class PeakDetector:
    """
    Streaming peak detector with refractory period and prominence screening.

    Parameters
    ----------
    window            : int    Sliding-window length in samples.
    iqr_factor        : float  k in `median + k·IQR`.
    neighbourhood     : int    Half-width of the local-maximum test.
    refractory_ms     : float  Minimum spacing between accepted beats.
    rr_min_ms, rr_max_ms : float  Physiological RR bound kept by the detector.
    """

    def __init__(
        self,
        window: int = PEAK_WINDOW,
        iqr_factor: float = PEAK_IQR_FACTOR,
        neighbourhood: int = PEAK_NEIGHBOURHOOD,
        refractory_ms: float = REFRACTORY_PERIOD_MS,
        rr_min_ms: float = RR_MIN_MS,
        rr_max_ms: float = RR_MAX_MS,
    ):
        if window < 2 * neighbourhood + 1:
            raise ValueError(
                f"Window ({window}) must hold at least one full neighbourhood "
                f"({2 * neighbourhood + 1} samples)."
            )
        self._iqr_factor = iqr_factor
        self._radius = neighbourhood
        self._refractory_ms = refractory_ms
        self._rr_min = rr_min_ms
        self._rr_max = rr_max_ms

        self._values: RingBuffer[float] = RingBuffer(window)
        self._times: RingBuffer[float] = RingBuffer(window)
        self._peaks: RingBuffer[Peak] = RingBuffer(PEAK_HISTORY)
        self._rr: RingBuffer[float] = RingBuffer(RR_HISTORY)

        self._state = DetectorState.OBSERVING
        self._last_peak: Peak | None = None
        self._sample_index = -1
        self._bpm = 0.0
        self._threshold = 0.0

    # ── Public API ───────────────────────────────────────────────────────────

    def process(self, timestamp_ms: float, value: float) -> PeakResult:
        """Feed one conditioned sample; return whether a beat was accepted."""
        self._sample_index += 1
        self._values.push(value)
        self._times.push(timestamp_ms)

        if (self._state is DetectorState.REFRACTORY
                and self._last_peak is not None
                and timestamp_ms - self._last_peak.time > self._refractory_ms):
            self._state = DetectorState.OBSERVING

        n = len(self._values)
        if n < max(PEAK_THRESHOLD_WARMUP, 2 * self._radius + 1):
            return PeakResult(False, self._bpm)

        values = np.asarray(self._values.snapshot(), dtype=np.float64)
        q25, median, q75 = np.percentile(values, [25, 50, 75])
        iqr = q75 - q25
        self._threshold = median + self._iqr_factor * iqr

        i = n - 1 - self._radius
        candidate = values[i]
        if not self._is_local_max(values, i) or candidate <= self._threshold:
            return PeakResult(False, self._bpm)

        valley = values[max(0, i - PEAK_PROMINENCE_LOOKBACK): i + self._radius + 1].min()
        prominence = candidate - valley
        min_prominence = max(PEAK_MIN_PROMINENCE, PEAK_PROMINENCE_IQR_FACTOR * iqr)
        if prominence <= min_prominence:
            return PeakResult(False, self._bpm)

        peak_time = self._times.snapshot()[i]
        if (self._last_peak is not None
                and peak_time - self._last_peak.time <= self._refractory_ms):
            return PeakResult(False, self._bpm)

        peak = Peak(
            index=self._sample_index - self._radius,
            time=peak_time,
            value=float(candidate),
            prominence=float(prominence),
        )
        rr_ms = self._accept(peak)
        return PeakResult(True, self._bpm, peak, rr_ms)

    def rr_intervals(self) -> list[float]:
        """Valid RR intervals (ms), oldest first."""
        return self._rr.snapshot()

    def peaks(self) -> list[Peak]:
        return self._peaks.snapshot()

    @property
    def bpm(self) -> float:
        return self._bpm

    @property
    def state(self) -> DetectorState:
        return self._state

    @property
    def threshold(self) -> float:
        return self._threshold

    @property
    def is_warmed_up(self) -> bool:
        """True once the threshold is computed over a settled window."""
        return len(self._values) >= PEAK_THRESHOLD_WARMUP

    def reset(self) -> None:
        self._values.clear()
        self._times.clear()
        self._peaks.clear()
        self._rr.clear()
        self._state = DetectorState.OBSERVING
        self._last_peak = None
        self._sample_index = -1
        self._bpm = 0.0
        self._threshold = 0.0
        logger.debug("Peak detector reset.")

    # ── Private ──────────────────────────────────────────────────────────────

    def _is_local_max(self, values: np.ndarray, i: int) -> bool:
        left = values[max(0, i - self._radius): i]
        right = values[i + 1: i + 1 + self._radius]
        if left.size and values[i] < left.max():
            return False
        return not right.size or values[i] > right.max()

    def _accept(self, peak: Peak) -> float | None:
        previous = self._last_peak
        self._last_peak = peak
        self._peaks.push(peak)
        self._state = DetectorState.REFRACTORY

        if previous is None:
            logger.debug("First peak at %.0f ms.", peak.time)
            return None

        rr = peak.time - previous.time
        if not self._rr_min <= rr <= self._rr_max:
            logger.debug("RR %.0f ms outside [%.0f, %.0f] — dropped.", rr, self._rr_min, self._rr_max)
            return None

        self._rr.push(rr)
        intervals = self._rr.snapshot()
        if len(intervals) >= BPM_MIN_INTERVALS:
            self._bpm = median_bpm(intervals, BPM_MEDIAN_INTERVALS)
        return rr
