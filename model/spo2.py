"""
model/spo2.py — SpO2 estimation from two camera channels
==========================================================

⚠️  DISCLAIMER: a smartphone camera captures broad red / green bands, not
    the narrow red / infra-red wavelengths of a pulse oximeter.  The value
    produced here is an ESTIMATE calibrated against an empirical table; it
    is NOT a medical oximetry reading.

────────────────────────────────────────────────────────────────────────
Method
────────────────────────────────────────────────────────────────────────
    R = (AC_red / DC_red) / (AC_green / DC_green)          ratio of ratios

    SpO2 = 0.6 · table(R) + 0.4 · (100 − 15·(R − 0.8))

`table` is a piecewise-linear interpolation over the calibration points in
`config.SPO2_CALIBRATION_TABLE`.  The standard 110 − 25·R formula is
calibrated for red/IR sensors and reads far too low on camera data, which
is why the blend leans on the empirical table.

A small perfusion-index correction follows: very low PI tends to
under-estimate (nudge up), very high PI hints at sensor saturation (nudge
down).  The result is clamped to [50, 105] and capped at 100.

Rejections (typed, never raised)
--------------------------------
    NO_SIGNAL     DC < 5 or AC < 0.001 on either channel
    LOW_PI        mean PI < 0.05 %
    INVALID_R     R outside [0.35, 2.6]
Flags on otherwise valid results (confidence halved)
    OUT_OF_RANGE  pre-clamp estimate outside [50, 105]
    INCONSISTENT  last five values span ≥ 8 points
────────────────────────────────────────────────────────────────────────
"""

from dataclasses import dataclass

import numpy as np
from scipy.signal import detrend

from config import (
    SPO2_CALIBRATION_TABLE,
    SPO2_CONSISTENCY_SPAN,
    SPO2_CONSISTENCY_WINDOW,
    SPO2_HISTORY,
    SPO2_MIN_AC,
    SPO2_MIN_DC,
    SPO2_MIN_PI,
    SPO2_MIN_WINDOW,
    SPO2_R_MAX,
    SPO2_R_MIN,
    SPO2_TABLE_WEIGHT,
    SPO2_WINDOW,
)
from ppg.buffer import RingBuffer
from ppg.types import InvalidReason
from utils.logger import get_logger

logger = get_logger("model.spo2")


@dataclass(frozen=True)
class SpO2Result:
    spo2: float
    confidence: float
    ratio_r: float
    perfusion_index: float
    is_valid: bool
    invalid_reason: InvalidReason = InvalidReason.NONE


@dataclass(frozen=True)
class ChannelAcDc:
    red_ac: float
    red_dc: float
    green_ac: float
    green_dc: float


class ChannelWindow:
    """
    Rolling per-channel window that yields AC and DC components.

    DC is the window mean; AC is half the peak-to-peak of the linearly
    detrended window (robust percentiles, so one clipped frame does not
    dominate).
    """

    def __init__(self, size: int = SPO2_WINDOW, min_samples: int = SPO2_MIN_WINDOW):
        self._red: RingBuffer[float] = RingBuffer(size)
        self._green: RingBuffer[float] = RingBuffer(size)
        self._min_samples = min_samples

    def push(self, red: float, green: float) -> None:
        self._red.push(red)
        self._green.push(green)

    def ac_dc(self) -> ChannelAcDc | None:
        """AC/DC of both channels, or None while the window is still filling."""
        if len(self._red) < self._min_samples:
            return None
        red_ac, red_dc = self._components(self._red.snapshot())
        green_ac, green_dc = self._components(self._green.snapshot())
        return ChannelAcDc(red_ac, red_dc, green_ac, green_dc)

    def reset(self) -> None:
        self._red.clear()
        self._green.clear()

    @staticmethod
    def _components(values: list[float]) -> tuple[float, float]:
        data = np.asarray(values, dtype=np.float64)
        dc = float(data.mean())
        residual = detrend(data, type="linear")
        low, high = np.percentile(residual, [5, 95])
        return float(high - low) / 2.0, dc


class SpO2Calibrator:
    """
    Ratio-of-ratios SpO2 with a hybrid lookup-table + linear model.

    Parameters
    ----------
    calibration_table : sequence of (R, SpO2) pairs, strictly increasing in R.
    table_weight      : weight of the table model (linear formula gets the rest).
    """

    def __init__(
        self,
        calibration_table: tuple[tuple[float, float], ...] = SPO2_CALIBRATION_TABLE,
        table_weight: float = SPO2_TABLE_WEIGHT,
    ):
        table = np.asarray(calibration_table, dtype=np.float64)
        if table.ndim != 2 or table.shape[0] < 2 or table.shape[1] != 2:
            raise ValueError("Calibration table needs at least two (R, SpO2) pairs.")
        if np.any(np.diff(table[:, 0]) <= 0):
            raise ValueError("Calibration table R values must be strictly increasing.")
        if not 0.0 <= table_weight <= 1.0:
            raise ValueError(f"table_weight must lie in [0, 1], got {table_weight}.")

        self._table_r = table[:, 0]
        self._table_spo2 = table[:, 1]
        self._table_weight = table_weight

        self._r_history: RingBuffer[float] = RingBuffer(SPO2_HISTORY)
        self._spo2_history: RingBuffer[float] = RingBuffer(SPO2_HISTORY)
        self._frame_count = 0
        logger.info("SpO2Calibrator initialised — %d calibration points.", table.shape[0])

    # ── Public API ───────────────────────────────────────────────────────────

    def calculate(self, red_ac: float, red_dc: float, green_ac: float, green_dc: float) -> SpO2Result:
        """Estimate SpO2 from the AC/DC components of the red and green channels."""
        self._frame_count += 1

        if red_dc < SPO2_MIN_DC or green_dc < SPO2_MIN_DC:
            return self._invalid(InvalidReason.NO_SIGNAL, 0.0, 0.0)
        if red_ac < SPO2_MIN_AC or green_ac < SPO2_MIN_AC:
            return self._invalid(InvalidReason.NO_SIGNAL, 0.0, 0.0)

        ratio_red = red_ac / red_dc
        ratio_green = green_ac / green_dc
        perfusion_index = (ratio_red + ratio_green) / 2.0 * 100.0
        if perfusion_index < SPO2_MIN_PI:
            return self._invalid(InvalidReason.LOW_PI, perfusion_index, 0.0)

        ratio_r = ratio_red / ratio_green
        if not SPO2_R_MIN <= ratio_r <= SPO2_R_MAX:
            return self._invalid(InvalidReason.INVALID_R, perfusion_index, ratio_r)

        self._r_history.push(ratio_r)

        spo2 = (self._table_weight * self.lookup(ratio_r)
                + (1.0 - self._table_weight) * self.linear(ratio_r))
        spo2 = self._perfusion_correction(spo2, perfusion_index)

        reason = InvalidReason.NONE
        if not 50.0 <= spo2 <= 105.0:
            reason = InvalidReason.OUT_OF_RANGE
        spo2 = min(100.0, float(np.clip(spo2, 50.0, 105.0)))
        self._spo2_history.push(spo2)

        confidence = self._confidence(ratio_r, perfusion_index)
        if reason is InvalidReason.NONE and not self._is_consistent():
            reason = InvalidReason.INCONSISTENT
        if reason is not InvalidReason.NONE:
            confidence *= 0.5

        if self._frame_count % 30 == 0:
            logger.debug("SpO2: R=%.4f PI=%.2f%% → %.1f%% (conf=%.0f%%)",
                         ratio_r, perfusion_index, spo2, confidence)

        return SpO2Result(
            spo2=spo2,
            confidence=confidence,
            ratio_r=ratio_r,
            perfusion_index=perfusion_index,
            is_valid=True,
            invalid_reason=reason,
        )

    def lookup(self, ratio_r: float) -> float:
        """Piecewise-linear table value; flat beyond the first / last point."""
        return float(np.interp(ratio_r, self._table_r, self._table_spo2))

    @staticmethod
    def linear(ratio_r: float) -> float:
        """Linear camera calibration: R = 0.8 → 100 %, R = 1.0 → 97 %."""
        return 100.0 - 15.0 * (ratio_r - 0.8)

    def smoothed(self) -> float:
        """Mean of the last eight accepted values (0.0 until three exist)."""
        history = self._spo2_history.snapshot()
        if len(history) < 3:
            return 0.0
        return float(np.mean(history[-8:]))

    def stats(self) -> dict:
        r_history = self._r_history.snapshot()
        spo2_history = self._spo2_history.snapshot()
        return {
            "r_history": r_history,
            "spo2_history": spo2_history,
            "avg_r": float(np.mean(r_history)) if r_history else 0.0,
            "avg_spo2": float(np.mean(spo2_history)) if spo2_history else 0.0,
        }

    def reset(self) -> None:
        self._r_history.clear()
        self._spo2_history.clear()
        self._frame_count = 0
        logger.debug("SpO2 calibrator reset.")

    # ── Private ──────────────────────────────────────────────────────────────

    @staticmethod
    def _perfusion_correction(spo2: float, pi: float) -> float:
        if pi < 0.5:
            return spo2 + (0.5 - pi) * 2.0
        if pi > 10.0:
            return spo2 - (pi - 10.0) * 0.2
        return spo2

    def _confidence(self, ratio_r: float, pi: float) -> float:
        confidence = 100.0

        # Typical R range is 0.7–1.3
        if ratio_r < 0.7 or ratio_r > 1.3:
            confidence -= abs(ratio_r - 1.0) * 30.0

        if pi < 1.0:
            confidence -= (1.0 - pi) * 20.0
        elif pi > 5.0:
            confidence -= (pi - 5.0) * 5.0

        r_history = np.asarray(self._r_history.snapshot())
        if r_history.size >= 5:
            cv = float(r_history.std() / r_history.mean())
            if cv > 0.1:
                confidence -= cv * 100.0
        else:
            confidence -= 20.0

        return float(np.clip(confidence, 0.0, 100.0))

    def _is_consistent(self) -> bool:
        recent = self._spo2_history.snapshot()[-SPO2_CONSISTENCY_WINDOW:]
        if len(recent) < SPO2_CONSISTENCY_WINDOW:
            return True
        return max(recent) - min(recent) < SPO2_CONSISTENCY_SPAN

    @staticmethod
    def _invalid(reason: InvalidReason, pi: float, ratio_r: float) -> SpO2Result:
        return SpO2Result(
            spo2=0.0,
            confidence=0.0,
            ratio_r=ratio_r,
            perfusion_index=pi,
            is_valid=False,
            invalid_reason=reason,
        )
