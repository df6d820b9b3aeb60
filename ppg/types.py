"""
ppg/types.py — Shared value types for the estimation pipeline
==============================================================
Plain dataclasses exchanged between components.  Every component owns its
private state; only these immutable records cross component boundaries.
"""

from dataclasses import dataclass
from enum import Enum


class InvalidReason(str, Enum):
    """Why a quality / SpO2 result is not (fully) trustworthy."""

    NONE = "NONE"
    NO_SIGNAL = "NO_SIGNAL"
    LOW_PULSATILITY = "LOW_PULSATILITY"
    TOO_NOISY = "TOO_NOISY"
    MOTION_ARTIFACT = "MOTION_ARTIFACT"
    NO_FINGER = "NO_FINGER"
    INVALID_R = "INVALID_R"
    LOW_PI = "LOW_PI"
    OUT_OF_RANGE = "OUT_OF_RANGE"
    INCONSISTENT = "INCONSISTENT"


@dataclass(frozen=True)
class Sample:
    """
    One camera tick reduced to channel means over the region of interest.

    timestamp_ms     : monotonic capture time in milliseconds.
    red/green/blue   : channel means (0–255 for 8-bit cameras).
    coverage_ratio   : fraction of the ROI classified as tissue (0..1), optional.
    saturation_ratio : fraction of ROI pixels clipped (0..1), optional.
    """

    timestamp_ms: float
    red: float
    green: float
    blue: float
    coverage_ratio: float | None = None
    saturation_ratio: float | None = None

    def channel(self, name: str) -> float:
        if name not in ("red", "green", "blue"):
            raise ValueError(f"Unknown channel '{name}'. Choose from red, green, blue.")
        return getattr(self, name)


@dataclass(frozen=True)
class ConditionedSample:
    """Output of `SignalConditioner.process` for one raw value."""

    timestamp_ms: float
    raw: float        # Input value
    baseline: float   # Tracked DC level
    ac: float         # raw − baseline
    filtered: float   # Band-passed AC, before gain
    value: float      # Band-passed AC after adaptive gain
    gain: float


@dataclass(frozen=True)
class Peak:
    """An accepted beat."""

    index: int          # Absolute sample index since the last reset
    time: float         # Timestamp of the peak sample (ms)
    value: float
    prominence: float
