"""
features/hrv.py — Heart Rate Variability (HRV) engine
======================================================
Computes HRV metrics in three domains from the detector's RR intervals
(milliseconds), plus a handful of derived wellness indices.

    Temporal   : mean RR, SDNN, RMSSD, pNN50, pNN20, CV
    Frequency  : VLF / LF / HF band power, LF/HF, normalised LF% / HF%
    Non-linear : DFA α1 / α2, Approximate Entropy, Sample Entropy,
                 Poincaré SD1 / SD2
    Indices    : stress, recovery, autonomic balance, health score

Frequency domain
----------------
RR intervals are *irregularly* sampled in time (one value per beat), which
rules out a plain FFT without resampling.  Instead each band is scanned at
`HRV_FREQS_PER_BAND` test frequencies and the power at each frequency is the
squared cosine / sine projection of the centred series onto the beat
times (a discretised Lomb-Scargle periodogram), averaged over the band.

Non-linear
----------
* DFA integrates the centred series (cumulative sum), splits it into boxes
  of `scale` beats, removes a linear trend per box and takes the log–log
  slope of RMS fluctuation vs. scale: α1 over 4–16 beats, α2 over 16–64.
* ApEn counts self-matches; SampEn does not, which makes it the more
  robust of the two for short series.  Embedding m = 2, r = 0.2·std.

⚠️  With under a minute of camera data these estimates have high variance
    compared to clinical 5-minute recordings.  They are suitable for trend
    comparisons only.
"""

from dataclasses import asdict, dataclass, field

import numpy as np

from config import (
    ENTROPY_DIMENSION,
    ENTROPY_TOLERANCE,
    HF_BAND,
    HRV_FREQS_PER_BAND,
    HRV_MIN_INTERVALS,
    HRV_RR_MAX_MS,
    HRV_RR_MIN_MS,
    LF_BAND,
    VLF_BAND,
)
from utils.logger import get_logger

logger = get_logger("features.hrv")


@dataclass(frozen=True)
class TemporalMetrics:
    mean_rr: float = 0.0
    sdnn: float = 0.0
    rmssd: float = 0.0
    pnn50: float = 0.0
    pnn20: float = 0.0
    cv: float = 0.0


@dataclass(frozen=True)
class FrequencyMetrics:
    vlf: float = 0.0
    lf: float = 0.0
    hf: float = 0.0
    lf_hf_ratio: float = 0.0
    total_power: float = 0.0
    lf_norm: float = 0.0
    hf_norm: float = 0.0


@dataclass(frozen=True)
class NonLinearMetrics:
    dfa_alpha1: float = 0.0
    dfa_alpha2: float = 0.0
    approximate_entropy: float = 0.0
    sample_entropy: float = 0.0
    sd1: float = 0.0
    sd2: float = 0.0


@dataclass(frozen=True)
class HRVIndices:
    stress_index: float = 0.0
    recovery_index: float = 0.0
    autonomic_balance: float = 0.0
    health_score: float = 0.0


@dataclass(frozen=True)
class HRVMetrics:
    """All HRV groups.  The default instance is the all-zero sentinel."""

    temporal: TemporalMetrics = field(default_factory=TemporalMetrics)
    frequency: FrequencyMetrics = field(default_factory=FrequencyMetrics)
    non_linear: NonLinearMetrics = field(default_factory=NonLinearMetrics)
    indices: HRVIndices = field(default_factory=HRVIndices)
    num_intervals: int = 0

    @classmethod
    def empty(cls) -> "HRVMetrics":
        return cls()

    @property
    def is_empty(self) -> bool:
        return (self.temporal == TemporalMetrics()
                and self.frequency == FrequencyMetrics()
                and self.non_linear == NonLinearMetrics()
                and self.indices == HRVIndices())

    def as_dict(self) -> dict:
        return asdict(self)


class HRVEngine:
    """
    Stateless HRV calculator (the RR history is owned by the peak detector).

    Parameters
    ----------
    min_intervals : int   Fewer valid intervals than this → zero sentinel.
    """

    def __init__(self, min_intervals: int = HRV_MIN_INTERVALS):
        self._min_intervals = min_intervals

    def calculate(self, rr_intervals: list[float]) -> HRVMetrics:
        """
        Compute every HRV metric from RR intervals in milliseconds.

        Intervals outside [300, 2000] ms are discarded first.  Fewer than
        `min_intervals` survivors yield `HRVMetrics.empty()` — never a
        partially computed record.
        """
        rr = np.asarray(rr_intervals, dtype=np.float64)
        rr = rr[(rr >= HRV_RR_MIN_MS) & (rr <= HRV_RR_MAX_MS)]

        if rr.size < self._min_intervals:
            logger.debug("Only %d valid RR intervals (need %d) — HRV sentinel.",
                         rr.size, self._min_intervals)
            return HRVMetrics.empty()

        temporal = temporal_metrics(rr)
        frequency = frequency_metrics(rr)
        non_linear = NonLinearMetrics(
            dfa_alpha1=dfa(rr, 4, 16),
            dfa_alpha2=dfa(rr, 16, min(64, rr.size // 4)),
            approximate_entropy=approximate_entropy(rr, ENTROPY_DIMENSION, ENTROPY_TOLERANCE),
            sample_entropy=sample_entropy(rr, ENTROPY_DIMENSION, ENTROPY_TOLERANCE),
            **poincare(rr),
        )
        indices = derived_indices(temporal, frequency, non_linear)

        logger.debug(
            "HRV — SDNN=%.1f ms, RMSSD=%.1f ms, LF/HF=%.2f, α1=%.2f (%d beats)",
            temporal.sdnn, temporal.rmssd, frequency.lf_hf_ratio, non_linear.dfa_alpha1, rr.size,
        )
        return HRVMetrics(temporal, frequency, non_linear, indices, int(rr.size))


# ── Temporal ─────────────────────────────────────────────────────────────────


def temporal_metrics(rr: np.ndarray) -> TemporalMetrics:
    mean_rr = float(rr.mean())
    sdnn = float(rr.std())                 # population std-dev
    diffs = np.diff(rr)
    rmssd = float(np.sqrt(np.mean(diffs ** 2)))
    pnn50 = float(np.mean(np.abs(diffs) > 50.0) * 100.0)
    pnn20 = float(np.mean(np.abs(diffs) > 20.0) * 100.0)
    cv = sdnn / mean_rr * 100.0 if mean_rr > 0 else 0.0
    return TemporalMetrics(mean_rr, sdnn, rmssd, pnn50, pnn20, cv)


# ── Frequency ────────────────────────────────────────────────────────────────


def band_power(times_s: np.ndarray, values: np.ndarray, f_min: float, f_max: float,
               n_freqs: int = HRV_FREQS_PER_BAND) -> float:
    """Mean projection power of `values` sampled at `times_s` over a band."""
    n = values.size
    if n < 10:
        return 0.0
    omegas = 2.0 * np.pi * np.linspace(f_min, f_max, n_freqs)
    phase = np.outer(omegas, times_s)                 # (n_freqs, n)
    cos_sum = np.cos(phase) @ values
    sin_sum = np.sin(phase) @ values
    power = (cos_sum ** 2 + sin_sum ** 2) / n
    return float(power.mean())


def frequency_metrics(rr: np.ndarray) -> FrequencyMetrics:
    # Beat times: each interval is placed at the onset of the beat it spans.
    times_s = np.concatenate(([0.0], np.cumsum(rr[:-1]))) / 1000.0
    centred = rr - rr.mean()

    vlf = band_power(times_s, centred, *VLF_BAND)
    lf = band_power(times_s, centred, *LF_BAND)
    hf = band_power(times_s, centred, *HF_BAND)

    lf_hf_ratio = lf / hf if hf > 0 else 0.0
    lf_norm = lf / (lf + hf) * 100.0 if lf + hf > 0 else 0.0
    hf_norm = hf / (lf + hf) * 100.0 if lf + hf > 0 else 0.0
    return FrequencyMetrics(vlf, lf, hf, lf_hf_ratio, vlf + lf + hf, lf_norm, hf_norm)


# ── Non-linear ───────────────────────────────────────────────────────────────


def dfa(rr: np.ndarray, min_scale: int, max_scale: int) -> float:
    """
    Detrended fluctuation analysis scaling exponent over [min_scale, max_scale].

    Returns 0.0 when the series is too short for at least three scales with
    two boxes each.
    """
    n = rr.size
    if max_scale < min_scale or n < max_scale * 2:
        return 0.0

    integrated = np.cumsum(rr - rr.mean())
    scales, fluctuations = [], []

    for scale in range(min_scale, max_scale + 1):
        n_boxes = n // scale
        if n_boxes < 2:
            continue
        boxes = integrated[: n_boxes * scale].reshape(n_boxes, scale)
        x = np.arange(scale, dtype=np.float64)
        # One least-squares line per box, solved together.
        coeffs = np.polyfit(x, boxes.T, 1)            # (2, n_boxes)
        trend = np.outer(x, coeffs[0]) + coeffs[1]    # (scale, n_boxes)
        rms = np.sqrt(np.mean((boxes.T - trend) ** 2, axis=0))
        scales.append(scale)
        fluctuations.append(rms.mean())

    if len(scales) < 3:
        return 0.0

    log_f = np.log(np.maximum(fluctuations, 1e-3))
    slope, _ = np.polyfit(np.log(scales), log_f, 1)
    return float(slope)


def _templates(data: np.ndarray, m: int, count: int) -> np.ndarray:
    return np.array([data[i: i + m] for i in range(count)])


def _chebyshev(templates: np.ndarray) -> np.ndarray:
    return np.abs(templates[:, None, :] - templates[None, :, :]).max(axis=2)


def approximate_entropy(data: np.ndarray, m: int = 2, r_factor: float = 0.2) -> float:
    """ApEn(m, r) — self-matches included, so every template matches itself."""
    n = data.size
    if n < 10:
        return 0.0
    r = r_factor * float(data.std())

    def phi(dim: int) -> float:
        templates = _templates(data, dim, n - dim + 1)
        counts = (_chebyshev(templates) <= r).sum(axis=1) / templates.shape[0]
        return float(np.mean(np.log(counts)))

    return phi(m) - phi(m + 1)


def sample_entropy(data: np.ndarray, m: int = 2, r_factor: float = 0.2) -> float:
    """SampEn(m, r) — self-matches excluded; 0.0 when no matches exist."""
    n = data.size
    if n < 10:
        return 0.0
    r = r_factor * float(data.std())

    def matches(dim: int) -> int:
        # Same number of templates for m and m+1 so A/B compare like with like.
        templates = _templates(data, dim, n - m)
        close = _chebyshev(templates) <= r
        return int((close.sum() - templates.shape[0]) // 2)

    b = matches(m)
    a = matches(m + 1)
    if a == 0 or b == 0:
        return 0.0
    return float(-np.log(a / b))


def poincare(rr: np.ndarray) -> dict:
    """SD1 (short-term) and SD2 (long-term) axes of the Poincaré plot."""
    sd1 = float(np.sqrt(0.5) * np.std(np.diff(rr)))
    sd2_sq = 2.0 * float(rr.std()) ** 2 - sd1 ** 2
    return {"sd1": sd1, "sd2": float(np.sqrt(max(sd2_sq, 0.0)))}


# ── Indices ──────────────────────────────────────────────────────────────────


def derived_indices(temporal: TemporalMetrics, frequency: FrequencyMetrics,
                    non_linear: NonLinearMetrics) -> HRVIndices:
    # Stress: sympathetic dominance + reduced overall variability
    stress = min(100.0, frequency.lf_hf_ratio * 25.0 + (100.0 - min(100.0, temporal.sdnn)) * 0.5)

    # Recovery: vagal (HF) share + RMSSD
    recovery = min(100.0, frequency.hf_norm * 0.5 + min(100.0, temporal.rmssd) * 0.5)

    # -1 sympathetic … +1 parasympathetic
    balance = float(np.clip((frequency.hf_norm - frequency.lf_norm) / 50.0, -1.0, 1.0))

    health = 50.0
    if 30.0 <= temporal.sdnn <= 100.0:
        health += 15.0
    elif temporal.sdnn > 100.0:
        health += 10.0
    if temporal.rmssd > 20.0:
        health += 10.0
    if 0.75 <= non_linear.dfa_alpha1 <= 1.25:
        health += 15.0
    if 1.0 <= frequency.lf_hf_ratio <= 2.0:
        health += 10.0

    return HRVIndices(
        stress_index=float(round(stress)),
        recovery_index=float(round(recovery)),
        autonomic_balance=round(balance, 2),
        health_score=float(np.clip(round(health), 0, 100)),
    )
