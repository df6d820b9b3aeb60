"""
config.py — Centralised configuration & hyper-parameters
=========================================================
Every tunable constant of the estimation pipeline lives here so that the
rest of the codebase can import from a single source of truth.  Component
constructors take keyword arguments that default to these values; per-session
calibration (age, SpO2 table) is passed through `ppg.pipeline.PipelineConfig`.
"""

# ─── Sampling ────────────────────────────────────────────────────────────────
NOMINAL_SAMPLE_RATE: float = 30.0   # Hz — camera frame rate the filters are designed for
PPG_CHANNEL: str = "red"            # Channel fed to conditioning / peak detection
SPO2_CHANNELS: tuple[str, str] = ("red", "green")

# ─── Camera front-end ────────────────────────────────────────────────────────
CAMERA_INDEX: int = 0          # Device index passed to cv2.VideoCapture
CAMERA_WIDTH: int = 640
CAMERA_HEIGHT: int = 480
CAMERA_FPS: int = 30
CAMERA_LOCK_EXPOSURE: bool = True   # Ask the driver to freeze exposure / white balance
CAMERA_MANUAL_EXPOSURE_MODE: float = 0.25   # V4L2 "manual" value for CAP_PROP_AUTO_EXPOSURE
ROI_FRACTION: float = 0.5      # Centre square covering this fraction of each side
TISSUE_MIN_RED: float = 40.0   # Pixel counts as tissue if red ≥ this …
TISSUE_RED_GREEN_RATIO: float = 1.2   # … and red ≥ ratio × green
CLIP_LEVEL: int = 250          # Pixel value treated as clipped

# ─── Streaming runtime ───────────────────────────────────────────────────────
CHANNEL_CAPACITY: int = 64     # ~2 s of backlog at 30 Hz before dropping oldest
WORKER_POLL_SECONDS: float = 0.05

# ─── Signal Conditioning ─────────────────────────────────────────────────────
# Butterworth bandpass filter band (Hz).
# 0.5 Hz  →  30 BPM  (respiration drift sits below)
# 4.0 Hz  → 240 BPM  (camera noise sits above)
BP_LOW_HZ: float = 0.5
BP_HIGH_HZ: float = 4.0
FILTER_ORDER: int = 2          # Butterworth filter order

BASELINE_FAST_ALPHA: float = 0.25   # First samples: lock on quickly
BASELINE_SLOW_ALPHA: float = 0.02   # Afterwards: stable tracking
BASELINE_FAST_SAMPLES: int = 10

GAIN_TARGET_AMPLITUDE: float = 20.0  # Peak-to-peak the gain stage aims for
GAIN_MIN: float = 0.5
GAIN_MAX: float = 50.0
GAIN_WINDOW: int = 60                # Samples (~2 s) for the dynamic-range estimate
GAIN_SMOOTHING: float = 0.1          # EWMA factor applied to gain changes
GAIN_EPSILON: float = 1e-6

# ─── Peak Detection ──────────────────────────────────────────────────────────
PEAK_WINDOW: int = 90                # ~3 s sliding window
PEAK_THRESHOLD_WARMUP: int = 30      # Window is considered settled past this
PEAK_IQR_FACTOR: float = 0.3         # threshold = median + k·IQR
PEAK_NEIGHBOURHOOD: int = 3          # ±samples for the local-maximum test
PEAK_PROMINENCE_LOOKBACK: int = 10   # Samples before the candidate searched for its valley
PEAK_MIN_PROMINENCE: float = 1e-3    # Absolute prominence floor
PEAK_PROMINENCE_IQR_FACTOR: float = 0.3
REFRACTORY_PERIOD_MS: float = 250.0  # Caps the rate at 240 BPM
PEAK_HISTORY: int = 20
RR_HISTORY: int = 120
RR_MIN_MS: float = 300.0             # 200 BPM
RR_MAX_MS: float = 1500.0            # 40 BPM
BPM_MEDIAN_INTERVALS: int = 5
BPM_MIN_INTERVALS: int = 2

# ─── Signal Quality ──────────────────────────────────────────────────────────
QUALITY_MIN_SAMPLES: int = 30
QUALITY_NEUTRAL_SCORE: int = 30
QUALITY_BUFFER: int = 90
PERIODICITY_WINDOW_S: float = 2.0
VARIATION_WINDOW_S: float = 1.0
PERIODICITY_MIN_BPM: float = 40.0
PERIODICITY_MAX_BPM: float = 180.0
CV_STATIC: float = 0.01              # Coefficient of variation of a static surface
CV_PULSATILE: float = 0.05           # … of a strongly pulsating fingertip
CV_MOTION: float = 0.25              # Above this the variation is movement, not pulse
GOOD_PERFUSION_INDEX: float = 1.0    # % — perfusion score saturates here
MIN_VARIATION_SCORE: float = 0.1
MIN_PERIODICITY: float = 0.3
MIN_DC_LEVEL: float = 1.0
MIN_COVERAGE_RATIO: float = 0.3
MAX_SATURATION_RATIO: float = 0.6
GOOD_SNR: float = 0.5                # Spectral concentration treated as clean

# ─── HRV ─────────────────────────────────────────────────────────────────────
HRV_MIN_INTERVALS: int = 20
HRV_RR_MIN_MS: float = 300.0
HRV_RR_MAX_MS: float = 2000.0
HRV_FREQS_PER_BAND: int = 50
VLF_BAND: tuple[float, float] = (0.003, 0.04)
LF_BAND: tuple[float, float] = (0.04, 0.15)
HF_BAND: tuple[float, float] = (0.15, 0.4)
ENTROPY_DIMENSION: int = 2
ENTROPY_TOLERANCE: float = 0.2       # r = factor · std(series)

# ─── SpO2 ────────────────────────────────────────────────────────────────────
# Empirical R → SpO2 control points for red/green camera channels.
SPO2_CALIBRATION_TABLE: tuple[tuple[float, float], ...] = (
    (0.40, 100.0),
    (0.60, 100.0),
    (0.80, 99.0),
    (1.00, 97.0),
    (1.20, 94.0),
    (1.40, 91.0),
    (1.60, 88.0),
    (1.80, 85.0),
    (2.00, 82.0),
    (2.20, 78.0),
    (2.50, 70.0),
)
SPO2_TABLE_WEIGHT: float = 0.6       # Linear formula gets the remaining 0.4
SPO2_MIN_DC: float = 5.0
SPO2_MIN_AC: float = 0.001
SPO2_MIN_PI: float = 0.05            # %
SPO2_R_MIN: float = 0.35
SPO2_R_MAX: float = 2.6
SPO2_HISTORY: int = 15
SPO2_CONSISTENCY_WINDOW: int = 5
SPO2_CONSISTENCY_SPAN: float = 8.0
SPO2_WINDOW: int = 60                # Samples per channel for AC/DC
SPO2_MIN_WINDOW: int = 30
SPO2_UPDATE_SAMPLES: int = 15        # Recompute SpO2 every N samples (~0.5 s)

# ─── Blood Pressure Estimation ───────────────────────────────────────────────
# Additive regression on pulse morphology + PTT proxy (heuristic, not clinical).
BP_MIN_FEATURES: int = 8
BP_FEATURE_HISTORY: int = 10
BP_RR_HISTORY: int = 15
BP_DEFAULT_AGE: int = 35
BP_AGE_BASELINE: float = 30.0
BP_NOTCH_REBOUND: float = 0.05       # Rebound (fraction of amplitude) that ends the notch scan
BP_SYSTOLIC_RANGE: tuple[float, float] = (85.0, 200.0)
BP_DIASTOLIC_RANGE: tuple[float, float] = (45.0, 120.0)
BP_PULSE_PRESSURE_RANGE: tuple[float, float] = (20.0, 80.0)
BP_PTT_PLAUSIBLE_MS: tuple[float, float] = (300.0, 1500.0)
BP_AMPLITUDE_PLAUSIBLE: tuple[float, float] = (2.0, 200.0)
BP_BASELINE_CONFIDENCE: float = 0.3
BP_MIN_CONFIDENCE: float = 0.2
BP_CALIBRATION_RATE: float = 0.3

BP_MODEL_PATH: str = "model/bp_forest.pkl"   # Serialised sklearn pipeline (optional)
BP_USE_PRETRAINED: bool = False              # Set True if a .pkl file exists

# ─── Stress Estimation ───────────────────────────────────────────────────────
# Thresholds used to map HRV → stress category (heuristic, not clinical)
STRESS_RMSSD_HIGH: float = 45.0   # Above this → Low stress
STRESS_RMSSD_MED: float = 25.0    # Between med and high → Moderate stress

# ─── API ─────────────────────────────────────────────────────────────────────
API_TITLE = "Camera-PPG Vital-Signs Estimation API"
API_VERSION = "0.2.0"
CORS_ALLOW_ORIGINS: tuple[str, ...] = ("*",)   # Restrict in shared deployments
