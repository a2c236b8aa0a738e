"""
config.py — Centralised configuration & hyper-parameters
=========================================================
Every tunable constant in the project lives here so that the rest of the
codebase can import from a single source of truth.  Components accept
keyword overrides whose defaults come from this module.
"""

import os

# ─── Acquisition ─────────────────────────────────────────────────────────────
SAMPLE_RATE_HZ: float = 60.0      # Expected camera-frame cadence
BUFFER_SECONDS: float = 8.0       # History kept by the sample ring buffer
BUFFER_CAPACITY: int = int(SAMPLE_RATE_HZ * BUFFER_SECONDS)

# ─── Waveform Conditioning ───────────────────────────────────────────────────
# Centred moving-mean window used to remove baseline drift (samples).
DETREND_WINDOW: int = 25
# Smoothing factor shared by the low-pass and high-pass stages.
FILTER_ALPHA: float = 0.95

# ─── Physiological Limits ────────────────────────────────────────────────────
MIN_BPM: float = 40.0
MAX_BPM: float = 200.0
MIN_PEAK_DISTANCE_MS: float = 300.0   # Refractory distance → caps HR at MAX_BPM
MIN_RR_INTERVAL_MS: float = 300.0
MAX_RR_INTERVAL_MS: float = 2000.0

# ─── Rhythm / HRV ────────────────────────────────────────────────────────────
RR_WINDOW: int = 12                        # Recent intervals used for HR & HRV
ARRHYTHMIA_VARIATION_THRESHOLD: float = 0.20
ARRHYTHMIA_CONTEXT_BEATS: int = 8          # Centred window for the short-term median
ARRHYTHMIA_MIN_CONTEXT: int = 3            # Plausible neighbours needed to judge a beat
PNN50_THRESHOLD_MS: float = 50.0
HRV_MIN_INTERVALS: int = 2

# ─── Adaptive Tuning ─────────────────────────────────────────────────────────
TUNING_LEARNING_RATE: float = 0.1
TUNING_PEAK_WINDOW: int = 10
SIGNAL_STRENGTH_HISTORY: int = 30

SIGNAL_THRESHOLD: float = 0.02
MIN_SIGNAL_THRESHOLD: float = 0.01
MAX_SIGNAL_THRESHOLD: float = 0.1

PEAK_CONFIDENCE_FLOOR: float = 0.30
MIN_PEAK_CONFIDENCE_FLOOR: float = 0.2
MAX_PEAK_CONFIDENCE_FLOOR: float = 0.8

DERIVATIVE_THRESHOLD: float = -0.005
MIN_DERIVATIVE_THRESHOLD: float = -0.05
MAX_DERIVATIVE_THRESHOLD: float = -0.0001

SENSITIVITY: float = 1.0
MIN_SENSITIVITY: float = 0.001
MAX_SENSITIVITY: float = 100.0

# Targets the tuner nudges towards
TARGET_PEAK_AMPLITUDE: float = 0.15    # Scaled peak height the sensitivity aims for
THRESHOLD_RATIO: float = 0.5           # Threshold as a fraction of the reference peak
# Reference peak = this percentile of recent amplitudes (tracks the systolic
# peaks while dicrotic waves make up at most half of the detections)
AMPLITUDE_REFERENCE_PERCENTILE: float = 75.0
DERIVATIVE_RATIO: float = 0.5          # Derivative threshold vs median post-peak slope
CONFIDENCE_FLOOR_BASE: float = 0.7     # Floor for perfectly steady amplitudes
CONFIDENCE_FLOOR_CV_WEIGHT: float = 0.5

# Missing-finger recovery
LOW_SIGNAL_THRESHOLD: float = 0.003
LOW_SIGNAL_FRAMES: int = 10
LOW_SIGNAL_RECOVERY_RATE: float = 0.3

# Cycles a parameter may sit on a clamp bound before DetectorDegraded fires
DEGRADED_CYCLES: int = 300
PINNED_TOLERANCE: float = 0.01         # Fraction of the band width

# ─── Peak Shape Validation ───────────────────────────────────────────────────
AMPLITUDE_CONFIDENCE_SCALE: float = 1.8
DERIVATIVE_CONFIDENCE_SCALE: float = 0.8
SLOPE_LOOKAHEAD: int = 6               # Samples after the peak used for its slope

# ─── Aggregation ─────────────────────────────────────────────────────────────
MIN_CONFIDENCE: float = 0.30
MIN_CONSECUTIVE_DETECTIONS: int = 3
SIGNAL_WINDOW_SECONDS: float = 1.0     # Window for signal strength & SpO2 stats
MIN_STABILITY_HISTORY: int = 5
MIN_PERFUSION_INDEX: float = 0.005     # AC/DC below this: no pulsatile signal
# Autocorrelation of the conditioned waveform at the beat period; sensor
# noise scores near 0, a real pulse near 1
MIN_PERIODICITY: float = 0.5
PERIODICITY_MIN_SECONDS: float = 4.0   # Conditioned history needed to judge it
# Weighted-product exponents: peak validity, signal stability,
# RR plausibility, periodicity
CONFIDENCE_WEIGHTS: tuple[float, float, float, float] = (0.3, 0.2, 0.2, 0.3)

# ─── SpO2 (ratio heuristic) ──────────────────────────────────────────────────
SPO2_CALIBRATION_FACTOR: float = 1.02
SPO2_MIN_PERFUSION: float = 0.005
SPO2_HIGH_PERFUSION: float = 0.15
SPO2_LOW_PERFUSION: float = 0.08
SPO2_MIN: float = 70.0
SPO2_MAX: float = 98.0
SPO2_SMOOTHING: int = 10

# ─── Blood Pressure Adjustment ───────────────────────────────────────────────
BP_ADJUST_MIN_CONFIDENCE: float = 0.6
CREST_TIME_MIN_MS: float = 60.0
CREST_TIME_MAX_MS: float = 500.0
CREST_TIME_REFERENCE_MS: float = 250.0
CREST_TIME_COEFF: float = 0.3           # mmHg per ms of crest-time change
BP_MAX_OFFSET: float = 15.0
HR_REFERENCE_BPM: float = 70.0
HR_SCALE_COEFF: float = 0.002
BP_SCALE_RANGE: tuple[float, float] = (0.9, 1.1)
MIN_PULSE_PRESSURE: float = 20.0

# ─── Calibration ─────────────────────────────────────────────────────────────
SYSTOLIC_RANGE: tuple[int, int] = (70, 200)
DIASTOLIC_RANGE: tuple[int, int] = (40, 130)
CALIBRATION_STORE_PATH: str = "data/calibration.json"
DEFAULT_CONTEXT: str = "default"

# ─── API ─────────────────────────────────────────────────────────────────────
API_TITLE = "PPG Vital-Signs Pipeline API"
API_VERSION = "0.1.0"
API_HOST = "0.0.0.0"
API_PORT = 8000

# ─── Logging ─────────────────────────────────────────────────────────────────
LOG_LEVEL: str = os.environ.get("PPG_LOG_LEVEL", "INFO")
