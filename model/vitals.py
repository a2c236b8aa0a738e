"""
model/vitals.py — Per-cycle vital-signs aggregation
=====================================================

⚠️  DISCLAIMER: every value produced here is a wellness ESTIMATE derived
    from a camera signal.  None of it is a clinical measurement.

Combines the rhythm analysis, the waveform statistics, the stored
calibration and the tuner's signal history into one BiometricReading.

Confidence
----------
Weighted product of four factors in [0, 1]:

    peak validity    fraction of the recent peaks whose shape score
                     cleared the tuned confidence floor
    stability        1 − CV of the recent signal-strength history
                     (0 until MIN_STABILITY_HISTORY entries exist)
    RR plausibility  fraction of recent RR intervals inside the
                     physiological band
    periodicity      self-similarity of the conditioned waveform at the
                     beat period (features.waveform.periodicity)

    confidence = Π factor_i ^ weight_i

A product (unlike a mean) lets one failing factor pull the whole score
down, so a strong pulse cannot hide an implausible rhythm.

Gating
------
The reading is INSUFFICIENT_SIGNAL, with heart rate, SpO2 and blood
pressure withheld, when any of these hold:

    * the raw signal carries no pulsatile component
      (perfusion index < MIN_PERFUSION_INDEX; no finger on the lens)
    * the conditioned waveform does not repeat at the beat period
      (periodicity < MIN_PERIODICITY; sensor noise)
    * fewer than MIN_CONSECUTIVE_DETECTIONS peaks were confirmed
    * confidence is below MIN_CONFIDENCE
    * the heart rate falls outside [MIN_BPM, MAX_BPM]

The perfusion and periodicity checks matter because the tuner's gain can
lift plain sensor noise to pulse-like amplitudes, where it yields evenly
spaced, well-shaped "peaks".  Confidence is reported either way
so a UI can show "place finger" prompts.

Blood pressure
--------------
The calibration record is the anchor.  When the waveform gives a reliable
pulse-transit proxy (crest time inside [CREST_TIME_MIN_MS,
CREST_TIME_MAX_MS] and confidence ≥ BP_ADJUST_MIN_CONFIDENCE):

    scale  = clip(1 + HR_SCALE_COEFF·(HR − HR_REFERENCE_BPM), BP_SCALE_RANGE)
    offset = clip(CREST_TIME_COEFF·(CREST_TIME_REFERENCE_MS − crest), ±BP_MAX_OFFSET)

both blended towards "no adjustment" by the confidence, then

    systolic  = cal_sys · scale + offset
    diastolic = cal_dia · scale + offset / 2

with at least MIN_PULSE_PRESSURE between them.  Otherwise the raw
calibration values are reported unchanged.  Without a calibration record
no blood pressure is reported.
"""

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Iterable

import numpy as np

from config import (
    BP_ADJUST_MIN_CONFIDENCE,
    BP_MAX_OFFSET,
    BP_SCALE_RANGE,
    CONFIDENCE_WEIGHTS,
    CREST_TIME_COEFF,
    CREST_TIME_MAX_MS,
    CREST_TIME_MIN_MS,
    CREST_TIME_REFERENCE_MS,
    DIASTOLIC_RANGE,
    HR_REFERENCE_BPM,
    HR_SCALE_COEFF,
    MAX_BPM,
    MIN_BPM,
    MIN_CONFIDENCE,
    MIN_CONSECUTIVE_DETECTIONS,
    MIN_PERFUSION_INDEX,
    MIN_PERIODICITY,
    MIN_PULSE_PRESSURE,
    MIN_STABILITY_HISTORY,
    SYSTOLIC_RANGE,
    TUNING_PEAK_WINDOW,
)
from features.rhythm import RhythmAnalysis
from features.spo2 import OxygenationEstimator, RatioOfRatiosEstimator
from features.waveform import WaveformStats
from model.calibration import CalibrationRecord
from utils.logger import get_logger

logger = get_logger("model.vitals")


class ReadingStatus(str, Enum):
    OK = "ok"
    INSUFFICIENT_SIGNAL = "insufficient_signal"


@dataclass(frozen=True)
class BiometricReading:
    """One aggregated output; vitals are None when the signal is insufficient."""
    timestamp: float | None
    heart_rate: float | None
    spo2: float | None
    systolic: float | None
    diastolic: float | None
    confidence: float
    status: ReadingStatus
    arrhythmia_count: int = 0
    rmssd_ms: float = 0.0
    detector_degraded: bool = False

    @property
    def is_valid(self) -> bool:
        return self.status is ReadingStatus.OK

    def to_dict(self) -> dict:
        data = asdict(self)
        data["status"] = self.status.value
        return data


# ── Confidence ───────────────────────────────────────────────────────────────

def signal_stability(strengths: Iterable[float],
                     min_history: int = MIN_STABILITY_HISTORY) -> float:
    """1 − coefficient of variation of the history, clipped to [0, 1]."""
    history = np.asarray(list(strengths), dtype=np.float64)
    if history.shape[0] < min_history:
        return 0.0
    mean = float(np.mean(history))
    if mean <= 0:
        return 0.0
    cv = float(np.std(history)) / mean
    return float(np.clip(1.0 - cv, 0.0, 1.0))


def compute_confidence(valid_fraction: float,
                       stability: float,
                       rr_plausible_fraction: float,
                       periodicity: float,
                       weights: tuple[float, float, float, float] = CONFIDENCE_WEIGHTS) -> float:
    """
    Weighted product of the four quality factors.

    Parameters
    ----------
    valid_fraction        : float   Share of recent peaks passing shape checks.
    stability             : float   Signal-strength stability.
    rr_plausible_fraction : float   Share of recent RR intervals in band.
    periodicity           : float   Waveform self-similarity at the beat period.
    weights               : tuple   Exponent per factor.

    Returns
    -------
    confidence : float in [0, 1]
    """
    factors = np.clip([valid_fraction, stability, rr_plausible_fraction, periodicity], 0.0, 1.0)
    score = float(np.prod(np.power(factors, np.asarray(weights, dtype=np.float64))))
    return float(np.clip(score, 0.0, 1.0))


# ── Blood pressure ───────────────────────────────────────────────────────────

def adjust_blood_pressure(calibration: CalibrationRecord | None,
                          heart_rate: float | None,
                          crest_time_ms: float | None,
                          confidence: float) -> tuple[float, float] | None:
    """
    Calibration-anchored blood pressure (see module docstring).

    Returns
    -------
    (systolic, diastolic) in mmHg, or None without a calibration record.
    """
    if calibration is None:
        return None

    cal_sys = float(calibration.systolic)
    cal_dia = float(calibration.diastolic)

    reliable = (
        heart_rate is not None
        and crest_time_ms is not None
        and CREST_TIME_MIN_MS <= crest_time_ms <= CREST_TIME_MAX_MS
        and confidence >= BP_ADJUST_MIN_CONFIDENCE
    )
    if not reliable:
        return cal_sys, cal_dia

    weight = float(np.clip(confidence, 0.0, 1.0))
    scale = float(np.clip(1.0 + HR_SCALE_COEFF * (heart_rate - HR_REFERENCE_BPM), *BP_SCALE_RANGE))
    offset = float(np.clip(
        CREST_TIME_COEFF * (CREST_TIME_REFERENCE_MS - crest_time_ms), -BP_MAX_OFFSET, BP_MAX_OFFSET
    ))
    scale = 1.0 + weight * (scale - 1.0)
    offset = weight * offset

    systolic = cal_sys * scale + offset
    diastolic = cal_dia * scale + 0.5 * offset
    if systolic - diastolic < MIN_PULSE_PRESSURE:
        systolic = diastolic + MIN_PULSE_PRESSURE

    systolic = float(np.clip(systolic, *SYSTOLIC_RANGE))
    diastolic = float(np.clip(diastolic, *DIASTOLIC_RANGE))
    return round(systolic, 1), round(diastolic, 1)


# ── Aggregator ───────────────────────────────────────────────────────────────

class VitalSignsAggregator:
    """
    Builds one BiometricReading per processing cycle.

    Parameters
    ----------
    spo2_estimator : OxygenationEstimator | None
        Pluggable oxygenation estimator; defaults to RatioOfRatiosEstimator.
    min_confidence : float   Gate below which no vitals are reported.
    min_detections : int     Peaks required before any vitals are reported.
    peak_window    : int     Recent peaks the validity fraction covers.
    """

    def __init__(self,
                 spo2_estimator: OxygenationEstimator | None = None,
                 min_confidence: float = MIN_CONFIDENCE,
                 min_detections: int = MIN_CONSECUTIVE_DETECTIONS,
                 peak_window: int = TUNING_PEAK_WINDOW):
        self.spo2_estimator = spo2_estimator if spo2_estimator is not None else RatioOfRatiosEstimator()
        self.min_confidence = min_confidence
        self.min_detections = min_detections
        self.peak_window = peak_window

    def aggregate(self,
                  analysis: RhythmAnalysis,
                  stats: WaveformStats,
                  signal_strengths: Iterable[float],
                  calibration: CalibrationRecord | None = None,
                  timestamp: float | None = None,
                  degraded: bool = False) -> BiometricReading:
        """
        Parameters
        ----------
        analysis         : RhythmAnalysis   This cycle's rhythm output.
        stats            : WaveformStats    This cycle's waveform statistics.
        signal_strengths : iterable         Tuner's signal-strength history.
        calibration      : CalibrationRecord | None
        timestamp        : float | None     Time the reading refers to (ms).
        degraded         : bool             Tuner's DetectorDegraded flag.
        """
        recent = analysis.peaks[-self.peak_window:]
        valid_fraction = (
            sum(1 for p in recent if p.valid) / len(recent) if recent else 0.0
        )
        stability = signal_stability(signal_strengths)
        confidence = compute_confidence(
            valid_fraction, stability, analysis.rr_plausible_fraction, stats.periodicity
        )
        spo2 = self.spo2_estimator(stats)

        heart_rate = analysis.heart_rate
        reason = None
        if stats.perfusion_index < MIN_PERFUSION_INDEX:
            reason = f"perfusion index {stats.perfusion_index:.4f} < {MIN_PERFUSION_INDEX}"
        elif stats.periodicity < MIN_PERIODICITY:
            reason = f"periodicity {stats.periodicity:.2f} < {MIN_PERIODICITY}"
        elif len(analysis.peaks) < self.min_detections:
            reason = f"{len(analysis.peaks)} peak(s) < {self.min_detections}"
        elif confidence < self.min_confidence:
            reason = f"confidence {confidence:.2f} < {self.min_confidence:.2f}"
        elif heart_rate is None or not MIN_BPM <= heart_rate <= MAX_BPM:
            reason = f"heart rate {heart_rate} outside [{MIN_BPM:.0f}, {MAX_BPM:.0f}]"

        common = {
            "timestamp": timestamp,
            "confidence": round(confidence, 3),
            "arrhythmia_count": analysis.arrhythmia_count,
            "rmssd_ms": float(analysis.hrv.get("rmssd_ms") or 0.0),
            "detector_degraded": degraded,
        }

        if reason is not None:
            logger.debug("Reading suppressed: %s", reason)
            return BiometricReading(
                heart_rate=None,
                spo2=None,
                systolic=None,
                diastolic=None,
                status=ReadingStatus.INSUFFICIENT_SIGNAL,
                **common,
            )

        bp = adjust_blood_pressure(calibration, heart_rate, stats.crest_time_ms, confidence)
        systolic, diastolic = bp if bp is not None else (None, None)

        logger.debug(
            "Reading: HR=%.1f bpm, SpO2=%s, BP=%s/%s, confidence=%.2f",
            heart_rate, spo2, systolic, diastolic, confidence,
        )
        return BiometricReading(
            heart_rate=round(heart_rate, 1),
            spo2=spo2,
            systolic=systolic,
            diastolic=diastolic,
            status=ReadingStatus.OK,
            **common,
        )

    def reset(self) -> None:
        reset = getattr(self.spo2_estimator, "reset", None)
        if callable(reset):
            reset()
