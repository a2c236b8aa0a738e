"""
model/tuner.py — Adaptive detector tuning
==========================================
Keeps the peak detector usable across fingers, skin tones, camera
exposure and finger pressure by nudging four parameters once per cycle:

    sensitivity           gain applied to the conditioned waveform so the
                          reference peak sits near TARGET_PEAK_AMPLITUDE
                          (updated in log space; it spans five decades)
    signal_threshold      THRESHOLD_RATIO × reference scaled peak amplitude
    derivative_threshold  DERIVATIVE_RATIO × median post-peak slope
    min_confidence        shape-score floor; stricter when recent peak
                          amplitudes are steady, looser when they scatter

The reference peak is the AMPLITUDE_REFERENCE_PERCENTILE of the recent
amplitudes rather than their median.  A dicrotic wave detected as a beat
is smaller than the systolic peak and never more than every other
detection, so the reference stays on the systolic peaks and a threshold at
half of it drops the secondary wave on the next cycle.

Each update clamps the target to the parameter's band and moves only
`learning_rate` of the way towards it, so one noisy cycle moves a
parameter by at most learning_rate × band width and the detector can
never tune itself into a non-functional state.

Missing finger
--------------
When the newest scaled sample stays below LOW_SIGNAL_THRESHOLD for
LOW_SIGNAL_FRAMES consecutive cycles the tuner stops following the recent
trend and pulls every parameter towards its most permissive bound, so
detection resumes quickly once a finger is back on the lens.

Degradation
-----------
A parameter sitting on a clamp bound for DEGRADED_CYCLES consecutive
cycles raises a DetectorDegraded warning (once per episode).

The tuner only ever sees the previous cycle's peaks; the pipeline hands
them over explicitly after aggregation.
"""

import math
import warnings
from collections import deque
from dataclasses import dataclass, field

import numpy as np

from config import (
    AMPLITUDE_REFERENCE_PERCENTILE,
    CONFIDENCE_FLOOR_BASE,
    CONFIDENCE_FLOOR_CV_WEIGHT,
    DEGRADED_CYCLES,
    DERIVATIVE_RATIO,
    DERIVATIVE_THRESHOLD,
    LOW_SIGNAL_FRAMES,
    LOW_SIGNAL_RECOVERY_RATE,
    LOW_SIGNAL_THRESHOLD,
    MAX_DERIVATIVE_THRESHOLD,
    MAX_PEAK_CONFIDENCE_FLOOR,
    MAX_SENSITIVITY,
    MAX_SIGNAL_THRESHOLD,
    MIN_DERIVATIVE_THRESHOLD,
    MIN_PEAK_CONFIDENCE_FLOOR,
    MIN_PEAK_DISTANCE_MS,
    MIN_SENSITIVITY,
    MIN_SIGNAL_THRESHOLD,
    PEAK_CONFIDENCE_FLOOR,
    PINNED_TOLERANCE,
    SENSITIVITY,
    SIGNAL_STRENGTH_HISTORY,
    SIGNAL_THRESHOLD,
    TARGET_PEAK_AMPLITUDE,
    THRESHOLD_RATIO,
    TUNING_LEARNING_RATE,
    TUNING_PEAK_WINDOW,
)
from ppg.peaks import DetectionParams, Peak
from utils.errors import DetectorDegraded
from utils.logger import get_logger

logger = get_logger("model.tuner")


@dataclass(frozen=True)
class Band:
    """Closed [lo, hi] range a parameter is clamped to."""
    lo: float
    hi: float
    log_scale: bool = False

    def clamp(self, value: float) -> float:
        return min(max(value, self.lo), self.hi)

    def is_pinned(self, value: float, tolerance: float = PINNED_TOLERANCE) -> bool:
        lo, hi = self.lo, self.hi
        if self.log_scale:
            lo, hi, value = math.log(lo), math.log(hi), math.log(value)
        margin = tolerance * (hi - lo)
        return value - lo <= margin or hi - value <= margin


@dataclass(frozen=True)
class TuningBounds:
    signal_threshold: Band = Band(MIN_SIGNAL_THRESHOLD, MAX_SIGNAL_THRESHOLD)
    min_confidence: Band = Band(MIN_PEAK_CONFIDENCE_FLOOR, MAX_PEAK_CONFIDENCE_FLOOR)
    derivative_threshold: Band = Band(MIN_DERIVATIVE_THRESHOLD, MAX_DERIVATIVE_THRESHOLD)
    sensitivity: Band = Band(MIN_SENSITIVITY, MAX_SENSITIVITY, log_scale=True)


@dataclass
class TuningState:
    """Adaptive detector parameters plus the rolling statistics behind them."""
    signal_threshold: float = SIGNAL_THRESHOLD
    min_confidence: float = PEAK_CONFIDENCE_FLOOR
    derivative_threshold: float = DERIVATIVE_THRESHOLD
    sensitivity: float = SENSITIVITY
    min_peak_distance_ms: float = MIN_PEAK_DISTANCE_MS
    peak_amplitudes: deque = field(default_factory=lambda: deque(maxlen=TUNING_PEAK_WINDOW))
    signal_strengths: deque = field(default_factory=lambda: deque(maxlen=SIGNAL_STRENGTH_HISTORY))
    low_signal_streak: int = 0
    pinned_cycles: int = 0
    degraded: bool = False

    def detection_params(self) -> DetectionParams:
        return DetectionParams(
            signal_threshold=self.signal_threshold,
            derivative_threshold=self.derivative_threshold,
            min_confidence=self.min_confidence,
            min_peak_distance_ms=self.min_peak_distance_ms,
        )

    def snapshot(self) -> dict:
        return {
            "signal_threshold": round(self.signal_threshold, 5),
            "min_confidence": round(self.min_confidence, 4),
            "derivative_threshold": round(self.derivative_threshold, 5),
            "sensitivity": round(self.sensitivity, 5),
            "low_signal_streak": self.low_signal_streak,
            "degraded": self.degraded,
        }


@dataclass(frozen=True)
class TuningObservation:
    """What one finished cycle hands to the tuner."""
    peaks: list[Peak]
    sensitivity: float        # sensitivity the peaks were detected with
    signal_strength: float    # unscaled RMS of the last second
    latest_level: float       # newest scaled conditioned value


class AdaptiveTuner:
    """
    Owns one pipeline's TuningState and updates it once per cycle.

    Parameters
    ----------
    bounds        : TuningBounds   Clamp band per parameter.
    learning_rate : float          Fraction of the way to move per update.
    peak_window   : int            Recent peaks the statistics are taken over.
    """

    def __init__(self,
                 bounds: TuningBounds = TuningBounds(),
                 learning_rate: float = TUNING_LEARNING_RATE,
                 peak_window: int = TUNING_PEAK_WINDOW,
                 signal_history: int = SIGNAL_STRENGTH_HISTORY,
                 low_signal_threshold: float = LOW_SIGNAL_THRESHOLD,
                 low_signal_frames: int = LOW_SIGNAL_FRAMES,
                 recovery_rate: float = LOW_SIGNAL_RECOVERY_RATE,
                 degraded_cycles: int = DEGRADED_CYCLES,
                 min_peak_distance_ms: float = MIN_PEAK_DISTANCE_MS):
        if not 0.0 < learning_rate <= 1.0:
            raise ValueError(f"learning_rate must lie in (0, 1], got {learning_rate}")
        self.bounds = bounds
        self.learning_rate = learning_rate
        self.peak_window = peak_window
        self.signal_history = signal_history
        self.low_signal_threshold = low_signal_threshold
        self.low_signal_frames = low_signal_frames
        self.recovery_rate = recovery_rate
        self.degraded_cycles = degraded_cycles
        self.min_peak_distance_ms = min_peak_distance_ms
        self.state = self._initial_state()

    # ── Public API ───────────────────────────────────────────────────────────

    def update(self, observation: TuningObservation) -> TuningState:
        """Fold one cycle's observation into the state and return it."""
        state = self.state
        state.signal_strengths.append(float(observation.signal_strength))

        if abs(observation.latest_level) < self.low_signal_threshold:
            state.low_signal_streak = min(state.low_signal_streak + 1, self.low_signal_frames)
        else:
            state.low_signal_streak = 0

        if state.low_signal_streak >= self.low_signal_frames:
            self._relax()
        elif observation.peaks and observation.sensitivity > 0:
            self._learn(observation)

        self._track_pinned()
        return state

    def reset(self) -> None:
        self.state = self._initial_state()
        logger.info("Tuning state reset to defaults.")

    # ── Private ──────────────────────────────────────────────────────────────

    def _initial_state(self) -> TuningState:
        b = self.bounds
        return TuningState(
            signal_threshold=b.signal_threshold.clamp(SIGNAL_THRESHOLD),
            min_confidence=b.min_confidence.clamp(PEAK_CONFIDENCE_FLOOR),
            derivative_threshold=b.derivative_threshold.clamp(DERIVATIVE_THRESHOLD),
            sensitivity=b.sensitivity.clamp(SENSITIVITY),
            min_peak_distance_ms=self.min_peak_distance_ms,
            peak_amplitudes=deque(maxlen=self.peak_window),
            signal_strengths=deque(maxlen=self.signal_history),
        )

    # Targets are clamped first, so one step never exceeds rate × band width
    def _nudge(self, current: float, target: float, band: Band, rate: float) -> float:
        return band.clamp(current + rate * (band.clamp(target) - current))

    def _nudge_log(self, current: float, target: float, band: Band, rate: float) -> float:
        target = band.clamp(target)
        log_value = math.log(current) + rate * (math.log(target) - math.log(current))
        return band.clamp(math.exp(log_value))

    def _learn(self, observation: TuningObservation) -> None:
        state, b, lr = self.state, self.bounds, self.learning_rate
        recent = observation.peaks[-self.peak_window:]

        # Amplitudes and slopes back in unscaled units, independent of the
        # sensitivity they were detected with
        amplitudes = np.array([p.amplitude for p in recent]) / observation.sensitivity
        slopes = np.array([p.slope for p in recent]) / observation.sensitivity
        state.peak_amplitudes.clear()
        state.peak_amplitudes.extend(float(a) for a in amplitudes)

        reference = float(np.percentile(amplitudes, AMPLITUDE_REFERENCE_PERCENTILE))
        if reference > 0:
            state.sensitivity = self._nudge_log(
                state.sensitivity, TARGET_PEAK_AMPLITUDE / reference, b.sensitivity, lr
            )
            state.signal_threshold = self._nudge(
                state.signal_threshold,
                THRESHOLD_RATIO * reference * state.sensitivity,
                b.signal_threshold,
                lr,
            )

        median_slope = float(np.median(slopes)) * state.sensitivity
        if median_slope < 0:
            state.derivative_threshold = self._nudge(
                state.derivative_threshold,
                DERIVATIVE_RATIO * median_slope,
                b.derivative_threshold,
                lr,
            )

        mean_amplitude = float(np.mean(amplitudes))
        cv = float(np.std(amplitudes)) / mean_amplitude if mean_amplitude > 0 else 1.0
        state.min_confidence = self._nudge(
            state.min_confidence,
            CONFIDENCE_FLOOR_BASE - CONFIDENCE_FLOOR_CV_WEIGHT * cv,
            b.min_confidence,
            lr,
        )

    def _relax(self) -> None:
        state, b, rate = self.state, self.bounds, self.recovery_rate
        state.signal_threshold = self._nudge(
            state.signal_threshold, b.signal_threshold.lo, b.signal_threshold, rate
        )
        state.min_confidence = self._nudge(
            state.min_confidence, b.min_confidence.lo, b.min_confidence, rate
        )
        state.derivative_threshold = self._nudge(
            state.derivative_threshold, b.derivative_threshold.hi, b.derivative_threshold, rate
        )
        state.sensitivity = self._nudge_log(
            state.sensitivity, b.sensitivity.hi, b.sensitivity, rate
        )

    def _track_pinned(self) -> None:
        state, b = self.state, self.bounds
        pinned = (
            b.signal_threshold.is_pinned(state.signal_threshold)
            or b.min_confidence.is_pinned(state.min_confidence)
            or b.derivative_threshold.is_pinned(state.derivative_threshold)
            or b.sensitivity.is_pinned(state.sensitivity)
        )
        if not pinned:
            if state.degraded:
                logger.info("Detector recovered: tuning parameters back inside their bands.")
            state.pinned_cycles = 0
            state.degraded = False
            return

        state.pinned_cycles = min(state.pinned_cycles + 1, self.degraded_cycles)
        if state.pinned_cycles >= self.degraded_cycles and not state.degraded:
            state.degraded = True
            message = (
                f"Tuning parameters pinned at a clamp bound for {self.degraded_cycles} "
                f"cycles: {state.snapshot()}"
            )
            logger.warning(message)
            warnings.warn(message, DetectorDegraded, stacklevel=3)
