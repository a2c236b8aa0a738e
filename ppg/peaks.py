"""
ppg/peaks.py — Adaptive pulse-peak detection
==============================================
Scans the (sensitivity-scaled) conditioned waveform for pulse peaks.

State machine
-------------
    SEEKING    no rise in progress
    CANDIDATE  the waveform is rising; the highest point so far is held
               until the next point shows whether it is a local maximum

A candidate becomes a local maximum when the following point is strictly
lower (plateaus never qualify).  A local maximum above the active signal
threshold is then resolved against the last confirmed peak:

    ACCEPT   no peak within the refractory distance → append
    REPLACE  inside the refractory distance but strictly higher → it
             replaces the last peak (one beat detected twice)
    REJECT   inside the refractory distance and not higher

Ties never replace, so the first-found peak wins.  Because a replacement
always moves the peak later in time, every pair of confirmed peaks stays
at least the refractory distance apart.

Detection is a pure function of (signal, parameters): running it again on
the same inputs yields the same peaks.
"""

from dataclasses import dataclass
from enum import Enum

import numpy as np

from config import (
    AMPLITUDE_CONFIDENCE_SCALE,
    DERIVATIVE_CONFIDENCE_SCALE,
    DERIVATIVE_THRESHOLD,
    MIN_PEAK_DISTANCE_MS,
    PEAK_CONFIDENCE_FLOOR,
    SIGNAL_THRESHOLD,
    SLOPE_LOOKAHEAD,
)
from utils.logger import get_logger

logger = get_logger("ppg.peaks")


class DetectorState(Enum):
    SEEKING = "seeking"
    CANDIDATE = "candidate"


class Resolution(Enum):
    ACCEPT = "accept"
    REPLACE = "replace"
    REJECT = "reject"


@dataclass(frozen=True)
class DetectionParams:
    """Thresholds supplied by the adaptive tuner for one detection pass."""
    signal_threshold: float = SIGNAL_THRESHOLD
    derivative_threshold: float = DERIVATIVE_THRESHOLD
    min_confidence: float = PEAK_CONFIDENCE_FLOOR
    min_peak_distance_ms: float = MIN_PEAK_DISTANCE_MS


@dataclass(frozen=True)
class Peak:
    """
    A detected pulse event.

    index      : position in the conditioned series the pass ran over
    amplitude  : scaled waveform value at the peak
    slope      : mean per-sample change over the samples after the peak
                 (negative on a healthy down-stroke)
    score      : shape score in [0, 1]
    valid      : score cleared the confidence floor
    arrhythmia : set by the rhythm analyser
    """
    index: int
    timestamp: float
    amplitude: float
    slope: float = 0.0
    score: float = 0.0
    valid: bool = False
    arrhythmia: bool = False


def resolve_candidate(timestamp: float,
                      amplitude: float,
                      last: Peak | None,
                      min_distance_ms: float) -> Resolution:
    """Apply the refractory-distance and replace-on-higher rules."""
    if last is None or timestamp - last.timestamp >= min_distance_ms:
        return Resolution.ACCEPT
    if amplitude > last.amplitude:
        return Resolution.REPLACE
    return Resolution.REJECT


def shape_score(amplitude: float,
                slope: float,
                signal_threshold: float,
                derivative_threshold: float) -> float:
    """
    Mean of an amplitude confidence and a down-stroke confidence, each
    saturating at 1 once the peak clearly exceeds its threshold.
    """
    amplitude_conf = min(
        max(amplitude / (signal_threshold * AMPLITUDE_CONFIDENCE_SCALE), 0.0), 1.0
    )
    derivative_conf = min(
        max(-slope, 0.0) / abs(derivative_threshold * DERIVATIVE_CONFIDENCE_SCALE), 1.0
    )
    return (amplitude_conf + derivative_conf) / 2.0


class PeakDetector:
    """
    Runs the SEEKING / CANDIDATE state machine over a conditioned series.

    Parameters
    ----------
    slope_lookahead : int   Samples after a peak used to measure its slope.
    """

    def __init__(self, slope_lookahead: int = SLOPE_LOOKAHEAD):
        self._lookahead = max(1, int(slope_lookahead))
        self._state = DetectorState.SEEKING
        self._candidate: int | None = None

    @property
    def state(self) -> DetectorState:
        return self._state

    def detect(self,
               timestamps: np.ndarray,
               values: np.ndarray,
               params: DetectionParams = DetectionParams()) -> list[Peak]:
        """
        Detect peaks in `values` (already scaled by the tuner's sensitivity).

        Parameters
        ----------
        timestamps : ndarray, shape (N,)   Strictly increasing, in ms.
        values     : ndarray, shape (N,)   Conditioned waveform.
        params     : DetectionParams       Active thresholds.

        Returns
        -------
        peaks : list[Peak] in time order.  Empty for N < 3.
        """
        ts = np.asarray(timestamps, dtype=np.float64)
        v = np.asarray(values, dtype=np.float64)
        self._state = DetectorState.SEEKING
        self._candidate = None

        peaks: list[Peak] = []
        if v.shape[0] < 3:
            return peaks

        for i in range(1, v.shape[0]):
            if self._state is DetectorState.SEEKING:
                if v[i] > v[i - 1]:
                    self._state = DetectorState.CANDIDATE
                    self._candidate = i
                continue

            c = self._candidate
            if v[i] > v[c]:
                self._candidate = i          # still rising
            elif v[i] < v[c]:
                if v[c] > params.signal_threshold:
                    self._confirm(c, ts, v, params, peaks)
                self._state = DetectorState.SEEKING
                self._candidate = None
            else:
                self._state = DetectorState.SEEKING
                self._candidate = None

        logger.debug("Detected %d peaks over %d points.", len(peaks), v.shape[0])
        return peaks

    # ── Private ──────────────────────────────────────────────────────────────

    def _confirm(self,
                 index: int,
                 ts: np.ndarray,
                 v: np.ndarray,
                 params: DetectionParams,
                 peaks: list[Peak]) -> None:
        last = peaks[-1] if peaks else None
        resolution = resolve_candidate(
            float(ts[index]), float(v[index]), last, params.min_peak_distance_ms
        )
        if resolution is Resolution.REJECT:
            return

        end = min(index + self._lookahead, v.shape[0] - 1)
        slope = float((v[end] - v[index]) / (end - index))
        score = shape_score(
            float(v[index]), slope, params.signal_threshold, params.derivative_threshold
        )
        peak = Peak(
            index=index,
            timestamp=float(ts[index]),
            amplitude=float(v[index]),
            slope=slope,
            score=score,
            valid=score >= params.min_confidence,
        )
        if resolution is Resolution.ACCEPT:
            peaks.append(peak)
        else:
            peaks[-1] = peak
