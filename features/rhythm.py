"""
features/rhythm.py — RR intervals, heart rate and arrhythmia flags
===================================================================
Consumes the ordered peak sequence of one processing cycle.

Heart rate
----------
    HR = 60 000 / median(recent plausible RR intervals)

The median is used instead of the mean because a single missed or doubled
beat would otherwise drag the estimate far from the true rhythm.

Plausibility band
-----------------
Intervals outside [MIN_RR_INTERVAL_MS, MAX_RR_INTERVAL_MS] are treated as
detector artefacts: they are excluded from the heart rate, from HRV and
from arrhythmia flagging.

Arrhythmia flags
----------------
A beat (the peak that closes an RR interval) is flagged when its interval
is plausible and deviates from the short-term median by more than
ARRHYTHMIA_VARIATION_THRESHOLD.  The short-term median is taken over the
plausible neighbouring intervals in a centred window of
ARRHYTHMIA_CONTEXT_BEATS beats, excluding the beat itself; with too few
neighbours a beat is left unflagged.
"""

from dataclasses import dataclass, field, replace

import numpy as np

from config import (
    ARRHYTHMIA_CONTEXT_BEATS,
    ARRHYTHMIA_MIN_CONTEXT,
    ARRHYTHMIA_VARIATION_THRESHOLD,
    MAX_RR_INTERVAL_MS,
    MIN_RR_INTERVAL_MS,
    RR_WINDOW,
)
from features.hrv import compute_hrv
from ppg.peaks import Peak
from utils.logger import get_logger

logger = get_logger("features.rhythm")


@dataclass
class RhythmAnalysis:
    """Output of one RhythmAnalyzer pass."""
    peaks: list[Peak]
    rr_intervals: np.ndarray
    plausible: np.ndarray
    heart_rate: float | None
    hrv: dict = field(default_factory=dict)
    arrhythmia_count: int = 0
    rr_plausible_fraction: float = 0.0


class RhythmAnalyzer:
    """
    Stateless analyser; every call works only from the peaks it is given.

    Parameters
    ----------
    rr_window           : int     Recent intervals used for HR and HRV.
    variation_threshold : float   Fractional deviation that flags a beat.
    context_beats       : int     Width of the centred median window.
    min_context         : int     Plausible neighbours needed to judge a beat.
    min_rr_ms, max_rr_ms: float   Plausibility band.
    """

    def __init__(self,
                 rr_window: int = RR_WINDOW,
                 variation_threshold: float = ARRHYTHMIA_VARIATION_THRESHOLD,
                 context_beats: int = ARRHYTHMIA_CONTEXT_BEATS,
                 min_context: int = ARRHYTHMIA_MIN_CONTEXT,
                 min_rr_ms: float = MIN_RR_INTERVAL_MS,
                 max_rr_ms: float = MAX_RR_INTERVAL_MS):
        self.rr_window = rr_window
        self.variation_threshold = variation_threshold
        self.context_half = max(1, context_beats // 2)
        self.min_context = min_context
        self.min_rr_ms = min_rr_ms
        self.max_rr_ms = max_rr_ms

    def rr_intervals(self, peaks: list[Peak]) -> np.ndarray:
        """Consecutive peak-timestamp differences in ms."""
        if len(peaks) < 2:
            return np.empty(0)
        return np.diff(np.array([p.timestamp for p in peaks], dtype=np.float64))

    def plausible_mask(self, rr_ms: np.ndarray) -> np.ndarray:
        rr = np.asarray(rr_ms, dtype=np.float64)
        return (rr > 0) & (rr >= self.min_rr_ms) & (rr <= self.max_rr_ms)

    def heart_rate(self, rr_ms: np.ndarray, plausible: np.ndarray) -> float | None:
        """60 000 / median of the recent plausible intervals, or None."""
        recent = rr_ms[-self.rr_window:][plausible[-self.rr_window:]]
        if recent.shape[0] == 0:
            return None
        return 60000.0 / float(np.median(recent))

    def arrhythmia_flags(self, rr_ms: np.ndarray, plausible: np.ndarray) -> np.ndarray:
        """Boolean flag per interval (aligned with rr_ms)."""
        n = rr_ms.shape[0]
        flags = np.zeros(n, dtype=bool)
        for k in range(n):
            if not plausible[k]:
                continue
            lo = max(0, k - self.context_half)
            hi = min(n, k + self.context_half + 1)
            neighbours = np.concatenate((rr_ms[lo:k], rr_ms[k + 1:hi]))
            neighbour_ok = np.concatenate((plausible[lo:k], plausible[k + 1:hi]))
            context = neighbours[neighbour_ok]
            if context.shape[0] < self.min_context:
                continue
            reference = float(np.median(context))
            deviation = abs(rr_ms[k] - reference) / reference
            flags[k] = deviation > self.variation_threshold
        return flags

    def analyze(self, peaks: list[Peak]) -> RhythmAnalysis:
        """
        Compute RR intervals, heart rate, HRV and per-beat arrhythmia flags.

        Returns
        -------
        RhythmAnalysis whose `peaks` are copies of the input carrying the
        arrhythmia flag (the first peak never has an interval to judge).
        """
        rr = self.rr_intervals(peaks)
        plausible = self.plausible_mask(rr)
        flags = self.arrhythmia_flags(rr, plausible)

        flagged_peaks = list(peaks[:1])
        flagged_peaks += [
            replace(peak, arrhythmia=bool(flag))
            for peak, flag in zip(peaks[1:], flags)
        ]

        recent = rr[-self.rr_window:]
        recent_ok = plausible[-self.rr_window:]
        hrv = compute_hrv(np.where(recent_ok, recent, np.nan))
        fraction = float(recent_ok.mean()) if recent.shape[0] else 0.0
        heart_rate = self.heart_rate(rr, plausible)

        arrhythmia_count = int(flags.sum())
        if arrhythmia_count:
            logger.debug("%d irregular beat(s) in window.", arrhythmia_count)

        return RhythmAnalysis(
            peaks=flagged_peaks,
            rr_intervals=rr,
            plausible=plausible,
            heart_rate=heart_rate,
            hrv=hrv,
            arrhythmia_count=arrhythmia_count,
            rr_plausible_fraction=fraction,
        )
