"""
features/spo2.py — Blood-oxygen approximation (pluggable)
==========================================================

⚠️  A single-colour camera signal cannot measure SpO2 the way a two-
    wavelength pulse oximeter does.  The default estimator below is a
    ratio heuristic that tracks perfusion; treat it as a wellness
    indicator only.

Any callable that takes a WaveformStats and returns a percentage (or None
when it cannot estimate) can replace it; the aggregator only depends on
the OxygenationEstimator protocol.

Default heuristic
-----------------
    PI    = AC / DC of the raw intensity over the last second
    R     = PI / calibration_factor
    SpO2  = round(98 − 15·R)
            +1 when PI > 0.15 (strong perfusion), −1 when PI < 0.08
            clamped to [70, 98] and averaged over the last 10 estimates

No estimate is produced when PI is below SPO2_MIN_PERFUSION (no finger,
or a signal too flat to carry a pulse).
"""

from collections import deque
from typing import Protocol

import numpy as np

from config import (
    SPO2_CALIBRATION_FACTOR,
    SPO2_HIGH_PERFUSION,
    SPO2_LOW_PERFUSION,
    SPO2_MAX,
    SPO2_MIN,
    SPO2_MIN_PERFUSION,
    SPO2_SMOOTHING,
)
from features.waveform import WaveformStats


class OxygenationEstimator(Protocol):
    def __call__(self, stats: WaveformStats) -> float | None: ...


class RatioOfRatiosEstimator:
    """Perfusion-ratio SpO2 heuristic with a short smoothing history."""

    def __init__(self,
                 calibration_factor: float = SPO2_CALIBRATION_FACTOR,
                 smoothing: int = SPO2_SMOOTHING):
        self.calibration_factor = calibration_factor
        self._history: deque[float] = deque(maxlen=smoothing)

    def __call__(self, stats: WaveformStats) -> float | None:
        if stats.dc <= 0 or stats.perfusion_index < SPO2_MIN_PERFUSION:
            return None

        ratio = stats.perfusion_index / self.calibration_factor
        spo2 = round(98.0 - 15.0 * ratio)

        if stats.perfusion_index > SPO2_HIGH_PERFUSION:
            spo2 += 1
        elif stats.perfusion_index < SPO2_LOW_PERFUSION:
            spo2 -= 1

        spo2 = float(np.clip(spo2, SPO2_MIN, SPO2_MAX))
        self._history.append(spo2)
        return round(float(np.mean(self._history)), 1)

    def reset(self) -> None:
        self._history.clear()
