"""
ppg/filters.py — Waveform conditioning (detrend + band-limiting filter)
========================================================================
Turns raw fingertip intensity into a zero-mean, noise-reduced pulse
waveform in two composable stages:

1. **Detrend** — subtract a centred moving mean (default 25 samples,
   clipped at the edges of the data).  Removes slow baseline drift from
   finger motion or illumination changes while keeping the pulse.

2. **Band filter** — a first-order low-pass (smoothing factor α) whose
   output is subtracted from the input, followed by a leaky integration
   of that difference:

       low[i]  = α·low[i-1] + (1-α)·x[i]
       high[i] = x[i] - low[i] + α·high[i-1]

   The subtraction removes what is left of the baseline, the leaky term
   rolls off fast jitter, and together they approximate a band-pass around
   the cardiac band.  The first two samples pass through unchanged and
   seed the recursion; inputs shorter than 3 samples are returned as-is.

The batch functions (`detrend`, `band_filter`) are the reference
definitions.  `WaveformConditioner` computes the same output one sample at
a time in O(1) amortized work per sample, independent of stream length.
The window total is kept as a running sum and recomputed exactly once per
window length of pushes so rounding error cannot accumulate.
Because the detrend window is centred, each conditioned point is emitted
`window // 2` samples after its raw sample arrives.
"""

import math
from collections import deque
from dataclasses import dataclass

import numpy as np
from scipy.signal import lfilter

from config import DETREND_WINDOW, FILTER_ALPHA, SENSITIVITY


@dataclass(frozen=True)
class ConditionedPoint:
    """Filtered value aligned to the timestamp of its raw sample."""
    timestamp: float
    value: float


def detrend(signal: np.ndarray, window: int = DETREND_WINDOW) -> np.ndarray:
    """
    Remove baseline drift by subtracting a centred moving mean.

    Parameters
    ----------
    signal : ndarray, shape (N,)   Raw intensity series.
    window : int                   Window width in samples; the effective
                                   window is 2·(window // 2) + 1 wide and is
                                   clipped at both ends of the series.

    Returns
    -------
    detrended : ndarray, shape (N,)
    """
    x = np.asarray(signal, dtype=np.float64)
    n = x.shape[0]
    if n == 0:
        return x.copy()

    half = max(0, int(window) // 2)
    csum = np.concatenate(([0.0], np.cumsum(x)))
    idx = np.arange(n)
    lo = np.maximum(0, idx - half)
    hi = np.minimum(n, idx + half + 1)
    local_mean = (csum[hi] - csum[lo]) / (hi - lo)
    return x - local_mean


def band_filter(signal: np.ndarray, alpha: float = FILTER_ALPHA) -> np.ndarray:
    """
    Apply the low-pass / high-pass pair described in the module docstring.

    Parameters
    ----------
    signal : ndarray, shape (N,)   Usually the output of `detrend`.
    alpha  : float                 Smoothing factor in (0, 1).

    Returns
    -------
    filtered : ndarray, shape (N,)
    """
    x = np.asarray(signal, dtype=np.float64)
    if x.shape[0] < 3:
        return x.copy()

    out = np.empty_like(x)
    out[:2] = x[:2]

    # Both recursions are first-order IIR sections seeded from x[1]
    low, _ = lfilter([1.0 - alpha], [1.0, -alpha], x[2:], zi=[alpha * x[1]])
    high, _ = lfilter([1.0], [1.0, -alpha], x[2:] - low, zi=[alpha * x[1]])
    out[2:] = high
    return out


def condition(signal: np.ndarray,
              window: int = DETREND_WINDOW,
              alpha: float = FILTER_ALPHA) -> np.ndarray:
    """Detrend then band-filter a whole series (batch reference)."""
    return band_filter(detrend(signal, window), alpha)


class WaveformConditioner:
    """
    Incremental version of `condition()`.

    Feed raw samples with `push()`; once enough right-hand context exists
    for the centred detrend window, each call returns the ConditionedPoint
    for the sample `delay` positions back.  Interior points are identical
    (to floating-point rounding) to the batch output over the same stream.

    `sensitivity` is the gain the adaptive tuner applies to the conditioned
    waveform before peak detection; stored points stay unscaled.
    """

    def __init__(self,
                 window: int = DETREND_WINDOW,
                 alpha: float = FILTER_ALPHA,
                 sensitivity: float = SENSITIVITY):
        if not 0.0 < alpha < 1.0:
            raise ValueError(f"alpha must lie in (0, 1), got {alpha}")
        self._half = max(0, int(window) // 2)
        self._alpha = alpha
        self._raw: deque[tuple[float, float]] = deque(maxlen=2 * self._half + 1)
        self.sensitivity = sensitivity
        self._seeded = 0          # Pass-through samples seen (caps at 2)
        self._low = 0.0
        self._high = 0.0
        self._sum = 0.0           # Running total of the values in _raw
        self._pushes = 0

    @property
    def delay(self) -> int:
        """Samples between a raw sample's arrival and its conditioned point."""
        return self._half

    def push(self, timestamp: float, value: float) -> ConditionedPoint | None:
        """Add one raw sample; return the newly finalised point, if any."""
        if len(self._raw) == self._raw.maxlen:
            self._sum -= self._raw[0][1]
        self._raw.append((timestamp, value))
        self._sum += value
        self._pushes += 1
        if self._pushes % self._raw.maxlen == 0:
            self._sum = math.fsum(v for _, v in self._raw)

        centre = len(self._raw) - 1 - self._half
        if centre < 0:
            return None

        centre_ts, centre_value = self._raw[centre]
        local_mean = self._sum / len(self._raw)
        return ConditionedPoint(centre_ts, self._filter(centre_value - local_mean))

    def scale(self, values: np.ndarray) -> np.ndarray:
        """Apply the current sensitivity to a block of conditioned values."""
        return np.asarray(values, dtype=np.float64) * self.sensitivity

    def reset(self) -> None:
        self._raw.clear()
        self._sum = 0.0
        self._pushes = 0
        self._seeded = 0
        self._low = 0.0
        self._high = 0.0

    # ── Private ──────────────────────────────────────────────────────────────

    def _filter(self, x: float) -> float:
        if self._seeded < 2:
            self._seeded += 1
            self._low = x
            self._high = x
            return x

        self._low = self._alpha * self._low + (1.0 - self._alpha) * x
        self._high = x - self._low + self._alpha * self._high
        return self._high
