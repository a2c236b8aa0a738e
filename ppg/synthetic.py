"""
ppg/synthetic.py — Synthetic fingertip PPG streams
====================================================
Generates reproducible (timestamp, intensity) series for the CLI demo and
the tests, so the pipeline can be exercised without a camera.

Beat schedule
-------------
The schedule is anchored on the systolic peaks, not on beat onsets.  Peaks
fall every rr = 60 000 / bpm ms, the first at the shape's peak phase · rr.
`rr_scale` stretches or shrinks individual peak-to-peak intervals
(interval k lasts rr · rr_scale[k]), which is how an irregular beat is
injected: scaling interval k by 1.4 yields exactly one RR interval of
1.4 · rr and leaves its neighbours at rr.  Between two peaks the phase u
advances linearly through one full cycle, starting and ending at the peak
phase.

Shapes
------
    "sine"   sin(2π·u); with a regular schedule this is a pure sinusoid
             at the heart-rate frequency.
    "pulse"  sharp systolic upstroke plus a smaller dicrotic wave, closer
             to what a real fingertip produces.

On top of the shape: a constant baseline (the DC light level), optional
linear drift (illumination change) and Gaussian sensor noise.
"""

import numpy as np

from config import SAMPLE_RATE_HZ
from utils.logger import get_logger

logger = get_logger("ppg.synthetic")

_SHAPES = ("sine", "pulse")
# Phase at which each shape reaches its maximum
_PEAK_PHASE = {"sine": 0.25, "pulse": 0.2}


def _pulse_shape(u: np.ndarray) -> np.ndarray:
    systolic = np.exp(-((u - 0.2) / 0.08) ** 2)
    dicrotic = 0.35 * np.exp(-((u - 0.55) / 0.1) ** 2)
    return 2.0 * (systolic + dicrotic) - 0.7


def beat_peaks(duration_ms: float,
               bpm: float,
               rr_scale: dict[int, float] | None = None,
               first_peak_ms: float = 0.0) -> np.ndarray:
    """Time (ms) of every systolic peak up to and including one past `duration_ms`."""
    if bpm <= 0:
        raise ValueError(f"bpm must be positive, got {bpm}")
    rr = 60000.0 / bpm
    rr_scale = rr_scale or {}
    peaks = [first_peak_ms]
    k = 0
    while peaks[-1] <= duration_ms:
        peaks.append(peaks[-1] + rr * rr_scale.get(k, 1.0))
        k += 1
    return np.array(peaks)


def synthetic_ppg(duration_s: float = 10.0,
                  fs: float = SAMPLE_RATE_HZ,
                  bpm: float = 75.0,
                  amplitude: float = 1.5,
                  baseline: float = 120.0,
                  noise: float = 0.0,
                  drift: float = 0.0,
                  shape: str = "sine",
                  rr_scale: dict[int, float] | None = None,
                  start_ms: float = 0.0,
                  seed: int | None = None) -> tuple[np.ndarray, np.ndarray]:
    """
    Generate a synthetic PPG stream.

    Parameters
    ----------
    duration_s : float   Length of the stream in seconds.
    fs         : float   Sample rate (Hz); timestamps are start_ms + k·1000/fs.
    bpm        : float   Base heart rate.
    amplitude  : float   Pulse amplitude in intensity units.
    baseline   : float   DC intensity level.
    noise      : float   Std of additive Gaussian noise.
    drift      : float   Linear baseline drift, intensity units per second.
    shape      : str     "sine" or "pulse".
    rr_scale   : dict    {peak-to-peak interval index: multiplier}.
    seed       : int     Seed for the noise generator.

    Returns
    -------
    timestamps : ndarray, shape (N,)   Milliseconds, strictly increasing.
    values     : ndarray, shape (N,)   Intensities.
    """
    if shape not in _SHAPES:
        raise ValueError(f"Unknown shape '{shape}'. Choose from {list(_SHAPES)}.")
    if fs <= 0:
        raise ValueError(f"fs must be positive, got {fs}")
    if bpm <= 0:
        raise ValueError(f"bpm must be positive, got {bpm}")

    n = int(round(duration_s * fs))
    t_rel = np.arange(n) * 1000.0 / fs
    if n == 0:
        return t_rel + start_ms, np.empty(0)

    phase = _PEAK_PHASE[shape]
    rr = 60000.0 / bpm
    peaks = beat_peaks(float(t_rel[-1]), bpm, rr_scale, first_peak_ms=phase * rr)
    # A virtual peak one interval before the first covers the leading samples
    peaks = np.concatenate(([peaks[0] - rr], peaks))
    beat = np.searchsorted(peaks, t_rel, side="right") - 1
    u = (phase + (t_rel - peaks[beat]) / (peaks[beat + 1] - peaks[beat])) % 1.0

    wave = np.sin(2.0 * np.pi * u) if shape == "sine" else _pulse_shape(u)
    values = baseline + amplitude * wave + drift * (t_rel / 1000.0)
    if noise > 0:
        rng = np.random.default_rng(seed)
        values = values + rng.normal(0.0, noise, size=n)

    logger.debug(
        "Synthetic %s stream: %d samples at %.1f Hz, %.1f bpm, noise=%.3f",
        shape, n, fs, bpm, noise,
    )
    return t_rel + start_ms, values
