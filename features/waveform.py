"""
features/waveform.py — Per-cycle waveform statistics
======================================================
Summarises the recent signal for the estimators that sit beside the rhythm
analysis:

    ac, dc          peak-to-peak and mean of the raw intensity (last second)
    perfusion_index ac / dc (pulsatile fraction of the light signal)
    signal_rms      RMS of the unscaled conditioned waveform (last second);
                    the tuner keeps a rolling history of it to judge signal
                    stability
    crest_time_ms   median pulse-foot → peak time over the recent beats,
                    used as a pulse-transit-time proxy for blood pressure
    periodicity     how well the conditioned waveform repeats itself at the
                    detected beat period (see below)

Periodicity
-----------
With L the median peak-to-peak distance in samples, periodicity is the mean
of the Pearson correlations between the conditioned series and itself
shifted by L and by 2·L, clipped to [0, 1].  A pulse repeats every beat and
scores close to 1.  Sensor noise lifted to pulse-like amplitude by the
tuner's gain still produces evenly spaced "peaks", but the waveform between
them does not repeat, and it scores close to 0.  The score is 0 until the
series holds at least three periods and `min_samples` points.
"""

from dataclasses import dataclass

import numpy as np

from config import TUNING_PEAK_WINDOW
from ppg.peaks import Peak


@dataclass(frozen=True)
class WaveformStats:
    ac: float = 0.0
    dc: float = 0.0
    perfusion_index: float = 0.0
    signal_rms: float = 0.0
    crest_time_ms: float | None = None
    periodicity: float = 0.0


def crest_times(timestamps: np.ndarray, values: np.ndarray, peaks: list[Peak]) -> list[float]:
    """
    Foot-to-peak time for every peak that has a predecessor.  The foot is
    the lowest conditioned value between the two peaks.
    """
    ts = np.asarray(timestamps, dtype=np.float64)
    v = np.asarray(values, dtype=np.float64)
    times = []
    for prev, peak in zip(peaks, peaks[1:]):
        if peak.index - prev.index < 2:
            continue
        segment = v[prev.index:peak.index]
        foot = prev.index + int(np.argmin(segment))
        times.append(float(ts[peak.index] - ts[foot]))
    return times


def _lagged_correlation(v: np.ndarray, lag: int) -> float:
    a, b = v[:-lag], v[lag:]
    sa, sb = float(np.std(a)), float(np.std(b))
    if sa == 0.0 or sb == 0.0:
        return 0.0
    return float(np.mean((a - a.mean()) * (b - b.mean())) / (sa * sb))


def periodicity(values: np.ndarray, peaks: list[Peak], min_samples: int = 0) -> float:
    """
    Self-similarity of the conditioned series at one and two beat periods.

    Parameters
    ----------
    values      : ndarray   Conditioned series the peaks were detected on.
    peaks       : list      Detected peaks (their `index` gives the period).
    min_samples : int       Shortest series that is judged at all.

    Returns
    -------
    score : float in [0, 1]
    """
    v = np.asarray(values, dtype=np.float64)
    if len(peaks) < 2:
        return 0.0
    lag = int(round(float(np.median(np.diff([p.index for p in peaks])))))
    if lag < 1 or v.shape[0] < max(3 * lag, min_samples):
        return 0.0
    score = (_lagged_correlation(v, lag) + _lagged_correlation(v, 2 * lag)) / 2.0
    return float(np.clip(score, 0.0, 1.0))


def compute_waveform_stats(raw_values: np.ndarray,
                           cond_timestamps: np.ndarray,
                           cond_values: np.ndarray,
                           peaks: list[Peak],
                           window: int,
                           min_periodicity_samples: int = 0) -> WaveformStats:
    """
    Parameters
    ----------
    raw_values      : ndarray   Raw intensities, oldest → newest.
    cond_timestamps : ndarray   Timestamps of the conditioned series.
    cond_values     : ndarray   Unscaled conditioned values.
    peaks           : list      Peaks detected over the conditioned series.
    window          : int       Samples making up the "last second".
    min_periodicity_samples : int
                                Conditioned history needed before the
                                periodicity is judged.
    """
    raw = np.asarray(raw_values, dtype=np.float64)[-window:]
    cond = np.asarray(cond_values, dtype=np.float64)

    ac = float(np.ptp(raw)) if raw.shape[0] else 0.0
    dc = float(np.mean(raw)) if raw.shape[0] else 0.0
    perfusion_index = ac / dc if dc > 0 else 0.0

    recent = cond[-window:]
    signal_rms = float(np.sqrt(np.mean(recent ** 2))) if recent.shape[0] else 0.0

    crests = crest_times(cond_timestamps, cond, peaks[-(TUNING_PEAK_WINDOW + 1):])
    crest_time_ms = float(np.median(crests)) if crests else None

    return WaveformStats(
        ac=ac,
        dc=dc,
        perfusion_index=perfusion_index,
        signal_rms=signal_rms,
        crest_time_ms=crest_time_ms,
        periodicity=periodicity(cond, peaks, min_periodicity_samples),
    )
