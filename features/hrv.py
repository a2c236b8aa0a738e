"""
features/hrv.py — Heart Rate Variability (HRV) time-domain features
=====================================================================
Computes the standard *time-domain* HRV metrics from a sequence of RR
intervals (the time between consecutive detected pulse peaks):

    RMSSD — Root Mean Square of Successive Differences
    SDNN  — Standard Deviation of NN intervals
    pNN50 — Percentage of successive differences > 50 ms

Only strictly positive, finite intervals count.  The rhythm analyser marks
physiologically implausible intervals as NaN before calling in, so a
successive difference is taken only between two neighbouring intervals
that are both valid; an artefact never bridges two real beats.

RMSSD is defined as 0 when fewer than two valid intervals exist (and when
no valid neighbouring pair exists), so a constant rhythm and an empty
window both report zero variability.

⚠️  A few seconds of fingertip PPG gives high-variance estimates compared
    with the clinical 5-minute standard.  Use them for trends only.
"""

import numpy as np

from config import HRV_MIN_INTERVALS, PNN50_THRESHOLD_MS
from utils.logger import get_logger

logger = get_logger("features.hrv")


def valid_mask(rr_ms: np.ndarray) -> np.ndarray:
    """True where an interval is finite and strictly positive."""
    rr = np.asarray(rr_ms, dtype=np.float64)
    with np.errstate(invalid="ignore"):
        return np.isfinite(rr) & (rr > 0)


def successive_differences(rr_ms: np.ndarray) -> np.ndarray:
    """ΔRR between neighbouring intervals where both are valid."""
    rr = np.asarray(rr_ms, dtype=np.float64)
    if rr.shape[0] < 2:
        return np.empty(0)
    ok = valid_mask(rr)
    pair_ok = ok[1:] & ok[:-1]
    return (rr[1:] - rr[:-1])[pair_ok]


def rmssd(rr_ms: np.ndarray) -> float:
    """RMSSD in ms; 0.0 with fewer than two valid intervals."""
    if int(valid_mask(rr_ms).sum()) < 2:
        return 0.0
    diffs = successive_differences(rr_ms)
    if diffs.shape[0] == 0:
        return 0.0
    return float(np.sqrt(np.mean(diffs ** 2)))


def compute_hrv(rr_intervals: np.ndarray | list[float]) -> dict:
    """
    Compute time-domain HRV features from RR intervals.

    Parameters
    ----------
    rr_intervals : array-like of float
        Successive RR intervals in **milliseconds**.  NaN or non-positive
        entries are treated as excluded beats.

    Returns
    -------
    dict with keys:
        rmssd_ms   : float          RMSSD (0.0 when not computable).
        sdnn_ms    : float | None   SDNN (sample std, ddof=1).
        pnn50      : float | None   pNN50 as a percentage [0, 100].
        mean_rr_ms : float | None   Mean valid RR interval.
        num_intervals : int         Valid intervals used.
        valid      : bool           True if enough intervals were available.
    """
    rr = np.asarray(rr_intervals, dtype=np.float64)
    mask = valid_mask(rr)
    valid_rr = rr[mask]
    num_intervals = int(valid_rr.shape[0])

    if num_intervals < HRV_MIN_INTERVALS:
        logger.debug(
            "Only %d valid RR intervals (need %d for HRV).",
            num_intervals,
            HRV_MIN_INTERVALS,
        )
        return {
            "rmssd_ms": 0.0,
            "sdnn_ms": None,
            "pnn50": None,
            "mean_rr_ms": float(valid_rr[0]) if num_intervals else None,
            "num_intervals": num_intervals,
            "valid": False,
        }

    diffs = successive_differences(rr)

    # ── SDNN ──────────────────────────────────────────────────────────────
    sdnn_ms = float(np.std(valid_rr, ddof=1))

    # ── Mean RR ───────────────────────────────────────────────────────────
    mean_rr_ms = float(np.mean(valid_rr))

    # ── RMSSD ─────────────────────────────────────────────────────────────
    rmssd_ms = rmssd(rr)

    # ── pNN50 ─────────────────────────────────────────────────────────────
    if diffs.shape[0]:
        pnn50 = float(np.sum(np.abs(diffs) > PNN50_THRESHOLD_MS) / diffs.shape[0] * 100.0)
    else:
        pnn50 = 0.0

    logger.debug(
        "HRV — RMSSD=%.1f ms, SDNN=%.1f ms, pNN50=%.1f%%, mean_RR=%.1f ms (%d intervals)",
        rmssd_ms, sdnn_ms, pnn50, mean_rr_ms, num_intervals,
    )

    return {
        "rmssd_ms": round(rmssd_ms, 2),
        "sdnn_ms": round(sdnn_ms, 2),
        "pnn50": round(pnn50, 2),
        "mean_rr_ms": round(mean_rr_ms, 2),
        "num_intervals": num_intervals,
        "valid": True,
    }
