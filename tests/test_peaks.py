import numpy as np

from ppg.peaks import (
    DetectionParams,
    Peak,
    PeakDetector,
    Resolution,
    resolve_candidate,
    shape_score,
)


def _make_series(values: list[float], step_ms: float = 100.0) -> tuple[np.ndarray, np.ndarray]:
    return np.arange(len(values)) * step_ms, np.array(values, dtype=float)


def _params(threshold: float = 0.5, distance: float = 300.0) -> DetectionParams:
    return DetectionParams(signal_threshold=threshold, min_peak_distance_ms=distance)


def test_resolve_candidate_rules():
    last = Peak(index=1, timestamp=100.0, amplitude=1.0)
    assert resolve_candidate(100.0, 1.0, None, 300.0) is Resolution.ACCEPT
    assert resolve_candidate(400.0, 0.1, last, 300.0) is Resolution.ACCEPT
    assert resolve_candidate(250.0, 1.5, last, 300.0) is Resolution.REPLACE
    assert resolve_candidate(250.0, 1.0, last, 300.0) is Resolution.REJECT
    assert resolve_candidate(250.0, 0.5, last, 300.0) is Resolution.REJECT


def test_short_series_yields_no_peaks():
    ts, v = _make_series([0.0, 1.0])
    assert PeakDetector().detect(ts, v, _params()) == []


def test_higher_peak_inside_refractory_distance_replaces():
    ts, v = _make_series([0, 1, 0, 2, 0, 0, 0])
    peaks = PeakDetector().detect(ts, v, _params())
    assert [p.timestamp for p in peaks] == [300.0]
    assert peaks[0].amplitude == 2.0


def test_amplitude_tie_keeps_first_peak():
    ts, v = _make_series([0, 1, 0, 1, 0])
    peaks = PeakDetector().detect(ts, v, _params())
    assert [p.timestamp for p in peaks] == [100.0]


def test_peaks_at_exactly_min_distance_are_both_kept():
    ts, v = _make_series([0, 1, 0, 0, 1, 0])
    peaks = PeakDetector().detect(ts, v, _params())
    assert [p.timestamp for p in peaks] == [100.0, 400.0]


def test_maxima_below_threshold_and_plateaus_are_ignored():
    ts, v = _make_series([0, 0.3, 0, 0, 1, 1, 0, 0])
    assert PeakDetector().detect(ts, v, _params()) == []


def test_detection_is_idempotent():
    rng = np.random.default_rng(5)
    ts = np.arange(480) * 1000.0 / 60.0
    v = np.sin(2 * np.pi * ts / 800.0) + 0.3 * rng.normal(size=ts.shape[0])
    detector = PeakDetector()
    params = _params(threshold=0.2)
    assert detector.detect(ts, v, params) == detector.detect(ts, v, params)


def test_confirmed_peaks_respect_min_distance():
    rng = np.random.default_rng(9)
    ts = np.arange(2000) * 1000.0 / 60.0
    v = rng.normal(size=ts.shape[0])
    for distance in (150.0, 300.0, 600.0):
        peaks = PeakDetector().detect(ts, v, _params(threshold=0.0, distance=distance))
        assert len(peaks) > 1
        gaps = np.diff([p.timestamp for p in peaks])
        assert np.all(gaps >= distance)


def test_shape_score_and_validity():
    assert shape_score(1.0, -1.0, 0.02, -0.005) == 1.0
    assert shape_score(1.0, 0.5, 0.02, -0.005) == 0.5

    ts, v = _make_series([0, 1, 0.5, 0.0, 0, 0])
    params = DetectionParams(signal_threshold=0.5, derivative_threshold=-0.5, min_confidence=0.9)
    (peak,) = PeakDetector(slope_lookahead=2).detect(ts, v, params)
    assert peak.slope == -0.5
    assert peak.score == 1.0
    assert peak.valid
