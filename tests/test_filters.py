import numpy as np
import pytest

from ppg.filters import WaveformConditioner, band_filter, condition, detrend


def _reference_band_filter(x: np.ndarray, alpha: float) -> np.ndarray:
    out = x.astype(float).copy()
    low = high = x[1]
    for i in range(2, x.shape[0]):
        low = alpha * low + (1 - alpha) * x[i]
        high = x[i] - low + alpha * high
        out[i] = high
    return out


def test_detrend_removes_constant_offset():
    out = detrend(np.full(40, 123.0), window=25)
    assert np.allclose(out, 0.0)


def test_detrend_removes_linear_drift_away_from_edges():
    x = np.linspace(0.0, 50.0, 100)
    out = detrend(x, window=25)
    assert np.allclose(out[12:-12], 0.0, atol=1e-9)
    # clipped windows at the edges leave a residual
    assert out[0] < 0 < out[-1]


def test_detrend_empty_input():
    assert detrend(np.empty(0)).shape == (0,)


def test_band_filter_short_input_passes_through():
    x = np.array([1.0, 2.0])
    assert np.array_equal(band_filter(x), x)


def test_band_filter_matches_recursion():
    rng = np.random.default_rng(3)
    x = rng.normal(size=200)
    assert np.allclose(band_filter(x, 0.95), _reference_band_filter(x, 0.95))
    assert band_filter(x)[0] == x[0]
    assert band_filter(x)[1] == x[1]


def test_incremental_conditioner_matches_batch():
    rng = np.random.default_rng(11)
    t = np.arange(300) * 1000.0 / 60.0
    x = 100.0 + np.sin(2 * np.pi * t / 800.0) + 0.1 * rng.normal(size=t.shape[0])

    conditioner = WaveformConditioner(window=25, alpha=0.95)
    points = [p for p in (conditioner.push(ti, xi) for ti, xi in zip(t, x)) if p is not None]

    expected = condition(x, window=25, alpha=0.95)
    n = len(points)
    assert n == x.shape[0] - conditioner.delay
    assert np.allclose([p.value for p in points], expected[:n], atol=1e-9)
    assert [p.timestamp for p in points] == list(t[:n])


def test_incremental_conditioner_stays_exact_on_long_bright_streams():
    # large DC level over many windows; the running window sum must not drift
    rng = np.random.default_rng(5)
    t = np.arange(5000) * 1000.0 / 60.0
    x = 1e4 + 2.0 * np.sin(2 * np.pi * t / 800.0) + 0.3 * rng.normal(size=t.shape[0])

    conditioner = WaveformConditioner(window=25, alpha=0.95)
    points = [p for p in (conditioner.push(ti, xi) for ti, xi in zip(t, x)) if p is not None]

    expected = condition(x, window=25, alpha=0.95)
    n = len(points)
    assert n == x.shape[0] - conditioner.delay
    assert np.allclose([p.value for p in points], expected[:n], atol=1e-6)

def test_conditioner_delay_and_reset():
    conditioner = WaveformConditioner(window=25)
    assert conditioner.delay == 12
    outputs = [conditioner.push(float(k), 1.0) for k in range(13)]
    assert outputs[:12] == [None] * 12
    assert outputs[12] is not None

    conditioner.reset()
    assert conditioner.push(100.0, 1.0) is None


def test_conditioner_scale_uses_sensitivity():
    conditioner = WaveformConditioner(sensitivity=2.5)
    assert np.allclose(conditioner.scale(np.array([1.0, -2.0])), [2.5, -5.0])


def test_conditioner_rejects_bad_alpha():
    with pytest.raises(ValueError):
        WaveformConditioner(alpha=1.0)
