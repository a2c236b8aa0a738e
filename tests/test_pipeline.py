import math
import warnings

import numpy as np
import pytest

from config import MIN_CONFIDENCE, MIN_PEAK_DISTANCE_MS
from model.calibration import CalibrationStore
from model.vitals import ReadingStatus
from ppg.buffer import Sample
from ppg.pipeline import VitalSignsPipeline
from ppg.synthetic import synthetic_ppg
from utils.errors import DetectorDegraded


def _run(pipeline: VitalSignsPipeline, timestamps, values, batch: int = 1):
    result = None
    for i in range(0, len(timestamps), batch):
        result = pipeline.process(zip(timestamps[i:i + batch], values[i:i + batch]))
    return result


def _assert_in_bands(pipeline: VitalSignsPipeline) -> None:
    b, s = pipeline.tuner.bounds, pipeline.tuner.state
    assert b.signal_threshold.lo <= s.signal_threshold <= b.signal_threshold.hi
    assert b.min_confidence.lo <= s.min_confidence <= b.min_confidence.hi
    assert b.derivative_threshold.lo <= s.derivative_threshold <= b.derivative_threshold.hi
    assert b.sensitivity.lo <= s.sensitivity <= b.sensitivity.hi


def test_clean_sinusoid_at_75_bpm():
    timestamps, values = synthetic_ppg(duration_s=10.0, fs=60.0, bpm=75.0)
    pipeline = VitalSignsPipeline(sample_rate_hz=60.0)
    result = _run(pipeline, timestamps, values)

    reading = result.reading
    assert reading.status is ReadingStatus.OK
    assert reading.heart_rate == pytest.approx(75.0, abs=2.0)
    assert reading.confidence > MIN_CONFIDENCE
    assert reading.arrhythmia_count == 0
    assert not reading.detector_degraded

    gaps = np.diff([p.timestamp for p in result.peaks])
    assert np.all(gaps >= MIN_PEAK_DISTANCE_MS)
    _assert_in_bands(pipeline)


@pytest.mark.parametrize("bpm", [60.0, 75.0, 90.0])
def test_pulse_with_dicrotic_wave_counts_each_beat_once(bpm):
    timestamps, values = synthetic_ppg(duration_s=10.0, fs=60.0, bpm=bpm, shape="pulse")
    result = _run(VitalSignsPipeline(sample_rate_hz=60.0), timestamps, values)

    reading = result.reading
    assert reading.status is ReadingStatus.OK
    assert reading.heart_rate == pytest.approx(bpm, abs=2.0)
    assert reading.arrhythmia_count == 0
    gaps = np.diff([p.timestamp for p in result.peaks])
    assert np.allclose(gaps, 60000.0 / bpm, atol=2 * 1000.0 / 60.0)


def test_single_irregular_beat_is_the_only_one_flagged():
    rr = 800.0
    timestamps, values = synthetic_ppg(duration_s=10.0, fs=60.0, bpm=75.0, shape="pulse",
                                       rr_scale={8: 1.4})
    result = _run(VitalSignsPipeline(sample_rate_hz=60.0), timestamps, values)

    flagged = [k for k, p in enumerate(result.peaks) if p.arrhythmia]
    assert len(flagged) == 1
    assert result.reading.arrhythmia_count == 1

    intervals = np.diff([p.timestamp for p in result.peaks])
    k = flagged[0]
    assert intervals[k - 1] > (1.0 + 0.2) * rr
    assert np.all(np.abs(np.delete(intervals, k - 1) - rr) < 0.1 * rr)

def test_batched_cycles_give_the_same_heart_rate():
    timestamps, values = synthetic_ppg(duration_s=10.0, fs=60.0, bpm=75.0)
    result = _run(VitalSignsPipeline(), timestamps, values, batch=30)
    assert result.reading.status is ReadingStatus.OK
    assert result.reading.heart_rate == pytest.approx(75.0, abs=2.0)


def test_calibrated_pipeline_reports_blood_pressure():
    timestamps, values = synthetic_ppg(duration_s=10.0, fs=60.0, bpm=75.0)
    pipeline = VitalSignsPipeline()
    pipeline.calibrate(120, 80)
    reading = _run(pipeline, timestamps, values).reading
    assert reading.status is ReadingStatus.OK
    assert 70 <= reading.diastolic < reading.systolic <= 200
    assert reading.systolic - reading.diastolic >= 20


def test_invalid_samples_are_skipped_not_fatal():
    pipeline = VitalSignsPipeline()
    result = pipeline.process([(0.0, 100.0), (16.0, 101.0), (10.0, 99.0), (32.0, math.nan), (48.0, 100.5)])
    assert result.rejected == 2
    assert len(pipeline.raw) == 3
    assert pipeline.raw.last_timestamp == 48.0

    result = pipeline.process([Sample(64.0, 100.0)])
    assert result.rejected == 0
    assert len(pipeline.raw) == 4


def test_malformed_entries_are_rejected_with_the_rest_of_the_batch_kept():
    pipeline = VitalSignsPipeline()
    result = pipeline.process([(0.0, 100.0), (16.0,), None, "x", (32.0, 101.0, 5.0), (48.0, 101.0)])
    assert result.rejected == 4
    assert len(pipeline.raw) == 2
    assert pipeline.raw.last_timestamp == 48.0


def test_no_finger_degrades_to_no_reading():
    rng = np.random.default_rng(1)
    timestamps = np.arange(900) * 1000.0 / 60.0
    values = 5.0 + 1e-4 * rng.normal(size=timestamps.shape[0])
    pipeline = VitalSignsPipeline()
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", DetectorDegraded)
        for t, v in zip(timestamps, values):
            result = pipeline.process([(t, v)])
            assert result.reading.heart_rate is None
            _assert_in_bands(pipeline)
    assert result.reading.status is ReadingStatus.INSUFFICIENT_SIGNAL
    assert result.reading.spo2 is None


@pytest.mark.parametrize("baseline, noise", [(120.0, 0.5), (120.0, 1.0), (2.0, 0.02)])
def test_sensor_noise_alone_never_produces_a_reading(baseline, noise):
    # enough variation to pass the perfusion check; the tuner gain lifts it
    # to pulse-like amplitude
    timestamps, values = synthetic_ppg(duration_s=20.0, fs=60.0, amplitude=0.0,
                                       baseline=baseline, noise=noise, seed=7)
    pipeline = VitalSignsPipeline(sample_rate_hz=60.0)
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", DetectorDegraded)
        for t, v in zip(timestamps, values):
            reading = pipeline.process([(t, v)]).reading
            assert reading.status is ReadingStatus.INSUFFICIENT_SIGNAL
            assert reading.heart_rate is None

def test_noisy_stream_keeps_tuning_in_bands():
    rng = np.random.default_rng(42)
    timestamps, values = synthetic_ppg(duration_s=30.0, bpm=90.0, noise=0.8, shape="pulse", seed=3)
    # finger lifted for a few seconds, then bursts of large artefacts
    values[600:900] = 2.0 + 0.01 * rng.normal(size=300)
    values[1200:1260] += rng.normal(0, 50.0, size=60)
    pipeline = VitalSignsPipeline()
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", DetectorDegraded)
        for i in range(0, timestamps.shape[0], 2):
            result = pipeline.process(zip(timestamps[i:i + 2], values[i:i + 2]))
            _assert_in_bands(pipeline)
            assert 0.0 <= result.reading.confidence <= 1.0
            if result.reading.heart_rate is not None:
                assert 40.0 <= result.reading.heart_rate <= 200.0


def test_pipelines_do_not_share_state():
    timestamps, values = synthetic_ppg(duration_s=5.0, bpm=75.0)
    first = VitalSignsPipeline()
    second = VitalSignsPipeline()
    _run(first, timestamps, values)

    assert second.last_result is None
    assert len(second.raw) == 0
    assert second.tuner.state.sensitivity == 1.0
    assert first.tuner.state.sensitivity != 1.0


def test_reset_keeps_calibration(tmp_path):
    store = CalibrationStore(str(tmp_path / "cal.json"))
    pipeline = VitalSignsPipeline(calibration_store=store, context="phone")
    pipeline.calibrate(121, 79)
    timestamps, values = synthetic_ppg(duration_s=3.0)
    _run(pipeline, timestamps, values)

    pipeline.reset()
    assert pipeline.last_result is None
    assert pipeline.cycles == 0
    assert len(pipeline.raw) == 0
    assert store.get("phone").systolic == 121

    # stream may restart from zero after a reset
    result = pipeline.process([(0.0, 100.0)])
    assert result.rejected == 0
