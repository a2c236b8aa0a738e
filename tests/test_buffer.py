import math

import numpy as np
import pytest

from ppg.buffer import Sample, SampleBuffer
from utils.errors import InvalidSample


def _make_buffer(capacity: int, count: int, step: float = 10.0) -> SampleBuffer:
    buf = SampleBuffer(capacity)
    for k in range(count):
        buf.push(k * step, float(k))
    return buf


def test_buffer_never_exceeds_capacity_and_stays_ordered():
    rng = np.random.default_rng(7)
    buf = SampleBuffer(capacity=50)
    t = 0.0
    for _ in range(1000):
        t += float(rng.uniform(0.1, 40.0))
        buf.push(t, float(rng.normal()))
        assert len(buf) <= buf.capacity
        timestamps, _ = buf.arrays()
        assert np.all(np.diff(timestamps) > 0)
    assert len(buf) == 50


def test_buffer_evicts_oldest_on_overflow():
    buf = _make_buffer(capacity=5, count=8)
    samples = buf.snapshot()
    assert [s.value for s in samples] == [3.0, 4.0, 5.0, 6.0, 7.0]
    assert samples[0] == Sample(30.0, 3.0)


def test_buffer_overwrites_in_place():
    buf = _make_buffer(capacity=5, count=5)
    storage = buf._timestamps
    for k in range(5, 50):
        buf.push(k * 10.0, float(k))
    assert buf._timestamps is storage


def test_buffer_rejects_non_increasing_timestamp_and_keeps_state():
    buf = _make_buffer(capacity=10, count=3)
    before = buf.snapshot()
    with pytest.raises(InvalidSample) as exc:
        buf.push(20.0, 1.0)
    assert exc.value.timestamp == 20.0
    with pytest.raises(InvalidSample):
        buf.push(5.0, 1.0)
    assert buf.snapshot() == before
    assert buf.last_timestamp == 20.0


def test_buffer_rejects_non_finite_and_non_numeric():
    buf = SampleBuffer(capacity=4)
    with pytest.raises(InvalidSample):
        buf.push(0.0, math.nan)
    with pytest.raises(InvalidSample):
        buf.push(math.inf, 1.0)
    with pytest.raises(InvalidSample):
        buf.push("soon", 1.0)
    assert len(buf) == 0
    assert buf.last_timestamp is None


def test_snapshot_does_not_mutate():
    buf = _make_buffer(capacity=6, count=9)
    first = buf.snapshot()
    second = buf.snapshot()
    assert first == second
    assert len(buf) == 6


def test_tail_returns_newest_samples():
    buf = _make_buffer(capacity=6, count=9)
    timestamps, values = buf.tail(2)
    assert list(timestamps) == [70.0, 80.0]
    assert list(values) == [7.0, 8.0]
    timestamps, _ = buf.tail(100)
    assert timestamps.shape[0] == 6


def test_clear_allows_restarting_the_clock():
    buf = _make_buffer(capacity=4, count=4)
    buf.clear()
    assert len(buf) == 0
    buf.push(0.0, 1.0)
    assert buf.snapshot() == [Sample(0.0, 1.0)]


def test_capacity_must_be_positive():
    with pytest.raises(ValueError):
        SampleBuffer(capacity=0)
