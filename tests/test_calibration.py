import json
from datetime import datetime, timezone

import pytest

from model.calibration import CalibrationRecord, CalibrationStore
from utils.errors import InvalidCalibration


def _make_store(tmp_path) -> CalibrationStore:
    return CalibrationStore(str(tmp_path / "calibration.json"))


def test_calibration_rejects_out_of_range_and_inverted_pairs():
    store = CalibrationStore()
    with pytest.raises(InvalidCalibration):
        store.capture(65, 80)
    with pytest.raises(InvalidCalibration):
        store.capture(110, 120)
    with pytest.raises(InvalidCalibration):
        store.capture(120, 30)
    with pytest.raises(InvalidCalibration):
        store.capture(100, 100)
    assert store.get() is None


def test_calibration_accepts_valid_pair_and_timestamps_it():
    store = CalibrationStore()
    record = store.capture(120, 80)
    assert (record.systolic, record.diastolic) == (120, 80)
    assert record.captured_at.tzinfo is not None
    assert store.get() == record


def test_rejected_calibration_keeps_previous_record():
    store = CalibrationStore()
    first = store.capture(118, 76)
    with pytest.raises(InvalidCalibration):
        store.capture(65, 80)
    assert store.get() == first


def test_recalibration_replaces_record_wholesale():
    store = CalibrationStore()
    store.capture(130, 85, captured_at=datetime(2024, 1, 1, tzinfo=timezone.utc))
    second = store.capture(115, 75)
    assert store.get() == second
    assert store.get().captured_at > datetime(2024, 1, 1, tzinfo=timezone.utc)


def test_contexts_are_independent():
    store = CalibrationStore()
    store.capture(120, 80, context="alice")
    store.capture(140, 90, context="bob")
    assert store.get("alice").systolic == 120
    assert store.get("bob").systolic == 140
    assert store.get() is None
    assert store.contexts() == ["alice", "bob"]


def test_store_persists_across_instances(tmp_path):
    store = _make_store(tmp_path)
    record = store.capture(125, 82, context="device-1")

    reloaded = _make_store(tmp_path)
    assert reloaded.get("device-1") == record

    raw = json.loads((tmp_path / "calibration.json").read_text())
    assert raw["device-1"]["systolic"] == 125
    assert not list(tmp_path.glob("*.tmp"))


def test_corrupt_store_is_ignored(tmp_path):
    (tmp_path / "calibration.json").write_text("{not json")
    store = _make_store(tmp_path)
    assert store.get() is None
    store.capture(120, 80)
    assert _make_store(tmp_path).get().systolic == 120


def test_invalid_persisted_entry_is_skipped(tmp_path):
    (tmp_path / "calibration.json").write_text(json.dumps({
        "default": {"systolic": 90, "diastolic": 120, "captured_at": "2024-01-01T00:00:00Z"},
        "other": {"systolic": 120, "diastolic": 80, "captured_at": "2024-01-01T00:00:00Z"},
    }))
    store = _make_store(tmp_path)
    assert store.get() is None
    assert store.get("other").diastolic == 80


def test_record_model_validates_directly():
    with pytest.raises(ValueError):
        CalibrationRecord(systolic=201, diastolic=80)
    assert CalibrationRecord(systolic=200, diastolic=130).systolic == 200
