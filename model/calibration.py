"""
model/calibration.py — Blood-pressure calibration reference
=============================================================
The camera signal carries no absolute pressure information, so blood
pressure is reported relative to a cuff reading the user enters once.
This module validates that reading and keeps it across sessions.

Validation
----------
    systolic  ∈ [70, 200] mmHg
    diastolic ∈ [40, 130] mmHg
    systolic  > diastolic

A rejected reading raises InvalidCalibration and leaves the stored record
untouched.  A valid one replaces the stored record for its context as a
whole (never merged field by field) and is timestamped on capture.

Persistence
-----------
One JSON file holding one record per context key (device / user):

    {"default": {"systolic": 120, "diastolic": 80, "captured_at": "..."}}

Writes go to a temporary file that is then renamed over the target, so a
crash mid-write never leaves a half-written store.  A store without a path
lives in memory only.
"""

import json
import os
import tempfile
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from config import (
    CALIBRATION_STORE_PATH,
    DEFAULT_CONTEXT,
    DIASTOLIC_RANGE,
    SYSTOLIC_RANGE,
)
from utils.errors import InvalidCalibration
from utils.logger import get_logger

logger = get_logger("model.calibration")


class CalibrationRecord(BaseModel):
    """User-supplied cuff reading the waveform estimate is anchored to."""
    model_config = ConfigDict(frozen=True)

    systolic: int = Field(..., ge=SYSTOLIC_RANGE[0], le=SYSTOLIC_RANGE[1])
    diastolic: int = Field(..., ge=DIASTOLIC_RANGE[0], le=DIASTOLIC_RANGE[1])
    captured_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @model_validator(mode="after")
    def _systolic_above_diastolic(self) -> "CalibrationRecord":
        if self.systolic <= self.diastolic:
            raise ValueError(
                f"systolic ({self.systolic}) must be greater than diastolic ({self.diastolic})"
            )
        return self


def _describe(error: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(p) for p in e['loc']) or 'record'}: {e['msg']}"
        for e in error.errors()
    )


class CalibrationStore:
    """
    Context-keyed calibration records with optional JSON persistence.

    Parameters
    ----------
    path : str | None   JSON file to load from and save to.  None keeps the
                        store in memory.
    """

    def __init__(self, path: str | None = None):
        self.path = path
        self._records: dict[str, CalibrationRecord] = {}
        if path is not None:
            self.load()

    # ── Public API ─────────────────────────────────────────────────────────

    def capture(self,
                systolic: int,
                diastolic: int,
                context: str = DEFAULT_CONTEXT,
                captured_at: datetime | None = None) -> CalibrationRecord:
        """
        Validate and store a new reference reading for `context`.

        Raises
        ------
        InvalidCalibration
            Out-of-range values or systolic ≤ diastolic.  Nothing is stored.
        """
        fields = {"systolic": systolic, "diastolic": diastolic}
        if captured_at is not None:
            fields["captured_at"] = captured_at
        try:
            record = CalibrationRecord(**fields)
        except ValidationError as e:
            message = _describe(e)
            logger.warning("Calibration rejected (%s/%s): %s", systolic, diastolic, message)
            raise InvalidCalibration(message) from e

        self._records[context] = record
        logger.info(
            "Calibration stored for '%s': %d/%d mmHg", context, record.systolic, record.diastolic
        )
        self.save()
        return record

    def get(self, context: str = DEFAULT_CONTEXT) -> CalibrationRecord | None:
        return self._records.get(context)

    def contexts(self) -> list[str]:
        return sorted(self._records)

    def load(self) -> None:
        """Read the JSON store; unreadable or invalid entries are skipped."""
        if self.path is None or not os.path.exists(self.path):
            return
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Could not read calibration store %s: %s", self.path, e)
            return

        if not isinstance(raw, dict):
            logger.warning("Calibration store %s is not a JSON object; ignored.", self.path)
            return

        for context, payload in raw.items():
            try:
                self._records[context] = CalibrationRecord.model_validate(payload)
            except ValidationError as e:
                logger.warning("Skipping invalid calibration for '%s': %s", context, _describe(e))
        logger.info("Loaded %d calibration record(s) from %s", len(self._records), self.path)

    def save(self) -> None:
        if self.path is None:
            return
        payload = {
            context: record.model_dump(mode="json")
            for context, record in self._records.items()
        }
        directory = os.path.dirname(self.path) or "."
        try:
            os.makedirs(directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=directory, suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(payload, f, indent=2)
                os.replace(tmp_path, self.path)
            except OSError:
                if os.path.exists(tmp_path):
                    os.remove(tmp_path)
                raise
        except OSError as e:
            logger.warning("Could not save calibration store to %s: %s", self.path, e)


def default_store() -> CalibrationStore:
    """Store backed by CALIBRATION_STORE_PATH."""
    return CalibrationStore(CALIBRATION_STORE_PATH)
