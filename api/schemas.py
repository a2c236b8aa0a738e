"""
api/schemas.py — Pydantic request & response models
=====================================================
Centralises all data-transfer objects so that FastAPI can auto-generate
OpenAPI docs and validate input shape.  Range checks on calibration values
are left to the calibration store so the API and the library reject the
same inputs with the same messages.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


# ── Request Models ───────────────────────────────────────────────────────────


class SampleIn(BaseModel):
    timestamp: float = Field(..., description="Monotonic timestamp in milliseconds.")
    value: float = Field(..., description="Raw intensity.")


class SampleBatch(BaseModel):
    """One processing cycle's worth of samples, oldest first."""
    samples: list[SampleIn] = Field(default_factory=list)


class CalibrationRequest(BaseModel):
    """Cuff reading used as the blood-pressure reference."""
    systolic: int = Field(..., description="Systolic pressure (70–200 mmHg).")
    diastolic: int = Field(..., description="Diastolic pressure (40–130 mmHg).")


# ── Response Models ──────────────────────────────────────────────────────────


class ReadingOut(BaseModel):
    timestamp: Optional[float] = None
    heart_rate: Optional[float] = None
    spo2: Optional[float] = None
    systolic: Optional[float] = None
    diastolic: Optional[float] = None
    confidence: float
    status: str                          # "ok" | "insufficient_signal"
    arrhythmia_count: int = 0
    rmssd_ms: float = 0.0
    detector_degraded: bool = False


class PeakOut(BaseModel):
    timestamp: float
    amplitude: float
    valid: bool
    arrhythmia: bool


class CycleResponse(BaseModel):
    """Everything one POST /samples cycle produced."""
    disclaimer: str
    reading: ReadingOut
    peaks: list[PeakOut]
    rejected: int
    tuning: dict


class CalibrationOut(BaseModel):
    context: str
    systolic: int
    diastolic: int
    captured_at: datetime
