"""
api/session.py — Monitor Session
==================================
Owns one VitalSignsPipeline and its calibration store for the lifetime of
the server, and serialises access to them.

Thread safety
-------------
FastAPI may run handlers concurrently, while the pipeline expects exactly
one caller per cycle.  Every public method takes `_lock` for its whole
duration, so cycles never interleave and readers never see a cycle half
applied.

Lifecycle
---------
    1. `calibrate(...)`      — optional; store a cuff reading.
    2. `process(samples)`    — once per batch of samples.
    3. `latest()`            — last cycle's result, for polling clients.
    4. `reset()`             — drop the stream and tuning state.
"""

import threading
from typing import Iterable

from config import DEFAULT_CONTEXT
from model.calibration import CalibrationRecord, CalibrationStore
from ppg.pipeline import CycleResult, VitalSignsPipeline
from utils.logger import get_logger

logger = get_logger("api.session")

# ── Disclaimer string injected into every cycle response ────────────────────
DISCLAIMER = (
    "⚠️ This is a WELLNESS ESTIMATION tool — NOT a medical device. "
    "Heart rate, SpO2 and blood pressure are ESTIMATES derived from a "
    "camera photoplethysmogram; blood pressure is relative to your own "
    "calibration reading. Do NOT make medical decisions based on them."
)


class MonitorSession:
    """
    Thread-safe wrapper around one pipeline instance.

    Parameters
    ----------
    calibration_store : CalibrationStore | None   In-memory when omitted.
    context           : str                       Calibration key.
    """

    def __init__(self,
                 calibration_store: CalibrationStore | None = None,
                 context: str = DEFAULT_CONTEXT):
        self._lock = threading.Lock()
        self.store = calibration_store if calibration_store is not None else CalibrationStore()
        self.context = context
        self._pipeline = VitalSignsPipeline(calibration_store=self.store, context=context)
        logger.info("MonitorSession initialised (context=%s).", context)

    # ── Public API ─────────────────────────────────────────────────────────

    def process(self, samples: Iterable[tuple[float, float]]) -> CycleResult:
        with self._lock:
            return self._pipeline.process(samples)

    def latest(self) -> CycleResult | None:
        with self._lock:
            return self._pipeline.last_result

    def calibrate(self, systolic: int, diastolic: int) -> CalibrationRecord:
        """Raises InvalidCalibration; the stored record is then unchanged."""
        with self._lock:
            return self._pipeline.calibrate(systolic, diastolic)

    def calibration(self) -> CalibrationRecord | None:
        with self._lock:
            return self.store.get(self.context)

    @property
    def cycles(self) -> int:
        with self._lock:
            return self._pipeline.cycles

    def reset(self) -> None:
        with self._lock:
            self._pipeline.reset()
        logger.info("Session reset.")
