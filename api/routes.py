"""
api/routes.py — FastAPI route definitions
==========================================
All HTTP endpoints are defined here and wired into the app via
`app.include_router(router)` in `api/app.py`.

Endpoint summary
----------------
    GET  /health        — Liveness check
    POST /samples       — Push a batch of samples, run one cycle
    GET  /reading       — Latest cycle's reading and peaks
    POST /calibration   — Store a systolic/diastolic reference
    GET  /calibration   — Current reference for this session
    POST /reset         — Drop the stream and tuning state
    GET  /docs          — Auto-generated Swagger UI (FastAPI built-in)
"""

from fastapi import APIRouter, Depends, HTTPException, Request

from api.schemas import (
    CalibrationOut,
    CalibrationRequest,
    CycleResponse,
    PeakOut,
    ReadingOut,
    SampleBatch,
)
from api.session import DISCLAIMER, MonitorSession
from model.calibration import CalibrationRecord
from ppg.pipeline import CycleResult
from utils.errors import InvalidCalibration
from utils.logger import get_logger

logger = get_logger("api.routes")

router = APIRouter()


def get_session(request: Request) -> MonitorSession:
    """The session lives on the app, so each app instance has its own."""
    return request.app.state.session


def _cycle_response(result: CycleResult) -> CycleResponse:
    return CycleResponse(
        disclaimer=DISCLAIMER,
        reading=ReadingOut(**result.reading.to_dict()),
        peaks=[
            PeakOut(
                timestamp=p.timestamp,
                amplitude=round(p.amplitude, 5),
                valid=p.valid,
                arrhythmia=p.arrhythmia,
            )
            for p in result.peaks
        ],
        rejected=result.rejected,
        tuning=result.tuning,
    )


def _calibration_out(context: str, record: CalibrationRecord) -> CalibrationOut:
    return CalibrationOut(
        context=context,
        systolic=record.systolic,
        diastolic=record.diastolic,
        captured_at=record.captured_at,
    )


# ── Health ────────────────────────────────────────────────────────────────────

@router.get("/health")
async def health(session: MonitorSession = Depends(get_session)):
    """Simple liveness check."""
    return {"status": "ok", "service": "PPG Vital Signs Pipeline", "cycles": session.cycles}


# ── Samples & readings ────────────────────────────────────────────────────────

@router.post("/samples")
async def push_samples(batch: SampleBatch,
                       session: MonitorSession = Depends(get_session)) -> CycleResponse:
    """
    Feed a batch of samples (oldest first) and run one processing cycle.

    Out-of-order samples are skipped and counted in `rejected`; the rest
    of the batch is still processed.  A reading with status
    "insufficient_signal" means no vitals could be reported this cycle.
    """
    result = session.process((s.timestamp, s.value) for s in batch.samples)
    return _cycle_response(result)


@router.get("/reading")
async def latest_reading(session: MonitorSession = Depends(get_session)) -> CycleResponse:
    """Latest cycle's output.  Returns 404 before the first cycle."""
    result = session.latest()
    if result is None:
        raise HTTPException(status_code=404, detail="No samples processed yet.")
    return _cycle_response(result)


# ── Calibration ───────────────────────────────────────────────────────────────

@router.post("/calibration")
async def set_calibration(request: CalibrationRequest,
                          session: MonitorSession = Depends(get_session)) -> CalibrationOut:
    """
    Store a cuff reading as the blood-pressure reference.

    Returns 422 when systolic ∉ [70, 200], diastolic ∉ [40, 130] or
    systolic ≤ diastolic; the previous reference is kept in that case.
    """
    try:
        record = session.calibrate(request.systolic, request.diastolic)
    except InvalidCalibration as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
    return _calibration_out(session.context, record)


@router.get("/calibration")
async def get_calibration(session: MonitorSession = Depends(get_session)) -> CalibrationOut:
    record = session.calibration()
    if record is None:
        raise HTTPException(status_code=404, detail="No calibration stored.")
    return _calibration_out(session.context, record)


# ── Reset ─────────────────────────────────────────────────────────────────────

@router.post("/reset")
async def reset(session: MonitorSession = Depends(get_session)):
    """Drop buffered samples and tuning state; calibration is kept."""
    session.reset()
    return {"status": "ok", "message": "Pipeline reset. Calibration kept."}
