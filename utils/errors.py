"""
utils/errors.py — Error taxonomy for the vital-signs pipeline
===============================================================
Nothing raised here is fatal to the process.  Malformed samples are
rejected one at a time, calibration errors leave the stored record intact,
and a degraded detector is reported as a warning.  Insufficient signal is
not an exception at all: it is a reading status (see model/vitals.py).
"""


class PPGError(Exception):
    """Base class for hard errors raised by the pipeline."""


class InvalidSample(PPGError, ValueError):
    """A sample was out of order or carried a non-finite value."""

    def __init__(self, message: str, timestamp: float | None = None):
        super().__init__(message)
        self.timestamp = timestamp


class InvalidCalibration(PPGError, ValueError):
    """A systolic/diastolic reference pair failed validation."""


class DetectorDegraded(UserWarning):
    """
    Tuning parameters have been pinned at a clamp bound for a sustained
    period.  Emitted through `warnings.warn`; processing continues.
    """
