"""
ppg/pipeline.py — End-to-end PPG → vital-signs pipeline
=========================================================
Orchestrates one processing cycle per incoming batch of samples:

    raw samples  →  ring buffer  →  incremental conditioning
                 →  sensitivity scaling  →  peak detection
                 →  rhythm analysis  →  waveform stats  →  aggregation
                 →  tuner update (takes effect on the NEXT cycle)

Every stage's state (buffers, filter memory, tuning parameters, SpO2
history, calibration) belongs to the pipeline instance, so independent
pipelines never share anything.  A cycle runs to completion before the
next begins; the caller may drop an instance between cycles without any
cleanup.

Malformed samples are rejected one at a time (logged and counted) and the
rest of the batch is still processed.  This covers entries that are not
(timestamp, value) pairs at all.
"""

from dataclasses import dataclass, field
from typing import Iterable

from config import (
    BUFFER_CAPACITY,
    DEFAULT_CONTEXT,
    PERIODICITY_MIN_SECONDS,
    SAMPLE_RATE_HZ,
    SIGNAL_WINDOW_SECONDS,
)
from features.rhythm import RhythmAnalyzer
from features.spo2 import OxygenationEstimator
from features.waveform import compute_waveform_stats
from model.calibration import CalibrationRecord, CalibrationStore
from model.tuner import AdaptiveTuner, TuningObservation
from model.vitals import BiometricReading, VitalSignsAggregator
from ppg.buffer import Sample, SampleBuffer
from ppg.filters import WaveformConditioner
from ppg.peaks import Peak, PeakDetector
from utils.errors import InvalidSample
from utils.logger import get_logger

logger = get_logger("ppg.pipeline")


@dataclass
class CycleResult:
    """Outputs of one cycle, for display and waveform annotation."""
    reading: BiometricReading
    peaks: list[Peak] = field(default_factory=list)
    rejected: int = 0
    tuning: dict = field(default_factory=dict)


class VitalSignsPipeline:
    """
    Stateful pipeline that turns a PPG sample stream into readings.

    Parameters
    ----------
    sample_rate_hz    : float   Expected sample cadence; sizes the
                                one-second statistics window.
    buffer_capacity   : int     Samples kept in the raw and conditioned
                                ring buffers.
    calibration_store : CalibrationStore | None
                                Source of the BP reference; in-memory store
                                when omitted.
    context           : str     Calibration key for this device / user.
    spo2_estimator    : OxygenationEstimator | None
    tuner             : AdaptiveTuner | None
    """

    def __init__(self,
                 sample_rate_hz: float = SAMPLE_RATE_HZ,
                 buffer_capacity: int = BUFFER_CAPACITY,
                 calibration_store: CalibrationStore | None = None,
                 context: str = DEFAULT_CONTEXT,
                 spo2_estimator: OxygenationEstimator | None = None,
                 tuner: AdaptiveTuner | None = None):
        if sample_rate_hz <= 0:
            raise ValueError(f"sample_rate_hz must be positive, got {sample_rate_hz}")
        self.context = context
        self.raw = SampleBuffer(buffer_capacity)
        self.conditioned = SampleBuffer(buffer_capacity)
        self.conditioner = WaveformConditioner()
        self.detector = PeakDetector()
        self.analyzer = RhythmAnalyzer()
        self.tuner = tuner if tuner is not None else AdaptiveTuner()
        self.aggregator = VitalSignsAggregator(spo2_estimator)
        self.calibration = calibration_store if calibration_store is not None else CalibrationStore()

        self._window = max(1, int(round(sample_rate_hz * SIGNAL_WINDOW_SECONDS)))
        self._periodicity_span = int(round(sample_rate_hz * PERIODICITY_MIN_SECONDS))
        self._last_result: CycleResult | None = None
        self._cycles = 0
        logger.info(
            "VitalSignsPipeline created — fs=%.1f Hz, buffer=%d samples, context=%s",
            sample_rate_hz, buffer_capacity, context,
        )

    # ── Public API ───────────────────────────────────────────────────────────

    def push(self, timestamp: float, value: float) -> None:
        """
        Feed one raw sample.

        Raises
        ------
        InvalidSample
            Out-of-order or non-finite sample; pipeline state is unchanged.
        """
        self.raw.push(timestamp, value)
        point = self.conditioner.push(self.raw.last_timestamp, float(value))
        if point is not None:
            self.conditioned.push(point.timestamp, point.value)

    def process(self, samples: Iterable[Sample | tuple[float, float]]) -> CycleResult:
        """
        Push a batch of samples and run one processing cycle.

        Parameters
        ----------
        samples : iterable of Sample or (timestamp_ms, intensity) pairs,
                  in timestamp order.

        Returns
        -------
        CycleResult with the reading, the annotated peaks and the number of
        samples rejected from this batch.
        """
        rejected = 0
        for sample in samples:
            try:
                self.push(*self._unpack(sample))
            except InvalidSample as e:
                rejected += 1
                logger.warning("Sample rejected: %s", e)
        return self._run_cycle(rejected)

    def calibrate(self, systolic: int, diastolic: int) -> CalibrationRecord:
        """Store a new BP reference for this pipeline's context."""
        return self.calibration.capture(systolic, diastolic, context=self.context)

    @property
    def last_result(self) -> CycleResult | None:
        return self._last_result

    @property
    def cycles(self) -> int:
        """Cycles run since construction or the last reset."""
        return self._cycles

    def reset(self) -> None:
        """Forget the stream and the tuning state; calibration is kept."""
        self.raw.clear()
        self.conditioned.clear()
        self.conditioner.reset()
        self.tuner.reset()
        self.aggregator.reset()
        self._last_result = None
        self._cycles = 0
        logger.info("Pipeline reset.")

    # ── Private ──────────────────────────────────────────────────────────────

    @staticmethod
    def _unpack(sample) -> tuple[float, float]:
        if isinstance(sample, Sample):
            return sample.timestamp, sample.value
        try:
            timestamp, value = sample
        except (TypeError, ValueError) as exc:
            raise InvalidSample(f"Malformed sample {sample!r}: {exc}") from exc
        return timestamp, value

    def _run_cycle(self, rejected: int) -> CycleResult:
        state = self.tuner.state
        sensitivity = state.sensitivity
        self.conditioner.sensitivity = sensitivity

        timestamps, values = self.conditioned.arrays()
        scaled = self.conditioner.scale(values)
        peaks = self.detector.detect(timestamps, scaled, state.detection_params())
        analysis = self.analyzer.analyze(peaks)

        _, raw_values = self.raw.arrays()
        stats = compute_waveform_stats(
            raw_values, timestamps, values, analysis.peaks, self._window,
            min_periodicity_samples=self._periodicity_span,
        )
        reading = self.aggregator.aggregate(
            analysis,
            stats,
            state.signal_strengths,
            calibration=self.calibration.get(self.context),
            timestamp=self.raw.last_timestamp,
            degraded=state.degraded,
        )

        # Hand this cycle's output to the tuner for the next one
        latest_level = float(scaled[-1]) if scaled.shape[0] else 0.0
        self.tuner.update(TuningObservation(
            peaks=analysis.peaks,
            sensitivity=sensitivity,
            signal_strength=stats.signal_rms,
            latest_level=latest_level,
        ))

        self._cycles += 1
        result = CycleResult(
            reading=reading,
            peaks=analysis.peaks,
            rejected=rejected,
            tuning=self.tuner.state.snapshot(),
        )
        self._last_result = result
        return result
