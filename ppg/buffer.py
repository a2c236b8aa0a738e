"""
ppg/buffer.py — Fixed-capacity sample ring buffer
===================================================
Holds the most recent PPG samples in two pre-allocated numpy arrays
(timestamps and values).  Once full, each push overwrites the oldest slot
in place, so steady-state operation never reallocates and memory stays
fixed no matter how long the stream runs.

The same structure stores the conditioned waveform: a ConditionedPoint is
just another (timestamp, value) pair with strictly increasing timestamps.
"""

import math
from dataclasses import dataclass

import numpy as np

from config import BUFFER_CAPACITY
from utils.errors import InvalidSample


@dataclass(frozen=True)
class Sample:
    """One raw PPG reading: monotonic timestamp (ms) and scalar intensity."""
    timestamp: float
    value: float


class SampleBuffer:
    """
    Time-ordered ring buffer of (timestamp, value) pairs.

    Parameters
    ----------
    capacity : int   Maximum number of samples held; fixed for the lifetime
                     of the buffer.
    """

    def __init__(self, capacity: int = BUFFER_CAPACITY):
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self._capacity = int(capacity)
        self._timestamps = np.zeros(self._capacity, dtype=np.float64)
        self._values = np.zeros(self._capacity, dtype=np.float64)
        self._start = 0          # Slot of the oldest sample
        self._size = 0
        self._last_timestamp: float | None = None

    # ── Public API ───────────────────────────────────────────────────────────

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def last_timestamp(self) -> float | None:
        return self._last_timestamp

    def __len__(self) -> int:
        return self._size

    def push(self, timestamp: float, value: float) -> None:
        """
        Append a sample, evicting the oldest one when at capacity.

        Raises
        ------
        InvalidSample
            If the timestamp does not strictly increase over the last pushed
            sample, or if either field is not a finite number.  The buffer is
            left unchanged.
        """
        try:
            timestamp = float(timestamp)
            value = float(value)
        except (TypeError, ValueError) as exc:
            raise InvalidSample(f"Non-numeric sample: {exc}") from exc

        if not math.isfinite(timestamp) or not math.isfinite(value):
            raise InvalidSample(
                f"Non-finite sample (timestamp={timestamp}, value={value}).",
                timestamp=timestamp,
            )
        if self._last_timestamp is not None and timestamp <= self._last_timestamp:
            raise InvalidSample(
                f"Timestamp {timestamp} does not follow {self._last_timestamp}; "
                "samples must arrive in strictly increasing order.",
                timestamp=timestamp,
            )

        if self._size < self._capacity:
            slot = (self._start + self._size) % self._capacity
            self._size += 1
        else:
            # Overwrite the oldest slot in place
            slot = self._start
            self._start = (self._start + 1) % self._capacity

        self._timestamps[slot] = timestamp
        self._values[slot] = value
        self._last_timestamp = timestamp

    def arrays(self) -> tuple[np.ndarray, np.ndarray]:
        """
        Return (timestamps, values) copies in oldest → newest order.
        The buffer state is not modified.
        """
        order = (self._start + np.arange(self._size)) % self._capacity
        return self._timestamps[order], self._values[order]

    def snapshot(self) -> list[Sample]:
        """Ordered list of the samples currently held."""
        timestamps, values = self.arrays()
        return [Sample(float(t), float(v)) for t, v in zip(timestamps, values)]

    def tail(self, count: int) -> tuple[np.ndarray, np.ndarray]:
        """Return the newest `count` samples (or fewer) as (timestamps, values)."""
        count = max(0, min(int(count), self._size))
        offset = self._size - count
        order = (self._start + offset + np.arange(count)) % self._capacity
        return self._timestamps[order], self._values[order]

    def clear(self) -> None:
        """Forget every sample, including the last timestamp seen."""
        self._start = 0
        self._size = 0
        self._last_timestamp = None
