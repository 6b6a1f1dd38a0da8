"""Inter-sample (true) peak estimation with 4x cubic Hermite interpolation."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Tuple

import numpy as np

from broadcast_meter.core.dsp import LOG_EPSILON, amplitude_to_db
from broadcast_meter.metering.ppm import PeakHold

# Broadcast true-peak limits (dBTP)
TRUE_PEAK_LIMIT_EBU = -1.0
TRUE_PEAK_LIMIT_STREAMING = -2.0
TRUE_PEAK_LIMIT_SAFE = -3.0

TRUE_PEAK_HOLD_S = 3.0

OVERSAMPLE_POSITIONS = (0.0, 0.25, 0.5, 0.75)


def hermite_interpolate(y0, y1, y2, y3, t):
    """Catmull-Rom style cubic Hermite between y1 (t=0) and y2 (t=1).

    Works on scalars or equally shaped numpy arrays.
    """
    c0 = y1
    c1 = 0.5 * (y2 - y0)
    c2 = y0 - 2.5 * y1 + 2.0 * y2 - 0.5 * y3
    c3 = 0.5 * (y3 - y0) + 1.5 * (y1 - y2)
    return ((c3 * t + c2) * t + c1) * t + c0


def true_peak_amplitude(samples: np.ndarray) -> float:
    """Largest absolute value of the 4x reconstructed waveform (linear)."""
    x = np.asarray(samples, dtype=np.float64)
    if x.size == 0:
        return 0.0

    peak = float(np.max(np.abs(x)))
    if x.size < 4:
        return peak

    # Interior points i = 1 .. n-3 use neighbours (i-1, i, i+1, i+2).
    y0 = x[:-3]
    y1 = x[1:-2]
    y2 = x[2:-1]
    y3 = x[3:]
    for t in OVERSAMPLE_POSITIONS:
        interp = hermite_interpolate(y0, y1, y2, y3, t)
        peak = max(peak, float(np.max(np.abs(interp))))
    return peak


def true_peak_dbtp(samples: np.ndarray) -> float:
    return amplitude_to_db(true_peak_amplitude(samples), eps=LOG_EPSILON)


def is_over_limit(dbtp: float, limit: float = TRUE_PEAK_LIMIT_EBU) -> bool:
    """A reading at the limit already counts as over."""
    return dbtp >= limit


def _new_hold() -> PeakHold:
    return PeakHold(level=float("-inf"), floor=float("-inf"))


@dataclass
class TruePeakState:
    limit_dbtp: float = TRUE_PEAK_LIMIT_EBU
    max_left: float = float("-inf")
    max_right: float = float("-inf")
    over: bool = False
    hold_left: PeakHold = field(default_factory=_new_hold)
    hold_right: PeakHold = field(default_factory=_new_hold)
    peak_hold_seconds: float = TRUE_PEAK_HOLD_S

    @property
    def max_dbtp(self) -> float:
        return max(self.max_left, self.max_right)

    def reset(self):
        self.max_left = float("-inf")
        self.max_right = float("-inf")
        self.over = False
        self.hold_left.reset()
        self.hold_right.reset()


def true_peak_step(
    left: np.ndarray,
    right: np.ndarray,
    state: TruePeakState,
    dt: float = 0.0,
) -> Tuple[Tuple[float, float], TruePeakState]:
    """Measure one stereo block.

    Returns ((left_dbtp, right_dbtp), state). The running maxima only ever
    rise until reset; `over` latches once either channel reaches the limit.
    The per-channel hold keeps each channel's highest reading for
    `peak_hold_seconds` of accumulated `dt` before following the signal down.
    """
    left_dbtp = true_peak_dbtp(left)
    right_dbtp = true_peak_dbtp(right)

    state.max_left = max(state.max_left, left_dbtp)
    state.max_right = max(state.max_right, right_dbtp)
    state.hold_left.step(left_dbtp, dt, state.peak_hold_seconds)
    state.hold_right.step(right_dbtp, dt, state.peak_hold_seconds)
    if is_over_limit(max(left_dbtp, right_dbtp), state.limit_dbtp):
        state.over = True

    return (left_dbtp, right_dbtp), state
