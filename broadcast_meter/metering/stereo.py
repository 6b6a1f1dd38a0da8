from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

import numpy as np

from broadcast_meter.core.dsp import CORRELATION_EPSILON, LOG_EPSILON, rms

# Smoothing coefficients per block
CORRELATION_ATTACK = 0.25
CORRELATION_RELEASE = 0.06
BALANCE_SMOOTHING = 0.15
WIDTH_SMOOTHING = 0.15

BALANCE_EPSILON = 1e-10

CORRELATION_GOOD = 0.3
CORRELATION_CAUTION = -0.3
PHASE_ISSUE_THRESHOLD = -0.3


def lr_to_ms(left, right):
    """Left/right to mid/side with 0.5 scaling, so M = L for mono."""
    left = np.asarray(left, dtype=np.float64)
    right = np.asarray(right, dtype=np.float64)
    return 0.5 * (left + right), 0.5 * (left - right)


def ms_to_lr(mid, side):
    mid = np.asarray(mid, dtype=np.float64)
    side = np.asarray(side, dtype=np.float64)
    return mid + side, mid - side


def calculate_correlation(left: np.ndarray, right: np.ndarray) -> float:
    """Pearson correlation in [-1, 1]; 0 when either channel has no variance."""
    left = np.asarray(left, dtype=np.float64)
    right = np.asarray(right, dtype=np.float64)
    if left.size == 0:
        return 0.0
    dl = left - left.mean()
    dr = right - right.mean()
    denom = np.sqrt(float(np.dot(dl, dl)) * float(np.dot(dr, dr)))
    if denom < CORRELATION_EPSILON:
        return 0.0
    return float(np.clip(float(np.dot(dl, dr)) / denom, -1.0, 1.0))


def calculate_balance(left: np.ndarray, right: np.ndarray) -> float:
    """-1 = hard left, +1 = hard right."""
    rms_l = rms(left)
    rms_r = rms(right)
    total = rms_l + rms_r
    if total < BALANCE_EPSILON:
        return 0.0
    return float((rms_r - rms_l) / total)


def calculate_width(left: np.ndarray, right: np.ndarray) -> float:
    """0 = mono, ~1 = pure side."""
    mid, side = lr_to_ms(left, right)
    rms_mid = rms(mid)
    rms_side = rms(side)
    return float(rms_side / (rms_mid + rms_side + LOG_EPSILON))


def correlation_zone(correlation: float) -> str:
    if correlation >= CORRELATION_GOOD:
        return "good"
    if correlation >= CORRELATION_CAUTION:
        return "caution"
    return "problem"


def has_phase_issue(correlation: float, threshold: float = PHASE_ISSUE_THRESHOLD) -> bool:
    return correlation < threshold


@dataclass
class StereoReading:
    correlation: float
    balance: float
    width: float


@dataclass
class StereoState:
    correlation: float = 0.0
    balance: float = 0.0
    width: float = 0.0
    instant_correlation: float = 0.0

    def reset(self):
        self.correlation = 0.0
        self.balance = 0.0
        self.width = 0.0
        self.instant_correlation = 0.0


def stereo_step(
    left: np.ndarray,
    right: np.ndarray,
    state: StereoState,
) -> Tuple[StereoReading, StereoState]:
    """Measure one block and advance the smoothed readings.

    Correlation falls faster than it rises so phase problems show up quickly.
    """
    raw_corr = calculate_correlation(left, right)
    raw_bal = calculate_balance(left, right)
    raw_width = calculate_width(left, right)

    alpha = CORRELATION_ATTACK if raw_corr < state.correlation else CORRELATION_RELEASE
    state.correlation += alpha * (raw_corr - state.correlation)
    state.balance += BALANCE_SMOOTHING * (raw_bal - state.balance)
    state.width += WIDTH_SMOOTHING * (raw_width - state.width)
    state.instant_correlation = raw_corr

    reading = StereoReading(
        correlation=float(np.clip(state.correlation, -1.0, 1.0)),
        balance=float(np.clip(state.balance, -1.0, 1.0)),
        width=max(0.0, float(state.width)),
    )
    return reading, state
