"""EBU R128 / ITU-R BS.1770-4 loudness accumulator.

The accumulator consumes one K-weighted energy value per audio block and
keeps sliding windows for momentary (400 ms) and short-term (3 s) loudness,
a gated integrated accumulator and a bounded short-term history for the
loudness range (EBU Tech 3342).

Integrated loudness is measured causally by default: each block is gated
against the short-term loudness at the moment it arrives, with the relative
gate derived from the integrated value accumulated so far. This does not
reproduce the BS.1770 two-pass algorithm bit for bit. The "two_pass" mode
keeps the 400 ms gating blocks and evaluates the reference algorithm on
every reading instead.
"""
from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Deque, List, Optional

import numpy as np

from broadcast_meter.core.dsp import LOG_EPSILON

MOMENTARY_WINDOW_S = 0.4
SHORT_TERM_WINDOW_S = 3.0

ABSOLUTE_GATE_LUFS = -70.0
RELATIVE_GATE_OFFSET_LU = -10.0

LRA_RELATIVE_GATE_LU = -20.0
MIN_LRA_BLOCKS = 15
LRA_LOW_PERCENTILE = 0.10
LRA_HIGH_PERCENTILE = 0.95
DEFAULT_HISTORY_SECONDS = 60.0

# Targets
EBU_R128_TARGET_LUFS = -23.0
ATSC_A85_TARGET_LKFS = -24.0

INTEGRATION_MODES = ("streaming", "two_pass")


def energy_to_lufs(energy: float) -> float:
    """LUFS = -0.691 + 10*log10(mean square + eps)."""
    return float(-0.691 + 10.0 * np.log10(float(energy) + LOG_EPSILON))


def lufs_to_energy(lufs: float) -> float:
    if lufs == float("-inf"):
        return 0.0
    return float(10.0 ** ((float(lufs) + 0.691) / 10.0))


def block_energy(left: np.ndarray, right: np.ndarray) -> float:
    """Mean of the two channels' mean-square values (equal stereo weighting)."""
    left = np.asarray(left, dtype=np.float64)
    right = np.asarray(right, dtype=np.float64)
    n = left.size
    if n == 0:
        return 0.0
    ms_l = float(np.dot(left, left)) / n
    ms_r = float(np.dot(right, right)) / n
    return (ms_l + ms_r) / 2.0


def window_length(window_seconds: float, block_duration: float) -> int:
    return max(1, int(round(window_seconds / block_duration)))


@dataclass
class LoudnessReadings:
    momentary: float
    short_term: float
    integrated: float
    lra: Optional[float]  # None until enough history exists


@dataclass
class LoudnessState:
    momentary_length: int
    short_term_length: int
    history_capacity: int
    integration_mode: str = "streaming"

    momentary: Deque[float] = field(default_factory=deque)
    short_term: Deque[float] = field(default_factory=deque)
    history: Deque[float] = field(default_factory=deque)
    integrated_sum: float = 0.0
    integrated_count: int = 0
    # Only filled in "two_pass" mode: momentary-window energies above the absolute gate.
    gating_blocks: List[float] = field(default_factory=list)

    def reset(self):
        self.momentary.clear()
        self.short_term.clear()
        self.history.clear()
        self.integrated_sum = 0.0
        self.integrated_count = 0
        self.gating_blocks.clear()


def new_loudness_state(
    sample_rate: float,
    block_size: int,
    *,
    history_seconds: float = DEFAULT_HISTORY_SECONDS,
    integration_mode: str = "streaming",
) -> LoudnessState:
    if sample_rate <= 0 or block_size <= 0:
        raise ValueError("sample_rate and block_size must be positive")
    if integration_mode not in INTEGRATION_MODES:
        raise ValueError(f"Unknown integration mode: {integration_mode!r}")

    block_duration = float(block_size) / float(sample_rate)
    return LoudnessState(
        momentary_length=window_length(MOMENTARY_WINDOW_S, block_duration),
        short_term_length=window_length(SHORT_TERM_WINDOW_S, block_duration),
        history_capacity=max(1, int(round(history_seconds / SHORT_TERM_WINDOW_S))),
        integration_mode=integration_mode,
    )


def _queue_to_lufs(queue) -> float:
    if not queue:
        return float("-inf")
    return energy_to_lufs(sum(queue) / len(queue))


def _streaming_integrated(state: LoudnessState) -> float:
    if state.integrated_count == 0:
        return float("-inf")
    return energy_to_lufs(state.integrated_sum / state.integrated_count)


def _current_gate(state: LoudnessState) -> float:
    if state.integrated_count == 0:
        return ABSOLUTE_GATE_LUFS
    return max(ABSOLUTE_GATE_LUFS, _streaming_integrated(state) + RELATIVE_GATE_OFFSET_LU)


def push_energy(state: LoudnessState, energy: float) -> LoudnessState:
    """Feed one block energy into the windows, history and gated integrator."""
    energy = float(energy)

    state.momentary.append(energy)
    if len(state.momentary) > state.momentary_length:
        state.momentary.popleft()

    state.short_term.append(energy)
    if len(state.short_term) > state.short_term_length:
        evicted = state.short_term.popleft()
        state.history.append(evicted)
        if len(state.history) > state.history_capacity:
            state.history.popleft()

    if _queue_to_lufs(state.short_term) >= _current_gate(state):
        state.integrated_sum += energy
        state.integrated_count += 1

    if state.integration_mode == "two_pass" and len(state.momentary) >= state.momentary_length:
        gating_energy = sum(state.momentary) / len(state.momentary)
        if energy_to_lufs(gating_energy) > ABSOLUTE_GATE_LUFS:
            state.gating_blocks.append(gating_energy)

    return state


def gated_integrated_loudness(block_energies) -> float:
    """BS.1770-4 two-pass gated loudness over a set of gating-block energies."""
    blocks = np.asarray(list(block_energies), dtype=np.float64)
    if blocks.size == 0:
        return float("-inf")

    abs_gate = lufs_to_energy(ABSOLUTE_GATE_LUFS)
    blocks = blocks[blocks > abs_gate]
    if blocks.size == 0:
        return float("-inf")

    relative_gate = energy_to_lufs(float(blocks.mean())) + RELATIVE_GATE_OFFSET_LU
    gated = blocks[blocks > lufs_to_energy(relative_gate)]
    if gated.size == 0:
        return float("-inf")
    return energy_to_lufs(float(gated.mean()))


def loudness_range(history_energies, integrated_lufs: float) -> Optional[float]:
    """LRA from short-term history energies; None when there is too little data."""
    if len(history_energies) < MIN_LRA_BLOCKS:
        return None

    threshold = integrated_lufs + LRA_RELATIVE_GATE_LU
    values = sorted(v for v in (energy_to_lufs(e) for e in history_energies) if v > threshold)
    n = len(values)
    if n < MIN_LRA_BLOCKS:
        return None

    p10 = values[int(np.floor(n * LRA_LOW_PERCENTILE))]
    p95 = values[int(np.floor(n * LRA_HIGH_PERCENTILE))]
    return float(p95 - p10)


def loudness_readings(state: LoudnessState) -> LoudnessReadings:
    if state.integration_mode == "two_pass":
        integrated = gated_integrated_loudness(state.gating_blocks)
    else:
        integrated = _streaming_integrated(state)

    return LoudnessReadings(
        momentary=_queue_to_lufs(state.momentary),
        short_term=_queue_to_lufs(state.short_term),
        integrated=integrated,
        lra=loudness_range(state.history, integrated),
    )


def loudness_offset(lufs: float, target: float = EBU_R128_TARGET_LUFS) -> float:
    """Positive = too loud, negative = too quiet (LU)."""
    return lufs - target


def loudness_zone(lufs: float, target: float = EBU_R128_TARGET_LUFS) -> str:
    """Colour zone of a reading relative to target (TC/RTW conventions)."""
    if lufs is None or not np.isfinite(lufs):
        return "silent"
    offset = lufs - target
    if -1.0 <= offset <= 1.0:
        return "on-target"
    if offset < -1.0:
        return "quiet"
    if offset <= 3.0:
        return "loud"
    return "too-loud"
