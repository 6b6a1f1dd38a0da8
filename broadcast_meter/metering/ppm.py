"""IEC 60268-10 Type I (Nordic / DIN) quasi-peak programme meter.

Two detector models sit behind one `PPMDetector` interface:

- ``RCDetector``: a sample-by-sample envelope follower with an exponential
  attack (1.7 ms) and release (740 ms).
- ``WindowDetector``: peak of ~5 ms sub-windows with instant attack and a
  linear 20 dB / 1.7 s fall on the dB scale.

Ballistics are driven by the caller-supplied ``dt`` (seconds) instead of a
wall clock, so results are reproducible for file playback and tests.

Scale alignment (EBU R68): 0 PPM = 0 dBu = -18 dBFS, TEST = +6 PPM,
PML = +9 PPM = -9 dBFS.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Tuple

import numpy as np

from broadcast_meter.core.dsp import LOG_EPSILON, amplitude_to_db

PPM_ATTACK_TAU_S = 0.0017
PPM_RELEASE_TAU_S = 0.740
PPM_WINDOW_S = 0.005
PPM_DECAY_DB_PER_S = 20.0 / 1.7
PPM_HYSTERESIS_DB = 0.1

PPM_MIN_DBFS = -54.0
PPM_MAX_DBFS = -9.0
PPM_DBFS_OFFSET = 18.0
PPM_PEAK_HOLD_S = 3.0

PPM_DETECTORS = ("rc", "window")

PPM_SCALE_MARKINGS: List[Dict] = [
    {"ppm": 9, "dbfs": -9, "label": "+9"},
    {"ppm": 6, "dbfs": -12, "label": "TEST"},
    {"ppm": 3, "dbfs": -15, "label": "+3"},
    {"ppm": 0, "dbfs": -18, "label": "0"},
    {"ppm": -6, "dbfs": -24, "label": "-6"},
    {"ppm": -12, "dbfs": -30, "label": "-12"},
    {"ppm": -18, "dbfs": -36, "label": "-18"},
    {"ppm": -24, "dbfs": -42, "label": "-24"},
    {"ppm": -36, "dbfs": -54, "label": "-36"},
]


def dbfs_to_ppm(dbfs: float) -> float:
    return dbfs + PPM_DBFS_OFFSET


def ppm_to_dbfs(ppm: float) -> float:
    return ppm - PPM_DBFS_OFFSET


def dbfs_to_dbu(dbfs: float) -> float:
    # EBU R68 alignment: same offset as the PPM scale
    return dbfs + PPM_DBFS_OFFSET


def clamp_to_scale(dbfs: float) -> float:
    return float(min(PPM_MAX_DBFS, max(PPM_MIN_DBFS, dbfs)))


def is_silent(display_dbfs: float) -> bool:
    return display_dbfs <= PPM_MIN_DBFS + 1.0


def _alpha(tau_seconds: float, sample_rate: float) -> float:
    # alpha = 1 - exp(-dt/tau)
    return float(1.0 - np.exp(-1.0 / (float(sample_rate) * float(tau_seconds))))


class PPMDetector(ABC):
    """Single-channel quasi-peak detector. Returns the unclamped level in dBFS."""

    @abstractmethod
    def update(self, samples: np.ndarray, dt: float) -> float:
        pass

    @abstractmethod
    def reset(self):
        pass


class RCDetector(PPMDetector):
    def __init__(self, sample_rate: float):
        self.sample_rate = float(sample_rate)
        self.attack_alpha = _alpha(PPM_ATTACK_TAU_S, self.sample_rate)
        self.release_alpha = _alpha(PPM_RELEASE_TAU_S, self.sample_rate)
        self.envelope = 0.0

    def reset(self):
        self.envelope = 0.0

    def update(self, samples: np.ndarray, dt: float) -> float:
        # dt is implied by the sample count for this model
        env = self.envelope
        a_att = self.attack_alpha
        a_rel = self.release_alpha
        for x in np.abs(np.asarray(samples, dtype=np.float64)).tolist():
            if x > env:
                env += a_att * (x - env)
            else:
                env -= a_rel * env
        self.envelope = env
        return amplitude_to_db(env, eps=LOG_EPSILON)


class WindowDetector(PPMDetector):
    def __init__(self, sample_rate: float):
        self.sample_rate = float(sample_rate)
        self.window_size = max(1, int(round(self.sample_rate * PPM_WINDOW_S)))
        self.held_db = PPM_MIN_DBFS

    def reset(self):
        self.held_db = PPM_MIN_DBFS

    def update(self, samples: np.ndarray, dt: float) -> float:
        x = np.abs(np.asarray(samples, dtype=np.float64))
        n = x.size
        if n == 0:
            return self.held_db

        for start in range(0, n, self.window_size):
            chunk = x[start:start + self.window_size]
            chunk_dt = float(dt) * chunk.size / n
            peak_db = amplitude_to_db(float(np.max(chunk)), eps=LOG_EPSILON)

            if peak_db > self.held_db:
                self.held_db = peak_db
            elif peak_db < self.held_db - PPM_HYSTERESIS_DB:
                self.held_db = max(PPM_MIN_DBFS, self.held_db - PPM_DECAY_DB_PER_S * chunk_dt)
        return self.held_db


def make_detector(kind: str, sample_rate: float) -> PPMDetector:
    if kind == "rc":
        return RCDetector(sample_rate)
    if kind == "window":
        return WindowDetector(sample_rate)
    raise ValueError(f"Unknown PPM detector: {kind!r}")


@dataclass
class PPMReading:
    display_dbfs: float
    peak_hold_dbfs: float
    silent: bool

    @property
    def ppm(self) -> float:
        return dbfs_to_ppm(self.display_dbfs)

    @property
    def peak_hold_ppm(self) -> float:
        return dbfs_to_ppm(self.peak_hold_dbfs)


@dataclass
class PeakHold:
    """Holds the highest level for `hold_seconds` of accumulated dt, then follows the input."""
    level: float = PPM_MIN_DBFS
    timer: float = 0.0
    floor: float = PPM_MIN_DBFS

    def step(self, display_dbfs: float, dt: float, hold_seconds: float) -> float:
        self.timer += float(dt)
        if display_dbfs > self.level:
            self.level = display_dbfs
            self.timer = 0.0
        elif self.timer > hold_seconds:
            self.level = display_dbfs
            self.timer = 0.0
        return self.level

    def reset(self):
        self.level = self.floor
        self.timer = 0.0


@dataclass
class PPMState:
    left: PPMDetector
    right: PPMDetector
    hold_left: PeakHold = field(default_factory=PeakHold)
    hold_right: PeakHold = field(default_factory=PeakHold)
    peak_hold_seconds: float = PPM_PEAK_HOLD_S

    def reset(self):
        self.left.reset()
        self.right.reset()
        self.reset_peak_hold()

    def reset_peak_hold(self):
        self.hold_left.reset()
        self.hold_right.reset()


def new_ppm_state(sample_rate: float, detector: str = "rc",
                  peak_hold_seconds: float = PPM_PEAK_HOLD_S) -> PPMState:
    return PPMState(
        left=make_detector(detector, sample_rate),
        right=make_detector(detector, sample_rate),
        peak_hold_seconds=peak_hold_seconds,
    )


def ppm_step(
    left: np.ndarray,
    right: np.ndarray,
    dt: float,
    state: PPMState,
) -> Tuple[Tuple[PPMReading, PPMReading], PPMState]:
    """Run both detectors for one block, clamp to the scale, update peak hold."""
    readings = []
    for samples, detector, hold in (
        (left, state.left, state.hold_left),
        (right, state.right, state.hold_right),
    ):
        display = clamp_to_scale(detector.update(samples, dt))
        peak = hold.step(display, dt, state.peak_hold_seconds)
        readings.append(PPMReading(display_dbfs=display, peak_hold_dbfs=peak, silent=is_silent(display)))
    return (readings[0], readings[1]), state
