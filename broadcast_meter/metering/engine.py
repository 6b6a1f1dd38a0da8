import logging
import time

import numpy as np

from broadcast_meter.core.dsp import (
    SILENCE_FLOOR_DB,
    amplitude_to_db,
    finite_level_or_silent,
    sample_peak,
    sanitize_block,
)
from broadcast_meter.metering.k_weighting import K_WEIGHTING_MODES, KWeightingFilter
from broadcast_meter.metering.lufs import (
    DEFAULT_HISTORY_SECONDS,
    INTEGRATION_MODES,
    block_energy,
    loudness_readings,
    new_loudness_state,
    push_energy,
)
from broadcast_meter.metering.ppm import PPM_DETECTORS, new_ppm_state, ppm_step
from broadcast_meter.metering.snapshot import (
    SCHEMA_VERSION,
    LufsMetrics,
    MetricsSnapshot,
    PPMMetrics,
    ProbeIdentity,
    Readiness,
    StereoMetrics,
    Timestamp,
    TruePeakMetrics,
)
from broadcast_meter.metering.stereo import StereoState, stereo_step
from broadcast_meter.metering.true_peak import TRUE_PEAK_LIMIT_EBU, TruePeakState, true_peak_step

# Seconds of capture before each reading is considered settled.
MOMENTARY_READY_S = 1.0
SHORT_TERM_READY_S = 10.0
INTEGRATED_READY_S = 30.0

_READY_TOLERANCE_S = 1e-9


class ConfigurationError(ValueError):
    """Invalid engine parameters or a block that does not match them."""


class MeterEngine:
    """Runs every meter on each stereo block and produces a MetricsSnapshot.

    The engine owns all detector state. It is not thread-safe: a single
    consumer feeds it blocks in order.

    `observer`, if given, receives `observer.on_anomaly(kind, detail)` for
    recoverable input problems such as non-finite or out-of-range samples.
    """

    def __init__(
        self,
        sample_rate,
        block_size,
        *,
        ppm_detector="rc",
        integration_mode="streaming",
        k_weighting="auto",
        lra_history_seconds=DEFAULT_HISTORY_SECONDS,
        true_peak_limit=TRUE_PEAK_LIMIT_EBU,
        probe=None,
        observer=None,
        clock=time.time,
    ):
        self.logger = logging.getLogger(__name__)

        if not sample_rate or sample_rate <= 0:
            raise ConfigurationError(f"sample_rate must be positive, got {sample_rate!r}")
        if not block_size or int(block_size) <= 0:
            raise ConfigurationError(f"block_size must be positive, got {block_size!r}")
        if ppm_detector not in PPM_DETECTORS:
            raise ConfigurationError(f"Unknown PPM detector: {ppm_detector!r}")
        if integration_mode not in INTEGRATION_MODES:
            raise ConfigurationError(f"Unknown integration mode: {integration_mode!r}")
        if k_weighting not in K_WEIGHTING_MODES:
            raise ConfigurationError(f"Unknown K-weighting mode: {k_weighting!r}")
        if lra_history_seconds <= 0:
            raise ConfigurationError("lra_history_seconds must be positive")

        self.sample_rate = float(sample_rate)
        self.block_size = int(block_size)
        self.block_duration = self.block_size / self.sample_rate
        self.ppm_detector = ppm_detector
        self.integration_mode = integration_mode
        self.probe = probe if probe is not None else ProbeIdentity()
        self.observer = observer
        self._clock = clock

        self._k_left = KWeightingFilter(self.sample_rate, k_weighting)
        self._k_right = KWeightingFilter(self.sample_rate, k_weighting)
        self.loudness = new_loudness_state(
            self.sample_rate,
            self.block_size,
            history_seconds=lra_history_seconds,
            integration_mode=integration_mode,
        )
        self.true_peak = TruePeakState(limit_dbtp=float(true_peak_limit))
        self.ppm = new_ppm_state(self.sample_rate, ppm_detector)
        self.stereo = StereoState()

        self._blocks = 0
        self._sequence = 0

        self.logger.debug(
            "MeterEngine: %g Hz, block %d, ppm=%s, integration=%s, k=%s",
            self.sample_rate, self.block_size, ppm_detector, integration_mode, k_weighting,
        )

    @classmethod
    def from_config(cls, meter_config, sample_rate, block_size, observer=None, clock=time.time, probe=None):
        """Build an engine from the `meter` section of the configuration.

        Pass `probe` to keep an existing identity instead of minting one from
        the configured name and location.
        """
        cfg = meter_config or {}
        if probe is None:
            probe = ProbeIdentity(
                name=cfg.get("probe_name", "Broadcast Meter"),
                location=cfg.get("probe_location", ""),
            )
        return cls(
            sample_rate,
            block_size,
            ppm_detector=cfg.get("ppm_detector", "rc"),
            integration_mode=cfg.get("integration_mode", "streaming"),
            k_weighting=cfg.get("k_weighting", "auto"),
            lra_history_seconds=cfg.get("lra_history_seconds", DEFAULT_HISTORY_SECONDS),
            true_peak_limit=cfg.get("true_peak_limit", TRUE_PEAK_LIMIT_EBU),
            probe=probe,
            observer=observer,
            clock=clock,
        )

    @property
    def elapsed(self) -> float:
        """Capture time processed since the last reset, in seconds."""
        return self._blocks * self.block_duration

    @property
    def true_peak_over(self) -> bool:
        return self.true_peak.over

    def reset(self):
        """Clear every detector, the elapsed time and the sequence counter."""
        self._k_left.reset()
        self._k_right.reset()
        self.loudness.reset()
        self.true_peak.reset()
        self.ppm.reset()
        self.stereo.reset()
        self._blocks = 0
        self._sequence = 0
        self.logger.info("Meter reset")

    def _notify(self, kind, detail):
        if self.observer is not None:
            self.observer.on_anomaly(kind, detail)

    def _validate(self, left, right, sample_rate):
        if left.ndim != 1 or right.ndim != 1:
            raise ConfigurationError("left and right must be one-dimensional sample arrays")
        if left.size != right.size:
            raise ConfigurationError(
                f"Channel length mismatch: left={left.size}, right={right.size}"
            )
        if left.size != self.block_size:
            raise ConfigurationError(
                f"Block length {left.size} does not match configured block size {self.block_size}; "
                "reset or rebuild the engine"
            )
        if sample_rate is not None and float(sample_rate) != self.sample_rate:
            raise ConfigurationError(
                f"Sample rate {sample_rate} does not match configured rate {self.sample_rate:g}; "
                "reset or rebuild the engine"
            )

    def update(self, left, right, sample_rate=None, sequence=None, capture_time=None, dt=None):
        left = np.asarray(left, dtype=np.float64)
        right = np.asarray(right, dtype=np.float64)
        self._validate(left, right, sample_rate)

        seq = self._sequence if sequence is None else int(sequence)
        self._sequence = seq + 1

        left, bad_left = sanitize_block(left)
        right, bad_right = sanitize_block(right)
        if bad_left or bad_right:
            self.logger.warning(
                "Non-finite or out-of-range samples replaced with silence (block %d: left=%d, right=%d)",
                seq, bad_left, bad_right,
            )
            self._notify("invalid_samples", {"sequence": seq, "left": bad_left, "right": bad_right})

        block_dt = self.block_duration if dt is None else float(dt)

        # Loudness path (K-weighted)
        energy = block_energy(self._k_left.apply(left), self._k_right.apply(right))
        push_energy(self.loudness, energy)
        loud = loudness_readings(self.loudness)

        # Peak and stereo paths (raw)
        (tp_left, tp_right), _ = true_peak_step(left, right, self.true_peak, dt=block_dt)
        (ppm_left, ppm_right), _ = ppm_step(left, right, block_dt, self.ppm)
        stereo, _ = stereo_step(left, right, self.stereo)

        self._blocks += 1
        elapsed = self.elapsed + _READY_TOLERANCE_S
        readiness = Readiness(
            momentary=elapsed >= MOMENTARY_READY_S,
            short_term=elapsed >= SHORT_TERM_READY_S,
            integrated=elapsed >= INTEGRATED_READY_S,
            range=elapsed >= INTEGRATED_READY_S,
        )

        block_peak_db = amplitude_to_db(max(sample_peak(left), sample_peak(right)))

        lra = loud.lra
        if lra is not None and not np.isfinite(lra):
            lra = None

        return MetricsSnapshot(
            schema_version=SCHEMA_VERSION,
            probe=self.probe,
            timestamp=Timestamp(
                capture_time=self.elapsed if capture_time is None else float(capture_time),
                wall_clock=float(self._clock()),
                sequence=seq,
            ),
            lufs=LufsMetrics(
                momentary=finite_level_or_silent(loud.momentary),
                short_term=finite_level_or_silent(loud.short_term),
                integrated=finite_level_or_silent(loud.integrated),
                range=lra,
            ),
            true_peak=TruePeakMetrics(
                left=finite_level_or_silent(tp_left),
                right=finite_level_or_silent(tp_right),
                max=finite_level_or_silent(self.true_peak.max_dbtp),
                hold_left=finite_level_or_silent(self.true_peak.hold_left.level),
                hold_right=finite_level_or_silent(self.true_peak.hold_right.level),
            ),
            ppm=PPMMetrics(
                left=finite_level_or_silent(ppm_left.display_dbfs),
                right=finite_level_or_silent(ppm_right.display_dbfs),
                hold_left=finite_level_or_silent(ppm_left.peak_hold_dbfs),
                hold_right=finite_level_or_silent(ppm_right.peak_hold_dbfs),
            ),
            stereo=StereoMetrics(
                correlation=stereo.correlation,
                balance=stereo.balance,
                width=stereo.width,
            ),
            is_active=block_peak_db > SILENCE_FLOOR_DB,
            readiness=readiness,
        )
