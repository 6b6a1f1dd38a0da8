"""K-weighting pre-filter (ITU-R BS.1770-4, section 2.1).

Two cascaded biquads per channel: a 38 Hz high-pass (RLB weighting) followed
by a +4 dB high shelf around 4 kHz. The literal coefficients published in the
recommendation are only valid at 48 kHz; other rates get coefficients
re-derived from the analog prototype.
"""
import logging

import numpy as np
from scipy import signal

logger = logging.getLogger(__name__)

REFERENCE_SAMPLE_RATE = 48000

# BS.1770-4 Table 1/2 coefficients, 48 kHz only.
HIGHPASS_B_48K = (1.0, -2.0, 1.0)
HIGHPASS_A_48K = (1.0, -1.99004745483398, 0.99007225036621)
HIGHSHELF_B_48K = (1.53512485958697, -2.69169618940638, 1.19839281085285)
HIGHSHELF_A_48K = (1.0, -1.69065929318241, 0.73248077421585)

# Analog prototype fitted to the 48 kHz coefficients.
HIGHPASS_F0 = 38.13547087613982
HIGHPASS_Q = 0.5003270373253953
HIGHSHELF_F0 = 1681.9744509555319
HIGHSHELF_GAIN_DB = 3.99984385397
HIGHSHELF_Q = 0.7071752369554193

K_WEIGHTING_MODES = ("auto", "exact")


def _design_highpass(sample_rate: float):
    K = np.tan(np.pi * HIGHPASS_F0 / sample_rate)
    norm = 1.0 + K / HIGHPASS_Q + K * K
    a1 = 2.0 * (K * K - 1.0) / norm
    a2 = (1.0 - K / HIGHPASS_Q + K * K) / norm
    return np.array([1.0, -2.0, 1.0]), np.array([1.0, a1, a2])


def _design_highshelf(sample_rate: float):
    K = np.tan(np.pi * HIGHSHELF_F0 / sample_rate)
    Vh = np.power(10.0, HIGHSHELF_GAIN_DB / 20.0)
    Vb = np.power(Vh, 0.499666774155)
    norm = 1.0 + K / HIGHSHELF_Q + K * K
    b0 = (Vh + Vb * K / HIGHSHELF_Q + K * K) / norm
    b1 = 2.0 * (K * K - Vh) / norm
    b2 = (Vh - Vb * K / HIGHSHELF_Q + K * K) / norm
    a1 = 2.0 * (K * K - 1.0) / norm
    a2 = (1.0 - K / HIGHSHELF_Q + K * K) / norm
    return np.array([b0, b1, b2]), np.array([1.0, a1, a2])


def k_weighting_sos(sample_rate: float, mode: str = "auto") -> np.ndarray:
    """Return the K-weighting cascade as a (2, 6) second-order-section array.

    mode:
      - "auto":  literal coefficients at 48 kHz, re-designed elsewhere.
      - "exact": literal 48 kHz coefficients at every rate. Off-rate use is
                 logged as a warning since the error can exceed 0.1 dB.
    """
    sample_rate = float(sample_rate)
    if sample_rate <= 0:
        raise ValueError("Invalid sample rate")
    if mode not in K_WEIGHTING_MODES:
        raise ValueError(f"Unknown K-weighting mode: {mode!r}")

    if sample_rate == REFERENCE_SAMPLE_RATE or mode == "exact":
        if sample_rate != REFERENCE_SAMPLE_RATE:
            logger.warning(
                "K-weighting: exact BS.1770 coefficients are defined for 48 kHz only; "
                "running at %g Hz, readings may deviate by more than 0.1 dB",
                sample_rate,
            )
        hp_b, hp_a = HIGHPASS_B_48K, HIGHPASS_A_48K
        hs_b, hs_a = HIGHSHELF_B_48K, HIGHSHELF_A_48K
    else:
        logger.info("K-weighting: designing coefficients for %g Hz", sample_rate)
        hp_b, hp_a = _design_highpass(sample_rate)
        hs_b, hs_a = _design_highshelf(sample_rate)

    return np.array([
        [hp_b[0], hp_b[1], hp_b[2], hp_a[0], hp_a[1], hp_a[2]],
        [hs_b[0], hs_b[1], hs_b[2], hs_a[0], hs_a[1], hs_a[2]],
    ], dtype=np.float64)


class KWeightingFilter:
    """Causal single-channel K-weighting filter with persistent state.

    - `apply(x)` returns a new filtered buffer and advances the state.
    - `reset()` clears both biquad states to zero.
    """

    def __init__(self, sample_rate: float, mode: str = "auto"):
        self.sample_rate = float(sample_rate)
        self.mode = mode
        self.sos = k_weighting_sos(self.sample_rate, mode)
        self._zi = np.zeros((self.sos.shape[0], 2), dtype=np.float64)

    @property
    def state(self) -> np.ndarray:
        return self._zi.copy()

    def reset(self):
        self._zi.fill(0.0)

    def apply(self, x: np.ndarray) -> np.ndarray:
        x = np.asarray(x, dtype=np.float64)
        if x.size == 0:
            return x.copy()
        y, self._zi = signal.sosfilt(self.sos, x, zi=self._zi)
        return y


def frequency_response_db(sos: np.ndarray, frequencies, sample_rate: float) -> np.ndarray:
    """Magnitude response of a cascade in dB at the given frequencies (Hz)."""
    _, h = signal.sosfreqz(sos, worN=np.asarray(frequencies, dtype=np.float64), fs=sample_rate)
    return 20.0 * np.log10(np.abs(h) + 1e-20)
