import numpy as np

# Guards for logarithms and ratios on silent input.
LOG_EPSILON = 1e-12
CORRELATION_EPSILON = 1e-20

# Anything below this is reported as silence (-inf) in snapshots.
SILENCE_FLOOR_DB = -120.0

# Full scale is 1.0; anything past this is a capture fault, not audio.
MAX_SAMPLE_MAGNITUDE = 1e6


def amplitude_to_db(amplitude: float, eps: float = LOG_EPSILON) -> float:
    """Convert a linear amplitude (1.0 = full scale) to dB."""
    return float(20.0 * np.log10(float(amplitude) + eps))


def db_to_amplitude(db: float) -> float:
    """Inverse of `amplitude_to_db` (without the epsilon)."""
    return float(10.0 ** (float(db) / 20.0))


def mean_square(x: np.ndarray) -> float:
    x = np.asarray(x, dtype=np.float64)
    if x.size == 0:
        return 0.0
    # dot avoids allocating x**2 in the audio path
    return float(np.dot(x, x) / float(x.size))


def rms(x: np.ndarray) -> float:
    return float(np.sqrt(mean_square(x)))


def sample_peak(x: np.ndarray) -> float:
    x = np.asarray(x)
    if x.size == 0:
        return 0.0
    return float(np.max(np.abs(x)))


def sanitize_block(x: np.ndarray, max_magnitude: float = MAX_SAMPLE_MAGNITUDE) -> tuple[np.ndarray, int]:
    """Replace NaN/Inf and absurdly large samples with zero.

    Returns (clean float64 copy, number of replaced samples). A single bad
    sample from the capture side must never reach a persistent filter state,
    envelope or accumulator; squaring anything beyond `max_magnitude` can
    overflow the block energy.
    """
    x = np.asarray(x, dtype=np.float64)
    with np.errstate(invalid="ignore"):
        bad = ~np.isfinite(x) | (np.abs(x) > max_magnitude)
    n_bad = int(np.count_nonzero(bad))
    if n_bad == 0:
        return x, 0
    clean = x.copy()
    clean[bad] = 0.0
    return clean, n_bad


def finite_level_or_silent(value: float, floor_db: float = SILENCE_FLOOR_DB) -> float:
    """Map non-finite or sub-floor levels to -inf, never NaN."""
    if value is None:
        return float("-inf")
    v = float(value)
    if not np.isfinite(v) or v < floor_db:
        return float("-inf")
    return v
