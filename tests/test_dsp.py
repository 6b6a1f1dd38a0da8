import numpy as np

from broadcast_meter.core.dsp import (
    MAX_SAMPLE_MAGNITUDE,
    amplitude_to_db,
    db_to_amplitude,
    finite_level_or_silent,
    mean_square,
    rms,
    sample_peak,
    sanitize_block,
)
from conftest import sine


def test_db_conversions():
    assert abs(amplitude_to_db(1.0)) < 1e-9
    assert abs(amplitude_to_db(0.5) - (-6.02)) < 0.1
    for db in (-60.0, -18.0, -6.0, 0.0, 3.0):
        assert abs(db_to_amplitude(db) / 10 ** (db / 20) - 1.0) < 0.01
        assert abs(amplitude_to_db(db_to_amplitude(db)) - db) < 0.01


def test_sine_rms_and_crest_factor():
    x = sine(1000, 0.5, 48000)
    assert abs(rms(x) - 0.5 / np.sqrt(2)) < 0.001
    crest = amplitude_to_db(sample_peak(x)) - amplitude_to_db(rms(x))
    assert abs(crest - 3.01) < 0.1


def test_empty_inputs():
    assert mean_square(np.array([])) == 0.0
    assert sample_peak(np.array([])) == 0.0


def test_sanitize_block_replaces_non_finite():
    x = np.array([0.1, np.nan, -0.2, np.inf, -np.inf])
    clean, n_bad = sanitize_block(x)
    assert n_bad == 3
    assert np.all(np.isfinite(clean))
    assert clean.tolist() == [0.1, 0.0, -0.2, 0.0, 0.0]
    # input untouched
    assert np.isnan(x[1])


def test_sanitize_block_replaces_out_of_range_samples():
    x = np.array([0.5, 1e200, -1e200, 4.0, -MAX_SAMPLE_MAGNITUDE])
    clean, n_bad = sanitize_block(x)
    assert n_bad == 2
    # Clipped but plausible overs pass through unchanged
    assert clean.tolist() == [0.5, 0.0, 0.0, 4.0, -MAX_SAMPLE_MAGNITUDE]
    assert np.isfinite(mean_square(clean))


def test_sanitize_block_clean_input():
    x = np.array([0.1, 0.2], dtype=np.float32)
    clean, n_bad = sanitize_block(x)
    assert n_bad == 0
    assert clean.dtype == np.float64


def test_finite_level_or_silent():
    assert finite_level_or_silent(-23.0) == -23.0
    assert finite_level_or_silent(-120.5) == float("-inf")
    assert finite_level_or_silent(float("nan")) == float("-inf")
    assert finite_level_or_silent(None) == float("-inf")
    assert finite_level_or_silent(float("inf")) == float("-inf")
