import numpy as np
import pytest

from broadcast_meter.metering.lufs import (
    block_energy,
    energy_to_lufs,
    gated_integrated_loudness,
    loudness_offset,
    loudness_range,
    loudness_readings,
    loudness_zone,
    lufs_to_energy,
    new_loudness_state,
    push_energy,
)


def _push(state, lufs, count):
    e = lufs_to_energy(lufs)
    for _ in range(count):
        push_energy(state, e)
    return state


def test_energy_lufs_conversion():
    assert energy_to_lufs(1.0) == pytest.approx(-0.691, abs=1e-6)
    assert energy_to_lufs(0.0) == pytest.approx(-120.691, abs=1e-6)
    assert energy_to_lufs(lufs_to_energy(-23.0)) == pytest.approx(-23.0, abs=1e-6)
    assert lufs_to_energy(float("-inf")) == 0.0


def test_block_energy_is_mean_of_channel_mean_squares():
    left = np.full(100, 0.5)
    right = np.zeros(100)
    assert block_energy(left, right) == pytest.approx(0.125)
    assert block_energy(np.array([]), np.array([])) == 0.0


def test_window_lengths():
    state = new_loudness_state(48000, 4800)
    assert state.momentary_length == 4
    assert state.short_term_length == 30
    assert state.history_capacity == 20

    state = new_loudness_state(48000, 1024)
    assert state.momentary_length == 19
    assert state.short_term_length == 141

    # Blocks longer than the window still keep one entry
    assert new_loudness_state(1000, 4000).momentary_length == 1


def test_invalid_parameters():
    with pytest.raises(ValueError):
        new_loudness_state(0, 1024)
    with pytest.raises(ValueError):
        new_loudness_state(48000, 1024, integration_mode="offline")


def test_empty_state_readings():
    r = loudness_readings(new_loudness_state(48000, 4800))
    assert r.momentary == float("-inf")
    assert r.short_term == float("-inf")
    assert r.integrated == float("-inf")
    assert r.lra is None


def test_steady_level():
    state = _push(new_loudness_state(48000, 4800), -20.0, 100)
    r = loudness_readings(state)
    assert r.momentary == pytest.approx(-20.0, abs=1e-6)
    assert r.short_term == pytest.approx(-20.0, abs=1e-6)
    assert r.integrated == pytest.approx(-20.0, abs=1e-6)


def test_silence_never_enters_integrated():
    state = _push(new_loudness_state(48000, 4800), -80.0, 100)
    assert state.integrated_count == 0
    assert loudness_readings(state).integrated == float("-inf")


def test_gate_closes_once_short_term_drops():
    state = _push(new_loudness_state(48000, 4800), -20.0, 100)
    loud_count = state.integrated_count

    # Silent blocks are still admitted while the short-term window is loud
    _push(state, -90.0, 100)
    count_after_silence = state.integrated_count
    assert count_after_silence > loud_count

    _push(state, -90.0, 100)
    assert state.integrated_count == count_after_silence


def test_history_receives_evicted_short_term_values():
    state = new_loudness_state(48000, 4800)
    for i in range(35):
        push_energy(state, float(i + 1))
    assert len(state.short_term) == 30
    assert list(state.history) == [1.0, 2.0, 3.0, 4.0, 5.0]


def test_history_is_bounded():
    state = _push(new_loudness_state(48000, 4800), -20.0, 200)
    assert len(state.history) == 20


def test_lra_availability_threshold():
    state = _push(new_loudness_state(48000, 4800), -20.0, 44)
    assert len(state.history) == 14
    assert loudness_readings(state).lra is None

    _push(state, -20.0, 1)
    lra = loudness_readings(state).lra
    assert lra is not None
    assert lra == pytest.approx(0.0, abs=1e-9)


def test_loudness_range_percentiles():
    history = [lufs_to_energy(-30.0)] * 10 + [lufs_to_energy(-20.0)] * 10
    assert loudness_range(history, -22.0) == pytest.approx(10.0, abs=1e-6)


def test_loudness_range_relative_gate():
    history = [lufs_to_energy(-20.0)] * 14 + [lufs_to_energy(-60.0)] * 6
    # The -60 entries fall below integrated - 20 LU, leaving too few
    assert loudness_range(history, -20.0) is None
    assert loudness_range(history[:14], -20.0) is None


def test_gated_integrated_loudness():
    assert gated_integrated_loudness([]) == float("-inf")
    assert gated_integrated_loudness([lufs_to_energy(-80.0)] * 5) == float("-inf")

    blocks = [lufs_to_energy(-20.0)] * 10 + [lufs_to_energy(-80.0)] * 10
    assert gated_integrated_loudness(blocks) == pytest.approx(-20.0, abs=1e-6)

    # -35 LUFS blocks fall under the relative gate (ungated mean - 10 LU)
    blocks = [lufs_to_energy(-20.0)] * 10 + [lufs_to_energy(-35.0)] * 10
    assert gated_integrated_loudness(blocks) == pytest.approx(-20.0, abs=1e-6)


def test_two_pass_mode_records_gating_blocks():
    state = new_loudness_state(48000, 4800, integration_mode="two_pass")
    _push(state, -20.0, 3)
    assert state.gating_blocks == []
    _push(state, -20.0, 1)
    assert len(state.gating_blocks) == 1


def test_two_pass_and_streaming_agree_on_steady_tone():
    streaming = _push(new_loudness_state(48000, 4800), -18.0, 300)
    two_pass = _push(new_loudness_state(48000, 4800, integration_mode="two_pass"), -18.0, 300)
    a = loudness_readings(streaming).integrated
    b = loudness_readings(two_pass).integrated
    assert abs(a - b) < 0.5


def test_reset():
    state = _push(new_loudness_state(48000, 4800, integration_mode="two_pass"), -20.0, 60)
    state.reset()
    assert not state.momentary and not state.short_term and not state.history
    assert state.integrated_count == 0 and state.integrated_sum == 0.0
    assert state.gating_blocks == []


def test_loudness_zones():
    assert loudness_zone(-23.0) == "on-target"
    assert loudness_zone(-22.0) == "on-target"
    assert loudness_zone(-24.0) == "on-target"
    assert loudness_zone(-25.0) == "quiet"
    assert loudness_zone(-21.0) == "loud"
    assert loudness_zone(-19.0) == "too-loud"
    assert loudness_zone(float("-inf")) == "silent"
    assert loudness_zone(None) == "silent"
    assert loudness_zone(-24.0, target=-24.0) == "on-target"


def test_loudness_offset():
    assert loudness_offset(-20.0) == pytest.approx(3.0)
    assert loudness_offset(-26.0, target=-24.0) == pytest.approx(-2.0)
