import numpy as np
import pytest

from broadcast_meter.metering.ppm import (
    PPM_DECAY_DB_PER_S,
    PPM_MAX_DBFS,
    PPM_MIN_DBFS,
    PPM_SCALE_MARKINGS,
    PPMDetector,
    PeakHold,
    RCDetector,
    WindowDetector,
    clamp_to_scale,
    dbfs_to_dbu,
    dbfs_to_ppm,
    is_silent,
    make_detector,
    new_ppm_state,
    ppm_step,
    ppm_to_dbfs,
)
from conftest import sine


def test_scale_conversions():
    assert dbfs_to_ppm(-18.0) == 0.0
    assert ppm_to_dbfs(6.0) == -12.0
    assert dbfs_to_dbu(-9.0) == 9.0
    for mark in PPM_SCALE_MARKINGS:
        assert dbfs_to_ppm(mark["dbfs"]) == mark["ppm"]
    assert [m["label"] for m in PPM_SCALE_MARKINGS if m["ppm"] == 6] == ["TEST"]


def test_clamp_and_silence():
    assert clamp_to_scale(0.0) == PPM_MAX_DBFS
    assert clamp_to_scale(-100.0) == PPM_MIN_DBFS
    assert clamp_to_scale(-30.0) == -30.0
    assert is_silent(-53.0)
    assert not is_silent(-52.9)


def test_unknown_detector():
    with pytest.raises(ValueError):
        make_detector("vu", 48000)
    assert isinstance(make_detector("rc", 48000), RCDetector)
    assert isinstance(make_detector("window", 48000), WindowDetector)


def test_detector_interface_is_abstract():
    with pytest.raises(TypeError):
        PPMDetector()

    class Incomplete(PPMDetector):
        def reset(self):
            pass

    with pytest.raises(TypeError):
        Incomplete()


def test_peak_hold_resets_to_its_floor():
    hold = PeakHold(level=float("-inf"), floor=float("-inf"))
    assert hold.step(-3.0, 0.1, 3.0) == -3.0
    hold.reset()
    assert hold.level == float("-inf")
    assert PeakHold().level == PPM_MIN_DBFS


class TestWindowDetector:
    def test_decay_rate(self):
        assert PPM_DECAY_DB_PER_S == pytest.approx(11.76, abs=0.1)

    def test_instant_attack_and_linear_fall(self):
        det = WindowDetector(48000)
        assert det.update(np.ones(240), 0.005) == pytest.approx(0.0, abs=1e-6)

        level = det.update(np.zeros(int(1.7 * 48000)), 1.7)
        assert abs(level - (-20.0)) < 0.5

    def test_hysteresis_holds_steady_tone(self):
        det = WindowDetector(48000)
        x = sine(1000, 0.1, 4800)
        first = det.update(x, 0.1)
        for _ in range(10):
            assert det.update(x, 0.1) == pytest.approx(first, abs=0.1)

    def test_floor(self):
        det = WindowDetector(48000)
        det.update(np.ones(240), 0.005)
        assert det.update(np.zeros(48000 * 10), 10.0) == PPM_MIN_DBFS


class TestRCDetector:
    def test_step_response_within_5ms(self):
        det = RCDetector(48000)
        level = det.update(np.ones(240), 0.005)
        assert level > -1.0

    def test_release(self):
        det = RCDetector(48000)
        det.envelope = 1.0
        level = det.update(np.zeros(int(1.7 * 48000)), 1.7)
        assert abs(level - (-20.0)) < 0.5

    def test_steady_sine(self):
        det = RCDetector(48000)
        x = sine(1000, 0.1, 48000)
        assert abs(det.update(x, 1.0) - (-20.0)) < 1.0

    def test_envelope_persists_across_blocks(self):
        x = sine(1000, 0.1, 4800)
        whole = RCDetector(48000)
        whole_level = whole.update(np.concatenate([x, x]), 0.2)
        split = RCDetector(48000)
        split.update(x, 0.1)
        assert split.update(x, 0.1) == pytest.approx(whole_level, abs=1e-9)


class TestPPMState:
    def test_display_stays_on_scale(self):
        rng = np.random.default_rng(7)
        state = new_ppm_state(48000, "rc")
        for scale in (0.0, 1e-4, 0.05, 1.0, 4.0):
            x = rng.uniform(-scale, scale, 1024)
            (left, right), state = ppm_step(x, x, 1024 / 48000, state)
            assert PPM_MIN_DBFS <= left.display_dbfs <= PPM_MAX_DBFS
            assert PPM_MIN_DBFS <= right.display_dbfs <= PPM_MAX_DBFS

    def test_silence_flag(self):
        state = new_ppm_state(48000, "window")
        (left, _), _ = ppm_step(np.zeros(1024), np.zeros(1024), 1024 / 48000, state)
        assert left.silent
        assert left.ppm == pytest.approx(-36.0)

    def test_peak_hold_three_seconds(self):
        state = new_ppm_state(48000, "window")
        loud = np.full(4800, 0.5)
        silence = np.zeros(4800)

        (left, _), state = ppm_step(loud, loud, 0.1, state)
        assert left.peak_hold_dbfs == PPM_MAX_DBFS

        for _ in range(29):
            (left, _), state = ppm_step(silence, silence, 0.1, state)
        assert left.peak_hold_dbfs == PPM_MAX_DBFS

        for _ in range(3):
            (left, _), state = ppm_step(silence, silence, 0.1, state)
        assert left.peak_hold_dbfs < PPM_MAX_DBFS
        assert left.peak_hold_dbfs >= left.display_dbfs

    def test_reset_peak_hold(self):
        state = new_ppm_state(48000, "rc")
        loud = np.full(4800, 0.5)
        ppm_step(loud, loud, 0.1, state)
        state.reset_peak_hold()
        assert state.hold_left.level == PPM_MIN_DBFS
        assert state.hold_right.level == PPM_MIN_DBFS

    def test_reset(self):
        state = new_ppm_state(48000, "rc")
        loud = np.full(4800, 0.5)
        ppm_step(loud, loud, 0.1, state)
        state.reset()
        assert state.left.envelope == 0.0
        assert state.hold_left.timer == 0.0
