import argparse
import io
from unittest.mock import MagicMock, patch

import numpy as np
import pytest
from rich.console import Console

try:
    import sounddevice  # noqa: F401  (imported by the live module)
except OSError:
    pytest.skip("PortAudio not available", allow_module_level=True)

from broadcast_meter.core.audio_engine import SourceChange
from broadcast_meter.core.config_manager import ConfigManager
from broadcast_meter.measurement_modules.live import LiveMeter, apply_source_change
from broadcast_meter.metering import MeterEngine
from conftest import sine


def _stereo(n, sample_rate):
    x = sine(1000.0, 0.25, n, sample_rate)
    return x, x.copy()


def test_same_format_resets_in_place():
    meter = MeterEngine(48000, 1024)
    meter.update(*_stereo(1024, 48000))

    result = apply_source_change(SourceChange(48000, 1024), meter, {})
    assert result is meter
    assert meter.elapsed == 0.0


def test_new_format_rebuilds_meter():
    observer = MagicMock()
    meter = MeterEngine.from_config({"ppm_detector": "window"}, 48000, 1024, observer=observer)
    meter.update(*_stereo(1024, 48000))

    rebuilt = apply_source_change(SourceChange(44100, 512), meter, {"ppm_detector": "window"})
    assert rebuilt is not meter
    assert rebuilt.sample_rate == 44100.0
    assert rebuilt.block_size == 512
    assert rebuilt.ppm_detector == "window"
    assert rebuilt.probe is meter.probe
    assert rebuilt.observer is observer

    snap = rebuilt.update(*_stereo(512, 44100), sample_rate=44100)
    assert snap.timestamp.sequence == 0


def _live_args(tmp_path, **overrides):
    out = io.StringIO()
    args = argparse.Namespace(
        device=None,
        channel=None,
        duration=0.05,
        ppm_detector=None,
        refresh=4.0,
        console=Console(file=out, width=120),
        config_manager=ConfigManager(str(tmp_path / "config.json")),
    )
    for k, v in overrides.items():
        setattr(args, k, v)
    return args, out


@patch("broadcast_meter.measurement_modules.live.AudioEngine")
def test_live_survives_format_change(mock_engine_cls, tmp_path):
    audio = MagicMock()
    audio.sample_rate = 48000
    audio.block_size = 1024
    audio.start_stream.return_value = True
    items = iter(
        [_stereo(1024, 48000), SourceChange(44100, 512)]
        + [_stereo(512, 44100) for _ in range(10)]
    )
    audio.read_block.side_effect = lambda timeout=1.0: next(items, None)
    mock_engine_cls.return_value = audio

    args, out = _live_args(tmp_path, channel="right")
    assert LiveMeter().run(args) == 0

    audio.set_channel_mode.assert_called_once_with("right")
    audio.set_device.assert_called_once_with(None)
    audio.stop_stream.assert_called_once()
    assert "Final Reading" in out.getvalue()


@patch("broadcast_meter.measurement_modules.live.AudioEngine")
def test_live_channel_mode_from_config(mock_engine_cls, tmp_path):
    audio = MagicMock()
    audio.sample_rate = 48000
    audio.block_size = 1024
    audio.start_stream.return_value = False
    mock_engine_cls.return_value = audio

    args, _ = _live_args(tmp_path)
    args.config_manager.set_audio_config(2, 48000, 1024, input_channels="left")
    assert LiveMeter().run(args) == 1

    audio.set_device.assert_called_once_with(2)
    audio.set_channel_mode.assert_called_once_with("left")


@patch("broadcast_meter.measurement_modules.live.AudioEngine")
def test_live_rejected_block_stops_cleanly(mock_engine_cls, tmp_path):
    audio = MagicMock()
    audio.sample_rate = 48000
    audio.block_size = 1024
    audio.start_stream.return_value = True
    items = iter([(np.zeros(512), np.zeros(512))])
    audio.read_block.side_effect = lambda timeout=1.0: next(items, None)
    mock_engine_cls.return_value = audio

    args, out = _live_args(tmp_path)
    assert LiveMeter().run(args) == 2
    audio.stop_stream.assert_called_once()
    assert "Metering stopped" in out.getvalue()
