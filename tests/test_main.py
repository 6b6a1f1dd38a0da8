from unittest.mock import patch

import pytest

try:
    import sounddevice  # noqa: F401  (imported by the devices/live modules)
except OSError:
    pytest.skip("PortAudio not available", allow_module_level=True)

from broadcast_meter import main as cli


def test_discover_modules():
    names = [m.name for m in cli.discover_modules()]
    assert names == ["devices", "file", "live"]


def test_file_command_dispatch(tmp_path):
    with patch("broadcast_meter.measurement_modules.file.FileMeter.run", return_value=0) as run:
        code = cli.main(["--config", str(tmp_path / "c.json"), "file", "song.wav", "-o", "out.csv"])
    assert code == 0
    args = run.call_args[0][0]
    assert args.filepath == "song.wav"
    assert args.output_file == "out.csv"
    assert args.config_manager.config_path == str(tmp_path / "c.json")


def test_interactive_selection(tmp_path):
    with patch("broadcast_meter.main.inquirer.prompt", return_value={"command": "devices"}), \
         patch("broadcast_meter.measurement_modules.devices.Devices.run", return_value=0) as run:
        code = cli.main(["--config", str(tmp_path / "c.json")])
    assert code == 0
    run.assert_called_once()


def test_interactive_cancel(tmp_path):
    with patch("broadcast_meter.main.inquirer.prompt", return_value=None):
        assert cli.main(["--config", str(tmp_path / "c.json")]) == 0


def test_devices_lists_inputs(capsys):
    fake = [
        {"name": "Mic", "max_input_channels": 2, "max_output_channels": 0, "default_samplerate": 48000.0},
        {"name": "Speakers", "max_input_channels": 0, "max_output_channels": 2, "default_samplerate": 44100.0},
    ]
    from broadcast_meter.measurement_modules.devices import Devices
    from argparse import Namespace

    with patch("broadcast_meter.core.audio_engine.sd.query_devices", return_value=fake):
        assert Devices().run(Namespace(all=False, console=None)) == 0
    out = capsys.readouterr().out
    assert "Mic" in out
    assert "Speakers" not in out
