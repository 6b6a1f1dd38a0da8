import argparse
import logging

from rich.console import Console
from rich.live import Live

from broadcast_meter.core.audio_engine import CHANNEL_MODES, AudioEngine, SourceChange
from broadcast_meter.core.config_manager import ConfigManager
from broadcast_meter.core.report import snapshot_table
from broadcast_meter.metering import ConfigurationError, MeterEngine

from .base import MeasurementModule

logger = logging.getLogger(__name__)


def apply_source_change(change: SourceChange, meter: MeterEngine, meter_cfg: dict) -> MeterEngine:
    """
    Returns the meter for the blocks that follow `change`.

    Same rate and block size: the meter is reset in place. Otherwise a new
    one is built for the new format, keeping the probe identity and observer.
    """
    if float(change.sample_rate) == meter.sample_rate and int(change.block_size) == meter.block_size:
        meter.reset()
        return meter

    logger.info(f"Capture format changed to {change.sample_rate} Hz / {change.block_size} samples, rebuilding meters")
    return MeterEngine.from_config(
        meter_cfg, change.sample_rate, change.block_size, observer=meter.observer, probe=meter.probe,
    )


class LiveMeter(MeasurementModule):
    """Meters a live input device and redraws a table while it runs."""

    @property
    def name(self) -> str:
        return "live"

    @property
    def description(self) -> str:
        return "Meter a live audio input (LUFS, true peak, PPM, stereo)."

    def add_arguments(self, parser: argparse.ArgumentParser):
        parser.add_argument("-d", "--device", type=int, default=None, help="Input device ID (see 'devices').")
        parser.add_argument("--channel", choices=CHANNEL_MODES, default=None,
                            help="Meter both inputs, or feed one input to both meters (defaults to config).")
        parser.add_argument("--duration", type=float, default=0.0,
                            help="Seconds to run; 0 runs until Ctrl-C.")
        parser.add_argument("--ppm-detector", choices=["rc", "window"], default=None)
        parser.add_argument("--refresh", type=float, default=4.0, help="Table refreshes per second.")

    def run(self, args: argparse.Namespace) -> int:
        console = getattr(args, "console", None) or Console()
        config = getattr(args, "config_manager", None) or ConfigManager()

        audio_cfg = config.get_audio_config()
        meter_cfg = dict(config.get_meter_config())
        if getattr(args, "ppm_detector", None):
            meter_cfg["ppm_detector"] = args.ppm_detector

        audio = AudioEngine()
        device = getattr(args, "device", None)
        try:
            audio.set_device(device if device is not None else audio_cfg.get("input_device"))
            audio.set_sample_rate(audio_cfg.get("sample_rate", 48000))
            audio.set_block_size(audio_cfg.get("block_size", 1024))
            audio.set_channel_mode(getattr(args, "channel", None) or audio_cfg.get("input_channels", "stereo"))
            meter = MeterEngine.from_config(meter_cfg, audio.sample_rate, audio.block_size)
        except (ConfigurationError, ValueError) as e:
            console.print(f"[bold red]Invalid meter configuration: {e}[/bold red]")
            return 2

        if not audio.start_stream():
            console.print("[bold red]Could not open the audio input. Check the device ID with 'devices'.[/bold red]")
            return 1

        target = meter_cfg.get("target_lufs", -23.0)
        duration = float(getattr(args, "duration", 0.0) or 0.0)
        refresh = max(0.5, float(getattr(args, "refresh", 4.0) or 4.0))

        snapshot = None
        try:
            with Live(console=console, auto_refresh=False) as live:
                while duration <= 0 or meter.elapsed < duration:
                    item = audio.read_block(timeout=1.0)
                    if item is None:
                        continue
                    if isinstance(item, SourceChange):
                        meter = apply_source_change(item, meter, meter_cfg)
                        continue

                    left, right = item
                    snapshot = meter.update(left, right)
                    blocks_per_refresh = max(1, int(round(meter.sample_rate / meter.block_size / refresh)))
                    if snapshot.timestamp.sequence % blocks_per_refresh == 0:
                        live.update(
                            snapshot_table(snapshot, target, title="Live Meter", over=meter.true_peak_over),
                            refresh=True,
                        )
        except KeyboardInterrupt:
            logger.info("Live metering interrupted")
        except ConfigurationError as e:
            logger.error(f"Block rejected by the meter: {e}")
            console.print(f"[bold red]Metering stopped: {e}[/bold red]")
            return 2
        finally:
            audio.stop_stream()

        if snapshot is not None:
            console.print(snapshot_table(snapshot, target, title="Final Reading", over=meter.true_peak_over))
        return 0
