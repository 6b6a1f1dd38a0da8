import argparse
import logging
from typing import Optional, Tuple

import numpy as np
import soundfile as sf
from rich.console import Console
from rich.panel import Panel

from broadcast_meter.core.config_manager import ConfigManager
from broadcast_meter.core.report import save_results_to_csv, snapshot_row, snapshot_table
from broadcast_meter.metering import ConfigurationError, MeterEngine
from broadcast_meter.metering.lufs import loudness_zone

from .base import MeasurementModule

logger = logging.getLogger(__name__)


def load_stereo_file(filepath: str) -> Tuple[Optional[np.ndarray], Optional[int]]:
    """
    Loads an audio file as a (frames, 2) float64 array.

    Mono files are duplicated to both channels; files with more than two
    channels keep the first two. Returns (None, None) if the file cannot be read.
    """
    try:
        data, sample_rate = sf.read(filepath, dtype='float64', always_2d=True)
    except (RuntimeError, OSError) as e:
        logger.error(f"Could not read audio file '{filepath}': {e}")
        return None, None

    if data.shape[1] == 1:
        data = np.repeat(data, 2, axis=1)
    elif data.shape[1] > 2:
        logger.warning(f"Audio has {data.shape[1]} channels, metering the first two.")
        data = data[:, :2]
    return data, int(sample_rate)


def iter_blocks(data: np.ndarray, block_size: int):
    """Yield (left, right) blocks; the last partial block is zero-padded."""
    n = data.shape[0]
    for start in range(0, n, block_size):
        block = data[start:start + block_size]
        if block.shape[0] < block_size:
            block = np.pad(block, ((0, block_size - block.shape[0]), (0, 0)))
        yield block[:, 0], block[:, 1]


class FileMeter(MeasurementModule):
    """Runs the meters over an audio file as if it were played back live."""

    @property
    def name(self) -> str:
        return "file"

    @property
    def description(self) -> str:
        return "Meter an audio file and print a loudness/peak summary."

    def add_arguments(self, parser: argparse.ArgumentParser):
        parser.add_argument("filepath", nargs="?", default=None, help="Path to the input audio file.")
        parser.add_argument("-o", "--output_file", type=str, default=None,
                            help="Optional CSV file for per-block readings.")
        parser.add_argument("-t", "--target_loudness", type=float, default=None,
                            help="Target integrated loudness in LUFS (defaults to config).")
        parser.add_argument("--block-size", type=int, default=None)
        parser.add_argument("--integration-mode", choices=["streaming", "two_pass"], default=None)

    def run(self, args: argparse.Namespace) -> int:
        console = getattr(args, "console", None) or Console()
        config = getattr(args, "config_manager", None) or ConfigManager()

        filepath = getattr(args, "filepath", None)
        if not filepath:
            console.print("[bold red]Error: no audio file given.[/bold red]")
            return 2

        data, sample_rate = load_stereo_file(filepath)
        if data is None:
            console.print(f"[bold red]Error: Could not load audio file: {filepath}[/bold red]")
            return 1
        if data.shape[0] == 0:
            console.print(f"[bold red]Error: {filepath} contains no audio.[/bold red]")
            return 1

        meter_cfg = dict(config.get_meter_config())
        if getattr(args, "integration_mode", None):
            meter_cfg["integration_mode"] = args.integration_mode
        block_size = getattr(args, "block_size", None) or config.get_audio_config().get("block_size", 1024)
        target = getattr(args, "target_loudness", None)
        if target is None:
            target = meter_cfg.get("target_lufs", -23.0)

        try:
            meter = MeterEngine.from_config(meter_cfg, sample_rate, block_size)
        except ConfigurationError as e:
            console.print(f"[bold red]Invalid meter configuration: {e}[/bold red]")
            return 2

        want_csv = bool(getattr(args, "output_file", None))
        rows = []
        snapshot = None
        for left, right in iter_blocks(data, block_size):
            snapshot = meter.update(left, right, sample_rate=sample_rate)
            if want_csv:
                rows.append(snapshot_row(snapshot))

        console.print(snapshot_table(snapshot, target, title=f"Loudness Analysis: {filepath}",
                                     over=meter.true_peak_over))

        zone = loudness_zone(snapshot.lufs.integrated, target)
        if zone == "on-target":
            status = f"[green]Integrated loudness is within ±1 LU of {target:.1f} LUFS.[/green]"
        elif zone == "silent":
            status = "[dim]No gated programme material found.[/dim]"
        else:
            status = f"[yellow]Integrated loudness is {zone} relative to {target:.1f} LUFS.[/yellow]"
        console.print(Panel(status, title="Target Comparison", expand=False))

        if want_csv:
            if not save_results_to_csv(args.output_file, rows, console=console):
                return 1
        return 0
