import argparse

import sounddevice as sd
from rich.console import Console
from rich.table import Table

from broadcast_meter.core.audio_engine import AudioEngine

from .base import MeasurementModule


class Devices(MeasurementModule):
    """Lists capture devices usable as a meter input."""

    @property
    def name(self) -> str:
        return "devices"

    @property
    def description(self) -> str:
        return "List available audio input devices."

    def add_arguments(self, parser: argparse.ArgumentParser):
        parser.add_argument("--all", action="store_true", help="Include output-only devices.")

    def run(self, args: argparse.Namespace) -> int:
        console = getattr(args, "console", None) or Console()
        try:
            devices = AudioEngine().list_devices()
        except sd.PortAudioError as e:
            console.print(f"[bold red]Error querying audio devices: {e}[/bold red]")
            return 1

        table = Table(title="Available Audio Devices")
        table.add_column("ID", style="dim", width=5)
        table.add_column("Name", style="cyan", min_width=20)
        table.add_column("Max Input Ch", style="magenta", justify="right")
        table.add_column("Default SR (Hz)", style="yellow", justify="right")

        shown = 0
        for i, device in enumerate(devices):
            if device['max_input_channels'] < 1 and not getattr(args, "all", False):
                continue
            table.add_row(
                str(i),
                device['name'],
                str(device['max_input_channels']),
                str(int(device['default_samplerate'])),
            )
            shown += 1

        if shown == 0:
            console.print("No audio input devices found.")
            return 1
        console.print(table)
        return 0
