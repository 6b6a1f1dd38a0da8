import csv
import os

from rich.console import Console
from rich.table import Table

from broadcast_meter.core.utils import (
    format_balance,
    format_correlation,
    format_dbu,
    format_duration,
    format_lra,
    format_lufs,
    format_ppm,
    format_true_peak,
)
from broadcast_meter.metering.lufs import loudness_offset, loudness_zone
from broadcast_meter.metering.ppm import dbfs_to_dbu, dbfs_to_ppm
from broadcast_meter.metering.stereo import correlation_zone

_ZONE_STYLES = {
    "on-target": "green",
    "quiet": "cyan",
    "loud": "yellow",
    "too-loud": "bold red",
    "silent": "dim",
    "good": "green",
    "caution": "yellow",
    "problem": "bold red",
}

CSV_FIELDS = [
    "sequence",
    "capture_time",
    "momentary_lufs",
    "short_term_lufs",
    "integrated_lufs",
    "lra_lu",
    "true_peak_left_dbtp",
    "true_peak_right_dbtp",
    "true_peak_max_dbtp",
    "true_peak_hold_left_dbtp",
    "true_peak_hold_right_dbtp",
    "ppm_left_dbfs",
    "ppm_right_dbfs",
    "ppm_hold_left_dbfs",
    "ppm_hold_right_dbfs",
    "correlation",
    "balance",
    "width",
    "is_active",
]


def _styled(text, zone):
    style = _ZONE_STYLES.get(zone)
    return f"[{style}]{text}[/{style}]" if style else text


def _pending(text, ready):
    return text if ready else f"[dim]{text} (settling)[/dim]"


def snapshot_table(snapshot, target_lufs=-23.0, title="Broadcast Meter", over=False) -> Table:
    """Render one MetricsSnapshot as a two-column rich Table."""
    lufs = snapshot.lufs
    ready = snapshot.readiness

    table = Table(title=title, show_header=True, header_style="bold magenta")
    table.add_column("Metric", style="dim", width=22)
    table.add_column("Value", min_width=24)

    table.add_row("Elapsed", format_duration(snapshot.timestamp.capture_time))
    table.add_row(
        "Momentary",
        _pending(_styled(format_lufs(lufs.momentary), loudness_zone(lufs.momentary, target_lufs)), ready.momentary),
    )
    table.add_row(
        "Short-term",
        _pending(_styled(format_lufs(lufs.short_term), loudness_zone(lufs.short_term, target_lufs)), ready.short_term),
    )
    integrated = _styled(format_lufs(lufs.integrated), loudness_zone(lufs.integrated, target_lufs))
    if lufs.integrated != float("-inf"):
        integrated += f" ({loudness_offset(lufs.integrated, target_lufs):+.1f} LU)"
    table.add_row("Integrated", _pending(integrated, ready.integrated))
    table.add_row("Loudness range", _pending(format_lra(lufs.range), ready.range))

    tp = snapshot.true_peak
    tp_max = format_true_peak(tp.max)
    if over:
        tp_max = f"[bold red]{tp_max} OVER[/bold red]"
    table.add_row("True peak L / R", f"{format_true_peak(tp.left)} / {format_true_peak(tp.right)}")
    table.add_row("True peak hold L / R", f"{format_true_peak(tp.hold_left)} / {format_true_peak(tp.hold_right)}")
    table.add_row("True peak max", tp_max)

    ppm = snapshot.ppm
    table.add_row(
        "PPM L / R",
        f"{format_ppm(dbfs_to_ppm(ppm.left))} / {format_ppm(dbfs_to_ppm(ppm.right))}",
    )
    table.add_row(
        "PPM hold L / R",
        f"{format_ppm(dbfs_to_ppm(ppm.hold_left))} / {format_ppm(dbfs_to_ppm(ppm.hold_right))}",
    )
    table.add_row(
        "Level L / R",
        f"{format_dbu(dbfs_to_dbu(ppm.left))} / {format_dbu(dbfs_to_dbu(ppm.right))}",
    )

    st = snapshot.stereo
    table.add_row("Correlation", _styled(format_correlation(st.correlation), correlation_zone(st.correlation)))
    table.add_row("Balance", format_balance(st.balance))
    table.add_row("Width", f"{st.width:.2f}")
    return table


def snapshot_row(snapshot) -> dict:
    """Flatten a snapshot into one CSV row."""
    return {
        "sequence": snapshot.timestamp.sequence,
        "capture_time": round(snapshot.timestamp.capture_time, 4),
        "momentary_lufs": snapshot.lufs.momentary,
        "short_term_lufs": snapshot.lufs.short_term,
        "integrated_lufs": snapshot.lufs.integrated,
        "lra_lu": "" if snapshot.lufs.range is None else snapshot.lufs.range,
        "true_peak_left_dbtp": snapshot.true_peak.left,
        "true_peak_right_dbtp": snapshot.true_peak.right,
        "true_peak_max_dbtp": snapshot.true_peak.max,
        "true_peak_hold_left_dbtp": snapshot.true_peak.hold_left,
        "true_peak_hold_right_dbtp": snapshot.true_peak.hold_right,
        "ppm_left_dbfs": snapshot.ppm.left,
        "ppm_right_dbfs": snapshot.ppm.right,
        "ppm_hold_left_dbfs": snapshot.ppm.hold_left,
        "ppm_hold_right_dbfs": snapshot.ppm.hold_right,
        "correlation": snapshot.stereo.correlation,
        "balance": snapshot.stereo.balance,
        "width": snapshot.stereo.width,
        "is_active": snapshot.is_active,
    }


def save_results_to_csv(filepath: str, rows: list[dict], fieldnames: list[str] = CSV_FIELDS,
                        console: Console = None) -> bool:
    """
    Writes a list of dictionaries to a CSV file.

    Returns True on success. Problems are reported on the console.
    """
    effective_console = console if console else Console(stderr=True)

    if not rows:
        effective_console.print(f"[yellow]Warning: No data provided to save to CSV '{filepath}'. File not created.[/yellow]")
        return False

    try:
        dir_name = os.path.dirname(filepath)
        if dir_name:
            os.makedirs(dir_name, exist_ok=True)

        with open(filepath, 'w', newline='', encoding='utf-8') as csvfile:
            writer = csv.DictWriter(csvfile, fieldnames=fieldnames, extrasaction='ignore')
            writer.writeheader()
            for row in rows:
                writer.writerow(row)
    except OSError as e:
        effective_console.print(f"[bold red]Could not write CSV file '{filepath}': {e}[/bold red]")
        return False

    effective_console.print(f"[green]Saved {len(rows)} rows to {filepath}[/green]")
    return True
