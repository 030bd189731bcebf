"""End-of-run summary table."""

from __future__ import annotations

from io import StringIO

from rich.console import Console
from rich.table import Table

from wav2flac.batch import RunSummary


def format_summary(summary: RunSummary) -> str:
    """Render a RunSummary as a rich table.

    Returns:
        Formatted string suitable for printing.
    """
    console = Console(file=StringIO(), force_terminal=False, width=100)

    title = "Dry Run Summary" if summary.dry_run else "Run Summary"
    if summary.interrupted:
        title += " (interrupted)"

    table = Table(title=title, show_header=True, header_style="bold")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")

    table.add_row("Processed", str(summary.processed))
    table.add_row("Converted", str(summary.converted))
    table.add_row("Skipped (FLAC exists)", str(summary.skipped_existing))
    if summary.skipped_unsupported:
        table.add_row("Skipped (unsupported)", str(summary.skipped_unsupported))
    table.add_row("Failed conversion", str(summary.failed_conversion))
    if summary.failed_size:
        table.add_row("Failed (size unavailable)", str(summary.failed_size))
    if summary.errored:
        table.add_row("Errored", str(summary.errored))

    if summary.dry_run:
        table.add_row("Would move to trash", str(summary.would_move))
        table.add_row("FLAC discarded", str(summary.dry_run_discarded))
    else:
        table.add_row("Moved to trash", str(summary.moved_to_trash))
        table.add_row("Trash not found", str(summary.trash_unavailable))
        table.add_row("Move failed", str(summary.move_failed))

    table.add_row("Kept (FLAC not smaller)", str(summary.kept))
    if summary.cancelled:
        table.add_row("Cancelled", str(summary.cancelled))

    saved_label = "Space saved" if not summary.dry_run else "Space that would be saved"
    table.add_row(saved_label, _format_bytes(summary.bytes_saved))
    table.add_row("Elapsed", _format_duration(summary.elapsed_secs))

    console.print(table)

    output = console.file
    assert isinstance(output, StringIO)
    return output.getvalue()


def _format_bytes(size: int) -> str:
    """Format a byte count with a binary unit."""
    value = float(size)
    for unit in ("B", "KiB", "MiB", "GiB"):
        if value < 1024 or unit == "GiB":
            break
        value /= 1024
    if unit == "B":
        return f"{size} B"
    return f"{value:.1f} {unit}"


def _format_duration(seconds: float) -> str:
    """Elapsed time as ``12.3s``, ``2m 05s`` or ``1h 02m 05s``."""
    if seconds < 60:
        return f"{seconds:.1f}s"
    minutes, secs = divmod(round(seconds), 60)
    hours, minutes = divmod(minutes, 60)
    if hours:
        return f"{hours}h {minutes:02d}m {secs:02d}s"
    return f"{minutes}m {secs:02d}s"
