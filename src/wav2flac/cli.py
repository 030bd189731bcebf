"""CLI entry point for wav2flac."""

from __future__ import annotations

import logging
import signal
import threading
from pathlib import Path
from types import FrameType
from typing import Any, Optional

import click
import typer
from rich.progress import BarColumn, MofNCompleteColumn, Progress, TextColumn, TimeElapsedColumn

from wav2flac import __version__
from wav2flac.batch import RunSummary, log_summary, run_batch
from wav2flac.config import Wav2FlacConfig, merge_config
from wav2flac.logging_setup import setup_logging
from wav2flac.reporter import format_summary
from wav2flac.scanner import scan_directory
from wav2flac.transcoder import check_ffmpeg_available, terminate_running
from wav2flac.workflow import FileResult

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="wav2flac",
    help="Convert WAV/AIFF files to FLAC and move originals that got smaller to the trash.",
    add_completion=False,
)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"wav2flac {__version__}")
        raise typer.Exit()


def _build_config(
    root: Path,
    no_dry_run: bool,
    jobs: Optional[int],
    compression_level: Optional[int],
    trash_dirs: Optional[list[Path]],
    mirror_structure: bool,
    ffmpeg: Optional[str],
    log_file: Optional[Path],
    log_level: Optional[str],
) -> Wav2FlacConfig:
    """Merge CLI flags over the built-in defaults."""
    cli_overrides: dict[str, Any] = {
        "root_dir": root,
        "dry_run": not no_dry_run,
        "mirror_structure": mirror_structure,
    }
    if jobs is not None:
        cli_overrides["jobs"] = jobs
    if compression_level is not None:
        cli_overrides["compression_level"] = compression_level
    if trash_dirs:
        cli_overrides["trash_dirs"] = tuple(trash_dirs)
    if ffmpeg is not None:
        cli_overrides["ffmpeg_path"] = ffmpeg
    if log_file is not None:
        cli_overrides["log_file"] = log_file
    if log_level is not None:
        cli_overrides["log_level"] = log_level
    return merge_config(cli_overrides)


@app.command()
def convert(
    root: Path = typer.Argument(..., help="Directory tree to convert"),
    no_dry_run: bool = typer.Option(False, "-n", "--no-dry-run", help="Really move originals to the trash (default: dry run)"),
    jobs: Optional[int] = typer.Option(None, "-j", "--jobs", help="Parallel conversions (default: 4)"),
    compression_level: Optional[int] = typer.Option(None, "--compression-level", help="FLAC compression level 0-12 (default: 12)"),
    trash_dir: Optional[list[Path]] = typer.Option(None, "--trash-dir", help="Fallback trash directory, tried before the volume defaults (repeatable)"),
    mirror_structure: bool = typer.Option(False, "--mirror-structure", help="Recreate the source's relative folders inside the trash"),
    ffmpeg: Optional[str] = typer.Option(None, "--ffmpeg", help="ffmpeg binary (default: $FFMPEG_PATH or ffmpeg)"),
    log_file: Optional[Path] = typer.Option(None, "--log-file", help="Log file (default: ROOT/wav2flac_log.txt)"),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Log level (default: INFO)"),
    no_progress: bool = typer.Option(False, "--no-progress", help="Do not show a progress bar"),
    version: bool = typer.Option(False, "--version", callback=_version_callback, is_eager=True, help="Print version and exit"),
) -> None:
    """Convert every WAV/AIFF under ROOT to FLAC."""
    try:
        cfg = _build_config(
            root, no_dry_run, jobs, compression_level, trash_dir,
            mirror_structure, ffmpeg, log_file, log_level,
        )
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)

    try:
        setup_logging(cfg.log_level, cfg.log_file)
    except OSError as e:
        typer.echo(f"Error: cannot open log file {cfg.log_file}: {e}", err=True)
        raise typer.Exit(code=1)

    # Fail fast if ffmpeg is not installed
    try:
        check_ffmpeg_available(cfg.ffmpeg_path)
    except RuntimeError as e:
        logger.error("%s", e)
        raise typer.Exit(code=1)

    logger.info("wav2flac v%s - starting conversion of %s", __version__, cfg.root_dir)
    if cfg.dry_run:
        logger.info("Dry run mode enabled. Originals will NOT be moved and FLAC files will be removed again.")
    else:
        logger.warning("Dry run mode disabled. Originals WILL be moved to the trash if larger than their FLAC.")
    logger.info("Jobs: %d, compression level: %d", cfg.jobs, cfg.compression_level)

    summary = _run_pipeline(cfg, show_progress=not no_progress)

    log_summary(summary, cfg.root_dir)
    typer.echo(format_summary(summary))


def _run_pipeline(cfg: Wav2FlacConfig, *, show_progress: bool = True) -> RunSummary:
    """Scan and run the batch with graceful SIGINT/SIGTERM handling."""
    stop_event = threading.Event()

    prev_sigint = signal.getsignal(signal.SIGINT)
    prev_sigterm = signal.getsignal(signal.SIGTERM)

    def _handle_shutdown(signum: int, frame: FrameType | None) -> None:
        if stop_event.is_set():
            # Second signal: force exit immediately
            signal.signal(signal.SIGINT, signal.SIG_DFL)
            signal.signal(signal.SIGTERM, signal.SIG_DFL)
            stopped = terminate_running()
            if stopped:
                logger.warning("Force quit - terminated %d running ffmpeg process(es)", stopped)
            raise KeyboardInterrupt
        stop_event.set()
        sig_name = signal.Signals(signum).name
        logger.info("Received %s - finishing files in progress (press again to force quit)", sig_name)

    signal.signal(signal.SIGINT, _handle_shutdown)
    signal.signal(signal.SIGTERM, _handle_shutdown)

    try:
        files = scan_directory(cfg.root_dir, cfg.sentinel_names)
        logger.info("Found %d WAV/AIFF files", len(files))

        if not show_progress:
            return run_batch(cfg, files, stop_event=stop_event)

        with Progress(
            TextColumn("[bold blue]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            TextColumn("{task.fields[current_file]}"),
            TimeElapsedColumn(),
        ) as progress:
            task = progress.add_task("Converting", total=len(files), current_file="")

            def _advance(result: FileResult) -> None:
                progress.update(task, advance=1, current_file=result.path.name)

            return run_batch(cfg, files, on_result=_advance, stop_event=stop_event)
    finally:
        signal.signal(signal.SIGINT, prev_sigint)
        signal.signal(signal.SIGTERM, prev_sigterm)


def main() -> None:
    """Console-script entry point.

    Usage errors exit with status 1, like every other setup failure.
    """
    try:
        code = app(standalone_mode=False)
    except click.exceptions.Abort:
        typer.echo("Aborted!", err=True)
        raise SystemExit(1)
    except click.ClickException as e:
        e.show()
        raise SystemExit(1)
    raise SystemExit(code if isinstance(code, int) else 0)


if __name__ == "__main__":
    main()
