"""Bounded parallel dispatch of file workflows and run-wide counters."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field, fields
from pathlib import Path

from wav2flac.config import Wav2FlacConfig
from wav2flac.scanner import SourceFile, scan_directory
from wav2flac.workflow import FileOutcome, FileResult, process_path

logger = logging.getLogger(__name__)

# Interval at which the dispatcher re-checks the stop event.
_POLL_SECS = 0.5


@dataclass
class RunSummary:
    """Counters for one batch run. ``record`` is safe to call from any thread."""

    processed: int = 0
    converted: int = 0
    dry_run_discarded: int = 0
    bytes_saved: int = 0
    skipped_unsupported: int = 0
    skipped_existing: int = 0
    failed_conversion: int = 0
    failed_size: int = 0
    moved_to_trash: int = 0
    trash_unavailable: int = 0
    move_failed: int = 0
    would_move: int = 0
    kept: int = 0
    errored: int = 0
    cancelled: int = 0
    dry_run: bool = True
    interrupted: bool = False
    elapsed_secs: float = 0.0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def record(self, result: FileResult) -> None:
        with self._lock:
            self.processed += 1
            if result.converted:
                self.converted += 1
            rec = result.reconciliation
            if rec is not None:
                self.bytes_saved += rec.bytes_saved
                if rec.artifact_discarded:
                    self.dry_run_discarded += 1
            outcome = result.outcome or FileOutcome.ERRORED
            setattr(self, outcome.value, getattr(self, outcome.value) + 1)

    @property
    def failed(self) -> int:
        return self.failed_conversion + self.failed_size + self.errored

    def outcome_total(self) -> int:
        """Sum of the mutually exclusive outcome counters."""
        return sum(getattr(self, o.value) for o in FileOutcome)

    def as_dict(self) -> dict[str, int | bool | float]:
        return {f.name: getattr(self, f.name) for f in fields(self) if not f.name.startswith("_")}


def _run_one(source: SourceFile, cfg: Wav2FlacConfig) -> FileResult:
    try:
        return process_path(source.path, cfg)
    except Exception as e:
        logger.exception("Error processing %s", source.relative_path)
        result = FileResult(path=source.path, error=str(e))
        return result.finish(FileOutcome.ERRORED)


def run_batch(
    cfg: Wav2FlacConfig,
    files: list[SourceFile] | None = None,
    *,
    on_result: Callable[[FileResult], None] | None = None,
    stop_event: threading.Event | None = None,
) -> RunSummary:
    """Process every convertible file under ``cfg.root_dir``.

    At most ``cfg.jobs`` files are worked on at once. Completion order is
    unspecified. Setting ``stop_event`` cancels files that have not started
    yet; those already converting finish normally.
    """
    start = time.monotonic()
    summary = RunSummary(dry_run=cfg.dry_run)

    if files is None:
        files = scan_directory(cfg.root_dir, cfg.sentinel_names)

    def _collect(future: Future[FileResult], source: SourceFile) -> None:
        if future.cancelled():
            result = FileResult(path=source.path).finish(FileOutcome.CANCELLED)
        else:
            result = future.result()
        summary.record(result)
        if on_result is not None:
            on_result(result)

    with ThreadPoolExecutor(max_workers=cfg.jobs, thread_name_prefix="wav2flac") as pool:
        pending: dict[Future[FileResult], SourceFile] = {
            pool.submit(_run_one, source, cfg): source for source in files
        }
        cancelling = False
        while pending:
            if stop_event is not None and stop_event.is_set() and not cancelling:
                cancelling = True
                summary.interrupted = True
                logger.info("Stop requested, cancelling files not yet started")
                for future in pending:
                    future.cancel()

            done, _ = wait(pending, timeout=_POLL_SECS, return_when=FIRST_COMPLETED)
            for future in done:
                _collect(future, pending.pop(future))

    summary.elapsed_secs = time.monotonic() - start
    return summary


def log_summary(summary: RunSummary, root_dir: Path) -> None:
    """Write the end-of-run counters to the log."""
    label = "Partial Run Summary (interrupted)" if summary.interrupted else "Run Summary"
    logger.info("--- %s: %s ---", label, root_dir)
    logger.info("Processed: %d", summary.processed)
    logger.info("Converted: %d", summary.converted)
    logger.info("Skipped (FLAC exists): %d", summary.skipped_existing)
    logger.info("Failed: %d", summary.failed)
    if summary.dry_run:
        logger.info("Would move to trash: %d", summary.would_move)
        logger.info("FLAC files discarded: %d", summary.dry_run_discarded)
    else:
        logger.info("Moved to trash: %d", summary.moved_to_trash)
        logger.info("Trash not found: %d", summary.trash_unavailable)
        logger.info("Move failed: %d", summary.move_failed)
    logger.info("Kept (FLAC not smaller): %d", summary.kept)
    logger.info("Space saved: %d bytes", summary.bytes_saved)
    if summary.cancelled:
        logger.info("Cancelled: %d", summary.cancelled)
    logger.info("Total time: %.1fs", summary.elapsed_secs)
