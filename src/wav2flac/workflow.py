"""Per-file state machine: classify, convert, reconcile."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from wav2flac.config import Wav2FlacConfig
from wav2flac.reconciler import Disposition, ReconcileResult, reconcile
from wav2flac.scanner import classify
from wav2flac.transcoder import ConversionError, transcode

logger = logging.getLogger(__name__)


class FileState(str, Enum):
    DISCOVERED = "discovered"
    CLASSIFYING = "classifying"
    SKIP = "skip"
    CONVERTING = "converting"
    CONVERSION_FAILED = "conversion_failed"
    CONVERTED = "converted"
    RECONCILING = "reconciling"
    DONE = "done"


class FileOutcome(str, Enum):
    """Terminal, mutually exclusive result of one file's workflow."""

    SKIPPED_UNSUPPORTED = "skipped_unsupported"
    SKIPPED_EXISTING = "skipped_existing"
    FAILED_CONVERSION = "failed_conversion"
    FAILED_SIZE = "failed_size"
    MOVED_TO_TRASH = "moved_to_trash"
    TRASH_UNAVAILABLE = "trash_unavailable"
    MOVE_FAILED = "move_failed"
    WOULD_MOVE = "would_move"
    KEPT = "kept"
    ERRORED = "errored"
    CANCELLED = "cancelled"


_DISPOSITION_OUTCOMES: dict[Disposition, FileOutcome] = {
    Disposition.MOVED_TO_TRASH: FileOutcome.MOVED_TO_TRASH,
    Disposition.TRASH_UNAVAILABLE: FileOutcome.TRASH_UNAVAILABLE,
    Disposition.MOVE_FAILED: FileOutcome.MOVE_FAILED,
    Disposition.WOULD_MOVE: FileOutcome.WOULD_MOVE,
    Disposition.KEPT_BOTH: FileOutcome.KEPT,
    Disposition.SIZE_UNAVAILABLE: FileOutcome.FAILED_SIZE,
}


@dataclass
class FileResult:
    """Everything the batch needs to know about one processed file."""

    path: Path
    outcome: FileOutcome | None = None
    state: FileState = FileState.DISCOVERED
    trail: list[FileState] = field(default_factory=lambda: [FileState.DISCOVERED])
    converted: bool = False
    reconciliation: ReconcileResult | None = None
    error: str | None = None

    def advance(self, state: FileState) -> None:
        self.state = state
        self.trail.append(state)

    def finish(self, outcome: FileOutcome) -> FileResult:
        self.outcome = outcome
        self.advance(FileState.DONE)
        return self


def process_path(path: Path, cfg: Wav2FlacConfig) -> FileResult:
    """Run one file through the conversion workflow.

    Per-file failures are logged and reported in the returned FileResult;
    they never raise.
    """
    result = FileResult(path=path)

    result.advance(FileState.CLASSIFYING)
    source = classify(path, cfg.root_dir)
    if source is None:
        logger.debug("Not a convertible file, skipping: %s", path)
        result.advance(FileState.SKIP)
        return result.finish(FileOutcome.SKIPPED_UNSUPPORTED)

    logger.info("Processing: %s", source.path)

    if source.artifact_path.exists():
        logger.warning("FLAC file already exists, skipping: %s", source.artifact_path)
        result.advance(FileState.SKIP)
        return result.finish(FileOutcome.SKIPPED_EXISTING)

    result.advance(FileState.CONVERTING)
    try:
        artifact = transcode(source, cfg.compression_level, cfg.ffmpeg_path)
    except ConversionError as e:
        logger.error("Conversion failed for %s: %s", source.path, e.diagnostic)
        result.error = e.diagnostic
        result.advance(FileState.CONVERSION_FAILED)
        return result.finish(FileOutcome.FAILED_CONVERSION)

    result.converted = True
    result.advance(FileState.CONVERTED)

    result.advance(FileState.RECONCILING)
    reconciled = reconcile(source, artifact, cfg)
    result.reconciliation = reconciled
    result.error = reconciled.error
    return result.finish(_DISPOSITION_OUTCOMES[reconciled.disposition])
