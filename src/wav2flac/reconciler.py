"""Size comparison and disposal of converted source files."""

from __future__ import annotations

import errno
import logging
import os
import shutil
import tempfile
import threading
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path

from wav2flac.config import Wav2FlacConfig
from wav2flac.scanner import SourceFile, stat_file
from wav2flac.trash import locate_trash

logger = logging.getLogger(__name__)

# Serializes free-name selection and the final rename into a trash directory.
_TRASH_LOCK = threading.Lock()


class Disposition(str, Enum):
    """What happened to a converted source file."""

    MOVED_TO_TRASH = "moved_to_trash"
    TRASH_UNAVAILABLE = "trash_unavailable"
    MOVE_FAILED = "move_failed"
    WOULD_MOVE = "would_move"
    KEPT_BOTH = "kept_both"
    SIZE_UNAVAILABLE = "size_unavailable"


@dataclass(frozen=True)
class ReconcileResult:
    """Outcome of reconciling one source with its artifact."""

    disposition: Disposition
    source_size: int | None = None
    artifact_size: int | None = None
    trash_path: Path | None = None
    artifact_discarded: bool = False
    error: str | None = None

    @property
    def bytes_saved(self) -> int:
        """Space freed by trashing the source, or that a dry run would free."""
        if self.disposition not in (Disposition.MOVED_TO_TRASH, Disposition.WOULD_MOVE):
            return 0
        if self.source_size is None or self.artifact_size is None:
            return 0
        return max(0, self.source_size - self.artifact_size)


def _free_name(target: Path) -> Path:
    """Return ``target`` or the first ``name (N).ext`` variant not taken."""
    if not os.path.lexists(target):
        return target
    i = 2
    while True:
        candidate = target.with_name(f"{target.stem} ({i}){target.suffix}")
        if not os.path.lexists(candidate):
            return candidate
        i += 1


def _copy_across_volumes(source: Path, destination_dir: Path) -> Path:
    """Copy ``source`` into a temp file in ``destination_dir`` and verify its size."""
    fd, tmp_path_str = tempfile.mkstemp(dir=destination_dir, prefix=".wav2flac-", suffix=".part")
    os.close(fd)
    tmp_path = Path(tmp_path_str)
    try:
        shutil.copy2(source, tmp_path)
        expected = stat_file(source).size_bytes
        copied = stat_file(tmp_path).size_bytes
        if copied != expected:
            raise OSError(
                errno.EIO, f"Copy size mismatch ({copied} of {expected} bytes)", str(tmp_path)
            )
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise
    return tmp_path


def _missing_dirs(directory: Path, trash_root: Path) -> list[Path]:
    """Directories under ``trash_root`` leading to ``directory`` that do not exist yet, deepest first."""
    missing: list[Path] = []
    while directory != trash_root and not os.path.lexists(directory):
        missing.append(directory)
        directory = directory.parent
    return missing


def _remove_empty_dirs(dirs: list[Path]) -> None:
    for d in dirs:
        try:
            d.rmdir()
        except FileNotFoundError:
            continue
        except OSError:
            # Another file landed there meanwhile.
            break


def move_to_trash(
    source_path: Path,
    trash_root: Path,
    relative_path: Path | None = None,
) -> Path:
    """Move a file into ``trash_root`` and return where it landed.

    With ``relative_path`` the file's directory structure is mirrored under
    the trash root, otherwise it lands flat under its own name. An existing
    entry is never overwritten. Within a volume this is a single rename;
    across volumes the file is copied to a temporary name, verified and
    renamed into place before the source is deleted. Raises OSError on
    failure, in which case the source is still in place and any mirrored
    directories created for it are removed again.
    """
    target = trash_root / (relative_path if relative_path is not None else source_path.name)

    with _TRASH_LOCK:
        created = _missing_dirs(target.parent, trash_root)
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        return _move(source_path, target, trash_root)
    except OSError:
        with _TRASH_LOCK:
            _remove_empty_dirs(created)
        raise


def _move(source_path: Path, target: Path, trash_root: Path) -> Path:
    with _TRASH_LOCK:
        destination = _free_name(target)
        try:
            os.rename(source_path, destination)
            return destination
        except OSError as e:
            if e.errno != errno.EXDEV:
                raise

    logger.debug("%s is on another volume than %s, copying", source_path, trash_root)
    tmp_path = _copy_across_volumes(source_path, target.parent)
    try:
        with _TRASH_LOCK:
            destination = _free_name(target)
            os.replace(tmp_path, destination)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise

    try:
        source_path.unlink()
    except OSError:
        # Leave exactly one copy behind: the source.
        destination.unlink(missing_ok=True)
        raise
    return destination


def _dispose(source: SourceFile, cfg: Wav2FlacConfig) -> tuple[Disposition, Path | None, str | None]:
    trash_root = locate_trash(source.path, cfg.sentinel_names, cfg.trash_fallbacks)
    if trash_root is None:
        logger.error("Trash directory not found for %s, leaving it in place", source.path)
        return Disposition.TRASH_UNAVAILABLE, None, "trash directory not found"

    relative = source.relative_path if cfg.mirror_structure else None
    try:
        landed = move_to_trash(source.path, trash_root, relative)
    except OSError as e:
        logger.error("Could not move %s to trash %s: %s", source.path, trash_root, e)
        return Disposition.MOVE_FAILED, None, str(e)

    logger.info("Moved to trash: %s -> %s", source.path, landed)
    return Disposition.MOVED_TO_TRASH, landed, None


def discard_artifact(artifact: Path) -> bool:
    """Delete a dry-run artifact. Returns False (after a warning) on failure."""
    try:
        artifact.unlink()
    except OSError as e:
        logger.warning("Could not remove FLAC file %s: %s", artifact, e)
        return False
    logger.info("Removed FLAC file: %s", artifact)
    return True


def reconcile(source: SourceFile, artifact: Path, cfg: Wav2FlacConfig) -> ReconcileResult:
    """Compare sizes and apply the disposal policy to one converted file.

    A strictly smaller artifact sends the source to the trash (real mode) or
    logs the move it would make (dry run). Otherwise both files stay. In a
    dry run the artifact is always deleted afterwards so nothing on disk
    changes.
    """
    try:
        result = _reconcile(source, artifact, cfg)
    finally:
        discarded = discard_artifact(artifact) if cfg.dry_run else False
    return replace(result, artifact_discarded=discarded)


def _reconcile(source: SourceFile, artifact: Path, cfg: Wav2FlacConfig) -> ReconcileResult:
    try:
        source_size = stat_file(source.path).size_bytes
        artifact_size = stat_file(artifact).size_bytes
    except OSError as e:
        logger.error("Could not read sizes for %s: %s", source.path, e)
        return ReconcileResult(disposition=Disposition.SIZE_UNAVAILABLE, error=str(e))

    logger.info("Source size: %d bytes", source_size)
    logger.info("FLAC size: %d bytes", artifact_size)

    if source_size <= artifact_size:
        logger.info("Source is smaller than or equal to FLAC, keeping both: %s", source.path)
        return ReconcileResult(
            disposition=Disposition.KEPT_BOTH,
            source_size=source_size,
            artifact_size=artifact_size,
        )

    logger.info("Source is larger than FLAC: %s", source.path)
    if cfg.dry_run:
        trash_root = locate_trash(source.path, cfg.sentinel_names, cfg.trash_fallbacks)
        logger.info(
            "Dry run: would move to trash: %s (trash: %s)",
            source.path,
            trash_root if trash_root is not None else "not found",
        )
        return ReconcileResult(
            disposition=Disposition.WOULD_MOVE,
            source_size=source_size,
            artifact_size=artifact_size,
        )

    disposition, landed, error = _dispose(source, cfg)
    return ReconcileResult(
        disposition=disposition,
        source_size=source_size,
        artifact_size=artifact_size,
        trash_path=landed,
        error=error,
    )
