"""Recycle-bin discovery for disposed source files."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from pathlib import Path

logger = logging.getLogger(__name__)

# Synology DSM keeps one "#recycle" share bin per volume.
DEFAULT_SENTINEL_NAMES: tuple[str, ...] = ("#recycle",)

DEFAULT_VOLUME_ROOTS: tuple[Path, ...] = (Path("/volume1"), Path("/volume2"))


def default_fallback_dirs(
    volume_roots: Iterable[Path],
    sentinel_names: Sequence[str],
) -> tuple[Path, ...]:
    """Expand volume roots into their well-known trash locations.

    Each root R yields R/<sentinel> followed by R/backup/<sentinel>,
    for every sentinel name, preserving the order of ``volume_roots``.
    """
    candidates: list[Path] = []
    for root in volume_roots:
        for name in sentinel_names:
            candidates.append(root / name)
        for name in sentinel_names:
            candidates.append(root / "backup" / name)
    return tuple(candidates)


def _is_dir(path: Path) -> bool:
    try:
        return path.is_dir()
    except OSError:
        return False


def locate_trash(
    source_path: Path,
    sentinel_names: Sequence[str],
    fallback_dirs: Sequence[Path] = (),
) -> Path | None:
    """Find the trash directory that should receive ``source_path``.

    Search order, first match wins:

    1. Walk upward from the file's containing directory to the filesystem
       root, testing each level for a sub-directory named by a sentinel.
    2. Test ``fallback_dirs`` in order.

    Returns None when nothing matches. Unreadable locations count as absent.
    """
    start = source_path.parent
    for directory in (start, *start.parents):
        for name in sentinel_names:
            candidate = directory / name
            if _is_dir(candidate):
                logger.debug("Trash for %s found above it: %s", source_path, candidate)
                return candidate

    for candidate in fallback_dirs:
        if _is_dir(candidate):
            logger.debug("Trash for %s found in fallback list: %s", source_path, candidate)
            return candidate

    return None
