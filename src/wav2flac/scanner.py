"""Directory walking, source classification and artifact naming."""

from __future__ import annotations

import os
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from pathlib import Path

SUPPORTED_EXTENSIONS: frozenset[str] = frozenset({".wav", ".aif", ".aiff"})

ARTIFACT_EXTENSION = ".flac"


@dataclass(frozen=True)
class SourceFile:
    """A convertible audio file and the FLAC path derived from it."""

    path: Path
    relative_path: Path
    artifact_path: Path


@dataclass(frozen=True)
class FileStat:
    """Size and timestamps of a file, in portable units."""

    size_bytes: int
    mtime_ns: int
    atime_ns: int


def artifact_path_for(path: Path) -> Path:
    """Append the FLAC extension to the full file name.

    ``track.wav`` becomes ``track.wav.flac`` so the original name stays
    recoverable from the artifact.
    """
    return path.with_name(path.name + ARTIFACT_EXTENSION)


def source_name_for(artifact_path: Path) -> str:
    """Recover the original file name from an artifact path."""
    name = artifact_path.name
    if not name.endswith(ARTIFACT_EXTENSION):
        raise ValueError(f"Not a {ARTIFACT_EXTENSION} artifact: {artifact_path}")
    return name[: -len(ARTIFACT_EXTENSION)]


def is_supported(path: Path) -> bool:
    """Case-insensitive check of the file extension."""
    return path.suffix.lower() in SUPPORTED_EXTENSIONS


def classify(path: Path, root: Path | None = None) -> SourceFile | None:
    """Return a SourceFile for a convertible path, or None.

    Purely name based; the filesystem is not touched.
    """
    path = Path(path)
    if not is_supported(path):
        return None

    relative = Path(path.name)
    if root is not None:
        try:
            relative = path.relative_to(root)
        except ValueError:
            pass

    return SourceFile(
        path=path,
        relative_path=relative,
        artifact_path=artifact_path_for(path),
    )


def stat_file(path: Path) -> FileStat:
    """Read size and timestamps. Raises OSError if the file cannot be stat'ed."""
    st = os.stat(path)
    return FileStat(size_bytes=st.st_size, mtime_ns=st.st_mtime_ns, atime_ns=st.st_atime_ns)


def iter_candidates(root: Path, skip_dirs: Iterable[str] = ()) -> Iterator[Path]:
    """Lazily yield supported audio files under ``root``.

    Directories named in ``skip_dirs`` (trash bins) are not descended into.
    """
    skip = set(skip_dirs)
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if d not in skip)
        current = Path(dirpath)
        for name in sorted(filenames):
            file_path = current / name
            if is_supported(file_path) and file_path.is_file():
                yield file_path


def scan_directory(root: Path, skip_dirs: Iterable[str] = ()) -> list[SourceFile]:
    """Walk ``root`` recursively and return its convertible files.

    Results are sorted by relative path for deterministic ordering.
    """
    files: list[SourceFile] = []
    for file_path in iter_candidates(root, skip_dirs):
        source = classify(file_path, root)
        if source is not None:
            files.append(source)

    files.sort(key=lambda f: f.relative_path)
    return files
