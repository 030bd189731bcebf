"""Configuration merging and validation."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from wav2flac.trash import DEFAULT_SENTINEL_NAMES, DEFAULT_VOLUME_ROOTS, default_fallback_dirs

LOG_FILE_NAME = "wav2flac_log.txt"

# ffmpeg's flac encoder accepts compression levels 0..12
MAX_COMPRESSION_LEVEL = 12


@dataclass(frozen=True)
class Wav2FlacConfig:
    """Immutable configuration for a wav2flac run."""

    root_dir: Path
    log_file: Path
    dry_run: bool = True
    jobs: int = 4
    compression_level: int = MAX_COMPRESSION_LEVEL
    ffmpeg_path: str = "ffmpeg"
    log_level: str = "INFO"
    mirror_structure: bool = False
    sentinel_names: tuple[str, ...] = DEFAULT_SENTINEL_NAMES
    trash_fallbacks: tuple[Path, ...] = field(default_factory=tuple)


_DEFAULTS: dict[str, Any] = {
    "dry_run": True,
    "jobs": 4,
    "compression_level": MAX_COMPRESSION_LEVEL,
    "ffmpeg_path": "ffmpeg",
    "log_level": "INFO",
    "mirror_structure": False,
    "sentinel_names": DEFAULT_SENTINEL_NAMES,
    "volume_roots": DEFAULT_VOLUME_ROOTS,
    "trash_dirs": (),
}


def merge_config(cli_overrides: dict[str, Any]) -> Wav2FlacConfig:
    """Merge defaults, environment, and CLI overrides into a validated config.

    Priority: defaults < environment < CLI overrides.
    The ffmpeg binary falls back to the FFMPEG_PATH environment variable.
    """
    merged: dict[str, Any] = {**_DEFAULTS}

    env_ffmpeg = os.environ.get("FFMPEG_PATH", "")
    if env_ffmpeg:
        merged["ffmpeg_path"] = env_ffmpeg

    merged.update({k: v for k, v in cli_overrides.items() if v is not None})

    if "root_dir" in merged:
        merged["root_dir"] = Path(merged["root_dir"]).expanduser()
    if "log_file" in merged:
        merged["log_file"] = Path(merged["log_file"]).expanduser()

    return _validate(merged)


def _validate(merged: dict[str, Any]) -> Wav2FlacConfig:
    """Validate the merged config and return a Wav2FlacConfig."""
    errors: list[str] = []

    if "root_dir" not in merged:
        errors.append("root_dir is required")

    jobs = merged.get("jobs")
    if not isinstance(jobs, int) or jobs < 1:
        errors.append(f"jobs must be a positive integer, got {jobs!r}")

    level = merged.get("compression_level")
    if not isinstance(level, int) or not 0 <= level <= MAX_COMPRESSION_LEVEL:
        errors.append(
            f"compression_level must be between 0 and {MAX_COMPRESSION_LEVEL}, got {level!r}"
        )

    if not merged.get("sentinel_names"):
        errors.append("at least one trash directory name is required")

    if errors:
        raise ValueError("Configuration errors:\n  " + "\n  ".join(errors))

    root_dir: Path = merged["root_dir"]
    if not root_dir.is_dir():
        raise ValueError(f"root directory does not exist: {root_dir}")
    if not os.access(root_dir, os.R_OK | os.X_OK):
        raise ValueError(f"root directory is not readable: {root_dir}")
    root_dir = root_dir.resolve()

    sentinel_names = tuple(merged["sentinel_names"])
    explicit = tuple(Path(d).expanduser() for d in merged["trash_dirs"])
    volume_roots = tuple(Path(r) for r in merged["volume_roots"])

    return Wav2FlacConfig(
        root_dir=root_dir,
        log_file=merged.get("log_file", root_dir / LOG_FILE_NAME),
        dry_run=bool(merged["dry_run"]),
        jobs=jobs,
        compression_level=level,
        ffmpeg_path=str(merged["ffmpeg_path"]),
        log_level=str(merged["log_level"]).upper(),
        mirror_structure=bool(merged["mirror_structure"]),
        sentinel_names=sentinel_names,
        trash_fallbacks=explicit + default_fallback_dirs(volume_roots, sentinel_names),
    )
