"""Shared test fixtures for wav2flac."""

from __future__ import annotations

import logging
import subprocess
import threading
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any

import pytest

from wav2flac.config import Wav2FlacConfig


class FakeFfmpeg:
    """Stand-in for the transcoder's ffmpeg runner that fakes a FLAC encode.

    The artifact is written with ``ratio`` times the source size (per file
    name via ``ratios``). Sources named in ``fail_on`` leave a partial file
    behind and exit with status 1.
    """

    def __init__(
        self,
        ratio: float = 0.5,
        ratios: dict[str, float] | None = None,
        fail_on: tuple[str, ...] = (),
    ) -> None:
        self.ratio = ratio
        self.ratios = ratios or {}
        self.fail_on = set(fail_on)
        self.calls: list[list[str]] = []
        self._lock = threading.Lock()

    def __call__(self, cmd: list[str], **kwargs: Any) -> subprocess.CompletedProcess[str]:
        with self._lock:
            self.calls.append(list(cmd))
        source = Path(cmd[cmd.index("-i") + 1])
        artifact = Path(cmd[-1])

        if source.name in self.fail_on:
            artifact.write_bytes(b"partial")
            return subprocess.CompletedProcess(
                cmd, 1, stdout="", stderr=f"{source}: Invalid data found when processing input\n"
            )

        ratio = self.ratios.get(source.name, self.ratio)
        artifact.write_bytes(b"f" * int(source.stat().st_size * ratio))
        return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="size=42kB time=00:00:01.00\n")

    @property
    def converted_names(self) -> set[str]:
        return {Path(c[c.index("-i") + 1]).name for c in self.calls}


@pytest.fixture(autouse=True)
def _reset_root_logger() -> Iterator[None]:
    """Drop handlers installed by setup_logging so tests stay independent."""
    yield
    root = logging.getLogger()
    for handler in root.handlers:
        handler.close()
    root.handlers.clear()


@pytest.fixture
def tmp_root(tmp_path: Path) -> Path:
    """Create the directory tree a batch run scans."""
    d = tmp_path / "music"
    d.mkdir()
    return d.resolve()


@pytest.fixture
def make_audio() -> Callable[..., Path]:
    """Return a helper that writes a dummy audio file."""

    def _make(directory: Path, relative: str, size: int = 1000) -> Path:
        path = directory / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(b"\x00" * size)
        return path

    return _make


@pytest.fixture
def fake_ffmpeg(monkeypatch: pytest.MonkeyPatch) -> FakeFfmpeg:
    """Replace the transcoder's ffmpeg runner with a FakeFfmpeg."""
    fake = FakeFfmpeg()
    monkeypatch.setattr("wav2flac.transcoder._run_ffmpeg", fake)
    return fake


@pytest.fixture
def make_config(tmp_root: Path) -> Callable[..., Wav2FlacConfig]:
    """Return a factory for configs rooted at tmp_root with no volume fallbacks."""

    def _make(**overrides: Any) -> Wav2FlacConfig:
        values: dict[str, Any] = {
            "root_dir": tmp_root,
            "log_file": tmp_root.parent / "wav2flac_log.txt",
            "trash_fallbacks": (),
        }
        values.update(overrides)
        return Wav2FlacConfig(**values)

    return _make


@pytest.fixture
def snapshot_tree() -> Callable[..., dict[str, int]]:
    """Return a helper mapping every file under a root to its size."""

    def _snapshot(root: Path, exclude: tuple[str, ...] = ()) -> dict[str, int]:
        return {
            str(p.relative_to(root)): p.stat().st_size
            for p in sorted(root.rglob("*"))
            if p.is_file() and p.name not in exclude
        }

    return _snapshot
