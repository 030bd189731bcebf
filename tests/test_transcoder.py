"""Tests for transcoder module: ffmpeg is never actually run."""

from __future__ import annotations

import logging
import os
import subprocess
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from conftest import FakeFfmpeg
from wav2flac import transcoder
from wav2flac.scanner import SourceFile, classify
from wav2flac.transcoder import (
    ConversionError,
    _run_ffmpeg,
    build_ffmpeg_command,
    check_ffmpeg_available,
    copy_timestamps,
    terminate_running,
    transcode,
)

OLD_MTIME_NS = 1_500_000_000 * 10**9


@pytest.fixture
def source(tmp_path: Path) -> SourceFile:
    path = tmp_path / "take 1.wav"
    path.write_bytes(b"\x00" * 2000)
    os.utime(path, ns=(OLD_MTIME_NS, OLD_MTIME_NS))
    result = classify(path, tmp_path)
    assert result is not None
    return result


# --- check_ffmpeg_available ---


def test_ffmpeg_available_when_present() -> None:
    with patch("wav2flac.transcoder.shutil.which", return_value="/usr/bin/ffmpeg"):
        check_ffmpeg_available()  # Should not raise


def test_ffmpeg_available_when_missing() -> None:
    with patch("wav2flac.transcoder.shutil.which", return_value=None):
        with pytest.raises(RuntimeError, match="ffmpeg not found"):
            check_ffmpeg_available("/opt/missing/ffmpeg")


# --- build_ffmpeg_command ---


def test_command_preserves_metadata_and_compression(tmp_path: Path) -> None:
    cmd = build_ffmpeg_command(tmp_path / "a.wav", tmp_path / "a.wav.flac", 12, "ffmpeg")

    assert cmd[0] == "ffmpeg"
    assert cmd[cmd.index("-i") + 1] == str(tmp_path / "a.wav")
    assert cmd[cmd.index("-map_metadata") + 1] == "0"
    assert cmd[cmd.index("-c:a") + 1] == "flac"
    assert cmd[cmd.index("-compression_level") + 1] == "12"
    assert "-n" in cmd
    assert cmd[-1] == str(tmp_path / "a.wav.flac")


def test_command_uses_custom_binary(tmp_path: Path) -> None:
    cmd = build_ffmpeg_command(tmp_path / "a.wav", tmp_path / "a.wav.flac", 5, "/opt/ffmpeg")
    assert cmd[0] == "/opt/ffmpeg"
    assert cmd[cmd.index("-compression_level") + 1] == "5"


# --- transcode ---


class TestTranscodeSuccess:
    def test_returns_artifact(self, source: SourceFile, fake_ffmpeg: FakeFfmpeg) -> None:
        artifact = transcode(source, 12)

        assert artifact == source.artifact_path
        assert artifact.exists()
        assert artifact.stat().st_size == 1000
        assert len(fake_ffmpeg.calls) == 1

    def test_copies_source_mtime(self, source: SourceFile, fake_ffmpeg: FakeFfmpeg) -> None:
        artifact = transcode(source, 12)
        assert artifact.stat().st_mtime_ns == OLD_MTIME_NS

    def test_diagnostics_logged(
        self, source: SourceFile, fake_ffmpeg: FakeFfmpeg, caplog: pytest.LogCaptureFixture
    ) -> None:
        with caplog.at_level(logging.DEBUG, logger="wav2flac.transcoder"):
            transcode(source, 12)
        assert "ffmpeg: size=42kB" in caplog.text
        assert "Conversion successful" in caplog.text

    def test_timestamp_failure_is_only_a_warning(
        self, source: SourceFile, fake_ffmpeg: FakeFfmpeg, caplog: pytest.LogCaptureFixture
    ) -> None:
        with patch("wav2flac.transcoder.os.utime", side_effect=PermissionError("read-only")):
            artifact = transcode(source, 12)

        assert artifact.exists()
        assert any(
            r.levelno == logging.WARNING and "Could not copy timestamps" in r.getMessage()
            for r in caplog.records
        )


class TestTranscodeFailure:
    def test_nonzero_exit_raises(self, source: SourceFile, fake_ffmpeg: FakeFfmpeg) -> None:
        fake_ffmpeg.fail_on.add(source.path.name)

        with pytest.raises(ConversionError) as exc_info:
            transcode(source, 12)

        assert exc_info.value.source == source.path
        assert "Invalid data found" in exc_info.value.diagnostic

    def test_partial_artifact_removed(self, source: SourceFile, fake_ffmpeg: FakeFfmpeg) -> None:
        fake_ffmpeg.fail_on.add(source.path.name)

        with pytest.raises(ConversionError):
            transcode(source, 12)

        assert not source.artifact_path.exists()

    def test_preexisting_file_is_not_removed(self, source: SourceFile) -> None:
        """A file that was already there (e.g. created by another process) survives."""
        source.artifact_path.write_bytes(b"someone else's flac")
        refused = subprocess.CompletedProcess(
            [], 1, stdout="", stderr=f"File '{source.artifact_path}' already exists. Exiting.\n"
        )

        with patch("wav2flac.transcoder._run_ffmpeg", return_value=refused):
            with pytest.raises(ConversionError, match="already exists"):
                transcode(source, 12)

        assert source.artifact_path.read_bytes() == b"someone else's flac"

    def test_empty_stderr_reports_exit_status(self, source: SourceFile) -> None:
        failed = MagicMock(returncode=69, stderr="")
        with patch("wav2flac.transcoder._run_ffmpeg", return_value=failed):
            with pytest.raises(ConversionError, match="exited with status 69"):
                transcode(source, 12)

    def test_timeout_raises(self, source: SourceFile) -> None:
        with patch(
            "wav2flac.transcoder._run_ffmpeg",
            side_effect=subprocess.TimeoutExpired(cmd="ffmpeg", timeout=5),
        ):
            with pytest.raises(ConversionError, match="timed out"):
                transcode(source, 12, timeout=5)

    def test_launch_error_raises(self, source: SourceFile) -> None:
        with patch(
            "wav2flac.transcoder._run_ffmpeg",
            side_effect=FileNotFoundError("No such file or directory: 'ffmpeg'"),
        ):
            with pytest.raises(ConversionError, match="ffmpeg error"):
                transcode(source, 12)


# --- _run_ffmpeg / terminate_running ---


def _popen_returning(proc: MagicMock) -> MagicMock:
    popen = MagicMock()
    popen.return_value.__enter__.return_value = proc
    return popen


class TestRunFfmpeg:
    def test_child_runs_in_its_own_session(self) -> None:
        """A terminal Ctrl-C must not reach ffmpeg, so in-flight encodes can finish."""
        proc = MagicMock(returncode=0)
        proc.communicate.return_value = ("", "size=42kB\n")
        popen = _popen_returning(proc)

        with patch("wav2flac.transcoder.subprocess.Popen", popen):
            result = _run_ffmpeg(["ffmpeg", "-i", "a.wav", "a.wav.flac"])

        assert popen.call_args.kwargs["start_new_session"] is True
        assert result.returncode == 0
        assert result.stderr == "size=42kB\n"
        assert not transcoder._RUNNING

    def test_terminate_running_stops_active_encodes(self) -> None:
        proc = MagicMock(returncode=-15)
        terminated: list[int] = []

        def communicate(timeout: float | None = None) -> tuple[str, str]:
            terminated.append(terminate_running())
            return "", ""

        proc.communicate.side_effect = communicate

        with patch("wav2flac.transcoder.subprocess.Popen", _popen_returning(proc)):
            result = _run_ffmpeg(["ffmpeg"])

        assert terminated == [1]
        proc.terminate.assert_called_once()
        assert result.returncode == -15
        assert terminate_running() == 0

    def test_timeout_kills_child(self) -> None:
        proc = MagicMock(returncode=-9)
        proc.communicate.side_effect = [subprocess.TimeoutExpired(cmd="ffmpeg", timeout=5), ("", "")]

        with patch("wav2flac.transcoder.subprocess.Popen", _popen_returning(proc)):
            with pytest.raises(subprocess.TimeoutExpired):
                _run_ffmpeg(["ffmpeg"], timeout=5)

        proc.kill.assert_called_once()
        assert not transcoder._RUNNING


# --- copy_timestamps ---


def test_copy_timestamps_missing_source(tmp_path: Path) -> None:
    artifact = tmp_path / "a.wav.flac"
    artifact.write_bytes(b"flac")
    assert copy_timestamps(tmp_path / "gone.wav", artifact) is False
