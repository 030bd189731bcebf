"""ffmpeg wrapper: all codec interaction is isolated here."""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import threading
from pathlib import Path

from wav2flac.scanner import SourceFile, stat_file

logger = logging.getLogger(__name__)

# ffmpeg processes still running, so a forced stop can terminate them.
_RUNNING: set[subprocess.Popen[str]] = set()
_RUNNING_LOCK = threading.Lock()


class ConversionError(Exception):
    """The codec did not produce an artifact for ``source``."""

    def __init__(self, source: Path, diagnostic: str) -> None:
        super().__init__(f"Conversion failed for {source}: {diagnostic}")
        self.source = source
        self.diagnostic = diagnostic


def check_ffmpeg_available(ffmpeg_path: str = "ffmpeg") -> None:
    """Verify that ffmpeg can be resolved. Raises RuntimeError if not found."""
    if shutil.which(ffmpeg_path) is None:
        raise RuntimeError(
            f"ffmpeg not found ({ffmpeg_path}). Install ffmpeg or set FFMPEG_PATH."
        )


def build_ffmpeg_command(
    source: Path,
    artifact: Path,
    compression_level: int,
    ffmpeg_path: str = "ffmpeg",
) -> list[str]:
    """Return the argv converting ``source`` into a FLAC at ``artifact``.

    Metadata is mapped through verbatim and ``-n`` keeps ffmpeg from
    overwriting an existing file.
    """
    return [
        ffmpeg_path,
        "-nostdin",
        "-hide_banner",
        "-n",
        "-i", str(source),
        "-map_metadata", "0",
        "-c:a", "flac",
        "-compression_level", str(compression_level),
        str(artifact),
    ]


def copy_timestamps(source: Path, artifact: Path) -> bool:
    """Copy access/modification times from source to artifact.

    Returns False (after logging a warning) if the times could not be set.
    """
    try:
        st = stat_file(source)
        os.utime(artifact, ns=(st.atime_ns, st.mtime_ns))
    except OSError as e:
        logger.warning("Could not copy timestamps onto %s: %s", artifact, e)
        return False
    return True


def _run_ffmpeg(cmd: list[str], timeout: float | None = None) -> subprocess.CompletedProcess[str]:
    """Run ffmpeg to completion and capture its output.

    The child gets its own session, so a Ctrl-C in the terminal reaches
    only wav2flac and the encode can finish. Raises TimeoutExpired after
    killing the child when ``timeout`` elapses.
    """
    with subprocess.Popen(
        cmd,
        stdin=subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
        errors="replace",
        start_new_session=True,
    ) as proc:
        with _RUNNING_LOCK:
            _RUNNING.add(proc)
        try:
            stdout, stderr = proc.communicate(timeout=timeout)
        except subprocess.TimeoutExpired:
            proc.kill()
            proc.communicate()
            raise
        finally:
            with _RUNNING_LOCK:
                _RUNNING.discard(proc)
    return subprocess.CompletedProcess(cmd, proc.returncode, stdout, stderr)


def terminate_running() -> int:
    """Send SIGTERM to every ffmpeg still running and return how many there were."""
    with _RUNNING_LOCK:
        procs = list(_RUNNING)
    for proc in procs:
        proc.terminate()
    return len(procs)


def _discard_partial(artifact: Path, preexisting: bool) -> None:
    # Never delete a file this run did not create.
    if preexisting:
        return
    try:
        artifact.unlink(missing_ok=True)
    except OSError as e:
        logger.warning("Could not remove partial output %s: %s", artifact, e)


def transcode(
    source: SourceFile,
    compression_level: int,
    ffmpeg_path: str = "ffmpeg",
    timeout: float | None = None,
) -> Path:
    """Convert one source file to FLAC and return the artifact path.

    The caller has already checked that the artifact does not exist.
    Raises ConversionError on a nonzero exit, a timeout, or when ffmpeg
    cannot be launched; any partial output is removed first.
    """
    artifact = source.artifact_path
    cmd = build_ffmpeg_command(source.path, artifact, compression_level, ffmpeg_path)
    preexisting = artifact.exists()

    try:
        result = _run_ffmpeg(cmd, timeout=timeout)
    except subprocess.TimeoutExpired:
        _discard_partial(artifact, preexisting)
        raise ConversionError(source.path, f"ffmpeg timed out after {timeout}s")
    except OSError as e:
        raise ConversionError(source.path, f"ffmpeg error: {e}") from e

    diagnostic = (result.stderr or "").strip()
    if result.returncode != 0:
        _discard_partial(artifact, preexisting)
        for line in diagnostic.splitlines():
            logger.error("ffmpeg: %s", line)
        raise ConversionError(
            source.path,
            diagnostic.splitlines()[-1] if diagnostic else f"ffmpeg exited with status {result.returncode}",
        )

    for line in diagnostic.splitlines():
        logger.debug("ffmpeg: %s", line)

    logger.info("Conversion successful: %s -> %s", source.path, artifact)
    copy_timestamps(source.path, artifact)
    return artifact
