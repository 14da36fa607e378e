"""Encoder command construction and execution.

The argument order below is fixed: ffmpeg reads options positionally, so
output options must follow `-i <input>` and the output path must come last.

    ffmpeg -y -v error -i <in> -c:a <codec> -ac <n> -ar <rate> [-q:a <q> | -b:a <N>k] <out>

`run_process` spawns one child with stderr merged into stdout and drains
the pipe while the child runs, so a chatty encoder can never stall on a
full pipe buffer.
"""
from __future__ import annotations

import shlex
import subprocess
import threading
from pathlib import Path
from typing import List, Optional

from loguru import logger

from .errors import ConversionError, ErrorKind
from .logging import tail
from .models import AudioFile
from .settings import ConversionSettings


def output_path_for(audio_file: AudioFile, settings: ConversionSettings, out_dir: Path) -> Path:
    """Input base name with the target extension, placed directly in out_dir."""
    name = audio_file.name
    dot = name.rfind(".")
    base = name[:dot] if dot > 0 else name
    return Path(out_dir) / f"{base}.{settings.format_spec.extension}"


def build_convert_cmd(
    audio_file: AudioFile,
    settings: ConversionSettings,
    out_dir: Path,
    *,
    ffmpeg: str = "ffmpeg",
) -> tuple[List[str], Path]:
    """Return (argv, output_path) for converting one file. Pure; touches nothing."""
    spec = settings.format_spec
    out_path = output_path_for(audio_file, settings, out_dir)
    cmd = [
        ffmpeg,
        "-y",
        "-v",
        "error",
        "-i",
        str(audio_file.path),
        "-c:a",
        spec.codec,
        "-ac",
        str(settings.channels.count),
        "-ar",
        str(settings.sample_rate.rate),
    ]
    if spec.supports_bitrate:
        if settings.uses_vbr_quality:
            cmd += ["-q:a", str(settings.vbr_quality)]
        else:
            cmd += ["-b:a", f"{settings.effective_bitrate()}k"]
    cmd.append(str(out_path))
    return cmd, out_path


def cmd_to_string(cmd: List[str]) -> str:
    return " ".join(shlex.quote(p) for p in cmd)


def run_process(cmd: List[str], *, timeout_s: Optional[float] = None) -> tuple[int, str, bool]:
    """Run a child to completion and return (exit code, combined output, timed_out).

    Raises OSError when the child cannot be started. With `timeout_s` set, a
    child still running after that many seconds is killed.
    """
    proc = subprocess.Popen(
        cmd,
        stdin=subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        text=True,
        encoding="utf-8",
        errors="replace",
    )
    timed_out = threading.Event()

    def _kill() -> None:
        if proc.poll() is None:
            timed_out.set()
            proc.kill()

    timer = threading.Timer(timeout_s, _kill) if timeout_s else None
    if timer is not None:
        timer.daemon = True
        timer.start()
    lines: List[str] = []
    try:
        for line in proc.stdout or ():
            lines.append(line)
            logger.trace("child: {}", line.rstrip())
        rc = proc.wait()
    finally:
        if timer is not None:
            timer.cancel()
        if proc.stdout is not None:
            proc.stdout.close()
        if proc.poll() is None:
            proc.kill()
            proc.wait()
    return rc, "".join(lines), timed_out.is_set()


def run_encoder(cmd: List[str], *, file_name: str, timeout_s: Optional[float] = None) -> str:
    """Run an encoder command; return its output or raise an encoder-error."""
    logger.debug("Running ffmpeg: {}", cmd_to_string(cmd))
    try:
        rc, output, timed_out = run_process(cmd, timeout_s=timeout_s)
    except OSError as e:
        raise ConversionError(file_name, ErrorKind.ENCODER_ERROR, cause=e) from e
    last = tail(output)
    if timed_out:
        raise ConversionError(
            file_name,
            ErrorKind.ENCODER_ERROR,
            f"timed out after {timeout_s:g}s" + (f"\n{last}" if last else ""),
            exit_code=rc,
            output=output,
        )
    if rc != 0:
        raise ConversionError(
            file_name,
            ErrorKind.ENCODER_ERROR,
            f"FFmpeg exit code: {rc}" + (f"\n{last}" if last else ""),
            exit_code=rc,
            output=output,
        )
    return output
