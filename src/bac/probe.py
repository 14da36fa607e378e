"""Best-effort source metadata via ffprobe, with a mutagen fallback.

Probing never gates a conversion: callers treat a `ConversionError` from
here as a warning and carry on.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

import mutagen
from loguru import logger

from .encoder import run_process
from .errors import ConversionError, ErrorKind
from .logging import tail


@dataclass
class ProbeResult:
    duration_s: Optional[float] = None
    codec_name: Optional[str] = None
    sample_rate: Optional[int] = None
    channels: Optional[int] = None
    bit_rate: Optional[int] = None  # bits per second
    has_audio: bool = True
    source: str = "ffprobe"

    def info_string(self) -> str:
        if not self.has_audio:
            return "No audio stream found"
        return "Codec: {}, Sample Rate: {} Hz, Channels: {}, Bitrate: {} kbps".format(
            self.codec_name or "Unknown",
            self.sample_rate or 0,
            self.channels or 0,
            (self.bit_rate or 0) // 1000,
        )


def build_ffprobe_cmd(path: Path, *, ffprobe: str = "ffprobe") -> List[str]:
    return [
        ffprobe,
        "-v",
        "error",
        "-print_format",
        "json",
        "-show_format",
        "-show_streams",
        str(path),
    ]


def _as_int(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _as_float(value: Any) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def parse_ffprobe_json(text: str) -> ProbeResult:
    """Map ffprobe's JSON document onto a ProbeResult.

    The first stream with codec_type "audio" is the primary one; embedded
    cover art shows up as a video stream and is skipped.
    """
    data: Dict[str, Any] = json.loads(text or "{}")
    fmt = data.get("format") or {}
    streams = data.get("streams") or []
    audio = next((s for s in streams if s.get("codec_type") == "audio"), None)
    duration = _as_float(fmt.get("duration"))
    if audio is None:
        return ProbeResult(duration_s=duration, has_audio=False)
    return ProbeResult(
        duration_s=duration if duration is not None else _as_float(audio.get("duration")),
        codec_name=audio.get("codec_name"),
        sample_rate=_as_int(audio.get("sample_rate")),
        channels=_as_int(audio.get("channels")),
        bit_rate=_as_int(audio.get("bit_rate")) or _as_int(fmt.get("bit_rate")),
    )


def probe_with_ffprobe(path: Path, *, ffprobe: str = "ffprobe", timeout_s: Optional[float] = None) -> ProbeResult:
    name = Path(path).name
    try:
        rc, output, timed_out = run_process(build_ffprobe_cmd(path, ffprobe=ffprobe), timeout_s=timeout_s)
    except OSError as e:
        raise ConversionError(name, ErrorKind.ENCODER_ERROR, cause=e) from e
    if timed_out or rc != 0:
        reason = "ffprobe timed out" if timed_out else f"ffprobe exit code: {rc}"
        raise ConversionError(name, ErrorKind.ENCODER_ERROR, f"{reason}\n{tail(output)}".rstrip(), exit_code=rc, output=output)
    try:
        return parse_ffprobe_json(output)
    except ValueError as e:
        raise ConversionError(name, ErrorKind.ENCODER_ERROR, f"unreadable ffprobe output: {e}") from e


def probe_with_mutagen(path: Path) -> ProbeResult:
    """Read stream info with mutagen when ffprobe cannot be run."""
    name = Path(path).name
    try:
        audio = mutagen.File(str(path))
    except (mutagen.MutagenError, OSError) as e:
        raise ConversionError(name, ErrorKind.ENCODER_ERROR, cause=e) from e
    if audio is None or getattr(audio, "info", None) is None:
        raise ConversionError(name, ErrorKind.UNSUPPORTED_FORMAT, "mutagen could not identify the file")
    info = audio.info
    codec = getattr(info, "codec", None) or type(audio).__name__.lower()
    return ProbeResult(
        duration_s=_as_float(getattr(info, "length", None)),
        codec_name=codec,
        sample_rate=_as_int(getattr(info, "sample_rate", None)),
        channels=_as_int(getattr(info, "channels", None)),
        bit_rate=_as_int(getattr(info, "bitrate", None)),
        source="mutagen",
    )


def probe_file(
    path: Path,
    *,
    ffprobe: str = "ffprobe",
    timeout_s: Optional[float] = None,
    fallback: bool = True,
) -> ProbeResult:
    """Probe a file; fall back to mutagen if ffprobe itself could not start."""
    try:
        return probe_with_ffprobe(path, ffprobe=ffprobe, timeout_s=timeout_s)
    except ConversionError as e:
        if not fallback or not isinstance(e.cause, OSError):
            raise
        logger.debug(f"ffprobe unavailable ({e.detail}); reading {Path(path).name} with mutagen")
        return probe_with_mutagen(path)
