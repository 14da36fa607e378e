"""Find ffmpeg and ffprobe and check what the installed build can encode."""
from __future__ import annotations

import os
import shutil
import subprocess
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from .settings import OutputFormat, format_spec


_UNIX_DIRS = ("/usr/local/bin", "/usr/bin", "/opt/homebrew/bin")
_WINDOWS_DIRS = ("C:\\ffmpeg\\bin", "C:\\Program Files\\ffmpeg\\bin")


def _is_windows() -> bool:
    return sys.platform.startswith("win")


def _executable_name(name: str) -> str:
    return f"{name}.exe" if _is_windows() else name


def known_locations(name: str) -> List[Path]:
    """Install locations checked after PATH, per OS family."""
    exe = _executable_name(name)
    dirs = _WINDOWS_DIRS if _is_windows() else _UNIX_DIRS
    return [Path(d) / exe for d in dirs]


def resolve_binary(name: str) -> str:
    """Resolve an executable: PATH, then known install locations, then the bare name.

    The bare-name fallback leaves it to the environment to put the tool on
    PATH by the time it is spawned; a missing tool then surfaces as a spawn
    failure on the task that needs it.
    """
    found = shutil.which(_executable_name(name))
    if found:
        return found
    for candidate in known_locations(name):
        if candidate.is_file() and (_is_windows() or os.access(candidate, os.X_OK)):
            return str(candidate)
    return _executable_name(name)


@dataclass(frozen=True)
class Toolchain:
    ffmpeg: str
    ffprobe: str

    @classmethod
    def resolve(cls, ffmpeg_path: Optional[str] = None, ffprobe_path: Optional[str] = None) -> "Toolchain":
        return cls(
            ffmpeg=ffmpeg_path or resolve_binary("ffmpeg"),
            ffprobe=ffprobe_path or resolve_binary("ffprobe"),
        )


@dataclass
class FFmpegStatus:
    available: bool
    ffmpeg_path: Optional[str] = None
    ffmpeg_version: Optional[str] = None
    encoders: Dict[OutputFormat, bool] = field(default_factory=dict)
    error: Optional[str] = None

    @property
    def missing_encoders(self) -> List[OutputFormat]:
        return [fmt for fmt, ok in self.encoders.items() if not ok]


@dataclass
class FFprobeStatus:
    available: bool
    ffprobe_path: Optional[str] = None
    ffprobe_version: Optional[str] = None
    error: Optional[str] = None


def _run(cmd: list[str]) -> tuple[int, str, str]:
    try:
        proc = subprocess.run(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            check=False,
            text=True,
        )
        return proc.returncode, proc.stdout, proc.stderr
    except OSError as exc:
        return 127, "", str(exc)


def _first_line(text: str) -> Optional[str]:
    for line in (text or "").splitlines():
        if line.strip():
            return line.strip()
    return None


def probe_ffmpeg(path: Optional[str] = None) -> FFmpegStatus:
    path = path or resolve_binary("ffmpeg")
    rc_v, out_v, err_v = _run([path, "-version"])
    if rc_v != 0:
        return FFmpegStatus(available=False, ffmpeg_path=path, error=(err_v or "ffmpeg -version failed").strip())

    rc_e, out_e, _ = _run([path, "-hide_banner", "-encoders"])
    encoders_text = (out_e or "").lower() if rc_e == 0 else ""
    encoders = {fmt: (format_spec(fmt).codec in encoders_text) for fmt in OutputFormat}
    return FFmpegStatus(
        available=True,
        ffmpeg_path=path,
        ffmpeg_version=_first_line(out_v),
        encoders=encoders,
    )


def probe_ffprobe(path: Optional[str] = None) -> FFprobeStatus:
    path = path or resolve_binary("ffprobe")
    rc, out, err = _run([path, "-version"])
    if rc != 0:
        return FFprobeStatus(available=False, ffprobe_path=path, error=(err or "ffprobe -version failed").strip())
    return FFprobeStatus(available=True, ffprobe_path=path, ffprobe_version=_first_line(out))
