from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

from .errors import ConversionError


SUPPORTED_FORMATS = ("mp3", "wav", "m4a", "flac")


class ConversionStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def display_name(self) -> str:
        return {
            ConversionStatus.PENDING: "Pending",
            ConversionStatus.PROCESSING: "Processing...",
            ConversionStatus.COMPLETED: "Completed",
            ConversionStatus.FAILED: "Failed",
        }[self]

    @property
    def is_terminal(self) -> bool:
        return self in (ConversionStatus.COMPLETED, ConversionStatus.FAILED)


_ALLOWED_TRANSITIONS = {
    ConversionStatus.PENDING: {ConversionStatus.PROCESSING},
    ConversionStatus.PROCESSING: {ConversionStatus.COMPLETED, ConversionStatus.FAILED},
    ConversionStatus.COMPLETED: set(),
    ConversionStatus.FAILED: set(),
}


def extension_of(name: str) -> str:
    """Lowercased suffix after the last dot; empty for no dot or dot-files."""
    dot = name.rfind(".")
    if dot > 0:
        return name[dot + 1:].lower()
    return ""


@dataclass(eq=False)
class AudioFile:
    path: Path
    name: str
    format: str
    size: int
    status: ConversionStatus = ConversionStatus.PENDING

    @classmethod
    def from_path(cls, path: Path | str) -> "AudioFile":
        p = Path(path).expanduser().resolve()
        try:
            size = p.stat().st_size
        except OSError:
            size = 0
        return cls(path=p, name=p.name, format=extension_of(p.name), size=size)

    @property
    def is_supported(self) -> bool:
        return self.format in SUPPORTED_FORMATS

    def transition(self, status: ConversionStatus) -> None:
        if status not in _ALLOWED_TRANSITIONS[self.status]:
            raise ValueError(f"{self.name}: illegal status change {self.status.value} -> {status.value}")
        self.status = status

    def __str__(self) -> str:
        return f"{self.name} [{self.format.upper()}] - {self.status.display_name}"


@dataclass
class TaskResult:
    """What a worker hands back to the coordinator for one file."""

    audio_file: AudioFile
    status: ConversionStatus
    output_path: Optional[Path] = None
    error: Optional[ConversionError] = None
    duration_s: Optional[float] = None  # source duration, when probed
    info: Optional[str] = None  # probe summary line
    elapsed_s: float = 0.0

    @property
    def ok(self) -> bool:
        return self.status is ConversionStatus.COMPLETED


@dataclass(frozen=True)
class StatusEvent:
    audio_file: AudioFile
    status: ConversionStatus
    error: Optional[ConversionError] = None


@dataclass(frozen=True)
class ProgressEvent:
    completed: int
    total: int

    @property
    def fraction(self) -> float:
        return self.completed / self.total if self.total else 1.0


@dataclass
class BatchSummary:
    total: int
    successful: int
    failed: int
    output_dir: Path
    results: list[TaskResult] = field(default_factory=list)
    elapsed_s: float = 0.0

    @property
    def failures(self) -> list[TaskResult]:
        return [r for r in self.results if not r.ok]

    def as_dict(self) -> dict:
        return {
            "total": self.total,
            "successful": self.successful,
            "failed": self.failed,
            "output_dir": str(self.output_dir),
            "elapsed_s": round(self.elapsed_s, 3),
            "files": [
                {
                    "file": r.audio_file.name,
                    "status": r.status.value,
                    "output": str(r.output_path) if r.output_path else None,
                    "duration_s": r.duration_s,
                    "info": r.info,
                }
                for r in self.results
            ],
            "failures": [
                {
                    "file": r.audio_file.name,
                    "kind": r.error.kind.value if r.error else None,
                    "reason": r.error.user_message() if r.error else None,
                }
                for r in self.failures
            ],
        }
