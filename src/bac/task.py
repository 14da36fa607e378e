"""One conversion of one file: validate, probe, encode.

A task owns its `AudioFile`'s status for its whole lifetime. It never
publishes anything itself; status changes are handed to the `notify`
callable supplied by the coordinator, which decides how to surface them.
"""
from __future__ import annotations

import time
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

from loguru import logger

from .encoder import build_convert_cmd, run_encoder
from .errors import ConversionError, ErrorKind
from .ffmpeg_check import Toolchain
from .models import SUPPORTED_FORMATS, AudioFile, ConversionStatus, TaskResult
from .probe import ProbeResult, probe_file
from .settings import ConversionSettings


Notify = Callable[[AudioFile, ConversionStatus, Optional[ConversionError]], None]


class TaskState(str, Enum):
    CREATED = "created"
    VALIDATING = "validating"
    PROBING = "probing"
    CONVERTING = "converting"
    COMPLETED = "completed"
    FAILED = "failed"


def validate_audio_file(audio_file: AudioFile) -> None:
    if not audio_file.path.is_file():
        raise ConversionError(audio_file.name, ErrorKind.FILE_NOT_FOUND, "File does not exist")
    if not audio_file.is_supported:
        raise ConversionError(
            audio_file.name,
            ErrorKind.UNSUPPORTED_FORMAT,
            "Supported formats: " + ", ".join(SUPPORTED_FORMATS),
        )


class ConversionTask:
    def __init__(
        self,
        audio_file: AudioFile,
        settings: ConversionSettings,
        out_dir: Path,
        toolchain: Toolchain,
        *,
        notify: Optional[Notify] = None,
        probe: bool = True,
        timeout_s: Optional[float] = None,
    ) -> None:
        self.audio_file = audio_file
        self.settings = settings
        self.out_dir = Path(out_dir)
        self.toolchain = toolchain
        self.state = TaskState.CREATED
        self.probe_result: Optional[ProbeResult] = None
        self.probe_error: Optional[ConversionError] = None
        self.output_path: Optional[Path] = None
        self._notify = notify
        self._probe = probe
        self._timeout_s = timeout_s

    def _enter(self, state: TaskState) -> None:
        logger.trace(f"{self.audio_file.name}: {self.state.value} -> {state.value}")
        self.state = state

    def _set_status(self, status: ConversionStatus, error: Optional[ConversionError] = None) -> None:
        self.audio_file.transition(status)
        if self._notify is not None:
            self._notify(self.audio_file, status, error)

    def run(self) -> Path:
        """Convert the file and return the output path.

        Raises ConversionError on validation or encoder failure after moving
        the file to Failed. Probe failures are recorded in `probe_error` only.
        """
        self._set_status(ConversionStatus.PROCESSING)
        try:
            self._enter(TaskState.VALIDATING)
            validate_audio_file(self.audio_file)

            self._enter(TaskState.PROBING)
            if self._probe:
                try:
                    self.probe_result = probe_file(
                        self.audio_file.path, ffprobe=self.toolchain.ffprobe, timeout_s=self._timeout_s
                    )
                    logger.bind(
                        action="probe",
                        file=self.audio_file.name,
                        status="ok",
                        duration_s=self.probe_result.duration_s,
                    ).debug(self.probe_result.info_string())
                except ConversionError as e:
                    self.probe_error = e
                    logger.bind(action="probe", file=self.audio_file.name, status="warn", reason=e.detail).warning(
                        "probe failed; converting anyway"
                    )

            self._enter(TaskState.CONVERTING)
            cmd, out_path = build_convert_cmd(
                self.audio_file, self.settings, self.out_dir, ffmpeg=self.toolchain.ffmpeg
            )
            self.output_path = out_path
            run_encoder(cmd, file_name=self.audio_file.name, timeout_s=self._timeout_s)
        except ConversionError as e:
            self._enter(TaskState.FAILED)
            self._set_status(ConversionStatus.FAILED, e)
            raise
        except Exception:
            self._enter(TaskState.FAILED)
            self._set_status(ConversionStatus.FAILED)
            raise

        self._enter(TaskState.COMPLETED)
        self._set_status(ConversionStatus.COMPLETED)
        return out_path

    def execute(self) -> TaskResult:
        """Worker entry point: run and fold a ConversionError into the result."""
        t0 = time.perf_counter()
        try:
            out_path = self.run()
        except ConversionError as e:
            return TaskResult(
                audio_file=self.audio_file,
                status=ConversionStatus.FAILED,
                output_path=self.output_path,
                error=e,
                duration_s=self._duration(),
                info=self._info(),
                elapsed_s=time.perf_counter() - t0,
            )
        return TaskResult(
            audio_file=self.audio_file,
            status=ConversionStatus.COMPLETED,
            output_path=out_path,
            duration_s=self._duration(),
            info=self._info(),
            elapsed_s=time.perf_counter() - t0,
        )

    def _duration(self) -> Optional[float]:
        return self.probe_result.duration_s if self.probe_result else None

    def _info(self) -> Optional[str]:
        return self.probe_result.info_string() if self.probe_result else None
