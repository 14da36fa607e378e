"""Typed conversion errors shared by the task, probe and engine layers."""
from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    UNSUPPORTED_FORMAT = "unsupported-format"
    FILE_NOT_FOUND = "file-not-found"
    ENCODER_ERROR = "encoder-error"
    INVALID_SETTINGS = "invalid-settings"
    IO_ERROR = "io-error"

    @property
    def message(self) -> str:
        return _KIND_MESSAGES[self]


_KIND_MESSAGES = {
    ErrorKind.UNSUPPORTED_FORMAT: "Unsupported audio format",
    ErrorKind.FILE_NOT_FOUND: "File not found",
    ErrorKind.ENCODER_ERROR: "FFmpeg conversion error",
    ErrorKind.INVALID_SETTINGS: "Invalid conversion settings",
    ErrorKind.IO_ERROR: "Input/Output error",
}


class ConversionError(Exception):
    """Failure tied to one file (or to the settings, with an empty file name).

    Either `detail` (free text) or `cause` (the underlying exception) describes
    what went wrong. Encoder failures also carry the exit code and the
    captured output of the child process when one ran.
    """

    def __init__(
        self,
        file_name: str,
        kind: ErrorKind,
        detail: Optional[str] = None,
        *,
        cause: Optional[BaseException] = None,
        exit_code: Optional[int] = None,
        output: str = "",
    ) -> None:
        self.file_name = file_name
        self.kind = kind
        self.detail = detail if detail is not None else (str(cause) if cause is not None else "")
        self.cause = cause
        self.exit_code = exit_code
        self.output = output
        if detail is not None:
            text = f"{kind.message}: {file_name} - {detail}"
        else:
            text = f"{kind.message}: {file_name}"
        super().__init__(text)
        if cause is not None:
            self.__cause__ = cause

    def user_message(self) -> str:
        """One-line reason suitable for end users (no traceback, no raw output)."""
        if not self.file_name:
            return f"{self.kind.message}: {self.detail}" if self.detail else self.kind.message
        return f"Failed to convert '{self.file_name}': {self.kind.message}"
