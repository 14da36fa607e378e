from pathlib import Path

import pytest

from bac.errors import ConversionError, ErrorKind
from bac.models import AudioFile, BatchSummary, ConversionStatus, ProgressEvent, TaskResult, extension_of


@pytest.mark.parametrize(
    "name,ext",
    [("song.MP3", "mp3"), ("a.b.flac", "flac"), ("noext", ""), (".hidden", ""), ("trailing.", "")],
)
def test_extension_of(name, ext):
    assert extension_of(name) == ext


def test_status_transitions():
    f = AudioFile(path=Path("/m/a.wav"), name="a.wav", format="wav", size=1)
    with pytest.raises(ValueError):
        f.transition(ConversionStatus.COMPLETED)
    f.transition(ConversionStatus.PROCESSING)
    f.transition(ConversionStatus.COMPLETED)
    assert f.status.is_terminal
    with pytest.raises(ValueError):
        f.transition(ConversionStatus.PROCESSING)
    assert str(f) == "a.wav [WAV] - Completed"


def test_status_display_names():
    assert ConversionStatus.PROCESSING.display_name == "Processing..."
    assert not ConversionStatus.PENDING.is_terminal


def test_progress_fraction():
    assert ProgressEvent(1, 4).fraction == 0.25
    assert ProgressEvent(0, 0).fraction == 1.0


def test_error_messages():
    e = ConversionError("a.wav", ErrorKind.FILE_NOT_FOUND, "File does not exist")
    assert str(e) == "File not found: a.wav - File does not exist"
    assert e.user_message() == "Failed to convert 'a.wav': File not found"

    cause = OSError("disk full")
    e = ConversionError("", ErrorKind.IO_ERROR, cause=cause)
    assert e.detail == "disk full"
    assert e.__cause__ is cause
    assert e.user_message() == "Input/Output error: disk full"


def test_summary_as_dict():
    ok = TaskResult(AudioFile(Path("/m/a.wav"), "a.wav", "wav", 0), ConversionStatus.COMPLETED)
    bad = TaskResult(
        AudioFile(Path("/m/b.wav"), "b.wav", "wav", 0),
        ConversionStatus.FAILED,
        error=ConversionError("b.wav", ErrorKind.ENCODER_ERROR, "FFmpeg exit code: 1"),
    )
    s = BatchSummary(total=2, successful=1, failed=1, output_dir=Path("/o"), results=[ok, bad])
    d = s.as_dict()
    assert d["total"] == 2
    assert d["failures"] == [
        {"file": "b.wav", "kind": "encoder-error", "reason": "Failed to convert 'b.wav': FFmpeg conversion error"}
    ]
