from pathlib import Path
from unittest.mock import patch

import pytest

from bac.errors import ConversionError, ErrorKind
from bac.ffmpeg_check import Toolchain
from bac.models import AudioFile, ConversionStatus
from bac.probe import ProbeResult
from bac.settings import ConversionSettings, OutputFormat
from bac.task import ConversionTask, TaskState, validate_audio_file


TOOLS = Toolchain(ffmpeg="ffmpeg", ffprobe="ffprobe")


def _source(tmp_path, name="a.wav"):
    p = tmp_path / name
    p.write_bytes(b"RIFF")
    return AudioFile.from_path(p)


class Recorder:
    def __init__(self):
        self.calls = []

    def __call__(self, audio_file, status, error):
        self.calls.append((status, error))

    @property
    def statuses(self):
        return [s for s, _ in self.calls]


def test_validate_missing_file(tmp_path):
    f = AudioFile.from_path(tmp_path / "gone.mp3")
    with pytest.raises(ConversionError) as ei:
        validate_audio_file(f)
    assert ei.value.kind is ErrorKind.FILE_NOT_FOUND
    assert ei.value.detail == "File does not exist"


def test_validate_unsupported_extension(tmp_path):
    f = _source(tmp_path, "notes.ogg")
    with pytest.raises(ConversionError) as ei:
        validate_audio_file(f)
    assert ei.value.kind is ErrorKind.UNSUPPORTED_FORMAT


@patch("bac.task.probe_file")
@patch("bac.task.run_encoder")
def test_missing_file_never_spawns_encoder(mock_enc, mock_probe, tmp_path):
    f = AudioFile.from_path(tmp_path / "gone.mp3")
    rec = Recorder()
    task = ConversionTask(f, ConversionSettings(), tmp_path / "out", TOOLS, notify=rec)
    with pytest.raises(ConversionError) as ei:
        task.run()
    assert ei.value.kind is ErrorKind.FILE_NOT_FOUND
    mock_enc.assert_not_called()
    mock_probe.assert_not_called()
    assert f.status is ConversionStatus.FAILED
    assert rec.statuses == [ConversionStatus.PROCESSING, ConversionStatus.FAILED]
    assert rec.calls[-1][1] is ei.value
    assert task.state is TaskState.FAILED


@patch("bac.task.probe_file", return_value=ProbeResult(duration_s=3.25))
@patch("bac.task.run_encoder", return_value="")
def test_successful_run(mock_enc, mock_probe, tmp_path):
    f = _source(tmp_path)
    rec = Recorder()
    task = ConversionTask(f, ConversionSettings(OutputFormat.FLAC), tmp_path / "out", TOOLS, notify=rec)
    out = task.run()
    assert out == tmp_path / "out" / "a.flac"
    assert f.status is ConversionStatus.COMPLETED
    assert rec.statuses == [ConversionStatus.PROCESSING, ConversionStatus.COMPLETED]
    cmd = mock_enc.call_args.args[0]
    assert cmd[0] == "ffmpeg" and cmd[-1] == str(out)
    assert mock_enc.call_args.kwargs["file_name"] == "a.wav"
    mock_probe.assert_called_once()


@patch("bac.task.probe_file", side_effect=ConversionError("a.wav", ErrorKind.ENCODER_ERROR, "ffprobe exit code: 1"))
@patch("bac.task.run_encoder", return_value="")
def test_probe_failure_does_not_block_conversion(mock_enc, mock_probe, tmp_path):
    f = _source(tmp_path)
    task = ConversionTask(f, ConversionSettings(), tmp_path, TOOLS)
    task.run()
    assert f.status is ConversionStatus.COMPLETED
    assert task.probe_error is not None
    assert task.probe_result is None


@patch("bac.task.probe_file")
@patch("bac.task.run_encoder", return_value="")
def test_probe_can_be_disabled(mock_enc, mock_probe, tmp_path):
    ConversionTask(_source(tmp_path), ConversionSettings(), tmp_path, TOOLS, probe=False).run()
    mock_probe.assert_not_called()


@patch("bac.task.probe_file", return_value=ProbeResult())
@patch("bac.task.run_encoder")
def test_encoder_failure_propagates(mock_enc, mock_probe, tmp_path):
    err = ConversionError("a.wav", ErrorKind.ENCODER_ERROR, "FFmpeg exit code: 1", exit_code=1)
    mock_enc.side_effect = err
    f = _source(tmp_path)
    rec = Recorder()
    task = ConversionTask(f, ConversionSettings(), tmp_path, TOOLS, notify=rec)
    with pytest.raises(ConversionError) as ei:
        task.run()
    assert ei.value is err
    assert f.status is ConversionStatus.FAILED
    assert rec.calls[-1] == (ConversionStatus.FAILED, err)


@patch("bac.task.probe_file", return_value=ProbeResult(duration_s=1.0))
@patch("bac.task.run_encoder")
def test_execute_folds_error_into_result(mock_enc, mock_probe, tmp_path):
    mock_enc.side_effect = ConversionError("a.wav", ErrorKind.ENCODER_ERROR, "FFmpeg exit code: 1")
    result = ConversionTask(_source(tmp_path), ConversionSettings(), tmp_path, TOOLS).execute()
    assert not result.ok
    assert result.status is ConversionStatus.FAILED
    assert result.error.kind is ErrorKind.ENCODER_ERROR
    assert result.output_path == tmp_path / "a.mp3"
    assert result.duration_s == 1.0


@patch("bac.task.probe_file", return_value=ProbeResult())
@patch("bac.task.run_encoder", side_effect=RuntimeError("boom"))
def test_unexpected_error_marks_failed_and_raises(mock_enc, mock_probe, tmp_path):
    f = _source(tmp_path)
    task = ConversionTask(f, ConversionSettings(), tmp_path, TOOLS)
    with pytest.raises(RuntimeError):
        task.execute()
    assert f.status is ConversionStatus.FAILED


def test_task_cannot_run_twice(tmp_path):
    f = _source(tmp_path)
    with patch("bac.task.run_encoder", return_value=""), patch("bac.task.probe_file", return_value=ProbeResult()):
        task = ConversionTask(f, ConversionSettings(), Path(tmp_path), TOOLS)
        task.run()
        with pytest.raises(ValueError):
            task.run()


@patch("bac.task.probe_file", return_value=ProbeResult(duration_s=7.0, codec_name="mp3", sample_rate=48000, channels=1, bit_rate=128000))
@patch("bac.task.run_encoder", return_value="")
def test_execute_carries_source_info(mock_enc, mock_probe, tmp_path):
    result = ConversionTask(_source(tmp_path, "a.mp3"), ConversionSettings(), tmp_path / "out", TOOLS).execute()
    assert result.ok
    assert result.duration_s == 7.0
    assert result.info == "Codec: mp3, Sample Rate: 48000 Hz, Channels: 1, Bitrate: 128 kbps"


@patch("bac.task.probe_file")
@patch("bac.task.run_encoder", return_value="")
def test_execute_without_probe_has_no_info(mock_enc, mock_probe, tmp_path):
    result = ConversionTask(_source(tmp_path), ConversionSettings(), tmp_path, TOOLS, probe=False).execute()
    assert result.info is None and result.duration_s is None
