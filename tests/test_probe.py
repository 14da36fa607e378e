import json
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from bac.errors import ConversionError, ErrorKind
from bac.probe import ProbeResult, build_ffprobe_cmd, parse_ffprobe_json, probe_file


FFPROBE_DOC = {
    "streams": [
        {"index": 0, "codec_type": "video", "codec_name": "mjpeg"},
        {
            "index": 1,
            "codec_type": "audio",
            "codec_name": "mp3",
            "sample_rate": "44100",
            "channels": 2,
            "bit_rate": "192000",
        },
    ],
    "format": {"duration": "215.480000", "bit_rate": "196000"},
}


def test_build_ffprobe_cmd():
    cmd = build_ffprobe_cmd(Path("/m/a.mp3"), ffprobe="/bin/ffprobe")
    assert cmd[0] == "/bin/ffprobe"
    assert "-show_format" in cmd and "-show_streams" in cmd
    assert cmd[-1] == str(Path("/m/a.mp3"))


def test_parse_picks_first_audio_stream():
    r = parse_ffprobe_json(json.dumps(FFPROBE_DOC))
    assert r.duration_s == pytest.approx(215.48)
    assert r.codec_name == "mp3"
    assert r.sample_rate == 44100
    assert r.channels == 2
    assert r.bit_rate == 192000
    assert r.info_string() == "Codec: mp3, Sample Rate: 44100 Hz, Channels: 2, Bitrate: 192 kbps"


def test_parse_falls_back_to_container_bitrate():
    doc = {"streams": [{"codec_type": "audio", "codec_name": "flac", "sample_rate": "48000", "channels": 1}],
           "format": {"bit_rate": "900000"}}
    r = parse_ffprobe_json(json.dumps(doc))
    assert r.bit_rate == 900000
    assert r.duration_s is None


def test_parse_without_audio_stream():
    r = parse_ffprobe_json(json.dumps({"streams": [], "format": {"duration": "3.0"}}))
    assert not r.has_audio
    assert r.info_string() == "No audio stream found"


@patch("bac.probe.run_process")
def test_probe_file_success(mock_run):
    mock_run.return_value = (0, json.dumps(FFPROBE_DOC), False)
    r = probe_file(Path("/m/a.mp3"), ffprobe="ffprobe")
    assert r.source == "ffprobe"
    assert r.codec_name == "mp3"


@patch("bac.probe.run_process")
def test_probe_file_nonzero_exit_is_encoder_error(mock_run):
    mock_run.return_value = (1, "a.mp3: Invalid data found when processing input", False)
    with pytest.raises(ConversionError) as ei:
        probe_file(Path("/m/a.mp3"))
    assert ei.value.kind is ErrorKind.ENCODER_ERROR
    assert "Invalid data" in ei.value.detail


@patch("bac.probe.run_process")
def test_probe_file_bad_json(mock_run):
    mock_run.return_value = (0, "not json", False)
    with pytest.raises(ConversionError):
        probe_file(Path("/m/a.mp3"))


@patch("bac.probe.probe_with_mutagen")
@patch("bac.probe.run_process", side_effect=FileNotFoundError("ffprobe"))
def test_probe_falls_back_to_mutagen_when_ffprobe_missing(mock_run, mock_mutagen):
    mock_mutagen.return_value = ProbeResult(duration_s=1.5, codec_name="mp3", source="mutagen")
    r = probe_file(Path("/m/a.mp3"))
    assert r.source == "mutagen"
    mock_mutagen.assert_called_once()


@patch("bac.probe.run_process", side_effect=FileNotFoundError("ffprobe"))
def test_probe_without_fallback_raises(mock_run):
    with pytest.raises(ConversionError) as ei:
        probe_file(Path("/m/a.mp3"), fallback=False)
    assert isinstance(ei.value.cause, OSError)


def test_probe_with_mutagen_reads_stream_info():
    from bac.probe import probe_with_mutagen

    info = MagicMock(length=12.5, sample_rate=48000, channels=1, bitrate=128000, codec=None)
    audio = MagicMock(info=info)
    with patch("mutagen.File", return_value=audio):
        r = probe_with_mutagen(Path("/m/a.m4a"))
    assert r.duration_s == 12.5
    assert r.sample_rate == 48000
    assert r.channels == 1
    assert r.bit_rate == 128000
    assert r.source == "mutagen"


def test_probe_with_mutagen_unknown_file():
    from bac.probe import probe_with_mutagen

    with patch("mutagen.File", return_value=None):
        with pytest.raises(ConversionError) as ei:
            probe_with_mutagen(Path("/m/a.xyz"))
    assert ei.value.kind is ErrorKind.UNSUPPORTED_FORMAT
