from pathlib import Path
from unittest.mock import patch

from bac import ffmpeg_check
from bac.ffmpeg_check import Toolchain, known_locations, probe_ffmpeg, resolve_binary
from bac.settings import OutputFormat


@patch("bac.ffmpeg_check._is_windows", return_value=False)
@patch("bac.ffmpeg_check.shutil.which", return_value="/some/path/ffmpeg")
def test_resolve_prefers_path(mock_which, _win):
    assert resolve_binary("ffmpeg") == "/some/path/ffmpeg"


@patch("bac.ffmpeg_check._is_windows", return_value=False)
@patch("bac.ffmpeg_check.shutil.which", return_value=None)
def test_resolve_known_location(mock_which, _win, tmp_path, monkeypatch):
    exe = tmp_path / "ffmpeg"
    exe.write_text("#!/bin/sh\n")
    exe.chmod(0o755)
    monkeypatch.setattr(ffmpeg_check, "_UNIX_DIRS", ("/definitely/not/here", str(tmp_path)))
    assert resolve_binary("ffmpeg") == str(exe)


@patch("bac.ffmpeg_check._is_windows", return_value=False)
@patch("bac.ffmpeg_check.shutil.which", return_value=None)
def test_resolve_falls_back_to_bare_name(mock_which, _win, monkeypatch):
    monkeypatch.setattr(ffmpeg_check, "_UNIX_DIRS", ("/definitely/not/here",))
    assert resolve_binary("ffprobe") == "ffprobe"


@patch("bac.ffmpeg_check._is_windows", return_value=True)
def test_windows_locations_use_exe(_win):
    locs = known_locations("ffmpeg")
    assert [p.name for p in locs] == ["ffmpeg.exe", "ffmpeg.exe"]
    assert str(locs[0].parent) == str(Path("C:\\ffmpeg\\bin"))


@patch("bac.ffmpeg_check.resolve_binary", side_effect=lambda name: f"/auto/{name}")
def test_toolchain_explicit_paths_win(mock_resolve):
    tc = Toolchain.resolve(ffmpeg_path="/custom/ffmpeg")
    assert tc == Toolchain(ffmpeg="/custom/ffmpeg", ffprobe="/auto/ffprobe")


ENCODERS = """\
Encoders:
 A..... aac                  AAC (Advanced Audio Coding)
 A..... flac                 FLAC (Free Lossless Audio Codec)
 A..... pcm_s16le            PCM signed 16-bit little-endian
"""


@patch("bac.ffmpeg_check._run")
def test_probe_ffmpeg_reports_missing_encoders(mock_run):
    mock_run.side_effect = [
        (0, "ffmpeg version 6.1 Copyright (c)\nbuilt with gcc\n", ""),
        (0, ENCODERS, ""),
    ]
    st = probe_ffmpeg("/usr/bin/ffmpeg")
    assert st.available
    assert st.ffmpeg_version == "ffmpeg version 6.1 Copyright (c)"
    assert st.missing_encoders == [OutputFormat.MP3]


@patch("bac.ffmpeg_check._run", return_value=(127, "", "No such file or directory"))
def test_probe_ffmpeg_unavailable(mock_run):
    st = probe_ffmpeg("/nope/ffmpeg")
    assert not st.available
    assert "No such file" in st.error
