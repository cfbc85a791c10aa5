"""Tests for ffprobe metadata inspection."""

import asyncio
import json
import sys
from pathlib import Path

import pytest

from watchcode.probe import FFprobe, MediaInfo, ProbeError, StreamInfo, parse_probe_output


class TestParseProbeOutput:
    """Tests for parse_probe_output."""

    def test_streams_and_format_duration(self):
        data = {
            "streams": [
                {"index": 0, "codec_type": "video", "codec_name": "HEVC"},
                {"index": 1, "codec_type": "audio", "codec_name": "eac3"},
                {"index": 2, "codec_type": "subtitle", "codec_name": "subrip"},
            ],
            "format": {"duration": "1325.400000"},
        }
        info = parse_probe_output(data)

        assert info.video_codec == "hevc"
        assert info.duration == pytest.approx(1325.4)
        assert [s.codec_type for s in info.streams] == ["video", "audio", "subtitle"]

    def test_duration_falls_back_to_video_stream(self):
        data = {
            "streams": [{"index": 0, "codec_type": "video", "codec_name": "h264", "duration": "42.0"}],
            "format": {},
        }
        assert parse_probe_output(data).duration == 42.0

    def test_missing_duration_is_none(self):
        data = {"streams": [{"codec_type": "video", "codec_name": "h264"}], "format": {"duration": "N/A"}}
        assert parse_probe_output(data).duration is None

    def test_cover_art_is_not_the_video_codec(self):
        info = MediaInfo(
            streams=[StreamInfo(0, "video", "mjpeg"), StreamInfo(1, "video", "av1")],
            duration=10.0,
        )
        assert info.video_codec == "av1"

    def test_no_streams(self):
        assert parse_probe_output({}).video_codec is None


def _fake_ffprobe(tmp_path: Path, body: str) -> str:
    script = tmp_path / "ffprobe"
    script.write_text(f"#!{sys.executable}\n{body}")
    script.chmod(0o755)
    return str(script)


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX shebang scripts")
class TestFFprobe:
    """Tests for FFprobe.probe against stand-in binaries."""

    def test_probe_success(self, tmp_path):
        payload = {"streams": [{"index": 0, "codec_type": "video", "codec_name": "av1"}], "format": {"duration": "60"}}
        binary = _fake_ffprobe(tmp_path, f"print({json.dumps(json.dumps(payload))})\n")

        info = asyncio.run(FFprobe(binary).probe(tmp_path / "ep1.mkv"))

        assert info.video_codec == "av1"
        assert info.duration == 60.0

    def test_probe_error_exit(self, tmp_path):
        binary = _fake_ffprobe(
            tmp_path,
            "import sys\nsys.stderr.write('ep1.mkv: Invalid data found when processing input\\n')\nsys.exit(1)\n",
        )

        with pytest.raises(ProbeError, match="Invalid data"):
            asyncio.run(FFprobe(binary).probe(tmp_path / "ep1.mkv"))

    def test_probe_garbage_output(self, tmp_path):
        binary = _fake_ffprobe(tmp_path, "print('not json')\n")

        with pytest.raises(ProbeError, match="invalid ffprobe output"):
            asyncio.run(FFprobe(binary).probe(tmp_path / "ep1.mkv"))

    def test_probe_missing_binary(self, tmp_path):
        with pytest.raises(ProbeError, match="cannot run"):
            asyncio.run(FFprobe(str(tmp_path / "missing")).probe(tmp_path / "ep1.mkv"))

    def test_command_includes_path(self):
        cmd = FFprobe().command(Path("/watch/ep1.mkv"))
        assert cmd[0] == "ffprobe"
        assert cmd[-1] == "/watch/ep1.mkv"
        assert "-show_streams" in cmd and "-show_format" in cmd
