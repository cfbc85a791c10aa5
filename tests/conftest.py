"""
Pytest configuration and shared fixtures for watchcode tests.
"""

import logging
import sys
import tempfile
from pathlib import Path
from typing import Dict, Generator, List, Optional

import pytest

# Add src to path for testing
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))


class FakeProbe:
    """MetadataProbe stand-in returning canned results per path."""

    def __init__(self, codec: Optional[str] = "h264", duration: Optional[float] = 1800.0):
        self.codec = codec
        self.duration = duration
        self.calls: List[Path] = []
        self.failing: Dict[Path, str] = {}

    async def probe(self, path: Path):
        from watchcode.probe import MediaInfo, ProbeError, StreamInfo

        self.calls.append(path)
        if path in self.failing:
            raise ProbeError(self.failing[path])
        streams = [StreamInfo(0, "audio", "aac")]
        if self.codec is not None:
            streams.insert(0, StreamInfo(0, "video", self.codec))
        return MediaInfo(streams=streams, duration=self.duration)


class FakeEncoder:
    """Encoder stand-in that writes a small output file or fails on demand."""

    def __init__(self):
        self.calls: List[Path] = []
        self.failing: set = set()
        self.active = 0
        self.max_active = 0
        self.gate = None  # optional asyncio.Event to hold encodes open

    async def encode(self, src: Path, dst: Path, duration=None, on_progress=None):
        from watchcode.encoder import EncodeError, EncodeProgress

        self.calls.append(src)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.gate is not None:
                await self.gate.wait()
            if src in self.failing:
                raise EncodeError("ffmpeg error (rc=1)")
            if on_progress is not None:
                on_progress(EncodeProgress(percent=50.0, fps=24.0))
            dst.write_bytes(b"encoded:" + src.read_bytes())
        finally:
            self.active -= 1


@pytest.fixture(autouse=True)
def reset_logging():
    """Undo setup_logging() so caplog sees watchcode records."""
    yield
    logger = logging.getLogger("watchcode")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test outputs."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def default_config():
    """Return a default Config instance for testing."""
    from watchcode.config import Config

    return Config()


@pytest.fixture
def media_cfg(temp_dir: Path):
    """Config pointing at watch/temp/ready trees under a temp directory."""
    from watchcode.config import Config

    for name in ("watch", "temp", "ready"):
        (temp_dir / name).mkdir()
    return Config(
        watch_dir=temp_dir / "watch",
        temp_dir=temp_dir / "temp",
        complete_dir=temp_dir / "ready",
        accel="cpu",
        codec="av1",
        show_progress=False,
    )


@pytest.fixture
def fake_probe() -> FakeProbe:
    return FakeProbe()


@pytest.fixture
def fake_encoder() -> FakeEncoder:
    return FakeEncoder()


@pytest.fixture
def clean_env(monkeypatch, temp_dir: Path):
    """Remove watchcode environment variables and isolate config files."""
    from watchcode.config import ENV_MAPPINGS

    for name in ENV_MAPPINGS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(temp_dir / "xdg"))
    monkeypatch.setattr(
        "watchcode.config.get_config_dirs",
        lambda: {"system": temp_dir / "etc", "user": temp_dir / "xdg" / "watchcode"},
    )


def write_file(path: Path, data: bytes = b"data") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    return path
