"""Shared test fixtures for the media converter."""

import io
import os
import subprocess
import tempfile
from pathlib import Path
from urllib.error import HTTPError

# Configure before media_converter.config is imported anywhere
_TEST_ROOT = Path(tempfile.mkdtemp(prefix="media_converter_tests_"))
os.environ.setdefault("STORAGE_BACKEND", "local")
os.environ.setdefault("LOCAL_STORAGE_DIR", str(_TEST_ROOT / "storage"))
os.environ.setdefault("TEMP_DIR", str(_TEST_ROOT / "tmp"))
os.environ.setdefault("PUBLIC_BASE_URL", "http://testserver")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
from PIL import Image

from media_converter.conversion import download as download_module
from media_converter.conversion.executor import ConversionExecutor
from media_converter.conversion.inflight import InFlightRegistry
from media_converter.conversion.service import ConversionService
from media_converter.storage import LocalArtifactStore


# ---------------------------------------------------------------------------
# Media files
# ---------------------------------------------------------------------------


def image_bytes(fmt: str, size=(64, 48), mode="RGB", color=(200, 30, 30)) -> bytes:
    buf = io.BytesIO()
    Image.new(mode, size, color).save(buf, format=fmt)
    return buf.getvalue()


def animated_webp_bytes(frames: int = 10, size=(80, 60)) -> bytes:
    images = [Image.new("RGB", size, (i * 20 % 256, 100, 150)) for i in range(frames)]
    buf = io.BytesIO()
    images[0].save(buf, format="WEBP", save_all=True, append_images=images[1:], duration=100, loop=0)
    return buf.getvalue()


def animated_gif_bytes(frames: int = 4, size=(40, 30)) -> bytes:
    images = [Image.new("P", size, i) for i in range(frames)]
    buf = io.BytesIO()
    images[0].save(buf, format="GIF", save_all=True, append_images=images[1:], duration=100)
    return buf.getvalue()


SVG_BYTES = (
    b'<?xml version="1.0"?>\n'
    b'<svg xmlns="http://www.w3.org/2000/svg" width="100" height="100">'
    b'<rect width="100" height="100" fill="red"/></svg>'
)


@pytest.fixture
def write_file(tmp_path):
    def _write(name: str, data: bytes) -> Path:
        path = tmp_path / name
        path.write_bytes(data)
        return path

    return _write


# ---------------------------------------------------------------------------
# Fake external tools
# ---------------------------------------------------------------------------


class FakeRunner:
    """Stands in for subprocess.run; writes the file each tool would produce."""

    def __init__(self, output_sizes=None, returncode=0, stderr="", svg_render_size=(2000, 1000)):
        self.output_sizes = {"ffmpeg": 4096, "toktx": 4096}
        self.output_sizes.update(output_sizes or {})
        self.returncode = returncode
        self.stderr = stderr
        self.svg_render_size = svg_render_size
        self.calls = []

    def tool_name(self, cmd):
        return Path(cmd[0]).name

    def __call__(self, cmd, **kwargs):
        self.calls.append(list(cmd))
        name = self.tool_name(cmd)
        if self.returncode == 0:
            if name == "rsvg-convert":
                out = Path(cmd[cmd.index("--output") + 1])
                Image.new("RGBA", self.svg_render_size, (0, 0, 255, 255)).save(out, format="PNG")
            elif name == "toktx":
                Path(cmd[-2]).write_bytes(b"\xabKTX 20\xbb" + b"\x00" * max(0, self.output_sizes["toktx"] - 8))
            elif name == "ffmpeg":
                Path(cmd[-1]).write_bytes(b"\x00" * self.output_sizes["ffmpeg"])
        return subprocess.CompletedProcess(cmd, self.returncode, stdout="", stderr=self.stderr)

    def commands(self, name):
        return [c for c in self.calls if self.tool_name(c) == name]


@pytest.fixture
def fake_runner():
    return FakeRunner()


# ---------------------------------------------------------------------------
# Fake HTTP source
# ---------------------------------------------------------------------------


class FakeResponse:
    def __init__(self, data: bytes, status: int = 200):
        self.status = status
        self._buf = io.BytesIO(data)

    def read(self, size=-1):
        return self._buf.read(size)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


class FakeRemote:
    """Maps URLs to bodies; unknown URLs answer 404 like urlopen does."""

    def __init__(self):
        self.files = {}
        self.requests = []
        self.before_response = None

    def add(self, url: str, data: bytes, status: int = 200):
        self.files[url] = (data, status)

    def __call__(self, req, timeout=None):
        url = req.full_url
        self.requests.append(url)
        if self.before_response is not None:
            self.before_response(url)
        if url not in self.files:
            raise HTTPError(url, 404, "Not Found", hdrs=None, fp=None)
        data, status = self.files[url]
        return FakeResponse(data, status)


@pytest.fixture
def remote(monkeypatch):
    fake = FakeRemote()
    monkeypatch.setattr(download_module, "urlopen", fake)
    return fake


# ---------------------------------------------------------------------------
# Service wiring
# ---------------------------------------------------------------------------


@pytest.fixture
def store(tmp_path):
    return LocalArtifactStore(tmp_path / "storage", "http://testserver")


@pytest.fixture
def work_dir(tmp_path):
    path = tmp_path / "work"
    path.mkdir()
    return path


@pytest.fixture
def service(store, fake_runner, work_dir):
    return ConversionService(
        store=store,
        executor=ConversionExecutor(runner=fake_runner, frame_workers=2),
        registry=InFlightRegistry(),
        temp_dir=work_dir,
    )
