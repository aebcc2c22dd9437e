"""Conversion request, plan and in-flight models."""
import threading
from dataclasses import dataclass, field
from enum import Enum
from pathlib import PurePosixPath
from typing import Optional
from urllib.parse import urlparse

from media_converter.conversion.errors import UnsupportedTypeError
from media_converter.conversion.fingerprint import canonical_url


class SourceFormat(str, Enum):
    SVG = "svg"
    GIF = "gif"
    WEBP = "webp"
    JPEG = "jpeg"
    PNG = "png"

    @classmethod
    def from_extension(cls, ext: str) -> "SourceFormat":
        normalized = (ext or "").lower()
        fmt = _EXTENSION_FORMATS.get(normalized)
        if fmt is None:
            raise UnsupportedTypeError(f"Unsupported file type: {normalized or '(none)'}")
        return fmt


_EXTENSION_FORMATS = {
    ".svg": SourceFormat.SVG,
    ".gif": SourceFormat.GIF,
    ".webp": SourceFormat.WEBP,
    ".jpg": SourceFormat.JPEG,
    ".jpeg": SourceFormat.JPEG,
    ".png": SourceFormat.PNG,
}


class Tool(str, Enum):
    PILLOW = "pillow"  # in-process resize / recompress
    FRAMES = "frames"  # in-process animated frame sampling
    RSVG = "rsvg-convert"
    FFMPEG = "ffmpeg"
    TOKTX = "toktx"


class InFlightState(str, Enum):
    PENDING = "pending"
    DONE = "done"


@dataclass(frozen=True)
class ConversionRequest:
    source_url: str
    ktx2_enabled: bool = False
    pre_process_to_png: bool = False

    @property
    def canonical_url(self) -> str:
        return canonical_url(self.source_url)

    @property
    def url_extension(self) -> str:
        """Lower-cased extension of the URL path, or '' when it has none."""
        try:
            path = urlparse(self.canonical_url).path
        except ValueError:
            return ""
        return PurePosixPath(path).suffix.lower()


@dataclass(frozen=True)
class ToolInvocation:
    """One pipeline stage. `args` and `output` may contain {input}, {output} and {workdir}."""

    tool: Tool
    output: str
    args: tuple[str, ...] = ()
    options: dict = field(default_factory=dict)


@dataclass(frozen=True)
class ConversionPlan:
    source_format: SourceFormat
    output_extension: str
    mime_type: str
    stages: tuple[ToolInvocation, ...]
    ktx2_stage: Optional[ToolInvocation] = None

    def storage_key(self, fingerprint: str) -> str:
        return f"{fingerprint}{self.output_extension}"


@dataclass(frozen=True)
class AnimationInfo:
    frame_count: int

    @property
    def is_animated(self) -> bool:
        return self.frame_count >= 2


@dataclass
class InFlightEntry:
    """Registry entry for a fingerprint that is currently converting."""

    fingerprint: str
    state: InFlightState = InFlightState.PENDING
    waiters: int = 0
    done: threading.Event = field(default_factory=threading.Event)
