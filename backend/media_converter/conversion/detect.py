"""Source format detection for URLs without a usable extension."""
import logging
from pathlib import Path
from typing import Callable, Optional

from PIL import Image, UnidentifiedImageError

from media_converter.conversion.errors import UnsupportedTypeError
from media_converter.conversion.models import AnimationInfo

logger = logging.getLogger("media_converter.detect")

_PILLOW_FORMATS = {
    "PNG": ".png",
    "JPEG": ".jpg",
    "WEBP": ".webp",
    "GIF": ".gif",
}

_MIME_EXTENSIONS = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/webp": ".webp",
    "image/gif": ".gif",
    "image/svg+xml": ".svg",
}


def _read_header(path: Path, size: int = 12) -> bytes:
    with open(path, "rb") as f:
        return f.read(size)


def is_webp_container(header: bytes) -> bool:
    return len(header) >= 12 and header[0:4] == b"RIFF" and header[8:12] == b"WEBP"


def sniff_container_signature(path: Path) -> Optional[str]:
    if is_webp_container(_read_header(path)):
        return ".webp"
    return None


def probe_image_metadata(path: Path) -> Optional[str]:
    try:
        with Image.open(path) as img:
            fmt = img.format
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
        logger.info("Pillow metadata probe failed for %s: %s", path.name, e)
        return None
    return _PILLOW_FORMATS.get(fmt or "")


def mime_to_extension(mime_type: str) -> Optional[str]:
    mime_type = (mime_type or "").strip().lower()
    if mime_type in _MIME_EXTENSIONS:
        return _MIME_EXTENSIONS[mime_type]
    if mime_type.startswith("image/"):
        subtype = mime_type.split("/", 1)[1]
        if subtype:
            return f".{subtype}"
    return None


def sniff_mime_type(path: Path) -> Optional[str]:
    """libmagic content sniff. Returns None when libmagic is missing or fails."""
    try:
        import magic
    except ImportError as e:
        logger.info("MIME sniff unavailable: %s", e)
        return None
    try:
        mime_type = magic.from_file(str(path), mime=True)
    except (magic.MagicException, OSError) as e:
        logger.info("MIME sniff failed for %s: %s", path.name, e)
        return None
    return mime_to_extension(mime_type)


DETECTION_STRATEGIES: tuple[Callable[[Path], Optional[str]], ...] = (
    sniff_container_signature,
    probe_image_metadata,
    sniff_mime_type,
)


def detect_extension(path: Path, strategies=None) -> str:
    """Return a '.ext' for the file at path; first strategy with an answer wins."""
    for strategy in strategies or DETECTION_STRATEGIES:
        ext = strategy(path)
        if ext:
            logger.info("Detected %s for %s via %s", ext, path.name, strategy.__name__)
            return ext
    raise UnsupportedTypeError("Could not detect file type")


def probe_animation(path: Path) -> Optional[AnimationInfo]:
    """Frame count of an animated WebP, or None for static / non-WebP sources.

    Container markers (ANIM / ANMF chunks) gate the check; Pillow must then
    confirm more than one frame.
    """
    with open(path, "rb") as f:
        content = f.read()
    if not is_webp_container(content[:12]):
        return None
    if b"ANIM" not in content and b"ANMF" not in content:
        return None
    try:
        with Image.open(path) as img:
            frames = getattr(img, "n_frames", 1)
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
        logger.info("Could not read WebP frames for %s, treating as static: %s", path.name, e)
        return None
    if frames > 1:
        return AnimationInfo(frame_count=frames)
    return None
