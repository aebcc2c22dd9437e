"""Sanity checks on produced artifacts."""
from pathlib import Path

from media_converter.config import KTX2_MIN_BYTES
from media_converter.conversion.errors import ConversionError, KTX2Error


class OutputValidator:
    def __init__(self, ktx2_min_bytes: int = KTX2_MIN_BYTES):
        self.ktx2_min_bytes = ktx2_min_bytes

    def validate_output(self, path: Path) -> Path:
        path = Path(path)
        if not path.is_file() or path.stat().st_size == 0:
            raise ConversionError("Conversion failed: output file not created or is empty")
        return path

    def validate_texture(self, path: Path) -> Path:
        # Any valid KTX2 container is larger than the threshold
        path = Path(path)
        if not path.is_file():
            raise KTX2Error(f"File not found: {path.name}")
        size = path.stat().st_size
        if size < self.ktx2_min_bytes:
            raise KTX2Error(f"File exists but is too small to be a valid .ktx2 ({size} bytes)")
        return path
