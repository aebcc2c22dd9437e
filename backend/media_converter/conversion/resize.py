"""Fit-inside resizing and raster re-encoding with Pillow."""
import logging
from pathlib import Path
from typing import Optional

from PIL import Image, ImageSequence

logger = logging.getLogger("media_converter.resize")

# Raster encoders a pillow stage can request
ENCODER_PNG = "png"  # lossless PNG, used as texture-encode input
ENCODER_PNG_PALETTE = "png_palette"  # palette-reduced, optimized PNG
ENCODER_JPEG = "jpeg"  # progressive, optimized JPEG
ENCODER_SOURCE = "source"  # keep the source format (JPEG stays JPEG, anything else PNG)


def fit_inside(img: Image.Image, max_width: int, max_height: int) -> Image.Image:
    """
    Scale image to fit within max_width x max_height, maintaining aspect ratio.
    Never enlarges: images already inside the box are returned as a copy.
    """
    w, h = img.size
    scale = min(max_width / w, max_height / h, 1.0)
    if scale >= 1.0:
        return img.copy()
    new_w = max(1, min(max_width, int(round(w * scale))))
    new_h = max(1, min(max_height, int(round(h * scale))))
    return img.resize((new_w, new_h), Image.Resampling.LANCZOS)


def _has_alpha(img: Image.Image) -> bool:
    return img.mode in ("RGBA", "LA", "PA") or (img.mode == "P" and "transparency" in img.info)


def _normalize_mode(img: Image.Image) -> Image.Image:
    if img.mode in ("RGB", "RGBA"):
        return img
    return img.convert("RGBA" if _has_alpha(img) else "RGB")


def save_png(img: Image.Image, dest: Path) -> None:
    _normalize_mode(img).save(str(dest), format="PNG", optimize=True)


def save_png_palette(img: Image.Image, dest: Path, colors: int = 256) -> None:
    img = _normalize_mode(img)
    # FASTOCTREE is the quantizer that keeps an alpha channel
    method = Image.Quantize.FASTOCTREE if img.mode == "RGBA" else Image.Quantize.MEDIANCUT
    img.quantize(colors=colors, method=method).save(str(dest), format="PNG", optimize=True)


def save_jpeg(img: Image.Image, dest: Path, quality: int) -> None:
    if img.mode != "RGB":
        if _has_alpha(img):
            # Flatten transparency onto white; JPEG has no alpha
            rgba = img.convert("RGBA")
            base = Image.new("RGB", rgba.size, (255, 255, 255))
            base.paste(rgba, mask=rgba.split()[-1])
            img = base
        else:
            img = img.convert("RGB")
    img.save(str(dest), format="JPEG", quality=quality, optimize=True, progressive=True)


def render_raster(
    src: Path,
    dest: Path,
    max_size: Optional[int],
    encoder: str,
    colors: int = 256,
    quality: int = 80,
) -> Path:
    """Read src (first frame for animations), fit it inside max_size and write dest with encoder."""
    with Image.open(src) as img:
        source_format = img.format
        img.load()
        work = img if max_size is None else fit_inside(img, max_size, max_size)
        if encoder == ENCODER_PNG_PALETTE:
            save_png_palette(work, dest, colors=colors)
        elif encoder == ENCODER_JPEG:
            save_jpeg(work, dest, quality=quality)
        elif encoder == ENCODER_SOURCE and source_format == "JPEG":
            save_jpeg(work, dest, quality=95)
        else:
            save_png(work, dest)
    logger.info("Rendered %s -> %s (%s)", src.name, dest.name, encoder)
    return dest


def extract_frame(src: Path, index: int, dest: Path, max_size: int) -> Path:
    """Write frame `index` of an animated image as a PNG fitting inside max_size."""
    with Image.open(src) as img:
        frame = ImageSequence.Iterator(img)[index]
        work = fit_inside(frame.convert("RGBA"), max_size, max_size)
        work.save(str(dest), format="PNG")
    return dest
