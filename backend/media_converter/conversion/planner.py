"""Map a detected source format and request options to a ConversionPlan."""
import math
from decimal import Decimal
from typing import Callable, Optional

from media_converter.config import (
    ANIMATED_FPS,
    FFMPEG_BIN,
    FRAME_SAMPLE_RATIO,
    JPEG_QUALITY,
    RASTER_MAX_SIZE,
    RSVG_BIN,
    TOKTX_BIN,
    VIDEO_CRF,
    VIDEO_MAX_SIZE,
    VIDEO_PRESET,
)
from media_converter.conversion.models import (
    AnimationInfo,
    ConversionPlan,
    SourceFormat,
    Tool,
    ToolInvocation,
)
from media_converter.conversion.resize import (
    ENCODER_JPEG,
    ENCODER_PNG,
    ENCODER_PNG_PALETTE,
    ENCODER_SOURCE,
)

PNG_MIME = "image/png"
JPEG_MIME = "image/jpeg"
MP4_MIME = "video/mp4"
KTX2_MIME = "image/ktx2"

FRAME_PATTERN = "frame_%d.png"

# Fit inside the box, never upscale, and keep both sides even for yuv420p
VIDEO_FILTER = (
    f"scale=w='min({VIDEO_MAX_SIZE},iw)':h='min({VIDEO_MAX_SIZE},ih)'"
    ":force_original_aspect_ratio=decrease:force_divisible_by=2:flags=lanczos"
)
H264_ARGS = (
    "-movflags", "+faststart",
    "-pix_fmt", "yuv420p",
    "-vf", VIDEO_FILTER,
    "-c:v", "libx264",
    "-crf", str(VIDEO_CRF),
    "-preset", VIDEO_PRESET,
    "-an",
)

KTX2_STAGE = ToolInvocation(
    tool=Tool.TOKTX,
    output="{workdir}/texture.ktx2",
    args=(TOKTX_BIN, "--t2", "--bcmp", "--genmipmap", "--assign_oetf", "srgb", "{output}", "{input}"),
)


def sample_frame_indices(frame_count: int, ratio: float = FRAME_SAMPLE_RATIO) -> list[int]:
    """Evenly spaced frame indices covering ceil(frame_count * ratio) frames.

    Decimal keeps ratio exact so ceil(10 * 0.7) is 7, not 8.
    """
    if frame_count < 1:
        return []
    target = max(1, math.ceil(Decimal(str(ratio)) * frame_count))
    target = min(target, frame_count)
    # floor(i * (frame_count / target)) without float drift
    return [i * frame_count // target for i in range(target)]


def _raster_stage(ext: str, encoder: str, colors: int = 256) -> ToolInvocation:
    return ToolInvocation(
        tool=Tool.PILLOW,
        output="{workdir}/raster" + ext,
        options={"max_size": RASTER_MAX_SIZE, "encoder": encoder, "colors": colors, "quality": JPEG_QUALITY},
    )


def _png_reencode_stage() -> ToolInvocation:
    return ToolInvocation(
        tool=Tool.PILLOW,
        output="{workdir}/texture_input.png",
        options={"max_size": None, "encoder": ENCODER_PNG},
    )


def _texture_plan(
    source_format: SourceFormat,
    stages: list[ToolInvocation],
    pre_process_to_png: bool,
) -> ConversionPlan:
    if pre_process_to_png:
        stages.append(_png_reencode_stage())
    return ConversionPlan(
        source_format=source_format,
        output_extension=".ktx2",
        mime_type=KTX2_MIME,
        stages=tuple(stages),
        ktx2_stage=KTX2_STAGE,
    )


def _video_stage(input_args: tuple[str, ...]) -> ToolInvocation:
    return ToolInvocation(
        tool=Tool.FFMPEG,
        output="{workdir}/video.mp4",
        args=(FFMPEG_BIN, "-y", *input_args, *H264_ARGS, "{output}"),
    )


def _plan_svg(ktx2_enabled: bool, pre_process_to_png: bool, animation) -> ConversionPlan:
    render = ToolInvocation(
        tool=Tool.RSVG,
        output="{workdir}/svg_render.png",
        args=(RSVG_BIN, "--format", "png", "--output", "{output}", "{input}"),
    )
    if ktx2_enabled:
        return _texture_plan(SourceFormat.SVG, [render, _raster_stage(".png", ENCODER_PNG)], pre_process_to_png)
    return ConversionPlan(
        source_format=SourceFormat.SVG,
        output_extension=".png",
        mime_type=PNG_MIME,
        stages=(render, _raster_stage(".png", ENCODER_PNG_PALETTE, colors=128)),
    )


def _plan_gif(ktx2_enabled: bool, pre_process_to_png: bool, animation) -> ConversionPlan:
    return ConversionPlan(
        source_format=SourceFormat.GIF,
        output_extension=".mp4",
        mime_type=MP4_MIME,
        stages=(_video_stage(("-i", "{input}")),),
    )


def _plan_webp(ktx2_enabled: bool, pre_process_to_png: bool, animation: Optional[AnimationInfo]) -> ConversionPlan:
    if animation is not None and animation.is_animated:
        frames = ToolInvocation(
            tool=Tool.FRAMES,
            output="{workdir}/frames/" + FRAME_PATTERN,
            options={
                "indices": tuple(sample_frame_indices(animation.frame_count)),
                "max_size": VIDEO_MAX_SIZE,
            },
        )
        return ConversionPlan(
            source_format=SourceFormat.WEBP,
            output_extension=".mp4",
            mime_type=MP4_MIME,
            stages=(frames, _video_stage(("-framerate", str(ANIMATED_FPS), "-i", "{input}"))),
        )
    if ktx2_enabled:
        return _texture_plan(SourceFormat.WEBP, [_raster_stage(".png", ENCODER_PNG)], pre_process_to_png)
    return ConversionPlan(
        source_format=SourceFormat.WEBP,
        output_extension=".png",
        mime_type=PNG_MIME,
        stages=(_raster_stage(".png", ENCODER_PNG_PALETTE, colors=128),),
    )


def _plan_jpeg(ktx2_enabled: bool, pre_process_to_png: bool, animation) -> ConversionPlan:
    if ktx2_enabled:
        return _texture_plan(SourceFormat.JPEG, [_raster_stage(".jpg", ENCODER_SOURCE)], pre_process_to_png)
    return ConversionPlan(
        source_format=SourceFormat.JPEG,
        output_extension=".jpg",
        mime_type=JPEG_MIME,
        stages=(_raster_stage(".jpg", ENCODER_JPEG),),
    )


def _plan_png(ktx2_enabled: bool, pre_process_to_png: bool, animation) -> ConversionPlan:
    if ktx2_enabled:
        return _texture_plan(SourceFormat.PNG, [_raster_stage(".png", ENCODER_PNG)], pre_process_to_png)
    return ConversionPlan(
        source_format=SourceFormat.PNG,
        output_extension=".png",
        mime_type=PNG_MIME,
        stages=(_raster_stage(".png", ENCODER_PNG_PALETTE),),
    )


_PLANNERS: dict[SourceFormat, Callable[..., ConversionPlan]] = {
    SourceFormat.SVG: _plan_svg,
    SourceFormat.GIF: _plan_gif,
    SourceFormat.WEBP: _plan_webp,
    SourceFormat.JPEG: _plan_jpeg,
    SourceFormat.PNG: _plan_png,
}


def plan_conversion(
    extension: str,
    ktx2_enabled: bool = False,
    pre_process_to_png: bool = False,
    animation: Optional[AnimationInfo] = None,
) -> ConversionPlan:
    """Build the plan for a source with the given '.ext'. Raises UnsupportedTypeError."""
    source_format = SourceFormat.from_extension(extension)
    return _PLANNERS[source_format](ktx2_enabled, pre_process_to_png, animation)
