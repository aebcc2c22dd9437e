"""Run a ConversionPlan's stages against Pillow and external tools."""
import logging
import subprocess
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Callable

from PIL import Image, UnidentifiedImageError

from media_converter.config import FRAME_WORKERS, TOOL_TIMEOUT
from media_converter.conversion.errors import ConversionError, KTX2Error
from media_converter.conversion.models import ConversionPlan, Tool, ToolInvocation
from media_converter.conversion.resize import extract_frame, render_raster

logger = logging.getLogger("media_converter.executor")

# Keep error messages readable; ffmpeg prints a lot before the actual failure
STDERR_TAIL = 500

# What Pillow raises for unreadable, oversized or truncated input
PILLOW_ERRORS = (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError)


def resolve_template(template: str, values: dict[str, str]) -> str:
    for token, value in values.items():
        template = template.replace("{" + token + "}", value)
    return template


class ConversionExecutor:
    """Stateless stage runner.

    `runner` has the signature of subprocess.run; external tools are always
    invoked with an argument list, never through a shell.
    """

    def __init__(
        self,
        runner: Callable[..., subprocess.CompletedProcess] = subprocess.run,
        tool_timeout: int = TOOL_TIMEOUT,
        frame_workers: int = FRAME_WORKERS,
    ):
        self.runner = runner
        self.tool_timeout = tool_timeout
        self.frame_workers = max(1, frame_workers)

    def run(self, plan: ConversionPlan, source: Path, workdir: Path) -> Path:
        """Run plan.stages in order, chaining outputs to inputs. Returns the last output."""
        current = Path(source)
        for stage in plan.stages:
            current = self._run_stage(stage, current, workdir, ConversionError)
        return current

    def encode_texture(self, plan: ConversionPlan, raster: Path, workdir: Path) -> Path:
        if plan.ktx2_stage is None:
            raise KTX2Error("Plan has no texture stage")
        return self._run_stage(plan.ktx2_stage, Path(raster), workdir, KTX2Error)

    def _run_stage(self, stage: ToolInvocation, src: Path, workdir: Path, error_cls) -> Path:
        output = Path(resolve_template(stage.output, {"workdir": str(workdir)}))
        output.parent.mkdir(parents=True, exist_ok=True)
        if stage.tool == Tool.PILLOW:
            self._run_pillow(stage, src, output, error_cls)
        elif stage.tool == Tool.FRAMES:
            self._extract_frames(stage, src, output)
        else:
            values = {"workdir": str(workdir), "input": str(src), "output": str(output)}
            self._run_external(stage.tool, [resolve_template(a, values) for a in stage.args], error_cls)
        return output

    def _run_pillow(self, stage: ToolInvocation, src: Path, output: Path, error_cls) -> None:
        opts = stage.options
        try:
            render_raster(
                src,
                output,
                max_size=opts.get("max_size"),
                encoder=opts.get("encoder", "png"),
                colors=opts.get("colors", 256),
                quality=opts.get("quality", 80),
            )
        except PILLOW_ERRORS as e:
            logger.error("Raster stage failed for %s: %s", src.name, e)
            raise error_cls(f"Conversion failed: {e}") from e

    def _extract_frames(self, stage: ToolInvocation, src: Path, pattern: Path) -> None:
        indices = stage.options.get("indices", ())
        max_size = stage.options["max_size"]
        if not indices:
            raise ConversionError("Conversion failed: no frames to extract")
        frames_dir = pattern.parent
        with ThreadPoolExecutor(max_workers=min(self.frame_workers, len(indices))) as pool:
            futures = {
                pool.submit(extract_frame, src, index, frames_dir / (pattern.name % i), max_size): index
                for i, index in enumerate(indices)
            }
            for future in as_completed(futures):
                try:
                    future.result()
                except (*PILLOW_ERRORS, EOFError, IndexError) as e:
                    logger.error("Frame %s extraction failed for %s: %s", futures[future], src.name, e)
                    raise ConversionError(f"Conversion failed: could not extract frame {futures[future]}") from e
        logger.info("Extracted %s frames from %s", len(indices), src.name)

    def _run_external(self, tool: Tool, cmd: list[str], error_cls) -> None:
        logger.info("Running %s: %s", tool.value, cmd)
        try:
            result = self.runner(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.tool_timeout,
            )
        except FileNotFoundError as e:
            logger.error("%s not found. Install it to enable this conversion.", cmd[0])
            raise error_cls(f"{tool.value} not installed") from e
        except subprocess.TimeoutExpired as e:
            logger.error("%s timed out after %ss", tool.value, self.tool_timeout)
            raise error_cls(f"{tool.value} timed out") from e
        if result.returncode != 0:
            detail = (result.stderr or result.stdout or "").strip()[-STDERR_TAIL:]
            logger.error("%s exited with %s: %s", tool.value, result.returncode, detail)
            raise error_cls(f"{tool.value} failed: {detail or 'exit code %s' % result.returncode}")
        if result.stderr:
            logger.debug("%s stderr: %s", tool.value, result.stderr.strip()[-STDERR_TAIL:])
