"""URL-to-artifact conversion with caching and per-asset deduplication."""
import logging
import shutil
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from media_converter.config import DEDUP_WAIT_SECONDS, RETRY_AFTER_SECONDS, TEMP_DIR
from media_converter.conversion.detect import detect_extension, probe_animation
from media_converter.conversion.download import Downloader
from media_converter.conversion.errors import ConversionServiceError, DuplicateInFlight
from media_converter.conversion.executor import ConversionExecutor
from media_converter.conversion.fingerprint import compute_fingerprint
from media_converter.conversion.inflight import InFlightRegistry
from media_converter.conversion.models import ConversionRequest, SourceFormat
from media_converter.conversion.planner import plan_conversion
from media_converter.conversion.validate import OutputValidator
from media_converter.storage import ArtifactStore, get_artifact_store

logger = logging.getLogger("media_converter.service")


@contextmanager
def workspace(fingerprint: str, base_dir: Path = TEMP_DIR) -> Iterator[Path]:
    """Private working directory for one attempt; removed on every exit path."""
    path = Path(tempfile.mkdtemp(prefix=f"convert_{fingerprint}_", dir=str(base_dir)))
    try:
        yield path
    finally:
        shutil.rmtree(path, ignore_errors=True)
        if path.exists():
            logger.warning("Could not fully remove workspace %s", path)


class ConversionService:
    """Converts remote media into stored artifacts.

    Holds only shared collaborators and the in-flight registry; everything
    about a single request lives in local variables of convert().
    """

    def __init__(
        self,
        store: ArtifactStore,
        downloader: Optional[Downloader] = None,
        executor: Optional[ConversionExecutor] = None,
        validator: Optional[OutputValidator] = None,
        registry: Optional[InFlightRegistry] = None,
        temp_dir: Path = TEMP_DIR,
        retry_after: int = RETRY_AFTER_SECONDS,
        dedup_wait: float = DEDUP_WAIT_SECONDS,
    ):
        self.store = store
        self.downloader = downloader or Downloader()
        self.executor = executor or ConversionExecutor()
        self.validator = validator or OutputValidator()
        self.registry = registry or InFlightRegistry()
        self.temp_dir = Path(temp_dir)
        self.retry_after = retry_after
        self.dedup_wait = dedup_wait

    def convert(
        self,
        source_url: str,
        ktx2_enabled: bool = False,
        pre_process_to_png: bool = False,
    ) -> str:
        """Return the public URL of the converted artifact for source_url.

        Raises a ConversionServiceError subclass; DuplicateInFlight when the
        same asset is already converting in this process.
        """
        request = ConversionRequest(source_url, ktx2_enabled, pre_process_to_png)
        fingerprint = compute_fingerprint(request.canonical_url)

        cached = self.store.find(fingerprint)
        if cached:
            logger.info("Cache hit for %s -> %s", request.canonical_url, cached)
            return self.store.resolve(cached)

        reserved, entry = self.registry.reserve(fingerprint)
        if not reserved:
            return self._await_duplicate(entry, fingerprint)

        try:
            # Another attempt may have finished between the lookup and the reservation
            cached = self.store.find(fingerprint)
            if cached:
                logger.info("Cache hit for %s after reservation -> %s", request.canonical_url, cached)
                return self.store.resolve(cached)
            return self._convert_reserved(request, fingerprint)
        except ConversionServiceError as e:
            logger.error("Conversion of %s failed: %s", request.source_url, e.message)
            raise
        except Exception:
            logger.exception("Unexpected error converting %s", request.source_url)
            raise
        finally:
            self.registry.release(entry)

    def _await_duplicate(self, entry, fingerprint: str) -> str:
        if self.dedup_wait > 0 and self.registry.wait(entry, self.dedup_wait):
            cached = self.store.find(fingerprint)
            if cached:
                return self.store.resolve(cached)
        logger.info("Conversion for %s already in flight", fingerprint)
        raise DuplicateInFlight(retry_after=self.retry_after)

    def _convert_reserved(self, request: ConversionRequest, fingerprint: str) -> str:
        with workspace(fingerprint, self.temp_dir) as workdir:
            source = self.downloader.download(request.source_url, workdir)

            ext = request.url_extension or detect_extension(source)
            animation = None
            if SourceFormat.from_extension(ext) == SourceFormat.WEBP:
                animation = probe_animation(source)
            plan = plan_conversion(ext, request.ktx2_enabled, request.pre_process_to_png, animation)
            logger.info(
                "Converting %s (%s) -> %s in %s stage(s)%s",
                request.canonical_url, ext, plan.output_extension, len(plan.stages),
                " + ktx2" if plan.ktx2_stage else "",
            )

            output = self.validator.validate_output(self.executor.run(plan, source, workdir))
            if plan.ktx2_stage is not None:
                output = self.validator.validate_texture(self.executor.encode_texture(plan, output, workdir))

            key = plan.storage_key(fingerprint)
            if self.store.write(key, output, plan.mime_type):
                logger.info("Artifact %s already existed, upload skipped", key)
            return self.store.resolve(key)


# Singleton
_conversion_service: Optional[ConversionService] = None


def get_conversion_service() -> ConversionService:
    global _conversion_service
    if _conversion_service is None:
        _conversion_service = ConversionService(store=get_artifact_store())
        logger.info("ConversionService initialized")
    return _conversion_service
