"""API routes for URL conversion and locally stored artifacts."""
import logging
import mimetypes
from typing import Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query
from fastapi.responses import FileResponse, JSONResponse, PlainTextResponse, RedirectResponse

from media_converter.config import CACHE_CONTROL
from media_converter.conversion.errors import ConversionServiceError, DuplicateInFlight
from media_converter.conversion.service import ConversionService, get_conversion_service
from media_converter.storage import ArtifactStore, LocalArtifactStore, get_artifact_store

logger = logging.getLogger("media_converter.api")
router = APIRouter(prefix="/api", tags=["converter"])
# Routes without the /api prefix; /convert stays reachable for older clients
root_router = APIRouter(tags=["storage"])

_ARTIFACT_MIME = {
    ".ktx2": "image/ktx2",
    ".mp4": "video/mp4",
    ".png": "image/png",
    ".jpg": "image/jpeg",
}


def _error(status: int, message: str, headers: Optional[dict] = None) -> JSONResponse:
    return JSONResponse(status_code=status, content={"error": message}, headers=headers)


def _run_conversion(
    svc: ConversionService,
    file_url: Optional[str],
    ktx2: bool,
    pre_process_to_png: bool,
):
    """Returns (url, None) on success or (None, error response)."""
    file_url = (file_url or "").strip()
    if not file_url:
        return None, _error(400, "fileUrl is required")
    try:
        return svc.convert(file_url, ktx2_enabled=ktx2, pre_process_to_png=pre_process_to_png), None
    except DuplicateInFlight as e:
        return None, _error(429, e.message, headers={"Retry-After": str(e.retry_after)})
    except ConversionServiceError as e:
        return None, _error(500, e.message)
    except Exception as e:
        logger.exception("Conversion failed for %s: %s", file_url, e)
        return None, _error(500, "Internal server error")


@router.get("/health")
def health():
    return {"status": "ok"}


@router.get("/convert")
@root_router.get("/convert", include_in_schema=False)
def convert_get(
    file_url: Optional[str] = Query(None, alias="fileUrl"),
    ktx2: bool = Query(False),
    pre_process_to_png: bool = Query(False, alias="preProcessToPNG"),
    svc: ConversionService = Depends(get_conversion_service),
):
    """Convert and redirect to the stored artifact."""
    url, error = _run_conversion(svc, file_url, ktx2, pre_process_to_png)
    if error is not None:
        return error
    return RedirectResponse(url, status_code=302, headers={"Cache-Control": CACHE_CONTROL})


@router.post("/convert")
@root_router.post("/convert", include_in_schema=False)
def convert_post(
    file_url: Optional[str] = Body(None, alias="fileUrl"),
    ktx2: bool = Body(False),
    pre_process_to_png: bool = Body(False, alias="preProcessToPNG"),
    svc: ConversionService = Depends(get_conversion_service),
):
    """Convert and return {"url": ...} for the stored artifact."""
    url, error = _run_conversion(svc, file_url, ktx2, pre_process_to_png)
    if error is not None:
        return error
    return JSONResponse({"url": url}, headers={"Cache-Control": CACHE_CONTROL})


@root_router.get("/ping", response_class=PlainTextResponse)
def ping():
    return "pong"


@root_router.get("/storage/{key}")
def get_stored_artifact(key: str, store: ArtifactStore = Depends(get_artifact_store)):
    """Serve an artifact from the local storage backend."""
    if not isinstance(store, LocalArtifactStore):
        raise HTTPException(404, "File not found")
    try:
        path = store.path_for(key)
    except ValueError:
        raise HTTPException(404, "File not found")
    if not path.is_file():
        raise HTTPException(404, "File not found")
    suffix = path.suffix.lower()
    media_type = _ARTIFACT_MIME.get(suffix) or mimetypes.guess_type(path.name)[0] or "application/octet-stream"
    return FileResponse(path, media_type=media_type, headers={"Cache-Control": CACHE_CONTROL})
