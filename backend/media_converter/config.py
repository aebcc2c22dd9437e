"""Application configuration. Loads from environment and .env file."""
import logging
import os
import tempfile
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent
# Load .env from cwd, then backend/.env, then project root .env
load_dotenv()
load_dotenv(BASE_DIR / ".env")
load_dotenv(BASE_DIR.parent / ".env")

# Server (for uvicorn)
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "8000"))
# CORS: comma-separated origins, empty means any origin
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "").split(",") if o.strip()]

# Storage backend: "local" serves artifacts from LOCAL_STORAGE_DIR, "s3" uploads to S3_BUCKET.
# USE_LOCAL_STORAGE=true is accepted for older deployments.
_use_local = os.getenv("USE_LOCAL_STORAGE", "").strip().lower() == "true"
STORAGE_BACKEND = os.getenv("STORAGE_BACKEND", "local" if _use_local else "s3").strip().lower()
LOCAL_STORAGE_DIR = Path(os.getenv("LOCAL_STORAGE_DIR", str(BASE_DIR / "storage")))
PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL", f"http://localhost:{PORT}").rstrip("/")
S3_BUCKET = os.getenv("S3_BUCKET", "").strip()
CLOUDFRONT_DOMAIN = os.getenv("CLOUDFRONT_DOMAIN", "").strip()
AWS_REGION = os.getenv("AWS_REGION", "us-east-1").strip()
S3_MAX_ATTEMPTS = int(os.getenv("S3_MAX_ATTEMPTS", "3"))
CACHE_CONTROL = "public, max-age=31536000"

# Per-request working directories are created here and removed after each attempt
TEMP_DIR = Path(os.getenv("TEMP_DIR", tempfile.gettempdir()))
TEMP_DIR.mkdir(parents=True, exist_ok=True)
if STORAGE_BACKEND == "local":
    LOCAL_STORAGE_DIR.mkdir(parents=True, exist_ok=True)

# Download limits
URL_DOWNLOAD_TIMEOUT = int(os.getenv("URL_DOWNLOAD_TIMEOUT", "60"))
URL_DOWNLOAD_MAX_MB = int(os.getenv("URL_DOWNLOAD_MAX_MB", "100"))
URL_DOWNLOAD_MAX_BYTES = URL_DOWNLOAD_MAX_MB * 1024 * 1024
USER_AGENT = os.getenv("USER_AGENT", "MediaConverter/1.0")

# Conversion options (env overrides)
RASTER_MAX_SIZE = int(os.getenv("RASTER_MAX_SIZE", "1024"))
VIDEO_MAX_SIZE = int(os.getenv("VIDEO_MAX_SIZE", "512"))
FRAME_SAMPLE_RATIO = float(os.getenv("FRAME_SAMPLE_RATIO", "0.7"))
ANIMATED_FPS = int(os.getenv("ANIMATED_FPS", "10"))
VIDEO_CRF = int(os.getenv("VIDEO_CRF", "28"))
VIDEO_PRESET = os.getenv("VIDEO_PRESET", "veryfast")
JPEG_QUALITY = int(os.getenv("JPEG_QUALITY", "80"))
KTX2_MIN_BYTES = int(os.getenv("KTX2_MIN_BYTES", "100"))

# External tools
FFMPEG_BIN = os.getenv("FFMPEG_BIN", "ffmpeg")
TOKTX_BIN = os.getenv("TOKTX_BIN", "toktx")
RSVG_BIN = os.getenv("RSVG_BIN", "rsvg-convert")
TOOL_TIMEOUT = int(os.getenv("TOOL_TIMEOUT", "300"))

# Concurrency
FRAME_WORKERS = int(os.getenv("FRAME_WORKERS", str(min(8, os.cpu_count() or 4))))
# Suggested client backoff when the same asset is already converting
RETRY_AFTER_SECONDS = int(os.getenv("RETRY_AFTER_SECONDS", "30"))
# >0: a duplicate request waits this long for the running conversion instead of failing fast
DEDUP_WAIT_SECONDS = float(os.getenv("DEDUP_WAIT_SECONDS", "0"))

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("media_converter")
