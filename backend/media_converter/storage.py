"""Artifact storage. Local directory by default; set STORAGE_BACKEND=s3 for S3 + CloudFront.

Keys are content-addressed ({fingerprint}{ext}) and never overwritten: write()
re-checks existence and skips the upload when the key is already there."""
import logging
import os
import shutil
import uuid
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from media_converter import config as app_config
from media_converter.conversion.errors import UploadError

logger = logging.getLogger("media_converter.storage")


def _check_key(key: str) -> str:
    if not key or "/" in key or "\\" in key or key.startswith("."):
        raise ValueError(f"Invalid storage key: {key!r}")
    return key


class ArtifactStore(ABC):
    @abstractmethod
    def find(self, prefix: str) -> Optional[str]:
        """Return an existing key starting with prefix, or None."""

    @abstractmethod
    def write(self, key: str, local_path: Path, mime_type: str) -> bool:
        """Store local_path under key. Returns True if the key already existed (nothing written)."""

    @abstractmethod
    def resolve(self, key: str) -> str:
        """Public URL for key."""


class LocalArtifactStore(ArtifactStore):
    """Artifacts in a directory, served by the /storage/{key} route."""

    def __init__(self, root: Path, public_base_url: str):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        self.public_base_url = public_base_url.rstrip("/")

    def path_for(self, key: str) -> Path:
        return self.root / _check_key(key)

    def find(self, prefix: str) -> Optional[str]:
        for entry in sorted(self.root.glob(f"{prefix}*")):
            if entry.is_file() and not entry.name.startswith("."):
                return entry.name
        return None

    def write(self, key: str, local_path: Path, mime_type: str) -> bool:
        target = self.path_for(key)
        if target.exists():
            logger.info("Artifact %s already stored", key)
            return True
        # Copy under a hidden temp name, then rename so readers never see a partial file
        tmp = self.root / f".{key}.{uuid.uuid4().hex}.part"
        try:
            shutil.copyfile(local_path, tmp)
            os.replace(tmp, target)
        except OSError as e:
            tmp.unlink(missing_ok=True)
            logger.error("Could not store %s: %s", key, e)
            raise UploadError(f"Failed to store converted file: {e}") from e
        logger.info("Stored %s (%s) in %s", key, mime_type, self.root)
        return False

    def resolve(self, key: str) -> str:
        return f"{self.public_base_url}/storage/{key}"


class S3ArtifactStore(ArtifactStore):
    """Immutable objects in an S3 bucket behind a CDN domain."""

    def __init__(
        self,
        bucket: str,
        region: str,
        public_domain: str,
        client: Optional[Any] = None,
        max_attempts: int = app_config.S3_MAX_ATTEMPTS,
    ):
        self.bucket = bucket
        self.public_domain = public_domain.strip("/")
        if client is None:
            client = boto3.session.Session().client(
                "s3",
                config=Config(
                    region_name=region,
                    retries={"max_attempts": max_attempts, "mode": "standard"},
                    connect_timeout=5,
                    read_timeout=60,
                ),
            )
        self._client = client

    def find(self, prefix: str) -> Optional[str]:
        try:
            result = self._client.list_objects_v2(Bucket=self.bucket, Prefix=prefix, MaxKeys=1)
        except (ClientError, BotoCoreError) as e:
            # Treated as a cache miss; write() re-checks before uploading
            logger.warning("Error checking %s in s3://%s: %s", prefix, self.bucket, e)
            return None
        contents = result.get("Contents") or []
        if contents:
            return contents[0].get("Key")
        return None

    def write(self, key: str, local_path: Path, mime_type: str) -> bool:
        _check_key(key)
        try:
            result = self._client.list_objects_v2(Bucket=self.bucket, Prefix=key, MaxKeys=1)
            if any(obj.get("Key") == key for obj in result.get("Contents") or []):
                logger.info("Artifact %s already in s3://%s", key, self.bucket)
                return True
            self._client.upload_file(
                str(local_path),
                self.bucket,
                key,
                ExtraArgs={"ContentType": mime_type, "CacheControl": app_config.CACHE_CONTROL},
            )
        except (ClientError, BotoCoreError) as e:
            logger.error("Upload of %s to s3://%s failed: %s", key, self.bucket, e)
            raise UploadError(f"Failed to upload converted file: {e}") from e
        logger.info("Uploaded %s (%s) to s3://%s", key, mime_type, self.bucket)
        return False

    def resolve(self, key: str) -> str:
        return f"https://{self.public_domain}/{key}"


_store: Optional[ArtifactStore] = None


def create_artifact_store(backend: Optional[str] = None) -> ArtifactStore:
    backend = (backend or app_config.STORAGE_BACKEND).lower()
    if backend == "local":
        return LocalArtifactStore(app_config.LOCAL_STORAGE_DIR, app_config.PUBLIC_BASE_URL)
    if backend == "s3":
        missing = [
            name for name, value in (
                ("S3_BUCKET", app_config.S3_BUCKET),
                ("CLOUDFRONT_DOMAIN", app_config.CLOUDFRONT_DOMAIN),
                ("AWS_REGION", app_config.AWS_REGION),
            ) if not value
        ]
        if missing:
            raise RuntimeError(f"S3 storage configuration is incomplete; set {', '.join(missing)}.")
        return S3ArtifactStore(app_config.S3_BUCKET, app_config.AWS_REGION, app_config.CLOUDFRONT_DOMAIN)
    raise RuntimeError(f"Unknown STORAGE_BACKEND {backend!r}; use 'local' or 's3'.")


def get_artifact_store() -> ArtifactStore:
    global _store
    if _store is None:
        _store = create_artifact_store()
        logger.info("Artifact store: %s", type(_store).__name__)
    return _store
