"""Fetch source assets into a request's working directory."""
import http.client
import logging
import uuid
from pathlib import Path
from urllib.error import HTTPError, URLError
from urllib.parse import urlparse
from urllib.request import Request, urlopen

from media_converter.config import URL_DOWNLOAD_MAX_BYTES, URL_DOWNLOAD_TIMEOUT, USER_AGENT
from media_converter.conversion.errors import DownloadError, EmptyFileError

logger = logging.getLogger("media_converter.download")

CHUNK_SIZE = 1024 * 1024


class Downloader:
    def __init__(
        self,
        timeout: int = URL_DOWNLOAD_TIMEOUT,
        max_bytes: int = URL_DOWNLOAD_MAX_BYTES,
        user_agent: str = USER_AGENT,
    ):
        self.timeout = timeout
        self.max_bytes = max_bytes
        self.user_agent = user_agent

    def download(self, url: str, dest_dir: Path) -> Path:
        """Stream url into a uniquely named file under dest_dir and return its path.

        Raises DownloadError for unusable URLs, transport errors and non-2xx
        responses, EmptyFileError when the body is empty.
        """
        parsed = urlparse(url or "")
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            logger.warning("Refusing to download invalid URL %r", url)
            raise DownloadError()
        dest = Path(dest_dir) / f"source_{uuid.uuid4().hex}"
        req = Request(url, headers={"User-Agent": self.user_agent})
        total = 0
        try:
            with urlopen(req, timeout=self.timeout) as resp:
                status = getattr(resp, "status", 200)
                if not 200 <= status < 300:
                    logger.error("Download of %s returned status %s", url, status)
                    raise DownloadError()
                with open(dest, "wb") as f:
                    while True:
                        chunk = resp.read(CHUNK_SIZE)
                        if not chunk:
                            break
                        total += len(chunk)
                        if total > self.max_bytes:
                            max_mb = self.max_bytes // (1024 * 1024)
                            raise DownloadError(f"File too large (max {max_mb} MB)")
                        f.write(chunk)
        except DownloadError:
            dest.unlink(missing_ok=True)
            raise
        except HTTPError as e:
            dest.unlink(missing_ok=True)
            logger.error("Download of %s failed with status %s", url, e.code)
            raise DownloadError() from e
        except (URLError, http.client.HTTPException, OSError, ValueError) as e:
            dest.unlink(missing_ok=True)
            logger.error("Download of %s failed: %s", url, e)
            raise DownloadError() from e

        if total == 0:
            dest.unlink(missing_ok=True)
            raise EmptyFileError()
        logger.info("Downloaded %s (%s bytes)", url, total)
        return dest
