"""Cache keys derived from source URLs."""
import hashlib

FINGERPRINT_LENGTH = 8


def canonical_url(url: str) -> str:
    """Drop the query string; everything before the first '?' identifies the asset."""
    return (url or "").split("?", 1)[0]


def compute_fingerprint(url: str) -> str:
    """Short MD5 prefix of the canonical URL. Not collision resistant, scoped to one deployment."""
    digest = hashlib.md5(canonical_url(url).encode("utf-8")).hexdigest()
    return digest[:FINGERPRINT_LENGTH]
