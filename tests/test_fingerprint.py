"""Tests for URL canonicalization and fingerprints."""

import hashlib

from media_converter.conversion.fingerprint import FINGERPRINT_LENGTH, canonical_url, compute_fingerprint
from media_converter.conversion.models import ConversionRequest


class TestCanonicalUrl:
    def test_strips_query(self):
        assert canonical_url("https://cdn.example.com/a.png?v=2&x=1") == "https://cdn.example.com/a.png"

    def test_without_query_unchanged(self):
        assert canonical_url("https://cdn.example.com/a.png") == "https://cdn.example.com/a.png"

    def test_empty(self):
        assert canonical_url("") == ""
        assert canonical_url(None) == ""


class TestComputeFingerprint:
    def test_is_md5_prefix_of_canonical_url(self):
        url = "https://cdn.example.com/assets/logo.svg"
        assert compute_fingerprint(url) == hashlib.md5(url.encode()).hexdigest()[:8]

    def test_fixed_width_hex(self):
        fp = compute_fingerprint("https://example.com/x.png")
        assert len(fp) == FINGERPRINT_LENGTH
        int(fp, 16)

    def test_query_does_not_change_fingerprint(self):
        url = "https://example.com/image.webp"
        assert compute_fingerprint(url) == compute_fingerprint(url + "?x=1")
        assert compute_fingerprint(url + "?a=b") == compute_fingerprint(url + "?c=d")

    def test_different_urls_differ(self):
        urls = [f"https://example.com/asset_{i}.png" for i in range(200)]
        assert len({compute_fingerprint(u) for u in urls}) == len(urls)

    def test_deterministic(self):
        assert compute_fingerprint("https://example.com/a.gif") == compute_fingerprint("https://example.com/a.gif")


class TestConversionRequest:
    def test_url_extension_ignores_query(self):
        req = ConversionRequest("https://example.com/path/Image.PNG?size=large")
        assert req.url_extension == ".png"

    def test_url_without_extension(self):
        assert ConversionRequest("https://example.com/images/12345").url_extension == ""
        assert ConversionRequest("https://example.com/").url_extension == ""

    def test_dot_in_directory_is_not_an_extension(self):
        assert ConversionRequest("https://example.com/v1.2/asset").url_extension == ""

    def test_defaults(self):
        req = ConversionRequest("https://example.com/a.png")
        assert req.ktx2_enabled is False
        assert req.pre_process_to_png is False
