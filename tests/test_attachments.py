"""
Tests for evidence image fetching (attachments.py).
"""
import urllib.error
from unittest.mock import MagicMock, patch

import pytest

from factories import PNG_1PX, make_entry

from portfolio_report.attachments import MAX_IMAGE_BYTES, fetch_attachment, fetch_images
from portfolio_report.errors import AttachmentUnavailable


def _urlopen_returning(body, content_type="image/png"):
    resp = MagicMock()
    resp.headers = {"Content-Type": content_type}
    resp.read.return_value = body
    cm = MagicMock()
    cm.__enter__.return_value = resp
    cm.__exit__.return_value = False
    return cm


class TestFetchAttachment:
    def test_returns_body(self):
        with patch("urllib.request.urlopen", return_value=_urlopen_returning(PNG_1PX)) as mock_open:
            assert fetch_attachment("https://img.example.com/a.png", timeout=3) == PNG_1PX
        request = mock_open.call_args.args[0]
        assert request.full_url == "https://img.example.com/a.png"
        assert mock_open.call_args.kwargs["timeout"] == 3

    def test_non_image_rejected(self):
        with patch("urllib.request.urlopen", return_value=_urlopen_returning(b"<html>", "text/html")):
            with pytest.raises(AttachmentUnavailable, match="not an image"):
                fetch_attachment("https://img.example.com/a.png")

    def test_network_error_wrapped(self):
        with patch("urllib.request.urlopen", side_effect=urllib.error.URLError("no route")):
            with pytest.raises(AttachmentUnavailable) as exc_info:
                fetch_attachment("https://img.example.com/a.png")
        assert exc_info.value.url == "https://img.example.com/a.png"

    def test_empty_body(self):
        with patch("urllib.request.urlopen", return_value=_urlopen_returning(b"")):
            with pytest.raises(AttachmentUnavailable, match="empty"):
                fetch_attachment("https://img.example.com/a.png")

    def test_oversize_body(self):
        with patch("urllib.request.urlopen", return_value=_urlopen_returning(b"x" * (MAX_IMAGE_BYTES + 1))):
            with pytest.raises(AttachmentUnavailable, match="too large"):
                fetch_attachment("https://img.example.com/a.png")


class TestFetchImages:
    def test_keeps_attachment_order(self):
        entry = make_entry("Trip", attachments=("https://x.test/1.png", "https://x.test/2.png"))
        images = fetch_images([entry], lambda url, timeout: url.encode())
        assert images == {"trip": (b"https://x.test/1.png", b"https://x.test/2.png")}

    def test_max_per_entry(self):
        entry = make_entry("Trip", attachments=tuple(f"https://x.test/{i}.png" for i in range(5)))
        images = fetch_images([entry], lambda url, timeout: b"img", max_per_entry=2)
        assert len(images["trip"]) == 2

    def test_failures_skipped(self):
        def fetcher(url, timeout):
            if "bad" in url:
                raise AttachmentUnavailable(url, "404")
            return b"ok"

        good = make_entry("Good", attachments=("https://x.test/good.png", "https://x.test/bad.png"))
        bad = make_entry("Bad", attachments=("https://x.test/bad.png",))
        images = fetch_images([good, bad], fetcher)
        assert images == {"good": (b"ok",)}

    def test_same_entry_fetched_once(self):
        calls = []

        def fetcher(url, timeout):
            calls.append(url)
            return b"ok"

        entry = make_entry("Trip", attachments=("https://x.test/1.png",))
        fetch_images([entry, entry], fetcher)
        assert calls == ["https://x.test/1.png"]

    def test_no_attachments(self):
        assert fetch_images([make_entry("Trip")], lambda url, timeout: b"x") == {}
