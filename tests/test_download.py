"""Tests for release URL resolution and HTTP fetch."""

import httpx
import pytest

from nt_flash.core.errors import DownloadError
from nt_flash.download import fetch, firmware_url


def _client(handler) -> httpx.Client:
    return httpx.Client(transport=httpx.MockTransport(handler), follow_redirects=True)


class TestFirmwareUrl:
    def test_release_url(self):
        assert firmware_url("1.12.0") == (
            "https://www.expert-sleepers.co.uk/downloads/firmware/distingNT_1.12.0.zip"
        )

    @pytest.mark.parametrize("bad", ["1.12", "v1.12.0", "latest", "1.12.0.1"])
    def test_invalid_version(self, bad):
        with pytest.raises(ValueError):
            firmware_url(bad)

    def test_version_required(self):
        with pytest.raises(ValueError):
            firmware_url("")


class TestFetch:
    def test_writes_body(self, tmp_path):
        payload = b"PK\x03\x04" + b"\x00" * 5000
        client = _client(lambda request: httpx.Response(200, content=payload))

        dest = fetch("https://example.test/fw.zip", tmp_path / "fw.zip", client=client)

        assert dest.read_bytes() == payload

    def test_follows_redirects(self, tmp_path):
        def handler(request):
            if request.url.path == "/old.zip":
                return httpx.Response(302, headers={"Location": "https://example.test/new.zip"})
            return httpx.Response(200, content=b"zipdata")

        dest = fetch("https://example.test/old.zip", tmp_path / "fw.zip", client=_client(handler))
        assert dest.read_bytes() == b"zipdata"

    def test_http_error_removes_file(self, tmp_path):
        client = _client(lambda request: httpx.Response(404, content=b"not found"))
        dest = tmp_path / "fw.zip"

        with pytest.raises(DownloadError, match="HTTP 404"):
            fetch("https://example.test/missing.zip", dest, client=client)
        assert not dest.exists()

    def test_network_error(self, tmp_path):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(DownloadError, match="connection refused"):
            fetch("https://example.test/fw.zip", tmp_path / "fw.zip", client=_client(handler))
        assert list(tmp_path.iterdir()) == []

    def test_empty_body(self, tmp_path):
        client = _client(lambda request: httpx.Response(200, content=b""))
        with pytest.raises(DownloadError, match="empty"):
            fetch("https://example.test/fw.zip", tmp_path / "fw.zip", client=client)
        assert list(tmp_path.iterdir()) == []
