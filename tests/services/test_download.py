import hashlib

import pytest
from rich.console import Console

from pastelup.errors import DownloadError
from pastelup.services.download import DownloadService


class DummyLogger:
    def info(self, *_args, **_kwargs):
        return None

    def warning(self, *_args, **_kwargs):
        return None


class FakeResponse:
    def __init__(self, payload: bytes):
        self.payload = payload
        self.headers = {"Content-Length": str(len(payload))}

    def raise_for_status(self):
        return None

    def iter_content(self, chunk_size=8192):
        yield self.payload

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False


class FakeRequestsModule:
    class RequestException(Exception):
        pass

    def __init__(self, payload: bytes):
        self.payload = payload
        self.urls = []

    def get(self, url, *_args, **_kwargs):
        self.urls.append(url)
        return FakeResponse(self.payload)


class FailingRequestsModule:
    class RequestException(Exception):
        pass

    def get(self, *_args, **_kwargs):
        raise self.RequestException("connection reset")


def build_service(requests_module, **kwargs):
    return DownloadService(
        logger=DummyLogger(),
        console=Console(record=True),
        requests_module=requests_module,
        **kwargs,
    )


def test_download_file_writes_payload(tmp_path):
    requests_module = FakeRequestsModule(payload=b"pasteld-bytes")
    service = build_service(requests_module)

    dest = tmp_path / "nested" / "pasteld.tar.gz"
    result = service.download_file("https://download.pastel.network/beta/pasteld.tar.gz", str(dest))

    assert result == str(dest)
    assert dest.read_bytes() == b"pasteld-bytes"


def test_download_file_rejects_plain_http(tmp_path):
    requests_module = FakeRequestsModule(payload=b"unused")
    service = build_service(requests_module)

    with pytest.raises(DownloadError, match="non-HTTPS"):
        service.download_file("http://example.com/pasteld", str(tmp_path / "pasteld"))

    assert requests_module.urls == []


def test_download_file_checksum_mismatch_removes_file(tmp_path):
    service = build_service(FakeRequestsModule(payload=b"tampered"))
    dest = tmp_path / "sapling-spend.params"

    with pytest.raises(DownloadError, match="Checksum mismatch"):
        service.download_file(
            "https://example.com/sapling-spend.params",
            str(dest),
            description="sapling-spend.params",
            expected_sha256=hashlib.sha256(b"original").hexdigest(),
        )

    assert not dest.exists()


def test_download_file_wraps_request_errors(tmp_path):
    service = build_service(FailingRequestsModule())

    with pytest.raises(DownloadError, match="connection reset"):
        service.download_file("https://example.com/pasteld", str(tmp_path / "pasteld"))


def test_release_url_joins_parts_without_double_slashes():
    service = build_service(FakeRequestsModule(payload=b""))

    url = service.release_url("https://download.pastel.network/", "/beta/", "pastel-osx.tar.gz")

    assert url == "https://download.pastel.network/beta/pastel-osx.tar.gz"
