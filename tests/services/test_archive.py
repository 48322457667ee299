import io
import tarfile
import zipfile

import pytest

from pastelup.errors import DownloadError
from pastelup.services.archive import ArchiveService


def test_archive_service_blocks_path_traversal(tmp_path):
    service = ArchiveService()

    zip_path = tmp_path / "malicious.zip"
    with zipfile.ZipFile(zip_path, "w") as zip_file:
        zip_file.writestr("../escape.txt", "malicious")

    destination = tmp_path / "extract"
    destination.mkdir()

    with pytest.raises(DownloadError):
        service.safe_extract_zip(str(zip_path), str(destination))

    assert not (tmp_path / "escape.txt").exists()


def test_archive_service_extracts_valid_zip(tmp_path):
    service = ArchiveService()

    zip_path = tmp_path / "dd-service.zip"
    with zipfile.ZipFile(zip_path, "w") as zip_file:
        zip_file.writestr("dd-service/server.py", "print('dd')")

    destination = tmp_path / "extract"
    destination.mkdir()

    service.extract(str(zip_path), str(destination))

    assert (destination / "dd-service" / "server.py").read_text(encoding="utf-8") == "print('dd')"


def _add_tar_file(tar_file, name, payload, mode=0o644):
    info = tarfile.TarInfo(name)
    info.size = len(payload)
    info.mode = mode
    tar_file.addfile(info, io.BytesIO(payload))


def test_archive_service_extracts_tar_and_keeps_exec_bit(tmp_path):
    service = ArchiveService()

    tar_path = tmp_path / "pastel-ubuntu20.04.tar.gz"
    with tarfile.open(tar_path, "w:gz") as tar_file:
        _add_tar_file(tar_file, "pasteld", b"#!/bin/sh\n", mode=0o755)
        _add_tar_file(tar_file, "README", b"docs")

    destination = tmp_path / "pastel"
    destination.mkdir()

    service.extract(str(tar_path), str(destination))

    assert (destination / "pasteld").stat().st_mode & 0o111
    assert (destination / "README").read_bytes() == b"docs"


def test_archive_service_rejects_tar_links(tmp_path):
    service = ArchiveService()

    tar_path = tmp_path / "bad.tar.gz"
    with tarfile.open(tar_path, "w:gz") as tar_file:
        link = tarfile.TarInfo("pasteld")
        link.type = tarfile.SYMTYPE
        link.linkname = "/etc/passwd"
        tar_file.addfile(link)

    with pytest.raises(DownloadError, match="link"):
        service.extract(str(tar_path), str(tmp_path / "out"))


def test_archive_service_rejects_unknown_format(tmp_path):
    with pytest.raises(DownloadError, match="Unsupported archive format"):
        ArchiveService().extract(str(tmp_path / "pastel.rar"), str(tmp_path))
