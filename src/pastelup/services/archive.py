"""Archive extraction helpers for pastelup."""

import os
import shutil
import tarfile
import zipfile
from pathlib import Path

from pastelup.errors import DownloadError


class ArchiveService:
    """Encapsulates safe archive extraction logic for zip and tar.gz releases."""

    def is_within_dir(self, base_dir: Path, candidate: Path) -> bool:
        try:
            return os.path.commonpath([str(base_dir), str(candidate)]) == str(base_dir)
        except ValueError:
            return False

    def extract(self, archive_path: str, destination_dir: str):
        name = archive_path.lower()
        if name.endswith(".zip"):
            self.safe_extract_zip(archive_path, destination_dir)
        elif name.endswith((".tar.gz", ".tgz")):
            self.safe_extract_tar(archive_path, destination_dir)
        else:
            raise DownloadError(f"Unsupported archive format: {archive_path}")

    def safe_extract_zip(self, zip_path: str, destination_dir: str):
        base = Path(destination_dir).resolve()

        try:
            with zipfile.ZipFile(zip_path, "r") as zip_ref:
                for member in zip_ref.infolist():
                    normalized_name = member.filename.replace("\\", "/")
                    target_path = (base / normalized_name).resolve()

                    if not self.is_within_dir(base, target_path):
                        raise DownloadError(
                            f"Unsafe ZIP entry detected: `{member.filename}`. "
                            "Archive extraction aborted to prevent path traversal."
                        )

                    file_type = (member.external_attr >> 16) & 0o170000
                    if file_type == 0o120000:
                        raise DownloadError(
                            f"Unsafe ZIP entry detected: `{member.filename}` is a symbolic link."
                        )

                for member in zip_ref.infolist():
                    normalized_name = member.filename.replace("\\", "/")
                    target_path = (base / normalized_name).resolve()

                    if member.is_dir() or normalized_name.endswith("/"):
                        target_path.mkdir(parents=True, exist_ok=True)
                        continue

                    target_path.parent.mkdir(parents=True, exist_ok=True)
                    with zip_ref.open(member, "r") as src, open(target_path, "wb") as dst:
                        shutil.copyfileobj(src, dst)
        except zipfile.BadZipFile as exc:
            raise DownloadError(f"Invalid ZIP archive: {zip_path}") from exc

    def safe_extract_tar(self, tar_path: str, destination_dir: str):
        base = Path(destination_dir).resolve()

        try:
            with tarfile.open(tar_path, "r:*") as tar_ref:
                members = tar_ref.getmembers()
                for member in members:
                    target_path = (base / member.name).resolve()
                    if not self.is_within_dir(base, target_path):
                        raise DownloadError(
                            f"Unsafe TAR entry detected: `{member.name}`. "
                            "Archive extraction aborted to prevent path traversal."
                        )
                    if member.issym() or member.islnk():
                        raise DownloadError(f"Unsafe TAR entry detected: `{member.name}` is a link.")
                    if not (member.isfile() or member.isdir()):
                        raise DownloadError(f"Unsupported TAR entry type: `{member.name}`.")

                for member in members:
                    target_path = (base / member.name).resolve()
                    if member.isdir():
                        target_path.mkdir(parents=True, exist_ok=True)
                        continue
                    target_path.parent.mkdir(parents=True, exist_ok=True)
                    src = tar_ref.extractfile(member)
                    if src is None:
                        continue
                    with src, open(target_path, "wb") as dst:
                        shutil.copyfileobj(src, dst)
                    if member.mode & 0o111:
                        os.chmod(target_path, 0o755)
        except tarfile.TarError as exc:
            raise DownloadError(f"Invalid TAR archive: {tar_path}") from exc
