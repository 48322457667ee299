"""Artifact download with progress reporting and checksum validation."""

import hashlib
import os
from typing import Optional
from urllib.parse import urlparse

from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)

from pastelup.errors import DownloadError


class DownloadService:
    """Fetches release artifacts over HTTPS."""

    def __init__(self, logger, console, requests_module, timeout: float = 60.0, allow_insecure_http: bool = False):
        self.logger = logger
        self.console = console
        self.requests = requests_module
        self.timeout = timeout
        self.allow_insecure_http = allow_insecure_http

    def enforce_https(self, url: str):
        scheme = urlparse(url).scheme.lower()
        if scheme == "https":
            return
        if scheme == "http" and self.allow_insecure_http:
            self.logger.warning("Downloading over insecure HTTP: %s", url)
            return
        raise DownloadError(f"Refusing to download from non-HTTPS URL: {url}")

    def download_file(
        self,
        url: str,
        dest_path: str,
        description: str = "Downloading...",
        expected_sha256: Optional[str] = None,
    ) -> str:
        self.logger.info("Downloading %s to %s", url, dest_path)
        self.enforce_https(url)

        hasher = hashlib.sha256() if expected_sha256 else None

        try:
            with self.requests.get(url, stream=True, timeout=self.timeout) as response:
                response.raise_for_status()
                total_size = int(response.headers.get("Content-Length", 0))

                os.makedirs(os.path.dirname(dest_path) or ".", exist_ok=True)

                with Progress(
                    SpinnerColumn(),
                    TextColumn("[progress.description]{task.description}"),
                    BarColumn(),
                    TaskProgressColumn(),
                    "•",
                    TimeElapsedColumn(),
                    console=self.console,
                ) as progress:
                    task = progress.add_task(f"[cyan]{description}", total=total_size or None)
                    with open(dest_path, "wb") as file_obj:
                        for chunk in response.iter_content(chunk_size=8192):
                            if not chunk:
                                continue
                            file_obj.write(chunk)
                            if hasher:
                                hasher.update(chunk)
                            progress.update(task, advance=len(chunk))

            if hasher:
                downloaded_sha = hasher.hexdigest()
                if downloaded_sha != expected_sha256.lower():
                    try:
                        os.remove(dest_path)
                    except OSError:
                        pass
                    raise DownloadError(
                        f"Checksum mismatch for {description}. Expected {expected_sha256}, "
                        f"but got {downloaded_sha}."
                    )

        except self.requests.RequestException as exc:
            raise DownloadError(f"Download failed for {description}: {exc}") from exc

        return dest_path

    def release_url(self, base_url: str, release: str, file_name: str) -> str:
        return "/".join(part.strip("/") for part in (base_url, release, file_name))
