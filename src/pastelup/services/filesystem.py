"""Filesystem helpers for pastelup."""

import logging
import os
import sys

from rich.console import Console


class FileSystemService:
    """Encapsulates file and directory side effects."""

    def __init__(self, logger: logging.Logger, console: Console):
        self.logger = logger
        self.console = console

    def set_permissions(self, path: str, mode: int):
        if sys.platform == "win32":
            return

        try:
            os.chmod(path, mode)
        except OSError as exc:
            self.logger.warning("Could not set permissions on %s: %s", path, exc)

    def set_tree_permissions(self, root: str, dir_mode: int, file_mode: int, script_mode: int):
        if sys.platform == "win32" or not os.path.exists(root):
            return

        for current_root, dirs, files in os.walk(root):
            for directory in dirs:
                self.set_permissions(os.path.join(current_root, directory), dir_mode)
            for file_name in files:
                mode = script_mode if file_name.endswith((".sh", ".py")) else file_mode
                self.set_permissions(os.path.join(current_root, file_name), mode)

    def ensure_dir(self, path: str, mode: int):
        os.makedirs(path, exist_ok=True)
        self.set_permissions(path, mode)

    def write_text(self, path: str, content: str, mode: int):
        parent = os.path.dirname(path)
        if parent:
            os.makedirs(parent, exist_ok=True)
        with open(path, "w", encoding="utf-8") as handle:
            handle.write(content)
        self.set_permissions(path, mode)
        self.logger.debug("Wrote %s", path)

