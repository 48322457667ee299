"""OS detection and default directory layout."""

import os
import sys
from typing import Optional

from .constants import OS_LINUX, OS_MAC, OS_UNKNOWN, OS_WINDOWS


def get_os(platform: Optional[str] = None) -> str:
    platform = platform or sys.platform
    if platform.startswith("linux"):
        return OS_LINUX
    if platform == "darwin":
        return OS_MAC
    if platform in ("win32", "cygwin"):
        return OS_WINDOWS
    return OS_UNKNOWN


def _app_data(home_dir: str) -> str:
    return os.environ.get("APPDATA") or os.path.join(home_dir, "AppData", "Roaming")


def default_exec_dir(os_type: str, home_dir: str) -> str:
    if os_type == OS_MAC:
        return os.path.join(home_dir, "Applications", "PastelWallet")
    if os_type == OS_WINDOWS:
        return os.path.join(_app_data(home_dir), "PastelWallet")
    return os.path.join(home_dir, "pastel")


def default_working_dir(os_type: str, home_dir: str) -> str:
    if os_type == OS_MAC:
        return os.path.join(home_dir, "Library", "Application Support", "Pastel")
    if os_type == OS_WINDOWS:
        return os.path.join(_app_data(home_dir), "Pastel")
    return os.path.join(home_dir, ".pastel")


def default_params_dir(os_type: str, home_dir: str) -> str:
    if os_type == OS_MAC:
        return os.path.join(home_dir, "Library", "Application Support", "PastelParams")
    if os_type == OS_WINDOWS:
        return os.path.join(_app_data(home_dir), "PastelParams")
    return os.path.join(home_dir, ".pastel-params")


def to_posix(path: str) -> str:
    """Normalise a path for use in a shell command on a remote Linux host."""
    return path.replace("\\", "/")
