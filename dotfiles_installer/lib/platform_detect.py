from __future__ import annotations

import logging
import platform
from enum import Enum
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

PROC_VERSION = Path("/proc/version")
OS_RELEASE = Path("/etc/os-release")

_WSL_MARKERS = ("microsoft", "wsl")


class Platform(str, Enum):
    MACOS = "macos"
    UBUNTU = "ubuntu"
    WSL = "wsl"
    LINUX = "linux"
    UNKNOWN = "unknown"


def _read_text(path: Path) -> Optional[str]:
    try:
        txt = path.read_text(encoding="utf-8", errors="ignore").strip()
        return txt or None
    except OSError:
        return None


def classify(kernel: str, proc_version: Optional[str], os_release: Optional[str]) -> Platform:
    """Rule engine: first match wins.

    The WSL marker is checked before the distro file, since WSL hosts
    usually ship an Ubuntu os-release too.
    """

    if kernel == "Darwin":
        return Platform.MACOS

    if kernel == "Linux":
        version = (proc_version or "").lower()
        if any(m in version for m in _WSL_MARKERS):
            return Platform.WSL
        if "ubuntu" in (os_release or "").lower():
            return Platform.UBUNTU
        return Platform.LINUX

    return Platform.UNKNOWN


def detect(
    *,
    kernel: Optional[str] = None,
    proc_version_path: Path = PROC_VERSION,
    os_release_path: Path = OS_RELEASE,
) -> Platform:
    kernel_name = kernel if kernel is not None else platform.system()
    result = classify(kernel_name, _read_text(proc_version_path), _read_text(os_release_path))
    logger.info("Platform: kernel=%s platform=%s", kernel_name, result.value)
    return result
