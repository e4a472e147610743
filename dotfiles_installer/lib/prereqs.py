from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import List

from ..config import InstallerConfig
from . import reporter
from .command import command_exists

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Requirement:
    name: str
    ok: bool
    detail: str
    required: bool = True


def verify_requirements(config: InstallerConfig) -> List[Requirement]:
    checks: List[Requirement] = []

    if command_exists("curl"):
        checks.append(Requirement("downloader", True, "curl found"))
    elif command_exists("wget"):
        checks.append(Requirement("downloader", True, "wget found"))
    else:
        checks.append(Requirement("downloader", False, "Neither curl nor wget is available"))

    if command_exists("git"):
        checks.append(Requirement("git", True, "git found", required=False))
    else:
        checks.append(Requirement("git", False, "git not found; updates will re-download the archive", required=False))

    home = config.home
    if home.is_dir():
        checks.append(Requirement("home", True, f"Home directory exists: {home}"))
        if os.access(home, os.W_OK):
            checks.append(Requirement("home_writable", True, "Home directory is writable"))
        else:
            checks.append(Requirement("home_writable", False, "No write permission in home directory"))
    else:
        checks.append(Requirement("home", False, f"Home directory not found: {home}"))

    return checks


def report_requirements(checks: List[Requirement]) -> bool:
    """Print one line per check; True when every required check passed."""

    reporter.print_title("Prerequisites")
    for c in checks:
        if c.ok:
            reporter.print_success(c.detail)
        elif c.required:
            reporter.print_error(c.detail)
        else:
            reporter.print_warning(c.detail)
        logger.info("Requirement %s ok=%s (%s)", c.name, c.ok, c.detail)
    return all(c.ok for c in checks if c.required)
