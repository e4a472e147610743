from __future__ import annotations

import logging
import os
import stat
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from . import reporter
from .platform_detect import Platform

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DispatchResult:
    ok: bool
    exit_code: int
    cause: Optional[str] = None
    script: Optional[Path] = None


def platform_script(platform: Platform, working_copy: Path, scripts: Mapping[str, str]) -> Optional[Path]:
    if platform is Platform.UNKNOWN:
        return None
    rel = scripts.get(platform.value)
    if not rel:
        return None
    return working_copy / rel


def _make_executable(path: Path) -> None:
    mode = path.stat().st_mode
    path.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)


def dispatch(platform: Platform, working_copy: Path, scripts: Mapping[str, str]) -> DispatchResult:
    """Hand over to the platform's setup script and return its exit code.

    The script shares our terminal; its output is its own business. Unknown
    platforms and missing scripts fail before anything is spawned.
    """

    script = platform_script(platform, working_copy, scripts)
    if script is None:
        cause = f"Unsupported platform: {platform.value}"
        reporter.print_error(cause)
        logger.error(cause)
        return DispatchResult(ok=False, exit_code=1, cause=cause)

    if not script.is_file():
        cause = f"Platform setup script not found: {script}"
        reporter.print_error(cause)
        logger.error(cause)
        return DispatchResult(ok=False, exit_code=1, cause=cause, script=script)

    _make_executable(script)
    reporter.print_info(f"Executing {platform.value} setup ({script.relative_to(working_copy)})")
    logger.info("Dispatching %s -> %s", platform.value, script)

    env = dict(os.environ, DOTFILES_DIR=str(working_copy), DOTFILES_PLATFORM=platform.value)
    code = subprocess.call([str(script)], cwd=str(working_copy), env=env)

    logger.info("Platform script %s exited %s", script, code)
    if code != 0:
        cause = f"Platform setup failed (exit {code})"
        reporter.print_error(cause)
        return DispatchResult(ok=False, exit_code=code, cause=cause, script=script)
    return DispatchResult(ok=True, exit_code=0, script=script)
