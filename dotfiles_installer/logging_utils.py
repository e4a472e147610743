from __future__ import annotations

import logging
import tempfile
from pathlib import Path
from typing import Optional


def default_log_path(home: Optional[Path] = None) -> str:
    return str((home or Path.home()) / ".cache" / "dotfiles-installer" / "install.log")


def configure_logging(
    log_path: Optional[str] = None,
    level: int = logging.DEBUG,
    also_console: bool = False,
) -> str:
    """Configure logging.

    Every command and decision is recorded to the log file. The terminal
    belongs to the reporter's pass/fail lines, so console logging is opt-in
    (``--verbose``).

    If the requested location is not writable, fall back to a file in the
    system temp directory. Returns the actual file path being used.
    """

    logger = logging.getLogger()
    logger.setLevel(level)

    # Avoid duplicate handlers if configure_logging() is called multiple times.
    if getattr(logger, "_dotfiles_configured", False):
        return getattr(logger, "_dotfiles_log_path", log_path or "")

    requested = log_path or default_log_path()
    handlers: list[logging.Handler] = []

    fmt = logging.Formatter(
        fmt="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S%z",
    )

    try:
        Path(requested).parent.mkdir(parents=True, exist_ok=True)
        file_handler: logging.Handler = logging.FileHandler(requested)
        chosen_path = requested
    except OSError:
        fallback = str(Path(tempfile.gettempdir()) / "dotfiles-installer.log")
        file_handler = logging.FileHandler(fallback)
        chosen_path = fallback
    file_handler.setFormatter(fmt)
    handlers.append(file_handler)

    if also_console:
        console = logging.StreamHandler()
        console.setFormatter(fmt)
        console.setLevel(logging.INFO)
        handlers.append(console)

    for h in handlers:
        logger.addHandler(h)

    setattr(logger, "_dotfiles_configured", True)
    setattr(logger, "_dotfiles_log_path", chosen_path)

    logging.getLogger(__name__).info(
        "Logging initialized (requested=%s, actual=%s)", requested, chosen_path
    )
    return chosen_path
