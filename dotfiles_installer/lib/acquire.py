from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

from ..config import InstallerConfig
from ..errors import EntryPointMissingError, HistoryUpdateError, SnapshotError
from . import git, reporter, snapshot

logger = logging.getLogger(__name__)


class UpdateStrategy(str, Enum):
    HISTORY = "history"
    SNAPSHOT = "snapshot"


@dataclass(frozen=True)
class WorkingCopy:
    root: Path
    entry_point: str

    @property
    def exists(self) -> bool:
        return self.root.is_dir()

    @property
    def has_entry_point(self) -> bool:
        return (self.root / self.entry_point).is_file()

    @property
    def has_history(self) -> bool:
        return self.exists and git.has_history(self.root)

    @property
    def has_local_changes(self) -> bool:
        """Uncommitted edits, as git sees them.

        A copy without history (or without git to ask) cannot tell, and
        reports False.
        """
        if not self.has_history or not git.is_available():
            return False
        return git.has_local_changes(self.root)

    @classmethod
    def from_config(cls, config: InstallerConfig) -> "WorkingCopy":
        return cls(root=config.dotfiles_dir, entry_point=config.entry_point)


@dataclass(frozen=True)
class AcquireResult:
    ok: bool
    strategy: Optional[UpdateStrategy] = None
    cause: Optional[str] = None
    history: Optional[git.HistoryUpdate] = None
    backup: Optional[Path] = None


def choose_strategy(wc: WorkingCopy) -> UpdateStrategy:
    if not wc.exists or not wc.has_entry_point:
        return UpdateStrategy.SNAPSHOT
    if wc.has_history:
        return UpdateStrategy.HISTORY
    # Flat copy from an earlier snapshot: refresh it the same way.
    return UpdateStrategy.SNAPSHOT


def _snapshot(config: InstallerConfig) -> AcquireResult:
    try:
        backup = snapshot.acquire_snapshot(config)
    except SnapshotError as e:
        logger.error("Snapshot acquisition failed: %s", e)
        reporter.print_error(f"Failed to download repository: {e}")
        return AcquireResult(ok=False, strategy=UpdateStrategy.SNAPSHOT, cause=str(e))
    return AcquireResult(ok=True, strategy=UpdateStrategy.SNAPSHOT, backup=backup)


def acquire(config: InstallerConfig) -> AcquireResult:
    """Make sure the working copy exists, is current and has an entry point.

    History-based update is preferred; a failure there falls back to a
    snapshot download, unless upstream itself lacks the entry point. On
    failure the working copy is left as it was.
    """

    wc = WorkingCopy.from_config(config)
    strategy = choose_strategy(wc)
    logger.info(
        "Working copy %s: exists=%s entry_point=%s history=%s -> %s",
        wc.root,
        wc.exists,
        wc.exists and wc.has_entry_point,
        wc.has_history,
        strategy.value,
    )

    if strategy is UpdateStrategy.SNAPSHOT:
        if not wc.exists:
            reporter.print_info(f"Creating dotfiles directory at {wc.root}")
        return _snapshot(config)

    reporter.print_info(f"Updating existing dotfiles at {wc.root}")
    try:
        history = git.update(config, wc.root)
    except EntryPointMissingError as e:
        # The snapshot comes from the same upstream; it cannot do better.
        logger.error("Upstream has no entry point: %s", e)
        return AcquireResult(ok=False, strategy=UpdateStrategy.HISTORY, cause=str(e))
    except HistoryUpdateError as e:
        logger.warning("History update failed, falling back to snapshot: %s", e)
        reporter.print_warning(f"Git update failed ({e}); downloading a fresh copy instead")
        return _snapshot(config)

    return AcquireResult(ok=True, strategy=UpdateStrategy.HISTORY, history=history)
