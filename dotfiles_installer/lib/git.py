from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ..config import InstallerConfig
from ..errors import EntryPointMissingError, HistoryUpdateError
from . import reporter
from .command import CmdResult, command_exists, run_cmd

logger = logging.getLogger(__name__)

STASH_PREFIX = "dotfiles-installer"
BACKUP_BRANCH_PREFIX = "dotfiles-installer/backup"


@dataclass(frozen=True)
class HistoryUpdate:
    """What a history-based update set aside before moving the branch."""

    stash_message: Optional[str] = None
    backup_branch: Optional[str] = None


def is_available() -> bool:
    return command_exists("git")


def has_history(path: Path) -> bool:
    return (path / ".git").exists()


def _git(path: Path, *args: str) -> CmdResult:
    return run_cmd(["git", "-C", str(path), *args], check=False)


def _timestamp() -> str:
    return time.strftime("%Y%m%d-%H%M%S")


def has_local_changes(path: Path) -> bool:
    """Tracked modifications, staged changes and untracked files all count."""
    r = _git(path, "status", "--porcelain")
    if r.returncode != 0:
        raise HistoryUpdateError(f"git status failed in {path}: {r.stderr.strip()}")
    return bool(r.stdout.strip())


def commits_not_on(path: Path, upstream: str) -> int:
    r = _git(path, "rev-list", "--count", f"{upstream}..HEAD")
    if r.returncode != 0:
        # Unborn HEAD: nothing local to lose.
        return 0
    try:
        return int(r.stdout.strip() or "0")
    except ValueError:
        return 0


def _fetch_source(path: Path, url: str) -> str:
    """Remote name or URL to fetch from.

    ``origin`` is added when missing. An ``origin`` pointing elsewhere (a
    fork, an SSH remote) belongs to the user and is left alone; the
    configured URL is fetched directly instead.
    """

    r = _git(path, "remote", "get-url", "origin")
    if r.returncode != 0:
        res = reporter.run(["git", "-C", str(path), "remote", "add", "origin", url], "Adding git remote origin")
        if not res.ok:
            raise HistoryUpdateError("could not add git remote origin")
        return "origin"

    current = r.stdout.strip()
    if current == url:
        return "origin"

    reporter.print_warning(f"git remote origin is {current}; leaving it as is and updating from {url}")
    logger.info("origin of %s is %s, fetching %s directly", path, current, url)
    return url


def _upstream_commit(path: Path, source: str, branch: str) -> str:
    """Resolve what was just fetched to a commit id."""

    candidates = [f"origin/{branch}", "FETCH_HEAD"] if source == "origin" else ["FETCH_HEAD"]
    for ref in candidates:
        r = _git(path, "rev-parse", "--verify", "--quiet", f"{ref}^{{commit}}")
        if r.returncode == 0 and r.stdout.strip():
            return r.stdout.strip()
    raise HistoryUpdateError(f"fetched {branch} but could not resolve it")


def upstream_has(path: Path, commit: str, rel: str) -> bool:
    return _git(path, "cat-file", "-e", f"{commit}:{rel}").returncode == 0


def restore_stash(path: Path, message: str) -> None:
    r = _git(path, "stash", "pop", "--index")
    if r.returncode == 0:
        reporter.print_info("Local changes restored from stash")
        logger.info("Restored stash %r in %s", message, path)
    else:
        reporter.print_warning(f"Local changes remain in stash '{message}' (git -C {path} stash pop)")
        logger.warning("Could not pop stash %r in %s: %s", message, path, r.stderr.strip())


def stash_local_changes(path: Path) -> str:
    """Move uncommitted work (untracked files included) into a named stash."""

    message = f"{STASH_PREFIX} {_timestamp()}"
    res = reporter.run(
        ["git", "-C", str(path), "stash", "push", "--include-untracked", "-m", message],
        "Saving local changes to git stash",
    )
    if not res.ok:
        raise HistoryUpdateError("could not stash local changes")
    reporter.print_warning(f"Local changes were saved as stash '{message}'")
    reporter.print_info(f"Review them with: git -C {path} stash list")
    reporter.print_info(f"Restore them with: git -C {path} stash pop")
    logger.info("Stashed local changes in %s as %r", path, message)
    return message


def _free_branch_name(path: Path, base: str) -> str:
    name = base
    n = 1
    while _git(path, "rev-parse", "--verify", "--quiet", f"refs/heads/{name}").returncode == 0:
        name = f"{base}-{n}"
        n += 1
    return name


def backup_local_commits(path: Path) -> str:
    name = _free_branch_name(path, f"{BACKUP_BRANCH_PREFIX}-{_timestamp()}")
    res = reporter.run(["git", "-C", str(path), "branch", name, "HEAD"], "Saving unpushed commits to branch " + name)
    if not res.ok:
        raise HistoryUpdateError("could not create backup branch for local commits")
    reporter.print_info(f"Restore them with: git -C {path} merge {name}")
    logger.info("Backed up local commits in %s to branch %s", path, name)
    return name


def update(config: InstallerConfig, path: Path) -> HistoryUpdate:
    """Bring a git working copy to the tip of the configured upstream branch.

    Divergent local state is replaced by upstream, but set aside first:
    uncommitted work goes to a named stash, unpushed commits to a backup
    branch. Raises ``HistoryUpdateError`` on any failure so the caller can
    fall back to a snapshot; the working tree is as it was when that happens.
    Raises ``EntryPointMissingError``, before touching anything, when the
    upstream tree has no entry point.
    """

    if not is_available():
        raise HistoryUpdateError("git is not installed")

    r = _git(path, "rev-parse", "--is-inside-work-tree")
    if r.returncode != 0 or r.stdout.strip() != "true":
        raise HistoryUpdateError(f"{path} is not a usable git working tree: {r.stderr.strip()}")

    source = _fetch_source(path, config.remote_url)

    fetched = reporter.run(
        ["git", "-C", str(path), "fetch", source, config.branch],
        "Fetching latest changes",
    )
    if not fetched.ok:
        raise HistoryUpdateError(f"git fetch of {config.branch} from {source} failed")

    upstream = _upstream_commit(path, source, config.branch)

    if not upstream_has(path, upstream, config.entry_point):
        reporter.print_error(f"Upstream {config.branch} has no {config.entry_point}; leaving {path} as is")
        raise EntryPointMissingError(f"{config.entry_point} missing from upstream {config.branch}")

    stash_message = stash_local_changes(path) if has_local_changes(path) else None

    try:
        backup_branch = None
        ahead = commits_not_on(path, upstream)
        if ahead:
            reporter.print_warning(f"{ahead} local commit(s) are not on {config.branch} upstream")
            backup_branch = backup_local_commits(path)

        moved = reporter.run(
            ["git", "-C", str(path), "checkout", "--force", "-B", config.branch, upstream],
            f"Updating to latest {config.branch}",
        )
        if not moved.ok:
            raise HistoryUpdateError(f"could not move {config.branch} to {upstream[:12]}")
    except HistoryUpdateError:
        if stash_message is not None:
            restore_stash(path, stash_message)
        raise

    if source == "origin":
        _git(path, "branch", f"--set-upstream-to=origin/{config.branch}", config.branch)

    return HistoryUpdate(stash_message=stash_message, backup_branch=backup_branch)
