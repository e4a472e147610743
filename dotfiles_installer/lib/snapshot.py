from __future__ import annotations

import contextlib
import hashlib
import logging
import shutil
import tarfile
import tempfile
import time
from pathlib import Path, PurePosixPath
from typing import Dict, Iterator, List, Optional

from ..config import InstallerConfig
from ..errors import SnapshotError
from . import reporter
from .command import command_exists

logger = logging.getLogger(__name__)

ARCHIVE_NAME = "snapshot.tar.gz"


def staging_prefix(working_copy: Path) -> str:
    return f".{working_copy.name}-staging-"


@contextlib.contextmanager
def staging_dir(working_copy: Path) -> Iterator[Path]:
    """Scratch directory next to the working copy, removed on every exit path.

    Living on the same filesystem as the working copy keeps the final swap a
    plain rename.
    """

    parent = working_copy.parent
    parent.mkdir(parents=True, exist_ok=True)
    path = Path(tempfile.mkdtemp(prefix=staging_prefix(working_copy), dir=str(parent)))
    logger.debug("Staging directory %s", path)
    try:
        yield path
    finally:
        shutil.rmtree(path, ignore_errors=True)
        if path.exists():
            logger.warning("Could not remove staging directory %s", path)


def download_archive(url: str, dest: Path) -> None:
    if command_exists("curl"):
        argv = ["curl", "-LsSf", url, "-o", str(dest)]
    elif command_exists("wget"):
        argv = ["wget", "-qO", str(dest), url]
    else:
        reporter.print_error("Neither curl nor wget is available")
        raise SnapshotError("no downloader available (install curl or wget)")

    res = reporter.run(argv, "Downloading dotfiles archive")
    if not res.ok:
        raise SnapshotError(f"download failed: {url}")


def _strip_top_level(members: List[tarfile.TarInfo]) -> Iterator[tarfile.TarInfo]:
    # GitHub tarballs wrap everything in "<owner>-<repo>-<sha>/".
    for m in members:
        parts = PurePosixPath(m.name).parts
        if len(parts) <= 1:
            continue
        m.name = str(PurePosixPath(*parts[1:]))
        if m.islnk():
            link_parts = PurePosixPath(m.linkname).parts
            m.linkname = str(PurePosixPath(*link_parts[1:])) if len(link_parts) > 1 else m.linkname
        yield m


def extract_archive(archive: Path, dest: Path) -> None:
    dest.mkdir(parents=True, exist_ok=True)
    try:
        with tarfile.open(archive, "r:*") as tar:
            members = list(_strip_top_level(tar.getmembers()))
            if not members:
                raise SnapshotError(f"archive is empty: {archive.name}")
            # "data" rejects absolute paths, traversal and links leaving dest.
            tar.extractall(dest, members=members, filter="data")
    except (tarfile.TarError, EOFError, OSError) as e:
        raise SnapshotError(f"could not extract {archive.name}: {e}") from e


def _slot_key(p: Path):
    # "<YYYYmmdd-HHMMSS>" or "<YYYYmmdd-HHMMSS>-<n>" for same-second backups.
    stamp, _, n = p.name[:15], p.name[15:16], p.name[16:]
    return (stamp, int(n) if n.isdigit() else 0)


def _backup_slot(backups_dir: Path) -> Path:
    base = time.strftime("%Y%m%d-%H%M%S")
    taken = [_slot_key(p)[1] for p in backups_dir.iterdir() if p.name[:15] == base]
    if not taken:
        return backups_dir / base
    return backups_dir / f"{base}-{max(taken) + 1}"


def tree_digest(root: Path) -> Dict[str, str]:
    """Relative path -> sha256 of every file (or link target) under root."""

    digest: Dict[str, str] = {}
    for p in sorted(root.rglob("*")):
        rel = str(p.relative_to(root))
        if p.is_symlink():
            digest[rel] = "link:" + str(p.readlink())
        elif p.is_file():
            digest[rel] = hashlib.sha256(p.read_bytes()).hexdigest()
    return digest


def _covered_by(backup: Path, current: Dict[str, str]) -> bool:
    return all(current.get(rel) == h for rel, h in tree_digest(backup).items())


def swap_into_place(extracted: Path, working_copy: Path, backups_dir: Path) -> Optional[Path]:
    """Replace ``working_copy`` with ``extracted``.

    Nothing happens when both trees already hold the same files. Otherwise a
    non-empty previous copy is moved into ``backups_dir`` first and moved
    back if the new tree cannot be put in place. Returns the backup path.
    """

    backup: Optional[Path] = None
    if working_copy.exists():
        if working_copy.is_dir() and not any(working_copy.iterdir()):
            working_copy.rmdir()
        elif working_copy.is_dir() and tree_digest(working_copy) == tree_digest(extracted):
            logger.info("Working copy %s already matches the snapshot", working_copy)
            return None
        else:
            backups_dir.mkdir(parents=True, exist_ok=True)
            backup = _backup_slot(backups_dir)
            shutil.move(str(working_copy), str(backup))
            logger.info("Moved previous working copy %s -> %s", working_copy, backup)

    try:
        shutil.move(str(extracted), str(working_copy))
    except OSError as e:
        if backup is not None:
            if working_copy.exists():
                shutil.rmtree(working_copy, ignore_errors=True)
            shutil.move(str(backup), str(working_copy))
            logger.info("Restored previous working copy from %s", backup)
        raise SnapshotError(f"could not install snapshot into {working_copy}: {e}") from e

    return backup


def prune_backups(backups_dir: Path, keep: int, current: Path) -> List[Path]:
    """Drop old backups whose every file is still in ``current``, unchanged.

    Only backups beyond the newest ``keep`` are considered. One holding
    anything the current copy lacks is kept whatever its age.
    """

    if not backups_dir.is_dir():
        return []
    # The most recent backup is always kept.
    keep = max(keep, 1)
    slots = sorted((p for p in backups_dir.iterdir() if p.is_dir()), key=_slot_key)
    candidates = slots[: max(len(slots) - keep, 0)]
    if not candidates:
        return []

    now = tree_digest(current) if current.is_dir() else {}
    pruned: List[Path] = []
    kept: List[Path] = []
    for p in candidates:
        if _covered_by(p, now):
            shutil.rmtree(p, ignore_errors=True)
            reporter.print_info(f"Removed old backup {p} (nothing in it differs from {current})")
            logger.info("Pruned old backup %s", p)
            pruned.append(p)
        else:
            kept.append(p)
            logger.info("Keeping old backup %s: it holds changes not in %s", p, current)

    if kept:
        reporter.print_warning(
            f"{len(kept)} older backup(s) in {backups_dir} hold changes not in the current copy; review and delete them by hand"
        )
    return pruned


def acquire_snapshot(config: InstallerConfig) -> Optional[Path]:
    """Download, extract and install a fresh copy of the source tree.

    The working copy is untouched unless the new tree is complete (the entry
    point exists in it). Raises ``SnapshotError``; staging is always cleaned.
    """

    working_copy = config.dotfiles_dir

    with staging_dir(working_copy) as staging:
        archive = staging / ARCHIVE_NAME
        tree = staging / "tree"

        download_archive(config.tarball_url, archive)

        try:
            extract_archive(archive, tree)
        except SnapshotError:
            reporter.print_error("Extracting dotfiles archive")
            raise
        reporter.print_success("Extracting dotfiles archive")

        if not (tree / config.entry_point).is_file():
            reporter.print_error(f"Archive does not contain {config.entry_point}")
            raise SnapshotError(f"entry point {config.entry_point} missing from archive")

        archive.unlink()
        backup = swap_into_place(tree, working_copy, config.backups_dir)

    if backup is not None:
        reporter.print_warning(f"Previous copy differed from upstream and was saved to {backup}")
        prune_backups(config.backups_dir, config.keep_backups, working_copy)

    reporter.print_success(f"Repository is current at {working_copy}")
    return backup
