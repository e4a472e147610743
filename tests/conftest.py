"""Shared fixtures: throwaway homes, GitHub-style tarballs, git repos."""

import io
import shutil
import subprocess
import tarfile
from pathlib import Path

import pytest

from dotfiles_installer.config import build_config
from dotfiles_installer.lib import snapshot

ENTRY_POINT = "src/setup.sh"

BASE_TREE = {
    "src/setup.sh": "#!/bin/sh\necho entry\n",
    "src/ubuntu/setup.sh": "#!/bin/sh\nexit 0\n",
    "src/macos/setup.sh": "#!/bin/sh\nexit 0\n",
    "src/wsl/setup.sh": "#!/bin/sh\nexit 0\n",
    "README.md": "dotfiles\n",
}

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")


def make_tarball(path: Path, files: dict, top: str = "fredlackey-dotfiles-sandbox-abc1234") -> Path:
    with tarfile.open(path, "w:gz") as tar:
        d = tarfile.TarInfo(top)
        d.type = tarfile.DIRTYPE
        d.mode = 0o755
        tar.addfile(d)
        for rel, content in files.items():
            data = content.encode("utf-8")
            info = tarfile.TarInfo(f"{top}/{rel}")
            info.size = len(data)
            info.mode = 0o755 if rel.endswith(".sh") else 0o644
            tar.addfile(info, io.BytesIO(data))
    return path


def tree_snapshot(root: Path) -> dict:
    """Relative path -> content for every file under root, .git excluded."""
    out = {}
    for p in sorted(root.rglob("*")):
        if ".git" in p.relative_to(root).parts or not p.is_file():
            continue
        out[str(p.relative_to(root))] = p.read_text(encoding="utf-8")
    return out


def git(cwd: Path, *args: str) -> str:
    r = subprocess.run(["git", *args], cwd=str(cwd), check=True, text=True, capture_output=True)
    return r.stdout.strip()


@pytest.fixture
def home(tmp_path: Path) -> Path:
    h = tmp_path / "home"
    h.mkdir()
    return h


@pytest.fixture
def config(home: Path):
    return build_config(home=home)


@pytest.fixture
def archive(tmp_path: Path) -> Path:
    return make_tarball(tmp_path / "upstream.tar.gz", BASE_TREE)


@pytest.fixture
def fake_download(monkeypatch, archive: Path):
    """Serve snapshot downloads from a local tarball; records requested URLs."""

    calls = []

    def _download(url, dest):
        calls.append(url)
        shutil.copyfile(archive, dest)

    monkeypatch.setattr(snapshot, "download_archive", _download)
    return calls


@pytest.fixture
def git_identity(monkeypatch):
    for var, value in {
        "GIT_AUTHOR_NAME": "Test User",
        "GIT_AUTHOR_EMAIL": "test@example.com",
        "GIT_COMMITTER_NAME": "Test User",
        "GIT_COMMITTER_EMAIL": "test@example.com",
        "GIT_CONFIG_NOSYSTEM": "1",
    }.items():
        monkeypatch.setenv(var, value)


@pytest.fixture
def upstream(tmp_path: Path, git_identity) -> Path:
    """A bare repository on branch main seeded with BASE_TREE."""

    seed = tmp_path / "seed"
    seed.mkdir()
    git(seed, "init", "-q", "-b", "main")
    for rel, content in BASE_TREE.items():
        p = seed / rel
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(content, encoding="utf-8")
    git(seed, "add", "-A")
    git(seed, "commit", "-q", "-m", "initial")

    bare = tmp_path / "upstream.git"
    git(tmp_path, "clone", "-q", "--bare", str(seed), str(bare))
    return bare


def push_upstream_change(tmp_path: Path, bare: Path, rel: str, content: str) -> None:
    work = tmp_path / "pusher"
    if not work.exists():
        git(tmp_path, "clone", "-q", str(bare), str(work))
    else:
        git(work, "pull", "-q")
    p = work / rel
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(content, encoding="utf-8")
    git(work, "add", "-A")
    git(work, "commit", "-q", "-m", f"update {rel}")
    git(work, "push", "-q", "origin", "HEAD:main")


@pytest.fixture
def git_config(home: Path, upstream: Path):
    """Config whose remote is the local bare repo, with a clone in place."""

    cfg = build_config(home=home, remote_url=str(upstream))
    git(home, "clone", "-q", str(upstream), str(cfg.dotfiles_dir))
    return cfg
