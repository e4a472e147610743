import io
import tarfile
from pathlib import Path

import pytest

from conftest import BASE_TREE, make_tarball, tree_snapshot
from dotfiles_installer.config import build_config
from dotfiles_installer.errors import SnapshotError
from dotfiles_installer.lib import snapshot


def _leftover_staging(cfg) -> list:
    prefix = snapshot.staging_prefix(cfg.dotfiles_dir)
    return [p for p in cfg.dotfiles_dir.parent.iterdir() if p.name.startswith(prefix)]


class TestAcquireSnapshot:
    def test_populates_missing_working_copy(self, config, fake_download):
        backup = snapshot.acquire_snapshot(config)

        assert backup is None
        assert fake_download == [config.tarball_url]
        assert tree_snapshot(config.dotfiles_dir) == BASE_TREE
        assert config.entry_point_path.is_file()
        assert _leftover_staging(config) == []

    def test_replaces_existing_copy_and_keeps_backup(self, config, fake_download):
        config.dotfiles_dir.mkdir()
        (config.dotfiles_dir / "my-notes.txt").write_text("keep me")

        backup = snapshot.acquire_snapshot(config)

        assert backup is not None and backup.parent == config.backups_dir
        assert (backup / "my-notes.txt").read_text() == "keep me"
        assert tree_snapshot(config.dotfiles_dir) == BASE_TREE

    def test_empty_directory_is_simply_filled(self, config, fake_download):
        config.dotfiles_dir.mkdir()
        assert snapshot.acquire_snapshot(config) is None
        assert not config.backups_dir.exists()

    def test_corrupt_archive_leaves_working_copy_alone(self, config, monkeypatch):
        config.dotfiles_dir.mkdir()
        (config.dotfiles_dir / "old.txt").write_text("old")

        def _download(url, dest):
            dest.write_bytes(b"this is not a tarball")

        monkeypatch.setattr(snapshot, "download_archive", _download)

        with pytest.raises(SnapshotError):
            snapshot.acquire_snapshot(config)

        assert tree_snapshot(config.dotfiles_dir) == {"old.txt": "old"}
        assert _leftover_staging(config) == []

    def test_download_failure_cleans_staging(self, config, monkeypatch):
        def _download(url, dest):
            dest.write_bytes(b"partial")
            raise SnapshotError("download failed")

        monkeypatch.setattr(snapshot, "download_archive", _download)

        with pytest.raises(SnapshotError):
            snapshot.acquire_snapshot(config)
        assert not config.dotfiles_dir.exists()
        assert _leftover_staging(config) == []

    def test_archive_without_entry_point_is_rejected(self, config, monkeypatch, tmp_path):
        bad = make_tarball(tmp_path / "bad.tar.gz", {"README.md": "nothing here\n"})
        monkeypatch.setattr(snapshot, "download_archive", lambda url, dest: dest.write_bytes(bad.read_bytes()))

        with pytest.raises(SnapshotError, match="entry point"):
            snapshot.acquire_snapshot(config)
        assert not config.dotfiles_dir.exists()
        assert _leftover_staging(config) == []

    def test_repeated_runs_converge(self, config, fake_download):
        snapshot.acquire_snapshot(config)
        first = tree_snapshot(config.dotfiles_dir)
        snapshot.acquire_snapshot(config)
        assert tree_snapshot(config.dotfiles_dir) == first
        assert _leftover_staging(config) == []


class TestExtract:
    def test_strips_top_level_directory(self, tmp_path):
        archive = make_tarball(tmp_path / "a.tar.gz", {"src/setup.sh": "x", "a/b/c.txt": "y"})
        dest = tmp_path / "out"
        snapshot.extract_archive(archive, dest)
        assert (dest / "src" / "setup.sh").read_text() == "x"
        assert (dest / "a" / "b" / "c.txt").read_text() == "y"

    def test_rejects_path_traversal(self, tmp_path):
        archive = tmp_path / "evil.tar.gz"
        with tarfile.open(archive, "w:gz") as tar:
            data = b"pwned"
            info = tarfile.TarInfo("top/../../escaped.txt")
            info.size = len(data)
            tar.addfile(info, io.BytesIO(data))

        with pytest.raises(SnapshotError):
            snapshot.extract_archive(archive, tmp_path / "out")
        assert not (tmp_path / "escaped.txt").exists()

    def test_empty_archive(self, tmp_path):
        archive = make_tarball(tmp_path / "empty.tar.gz", {})
        with pytest.raises(SnapshotError, match="empty"):
            snapshot.extract_archive(archive, tmp_path / "out")


class TestDownload:
    def test_no_downloader(self, monkeypatch, tmp_path):
        monkeypatch.setattr(snapshot, "command_exists", lambda name: False)
        with pytest.raises(SnapshotError, match="curl or wget"):
            snapshot.download_archive("https://example.invalid/x.tar.gz", tmp_path / "x")

    def test_prefers_curl(self, monkeypatch, tmp_path):
        seen = []

        class _Res:
            ok = True

        monkeypatch.setattr(snapshot, "command_exists", lambda name: True)
        monkeypatch.setattr(snapshot.reporter, "run", lambda argv, label: seen.append(argv) or _Res())
        snapshot.download_archive("https://example.invalid/x.tar.gz", tmp_path / "x")
        assert seen[0][0] == "curl"

    def test_wget_fallback_and_failure(self, monkeypatch, tmp_path):
        seen = []

        class _Res:
            ok = False

        monkeypatch.setattr(snapshot, "command_exists", lambda name: name == "wget")
        monkeypatch.setattr(snapshot.reporter, "run", lambda argv, label: seen.append(argv) or _Res())
        with pytest.raises(SnapshotError, match="download failed"):
            snapshot.download_archive("https://example.invalid/x.tar.gz", tmp_path / "x")
        assert seen[0][:2] == ["wget", "-qO"]


def test_prune_keeps_newest(tmp_path: Path):
    backups = tmp_path / "backups"
    for name in ["20250101-000000", "20250102-000000", "20250103-000000", "20250103-000000-1"]:
        (backups / name).mkdir(parents=True)

    pruned = snapshot.prune_backups(backups, keep=2, current=tmp_path / "dotfiles")

    assert sorted(p.name for p in pruned) == ["20250101-000000", "20250102-000000"]
    assert sorted(p.name for p in backups.iterdir()) == ["20250103-000000", "20250103-000000-1"]


def test_prune_never_drops_latest(tmp_path: Path):
    backups = tmp_path / "backups"
    (backups / "20250101-000000").mkdir(parents=True)
    assert snapshot.prune_backups(backups, keep=0, current=tmp_path / "dotfiles") == []


def test_prune_keeps_backups_with_unique_content(tmp_path: Path, capsys):
    current = tmp_path / "dotfiles"
    current.mkdir()
    (current / "README.md").write_text("dotfiles\n")
    backups = tmp_path / "backups"
    for name, body in [("20250101-000000", "dotfiles\n"), ("20250102-000000", "edited\n"), ("20250103-000000", "x")]:
        (backups / name).mkdir(parents=True)
        (backups / name / "README.md").write_text(body)

    pruned = snapshot.prune_backups(backups, keep=1, current=current)

    assert [p.name for p in pruned] == ["20250101-000000"]
    assert sorted(p.name for p in backups.iterdir()) == ["20250102-000000", "20250103-000000"]
    out = capsys.readouterr().out
    assert "20250101-000000" in out
    assert "review and delete them by hand" in out


def test_backups_are_pruned_after_swap(home, fake_download):
    cfg = build_config(home=home, keep_backups=1)
    for _ in range(3):
        # A partial copy: every file it holds is also in the snapshot.
        cfg.dotfiles_dir.mkdir(exist_ok=True)
        for p in list(cfg.dotfiles_dir.rglob("*")):
            if p.is_file() and p.name != "README.md":
                p.unlink()
        (cfg.dotfiles_dir / "README.md").write_text(BASE_TREE["README.md"])
        snapshot.acquire_snapshot(cfg)
    assert len(list(cfg.backups_dir.iterdir())) == 1


def test_identical_rerun_makes_no_backup(config, fake_download):
    snapshot.acquire_snapshot(config)
    assert snapshot.acquire_snapshot(config) is None
    assert not config.backups_dir.exists()


def test_local_edit_survives_many_reruns(home, fake_download):
    cfg = build_config(home=home, keep_backups=1)
    snapshot.acquire_snapshot(cfg)
    (cfg.dotfiles_dir / "my-notes.txt").write_text("do not lose me")

    for _ in range(5):
        snapshot.acquire_snapshot(cfg)

    saved = [p for p in cfg.backups_dir.iterdir() if (p / "my-notes.txt").is_file()]
    assert len(saved) == 1
    assert (saved[0] / "my-notes.txt").read_text() == "do not lose me"
    assert len(list(cfg.backups_dir.iterdir())) == 1
    assert tree_snapshot(cfg.dotfiles_dir) == BASE_TREE
