from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from .errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_NAME = ".dotfiles-installer.yaml"

DEFAULT_PLATFORM_SCRIPTS: Dict[str, str] = {
    "macos": "src/macos/setup.sh",
    "wsl": "src/wsl/setup.sh",
    "ubuntu": "src/ubuntu/setup.sh",
    # Generic Linux is served by the Ubuntu script.
    "linux": "src/ubuntu/setup.sh",
}


@dataclass(frozen=True)
class InstallerConfig:
    """Run configuration, built once at startup and handed to each stage."""

    home: Path
    repo_owner: str = "fredlackey"
    repo_name: str = "dotfiles-sandbox"
    branch: str = "main"
    dir_name: str = "dotfiles"
    dotfiles_dir_override: Optional[Path] = None
    entry_point: str = "src/setup.sh"
    remote_url_override: Optional[str] = None
    backups_dir_name: str = ".dotfiles-backups"
    keep_backups: int = 3
    platform_scripts: Mapping[str, str] = field(default_factory=lambda: dict(DEFAULT_PLATFORM_SCRIPTS))
    log_path: Optional[str] = None

    @property
    def dotfiles_dir(self) -> Path:
        return self.dotfiles_dir_override or (self.home / self.dir_name)

    @property
    def backups_dir(self) -> Path:
        return self.home / self.backups_dir_name

    @property
    def entry_point_path(self) -> Path:
        return self.dotfiles_dir / self.entry_point

    @property
    def tarball_url(self) -> str:
        return f"https://github.com/{self.repo_owner}/{self.repo_name}/tarball/{self.branch}"

    @property
    def remote_url(self) -> str:
        return self.remote_url_override or f"https://github.com/{self.repo_owner}/{self.repo_name}.git"


# YAML key -> dataclass field
_KEYS = {
    "repo_owner": "repo_owner",
    "repo_name": "repo_name",
    "branch": "branch",
    "dir_name": "dir_name",
    "dotfiles_dir": "dotfiles_dir_override",
    "entry_point": "entry_point",
    "remote_url": "remote_url_override",
    "backups_dir_name": "backups_dir_name",
    "keep_backups": "keep_backups",
    "platform_scripts": "platform_scripts",
    "log_path": "log_path",
}
_NON_STRING_KEYS = {"keep_backups", "platform_scripts"}


def load_config_file(path: str) -> Dict[str, Any]:
    p = Path(path).expanduser()
    if not p.exists():
        raise ConfigError(f"Config file not found: {p}")

    if p.suffix.lower() not in {".yaml", ".yml"}:
        raise ConfigError("installer config must be YAML")

    import yaml

    try:
        raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {p}: {e}") from e
    if not isinstance(raw, dict):
        raise ConfigError(f"{p} must contain a mapping/object")

    unknown = sorted(set(raw) - set(_KEYS))
    if unknown:
        raise ConfigError(f"Unknown config keys in {p}: {', '.join(unknown)}")
    return raw


def build_config(
    raw: Optional[Mapping[str, Any]] = None,
    *,
    home: Optional[Path] = None,
    **overrides: Any,
) -> InstallerConfig:
    """Merge defaults < file values < explicit overrides (None means unset)."""

    values: Dict[str, Any] = {}
    for key, value in (raw or {}).items():
        # "key:" with nothing after it leaves the default in place.
        if value is None:
            logger.debug("Config key %s is empty, using the default", key)
            continue
        if key not in _NON_STRING_KEYS and not isinstance(value, str):
            raise ConfigError(f"{key} must be a string, got {value!r}")
        values[_KEYS[key]] = value
    for key, value in overrides.items():
        if value is not None:
            values[_KEYS.get(key, key)] = value

    if "dotfiles_dir_override" in values:
        values["dotfiles_dir_override"] = Path(values["dotfiles_dir_override"]).expanduser()
    if "platform_scripts" in values:
        scripts = values["platform_scripts"]
        if not isinstance(scripts, Mapping):
            raise ConfigError("platform_scripts must be a mapping of platform -> relative path")
        values["platform_scripts"] = {**DEFAULT_PLATFORM_SCRIPTS, **{str(k): str(v) for k, v in scripts.items()}}
    if "keep_backups" in values:
        try:
            values["keep_backups"] = int(values["keep_backups"])
        except (TypeError, ValueError) as e:
            raise ConfigError(f"keep_backups must be an integer, got {values['keep_backups']!r}") from e

    names = {f.name for f in dataclasses.fields(InstallerConfig)}
    bad = sorted(set(values) - names)
    if bad:
        raise ConfigError(f"Unknown config options: {', '.join(bad)}")

    return InstallerConfig(home=home or Path.home(), **values)


def load_config(
    config_path: Optional[str] = None,
    *,
    home: Optional[Path] = None,
    **overrides: Any,
) -> InstallerConfig:
    """Load the run configuration.

    An explicit ``config_path`` must exist; otherwise ``~/.dotfiles-installer.yaml``
    is read only if present.
    """

    home_dir = home or Path.home()
    raw: Dict[str, Any] = {}
    if config_path:
        raw = load_config_file(config_path)
    else:
        default = home_dir / DEFAULT_CONFIG_NAME
        if default.exists():
            raw = load_config_file(str(default))

    return build_config(raw, home=home_dir, **overrides)
