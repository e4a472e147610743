from __future__ import annotations


class InstallerError(RuntimeError):
    pass


class ConfigError(InstallerError):
    pass


class HistoryUpdateError(InstallerError):
    pass


class SnapshotError(InstallerError):
    pass


class EntryPointMissingError(InstallerError):
    pass
