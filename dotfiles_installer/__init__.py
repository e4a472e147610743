"""Dotfiles installer (self-updating, idempotent).

Core design goals:
- Safe to re-run: every run converges the working copy to the same state
- Self-updating: git history when available, tarball snapshot otherwise
- Local edits are never discarded (stash / backup side-storage)
- Platform-aware dispatch to per-platform setup scripts
- Centralized logging
"""

__all__ = []
