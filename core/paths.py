# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""
DreamWeek Paths — single source of truth for all data file locations.

Resolution order:
  1. DREAMWEEK_DATA_DIR environment variable
  2. Default: ~/.dreamweek/

Usage:
    from core.paths import get_paths
    p = get_paths()
    p.store_dir         # ~/.dreamweek/store/
    p.user_dir("u1")    # ~/.dreamweek/store/u1/
    p.config_file       # ~/.dreamweek/dreamweek-config.json

For tests:
    from core.paths import configure
    configure(tmp_path)  # all paths now rooted under tmp_path
"""

import os
import re
from pathlib import Path
from typing import Optional

# Keys and user ids become file names; anything outside this set is escaped.
_UNSAFE = re.compile(r"[^A-Za-z0-9_.@-]")


def safe_name(value: str) -> str:
    """Make a user id or document key usable as a single path component."""
    return _UNSAFE.sub(lambda m: "%{:02X}".format(ord(m.group(0))), value)


class DreamWeekPaths:
    """Central registry of every file and directory DreamWeek uses."""

    def __init__(self, data_dir: Optional[Path] = None):
        if data_dir is not None:
            self._root = Path(data_dir)
        else:
            env = os.environ.get("DREAMWEEK_DATA_DIR")
            if env:
                self._root = Path(env).expanduser()
            else:
                self._root = Path.home() / ".dreamweek"

    # ------------------------------------------------------------------
    # Root
    # ------------------------------------------------------------------
    @property
    def data_dir(self) -> Path:
        return self._root

    # ------------------------------------------------------------------
    # Document store
    # ------------------------------------------------------------------
    @property
    def store_dir(self) -> Path:
        return self._root / "store"

    # ------------------------------------------------------------------
    # Config & logs
    # ------------------------------------------------------------------
    @property
    def config_file(self) -> Path:
        return self._root / "dreamweek-config.json"

    @property
    def logs_dir(self) -> Path:
        return self._root / "logs"

    @property
    def engine_log(self) -> Path:
        return self.logs_dir / "dreamweek.log"

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def ensure_dirs(self) -> None:
        """Create every directory DreamWeek writes into."""
        for d in (self._root, self.store_dir, self.logs_dir):
            d.mkdir(parents=True, exist_ok=True)


# ===========================================================================
# Singleton
# ===========================================================================

_instance: Optional[DreamWeekPaths] = None


def get_paths() -> DreamWeekPaths:
    """Return the global DreamWeekPaths singleton (lazy-init)."""
    global _instance
    if _instance is None:
        _instance = DreamWeekPaths()
    return _instance


def configure(data_dir: Path) -> DreamWeekPaths:
    """
    Override the global paths singleton. Used by tests and CLI --data-dir.

    Returns the new instance for convenience.
    """
    global _instance
    _instance = DreamWeekPaths(data_dir=data_dir)
    return _instance


def reset() -> None:
    """Reset singleton so next get_paths() re-reads env."""
    global _instance
    _instance = None
