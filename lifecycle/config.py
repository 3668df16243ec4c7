# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""
Engine config — <data_dir>/dreamweek-config.json, falling back to defaults.

    {"persistTimeout": 3.0, "scoring": {"dream": 10, "connect": 5}}

DREAMWEEK_PERSIST_TIMEOUT overrides persistTimeout (seconds).
"""

import json
import logging
import os
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from core.paths import get_paths
from lifecycle.schemas import EngineConfig

logger = logging.getLogger("dreamweek.config")


def load_config(path: Optional[Path] = None) -> EngineConfig:
    """Load engine config. A missing or unreadable file yields defaults."""
    path = path or get_paths().config_file
    data = {}
    if path.exists():
        try:
            data = json.loads(path.read_text())
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Ignoring unreadable config %s: %s", path, e)

    env_timeout = os.environ.get("DREAMWEEK_PERSIST_TIMEOUT")
    if env_timeout:
        data["persistTimeout"] = env_timeout

    try:
        return EngineConfig.model_validate(data)
    except ValidationError as e:
        logger.warning("Invalid config %s, using defaults: %s", path, e)
        return EngineConfig()


def save_config(config: EngineConfig, path: Optional[Path] = None) -> Path:
    path = path or get_paths().config_file
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(config.to_doc(), indent=2))
    return path
