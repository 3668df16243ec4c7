# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""
Logging setup — all dreamweek.* loggers route to one file + stderr.

Library modules only ever call logging.getLogger("dreamweek.<module>").
Entry points (CLI, host application) call setup_logging() once.
"""

import logging

from core.paths import get_paths

_FILE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(level: int = logging.INFO, stderr: bool = True) -> logging.Logger:
    """Configure the dreamweek logger tree. Safe to call more than once."""
    paths = get_paths()
    paths.logs_dir.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger("dreamweek")
    logger.setLevel(level)

    # Re-running must not stack duplicate handlers
    for handler in list(logger.handlers):
        if getattr(handler, "_dreamweek", False):
            logger.removeHandler(handler)
            handler.close()

    fh = logging.FileHandler(str(paths.engine_log), mode="a")
    fh.setLevel(level)
    fh.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt=_DATE_FORMAT))
    fh._dreamweek = True
    logger.addHandler(fh)

    if stderr:
        sh = logging.StreamHandler()
        sh.setLevel(logging.WARNING)
        sh.setFormatter(logging.Formatter("[%(levelname)s] %(message)s"))
        sh._dreamweek = True
        logger.addHandler(sh)

    return logger
