# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""
DreamWeek
Weekly goal lifecycle engine: goal templates, weekly instances, rollover and scoring.
"""

try:
    from importlib.metadata import version
    __version__ = version("dreamweek")
except Exception:
    __version__ = "0.1.0"

try:
    from .lifecycle.engine import WeekEngine
except ImportError:
    pass  # Direct import (e.g., pytest): submodules still work via lifecycle.*
