# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Environment-based configuration helpers.

External tools are located through PATH by default. Each one can be
overridden with an environment variable, which is how packaged
installations with non-standard binaries (and the test-suite) point
mwbackup at the right executables.

Optional environment variables:
    - MWBACKUP_MYSQLDUMP: mysqldump executable (default: mysqldump)
    - MWBACKUP_MYSQL: mysql client executable (default: mysql)
    - MWBACKUP_PHP: PHP interpreter (default: php)
    - MWBACKUP_NICE: nice executable, empty to disable (default: nice)
"""

from __future__ import annotations

import os
from datetime import datetime

from mwbackup.config import ToolPaths


def _tool_from_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip()


def tool_paths_from_env() -> ToolPaths:
    """
    Build ToolPaths from MWBACKUP_* environment variables.
    """

    defaults = ToolPaths()
    return ToolPaths(
        mysqldump=_tool_from_env("MWBACKUP_MYSQLDUMP", defaults.mysqldump) or defaults.mysqldump,
        mysql=_tool_from_env("MWBACKUP_MYSQL", defaults.mysql) or defaults.mysql,
        php=_tool_from_env("MWBACKUP_PHP", defaults.php) or defaults.php,
        nice=_tool_from_env("MWBACKUP_NICE", defaults.nice),
    )


def default_prefix(now: datetime | None = None) -> str:
    """Default archive prefix: the current local date in Y-m-d format."""
    return (now or datetime.now()).strftime("%Y-%m-%d")
