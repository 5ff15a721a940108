# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
MediaWiki Backup - Backup and restore for MediaWiki installations.

Dumps the database, exports pages as XML and archives the images (or the
whole installation) while the wiki is in read-only mode, and restores
such backups into a new or existing installation. Package name: mwbackup.
"""

__version__ = "0.1.0"

# Configuration
from mwbackup.config import BackupConfig, RestoreConfig, ToolPaths

# Core orchestration functions
from mwbackup.backup import run_backup, run_restore

# Results
from mwbackup.core import BackupResult, RestoreResult

__all__ = [
    # Version
    "__version__",
    # Configuration
    "BackupConfig",
    "RestoreConfig",
    "ToolPaths",
    # Core orchestration functions
    "run_backup",
    "run_restore",
    # Results
    "BackupResult",
    "RestoreResult",
]
