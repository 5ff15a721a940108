# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Backup Engine - Export, consolidation and restore operations.
"""

from mwbackup.backup.archive import (
    artifact_filename,
    charset_from_filename,
    consolidate_artifacts,
    expand_archive,
    inspect_staging,
)

from mwbackup.backup.manager import (
    export_all,
    run_backup,
)

from mwbackup.backup.restore import (
    run_restore,
)

__all__ = [
    # Archives
    "artifact_filename",
    "charset_from_filename",
    "consolidate_artifacts",
    "expand_archive",
    "inspect_staging",
    # Manager
    "export_all",
    "run_backup",
    # Restore
    "run_restore",
]
