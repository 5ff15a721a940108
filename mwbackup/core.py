# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
MWBackup Core - Records threaded through the backup and restore pipelines.

Pipeline state lives in explicit context objects passed to every step,
never in module globals.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List

from mwbackup.config import ArtifactKind, BackupConfig, RestoreConfig
from mwbackup.exceptions import MWBackupError
from mwbackup.maintenance import MaintenanceModeController
from mwbackup.runner import ToolRunner
from mwbackup.settings import ConnectionProfile


@dataclass(frozen=True)
class ExportArtifact:
    """One exported unit of backup data."""

    kind: ArtifactKind
    path: Path

    # Only set for ArtifactKind.DATABASE
    charset: str | None = None


@dataclass(frozen=True)
class ArchiveManifest:
    """
    What an expanded backup archive contains.

    Derived once from member filenames when the archive is expanded.
    """

    staging_dir: Path
    prefix: str
    members: Dict[ArtifactKind, Path]
    charset: str | None = None

    def get(self, kind: ArtifactKind) -> Path | None:
        return self.members.get(kind)

    def has(self, kind: ArtifactKind) -> bool:
        return kind in self.members


@dataclass
class BackupContext:
    """Mutable state of one backup run."""

    operation_id: str
    config: BackupConfig
    profile: ConnectionProfile
    maintenance: MaintenanceModeController
    runner: ToolRunner
    artifacts: List[ExportArtifact] = field(default_factory=list)
    issues: List[MWBackupError] = field(default_factory=list)

    @property
    def backup_prefix(self) -> Path:
        """Destination path plus prefix, e.g. /bk/2024-01-01"""
        return self.config.backup_dir / self.config.prefix


@dataclass
class RestoreContext:
    """Mutable state of one restore run."""

    operation_id: str
    config: RestoreConfig
    manifest: ArchiveManifest
    maintenance: MaintenanceModeController
    runner: ToolRunner
    profile: ConnectionProfile = field(default_factory=ConnectionProfile)
    restored: List[ArtifactKind] = field(default_factory=list)
    statements: List[str] = field(default_factory=list)
    database_imported: bool = False
    issues: List[MWBackupError] = field(default_factory=list)


@dataclass
class BackupResult:
    """Result of a backup run."""

    operation_id: str
    prefix: str
    artifacts: List[ExportArtifact]
    outputs: List[Path]
    consolidated_archive: Path | None
    issues: List[MWBackupError]
    duration_seconds: float = 0.0


@dataclass
class RestoreResult:
    """Result of a restore run."""

    operation_id: str
    archive_path: Path
    prefix: str
    charset: str | None
    restored: List[ArtifactKind]
    statements: List[str]
    database_imported: bool
    issues: List[MWBackupError]
    duration_seconds: float = 0.0

    def has_issue(self, error_type: type) -> bool:
        return any(isinstance(issue, error_type) for issue in self.issues)
