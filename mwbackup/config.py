# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
MWBackup Configuration - Immutable configuration data structures.

All configuration is frozen (immutable) after creation so that a run
cannot change its own parameters halfway through.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List
import re


# Name of the MediaWiki settings file inside an installation
SETTINGS_FILENAME = "LocalSettings.php"

# Charset used when LocalSettings.php does not declare one
DEFAULT_CHARSET = "binary"

# Default exact hostname for the first GRANT statement on restore
DEFAULT_GRANT_HOST = "localhost.localdomain"


class ArtifactKind(str, Enum):
    """Kind of exported artifact. The value is the filename suffix stem."""

    DATABASE = "database"
    PAGES = "pages"
    IMAGES = "images"
    FILESYSTEM = "filesystem"


@dataclass(frozen=True)
class ToolPaths:
    """Executables used for the delegated export/import steps."""

    mysqldump: str = "mysqldump"
    mysql: str = "mysql"
    php: str = "php"

    # Empty string disables running mysqldump under nice
    nice: str = "nice"


def _validate_prefix(prefix: str) -> bool:
    """A prefix must be a plain filename fragment."""
    if not prefix:
        return False
    return re.match(r"^[A-Za-z0-9._-]+$", prefix) is not None


@dataclass(frozen=True)
class BackupConfig:
    """
    Immutable configuration for one backup run.
    """

    # Required: MediaWiki installation directory
    install_dir: Path

    # Required: directory receiving the artifacts
    backup_dir: Path

    # Filename prefix shared by every artifact of this run
    prefix: str

    # Bundle all artifacts into <prefix>-mediawiki-backup.tar.gz
    single_archive: bool = False

    # Follow symlinks when archiving the images directory
    dereference_images: bool = False

    # Archive the whole installation instead of only images/
    complete_filesystem: bool = False

    # Run the XML export through dumpBackup.php
    export_pages: bool = True

    tools: ToolPaths = field(default_factory=ToolPaths)

    def __post_init__(self) -> None:
        """Validate configuration after creation."""
        errors: List[str] = []

        if not _validate_prefix(self.prefix):
            errors.append(f"Invalid archive prefix: {self.prefix!r}")

        if self.install_dir == self.backup_dir:
            errors.append("backup_dir must differ from install_dir")

        if errors:
            from mwbackup.exceptions import ConfigurationError

            raise ConfigurationError(
                "Configuration validation failed",
                details={"errors": errors},
            )

    def with_updates(self, **kwargs) -> "BackupConfig":
        """
        Create a new config with updated values.

        Since the config is frozen, this creates a new instance.
        """
        from dataclasses import replace

        return replace(self, **kwargs)


@dataclass(frozen=True)
class RestoreConfig:
    """
    Immutable configuration for one restore run.

    The db_* fields only fill blanks left by LocalSettings.php; they never
    override values read from the restored installation.
    """

    # Required: consolidated backup archive
    archive_path: Path

    # Required: installation directory to restore into
    install_dir: Path

    # MySQL root password used for every database statement
    root_password: str = ""

    recreate_database: bool = False
    recreate_user: bool = False

    db_name: str = ""
    db_user: str = ""
    db_password: str = ""
    db_host: str = ""

    # Exact hostname used by the first GRANT statement
    grant_host: str = DEFAULT_GRANT_HOST

    # Parent directory for the staging area (system temp dir when None)
    staging_root: Path | None = None

    tools: ToolPaths = field(default_factory=ToolPaths)

    def __post_init__(self) -> None:
        """Validate configuration after creation."""
        errors: List[str] = []

        if not self.grant_host:
            errors.append("grant_host must not be empty")

        if (self.recreate_database or self.recreate_user) and not self.root_password:
            errors.append(
                "root_password is required when recreating the database or user"
            )

        if errors:
            from mwbackup.exceptions import ConfigurationError

            raise ConfigurationError(
                "Configuration validation failed",
                details={"errors": errors},
            )

    def with_updates(self, **kwargs) -> "RestoreConfig":
        """Create a new config with updated values."""
        from dataclasses import replace

        return replace(self, **kwargs)
