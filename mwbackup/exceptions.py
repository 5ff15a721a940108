# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
MWBackup Exceptions - Custom exceptions for the mwbackup package.

Fatal conditions are raised. ArchiveMemberMissing and UnknownDatabase are
normally reported (collected on a result object and logged) rather than raised.
"""


class MWBackupError(Exception):
    """Base exception for all mwbackup errors."""

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(MWBackupError):
    """Raised when run configuration is invalid."""

    pass


class ConfigurationMissing(MWBackupError):
    """Raised when LocalSettings.php cannot be found."""

    pass


class PermissionDenied(MWBackupError):
    """Raised when LocalSettings.php is not writable."""

    pass


class ExternalToolFailure(MWBackupError):
    """Raised when an external tool is missing or exits non-zero."""

    def __init__(
        self,
        message: str,
        tool: str,
        returncode: int | None = None,
        stderr: str = "",
    ):
        self.tool = tool
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(
            message,
            details={"tool": tool, "returncode": returncode},
        )


class ArchiveError(MWBackupError):
    """Raised when a backup archive is missing, unreadable or unsafe."""

    pass


class ArchiveMemberMissing(MWBackupError):
    """An expected artifact is absent from an expanded archive."""

    pass


class UnknownDatabase(MWBackupError):
    """No database name could be resolved for a database operation."""

    pass
