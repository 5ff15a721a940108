# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Human-friendly error message helpers for mwbackup.

These helpers centralize wording for common failures so that the CLI,
the pipelines and the logs all present consistent, actionable messages.
"""

from pathlib import Path


def explain_missing_settings(path: Path) -> str:
    """
    Explain that LocalSettings.php was not found.
    """

    return (
        f"No LocalSettings.php found at {path}. "
        "Pass the MediaWiki installation directory with -w/--wiki."
    )


def explain_settings_not_writable(path: Path) -> str:
    """
    Explain that maintenance mode cannot be toggled.
    """

    return (
        f"{path} is not writable, so maintenance mode cannot be toggled. "
        "Run as a user that can write the file, or fix its permissions."
    )


def explain_database_dump_failed(returncode: int | None) -> str:
    """
    Explain that mysqldump failed and the backup was aborted.
    """

    return (
        f"Database dump failed (return code of mysqldump: {returncode}). "
        "The backup was aborted so that a partial dump is never archived."
    )


def explain_tool_not_found(tool: str) -> str:
    """
    Explain that an external executable is not on PATH.
    """

    return (
        f"Unable to find {tool!r} on PATH. "
        "Install it or point the matching MWBACKUP_* environment variable at it."
    )


def explain_unknown_database(reason: str) -> str:
    """
    Explain why a database step was skipped during restore.
    """

    return (
        f"No database name was found, {reason}. "
        "Provide one with --db-name or restore an archive that contains LocalSettings.php."
    )


def explain_missing_member(kind: str, archive: Path) -> str:
    """
    Explain that an artifact kind is absent from an archive.
    """

    return f"No {kind} artifact was found in {archive.name}."
