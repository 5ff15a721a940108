# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Maintenance Mode - Read-only flag in LocalSettings.php.

While a backup runs, MediaWiki is put in read-only mode by inserting the
sentinel line

    $wgReadOnly = 'Backup in progress.';

into LocalSettings.php. The file is reread on every call and rewritten
wholesale (temp file -> rename), so an interrupted toggle never leaves a
half-written settings file behind.
"""

import os
import shutil
from pathlib import Path
from typing import List

import aiofiles
import structlog

from mwbackup.errors import explain_missing_settings, explain_settings_not_writable
from mwbackup.exceptions import ConfigurationMissing, PermissionDenied
from mwbackup.settings import settings_path

logger = structlog.get_logger()

READ_ONLY_SENTINEL = "$wgReadOnly = 'Backup in progress.';"

# PHP closing tag; the sentinel goes right before it when present
CLOSING_MARKER = "?>"

# Bytes that are not UTF-8 survive a rewrite unchanged
FILE_ENCODING = {"encoding": "utf-8", "errors": "surrogateescape", "newline": ""}


def _has_sentinel(lines: List[str]) -> bool:
    return any(line.strip() == READ_ONLY_SENTINEL for line in lines)


def _insert_sentinel(text: str) -> str:
    """
    Place the sentinel on its own line right before the last closing
    marker, else append it.

    A marker sharing its line with code (``$x = 1; ?>``) is split onto the
    next line so the sentinel still lands inside the PHP block.
    """
    index = text.rfind(CLOSING_MARKER)

    if index < 0:
        if text and not text.endswith("\n"):
            text += "\n"
        return text + READ_ONLY_SENTINEL + "\n"

    head, tail = text[:index], text[index:]
    if head and not head.endswith("\n"):
        head += "\n"
    return head + READ_ONLY_SENTINEL + "\n" + tail


def _remove_sentinel(text: str) -> str:
    lines = text.splitlines(keepends=True)
    return "".join(line for line in lines if line.strip() != READ_ONLY_SENTINEL)


class MaintenanceModeController:
    """
    Two-state (ON/OFF) controller for an installation's read-only flag.

    Transitions only happen through set_on() / set_off(); both are
    idempotent and return True when the file was actually changed.
    """

    def __init__(self, install_dir: Path):
        self.install_dir = Path(install_dir)
        self.path = settings_path(self.install_dir)

    def _check_file(self, require_writable: bool) -> None:
        if not self.path.is_file():
            raise ConfigurationMissing(
                explain_missing_settings(self.path),
                details={"path": str(self.path)},
            )
        if require_writable and not os.access(self.path, os.W_OK):
            raise PermissionDenied(
                explain_settings_not_writable(self.path),
                details={"path": str(self.path)},
            )

    async def _read(self) -> str:
        async with aiofiles.open(self.path, "r", **FILE_ENCODING) as f:
            return await f.read()

    async def _write(self, text: str) -> None:
        """Replace the settings file atomically, keeping its permission bits."""
        temp_path = self.path.with_name(f".{self.path.name}.mwbackup.tmp")
        try:
            async with aiofiles.open(temp_path, "w", **FILE_ENCODING) as f:
                await f.write(text)
            shutil.copymode(self.path, temp_path)
            os.replace(temp_path, self.path)
        finally:
            if temp_path.exists():
                temp_path.unlink()

    async def is_on(self) -> bool:
        """Return True if the sentinel line is present."""
        self._check_file(require_writable=False)
        text = await self._read()
        return _has_sentinel(text.splitlines())

    async def set_on(self) -> bool:
        """
        Enter read-only mode.

        Raises:
            ConfigurationMissing: If LocalSettings.php does not exist
            PermissionDenied: If LocalSettings.php is not writable
        """
        self._check_file(require_writable=True)
        text = await self._read()

        if _has_sentinel(text.splitlines()):
            logger.info("maintenance_mode_already_enabled", path=str(self.path))
            return False

        await self._write(_insert_sentinel(text))
        logger.info("maintenance_mode_enabled", path=str(self.path))
        return True

    async def set_off(self) -> bool:
        """
        Return to write mode.

        Raises:
            ConfigurationMissing: If LocalSettings.php does not exist
            PermissionDenied: If LocalSettings.php is not writable
        """
        self._check_file(require_writable=True)
        text = await self._read()

        if not _has_sentinel(text.splitlines()):
            logger.info("maintenance_mode_already_disabled", path=str(self.path))
            return False

        await self._write(_remove_sentinel(text))
        logger.info("maintenance_mode_disabled", path=str(self.path))
        return True
