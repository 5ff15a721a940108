# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Settings Reader - Connection parameters from LocalSettings.php.

Only the handful of scalar assignments needed to drive a backup or restore
are extracted. Each recognized field appears on its own line as:

    $wgDBserver = "localhost";

and the character set is parsed out of the $wgDBTableOptions line:

    $wgDBTableOptions = "ENGINE=InnoDB, DEFAULT CHARSET=utf8";

A profile is recomputed from the file on every run and never cached.
"""

from dataclasses import dataclass, replace
from pathlib import Path
from typing import Dict, List
import re

import structlog

from mwbackup.config import DEFAULT_CHARSET, SETTINGS_FILENAME
from mwbackup.errors import explain_missing_settings
from mwbackup.exceptions import ConfigurationMissing

logger = structlog.get_logger()

# ConnectionProfile field -> LocalSettings.php variable
SETTINGS_FIELDS: Dict[str, str] = {
    "host": "wgDBserver",
    "name": "wgDBname",
    "user": "wgDBuser",
    "password": "wgDBpassword",
}

TABLE_OPTIONS_DIRECTIVE = "$wgDBTableOptions"

_CHARSET_RE = re.compile(r"CHARSET=([^\"'\s,;]+)")
_QUOTED_RE = re.compile(r'"([^"]*)"')


@dataclass(frozen=True)
class ConnectionProfile:
    """Database connection parameters of an installation."""

    host: str = ""
    name: str = ""
    user: str = ""
    password: str = ""
    charset: str = DEFAULT_CHARSET

    def with_overrides(self, **values: str) -> "ConnectionProfile":
        """
        Fill blank fields with the given values.

        Non-empty fields read from LocalSettings.php always win.
        """
        updates = {
            key: value
            for key, value in values.items()
            if value and not getattr(self, key)
        }
        return replace(self, **updates) if updates else self

    def __repr__(self) -> str:
        return (
            f"ConnectionProfile(host={self.host!r}, name={self.name!r}, "
            f"user={self.user!r}, password='***', charset={self.charset!r})"
        )


def settings_path(install_dir: Path) -> Path:
    """Location of LocalSettings.php inside an installation."""
    return Path(install_dir) / SETTINGS_FILENAME


def _read_lines(path: Path) -> List[str]:
    if not path.is_file():
        raise ConfigurationMissing(
            explain_missing_settings(path),
            details={"path": str(path)},
        )
    return path.read_text(encoding="utf-8", errors="surrogateescape").splitlines()


def extract_setting(lines: List[str], variable: str) -> str:
    """
    Return the double-quoted value of the first `$<variable> =` line.

    A missing line, or a line without a double-quoted value, yields "".
    """
    pattern = re.compile(r"^\$" + re.escape(variable) + r"\s*=")
    for line in lines:
        if pattern.match(line):
            match = _QUOTED_RE.search(line)
            return match.group(1) if match else ""
    return ""


def extract_charset(lines: List[str]) -> str:
    """Parse CHARSET=<token> out of the $wgDBTableOptions line."""
    for line in lines:
        if TABLE_OPTIONS_DIRECTIVE in line:
            match = _CHARSET_RE.search(line)
            if match:
                return match.group(1)
            break
    return DEFAULT_CHARSET


def read_charset(path: Path) -> str:
    """
    Read the charset policy from a settings file.

    Falls back to DEFAULT_CHARSET when the file is missing.
    """
    try:
        return extract_charset(_read_lines(path))
    except ConfigurationMissing:
        return DEFAULT_CHARSET


def read_connection_profile(install_dir: Path) -> ConnectionProfile:
    """
    Derive a ConnectionProfile from an installation's LocalSettings.php.

    Args:
        install_dir: MediaWiki installation directory

    Returns:
        ConnectionProfile with empty strings for undeclared fields

    Raises:
        ConfigurationMissing: If LocalSettings.php does not exist
    """
    path = settings_path(install_dir)
    lines = _read_lines(path)

    values = {
        key: extract_setting(lines, variable)
        for key, variable in SETTINGS_FIELDS.items()
    }
    profile = ConnectionProfile(charset=extract_charset(lines), **values)

    logger.info(
        "settings_loaded",
        path=str(path),
        host=profile.host,
        database=profile.name,
        user=profile.user,
        charset=profile.charset,
    )

    return profile
