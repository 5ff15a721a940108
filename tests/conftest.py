# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Test fixtures for mwbackup tests.

Provides a synthetic MediaWiki installation and a recording ToolRunner so
that no real mysqldump, mysql or php is ever launched.
"""

import gzip
import tarfile
import tempfile
from pathlib import Path
from typing import Callable, Dict, Generator, List, Sequence, Set

import pytest
import structlog

from mwbackup.exceptions import ExternalToolFailure


LOCAL_SETTINGS = """<?php
# This file was automatically generated by the MediaWiki installer.
$wgSitename = "Test Wiki";

## Database settings
$wgDBtype = "mysql";
$wgDBserver = "db.example.org";
$wgDBname = "wikidb";
$wgDBuser = "wikiuser";
$wgDBpassword = "s3cr3t";
$wgDBprefix = "";

# MySQL table options to use during installation or update
$wgDBTableOptions = "ENGINE=InnoDB, DEFAULT CHARSET=utf8";

$wgEnableUploads = true;
?>
"""

FAKE_DUMP = b"-- fake mysqldump output\nCREATE TABLE page (page_id int);\n"
FAKE_XML = b"<mediawiki><page><title>Main Page</title></page></mediawiki>\n"


def _tool_of(command: Sequence[str]) -> str:
    """Name of the wrapped tool, skipping a leading `nice -n N`."""
    if Path(command[0]).name == "nice":
        return Path(command[3]).name
    return Path(command[0]).name


class FakeRunner:
    """
    ToolRunner that records invocations instead of launching processes.

    Args:
        missing: Executables find_executable() reports as not installed
        fail: Tool name -> return code to fail with
        hook: Called with the tool name on every invocation
    """

    def __init__(
        self,
        missing: Set[str] | None = None,
        fail: Dict[str, int] | None = None,
        hook: Callable[[str], None] | None = None,
    ):
        self.missing = missing or set()
        self.fail = fail or {}
        self.hook = hook
        self.calls: List[dict] = []

    def find_executable(self, name: str) -> str | None:
        return None if name in self.missing else name

    def _record(self, kind: str, command: Sequence[str], **extra) -> str:
        tool = _tool_of(command)
        self.calls.append({"kind": kind, "tool": tool, "command": list(command), **extra})
        if self.hook:
            self.hook(tool)
        return tool

    def _maybe_fail(self, tool: str) -> None:
        if tool in self.fail:
            raise ExternalToolFailure(
                f"{tool} failed with return code {self.fail[tool]}",
                tool=tool,
                returncode=self.fail[tool],
                stderr="simulated failure",
            )

    async def stream_to_gzip(self, command, destination: Path, cwd: Path | None = None) -> None:
        tool = self._record("stream", command, destination=destination, cwd=cwd)
        payload = FAKE_DUMP if tool == "mysqldump" else FAKE_XML
        with gzip.open(destination, "wb") as gz:
            gz.write(payload[:10] if tool in self.fail else payload)
        self._maybe_fail(tool)

    async def feed_from_gzip(self, command, source: Path) -> None:
        with gzip.open(source, "rb") as gz:
            content = gz.read()
        tool = self._record("import", command, source=source, content=content)
        self._maybe_fail(tool)

    async def feed_text(self, command, text: str) -> None:
        tool = self._record("sql", command, text=text)
        self._maybe_fail(tool)

    def of_kind(self, kind: str) -> List[dict]:
        return [call for call in self.calls if call["kind"] == kind]


@pytest.fixture(autouse=True)
def reset_structlog() -> Generator[None, None, None]:
    """Undo CLI logging configuration between tests."""
    yield
    structlog.reset_defaults()


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


def make_wiki(root: Path, settings: str = LOCAL_SETTINGS) -> Path:
    """Create a minimal MediaWiki installation tree."""
    (root / "images" / "a" / "ab").mkdir(parents=True)
    (root / "images" / "a" / "ab" / "Logo.png").write_bytes(b"\x89PNG fake image")
    (root / "images" / ".git").mkdir()
    (root / "images" / ".git" / "HEAD").write_text("ref: refs/heads/main\n")
    (root / "maintenance").mkdir()
    (root / "maintenance" / "dumpBackup.php").write_text("<?php // dump\n")
    (root / "index.php").write_text("<?php // entry point\n")
    (root / "LocalSettings.php").write_text(settings)
    return root


def make_corrupt_images_archive(directory: Path) -> Path:
    """A consolidated archive with a valid SQL dump and an unreadable images member."""
    dump = directory / "2024-01-01-database_utf8.sql.gz"
    with gzip.open(dump, "wb") as gz:
        gz.write(FAKE_DUMP)
    images = directory / "2024-01-01-images.tar.gz"
    images.write_bytes(b"this is not a tarball")

    archive = directory / "2024-01-01-mediawiki-backup.tar.gz"
    with tarfile.open(archive, "w:gz") as tar:
        tar.add(dump, arcname=dump.name)
        tar.add(images, arcname=images.name)
    return archive


@pytest.fixture
def wiki_dir(temp_dir: Path) -> Path:
    """A synthetic wiki installed in <tmp>/wiki."""
    return make_wiki(temp_dir / "wiki")


@pytest.fixture
def backup_dir(temp_dir: Path) -> Path:
    return temp_dir / "bk"


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()
