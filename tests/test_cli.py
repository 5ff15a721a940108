# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Tests for the mwbackup command line: argument handling and exit codes.
"""

import tarfile
from pathlib import Path

import pytest
from typer.testing import CliRunner

from conftest import FakeRunner, make_corrupt_images_archive
from mwbackup import __version__
from mwbackup.cli import app
from mwbackup.maintenance import READ_ONLY_SENTINEL

runner = CliRunner()


@pytest.fixture
def fake_tools(monkeypatch):
    """Route every command through a single recording runner."""
    recorder = FakeRunner()
    monkeypatch.setattr("mwbackup.cli.SubprocessRunner", lambda: recorder)
    return recorder


def test_version():
    result = runner.invoke(app, ["--version"])

    assert result.exit_code == 0
    assert __version__ in result.output


# ============================================================================
# backup
# ============================================================================

def test_backup_requires_wiki_directory(backup_dir: Path, fake_tools):
    result = runner.invoke(app, ["backup", "-d", str(backup_dir)])

    assert result.exit_code == 1
    assert "-w" in result.output
    assert "Usage" in result.output
    assert fake_tools.calls == []


def test_backup_requires_destination(wiki_dir: Path, fake_tools):
    result = runner.invoke(app, ["backup", "-w", str(wiki_dir)])

    assert result.exit_code == 1
    assert "-d" in result.output
    assert fake_tools.calls == []


def test_backup_without_local_settings(temp_dir: Path, backup_dir: Path, fake_tools):
    result = runner.invoke(app, ["backup", "-w", str(temp_dir), "-d", str(backup_dir)])

    assert result.exit_code == 1
    assert "LocalSettings.php" in result.output
    assert not backup_dir.exists()


def test_backup_prints_outputs(wiki_dir: Path, backup_dir: Path, fake_tools):
    result = runner.invoke(
        app,
        ["backup", "-w", str(wiki_dir), "-d", str(backup_dir), "-p", "nightly", "-s"],
    )

    assert result.exit_code == 0, result.output
    archive = backup_dir.resolve() / "nightly-mediawiki-backup.tar.gz"
    assert str(archive) in result.output
    with tarfile.open(archive, "r:gz") as tar:
        assert "nightly-database_utf8.sql.gz" in tar.getnames()


def test_backup_dump_failure_exits_3(wiki_dir: Path, backup_dir: Path, monkeypatch):
    monkeypatch.setattr("mwbackup.cli.SubprocessRunner", lambda: FakeRunner(fail={"mysqldump": 2}))

    result = runner.invoke(app, ["backup", "-w", str(wiki_dir), "-d", str(backup_dir)])

    assert result.exit_code == 3
    assert "return code of mysqldump: 2" in result.output
    assert READ_ONLY_SENTINEL not in (wiki_dir / "LocalSettings.php").read_text()


def test_backup_invalid_prefix(wiki_dir: Path, backup_dir: Path, fake_tools):
    result = runner.invoke(app, ["backup", "-w", str(wiki_dir), "-d", str(backup_dir), "-p", "a/b"])

    assert result.exit_code == 1
    assert "Invalid archive prefix" in result.output


def test_nice_can_be_disabled_from_environment(wiki_dir: Path, backup_dir: Path, fake_tools, monkeypatch):
    monkeypatch.setenv("MWBACKUP_NICE", "")

    result = runner.invoke(app, ["backup", "-w", str(wiki_dir), "-d", str(backup_dir)])

    assert result.exit_code == 0, result.output
    assert fake_tools.calls[0]["command"][0] == "mysqldump"


# ============================================================================
# restore
# ============================================================================

def _archive(wiki_dir: Path, backup_dir: Path) -> Path:
    result = runner.invoke(
        app,
        ["backup", "-w", str(wiki_dir), "-d", str(backup_dir), "-p", "2024-01-01", "-s"],
    )
    assert result.exit_code == 0, result.output
    return backup_dir / "2024-01-01-mediawiki-backup.tar.gz"


def test_restore_requires_archive(wiki_dir: Path, fake_tools):
    result = runner.invoke(app, ["restore", "-w", str(wiki_dir)])

    assert result.exit_code == 1
    assert "-a" in result.output
    assert "Usage" in result.output


def test_restore_missing_archive(wiki_dir: Path, temp_dir: Path, fake_tools):
    result = runner.invoke(app, ["restore", "-w", str(wiki_dir), "-a", str(temp_dir / "nope.tar.gz")])

    assert result.exit_code == 1
    assert "does not exist" in result.output


def test_restore_creates_wiki_directory(wiki_dir: Path, backup_dir: Path, temp_dir: Path, fake_tools):
    archive = _archive(wiki_dir, backup_dir)
    target = temp_dir / "new" / "wiki"

    result = runner.invoke(app, ["restore", "-w", str(target), "-a", str(archive), "-p", "rootpw"])

    assert result.exit_code == 0, result.output
    assert (target / "images" / "a" / "ab" / "Logo.png").exists()
    # No settings in an images-only restore: reported, not fatal
    assert "Warning" in result.output


def test_recreate_database_requires_password(wiki_dir: Path, backup_dir: Path, fake_tools):
    archive = _archive(wiki_dir, backup_dir)

    result = runner.invoke(app, ["restore", "-w", str(wiki_dir), "-a", str(archive), "-d"])

    assert result.exit_code == 1
    assert "root_password" in result.output


def test_root_password_from_environment(wiki_dir: Path, backup_dir: Path, fake_tools, monkeypatch):
    archive = _archive(wiki_dir, backup_dir)
    monkeypatch.setenv("MWBACKUP_DB_ROOT_PASSWORD", "rootpw")

    result = runner.invoke(app, ["restore", "-w", str(wiki_dir), "-a", str(archive), "-d", "-u"])

    assert result.exit_code == 0, result.output
    assert len(fake_tools.of_kind("sql")) == 10
    assert fake_tools.of_kind("import")[0]["command"][-1] == "wikidb"


def test_failed_restore_step_exits_1(wiki_dir: Path, backup_dir: Path, fake_tools, monkeypatch):
    archive = _archive(wiki_dir, backup_dir)
    monkeypatch.setattr("mwbackup.cli.SubprocessRunner", lambda: FakeRunner(fail={"mysql": 1}))

    result = runner.invoke(app, ["restore", "-w", str(wiki_dir), "-a", str(archive), "-p", "rootpw"])

    assert result.exit_code == 1
    assert "Warning" in result.output
    assert READ_ONLY_SENTINEL not in (wiki_dir / "LocalSettings.php").read_text()



def test_dump_failure_exit_code_survives_release_failure(wiki_dir: Path, backup_dir: Path, monkeypatch):
    def lock_settings(tool):
        monkeypatch.setattr("mwbackup.maintenance.os.access", lambda path, mode: False)

    monkeypatch.setattr(
        "mwbackup.cli.SubprocessRunner",
        lambda: FakeRunner(fail={"mysqldump": 2}, hook=lock_settings),
    )

    result = runner.invoke(app, ["backup", "-w", str(wiki_dir), "-d", str(backup_dir)])

    assert result.exit_code == 3


def test_failed_extraction_exits_1(wiki_dir: Path, temp_dir: Path, fake_tools):
    archive = make_corrupt_images_archive(temp_dir)

    result = runner.invoke(app, ["restore", "-w", str(wiki_dir), "-a", str(archive), "-p", "rootpw"])

    assert result.exit_code == 1
    assert len(fake_tools.of_kind("import")) == 1
