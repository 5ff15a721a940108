# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Tests for the read-only flag in LocalSettings.php.

These tests verify the maintenance mode guarantees:
1. At most one sentinel line exists
2. Toggling is idempotent (byte-identical on the no-op call)
3. A non-writable settings file is fatal
"""

import os
import stat
from pathlib import Path

import pytest

from mwbackup.exceptions import ConfigurationMissing, PermissionDenied
from mwbackup.maintenance import READ_ONLY_SENTINEL, MaintenanceModeController


def _sentinel_count(path: Path) -> int:
    return sum(1 for line in path.read_text().splitlines() if line.strip() == READ_ONLY_SENTINEL)


# ============================================================================
# Transitions
# ============================================================================

@pytest.mark.asyncio
async def test_set_on_inserts_before_closing_marker(wiki_dir: Path):
    controller = MaintenanceModeController(wiki_dir)

    changed = await controller.set_on()

    lines = controller.path.read_text().splitlines()
    assert changed is True
    assert lines[-1] == "?>"
    assert lines[-2] == READ_ONLY_SENTINEL
    assert await controller.is_on()


@pytest.mark.asyncio
async def test_set_on_appends_without_closing_marker(temp_dir: Path):
    (temp_dir / "LocalSettings.php").write_text('<?php\n$wgSitename = "Wiki";')
    controller = MaintenanceModeController(temp_dir)

    await controller.set_on()

    assert controller.path.read_text() == (
        '<?php\n$wgSitename = "Wiki";\n' + READ_ONLY_SENTINEL + "\n"
    )


@pytest.mark.asyncio
async def test_set_on_twice_is_idempotent(wiki_dir: Path):
    """
    Entering maintenance mode twice leaves the file exactly as after once.
    """
    controller = MaintenanceModeController(wiki_dir)

    assert await controller.set_on() is True
    once = controller.path.read_bytes()

    assert await controller.set_on() is False
    assert controller.path.read_bytes() == once
    assert _sentinel_count(controller.path) == 1


@pytest.mark.asyncio
async def test_set_off_restores_original_content(wiki_dir: Path):
    controller = MaintenanceModeController(wiki_dir)
    original = controller.path.read_bytes()

    await controller.set_on()
    assert await controller.set_off() is True

    assert controller.path.read_bytes() == original
    assert not await controller.is_on()


@pytest.mark.asyncio
async def test_set_off_when_already_off_is_noop(wiki_dir: Path):
    controller = MaintenanceModeController(wiki_dir)
    original = controller.path.read_bytes()

    assert await controller.set_off() is False
    assert controller.path.read_bytes() == original


@pytest.mark.asyncio
async def test_state_is_reread_from_file(wiki_dir: Path):
    """An edit made behind the controller's back is seen on the next call."""
    controller = MaintenanceModeController(wiki_dir)
    await controller.set_on()

    controller.path.write_text(controller.path.read_text().replace(READ_ONLY_SENTINEL + "\n", ""))

    assert not await controller.is_on()
    assert await controller.set_off() is False


@pytest.mark.asyncio
async def test_write_keeps_permission_bits(wiki_dir: Path):
    controller = MaintenanceModeController(wiki_dir)
    os.chmod(controller.path, 0o640)

    await controller.set_on()

    assert stat.S_IMODE(controller.path.stat().st_mode) == 0o640
    assert not list(wiki_dir.glob(".*.tmp"))


# ============================================================================
# Failures
# ============================================================================

@pytest.mark.asyncio
async def test_not_writable_is_fatal(wiki_dir: Path, monkeypatch):
    controller = MaintenanceModeController(wiki_dir)
    original = controller.path.read_bytes()
    monkeypatch.setattr("mwbackup.maintenance.os.access", lambda path, mode: False)

    with pytest.raises(PermissionDenied):
        await controller.set_on()
    with pytest.raises(PermissionDenied):
        await controller.set_off()

    assert controller.path.read_bytes() == original


@pytest.mark.asyncio
async def test_missing_settings_file(temp_dir: Path):
    controller = MaintenanceModeController(temp_dir)

    with pytest.raises(ConfigurationMissing):
        await controller.set_on()
    with pytest.raises(ConfigurationMissing):
        await controller.is_on()


# ============================================================================
# Unusual settings files
# ============================================================================

@pytest.mark.asyncio
async def test_set_on_splits_inline_closing_marker(temp_dir: Path):
    """
    A closing tag on the same line as code still gets the sentinel in
    front of it, inside the PHP block.
    """
    path = temp_dir / "LocalSettings.php"
    path.write_text('<?php\n$wgSitename = "Wiki";\n$wgEnableUploads = true; ?>\n')
    controller = MaintenanceModeController(temp_dir)

    await controller.set_on()

    text = path.read_text()
    assert text.index(READ_ONLY_SENTINEL) < text.index("?>")
    assert text.endswith(READ_ONLY_SENTINEL + "\n?>\n")
    assert "$wgEnableUploads = true; \n" in text

    await controller.set_off()
    assert READ_ONLY_SENTINEL not in path.read_text()


@pytest.mark.asyncio
async def test_last_closing_marker_is_used(temp_dir: Path):
    path = temp_dir / "LocalSettings.php"
    path.write_text('<?php\n$wgLogo = "?>";\n?>\n')

    await MaintenanceModeController(temp_dir).set_on()

    assert path.read_text() == '<?php\n$wgLogo = "?>";\n' + READ_ONLY_SENTINEL + "\n?>\n"


@pytest.mark.asyncio
async def test_non_utf8_bytes_survive_toggle(temp_dir: Path):
    """Latin-1 settings round-trip byte for byte through ON and OFF."""
    path = temp_dir / "LocalSettings.php"
    original = b'<?php\n$wgSitename = "Caf\xe9 Wiki";\n?>\n'
    path.write_bytes(original)
    controller = MaintenanceModeController(temp_dir)

    assert await controller.set_on() is True
    assert b"Caf\xe9 Wiki" in path.read_bytes()
    assert await controller.is_on()

    assert await controller.set_off() is True
    assert path.read_bytes() == original
