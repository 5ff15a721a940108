# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
MWBackup Backup Manager - Export jobs and the backup run.

A run reads LocalSettings.php, puts the wiki in read-only mode, exports
the database, the XML page dump and the images (or the whole installation),
optionally consolidates everything into one archive and returns the wiki
to write mode.
"""

from datetime import datetime, UTC
from pathlib import Path
from typing import List

import structlog

from mwbackup.backup.archive import (
    artifact_filename,
    consolidate_artifacts,
    create_tarball,
    exclude_vcs,
)
from mwbackup.config import ArtifactKind, BackupConfig
from mwbackup.core import BackupContext, BackupResult, ExportArtifact
from mwbackup.errors import (
    explain_database_dump_failed,
    explain_tool_not_found,
    explain_unknown_database,
)
from mwbackup.exceptions import ExternalToolFailure, MWBackupError
from mwbackup.maintenance import MaintenanceModeController
from mwbackup.runner import SubprocessRunner, ToolRunner, mysql_option_file
from mwbackup.settings import read_connection_profile, settings_path

logger = structlog.get_logger()

IMAGES_DIRNAME = "images"
MAINTENANCE_DIRNAME = "maintenance"
DUMP_SCRIPT = "dumpBackup.php"

# mysqldump runs at the lowest scheduling priority
NICENESS = "19"


def _nice_prefix(context: BackupContext) -> List[str]:
    nice = context.config.tools.nice
    if nice and context.runner.find_executable(nice):
        return [nice, "-n", NICENESS]
    return []


async def export_database(context: BackupContext) -> ExportArtifact:
    """
    Dump the wiki database with mysqldump, gzip-compressed.

    Raises:
        ExternalToolFailure: If mysqldump fails. This aborts the whole run,
            a partial dump must never be archived.
    """
    profile = context.profile
    tool = Path(context.config.tools.mysqldump).name
    path = context.config.backup_dir / artifact_filename(
        context.config.prefix, ArtifactKind.DATABASE, profile.charset
    )

    if not profile.name:
        raise ExternalToolFailure(
            explain_unknown_database("so the database cannot be dumped"),
            tool=tool,
        )

    logger.info(
        "database_dump_started",
        path=str(path),
        host=profile.host,
        database=profile.name,
        user=profile.user,
        charset=profile.charset,
    )

    with mysql_option_file(profile.password) as option_file:
        command = _nice_prefix(context) + [
            context.config.tools.mysqldump,
            f"--defaults-extra-file={option_file}",
            "--single-transaction",
            f"--default-character-set={profile.charset}",
            f"--host={profile.host}",
            f"--user={profile.user}",
            profile.name,
        ]
        try:
            await context.runner.stream_to_gzip(command, path)
        except ExternalToolFailure as e:
            raise ExternalToolFailure(
                explain_database_dump_failed(e.returncode),
                tool=tool,
                returncode=e.returncode,
                stderr=e.stderr,
            ) from e

    logger.info("database_dump_complete", path=str(path), size=path.stat().st_size)
    return ExportArtifact(ArtifactKind.DATABASE, path, charset=profile.charset)


async def export_pages(context: BackupContext) -> ExportArtifact | None:
    """
    Export all pages as XML through maintenance/dumpBackup.php.

    Best-effort: a missing PHP interpreter or a failing export is reported
    and the run continues without the XML dump.
    """
    install_dir = context.config.install_dir
    script_dir = install_dir / MAINTENANCE_DIRNAME
    path = context.config.backup_dir / artifact_filename(
        context.config.prefix, ArtifactKind.PAGES
    )

    php = context.runner.find_executable(context.config.tools.php)
    if php is None:
        message = explain_tool_not_found(context.config.tools.php) + " Not exporting XML."
        logger.warning("pages_export_skipped", reason="php_not_found")
        context.issues.append(ExternalToolFailure(message, tool="php"))
        return None

    if not (script_dir / DUMP_SCRIPT).is_file():
        logger.warning("pages_export_skipped", reason="dump_script_missing", script_dir=str(script_dir))
        context.issues.append(
            MWBackupError(
                f"{DUMP_SCRIPT} not found in {script_dir}; not exporting XML",
                details={"script_dir": str(script_dir)},
            )
        )
        return None

    logger.info("pages_export_started", path=str(path))

    command = [
        php,
        "-d",
        "error_reporting=E_ERROR",
        DUMP_SCRIPT,
        f"--conf={settings_path(install_dir)}",
        "--quiet",
        "--full",
    ]
    try:
        await context.runner.stream_to_gzip(command, path, cwd=script_dir)
    except ExternalToolFailure as e:
        logger.warning("pages_export_failed", returncode=e.returncode, error=e.message)
        if path.exists():
            path.unlink()
        context.issues.append(e)
        return None

    logger.info("pages_export_complete", path=str(path), size=path.stat().st_size)
    return ExportArtifact(ArtifactKind.PAGES, path)


async def export_images(context: BackupContext) -> ExportArtifact | None:
    """Archive the images directory as <prefix>-images.tar.gz."""
    config = context.config
    images_dir = config.install_dir / IMAGES_DIRNAME
    path = config.backup_dir / artifact_filename(config.prefix, ArtifactKind.IMAGES)

    if images_dir.is_symlink() and not config.dereference_images:
        logger.warning(
            "images_dir_is_symlink",
            path=str(images_dir),
            hint="symlinks are not followed; pass --dereference to archive the target",
        )
    elif not images_dir.exists():
        logger.warning("images_export_skipped", reason="images_dir_missing", path=str(images_dir))
        context.issues.append(
            MWBackupError(
                f"No images directory at {images_dir}",
                details={"path": str(images_dir)},
            )
        )
        return None

    logger.info(
        "images_export_started",
        path=str(path),
        dereference=config.dereference_images,
    )

    create_tarball(
        path,
        [(images_dir, IMAGES_DIRNAME)],
        dereference=config.dereference_images,
        tar_filter=exclude_vcs,
    )

    logger.info("images_export_complete", path=str(path), size=path.stat().st_size)
    return ExportArtifact(ArtifactKind.IMAGES, path)


def _relative_inside(path: Path, root: Path) -> str | None:
    """POSIX path of `path` relative to `root`, or None if outside it."""
    try:
        return path.resolve().relative_to(root.resolve()).as_posix()
    except ValueError:
        return None


async def export_filesystem(context: BackupContext) -> ExportArtifact:
    """
    Archive the complete installation as <prefix>-filesystem.tar.gz.

    Member names are relative to the installation root and keep owner and
    permission metadata. The backup destination is left out when it lives
    inside the installation.
    """
    config = context.config
    root = config.install_dir
    path = config.backup_dir / artifact_filename(config.prefix, ArtifactKind.FILESYSTEM)
    excluded = _relative_inside(config.backup_dir, root)

    def skip_backup_dir(tarinfo):
        if excluded and (tarinfo.name == excluded or tarinfo.name.startswith(excluded + "/")):
            return None
        return tarinfo

    logger.info("filesystem_export_started", path=str(path), root=str(root))

    entries = [(child, child.name) for child in sorted(root.iterdir())]
    create_tarball(path, entries, tar_filter=skip_backup_dir)

    logger.info("filesystem_export_complete", path=str(path), size=path.stat().st_size)
    return ExportArtifact(ArtifactKind.FILESYSTEM, path)


async def export_all(context: BackupContext) -> List[ExportArtifact]:
    """
    Run every enabled export job in order.

    Each successfully produced artifact is appended to context.artifacts,
    the sole input of the consolidation step.
    """
    context.artifacts.append(await export_database(context))

    if context.config.export_pages:
        artifact = await export_pages(context)
        if artifact is not None:
            context.artifacts.append(artifact)

    if context.config.complete_filesystem:
        artifact = await export_filesystem(context)
    else:
        artifact = await export_images(context)
    if artifact is not None:
        context.artifacts.append(artifact)

    return context.artifacts


async def _release_after_failure(context: BackupContext) -> None:
    """Leave maintenance mode without masking the error being propagated."""
    try:
        await context.maintenance.set_off()
    except (MWBackupError, OSError) as e:
        logger.error(
            "maintenance_mode_not_released",
            operation_id=context.operation_id,
            path=str(context.maintenance.path),
            error=str(e),
        )


async def run_backup(
    config: BackupConfig,
    runner: ToolRunner | None = None,
) -> BackupResult:
    """
    Run a complete backup.

    This is the main entry point for backups. It:
    1. Reads the connection profile from LocalSettings.php
    2. Enters maintenance (read-only) mode
    3. Runs the export jobs
    4. Consolidates the artifacts if single-archive mode is on
    5. Returns to write mode, even when an export failed

    Args:
        config: Backup configuration
        runner: Tool runner (subprocesses by default)

    Returns:
        BackupResult with the produced outputs and reported issues

    Raises:
        ConfigurationMissing: If LocalSettings.php does not exist
        PermissionDenied: If LocalSettings.php is not writable
        ExternalToolFailure: If the database dump failed
    """
    from ulid import ULID

    start_time = datetime.now(UTC)
    operation_id = str(ULID())

    profile = read_connection_profile(config.install_dir)
    config.backup_dir.mkdir(parents=True, exist_ok=True)

    context = BackupContext(
        operation_id=operation_id,
        config=config,
        profile=profile,
        maintenance=MaintenanceModeController(config.install_dir),
        runner=runner or SubprocessRunner(),
    )

    logger.info(
        "backup_started",
        operation_id=operation_id,
        install_dir=str(config.install_dir),
        backup_dir=str(config.backup_dir),
        prefix=config.prefix,
        single_archive=config.single_archive,
        complete_filesystem=config.complete_filesystem,
    )

    await context.maintenance.set_on()
    try:
        await export_all(context)
        outputs = await consolidate_artifacts(
            context.artifacts,
            config.backup_dir,
            config.prefix,
            config.single_archive,
        )
    except BaseException:
        await _release_after_failure(context)
        raise

    await context.maintenance.set_off()

    duration = (datetime.now(UTC) - start_time).total_seconds()

    result = BackupResult(
        operation_id=operation_id,
        prefix=config.prefix,
        artifacts=list(context.artifacts),
        outputs=outputs,
        consolidated_archive=outputs[0] if config.single_archive and outputs else None,
        issues=list(context.issues),
        duration_seconds=duration,
    )

    logger.info(
        "backup_completed",
        operation_id=operation_id,
        outputs=[str(p) for p in outputs],
        issues=len(result.issues),
        duration=duration,
    )

    return result
