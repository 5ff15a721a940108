# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
MWBackup Restore Manager - Restore a wiki from a consolidated archive.

Restore order matters: LocalSettings.php lives inside the restored tree,
so the filesystem (or images) archive is extracted before settings are
read, and the database steps only run afterwards.

Missing pieces degrade the restore instead of aborting it. A missing
database name or dump is reported as UnknownDatabase and the rest of the
archive is still restored.
"""

from datetime import datetime, UTC
from typing import List

import structlog

from mwbackup.backup.archive import expand_archive, extract_tarball
from mwbackup.config import ArtifactKind, RestoreConfig
from mwbackup.core import RestoreContext, RestoreResult
from mwbackup.errors import explain_missing_member, explain_unknown_database
from mwbackup.exceptions import (
    ArchiveError,
    ArchiveMemberMissing,
    ConfigurationMissing,
    ExternalToolFailure,
    MWBackupError,
    UnknownDatabase,
)
from mwbackup.maintenance import MaintenanceModeController
from mwbackup.runner import SubprocessRunner, ToolRunner, mysql_option_file
from mwbackup.settings import ConnectionProfile, read_connection_profile

logger = structlog.get_logger()

LOCAL_HOST = "localhost"
ANY_HOST = "%"

REDACTED = "***"


# ============================================================================
# SQL statements
# ============================================================================

def _quote_identifier(name: str) -> str:
    return "`" + name.replace("`", "``") + "`"


def _quote_string(value: str) -> str:
    return "'" + value.replace("\\", "\\\\").replace("'", "\\'") + "'"


def create_database_statement(database: str) -> str:
    return f"CREATE DATABASE {_quote_identifier(database)};"


def user_statements(
    database: str,
    user: str,
    password: str,
    exact_host: str,
) -> List[str]:
    """
    Build the statements recreating the wiki user.

    For each host pattern (the exact hostname, localhost and the '%'
    wildcard, which does not cover localhost in MySQL) the account is
    created when missing, its password is set and all privileges on the
    database are granted. GRANT no longer creates accounts on MySQL 8.0,
    so account and privileges are separate statements.
    """
    statements = []
    for host in (exact_host, LOCAL_HOST, ANY_HOST):
        account = f"{_quote_string(user)}@{_quote_string(host)}"
        statements += [
            f"CREATE USER IF NOT EXISTS {account} IDENTIFIED BY {_quote_string(password)};",
            f"ALTER USER {account} IDENTIFIED BY {_quote_string(password)};",
            f"GRANT ALL PRIVILEGES ON {_quote_identifier(database)}.* TO {account};",
        ]
    return statements


def _redact(statement: str, password: str) -> str:
    if not password:
        return statement
    return statement.replace(_quote_string(password), _quote_string(REDACTED))


def _mysql_command(
    context: RestoreContext,
    option_file,
    database: str | None = None,
    charset: str | None = None,
) -> List[str]:
    command = [
        context.config.tools.mysql,
        f"--defaults-extra-file={option_file}",
        "--user=root",
    ]
    if context.profile.host:
        command.append(f"--host={context.profile.host}")
    if charset:
        command.append(f"--default-character-set={charset}")
    if database:
        command.append(database)
    return command


def _report(context: RestoreContext, issue: MWBackupError, event: str, **kwargs) -> None:
    logger.warning(event, error=issue.message, **kwargs)
    context.issues.append(issue)


async def execute_sql(context: RestoreContext, statement: str) -> bool:
    """
    Execute one statement as the MySQL root user.

    Failures are reported on the context; returns True on success.
    """
    shown = _redact(statement, context.profile.password)
    logger.info("executing_statement", statement=shown)
    context.statements.append(shown)

    with mysql_option_file(context.config.root_password) as option_file:
        try:
            await context.runner.feed_text(_mysql_command(context, option_file), statement + "\n")
        except ExternalToolFailure as e:
            _report(context, e, "statement_failed", statement=shown)
            return False
    return True


# ============================================================================
# Restore steps
# ============================================================================

async def restore_files(context: RestoreContext) -> None:
    """
    Extract the filesystem archive, else the images archive, if any.

    A member that cannot be extracted is reported and the remaining steps
    still run.
    """
    manifest = context.manifest
    install_dir = context.config.install_dir

    for kind in (ArtifactKind.FILESYSTEM, ArtifactKind.IMAGES):
        member = manifest.get(kind)
        if member is None:
            logger.info(f"{kind.value}_archive_not_found")
            continue

        logger.info(f"{kind.value}_restore_started", source=member.name, install_dir=str(install_dir))
        try:
            extract_tarball(member, install_dir)
        except ArchiveError as e:
            _report(context, e, f"{kind.value}_restore_failed", source=member.name)
            return
        context.restored.append(kind)
        return

    _report(
        context,
        ArchiveMemberMissing(
            explain_missing_member("images", context.config.archive_path),
            details={"kind": ArtifactKind.IMAGES.value},
        ),
        "no_file_archive_found",
    )


def load_profile(context: RestoreContext) -> ConnectionProfile:
    """
    Read settings from the (now restored) installation.

    A missing LocalSettings.php is tolerated: an empty profile is used and
    blanks are filled from the configured db_* values.
    """
    config = context.config
    try:
        profile = read_connection_profile(config.install_dir)
    except ConfigurationMissing as e:
        _report(context, e, "settings_missing_after_restore")
        profile = ConnectionProfile()

    context.profile = profile.with_overrides(
        host=config.db_host,
        name=config.db_name,
        user=config.db_user,
        password=config.db_password,
    )
    return context.profile


async def recreate_database(context: RestoreContext) -> None:
    if not context.config.recreate_database:
        return

    if not context.profile.name:
        _report(
            context,
            UnknownDatabase(explain_unknown_database("so the database cannot be created")),
            "database_creation_skipped",
        )
        return

    await execute_sql(context, create_database_statement(context.profile.name))


async def recreate_user(context: RestoreContext) -> None:
    """
    Create the wiki user and grant it all privileges on the wiki database.

    Grants are not checked against the server: a database that was not
    created in this run is only warned about.
    """
    if not context.config.recreate_user:
        return

    profile = context.profile
    if not profile.name:
        _report(
            context,
            UnknownDatabase(explain_unknown_database("so privileges cannot be granted")),
            "user_creation_skipped",
        )
        return

    if not profile.user:
        _report(
            context,
            MWBackupError("No database user was found, cannot recreate the wiki user."),
            "user_creation_skipped",
        )
        return

    if not context.config.recreate_database:
        logger.warning("grant_target_not_created_in_this_run", database=profile.name)

    for statement in user_statements(
        profile.name, profile.user, profile.password, context.config.grant_host
    ):
        await execute_sql(context, statement)


async def import_database(context: RestoreContext) -> None:
    """Import the SQL dump into the wiki database."""
    dump = context.manifest.get(ArtifactKind.DATABASE)

    if dump is None:
        context.issues.append(
            ArchiveMemberMissing(
                explain_missing_member("database", context.config.archive_path),
                details={"kind": ArtifactKind.DATABASE.value},
            )
        )
        _report(
            context,
            UnknownDatabase(explain_unknown_database("no SQL dump in the archive, cannot restore it")),
            "database_import_skipped",
        )
        return

    database = context.profile.name
    if not database:
        _report(
            context,
            UnknownDatabase(explain_unknown_database("cannot restore the SQL dump")),
            "database_import_skipped",
            dump=dump.name,
        )
        return

    charset = context.manifest.charset
    logger.info("database_import_started", database=database, source=dump.name, charset=charset)

    with mysql_option_file(context.config.root_password) as option_file:
        command = _mysql_command(context, option_file, database=database, charset=charset)
        try:
            await context.runner.feed_from_gzip(command, dump)
        except ExternalToolFailure as e:
            _report(context, e, "database_import_failed", database=database)
            return

    context.database_imported = True
    logger.info("database_import_complete", database=database)


async def release_maintenance(context: RestoreContext) -> None:
    """Leave the restored installation writable."""
    try:
        await context.maintenance.set_off()
    except ConfigurationMissing as e:
        _report(context, e, "maintenance_mode_not_released")


# ============================================================================
# Entry point
# ============================================================================

async def run_restore(
    config: RestoreConfig,
    runner: ToolRunner | None = None,
) -> RestoreResult:
    """
    Restore a wiki from a backup archive.

    Steps:
    1. Expand the archive into a staging directory
    2. Extract the filesystem archive, else the images archive
    3. Read LocalSettings.php from the restored installation
    4. Optionally recreate the database and the wiki user
    5. Import the SQL dump
    6. Turn maintenance mode off
    7. Release the staging directory (always)

    Args:
        config: Restore configuration
        runner: Tool runner (subprocesses by default)

    Returns:
        RestoreResult with executed statements and reported issues

    Raises:
        ArchiveError: If the backup archive itself is missing, unreadable or
            unsafe (inner members are reported instead)
        PermissionDenied: If LocalSettings.php cannot be made writable again
    """
    from ulid import ULID

    start_time = datetime.now(UTC)
    operation_id = str(ULID())

    config.install_dir.mkdir(parents=True, exist_ok=True)

    logger.info(
        "restore_started",
        operation_id=operation_id,
        archive=str(config.archive_path),
        install_dir=str(config.install_dir),
        recreate_database=config.recreate_database,
        recreate_user=config.recreate_user,
    )

    async with expand_archive(config.archive_path, config.staging_root) as manifest:
        context = RestoreContext(
            operation_id=operation_id,
            config=config,
            manifest=manifest,
            maintenance=MaintenanceModeController(config.install_dir),
            runner=runner or SubprocessRunner(),
        )

        await restore_files(context)
        load_profile(context)
        await recreate_database(context)
        await recreate_user(context)
        await import_database(context)
        await release_maintenance(context)

    duration = (datetime.now(UTC) - start_time).total_seconds()

    result = RestoreResult(
        operation_id=operation_id,
        archive_path=config.archive_path,
        prefix=manifest.prefix,
        charset=manifest.charset,
        restored=list(context.restored),
        statements=list(context.statements),
        database_imported=context.database_imported,
        issues=list(context.issues),
        duration_seconds=duration,
    )

    logger.info(
        "restore_completed",
        operation_id=operation_id,
        restored=[kind.value for kind in result.restored],
        database_imported=result.database_imported,
        issues=len(result.issues),
        duration=duration,
    )

    return result
