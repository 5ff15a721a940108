# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Command line interface: ``mwbackup backup`` and ``mwbackup restore``.

Exit codes:
    0: success (warnings may have been printed)
    1: usage or configuration error, or a failed restore step
    3: the database dump failed
"""

import asyncio
from pathlib import Path
from typing import NoReturn

import typer

from mwbackup import __version__
from mwbackup.backup import run_backup, run_restore
from mwbackup.config import DEFAULT_GRANT_HOST, BackupConfig, RestoreConfig
from mwbackup.env import default_prefix, tool_paths_from_env
from mwbackup.errors import explain_missing_settings
from mwbackup.exceptions import (
    ArchiveError,
    ConfigurationError,
    ExternalToolFailure,
    MWBackupError,
)
from mwbackup.log import configure_logging
from mwbackup.runner import SubprocessRunner
from mwbackup.settings import settings_path

EXIT_FAILURE = 1
EXIT_DATABASE_DUMP_FAILED = 3

app = typer.Typer(
    help="Backup and restore MediaWiki installations using MySQL.",
    add_completion=False,
    no_args_is_help=True,
)


def _fail(message: str, code: int = EXIT_FAILURE) -> NoReturn:
    typer.echo(message, err=True)
    raise typer.Exit(code=code)


def _usage_error(ctx: typer.Context, message: str) -> NoReturn:
    typer.echo(message, err=True)
    typer.echo(ctx.get_usage(), err=True)
    raise typer.Exit(code=EXIT_FAILURE)


def _describe(error: MWBackupError) -> str:
    if isinstance(error, ConfigurationError):
        return "\n".join([error.message, *error.details.get("errors", [])])
    return error.message


def _print_issues(issues) -> None:
    for issue in issues:
        typer.echo(f"Warning: {_describe(issue)}", err=True)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"mwbackup {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Enable debug logging."),
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show the version and exit.",
    ),
) -> None:
    configure_logging(verbose)


@app.command()
def backup(
    ctx: typer.Context,
    destination: Path | None = typer.Option(
        None, "-d", "--destination", help="Path to the destination backup directory. Required."
    ),
    wiki: Path | None = typer.Option(
        None, "-w", "--wiki", help="Path to the wiki installation directory. Required."
    ),
    single_archive: bool = typer.Option(
        False,
        "-s",
        "--single-archive",
        help="Create a single archive file instead of one file per artifact.",
    ),
    prefix: str | None = typer.Option(
        None,
        "-p",
        "--prefix",
        help="Prefix for the resulting archive file name(s). Defaults to the current date (Y-m-d).",
    ),
    dereference: bool = typer.Option(
        False, "-h", "--dereference", help="Follow (dereference) symlinks for the 'images' directory."
    ),
    filesystem: bool = typer.Option(
        False,
        "-f",
        "--filesystem",
        help="Archive the complete installation directory instead of only 'images'.",
    ),
    no_pages: bool = typer.Option(False, "--no-pages", help="Skip the XML export of all pages."),
) -> None:
    """Back up a wiki: database, XML pages and images."""
    if wiki is None:
        _usage_error(ctx, "Please specify the wiki directory with -w")
    if not settings_path(wiki).is_file():
        _fail(explain_missing_settings(settings_path(wiki)))
    if destination is None:
        _usage_error(ctx, "Please provide a backup directory with -d")

    try:
        config = BackupConfig(
            install_dir=wiki.resolve(),
            backup_dir=destination.resolve(),
            prefix=prefix or default_prefix(),
            single_archive=single_archive,
            dereference_images=dereference,
            complete_filesystem=filesystem,
            export_pages=not no_pages,
            tools=tool_paths_from_env(),
        )
        result = asyncio.run(run_backup(config, SubprocessRunner()))
    except ExternalToolFailure as e:
        _fail(_describe(e), EXIT_DATABASE_DUMP_FAILED)
    except MWBackupError as e:
        _fail(_describe(e))
    except OSError as e:
        _fail(f"Backup failed: {e}")

    _print_issues(result.issues)
    for path in result.outputs:
        typer.echo(str(path))


@app.command()
def restore(
    ctx: typer.Context,
    archive: Path | None = typer.Option(
        None, "-a", "--archive", help="The archive containing the backup. Required."
    ),
    wiki: Path | None = typer.Option(
        None,
        "-w",
        "--wiki",
        help="The wiki installation directory where the backup should be restored. Required.",
    ),
    password: str = typer.Option(
        "",
        "-p",
        "--password",
        envvar="MWBACKUP_DB_ROOT_PASSWORD",
        help="The MySQL root password.",
    ),
    recreate_database: bool = typer.Option(
        False, "-d", "--recreate-database", help="Recreate the wiki MySQL database."
    ),
    recreate_user: bool = typer.Option(
        False, "-u", "--recreate-user", help="Recreate the wiki MySQL user."
    ),
    db_name: str = typer.Option("", "--db-name", help="Database name if LocalSettings.php has none."),
    db_user: str = typer.Option("", "--db-user", help="Database user if LocalSettings.php has none."),
    db_password: str = typer.Option(
        "", "--db-password", help="Database user password if LocalSettings.php has none."
    ),
    db_host: str = typer.Option("", "--db-host", help="Database host if LocalSettings.php has none."),
    grant_host: str = typer.Option(
        DEFAULT_GRANT_HOST, "--grant-host", help="Exact hostname used for the first GRANT."
    ),
) -> None:
    """Restore a wiki from a single-archive backup."""
    if wiki is None:
        _usage_error(ctx, "Please specify the wiki directory with -w")
    try:
        wiki.mkdir(parents=True, exist_ok=True)
    except OSError:
        _fail("Wiki installation directory does not exist and cannot be created")

    if archive is None:
        _usage_error(ctx, "Please provide an archive file with -a")
    if not archive.is_file():
        _fail(f"Backup archive {archive} does not exist")

    try:
        config = RestoreConfig(
            archive_path=archive.resolve(),
            install_dir=wiki.resolve(),
            root_password=password,
            recreate_database=recreate_database,
            recreate_user=recreate_user,
            db_name=db_name,
            db_user=db_user,
            db_password=db_password,
            db_host=db_host,
            grant_host=grant_host,
            tools=tool_paths_from_env(),
        )
        result = asyncio.run(run_restore(config, SubprocessRunner()))
    except MWBackupError as e:
        _fail(_describe(e))
    except OSError as e:
        _fail(f"Restore failed: {e}")

    _print_issues(result.issues)
    if result.has_issue(ExternalToolFailure) or result.has_issue(ArchiveError):
        raise typer.Exit(code=EXIT_FAILURE)


def main() -> None:
    app()
