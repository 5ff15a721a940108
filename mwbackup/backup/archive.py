# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
MWBackup Archives - Naming convention, consolidation and inspection.

Backup archives carry no manifest file. What a backup contains is encoded
in its member filenames, which are the wire format between backup and
restore:

    <prefix>-database_<charset>.sql.gz
    <prefix>-pages.xml.gz
    <prefix>-images.tar.gz | <prefix>-filesystem.tar.gz

optionally bundled (flattened) into <prefix>-mediawiki-backup.tar.gz.
On restore the names are parsed exactly once, into an ArchiveManifest.
"""

import shutil
import tarfile
import tempfile
from contextlib import asynccontextmanager
from pathlib import Path, PurePosixPath
from typing import AsyncIterator, Callable, Dict, List, Sequence

import structlog

from mwbackup.config import ArtifactKind, DEFAULT_CHARSET
from mwbackup.core import ArchiveManifest, ExportArtifact
from mwbackup.exceptions import ArchiveError

logger = structlog.get_logger()

CONSOLIDATED_SUFFIX = "-mediawiki-backup.tar.gz"

# Fixed suffixes; the database member is matched by name instead
ARTIFACT_SUFFIXES: Dict[ArtifactKind, str] = {
    ArtifactKind.FILESYSTEM: "-filesystem.tar.gz",
    ArtifactKind.IMAGES: "-images.tar.gz",
    ArtifactKind.PAGES: "-pages.xml.gz",
}

DATABASE_MARKER = "database"

# Same set as GNU tar --exclude-vcs
VCS_EXCLUDES = frozenset({
    "CVS", "RCS", "SCCS", ".git", ".gitignore", ".gitattributes",
    ".gitmodules", ".cvsignore", ".svn", ".arch-ids", "{arch}",
    "=RELEASE-ID", "=meta-update", "=update", ".bzr", ".bzrignore",
    ".bzrtags", ".hg", ".hgignore", ".hgtags", "_darcs",
})

TarFilter = Callable[[tarfile.TarInfo], tarfile.TarInfo | None]


# ============================================================================
# Naming convention
# ============================================================================

def artifact_filename(prefix: str, kind: ArtifactKind, charset: str | None = None) -> str:
    """
    Build the filename of an artifact.

    Args:
        prefix: Prefix shared by every artifact of a run
        kind: Artifact kind
        charset: Database charset (database artifacts only)

    Returns:
        Filename following the backup naming convention
    """
    if kind == ArtifactKind.DATABASE:
        return f"{prefix}-{DATABASE_MARKER}_{charset or DEFAULT_CHARSET}.sql.gz"
    return prefix + ARTIFACT_SUFFIXES[kind]


def consolidated_filename(prefix: str) -> str:
    return prefix + CONSOLIDATED_SUFFIX


def charset_from_filename(filename: str) -> str | None:
    """
    Recover the charset token of a database dump filename.

    The token is what follows the last underscore, up to the next period:
    "2024-01-01-database_utf8.sql.gz" -> "utf8".
    """
    if "_" not in filename:
        return None
    token = filename.rsplit("_", 1)[1].split(".", 1)[0]
    return token or None


def archive_stem(archive_path: Path) -> str:
    """Archive basename with every extension stripped."""
    return Path(archive_path).name.split(".", 1)[0]


# ============================================================================
# Tarball helpers
# ============================================================================

def exclude_vcs(tarinfo: tarfile.TarInfo) -> tarfile.TarInfo | None:
    """tarfile filter dropping version-control metadata."""
    if PurePosixPath(tarinfo.name).name in VCS_EXCLUDES:
        return None
    return tarinfo


def create_tarball(
    tarball_path: Path,
    entries: Sequence[tuple[Path, str]],
    dereference: bool = False,
    tar_filter: TarFilter | None = None,
) -> Path:
    """
    Write a gzip-compressed tarball.

    The tarball is written to a temporary name and renamed into place, so
    a failed run never leaves a truncated archive under the final name.

    Args:
        tarball_path: Final path of the tarball
        entries: (path on disk, name inside the archive) pairs
        dereference: Follow symlinks instead of storing them
        tar_filter: Optional tarfile filter applied to every member

    Returns:
        Path to the created tarball
    """
    temp_path = tarball_path.with_name(tarball_path.name + ".tmp")

    try:
        with tarfile.open(temp_path, "w:gz", dereference=dereference) as tar:
            for source, arcname in entries:
                tar.add(source, arcname=arcname, filter=tar_filter)

        temp_path.rename(tarball_path)

    except Exception as e:
        if temp_path.exists():
            temp_path.unlink()
        raise ArchiveError(
            f"Failed to create tarball: {e}",
            details={"tarball_path": str(tarball_path)},
        ) from e

    logger.debug("tarball_created", tarball_path=str(tarball_path), entries=len(entries))
    return tarball_path


def _unsafe_path(name: str) -> bool:
    return name.startswith("/") or ".." in PurePosixPath(name).parts


def _check_members(members: Sequence[tarfile.TarInfo], tarball_path: Path) -> None:
    """
    Refuse members that would be written outside the extraction directory.

    Symlinks are legitimate members (images/ may be archived as one) but no
    other member may be written through a link of the same archive, and
    hardlinks must point at a path inside the archive.
    """
    links = set()

    for member in members:
        path = PurePosixPath(member.name)
        reason = None

        if _unsafe_path(member.name):
            reason = "path escapes the extraction directory"
        elif any(str(parent) in links for parent in path.parents):
            reason = "path goes through a link member"
        elif member.islnk() and (
            _unsafe_path(member.linkname)
            or any(str(parent) in links for parent in PurePosixPath(member.linkname).parents)
        ):
            reason = "hardlink target escapes the extraction directory"

        if reason:
            raise ArchiveError(
                f"Unsafe path in tarball: {member.name} ({reason})",
                details={"tarball_path": str(tarball_path), "member": member.name},
            )

        if member.issym() or member.islnk():
            links.add(str(path))


def extract_tarball(tarball_path: Path, extract_to: Path) -> None:
    """
    Extract a tarball, keeping permissions, ownership and symlinks.

    Raises:
        ArchiveError: If the tarball is unreadable or a member would land
            outside extract_to
    """
    try:
        extract_to.mkdir(parents=True, exist_ok=True)

        with tarfile.open(tarball_path, "r:*") as tar:
            _check_members(tar.getmembers(), tarball_path)
            tar.extractall(extract_to, filter="fully_trusted")

    except ArchiveError:
        raise
    except Exception as e:
        raise ArchiveError(
            f"Failed to extract tarball: {e}",
            details={"tarball_path": str(tarball_path)},
        ) from e


# ============================================================================
# Consolidation (backup side)
# ============================================================================

async def consolidate_artifacts(
    artifacts: List[ExportArtifact],
    backup_dir: Path,
    prefix: str,
    single_archive: bool,
) -> List[Path]:
    """
    Fold the produced artifacts into the final backup outputs.

    Without single-archive mode every artifact stays an independent file.
    With it, all artifacts are bundled under their basenames into
    <prefix>-mediawiki-backup.tar.gz and the originals are deleted.

    Returns:
        Paths of the final outputs
    """
    paths = [artifact.path for artifact in artifacts]

    if not single_archive:
        return paths

    if not paths:
        logger.warning("consolidation_skipped_no_artifacts", prefix=prefix)
        return []

    archive_path = backup_dir / consolidated_filename(prefix)
    logger.info("consolidated_archive_started", path=str(archive_path), members=len(paths))

    create_tarball(archive_path, [(path, path.name) for path in paths])

    for path in paths:
        path.unlink()

    logger.info(
        "consolidated_archive_created",
        path=str(archive_path),
        size=archive_path.stat().st_size,
    )

    return [archive_path]


# ============================================================================
# Inspection (restore side)
# ============================================================================

def inspect_staging(staging_dir: Path, archive_name: str = "") -> ArchiveManifest:
    """
    Classify the files of an expanded archive by their names.

    Missing kinds are simply absent from the manifest; deciding what to do
    about them is left to the restore steps.
    """
    names = sorted(p.name for p in staging_dir.iterdir() if p.is_file())

    members: Dict[ArtifactKind, Path] = {}
    prefixes: List[str] = []

    for kind, suffix in ARTIFACT_SUFFIXES.items():
        for name in names:
            if name.endswith(suffix):
                members[kind] = staging_dir / name
                prefixes.append(name[: -len(suffix)])
                break

    classified = {path.name for path in members.values()}
    charset = None
    for name in names:
        if DATABASE_MARKER in name and name not in classified:
            members[ArtifactKind.DATABASE] = staging_dir / name
            charset = charset_from_filename(name)
            marker = name.find("-" + DATABASE_MARKER)
            if marker > 0:
                prefixes.append(name[:marker])
            break

    if prefixes:
        prefix = prefixes[0]
    elif archive_name.endswith(CONSOLIDATED_SUFFIX):
        prefix = archive_name[: -len(CONSOLIDATED_SUFFIX)]
    else:
        prefix = archive_stem(Path(archive_name)) if archive_name else staging_dir.name

    return ArchiveManifest(
        staging_dir=staging_dir,
        prefix=prefix,
        members=members,
        charset=charset,
    )


@asynccontextmanager
async def expand_archive(
    archive_path: Path,
    staging_root: Path | None = None,
) -> AsyncIterator[ArchiveManifest]:
    """
    Expand a backup archive into a staging directory.

    The staging directory is named after the archive (extensions stripped)
    and lives in a fresh temporary parent. It is removed when the context
    exits, whether the restore succeeded or not.

    Args:
        archive_path: Consolidated backup archive
        staging_root: Parent for the staging area (system temp dir if None)

    Yields:
        ArchiveManifest describing the expanded archive
    """
    archive_path = Path(archive_path)
    if not archive_path.is_file():
        raise ArchiveError(
            f"Backup archive {archive_path} does not exist",
            details={"archive_path": str(archive_path)},
        )

    if staging_root is not None:
        staging_root.mkdir(parents=True, exist_ok=True)

    parent = Path(tempfile.mkdtemp(prefix="mwbackup-", dir=staging_root))
    staging_dir = parent / archive_stem(archive_path)

    try:
        staging_dir.mkdir()
        extract_tarball(archive_path, staging_dir)

        manifest = inspect_staging(staging_dir, archive_path.name)

        logger.info(
            "archive_expanded",
            archive=archive_path.name,
            staging_dir=str(staging_dir),
            prefix=manifest.prefix,
            members=sorted(kind.value for kind in manifest.members),
            charset=manifest.charset,
        )

        yield manifest

    finally:
        shutil.rmtree(parent, ignore_errors=True)
        logger.debug("staging_released", staging_dir=str(staging_dir))
