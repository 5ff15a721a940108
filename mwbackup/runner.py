# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Tool Runner - The single seam through which external tools are launched.

mysqldump, mysql and php are never reimplemented: they are run as opaque
processes. Their streams are compressed or decompressed on the fly with
gzip so that no uncompressed dump ever touches the disk.
"""

import asyncio
import gzip
import os
import shutil
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Protocol, Sequence

import structlog

from mwbackup.errors import explain_tool_not_found
from mwbackup.exceptions import ExternalToolFailure

logger = structlog.get_logger()

CHUNK_SIZE = 64 * 1024

# gzip -9
GZIP_LEVEL = 9

# Only the tail of stderr is kept on failures
STDERR_TAIL = 2000


class ToolRunner(Protocol):
    """Protocol for launching external tools."""

    def find_executable(self, name: str) -> str | None:
        """Return the resolved executable path, or None if not installed."""
        ...

    async def stream_to_gzip(
        self,
        command: Sequence[str],
        destination: Path,
        cwd: Path | None = None,
    ) -> None:
        """Run a command and gzip its standard output into destination."""
        ...

    async def feed_from_gzip(self, command: Sequence[str], source: Path) -> None:
        """Run a command with a gunzipped file on its standard input."""
        ...

    async def feed_text(self, command: Sequence[str], text: str) -> None:
        """Run a command with text on its standard input."""
        ...


@contextmanager
def mysql_option_file(password: str) -> Iterator[Path]:
    """
    Write a temporary MySQL option file holding a password.

    Passing the file with --defaults-extra-file keeps the password out of
    the process list. The file is readable by the owner only and removed
    on exit.
    """
    fd, temp_path = tempfile.mkstemp(prefix="mwbackup-", suffix=".cnf", text=True)
    try:
        os.chmod(temp_path, 0o600)
        # Quoted so that characters like # survive
        escaped = password.replace("\\", "\\\\").replace('"', '\\"')
        os.write(fd, f'[client]\npassword="{escaped}"\n'.encode("utf-8", "surrogateescape"))
        os.close(fd)
        fd = -1
        yield Path(temp_path)
    finally:
        if fd >= 0:
            os.close(fd)
        if os.path.exists(temp_path):
            os.remove(temp_path)


def _tool_name(command: Sequence[str]) -> str:
    return Path(command[0]).name if command else ""


class SubprocessRunner:
    """ToolRunner backed by asyncio subprocesses."""

    def find_executable(self, name: str) -> str | None:
        return shutil.which(name)

    async def _spawn(
        self,
        command: Sequence[str],
        stdin: int | None,
        stdout: int | None,
        cwd: Path | None = None,
    ) -> asyncio.subprocess.Process:
        try:
            return await asyncio.create_subprocess_exec(
                *command,
                stdin=stdin,
                stdout=stdout,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(cwd) if cwd else None,
            )
        except FileNotFoundError as e:
            raise ExternalToolFailure(
                explain_tool_not_found(command[0]),
                tool=_tool_name(command),
                returncode=None,
            ) from e

    async def _finish(
        self,
        command: Sequence[str],
        process: asyncio.subprocess.Process,
        stderr_task: "asyncio.Task[bytes]",
    ) -> None:
        stderr = (await stderr_task).decode("utf-8", errors="replace")
        returncode = await process.wait()

        if returncode != 0:
            tool = _tool_name(command)
            logger.debug("tool_stderr", tool=tool, stderr=stderr[-STDERR_TAIL:])
            raise ExternalToolFailure(
                f"{tool} failed with return code {returncode}",
                tool=tool,
                returncode=returncode,
                stderr=stderr[-STDERR_TAIL:],
            )

    async def stream_to_gzip(
        self,
        command: Sequence[str],
        destination: Path,
        cwd: Path | None = None,
    ) -> None:
        process = await self._spawn(
            command, stdin=asyncio.subprocess.DEVNULL, stdout=asyncio.subprocess.PIPE, cwd=cwd
        )
        stderr_task = asyncio.create_task(process.stderr.read())

        with gzip.open(destination, "wb", compresslevel=GZIP_LEVEL) as gz:
            while True:
                chunk = await process.stdout.read(CHUNK_SIZE)
                if not chunk:
                    break
                gz.write(chunk)

        await self._finish(command, process, stderr_task)

    async def feed_from_gzip(self, command: Sequence[str], source: Path) -> None:
        process = await self._spawn(
            command, stdin=asyncio.subprocess.PIPE, stdout=asyncio.subprocess.DEVNULL
        )
        stderr_task = asyncio.create_task(process.stderr.read())

        try:
            with gzip.open(source, "rb") as gz:
                while True:
                    chunk = gz.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    process.stdin.write(chunk)
                    await process.stdin.drain()
        except (BrokenPipeError, ConnectionResetError):
            # The tool exited early; its return code carries the error
            pass
        finally:
            process.stdin.close()

        await self._finish(command, process, stderr_task)

    async def feed_text(self, command: Sequence[str], text: str) -> None:
        process = await self._spawn(
            command, stdin=asyncio.subprocess.PIPE, stdout=asyncio.subprocess.DEVNULL
        )
        stderr_task = asyncio.create_task(process.stderr.read())

        try:
            process.stdin.write(text.encode("utf-8", "surrogateescape"))
            await process.stdin.drain()
        except (BrokenPipeError, ConnectionResetError):
            pass
        finally:
            process.stdin.close()

        await self._finish(command, process, stderr_task)
