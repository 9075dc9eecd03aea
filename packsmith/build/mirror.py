"""Merge-copy of directory trees.

The mirror adds and overwrites entries from a source tree into a destination
tree but never deletes anything already present in the destination.
"""

from __future__ import annotations

import os
import pathlib
import tempfile
from dataclasses import dataclass
from typing import Any, List, Set, Tuple, Union

import aiofiles
import aiofiles.os

from packsmith.core.base import resolve_logger
from packsmith.utils.exceptions import FileError

COPY_CHUNK_SIZE = 1024 * 1024


@dataclass
class MirrorStats:
    """Counts of what a mirror call did."""
    files_copied: int = 0
    directories_created: int = 0
    bytes_copied: int = 0
    skipped_links: int = 0
    source_missing: bool = False


class FileMirror:
    """Copies files and directory trees, merging into existing destinations.

    Directory trees are walked with an explicit stack, so depth is bounded
    only by memory. Real paths of visited directories are remembered, which
    stops symlink loops from being followed more than once. Each file is
    written to a temporary sibling and renamed into place, so a failed copy
    never leaves a truncated file at the destination path.
    """

    def __init__(self, logger_manager: Any = None) -> None:
        self._logger = resolve_logger(logger_manager, 'file_mirror')

    async def mirror(
            self,
            source: Union[str, pathlib.Path],
            destination: Union[str, pathlib.Path]
    ) -> MirrorStats:
        """Mirror ``source`` into ``destination``.

        Args:
            source: File or directory to copy
            destination: Target path; for a directory source, the directory
                the source's entries are merged into

        Returns:
            Statistics for the copy

        Raises:
            FileError: If reading or writing fails
        """
        source = pathlib.Path(source)
        destination = pathlib.Path(destination)
        stats = MirrorStats()

        if not await aiofiles.os.path.exists(source):
            self._logger.warning(f'Mirror source does not exist, nothing copied: {source}')
            stats.source_missing = True
            return stats

        if not await aiofiles.os.path.isdir(source):
            await self._copy_file(source, destination, stats)
            return stats

        visited: Set[str] = set()
        stack: List[Tuple[pathlib.Path, pathlib.Path]] = [(source, destination)]
        while stack:
            src_dir, dest_dir = stack.pop()

            real = os.path.realpath(src_dir)
            if real in visited:
                self._logger.warning(f'Skipping already visited directory (symlink loop?): {src_dir}')
                stats.skipped_links += 1
                continue
            visited.add(real)

            await self._ensure_directory(dest_dir, stats)

            try:
                entries = sorted(os.scandir(src_dir), key=lambda entry: entry.name)
            except OSError as e:
                raise FileError(
                    f'Failed to read directory {src_dir}: {str(e)}',
                    file_path=str(src_dir)
                ) from e

            for entry in entries:
                entry_source = pathlib.Path(entry.path)
                entry_dest = dest_dir / entry.name
                if entry.is_dir():
                    stack.append((entry_source, entry_dest))
                elif entry.is_file():
                    await self._copy_file(entry_source, entry_dest, stats)
                else:
                    self._logger.debug(f'Skipping special file {entry_source}')

        self._logger.debug(
            f'Mirrored {source} -> {destination}: {stats.files_copied} files, '
            f'{stats.directories_created} directories created'
        )
        return stats

    async def _ensure_directory(self, path: pathlib.Path, stats: MirrorStats) -> None:
        if await aiofiles.os.path.isdir(path):
            return
        try:
            await aiofiles.os.makedirs(path, exist_ok=True)
        except OSError as e:
            raise FileError(
                f'Failed to create directory {path}: {str(e)}',
                file_path=str(path)
            ) from e
        stats.directories_created += 1

    async def _copy_file(self, source: pathlib.Path, destination: pathlib.Path, stats: MirrorStats) -> None:
        if destination.parent != destination:
            await self._ensure_directory(destination.parent, stats)

        # Write to a uniquely named temporary file first then rename for atomicity
        temp_path = None
        copied = 0
        try:
            fd, temp_path = tempfile.mkstemp(
                prefix=f'.{destination.name}.', suffix='.tmp', dir=destination.parent
            )
            os.close(fd)
            async with aiofiles.open(source, 'rb') as src:
                async with aiofiles.open(temp_path, 'wb') as dst:
                    while True:
                        chunk = await src.read(COPY_CHUNK_SIZE)
                        if not chunk:
                            break
                        await dst.write(chunk)
                        copied += len(chunk)
            await aiofiles.os.replace(temp_path, destination)
        except OSError as e:
            if temp_path is not None and os.path.exists(temp_path):
                os.remove(temp_path)
            raise FileError(
                f'Failed to copy {source} to {destination}: {str(e)}',
                file_path=str(destination)
            ) from e

        stats.files_copied += 1
        stats.bytes_copied += copied
