"""Deterministic zip archives of staged directory trees."""

from __future__ import annotations

import asyncio
import os
import pathlib
import tempfile
import zipfile
from typing import Any, List, Optional, Tuple, Union

from packsmith.core.base import resolve_logger
from packsmith.utils.exceptions import FileError, MissingInputError

# Zip timestamps cannot predate 1980; pinning every entry to it keeps output stable.
FIXED_DATE_TIME = (1980, 1, 1, 0, 0, 0)
FILE_MODE = 0o644
DIRECTORY_MODE = 0o755


class ArchiveBuilder:
    """Packs a directory tree into a single compressed archive."""

    def __init__(self, logger_manager: Any = None, compresslevel: Optional[int] = None) -> None:
        self._logger = resolve_logger(logger_manager, 'archive_builder')
        self._compresslevel = compresslevel

    async def build_archive(
            self,
            root_directory: Union[str, pathlib.Path],
            output_path: Union[str, pathlib.Path]
    ) -> pathlib.Path:
        """Zip everything under ``root_directory`` into ``output_path``.

        Entry names are paths relative to ``root_directory``. Entries are
        written in sorted order with fixed timestamps and permissions, so the
        same tree always yields the same archive. An existing file at
        ``output_path`` is replaced; the output file itself is never packed
        when it lies inside the tree.

        Args:
            root_directory: Tree to pack
            output_path: Archive file to create

        Returns:
            The archive path

        Raises:
            MissingInputError: If ``root_directory`` does not exist
            FileError: If the archive cannot be written
        """
        root_directory = pathlib.Path(root_directory)
        output_path = pathlib.Path(output_path)

        if not root_directory.is_dir():
            raise MissingInputError(
                f'Archive root directory does not exist: {root_directory}',
                path=str(root_directory)
            )

        entries = await asyncio.to_thread(self._collect_entries, root_directory, output_path)
        await asyncio.to_thread(self._write_archive, entries, output_path)

        file_count = sum(1 for _, arcname in entries if not arcname.endswith('/'))
        self._logger.info(f'Created archive {output_path} ({file_count} files)')
        return output_path

    @staticmethod
    def _collect_entries(root: pathlib.Path, output_path: pathlib.Path) -> List[Tuple[pathlib.Path, str]]:
        output_real = os.path.realpath(output_path)
        entries: List[Tuple[pathlib.Path, str]] = []
        for current, dirs, files in os.walk(root):
            dirs.sort()
            current_path = pathlib.Path(current)
            rel_dir = current_path.relative_to(root).as_posix()
            if rel_dir != '.':
                entries.append((current_path, rel_dir + '/'))
            for file in sorted(files):
                file_path = current_path / file
                if os.path.realpath(file_path) == output_real:
                    continue
                entries.append((file_path, file_path.relative_to(root).as_posix()))
        entries.sort(key=lambda entry: entry[1])
        return entries

    def _write_archive(self, entries: List[Tuple[pathlib.Path, str]], output_path: pathlib.Path) -> None:
        temp_name: Optional[str] = None
        try:
            output_path.parent.mkdir(parents=True, exist_ok=True)
            fd, temp_name = tempfile.mkstemp(
                prefix=f'.{output_path.name}.', suffix='.tmp', dir=output_path.parent
            )
            os.close(fd)
            with zipfile.ZipFile(
                    temp_name, 'w', zipfile.ZIP_DEFLATED, compresslevel=self._compresslevel
            ) as zf:
                for path, arcname in entries:
                    info = zipfile.ZipInfo(arcname, date_time=FIXED_DATE_TIME)
                    if arcname.endswith('/'):
                        info.external_attr = (0o40000 | DIRECTORY_MODE) << 16 | 0x10
                        zf.writestr(info, b'')
                        continue
                    info.external_attr = (0o100000 | FILE_MODE) << 16
                    info.compress_type = zipfile.ZIP_DEFLATED
                    zf.writestr(info, path.read_bytes())
            os.replace(temp_name, output_path)
            temp_name = None
        except OSError as e:
            raise FileError(
                f'Failed to write archive {output_path}: {str(e)}',
                file_path=str(output_path)
            ) from e
        finally:
            if temp_name is not None and os.path.exists(temp_name):
                os.remove(temp_name)
