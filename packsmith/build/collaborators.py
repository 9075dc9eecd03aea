"""External tools invoked by the build: compiler, bundler and linter.

Their internals are opaque to Packsmith. Each is started as a subprocess and
awaited; a non-zero exit status becomes a :class:`CollaboratorError`.
"""

from __future__ import annotations

import asyncio
import collections
import os
import pathlib
from typing import Any, Deque, List, Optional, Sequence, Union

from packsmith.build.config import BundleConfig, LintConfig, TypeScriptConfig
from packsmith.build.utils import collect_matching_files
from packsmith.core.base import resolve_logger
from packsmith.utils.exceptions import CollaboratorError, FileError

OUTPUT_TAIL_LINES = 40


class CommandRunner:
    """Runs external tool commands and streams their output to the log."""

    def __init__(self, cwd: Union[str, pathlib.Path], logger_manager: Any = None) -> None:
        self.cwd = pathlib.Path(cwd)
        self._logger = resolve_logger(logger_manager, 'collaborators')

    async def run(self, tool: str, args: Sequence[str]) -> str:
        """Run a command to completion.

        Args:
            tool: Tool name used in log output and errors
            args: Command and its arguments

        Returns:
            The last lines of the combined output

        Raises:
            CollaboratorError: If the command cannot be started or exits
                with a non-zero status
        """
        self._logger.debug(f"Running {tool}: {' '.join(args)}")
        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
                cwd=str(self.cwd),
            )
        except OSError as e:
            raise CollaboratorError(
                f'Failed to start {tool} ({args[0]}): {str(e)}',
                tool=tool
            ) from e

        tail: Deque[str] = collections.deque(maxlen=OUTPUT_TAIL_LINES)
        assert process.stdout is not None
        try:
            async for raw_line in process.stdout:
                line = raw_line.decode(errors='replace').rstrip()
                if line:
                    tail.append(line)
                    self._logger.debug(f'[{tool}] {line}')
            returncode = await process.wait()
        except asyncio.CancelledError:
            if process.returncode is None:
                process.kill()
                await process.wait()
            raise

        output = '\n'.join(tail)
        if returncode != 0:
            message = f'{tool} exited with status {returncode}'
            if tail:
                message += f': {tail[-1]}'
            raise CollaboratorError(message, tool=tool, returncode=returncode, output=output)
        return output


async def run_typescript(config: TypeScriptConfig, runner: CommandRunner) -> None:
    """Type-check the project; tsc emits nothing the bundle depends on."""
    await runner.run('tsc', config.to_args())


async def run_bundle(config: BundleConfig, runner: CommandRunner, logger: Any = None) -> pathlib.Path:
    """Bundle the entry point into a single script.

    When a source map directory is configured the map emitted next to the
    bundle is moved there.

    Returns:
        Path of the bundled script
    """
    logger = logger or resolve_logger(None, 'collaborators')
    try:
        config.outfile.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise FileError(
            f'Failed to create output directory {config.outfile.parent}: {str(e)}',
            file_path=str(config.outfile.parent)
        ) from e

    await runner.run('esbuild', config.to_args())

    if config.sourcemap and config.sourcemap_dir is not None:
        source_map = config.sourcemap_file
        if not source_map.exists():
            logger.warning(f'Bundler did not write a source map at {source_map}')
        else:
            target = config.sourcemap_dir / source_map.name
            try:
                config.sourcemap_dir.mkdir(parents=True, exist_ok=True)
                os.replace(source_map, target)
            except OSError as e:
                raise FileError(
                    f'Failed to move source map to {target}: {str(e)}',
                    file_path=str(target)
                ) from e
            logger.debug(f'Source map written to {target}')
    return config.outfile


async def run_lint(config: LintConfig, runner: CommandRunner, logger: Any = None) -> Optional[str]:
    """Lint the files matching the configured patterns.

    Returns:
        The linter output, or None when no file matched
    """
    logger = logger or resolve_logger(None, 'collaborators')
    files = await asyncio.to_thread(collect_matching_files, runner.cwd, config.patterns)
    if not files:
        logger.warning(f"No files match lint patterns {', '.join(config.patterns)}")
        return None

    args: List[str] = list(config.command)
    if config.fix:
        args.append('--fix')
    args.extend(path.relative_to(runner.cwd).as_posix() for path in files)
    return await runner.run('eslint', args)
