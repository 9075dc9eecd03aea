from __future__ import annotations
import argparse
import asyncio
import signal
import sys
import traceback
from typing import List, Optional

from packsmith.__version__ import __version__

EXIT_OK = 0
EXIT_TASK_FAILED = 1
EXIT_CONFIG_ERROR = 2
EXIT_INTERRUPTED = 130


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog='packsmith',
        description='Packsmith - build, package and deploy Minecraft Bedrock add-ons'
    )
    parser.add_argument('task', nargs='?', help='Name of the task to run')
    parser.add_argument('--root', type=str, help='Project root directory', default=None)
    parser.add_argument('--config', type=str, help='Path to configuration file', default=None)
    parser.add_argument('--env-file', type=str, help='Dotenv file to load', default='.env')
    parser.add_argument('--debug', action='store_true', help='Enable debug logging', default=False)
    parser.add_argument('--list', action='store_true', help='List the available tasks', default=False)
    parser.add_argument('--plan', action='store_true', help='Print the tasks TASK runs, in order', default=False)
    parser.add_argument('--fix', action='store_true', help='Let the linter fix problems', default=False)
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')

    args = parser.parse_args(argv)
    if not args.list and not args.task:
        parser.error('a task name is required (use --list to see the available tasks)')
    return args


def _install_signal_handlers(main_task: asyncio.Task) -> None:
    """Stop an active watch session on SIGINT/SIGTERM, otherwise cancel the run."""
    from packsmith.core.watch import WatchController

    loop = asyncio.get_running_loop()

    def on_signal() -> None:
        controller = WatchController.active()
        if controller is not None:
            controller.request_stop()
        else:
            main_task.cancel()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, on_signal)
        except (NotImplementedError, RuntimeError):
            # Not available on Windows event loops; Ctrl+C raises KeyboardInterrupt instead.
            pass


async def main_async(argv: Optional[List[str]] = None) -> int:
    args = parse_arguments(argv)

    from packsmith.build.builder import Builder, BuildError
    from packsmith.core.config_manager import load_settings
    from packsmith.core.logging_manager import LoggingManager
    from packsmith.utils.exceptions import ConfigurationError, ManagerError, TaskError

    # Nothing touches the project tree until the configuration is valid.
    try:
        settings = load_settings(root_dir=args.root, config_path=args.config, env_file=args.env_file)
    except ConfigurationError as e:
        print(f'Configuration error: {e}', file=sys.stderr)
        return EXIT_CONFIG_ERROR

    logging_config = settings.logging.model_dump()
    if args.debug:
        logging_config['level'] = 'DEBUG'
        logging_config['console'] = {**logging_config['console'], 'level': 'DEBUG'}
    logger_manager = LoggingManager(logging_config)
    try:
        logger_manager.initialize()
    except ManagerError as e:
        print(f'Error setting up logging: {e}', file=sys.stderr)
        return EXIT_CONFIG_ERROR

    try:
        try:
            builder = Builder(settings, logger_manager=logger_manager, lint_fix=args.fix)
        except ConfigurationError as e:
            print(f'Configuration error: {e}', file=sys.stderr)
            return EXIT_CONFIG_ERROR

        if args.list:
            for name, description in builder.describe_tasks().items():
                print(f'{name:<20} {description}')
            return EXIT_OK

        try:
            if args.plan:
                for name in builder.plan(args.task):
                    print(name)
                return EXIT_OK

            run_task = asyncio.ensure_future(builder.build(args.task))
            _install_signal_handlers(run_task)
            await run_task
        except TaskError as e:
            print(f'Error: {e}', file=sys.stderr)
            return EXIT_CONFIG_ERROR
        except BuildError as e:
            failed = e.result.failed_task or e.result.name
            print(f"Task '{failed}' failed: {e.result.error}", file=sys.stderr)
            return EXIT_TASK_FAILED
        except asyncio.CancelledError:
            print('\nStopped by user.', file=sys.stderr)
            return EXIT_INTERRUPTED
        return EXIT_OK
    finally:
        logger_manager.shutdown()


def main(argv: Optional[List[str]] = None) -> int:
    try:
        return asyncio.run(main_async(argv))
    except KeyboardInterrupt:
        print('\nStopped by user.', file=sys.stderr)
        return EXIT_INTERRUPTED
    except Exception as e:
        print(f'Unhandled exception: {e}', file=sys.stderr)
        traceback.print_exc()
        return EXIT_TASK_FAILED


if __name__ == '__main__':
    sys.exit(main())
