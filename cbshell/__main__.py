"""
cbshell entry point: ``python -m cbshell`` or ``cbsh``.
"""

import argparse
import asyncio
import sys
from typing import Optional, Sequence

from pydantic import ValidationError

from . import __version__
from .config import LogLevel, reload_settings
from .exceptions import CBShellError
from .registry.cluster_registry import ClusterRegistry
from .shell import Shell
from .storage.file_backend import FileStorageBackend
from .utils.logging import setup_logging, get_logger

logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="cbsh", description="Shell for working with one or more clusters")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config", help="cluster configuration file (YAML or JSON)")
    parser.add_argument("--log-level", choices=[level.value for level in LogLevel], help="log level")
    parser.add_argument("--structured-logs", action="store_true", default=None, help="log as JSON lines")
    parser.add_argument("--save-on-exit", action="store_true", default=None,
                        help="persist the cluster registry when the shell exits")

    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("-c", "--command", help="run one command and exit")
    mode.add_argument("--script", metavar="PATH", help="run the commands in a file and exit")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = reload_settings(config_file=args.config, save_on_exit=args.save_on_exit)
    except ValidationError as e:
        print(f"error: invalid settings: {e}", file=sys.stderr)
        return 2

    setup_logging(log_level=args.log_level, structured=args.structured_logs)
    logger.debug(f"Starting cbsh {__version__} with config file {settings.config_file}")

    lines = None
    if args.command:
        lines = [args.command]
    elif args.script:
        try:
            with open(args.script, "r", encoding="utf-8") as f:
                lines = f.read().splitlines()
        except OSError as e:
            print(f"error: could not read script {args.script}: {e}", file=sys.stderr)
            return 2

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        registry = ClusterRegistry(FileStorageBackend(settings.config_file))
        try:
            loop.run_until_complete(registry.initialize())
        except CBShellError as e:
            print(f"error: {e.message}", file=sys.stderr)
            return 2

        shell = Shell(registry)
        if lines is not None:
            status = shell.run_script(loop, lines)
        else:
            shell.run(loop)
            status = 0

        if settings.save_on_exit:
            try:
                loop.run_until_complete(registry.persist())
            except CBShellError as e:
                print(f"error: {e.message}", file=sys.stderr)
                status = status or 1
        return status
    finally:
        loop.run_until_complete(loop.shutdown_asyncgens())
        loop.close()


if __name__ == "__main__":
    sys.exit(main())
