"""
Interactive shell: reads command lines, runs them on one event loop and
prints their rows as JSON.
"""

import asyncio
import json
import shlex
import signal
import sys
from typing import List, Optional, Sequence, TextIO, Tuple

from .client.http_client import ClusterClient
from .commands import COMMANDS, CommandContext, CommandDefinition, CommandOutput
from .exceptions import CBShellError, CommandUsageError
from .execution.cancellation import CancellationToken
from .execution.executor import FanOutExecutor
from .registry.cluster_registry import ClusterRegistry
from .utils.logging import get_logger, set_command_context, clear_command_context

logger = get_logger(__name__)

EXIT_COMMANDS = ("exit", "quit")
MAX_COMMAND_WORDS = max(len(name.split()) for name in COMMANDS)


class Shell:
    """Runs shell commands against a cluster registry.

    Every command runs with its own child of the session's interrupt token.
    While a command runs, SIGINT fires that child token, so an interrupt
    cancels the command in flight and leaves the shell running.
    """

    def __init__(self, registry: ClusterRegistry, executor: Optional[FanOutExecutor] = None,
                 client_factory=ClusterClient, stdout: Optional[TextIO] = None,
                 stderr: Optional[TextIO] = None):
        self.registry = registry
        self.executor = executor or FanOutExecutor(registry)
        self.client_factory = client_factory
        self.stdout = stdout or sys.stdout
        self.stderr = stderr or sys.stderr
        self.interrupt_token = CancellationToken()
        self._command_count = 0

    @staticmethod
    def split_command(line: str) -> Tuple[CommandDefinition, List[str]]:
        """Split a command line into its command and the command's arguments.

        Multi-word commands win over their prefixes, so ``clusters register``
        is chosen over ``clusters``.

        Raises:
            CommandUsageError: If the line cannot be tokenized or names no command
        """
        try:
            words = shlex.split(line)
        except ValueError as e:
            raise CommandUsageError(f"Could not parse command line: {e}")
        if not words:
            raise CommandUsageError("Empty command line")

        for length in range(min(MAX_COMMAND_WORDS, len(words)), 0, -1):
            name = " ".join(words[:length])
            if name in COMMANDS:
                return COMMANDS[name], words[length:]
        raise CommandUsageError(f"Unknown command: {words[0]}", command=words[0])

    async def execute(self, line: str, token: Optional[CancellationToken] = None) -> CommandOutput:
        """Parse and run one command line.

        Raises:
            CBShellError: Whatever the command surfaces
        """
        definition, argv = self.split_command(line)
        arguments = definition.parse(argv)
        token = token or self.interrupt_token.child()

        self._command_count += 1
        set_command_context(command_id=f"cmd-{self._command_count}", command=definition.name)
        try:
            ctx = CommandContext(
                registry=self.registry,
                executor=self.executor,
                token=token,
                client_factory=self.client_factory
            )
            return await definition.handler(ctx, **arguments)
        finally:
            clear_command_context()

    async def run_line(self, line: str) -> int:
        """Run one command line, print its result and return an exit status."""
        line = line.strip()
        if not line or line.startswith("#"):
            return 0
        if line == "help":
            self.print_help()
            return 0

        token = self.interrupt_token.child()
        loop = asyncio.get_running_loop()
        handler_installed = _install_interrupt_handler(loop, token)
        try:
            output = await self.execute(line, token)
        except CBShellError as e:
            self.print_error(e)
            return 1
        except Exception as e:
            logger.error(f"Command failed: {e}", exc_info=True)
            print(f"error: {e}", file=self.stderr)
            return 1
        finally:
            if handler_installed:
                loop.remove_signal_handler(signal.SIGINT)

        self.print_output(output)
        return 0

    def print_output(self, output: CommandOutput) -> None:
        if output.rows:
            print(json.dumps(output.rows, indent=2, default=str), file=self.stdout)
        for warning in output.warnings:
            print(f"warning: {warning}", file=self.stderr)

    def print_error(self, error: CBShellError) -> None:
        print(f"error: {error.message}", file=self.stderr)

    def print_help(self) -> None:
        width = max(len(name) for name in COMMANDS)
        for name in sorted(COMMANDS):
            print(f"{name.ljust(width)}  {COMMANDS[name].usage}", file=self.stdout)

    def prompt(self, active: Optional[str]) -> str:
        return f"{active or '(no cluster)'}> "

    def run(self, loop: asyncio.AbstractEventLoop) -> None:
        """Read and run lines until end of input or ``exit``."""
        while True:
            active = loop.run_until_complete(self.registry.active_cluster_id())
            try:
                line = input(self.prompt(active))
            except EOFError:
                print(file=self.stdout)
                break
            except KeyboardInterrupt:
                print(file=self.stdout)
                continue

            if line.strip() in EXIT_COMMANDS:
                break
            loop.run_until_complete(self.run_line(line))

    def run_script(self, loop: asyncio.AbstractEventLoop, lines: Sequence[str]) -> int:
        """Run lines non-interactively; stops at the first failing line."""
        for line in lines:
            status = loop.run_until_complete(self.run_line(line))
            if status:
                return status
        return 0


def _install_interrupt_handler(loop: asyncio.AbstractEventLoop, token: CancellationToken) -> bool:
    try:
        loop.add_signal_handler(signal.SIGINT, token.cancel, "interrupted")
    except (NotImplementedError, RuntimeError, ValueError) as e:
        logger.debug(f"Interrupts will not cancel commands: {e}")
        return False
    return True
