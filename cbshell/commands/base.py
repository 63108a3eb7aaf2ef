"""
Shared plumbing for shell commands.

Every command is a coroutine ``handler(ctx, **arguments) -> CommandOutput``
registered with ``@command``. Multi-cluster commands follow the same steps:
resolve targets, validate the record snapshots, fan out, aggregate.
"""

import argparse
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from ..client.http_client import ClusterClient
from ..execution.cancellation import CancellationToken
from ..execution.executor import FanOutExecutor, Operation
from ..execution.aggregator import tally
from ..models.cluster import ConnectionRecord, OperationKind
from ..models.outcome import PerTargetOutcome
from ..registry.cluster_registry import ClusterRegistry
from ..registry.resolver import resolve_targets, parse_cluster_targets
from ..exceptions import (
    BucketNotSelectedError,
    CloudClusterNotSupportedError,
    CommandUsageError,
    FanOutFailedError
)
from ..utils.logging import get_logger

logger = get_logger(__name__)

ClientFactory = Callable[[ConnectionRecord], ClusterClient]


@dataclass
class CommandContext:
    """What a command invocation runs with."""
    registry: ClusterRegistry
    executor: FanOutExecutor
    token: CancellationToken
    client_factory: ClientFactory = ClusterClient


@dataclass
class CommandOutput:
    """Rows to print, plus warnings about targets that failed."""
    rows: List[Dict[str, Any]] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class Argument:
    flags: Tuple[str, ...]
    options: Dict[str, Any]


def arg(*flags: str, **options: Any) -> Argument:
    """Declare a command argument with ``argparse.add_argument`` semantics."""
    return Argument(flags, options)


CLUSTERS_ARGUMENT = arg("--clusters", help="the clusters to run against, comma separated identifiers or patterns")
BUCKET_ARGUMENT = arg("--bucket", help="the name of the bucket")
SCOPE_ARGUMENT = arg("--scope", help="the name of the scope")
COLLECTION_ARGUMENT = arg("--collection", help="the name of the collection")


class _CommandArgumentParser(argparse.ArgumentParser):
    def error(self, message):
        raise CommandUsageError(f"{self.prog}: {message}", command=self.prog)


@dataclass
class CommandDefinition:
    name: str
    usage: str
    handler: Callable[..., Awaitable[CommandOutput]]
    arguments: Sequence[Argument] = ()

    def build_parser(self) -> argparse.ArgumentParser:
        parser = _CommandArgumentParser(prog=self.name, description=self.usage, add_help=False)
        for argument in self.arguments:
            parser.add_argument(*argument.flags, **argument.options)
        return parser

    def parse(self, argv: Sequence[str]) -> Dict[str, Any]:
        return vars(self.build_parser().parse_args(list(argv)))


COMMANDS: Dict[str, CommandDefinition] = {}


def command(name: str, usage: str, *arguments: Argument):
    """Register a coroutine as the shell command ``name``."""
    def decorator(func):
        definition = CommandDefinition(name=name, usage=usage, handler=func, arguments=arguments)
        COMMANDS[name] = definition
        func.__command_definition__ = definition
        return func
    return decorator


# Fan-out helpers

async def snapshot_targets(ctx: CommandContext, clusters: Optional[str],
                           require_non_empty: bool = True) -> List[ConnectionRecord]:
    """Resolve ``--clusters`` (or the active cluster) into record snapshots."""
    targets = await resolve_targets(parse_cluster_targets(clusters), ctx.registry, require_non_empty)
    return await ctx.registry.snapshot(targets)


def validate_is_not_cloud(records: Sequence[ConnectionRecord], message: str) -> None:
    for record in records:
        if record.cloud_managed:
            raise CloudClusterNotSupportedError(message, record.identifier)


def select_bucket(record: ConnectionRecord, bucket: Optional[str]) -> str:
    """The explicit bucket, else the cluster's default bucket."""
    selected = bucket or record.default_bucket
    if not selected:
        raise BucketNotSelectedError(record.identifier)
    return selected


def select_scope(record: ConnectionRecord, scope: Optional[str]) -> Optional[str]:
    return scope or record.default_scope


def select_collection(record: ConnectionRecord, collection: Optional[str]) -> Optional[str]:
    return collection or record.default_collection


def with_client(ctx: CommandContext,
                call: Callable[[ClusterClient, ConnectionRecord, float, CancellationToken], Awaitable[Any]]
                ) -> Operation:
    """Wrap a client call as a fan-out operation owning its own client."""
    async def operation(record: ConnectionRecord, deadline: float, token: CancellationToken) -> Any:
        async with ctx.client_factory(record) as client:
            return await call(client, record, deadline, token)
    return operation


async def fan_out(ctx: CommandContext, records: Sequence[ConnectionRecord],
                  call: Callable[[ClusterClient, ConnectionRecord, float, CancellationToken], Awaitable[Any]],
                  kind: OperationKind) -> List[PerTargetOutcome]:
    return await ctx.executor.execute_records(records, with_client(ctx, call), ctx.token, kind)


def report_tally(outcomes: Sequence[PerTargetOutcome], items_per_target: int = 1,
                 strict: bool = False) -> CommandOutput:
    """Tally output for mutation commands.

    Raises:
        FanOutFailedError: If every target failed and ``strict``
    """
    failures = [outcome for outcome in outcomes if not outcome.succeeded]
    if strict and outcomes and len(failures) == len(outcomes):
        raise FanOutFailedError({outcome.cluster: f"{outcome.reason.value} - {outcome.message}"
                                 for outcome in failures})
    result = tally(outcomes, items_per_target=items_per_target)
    return CommandOutput(rows=[result.to_dict()], warnings=[outcome.describe() for outcome in failures])
