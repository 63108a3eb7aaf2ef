"""
Query, analytics and search commands.
"""

import json
from typing import Any, Dict, Optional

from ..exceptions import CommandUsageError
from ..execution.aggregator import merge
from ..models.cluster import OperationKind
from .base import (
    CommandContext,
    CommandOutput,
    CLUSTERS_ARGUMENT,
    arg,
    command,
    fan_out,
    snapshot_targets
)

PARAMETERS_ARGUMENT = arg("--params", help="named parameters as a JSON object, e.g. '{\"name\": \"x\"}'")


def _parameters(name: str, params: Optional[str]) -> Optional[Dict[str, Any]]:
    if params is None:
        return None
    try:
        parameters = json.loads(params)
    except json.JSONDecodeError as e:
        raise CommandUsageError(f"{name}: --params is not valid JSON: {e}", command=name)
    if not isinstance(parameters, dict):
        raise CommandUsageError(f"{name}: --params must be a JSON object", command=name)
    return parameters


@command("query", "run a query statement", arg("statement", help="the statement to run"),
         PARAMETERS_ARGUMENT, CLUSTERS_ARGUMENT)
async def query(ctx: CommandContext, statement: str, params: Optional[str] = None,
                clusters: Optional[str] = None) -> CommandOutput:
    parameters = _parameters("query", params)
    records = await snapshot_targets(ctx, clusters)

    async def run(client, record, deadline, token):
        return await client.query(statement, deadline, token, parameters=parameters)

    merged = merge(await fan_out(ctx, records, run, OperationKind.QUERY))
    return CommandOutput(rows=merged.rows, warnings=merged.warnings)


@command("analytics", "run an analytics statement", arg("statement", help="the statement to run"),
         PARAMETERS_ARGUMENT, CLUSTERS_ARGUMENT)
async def analytics(ctx: CommandContext, statement: str, params: Optional[str] = None,
                    clusters: Optional[str] = None) -> CommandOutput:
    parameters = _parameters("analytics", params)
    records = await snapshot_targets(ctx, clusters)

    async def run(client, record, deadline, token):
        return await client.analytics(statement, deadline, token, parameters=parameters)

    merged = merge(await fan_out(ctx, records, run, OperationKind.ANALYTICS))
    return CommandOutput(rows=merged.rows, warnings=merged.warnings)


@command("search", "run a query string search against an index",
         arg("index", help="the name of the search index"),
         arg("query", help="the query string"),
         arg("--limit", type=int, help="the maximum number of hits per cluster"),
         CLUSTERS_ARGUMENT)
async def search(ctx: CommandContext, index: str, query: str, limit: Optional[int] = None,
                 clusters: Optional[str] = None) -> CommandOutput:
    records = await snapshot_targets(ctx, clusters)

    async def run(client, record, deadline, token):
        return await client.search(index, query, deadline, token, limit=limit)

    merged = merge(await fan_out(ctx, records, run, OperationKind.SEARCH))
    return CommandOutput(rows=merged.rows, warnings=merged.warnings)
