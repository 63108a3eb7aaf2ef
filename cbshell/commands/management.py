"""
Bucket, scope, collection, user and node management commands.
"""

from typing import Any, Dict, List, Optional

from ..client.requests import ManagementRequest
from ..exceptions import OperationFailedError
from ..execution.aggregator import merge
from ..models.cluster import OperationKind
from .base import (
    CommandContext,
    CommandOutput,
    BUCKET_ARGUMENT,
    CLUSTERS_ARGUMENT,
    SCOPE_ARGUMENT,
    arg,
    command,
    fan_out,
    report_tally,
    select_bucket,
    select_scope,
    snapshot_targets,
    validate_is_not_cloud
)

DEFAULT_SCOPE = "_default"


def _expect(body: Any, kind: type, cluster: str, what: str) -> Any:
    if not isinstance(body, kind):
        raise OperationFailedError(f"Unexpected {what} response", cluster)
    return body


def _role_names(roles: List[Dict[str, Any]]) -> str:
    names = []
    for role in roles or []:
        name = role.get("role", "")
        targets = [role[key] for key in ("bucket_name", "scope_name", "collection_name") if role.get(key)]
        if targets:
            name = f"{name}[{':'.join(targets)}]"
        names.append(name)
    return ",".join(names)


def _user_row(user: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "username": user.get("id", ""),
        "display_name": user.get("name", ""),
        "domain": user.get("domain", ""),
        "roles": _role_names(user.get("roles")),
    }


# Buckets

@command("buckets", "list the buckets of each cluster", CLUSTERS_ARGUMENT)
async def buckets(ctx: CommandContext, clusters: Optional[str] = None) -> CommandOutput:
    records = await snapshot_targets(ctx, clusters)

    async def get_buckets(client, record, deadline, token):
        body = await client.management_request(ManagementRequest.get_buckets(), deadline, token)
        return [
            {
                "name": bucket.get("name"),
                "type": bucket.get("bucketType"),
                "replicas": bucket.get("replicaNumber"),
                "ram_quota": (bucket.get("quota") or {}).get("ram"),
                "items": (bucket.get("basicStats") or {}).get("itemCount"),
            }
            for bucket in _expect(body, list, record.identifier, "buckets")
        ]

    merged = merge(await fan_out(ctx, records, get_buckets, OperationKind.MANAGEMENT))
    return CommandOutput(rows=merged.rows, warnings=merged.warnings)


# Scopes and collections

async def _get_scopes(client, record, bucket, deadline, token) -> List[Dict[str, Any]]:
    body = await client.management_request(ManagementRequest.get_scopes(bucket), deadline, token)
    return _expect(body, dict, record.identifier, "scopes").get("scopes") or []


@command("scopes", "list the scopes of a bucket", BUCKET_ARGUMENT, CLUSTERS_ARGUMENT)
async def scopes(ctx: CommandContext, bucket: Optional[str] = None, clusters: Optional[str] = None) -> CommandOutput:
    records = await snapshot_targets(ctx, clusters)
    buckets = {record.identifier: select_bucket(record, bucket) for record in records}

    async def list_scopes(client, record, deadline, token):
        target_bucket = buckets[record.identifier]
        return [{"scope": scope.get("name"), "bucket": target_bucket}
                for scope in await _get_scopes(client, record, target_bucket, deadline, token)]

    merged = merge(await fan_out(ctx, records, list_scopes, OperationKind.MANAGEMENT))
    return CommandOutput(rows=merged.rows, warnings=merged.warnings)


@command("scopes create", "create a scope", arg("name", help="the name of the scope"),
         BUCKET_ARGUMENT, CLUSTERS_ARGUMENT)
async def scopes_create(ctx: CommandContext, name: str, bucket: Optional[str] = None,
                        clusters: Optional[str] = None) -> CommandOutput:
    records = await snapshot_targets(ctx, clusters)
    validate_is_not_cloud(records, "scopes create cannot be run against cloud clusters")
    buckets = {record.identifier: select_bucket(record, bucket) for record in records}

    async def create(client, record, deadline, token):
        request = ManagementRequest.create_scope(buckets[record.identifier], name)
        await client.management_request(request, deadline, token)

    outcomes = await fan_out(ctx, records, create, OperationKind.MANAGEMENT)
    return report_tally(outcomes, strict=True)


@command("scopes drop", "drop a scope", arg("name", help="the name of the scope"),
         BUCKET_ARGUMENT, CLUSTERS_ARGUMENT)
async def scopes_drop(ctx: CommandContext, name: str, bucket: Optional[str] = None,
                      clusters: Optional[str] = None) -> CommandOutput:
    records = await snapshot_targets(ctx, clusters)
    validate_is_not_cloud(records, "scopes drop cannot be run against cloud clusters")
    buckets = {record.identifier: select_bucket(record, bucket) for record in records}

    async def drop(client, record, deadline, token):
        request = ManagementRequest.drop_scope(buckets[record.identifier], name)
        await client.management_request(request, deadline, token)

    outcomes = await fan_out(ctx, records, drop, OperationKind.MANAGEMENT)
    return report_tally(outcomes, strict=True)


@command("collections", "list the collections of a bucket", BUCKET_ARGUMENT, SCOPE_ARGUMENT, CLUSTERS_ARGUMENT)
async def collections(ctx: CommandContext, bucket: Optional[str] = None, scope: Optional[str] = None,
                      clusters: Optional[str] = None) -> CommandOutput:
    records = await snapshot_targets(ctx, clusters)
    buckets = {record.identifier: select_bucket(record, bucket) for record in records}

    async def list_collections(client, record, deadline, token):
        target_bucket = buckets[record.identifier]
        target_scope = select_scope(record, scope)
        rows = []
        for found in await _get_scopes(client, record, target_bucket, deadline, token):
            if target_scope and found.get("name") != target_scope:
                continue
            for collection in found.get("collections") or []:
                rows.append({
                    "collection": collection.get("name"),
                    "scope": found.get("name"),
                    "max_expiry": collection.get("maxTTL", 0),
                })
        return rows

    merged = merge(await fan_out(ctx, records, list_collections, OperationKind.MANAGEMENT))
    return CommandOutput(rows=merged.rows, warnings=merged.warnings)


@command("collections create", "create a collection", arg("name", help="the name of the collection"),
         BUCKET_ARGUMENT, SCOPE_ARGUMENT,
         arg("--max-expiry", type=int, help="the maximum expiry for documents in this collection, in seconds"),
         CLUSTERS_ARGUMENT)
async def collections_create(ctx: CommandContext, name: str, bucket: Optional[str] = None,
                             scope: Optional[str] = None, max_expiry: Optional[int] = None,
                             clusters: Optional[str] = None) -> CommandOutput:
    records = await snapshot_targets(ctx, clusters)
    validate_is_not_cloud(records, "collections create cannot be run against cloud clusters")
    buckets = {record.identifier: select_bucket(record, bucket) for record in records}

    async def create(client, record, deadline, token):
        request = ManagementRequest.create_collection(
            buckets[record.identifier], select_scope(record, scope) or DEFAULT_SCOPE, name, max_expiry
        )
        await client.management_request(request, deadline, token)

    outcomes = await fan_out(ctx, records, create, OperationKind.MANAGEMENT)
    return report_tally(outcomes, strict=True)


@command("collections drop", "drop a collection", arg("name", help="the name of the collection"),
         BUCKET_ARGUMENT, SCOPE_ARGUMENT, CLUSTERS_ARGUMENT)
async def collections_drop(ctx: CommandContext, name: str, bucket: Optional[str] = None,
                           scope: Optional[str] = None, clusters: Optional[str] = None) -> CommandOutput:
    records = await snapshot_targets(ctx, clusters)
    validate_is_not_cloud(records, "collections drop cannot be run against cloud clusters")
    buckets = {record.identifier: select_bucket(record, bucket) for record in records}

    async def drop(client, record, deadline, token):
        request = ManagementRequest.drop_collection(
            buckets[record.identifier], select_scope(record, scope) or DEFAULT_SCOPE, name
        )
        await client.management_request(request, deadline, token)

    outcomes = await fan_out(ctx, records, drop, OperationKind.MANAGEMENT)
    return report_tally(outcomes, strict=True)


# Users

@command("users", "list the users of each cluster", CLUSTERS_ARGUMENT)
async def users(ctx: CommandContext, clusters: Optional[str] = None) -> CommandOutput:
    records = await snapshot_targets(ctx, clusters)
    validate_is_not_cloud(records, "users cannot be run against cloud clusters")

    async def get_users(client, record, deadline, token):
        body = await client.management_request(ManagementRequest.get_users(), deadline, token)
        return [_user_row(user) for user in _expect(body, list, record.identifier, "users")]

    merged = merge(await fan_out(ctx, records, get_users, OperationKind.MANAGEMENT))
    return CommandOutput(rows=merged.rows, warnings=merged.warnings)


@command("users upsert", "create or update a local user",
         arg("username", help="the username of the user"),
         arg("--roles", required=True, help="comma separated roles, e.g. admin,bucket_admin[travel]"),
         arg("--password", help="the password of the user"),
         arg("--display-name", help="the display name of the user"),
         CLUSTERS_ARGUMENT)
async def users_upsert(ctx: CommandContext, username: str, roles: str, password: Optional[str] = None,
                       display_name: Optional[str] = None, clusters: Optional[str] = None) -> CommandOutput:
    records = await snapshot_targets(ctx, clusters)
    validate_is_not_cloud(records, "users upsert cannot be run against cloud clusters")
    request = ManagementRequest.upsert_user(
        username, [role.strip() for role in roles.split(",") if role.strip()], password, display_name
    )

    async def upsert(client, record, deadline, token):
        await client.management_request(request, deadline, token)

    outcomes = await fan_out(ctx, records, upsert, OperationKind.MANAGEMENT)
    return report_tally(outcomes, strict=True)


@command("users drop", "drop a local user", arg("username", help="the username of the user"), CLUSTERS_ARGUMENT)
async def users_drop(ctx: CommandContext, username: str, clusters: Optional[str] = None) -> CommandOutput:
    records = await snapshot_targets(ctx, clusters)
    validate_is_not_cloud(records, "users drop cannot be run against cloud clusters")

    async def drop(client, record, deadline, token):
        await client.management_request(ManagementRequest.drop_user(username), deadline, token)

    outcomes = await fan_out(ctx, records, drop, OperationKind.MANAGEMENT)
    return report_tally(outcomes, strict=True)


@command("whoami", "show the user each cluster authenticates as", CLUSTERS_ARGUMENT)
async def whoami(ctx: CommandContext, clusters: Optional[str] = None) -> CommandOutput:
    records = await snapshot_targets(ctx, clusters)

    async def get_whoami(client, record, deadline, token):
        body = await client.management_request(ManagementRequest.whoami(), deadline, token)
        return _user_row(_expect(body, dict, record.identifier, "whoami"))

    merged = merge(await fan_out(ctx, records, get_whoami, OperationKind.MANAGEMENT))
    return CommandOutput(rows=merged.rows, warnings=merged.warnings)


# Nodes

@command("nodes", "list the nodes of each cluster", CLUSTERS_ARGUMENT)
async def nodes(ctx: CommandContext, clusters: Optional[str] = None) -> CommandOutput:
    records = await snapshot_targets(ctx, clusters)
    validate_is_not_cloud(records, "nodes cannot be run against cloud clusters")

    async def get_nodes(client, record, deadline, token):
        body = await client.management_request(ManagementRequest.get_nodes(), deadline, token)
        return [
            {
                "hostname": node.get("hostname"),
                "status": node.get("status"),
                "services": ",".join(node.get("services") or []),
                "version": node.get("version"),
                "os": node.get("os"),
                "memory_total": node.get("memoryTotal"),
                "memory_free": node.get("memoryFree"),
            }
            for node in _expect(body, dict, record.identifier, "nodes").get("nodes") or []
        ]

    merged = merge(await fan_out(ctx, records, get_nodes, OperationKind.MANAGEMENT))
    return CommandOutput(rows=merged.rows, warnings=merged.warnings)
