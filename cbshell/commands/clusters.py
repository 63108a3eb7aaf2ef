"""
Commands managing the cluster registry.
"""

from typing import Optional

from pydantic import ValidationError

from ..client.requests import ManagementRequest
from ..exceptions import ClusterValidationError
from ..models.cluster import ConnectionRecord, OperationKind, TlsConfig
from ..registry.resolver import parse_cluster_targets, resolve_targets
from ..utils.logging import get_logger
from .base import (
    CommandContext,
    CommandOutput,
    CLUSTERS_ARGUMENT,
    arg,
    command,
    fan_out,
    snapshot_targets
)

logger = get_logger(__name__)


@command("clusters", "list the registered clusters", CLUSTERS_ARGUMENT)
async def clusters(ctx: CommandContext, clusters: Optional[str] = None) -> CommandOutput:
    active = await ctx.registry.active_cluster_id()
    records = dict(await ctx.registry.list_clusters())

    names = list(records)
    if clusters is not None:
        names = await resolve_targets(parse_cluster_targets(clusters), ctx.registry, require_non_empty=False)

    rows = [{"active": name == active, **records[name].summary()} for name in names if name in records]
    return CommandOutput(rows=rows)


@command("cloud-organizations", "list the registered cloud organizations")
async def cloud_organizations(ctx: CommandContext) -> CommandOutput:
    active = (await ctx.registry.active_selection()).cloud_organization
    rows = [
        {
            "active": organization.identifier == active,
            "identifier": organization.identifier,
            "default_project": organization.default_project or "",
        }
        for organization in await ctx.registry.list_cloud_organizations()
    ]
    return CommandOutput(rows=rows)


@command(
    "clusters register", "register a cluster",
    arg("identifier", help="the identifier of the cluster"),
    arg("connstr", help="the connection string, e.g. couchbase://localhost"),
    arg("--username", required=True, help="the username to authenticate with"),
    arg("--password", required=True, help="the password to authenticate with"),
    arg("--default-bucket", help="the default bucket"),
    arg("--default-scope", help="the default scope"),
    arg("--default-collection", help="the default collection"),
    arg("--cloud-organization", help="the cloud organization managing this cluster"),
    arg("--cloud", action="store_true", help="the cluster is managed by a cloud control plane"),
    arg("--tls-enabled", action="store_true", help="use the TLS ports of the cluster services"),
    arg("--tls-accept-all-certs", action="store_true", help="skip certificate verification"),
    arg("--tls-cert-path", help="CA certificate bundle used for verification"),
    arg("--save", action="store_true", help="persist the registry to the config file"),
)
async def clusters_register(ctx: CommandContext, identifier: str, connstr: str, username: str,
                            password: str, default_bucket: Optional[str] = None,
                            default_scope: Optional[str] = None, default_collection: Optional[str] = None,
                            cloud_organization: Optional[str] = None, cloud: bool = False,
                            tls_enabled: bool = False, tls_accept_all_certs: bool = False,
                            tls_cert_path: Optional[str] = None, save: bool = False) -> CommandOutput:
    try:
        record = ConnectionRecord(
            identifier=identifier,
            connstr=connstr,
            username=username,
            password=password,
            default_bucket=default_bucket,
            default_scope=default_scope,
            default_collection=default_collection,
            cloud_organization=cloud_organization,
            cloud_managed=cloud,
            tls=TlsConfig(enabled=tls_enabled, accept_all_certs=tls_accept_all_certs, cert_path=tls_cert_path)
        )
    except ValidationError as e:
        raise ClusterValidationError(identifier, [error["msg"] for error in e.errors()])

    registered = await ctx.registry.register_cluster(record)
    if save:
        await ctx.registry.persist()
    return CommandOutput(rows=[registered.summary()])


@command(
    "clusters unregister", "remove a cluster from the registry",
    arg("identifier", help="the identifier of the cluster"),
    arg("--save", action="store_true", help="persist the registry to the config file"),
)
async def clusters_unregister(ctx: CommandContext, identifier: str, save: bool = False) -> CommandOutput:
    await ctx.registry.unregister_cluster(identifier)
    if save:
        await ctx.registry.persist()
    return CommandOutput()


@command("clusters health", "check that each cluster answers on its management port", CLUSTERS_ARGUMENT)
async def clusters_health(ctx: CommandContext, clusters: Optional[str] = None) -> CommandOutput:
    records = await snapshot_targets(ctx, clusters)

    async def ping(client, record, deadline, token):
        await client.management_request(ManagementRequest.ping(), deadline, token)

    outcomes = await fan_out(ctx, records, ping, OperationKind.MANAGEMENT)

    rows = []
    for outcome in outcomes:
        row = {"cluster": outcome.cluster, "healthy": outcome.succeeded}
        if not outcome.succeeded:
            row["reason"] = outcome.reason.value
            row["message"] = outcome.message
        rows.append(row)
    return CommandOutput(rows=rows)
