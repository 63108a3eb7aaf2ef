"""
Commands showing and changing the active selection.
"""

from typing import Optional

from .base import CommandContext, CommandOutput, arg, command

CLUSTER_FIELDS = ("cluster", "username", "bucket", "scope", "collection", "cloud_organization")
CLOUD_FIELDS = ("cloud_organization", "cloud", "project")


async def _selection_row(ctx: CommandContext, cloud: bool = False):
    selection = (await ctx.registry.active_selection()).model_dump()
    fields = CLOUD_FIELDS if cloud else CLUSTER_FIELDS
    return {name: selection[name] or "" for name in fields}


@command("use", "show the currently active selection",
         arg("--cloud", action="store_true", help="show the active cloud selection instead"))
async def use(ctx: CommandContext, cloud: bool = False) -> CommandOutput:
    return CommandOutput(rows=[await _selection_row(ctx, cloud)])


@command("use cluster", "set the active cluster", arg("identifier", help="the identifier of the cluster"))
async def use_cluster(ctx: CommandContext, identifier: str) -> CommandOutput:
    await ctx.registry.set_active(identifier)
    return CommandOutput(rows=[await _selection_row(ctx)])


@command("use bucket", "set the default bucket of the active cluster",
         arg("name", help="the name of the bucket"))
async def use_bucket(ctx: CommandContext, name: str) -> CommandOutput:
    await ctx.registry.set_active_bucket(None, name)
    return CommandOutput(rows=[await _selection_row(ctx)])


@command("use scope", "set the default scope of the active cluster",
         arg("name", help="the name of the scope"))
async def use_scope(ctx: CommandContext, name: str) -> CommandOutput:
    await ctx.registry.set_active_scope(None, name)
    return CommandOutput(rows=[await _selection_row(ctx)])


@command("use collection", "set the default collection of the active cluster",
         arg("name", help="the name of the collection"))
async def use_collection(ctx: CommandContext, name: str) -> CommandOutput:
    await ctx.registry.set_active_collection(None, name)
    return CommandOutput(rows=[await _selection_row(ctx)])


@command("use cloud", "set the active cloud", arg("name", help="the name of the cloud"))
async def use_cloud(ctx: CommandContext, name: Optional[str]) -> CommandOutput:
    await ctx.registry.set_active_cloud(name)
    return CommandOutput(rows=[await _selection_row(ctx, cloud=True)])


@command("use cloud-organization", "set the active cloud organization",
         arg("identifier", help="the identifier of the cloud organization"))
async def use_cloud_organization(ctx: CommandContext, identifier: str) -> CommandOutput:
    await ctx.registry.set_active_cloud_organization(identifier)
    return CommandOutput(rows=[await _selection_row(ctx, cloud=True)])


@command("use project", "set the active project of the active cloud organization",
         arg("name", help="the name of the project"))
async def use_project(ctx: CommandContext, name: str) -> CommandOutput:
    await ctx.registry.set_active_project(name)
    return CommandOutput(rows=[await _selection_row(ctx, cloud=True)])
