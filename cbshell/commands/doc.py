"""
Key-value document commands.

``doc upsert`` and ``doc remove`` report a tally over documents: each target
counts its own per-document successes and failures, and a target that fails
as a whole counts every document as failed.
"""

import json
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

import aiofiles

from ..exceptions import (
    CommandUsageError,
    OperationCancelledError,
    OperationFailedError,
    OperationTimeoutError
)
from ..execution.aggregator import merge
from ..models.cluster import OperationKind
from ..models.outcome import TallyResult
from ..utils.logging import get_logger
from .base import (
    CommandContext,
    CommandOutput,
    BUCKET_ARGUMENT,
    CLUSTERS_ARGUMENT,
    COLLECTION_ARGUMENT,
    SCOPE_ARGUMENT,
    arg,
    command,
    fan_out,
    report_tally,
    select_bucket,
    select_collection,
    select_scope,
    snapshot_targets
)

logger = get_logger(__name__)

INPUT_ARGUMENTS = (
    arg("--input", help="JSON file holding a list of documents"),
    arg("--id-column", default="id", help="the field holding the document id in --input rows"),
    arg("--content-column", default="content", help="the field holding the document content in --input rows"),
)


async def read_documents(path: str, id_column: str = "id",
                         content_column: Optional[str] = "content") -> List[Tuple[str, Any]]:
    """Read ``(id, content)`` pairs from a JSON list of rows.

    With no ``content_column`` the content is None, which ``doc remove`` uses.
    A row without ``content_column`` uses the rest of the row as content.
    """
    try:
        async with aiofiles.open(path, 'r', encoding='utf-8') as f:
            rows = json.loads(await f.read())
    except OSError as e:
        raise CommandUsageError(f"Could not read input file {path}: {e}")
    except UnicodeDecodeError as e:
        raise CommandUsageError(f"Input file {path} is not UTF-8 text: {e}")
    except json.JSONDecodeError as e:
        raise CommandUsageError(f"Input file {path} is not valid JSON: {e}")

    if isinstance(rows, dict):
        rows = [rows]
    if not isinstance(rows, list):
        raise CommandUsageError(f"Input file {path} must hold a JSON object or a list of objects")

    documents = []
    for index, row in enumerate(rows):
        if not isinstance(row, dict) or id_column not in row:
            raise CommandUsageError(f"Row {index} of {path} has no '{id_column}' field")
        content = None
        if content_column:
            if content_column in row:
                content = row[content_column]
            else:
                content = {key: value for key, value in row.items() if key != id_column}
        documents.append((str(row[id_column]), content))
    return documents


def _parse_content(content: str) -> Any:
    try:
        return json.loads(content)
    except json.JSONDecodeError:
        return content


def _locations(records, bucket, scope, collection) -> Dict[str, Tuple[str, Optional[str], Optional[str]]]:
    """Resolve bucket, scope and collection per target before any request is sent."""
    return {
        record.identifier: (select_bucket(record, bucket),
                            select_scope(record, scope),
                            select_collection(record, collection))
        for record in records
    }


async def _tally_documents(cluster: str, action: str, keys: Sequence[str],
                           apply: Callable[[int], Awaitable[None]]) -> TallyResult:
    """Apply a per-document call in order and count the outcome of each document.

    A rejected document counts as failed and the loop moves on. A timeout or
    cancellation ends the loop; that document and every one not yet attempted
    count as failed, while documents already done keep their success.
    """
    result = TallyResult()
    for index, key in enumerate(keys):
        try:
            await apply(index)
        except OperationFailedError as e:
            logger.debug(f"{action} of '{key}' failed on '{cluster}': {e.message}")
            result.failed += 1
        except (OperationTimeoutError, OperationCancelledError) as e:
            remaining = len(keys) - index
            logger.debug(f"{action} on '{cluster}' stopped at '{key}', {remaining} documents left: {e.message}")
            result.failed += remaining
            break
        else:
            result.succeeded += 1
    return result


@command("doc get", "fetch a document", arg("id", help="the document id"),
         BUCKET_ARGUMENT, SCOPE_ARGUMENT, COLLECTION_ARGUMENT, CLUSTERS_ARGUMENT)
async def doc_get(ctx: CommandContext, id: str, bucket: Optional[str] = None, scope: Optional[str] = None,
                  collection: Optional[str] = None, clusters: Optional[str] = None) -> CommandOutput:
    records = await snapshot_targets(ctx, clusters)
    locations = _locations(records, bucket, scope, collection)

    async def get(client, record, deadline, token):
        target_bucket, target_scope, target_collection = locations[record.identifier]
        return await client.get_document(target_bucket, id, deadline, token,
                                         scope=target_scope, collection=target_collection)

    merged = merge(await fan_out(ctx, records, get, OperationKind.DATA))
    return CommandOutput(rows=merged.rows, warnings=merged.warnings)


@command("doc upsert", "create or replace documents",
         arg("id", nargs="?", help="the document id"),
         arg("content", nargs="?", help="the document content, JSON"),
         *INPUT_ARGUMENTS,
         arg("--expiry", type=int, help="the document expiry in seconds"),
         BUCKET_ARGUMENT, SCOPE_ARGUMENT, COLLECTION_ARGUMENT, CLUSTERS_ARGUMENT)
async def doc_upsert(ctx: CommandContext, id: Optional[str] = None, content: Optional[str] = None,
                     input: Optional[str] = None, id_column: str = "id", content_column: str = "content",
                     expiry: Optional[int] = None, bucket: Optional[str] = None, scope: Optional[str] = None,
                     collection: Optional[str] = None, clusters: Optional[str] = None) -> CommandOutput:
    documents: List[Tuple[str, Any]] = []
    if id is not None:
        if content is None:
            raise CommandUsageError("doc upsert: content is required with an id", command="doc upsert")
        documents.append((id, _parse_content(content)))
    if input:
        documents.extend(await read_documents(input, id_column, content_column))
    if not documents:
        raise CommandUsageError("doc upsert: give an id and content, or --input", command="doc upsert")

    records = await snapshot_targets(ctx, clusters)
    locations = _locations(records, bucket, scope, collection)

    async def upsert(client, record, deadline, token):
        target_bucket, target_scope, target_collection = locations[record.identifier]

        async def upsert_one(index):
            key, value = documents[index]
            await client.upsert_document(target_bucket, key, value, deadline, token,
                                         scope=target_scope, collection=target_collection, expiry=expiry)

        return await _tally_documents(record.identifier, "Upsert", [key for key, _ in documents], upsert_one)

    outcomes = await fan_out(ctx, records, upsert, OperationKind.DATA)
    return report_tally(outcomes, items_per_target=len(documents))


@command("doc remove", "remove documents",
         arg("id", nargs="?", help="the document id"),
         arg("--input", help="JSON file holding a list of rows naming the documents"),
         arg("--id-column", default="id", help="the field holding the document id in --input rows"),
         BUCKET_ARGUMENT, SCOPE_ARGUMENT, COLLECTION_ARGUMENT, CLUSTERS_ARGUMENT)
async def doc_remove(ctx: CommandContext, id: Optional[str] = None, input: Optional[str] = None,
                     id_column: str = "id", bucket: Optional[str] = None, scope: Optional[str] = None,
                     collection: Optional[str] = None, clusters: Optional[str] = None) -> CommandOutput:
    keys: List[str] = [id] if id is not None else []
    if input:
        keys.extend(key for key, _ in await read_documents(input, id_column, content_column=None))
    if not keys:
        raise CommandUsageError("doc remove: give an id or --input", command="doc remove")

    records = await snapshot_targets(ctx, clusters)
    locations = _locations(records, bucket, scope, collection)

    async def remove(client, record, deadline, token):
        target_bucket, target_scope, target_collection = locations[record.identifier]

        async def remove_one(index):
            await client.remove_document(target_bucket, keys[index], deadline, token,
                                         scope=target_scope, collection=target_collection)

        return await _tally_documents(record.identifier, "Remove", keys, remove_one)

    outcomes = await fan_out(ctx, records, remove, OperationKind.DATA)
    return report_tally(outcomes, items_per_target=len(keys))
