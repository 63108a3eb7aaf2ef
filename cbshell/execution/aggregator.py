"""
Reducers from per-target outcomes to the result a command reports.
"""

from typing import Any, Dict, Iterable, List, Sequence

from ..models.outcome import PerTargetOutcome, TallyResult, MergedResult
from ..exceptions import FanOutFailedError
from ..utils.logging import get_logger

logger = get_logger(__name__)


def tally(outcomes: Sequence[PerTargetOutcome], items_per_target: int = 1) -> TallyResult:
    """Count successes and failures.

    A successful target whose payload is itself a TallyResult contributes
    that tally, so bulk commands can count items rather than targets. A failed
    target counts as ``items_per_target`` failures.
    """
    result = TallyResult()
    for outcome in outcomes:
        if not outcome.succeeded:
            result.failed += items_per_target
        elif isinstance(outcome.value, TallyResult):
            result.succeeded += outcome.value.succeeded
            result.failed += outcome.value.failed
        else:
            result.succeeded += 1
    return result


def merge(outcomes: Sequence[PerTargetOutcome],
          tag_cluster: bool = True,
          cluster_field: str = "cluster",
          fail_if_all_failed: bool = True) -> MergedResult:
    """Flatten successful payloads into one row list.

    Payloads may be None (no rows), a mapping (one row) or an iterable of
    rows. Rows that are not mappings are wrapped as ``{"value": row}``. The
    origin tag replaces any payload field of the same name.

    Raises:
        FanOutFailedError: If every target failed and ``fail_if_all_failed``
    """
    result = MergedResult()

    for outcome in outcomes:
        if not outcome.succeeded:
            result.failures.append(outcome)
            continue
        for row in _rows_of(outcome.value):
            if tag_cluster:
                row = {cluster_field: outcome.cluster,
                       **{key: value for key, value in row.items() if key != cluster_field}}
            result.rows.append(row)

    if outcomes and len(result.failures) == len(outcomes) and fail_if_all_failed:
        raise FanOutFailedError({outcome.cluster: f"{outcome.reason.value} - {outcome.message}"
                                 for outcome in result.failures})

    for warning in result.warnings:
        logger.debug(f"Target failed: {warning}")

    return result


def _rows_of(payload: Any) -> Iterable[Dict[str, Any]]:
    if payload is None:
        return []
    if isinstance(payload, dict):
        return [dict(payload)]
    if isinstance(payload, (str, bytes)):
        return [{"value": payload}]
    rows: List[Dict[str, Any]] = []
    for item in payload:
        rows.append(dict(item) if isinstance(item, dict) else {"value": item})
    return rows
