"""
Fan-out execution of one operation against many clusters.
"""

import asyncio
import time
from typing import Any, Awaitable, Callable, List, Optional, Sequence

from ..config import get_settings
from ..models.cluster import ConnectionRecord, OperationKind
from ..models.outcome import FailureReason, PerTargetOutcome
from ..registry.cluster_registry import ClusterRegistry
from ..exceptions import (
    CBShellError,
    OperationTimeoutError,
    OperationCancelledError
)
from ..utils.logging import get_logger, LogContext
from .cancellation import CancellationToken

logger = get_logger(__name__)

# (record snapshot, monotonic deadline, token) -> result
Operation = Callable[[ConnectionRecord, float, CancellationToken], Awaitable[Any]]


class FanOutExecutor:
    """Runs an operation against each target and collects one outcome per target.

    Each target runs under its own record's timeout for the operation kind.
    When the token fires, unfinished targets are reported as cancelled and
    their tasks are cancelled and given a grace period to unwind. Outcomes
    are returned in target order whatever the completion order.
    """

    def __init__(self,
                 registry: ClusterRegistry,
                 max_concurrency: Optional[int] = None,
                 cancel_grace_period: Optional[float] = None):
        """Initialize the executor.

        Args:
            registry: Registry the targets' records are snapshotted from
            max_concurrency: Operations allowed in flight at once (settings default)
            cancel_grace_period: Seconds an abandoned operation gets to unwind
        """
        execution = get_settings().execution
        self.registry = registry
        self.max_concurrency = max_concurrency or execution.max_concurrency
        self.cancel_grace_period = (execution.cancel_grace_period
                                    if cancel_grace_period is None else cancel_grace_period)

    async def execute(self,
                      targets: Sequence[str],
                      operation: Operation,
                      token: CancellationToken,
                      kind: OperationKind = OperationKind.MANAGEMENT) -> List[PerTargetOutcome]:
        """Snapshot the targets' records and run the operation against each.

        Raises:
            ClusterNotFoundError: If a target was unregistered after resolution
        """
        records = await self.registry.snapshot(list(targets))
        return await self.execute_records(records, operation, token, kind)

    async def execute_records(self,
                              records: Sequence[ConnectionRecord],
                              operation: Operation,
                              token: CancellationToken,
                              kind: OperationKind = OperationKind.MANAGEMENT) -> List[PerTargetOutcome]:
        """Run the operation against already snapshotted records."""
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def run_single_target(record: ConnectionRecord) -> PerTargetOutcome:
            async with semaphore:
                return await self._run_target(record, operation, token, kind)

        with LogContext("fan_out", logger_name=__name__, kind=OperationKind(kind).value,
                        targets=[record.identifier for record in records]):
            outcomes = await asyncio.gather(*(run_single_target(record) for record in records))

        failed = sum(1 for outcome in outcomes if not outcome.succeeded)
        logger.debug(f"Fan-out over {len(outcomes)} targets finished, {failed} failed")
        return list(outcomes)

    async def _run_target(self,
                          record: ConnectionRecord,
                          operation: Operation,
                          token: CancellationToken,
                          kind: OperationKind) -> PerTargetOutcome:
        cluster = record.identifier
        if token.is_cancelled:
            return PerTargetOutcome.failure(cluster, FailureReason.CANCELLED, "Operation cancelled")

        timeout = record.timeouts.for_kind(kind)
        deadline = time.monotonic() + timeout

        operation_task = asyncio.ensure_future(operation(record, deadline, token))
        cancel_task = asyncio.ensure_future(token.wait())
        try:
            done, _ = await asyncio.wait(
                {operation_task, cancel_task},
                timeout=timeout,
                return_when=asyncio.FIRST_COMPLETED
            )

            if operation_task in done:
                return self._outcome_from_task(cluster, operation_task, timeout)

            await self._abandon(cluster, operation_task)
            if cancel_task in done:
                logger.debug(f"Operation on '{cluster}' cancelled")
                return PerTargetOutcome.failure(cluster, FailureReason.CANCELLED, "Operation cancelled")

            logger.debug(f"Operation on '{cluster}' timed out after {timeout:g}s")
            return PerTargetOutcome.failure(
                cluster, FailureReason.TIMEOUT, f"Operation timed out after {timeout:g}s",
                error=OperationTimeoutError(timeout, cluster)
            )
        finally:
            cancel_task.cancel()
            if not operation_task.done():
                operation_task.cancel()

    def _outcome_from_task(self, cluster: str, task: asyncio.Future, timeout: float) -> PerTargetOutcome:
        try:
            return PerTargetOutcome.success(cluster, task.result())
        except (OperationTimeoutError, asyncio.TimeoutError) as e:
            message = e.message if isinstance(e, CBShellError) else f"Operation timed out after {timeout:g}s"
            return PerTargetOutcome.failure(cluster, FailureReason.TIMEOUT, message, error=e)
        except OperationCancelledError as e:
            return PerTargetOutcome.failure(cluster, FailureReason.CANCELLED, e.message, error=e)
        except asyncio.CancelledError as e:
            return PerTargetOutcome.failure(cluster, FailureReason.CANCELLED, "Operation cancelled", error=e)
        except CBShellError as e:
            logger.debug(f"Operation on '{cluster}' failed: {e.message}")
            return PerTargetOutcome.failure(cluster, FailureReason.OPERATION_FAILED, e.message, error=e)
        except Exception as e:
            logger.warning(f"Operation on '{cluster}' raised {type(e).__name__}: {e}", exc_info=e)
            return PerTargetOutcome.failure(cluster, FailureReason.OPERATION_FAILED, str(e) or type(e).__name__, error=e)

    async def _abandon(self, cluster: str, task: asyncio.Future) -> None:
        """Cancel an operation the executor stopped waiting for."""
        task.cancel()
        task.add_done_callback(_discard_result)
        if self.cancel_grace_period > 0:
            await asyncio.wait({task}, timeout=self.cancel_grace_period)
        if not task.done():
            logger.warning(f"Operation on '{cluster}' did not stop within {self.cancel_grace_period:g}s")


def _discard_result(task: asyncio.Future) -> None:
    if not task.cancelled():
        task.exception()
