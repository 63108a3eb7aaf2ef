"""
Per-target outcomes of a fan-out and the aggregated results built from them.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Generic, List, Optional, TypeVar


T = TypeVar("T")


class FailureReason(str, Enum):
    """Why a per-target operation did not succeed."""
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"
    OPERATION_FAILED = "operation_failed"


@dataclass(frozen=True)
class PerTargetOutcome(Generic[T]):
    """Result of running one operation against one cluster."""
    cluster: str
    value: Optional[T] = None
    reason: Optional[FailureReason] = None
    message: Optional[str] = None
    error: Optional[BaseException] = field(default=None, compare=False, repr=False)

    @classmethod
    def success(cls, cluster: str, value: Optional[T] = None) -> "PerTargetOutcome[T]":
        return cls(cluster=cluster, value=value)

    @classmethod
    def failure(cls, cluster: str, reason: FailureReason, message: str,
                error: Optional[BaseException] = None) -> "PerTargetOutcome[T]":
        return cls(cluster=cluster, reason=reason, message=message, error=error)

    @property
    def succeeded(self) -> bool:
        return self.reason is None

    def describe(self) -> str:
        """One-line description used in warnings."""
        if self.succeeded:
            return f"{self.cluster}: ok"
        return f"{self.cluster}: {self.reason.value} - {self.message}"


@dataclass
class TallyResult:
    """Counts produced by bulk-mutation commands."""
    succeeded: int = 0
    failed: int = 0

    @property
    def processed(self) -> int:
        return self.succeeded + self.failed

    def to_dict(self) -> Dict[str, int]:
        return {
            "processed": self.processed,
            "success": self.succeeded,
            "failed": self.failed
        }


@dataclass
class MergedResult:
    """Rows from every successful target, plus the targets that failed."""
    rows: List[Dict[str, Any]] = field(default_factory=list)
    failures: List[PerTargetOutcome] = field(default_factory=list)

    @property
    def warnings(self) -> List[str]:
        return [outcome.describe() for outcome in self.failures]
