"""Data models package for cbshell."""

# Cluster models
from .cluster import (
    OperationKind,
    ClusterTimeouts,
    TlsConfig,
    ConnectionRecord,
    CloudOrganization,
    ShellConfiguration,
    ActiveSelection,
)

# Fan-out outcome models
from .outcome import (
    FailureReason,
    PerTargetOutcome,
    TallyResult,
    MergedResult,
)

__all__ = [
    "OperationKind",
    "ClusterTimeouts",
    "TlsConfig",
    "ConnectionRecord",
    "CloudOrganization",
    "ShellConfiguration",
    "ActiveSelection",
    "FailureReason",
    "PerTargetOutcome",
    "TallyResult",
    "MergedResult",
]
