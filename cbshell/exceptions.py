"""
Custom exception classes for cbshell.

This module defines the exception hierarchy used by the cluster registry, the
target resolver, the fan-out executor and the command layer.
"""

import logging
from typing import Optional, Dict, Any, List
from enum import Enum


logger = logging.getLogger(__name__)


class ErrorCode(str, Enum):
    """Standard error codes for the shell."""

    # General errors
    INTERNAL_ERROR = "INTERNAL_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    STORAGE_ERROR = "STORAGE_ERROR"

    # Registry and resolution errors
    CLUSTER_NOT_FOUND = "CLUSTER_NOT_FOUND"
    CLUSTER_ALREADY_EXISTS = "CLUSTER_ALREADY_EXISTS"
    CLOUD_ORGANIZATION_NOT_FOUND = "CLOUD_ORGANIZATION_NOT_FOUND"
    NO_ACTIVE_CLUSTER = "NO_ACTIVE_CLUSTER"
    NO_MATCHING_CLUSTERS = "NO_MATCHING_CLUSTERS"

    # Per-target execution errors
    TIMEOUT = "TIMEOUT"
    CANCELLED = "CANCELLED"
    OPERATION_FAILED = "OPERATION_FAILED"
    FAN_OUT_FAILED = "FAN_OUT_FAILED"

    # Command errors
    CLOUD_NOT_SUPPORTED = "CLOUD_NOT_SUPPORTED"
    BUCKET_NOT_SELECTED = "BUCKET_NOT_SELECTED"


class CBShellError(Exception):
    """Base exception class for all cbshell errors.

    Carries a standardized error code, a human-readable message and a
    dictionary of additional context.
    """

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None
    ):
        """Initialize the exception.

        Args:
            message: Human-readable error message
            error_code: Standardized error code
            details: Additional error context and details
            cause: The underlying exception that caused this error
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.cause = cause

        logger.debug(f"Exception created: {error_code.value} - {message}", exc_info=cause)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary format for shell output."""
        result = {
            "error": self.error_code.value,
            "message": self.message,
            "details": dict(self.details)
        }

        if self.cause:
            result["details"]["cause"] = str(self.cause)
            result["details"]["cause_type"] = type(self.cause).__name__

        return result


# Configuration and Storage Exceptions

class ConfigurationError(CBShellError):
    """Raised when the shell configuration cannot be loaded or is invalid."""

    def __init__(self, message: str, path: Optional[str] = None, cause: Optional[Exception] = None):
        super().__init__(
            message=message,
            error_code=ErrorCode.CONFIGURATION_ERROR,
            details={"path": path} if path else {},
            cause=cause
        )
        self.path = path


class StorageBackendError(CBShellError):
    """Raised when a storage backend operation fails."""

    def __init__(self, message: str, backend_type: str, operation: str, cause: Optional[Exception] = None):
        super().__init__(
            message=message,
            error_code=ErrorCode.STORAGE_ERROR,
            details={"backend_type": backend_type, "operation": operation},
            cause=cause
        )
        self.backend_type = backend_type
        self.operation = operation


# Registry Exceptions

class ClusterRegistryError(CBShellError):
    """Base exception for cluster registry operations."""
    pass


class ClusterNotFoundError(ClusterRegistryError):
    """Raised when a cluster identifier is not registered."""

    def __init__(self, cluster_id: str, available_clusters: Optional[List[str]] = None):
        message = f"Cluster '{cluster_id}' not found"
        if available_clusters:
            message += f". Available clusters: {', '.join(available_clusters)}"
        super().__init__(
            message=message,
            error_code=ErrorCode.CLUSTER_NOT_FOUND,
            details={"cluster_id": cluster_id}
        )
        self.cluster_id = cluster_id
        self.available_clusters = available_clusters or []


class ClusterAlreadyExistsError(ClusterRegistryError):
    """Raised when trying to register a cluster with an existing identifier."""

    def __init__(self, cluster_id: str):
        super().__init__(
            message=f"Cluster '{cluster_id}' already exists in registry",
            error_code=ErrorCode.CLUSTER_ALREADY_EXISTS,
            details={"cluster_id": cluster_id}
        )
        self.cluster_id = cluster_id


class ClusterValidationError(ClusterRegistryError):
    """Raised when a cluster definition fails validation."""

    def __init__(self, cluster_id: str, validation_errors: List[str]):
        super().__init__(
            message=f"Cluster '{cluster_id}' validation failed: {'; '.join(validation_errors)}",
            error_code=ErrorCode.VALIDATION_ERROR,
            details={"cluster_id": cluster_id, "validation_errors": validation_errors}
        )
        self.cluster_id = cluster_id
        self.validation_errors = validation_errors


class CloudOrganizationNotFoundError(ClusterRegistryError):
    """Raised when a cloud organization identifier is not registered."""

    def __init__(self, organization_id: str):
        super().__init__(
            message=f"Cloud organization '{organization_id}' not found",
            error_code=ErrorCode.CLOUD_ORGANIZATION_NOT_FOUND,
            details={"organization_id": organization_id}
        )
        self.organization_id = organization_id


# Target Resolution Exceptions

class TargetResolutionError(CBShellError):
    """Base exception for target resolution failures."""
    pass


class NoActiveClusterError(TargetResolutionError):
    """Raised when no explicit target was given and no cluster is active."""

    def __init__(self):
        super().__init__(
            message="No active cluster - register a cluster or use --clusters",
            error_code=ErrorCode.NO_ACTIVE_CLUSTER
        )


class NoMatchingClustersError(TargetResolutionError):
    """Raised when explicit targets resolve to an empty set."""

    def __init__(self, patterns: List[str]):
        super().__init__(
            message=f"No registered clusters match: {', '.join(patterns)}",
            error_code=ErrorCode.NO_MATCHING_CLUSTERS,
            details={"patterns": patterns}
        )
        self.patterns = patterns


# Per-target Execution Exceptions

class OperationError(CBShellError):
    """Base exception for failures of a single per-target operation."""

    def __init__(self, message: str, error_code: ErrorCode, cluster_id: Optional[str] = None,
                 cause: Optional[Exception] = None):
        super().__init__(
            message=message,
            error_code=error_code,
            details={"cluster_id": cluster_id} if cluster_id else {},
            cause=cause
        )
        self.cluster_id = cluster_id


class OperationTimeoutError(OperationError):
    """Raised when an operation exceeds its cluster's configured deadline."""

    def __init__(self, timeout: float, cluster_id: Optional[str] = None, cause: Optional[Exception] = None):
        super().__init__(
            message=f"Operation timed out after {timeout:g}s",
            error_code=ErrorCode.TIMEOUT,
            cluster_id=cluster_id,
            cause=cause
        )
        self.timeout = timeout


class OperationCancelledError(OperationError):
    """Raised when an operation is abandoned because its token fired."""

    def __init__(self, cluster_id: Optional[str] = None):
        super().__init__(
            message="Operation cancelled",
            error_code=ErrorCode.CANCELLED,
            cluster_id=cluster_id
        )


class OperationFailedError(OperationError):
    """Raised when the remote cluster rejected or failed a request."""

    def __init__(self, reason: str, cluster_id: Optional[str] = None,
                 status_code: Optional[int] = None, cause: Optional[Exception] = None):
        super().__init__(
            message=reason,
            error_code=ErrorCode.OPERATION_FAILED,
            cluster_id=cluster_id,
            cause=cause
        )
        self.reason = reason
        self.status_code = status_code
        if status_code is not None:
            self.details["status_code"] = status_code


class FanOutFailedError(CBShellError):
    """Raised when every target of a fan-out failed."""

    def __init__(self, failures: Dict[str, str]):
        summary = "; ".join(f"{cluster}: {reason}" for cluster, reason in failures.items())
        super().__init__(
            message=f"All targets failed - {summary}",
            error_code=ErrorCode.FAN_OUT_FAILED,
            details={"failures": failures}
        )
        self.failures = failures


# Command Exceptions

class CloudClusterNotSupportedError(CBShellError):
    """Raised when a command cannot run against a cloud-managed cluster."""

    def __init__(self, message: str, cluster_id: str):
        super().__init__(
            message=message,
            error_code=ErrorCode.CLOUD_NOT_SUPPORTED,
            details={"cluster_id": cluster_id}
        )
        self.cluster_id = cluster_id


class BucketNotSelectedError(CBShellError):
    """Raised when a command needs a bucket and none is given or active."""

    def __init__(self, cluster_id: Optional[str] = None):
        super().__init__(
            message="Could not auto-select a bucket - please use --bucket instead",
            error_code=ErrorCode.BUCKET_NOT_SELECTED,
            details={"cluster_id": cluster_id} if cluster_id else {}
        )
        self.cluster_id = cluster_id


class CommandUsageError(CBShellError):
    """Raised when a command line does not match the command's arguments."""

    def __init__(self, message: str, command: Optional[str] = None):
        super().__init__(
            message=message,
            error_code=ErrorCode.VALIDATION_ERROR,
            details={"command": command} if command else {}
        )
        self.command = command
