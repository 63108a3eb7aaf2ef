"""
Cluster registry and target resolution.
"""

from .cluster_registry import ClusterRegistry
from .resolver import resolve_targets, parse_cluster_targets, is_pattern

__all__ = [
    "ClusterRegistry",
    "resolve_targets",
    "parse_cluster_targets",
    "is_pattern",
]
