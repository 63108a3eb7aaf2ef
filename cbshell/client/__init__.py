"""
Clients for the REST services of a cluster.
"""

from .http_client import ClusterClient, Service
from .requests import ManagementRequest

__all__ = [
    "ClusterClient",
    "Service",
    "ManagementRequest",
]
