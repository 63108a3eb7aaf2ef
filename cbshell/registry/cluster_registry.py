"""
Central registry of cluster connections and the active selection.
"""

import asyncio
from typing import Dict, List, Optional, Tuple

from ..models.cluster import (
    ConnectionRecord,
    CloudOrganization,
    ShellConfiguration,
    ActiveSelection
)
from ..storage.base import StorageBackend
from ..exceptions import (
    ClusterRegistryError,
    ClusterNotFoundError,
    ClusterAlreadyExistsError,
    CloudOrganizationNotFoundError,
    NoActiveClusterError,
    CBShellError
)
from ..utils.logging import get_logger

logger = get_logger(__name__)


class ClusterRegistry:
    """Owns every ConnectionRecord and the active selection.

    All accessors take the registry lock for the duration of the field access
    only. Records leave the registry as copies, so callers may hold them across
    network calls without holding the lock.
    """

    def __init__(self, storage_backend: Optional[StorageBackend] = None):
        """Initialize cluster registry.

        Args:
            storage_backend: Backend used by initialize() and persist(); None keeps
                the registry in memory only
        """
        self.storage = storage_backend

        self._clusters: Dict[str, ConnectionRecord] = {}
        self._organizations: Dict[str, CloudOrganization] = {}

        self._active: Optional[str] = None
        self._active_cloud: Optional[str] = None
        self._active_organization: Optional[str] = None
        self._active_project: Optional[str] = None

        self._lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Load the registry contents from the storage backend."""
        if self.storage is None:
            return

        try:
            await self.storage.initialize()
            configuration = await self.storage.load()
        except CBShellError:
            raise
        except Exception as e:
            logger.error(f"Failed to initialize cluster registry: {e}")
            raise ClusterRegistryError(f"Registry initialization failed: {e}", cause=e)

        async with self._lock:
            self._clusters = {}
            self._organizations = {}
            for record in configuration.clusters:
                if record.identifier in self._clusters:
                    logger.warning(f"Ignoring duplicate cluster '{record.identifier}' in configuration")
                    continue
                self._clusters[record.identifier] = record
            for organization in configuration.cloud_organizations:
                self._organizations[organization.identifier] = organization

            if configuration.active_cluster in self._clusters:
                self._active = configuration.active_cluster
            else:
                if configuration.active_cluster:
                    logger.warning(f"Configured active cluster '{configuration.active_cluster}' is not registered")
                self._active = next(iter(self._clusters), None)

            self._active_organization = next(iter(self._organizations), None)
            if self._active_organization:
                self._active_project = self._organizations[self._active_organization].default_project

        logger.info(f"Loaded {len(self._clusters)} clusters from storage")

    async def persist(self) -> bool:
        """Save the registry contents to the storage backend."""
        if self.storage is None:
            logger.warning("No storage backend configured, registry not persisted")
            return False

        async with self._lock:
            configuration = ShellConfiguration(
                active_cluster=self._active,
                clusters=[record.model_copy(deep=True) for record in self._clusters.values()],
                cloud_organizations=[org.model_copy(deep=True) for org in self._organizations.values()]
            )
        return await self.storage.save(configuration)

    # Clusters

    async def register_cluster(self, record: ConnectionRecord) -> ConnectionRecord:
        """Register a new cluster.

        The first cluster registered into a registry without an active cluster
        becomes active.

        Raises:
            ClusterAlreadyExistsError: If the identifier is already registered
        """
        async with self._lock:
            if record.identifier in self._clusters:
                raise ClusterAlreadyExistsError(record.identifier)

            self._clusters[record.identifier] = record.model_copy(deep=True)
            if self._active is None:
                self._active = record.identifier

            logger.info(f"Registered cluster '{record.identifier}'")
            return record.model_copy(deep=True)

    async def unregister_cluster(self, identifier: str) -> None:
        """Remove a cluster; removing the active cluster leaves none active.

        Raises:
            ClusterNotFoundError: If the identifier is not registered
        """
        async with self._lock:
            self._require(identifier)
            del self._clusters[identifier]
            if self._active == identifier:
                self._active = None
                logger.info(f"Unregistered active cluster '{identifier}', no cluster is active")
            else:
                logger.info(f"Unregistered cluster '{identifier}'")

    async def get_cluster(self, identifier: str) -> ConnectionRecord:
        """Get a copy of a cluster's record.

        Raises:
            ClusterNotFoundError: If the identifier is not registered
        """
        async with self._lock:
            return self._require(identifier).model_copy(deep=True)

    async def list_clusters(self) -> List[Tuple[str, ConnectionRecord]]:
        """Registered clusters in registration order."""
        async with self._lock:
            return [(identifier, record.model_copy(deep=True))
                    for identifier, record in self._clusters.items()]

    async def cluster_identifiers(self) -> List[str]:
        """Registered identifiers in registration order."""
        async with self._lock:
            return list(self._clusters)

    async def snapshot(self, identifiers: List[str]) -> List[ConnectionRecord]:
        """Copies of the records for a fan-out, in the given order.

        Raises:
            ClusterNotFoundError: If any identifier was unregistered meanwhile
        """
        async with self._lock:
            return [self._require(identifier).model_copy(deep=True) for identifier in identifiers]

    # Active selection

    async def active_cluster_id(self) -> Optional[str]:
        async with self._lock:
            return self._active

    async def set_active(self, identifier: str) -> None:
        """Make a registered cluster the active one.

        Raises:
            ClusterNotFoundError: If the identifier is not registered
        """
        async with self._lock:
            self._require(identifier)
            self._active = identifier
            logger.debug(f"Active cluster is now '{identifier}'")

    async def set_active_bucket(self, identifier: Optional[str], bucket: Optional[str]) -> ConnectionRecord:
        """Set a cluster's default bucket; None targets the active cluster."""
        return await self._set_default(identifier, "default_bucket", bucket)

    async def set_active_scope(self, identifier: Optional[str], scope: Optional[str]) -> ConnectionRecord:
        """Set a cluster's default scope; None targets the active cluster."""
        return await self._set_default(identifier, "default_scope", scope)

    async def set_active_collection(self, identifier: Optional[str], collection: Optional[str]) -> ConnectionRecord:
        """Set a cluster's default collection; None targets the active cluster."""
        return await self._set_default(identifier, "default_collection", collection)

    async def active_selection(self) -> ActiveSelection:
        """Snapshot of everything commands fall back to when they name no target."""
        async with self._lock:
            selection = ActiveSelection(
                cloud_organization=self._active_organization,
                cloud=self._active_cloud,
                project=self._active_project
            )
            if self._active is not None:
                record = self._clusters[self._active]
                selection.cluster = record.identifier
                selection.username = record.username
                selection.bucket = record.default_bucket
                selection.scope = record.default_scope
                selection.collection = record.default_collection
                if record.cloud_organization:
                    selection.cloud_organization = record.cloud_organization
            return selection

    # Cloud organizations

    async def register_cloud_organization(self, organization: CloudOrganization) -> None:
        """Register cloud organization credentials.

        Raises:
            ClusterAlreadyExistsError: If the identifier is already registered
        """
        async with self._lock:
            if organization.identifier in self._organizations:
                raise ClusterAlreadyExistsError(organization.identifier)
            self._organizations[organization.identifier] = organization.model_copy(deep=True)
            if self._active_organization is None:
                self._active_organization = organization.identifier
                self._active_project = organization.default_project
            logger.info(f"Registered cloud organization '{organization.identifier}'")

    async def list_cloud_organizations(self) -> List[CloudOrganization]:
        async with self._lock:
            return [org.model_copy(deep=True) for org in self._organizations.values()]

    async def set_active_cloud_organization(self, identifier: str) -> None:
        """Make a registered cloud organization active; resets the active project.

        Raises:
            CloudOrganizationNotFoundError: If the identifier is not registered
        """
        async with self._lock:
            if identifier not in self._organizations:
                raise CloudOrganizationNotFoundError(identifier)
            self._active_organization = identifier
            self._active_project = self._organizations[identifier].default_project

    async def set_active_cloud(self, cloud: Optional[str]) -> None:
        async with self._lock:
            self._active_cloud = cloud

    async def set_active_project(self, project: Optional[str]) -> None:
        """Select a project of the active cloud organization.

        Raises:
            CloudOrganizationNotFoundError: If no cloud organization is active
        """
        async with self._lock:
            if self._active_organization is None:
                raise CloudOrganizationNotFoundError("<none active>")
            self._active_project = project

    # Private helper methods

    def _require(self, identifier: str) -> ConnectionRecord:
        """Look up a record; caller holds the lock."""
        if identifier not in self._clusters:
            raise ClusterNotFoundError(identifier, list(self._clusters))
        return self._clusters[identifier]

    async def _set_default(self, identifier: Optional[str], field: str, value: Optional[str]) -> ConnectionRecord:
        async with self._lock:
            if identifier is None:
                if self._active is None:
                    raise NoActiveClusterError()
                identifier = self._active
            record = self._require(identifier)
            setattr(record, field, value or None)
            logger.debug(f"Set {field} of cluster '{identifier}' to {value!r}")
            return record.model_copy(deep=True)
