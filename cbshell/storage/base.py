"""
Abstract base class for storage backends.
"""

from abc import ABC, abstractmethod
from ..models.cluster import ShellConfiguration


class StorageBackend(ABC):
    """Abstract interface for cluster registry persistence."""

    @abstractmethod
    async def initialize(self) -> bool:
        """Initialize the storage backend.

        Returns:
            True if initialization was successful

        Raises:
            StorageBackendError: If initialization fails
        """
        pass

    @abstractmethod
    async def load(self) -> ShellConfiguration:
        """Load the persisted registry contents.

        Returns:
            Stored configuration; empty if nothing was persisted yet

        Raises:
            StorageBackendError: If the stored data cannot be read
            ConfigurationError: If the stored data is invalid
        """
        pass

    @abstractmethod
    async def save(self, configuration: ShellConfiguration) -> bool:
        """Persist the registry contents, replacing what was stored.

        Args:
            configuration: Registry contents to store

        Returns:
            True if save was successful

        Raises:
            StorageBackendError: If save operation fails
        """
        pass

    async def close(self) -> None:
        """Close the storage backend and cleanup resources."""
        return None
