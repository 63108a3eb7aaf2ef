"""
File-based storage backend using a YAML or JSON configuration file.
"""

import asyncio
import aiofiles
import aiofiles.os
from pathlib import Path
from typing import Union
from pydantic import ValidationError

from ..config.utils import parse_config, dump_config
from ..models.cluster import ShellConfiguration
from ..exceptions import StorageBackendError, ConfigurationError
from ..utils.logging import get_logger
from .base import StorageBackend

logger = get_logger(__name__)


class FileStorageBackend(StorageBackend):
    """Stores the registry in a single configuration file."""

    def __init__(self, config_file: Union[str, Path]):
        """Initialize file storage backend.

        Args:
            config_file: Path of the configuration file (.yaml, .yml or .json)
        """
        self.config_file = Path(config_file).expanduser()
        self._lock = asyncio.Lock()

    async def initialize(self) -> bool:
        """Create the configuration directory if it doesn't exist."""
        try:
            self.config_file.parent.mkdir(parents=True, exist_ok=True)
            logger.debug(f"File storage backend initialized at {self.config_file}")
            return True
        except OSError as e:
            logger.error(f"Failed to initialize file storage backend: {e}")
            raise StorageBackendError(
                "Failed to initialize file storage backend",
                backend_type="file",
                operation="initialize",
                cause=e
            )

    async def load(self) -> ShellConfiguration:
        """Load the configuration file; a missing file is an empty registry."""
        async with self._lock:
            if not self.config_file.exists():
                logger.info(f"No configuration file at {self.config_file}, starting empty")
                return ShellConfiguration()

            try:
                async with aiofiles.open(self.config_file, 'r', encoding='utf-8') as f:
                    content = await f.read()
            except OSError as e:
                logger.error(f"Failed to read {self.config_file}: {e}")
                raise StorageBackendError(
                    f"Failed to read {self.config_file}",
                    backend_type="file",
                    operation="load",
                    cause=e
                )

        try:
            data = parse_config(content, self.config_file.suffix)
            configuration = ShellConfiguration(**data)
        except (ValueError, ValidationError) as e:
            raise ConfigurationError(
                f"Invalid configuration file {self.config_file}: {e}",
                path=str(self.config_file),
                cause=e
            )

        logger.debug(f"Loaded {len(configuration.clusters)} clusters from {self.config_file}")
        return configuration

    async def save(self, configuration: ShellConfiguration) -> bool:
        """Write the configuration file atomically."""
        content = dump_config(
            configuration.model_dump(mode="json", exclude_none=True),
            self.config_file.suffix
        )
        temp_file = self.config_file.with_suffix(self.config_file.suffix + ".tmp")

        async with self._lock:
            try:
                self.config_file.parent.mkdir(parents=True, exist_ok=True)
                async with aiofiles.open(temp_file, 'w', encoding='utf-8') as f:
                    await f.write(content)
                await aiofiles.os.replace(temp_file, self.config_file)
            except OSError as e:
                logger.error(f"Failed to save configuration to {self.config_file}: {e}")
                raise StorageBackendError(
                    f"Failed to save configuration to {self.config_file}",
                    backend_type="file",
                    operation="save",
                    cause=e
                )

        logger.info(f"Saved {len(configuration.clusters)} clusters to {self.config_file}")
        return True
