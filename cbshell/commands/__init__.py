"""
Shell commands. Importing this package registers every command in COMMANDS.
"""

from .base import (
    COMMANDS,
    CommandContext,
    CommandDefinition,
    CommandOutput,
    command
)
from . import clusters, use, doc, query, management  # noqa: F401

__all__ = [
    "COMMANDS",
    "CommandContext",
    "CommandDefinition",
    "CommandOutput",
    "command",
]
