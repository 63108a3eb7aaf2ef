"""
Resolution of a command's --clusters argument into concrete clusters.

Matching policy: an entry that contains any of ``*``, ``?`` or ``[`` is a
shell-style wildcard pattern (``fnmatch`` syntax) matched case-sensitively
against the whole identifier. Every other entry is a literal identifier.
"""

from fnmatch import fnmatchcase
from typing import List, Optional, Sequence

from ..exceptions import ClusterNotFoundError, NoActiveClusterError, NoMatchingClustersError
from ..utils.logging import get_logger
from .cluster_registry import ClusterRegistry

logger = get_logger(__name__)

PATTERN_CHARACTERS = frozenset("*?[")


def is_pattern(entry: str) -> bool:
    """Whether a target entry is a wildcard pattern rather than a literal."""
    return any(c in PATTERN_CHARACTERS for c in entry)


def parse_cluster_targets(value: Optional[str]) -> Optional[List[str]]:
    """Split a comma separated ``--clusters`` value; None means no explicit targets."""
    if value is None:
        return None
    return [entry.strip() for entry in value.split(",") if entry.strip()]


def match_targets(entries: Sequence[str], identifiers: Sequence[str]) -> List[str]:
    """Expand entries against registered identifiers.

    The union of all matches, de-duplicated, in first-match order. Patterns
    expand in registration order.

    Raises:
        ClusterNotFoundError: If a literal entry is not registered
    """
    resolved: List[str] = []
    seen = set()

    for entry in entries:
        if is_pattern(entry):
            matches = [identifier for identifier in identifiers if fnmatchcase(identifier, entry)]
            if not matches:
                logger.debug(f"Pattern '{entry}' matched no clusters")
        else:
            if entry not in identifiers:
                raise ClusterNotFoundError(entry, list(identifiers))
            matches = [entry]

        for identifier in matches:
            if identifier not in seen:
                seen.add(identifier)
                resolved.append(identifier)

    return resolved


async def resolve_targets(explicit_targets: Optional[Sequence[str]],
                          registry: ClusterRegistry,
                          require_non_empty: bool = True) -> List[str]:
    """Turn an optional explicit target list into the clusters to operate on.

    Args:
        explicit_targets: Literal identifiers and patterns; None selects the
            active cluster
        registry: Registry consulted for identifiers and the active cluster
        require_non_empty: Whether an empty result is an error

    Returns:
        Ordered, de-duplicated cluster identifiers

    Raises:
        NoActiveClusterError: No explicit targets and no active cluster
        ClusterNotFoundError: A literal entry is not registered
        NoMatchingClustersError: Explicit targets matched nothing
    """
    if explicit_targets is None:
        active = await registry.active_cluster_id()
        if active is None:
            if require_non_empty:
                raise NoActiveClusterError()
            return []
        return [active]

    identifiers = await registry.cluster_identifiers()
    resolved = match_targets(explicit_targets, identifiers)

    if not resolved and require_non_empty:
        raise NoMatchingClustersError(list(explicit_targets))

    logger.debug(f"Resolved targets {list(explicit_targets)} to {resolved}")
    return resolved
