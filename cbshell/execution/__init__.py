"""
Fan-out execution engine: cancellation, per-target execution and aggregation.
"""

from .cancellation import CancellationToken
from .executor import FanOutExecutor, Operation
from .aggregator import tally, merge

__all__ = [
    "CancellationToken",
    "FanOutExecutor",
    "Operation",
    "tally",
    "merge",
]
