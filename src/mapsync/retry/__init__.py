"""
Retry framework for transient transfer failures.
"""

from mapsync.retry.manager import RetryManager
from mapsync.retry.policy import DelayStrategy, RetryPolicy, RetryState

__all__ = [
    "DelayStrategy",
    "RetryPolicy",
    "RetryState",
    "RetryManager",
]
