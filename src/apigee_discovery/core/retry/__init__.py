"""
Per-request retry with exponential backoff.
"""

from apigee_discovery.core.retry.manager import RetryManager
from apigee_discovery.core.retry.policy import NO_RETRY_POLICY, RetryPolicy

__all__ = [
    "RetryPolicy",
    "RetryManager",
    "NO_RETRY_POLICY",
]
