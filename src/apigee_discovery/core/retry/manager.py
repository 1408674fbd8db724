"""
Retry manager executing coroutines under a RetryPolicy.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

from apigee_discovery.core.retry.policy import NO_RETRY_POLICY, RetryPolicy
from apigee_discovery.utils.logging import get_logger

logger = get_logger("apigee_discovery.retry")


class RetryManager:
    """
    Wraps an async callable with retry logic based on a RetryPolicy.

    Examples:
        >>> manager = RetryManager(RetryPolicy(max_attempts=2, initial_delay=0.5))
        >>> payload = await manager.execute(fetch_page, url, name="GET /apis")
    """

    def __init__(self, policy: RetryPolicy | None = None):
        self.policy = policy or NO_RETRY_POLICY

    async def execute(
        self,
        func: Callable[..., Awaitable[Any]],
        *args: Any,
        name: str | None = None,
        **kwargs: Any,
    ) -> Any:
        """
        Await ``func(*args, **kwargs)``, retrying per policy.

        Raises:
            Exception: The last exception once the policy gives up
        """
        label = name or getattr(func, "__name__", "call")
        attempt = 0
        while True:
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                if not self.policy.should_retry(e, attempt):
                    if attempt > 0:
                        logger.debug(f"{label} failed after {attempt + 1} attempts: {e}")
                    raise
                delay = self.policy.get_delay(attempt)
                logger.warning(f"{label} attempt {attempt + 1} failed: {e}. Retrying in {delay:.2f}s...")
                await asyncio.sleep(delay)
                attempt += 1
                continue

            if attempt > 0:
                logger.info(f"{label} succeeded after {attempt + 1} attempts")
            return result
