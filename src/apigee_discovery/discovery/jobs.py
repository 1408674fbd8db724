"""
Job bodies run by the scheduler.

``SyncJob`` is one poll cycle for one resource kind:
token -> poll all pages -> diff -> lookups -> reconcile -> deliver -> commit.
Nothing is committed unless delivery succeeded, so a failed cycle leaves
the next cycle diffing against the last successful listing.

``RegisterValidatorJob`` invokes the validator registration callback once.
"""

from __future__ import annotations

import inspect
from collections import Counter
from collections.abc import Awaitable, Callable
from typing import Any

from apigee_discovery.client.http import TokenProvider
from apigee_discovery.discovery.catalog import CatalogAction, CatalogConsumer
from apigee_discovery.discovery.gate import ReadinessGate
from apigee_discovery.discovery.models import ResourceKind, SyncDiff
from apigee_discovery.discovery.poller import ResourcePoller
from apigee_discovery.discovery.reconciler import Reconciler
from apigee_discovery.observability.metrics import MetricsRegistry
from apigee_discovery.utils.logging import get_logger

logger = get_logger("apigee_discovery.discovery.jobs")

ValidatorCallback = Callable[[], Awaitable[Any] | Any]


class SyncJob:
    """
    Poll, reconcile and deliver one resource kind.

    Args:
        poller: Poller for the kind
        reconciler: Shared reconciler (also holds cross-kind lookups)
        consumer: Receives the reconciled actions
        token: Token provider, normally ``CredentialManager.current_token``
        metrics: Optional metrics registry
    """

    def __init__(
        self,
        poller: ResourcePoller,
        reconciler: Reconciler,
        consumer: CatalogConsumer,
        token: TokenProvider,
        metrics: MetricsRegistry | None = None,
    ):
        self.poller = poller
        self.reconciler = reconciler
        self.consumer = consumer
        self.token = token
        self.metrics = metrics
        self.last_diff: SyncDiff | None = None

    @property
    def kind(self) -> ResourceKind:
        return self.poller.kind

    async def __call__(self) -> list[CatalogAction]:
        listing = await self.poller.poll(self.token)
        diff = self.poller.diff(listing)
        self.reconciler.observe(self.kind, listing)
        actions = self.reconciler.reconcile(diff)

        if actions:
            await self.consumer.apply(actions)
        self.poller.commit(listing)
        self.last_diff = diff

        if self.metrics is not None:
            for action, count in Counter(a.action.value for a in actions).items():
                self.metrics.record_catalog_action(self.kind.value, action, count)
        if diff.empty and not actions:
            logger.debug(f"{self.kind.value}: {len(listing)} record(s), no changes")
        else:
            logger.info(f"{self.kind.value}: {len(listing)} record(s), {diff.summary()}, {len(actions)} action(s)")
        return actions


class RegisterValidatorJob:
    """
    Calls the validator registration callback until it succeeds once.

    The job owns ``registered``; once that gate is done the body is a no-op.
    A raising callback fails the cycle and is retried on the next interval.
    """

    def __init__(self, callback: ValidatorCallback, registered: ReadinessGate):
        self.callback = callback
        self.registered = registered
        self.calls = 0

    async def __call__(self) -> None:
        if self.registered.is_done():
            return
        self.calls += 1
        result = self.callback()
        if inspect.isawaitable(result):
            await result
        logger.info("Validator registration callback completed")
