"""
Discovery agent: wires credentials, pollers, gates and jobs together.

Jobs and their readiness gates::

    portals ──> apis
    specs   ──> products
    proxies ──> register-validator

Each job owns a gate named after itself that flips on its first successful
run; the validator job owns ``validator-registered``.
"""

from __future__ import annotations

import asyncio
import contextlib
import signal
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

from apigee_discovery.auth import CredentialManager
from apigee_discovery.client import ApigeeClient
from apigee_discovery.config import ApigeeConfig, load_config
from apigee_discovery.core.retry import RetryPolicy
from apigee_discovery.discovery.catalog import CatalogConsumer, MemoryCatalog
from apigee_discovery.discovery.filters import FilterExpression
from apigee_discovery.discovery.gate import ReadinessGate
from apigee_discovery.discovery.jobs import RegisterValidatorJob, SyncJob, ValidatorCallback
from apigee_discovery.discovery.models import ResourceKind
from apigee_discovery.discovery.poller import (
    KeyCursorPagination,
    OffsetPagination,
    ResourceEndpoint,
    ResourcePoller,
)
from apigee_discovery.discovery.reconciler import Reconciler
from apigee_discovery.discovery.scheduler import Job, JobOutcome, JobScheduler
from apigee_discovery.exceptions import FetchError
from apigee_discovery.observability.metrics import MetricsRegistry
from apigee_discovery.utils.logging import get_logger

logger = get_logger("apigee_discovery.agent")

VALIDATOR_JOB = "register-validator"
VALIDATOR_GATE = "validator-registered"

# job id -> (kind, gate it waits on)
SYNC_JOBS: dict[str, tuple[ResourceKind, str | None]] = {
    "portals": (ResourceKind.PORTAL, None),
    "specs": (ResourceKind.SPEC, None),
    "proxies": (ResourceKind.PROXY, None),
    "products": (ResourceKind.PRODUCT, "specs"),
    "apis": (ResourceKind.API, "portals"),
}

# Dependency order used by run_once()
JOB_ORDER = ["portals", "specs", "proxies", "products", "apis", VALIDATOR_JOB]


def build_endpoints(config: ApigeeConfig, reconciler: Reconciler) -> dict[ResourceKind, ResourceEndpoint]:
    """Listing endpoint and pagination convention per resource kind."""
    management = f"{config.url}/{config.api_version}/organizations/{config.organization}"
    data = config.data_url
    org = config.organization
    size = config.page_size

    return {
        ResourceKind.PROXY: ResourceEndpoint(
            kind=ResourceKind.PROXY,
            urls=lambda: [f"{management}/apis"],
            paginator=KeyCursorPagination(size),
            data_attribute=None,
        ),
        ResourceKind.SPEC: ResourceEndpoint(
            kind=ResourceKind.SPEC,
            urls=lambda: [f"{data}/organizations/{org}/specs/folder/home"],
            paginator=OffsetPagination(size),
            data_attribute="contents",
        ),
        ResourceKind.PRODUCT: ResourceEndpoint(
            kind=ResourceKind.PRODUCT,
            urls=lambda: [f"{management}/apiproducts"],
            paginator=KeyCursorPagination(size),
            data_attribute="apiProduct",
            params={"expand": "true"},
        ),
        ResourceKind.PORTAL: ResourceEndpoint(
            kind=ResourceKind.PORTAL,
            urls=lambda: [f"{data}/organizations/{org}/sites"],
            paginator=OffsetPagination(size),
        ),
        ResourceKind.API: ResourceEndpoint(
            kind=ResourceKind.API,
            urls=lambda: [f"{data}/sites/{portal_id}/apidocs" for portal_id in reconciler.known_portal_ids()],
            paginator=OffsetPagination(size),
        ),
    }


def build_filters(config: ApigeeConfig) -> dict[ResourceKind, FilterExpression]:
    filters = {}
    if config.filter:
        filters[ResourceKind.PRODUCT] = FilterExpression(config.filter)
    if config.spec_filter:
        filters[ResourceKind.SPEC] = FilterExpression(config.spec_filter)
    return filters


def _log_validator_ready() -> None:
    logger.info("Proxy discovery completed; API validator may now be registered")


class DiscoveryAgent:
    """
    Long-running discovery agent.

    Args:
        config: Validated Apigee settings
        consumer: Catalog consumer receiving reconciled actions (default: in-memory)
        validator: Callback registering the request validator, called once
            after the first successful proxy discovery
        metrics: Optional metrics registry
        client: Pre-built transport (tests)
        clock: Wall-clock source for credentials and gates
        monotonic: Monotonic source for job intervals

    Raises:
        ConfigurationError: ``config`` is invalid
    """

    def __init__(
        self,
        config: ApigeeConfig,
        *,
        consumer: CatalogConsumer | None = None,
        validator: ValidatorCallback | None = None,
        metrics: MetricsRegistry | None = None,
        client: ApigeeClient | None = None,
        clock: Callable[[], float] = time.time,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        config.validate()
        self.config = config
        self.consumer: CatalogConsumer = consumer if consumer is not None else MemoryCatalog()
        self.metrics = metrics

        retry_policy = None
        if config.http.retries > 0:
            retry_policy = RetryPolicy(max_attempts=config.http.retries, retryable_exceptions=(FetchError,))
        self.client = client or ApigeeClient(
            auth_url=config.auth_url,
            client_id=config.auth.client_id,
            client_secret=config.auth.client_secret,
            timeout=config.http.timeout,
            retry_policy=retry_policy,
        )
        self.credentials = CredentialManager(
            self.client.post_token,
            config.auth.username,
            config.auth.password,
            refresh_margin=config.auth.refresh_margin,
            clock=clock,
            metrics=metrics,
        )
        self.client.on_unauthorized = self.credentials.invalidate

        self.reconciler = Reconciler(build_filters(config))
        self.scheduler = JobScheduler(
            clock=monotonic,
            tick_interval=config.scheduler_tick,
            shutdown_grace=config.shutdown_grace,
            metrics=metrics,
        )
        self.gates: dict[str, ReadinessGate] = {
            name: ReadinessGate(name, clock=clock) for name in [*SYNC_JOBS, VALIDATOR_GATE]
        }

        endpoints = build_endpoints(config, self.reconciler)
        self.sync_jobs: dict[str, SyncJob] = {}
        for job_id, (kind, waits_on) in SYNC_JOBS.items():
            poller = ResourcePoller(self.client, endpoints[kind], stop=self.scheduler.stopping)
            sync_job = SyncJob(poller, self.reconciler, self.consumer, self.credentials.current_token, metrics)
            self.sync_jobs[job_id] = sync_job
            self.scheduler.add_job(
                Job(
                    job_id,
                    getattr(config.intervals, kind.value),
                    sync_job,
                    ready_when=[self.gates[waits_on]] if waits_on else (),
                    owns=self.gates[job_id],
                )
            )

        self.validator_job = RegisterValidatorJob(validator or _log_validator_ready, self.gates[VALIDATOR_GATE])
        self.scheduler.add_job(
            Job(
                VALIDATOR_JOB,
                config.intervals.proxy,
                self.validator_job,
                ready_when=[self.gates["proxies"]],
                owns=self.gates[VALIDATOR_GATE],
            )
        )

    @classmethod
    def from_project(cls, project_dir: Path | None = None, env: str | None = None, **kwargs: Any) -> DiscoveryAgent:
        """Load ``config.yaml`` (plus env overlay) from ``project_dir`` and build an agent."""
        config = ApigeeConfig.from_config(load_config(project_dir, env))
        return cls(config, **kwargs)

    async def run(self, stop: asyncio.Event | None = None) -> None:
        """
        Run the scheduler until ``stop`` is set or SIGINT/SIGTERM is received.
        """
        stop = stop or asyncio.Event()
        loop = asyncio.get_running_loop()
        installed = []
        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError, RuntimeError):
                loop.add_signal_handler(sig, stop.set)
                installed.append(sig)

        logger.info(f"Discovering assets of organization '{self.config.organization}'")
        async with self.client:
            self.scheduler.start()
            try:
                await stop.wait()
                logger.info("Shutdown requested")
            finally:
                await self.scheduler.stop()
                for sig in installed:
                    loop.remove_signal_handler(sig)

    async def run_once(self) -> dict[str, JobOutcome]:
        """
        Run every job once in dependency order, without the scheduler.

        A job whose gate is still pending (its dependency failed) is skipped.
        """
        outcomes: dict[str, JobOutcome] = {}
        async with self.client:
            for job_id in JOB_ORDER:
                job = self.scheduler.jobs[job_id]
                if not job.is_ready():
                    pending = [g.name for g in job.ready_when if not g.is_done()]
                    logger.warning(f"Skipping '{job_id}': waiting on {', '.join(pending)}")
                    continue
                outcomes[job_id] = await self.scheduler.run_now(job_id)
        return outcomes

    def status(self) -> dict[str, Any]:
        status = self.scheduler.status()
        status["gates"] = {name: gate.is_done() for name, gate in self.gates.items()}
        return status
