"""
Prometheus metrics for the discovery agent.

Job runs, job durations, catalog actions, token refreshes and readiness-gate
state are exported from a per-instance ``CollectorRegistry``.

Usage:
    metrics = MetricsRegistry()
    metrics.start_http_server(port=9090)  # optional scrape endpoint
    scheduler = JobScheduler(metrics=metrics)
"""

import time
from contextlib import contextmanager
from typing import Any

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
    start_http_server,
)

from apigee_discovery.utils.logging import get_logger

logger = get_logger("apigee_discovery.observability.metrics")


class MetricsRegistry:
    """Registry holding every agent metric."""

    def __init__(self, enabled: bool = True):
        self._enabled = enabled
        self._registry = CollectorRegistry()

        self._job_runs_counter = Counter(
            "apigee_discovery_job_runs_total",
            "Job executions by outcome",
            ["job", "outcome"],  # outcome: success, error
            registry=self._registry,
        )
        self._job_duration_histogram = Histogram(
            "apigee_discovery_job_duration_seconds",
            "Job execution duration in seconds",
            ["job"],
            registry=self._registry,
            buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0),
        )
        self._catalog_actions_counter = Counter(
            "apigee_discovery_catalog_actions_total",
            "Catalog actions emitted by the reconciler",
            ["kind", "action"],  # action: create, update, delete
            registry=self._registry,
        )
        self._token_refresh_counter = Counter(
            "apigee_discovery_token_refresh_total",
            "Token exchanges against the auth endpoint",
            ["grant_type", "outcome"],
            registry=self._registry,
        )
        self._gate_gauge = Gauge(
            "apigee_discovery_gate_done",
            "Readiness gate state (0=pending, 1=done)",
            ["gate"],
            registry=self._registry,
        )

    def enable(self):
        self._enabled = True

    def disable(self):
        self._enabled = False

    @property
    def enabled(self) -> bool:
        return self._enabled

    def record_job_run(self, job: str, duration: float, success: bool) -> None:
        if not self._enabled:
            return
        self._job_runs_counter.labels(job=job, outcome="success" if success else "error").inc()
        self._job_duration_histogram.labels(job=job).observe(duration)

    def record_catalog_action(self, kind: str, action: str, count: int = 1) -> None:
        if not self._enabled or count <= 0:
            return
        self._catalog_actions_counter.labels(kind=kind, action=action).inc(count)

    def record_token_refresh(self, grant_type: str, success: bool) -> None:
        if not self._enabled:
            return
        self._token_refresh_counter.labels(grant_type=grant_type, outcome="success" if success else "error").inc()

    def record_gate(self, gate: str, done: bool) -> None:
        if not self._enabled:
            return
        self._gate_gauge.labels(gate=gate).set(1 if done else 0)

    @contextmanager
    def time_job(self, job: str):
        """
        Context manager timing one job execution.

        Usage:
            with metrics.time_job("proxies"):
                await job.execute()
        """
        start_time = time.monotonic()
        success = True
        try:
            yield
        except BaseException:
            success = False
            raise
        finally:
            self.record_job_run(job, time.monotonic() - start_time, success)

    def sample(self, name: str, labels: dict[str, str] | None = None) -> float | None:
        """Return the current value of one sample (``None`` if never recorded)."""
        return self._registry.get_sample_value(name, labels or {})

    def get_metrics(self) -> dict[str, Any]:
        """Snapshot of all samples keyed by ``name{label=value,...}``."""
        snapshot: dict[str, Any] = {}
        for family in self._registry.collect():
            for s in family.samples:
                label_str = ",".join(f"{k}={v}" for k, v in sorted(s.labels.items()))
                snapshot[f"{s.name}{{{label_str}}}"] = s.value
        return snapshot

    def start_http_server(self, port: int = 9090, addr: str = "") -> None:
        """Start an HTTP server for Prometheus scraping."""
        start_http_server(port=port, addr=addr, registry=self._registry)
        logger.info(f"Prometheus metrics server started on port {port}")

    def generate_prometheus_metrics(self) -> bytes:
        return generate_latest(self._registry)

    def get_content_type(self) -> str:
        return CONTENT_TYPE_LATEST
