"""
Discovery engine: pollers, scheduler, readiness gates and reconciliation.
"""

from apigee_discovery.discovery.catalog import ActionType, CatalogAction, CatalogConsumer, MemoryCatalog
from apigee_discovery.discovery.diff import compute_diff
from apigee_discovery.discovery.filters import FilterExpression
from apigee_discovery.discovery.gate import ReadinessGate
from apigee_discovery.discovery.jobs import RegisterValidatorJob, SyncJob
from apigee_discovery.discovery.models import (
    RECORD_TYPES,
    APIDocRecord,
    PortalRecord,
    ProductRecord,
    ProxyRecord,
    RemoteRecord,
    ResourceKind,
    SpecRecord,
    SyncDiff,
)
from apigee_discovery.discovery.poller import (
    CursorPagination,
    KeyCursorPagination,
    OffsetPagination,
    ResourceEndpoint,
    ResourcePoller,
)
from apigee_discovery.discovery.reconciler import Reconciler
from apigee_discovery.discovery.scheduler import Job, JobOutcome, JobScheduler, JobState

__all__ = [
    "ActionType",
    "CatalogAction",
    "CatalogConsumer",
    "MemoryCatalog",
    "compute_diff",
    "FilterExpression",
    "ReadinessGate",
    "RegisterValidatorJob",
    "SyncJob",
    "RECORD_TYPES",
    "APIDocRecord",
    "PortalRecord",
    "ProductRecord",
    "ProxyRecord",
    "RemoteRecord",
    "ResourceKind",
    "SpecRecord",
    "SyncDiff",
    "CursorPagination",
    "KeyCursorPagination",
    "OffsetPagination",
    "ResourceEndpoint",
    "ResourcePoller",
    "Reconciler",
    "Job",
    "JobOutcome",
    "JobScheduler",
    "JobState",
]
