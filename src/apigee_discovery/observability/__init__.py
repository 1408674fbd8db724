"""
Observability: Prometheus metrics and structured logging with correlation IDs.
"""

from apigee_discovery.observability.metrics import MetricsRegistry
from apigee_discovery.observability.structured_logging import (
    StructuredFormatter,
    add_correlation_id,
    get_correlation_id,
    new_correlation_id,
    setup_structured_logging,
)

__all__ = [
    "MetricsRegistry",
    "StructuredFormatter",
    "setup_structured_logging",
    "add_correlation_id",
    "get_correlation_id",
    "new_correlation_id",
]
