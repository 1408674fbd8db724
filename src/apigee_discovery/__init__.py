"""
apigee-discovery - discovers Apigee API assets and keeps a catalog in sync.
"""

__version__ = "0.1.0"

from apigee_discovery.agent import DiscoveryAgent
from apigee_discovery.config import ApigeeConfig, load_config
from apigee_discovery.discovery import CatalogAction, CatalogConsumer, MemoryCatalog, ResourceKind
from apigee_discovery.exceptions import (
    AuthError,
    ConfigurationError,
    DiscoveryError,
    FetchError,
    JobError,
    MalformedResponseError,
    PollCancelledError,
)

__all__ = [
    "__version__",
    "DiscoveryAgent",
    "ApigeeConfig",
    "load_config",
    "CatalogAction",
    "CatalogConsumer",
    "MemoryCatalog",
    "ResourceKind",
    "DiscoveryError",
    "ConfigurationError",
    "AuthError",
    "FetchError",
    "MalformedResponseError",
    "PollCancelledError",
    "JobError",
]
