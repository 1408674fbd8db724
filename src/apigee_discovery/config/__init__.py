"""
Configuration management.

YAML loading with environment overlays and ``${VAR}`` substitution, plus the
typed ``apigee`` settings consumed by the discovery core.
"""

from apigee_discovery.config.apigee import ApigeeConfig, AuthConfig, HTTPConfig, Intervals, parse_duration
from apigee_discovery.config.loader import Config, load_config
from apigee_discovery.config.resolver import resolve_config

__all__ = [
    "load_config",
    "Config",
    "resolve_config",
    "ApigeeConfig",
    "AuthConfig",
    "HTTPConfig",
    "Intervals",
    "parse_duration",
]
