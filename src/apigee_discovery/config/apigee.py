"""
Typed Apigee agent settings parsed from the ``apigee`` config section.

Defaults match the property defaults of the platform agent; ``validate()``
is called once at startup and a failure there is fatal.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

from apigee_discovery.config.loader import Config
from apigee_discovery.discovery.filters import FilterExpression
from apigee_discovery.exceptions import ConfigurationError

DEFAULT_URL = "https://api.enterprise.apigee.com"
DEFAULT_DATA_URL = "https://apigee.com/dapi/api"
DEFAULT_AUTH_URL = "https://login.apigee.com/oauth/token"
DEFAULT_API_VERSION = "v1"
DEFAULT_PAGE_SIZE = 100

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
_UNIT_SECONDS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}


def parse_duration(value: Any, *, name: str = "duration") -> float:
    """
    Parse a duration into seconds.

    Accepts numbers (seconds) and strings like ``"30s"``, ``"5m"``,
    ``"1h30m"`` or ``"250ms"``.
    """
    if isinstance(value, bool):
        raise ConfigurationError(f"invalid APIGEE configuration: {name} must be a duration, got {value!r}")
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        text = value.strip().lower()
        try:
            return float(text)
        except ValueError:
            pass
        pos = 0
        total = 0.0
        for match in _DURATION_PART.finditer(text):
            if match.start() != pos:
                break
            total += float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
            pos = match.end()
        if text and pos == len(text):
            return total
    raise ConfigurationError(f"invalid APIGEE configuration: {name} must be a duration, got {value!r}")


@dataclass
class AuthConfig:
    username: str = ""
    password: str = ""
    client_id: str = "edgecli"
    client_secret: str = "edgeclisecret"
    # Refresh this long before the reported expiry
    refresh_margin: float = 60.0


@dataclass
class Intervals:
    """Per-kind poll intervals in seconds."""

    proxy: float = 30.0
    spec: float = 30 * 60.0
    product: float = 5 * 60.0
    portal: float = 60.0
    api: float = 30.0


@dataclass
class HTTPConfig:
    timeout: float = 60.0
    retries: int = 0


@dataclass
class ApigeeConfig:
    """Settings consumed by the discovery core."""

    organization: str = ""
    url: str = DEFAULT_URL
    data_url: str = DEFAULT_DATA_URL
    auth_url: str = DEFAULT_AUTH_URL
    api_version: str = DEFAULT_API_VERSION
    auth: AuthConfig = field(default_factory=AuthConfig)
    intervals: Intervals = field(default_factory=Intervals)
    http: HTTPConfig = field(default_factory=HTTPConfig)
    filter: str = ""
    spec_filter: str = ""
    developer_id: str = ""
    page_size: int = DEFAULT_PAGE_SIZE
    scheduler_tick: float = 0.5
    shutdown_grace: float = 10.0

    @classmethod
    def from_config(cls, config: Config) -> ApigeeConfig:
        """Build settings from a loaded Config (``apigee`` + ``scheduler`` sections)."""
        section = config.section("apigee")
        auth = section.get("auth") or {}
        intervals = section.get("intervals") or {}
        http = section.get("http") or {}
        defaults = Intervals()

        return cls(
            organization=str(section.get("organization", "") or ""),
            url=str(section.get("url", DEFAULT_URL) or "").rstrip("/"),
            data_url=str(section.get("dataURL", DEFAULT_DATA_URL) or "").rstrip("/"),
            auth_url=str(section.get("authURL", DEFAULT_AUTH_URL) or "").rstrip("/"),
            api_version=str(section.get("apiVersion", DEFAULT_API_VERSION) or ""),
            auth=AuthConfig(
                username=str(auth.get("username", "") or ""),
                password=str(auth.get("password", "") or ""),
                client_id=str(auth.get("clientID", "edgecli")),
                client_secret=str(auth.get("clientSecret", "edgeclisecret")),
                refresh_margin=parse_duration(auth.get("refreshMargin", 60), name="auth.refreshMargin"),
            ),
            intervals=Intervals(
                **{
                    kind: parse_duration(intervals.get(kind, getattr(defaults, kind)), name=f"intervals.{kind}")
                    for kind in ("proxy", "spec", "product", "portal", "api")
                }
            ),
            http=HTTPConfig(
                timeout=parse_duration(http.get("timeout", 60), name="http.timeout"),
                retries=_as_int(http.get("retries", 0), "http.retries"),
            ),
            filter=str(section.get("filter", "") or ""),
            spec_filter=str(section.get("specFilter", "") or ""),
            developer_id=str(section.get("developerID", "") or ""),
            page_size=_as_int(section.get("pageSize", DEFAULT_PAGE_SIZE), "pageSize"),
            scheduler_tick=parse_duration(config.get("scheduler.tick", 0.5), name="scheduler.tick"),
            shutdown_grace=parse_duration(config.get("scheduler.shutdownGrace", 10), name="scheduler.shutdownGrace"),
        )

    def validate(self) -> None:
        """Raise ConfigurationError for the first missing or invalid setting."""
        required = [
            ("url", self.url),
            ("api version", self.api_version),
            ("data url", self.data_url),
            ("organization", self.organization),
            ("username", self.auth.username),
            ("password", self.auth.password),
        ]
        for name, value in required:
            if not value or _is_placeholder(value):
                raise ConfigurationError(f"invalid APIGEE configuration: {name} is not configured")

        if not self.developer_id or _is_placeholder(self.developer_id):
            raise ConfigurationError("invalid APIGEE configuration: developer ID must be configured")

        for kind in ("proxy", "spec", "product", "portal", "api"):
            if getattr(self.intervals, kind) <= 0:
                raise ConfigurationError(f"invalid APIGEE configuration: {kind} interval must be positive")

        if self.page_size <= 0:
            raise ConfigurationError("invalid APIGEE configuration: page size must be a positive integer")
        if self.http.retries < 0:
            raise ConfigurationError("invalid APIGEE configuration: http retries must be >= 0")
        if self.scheduler_tick <= 0:
            raise ConfigurationError("invalid APIGEE configuration: scheduler tick must be positive")
        if self.shutdown_grace <= 0:
            raise ConfigurationError("invalid APIGEE configuration: scheduler shutdown grace must be positive")

        for name, expression in (("filter", self.filter), ("specFilter", self.spec_filter)):
            try:
                FilterExpression(expression)
            except ConfigurationError as e:
                raise ConfigurationError(f"invalid APIGEE configuration: {name}: {e.message}") from e


def _as_int(value: Any, name: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"invalid APIGEE configuration: {name} must be an integer, got {value!r}") from None


def _is_placeholder(value: str) -> bool:
    # An unresolved ${VAR} means the environment variable was never set
    return value.startswith("${") and value.endswith("}")
