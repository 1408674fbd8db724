"""
apigee-discovery exception hierarchy.

All domain-specific exceptions inherit from DiscoveryError, so callers can
catch any agent error with a single base class while still handling the
recoverable kinds separately.

Hierarchy::

    DiscoveryError
    ├── ConfigurationError         - missing/invalid settings (fatal at startup)
    ├── AuthError                  - credential acquisition or refresh failed
    ├── FetchError                 - network failure or non-2xx status while paging
    │   └── MalformedResponseError - payload did not have the expected shape
    ├── PollCancelledError         - shutdown requested at a page boundary
    └── JobError                   - a scheduled job body failed
"""

from __future__ import annotations


class DiscoveryError(Exception):
    """Base exception for all apigee-discovery errors."""

    def __init__(self, message: str, *, details: dict | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


# --- Configuration -----------------------------------------------------------


class ConfigurationError(DiscoveryError):
    """Raised when configuration loading, parsing, or validation fails."""


# --- Auth --------------------------------------------------------------------


class AuthError(DiscoveryError):
    """Raised when a token exchange against the auth endpoint fails.

    The previously cached credential (if any) is kept; the caller decides
    whether and when to try again.
    """

    def __init__(self, message: str, *, grant_type: str | None = None, status: int | None = None) -> None:
        super().__init__(message, details={"grant_type": grant_type, "status": status})
        self.grant_type = grant_type
        self.status = status


# --- Fetching ----------------------------------------------------------------


class FetchError(DiscoveryError):
    """Raised when a page fetch fails (connection error, timeout, non-2xx)."""

    def __init__(self, message: str, *, url: str | None = None, status: int | None = None) -> None:
        super().__init__(message, details={"url": url, "status": status})
        self.url = url
        self.status = status


class MalformedResponseError(FetchError):
    """Raised when a response payload does not have the expected shape."""


class PollCancelledError(DiscoveryError):
    """Raised between page fetches when the agent is shutting down."""


# --- Jobs --------------------------------------------------------------------


class JobError(DiscoveryError):
    """Raised (and recorded) when a scheduled job body fails."""

    def __init__(self, job_id: str, message: str, *, cause: Exception | None = None) -> None:
        super().__init__(f"Job '{job_id}' failed: {message}", details={"job": job_id})
        self.job_id = job_id
        if cause is not None:
            self.__cause__ = cause
