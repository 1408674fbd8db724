"""
Bearer credential management.

The manager owns the single current credential and hands out its access
token. When the credential is missing or inside the refresh margin, the
first caller performs the exchange (``password`` grant initially,
``refresh_token`` afterwards) and every concurrent caller awaits that same
exchange. Failures are returned to the callers; the previous credential is
kept and no retry happens here.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from apigee_discovery.exceptions import AuthError, DiscoveryError
from apigee_discovery.observability.metrics import MetricsRegistry
from apigee_discovery.utils.logging import get_logger

logger = get_logger("apigee_discovery.auth")

TokenExchange = Callable[[dict[str, str]], Awaitable[dict[str, Any]]]


class GrantType(str, Enum):
    PASSWORD = "password"
    REFRESH = "refresh_token"


@dataclass(frozen=True)
class Credential:
    access_token: str
    token_type: str
    refresh_token: str
    expires_at: float
    scope: str = ""

    def expires_within(self, now: float, margin: float) -> bool:
        return now >= self.expires_at - margin

    @classmethod
    def from_response(cls, payload: dict[str, Any], *, now: float) -> Credential:
        """Build a credential from an auth endpoint response body."""
        token = payload.get("access_token")
        if not token:
            raise AuthError("auth response did not contain an access_token")
        try:
            expires_in = float(payload.get("expires_in") or 0)
        except (TypeError, ValueError):
            raise AuthError(f"auth response has an invalid expires_in: {payload.get('expires_in')!r}") from None
        return cls(
            access_token=str(token),
            token_type=str(payload.get("token_type") or "bearer"),
            refresh_token=str(payload.get("refresh_token") or ""),
            expires_at=now + expires_in,
            scope=str(payload.get("scope") or ""),
        )


class CredentialManager:
    """
    Single-flight token cache.

    Args:
        exchange: Coroutine posting a grant form to the auth endpoint and
            returning the decoded response body
        username: Username for the ``password`` grant
        password: Password for the ``password`` grant
        refresh_margin: Seconds before expiry at which a refresh is due
        clock: Wall-clock source (injectable for tests)
        metrics: Optional metrics registry for refresh counters
    """

    def __init__(
        self,
        exchange: TokenExchange,
        username: str,
        password: str,
        *,
        refresh_margin: float = 60.0,
        clock: Callable[[], float] = time.time,
        metrics: MetricsRegistry | None = None,
    ):
        self._exchange = exchange
        self._username = username
        self._password = password
        self.refresh_margin = refresh_margin
        self._clock = clock
        self._metrics = metrics

        self._credential: Credential | None = None
        self._inflight: asyncio.Task[Credential] | None = None
        # Set when the platform rejected the stored refresh token
        self._refresh_rejected = False

    @property
    def credential(self) -> Credential | None:
        return self._credential

    async def current_token(self) -> str:
        """
        Return a non-expiring access token, refreshing first if needed.

        Raises:
            AuthError: The exchange failed (the stale credential is kept)
        """
        credential = self._credential
        if credential is not None and not credential.expires_within(self._clock(), self.refresh_margin):
            return credential.access_token
        credential = await self._refresh()
        return credential.access_token

    def invalidate(self) -> None:
        """Force the next ``current_token()`` call to refresh (e.g. after a 401)."""
        credential = self._credential
        if credential is not None:
            self._credential = Credential(
                access_token=credential.access_token,
                token_type=credential.token_type,
                refresh_token=credential.refresh_token,
                expires_at=float("-inf"),
                scope=credential.scope,
            )

    async def _refresh(self) -> Credential:
        task = self._inflight
        if task is None or task.done():
            task = asyncio.ensure_future(self._exchange_credential())
            self._inflight = task
            task.add_done_callback(self._retrieve_failure)
        # A cancelled waiter must not cancel the shared exchange
        return await asyncio.shield(task)

    @staticmethod
    def _retrieve_failure(task: asyncio.Task[Credential]) -> None:
        if not task.cancelled():
            # Waiters re-raise the failure; retrieve it here to mark it handled
            task.exception()

    def _next_grant(self) -> tuple[GrantType, dict[str, str]]:
        credential = self._credential
        if credential is not None and credential.refresh_token and not self._refresh_rejected:
            return GrantType.REFRESH, {"grant_type": GrantType.REFRESH.value, "refresh_token": credential.refresh_token}
        return GrantType.PASSWORD, {
            "grant_type": GrantType.PASSWORD.value,
            "username": self._username,
            "password": self._password,
        }

    async def _exchange_credential(self) -> Credential:
        try:
            return await self._exchange_once()
        finally:
            # Cleared before waiters resume so the next caller starts a fresh exchange
            if self._inflight is asyncio.current_task():
                self._inflight = None

    async def _exchange_once(self) -> Credential:
        grant, form = self._next_grant()
        logger.debug(f"Requesting token with grant type {grant.value}")
        try:
            payload = await self._exchange(form)
            credential = Credential.from_response(payload, now=self._clock())
        except AuthError as e:
            self._record(grant, success=False)
            if grant is GrantType.REFRESH and e.status in (400, 401):
                self._refresh_rejected = True
            logger.warning(f"Token exchange ({grant.value}) failed: {e}")
            raise AuthError(e.message, grant_type=grant.value, status=e.status) from e
        except DiscoveryError as e:
            self._record(grant, success=False)
            logger.warning(f"Token exchange ({grant.value}) failed: {e}")
            raise AuthError(f"token exchange failed: {e.message}", grant_type=grant.value) from e

        self._credential = credential
        self._refresh_rejected = False
        self._record(grant, success=True)
        logger.info(f"Obtained access token via {grant.value} grant, expires in {credential.expires_at - self._clock():.0f}s")
        return credential

    def _record(self, grant: GrantType, success: bool) -> None:
        if self._metrics is not None:
            self._metrics.record_token_refresh(grant.value, success)
