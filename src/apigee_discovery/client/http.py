"""
HTTP transport for the Apigee management, data and auth APIs.

One shared aiohttp session per client. Every request that fails (connection
error, timeout, non-2xx, undecodable body) raises a FetchError subclass so
a poll cycle can be abandoned as a whole.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import Any

import aiohttp

from apigee_discovery.core.retry import RetryManager, RetryPolicy
from apigee_discovery.exceptions import AuthError, FetchError, MalformedResponseError
from apigee_discovery.utils.logging import get_logger

logger = get_logger("apigee_discovery.client")

TokenProvider = Callable[[], Awaitable[str]]


class ApigeeClient:
    """
    Minimal async client used by pollers and the credential manager.

    Example:
        ```python
        async with ApigeeClient(auth_url=cfg.auth_url, client_id="edgecli", client_secret="edgeclisecret") as client:
            credentials = CredentialManager(client.post_token, user, password)
            payload = await client.get_json(f"{cfg.url}/v1/organizations/acme/apis", token=credentials.current_token)
        ```
    """

    def __init__(
        self,
        auth_url: str,
        client_id: str = "edgecli",
        client_secret: str = "edgeclisecret",
        timeout: float = 60.0,
        retry_policy: RetryPolicy | None = None,
        headers: dict[str, str] | None = None,
        on_unauthorized: Callable[[], None] | None = None,
    ):
        """
        Args:
            auth_url: OAuth token endpoint
            client_id: Client id sent as basic auth on token requests
            client_secret: Client secret sent as basic auth on token requests
            timeout: Total request timeout in seconds
            retry_policy: Per-request retry policy (default: no retries)
            headers: Default headers for every request
            on_unauthorized: Called when a resource request returns 401
        """
        self.auth_url = auth_url
        self._basic_auth = aiohttp.BasicAuth(client_id, client_secret)
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.default_headers = {"Accept": "application/json", **(headers or {})}
        self.on_unauthorized = on_unauthorized
        self._retry = RetryManager(retry_policy)

        self.session: aiohttp.ClientSession | None = None
        self._session_lock = asyncio.Lock()

    async def _ensure_session(self) -> aiohttp.ClientSession:
        async with self._session_lock:
            if self.session is None or self.session.closed:
                self.session = aiohttp.ClientSession(timeout=self.timeout, headers=self.default_headers)
            return self.session

    async def __aenter__(self) -> "ApigeeClient":
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type: type[BaseException] | None, exc_val: BaseException | None, exc_tb: Any) -> None:
        await self.close()

    async def close(self) -> None:
        async with self._session_lock:
            if self.session and not self.session.closed:
                await self.session.close()
            self.session = None

    async def get_json(self, url: str, *, token: TokenProvider, params: dict[str, Any] | None = None) -> Any:
        """
        GET ``url`` with a bearer token and return the decoded JSON body.

        The token is requested right before each attempt so a refresh between
        attempts is picked up.

        Raises:
            AuthError: Token could not be obtained, or the platform answered 401
            FetchError: Network failure or non-2xx status
            MalformedResponseError: Body is not JSON
        """
        clean_params = _clean_params(params)

        async def attempt() -> Any:
            bearer = await token()
            headers = {"Authorization": f"Bearer {bearer}"}
            return await self._request("GET", url, params=clean_params, headers=headers)

        return await self._retry.execute(attempt, name=f"GET {url}")

    async def post_token(self, form: dict[str, str]) -> dict[str, Any]:
        """
        POST a grant form to the auth endpoint.

        Raises:
            AuthError: Non-2xx answer from the auth endpoint
            FetchError: Network failure
        """
        try:
            payload = await self._request("POST", self.auth_url, data=form, auth=self._basic_auth)
        except FetchError as e:
            if e.status is not None:
                raise AuthError(
                    f"auth endpoint returned {e.status}", grant_type=form.get("grant_type"), status=e.status
                ) from e
            raise
        if not isinstance(payload, dict):
            raise MalformedResponseError("auth response is not an object", url=self.auth_url)
        return payload

    async def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        session = await self._ensure_session()
        start_time = time.monotonic()
        try:
            async with session.request(method, url, **kwargs) as response:
                duration = time.monotonic() - start_time
                log_level = logger.debug if response.status <= 299 else logger.warning
                log_level(f"{method} {url} {response.status} {duration:.2f}s")

                if response.status == 401 and method == "GET":
                    if self.on_unauthorized is not None:
                        self.on_unauthorized()
                    raise AuthError(f"{method} {url} was rejected as unauthorized", status=401)
                if response.status > 299:
                    text = await response.text()
                    raise FetchError(
                        f"{method} {url} returned {response.status}: {text[:200]}", url=url, status=response.status
                    )
                try:
                    return await response.json(content_type=None)
                except ValueError as e:
                    raise MalformedResponseError(f"{method} {url} returned a non-JSON body", url=url) from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise FetchError(f"{method} {url} failed: {e}", url=url) from e


def _clean_params(params: dict[str, Any] | None) -> dict[str, str] | None:
    """Stringify query params (yarl rejects bools and None)."""
    if not params:
        return None
    clean: dict[str, str] = {}
    for k, v in params.items():
        if v is None:
            continue
        clean[k] = str(v).lower() if isinstance(v, bool) else str(v)
    return clean
