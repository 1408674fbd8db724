"""
Tests for the HTTP transport and envelope decoding.
"""

from unittest.mock import Mock

import aiohttp
import pytest
from aioresponses import aioresponses

from apigee_discovery.client import ApigeeClient, unwrap_envelope
from apigee_discovery.core.retry import RetryPolicy
from apigee_discovery.exceptions import AuthError, FetchError, MalformedResponseError

AUTH_URL = "https://login.example.test/oauth/token"
APIS_URL = "https://edge.example.test/v1/organizations/acme/apis"


async def static_token() -> str:
    return "tkn"


class TestApigeeClientContextManager:
    """Tests for session lifecycle."""

    @pytest.mark.asyncio
    async def test_context_manager_creates_and_closes_session(self):
        client = ApigeeClient(auth_url=AUTH_URL)
        async with client:
            assert isinstance(client.session, aiohttp.ClientSession)
            session = client.session
        assert session.closed
        assert client.session is None


class TestGetJson:
    """Tests for authenticated GET requests."""

    @pytest.mark.asyncio
    async def test_returns_decoded_body_with_bearer_token(self):
        with aioresponses() as m:
            m.get(APIS_URL, payload=["alpha", "beta"])
            async with ApigeeClient(auth_url=AUTH_URL) as client:
                result = await client.get_json(APIS_URL, token=static_token)

            assert result == ["alpha", "beta"]
            request = list(m.requests.values())[0][0]
            assert request.kwargs["headers"]["Authorization"] == "Bearer tkn"

    @pytest.mark.asyncio
    async def test_non_2xx_raises_fetch_error(self):
        with aioresponses() as m:
            m.get(APIS_URL, status=503, body="unavailable")
            async with ApigeeClient(auth_url=AUTH_URL) as client:
                with pytest.raises(FetchError) as exc_info:
                    await client.get_json(APIS_URL, token=static_token)
        assert exc_info.value.status == 503
        assert exc_info.value.url == APIS_URL

    @pytest.mark.asyncio
    async def test_401_invalidates_and_raises_auth_error(self):
        on_unauthorized = Mock()
        with aioresponses() as m:
            m.get(APIS_URL, status=401)
            async with ApigeeClient(auth_url=AUTH_URL, on_unauthorized=on_unauthorized) as client:
                with pytest.raises(AuthError):
                    await client.get_json(APIS_URL, token=static_token)
        on_unauthorized.assert_called_once_with()

    @pytest.mark.asyncio
    async def test_non_json_body_is_malformed(self):
        with aioresponses() as m:
            m.get(APIS_URL, status=200, body="<html>oops</html>")
            async with ApigeeClient(auth_url=AUTH_URL) as client:
                with pytest.raises(MalformedResponseError):
                    await client.get_json(APIS_URL, token=static_token)

    @pytest.mark.asyncio
    async def test_connection_error_raises_fetch_error(self):
        with aioresponses() as m:
            m.get(APIS_URL, exception=aiohttp.ClientConnectionError("refused"))
            async with ApigeeClient(auth_url=AUTH_URL) as client:
                with pytest.raises(FetchError, match="refused"):
                    await client.get_json(APIS_URL, token=static_token)

    @pytest.mark.asyncio
    async def test_retries_transient_failures(self):
        policy = RetryPolicy(max_attempts=2, initial_delay=0.01, max_delay=0.01, retryable_exceptions=(FetchError,))
        with aioresponses() as m:
            m.get(APIS_URL, status=502)
            m.get(APIS_URL, payload=["alpha"])
            async with ApigeeClient(auth_url=AUTH_URL, retry_policy=policy) as client:
                result = await client.get_json(APIS_URL, token=static_token)
        assert result == ["alpha"]

    @pytest.mark.asyncio
    async def test_auth_errors_are_not_retried(self):
        policy = RetryPolicy(max_attempts=3, initial_delay=0.01, max_delay=0.01, retryable_exceptions=(FetchError,))
        calls = 0

        async def token() -> str:
            nonlocal calls
            calls += 1
            raise AuthError("exchange failed")

        async with ApigeeClient(auth_url=AUTH_URL, retry_policy=policy) as client:
            with pytest.raises(AuthError):
                await client.get_json(APIS_URL, token=token)
        assert calls == 1


class TestPostToken:
    """Tests for the token exchange request."""

    @pytest.mark.asyncio
    async def test_posts_form_with_basic_auth(self):
        with aioresponses() as m:
            m.post(AUTH_URL, payload={"access_token": "abc", "expires_in": 1799})
            async with ApigeeClient(auth_url=AUTH_URL, client_id="edgecli", client_secret="edgeclisecret") as client:
                payload = await client.post_token({"grant_type": "password", "username": "u", "password": "p"})

            assert payload["access_token"] == "abc"
            request = list(m.requests.values())[0][0]
            assert request.kwargs["data"]["grant_type"] == "password"
            assert request.kwargs["auth"] == aiohttp.BasicAuth("edgecli", "edgeclisecret")

    @pytest.mark.asyncio
    async def test_rejected_exchange_raises_auth_error(self):
        with aioresponses() as m:
            m.post(AUTH_URL, status=401, body="bad credentials")
            async with ApigeeClient(auth_url=AUTH_URL) as client:
                with pytest.raises(AuthError) as exc_info:
                    await client.post_token({"grant_type": "refresh_token", "refresh_token": "r"})
        assert exc_info.value.status == 401
        assert exc_info.value.grant_type == "refresh_token"


class TestUnwrapEnvelope:
    """Tests for listing envelope decoding."""

    def test_data_envelope(self):
        payload = {"status": "success", "message": "", "code": "", "error_code": "", "request_id": "r", "data": [1, 2]}
        assert unwrap_envelope(payload) == [1, 2]

    def test_missing_data_in_status_envelope_is_empty(self):
        assert unwrap_envelope({"status": "success", "code": ""}) == []

    def test_error_envelope(self):
        with pytest.raises(MalformedResponseError, match="reported an error"):
            unwrap_envelope({"status": "error", "message": "nope", "data": []})

    def test_error_code_envelope(self):
        with pytest.raises(MalformedResponseError):
            unwrap_envelope({"status": "success", "error_code": "E42", "data": []})

    def test_bare_array(self):
        assert unwrap_envelope(["a", "b"], None) == ["a", "b"]

    def test_custom_attribute(self):
        assert unwrap_envelope({"apiProduct": [{"name": "p"}]}, "apiProduct") == [{"name": "p"}]

    def test_missing_attribute(self):
        with pytest.raises(MalformedResponseError, match="no 'data' field"):
            unwrap_envelope({"something": []})

    def test_data_not_a_list(self):
        with pytest.raises(MalformedResponseError, match="not an array"):
            unwrap_envelope({"data": {"a": 1}})

    def test_non_object_payload(self):
        with pytest.raises(MalformedResponseError):
            unwrap_envelope("text")
