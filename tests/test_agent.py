"""
End-to-end tests for agent wiring against a mocked Apigee platform.
"""

import asyncio
import re
from unittest.mock import Mock

import pytest
from aioresponses import aioresponses

from apigee_discovery.agent import JOB_ORDER, DiscoveryAgent, build_endpoints
from apigee_discovery.config import ApigeeConfig, AuthConfig
from apigee_discovery.discovery.catalog import MemoryCatalog
from apigee_discovery.discovery.models import ResourceKind
from apigee_discovery.discovery.reconciler import Reconciler
from apigee_discovery.exceptions import ConfigurationError

AUTH_URL = "https://login.example.test/oauth/token"
EDGE = "https://edge.example.test"
DATA = "https://data.example.test"


def make_config(**overrides) -> ApigeeConfig:
    values = {
        "organization": "acme",
        "url": EDGE,
        "data_url": DATA,
        "auth_url": AUTH_URL,
        "developer_id": "dev@acme.test",
        "auth": AuthConfig(username="svc", password="secret"),
        "page_size": 10,
        "scheduler_tick": 0.01,
        "shutdown_grace": 1.0,
    }
    values.update(overrides)
    return ApigeeConfig(**values)


def mock_platform(m: aioresponses, *, portals_status: int = 200) -> None:
    m.post(AUTH_URL, payload={"access_token": "tkn", "refresh_token": "r", "expires_in": 3600}, repeat=True)
    if portals_status == 200:
        m.get(
            re.compile(rf"^{DATA}/organizations/acme/sites(\?.*)?$"),
            payload={"status": "success", "data": [{"id": "p1", "name": "Dev Portal"}]},
            repeat=True,
        )
    else:
        m.get(re.compile(rf"^{DATA}/organizations/acme/sites(\?.*)?$"), status=portals_status, repeat=True)
    m.get(
        re.compile(rf"^{DATA}/organizations/acme/specs/folder/home(\?.*)?$"),
        payload={"id": "home", "contents": [{"id": "s1", "name": "payments"}]},
        repeat=True,
    )
    m.get(re.compile(rf"^{EDGE}/v1/organizations/acme/apis(\?.*)?$"), payload=["payments", "orders"], repeat=True)
    m.get(
        re.compile(rf"^{EDGE}/v1/organizations/acme/apiproducts(\?.*)?$"),
        payload={"apiProduct": [{"name": "gold", "proxies": ["payments"]}]},
        repeat=True,
    )
    m.get(
        re.compile(rf"^{DATA}/sites/p1/apidocs(\?.*)?$"),
        payload={"status": "success", "data": [{"id": "d1", "siteId": "p1", "title": "Payments"}]},
        repeat=True,
    )


class TestWiring:
    """Tests for job and gate wiring."""

    def test_invalid_config_is_fatal(self):
        with pytest.raises(ConfigurationError):
            DiscoveryAgent(make_config(organization=""))

    def test_jobs_and_gates(self):
        agent = DiscoveryAgent(make_config())
        jobs = agent.scheduler.jobs

        assert set(jobs) == set(JOB_ORDER)
        assert jobs["portals"].ready_when == ()
        assert jobs["specs"].ready_when == ()
        assert jobs["proxies"].ready_when == ()
        assert jobs["products"].ready_when == (agent.gates["specs"],)
        assert jobs["apis"].ready_when == (agent.gates["portals"],)
        assert jobs["register-validator"].ready_when == (agent.gates["proxies"],)
        assert jobs["register-validator"].owns is agent.gates["validator-registered"]
        for job_id in ("portals", "specs", "proxies", "products", "apis"):
            assert jobs[job_id].owns is agent.gates[job_id]

    def test_intervals_follow_config(self):
        agent = DiscoveryAgent(make_config())
        jobs = agent.scheduler.jobs

        assert jobs["proxies"].interval == 30
        assert jobs["specs"].interval == 1800
        assert jobs["products"].interval == 300
        assert jobs["portals"].interval == 60
        assert jobs["apis"].interval == 30
        assert jobs["register-validator"].interval == jobs["proxies"].interval

    def test_endpoint_urls(self):
        reconciler = Reconciler()
        endpoints = build_endpoints(make_config(), reconciler)

        assert endpoints[ResourceKind.PROXY].urls() == [f"{EDGE}/v1/organizations/acme/apis"]
        assert endpoints[ResourceKind.PRODUCT].params == {"expand": "true"}
        assert endpoints[ResourceKind.API].urls() == []

        reconciler.portal_titles = {"p2": "Two", "p1": "One"}
        assert endpoints[ResourceKind.API].urls() == [f"{DATA}/sites/p1/apidocs", f"{DATA}/sites/p2/apidocs"]


class TestRunOnce:
    """Tests for the dependency-ordered single pass."""

    @pytest.mark.asyncio
    async def test_full_pass(self):
        catalog = MemoryCatalog()
        validator = Mock()
        agent = DiscoveryAgent(make_config(), consumer=catalog, validator=validator)

        with aioresponses() as m:
            mock_platform(m)
            outcomes = await agent.run_once()

        assert list(outcomes) == JOB_ORDER
        assert all(o.success for o in outcomes.values())
        assert catalog.count(ResourceKind.PORTAL) == 1
        assert catalog.count(ResourceKind.SPEC) == 1
        assert catalog.count(ResourceKind.PROXY) == 2
        assert catalog.count(ResourceKind.PRODUCT) == 1
        assert catalog.count(ResourceKind.API) == 1
        assert catalog.get(ResourceKind.API, "d1").portal_title == "Dev Portal"
        assert catalog.get(ResourceKind.PRODUCT, "gold").resolved_specs == (("payments", "s1"),)
        validator.assert_called_once_with()
        assert all(agent.status()["gates"].values())

    @pytest.mark.asyncio
    async def test_failed_dependency_skips_dependents(self):
        catalog = MemoryCatalog()
        agent = DiscoveryAgent(make_config(), consumer=catalog)

        with aioresponses() as m:
            mock_platform(m, portals_status=500)
            outcomes = await agent.run_once()

        assert outcomes["portals"].success is False
        assert "apis" not in outcomes
        assert outcomes["products"].success is True
        assert catalog.count(ResourceKind.API) == 0
        assert agent.status()["gates"]["portals"] is False


class TestRun:
    """Tests for the scheduled run loop."""

    @pytest.mark.asyncio
    async def test_runs_until_stopped(self):
        stop = asyncio.Event()
        validator = Mock(side_effect=lambda: stop.set())
        catalog = MemoryCatalog()
        agent = DiscoveryAgent(make_config(), consumer=catalog, validator=validator)

        with aioresponses() as m:
            mock_platform(m)
            await asyncio.wait_for(agent.run(stop), timeout=5)

        validator.assert_called_once_with()
        assert agent.gates["proxies"].is_done()
        assert catalog.count(ResourceKind.PROXY) == 2
        assert agent.scheduler.status()["running"] is False
