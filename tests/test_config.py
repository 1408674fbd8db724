"""
Tests for configuration loading and the typed Apigee settings.
"""

import pytest

from apigee_discovery.config import ApigeeConfig, Config, load_config, parse_duration, resolve_config
from apigee_discovery.exceptions import ConfigurationError


def _valid_section(**overrides):
    section = {
        "organization": "acme",
        "developerID": "dev@acme.test",
        "auth": {"username": "svc", "password": "secret"},
    }
    section.update(overrides)
    return section


class TestParseDuration:
    """Tests for duration parsing."""

    @pytest.mark.parametrize(
        "value, expected",
        [
            (30, 30.0),
            (0.5, 0.5),
            ("45", 45.0),
            ("30s", 30.0),
            ("5m", 300.0),
            ("1h", 3600.0),
            ("1h30m", 5400.0),
            ("250ms", 0.25),
        ],
    )
    def test_valid(self, value, expected):
        assert parse_duration(value) == expected

    @pytest.mark.parametrize("value", ["", "soon", "5 minutes", "10x", None, True])
    def test_invalid(self, value):
        with pytest.raises(ConfigurationError, match="must be a duration"):
            parse_duration(value, name="intervals.proxy")


class TestApigeeConfigDefaults:
    """Tests for defaults taken from the platform agent."""

    def test_defaults(self):
        cfg = ApigeeConfig.from_config(Config({"apigee": _valid_section()}))
        assert cfg.url == "https://api.enterprise.apigee.com"
        assert cfg.data_url == "https://apigee.com/dapi/api"
        assert cfg.auth_url == "https://login.apigee.com/oauth/token"
        assert cfg.api_version == "v1"
        assert cfg.auth.client_id == "edgecli"
        assert cfg.auth.client_secret == "edgeclisecret"
        assert cfg.auth.refresh_margin == 60.0
        assert cfg.page_size == 100
        assert cfg.http.retries == 0
        assert cfg.scheduler_tick == 0.5
        assert cfg.shutdown_grace == 10.0

    def test_default_intervals(self):
        cfg = ApigeeConfig.from_config(Config({"apigee": _valid_section()}))
        assert cfg.intervals.proxy == 30
        assert cfg.intervals.spec == 30 * 60
        assert cfg.intervals.product == 5 * 60
        assert cfg.intervals.portal == 60
        assert cfg.intervals.api == 30

    def test_overrides(self):
        data = {
            "apigee": _valid_section(
                url="https://edge.internal/",
                dataURL="https://data.internal/",
                filter='name == "payments"',
                specFilter="name =~ ^v2",
                pageSize=25,
                intervals={"proxy": "10s", "spec": "1h"},
                http={"timeout": "5s", "retries": 2},
            ),
            "scheduler": {"tick": "250ms", "shutdownGrace": 3},
        }
        cfg = ApigeeConfig.from_config(Config(data))
        assert cfg.url == "https://edge.internal"
        assert cfg.data_url == "https://data.internal"
        assert cfg.filter == 'name == "payments"'
        assert cfg.spec_filter == "name =~ ^v2"
        assert cfg.page_size == 25
        assert cfg.intervals.proxy == 10
        assert cfg.intervals.spec == 3600
        assert cfg.intervals.product == 300
        assert cfg.http.timeout == 5
        assert cfg.http.retries == 2
        assert cfg.scheduler_tick == 0.25
        assert cfg.shutdown_grace == 3


class TestApigeeConfigValidation:
    """Tests for startup validation."""

    def test_valid_config_passes(self):
        ApigeeConfig.from_config(Config({"apigee": _valid_section()})).validate()

    @pytest.mark.parametrize(
        "section, missing",
        [
            (_valid_section(organization=""), "organization"),
            (_valid_section(auth={"username": "", "password": "x"}), "username"),
            (_valid_section(auth={"username": "svc"}), "password"),
            (_valid_section(url=""), "url"),
        ],
    )
    def test_missing_required(self, section, missing):
        cfg = ApigeeConfig.from_config(Config({"apigee": section}))
        with pytest.raises(ConfigurationError, match=f"invalid APIGEE configuration: {missing} is not configured"):
            cfg.validate()

    def test_missing_developer_id(self):
        section = _valid_section()
        del section["developerID"]
        cfg = ApigeeConfig.from_config(Config({"apigee": section}))
        with pytest.raises(ConfigurationError, match="developer ID"):
            cfg.validate()

    def test_unresolved_placeholder_is_missing(self):
        cfg = ApigeeConfig.from_config(
            Config({"apigee": _valid_section(auth={"username": "svc", "password": "${APIGEE_PASSWORD_UNSET}"})})
        )
        with pytest.raises(ConfigurationError, match="password is not configured"):
            cfg.validate()

    def test_non_positive_interval(self):
        cfg = ApigeeConfig.from_config(Config({"apigee": _valid_section(intervals={"portal": 0})}))
        with pytest.raises(ConfigurationError, match="portal interval must be positive"):
            cfg.validate()

    def test_non_positive_page_size(self):
        cfg = ApigeeConfig.from_config(Config({"apigee": _valid_section(pageSize=0)}))
        with pytest.raises(ConfigurationError, match="page size"):
            cfg.validate()

    @pytest.mark.parametrize(
        "scheduler, message",
        [
            ({"tick": 0}, "scheduler tick must be positive"),
            ({"shutdownGrace": "0s"}, "shutdown grace must be positive"),
        ],
    )
    def test_non_positive_scheduler_settings(self, scheduler, message):
        cfg = ApigeeConfig.from_config(Config({"apigee": _valid_section(), "scheduler": scheduler}))
        with pytest.raises(ConfigurationError, match=message):
            cfg.validate()

    @pytest.mark.parametrize("key", ["filter", "specFilter"])
    def test_invalid_filter_expression(self, key):
        cfg = ApigeeConfig.from_config(Config({"apigee": _valid_section(**{key: "name =="})}))
        with pytest.raises(ConfigurationError, match=f"invalid APIGEE configuration: {key}: invalid filter expression"):
            cfg.validate()

    def test_valid_filter_expressions_pass(self):
        section = _valid_section(filter='name =~ "^pay"', specFilter="name == public")
        ApigeeConfig.from_config(Config({"apigee": section})).validate()

    def test_non_integer_retries(self):
        with pytest.raises(ConfigurationError, match="http.retries must be an integer"):
            ApigeeConfig.from_config(Config({"apigee": _valid_section(http={"retries": "a few"})}))


class TestLoadConfig:
    """Tests for YAML loading with env overlays."""

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="Configuration file not found"):
            load_config(tmp_path)

    def test_invalid_yaml(self, tmp_path):
        (tmp_path / "config.yaml").write_text("apigee: [unclosed\n")
        with pytest.raises(ConfigurationError):
            load_config(tmp_path)

    def test_env_overlay_and_substitution(self, tmp_path, monkeypatch):
        monkeypatch.setenv("APIGEE_TEST_PASSWORD", "s3cret")
        (tmp_path / "config.yaml").write_text(
            "apigee:\n"
            "  organization: acme-{env}\n"
            "  auth:\n"
            "    username: svc\n"
            "    password: ${APIGEE_TEST_PASSWORD}\n"
            "  intervals:\n"
            "    proxy: 30s\n"
        )
        (tmp_path / "config.prod.yaml").write_text("apigee:\n  intervals:\n    proxy: 2m\n")

        config = load_config(tmp_path, env="prod")
        assert config.get("apigee.organization") == "acme-prod"
        assert config.get("apigee.auth.password") == "s3cret"
        assert config.get("apigee.auth.username") == "svc"
        assert config.get("apigee.intervals.proxy") == "2m"
        assert config.get("apigee.missing.key", "fallback") == "fallback"
        assert "apigee" in config

    def test_resolve_leaves_unset_variables(self):
        resolved = resolve_config({"a": ["${DEFINITELY_NOT_SET_12345}", 3]}, env="dev")
        assert resolved == {"a": ["${DEFINITELY_NOT_SET_12345}", 3]}
