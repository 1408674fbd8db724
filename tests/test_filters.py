"""
Tests for inclusion filter expressions.
"""

import pytest

from apigee_discovery.discovery.filters import FilterExpression
from apigee_discovery.exceptions import ConfigurationError

PRODUCT = {
    "name": "payments-v2",
    "displayName": "Payments",
    "attributes": {"access": "public", "tier": "gold"},
    "environments": ["test", "prod"],
    "approvalType": "auto",
}


class TestFilterExpression:
    """Tests for parsing and evaluation."""

    def test_empty_accepts_everything(self):
        flt = FilterExpression("")
        assert not flt
        assert flt.matches({}) is True

    @pytest.mark.parametrize(
        "expression, expected",
        [
            ('name == "payments-v2"', True),
            ("name == payments-v2", True),
            ("name != payments-v2", False),
            ("name =~ ^pay", True),
            ("name !~ ^pay", False),
            ("attributes.access == public", True),
            ("attributes.tier == silver", False),
            ("environments == prod", True),
            ("environments == dev", False),
            ("attributes.access == public && name =~ v2$", True),
            ("attributes.access == private || approvalType == auto", True),
            ("!(environments == test)", False),
            ("!(environments == dev) && displayName == 'Payments'", True),
            ("attributes.missing == x", False),
            ("attributes.missing != x", True),
            ("attributes.access", True),
            ("attributes.missing", False),
        ],
    )
    def test_evaluation(self, expression, expected):
        flt = FilterExpression(expression)
        assert flt
        assert flt.matches(PRODUCT) is expected

    @pytest.mark.parametrize(
        "expression",
        [
            "name ==",
            "(name == a",
            "name == a &&",
            "name == a b",
            "== a",
            "name =~ ([",
        ],
    )
    def test_invalid_expressions(self, expression):
        with pytest.raises(ConfigurationError, match="invalid filter expression"):
            FilterExpression(expression)
