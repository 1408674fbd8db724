"""
HTTP access to the Apigee platform.
"""

from apigee_discovery.client.envelope import unwrap_envelope
from apigee_discovery.client.http import ApigeeClient, TokenProvider

__all__ = ["ApigeeClient", "TokenProvider", "unwrap_envelope"]
