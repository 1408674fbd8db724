"""
Authentication against the Apigee OAuth endpoint.
"""

from apigee_discovery.auth.credentials import Credential, CredentialManager, GrantType

__all__ = ["Credential", "CredentialManager", "GrantType"]
