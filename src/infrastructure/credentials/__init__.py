"""
Client for the upload credential endpoint.

Implements the CredentialSource protocol from core.uploads.controller.
"""

from .client import CredentialClientConfig, HttpCredentialClient

__all__ = ["CredentialClientConfig", "HttpCredentialClient"]
