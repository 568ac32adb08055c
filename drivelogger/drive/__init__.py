"""
Google Drive interaction module.

Handles OAuth, the consent prompt, and the Drive REST client.
"""

from .auth import TokenManager, CredentialRecord
from .client import DriveClient, DriveClientConfig
from .prompt import LocalServerPrompt, ConsentFlow

__all__ = [
    "TokenManager",
    "CredentialRecord",
    "DriveClient",
    "DriveClientConfig",
    "LocalServerPrompt",
    "ConsentFlow",
]
