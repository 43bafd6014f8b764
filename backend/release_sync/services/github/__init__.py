"""
GitHub App integration: JWT minting, installation tokens and REST client.
"""

from .app_auth import AppTokenMinter, InstallationTokenBroker
from .client import GitHubClient

__all__ = [
    "AppTokenMinter",
    "InstallationTokenBroker",
    "GitHubClient",
]
