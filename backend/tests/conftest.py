"""Pytest configuration for tests.

Sets up the Python path and shared fixtures: an RSA key pair for App JWTs,
a GitHubAppConfig, the in-memory Supabase fake and a fake GitHub API.
"""

import sys
from pathlib import Path

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

# Add backend/ to Python path so `release_sync` imports work
backend_root = Path(__file__).parent.parent
if str(backend_root) not in sys.path:
    sys.path.insert(0, str(backend_root))

from release_sync.core.config import GitHubAppConfig  # noqa: E402
from release_sync.services.github.app_auth import InstallationTokenBroker  # noqa: E402
from release_sync.services.github.client import GitHubClient  # noqa: E402
from release_sync.services.github_integration import GitHubIntegrationService  # noqa: E402
from tests.fakes import FakeGitHub, FakeSupabase, connection_row  # noqa: E402


@pytest.fixture(scope="session")
def rsa_private_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def private_key_pem(rsa_private_key) -> str:
    return rsa_private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()


@pytest.fixture(scope="session")
def public_key_pem(rsa_private_key) -> str:
    return rsa_private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode()


@pytest.fixture
def app_config(private_key_pem) -> GitHubAppConfig:
    return GitHubAppConfig(
        app_id="12345",
        private_key=private_key_pem,
        webhook_secret="test-secret",
        api_url="https://api.github.test",
        timeout_seconds=5.0,
    )


@pytest.fixture
def fake_db() -> FakeSupabase:
    return FakeSupabase()


@pytest.fixture
def fake_github() -> FakeGitHub:
    return FakeGitHub()


@pytest.fixture
def connected_db() -> FakeSupabase:
    """Organization with an installation and a selected repository."""
    return FakeSupabase({"github_connections": [connection_row()]})


@pytest.fixture
def integration(connected_db, app_config, fake_github) -> GitHubIntegrationService:
    return GitHubIntegrationService(
        connected_db,
        app_config,
        broker=InstallationTokenBroker(app_config, transport=fake_github.transport),
        client=GitHubClient(app_config, transport=fake_github.transport),
    )
