"""
GitHub App configuration.

Credentials are read from the environment exactly once, in
`GitHubAppConfig.from_env()`, and then passed explicitly to the token minter,
broker and API client. Nothing else in the package reads GITHUB_* variables.
"""

import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import find_dotenv, load_dotenv

DEFAULT_API_URL = "https://api.github.com"
DEFAULT_TIMEOUT_SECONDS = 30.0
# Matches the signed assertion lifetime (600s + 60s clock skew)
DEFAULT_SYNC_STALE_AFTER_SECONDS = 660


def normalize_private_key(key: str | None) -> str | None:
    """
    Turn a PEM stored with literal "\\n" sequences (common in .env files and
    dashboard secrets) back into a multi-line PEM.
    """
    if not key:
        return key
    return key.replace("\\n", "\n").strip() + "\n"


@dataclass(frozen=True)
class GitHubAppConfig:
    """Process-wide, read-only GitHub App settings."""

    app_id: str | None
    private_key: str | None
    webhook_secret: str | None = None
    api_url: str = DEFAULT_API_URL
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    sync_stale_after_seconds: int = DEFAULT_SYNC_STALE_AFTER_SECONDS

    def __post_init__(self):
        object.__setattr__(self, "private_key", normalize_private_key(self.private_key))
        object.__setattr__(self, "api_url", self.api_url.rstrip("/"))

    @property
    def is_complete(self) -> bool:
        return bool(self.app_id and self.private_key)

    def __repr__(self) -> str:
        # Never print the key
        return (
            f"GitHubAppConfig(app_id={self.app_id!r}, api_url={self.api_url!r}, "
            f"private_key={'<set>' if self.private_key else None})"
        )

    @classmethod
    def from_env(cls) -> "GitHubAppConfig":
        _ = load_dotenv(find_dotenv())
        return cls(
            app_id=os.environ.get("GITHUB_APP_ID") or None,
            private_key=os.environ.get("GITHUB_APP_PRIVATE_KEY") or None,
            webhook_secret=os.environ.get("GITHUB_WEBHOOK_SECRET") or None,
            api_url=os.environ.get("GITHUB_API_URL", DEFAULT_API_URL),
            timeout_seconds=float(
                os.environ.get("GITHUB_HTTP_TIMEOUT", DEFAULT_TIMEOUT_SECONDS)
            ),
            sync_stale_after_seconds=int(
                os.environ.get("SYNC_STALE_AFTER_SECONDS", DEFAULT_SYNC_STALE_AFTER_SECONDS)
            ),
        )


@lru_cache(maxsize=1)
def get_github_app_config() -> GitHubAppConfig:
    """Process-wide config, built on first use."""
    return GitHubAppConfig.from_env()
