"""
Pydantic schemas for the GitHub integration.

The GitHub* models are the normalized shapes returned by GitHubClient; the
request/response models are used by the HTTP router.
"""

import re
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, field_validator

REPOSITORY_FULL_NAME = re.compile(r"^[A-Za-z0-9_.-]+/[A-Za-z0-9_.-]+$")


class SyncStatus(str, Enum):
    """Connection sync state."""
    IDLE = "idle"
    SYNCING = "syncing"
    SUCCESS = "success"
    ERROR = "error"


# =============================================================================
# Normalized GitHub objects
# =============================================================================

class InstallationToken(BaseModel):
    """Delegated, installation-scoped access token. Never persisted."""
    token: str
    expires_at: datetime

    @property
    def is_expired(self) -> bool:
        return datetime.now(timezone.utc) >= self.expires_at

    def __repr__(self) -> str:
        return f"InstallationToken(expires_at={self.expires_at.isoformat()})"

    __str__ = __repr__


class GitHubRepository(BaseModel):
    id: str
    full_name: str
    name: str
    default_branch: str | None = None
    is_private: bool = False
    description: str | None = None


class GitHubLabel(BaseModel):
    id: str
    name: str
    color: str | None = None
    description: str | None = None


class GitHubBranch(BaseModel):
    name: str
    is_protected: bool = False


class GitHubTag(BaseModel):
    name: str
    sha: str


class GitHubRelease(BaseModel):
    """One GitHub release, field names mapped from the REST payload."""
    github_release_id: str
    tag_name: str
    name: str | None = None
    body: str | None = None
    html_url: str
    is_draft: bool = False
    is_prerelease: bool = False
    published_at: str | None = None
    created_at: str | None = None

    @classmethod
    def from_api(cls, data: dict) -> "GitHubRelease":
        return cls(
            github_release_id=str(data["id"]),
            tag_name=data["tag_name"],
            name=data.get("name"),
            body=data.get("body"),
            html_url=data["html_url"],
            is_draft=bool(data.get("draft", False)),
            is_prerelease=bool(data.get("prerelease", False)),
            published_at=data.get("published_at") or None,
            created_at=data.get("created_at") or None,
        )


# =============================================================================
# Request / response models
# =============================================================================

class ConnectionStatusResponse(BaseModel):
    is_connected: bool
    status: SyncStatus
    last_error: str | None = None
    repository_full_name: str | None = None
    auto_sync_enabled: bool = False
    last_sync_at: datetime | None = None
    account_login: str | None = None


class SyncResponse(BaseModel):
    success: bool
    synced_count: int


class SelectRepositoryRequest(BaseModel):
    repository_full_name: str

    @field_validator("repository_full_name")
    @classmethod
    def check_full_name(cls, value: str) -> str:
        value = value.strip()
        if not REPOSITORY_FULL_NAME.match(value):
            raise ValueError("repository_full_name must look like 'owner/repo'")
        return value


class AutoSyncRequest(BaseModel):
    enabled: bool


class ImportReleaseRequest(BaseModel):
    auto_publish: bool = False


class ReleaseLinkResponse(BaseModel):
    release_id: str
    github_release_id: str
    github_html_url: str | None = None
    created_on_github: bool = False


class ReleaseOverviewResponse(BaseModel):
    github_only: list[dict]
    local_only: list[dict]
    synced: list[dict]


class InstallationRequest(BaseModel):
    """Sent by the frontend after GitHub redirects back from the App install flow."""
    installation_id: str
    account_login: str | None = None
    account_type: str | None = None
    account_avatar_url: str | None = None
