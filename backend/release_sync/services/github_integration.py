"""
GitHub integration service.

Entry points used by the HTTP router, webhooks and Celery tasks. Configuration
mutators (select repository, disconnect, auto-sync) only touch the connection
row; operations that need GitHub broker a fresh installation token per call.
"""

import logging
from typing import List, Optional

from supabase import Client

from release_sync.core.config import GitHubAppConfig
from release_sync.exceptions import NotConfiguredError, NotFoundError, ValidationError
from release_sync.schemas.github import (
    GitHubBranch,
    GitHubLabel,
    GitHubRelease,
    GitHubRepository,
    GitHubTag,
    InstallationToken,
)
from release_sync.services.db.connections import ConnectionRegistry
from release_sync.services.db.github_releases import SyncedReleaseService
from release_sync.services.db.releases import ReleaseService
from release_sync.services.github.app_auth import InstallationTokenBroker
from release_sync.services.github.client import GitHubClient
from release_sync.services.sync.progress import ProgressReporter
from release_sync.services.sync.reconciler import ReleaseReconciler
from release_sync.services.sync.release_sync import ReleaseSyncService

logger = logging.getLogger(__name__)

# Fields GitHubRelease.from_api cannot do without
RELEASE_EVENT_FIELDS = ("id", "tag_name", "html_url")


class GitHubIntegrationService:
    """
    Facade over the registry, broker, client, orchestrator and reconciler.

    Usage:
        service = GitHubIntegrationService(get_service_client(), get_github_app_config())
        result = await service.trigger_sync(organization_id)
    """

    def __init__(
        self,
        supabase: Client,
        config: GitHubAppConfig,
        broker: Optional[InstallationTokenBroker] = None,
        client: Optional[GitHubClient] = None,
    ):
        self.supabase = supabase
        self.config = config
        self.registry = ConnectionRegistry(supabase)
        self.broker = broker or InstallationTokenBroker(config)
        self.client = client or GitHubClient(config)

    # =========================================================================
    # Sync
    # =========================================================================

    async def trigger_sync(
        self,
        organization_id: str,
        trigger: str = "manual",
        progress: Optional[ProgressReporter] = None,
    ) -> dict:
        sync_service = ReleaseSyncService(
            self.supabase,
            self.config,
            broker=self.broker,
            client=self.client,
            progress=progress,
        )
        return await sync_service.sync(organization_id, trigger=trigger)

    def get_connection_status(self, organization_id: str) -> dict:
        connection = self.registry.get(organization_id)
        if connection is None:
            return {
                "is_connected": False,
                "status": "idle",
                "last_error": None,
                "repository_full_name": None,
                "auto_sync_enabled": False,
                "last_sync_at": None,
                "account_login": None,
            }

        return {
            "is_connected": bool(connection["installation_id"]),
            "status": connection["sync_status"],
            "last_error": connection["last_sync_error"],
            "repository_full_name": connection["repository_full_name"],
            "auto_sync_enabled": connection["auto_sync_enabled"],
            "last_sync_at": connection["last_sync_at"],
            "account_login": connection["account_login"],
        }

    # =========================================================================
    # Connection configuration
    # =========================================================================

    def save_installation(
        self,
        organization_id: str,
        installation_id: str,
        account_login: Optional[str] = None,
        account_type: Optional[str] = None,
        account_avatar_url: Optional[str] = None,
    ) -> dict:
        return self.registry.save_installation(
            organization_id,
            installation_id,
            account_login=account_login,
            account_type=account_type,
            account_avatar_url=account_avatar_url,
        )

    def select_repository(self, organization_id: str, repository_full_name: str) -> dict:
        connection = self._require_installation(organization_id)
        updated = self.registry.set_repository(organization_id, repository_full_name)
        logger.info(
            f"Selected repository {repository_full_name} "
            f"(was {connection['repository_full_name'] or 'none'})",
            extra={"organization_id": organization_id},
        )
        return updated

    def disconnect(self, organization_id: str) -> bool:
        """Unlink the installation. Synced releases are kept."""
        return self.registry.clear(organization_id)

    def toggle_auto_sync(self, organization_id: str, enabled: bool) -> dict:
        return self.registry.set_auto_sync(organization_id, enabled)

    def handle_installation_deleted(self, installation_id: str) -> bool:
        """The App was uninstalled on GitHub; disconnect the owning organization."""
        connection = self.registry.get_by_installation(installation_id)
        if connection is None:
            logger.info(f"No connection for uninstalled installation {installation_id}")
            return False
        return self.disconnect(connection["organization_id"])

    # =========================================================================
    # GitHub reads
    # =========================================================================

    async def list_repositories(self, organization_id: str) -> List[GitHubRepository]:
        _, token = await self._installation_token(organization_id)
        return await self.client.list_repositories(token.token)

    async def list_labels(self, organization_id: str) -> List[GitHubLabel]:
        connection, token = await self._installation_token(organization_id)
        repository_full_name = self._require_repository(connection)
        return await self.client.list_labels(token.token, repository_full_name)

    async def list_branches(self, organization_id: str) -> List[GitHubBranch]:
        connection, token = await self._installation_token(organization_id)
        repository_full_name = self._require_repository(connection)
        return await self.client.list_branches(token.token, repository_full_name)

    async def list_tags(self, organization_id: str) -> List[GitHubTag]:
        connection, token = await self._installation_token(organization_id)
        repository_full_name = self._require_repository(connection)
        return await self.client.list_tags(token.token, repository_full_name)

    # =========================================================================
    # Releases
    # =========================================================================

    async def push_release(self, organization_id: str, release_id: str) -> dict:
        """
        Publish a native release to GitHub and link it.

        Already linked releases are returned as-is. A synced GitHub release
        whose tag equals the release version is adopted instead of creating
        a second one.
        """
        releases = ReleaseService(self.supabase, organization_id)
        reconciler = ReleaseReconciler(self.supabase, organization_id)

        release = releases.get(release_id)
        if release is None:
            raise NotFoundError("Release")

        if release.get("github_release_id"):
            return self._link_result(release_id, release["github_release_id"], release.get("github_html_url"))

        version = release.get("version")
        if not version:
            raise ValidationError("Release needs a version before it can be pushed to GitHub")

        shadow = SyncedReleaseService(self.supabase, organization_id).get_by_tag(version)
        if shadow is not None and releases.find_by_github_release_id(shadow["github_release_id"]) is None:
            reconciler.link_github_release(release_id, shadow["github_release_id"], shadow.get("html_url"))
            return self._link_result(release_id, shadow["github_release_id"], shadow.get("html_url"))

        connection, token = await self._installation_token(organization_id)
        repository_full_name = self._require_repository(connection)

        github_release = await self.client.create_release(
            token.token,
            repository_full_name,
            tag_name=version,
            name=release.get("title"),
            body=release.get("description"),
            draft=not release.get("published_at"),
        )
        reconciler.shadows.upsert_release(github_release)
        reconciler.link_github_release(release_id, github_release.github_release_id, github_release.html_url)

        return self._link_result(
            release_id,
            github_release.github_release_id,
            github_release.html_url,
            created_on_github=True,
        )

    def import_github_release(
        self,
        organization_id: str,
        github_release_id: str,
        auto_publish: bool = False,
    ) -> dict:
        return ReleaseReconciler(self.supabase, organization_id) \
            .import_github_release(github_release_id, auto_publish=auto_publish)

    def link_github_release(
        self,
        organization_id: str,
        release_id: str,
        github_release_id: str,
        github_html_url: Optional[str] = None,
    ) -> bool:
        return ReleaseReconciler(self.supabase, organization_id) \
            .link_github_release(release_id, github_release_id, github_html_url)

    def list_synced_releases(self, organization_id: str) -> List[dict]:
        """Shadow rows, newest first. Includes linked and unlinked ones."""
        return SyncedReleaseService(self.supabase, organization_id).list_releases()

    def release_overview(self, organization_id: str) -> dict:
        return ReleaseReconciler(self.supabase, organization_id).release_sync_overview()

    def handle_release_event(self, payload: dict) -> dict:
        """
        Route a verified `release` webhook payload to its organization.

        Events for unknown installations or for a repository other than the
        selected one are ignored.
        """
        action = payload.get("action")
        installation_id = (payload.get("installation") or {}).get("id")
        repository_full_name = (payload.get("repository") or {}).get("full_name")
        release_data = payload.get("release")

        if not action or not installation_id or not repository_full_name or not release_data:
            raise ValidationError("Release event needs action, installation, repository and release")
        if not isinstance(release_data, dict) or \
                not all(release_data.get(field) for field in RELEASE_EVENT_FIELDS):
            raise ValidationError("Release event release needs id, tag_name and html_url")

        connection = self.registry.get_by_installation(str(installation_id))
        if connection is None:
            logger.info(f"Ignoring release event for unknown installation {installation_id}")
            return {"action": "ignored", "reason": "unknown installation"}

        organization_id = connection["organization_id"]
        if connection["repository_full_name"] != repository_full_name:
            logger.info(
                f"Ignoring release event for unselected repository {repository_full_name}",
                extra={"organization_id": organization_id},
            )
            return {"action": "ignored", "reason": "repository not selected"}

        return ReleaseReconciler(self.supabase, organization_id).handle_release_event(
            action,
            GitHubRelease.from_api(release_data),
            auto_import=connection["auto_sync_enabled"],
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    def _require_installation(self, organization_id: str) -> dict:
        connection = self.registry.get(organization_id)
        if connection is None or not connection["installation_id"]:
            raise NotConfiguredError("installation")
        return connection

    @staticmethod
    def _require_repository(connection: dict) -> str:
        if not connection["repository_full_name"]:
            raise NotConfiguredError("repository")
        return connection["repository_full_name"]

    async def _installation_token(self, organization_id: str) -> tuple[dict, InstallationToken]:
        connection = self._require_installation(organization_id)
        token = await self.broker.get_installation_token(connection["installation_id"])
        return connection, token

    @staticmethod
    def _link_result(
        release_id: str,
        github_release_id: str,
        github_html_url: Optional[str],
        created_on_github: bool = False,
    ) -> dict:
        return {
            "release_id": release_id,
            "github_release_id": github_release_id,
            "github_html_url": github_html_url,
            "created_on_github": created_on_github,
        }
