"""
Release sync orchestrator.

Sequences one sync attempt for one organization:
1. Precheck the connection (installation + repository selected)
2. Claim the `syncing` status (compare-and-swap, single-flight)
3. Broker a fresh installation token
4. Fetch releases from GitHub
5. Reconcile them into shadow rows
6. Record `success` or `error` on the connection

Every failure after step 2 is recorded as `error` and re-raised.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from supabase import Client

from release_sync.core.config import GitHubAppConfig
from release_sync.exceptions import AppException, NotConfiguredError, SyncInProgressError
from release_sync.schemas.github import SyncStatus
from release_sync.services.db.connections import ConnectionRegistry
from release_sync.services.github.app_auth import InstallationTokenBroker
from release_sync.services.github.client import GitHubClient
from .progress import ProgressReporter, SyncPhase
from .reconciler import ReleaseReconciler

logger = logging.getLogger(__name__)


def describe_error(error: BaseException) -> str:
    """Human-readable message stored in last_sync_error."""
    if isinstance(error, AppException):
        return error.message
    if isinstance(error, asyncio.CancelledError):
        return "Sync was cancelled"
    return f"Unexpected error: {type(error).__name__}"


class ReleaseSyncService:
    """
    Orchestrates GitHub release synchronization.

    Stateless between calls: the only coordination state is the
    connection row's sync_status, so any number of workers may share it.
    """

    def __init__(
        self,
        supabase: Client,
        config: GitHubAppConfig,
        broker: Optional[InstallationTokenBroker] = None,
        client: Optional[GitHubClient] = None,
        progress: Optional[ProgressReporter] = None,
    ):
        self.supabase = supabase
        self.config = config
        self.registry = ConnectionRegistry(supabase)
        self.broker = broker or InstallationTokenBroker(config)
        self.client = client or GitHubClient(config)
        self.progress = progress

    # =========================================================================
    # Main Entry Point
    # =========================================================================

    async def sync(self, organization_id: str, trigger: str = "manual") -> dict:
        """
        Run one sync attempt.

        Returns:
            {"success": True, "synced_count": n, ...reconcile counters}

        Raises:
            NotConfiguredError: no installation or repository (state untouched)
            SyncInProgressError: another attempt owns the connection (state untouched)
            AppException: any failure during the attempt, after recording `error`
        """
        connection = self._precheck(organization_id)

        claim = self.registry.begin_sync(
            organization_id,
            connection,
            stale_after_seconds=self.config.sync_stale_after_seconds,
        )
        if claim is None:
            logger.info(
                "Sync rejected, another sync is in progress",
                extra={"organization_id": organization_id, "trigger": trigger},
            )
            raise SyncInProgressError(organization_id)

        started = datetime.now(timezone.utc)
        repository_full_name = connection["repository_full_name"]
        logger.info(
            f"Release sync started for {repository_full_name}",
            extra={"organization_id": organization_id, "trigger": trigger},
        )

        try:
            result = await self._run(organization_id, connection)
            self.registry.set_status(organization_id, SyncStatus.SUCCESS, claim=claim)
        except (Exception, asyncio.CancelledError) as e:
            message = describe_error(e)
            logger.error(
                f"Release sync failed for {repository_full_name}",
                extra={"organization_id": organization_id, "trigger": trigger, "error": message},
            )
            self._record_failure(organization_id, message, claim)
            await self._report_error(message)
            raise

        duration_ms = int((datetime.now(timezone.utc) - started).total_seconds() * 1000)
        response = {"success": True, **result, "duration_ms": duration_ms}
        logger.info(
            f"Release sync completed: {result['synced_count']} releases "
            f"({result['new_count']} new, {result['updated_count']} updated) in {duration_ms}ms",
            extra={"organization_id": organization_id, "trigger": trigger},
        )
        await self._report_done(response)
        return response

    # =========================================================================
    # Phases
    # =========================================================================

    def _precheck(self, organization_id: str) -> dict:
        """Fail fast without touching external services or state."""
        connection = self.registry.get(organization_id)
        if connection is None:
            raise NotConfiguredError("connection")
        if not connection.get("installation_id"):
            raise NotConfiguredError("installation")
        if not connection.get("repository_full_name"):
            raise NotConfiguredError("repository")
        return connection

    async def _run(self, organization_id: str, connection: dict) -> dict:
        repository_full_name = connection["repository_full_name"]

        await self._report_phase(SyncPhase.AUTHENTICATING)
        token = await self.broker.get_installation_token(connection["installation_id"])

        await self._report_phase(SyncPhase.FETCHING, repository=repository_full_name)
        releases = await self.client.list_releases(token.token, repository_full_name)
        await self._report_phase(SyncPhase.FETCHED, total=len(releases))

        await self._report_phase(SyncPhase.RECONCILING)
        reconciler = ReleaseReconciler(self.supabase, organization_id)
        return reconciler.reconcile(releases)

    def _record_failure(self, organization_id: str, message: str, claim: str) -> None:
        """Persist `error`. A storage failure is logged; the caller re-raises the sync error."""
        try:
            self.registry.set_status(organization_id, SyncStatus.ERROR, message, claim=claim)
        except Exception as e:
            logger.exception(
                "Could not record sync failure",
                extra={"organization_id": organization_id, "error": str(e)},
            )

    # =========================================================================
    # Helper: Progress Reporting
    # =========================================================================

    async def _report_phase(self, phase: SyncPhase, **data: Any) -> None:
        if self.progress:
            await self.progress.report_phase(phase, **data)

    async def _report_error(self, message: str) -> None:
        if self.progress:
            await self.progress.report_error(message)

    async def _report_done(self, result: dict) -> None:
        if self.progress:
            await self.progress.report_done(result)
