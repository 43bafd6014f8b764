"""
GitHub release sync Celery tasks.

- sync_github_releases: one sync attempt for one organization. Never retried
  automatically; the next manual or scheduled trigger is a new attempt.
- scan_auto_sync_connections: beat task enqueuing a sync per auto-sync
  connection. Single-flight is enforced by the connection status, so an
  overlapping scan only produces rejected attempts.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Coroutine, Dict, TypeVar

from release_sync.core.config import get_github_app_config
from release_sync.exceptions import AppException, NotConfiguredError, SyncInProgressError
from release_sync.schemas.github import SyncStatus
from release_sync.services.db.connections import ConnectionRegistry
from release_sync.services.github_integration import GitHubIntegrationService
from release_sync.supabase_client import get_service_client
from .celery import app

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Matches the App JWT lifetime; a sync still running then is abandoned
SYNC_TIME_LIMIT_SECONDS = 600
SYNC_SOFT_TIME_LIMIT_SECONDS = 540


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """Run a coroutine on a private event loop from a sync Celery task."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        pending = asyncio.all_tasks(loop)
        for task in pending:
            task.cancel()
        if pending:
            loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
        loop.run_until_complete(loop.shutdown_asyncgens())
        loop.close()


# =============================================================================
# Core business logic
# =============================================================================

def do_sync_github_releases(organization_id: str, trigger: str) -> Dict[str, Any]:
    """
    Run one release sync outside the request cycle.

    Returns:
        The orchestrator result, or {"success": False, "skipped": True, ...}
        when the connection is not configured or already syncing
    """
    service = GitHubIntegrationService(get_service_client(), get_github_app_config())

    try:
        return run_async(service.trigger_sync(organization_id, trigger=trigger))
    except (NotConfiguredError, SyncInProgressError) as e:
        return {
            "success": False,
            "skipped": True,
            "organization_id": organization_id,
            "error": e.message,
        }


# =============================================================================
# Tasks
# =============================================================================

@app.task(
    bind=True,
    name="sync_github_releases",
    max_retries=0,
    acks_late=True,
    time_limit=SYNC_TIME_LIMIT_SECONDS,
    soft_time_limit=SYNC_SOFT_TIME_LIMIT_SECONDS,
)
def sync_github_releases(
    self,
    organization_id: str,
    trigger: str = "auto",  # "manual" or "auto"
):
    """
    Sync GitHub releases for an organization.

    Failures are already recorded on the connection by the orchestrator;
    the task result only mirrors them.
    """
    task_id = self.request.id
    start_time = datetime.now(timezone.utc)

    logger.info(
        f"[RELEASE_SYNC] Starting sync, trigger={trigger}",
        extra={"organization_id": organization_id, "trigger": trigger},
    )

    try:
        result = do_sync_github_releases(organization_id, trigger)
    except AppException as e:
        duration_ms = int((datetime.now(timezone.utc) - start_time).total_seconds() * 1000)
        logger.error(
            f"[RELEASE_SYNC] Failed (task {task_id}) after {duration_ms}ms",
            extra={"organization_id": organization_id, "trigger": trigger, "error": e.message},
        )
        return {
            "success": False,
            "organization_id": organization_id,
            "error": e.message,
            "retryable": e.retryable,
            "duration_ms": duration_ms,
        }

    if result.get("skipped"):
        logger.info(
            f"[RELEASE_SYNC] Skipped: {result['error']}",
            extra={"organization_id": organization_id, "trigger": trigger},
        )
    return {"organization_id": organization_id, **result}


@app.task(name="scan_auto_sync_connections")
def scan_auto_sync_connections():
    """Celery Beat task: enqueue a release sync per auto-sync connection."""
    registry = ConnectionRegistry(get_service_client())
    stale_after = get_github_app_config().sync_stale_after_seconds
    connections = registry.list_auto_sync_connections()

    scheduled = 0
    for connection in connections:
        if connection["sync_status"] == SyncStatus.SYNCING.value \
                and not registry.is_sync_stale(connection, stale_after):
            continue
        sync_github_releases.apply_async(
            kwargs={"organization_id": connection["organization_id"], "trigger": "auto"},
            queue="default",
        )
        scheduled += 1

    logger.info(f"[SCAN] Scheduled {scheduled}/{len(connections)} auto release syncs")
    return {"connections": len(connections), "scheduled": scheduled}

