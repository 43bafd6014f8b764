"""
GitHub integration API endpoints.

Organization-scoped routes require an organization admin. The webhook route
is authenticated by its HMAC signature instead.
"""

import asyncio
import json
import logging
from typing import List

from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import StreamingResponse

from release_sync.core.config import GitHubAppConfig
from release_sync.dependencies import get_config, get_github_service, require_org_admin
from release_sync.exceptions import NotConfiguredError, SyncInProgressError, ValidationError
from release_sync.schemas.github import (
    AutoSyncRequest,
    ConnectionStatusResponse,
    GitHubBranch,
    GitHubLabel,
    GitHubRepository,
    GitHubTag,
    ImportReleaseRequest,
    InstallationRequest,
    ReleaseLinkResponse,
    ReleaseOverviewResponse,
    SelectRepositoryRequest,
    SyncResponse,
)
from release_sync.services.github.webhooks import verify_signature
from release_sync.services.github_integration import GitHubIntegrationService
from release_sync.services.sync.sse_reporter import SSEProgressReporter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/github", tags=["github"])

ORG_PREFIX = "/organizations/{organization_id}"


# =============================================================================
# Connection
# =============================================================================

@router.post(f"{ORG_PREFIX}/installation", response_model=ConnectionStatusResponse)
async def save_installation(
    request: InstallationRequest,
    organization_id: str = Depends(require_org_admin),
    service: GitHubIntegrationService = Depends(get_github_service),
):
    """Store the installation id returned by the GitHub App install flow."""
    service.save_installation(
        organization_id,
        request.installation_id,
        account_login=request.account_login,
        account_type=request.account_type,
        account_avatar_url=request.account_avatar_url,
    )
    return service.get_connection_status(organization_id)


@router.get(f"{ORG_PREFIX}/status", response_model=ConnectionStatusResponse)
async def get_status(
    organization_id: str = Depends(require_org_admin),
    service: GitHubIntegrationService = Depends(get_github_service),
):
    return service.get_connection_status(organization_id)


@router.put(f"{ORG_PREFIX}/repository", response_model=ConnectionStatusResponse)
async def select_repository(
    request: SelectRepositoryRequest,
    organization_id: str = Depends(require_org_admin),
    service: GitHubIntegrationService = Depends(get_github_service),
):
    service.select_repository(organization_id, request.repository_full_name)
    return service.get_connection_status(organization_id)


@router.delete(f"{ORG_PREFIX}/connection")
async def disconnect(
    organization_id: str = Depends(require_org_admin),
    service: GitHubIntegrationService = Depends(get_github_service),
):
    """Unlink installation and repository. Synced releases are kept."""
    return {"success": service.disconnect(organization_id)}


@router.put(f"{ORG_PREFIX}/auto-sync", response_model=ConnectionStatusResponse)
async def toggle_auto_sync(
    request: AutoSyncRequest,
    organization_id: str = Depends(require_org_admin),
    service: GitHubIntegrationService = Depends(get_github_service),
):
    service.toggle_auto_sync(organization_id, request.enabled)
    return service.get_connection_status(organization_id)


# =============================================================================
# Sync
# =============================================================================

@router.post(f"{ORG_PREFIX}/sync", response_model=SyncResponse)
async def trigger_sync(
    organization_id: str = Depends(require_org_admin),
    service: GitHubIntegrationService = Depends(get_github_service),
):
    """
    Sync releases from the selected repository.

    Errors are returned as-is and also recorded on the connection status.
    """
    result = await service.trigger_sync(organization_id, trigger="manual")
    return SyncResponse(success=result["success"], synced_count=result["synced_count"])


@router.post(f"{ORG_PREFIX}/sync/stream")
async def trigger_sync_stream(
    organization_id: str = Depends(require_org_admin),
    service: GitHubIntegrationService = Depends(get_github_service),
):
    """
    Sync releases and stream progress as SSE.

    Events:
    - progress: {phase: "authenticating"|"fetching"|"fetched"|"reconciling", ...}
    - done: {success, synced_count, new_count, updated_count, ...}
    - error: {message}
    """
    reporter = SSEProgressReporter()

    async def sync_task():
        try:
            await service.trigger_sync(organization_id, trigger="manual", progress=reporter)
        except (NotConfiguredError, SyncInProgressError) as e:
            await reporter.report_error(e.message)
        except Exception:
            # The orchestrator already recorded and reported it
            logger.debug("Streamed sync ended with an error", exc_info=True)
        finally:
            await reporter.signal_end()

    async def generate_events():
        task = asyncio.create_task(sync_task())
        try:
            async for chunk in reporter.stream():
                yield chunk
        finally:
            if not task.done():
                task.cancel()

    return StreamingResponse(
        generate_events(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",  # Disable nginx buffering
        }
    )


# =============================================================================
# GitHub reads
# =============================================================================

@router.get(f"{ORG_PREFIX}/repositories", response_model=List[GitHubRepository])
async def list_repositories(
    organization_id: str = Depends(require_org_admin),
    service: GitHubIntegrationService = Depends(get_github_service),
):
    return await service.list_repositories(organization_id)


@router.get(f"{ORG_PREFIX}/labels", response_model=List[GitHubLabel])
async def list_labels(
    organization_id: str = Depends(require_org_admin),
    service: GitHubIntegrationService = Depends(get_github_service),
):
    return await service.list_labels(organization_id)


@router.get(f"{ORG_PREFIX}/branches", response_model=List[GitHubBranch])
async def list_branches(
    organization_id: str = Depends(require_org_admin),
    service: GitHubIntegrationService = Depends(get_github_service),
):
    return await service.list_branches(organization_id)


@router.get(f"{ORG_PREFIX}/tags", response_model=List[GitHubTag])
async def list_tags(
    organization_id: str = Depends(require_org_admin),
    service: GitHubIntegrationService = Depends(get_github_service),
):
    return await service.list_tags(organization_id)


# =============================================================================
# Releases
# =============================================================================

@router.get(f"{ORG_PREFIX}/releases/overview", response_model=ReleaseOverviewResponse)
async def release_overview(
    organization_id: str = Depends(require_org_admin),
    service: GitHubIntegrationService = Depends(get_github_service),
):
    return service.release_overview(organization_id)


@router.get(f"{ORG_PREFIX}/github-releases", response_model=List[dict])
async def list_synced_releases(
    organization_id: str = Depends(require_org_admin),
    service: GitHubIntegrationService = Depends(get_github_service),
):
    """Synced GitHub releases, newest first."""
    return service.list_synced_releases(organization_id)


@router.post(f"{ORG_PREFIX}/releases/{{release_id}}/push", response_model=ReleaseLinkResponse)
async def push_release(
    release_id: str,
    organization_id: str = Depends(require_org_admin),
    service: GitHubIntegrationService = Depends(get_github_service),
):
    """Create (or adopt) the GitHub release for a native release and link them."""
    return await service.push_release(organization_id, release_id)


@router.post(f"{ORG_PREFIX}/github-releases/{{github_release_id}}/import")
async def import_github_release(
    github_release_id: str,
    request: ImportReleaseRequest,
    organization_id: str = Depends(require_org_admin),
    service: GitHubIntegrationService = Depends(get_github_service),
):
    """Create a native release from a synced GitHub release."""
    return service.import_github_release(
        organization_id,
        github_release_id,
        auto_publish=request.auto_publish,
    )


# =============================================================================
# Webhook
# =============================================================================

@router.post("/webhook")
async def github_webhook(
    request: Request,
    x_github_event: str | None = Header(default=None),
    x_hub_signature_256: str | None = Header(default=None),
    config: GitHubAppConfig = Depends(get_config),
    service: GitHubIntegrationService = Depends(get_github_service),
):
    """
    Receive GitHub App webhooks.

    Handled events: `release` and `installation` (deleted). Anything else is
    acknowledged and ignored.
    """
    body = await request.body()
    verify_signature(config.webhook_secret, body, x_hub_signature_256)

    if x_github_event not in ("release", "installation"):
        return {"message": f"Event {x_github_event or 'unknown'} ignored"}

    try:
        payload = json.loads(body)
    except ValueError:
        raise ValidationError("Webhook body is not valid JSON")
    if not isinstance(payload, dict):
        raise ValidationError("Webhook body must be a JSON object")

    if x_github_event == "installation":
        installation_id = (payload.get("installation") or {}).get("id")
        if not installation_id:
            raise ValidationError("Installation event needs installation.id")
        if payload.get("action") != "deleted":
            return {"message": f"Installation action {payload.get('action')} ignored"}
        return {"disconnected": service.handle_installation_deleted(str(installation_id))}

    return service.handle_release_event(payload)
