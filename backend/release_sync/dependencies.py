"""
FastAPI dependencies: authentication, organization admin check and services.
"""

from typing import Optional

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from supabase import Client

from release_sync.core.config import GitHubAppConfig, get_github_app_config
from release_sync.services.github_integration import GitHubIntegrationService
from release_sync.supabase_client import get_service_client

security = HTTPBearer(auto_error=False)

# Roles allowed to change an organization's GitHub integration
ADMIN_ROLES = {"owner", "admin"}


def get_supabase() -> Client:
    return get_service_client()


def get_config() -> GitHubAppConfig:
    return get_github_app_config()


def get_github_service(
    supabase: Client = Depends(get_supabase),
    config: GitHubAppConfig = Depends(get_config),
) -> GitHubIntegrationService:
    return GitHubIntegrationService(supabase, config)


def verify_auth(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    supabase: Client = Depends(get_supabase),
):
    """Verify the Supabase access token from the Authorization header."""
    if not credentials:
        raise HTTPException(status_code=401, detail="Not authenticated")

    try:
        user_response = supabase.auth.get_user(credentials.credentials)
    except Exception as e:
        raise HTTPException(status_code=401, detail=str(e))

    if not user_response or not user_response.user:
        raise HTTPException(status_code=401, detail="Invalid token")
    return user_response.user


def require_org_admin(
    organization_id: str,
    user=Depends(verify_auth),
    supabase: Client = Depends(get_supabase),
) -> str:
    """
    Ensure the caller administers the organization in the path.

    Returns:
        The organization id
    """
    response = supabase.table("organization_members") \
        .select("role") \
        .eq("organization_id", organization_id) \
        .eq("user_id", user.id) \
        .limit(1) \
        .execute()

    if not response.data:
        raise HTTPException(status_code=403, detail="Not a member of this organization")
    if response.data[0].get("role") not in ADMIN_ROLES:
        raise HTTPException(status_code=403, detail="Organization admin role required")
    return organization_id
