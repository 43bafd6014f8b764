"""
GitHub REST API client.

Stateless: every call takes the installation token it should use, so one
client instance can serve many organizations. Upstream payloads are normalized
into the models in release_sync.schemas.github, and non-2xx responses are
mapped onto the exception taxonomy:

    404                              -> GitHubNotFoundError
    403/429 with rate-limit headers  -> RateLimitedError
    other non-2xx                    -> UpstreamError
    network failure / timeout        -> TransportError
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, List, Optional

import httpx

from release_sync.core.config import GitHubAppConfig
from release_sync.exceptions import (
    GitHubNotFoundError,
    RateLimitedError,
    TransportError,
    UpstreamError,
)
from release_sync.schemas.github import (
    GitHubBranch,
    GitHubLabel,
    GitHubRelease,
    GitHubRepository,
    GitHubTag,
)

logger = logging.getLogger(__name__)

GITHUB_API_VERSION = "2022-11-28"
PER_PAGE = 100
# Upper bound on pages fetched per listing (10k items)
MAX_PAGES = 100


def github_headers(bearer: str) -> dict[str, str]:
    """Standard headers for a bearer-authenticated GitHub request."""
    return {
        "Authorization": f"Bearer {bearer}",
        "Accept": "application/vnd.github+json",
        "X-GitHub-Api-Version": GITHUB_API_VERSION,
    }


def build_http_client(
    config: GitHubAppConfig,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    """AsyncClient bound to the configured API URL with a bounded timeout."""
    return httpx.AsyncClient(
        base_url=config.api_url,
        timeout=config.timeout_seconds,
        transport=transport,
    )


def _rate_limit_reset(response: httpx.Response) -> Optional[datetime]:
    reset = response.headers.get("x-ratelimit-reset")
    if reset and reset.isdigit():
        return datetime.fromtimestamp(int(reset), tz=timezone.utc)
    retry_after = response.headers.get("retry-after")
    if retry_after and retry_after.isdigit():
        return datetime.now(timezone.utc) + timedelta(seconds=int(retry_after))
    return None


def is_rate_limited(response: httpx.Response) -> bool:
    """
    GitHub signals primary limits with 403 + x-ratelimit-remaining: 0 and
    secondary limits with 403/429 + retry-after.
    """
    if response.status_code not in (403, 429):
        return False
    if response.status_code == 429:
        return True
    return (
        response.headers.get("x-ratelimit-remaining") == "0"
        or "retry-after" in response.headers
    )


def raise_for_github_status(response: httpx.Response, resource: str) -> None:
    """Map a non-2xx GitHub response to the matching AppException."""
    if response.is_success:
        return

    if response.status_code == 404:
        raise GitHubNotFoundError(resource)

    if is_rate_limited(response):
        reset_at = _rate_limit_reset(response)
        logger.warning(
            f"GitHub rate limit hit while fetching {resource}",
            extra={"error": f"reset_at={reset_at}"},
        )
        raise RateLimitedError("GitHub API", reset_at)

    raise UpstreamError(
        "GitHub API",
        response.status_code,
        f"{resource}: status {response.status_code} - {response.text[:200]}",
    )


class GitHubClient:
    """
    Token-parameterized operations against the GitHub REST API.

    Usage:
        client = GitHubClient(config)
        releases = await client.list_releases(token.token, "owner/repo")
    """

    def __init__(
        self,
        config: GitHubAppConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self._transport = transport

    # =========================================================================
    # Request helpers
    # =========================================================================

    async def _request(
        self,
        method: str,
        path: str,
        token: str,
        resource: str,
        params: Optional[dict] = None,
        json: Optional[dict] = None,
    ) -> Any:
        try:
            async with build_http_client(self.config, self._transport) as client:
                response = await client.request(
                    method,
                    path,
                    params=params,
                    json=json,
                    headers=github_headers(token),
                )
        except httpx.TransportError as e:
            raise TransportError("GitHub API", f"{resource}: {type(e).__name__}") from e

        raise_for_github_status(response, resource)
        return response.json()

    async def _paginate(
        self,
        path: str,
        token: str,
        resource: str,
        params: Optional[dict] = None,
        items_key: Optional[str] = None,
    ) -> List[dict]:
        """Fetch all pages of a list endpoint, bounded by MAX_PAGES."""
        items: List[dict] = []
        page = 1

        try:
            async with build_http_client(self.config, self._transport) as client:
                while page <= MAX_PAGES:
                    response = await client.get(
                        path,
                        params={**(params or {}), "per_page": PER_PAGE, "page": page},
                        headers=github_headers(token),
                    )
                    raise_for_github_status(response, resource)

                    data = response.json()
                    batch = data.get(items_key, []) if items_key else data
                    if not batch:
                        break

                    items.extend(batch)

                    if len(batch) < PER_PAGE:
                        break
                    page += 1
                else:
                    logger.warning(f"Stopped paginating {resource} after {MAX_PAGES} pages")
        except httpx.TransportError as e:
            raise TransportError("GitHub API", f"{resource}: {type(e).__name__}") from e

        return items

    # =========================================================================
    # Repositories
    # =========================================================================

    async def list_repositories(self, token: str) -> List[GitHubRepository]:
        """Repositories the installation can access."""
        repos = await self._paginate(
            "/installation/repositories",
            token,
            "installation repositories",
            items_key="repositories",
        )
        return [
            GitHubRepository(
                id=str(repo["id"]),
                full_name=repo["full_name"],
                name=repo["name"],
                default_branch=repo.get("default_branch"),
                is_private=bool(repo.get("private", False)),
                description=repo.get("description"),
            )
            for repo in repos
        ]

    async def list_labels(self, token: str, repository_full_name: str) -> List[GitHubLabel]:
        labels = await self._paginate(
            f"/repos/{repository_full_name}/labels",
            token,
            f"labels of {repository_full_name}",
        )
        return [
            GitHubLabel(
                id=str(label["id"]),
                name=label["name"],
                color=label.get("color"),
                description=label.get("description"),
            )
            for label in labels
        ]

    async def list_branches(self, token: str, repository_full_name: str) -> List[GitHubBranch]:
        branches = await self._paginate(
            f"/repos/{repository_full_name}/branches",
            token,
            f"branches of {repository_full_name}",
        )
        return [
            GitHubBranch(name=branch["name"], is_protected=bool(branch.get("protected", False)))
            for branch in branches
        ]

    async def list_tags(self, token: str, repository_full_name: str) -> List[GitHubTag]:
        tags = await self._paginate(
            f"/repos/{repository_full_name}/tags",
            token,
            f"tags of {repository_full_name}",
        )
        return [GitHubTag(name=tag["name"], sha=tag["commit"]["sha"][:7]) for tag in tags]

    # =========================================================================
    # Releases
    # =========================================================================

    async def list_releases(self, token: str, repository_full_name: str) -> List[GitHubRelease]:
        releases = await self._paginate(
            f"/repos/{repository_full_name}/releases",
            token,
            f"releases of {repository_full_name}",
        )
        logger.info(f"Fetched {len(releases)} releases from {repository_full_name}")
        return [GitHubRelease.from_api(release) for release in releases]

    async def create_release(
        self,
        token: str,
        repository_full_name: str,
        tag_name: str,
        name: Optional[str] = None,
        body: Optional[str] = None,
        draft: bool = False,
        prerelease: bool = False,
        target_commitish: Optional[str] = None,
    ) -> GitHubRelease:
        payload: dict[str, Any] = {
            "tag_name": tag_name,
            "name": name or tag_name,
            "body": body or "",
            "draft": draft,
            "prerelease": prerelease,
        }
        if target_commitish:
            payload["target_commitish"] = target_commitish

        data = await self._request(
            "POST",
            f"/repos/{repository_full_name}/releases",
            token,
            f"release {tag_name} of {repository_full_name}",
            json=payload,
        )
        logger.info(f"Created GitHub release {tag_name} in {repository_full_name}")
        return GitHubRelease.from_api(data)
