"""
Release reconciliation engine.

Merges GitHub releases into the organization's shadow rows and maintains the
one-to-one link between a native release and a GitHub release. Links are
set once and never silently reassigned; a shadow is never deleted here.
"""

import logging
from typing import List, Optional

from supabase import Client

from release_sync.exceptions import DuplicateError, NotFoundError
from release_sync.schemas.github import GitHubRelease
from release_sync.services.db.github_releases import SyncedReleaseService
from release_sync.services.db.releases import ReleaseService

logger = logging.getLogger(__name__)

# Webhook actions that may create a native release when auto-sync is on
AUTO_IMPORT_ACTIONS = {"published"}


class ReleaseReconciler:
    """Organization-scoped reconciliation of shadows and native releases."""

    def __init__(self, supabase: Client, organization_id: str):
        self.organization_id = organization_id
        self.shadows = SyncedReleaseService(supabase, organization_id)
        self.releases = ReleaseService(supabase, organization_id)

    # =========================================================================
    # Full sync
    # =========================================================================

    def reconcile(self, github_releases: List[GitHubRelease]) -> dict:
        """
        Upsert one shadow per GitHub release and repair shadow back-links.

        Releases present in storage but missing upstream are left as they are.

        Returns:
            dict with synced_count (distinct upstream releases) plus the
            upsert counters and the number of repaired links
        """
        distinct_ids = {release.github_release_id for release in github_releases}
        upsert_result = self.shadows.upsert_releases(github_releases)
        linked_count = self._repair_shadow_links(distinct_ids)

        return {
            "synced_count": len(distinct_ids),
            "new_count": upsert_result["new_count"],
            "updated_count": upsert_result["updated_count"],
            "unchanged_count": upsert_result["unchanged_count"],
            "linked_count": linked_count,
        }

    def _repair_shadow_links(self, github_release_ids: set) -> int:
        """Point shadows at native releases that already reference them."""
        if not github_release_ids:
            return 0

        shadows = self.shadows.get_existing_map()
        repaired = 0
        for release in self.releases.list_releases():
            github_release_id = release.get("github_release_id")
            if not github_release_id or github_release_id not in github_release_ids:
                continue
            shadow = shadows.get(github_release_id)
            if shadow is not None and shadow.get("release_id") != release["id"]:
                self.shadows.set_release_link(github_release_id, release["id"])
                repaired += 1

        if repaired:
            logger.info(
                f"Repaired {repaired} shadow release links",
                extra={"organization_id": self.organization_id},
            )
        return repaired

    # =========================================================================
    # Linking
    # =========================================================================

    def link_github_release(
        self,
        release_id: str,
        github_release_id: str,
        github_html_url: Optional[str] = None,
    ) -> bool:
        """
        Link a native release to a GitHub release.

        Linking to the GitHub release it already references is a no-op.

        Returns:
            True if a new link was written, False for the no-op case

        Raises:
            NotFoundError: release does not exist
            DuplicateError: either side is already linked elsewhere
        """
        github_release_id = str(github_release_id)
        release = self.releases.get(release_id)
        if release is None:
            raise NotFoundError("Release")

        current = release.get("github_release_id")
        if current == github_release_id:
            return False
        if current:
            raise DuplicateError(
                "GitHub release link",
                f"release is already linked to GitHub release {current}",
            )

        owner = self.releases.find_by_github_release_id(github_release_id)
        if owner is not None and owner["id"] != release_id:
            raise DuplicateError(
                "GitHub release link",
                f"GitHub release {github_release_id} is already linked to another release",
            )

        if self.releases.set_github_link(release_id, github_release_id, github_html_url) is None:
            # Lost a race against another writer; re-read to decide
            release = self.releases.get(release_id)
            if release and release.get("github_release_id") == github_release_id:
                return False
            raise DuplicateError("GitHub release link", "release was linked concurrently")

        self.shadows.set_release_link(github_release_id, release_id)
        logger.info(
            f"Linked release {release_id} to GitHub release {github_release_id}",
            extra={"organization_id": self.organization_id},
        )
        return True

    def import_github_release(self, github_release_id: str, auto_publish: bool = False) -> dict:
        """
        Create a native release from a shadow and link both.

        Raises:
            NotFoundError: no shadow with this id
            DuplicateError: a native release already links this id
        """
        shadow = self.shadows.get_by_github_id(github_release_id)
        if shadow is None:
            raise NotFoundError("GitHub release")

        existing = self.releases.find_by_github_release_id(shadow["github_release_id"])
        if existing is not None:
            raise DuplicateError(
                "GitHub release link",
                f"GitHub release {github_release_id} is already imported",
            )

        publish = auto_publish and not shadow.get("is_draft")
        release = self.releases.create_from_github(shadow, publish=publish)
        self.shadows.set_release_link(shadow["github_release_id"], release["id"])
        return release

    # =========================================================================
    # Webhook events
    # =========================================================================

    def handle_release_event(
        self,
        action: str,
        github_release: GitHubRelease,
        auto_import: bool = False,
    ) -> dict:
        """
        Apply one GitHub `release` webhook event.

        The shadow is refreshed; a matching unlinked native release (same
        version as the tag) is linked; otherwise a `published` event imports
        the release when auto_import is set. `deleted` events are ignored.
        """
        github_release_id = github_release.github_release_id

        if action == "deleted":
            logger.info(
                f"Ignoring deleted event for GitHub release {github_release_id}",
                extra={"organization_id": self.organization_id},
            )
            return {"action": "ignored", "github_release_id": github_release_id}

        shadow = self.shadows.upsert_release(github_release)

        linked = self.releases.find_by_github_release_id(github_release_id)
        if linked is not None:
            if shadow is not None and shadow.get("release_id") != linked["id"]:
                self.shadows.set_release_link(github_release_id, linked["id"])
            return {"action": "updated", "github_release_id": github_release_id, "release_id": linked["id"]}

        candidate = self.releases.find_unlinked_by_version(github_release.tag_name)
        if candidate is not None:
            self.link_github_release(candidate["id"], github_release_id, github_release.html_url)
            return {"action": "linked", "github_release_id": github_release_id, "release_id": candidate["id"]}

        if auto_import and action in AUTO_IMPORT_ACTIONS:
            release = self.import_github_release(github_release_id, auto_publish=True)
            return {"action": "imported", "github_release_id": github_release_id, "release_id": release["id"]}

        return {"action": "stored", "github_release_id": github_release_id}

    # =========================================================================
    # Overview
    # =========================================================================

    def release_sync_overview(self) -> dict:
        """
        Split releases into github_only, local_only and synced.

        - github_only: shadows not linked to any native release
        - local_only: published native releases without a GitHub link
        - synced: native releases linked to a GitHub release
        """
        releases = self.releases.list_releases()
        linked_ids = {r["github_release_id"] for r in releases if r.get("github_release_id")}

        github_only = [
            shadow for shadow in self.shadows.list_releases()
            if not shadow.get("release_id") and shadow["github_release_id"] not in linked_ids
        ]
        local_only = [
            r for r in releases
            if not r.get("github_release_id") and r.get("published_at")
        ]
        synced = [r for r in releases if r.get("github_release_id")]

        return {"github_only": github_only, "local_only": local_only, "synced": synced}
