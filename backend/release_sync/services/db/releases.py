"""
Native changelog releases (`releases` table), as seen by the GitHub sync.

Only the GitHub link fields are written here; everything else belongs to the
changelog feature.
"""

import logging
from typing import List, Optional

from .base import BaseDbService, utc_now_iso

logger = logging.getLogger(__name__)


class ReleaseService(BaseDbService):
    """Service for the GitHub-facing side of native releases."""

    table_name = "releases"

    def get(self, release_id: str) -> Optional[dict]:
        return self._get_one({"id": release_id})

    def list_releases(self) -> List[dict]:
        return self._get_many(order_by="created_at", order_desc=True)

    def find_by_github_release_id(self, github_release_id: str) -> Optional[dict]:
        return self._get_one({"github_release_id": str(github_release_id)})

    def find_unlinked_by_version(self, version: str) -> Optional[dict]:
        """A release with this version that is not linked to GitHub yet."""
        response = self._query() \
            .eq("version", version) \
            .is_("github_release_id", "null") \
            .limit(1) \
            .execute()

        if response.data:
            return self._row_to_dict(response.data[0])
        return None

    def set_github_link(
        self,
        release_id: str,
        github_release_id: str,
        github_html_url: Optional[str],
    ) -> Optional[dict]:
        """
        Set the GitHub back-reference if and only if none is set yet.

        Returns:
            The updated row, or None when the release was already linked
            (or does not exist)
        """
        rows = self._update_where(
            {
                "github_release_id": str(github_release_id),
                "github_html_url": github_html_url,
                "updated_at": utc_now_iso(),
            },
            id=release_id,
            github_release_id=None,
        )
        return rows[0] if rows else None

    def create_from_github(self, shadow: dict, publish: bool = False) -> dict:
        """Create a native release mirroring a GitHub release shadow."""
        now = utc_now_iso()
        release = self._insert({
            "title": shadow.get("name") or shadow["tag_name"],
            "description": shadow.get("body"),
            "version": shadow["tag_name"],
            "published_at": now if publish else None,
            "github_release_id": shadow["github_release_id"],
            "github_html_url": shadow.get("html_url"),
            "synced_from_github": True,
            "created_at": now,
            "updated_at": now,
        })
        logger.info(
            f"Imported GitHub release {shadow['tag_name']} as release {release.get('id')}",
            extra={"organization_id": self.organization_id},
        )
        return release
