"""
Synced GitHub release shadows (`github_releases` table).

Each row mirrors one GitHub release and is keyed by
(organization_id, github_release_id). Rows are only ever inserted or
overwritten, never deleted here.
"""

import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

from release_sync.schemas.github import GitHubRelease
from .base import BaseDbService, parse_timestamp, utc_now_iso

logger = logging.getLogger(__name__)

# Fields copied from GitHub on every sync
MUTABLE_FIELDS = (
    "tag_name",
    "name",
    "body",
    "html_url",
    "is_draft",
    "is_prerelease",
    "published_at",
    "created_at",
)
TIMESTAMP_FIELDS = ("published_at", "created_at")
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _same(field: str, stored, incoming) -> bool:
    if field in TIMESTAMP_FIELDS:
        return parse_timestamp(stored) == parse_timestamp(incoming)
    return stored == incoming


def _release_date(row: dict) -> datetime:
    return parse_timestamp(row.get("published_at") or row.get("created_at")) or EPOCH


class SyncedReleaseService(BaseDbService):
    """Service for shadow release rows."""

    table_name = "github_releases"

    def get_by_github_id(self, github_release_id: str) -> Optional[dict]:
        return self._get_one({"github_release_id": str(github_release_id)})

    def list_releases(self) -> List[dict]:
        """All shadows, newest first by published_at (created_at for drafts)."""
        rows = self._get_many()
        return sorted(rows, key=_release_date, reverse=True)

    def get_by_tag(self, tag_name: str) -> Optional[dict]:
        return self._get_one({"tag_name": tag_name})

    def get_existing_map(self) -> Dict[str, dict]:
        """github_release_id -> stored row, for change detection."""
        return {row["github_release_id"]: row for row in self._get_many()}

    def upsert_releases(self, releases: List[GitHubRelease]) -> dict:
        """
        Insert new shadows and overwrite changed ones.

        Rows whose mutable fields already match GitHub are not written, so
        repeating a sync with the same upstream data leaves storage untouched.

        Returns:
            dict with total, new_count, updated_count, unchanged_count
        """
        if not releases:
            return {"total": 0, "new_count": 0, "updated_count": 0, "unchanged_count": 0}

        existing_map = self.get_existing_map()
        now = utc_now_iso()

        rows_by_id: Dict[str, dict] = {}
        new_count = 0
        unchanged_count = 0

        for release in releases:
            values = release.model_dump(include=set(MUTABLE_FIELDS))
            existing = existing_map.get(release.github_release_id)

            if existing is not None:
                if all(_same(field, existing.get(field), values[field]) for field in MUTABLE_FIELDS):
                    unchanged_count += 1
                    continue
            elif release.github_release_id not in rows_by_id:
                new_count += 1

            rows_by_id[release.github_release_id] = {
                "organization_id": self.organization_id,
                "github_release_id": release.github_release_id,
                **values,
                "last_synced_at": now,
            }

        db_rows = list(rows_by_id.values())
        if not db_rows:
            logger.info(
                f"All {unchanged_count} GitHub releases unchanged",
                extra={"organization_id": self.organization_id},
            )
            return {
                "total": 0,
                "new_count": 0,
                "updated_count": 0,
                "unchanged_count": unchanged_count,
            }

        response = self._table() \
            .upsert(db_rows, on_conflict="organization_id,github_release_id") \
            .execute()

        total = len(response.data or [])
        logger.info(
            f"Upserted {total} GitHub releases ({new_count} new, {unchanged_count} unchanged)",
            extra={"organization_id": self.organization_id},
        )

        return {
            "total": total,
            "new_count": new_count,
            "updated_count": total - new_count,
            "unchanged_count": unchanged_count,
        }

    def upsert_release(self, release: GitHubRelease) -> dict:
        """Single-release variant used by webhook events."""
        self.upsert_releases([release])
        return self.get_by_github_id(release.github_release_id)

    def set_release_link(self, github_release_id: str, release_id: str) -> bool:
        """Point a shadow at the native release it is linked to."""
        rows = self._update_where(
            {"release_id": release_id},
            github_release_id=str(github_release_id),
        )
        return bool(rows)
