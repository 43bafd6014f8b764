"""
GitHub connection registry.

One row per organization in `github_connections`. It is the single source of
truth for which installation/repository an organization is linked to and for
the sync status. The orchestrator checks and claims the `syncing` state here;
no in-process state is shared between workers.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from supabase import Client

from release_sync.exceptions import NotFoundError
from release_sync.schemas.github import SyncStatus
from .base import parse_timestamp, utc_now_iso

logger = logging.getLogger(__name__)

TABLE = "github_connections"


class ConnectionRegistry:
    """Reads and mutates `github_connections` rows."""

    def __init__(self, supabase: Client):
        self.supabase = supabase

    def _table(self):
        return self.supabase.table(TABLE)

    # =========================================================================
    # Reads
    # =========================================================================

    def get(self, organization_id: str) -> Optional[dict]:
        response = self._table() \
            .select("*") \
            .eq("organization_id", organization_id) \
            .limit(1) \
            .execute()

        if response.data:
            return self._row_to_dict(response.data[0])
        return None

    def get_by_installation(self, installation_id: str) -> Optional[dict]:
        response = self._table() \
            .select("*") \
            .eq("installation_id", str(installation_id)) \
            .limit(1) \
            .execute()

        if response.data:
            return self._row_to_dict(response.data[0])
        return None

    def list_auto_sync_connections(self) -> List[dict]:
        """Connections the scheduled trigger should sync unattended."""
        response = self._table() \
            .select("*") \
            .eq("auto_sync_enabled", True) \
            .execute()

        return [
            self._row_to_dict(row)
            for row in response.data or []
            if row.get("installation_id") and row.get("repository_full_name")
        ]

    # =========================================================================
    # Installation / configuration mutators
    # =========================================================================

    def save_installation(
        self,
        organization_id: str,
        installation_id: str,
        account_login: Optional[str] = None,
        account_type: Optional[str] = None,
        account_avatar_url: Optional[str] = None,
    ) -> dict:
        """Create or refresh the connection after the App installation flow."""
        now = utc_now_iso()
        existing = self.get(organization_id)

        data = {
            "installation_id": str(installation_id),
            "account_login": account_login,
            "account_type": account_type,
            "account_avatar_url": account_avatar_url,
            "updated_at": now,
        }

        if existing:
            response = self._table() \
                .update(data) \
                .eq("organization_id", organization_id) \
                .execute()
        else:
            response = self._table().insert({
                **data,
                "organization_id": organization_id,
                "sync_status": SyncStatus.IDLE.value,
                "auto_sync_enabled": False,
                "created_at": now,
            }).execute()

        logger.info(
            f"Saved GitHub installation {installation_id}",
            extra={"organization_id": organization_id},
        )
        return self._row_to_dict(response.data[0])

    def set_repository(self, organization_id: str, repository_full_name: str) -> dict:
        return self._patch(organization_id, {"repository_full_name": repository_full_name})

    def set_auto_sync(self, organization_id: str, enabled: bool) -> dict:
        return self._patch(organization_id, {"auto_sync_enabled": enabled})

    def clear(self, organization_id: str) -> bool:
        """
        Unlink installation and repository and reset status to idle.

        Synced release shadows are kept.
        """
        response = self._table() \
            .update({
                "installation_id": None,
                "repository_full_name": None,
                "sync_status": SyncStatus.IDLE.value,
                "last_sync_error": None,
                "sync_started_at": None,
                "updated_at": utc_now_iso(),
            }) \
            .eq("organization_id", organization_id) \
            .execute()

        cleared = bool(response.data)
        if cleared:
            logger.info("GitHub connection cleared", extra={"organization_id": organization_id})
        return cleared

    # =========================================================================
    # Sync status
    # =========================================================================

    def is_sync_stale(self, connection: dict, stale_after_seconds: int) -> bool:
        """A `syncing` row whose owner has not finished within the window."""
        started_at = parse_timestamp(connection.get("sync_started_at"))
        if started_at is None:
            return True
        return datetime.now(timezone.utc) - started_at > timedelta(seconds=stale_after_seconds)

    def begin_sync(
        self,
        organization_id: str,
        observed: dict,
        stale_after_seconds: Optional[int] = None,
    ) -> Optional[str]:
        """
        Compare-and-swap the status to `syncing`.

        `observed` is the row the caller just read. The update only applies if
        sync_status (and, for a stale takeover, sync_started_at) still hold the
        observed values, so two workers racing from the same snapshot cannot
        both win.

        Returns:
            The sync_started_at value written (the claim), or None when
            another attempt owns the sync
        """
        observed_status = observed.get("sync_status") or SyncStatus.IDLE.value

        if observed_status == SyncStatus.SYNCING.value:
            if stale_after_seconds is None or not self.is_sync_stale(observed, stale_after_seconds):
                return None
            logger.warning(
                "Taking over stale sync",
                extra={"organization_id": organization_id},
            )

        now = utc_now_iso()
        query = self._table() \
            .update({
                "sync_status": SyncStatus.SYNCING.value,
                "sync_started_at": now,
                "updated_at": now,
            }) \
            .eq("organization_id", organization_id) \
            .eq("sync_status", observed_status)

        if observed_status == SyncStatus.SYNCING.value:
            if observed.get("sync_started_at") is None:
                query = query.is_("sync_started_at", "null")
            else:
                query = query.eq("sync_started_at", observed["sync_started_at"])

        response = query.execute()
        return now if response.data else None

    def set_status(
        self,
        organization_id: str,
        status: SyncStatus,
        error: Optional[str] = None,
        claim: Optional[str] = None,
    ) -> Optional[dict]:
        """
        Record a sync outcome.

        `last_sync_error` is only kept for ERROR and cleared otherwise.

        With `claim` (the value returned by begin_sync) the write only applies
        while the row is still `syncing` under that claim. An attempt whose
        claim was taken over gets None back and leaves the row alone.
        """
        status = SyncStatus(status)
        now = utc_now_iso()
        updates = {
            "sync_status": status.value,
            "last_sync_error": (error or "Unknown error") if status == SyncStatus.ERROR else None,
            "updated_at": now,
        }
        if status in (SyncStatus.SUCCESS, SyncStatus.ERROR):
            updates["last_sync_at"] = now
            updates["sync_started_at"] = None

        if claim is None:
            return self._patch(organization_id, updates)

        response = self._table() \
            .update(updates) \
            .eq("organization_id", organization_id) \
            .eq("sync_status", SyncStatus.SYNCING.value) \
            .eq("sync_started_at", claim) \
            .execute()

        if not response.data:
            logger.warning(
                f"Discarded sync outcome {status.value}, the sync was taken over",
                extra={"organization_id": organization_id},
            )
            return None
        return self._row_to_dict(response.data[0])

    # =========================================================================
    # Helpers
    # =========================================================================

    def _patch(self, organization_id: str, updates: dict) -> dict:
        updates = {"updated_at": utc_now_iso(), **updates}
        response = self._table() \
            .update(updates) \
            .eq("organization_id", organization_id) \
            .execute()

        if not response.data:
            raise NotFoundError("GitHub connection")
        return self._row_to_dict(response.data[0])

    def _row_to_dict(self, row: dict) -> dict:
        return {
            "id": row.get("id"),
            "organization_id": row["organization_id"],
            "installation_id": row.get("installation_id"),
            "account_login": row.get("account_login"),
            "account_type": row.get("account_type"),
            "account_avatar_url": row.get("account_avatar_url"),
            "repository_full_name": row.get("repository_full_name"),
            "sync_status": row.get("sync_status") or SyncStatus.IDLE.value,
            "last_sync_error": row.get("last_sync_error"),
            "last_sync_at": row.get("last_sync_at"),
            "sync_started_at": row.get("sync_started_at"),
            "auto_sync_enabled": bool(row.get("auto_sync_enabled")),
            "created_at": row.get("created_at"),
            "updated_at": row.get("updated_at"),
        }
