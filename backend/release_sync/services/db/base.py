"""
Base database service with organization-scoped query helpers.

Provides:
- Automatic organization isolation via _query()
- Unified single/multiple record fetching
- Consistent datetime handling for writes

Usage:
    class ReleaseService(BaseDbService):
        table_name = "releases"

        def get_release(self, release_id: str) -> Optional[dict]:
            return self._get_one({"id": release_id})
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from supabase import Client

logger = logging.getLogger(__name__)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO timestamp from GitHub ("Z") or PostgREST ("+00:00")."""
    if not value:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class BaseDbService:
    """
    Base class for organization-scoped table services.

    Subclasses set `table_name` and may override `_row_to_dict()`.
    """

    table_name: str = ""

    def __init__(self, supabase: Client, organization_id: str):
        self.supabase = supabase
        self.organization_id = organization_id

    # =========================================================================
    # Query Builders
    # =========================================================================

    def _table(self):
        return self.supabase.table(self.table_name)

    def _query(self, select: str = "*"):
        """Start an organization-scoped SELECT query."""
        return self._table().select(select).eq("organization_id", self.organization_id)

    # =========================================================================
    # Record Fetching
    # =========================================================================

    def _get_one(self, filters: Dict[str, Any], select: str = "*") -> Optional[dict]:
        """
        Get a single record or None.

        Uses .limit(1) instead of .single() to avoid exceptions on empty results.
        """
        query = self._query(select)
        for key, value in filters.items():
            query = query.eq(key, value)

        try:
            response = query.limit(1).execute()
        except Exception as e:
            logger.error(
                f"Error fetching {self.table_name}",
                extra={"organization_id": self.organization_id, "error": str(e)},
            )
            raise

        if response.data:
            return self._row_to_dict(response.data[0])
        return None

    def _get_many(
        self,
        filters: Optional[Dict[str, Any]] = None,
        select: str = "*",
        order_by: Optional[str] = None,
        order_desc: bool = False,
    ) -> List[dict]:
        query = self._query(select)

        if filters:
            for key, value in filters.items():
                query = query.eq(key, value)

        if order_by:
            query = query.order(order_by, desc=order_desc)

        response = query.execute()
        return [self._row_to_dict(row) for row in response.data or []]

    # =========================================================================
    # Writes
    # =========================================================================

    def _update_where(self, updates: Dict[str, Any], **filters: Any) -> List[dict]:
        """
        Conditional UPDATE scoped to the organization.

        A filter value of None matches SQL NULL. Returns the updated rows,
        so an empty list means the condition did not match.
        """
        query = self._table().update(self._serialize(updates)).eq(
            "organization_id", self.organization_id
        )
        for key, value in filters.items():
            if value is None:
                query = query.is_(key, "null")
            else:
                query = query.eq(key, value)

        response = query.execute()
        return [self._row_to_dict(row) for row in response.data or []]

    def _insert(self, data: Dict[str, Any]) -> dict:
        response = self._table().insert(self._dict_to_row(data)).execute()
        return self._row_to_dict(response.data[0])

    # =========================================================================
    # Row Conversion
    # =========================================================================

    def _row_to_dict(self, row: dict) -> dict:
        return row

    @staticmethod
    def _serialize(data: Dict[str, Any]) -> Dict[str, Any]:
        return {
            key: value.isoformat() if isinstance(value, datetime) else value
            for key, value in data.items()
        }

    def _dict_to_row(self, data: Dict[str, Any]) -> dict:
        """Add organization_id and convert datetimes to ISO strings."""
        return {"organization_id": self.organization_id, **self._serialize(data)}
