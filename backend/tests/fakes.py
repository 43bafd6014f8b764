"""
In-memory stand-ins for Supabase and the GitHub REST API.

FakeSupabase implements the subset of the postgrest query builder the
services use: select/insert/update/upsert with eq, is_, order, limit and
execute(). Every write is counted per table so tests can assert that a
repeated sync did not touch storage.
"""

import copy
import json
import uuid
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

import httpx


class FakeResponse:
    def __init__(self, data: List[dict]):
        self.data = data


class FakeQuery:
    def __init__(self, db: "FakeSupabase", table: str):
        self.db = db
        self.table = table
        self.op = "select"
        self.payload: Any = None
        self.on_conflict: Optional[str] = None
        self.filters: List[Callable[[dict], bool]] = []
        self._limit: Optional[int] = None
        self._order: Optional[tuple] = None

    # Operations

    def select(self, *_args, **_kwargs):
        self.op = "select"
        return self

    def insert(self, data):
        self.op = "insert"
        self.payload = data
        return self

    def update(self, data):
        self.op = "update"
        self.payload = data
        return self

    def upsert(self, data, on_conflict: str = ""):
        self.op = "upsert"
        self.payload = data
        self.on_conflict = on_conflict
        return self

    # Filters

    def eq(self, key, value):
        self.filters.append(lambda row: row.get(key) == value)
        return self

    def is_(self, key, value):
        assert value == "null"
        self.filters.append(lambda row: row.get(key) is None)
        return self

    def limit(self, count: int):
        self._limit = count
        return self

    def order(self, column: str, desc: bool = False):
        self._order = (column, desc)
        return self

    # Execution

    def _matching(self) -> List[dict]:
        return [row for row in self.db.tables[self.table] if all(f(row) for f in self.filters)]

    def execute(self) -> FakeResponse:
        self.db.calls.append((self.table, self.op))
        handler = getattr(self, f"_execute_{self.op}")
        return FakeResponse(copy.deepcopy(handler()))

    def _execute_select(self) -> List[dict]:
        rows = self._matching()
        if self._order:
            column, desc = self._order
            rows = sorted(rows, key=lambda row: row.get(column) or "", reverse=desc)
        if self._limit is not None:
            rows = rows[:self._limit]
        return rows

    def _execute_insert(self) -> List[dict]:
        items = self.payload if isinstance(self.payload, list) else [self.payload]
        inserted = []
        for item in items:
            row = {"id": str(uuid.uuid4()), **copy.deepcopy(item)}
            self.db.tables[self.table].append(row)
            inserted.append(row)
        self.db.writes[self.table] += len(inserted)
        return inserted

    def _execute_update(self) -> List[dict]:
        rows = self._matching()
        for row in rows:
            row.update(copy.deepcopy(self.payload))
        self.db.writes[self.table] += len(rows)
        return rows

    def _execute_upsert(self) -> List[dict]:
        keys = [key.strip() for key in self.on_conflict.split(",") if key.strip()]
        items = self.payload if isinstance(self.payload, list) else [self.payload]
        written = []
        for item in items:
            existing = next(
                (
                    row for row in self.db.tables[self.table]
                    if all(row.get(key) == item.get(key) for key in keys)
                ),
                None,
            )
            if existing is not None:
                existing.update(copy.deepcopy(item))
                written.append(existing)
            else:
                row = {"id": str(uuid.uuid4()), **copy.deepcopy(item)}
                self.db.tables[self.table].append(row)
                written.append(row)
        self.db.writes[self.table] += len(written)
        return written


class FakeSupabase:
    """Minimal supabase.Client replacement backed by lists of dicts."""

    def __init__(self, tables: Optional[Dict[str, List[dict]]] = None):
        self.tables: Dict[str, List[dict]] = defaultdict(list)
        for name, rows in (tables or {}).items():
            self.tables[name] = copy.deepcopy(rows)
        self.writes: Dict[str, int] = defaultdict(int)
        self.calls: List[tuple] = []

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def rows(self, name: str) -> List[dict]:
        return copy.deepcopy(self.tables[name])


# =============================================================================
# GitHub
# =============================================================================

def release_payload(release_id: int, tag_name: str, **overrides) -> dict:
    """A release object shaped like GitHub's REST response."""
    payload = {
        "id": release_id,
        "tag_name": tag_name,
        "name": f"Release {tag_name}",
        "body": f"Notes for {tag_name}",
        "html_url": f"https://github.com/acme/app/releases/tag/{tag_name}",
        "draft": False,
        "prerelease": False,
        "published_at": "2024-05-01T10:00:00Z",
        "created_at": "2024-05-01T09:00:00Z",
    }
    payload.update(overrides)
    return payload


class FakeGitHub:
    """
    Routes requests for an httpx.MockTransport.

    Token exchange answers with `token_status`; release listing paginates
    `releases` by the per_page/page query parameters.
    """

    def __init__(
        self,
        releases: Optional[List[dict]] = None,
        token_status: int = 201,
        repositories: Optional[List[dict]] = None,
        labels: Optional[List[dict]] = None,
        branches: Optional[List[dict]] = None,
        tags: Optional[List[dict]] = None,
    ):
        self.releases = list(releases or [])
        self.token_status = token_status
        self.repositories = repositories or [
            {"id": 1, "full_name": "acme/app", "name": "app", "private": True, "default_branch": "main"},
        ]
        self.labels = labels or [
            {"id": 7, "name": "bug", "color": "d73a4a", "description": "Something isn't working"},
        ]
        self.branches = branches or [{"name": "main", "protected": True}, {"name": "dev"}]
        self.tags = tags or [{"name": "v1.0.0", "commit": {"sha": "abcdef1234567890"}}]
        self.requests: List[httpx.Request] = []
        self.next_release_id = 9000
        self.release_errors: Dict[str, httpx.Response] = {}

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def paths(self) -> List[str]:
        return [f"{r.method} {r.url.path}" for r in self.requests]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if request.method == "POST" and path.startswith("/app/installations/"):
            if self.token_status != 201:
                return httpx.Response(self.token_status, json={"message": "Bad credentials"})
            return httpx.Response(
                201,
                json={"token": "ghs_installation_token", "expires_at": "2030-01-01T00:00:00Z"},
            )

        if path == "/installation/repositories":
            return httpx.Response(
                200,
                json={"total_count": len(self.repositories), "repositories": self.repositories},
            )

        if path.endswith("/labels"):
            return httpx.Response(200, json=self.labels)

        if path.endswith("/branches"):
            return httpx.Response(200, json=self.branches)

        if path.endswith("/tags"):
            return httpx.Response(200, json=self.tags)

        if path.endswith("/releases"):
            if "list" in self.release_errors and request.method == "GET":
                return self.release_errors["list"]
            if request.method == "GET":
                return self._list_releases(request)
            return self._create_release(request)

        return httpx.Response(404, json={"message": "Not Found"})

    def _list_releases(self, request: httpx.Request) -> httpx.Response:
        per_page = int(request.url.params.get("per_page", 30))
        page = int(request.url.params.get("page", 1))
        start = (page - 1) * per_page
        return httpx.Response(200, json=self.releases[start:start + per_page])

    def _create_release(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.next_release_id += 1
        created = release_payload(
            self.next_release_id,
            body["tag_name"],
            name=body.get("name"),
            body=body.get("body"),
            draft=body.get("draft", False),
            published_at=None if body.get("draft") else "2024-06-01T00:00:00Z",
        )
        self.releases.insert(0, created)
        return httpx.Response(201, json=created)


# =============================================================================
# Rows
# =============================================================================

ORG_ID = "org-1"
INSTALLATION_ID = "555"
REPOSITORY = "acme/app"


def connection_row(**overrides) -> dict:
    row = {
        "id": "conn-1",
        "organization_id": ORG_ID,
        "installation_id": INSTALLATION_ID,
        "account_login": "acme",
        "repository_full_name": REPOSITORY,
        "sync_status": "idle",
        "last_sync_error": None,
        "last_sync_at": None,
        "sync_started_at": None,
        "auto_sync_enabled": False,
    }
    row.update(overrides)
    return row


def native_release(release_id: str, version: str, **overrides) -> dict:
    row = {
        "id": release_id,
        "organization_id": ORG_ID,
        "title": f"Version {version}",
        "description": "Changelog entry",
        "version": version,
        "published_at": "2024-05-02T00:00:00+00:00",
        "github_release_id": None,
        "github_html_url": None,
        "created_at": "2024-05-02T00:00:00+00:00",
    }
    row.update(overrides)
    return row


def minutes_ago(minutes: int) -> str:
    return (datetime.now(timezone.utc) - timedelta(minutes=minutes)).isoformat()
