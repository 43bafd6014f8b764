"""
HTTP-level tests for the GitHub router: error bodies, SSE sync and the
webhook endpoint.
"""

import json

import pytest
from fastapi.testclient import TestClient

from release_sync.core.config import GitHubAppConfig
from release_sync.dependencies import (
    get_config,
    get_github_service,
    get_supabase,
    require_org_admin,
    verify_auth,
)
from release_sync.main import app
from release_sync.services.github.webhooks import sign_payload
from tests.fakes import INSTALLATION_ID, ORG_ID, FakeSupabase, connection_row, minutes_ago, release_payload

BASE = f"/api/github/organizations/{ORG_ID}"


def allow_admin(organization_id: str) -> str:
    return organization_id


@pytest.fixture
def client(integration, app_config):
    app.dependency_overrides[require_org_admin] = allow_admin
    app.dependency_overrides[get_github_service] = lambda: integration
    app.dependency_overrides[get_config] = lambda: app_config
    yield TestClient(app)
    app.dependency_overrides.clear()


def signed_post(client: TestClient, event: str, payload, secret: str = "test-secret"):
    body = payload if isinstance(payload, bytes) else json.dumps(payload).encode()
    return client.post(
        "/api/github/webhook",
        content=body,
        headers={
            "X-GitHub-Event": event,
            "X-Hub-Signature-256": sign_payload(secret, body),
            "Content-Type": "application/json",
        },
    )


class TestConnectionRoutes:

    def test_status(self, client):
        response = client.get(f"{BASE}/status")

        assert response.status_code == 200
        body = response.json()
        assert body["is_connected"] is True
        assert body["status"] == "idle"
        assert body["repository_full_name"] == "acme/app"

    def test_select_repository_validates_full_name(self, client):
        response = client.put(f"{BASE}/repository", json={"repository_full_name": "not-a-repo"})

        assert response.status_code == 422

    def test_disconnect(self, client, connected_db):
        response = client.delete(f"{BASE}/connection")

        assert response.json() == {"success": True}
        assert connected_db.rows("github_connections")[0]["installation_id"] is None


class TestSyncRoutes:

    def test_sync_returns_count(self, client, fake_github):
        fake_github.releases = [release_payload(1, "v1"), release_payload(2, "v2")]

        response = client.post(f"{BASE}/sync")

        assert response.status_code == 200
        assert response.json() == {"success": True, "synced_count": 2}

    def test_sync_in_progress_is_409(self, client, connected_db):
        connected_db.tables["github_connections"][0].update(
            sync_status="syncing", sync_started_at=minutes_ago(1)
        )

        response = client.post(f"{BASE}/sync")

        assert response.status_code == 409
        assert response.json() == {
            "detail": "A GitHub sync is already in progress",
            "error_code": "SYNC_IN_PROGRESS",
            "retryable": True,
        }

    def test_missing_repository_is_400(self, client, connected_db):
        connected_db.tables["github_connections"][0]["repository_full_name"] = None

        response = client.post(f"{BASE}/sync")

        assert response.status_code == 400
        assert response.json()["error_code"] == "NOT_CONFIGURED"
        assert response.json()["retryable"] is False

    def test_upstream_auth_failure_is_502_and_recorded(self, client, connected_db, fake_github):
        fake_github.token_status = 401

        response = client.post(f"{BASE}/sync")

        assert response.status_code == 502
        assert response.json()["error_code"] == "UPSTREAM_AUTH_ERROR"
        status = client.get(f"{BASE}/status").json()
        assert status["status"] == "error"
        assert status["last_error"]

    def test_stream_emits_progress_then_done(self, client, fake_github):
        fake_github.releases = [release_payload(1, "v1")]

        response = client.post(f"{BASE}/sync/stream")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        events = [line for line in response.text.splitlines() if line.startswith("event: ")]
        assert events[0] == "event: progress"
        assert events[-1] == "event: done"

    def test_stream_reports_not_configured(self, client, connected_db):
        connected_db.tables["github_connections"][0]["repository_full_name"] = None

        response = client.post(f"{BASE}/sync/stream")

        assert "event: error" in response.text
        assert "GitHub repository is not configured" in response.text


class TestReleaseRoutes:

    def test_overview(self, client, fake_github):
        fake_github.releases = [release_payload(1, "v1")]
        client.post(f"{BASE}/sync")

        response = client.get(f"{BASE}/releases/overview")

        assert response.status_code == 200
        assert [r["github_release_id"] for r in response.json()["github_only"]] == ["1"]

    def test_import_twice_is_409(self, client, fake_github):
        fake_github.releases = [release_payload(1, "v1")]
        client.post(f"{BASE}/sync")

        first = client.post(f"{BASE}/github-releases/1/import", json={"auto_publish": False})
        second = client.post(f"{BASE}/github-releases/1/import", json={"auto_publish": False})

        assert first.status_code == 200
        assert first.json()["github_release_id"] == "1"
        assert second.status_code == 409
        assert second.json()["error_code"] == "DUPLICATE"

    def test_synced_releases_newest_first(self, client, fake_github):
        fake_github.releases = [
            release_payload(1, "v1", published_at="2024-01-01T00:00:00Z"),
            release_payload(2, "v2-draft", draft=True, published_at=None, created_at="2024-07-01T00:00:00Z"),
            release_payload(3, "v3", published_at="2024-03-01T00:00:00Z"),
        ]
        client.post(f"{BASE}/sync")

        response = client.get(f"{BASE}/github-releases")

        assert response.status_code == 200
        assert [r["tag_name"] for r in response.json()] == ["v2-draft", "v3", "v1"]
        assert response.json()[0]["is_draft"] is True

    def test_branches_and_tags(self, client, fake_github):
        branches = client.get(f"{BASE}/branches")
        tags = client.get(f"{BASE}/tags")

        assert branches.status_code == 200
        assert branches.json() == [
            {"name": "main", "is_protected": True},
            {"name": "dev", "is_protected": False},
        ]
        assert tags.json() == [{"name": "v1.0.0", "sha": "abcdef1"}]

    def test_tags_for_disconnected_organization_is_400(self, client, connected_db, fake_github):
        client.delete(f"{BASE}/connection")

        response = client.get(f"{BASE}/tags")

        assert response.status_code == 400
        assert fake_github.requests == []


class TestWebhook:

    def test_missing_signature_is_401(self, client):
        response = client.post(
            "/api/github/webhook",
            content=b"{}",
            headers={"X-GitHub-Event": "release"},
        )

        assert response.status_code == 401
        assert response.json()["error_code"] == "WEBHOOK_SIGNATURE_INVALID"

    def test_wrong_secret_is_401(self, client):
        response = signed_post(client, "release", {"action": "published"}, secret="other-secret")

        assert response.status_code == 401

    def test_unconfigured_secret_is_500(self, client, private_key_pem):
        app.dependency_overrides[get_config] = lambda: GitHubAppConfig(
            app_id="12345", private_key=private_key_pem, webhook_secret=None
        )

        response = signed_post(client, "release", {"action": "published"})

        assert response.status_code == 500
        assert response.json()["error_code"] == "CONFIGURATION_MISSING"

    def test_unhandled_event_is_acknowledged(self, client):
        response = signed_post(client, "ping", {"zen": "Keep it logically awesome."})

        assert response.status_code == 200
        assert response.json() == {"message": "Event ping ignored"}

    def test_invalid_json_is_400(self, client):
        response = signed_post(client, "release", b"not json")

        assert response.status_code == 400
        assert response.json()["error_code"] == "VALIDATION_ERROR"

    def test_release_without_installation_is_400(self, client):
        response = signed_post(client, "release", {
            "action": "published",
            "repository": {"full_name": "acme/app"},
            "release": release_payload(1, "v1"),
        })

        assert response.status_code == 400

    def test_release_without_tag_name_is_400(self, client, connected_db):
        release = release_payload(9, "v9")
        del release["tag_name"]

        response = signed_post(client, "release", {
            "action": "published",
            "installation": {"id": int(INSTALLATION_ID)},
            "repository": {"full_name": "acme/app"},
            "release": release,
        })

        assert response.status_code == 400
        assert response.json()["error_code"] == "VALIDATION_ERROR"
        assert connected_db.rows("github_releases") == []

    def test_release_event_is_stored(self, client, connected_db):
        response = signed_post(client, "release", {
            "action": "published",
            "installation": {"id": int(INSTALLATION_ID)},
            "repository": {"full_name": "acme/app"},
            "release": release_payload(8, "v8"),
        })

        assert response.status_code == 200
        assert response.json()["action"] == "stored"
        assert [s["github_release_id"] for s in connected_db.rows("github_releases")] == ["8"]

    def test_installation_deleted_disconnects(self, client, connected_db):
        response = signed_post(client, "installation", {
            "action": "deleted",
            "installation": {"id": int(INSTALLATION_ID)},
        })

        assert response.json() == {"disconnected": True}
        assert connected_db.rows("github_connections")[0]["installation_id"] is None

    def test_other_installation_actions_are_ignored(self, client, connected_db):
        before = connected_db.rows("github_connections")

        response = signed_post(client, "installation", {
            "action": "created",
            "installation": {"id": int(INSTALLATION_ID)},
        })

        assert response.status_code == 200
        assert connected_db.rows("github_connections") == before


class TestAdminGuard:

    def test_non_admin_member_is_403(self, integration, app_config):
        db = FakeSupabase({
            "organization_members": [{"organization_id": ORG_ID, "user_id": "u-1", "role": "member"}],
            "github_connections": [connection_row()],
        })

        class User:
            id = "u-1"

        app.dependency_overrides[verify_auth] = lambda: User()
        app.dependency_overrides[get_supabase] = lambda: db
        app.dependency_overrides[get_github_service] = lambda: integration
        try:
            response = TestClient(app).get(f"{BASE}/status")
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 403
        assert response.json()["detail"] == "Organization admin role required"
