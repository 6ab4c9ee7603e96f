"""End-to-end tests for the HTTP API through FastAPI's TestClient."""
import pytest
from sqlalchemy.exc import OperationalError

from bugsage_core import crud
from bugsage_core.config import get_settings


def _create_bug(client, title="Login fails", description="Cannot log in", **extra):
    payload = {"title": title, "description": description, "priority": "High", **extra}
    return client.post("/api/v1/bugs/", json=payload)


def _new_bug_id(client, title="Login fails", **extra):
    response = _create_bug(client, title=title, force_create=True, **extra)
    assert response.status_code == 201, response.text
    return response.json()["bug_id"]


class TestAuthApi:

    def test_root_and_health_are_public(self, client):
        assert client.get("/health").json() == {"status": "healthy"}
        assert client.get("/").json()["name"] == "BugSage Core API"

    @pytest.mark.parametrize("method,path", [
        ("get", "/api/v1/bugs/"),
        ("post", "/api/v1/bugs/"),
        ("get", "/api/v1/dashboard/stats"),
        ("get", "/api/v1/users/"),
        ("get", "/api/v1/projects/"),
    ])
    def test_requires_login(self, client, method, path):
        response = getattr(client, method)(path)
        assert response.status_code == 401
        assert response.json()["detail"] == "Authentication required"

    def test_register_login_check_logout(self, client):
        response = client.post("/api/v1/auth/register", json={
            "name": "New Person", "email": "new@example.com", "password": "longenough", "role": "Tester",
        })
        assert response.status_code == 201
        assert response.json()["success"] is True

        assert client.get("/api/v1/auth/check").json()["authenticated"] is False

        response = client.post("/api/v1/auth/login", json={"email": "new@example.com", "password": "longenough"})
        assert response.status_code == 200
        assert response.json()["user"]["role"] == "Tester"

        check = client.get("/api/v1/auth/check").json()
        assert check["authenticated"] is True
        assert check["user"]["email"] == "new@example.com"

        response = client.post("/api/v1/auth/logout")
        assert response.json() == {"authenticated": False, "user": None, "message": "Logged out successfully"}
        assert client.get("/api/v1/bugs/").status_code == 401

    @pytest.mark.parametrize("payload,detail", [
        ({"password": "short"}, "Password must be at least 6 characters"),
        ({"password": "x" * 80}, "Password must be at most 72 bytes"),
        ({"password": "\u00e9" * 40}, "Password must be at most 72 bytes"),
        ({"role": "Manager"}, "Invalid role selected"),
    ])
    def test_register_validation(self, client, payload, detail):
        body = {"name": "Someone", "email": "someone@example.com", "password": "longenough", **payload}
        response = client.post("/api/v1/auth/register", json=body)
        assert response.status_code == 400
        assert response.json()["detail"] == detail

    def test_register_duplicate_email(self, auth_client):
        response = auth_client.post("/api/v1/auth/register", json={
            "name": "Copy", "email": "ALICE@example.com", "password": "longenough",
        })
        assert response.status_code == 400
        assert response.json()["detail"] == "Email address is already registered"

    def test_register_duplicate_email_race(self, auth_client, monkeypatch):
        """A duplicate that slips past the lookup is still a 400, not a 500."""
        monkeypatch.setattr(crud, "get_user_by_email", lambda db, email: None)

        response = auth_client.post("/api/v1/auth/register", json={
            "name": "Copy", "email": "alice@example.com", "password": "longenough",
        })

        assert response.status_code == 400
        assert response.json()["detail"] == "Email address is already registered"

    def test_bad_login(self, auth_client):
        response = auth_client.post("/api/v1/auth/login", json={"email": "alice@example.com", "password": "nope"})
        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid email or password"

    def test_expired_session(self, auth_client, monkeypatch):
        monkeypatch.setattr(get_settings(), "session_max_age_seconds", -1)

        response = auth_client.get("/api/v1/bugs/")

        assert response.status_code == 401
        assert response.json()["detail"] == "Session expired"


class TestBugsApi:

    def test_create_then_duplicate_then_force(self, auth_client):
        response = _create_bug(auth_client)
        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["message"] == "Bug created successfully"
        first_id = body["bug_id"]

        response = _create_bug(auth_client, description="Something else")
        assert response.status_code == 200
        assert response.json() == {
            "warning": "Potential duplicates found",
            "duplicates": [{"bug_id": first_id, "title": "Login fails"}],
        }

        response = _create_bug(auth_client, description="Something else", force_create=True)
        assert response.status_code == 201
        assert response.json()["bug_id"] != first_id

        assert auth_client.get("/api/v1/bugs/").json()["pagination"]["total_bugs"] == 2

    @pytest.mark.parametrize("payload,detail", [
        ({"title": ""}, "Title and description are required"),
        ({"description": ""}, "Title and description are required"),
        ({"priority": "Urgent"}, "Invalid priority level"),
        ({"project_id": 999}, "Invalid project selected"),
        ({"assignee_id": 999}, "Invalid assignee selected"),
    ])
    def test_create_validation(self, auth_client, payload, detail):
        body = {"title": "Crash", "description": "App crashes", **payload}
        response = auth_client.post("/api/v1/bugs/", json=body)
        assert response.status_code == 400
        assert response.json()["detail"] == detail

    def test_get_bug(self, auth_client):
        bug_id = _new_bug_id(auth_client)

        body = auth_client.get(f"/api/v1/bugs/{bug_id}").json()

        assert body["bug"]["bug_id"] == bug_id
        assert body["bug"]["status"] == "New"
        assert body["bug"]["priority"] == "High"
        assert body["bug"]["reporter_id"] == auth_client.user_id
        assert body["bug"]["reporter_name"] == "Alice Dev"
        assert body["bug"]["updated_at"] is None
        assert body["comments"] == []
        assert body["attachments"] == []

    def test_get_missing_bug(self, auth_client):
        response = auth_client.get("/api/v1/bugs/999")
        assert response.status_code == 404
        assert response.json()["detail"] == "Bug not found"

    def test_update_and_history(self, auth_client):
        bug_id = _new_bug_id(auth_client)

        response = auth_client.put(f"/api/v1/bugs/{bug_id}", json={
            "status": "Resolved", "assignee_id": auth_client.user_id,
        })
        assert response.status_code == 200
        assert response.json() == {"success": True, "message": "Bug updated successfully"}

        history = auth_client.get(f"/api/v1/bugs/{bug_id}/history").json()
        assert {(h["field_changed"], h["old_value"], h["new_value"]) for h in history} == {
            ("status", "New", "Resolved"),
            ("assignee_id", None, str(auth_client.user_id)),
        }
        assert all(h["changed_by_name"] == "Alice Dev" for h in history)

        bug = auth_client.get(f"/api/v1/bugs/{bug_id}").json()["bug"]
        assert bug["status"] == "Resolved"
        assert bug["assignee_name"] == "Alice Dev"
        assert bug["updated_at"] is not None

    def test_update_unassign(self, auth_client):
        bug_id = _new_bug_id(auth_client, assignee_id=None)
        auth_client.put(f"/api/v1/bugs/{bug_id}", json={"assignee_id": auth_client.user_id})

        response = auth_client.put(f"/api/v1/bugs/{bug_id}", json={"assignee_id": None})

        assert response.status_code == 200
        assert auth_client.get(f"/api/v1/bugs/{bug_id}").json()["bug"]["assignee_id"] is None

    @pytest.mark.parametrize("payload,status_code,detail", [
        ({}, 400, "No fields to update"),
        ({"reporter_id": 1}, 400, "No fields to update"),
        ({"status": "Reopened"}, 400, "Invalid status"),
        ({"assignee_id": 999}, 400, "Invalid assignee selected"),
    ])
    def test_update_errors(self, auth_client, payload, status_code, detail):
        bug_id = _new_bug_id(auth_client)
        response = auth_client.put(f"/api/v1/bugs/{bug_id}", json=payload)
        assert response.status_code == status_code
        assert response.json()["detail"] == detail

    def test_update_missing_bug(self, auth_client):
        response = auth_client.put("/api/v1/bugs/999", json={"title": "x"})
        assert response.status_code == 404

    def test_status_shortcut(self, auth_client):
        bug_id = _new_bug_id(auth_client)

        unchanged = auth_client.post(f"/api/v1/bugs/{bug_id}/status", json={"status": "New"})
        changed = auth_client.post(f"/api/v1/bugs/{bug_id}/status", json={"status": "In Progress"})

        assert unchanged.status_code == 200
        assert unchanged.json()["message"] == "Status unchanged"
        assert changed.json()["message"] == "Status updated successfully"
        history = auth_client.get(f"/api/v1/bugs/{bug_id}/history").json()
        assert len(history) == 1

    def test_status_shortcut_errors(self, auth_client):
        bug_id = _new_bug_id(auth_client)

        bad = auth_client.post(f"/api/v1/bugs/{bug_id}/status", json={"status": "Done"})
        missing = auth_client.post("/api/v1/bugs/999/status", json={"status": "Closed"})

        assert (bad.status_code, bad.json()["detail"]) == (400, "Invalid status")
        assert missing.status_code == 404

    def test_comments(self, auth_client):
        bug_id = _new_bug_id(auth_client)

        response = auth_client.post(f"/api/v1/bugs/{bug_id}/comments", json={"comment": "Seen on prod"})
        empty = auth_client.post(f"/api/v1/bugs/{bug_id}/comments", json={"comment": "  "})
        missing = auth_client.post("/api/v1/bugs/999/comments", json={"comment": "Hello"})

        assert response.status_code == 201
        assert response.json()["message"] == "Comment added successfully"
        assert empty.status_code == 400
        assert missing.status_code == 404
        comments = auth_client.get(f"/api/v1/bugs/{bug_id}").json()["comments"]
        assert [(c["comment_text"], c["user_name"]) for c in comments] == [("Seen on prod", "Alice Dev")]

    def test_list_filters_and_pagination(self, auth_client):
        mine = _new_bug_id(auth_client, title="Mine", assignee_id=auth_client.user_id)
        for i in range(3):
            _new_bug_id(auth_client, title=f"Other {i}")

        page = auth_client.get("/api/v1/bugs/", params={"per_page": 2, "page": 2}).json()
        assigned = auth_client.get("/api/v1/bugs/", params={"assignee": "me"}).json()
        by_id = auth_client.get("/api/v1/bugs/", params={"assignee": str(auth_client.user_id)}).json()
        by_status = auth_client.get("/api/v1/bugs/", params={"status": "Closed"}).json()

        assert page["pagination"] == {"current_page": 2, "per_page": 2, "total_pages": 2, "total_bugs": 4}
        assert len(page["bugs"]) == 2
        assert [b["bug_id"] for b in assigned["bugs"]] == [mine]
        assert by_id["bugs"] == assigned["bugs"]
        assert by_status["bugs"] == []
        assert by_status["pagination"]["total_pages"] == 0

    def test_list_per_page_capped(self, auth_client):
        body = auth_client.get("/api/v1/bugs/", params={"per_page": 500}).json()
        assert body["pagination"]["per_page"] == 100

    def test_list_bad_assignee(self, auth_client):
        response = auth_client.get("/api/v1/bugs/", params={"assignee": "someone"})
        assert response.status_code == 400

    def test_search(self, auth_client):
        _new_bug_id(auth_client, title="Checkout crash")
        _new_bug_id(auth_client, title="Profile page")

        results = auth_client.get("/api/v1/bugs/search", params={"q": "CHECKOUT"}).json()["results"]
        empty = auth_client.get("/api/v1/bugs/search", params={"q": " "})

        assert [r["title"] for r in results] == ["Checkout crash"]
        assert empty.status_code == 400
        assert empty.json()["detail"] == "Search query is required"

    def test_history_missing_bug(self, auth_client):
        assert auth_client.get("/api/v1/bugs/999/history").status_code == 404


class TestAttachmentsApi:

    @pytest.fixture(autouse=True)
    def upload_dir(self, tmp_path, monkeypatch):
        monkeypatch.setattr(get_settings(), "upload_dir", str(tmp_path))
        return tmp_path

    def test_upload(self, auth_client, upload_dir):
        bug_id = _new_bug_id(auth_client)

        response = auth_client.post(
            f"/api/v1/bugs/{bug_id}/attachments",
            files={"file": ("trace.txt", b"Traceback...", "text/plain")},
        )

        assert response.status_code == 201
        body = response.json()
        assert body["file_name"] == "trace.txt"
        assert body["file_size"] == len(b"Traceback...")
        assert body["uploaded_by"] == auth_client.user_id
        stored = list(upload_dir.iterdir())
        assert len(stored) == 1
        assert stored[0].read_bytes() == b"Traceback..."

        attachments = auth_client.get(f"/api/v1/bugs/{bug_id}").json()["attachments"]
        assert [a["file_name"] for a in attachments] == ["trace.txt"]

    def test_disallowed_extension(self, auth_client, upload_dir):
        bug_id = _new_bug_id(auth_client)

        response = auth_client.post(
            f"/api/v1/bugs/{bug_id}/attachments",
            files={"file": ("run.exe", b"MZ", "application/octet-stream")},
        )

        assert response.status_code == 400
        assert response.json()["detail"].startswith("File type not allowed")
        assert list(upload_dir.iterdir()) == []

    def test_too_large(self, auth_client, upload_dir, monkeypatch):
        monkeypatch.setattr(get_settings(), "max_upload_size", 4)
        bug_id = _new_bug_id(auth_client)

        response = auth_client.post(
            f"/api/v1/bugs/{bug_id}/attachments",
            files={"file": ("big.txt", b"0123456789", "text/plain")},
        )

        assert response.status_code == 400
        assert response.json()["detail"].startswith("File is too large")
        assert list(upload_dir.iterdir()) == []

    def test_failed_insert_removes_stored_file(self, auth_client, upload_dir, monkeypatch):
        bug_id = _new_bug_id(auth_client)

        def failing_create_attachment(*args, **kwargs):
            raise OperationalError("INSERT INTO attachments ...", {}, Exception("disk full"))

        monkeypatch.setattr(crud, "create_attachment", failing_create_attachment)

        response = auth_client.post(
            f"/api/v1/bugs/{bug_id}/attachments",
            files={"file": ("trace.txt", b"Traceback...", "text/plain")},
        )

        assert response.status_code == 500
        assert response.json()["detail"] == "Failed to upload attachment"
        assert list(upload_dir.iterdir()) == []

    def test_missing_bug(self, auth_client):
        response = auth_client.post(
            "/api/v1/bugs/999/attachments",
            files={"file": ("trace.txt", b"x", "text/plain")},
        )
        assert response.status_code == 404


class TestDashboardApi:

    def test_stats(self, auth_client):
        _new_bug_id(auth_client, assignee_id=auth_client.user_id)
        _new_bug_id(auth_client, title="Unassigned")

        stats = auth_client.get("/api/v1/dashboard/stats").json()

        assert stats["total_bugs"] == 2
        assert stats["my_bugs"] == 1
        assert stats["recent_bugs"] == 2
        assert {s["status"]: s["count"] for s in stats["status_counts"]}["New"] == 2

    def test_recent(self, auth_client):
        first = _new_bug_id(auth_client, title="First")
        second = _new_bug_id(auth_client, title="Second")

        recent = auth_client.get("/api/v1/dashboard/recent").json()["recent_bugs"]

        assert [b["bug_id"] for b in recent] == [second, first]

    def test_charts_empty(self, auth_client):
        charts = auth_client.get("/api/v1/dashboard/charts").json()

        assert len(charts["bugs_over_time"]) == 30
        assert len(charts["resolution_times"]) == 4


class TestUsersAndProjectsApi:

    def test_list_users(self, auth_client):
        users = auth_client.get("/api/v1/users/").json()["users"]
        assert users == [{"id": auth_client.user_id, "name": "Alice Dev", "email": "alice@example.com",
                          "role": "Developer"}]

    def test_create_project_requires_admin(self, auth_client):
        response = auth_client.post("/api/v1/projects/", json={"name": "Mobile"})
        assert response.status_code == 403
        assert response.json()["detail"] == "Admin access required"

    def test_admin_creates_project(self, admin_client):
        response = admin_client.post("/api/v1/projects/", json={"name": "Mobile", "description": "iOS app"})
        assert response.status_code == 201
        project_id = response.json()["id"]

        duplicate = admin_client.post("/api/v1/projects/", json={"name": "mobile"})
        assert duplicate.status_code == 400
        assert duplicate.json()["detail"] == "Project 'mobile' already exists"

        _new_bug_id(admin_client, project_id=project_id)
        projects = admin_client.get("/api/v1/projects/").json()["projects"]
        assert [(p["name"], p["bug_count"]) for p in projects] == [("Mobile", 1)]

