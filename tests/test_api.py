from datetime import date
from typing import Dict, Iterator

import pytest
from fastapi.testclient import TestClient

from todoapp.core.app_factory import create_application
from todoapp.core.config import Settings

from conftest import JWT_SECRET

GUEST = {"X-Guest-Mode": "true"}


@pytest.fixture()
def client(tmp_path, monkeypatch) -> Iterator[TestClient]:
    monkeypatch.setenv("DATABASE_PATH", str(tmp_path / "api.db"))
    monkeypatch.setenv("LEGACY_TASKS_PATH", str(tmp_path / "tasks.json"))
    monkeypatch.setenv("BCRYPT_ROUNDS", "4")
    monkeypatch.setenv("JWT_SECRET", JWT_SECRET)
    monkeypatch.setenv("GUEST_MODE_ENABLED", "true")
    for key in ("SMTP_HOST", "SMTP_USERNAME", "SMTP_FROM_EMAIL"):
        monkeypatch.delenv(key, raising=False)

    app = create_application(Settings())
    with TestClient(app) as test_client:
        yield test_client


def _pending_token(client: TestClient, username: str) -> str:
    user = client.app.state.container.persistence.get_user_by_username(username)
    return user.verification_token


def _register(client: TestClient, username: str) -> dict:
    response = client.post(
        "/auth/register",
        json={"username": username, "email": f"{username}@example.com", "password": "secret123"},
    )
    assert response.status_code == 201, response.text
    return response.json()


def _login_headers(client: TestClient, username: str) -> Dict[str, str]:
    _register(client, username)
    assert client.get(f"/auth/verify-email/{_pending_token(client, username)}").status_code == 200
    response = client.post("/auth/login", json={"username": username, "password": "secret123"})
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['token']}"}


def test_health_and_security_headers(client: TestClient):
    response = client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["database"] == "connected"
    assert body["guestMode"] is True
    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert response.headers["X-Frame-Options"] == "DENY"
    assert "Content-Security-Policy" in response.headers


def test_registration_verification_and_login_flow(client: TestClient):
    body = _register(client, "alice")
    assert body["verificationRequired"] is True
    assert body["user"]["emailVerified"] is False
    assert "password" not in str(body)

    response = client.post("/auth/login", json={"username": "alice", "password": "secret123"})
    assert response.status_code == 403
    assert response.json()["error"] == "EMAIL_NOT_VERIFIED"

    token = _pending_token(client, "alice")
    verified = client.get(f"/auth/verify-email/{token}")
    assert verified.status_code == 200
    assert verified.json()["user"]["emailVerified"] is True

    reused = client.get(f"/auth/verify-email/{token}")
    assert reused.status_code == 400
    assert reused.json()["error"] == "INVALID_TOKEN"

    login = client.post("/auth/login", json={"username": "alice", "password": "secret123"})
    assert login.status_code == 200
    assert login.json()["expiresIn"] == "24h"

    me = client.get("/auth/me", headers={"Authorization": f"Bearer {login.json()['token']}"})
    assert me.status_code == 200
    assert me.json()["user"]["username"] == "alice"


def test_registration_errors(client: TestClient):
    _register(client, "alice")

    duplicate = client.post(
        "/auth/register",
        json={"username": "alice", "email": "other@example.com", "password": "secret123"},
    )
    assert duplicate.status_code == 409

    invalid = client.post(
        "/auth/register",
        json={"username": "ab", "email": "ab@example.com", "password": "secret123"},
    )
    assert invalid.status_code == 400
    assert invalid.json()["error"] == "VALIDATION_ERROR"

    malformed = client.post("/auth/register", json={"username": "carol"})
    assert malformed.status_code == 400
    assert malformed.json()["details"]


def test_login_failures(client: TestClient):
    unknown = client.post("/auth/login", json={"username": "ghost", "password": "secret123"})
    wrong = client.post("/auth/login", json={"username": "demo", "password": "nope-nope"})

    assert unknown.status_code == wrong.status_code == 401
    assert unknown.json() == wrong.json()
    assert unknown.json()["error"] == "INVALID_CREDENTIALS"


def test_resend_verification(client: TestClient):
    _register(client, "bob")
    first = _pending_token(client, "bob")

    response = client.post("/auth/resend-verification", json={"email": "bob@example.com"})
    assert response.status_code == 200
    assert _pending_token(client, "bob") != first

    missing = client.post("/auth/resend-verification", json={"email": "nobody@example.com"})
    assert missing.status_code == 404

    client.get(f"/auth/verify-email/{_pending_token(client, 'bob')}")
    again = client.post("/auth/resend-verification", json={"email": "bob@example.com"})
    assert again.status_code == 409


def test_protected_routes_require_a_valid_token(client: TestClient):
    assert client.get("/tasks").status_code == 401
    assert client.get("/auth/me").status_code == 401

    bad = client.get("/tasks", headers={"Authorization": "Bearer not-a-jwt"})
    assert bad.status_code == 401
    assert bad.headers["WWW-Authenticate"] == "Bearer"


def test_task_lifecycle(client: TestClient):
    headers = _login_headers(client, "alice")

    created = client.post("/tasks", json={"text": "Write report", "dueDate": "2024-02-29"}, headers=headers)
    assert created.status_code == 201
    task = created.json()
    assert task["status"] == "open"
    assert task["dueDate"] == "2024-02-29"

    toggled = client.put(f"/tasks/{task['id']}", headers=headers)
    assert toggled.json()["status"] == "completed"

    cleared = client.put(
        f"/tasks/{task['id']}", json={"action": "updateDate", "dueDate": None}, headers=headers
    )
    assert cleared.status_code == 200
    assert cleared.json()["dueDate"] is None
    assert cleared.json()["status"] == "completed"

    edited = client.put(f"/tasks/{task['id']}/text", json={"text": "Send report"}, headers=headers)
    assert edited.json()["text"] == "Send report"

    listed = client.get("/tasks", headers=headers).json()
    assert [item["id"] for item in listed] == [task["id"]]

    deleted = client.delete(f"/tasks/{task['id']}", headers=headers)
    assert deleted.status_code == 200
    assert deleted.json()["task"]["text"] == "Send report"

    gone = client.delete(f"/tasks/{task['id']}", headers=headers)
    assert gone.status_code == 404
    assert gone.json()["error"] == "TASK_NOT_FOUND"


def test_task_input_errors(client: TestClient):
    headers = _login_headers(client, "alice")

    bad_date = client.post("/tasks", json={"text": "Nope", "dueDate": "2024-02-30"}, headers=headers)
    assert bad_date.status_code == 400
    assert bad_date.json()["error"] == "INVALID_DUE_DATE"

    empty = client.post("/tasks", json={"text": "   "}, headers=headers)
    assert empty.status_code == 400

    assert client.put("/tasks/0", headers=headers).status_code == 400
    assert client.get("/tasks", headers=headers).json() == []


def test_delete_completed_requires_status_filter(client: TestClient):
    headers = _login_headers(client, "alice")
    for text in ("One", "Two", "Three"):
        client.post("/tasks", json={"text": text}, headers=headers)
    tasks = client.get("/tasks", headers=headers).json()
    for task in tasks[:2]:
        client.put(f"/tasks/{task['id']}", headers=headers)

    assert client.delete("/tasks", headers=headers).status_code == 400
    assert client.delete("/tasks", params={"status": "open"}, headers=headers).status_code == 400

    response = client.delete("/tasks", params={"status": "completed"}, headers=headers)
    assert response.status_code == 200
    assert response.json()["deletedCount"] == 2
    assert len(client.get("/tasks", headers=headers).json()) == 1


def test_calendar_endpoints(client: TestClient):
    headers = _login_headers(client, "alice")
    today = date.today().isoformat()
    client.post("/tasks", json={"text": "Ancient", "dueDate": "2000-01-01"}, headers=headers)
    client.post("/tasks", json={"text": "Now", "dueDate": today}, headers=headers)
    client.post("/tasks", json={"text": "Someday"}, headers=headers)

    overdue = client.get("/tasks/overdue", headers=headers).json()
    assert [task["text"] for task in overdue] == ["Ancient"]

    due_today = client.get("/tasks/today", headers=headers).json()
    assert [task["text"] for task in due_today] == ["Now"]

    in_range = client.get(
        "/tasks/calendar", params={"start": "2000-01-01", "end": "2000-12-31"}, headers=headers
    ).json()
    assert [task["text"] for task in in_range] == ["Ancient"]

    reversed_range = client.get(
        "/tasks/calendar", params={"start": "2000-12-31", "end": "2000-01-01"}, headers=headers
    )
    assert reversed_range.status_code == 400


def test_users_cannot_touch_each_others_tasks(client: TestClient):
    alice = _login_headers(client, "alice")
    bob = _login_headers(client, "bob")

    task_id = client.post("/tasks", json={"text": "Alice only"}, headers=alice).json()["id"]

    assert client.get("/tasks", headers=bob).json() == []
    assert client.put(f"/tasks/{task_id}", headers=bob).status_code == 404
    assert client.put(f"/tasks/{task_id}/text", json={"text": "x"}, headers=bob).status_code == 404
    assert client.delete(f"/tasks/{task_id}", headers=bob).status_code == 404

    [task] = client.get("/tasks", headers=alice).json()
    assert task["text"] == "Alice only"
    assert task["status"] == "open"


def test_guest_mode_uses_demo_account(client: TestClient):
    created = client.post("/tasks", json={"text": "Guest task"}, headers=GUEST)
    assert created.status_code == 201

    demo = client.app.state.container.user_service.get_demo_user()
    assert created.json()["userId"] == demo.id
    assert [task["text"] for task in client.get("/tasks", headers=GUEST).json()] == ["Guest task"]

    # A real account never sees guest data.
    headers = _login_headers(client, "alice")
    assert client.get("/tasks", headers={**headers, **GUEST}).json() == []


def test_guest_mode_can_be_disabled(client: TestClient):
    client.app.state.container.settings.guest_mode_enabled = False
    response = client.get("/tasks", headers=GUEST)
    assert response.status_code == 403
