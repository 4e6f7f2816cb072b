"""Tests for the HTTP surface via FastAPI TestClient with a fake engine."""

import pytest
from fastapi.testclient import TestClient

import api.main as api_main
from api.dependencies import SessionPool
import notebook.orchestrator as orchestrator_module
from notebook.config import AppConfig
from notebook.constants import CONFIDENTIAL_FOLDER_ID, GENERAL_FOLDER_ID, IMPORT_WELCOME_MESSAGE
from notebook.documents import WorkspaceImportError
from notebook.engine import AnswerEngine

from conftest import ADMIN_PASSWORD, ADMIN_USERNAME, FakeEngine

SESSION = {"X-Session-Id": "session-one"}
OTHER_SESSION = {"X-Session-Id": "session-two"}


@pytest.fixture
def engine():
    return FakeEngine()


@pytest.fixture
def client(monkeypatch, engine):
    monkeypatch.setattr(api_main, "build_answer_engine", lambda config: AnswerEngine(engine))
    with TestClient(api_main.app) as client:
        yield client


def _upload(client, name, content, folder_id):
    response = client.post(
        "/api/v1/documents",
        files=[("files", (name, content, "text/plain"))],
        data={"folder_id": folder_id},
    )
    assert response.status_code == 200
    return response.json()["added"][0]["id"]


@pytest.fixture
def workspace(client):
    notes = _upload(client, "Notes.txt", b"Team meeting at 10am on Monday.", GENERAL_FOLDER_ID)
    salary = _upload(client, "Salary.txt", b"CEO salary is 250000.", CONFIDENTIAL_FOLDER_ID)
    return {"notes": notes, "salary": salary}


def _login(client, headers=SESSION):
    client.post("/api/v1/chat/login/open", headers=headers)
    return client.post(
        "/api/v1/chat/login",
        json={"username": ADMIN_USERNAME, "password": ADMIN_PASSWORD},
        headers=headers,
    )


def test_health(client):
    response = client.get("/api/v1/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_session_id_is_minted_and_echoed(client):
    minted = client.get("/api/v1/chat/auth")
    assert minted.headers["X-Session-Id"]

    echoed = client.get("/api/v1/chat/auth", headers=SESSION)
    assert echoed.headers["X-Session-Id"] == "session-one"
    assert echoed.json() == {"authorized": False, "prompt_open": False}


def test_document_listing_never_includes_content(client, workspace):
    listing = client.get("/api/v1/documents").json()

    assert [doc["name"] for doc in listing] == ["Notes.txt", "Salary.txt"]
    assert all("content" not in doc for doc in listing)


def test_unsupported_upload_is_reported(client):
    response = client.post(
        "/api/v1/documents",
        files=[
            ("files", ("ok.txt", b"fine", "text/plain")),
            ("files", ("image.png", b"\x89PNG", "image/png")),
        ],
    )
    body = response.json()
    assert [doc["name"] for doc in body["added"]] == ["ok.txt"]
    assert body["added"][0]["folder_id"] == GENERAL_FOLDER_ID
    assert [failure["filename"] for failure in body["failures"]] == ["image.png"]


def test_locked_question_login_and_replay(client, workspace, engine):
    refused = client.post("/api/v1/chat/query", json={"query": "What is the CEO salary?"}, headers=SESSION)
    assert refused.status_code == 200
    assert refused.json()["triggered_login_prompt"]
    assert "250000" not in engine.calls[-1].system_instruction

    bad = client.post("/api/v1/chat/login", json={"username": "admin", "password": "x"}, headers=SESSION)
    assert bad.json()["ok"] is False

    good = client.post(
        "/api/v1/chat/login",
        json={"username": ADMIN_USERNAME, "password": ADMIN_PASSWORD},
        headers=SESSION,
    ).json()
    assert good["ok"]
    assert good["turn"]["replayed"]
    assert good["turn"]["sources"] == ["Salary.txt"]

    # Authorization is per session
    other = client.post("/api/v1/chat/query", json={"query": "What is the CEO salary?"}, headers=OTHER_SESSION)
    assert other.json()["triggered_login_prompt"]


def test_blank_query_is_unprocessable(client):
    response = client.post("/api/v1/chat/query", json={"query": "   "}, headers=SESSION)
    assert response.status_code == 422


def test_busy_session_returns_conflict(client):
    orchestrator = client.app.state.sessions.get("session-one")
    orchestrator._lock.acquire()
    try:
        response = client.post("/api/v1/chat/query", json={"query": "hello"}, headers=SESSION)
    finally:
        orchestrator._lock.release()
    assert response.status_code == 409


def test_messages_and_export(client, workspace):
    client.post("/api/v1/chat/query", json={"query": "When is the meeting?"}, headers=SESSION)

    messages = client.get("/api/v1/chat/messages", headers=SESSION).json()
    assert [m["role"] for m in messages] == ["assistant", "user", "assistant"]
    assert messages[-1]["sources"] == ["Notes.txt"]

    exported = client.get("/api/v1/chat/export", headers=SESSION)
    assert exported.status_code == 200
    assert "attachment" in exported.headers["content-disposition"]
    assert "USER (" in exported.text
    assert "Sources: Notes.txt" in exported.text


def test_logout(client):
    _login(client)
    response = client.post("/api/v1/chat/logout", headers=SESSION)
    assert response.json() == {"authorized": False, "prompt_open": False}


def test_move_and_delete_documents(client, workspace):
    moved = client.patch(
        f"/api/v1/documents/{workspace['notes']}",
        json={"folder_id": CONFIDENTIAL_FOLDER_ID},
    )
    assert moved.json()["folder_id"] == CONFIDENTIAL_FOLDER_ID

    assert client.patch(f"/api/v1/documents/{workspace['notes']}", json={"folder_id": "nope"}).status_code == 400
    assert client.delete(f"/api/v1/documents/{workspace['notes']}").status_code == 204
    assert client.delete(f"/api/v1/documents/{workspace['notes']}").status_code == 404


def test_folders(client, workspace):
    created = client.post("/api/v1/folders", json={"name": "Projects"})
    assert created.status_code == 201
    folder_id = created.json()["id"]

    client.patch(f"/api/v1/documents/{workspace['notes']}", json={"folder_id": folder_id})
    deleted = client.delete(f"/api/v1/folders/{folder_id}")

    assert deleted.json() == {"folder_id": folder_id, "documents_unfiled": 1}
    assert client.delete(f"/api/v1/folders/{CONFIDENTIAL_FOLDER_ID}").status_code == 400


def test_summary_endpoint(client, workspace):
    locked = client.post(f"/api/v1/documents/{workspace['salary']}/summary", headers=SESSION)
    assert locked.json()["triggered_login_prompt"]

    visible = client.post(f"/api/v1/documents/{workspace['notes']}/summary", headers=SESSION)
    assert visible.json()["answer"].startswith("### Summary: Notes.txt")

    assert client.post("/api/v1/documents/missing/summary", headers=SESSION).status_code == 404


def test_workspace_backup_requires_admin(client, workspace):
    assert client.get("/api/v1/workspace/export", headers=SESSION).status_code == 403
    assert client.post("/api/v1/workspace/import", json={"documents": []}, headers=SESSION).status_code == 403

    _login(client)
    backup = client.get("/api/v1/workspace/export", headers=SESSION).json()
    assert len(backup["documents"]) == 2

    assert client.post("/api/v1/workspace/import", json={"documents": "bad"}, headers=SESSION).status_code == 400

    imported = client.post("/api/v1/workspace/import", json=backup, headers=SESSION)
    assert imported.json() == {"documents_imported": 2}
    messages = client.get("/api/v1/chat/messages", headers=SESSION).json()
    assert [m["text"] for m in messages] == [IMPORT_WELCOME_MESSAGE]


def test_session_pool_evicts_least_recently_used(registry, verifier, fake_engine):
    pool = SessionPool(registry, AnswerEngine(fake_engine), verifier, max_sessions=3)

    first = pool.get("s0")
    for index in range(1, 5):
        pool.get(f"s{index}")

    assert len(pool) == 3
    assert "s0" not in pool
    assert pool.get("s0") is not first


def test_session_pool_expires_idle_sessions(registry, verifier, fake_engine):
    now = [0.0]
    pool = SessionPool(registry, AnswerEngine(fake_engine), verifier, idle_seconds=10, clock=lambda: now[0])
    kept = pool.get("a")
    pool.get("b")

    now[0] = 5.0
    pool.get("a")
    now[0] = 12.0
    pool.get("c")

    assert "b" not in pool
    assert pool.get("a") is kept


def test_anonymous_requests_stay_within_session_cap(monkeypatch, engine):
    monkeypatch.setenv("NOTEBOOK_MAX_SESSIONS", "2")
    AppConfig.reset()
    monkeypatch.setattr(api_main, "build_answer_engine", lambda config: AnswerEngine(engine))

    with TestClient(api_main.app) as client:
        minted = {client.get("/api/v1/chat/auth").headers["X-Session-Id"] for _ in range(5)}
        health = client.get("/api/v1/health").json()

    assert len(minted) == 5
    assert health["sessions"] == 2


def test_preview_respects_session_authorization(client, workspace):
    locked = client.get(f"/api/v1/documents/{workspace['salary']}/preview", headers=SESSION).json()
    assert locked["locked"] is True
    assert "250000" not in locked["preview"]

    _login(client)
    unlocked = client.get(f"/api/v1/documents/{workspace['salary']}/preview", headers=SESSION).json()
    assert unlocked == {
        "id": workspace["salary"],
        "name": "Salary.txt",
        "locked": False,
        "preview": "CEO salary is 250000.",
    }
    assert client.get("/api/v1/documents/missing/preview", headers=SESSION).status_code == 404


def test_shared_notebook_import_requires_admin(client, workspace, monkeypatch):
    backup = {"documents": [{"id": "x", "name": "Shared.txt", "content": "shared text"}]}
    monkeypatch.setattr(orchestrator_module, "fetch_shared_notebook", lambda url: backup)
    body = {"url": "https://example.org/nb.json"}

    assert client.post("/api/v1/workspace/import-url", json=body, headers=SESSION).status_code == 403

    _login(client)
    imported = client.post("/api/v1/workspace/import-url", json=body, headers=SESSION)
    assert imported.json() == {"documents_imported": 1}
    assert [doc["name"] for doc in client.get("/api/v1/documents").json()] == ["Shared.txt"]


def test_shared_notebook_download_failure_is_bad_request(client, monkeypatch):
    def failing(url):
        raise WorkspaceImportError("Could not download shared notebook")

    monkeypatch.setattr(orchestrator_module, "fetch_shared_notebook", failing)
    _login(client)

    response = client.post("/api/v1/workspace/import-url", json={"url": "https://example.org/x"}, headers=SESSION)

    assert response.status_code == 400
