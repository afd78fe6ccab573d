"""
Route tests for the FastAPI app, backed by an in-memory collection.
"""
import pytest
from fastapi.testclient import TestClient

from config import MAX_UPLOAD_BYTES
from main import Broadcaster, create_app
from media import COVER_TOO_LARGE
from store import DocumentStore
from tests.conftest import ADMIN_EMAIL, ADMIN_PASSWORD, FakeCollection


@pytest.fixture
def client(collection: FakeCollection, auth):
    app = create_app(store=DocumentStore(collection, "data"), auth=auth)
    with TestClient(app) as client:
        yield client


@pytest.fixture
def headers(client: TestClient) -> dict:
    response = client.post("/api/auth/login", json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


def test_health(client: TestClient) -> None:
    assert client.get("/").json() == {"status": "ok", "service": "portfolio-api"}


def test_mode(client: TestClient) -> None:
    assert client.get("/api/mode", params={"path": "/secret-admin-portal"}).json() == {"mode": "admin"}
    assert client.get("/api/mode", params={"path": "/about"}).json() == {"mode": "public"}


def test_first_run_initializes_store(client: TestClient, collection: FakeCollection) -> None:
    view = client.get("/api/portfolio/public").json()
    assert view["hero"]["name"] == "Your Name"
    assert view["projects"] == []
    assert collection.records["data"]["settings"] == {"showResume": True}


def test_login_failure_is_generic(client: TestClient) -> None:
    response = client.post("/api/auth/login", json={"email": ADMIN_EMAIL, "password": "nope"})
    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid email or password"


def test_session_and_logout(client: TestClient, headers: dict) -> None:
    assert client.get("/api/auth/session", headers=headers).json() == {"authenticated": True}
    assert client.post("/api/auth/logout", headers=headers).json() == {"ok": True}
    assert client.post("/api/auth/logout", headers=headers).json() == {"ok": True}
    assert client.get("/api/auth/session", headers=headers).json() == {"authenticated": False}
    assert client.patch("/api/portfolio/hero", json={"name": "x"}, headers=headers).status_code == 401


def test_writes_require_admin(client: TestClient) -> None:
    assert client.patch("/api/portfolio/hero", json={"name": "x"}).status_code == 401
    assert client.post("/api/projects", json={"title": "x"}).status_code == 401
    assert client.get("/api/portfolio").status_code == 401
    assert client.get("/api/portfolio").json()["detail"] == "Not authenticated"
    bogus = {"Authorization": "Bearer not-a-jwt"}
    assert client.get("/api/portfolio", headers=bogus).json()["detail"] == "Invalid token"


def test_update_section(client: TestClient, headers: dict, collection: FakeCollection) -> None:
    response = client.patch("/api/portfolio/hero", json={"name": "Ada"}, headers=headers)

    assert response.status_code == 200
    assert response.json()["name"] == "Ada"
    assert response.json()["title"] == "Data Analyst | Business Analyst | Data Scientist"
    assert client.get("/api/portfolio", headers=headers).json()["hero"]["name"] == "Ada"
    client.portal.call(client.app.state.controller.flush)
    assert collection.records["data"]["hero"]["name"] == "Ada"


def test_update_unknown_section(client: TestClient, headers: dict) -> None:
    assert client.patch("/api/portfolio/projects", json={}, headers=headers).status_code == 404


def test_update_section_rejects_malformed_fields(client: TestClient, headers: dict, collection: FakeCollection) -> None:
    response = client.patch("/api/portfolio/contact", json={"phone": "555-1234"}, headers=headers)
    assert response.status_code == 422
    assert client.patch("/api/portfolio/settings", json={"showResume": "maybe"}, headers=headers).status_code == 422

    public = client.get("/api/portfolio/public")
    assert public.status_code == 200
    assert public.json()["contact"] == []
    client.portal.call(client.app.state.controller.flush)
    assert collection.records["data"]["contact"]["phone"] == {"value": "", "visible": True}
    assert collection.records["data"]["settings"] == {"showResume": True}


def test_update_section_accepts_contact_entry(client: TestClient, headers: dict) -> None:
    response = client.patch(
        "/api/portfolio/contact", json={"phone": {"value": "555-1234", "visible": True}}, headers=headers
    )
    assert response.status_code == 200
    assert response.json()["phone"]["value"] == "555-1234"
    assert client.get("/api/portfolio/public").json()["contact"][0]["href"] == "tel:555-1234"


def test_project_crud(client: TestClient, headers: dict) -> None:
    created = client.post(
        "/api/projects",
        json={"title": "Churn model", "githubLink": "https://github.com/me/churn"},
        headers=headers,
    )
    assert created.status_code == 201
    project = created.json()
    assert project["visible"] is True
    assert project["githubLink"] == "https://github.com/me/churn"
    assert project["additionalFiles"] == []

    client.patch(f"/api/projects/{project['id']}", json={"visible": False}, headers=headers)
    stored = client.get("/api/projects", headers=headers).json()
    assert stored == [{**project, "visible": False}]
    assert client.get("/api/portfolio/public").json()["projects"] == []

    assert client.patch("/api/projects/1", json={"title": "ghost"}, headers=headers).json() == {"ok": True}
    client.delete(f"/api/projects/{project['id']}", headers=headers)
    assert client.get("/api/projects", headers=headers).json() == []


def test_project_title_required(client: TestClient, headers: dict) -> None:
    assert client.post("/api/projects", json={"title": ""}, headers=headers).status_code == 422


def test_resume_links(client: TestClient, headers: dict) -> None:
    resume = client.post("/api/resumes", json={"title": "CV", "driveFileId": "abc"}, headers=headers).json()

    links = client.get(f"/api/resumes/{resume['id']}/links").json()

    assert links == {
        "previewUrl": "https://drive.google.com/file/d/abc/preview",
        "downloadUrl": "https://drive.google.com/uc?export=download&id=abc",
    }
    assert client.get("/api/resumes/999/links").status_code == 404


def test_skill_categories(client: TestClient, headers: dict) -> None:
    categories = client.post(
        "/api/about/skill-categories", json={"category": "Cloud", "skills": "GCP, Azure"}, headers=headers
    ).json()
    index = len(categories) - 1
    assert categories[index] == {"category": "Cloud", "skills": ["GCP", "Azure"]}

    updated = client.put(
        f"/api/about/skill-categories/{index}", json={"category": "Cloud", "skills": ["AWS"]}, headers=headers
    ).json()
    assert updated[index]["skills"] == ["AWS"]

    remaining = client.delete(f"/api/about/skill-categories/{index}", headers=headers).json()
    assert len(remaining) == index
    assert client.delete("/api/about/skill-categories/99", headers=headers).status_code == 404


def test_upload_inlines_file(client: TestClient, headers: dict) -> None:
    response = client.post(
        "/api/uploads",
        files={"file": ("notes.txt", b"hello", "text/plain")},
        headers=headers,
    )
    assert response.json() == {"name": "notes.txt", "url": "data:text/plain;base64,aGVsbG8="}


def test_upload_over_cap_rejected(client: TestClient, headers: dict) -> None:
    response = client.post(
        "/api/uploads",
        files={"file": ("cover.jpg", b"x" * (MAX_UPLOAD_BYTES + 1), "image/jpeg")},
        data={"purpose": "cover"},
        headers=headers,
    )
    assert response.status_code == 413
    assert response.json()["detail"] == COVER_TOO_LARGE


def test_save_failure_reaches_viewers(client: TestClient, headers: dict, collection: FakeCollection) -> None:
    with client.websocket_connect("/ws/portfolio") as ws:
        assert ws.receive_json()["type"] == "snapshot"
        collection.fail_writes = True

        client.patch("/api/portfolio/hero", json={"name": "Unsaved"}, headers=headers)

        local = ws.receive_json()
        assert local["type"] == "snapshot"
        assert local["data"]["hero"]["name"] == "Unsaved"
        assert ws.receive_json() == {"type": "error", "message": "Error saving data. Please try again."}


def test_websocket_streams_changes(client: TestClient, headers: dict) -> None:
    with client.websocket_connect("/ws/portfolio") as ws:
        first = ws.receive_json()
        assert first["type"] == "snapshot"
        assert first["data"]["hero"]["name"] == "Your Name"

        client.patch("/api/portfolio/hero", json={"name": "Live"}, headers=headers)

        update = ws.receive_json()
        assert update["type"] == "snapshot"
        assert update["data"]["hero"]["name"] == "Live"


def test_slow_viewer_keeps_newest_messages() -> None:
    broadcaster = Broadcaster(max_pending=3)
    queue = broadcaster.connect()

    for n in range(5):
        broadcaster.publish({"type": "snapshot", "data": n})

    assert queue.qsize() == 3
    assert [queue.get_nowait()["data"] for _ in range(3)] == [2, 3, 4]

    broadcaster.disconnect(queue)
    broadcaster.publish({"type": "snapshot", "data": 5})
    assert queue.empty()
