from __future__ import annotations

from collections.abc import Generator
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from fuel_dispatch import main as app_main
from fuel_dispatch.domain.models import Driver, DriverPushToken, DriverTask, DriverTaskEntry, now_utc
from fuel_dispatch.domain.state_machine import ExecutionStatus
from fuel_dispatch.services.completion_capture import MAX_IMAGE_BYTES
from fuel_dispatch.services.identity_service import sha256_hex


@pytest.fixture()
def client() -> Generator[TestClient, None, None]:
    client = TestClient(app_main.app)
    yield client
    client.close()


def _auth_header(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def _dispatcher_token(client: TestClient) -> str:
    client.post("/api/identity/bootstrap-dispatcher", json={"username": "dispatch", "password": "pw"})
    response = client.post("/api/identity/dispatcher-login", json={"username": "dispatch", "password": "pw"})
    assert response.status_code == 200
    return response.json()["access_token"]


def _driver_token(client: TestClient, dispatcher_token: str, name: str = "Ali") -> str:
    created = client.post(
        "/api/identity/drivers",
        json={"name": name, "phone": "0500000001", "password": "driver-pw"},
        headers=_auth_header(dispatcher_token),
    )
    assert created.status_code == 201
    response = client.post("/api/identity/driver-login", json={"name": name, "password": "driver-pw"})
    assert response.status_code == 200
    return response.json()["access_token"]


def _create_task(client: TestClient, dispatcher_token: str, site_name: str = "Depot") -> str:
    response = client.post(
        "/api/dispatch/tasks",
        json={"site_name": site_name, "driver_name": "Ali", "required_liters": 500},
        headers=_auth_header(dispatcher_token),
    )
    assert response.status_code == 201
    return response.json()["id"]


def test_driver_start_capture_submit_flow(client: TestClient, sqlite_engine: Engine) -> None:
    dispatcher = _dispatcher_token(client)
    site = client.post(
        "/api/dispatch/sites",
        json={"site_name": "Depot", "latitude": 24.7, "longitude": 46.6},
        headers=_auth_header(dispatcher),
    )
    assert site.status_code == 201
    task_id = _create_task(client, dispatcher)
    headers = _auth_header(_driver_token(client, dispatcher))

    listed = client.get("/api/driver/tasks", headers=headers)
    assert listed.status_code == 200
    assert [item["id"] for item in listed.json()] == [task_id]
    assert listed.json()[0]["site_latitude"] == 24.7

    directions = client.get(f"/api/driver/tasks/{task_id}/directions", headers=headers)
    assert directions.json()["url"] == "https://www.google.com/maps/dir/?api=1&destination=24.7,46.6"

    started = client.post(f"/api/driver/tasks/{task_id}/start", headers=headers)
    assert started.status_code == 200
    assert started.json()["status"] == "in_progress"
    assert started.json()["completed_at"] is None

    opened = client.post(f"/api/driver/tasks/{task_id}/completion", headers=headers)
    assert opened.status_code == 200
    assert opened.json()["mission_id"] == task_id

    patched = client.patch("/api/driver/completion", json={"quantity_added": "40", "notes": "all good"}, headers=headers)
    assert patched.json()["quantity_added"] == "40"

    uploaded = client.put(
        "/api/driver/completion/images/counter_before",
        content=b"jpeg-bytes",
        headers={**headers, "Content-Type": "image/jpeg", "X-File-Name": "meter.jpg"},
    )
    assert uploaded.status_code == 200
    image_url = uploaded.json()["url"]
    assert image_url.startswith(f"/media/driver-uploads/Ali/{task_id}/counter_before_")
    assert uploaded.json()["preview"] == image_url

    media = client.get(image_url)
    assert media.status_code == 200
    assert media.content == b"jpeg-bytes"

    submitted = client.post("/api/driver/completion/submit", headers=headers)
    assert submitted.status_code == 200
    body = submitted.json()
    assert body["task"]["status"] == "completed"
    assert body["task"]["local_completed_at"] is not None
    assert body["counts"]["open"] == 0

    with Session(sqlite_engine) as session:
        task = session.get(DriverTask, task_id)
        entries = session.exec(select(DriverTaskEntry).where(DriverTaskEntry.task_id == task_id)).all()
    assert task is not None
    assert task.status == ExecutionStatus.COMPLETED
    assert task.completed_at is not None
    assert task.notes == "all good"
    assert task.counter_before_url == image_url
    assert len(entries) == 1
    assert entries[0].liters == 40.0
    assert entries[0].counter_before_url == image_url
    assert entries[0].tank_after_url is None

    assert client.get("/api/driver/tasks", headers=headers).json() == []
    history = client.get("/api/driver/tasks/history", headers=headers).json()
    assert [item["task"]["id"] for item in history] == [task_id]
    assert client.get("/api/driver/completion", headers=headers).status_code == 404

    entries_view = client.get(f"/api/dispatch/tasks/{task_id}/entries", headers=_auth_header(dispatcher))
    assert [item["liters"] for item in entries_view.json()] == [40.0]


def test_completion_requires_open_session_and_known_task(client: TestClient) -> None:
    dispatcher = _dispatcher_token(client)
    headers = _auth_header(_driver_token(client, dispatcher))

    assert client.patch("/api/driver/completion", json={"notes": "x"}, headers=headers).status_code == 409
    assert client.post("/api/driver/completion/submit", headers=headers).status_code == 409
    assert client.post("/api/driver/tasks/missing/start", headers=headers).status_code == 404
    assert client.post("/api/driver/tasks/missing/completion", headers=headers).status_code == 404


def test_oversize_image_is_rejected(client: TestClient) -> None:
    dispatcher = _dispatcher_token(client)
    task_id = _create_task(client, dispatcher)
    headers = _auth_header(_driver_token(client, dispatcher))
    client.post(f"/api/driver/tasks/{task_id}/completion", headers=headers)

    response = client.put(
        "/api/driver/completion/images/tank_after",
        content=b"0" * (MAX_IMAGE_BYTES + 1),
        headers={**headers, "Content-Type": "image/jpeg"},
    )

    assert response.status_code == 413
    slots = {slot["tag"]: slot for slot in client.get("/api/driver/completion", headers=headers).json()["slots"]}
    assert slots["tank_after"]["error"] == "Max file size is 10MB"
    assert slots["tank_after"]["url"] is None


def test_counts_and_filters_for_driver(client: TestClient) -> None:
    dispatcher = _dispatcher_token(client)
    first = _create_task(client, dispatcher, "North Depot")
    _create_task(client, dispatcher, "South Yard")
    headers = _auth_header(_driver_token(client, dispatcher))

    client.get("/api/driver/tasks", headers=headers)
    client.post(f"/api/driver/tasks/{first}/start", headers=headers)

    counts = client.get("/api/driver/tasks/counts", headers=headers).json()
    assert (counts["pending"], counts["in_progress"], counts["open"]) == (1, 1, 2)
    searched = client.get("/api/driver/tasks", params={"q": "south"}, headers=headers).json()
    assert [item["site_name"] for item in searched] == ["South Yard"]
    returned = client.get("/api/driver/tasks", params={"mode": "returned"}, headers=headers).json()
    assert returned == []


def test_returned_task_can_be_resubmitted(client: TestClient) -> None:
    dispatcher = _dispatcher_token(client)
    task_id = _create_task(client, dispatcher)
    headers = _auth_header(_driver_token(client, dispatcher))

    client.get("/api/driver/tasks", headers=headers)
    client.post(f"/api/driver/tasks/{task_id}/completion", headers=headers)
    assert client.post("/api/driver/completion/submit", headers=headers).status_code == 200

    client.post(f"/api/driver/tasks/{task_id}/completion", headers=headers)
    assert client.post("/api/driver/completion/submit", headers=headers).status_code == 409

    returned = client.patch(
        f"/api/dispatch/tasks/{task_id}/admin-status",
        json={"admin_status": "Task returned to the driver"},
        headers=_auth_header(dispatcher),
    )
    assert returned.status_code == 200
    assert client.get("/api/driver/tasks", params={"mode": "returned"}, headers=headers).json() == []

    client.post(f"/api/driver/tasks/{task_id}/completion", headers=headers)
    client.patch("/api/driver/completion", json={"liters": "12.5"}, headers=headers)
    assert client.post("/api/driver/completion/submit", headers=headers).status_code == 200

    entries = client.get(f"/api/dispatch/tasks/{task_id}/entries", headers=_auth_header(dispatcher)).json()
    assert sorted(item["liters"] for item in entries) == [0.0, 12.5]


def test_push_binding_and_notifications(client: TestClient, sqlite_engine: Engine) -> None:
    dispatcher = _dispatcher_token(client)
    headers = _auth_header(_driver_token(client, dispatcher))

    for _ in range(2):
        bound = client.post("/api/driver/push/registration", json={"token": "tok-1", "platform": "android"}, headers=headers)
        assert bound.status_code == 200
    assert bound.json()["last_synced_signature"] == "tok-1|Ali|0500000001|android"

    sent = client.post(
        "/api/dispatch/notifications",
        json={"title": "Shift", "message": "Starts at 6"},
        headers=_auth_header(dispatcher),
    )
    assert sent.status_code == 201
    assert client.get("/api/driver/notifications", headers=headers).json()["unread_count"] == 1
    assert client.post("/api/driver/notifications/read-all", headers=headers).json()["unread_count"] == 0
    assert client.get("/api/driver/notifications", headers=headers).json()["unread_count"] == 0

    tap = client.post("/api/driver/push/tap", json={"data": {"url": "#/driver/tasks"}}, headers=headers)
    assert tap.json() == {"target": "/driver/tasks"}

    assert client.post("/api/identity/driver-logout", headers=headers).status_code == 204
    with Session(sqlite_engine) as session:
        record = session.get(DriverPushToken, "tok-1")
    assert record is not None
    assert record.driver_name is None


def test_dispatcher_token_is_not_a_driver_session(client: TestClient) -> None:
    dispatcher = _dispatcher_token(client)
    response = client.get("/api/driver/tasks", headers=_auth_header(dispatcher))
    assert response.status_code == 403
    assert client.get("/api/driver/tasks").status_code == 401


def test_memory_backend_serves_driver_routes(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    dispatcher = _dispatcher_token(client)
    headers = _auth_header(_driver_token(client, dispatcher))
    monkeypatch.setenv("FUEL_DATA_BACKEND", "memory")

    assert client.get("/api/driver/tasks", headers=headers).json() == []

    monkeypatch.setenv("FUEL_DATA_BACKEND", "bogus")
    assert client.get("/api/driver/tasks", headers=headers).status_code == 500


def test_sign_in_with_changed_phone_rebinds_push_token(client: TestClient, sqlite_engine: Engine) -> None:
    dispatcher = _dispatcher_token(client)
    headers = _auth_header(_driver_token(client, dispatcher))
    client.post("/api/driver/push/registration", json={"token": "dev-1", "platform": "android"}, headers=headers)

    with Session(sqlite_engine) as session:
        session.add(
            Driver(
                name="Ali",
                phone="0500000002",
                password_sha256=sha256_hex("driver-pw"),
                created_at=now_utc() + timedelta(minutes=1),
            )
        )
        session.commit()
    login = client.post("/api/identity/driver-login", json={"name": "Ali", "password": "driver-pw"})
    new_headers = _auth_header(login.json()["access_token"])

    assert client.get("/api/driver/tasks", headers=new_headers).status_code == 200
    binding = client.get("/api/driver/push/binding", headers=new_headers).json()
    assert binding["driver_phone"] == "0500000002"
    assert binding["last_synced_signature"] == "dev-1|Ali|0500000002|android"
    with Session(sqlite_engine) as session:
        record = session.get(DriverPushToken, "dev-1")
    assert record is not None
    assert record.driver_phone == "0500000002"
