from __future__ import annotations

import asyncio
import time
from uuid import uuid4

import httpx


def assert_status(response: httpx.Response, expected: int | tuple[int, ...]) -> None:
    expected_codes = (expected,) if isinstance(expected, int) else expected
    if response.status_code not in expected_codes:
        raise RuntimeError(
            f"{response.request.method} {response.request.url} expected {expected_codes}, "
            f"got {response.status_code}: {response.text}"
        )


def auth_headers(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


async def wait_ok(client: httpx.AsyncClient, path: str, timeout_seconds: float = 60.0) -> None:
    deadline = time.monotonic() + timeout_seconds
    while time.monotonic() < deadline:
        try:
            response = await client.get(path)
            if response.status_code == 200:
                return
        except httpx.HTTPError:
            pass
        await asyncio.sleep(1.0)
    raise RuntimeError(f"timeout waiting for {path}")


async def dispatcher_token(client: httpx.AsyncClient, username: str, password: str) -> str:
    """Bootstrap the dispatcher account when the database is fresh, then log in."""
    bootstrap_resp = await client.post(
        "/api/identity/bootstrap-dispatcher",
        json={"username": username, "password": password},
    )
    assert_status(bootstrap_resp, (201, 409))

    login_resp = await client.post(
        "/api/identity/dispatcher-login",
        json={"username": username, "password": password},
    )
    assert_status(login_resp, 200)
    return login_resp.json()["access_token"]


async def create_driver(client: httpx.AsyncClient, token: str, prefix: str) -> tuple[str, str]:
    run_id = uuid4().hex[:8]
    name = f"{prefix}-driver-{run_id}"
    password = f"pass-{run_id}"
    driver_resp = await client.post(
        "/api/identity/drivers",
        json={"name": name, "phone": f"05{run_id[:8]}", "password": password},
        headers=auth_headers(token),
    )
    assert_status(driver_resp, 201)
    return name, password


async def driver_token(client: httpx.AsyncClient, name: str, password: str) -> str:
    login_resp = await client.post("/api/identity/driver-login", json={"name": name, "password": password})
    assert_status(login_resp, 200)
    return login_resp.json()["access_token"]


async def create_site(
    client: httpx.AsyncClient,
    token: str,
    site_name: str,
    *,
    lat: float,
    lon: float,
) -> int:
    site_resp = await client.post(
        "/api/dispatch/sites",
        json={"site_name": site_name, "city": "demo", "latitude": lat, "longitude": lon},
        headers=auth_headers(token),
    )
    assert_status(site_resp, 201)
    return site_resp.json()["id"]


async def create_task(
    client: httpx.AsyncClient,
    token: str,
    *,
    site_name: str,
    driver_name: str,
    required_liters: float = 500.0,
) -> str:
    task_resp = await client.post(
        "/api/dispatch/tasks",
        json={"site_name": site_name, "driver_name": driver_name, "required_liters": required_liters},
        headers=auth_headers(token),
    )
    assert_status(task_resp, 201)
    return task_resp.json()["id"]
