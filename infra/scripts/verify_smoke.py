from __future__ import annotations

import asyncio
import os
from uuid import uuid4

import httpx
from demo_common import (
    assert_status,
    auth_headers,
    create_driver,
    create_site,
    create_task,
    dispatcher_token,
    driver_token,
    wait_ok,
)

# JPEG start and end markers only; the server stores bytes as given.
SAMPLE_IMAGE = bytes.fromhex("ffd8ffe000104a46494600010100000100010000ffd9")


async def _run() -> None:
    base_url = os.getenv("APP_BASE_URL", "http://app:8000").rstrip("/")
    run_id = uuid4().hex[:8]
    timeout = httpx.Timeout(20.0)
    async with httpx.AsyncClient(base_url=base_url, timeout=timeout) as client:
        await wait_ok(client, "/healthz")
        await wait_ok(client, "/readyz")

        admin = await dispatcher_token(
            client,
            os.getenv("SMOKE_DISPATCHER_USERNAME", "dispatch"),
            os.getenv("SMOKE_DISPATCHER_PASSWORD", "dispatch-pass"),
        )
        driver_name, password = await create_driver(client, admin, "smoke")
        site_name = f"smoke-site-{run_id}"
        await create_site(client, admin, site_name, lat=24.7136, lon=46.6753)
        task_id = await create_task(client, admin, site_name=site_name, driver_name=driver_name)

        driver = auth_headers(await driver_token(client, driver_name, password))

        tasks_resp = await client.get("/api/driver/tasks", headers=driver)
        assert_status(tasks_resp, 200)
        listed = {item["id"]: item for item in tasks_resp.json()}
        if task_id not in listed:
            raise RuntimeError("created task missing from driver list")
        if listed[task_id]["site_latitude"] is None:
            raise RuntimeError("driver task was not enriched with site coordinates")

        start_resp = await client.post(f"/api/driver/tasks/{task_id}/start", headers=driver)
        assert_status(start_resp, 200)
        if start_resp.json()["status"] != "in_progress":
            raise RuntimeError("start did not move the task in progress")

        assert_status(await client.post(f"/api/driver/tasks/{task_id}/completion", headers=driver), 200)
        assert_status(
            await client.patch("/api/driver/completion", json={"quantity_added": "40"}, headers=driver),
            200,
        )
        for tag in ("counter_before", "tank_before", "counter_after", "tank_after"):
            upload_resp = await client.put(
                f"/api/driver/completion/images/{tag}",
                content=SAMPLE_IMAGE,
                headers={**driver, "Content-Type": "image/jpeg", "X-File-Name": f"{tag}.jpg"},
            )
            assert_status(upload_resp, 200)
            if not upload_resp.json()["url"]:
                raise RuntimeError(f"upload for {tag} produced no url: {upload_resp.text}")

        submit_resp = await client.post("/api/driver/completion/submit", headers=driver)
        assert_status(submit_resp, 200)
        if submit_resp.json()["task"]["status"] != "completed":
            raise RuntimeError("submit did not complete the task")

        entries_resp = await client.get(f"/api/dispatch/tasks/{task_id}/entries", headers=auth_headers(admin))
        assert_status(entries_resp, 200)
        entries = entries_resp.json()
        if len(entries) != 1 or entries[0]["liters"] != 40.0:
            raise RuntimeError(f"unexpected entries: {entries}")

        review_resp = await client.patch(
            f"/api/dispatch/tasks/{task_id}/admin-status",
            json={"admin_status": "Task approved"},
            headers=auth_headers(admin),
        )
        assert_status(review_resp, 200)

        assert_status(await client.post("/api/identity/driver-logout", headers=driver), 204)

    print(f"smoke ok: task={task_id} driver={driver_name}")


def main() -> None:
    asyncio.run(_run())


if __name__ == "__main__":
    main()
