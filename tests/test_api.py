"""End-to-end checks of the HTTP surface against the in-memory store."""

import hashlib
import time
from datetime import datetime, timedelta, timezone

import pytest
from httpx import ASGITransport, AsyncClient

from autojs_control.core.container import ApplicationContainer
from autojs_control.core.security import create_access_token
from autojs_control.db.models import Script
from autojs_control.domain.notifications import NotificationHub
from autojs_control.infrastructure.ttl_store import InMemoryTtlStore
from autojs_control.interfaces.http.deps import get_app_container, get_db_session
from autojs_control.main import create_app

from helpers import sign

DEVICE_API = "/api/autojs/v1/device"


@pytest.fixture
async def client(settings, session_factory):
    container = ApplicationContainer(settings=settings, store=InMemoryTtlStore(), notifier=NotificationHub())

    async def override_session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app = create_app()
    app.dependency_overrides[get_app_container] = lambda: container
    app.dependency_overrides[get_db_session] = override_session
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as http:
        yield http
    await container.close()


@pytest.fixture
def operator_headers():
    return {"Authorization": f"Bearer {create_access_token('tester')}"}


@pytest.fixture
async def script_id(seed):
    return seed["script_id"]


async def _register(client, device_code="api-1"):
    response = await client.post(
        f"{DEVICE_API}/register",
        json={
            "deviceCode": device_code,
            "deviceName": "测试设备",
            "certificateRequest": "csr",
            "autoJsVersion": "4.1.1",
            "model": "Pixel",
        },
    )
    assert response.status_code == 200
    return response.json()["certificate"]


async def _heartbeat(client, certificate, device_code="api-1", **extra):
    ts = int(time.time())
    payload = {
        "deviceCode": device_code,
        "signature": sign(certificate, device_code, ts),
        "timestamp": ts,
        "pollTimeout": 1,
    }
    payload.update(extra)
    return await client.post(f"{DEVICE_API}/heartbeat", json=payload)


async def test_register_issues_certificate(client):
    certificate = await _register(client)

    assert len(certificate) == 64


async def test_full_dispatch_round_trip(client, script_id, operator_headers):
    certificate = await _register(client)

    created = await client.post(
        "/api/tasks/",
        json={"name": "采集", "scriptId": script_id, "targetDeviceIds": ["api-1"], "parameters": {"page": 1}},
        headers=operator_headers,
    )
    assert created.status_code == 201
    task = created.json()
    assert task["status"] == "running"
    assert task["totalDevices"] == 1

    polled = await _heartbeat(client, certificate)
    assert polled.status_code == 200
    [instruction] = polled.json()["instructions"]
    assert instruction["type"] == "execute_script"
    assert instruction["taskId"] == task["id"]
    assert instruction["data"] == {"scriptId": script_id, "parameters": {"page": 1}}

    now = datetime.now(timezone.utc)
    ts = int(time.time())
    reported = await client.post(
        f"{DEVICE_API}/report-result",
        json={
            "deviceCode": "api-1",
            "signature": sign(certificate, "api-1", instruction["instructionId"], ts),
            "timestamp": ts,
            "instructionId": instruction["instructionId"],
            "status": "success",
            "startTime": (now - timedelta(seconds=3)).isoformat(),
            "endTime": now.isoformat(),
            "output": "ok",
        },
    )
    assert reported.status_code == 200
    assert reported.json()["status"] == "ok"

    detail = await client.get(f"/api/tasks/{task['id']}", headers=operator_headers)
    assert detail.json()["status"] == "completed"
    assert detail.json()["progress"] == 100.0
    assert detail.json()["targets"][0]["status"] == "success"


async def test_empty_heartbeat_returns_no_instructions(client):
    certificate = await _register(client)

    response = await _heartbeat(client, certificate, monitorData={"battery": 50})

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["instructions"] == []
    assert "serverTime" in body


async def test_bad_signature_is_unauthorized(client):
    await _register(client)

    response = await _heartbeat(client, "not-the-certificate")

    assert response.status_code == 401
    assert response.json()["detail"] == "设备认证失败"


async def test_unknown_device_gets_same_error_as_bad_signature(client):
    response = await _heartbeat(client, "whatever", device_code="ghost")

    assert response.status_code == 401
    assert response.json()["detail"] == "设备认证失败"


async def test_task_endpoints_require_operator_token(client):
    response = await client.get("/api/tasks/")

    assert response.status_code in (401, 403)


async def test_non_operator_token_is_forbidden(client):
    token = create_access_token("viewer", role="viewer")

    response = await client.get("/api/tasks/", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 403


async def test_invalid_task_is_bad_request(client, script_id, operator_headers):
    response = await client.post(
        "/api/tasks/",
        json={"name": "bad", "scriptId": script_id, "targetType": "specific"},
        headers=operator_headers,
    )

    assert response.status_code == 400


async def test_cancel_finished_task_conflicts(client, script_id, operator_headers):
    created = await client.post(
        "/api/tasks/",
        json={"name": "ghost", "scriptId": script_id, "targetDeviceIds": ["nobody"]},
        headers=operator_headers,
    )
    assert created.json()["status"] == "failed"

    response = await client.post(f"/api/tasks/{created.json()['id']}/cancel", headers=operator_headers)

    assert response.status_code == 409


async def test_operator_can_queue_and_cancel_ad_hoc_instruction(client, operator_headers):
    await _register(client)

    sent = await client.post(
        "/api/devices/api-1/instructions",
        json={"type": "ping"},
        headers=operator_headers,
    )
    assert sent.status_code == 201
    instruction_id = sent.json()["instructionId"]

    preview = await client.get("/api/devices/api-1/instructions", headers=operator_headers)
    assert [item["instructionId"] for item in preview.json()] == [instruction_id]

    cancelled = await client.delete(f"/api/devices/api-1/instructions/{instruction_id}", headers=operator_headers)
    assert cancelled.status_code == 200

    status = await client.get(f"/api/devices/api-1/instructions/{instruction_id}", headers=operator_headers)
    assert status.json()["status"] == "cancelled"


async def test_queue_monitor_reports_depth(client, operator_headers):
    await _register(client)
    await client.post("/api/devices/api-1/instructions", json={"type": "ping"}, headers=operator_headers)

    response = await client.get("/api/monitor/devices/api-1", headers=operator_headers)

    assert response.status_code == 200
    assert response.json()["queueDepth"] == 1


async def _download(client, certificate, script_id, device_code="api-1"):
    ts = int(time.time())
    return await client.get(
        f"{DEVICE_API}/script/{script_id}",
        params={"deviceCode": device_code, "signature": sign(certificate, device_code, script_id, ts), "timestamp": ts},
    )


async def test_device_downloads_script_content(client, script_id):
    certificate = await _register(client)

    response = await _download(client, certificate, script_id)

    assert response.status_code == 200
    body = response.json()
    assert body["scriptId"] == script_id
    assert body["scriptName"] == "collect"
    assert body["content"] == "toast('hi')"
    assert body["version"] == "1.0"
    assert body["timeout"] == 300
    assert body["checksum"] == hashlib.sha256("toast('hi')".encode("utf-8")).hexdigest()


async def test_script_download_rejects_bad_signature(client, script_id):
    await _register(client)

    response = await _download(client, "not-the-certificate", script_id)

    assert response.status_code == 401
    assert response.json()["detail"] == "设备认证失败"


async def test_unknown_script_is_not_found(client, seed):
    certificate = await _register(client)

    response = await _download(client, certificate, 9999)

    assert response.status_code == 404


async def test_inactive_script_is_not_found(client, session, seed):
    certificate = await _register(client)
    retired = Script(name="retired", content="exit()", version="0.9", timeout=60, is_active=False)
    session.add(retired)
    await session.commit()

    response = await _download(client, certificate, retired.id)

    assert response.status_code == 404
