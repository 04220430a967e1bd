"""HTTP surface tests through the ASGI app."""
import pytest
from datetime import timedelta
from httpx import AsyncClient
from framework.config import settings
from framework.timeutils import utcnow
from apps.identity.models import Tenant
from helpers import MB, create_model

MODELS = settings.API_V1_MODELS_PREFIX
BILLING = settings.API_V1_BILLING_PREFIX
ACCOUNT = settings.API_V1_ACCOUNT_PREFIX


async def _upload(client: AsyncClient, name="Benchy", tags="boats,calibration"):
    return await client.post(
        MODELS,
        data={"name": name, "tags": tags},
        files=[
            ("files", ("benchy.stl", b"solid benchy", "model/stl")),
            ("files", ("plate.3mf", b"PK\x03\x04", "application/vnd.ms-package.3dmanufacturing-3dmodel+xml")),
        ],
    )


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["data"]["status"] == "ok"


@pytest.mark.asyncio
async def test_upload_list_and_detail(client: AsyncClient, storage, sample_tenant):
    response = await _upload(client)

    body = response.json()
    assert body["code"] == 200
    model_id = body["data"]["id"]
    assert body["data"]["slug"] == "benchy"
    assert len(storage.objects) == 2

    listing = (await client.get(MODELS)).json()["data"]
    assert listing["total"] == 1

    detail = (await client.get(f"{MODELS}/{model_id}")).json()["data"]
    assert detail["tags"] == ["boats", "calibration"]
    assert len(detail["files"]) == 2

    file_id = detail["files"][0]["id"]
    url = (await client.get(f"{MODELS}/files/{file_id}/download-url")).json()["data"]["url"]
    assert url.startswith("https://storage.test/")


@pytest.mark.asyncio
async def test_upload_without_files_is_rejected(client: AsyncClient, storage, sample_tenant):
    response = await client.post(MODELS, data={"name": "Empty"})

    body = response.json()
    assert body["code"] == 422
    assert storage.put_calls == 0


@pytest.mark.asyncio
async def test_upload_blocked_during_grace(client: AsyncClient, async_session, storage, sample_tenant):
    tenant = await async_session.get(Tenant, sample_tenant)
    tenant.grace_deadline = utcnow() + timedelta(days=3)
    async_session.add(tenant)
    await async_session.commit()

    body = (await _upload(client)).json()

    assert body["code"] == 403
    assert body["data"] == {"reason": "grace_period"}
    assert "read-only mode" in body["message"]
    assert storage.objects == {}


@pytest.mark.asyncio
async def test_quota_error_names_the_limit(client: AsyncClient, async_session, sample_tenant):
    for index in range(10):
        await create_model(async_session, sample_tenant, f"M{index}", [MB])

    body = (await _upload(client)).json()

    assert body["code"] == 403
    assert body["data"] == {"limit": "model_count"}
    assert "allows 10 model(s)" in body["message"]


@pytest.mark.asyncio
async def test_delete_reports_grace_state(client: AsyncClient, async_session, sample_tenant):
    model_ids = [await create_model(async_session, sample_tenant, f"M{i}", [MB]) for i in range(11)]
    tenant = await async_session.get(Tenant, sample_tenant)
    tenant.grace_deadline = utcnow() + timedelta(days=3)
    async_session.add(tenant)
    await async_session.commit()

    body = (await client.delete(f"{MODELS}/{model_ids[0]}")).json()

    assert body["code"] == 200
    assert body["data"]["freed_bytes"] == MB
    assert body["data"]["grace"]["transition"] == "cleared"
    assert body["data"]["grace"]["state"] == "COMPLIANT"


@pytest.mark.asyncio
async def test_missing_model_is_404(client: AsyncClient, sample_tenant):
    body = (await client.get(f"{MODELS}/does-not-exist")).json()

    assert body["code"] == 404


@pytest.mark.asyncio
async def test_usage_endpoint(client: AsyncClient, async_session, sample_tenant):
    await create_model(async_session, sample_tenant, "One", [3 * MB])

    data = (await client.get(f"{BILLING}/usage")).json()["data"]

    assert data["usage"] == {"model_count": 1, "storage_bytes": 3 * MB}
    assert data["limits"]["model_count"] == 10
    assert data["state"] == "COMPLIANT"


@pytest.mark.asyncio
async def test_account_deletion_round_trip(client: AsyncClient, sample_tenant, monkeypatch):
    async def sent(*args, **kwargs):
        return True

    monkeypatch.setattr("apps.account_deletion.service.notify_account_deletion_requested", sent)

    assert (await client.get(f"{ACCOUNT}/deletion")).json()["data"]["status"] == "none"

    scheduled = (await client.post(f"{ACCOUNT}/deletion")).json()["data"]
    assert scheduled["status"] == "scheduled"

    blocked = (await _upload(client)).json()
    assert blocked["code"] == 403
    assert blocked["data"] == {"reason": "account_deletion"}

    canceled = (await client.delete(f"{ACCOUNT}/deletion")).json()["data"]
    assert canceled["status"] == "canceled"

    again = (await client.delete(f"{ACCOUNT}/deletion")).json()
    assert again["code"] == 422
