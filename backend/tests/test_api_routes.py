import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from app import deps
from app.main import app
from conftest import PREVIEWS


@pytest_asyncio.fixture
async def client(identity, object_store, make_service, gateway):
    service = make_service()
    app.dependency_overrides[deps.get_identity] = lambda: identity
    app.dependency_overrides[deps.get_storage] = lambda: object_store
    app.dependency_overrides[deps.get_simulation_service] = lambda: service
    app.dependency_overrides[deps.get_access_gateway] = lambda: gateway
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


def auth(user="u1"):
    return {"Authorization": f"Bearer token-{user}"}


def upload_files(*categories):
    return [
        {"id": f"f{i}", "name": f"{c}{i}.png", "size": 1024, "type": "image/png", "category": c}
        for i, c in enumerate(categories)
    ]


@pytest.mark.asyncio
async def test_health_check(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_simulate_requires_auth(client):
    response = await client.post("/api/fit/simulate", json={"personPath": "u1/abc.png"})
    assert response.status_code == 401
    assert response.json()["success"] is False


@pytest.mark.asyncio
async def test_simulate_rejects_bad_token(client):
    response = await client.post(
        "/api/fit/simulate", json={"personPath": "u1/abc.png"}, headers={"Authorization": "Bearer nope"}
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_simulate_success(client, job_store, metrics_store):
    response = await client.post("/api/fit/simulate", json={"personPath": "u1/abc.png"}, headers=auth())

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["status"] == "completed_stub"
    assert body["previewUrl"].startswith("https://storage.test/")
    assert body["jobId"] in job_store.jobs
    assert [m["status"] for m in metrics_store.records] == ["completed_stub"]


@pytest.mark.asyncio
async def test_simulate_foreign_path_is_403(client, job_store, metrics_store):
    response = await client.post("/api/fit/simulate", json={"personPath": "u2/abc.png"}, headers=auth())

    assert response.status_code == 403
    body = response.json()
    assert body == {
        "success": False,
        "error": "Ownership validation failed",
        "code": "FORBIDDEN",
        "details": 'Person path must start with "u1/" but got: u2/abc.png',
    }
    assert job_store.jobs == {}
    assert [m["status"] for m in metrics_store.records] == ["denied"]


@pytest.mark.asyncio
async def test_simulate_storage_failure_is_500(client, object_store, job_store, metrics_store):
    object_store.fail_put = RuntimeError("bucket unavailable")

    response = await client.post("/api/fit/simulate", json={"personPath": "u1/abc.png"}, headers=auth())

    assert response.status_code == 500
    body = response.json()
    assert body["code"] == "STORAGE_FAILED"
    assert "duration_ms" in body
    assert job_store.jobs == {}
    assert [m["status"] for m in metrics_store.records] == ["error"]


@pytest.mark.asyncio
async def test_simulate_missing_person_path_is_400(client):
    response = await client.post("/api/fit/simulate", json={"itemPaths": []}, headers=auth())
    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_INPUT"


@pytest.mark.asyncio
async def test_simulate_too_many_items_is_400(client):
    items = [f"u1/item{i}.png" for i in range(4)]
    response = await client.post(
        "/api/fit/simulate", json={"personPath": "u1/abc.png", "itemPaths": items}, headers=auth()
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_view_job(client, stored_job):
    response = await client.get(f"/api/fit/job/{stored_job.id}", headers=auth())

    assert response.status_code == 200
    body = response.json()
    assert body["job"]["id"] == stored_job.id
    assert body["job"]["status"] == "completed_stub"
    assert body["signedUrl"].startswith(f"https://storage.test/{PREVIEWS}/u1/job-1.webp")
    assert body["expiresAt"].startswith("2026-10-19T10:15:00")


@pytest.mark.asyncio
async def test_view_job_status_codes(client, stored_job):
    assert (await client.get(f"/api/fit/job/{stored_job.id}", headers=auth("u2"))).status_code == 403
    assert (await client.get("/api/fit/job/missing", headers=auth("u2"))).status_code == 404
    assert (await client.get(f"/api/fit/job/{stored_job.id}")).status_code == 401


@pytest.mark.asyncio
async def test_preview_returns_raw_bytes(client, stored_job):
    response = await client.post("/api/fit/preview", json={"job_id": stored_job.id}, headers=auth())

    assert response.status_code == 200
    assert response.content == b"preview-bytes"
    assert response.headers["content-type"] == "image/webp"
    assert response.headers["cache-control"] == "private, no-store"


@pytest.mark.asyncio
async def test_preview_requires_job_id(client):
    response = await client.post("/api/fit/preview", json={}, headers=auth())
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_download_sets_attachment_filename(client, stored_job):
    response = await client.get(f"/api/fit/download/{stored_job.id}", headers=auth())

    assert response.status_code == 200
    assert response.content == b"preview-bytes"
    assert response.headers["content-disposition"] == (
        "attachment; filename*=UTF-8''fit-simulation_20261018T101500.webp"
    )
    assert "no-store" in response.headers["cache-control"]


@pytest.mark.asyncio
async def test_download_storage_failure_is_500(client, stored_job, object_store):
    object_store.fail_get = RuntimeError("read failed")
    response = await client.get(f"/api/fit/download/{stored_job.id}", headers=auth())
    assert response.status_code == 500


@pytest.mark.asyncio
async def test_share(client, stored_job):
    response = await client.post("/api/fit/share", json={"job_id": stored_job.id}, headers=auth())

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["signedUrl"]
    assert body["expiresAt"].startswith("2026-10-19T10:15:00")


@pytest.mark.asyncio
async def test_share_other_users_job_is_403(client, stored_job):
    response = await client.post("/api/fit/share", json={"job_id": stored_job.id}, headers=auth("u2"))
    assert response.status_code == 403
    assert response.json()["error"] == "Access denied"


@pytest.mark.asyncio
async def test_upload_validate_passes(client):
    response = await client.post(
        "/api/fit/upload/validate",
        json={"files": upload_files("subject", "item"), "userId": "u1"},
        headers=auth(),
    )
    assert response.status_code == 200
    assert response.json()["success"] is True


@pytest.mark.asyncio
async def test_upload_validate_reports_errors(client):
    response = await client.post(
        "/api/fit/upload/validate",
        json={"files": upload_files("subject", "subject", "item")},
        headers=auth(),
    )
    assert response.status_code == 400
    errors = response.json()["errors"]
    assert {"field": "subject", "code": "CATEGORY_LIMIT_EXCEEDED"}.items() <= errors[0].items()


@pytest.mark.asyncio
async def test_upload_unknown_owner_is_404(client, identity):
    identity.known_users.discard("u1")
    response = await client.post(
        "/api/fit/upload", json={"files": upload_files("subject")}, headers=auth()
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_upload_into_other_namespace_is_403(client):
    response = await client.post(
        "/api/fit/upload", json={"files": upload_files("subject"), "userId": "u2"}, headers=auth()
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_upload_assigns_owned_paths(client):
    response = await client.post(
        "/api/fit/upload",
        json={"files": upload_files("item", "subject", "item")},
        headers=auth(),
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["personPath"].startswith("u1/")
    assert len(data["itemPaths"]) == 2
    assert all(p.startswith("u1/") and p.endswith(".png") for p in data["itemPaths"])
    assert [u["category"] for u in data["uploads"]] == ["subject", "item", "item"]
    assert all("fit-originals" in u["uploadUrl"] for u in data["uploads"])


@pytest.mark.asyncio
async def test_upload_urls_are_bound_to_declared_type_and_size(client, object_store):
    files = [
        {"id": "s", "name": "a.exe", "size": 1024, "type": "image/png", "category": "subject"},
        {"id": "i", "name": "b.html", "size": 4096, "type": "image/jpg", "category": "item"},
    ]
    response = await client.post("/api/fit/upload", json={"files": files}, headers=auth())

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["personPath"].endswith(".png")
    assert data["itemPaths"][0].endswith(".jpg")
    assert [(c[2], c[3]) for c in object_store.sign_put_calls] == [("image/png", 1024), ("image/jpeg", 4096)]


@pytest.mark.asyncio
async def test_upload_signing_failure_is_storage_failed(client, object_store):
    object_store.fail_sign = RuntimeError("sign down")

    response = await client.post("/api/fit/upload", json={"files": upload_files("subject")}, headers=auth())

    assert response.status_code == 500
    body = response.json()
    assert body["code"] == "STORAGE_FAILED"
    assert body["error"] == "Failed to create upload URL"
    assert body["details"] == "sign down"
