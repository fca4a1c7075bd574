import httpx
import pytest

from machinebio.core.cache import TTLCache
from machinebio.main import app
from machinebio.routers.nhtsa import get_nhtsa_client
from machinebio.services.nhtsa import NhtsaClient


@pytest.fixture
def nhtsa_client():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"Results": [{"Make_ID": 1, "Make_Name": "TOYOTA"}]})

    client = NhtsaClient(
        http=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        cache=TTLCache(ttl_seconds=3600),
        base_url="https://vpic.example.test/api/vehicles",
    )
    app.dependency_overrides[get_nhtsa_client] = lambda: client
    return client


@pytest.mark.asyncio
async def test_cache_status_and_invalidate(async_client, nhtsa_client, make_user, auth_headers):
    admin = await make_user(role="admin")
    await nhtsa_client.get_makes()

    resp = await async_client.get("/admin/cache/nhtsa/status", headers=auth_headers(admin))
    assert resp.status_code == 200
    status = resp.json()
    assert status["cached"] is True
    assert status["makes_count"] == 1
    assert status["ttl_seconds"] == 3600

    resp = await async_client.post("/admin/cache/nhtsa/invalidate", headers=auth_headers(admin))
    assert resp.status_code == 200
    assert nhtsa_client.cache.get() is None

    resp = await async_client.get("/admin/cache/nhtsa/status", headers=auth_headers(admin))
    assert resp.json()["cached"] is False
    assert resp.json()["age_seconds"] is None


@pytest.mark.asyncio
@pytest.mark.parametrize("role", ["user", "moderator"])
async def test_cache_admin_requires_permission(async_client, nhtsa_client, make_user, auth_headers, role):
    user = await make_user(role=role)

    resp = await async_client.post("/admin/cache/nhtsa/invalidate", headers=auth_headers(user))
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_cache_admin_requires_auth(async_client, nhtsa_client):
    resp = await async_client.get("/admin/cache/nhtsa/status")
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_list_and_get_users(async_client, make_user, make_car, make_spot, auth_headers):
    admin = await make_user(username="boss", role="admin")
    driver = await make_user(username="drifter")
    await make_user(username="lurker")
    await make_car(driver)
    await make_spot(driver)

    resp = await async_client.get("/admin/users", params={"search": "DRIF"}, headers=auth_headers(admin))
    assert resp.status_code == 200
    body = resp.json()
    assert [u["username"] for u in body["users"]] == ["drifter"]
    assert body["pagination"] == {"page": 1, "limit": 20, "total": 1, "pages": 1}

    resp = await async_client.get("/admin/users", params={"role": "admin"}, headers=auth_headers(admin))
    assert [u["username"] for u in resp.json()["users"]] == ["boss"]

    resp = await async_client.get(f"/admin/users/{driver.id}", headers=auth_headers(admin))
    assert resp.status_code == 200
    user = resp.json()["user"]
    assert user["car_count"] == 1
    assert user["spot_count"] == 1

    resp = await async_client.get("/admin/users/9999", headers=auth_headers(admin))
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_moderators_cannot_view_users(async_client, make_user, auth_headers):
    moderator = await make_user(role="moderator")

    resp = await async_client.get("/admin/users", headers=auth_headers(moderator))
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_admin_edits_profile_but_not_roles(async_client, make_user, auth_headers):
    admin = await make_user(role="admin")
    target = await make_user()

    resp = await async_client.patch(
        f"/admin/users/{target.id}", json={"name": "Fixed Name", "country": "HR"}, headers=auth_headers(admin)
    )
    assert resp.status_code == 200
    assert resp.json()["user"]["name"] == "Fixed Name"
    assert resp.json()["user"]["country"] == "HR"

    resp = await async_client.patch(
        f"/admin/users/{target.id}", json={"role": "moderator"}, headers=auth_headers(admin)
    )
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_founder_changes_roles(async_client, make_user, auth_headers):
    founder = await make_user(role="founder")
    other_founder = await make_user(role="founder")
    target = await make_user()

    resp = await async_client.patch(
        f"/admin/users/{target.id}", json={"role": "moderator"}, headers=auth_headers(founder)
    )
    assert resp.status_code == 200
    assert resp.json()["user"]["role"] == "moderator"

    resp = await async_client.patch(
        f"/admin/users/{target.id}", json={"role": "overlord"}, headers=auth_headers(founder)
    )
    assert resp.status_code == 400

    resp = await async_client.patch(
        f"/admin/users/{other_founder.id}", json={"role": "user"}, headers=auth_headers(founder)
    )
    assert resp.status_code == 403
    assert resp.json()["error"] == "forbidden"


@pytest.mark.asyncio
async def test_regular_users_cannot_edit_users(async_client, make_user, auth_headers):
    user = await make_user()
    target = await make_user()

    resp = await async_client.patch(f"/admin/users/{target.id}", json={"name": "x"}, headers=auth_headers(user))
    assert resp.status_code == 403
