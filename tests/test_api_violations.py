from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient

from orgguard.api.auth import get_current_user
from orgguard.api.deps import get_authz
from orgguard.api.main import create_app

ORG = "acme"
BASE = f"/api/v1/orgs/{ORG}/violations"


@pytest.fixture
async def org(authz):
    await authz.seeder.seed_default_policies(ORG)
    await authz.sync.sync_member_role("admin-1", ORG, "admin")
    await authz.sync.sync_member_role("member-1", ORG, "member")
    return authz


@pytest.fixture
def principal() -> dict[str, Any]:
    return {"sub": "admin-1"}


@pytest.fixture
async def client(org, principal):
    app = create_app()
    app.dependency_overrides[get_authz] = lambda: org
    app.dependency_overrides[get_current_user] = lambda: principal

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


class TestSuspend:
    @pytest.mark.asyncio
    async def test_suspend_permission(self, client, org):
        response = await client.post(
            f"{BASE}/suspend",
            json={"resource": "posts", "action": "create", "severity": "major", "reason": "spam"},
            headers={"X-Request-ID": "req-1"},
        )

        assert response.status_code == 201
        assert response.json() == {
            "data": {"orgId": ORG, "resource": "posts", "action": "create", "status": "suspended"},
            "meta": {"request_id": "req-1"},
        }
        assert response.headers["X-Request-ID"] == "req-1"
        assert not await org.service.authorize("member-1", ORG, "posts", "create")

    @pytest.mark.asyncio
    async def test_missing_fields_rejected(self, client, org):
        response = await client.post(f"{BASE}/suspend", json={"resource": "posts", "action": "create"})

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "validationError"
        assert error["details"]["missing"] == ["severity", "reason"]
        assert not await org.violations.has_violations(ORG)

    @pytest.mark.asyncio
    async def test_empty_body_rejected(self, client):
        response = await client.post(f"{BASE}/suspend")

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_invalid_severity_rejected(self, client):
        response = await client.post(
            f"{BASE}/suspend",
            json={"resource": "posts", "action": "create", "severity": "apocalyptic", "reason": "x"},
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_duplicate_suspension_is_server_error(self, client):
        body = {"resource": "posts", "action": "create", "severity": "minor", "reason": "x"}
        await client.post(f"{BASE}/suspend", json=body)

        response = await client.post(f"{BASE}/suspend", json=body)

        assert response.status_code == 500
        assert response.json()["error"]["code"] == "violationError"


class TestRestore:
    @pytest.mark.asyncio
    async def test_restore_permission(self, client, org):
        await org.violations.suspend_permission(ORG, "posts", "create", "minor", "x")

        response = await client.post(f"{BASE}/restore", json={"resource": "posts", "action": "create"})

        assert response.status_code == 200
        assert response.json()["data"]["status"] == "restored"
        assert await org.service.authorize("member-1", ORG, "posts", "create")

    @pytest.mark.asyncio
    async def test_restore_requires_resource_and_action(self, client):
        response = await client.post(f"{BASE}/restore", json={"resource": "posts"})

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_restore_without_violation_is_server_error(self, client):
        response = await client.post(f"{BASE}/restore", json={"resource": "posts", "action": "create"})

        assert response.status_code == 500
        assert "no violations found" in response.json()["error"]["message"]


class TestLockdown:
    @pytest.mark.asyncio
    async def test_lockdown_denies_everything(self, client, org):
        response = await client.post(
            f"{BASE}/lockdown", json={"severity": "critical", "reason": "breach"}
        )

        assert response.status_code == 201
        data = response.json()["data"]
        assert (data["resource"], data["action"]) == ("organization", "lockdown")
        assert not await org.service.authorize("member-1", ORG, "posts", "read")

    @pytest.mark.asyncio
    async def test_lockdown_requires_severity_and_reason(self, client):
        response = await client.post(f"{BASE}/lockdown", json={"severity": "critical"})

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_lockdown_also_blocks_the_violation_routes(self, client, org):
        await org.violations.suspend_organization(ORG, "critical", "breach")

        response = await client.post(f"{BASE}/unlock")

        assert response.status_code == 403
        assert await org.violations.has_violations(ORG)

    @pytest.mark.asyncio
    async def test_unlock_without_lockdown_is_server_error(self, client):
        response = await client.post(f"{BASE}/unlock")

        assert response.status_code == 500
        assert response.json()["error"]["message"] == (
            "Failed to unlock organization: no violations found"
        )


class TestListAndAccess:
    @pytest.mark.asyncio
    async def test_list_violations(self, client, org):
        await org.violations.suspend_permission(ORG, "files", "delete", "minor", "x")

        response = await client.get(BASE)

        assert response.status_code == 200
        assert response.json()["data"] == [
            {"role": "*", "resource": "files", "action": "delete", "effect": "deny"}
        ]

    @pytest.mark.asyncio
    async def test_member_cannot_manage_violations(self, client, principal):
        principal["sub"] = "member-1"

        response = await client.post(
            f"{BASE}/lockdown", json={"severity": "critical", "reason": "breach"}
        )

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "forbidden"

    @pytest.mark.asyncio
    async def test_actor_recorded_in_audit(self, client, org):
        await client.post(
            f"{BASE}/suspend",
            json={"resource": "posts", "action": "create", "severity": "major", "reason": "spam"},
            headers={"User-Agent": "ops-console"},
        )

        latest = (await org.audit.query(ORG, page_size=1)).records[0]
        assert latest.actor_id == "admin-1"
        assert latest.actor_user_agent == "ops-console"
