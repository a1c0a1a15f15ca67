import pytest

from orgguard.authz.store import PolicyStore
from orgguard.domain.models import Deny, Grant, RoleAssignment, ViolationSeverity


@pytest.fixture
def store(session):
    return PolicyStore(session)


class TestGrants:
    @pytest.mark.asyncio
    async def test_add_grant_is_idempotent(self, store):
        grant = Grant("admin", "org1", "posts", "delete")

        assert await store.add_grant(grant)
        assert not await store.add_grant(grant)
        assert await store.list_grants("org1") == [grant]

    @pytest.mark.asyncio
    async def test_remove_grant(self, store):
        grant = Grant("admin", "org1", "posts", "delete")
        await store.add_grant(grant)

        assert await store.remove_grant(grant)
        assert not await store.remove_grant(grant)
        assert await store.list_grants("org1") == []

    @pytest.mark.asyncio
    async def test_grants_for_roles_includes_wildcards(self, store):
        await store.add_grant(Grant("owner", "org1", "*", "*"))
        await store.add_grant(Grant("member", "org1", "posts", "read"))
        await store.add_grant(Grant("member", "org1", "files", "read"))
        await store.add_grant(Grant("member", "org2", "posts", "read"))

        owner = await store.grants_for_roles("org1", ["owner"], "billing", "manage")
        member = await store.grants_for_roles("org1", ["member"], "posts", "read")

        assert owner == [Grant("owner", "org1", "*", "*")]
        assert member == [Grant("member", "org1", "posts", "read")]
        assert await store.grants_for_roles("org1", [], "posts", "read") == []

    @pytest.mark.asyncio
    async def test_list_grants_by_role(self, store):
        await store.add_grant(Grant("admin", "org1", "posts", "read"))
        await store.add_grant(Grant("viewer", "org1", "posts", "read"))

        assert await store.list_grants("org1", role="viewer") == [
            Grant("viewer", "org1", "posts", "read")
        ]


class TestDenies:
    @pytest.mark.asyncio
    async def test_add_deny_rejects_duplicates(self, store):
        deny = Deny("org1", "posts", "delete", ViolationSeverity.major, "abuse")

        assert await store.add_deny(deny)
        assert not await store.add_deny(Deny("org1", "posts", "delete"))

    @pytest.mark.asyncio
    async def test_remove_deny_returns_removed_rule(self, store):
        await store.add_deny(Deny("org1", "posts", "delete", ViolationSeverity.minor, "spam"))

        removed = await store.remove_deny("org1", "posts", "delete")

        assert removed is not None
        assert removed.severity is ViolationSeverity.minor
        assert removed.reason == "spam"
        assert await store.remove_deny("org1", "posts", "delete") is None

    @pytest.mark.asyncio
    async def test_find_blocking_deny_exact_pair(self, store):
        await store.add_deny(Deny("org1", "posts", "delete"))

        assert await store.find_blocking_deny("org1", "posts", "delete") is not None
        assert await store.find_blocking_deny("org1", "posts", "read") is None
        assert await store.find_blocking_deny("org2", "posts", "delete") is None

    @pytest.mark.asyncio
    async def test_find_blocking_deny_resource_wide(self, store):
        await store.add_deny(Deny("org1", "files", "*"))

        assert await store.find_blocking_deny("org1", "files", "read") is not None
        assert await store.find_blocking_deny("org1", "posts", "read") is None

    @pytest.mark.asyncio
    async def test_lockdown_blocks_everything_in_its_org(self, store):
        await store.add_deny(Deny.lockdown("org1"))

        blocking = await store.find_blocking_deny("org1", "billing", "read")

        assert blocking is not None
        assert blocking.is_lockdown
        assert await store.find_blocking_deny("org2", "billing", "read") is None


class TestRoleAssignments:
    @pytest.mark.asyncio
    async def test_remove_role_assignments_returns_previous(self, store):
        await store.add_role_assignment(RoleAssignment("alice", "admin", "org1"))
        await store.add_role_assignment(RoleAssignment("alice", "viewer", "org2"))

        removed = await store.remove_role_assignments("alice", "org1")

        assert removed == [RoleAssignment("alice", "admin", "org1")]
        assert await store.get_roles("alice", "org1") == []
        assert await store.get_roles("alice", "org2") == ["viewer"]

    @pytest.mark.asyncio
    async def test_clear_role_assignments_is_org_scoped(self, store):
        await store.add_role_assignment(RoleAssignment("alice", "admin", "org1"))
        await store.add_role_assignment(RoleAssignment("bob", "member", "org1"))
        await store.add_role_assignment(RoleAssignment("bob", "member", "org2"))

        removed = await store.clear_role_assignments("org1")

        assert {a.user_id for a in removed} == {"alice", "bob"}
        assert await store.list_role_assignments("org1") == []
        assert await store.list_role_assignments("org2") == [RoleAssignment("bob", "member", "org2")]
