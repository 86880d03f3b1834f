# tests/test_team_context.py
from __future__ import annotations

import asyncio
import uuid

import pytest

from crewdesk.auth.permissions import ALL_CAPABILITIES, Capability
from crewdesk.core.errors import Forbidden, MembershipInactive, NotFound
from crewdesk.core.roles import HierarchyRank
from crewdesk.core.team_context import resolve_user_context
from crewdesk.models.team_membership import INVITE_PENDING, INVITE_REVOKED


@pytest.mark.asyncio
async def test_identity_without_membership_is_tenant_root(team):
    ctx = await resolve_user_context(team.store, team.owner.id)

    assert ctx.is_owner is True
    assert ctx.effective_tenant_id == team.owner.id
    assert ctx.membership_id is None
    assert ctx.permissions == ALL_CAPABILITIES
    assert ctx.hierarchy_rank == HierarchyRank.OWNER


@pytest.mark.asyncio
async def test_member_acts_in_owner_tenant(team):
    ctx = await resolve_user_context(team.store, team.manager.id)

    assert ctx.is_owner is False
    assert ctx.effective_tenant_id == team.owner.id
    assert ctx.membership_id == team.manager_membership.id
    assert ctx.hierarchy_rank == HierarchyRank.MANAGER
    assert ctx.permissions == frozenset(
        {Capability.READ_JOBS, Capability.WRITE_JOBS, Capability.MANAGE_TEAM, Capability.VIEW_ALL}
    )


@pytest.mark.asyncio
async def test_tenant_isolation_across_owners(team):
    for member in (team.manager, team.worker, team.worker2):
        ctx = await resolve_user_context(team.store, member.id)
        assert ctx.effective_tenant_id == team.owner.id
        assert ctx.effective_tenant_id != team.other_owner.id

    other = await resolve_user_context(team.store, team.other_worker.id)
    assert other.effective_tenant_id == team.other_owner.id


@pytest.mark.asyncio
async def test_custom_permissions_replace_role_permissions(store):
    owner = store.add_user()
    role = store.add_custom_role(owner, "Crew", [Capability.READ_JOBS, Capability.WRITE_JOBS])
    member = store.add_user()
    store.add_membership(owner, member, role, custom_permissions=[Capability.READ_JOBS])

    ctx = await resolve_user_context(store, member.id)

    assert ctx.permissions == frozenset({Capability.READ_JOBS})
    assert Capability.WRITE_JOBS not in ctx.permissions


@pytest.mark.asyncio
async def test_empty_override_grants_nothing(store):
    owner = store.add_user()
    role = store.add_custom_role(owner, "Crew", [Capability.READ_JOBS])
    member = store.add_user()
    store.add_membership(owner, member, role, custom_permissions=[])

    ctx = await resolve_user_context(store, member.id)

    assert ctx.permissions == frozenset()


@pytest.mark.asyncio
async def test_disabled_override_falls_back_to_role(store):
    owner = store.add_user()
    role = store.add_custom_role(owner, "Crew", [Capability.READ_JOBS, Capability.WRITE_JOBS])
    member = store.add_user()
    m = store.add_membership(owner, member, role, custom_permissions=[Capability.READ_JOBS])
    await store.update_membership(m.id, {"use_custom_permissions": False})

    ctx = await resolve_user_context(store, member.id)

    assert ctx.permissions == frozenset({Capability.READ_JOBS, Capability.WRITE_JOBS})


@pytest.mark.asyncio
async def test_unknown_stored_capabilities_are_ignored(store):
    owner = store.add_user()
    role = store.add_custom_role(owner, "Crew", ["read_jobs", "launch_rockets"])
    member = store.add_user()
    store.add_membership(owner, member, role)

    ctx = await resolve_user_context(store, member.id)

    assert ctx.permissions == frozenset({Capability.READ_JOBS})


@pytest.mark.asyncio
async def test_pending_invite_is_inactive(store):
    owner = store.add_user()
    role = store.add_custom_role(owner, "Crew", [Capability.READ_JOBS])
    member = store.add_user()
    store.add_membership(owner, member, role, invite_status=INVITE_PENDING)

    with pytest.raises(MembershipInactive) as exc:
        await resolve_user_context(store, member.id)

    assert exc.value.invite_status == INVITE_PENDING
    assert exc.value.to_detail()["code"] == "membership_inactive"


@pytest.mark.asyncio
async def test_revoked_member_falls_back_to_own_tenant(team):
    await team.store.update_membership(
        team.worker_membership.id, {"invite_status": INVITE_REVOKED, "is_active": False}
    )

    ctx = await resolve_user_context(team.store, team.worker.id)

    assert ctx.is_owner is True
    assert ctx.effective_tenant_id == team.worker.id
    assert ctx.effective_tenant_id != team.owner.id
    assert ctx.membership_id is None


@pytest.mark.asyncio
async def test_owner_invited_elsewhere_stays_owner(team):
    stranger = team.store.add_user("stranger@evil.test")
    stranger_role = team.store.add_custom_role(stranger, "Crew", [Capability.READ_JOBS])
    invite = team.store.add_membership(stranger, None, stranger_role, invite_status=INVITE_PENDING)
    invite.email = team.owner.email

    ctx = await resolve_user_context(team.store, team.owner.id)
    assert ctx.is_owner is True
    assert ctx.effective_tenant_id == team.owner.id

    await team.store.update_membership(invite.id, {"invite_status": INVITE_REVOKED, "is_active": False})

    ctx = await resolve_user_context(team.store, team.owner.id)
    assert ctx.is_owner is True
    assert ctx.effective_tenant_id == team.owner.id


@pytest.mark.asyncio
async def test_deactivation_is_visible_on_next_call(team):
    ctx = await resolve_user_context(team.store, team.worker.id)
    assert ctx.effective_tenant_id == team.owner.id

    await team.store.update_membership(team.worker_membership.id, {"is_active": False})

    with pytest.raises(MembershipInactive) as exc:
        await resolve_user_context(team.store, team.worker.id)
    assert exc.value.is_active is False
    assert "reactivate" in exc.value.message


@pytest.mark.asyncio
async def test_role_change_is_visible_on_next_call(team):
    await team.store.update_membership(team.worker_membership.id, {"role_id": team.manager_role.id})

    ctx = await resolve_user_context(team.store, team.worker.id)

    assert ctx.hierarchy_rank == HierarchyRank.MANAGER
    assert Capability.MANAGE_TEAM in ctx.permissions


@pytest.mark.asyncio
async def test_accepted_membership_wins_over_stale_revoked_one(store):
    owner_a = store.add_user()
    owner_b = store.add_user()
    role_a = store.add_custom_role(owner_a, "Crew", [Capability.READ_JOBS])
    role_b = store.add_custom_role(owner_b, "Crew", [Capability.READ_QUOTES])
    member = store.add_user()
    store.add_membership(owner_a, member, role_a)
    store.add_membership(owner_b, member, role_b, invite_status=INVITE_REVOKED, is_active=False)

    ctx = await resolve_user_context(store, member.id)

    assert ctx.effective_tenant_id == owner_a.id


@pytest.mark.asyncio
async def test_role_from_another_tenant_fails_closed(team):
    await team.store.update_membership(team.worker_membership.id, {"role_id": team.other_worker_role.id})

    with pytest.raises(Forbidden):
        await resolve_user_context(team.store, team.worker.id)


@pytest.mark.asyncio
async def test_missing_role_fails_closed(team):
    await team.store.update_membership(team.worker_membership.id, {"role_id": uuid.uuid4()})

    with pytest.raises(Forbidden):
        await resolve_user_context(team.store, team.worker.id)


@pytest.mark.asyncio
async def test_owner_rank_on_member_role_is_downgraded(store):
    owner = store.add_user()
    role = store.add_custom_role(owner, "Co-owner", [Capability.READ_JOBS], HierarchyRank.OWNER)
    member = store.add_user()
    store.add_membership(owner, member, role)

    ctx = await resolve_user_context(store, member.id)

    assert ctx.hierarchy_rank == HierarchyRank.WORKER
    assert ctx.is_owner is False


@pytest.mark.asyncio
async def test_unknown_identity(store):
    with pytest.raises(NotFound):
        await resolve_user_context(store, uuid.uuid4())


@pytest.mark.asyncio
async def test_concurrent_resolutions_are_independent(team):
    members = [team.owner, team.manager, team.worker, team.other_worker] * 5

    contexts = await asyncio.gather(*(resolve_user_context(team.store, m.id) for m in members))

    for member, ctx in zip(members, contexts):
        assert ctx.acting_id == member.id
    assert {c.effective_tenant_id for c in contexts} == {team.owner.id, team.other_owner.id}


@pytest.mark.asyncio
async def test_context_as_dict(team):
    ctx = await resolve_user_context(team.store, team.worker.id)

    data = ctx.as_dict()

    assert data["effective_tenant_id"] == str(team.owner.id)
    assert data["hierarchy_rank"] == "WORKER"
    assert data["permissions"] == sorted(["read_jobs", "write_job_media", "write_job_notes"])
