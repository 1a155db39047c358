"""
Tests for role checks, role assignment, trials and the activity log
"""
from datetime import datetime, timedelta

import pytest

from config.settings import (
    PERMISSION_CANCEL,
    PERMISSION_GET_INVOICE,
    PERMISSION_START_TRIAL,
    PERMISSION_SUBSCRIBE,
)
from crud.user import UserRepository
from services.activity_service import ActivityService
from services.role_service import RoleService, can, has_role
from services.trial_service import TrialService


async def _user(test_db, roles):
    return await UserRepository(test_db).create_user({
        "email": "roles@example.com",
        "hashed_password": "not-a-real-hash",
        "roles": roles,
    })


@pytest.mark.asyncio
@pytest.mark.parametrize("roles, permission, allowed", [
    (["user"], PERMISSION_SUBSCRIBE, True),
    (["user"], PERMISSION_START_TRIAL, True),
    (["user"], PERMISSION_CANCEL, False),
    (["trial"], PERMISSION_START_TRIAL, False),
    (["trial"], PERMISSION_GET_INVOICE, True),
    (["premium"], PERMISSION_CANCEL, True),
    (["premium"], PERMISSION_START_TRIAL, False),
    (["admin"], PERMISSION_START_TRIAL, True),
    ([], PERMISSION_SUBSCRIBE, False),
])
async def test_can(test_db, roles, permission, allowed):
    user = await _user(test_db, roles)

    assert can(user, permission) is allowed


@pytest.mark.asyncio
async def test_assign_billing_role_replaces_roles(test_db):
    user_repo = UserRepository(test_db)
    user = await _user(test_db, ["user", "trial"])

    await RoleService(user_repo).assign_billing_role(user, "premium")

    assert user.role_names == ["premium"]
    assert not has_role(user, "user")


@pytest.mark.asyncio
async def test_assign_billing_role_keeps_admin(test_db):
    user_repo = UserRepository(test_db)
    user = await _user(test_db, ["admin"])

    await RoleService(user_repo).assign_billing_role(user, "premium")

    assert user.role_names == ["admin", "premium"]


@pytest.mark.asyncio
async def test_trial_service(test_db):
    user_repo = UserRepository(test_db)
    user = await _user(test_db, ["user"])
    trials = TrialService(test_db, user_repo)

    assert not trials.has_used_trial(user)

    trial_ends_at = await trials.start_trial(user, days=14)

    assert user.trial_ends_at == trial_ends_at
    assert trials.is_trial_active(user)
    assert trials.has_used_trial(user)

    await user_repo.update_user(user, {"trial_ends_at": datetime.utcnow() - timedelta(minutes=1)})

    assert not trials.is_trial_active(user)
    assert trials.has_used_trial(user)


@pytest.mark.asyncio
async def test_activity_log_for_causer(test_db):
    user = await _user(test_db, ["user"])
    activity = ActivityService(test_db)

    await activity.log(user, "subscribed to plan", {"plan": "basic"})
    await activity.log(user, "cancelled subscription")
    await activity.log(None, "subscription ended")

    entries = await activity.for_causer(user)

    assert [entry.description for entry in entries] == ["cancelled subscription", "subscribed to plan"]
    assert entries[1].properties == {"plan": "basic"}
