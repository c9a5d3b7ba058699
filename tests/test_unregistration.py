"""Tests for the submitter unregistration workflow."""

import pytest

from lcr_processor.errors import UnregistrationError
from lcr_processor.services import registration as reg

from .helpers import UNREGISTRATION_TOPIC

LEGACY_ID = 30054400
USER_ID = 31
FORUM_ID = 9100


@pytest.fixture
async def registered(processor, legacy):
    await legacy.add_user(USER_ID, "carol")
    await legacy.add_challenge(LEGACY_ID, developer_forum_id=FORUM_ID)
    await processor.registration.register(USER_ID, LEGACY_ID)
    return legacy


async def test_unregister_removes_registration(processor, registered, bus, forum):
    await processor.unregistration.unregister(USER_ID, LEGACY_ID)

    assert await registered.count("resource") == 0
    assert await registered.count("resource_info") == 0
    assert await registered.count("project_result") == 0
    assert await registered.count("component_inquiry") == 0
    audits = await registered.rows(
        "SELECT resource_role_id, audit_action_type_id FROM project_user_audit ORDER BY project_user_audit_id"
    )
    assert [(a["resource_role_id"], a["audit_action_type_id"]) for a in audits] == [(1, 1), (1, 2)]

    notices = bus.published_on(UNREGISTRATION_TOPIC)
    assert len(notices) == 1
    assert notices[0]["topic"] == UNREGISTRATION_TOPIC
    assert notices[0]["payload"] == {
        "type": "USER_UNREGISTRATION",
        "detail": {"challengeId": LEGACY_ID, "userId": USER_ID},
    }

    assert forum.calls == [
        ("remove_role", USER_ID, f"Software_Users_{FORUM_ID}"),
        ("remove_role", USER_ID, f"Software_Moderators_{FORUM_ID}"),
        ("remove_user_permission", USER_ID, FORUM_ID),
        ("delete_category_watch", USER_ID, FORUM_ID),
    ]
    assert processor.metrics.get("unregistrations_total") == 1


async def test_forum_kept_while_other_roles_remain(processor, registered, forum):
    await registered.add_resource(700, LEGACY_ID, 4, USER_ID)

    await processor.unregistration.unregister(USER_ID, LEGACY_ID)

    rows = await registered.rows("SELECT resource_role_id FROM resource")
    assert rows == [{"resource_role_id": 4}]
    assert forum.calls == []


async def test_forum_failure_does_not_block(processor, registered, bus, forum):
    forum.fail_on.add("remove_user_permission")

    await processor.unregistration.unregister(USER_ID, LEGACY_ID)

    assert await registered.count("resource") == 0
    assert ("delete_category_watch", USER_ID, FORUM_ID) in forum.calls
    assert len(bus.published_on(UNREGISTRATION_TOPIC)) == 1
    assert processor.metrics.get("side_effect_failures_total", step="remove_user_permission") == 1


async def test_unregister_clears_registration_journal(processor, registered):
    await processor.journal.mark_done(reg.WORKFLOW, LEGACY_ID, USER_ID, reg.STEP_NOTIFICATION)

    await processor.unregistration.unregister(USER_ID, LEGACY_ID)

    assert await processor.journal.completed_steps(reg.WORKFLOW, LEGACY_ID, USER_ID) == []


async def test_unregister_twice(processor, registered, bus):
    await processor.unregistration.unregister(USER_ID, LEGACY_ID)
    with pytest.raises(UnregistrationError, match="You are not registered for this challenge."):
        await processor.unregistration.unregister(USER_ID, LEGACY_ID)
    assert len(bus.published_on(UNREGISTRATION_TOPIC)) == 1


async def test_unknown_challenge(processor, legacy, bus):
    with pytest.raises(UnregistrationError, match="No such challenge exists."):
        await processor.unregistration.unregister(USER_ID, LEGACY_ID)
    assert bus.published_on(UNREGISTRATION_TOPIC) == []


async def test_registration_closed(processor, legacy):
    await legacy.add_challenge(LEGACY_ID, reg_open=False)
    await legacy.add_resource(800, LEGACY_ID, 1, USER_ID)
    with pytest.raises(UnregistrationError, match="registration phase is not open"):
        await processor.unregistration.unregister(USER_ID, LEGACY_ID)
    assert await legacy.count("resource") == 1


async def test_studio_unregistration_skips_forum(processor, legacy, forum, bus):
    await legacy.add_user(USER_ID, "carol")
    await legacy.add_challenge(LEGACY_ID, category=1, studio=True, developer_forum_id=FORUM_ID)
    await processor.registration.register(USER_ID, LEGACY_ID)

    await processor.unregistration.unregister(USER_ID, LEGACY_ID)

    assert await legacy.count("resource") == 0
    assert forum.calls == []
    assert len(bus.published_on(UNREGISTRATION_TOPIC)) == 1
