"""
Integration tests: bus → dispatcher → legacy store round trips with the
consume loop running.
"""

import pytest

from lcr_processor.config import ProcessorConfig
from lcr_processor.processor import LegacyProcessor

from .helpers import (
    CREATE_TOPIC,
    DELETE_TOPIC,
    REVIEWER_ROLE,
    SUBMITTER_ROLE,
    UNREGISTRATION_TOPIC,
    envelope,
    resource_payload,
    wait_until,
)

CHALLENGE_ID = "c1b2c3d4-0000-4000-8000-000000000003"
LEGACY_ID = 30054700
USER_ID = 51


def _processor(config_dict, bus, forum, transport, **retry) -> LegacyProcessor:
    if retry:
        config_dict["retry"] = {**config_dict["retry"], **retry}
    return LegacyProcessor(
        ProcessorConfig.model_validate(config_dict), bus=bus, forum=forum, transport=transport
    )


@pytest.fixture
async def seeded(upstream, legacy):
    upstream.add_challenge(CHALLENGE_ID, LEGACY_ID)
    await legacy.add_challenge(LEGACY_ID)
    await legacy.add_user(USER_ID, "erin")
    return legacy


async def test_submitter_round_trip(config_dict, bus, forum, transport, seeded):
    processor = _processor(config_dict, bus, forum, transport)
    await processor.start()

    try:
        payload = resource_payload(CHALLENGE_ID, SUBMITTER_ROLE, USER_ID, "erin")
        bus.deliver(CREATE_TOPIC, envelope(CREATE_TOPIC, payload))

        assert await wait_until(lambda: seeded.count("resource", user_id=USER_ID))
        assert await wait_until(lambda: len(bus.committed) == 1)
        assert await seeded.count("resource", resource_role_id=1) == 1
        assert await seeded.count("notification", external_ref_id=USER_ID) == 1
        assert await seeded.count("project_user_audit", audit_action_type_id=1) == 1

        bus.deliver(DELETE_TOPIC, envelope(DELETE_TOPIC, payload))

        assert await wait_until(lambda: bus.published_on(UNREGISTRATION_TOPIC))
        assert await seeded.count("resource") == 0
        assert await seeded.count("project_user_audit", audit_action_type_id=2) == 1
        assert len(bus.published_on(UNREGISTRATION_TOPIC)) == 1
    finally:
        await processor.stop()


async def test_duplicate_delivery_creates_one_resource(config_dict, bus, forum, transport, seeded):
    processor = _processor(config_dict, bus, forum, transport)
    await processor.start()

    try:
        body = envelope(CREATE_TOPIC, resource_payload(CHALLENGE_ID, REVIEWER_ROLE, USER_ID))
        bus.deliver(CREATE_TOPIC, body)
        bus.deliver(CREATE_TOPIC, body)

        assert await wait_until(lambda: len(bus.committed) == 2)
        assert await seeded.count("resource") == 1
        assert await seeded.count("project_user_audit") == 1
    finally:
        await processor.stop()


async def test_waits_for_challenge_to_become_ready(config_dict, bus, forum, transport, upstream, legacy):
    upstream.add_challenge(CHALLENGE_ID, None)
    await legacy.add_user(USER_ID, "erin")
    processor = _processor(config_dict, bus, forum, transport, max_attempts=0)
    await processor.start()

    try:
        bus.deliver(
            CREATE_TOPIC,
            envelope(CREATE_TOPIC, resource_payload(CHALLENGE_ID, REVIEWER_ROLE, USER_ID)),
        )
        assert await wait_until(lambda: processor.metrics.total("messages_requeued_total") >= 2)
        assert await legacy.count("resource") == 0

        upstream.challenges[CHALLENGE_ID]["legacyId"] = LEGACY_ID
        assert await wait_until(lambda: processor.metrics.total("messages_requeued_total") >= 3)
        await legacy.add_challenge(LEGACY_ID)

        assert await wait_until(lambda: legacy.count("resource", resource_role_id=4))
        assert processor.metrics.get("messages_processed_total", topic=CREATE_TOPIC) == 1
        assert all(m["attempt"] >= 1 for m in bus.published_on(CREATE_TOPIC))
    finally:
        await processor.stop()


async def test_stop_flushes_waiting_retries(config_dict, bus, forum, transport, upstream):
    upstream.add_challenge(CHALLENGE_ID, None)
    processor = _processor(config_dict, bus, forum, transport, delay_seconds=60, max_delay_seconds=60)
    await processor.start()

    try:
        bus.deliver(
            CREATE_TOPIC,
            envelope(CREATE_TOPIC, resource_payload(CHALLENGE_ID, REVIEWER_ROLE, USER_ID)),
        )
        assert await wait_until(lambda: processor.dispatcher.pending_requeues == 1)
        assert bus.published_on(CREATE_TOPIC) == []
    finally:
        await processor.stop()

    republished = bus.published_on(CREATE_TOPIC)
    assert len(republished) == 1
    assert republished[0]["attempt"] == 1
    assert processor.dispatcher.pending_requeues == 0
