"""Tests for the upstream API client and token provider."""

import httpx
import pytest

from lcr_processor.challenge_api import ChallengeApiClient
from lcr_processor.errors import NotFoundError, UpstreamError

from .helpers import REVIEWER_ROLE

CHALLENGE_ID = "b1b2c3d4-0000-4000-8000-000000000002"


@pytest.fixture
async def api(config, transport):
    client = ChallengeApiClient(config.challenge_api, config.auth, transport=transport)
    await client.open()
    yield client
    await client.close()


async def test_get_challenge(api, upstream):
    upstream.add_challenge(
        CHALLENGE_ID,
        30054600,
        project_id=17,
        prize_sets=[{"type": "reviewer", "prizes": [{"value": 25}]}],
    )
    challenge = await api.get_challenge(CHALLENGE_ID)
    assert challenge.legacyId == 30054600
    assert challenge.projectId == 17
    assert challenge.prizeSets[0].prizes[0].value == 25


async def test_token_is_cached(api, upstream):
    upstream.add_challenge(CHALLENGE_ID, 1)
    await api.get_challenge(CHALLENGE_ID)
    await api.get_challenge(CHALLENGE_ID)
    await api.get_resource_role(REVIEWER_ROLE)
    assert upstream.token_requests == 1


async def test_missing_challenge_raises_not_found(api):
    with pytest.raises(NotFoundError) as exc:
        await api.get_challenge(CHALLENGE_ID)
    assert exc.value.status_code == 404


async def test_server_error_raises_upstream_error(api, upstream):
    upstream.add_challenge(CHALLENGE_ID, 1)
    upstream.failing_challenges.add(CHALLENGE_ID)
    with pytest.raises(UpstreamError) as exc:
        await api.get_challenge(CHALLENGE_ID)
    assert exc.value.status_code == 503
    assert not isinstance(exc.value, NotFoundError)


async def test_resource_role_lookup(api):
    role = await api.get_resource_role(REVIEWER_ROLE)
    assert role.id == REVIEWER_ROLE
    assert role.legacyId == 4
    assert role.name == "Reviewer"

    with pytest.raises(NotFoundError):
        await api.get_resource_role("00000000-0000-4000-8000-000000000000")


async def test_project_members(api, upstream):
    upstream.add_project(17, [{"userId": 5, "role": "manager"}, {"userId": 6, "role": "copilot"}])
    project = await api.get_project(17)
    assert project.member_role(5) == "manager"
    assert project.member_role(6) == "copilot"
    assert project.member_role(7) is None


async def test_unreachable_upstream(config):
    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = ChallengeApiClient(config.challenge_api, config.auth, transport=httpx.MockTransport(refuse))
    await client.open()
    try:
        with pytest.raises(UpstreamError):
            await client.get_challenge(CHALLENGE_ID)
        assert not await client.check_health()
    finally:
        await client.close()


async def test_check_health(api):
    assert await api.check_health()
