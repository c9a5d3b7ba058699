"""
Reads and writes used by the submitter unregistration workflow.
"""

from __future__ import annotations

from dataclasses import dataclass

from . import constants as C
from .store import Transaction

_GET_CHALLENGE = """
SELECT project_id,
  CASE WHEN project_studio_spec_id IS NULL THEN 0 ELSE 1 END AS is_studio
FROM project WHERE project_id = :challenge_id
"""

_REGISTRATION_OPEN = """
SELECT COUNT(*) AS num FROM project_phase
WHERE project_id = :challenge_id AND phase_type_id = :phase_type AND phase_status_id = :status
"""

_USER_REGISTERED = """
SELECT COUNT(*) AS num FROM resource
WHERE project_id = :challenge_id AND resource_role_id = :role_id AND user_id = :user_id
"""

_DELETE_CHALLENGE_RESULT = """
DELETE FROM project_result WHERE project_id = :challenge_id AND user_id = :user_id
"""

_DELETE_COMPONENT_INQUIRY = """
DELETE FROM component_inquiry WHERE project_id = :challenge_id AND user_id = :user_id
"""

_GET_FORUM_CATEGORY = """
SELECT pi.value AS value
FROM project_info pi
JOIN project_info_type_lu t ON t.project_info_type_id = pi.project_info_type_id
WHERE pi.project_id = :challenge_id AND t.name = :info_name
"""


@dataclass
class UnregistrationFacts:
    is_studio: bool
    registration_open: bool
    user_registered: bool


async def validation_facts(
    tx: Transaction, user_id: int, challenge_id: int, submitter_role_id: int
) -> UnregistrationFacts | None:
    """None when the challenge does not exist."""
    challenge = await tx.query_one(_GET_CHALLENGE, {"challenge_id": challenge_id})
    if challenge is None:
        return None
    reg_open = await tx.scalar(
        _REGISTRATION_OPEN,
        {
            "challenge_id": challenge_id,
            "phase_type": C.REGISTRATION_PHASE_TYPE_ID,
            "status": C.OPEN_PHASE_STATUS_ID,
        },
    )
    registered = await tx.scalar(
        _USER_REGISTERED,
        {"challenge_id": challenge_id, "role_id": submitter_role_id, "user_id": user_id},
    )
    return UnregistrationFacts(
        is_studio=bool(challenge["is_studio"]),
        registration_open=bool(reg_open),
        user_registered=bool(registered),
    )


async def delete_challenge_result(tx: Transaction, challenge_id: int, user_id: int) -> int:
    return await tx.execute(
        _DELETE_CHALLENGE_RESULT, {"challenge_id": challenge_id, "user_id": user_id}
    )


async def delete_component_inquiry(tx: Transaction, challenge_id: int, user_id: int) -> int:
    return await tx.execute(
        _DELETE_COMPONENT_INQUIRY, {"challenge_id": challenge_id, "user_id": user_id}
    )


async def get_forum_category(tx: Transaction, challenge_id: int) -> int:
    """Forum category of the challenge, 0 when none is recorded or it is not numeric."""
    row = await tx.query_one(
        _GET_FORUM_CATEGORY,
        {"challenge_id": challenge_id, "info_name": C.DEVELOPER_FORUM_INFO_NAME},
    )
    if not row or row["value"] is None:
        return 0
    try:
        return int(row["value"])
    except (TypeError, ValueError):
        return 0
