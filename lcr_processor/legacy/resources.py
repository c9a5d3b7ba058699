"""
Resource persistence: the (challenge, role, user) assignment rows, their
typed attributes, cascading removal and the project user audit trail.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from . import constants as C
from .sequences import next_max_id, next_sequence_id
from .store import Row, Transaction

_RESOURCE_EXISTS = """
SELECT COUNT(*) AS num FROM resource
WHERE project_id = :challenge_id AND resource_role_id = :role_id AND user_id = :user_id
"""

_GET_RESOURCE = """
SELECT resource_id, resource_role_id, project_id, user_id FROM resource
WHERE project_id = :challenge_id AND resource_role_id = :role_id AND user_id = :user_id
"""

_GET_USER_RESOURCES = """
SELECT resource_id, resource_role_id, project_id, user_id FROM resource
WHERE project_id = :challenge_id AND user_id = :user_id
ORDER BY resource_id
"""

_GET_RESOURCE_ROLE = """
SELECT resource_role_id, name FROM resource_role_lu WHERE resource_role_id = :role_id
"""

_INSERT_RESOURCE = """
INSERT INTO resource
  (resource_id, resource_role_id, project_phase_id, project_id, user_id,
   create_user, create_date, modify_user, modify_date)
VALUES
  (:resource_id, :role_id, NULL, :challenge_id, :user_id,
   :operator, CURRENT_TIMESTAMP, :operator, CURRENT_TIMESTAMP)
"""

_INSERT_RESOURCE_INFO = """
INSERT INTO resource_info
  (resource_id, resource_info_type_id, value, create_user, create_date, modify_user, modify_date)
VALUES
  (:resource_id, :type_id, :value, :operator, CURRENT_TIMESTAMP, :operator, CURRENT_TIMESTAMP)
"""

_CASCADE_DELETE = (
    "DELETE FROM resource_info WHERE resource_id = :resource_id",
    "DELETE FROM resource_submission WHERE resource_id = :resource_id",
    "DELETE FROM submission WHERE upload_id IN (SELECT upload_id FROM upload WHERE resource_id = :resource_id)",
    "DELETE FROM upload WHERE resource_id = :resource_id",
    "DELETE FROM resource WHERE resource_id = :resource_id",
)

_INSERT_AUDIT = """
INSERT INTO project_user_audit
  (project_user_audit_id, project_id, resource_user_id, resource_role_id,
   audit_action_type_id, action_date, action_user_id)
VALUES
  (:audit_id, :challenge_id, :user_id, :role_id, :action_type, CURRENT_TIMESTAMP, :operator)
"""

_CHALLENGE_EXISTS = "SELECT COUNT(*) AS num FROM project WHERE project_id = :challenge_id"


async def challenge_exists(tx: Transaction, challenge_id: int) -> bool:
    return bool(await tx.scalar(_CHALLENGE_EXISTS, {"challenge_id": challenge_id}))


async def resource_exists(tx: Transaction, challenge_id: int, role_id: int, user_id: int) -> bool:
    num = await tx.scalar(
        _RESOURCE_EXISTS,
        {"challenge_id": challenge_id, "role_id": role_id, "user_id": user_id},
    )
    return bool(num)


async def get_resource(
    tx: Transaction, challenge_id: int, role_id: int, user_id: int
) -> Row | None:
    return await tx.query_one(
        _GET_RESOURCE,
        {"challenge_id": challenge_id, "role_id": role_id, "user_id": user_id},
    )


async def get_user_resources(tx: Transaction, challenge_id: int, user_id: int) -> list[Row]:
    return await tx.query(_GET_USER_RESOURCES, {"challenge_id": challenge_id, "user_id": user_id})


async def get_resource_role(tx: Transaction, role_id: int) -> Row | None:
    return await tx.query_one(_GET_RESOURCE_ROLE, {"role_id": role_id})


async def insert_resource(
    tx: Transaction, challenge_id: int, role_id: int, user_id: int, operator: int | str
) -> int:
    """Allocate a resource id and insert the resource row. Returns the new id."""
    resource_id = await next_sequence_id(tx, C.RESOURCE_ID_SEQ)
    await tx.execute(
        _INSERT_RESOURCE,
        {
            "resource_id": resource_id,
            "role_id": role_id,
            "challenge_id": challenge_id,
            "user_id": user_id,
            "operator": str(operator),
        },
    )
    return resource_id


async def insert_resource_info(
    tx: Transaction, resource_id: int, type_id: int, value: Any, operator: int | str
) -> None:
    if type_id == C.RESOURCE_INFO_REGISTRATION_DATE and value is None:
        value = registration_timestamp()
    await tx.execute(
        _INSERT_RESOURCE_INFO,
        {
            "resource_id": resource_id,
            "type_id": type_id,
            "value": str(value),
            "operator": str(operator),
        },
    )


def registration_timestamp() -> str:
    # Legacy readers parse this column with the "MM.dd.yyyy hh:mm a" pattern.
    return datetime.now(timezone.utc).strftime("%m.%d.%Y %I:%M %p")


async def delete_resource_cascade(tx: Transaction, resource_id: int) -> None:
    for sql in _CASCADE_DELETE:
        await tx.execute(sql, {"resource_id": resource_id})


async def audit_project_user(
    tx: Transaction,
    challenge_id: int,
    user_id: int,
    role_id: int,
    action_type: int,
    operator: int | str,
) -> int:
    audit_id = await next_max_id(tx, "project_user_audit", "project_user_audit_id")
    await tx.execute(
        _INSERT_AUDIT,
        {
            "audit_id": audit_id,
            "challenge_id": challenge_id,
            "user_id": user_id,
            "role_id": role_id,
            "action_type": action_type,
            "operator": str(operator),
        },
    )
    return audit_id
