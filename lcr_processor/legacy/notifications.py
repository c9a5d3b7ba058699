"""Timeline notification subscriptions (`notification`)."""

from __future__ import annotations

from . import constants as C
from .store import Transaction

_COUNT = """
SELECT COUNT(*) AS num FROM notification
WHERE project_id = :challenge_id AND external_ref_id = :user_id AND notification_type_id = :type_id
"""

_INSERT = """
INSERT INTO notification
  (project_id, external_ref_id, notification_type_id, create_user, create_date, modify_user, modify_date)
VALUES
  (:challenge_id, :user_id, :type_id, :operator, CURRENT_TIMESTAMP, :operator, CURRENT_TIMESTAMP)
"""

_DELETE = """
DELETE FROM notification
WHERE project_id = :challenge_id AND external_ref_id = :user_id AND notification_type_id = :type_id
"""


async def has_timeline_notification(tx: Transaction, challenge_id: int, user_id: int) -> bool:
    num = await tx.scalar(
        _COUNT,
        {"challenge_id": challenge_id, "user_id": user_id, "type_id": C.TIMELINE_NOTIFICATION_ID},
    )
    return bool(num)


async def enable_timeline_notification(
    tx: Transaction, challenge_id: int, user_id: int, operator: int | str
) -> bool:
    """Create the subscription when absent. Returns True if a row was inserted."""
    if await has_timeline_notification(tx, challenge_id, user_id):
        return False
    await tx.execute(
        _INSERT,
        {
            "challenge_id": challenge_id,
            "user_id": user_id,
            "type_id": C.TIMELINE_NOTIFICATION_ID,
            "operator": str(operator),
        },
    )
    return True


async def disable_timeline_notification(tx: Transaction, challenge_id: int, user_id: int) -> int:
    return await tx.execute(
        _DELETE,
        {"challenge_id": challenge_id, "user_id": user_id, "type_id": C.TIMELINE_NOTIFICATION_ID},
    )
