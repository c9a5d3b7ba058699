"""
Forum permission gateway.

There is no forum backend to call; the gateway records every requested
change in the log so operators can replay it by hand. Subclass and override
the methods to target a real forum service.
"""

from __future__ import annotations

import structlog

log = structlog.get_logger()

USERS_ROLE = "Software_Users_{category}"
MODERATORS_ROLE = "Software_Moderators_{category}"


def users_role(category_id: int) -> str:
    return USERS_ROLE.format(category=category_id)


def moderators_role(category_id: int) -> str:
    return MODERATORS_ROLE.format(category=category_id)


class ForumGateway:
    async def assign_role(self, user_id: int, role_name: str) -> None:
        log.info("forum.assign_role", user_id=user_id, role=role_name)

    async def remove_role(self, user_id: int, role_name: str) -> None:
        log.info("forum.remove_role", user_id=user_id, role=role_name)

    async def remove_user_permission(self, user_id: int, category_id: int) -> None:
        log.info("forum.remove_user_permission", user_id=user_id, category_id=category_id)

    async def create_category_watch(self, user_id: int, category_id: int) -> None:
        log.info("forum.create_category_watch", user_id=user_id, category_id=category_id)

    async def delete_category_watch(self, user_id: int, category_id: int) -> None:
        log.info("forum.delete_category_watch", user_id=user_id, category_id=category_id)
