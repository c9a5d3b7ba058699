"""
Timeline notification policy and toggling.
"""

from __future__ import annotations

import structlog

from ..catalog import ResolvedRole, RoleCatalog
from ..challenge_api import ChallengeApiClient
from ..errors import UpstreamError
from ..legacy import notifications as notification_dao
from ..legacy.store import Transaction
from ..schemas import Challenge

log = structlog.get_logger()


class NotificationService:
    def __init__(self, api: ChallengeApiClient, catalog: RoleCatalog):
        self._api = api
        self._catalog = catalog

    async def should_enable(self, challenge: Challenge, role: ResolvedRole, user_id: int) -> bool:
        """
        Exempt roles never get a subscription. Managers are checked against
        their membership on the owning project; a project lookup failure falls
        back to subscribing.
        """
        if self._catalog.notifications_exempt(role):
            return False
        if not self._catalog.is_manager(role) or challenge.projectId is None:
            return True
        try:
            project = await self._api.get_project(challenge.projectId)
        except UpstreamError as exc:
            log.warning(
                "notifications.project_lookup_failed",
                project_id=challenge.projectId,
                user_id=user_id,
                error=str(exc),
            )
            return True
        project_role = project.member_role(user_id)
        if self._catalog.project_role_exempt(project_role):
            log.debug(
                "notifications.skipped_project_role",
                project_id=challenge.projectId,
                user_id=user_id,
                project_role=project_role,
            )
            return False
        return True

    async def enable(
        self, tx: Transaction, legacy_id: int, user_id: int, operator: int | str
    ) -> bool:
        created = await notification_dao.enable_timeline_notification(
            tx, legacy_id, user_id, operator
        )
        if created:
            log.info("notifications.enabled", legacy_id=legacy_id, user_id=user_id)
        return created

    async def disable(self, tx: Transaction, legacy_id: int, user_id: int) -> bool:
        removed = await notification_dao.disable_timeline_notification(tx, legacy_id, user_id)
        if removed:
            log.info("notifications.disabled", legacy_id=legacy_id, user_id=user_id)
        return bool(removed)
