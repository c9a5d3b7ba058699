"""
Submitter unregistration workflow: validation, removal of the submitter
resource and its registration rows, forum revocation and the outbound
USER_UNREGISTRATION event.
"""

from __future__ import annotations

import structlog

from ..catalog import RoleCatalog
from ..errors import UnregistrationError
from ..forum import ForumGateway, moderators_role, users_role
from ..journal import WorkflowJournal
from ..legacy import constants as C
from ..legacy import resources as resource_dao
from ..legacy import unregistration as unreg_dao
from ..legacy.store import LegacyStore
from ..metrics import MetricsCollector
from ..publisher import EventPublisher
from ..schemas import UnregistrationNotice
from .registration import WORKFLOW as REGISTRATION_WORKFLOW

log = structlog.get_logger()


class UnregistrationWorkflow:
    def __init__(
        self,
        store: LegacyStore,
        journal: WorkflowJournal,
        forum: ForumGateway,
        publisher: EventPublisher,
        catalog: RoleCatalog,
        topic: str,
        metrics: MetricsCollector | None = None,
    ):
        self._store = store
        self._journal = journal
        self._forum = forum
        self._publisher = publisher
        self._catalog = catalog
        self._topic = topic
        self._metrics = metrics

    async def unregister(self, user_id: int, challenge_id: int) -> None:
        submitter = self._catalog.submitter_legacy_id

        async with self._store.transaction() as tx:
            facts = await unreg_dao.validation_facts(tx, user_id, challenge_id, submitter)
            if facts is None:
                raise UnregistrationError("No such challenge exists.")
            if not facts.registration_open:
                raise UnregistrationError(
                    "You cannot unregister since registration phase is not open."
                )
            if not facts.user_registered:
                raise UnregistrationError("You are not registered for this challenge.")

            if not facts.is_studio:
                await unreg_dao.delete_challenge_result(tx, challenge_id, user_id)
                await unreg_dao.delete_component_inquiry(tx, challenge_id, user_id)

            resources = await resource_dao.get_user_resources(tx, challenge_id, user_id)
            if not resources:
                raise UnregistrationError(
                    f"Could not find user {user_id} from challenge {challenge_id}."
                )
            target = next(
                (r for r in resources if r["resource_role_id"] == submitter), None
            )
            if target is None:
                raise UnregistrationError(
                    f"Submitter resource not found for user {user_id} on challenge {challenge_id}."
                )
            await resource_dao.delete_resource_cascade(tx, target["resource_id"])
            await resource_dao.audit_project_user(
                tx, challenge_id, user_id, submitter, C.PROJECT_USER_AUDIT_DELETE_TYPE, user_id
            )

        await self._journal.clear(REGISTRATION_WORKFLOW, challenge_id, user_id)
        log.info(
            "unregistration.resource_removed",
            challenge_id=challenge_id,
            user_id=user_id,
            resource_id=target["resource_id"],
        )

        # Forum access is only revoked when the submitter role was the user's last role.
        if not facts.is_studio and len(resources) == 1:
            await self._revoke_forum_access(user_id, challenge_id)

        notice = UnregistrationNotice(detail={"challengeId": challenge_id, "userId": user_id})
        await self._publisher.publish(self._topic, notice.model_dump())
        if self._metrics:
            self._metrics.inc("unregistrations_total")
        log.info("unregistration.completed", challenge_id=challenge_id, user_id=user_id)

    async def _revoke_forum_access(self, user_id: int, challenge_id: int) -> None:
        try:
            async with self._store.transaction() as tx:
                category_id = await unreg_dao.get_forum_category(tx, challenge_id)
        except Exception as exc:
            self._side_effect_failed("forum_category", challenge_id, user_id, exc)
            return
        if category_id <= 0:
            log.debug("unregistration.no_forum_category", challenge_id=challenge_id)
            return

        steps = (
            ("remove_users_role", self._forum.remove_role, (user_id, users_role(category_id))),
            (
                "remove_moderators_role",
                self._forum.remove_role,
                (user_id, moderators_role(category_id)),
            ),
            ("remove_user_permission", self._forum.remove_user_permission, (user_id, category_id)),
            ("delete_category_watch", self._forum.delete_category_watch, (user_id, category_id)),
        )
        for name, call, args in steps:
            try:
                await call(*args)
            except Exception as exc:
                self._side_effect_failed(name, challenge_id, user_id, exc)

    def _side_effect_failed(
        self, step: str, challenge_id: int, user_id: int, exc: Exception
    ) -> None:
        log.warning(
            "unregistration.side_effect_failed",
            step=step,
            challenge_id=challenge_id,
            user_id=user_id,
            error=str(exc),
        )
        if self._metrics:
            self._metrics.inc("side_effect_failures_total", step=step)
