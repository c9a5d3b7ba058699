"""
Resource role orchestrator.

Assigns or removes a (challenge, role, user) resource in the legacy store.
Submitter assignments go through the registration workflows; every other
role is a direct insert or delete with its attributes, reviewer payment,
audit row and timeline notification.
"""

from __future__ import annotations

import structlog
from sqlalchemy.exc import IntegrityError

from ..catalog import ResolvedRole, RoleCatalog
from ..errors import NotAssignedError, RoleNotFoundError
from ..legacy import constants as C
from ..legacy import resources as resource_dao
from ..legacy import unregistration as unreg_dao
from ..legacy import users as user_dao
from ..legacy.store import LegacyStore
from ..metrics import MetricsCollector
from ..schemas import Challenge
from .notifications import NotificationService
from .payments import PaymentContext, PaymentLedger
from .registration import RegistrationWorkflow
from .unregistration import UnregistrationWorkflow

log = structlog.get_logger()


class ResourceRoleOrchestrator:
    def __init__(
        self,
        store: LegacyStore,
        catalog: RoleCatalog,
        ledger: PaymentLedger,
        notifications: NotificationService,
        registration: RegistrationWorkflow,
        unregistration: UnregistrationWorkflow,
        metrics: MetricsCollector | None = None,
    ):
        self._store = store
        self._catalog = catalog
        self._ledger = ledger
        self._notifications = notifications
        self._registration = registration
        self._unregistration = unregistration
        self._metrics = metrics

    async def assign(
        self,
        challenge: Challenge,
        role: ResolvedRole,
        user_id: int,
        handle: str | None = None,
        payment_context: PaymentContext | None = None,
    ) -> bool:
        """Create the resource. Returns False when it already existed."""
        legacy_id = self._legacy_id(challenge)
        payment_context = payment_context or PaymentContext()

        submitter = self._catalog.is_submitter(role)

        async with self._store.transaction() as tx:
            exists = await resource_dao.resource_exists(tx, legacy_id, role.legacy_id, user_id)
            if not exists and await resource_dao.get_resource_role(tx, role.legacy_id) is None:
                raise RoleNotFoundError(f"Invalid role id {role.legacy_id}")

        if exists:
            # A registration that failed after its resource step still owes its later steps.
            if submitter and await self._registration.has_pending_steps(user_id, legacy_id):
                return await self._register(challenge, user_id, legacy_id)
            log.info(
                "resources.already_assigned",
                legacy_id=legacy_id,
                role=role.legacy_id,
                user_id=user_id,
            )
            return False

        if submitter:
            return await self._register(challenge, user_id, legacy_id)

        try:
            async with self._store.transaction() as tx:
                handle = handle or await user_dao.get_handle(tx, user_id)
                resource_id = await resource_dao.insert_resource(
                    tx, legacy_id, role.legacy_id, user_id, user_id
                )
                attributes: list[tuple[int, object]] = [
                    (C.RESOURCE_INFO_EXTERNAL_REF_ID, user_id),
                ]
                if handle:
                    attributes.append((C.RESOURCE_INFO_HANDLE, handle))
                attributes.append((C.RESOURCE_INFO_REGISTRATION_DATE, None))
                attributes.append((C.RESOURCE_INFO_APPEALS_COMPLETED_EARLY, C.NO_VALUE))
                if self._catalog.is_copilot(role) and payment_context.copilot_amount is not None:
                    attributes.append((C.RESOURCE_INFO_PAYMENT, payment_context.copilot_amount))
                for type_id, value in attributes:
                    await resource_dao.insert_resource_info(tx, resource_id, type_id, value, user_id)

                await resource_dao.audit_project_user(
                    tx, legacy_id, user_id, role.legacy_id, C.PROJECT_USER_AUDIT_CREATE_TYPE, user_id
                )

                if (
                    self._catalog.is_reviewer(role)
                    and payment_context.reviewer_amount is not None
                ):
                    await self._ledger.persist_reviewer_payment(
                        tx,
                        resource_id,
                        payment_context.reviewer_amount,
                        payment_context.manual,
                        user_id,
                    )
        except IntegrityError:
            # Another delivery of the same event won the insert.
            log.info(
                "resources.duplicate_insert",
                legacy_id=legacy_id,
                role=role.legacy_id,
                user_id=user_id,
            )
            return False

        log.info(
            "resources.assigned",
            legacy_id=legacy_id,
            role=role.legacy_id,
            user_id=user_id,
            resource_id=resource_id,
        )

        if await self._notifications.should_enable(challenge, role, user_id):
            async with self._store.transaction() as tx:
                await self._notifications.enable(tx, legacy_id, user_id, user_id)

        if self._metrics:
            self._metrics.inc("resources_assigned_total")
        return True

    async def remove(self, challenge: Challenge, role: ResolvedRole, user_id: int) -> None:
        legacy_id = self._legacy_id(challenge)

        if self._catalog.is_submitter(role):
            await self._unregistration.unregister(user_id, legacy_id)
            return

        async with self._store.transaction() as tx:
            resource = await resource_dao.get_resource(tx, legacy_id, role.legacy_id, user_id)
            if resource is None:
                raise NotAssignedError(user_id, role.legacy_id, legacy_id)
            resource_id = resource["resource_id"]
            if self._catalog.is_reviewer(role):
                await self._ledger.remove_reviewer_payment(tx, resource_id)
            await resource_dao.delete_resource_cascade(tx, resource_id)
            await resource_dao.audit_project_user(
                tx, legacy_id, user_id, role.legacy_id, C.PROJECT_USER_AUDIT_DELETE_TYPE, user_id
            )

        log.info(
            "resources.removed",
            legacy_id=legacy_id,
            role=role.legacy_id,
            user_id=user_id,
            resource_id=resource_id,
        )
        if self._metrics:
            self._metrics.inc("resources_removed_total")

        if self._catalog.is_submitter_class(role):
            await self._cleanup_registration_rows(legacy_id, user_id)
        await self._teardown_notification(legacy_id, role, user_id)

    async def _register(self, challenge: Challenge, user_id: int, legacy_id: int) -> bool:
        registered = await self._registration.register(
            user_id, legacy_id, studio=self._catalog.is_studio(challenge)
        )
        if not registered:
            log.info("resources.duplicate_insert", legacy_id=legacy_id, user_id=user_id)
        return registered

    @staticmethod
    def _legacy_id(challenge: Challenge) -> int:
        if not challenge.legacyId:
            raise ValueError(f"Challenge {challenge.id} has no legacy id")
        return challenge.legacyId

    async def _cleanup_registration_rows(self, legacy_id: int, user_id: int) -> None:
        for step, delete in (
            ("project_result", unreg_dao.delete_challenge_result),
            ("component_inquiry", unreg_dao.delete_component_inquiry),
        ):
            try:
                async with self._store.transaction() as tx:
                    await delete(tx, legacy_id, user_id)
            except Exception as exc:
                self._side_effect_failed(step, legacy_id, user_id, exc)

    async def _teardown_notification(
        self, legacy_id: int, role: ResolvedRole, user_id: int
    ) -> None:
        if self._catalog.notifications_exempt(role):
            return
        try:
            async with self._store.transaction() as tx:
                remaining = await resource_dao.get_user_resources(tx, legacy_id, user_id)
                if not remaining:
                    await self._notifications.disable(tx, legacy_id, user_id)
        except Exception as exc:
            self._side_effect_failed("notification", legacy_id, user_id, exc)

    def _side_effect_failed(self, step: str, legacy_id: int, user_id: int, exc: Exception) -> None:
        log.warning(
            "resources.side_effect_failed",
            step=step,
            legacy_id=legacy_id,
            user_id=user_id,
            error=str(exc),
        )
        if self._metrics:
            self._metrics.inc("side_effect_failures_total", step=step)
