"""
Submitter registration workflow.

Registration is a linear sequence of checks followed by several writes that
commit separately: the studio resource, the component inquiry, the
development project track, the timeline notification and the forum grant.
Each write step is recorded in the workflow journal once it commits, so a
re-run after a partial failure resumes at the first unrecorded step.
"""

from __future__ import annotations

import structlog
from sqlalchemy.exc import IntegrityError

from ..catalog import RoleCatalog
from ..config import RegistrationConfig
from ..errors import RegistrationError
from ..forum import ForumGateway, users_role
from ..journal import WorkflowJournal
from ..legacy import constants as C
from ..legacy import registration as reg_dao
from ..legacy import resources as resource_dao
from ..legacy import users as user_dao
from ..legacy.registration import RegistrationFacts
from ..legacy.store import LegacyStore, Row, Transaction
from ..metrics import MetricsCollector
from .notifications import NotificationService

log = structlog.get_logger()

WORKFLOW = "register"

STEP_STUDIO_RESOURCE = "studio_resource"
STEP_COMPONENT_INQUIRY = "component_inquiry"
STEP_PROJECT_TRACK = "project_track"
STEP_NOTIFICATION = "notification"
STEP_FORUM = "forum"

NOT_ACTIVATED = (
    "You must activate your account in order to participate. "
    "Please check your e-mail in order to complete the activation process, "
    "or contact support@topcoder.com if you did not receive an e-mail."
)
COUNTRY_BANNED = (
    "You are not eligible to participate in this challenge because of your "
    "country of residence. Please see our terms of service for more information."
)
COUNTRY_MISSING = (
    "You are not eligible to participate in this challenge because you have not "
    "specified your country of residence. Please go to your Settings and enter a "
    "country. Please see our terms of service for more information."
)
NOT_IN_COPILOT_POOL = (
    "You cannot participate in this challenge because you are not an active "
    "member of the copilot pool."
)


def is_rating_suitable(phase_id: int | None, project_category_id: int | None) -> bool:
    """Whether a rating for `phase_id` applies to a software challenge of the category."""
    if phase_id is None or project_category_id is None:
        return False
    if project_category_id == C.COMPONENT_TESTING_PROJECT_TYPE:
        return phase_id == C.COMPONENT_TESTING_PHASE_ID
    return project_category_id + C.RATING_PHASE_OFFSET == phase_id


def reliability_percent(reliability: float) -> str:
    """Render a 0..1 reliability as the percentage legacy readers expect ("90", "87.5")."""
    percent = round(reliability * 100, 2)
    if percent == int(percent):
        return str(int(percent))
    return str(percent)


class RegistrationWorkflow:
    def __init__(
        self,
        store: LegacyStore,
        journal: WorkflowJournal,
        forum: ForumGateway,
        notifications: NotificationService,
        catalog: RoleCatalog,
        config: RegistrationConfig,
        metrics: MetricsCollector | None = None,
    ):
        self._store = store
        self._journal = journal
        self._forum = forum
        self._notifications = notifications
        self._catalog = catalog
        self._config = config
        self._metrics = metrics

    async def has_pending_steps(self, user_id: int, challenge_id: int) -> bool:
        """Whether an earlier registration run stopped part way through."""
        return bool(await self._journal.completed_steps(WORKFLOW, challenge_id, user_id))

    async def register(
        self, user_id: int, challenge_id: int, is_admin: bool = False, studio: bool = False
    ) -> bool:
        """
        Register `user_id` as submitter of `challenge_id`.

        `studio` marks the challenge as studio when its upstream type says so;
        the legacy project row can also mark it. Returns False when a
        concurrent delivery already inserted the submitter resource.
        """
        done = set(await self._journal.completed_steps(WORKFLOW, challenge_id, user_id))
        if done:
            log.info(
                "registration.resuming",
                challenge_id=challenge_id,
                user_id=user_id,
                completed=sorted(done),
            )

        async with self._store.transaction() as tx:
            status = await reg_dao.get_user_status(tx, user_id)
            if status != self._config.activated_status:
                raise RegistrationError(NOT_ACTIVATED)
            challenge = await reg_dao.get_challenge(tx, challenge_id)
            if challenge is None:
                raise RegistrationError("The challenge does not exist.")
            if not is_admin:
                await self._check_eligibility(tx, user_id, challenge_id)
            facts = await reg_dao.registration_facts(
                tx,
                user_id,
                challenge_id,
                self._catalog.submitter_legacy_id,
                self._config.banned_countries,
            )
            # A resumed run already holds the resource it created before failing.
            self._validate(facts, resuming=bool(done))

            if challenge["is_studio"] or studio:
                project_type = C.DESIGN_PROJECT_TYPE
            else:
                project_type = C.DEVELOPMENT_PROJECT_TYPE
                if (
                    facts.project_category_id == C.COPILOT_POSTING_PROJECT_TYPE
                    and not facts.user_is_copilot
                ):
                    raise RegistrationError(
                        "You should be a copilot before register a copilot posting."
                    )
            await self._check_terms(tx, user_id, challenge_id)

        if project_type == C.DESIGN_PROJECT_TYPE and STEP_STUDIO_RESOURCE not in done:
            try:
                await self._persist_studio_resource(user_id, challenge_id)
            except IntegrityError:
                return await self._already_inserted(challenge_id, user_id)
            await self._mark(challenge_id, user_id, STEP_STUDIO_RESOURCE)

        component = await self._register_component_inquiry(
            user_id, challenge_id, skip_insert=STEP_COMPONENT_INQUIRY in done
        )
        if STEP_COMPONENT_INQUIRY not in done:
            await self._mark(challenge_id, user_id, STEP_COMPONENT_INQUIRY)

        if project_type == C.DEVELOPMENT_PROJECT_TYPE and STEP_PROJECT_TRACK not in done:
            try:
                await self._project_track(user_id, challenge_id, component)
            except IntegrityError:
                return await self._already_inserted(challenge_id, user_id)
            await self._mark(challenge_id, user_id, STEP_PROJECT_TRACK)

        if STEP_NOTIFICATION not in done:
            async with self._store.transaction() as tx:
                await self._notifications.enable(tx, challenge_id, user_id, user_id)
            await self._mark(challenge_id, user_id, STEP_NOTIFICATION)

        if (
            project_type == C.DEVELOPMENT_PROJECT_TYPE
            and self._config.create_forum
            and STEP_FORUM not in done
        ):
            await self._grant_forum_access(user_id, challenge_id, component)
            await self._mark(challenge_id, user_id, STEP_FORUM)

        await self._journal.clear(WORKFLOW, challenge_id, user_id)
        if self._metrics:
            self._metrics.inc("registrations_total")
        log.info(
            "registration.completed",
            challenge_id=challenge_id,
            user_id=user_id,
            studio=project_type == C.DESIGN_PROJECT_TYPE,
        )
        return True

    async def _mark(self, challenge_id: int, user_id: int, step: str) -> None:
        await self._journal.mark_done(WORKFLOW, challenge_id, user_id, step)
        log.debug("registration.step_done", challenge_id=challenge_id, user_id=user_id, step=step)

    async def _already_inserted(self, challenge_id: int, user_id: int) -> bool:
        await self._journal.clear(WORKFLOW, challenge_id, user_id)
        log.info("registration.duplicate_insert", challenge_id=challenge_id, user_id=user_id)
        return False

    # --- Checks ---

    async def _check_eligibility(self, tx: Transaction, user_id: int, challenge_id: int) -> None:
        groups = await reg_dao.get_challenge_groups(tx, user_id, challenge_id)
        # No group eligibility rows: open to everyone.
        if not groups or not groups[0]["challenge_group_ind"]:
            return
        if any(g["user_group_id"] is not None for g in groups):
            return
        raise RegistrationError("You are not eligible to participate in this challenge.")

    @staticmethod
    def _validate(facts: RegistrationFacts, resuming: bool = False) -> None:
        if not facts.registration_open:
            raise RegistrationError("Registration Phase of this challenge is not open.")
        if facts.user_registered and not resuming:
            raise RegistrationError("You are already registered for this challenge.")
        if facts.user_suspended:
            raise RegistrationError("You cannot participate in this challenge due to suspension.")
        if facts.country_banned:
            raise RegistrationError(COUNTRY_BANNED)
        if facts.country_missing:
            raise RegistrationError(COUNTRY_MISSING)
        if (
            facts.project_category_id == C.COPILOT_POSTING_PROJECT_TYPE
            and not facts.user_is_copilot
            and any("Marathon Match" in t for t in facts.copilot_types)
        ):
            raise RegistrationError(NOT_IN_COPILOT_POOL)

    async def _check_terms(self, tx: Transaction, user_id: int, challenge_id: int) -> None:
        terms = await reg_dao.get_terms_of_use(
            tx, user_id, challenge_id, self._catalog.submitter_legacy_id
        )
        if not all(t["agreed"] for t in terms):
            raise RegistrationError("You should agree with all terms of use.")

    # --- Write steps ---

    async def _handle(self, tx: Transaction, user_id: int) -> str:
        handle = await user_dao.get_handle(tx, user_id)
        if not handle:
            raise RegistrationError("user's handle not found")
        return handle

    async def _insert_submitter(self, tx: Transaction, user_id: int, challenge_id: int) -> int:
        submitter = self._catalog.submitter_legacy_id
        resource_id = await resource_dao.insert_resource(
            tx, challenge_id, submitter, user_id, user_id
        )
        await resource_dao.audit_project_user(
            tx, challenge_id, user_id, submitter, C.PROJECT_USER_AUDIT_CREATE_TYPE, user_id
        )
        return resource_id

    async def _persist_studio_resource(self, user_id: int, challenge_id: int) -> None:
        async with self._store.transaction() as tx:
            handle = await self._handle(tx, user_id)
            resource_id = await self._insert_submitter(tx, user_id, challenge_id)
            for type_id, value in (
                (C.RESOURCE_INFO_EXTERNAL_REF_ID, user_id),
                (C.RESOURCE_INFO_HANDLE, handle),
                (C.RESOURCE_INFO_REGISTRATION_DATE, None),
                (C.RESOURCE_INFO_PAYMENT_STATUS, C.NOT_APPLICABLE),
            ):
                await resource_dao.insert_resource_info(tx, resource_id, type_id, value, user_id)
        log.info("registration.studio_resource", challenge_id=challenge_id, resource_id=resource_id)

    async def _register_component_inquiry(
        self, user_id: int, challenge_id: int, skip_insert: bool = False
    ) -> Row:
        async with self._store.transaction() as tx:
            component = await reg_dao.get_component_info(tx, challenge_id)
            if component is None:
                raise RegistrationError("component not found when register component inquiry")
            category = component["project_category_id"]
            rating = await reg_dao.get_user_rating(tx, user_id, category + C.RATING_PHASE_OFFSET)
            if not skip_insert:
                phase = (
                    category
                    if category in (C.DESIGN_PROJECT_TYPE, C.DEVELOPMENT_PROJECT_TYPE)
                    else None
                )
                inquiry_id = await reg_dao.insert_component_inquiry(
                    tx, user_id, challenge_id, component, rating, phase
                )
                log.info(
                    "registration.component_inquiry",
                    challenge_id=challenge_id,
                    inquiry_id=inquiry_id,
                )
        return {**component, "rating": rating}

    async def _project_track(self, user_id: int, challenge_id: int, component: Row) -> None:
        rating = component["rating"]
        result_rating = (
            rating
            if is_rating_suitable(component["phase_id"], component["project_category_id"])
            else None
        )
        async with self._store.transaction() as tx:
            handle = await self._handle(tx, user_id)
            resource_id = await self._insert_submitter(tx, user_id, challenge_id)
            await reg_dao.insert_challenge_result(tx, challenge_id, user_id, result_rating)

            attributes: list[tuple[int, object]] = [
                (C.RESOURCE_INFO_EXTERNAL_REF_ID, user_id),
                (C.RESOURCE_INFO_HANDLE, handle),
            ]
            if rating and rating > 0:
                attributes.append((C.RESOURCE_INFO_RATING, rating))
            reliability = await reg_dao.get_user_reliability(tx, user_id, challenge_id)
            if reliability is not None:
                attributes.append(
                    (C.RESOURCE_INFO_RELIABILITY, reliability_percent(reliability))
                )
            attributes.append((C.RESOURCE_INFO_REGISTRATION_DATE, None))
            attributes.append((C.RESOURCE_INFO_APPEALS_COMPLETED_EARLY, C.NO_VALUE))
            for type_id, value in attributes:
                await resource_dao.insert_resource_info(tx, resource_id, type_id, value, user_id)
        log.info("registration.project_track", challenge_id=challenge_id, resource_id=resource_id)

    async def _grant_forum_access(self, user_id: int, challenge_id: int, component: Row) -> None:
        if not component["component_id"] or component["component_id"] <= 0:
            raise RegistrationError("Could not find component for challenge")
        async with self._store.transaction() as tx:
            category_id = await reg_dao.get_active_forum_category(tx, component["component_id"])
        if category_id <= 0:
            log.debug("registration.no_forum_category", challenge_id=challenge_id)
            return
        await self._forum.create_category_watch(user_id, category_id)
        await self._forum.assign_role(user_id, users_role(category_id))
