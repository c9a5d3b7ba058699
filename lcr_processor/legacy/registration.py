"""
Reads and writes used by the submitter registration workflow.
"""

from __future__ import annotations

from dataclasses import dataclass

from . import constants as C
from .sequences import next_sequence_id
from .store import Row, Transaction

_GET_USER_STATUS = "SELECT status FROM user WHERE user_id = :user_id"

_CHECK_CHALLENGE_EXISTS = """
SELECT project_id, project_category_id,
  CASE WHEN project_studio_spec_id IS NULL THEN 0 ELSE 1 END AS is_studio
FROM project WHERE project_id = :challenge_id
"""

_GET_CHALLENGE_GROUPS = """
SELECT sg.group_id AS group_id, sg.challenge_group_ind AS challenge_group_ind,
  ugx.group_id AS user_group_id
FROM contest_eligibility ce
JOIN group_contest_eligibility gce ON gce.contest_eligibility_id = ce.contest_eligibility_id
LEFT JOIN security_groups sg ON sg.group_id = gce.group_id
LEFT JOIN user_group_xref ugx ON ugx.group_id = gce.group_id AND ugx.login_id = :user_id
WHERE ce.contest_id = :challenge_id
"""

_REGISTRATION_OPEN = """
SELECT COUNT(*) AS num FROM project_phase
WHERE project_id = :challenge_id AND phase_type_id = :phase_type AND phase_status_id = :status
"""

_USER_REGISTERED = """
SELECT COUNT(*) AS num FROM resource
WHERE project_id = :challenge_id AND resource_role_id = :role_id AND user_id = :user_id
"""

_USER_SUSPENDED = """
SELECT COUNT(*) AS num FROM user_status
WHERE user_id = :user_id AND user_status_type_id = :type_id AND user_status_id = :status_id
"""

_USER_COUNTRIES = """
SELECT comp.country_name AS comp_country, home.country_name AS home_country,
  coder.comp_country_code AS comp_country_code
FROM coder
LEFT JOIN country comp ON comp.country_code = coder.comp_country_code
LEFT JOIN country home ON home.country_code = coder.home_country_code
WHERE coder.coder_id = :user_id
"""

_ACTIVE_COPILOT = """
SELECT COUNT(*) AS num FROM copilot_profile
WHERE user_id = :user_id AND copilot_profile_status_id = :status_id
"""

_COPILOT_TYPES = """
SELECT pctl.name AS name
FROM project_copilot_type pct
JOIN project_copilot_type_lu pctl ON pctl.project_copilot_type_id = pct.project_copilot_type_id
WHERE pct.project_id = :challenge_id
"""

_GET_COMPONENT_INFO = """
SELECT c.component_id AS component_id, c.phase_id AS phase_id,
  c.comp_vers_id AS component_version_id, c.version AS version,
  COALESCE(c.comments, '') AS comments, p.project_category_id AS project_category_id
FROM project p
JOIN project_info pi ON pi.project_id = p.project_id AND pi.project_info_type_id = :info_type
JOIN comp_versions c ON c.component_id = pi.value
WHERE p.project_id = :challenge_id AND c.phase_id IN (112, 113)
"""

_GET_USER_RATING = "SELECT rating FROM user_rating WHERE phase_id = :phase_id AND user_id = :user_id"

_GET_USER_RELIABILITY = """
SELECT ur.rating AS rating FROM user_reliability ur
JOIN project p ON ur.phase_id = p.project_category_id + :offset
WHERE ur.user_id = :user_id AND p.project_id = :challenge_id
"""

_INSERT_COMPONENT_INQUIRY = """
INSERT INTO component_inquiry
  (component_inquiry_id, component_id, user_id, comment, agreed_to_terms,
   rating, phase, tc_user_id, version, project_id)
VALUES
  (:inquiry_id, :component_id, :user_id, :comment, 1,
   :rating, :phase, :user_id, :version, :challenge_id)
"""

_INSERT_CHALLENGE_RESULT = """
INSERT INTO project_result (project_id, user_id, rating_ind, valid_submission_ind, old_rating)
VALUES (:challenge_id, :user_id, 0, 0, :rating)
"""

_GET_TERMS_OF_USE = """
SELECT tou.terms_of_use_id AS terms_of_use_id, tou.title AS title,
  CASE WHEN utx.user_id IS NULL THEN 0 ELSE 1 END AS agreed
FROM project_role_terms_of_use_xref x
JOIN terms_of_use tou ON tou.terms_of_use_id = x.terms_of_use_id
LEFT JOIN user_terms_of_use_xref utx
  ON utx.terms_of_use_id = tou.terms_of_use_id AND utx.user_id = :user_id
WHERE x.project_id = :challenge_id AND x.resource_role_id = :role_id
ORDER BY x.group_ind, x.sort_order
"""

_GET_ACTIVE_FORUM_CATEGORY = """
SELECT x.jive_category_id AS jive_category_id
FROM comp_versions cv
JOIN comp_jive_category_xref x ON x.comp_vers_id = cv.comp_vers_id
WHERE cv.component_id = :component_id
"""


@dataclass
class RegistrationFacts:
    """Everything `validate` needs to decide whether a user may register."""
    project_category_id: int | None
    registration_open: bool
    user_registered: bool
    user_suspended: bool
    country_banned: bool
    country_missing: bool
    user_is_copilot: bool
    copilot_types: list[str]


async def get_user_status(tx: Transaction, user_id: int) -> str | None:
    row = await tx.query_one(_GET_USER_STATUS, {"user_id": user_id})
    return row["status"] if row else None


async def get_challenge(tx: Transaction, challenge_id: int) -> Row | None:
    return await tx.query_one(_CHECK_CHALLENGE_EXISTS, {"challenge_id": challenge_id})


async def get_challenge_groups(tx: Transaction, user_id: int, challenge_id: int) -> list[Row]:
    return await tx.query(_GET_CHALLENGE_GROUPS, {"user_id": user_id, "challenge_id": challenge_id})


async def is_active_copilot(tx: Transaction, user_id: int) -> bool:
    num = await tx.scalar(
        _ACTIVE_COPILOT, {"user_id": user_id, "status_id": C.ACTIVE_COPILOT_STATUS_ID}
    )
    return bool(num)


async def registration_facts(
    tx: Transaction,
    user_id: int,
    challenge_id: int,
    submitter_role_id: int,
    banned_countries: list[str],
) -> RegistrationFacts:
    challenge = await get_challenge(tx, challenge_id)
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
    suspended = await tx.scalar(
        _USER_SUSPENDED,
        {
            "user_id": user_id,
            "type_id": C.SUSPENSION_STATUS_TYPE_ID,
            "status_id": C.SUSPENDED_STATUS_ID,
        },
    )
    countries = await tx.query_one(_USER_COUNTRIES, {"user_id": user_id})
    banned = {c.lower() for c in banned_countries}
    country_banned = False
    country_missing = True
    if countries:
        country_banned = any(
            (name or "").lower() in banned
            for name in (countries["comp_country"], countries["home_country"])
            if name
        )
        country_missing = not (countries["comp_country_code"] or "").strip()
    copilot_types = await tx.query(_COPILOT_TYPES, {"challenge_id": challenge_id})

    return RegistrationFacts(
        project_category_id=challenge["project_category_id"] if challenge else None,
        registration_open=bool(reg_open),
        user_registered=bool(registered),
        user_suspended=bool(suspended),
        country_banned=country_banned,
        country_missing=country_missing,
        user_is_copilot=await is_active_copilot(tx, user_id),
        copilot_types=[r["name"] for r in copilot_types if r["name"]],
    )


async def get_component_info(tx: Transaction, challenge_id: int) -> Row | None:
    return await tx.query_one(
        _GET_COMPONENT_INFO,
        {"challenge_id": challenge_id, "info_type": C.PROJECT_INFO_COMPONENT_ID},
    )


async def get_user_rating(tx: Transaction, user_id: int, phase_id: int) -> int:
    row = await tx.query_one(_GET_USER_RATING, {"phase_id": phase_id, "user_id": user_id})
    return int(row["rating"]) if row and row["rating"] is not None else 0


async def get_user_reliability(tx: Transaction, user_id: int, challenge_id: int) -> float | None:
    row = await tx.query_one(
        _GET_USER_RELIABILITY,
        {"user_id": user_id, "challenge_id": challenge_id, "offset": C.RATING_PHASE_OFFSET},
    )
    if row is None or row["rating"] is None:
        return None
    return float(row["rating"])


async def insert_component_inquiry(
    tx: Transaction,
    user_id: int,
    challenge_id: int,
    component: Row,
    rating: int,
    phase: int | None,
) -> int:
    inquiry_id = await next_sequence_id(tx, C.COMPONENT_INQUIRY_SEQ)
    await tx.execute(
        _INSERT_COMPONENT_INQUIRY,
        {
            "inquiry_id": inquiry_id,
            "component_id": component["component_id"],
            "user_id": user_id,
            "comment": component["comments"],
            "rating": rating,
            "phase": phase,
            "version": component["version"],
            "challenge_id": challenge_id,
        },
    )
    return inquiry_id


async def insert_challenge_result(
    tx: Transaction, challenge_id: int, user_id: int, rating: int | None
) -> None:
    await tx.execute(
        _INSERT_CHALLENGE_RESULT,
        {"challenge_id": challenge_id, "user_id": user_id, "rating": rating},
    )


async def get_terms_of_use(
    tx: Transaction, user_id: int, challenge_id: int, role_id: int
) -> list[Row]:
    return await tx.query(
        _GET_TERMS_OF_USE,
        {"user_id": user_id, "challenge_id": challenge_id, "role_id": role_id},
    )


async def get_active_forum_category(tx: Transaction, component_id: int) -> int:
    row = await tx.query_one(_GET_ACTIVE_FORUM_CATEGORY, {"component_id": component_id})
    if not row or row["jive_category_id"] is None:
        return 0
    return int(row["jive_category_id"])
