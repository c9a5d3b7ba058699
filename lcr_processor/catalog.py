"""
Role and challenge-type catalog.

Lookup tables (role UUID → legacy id, studio challenge types, roles exempt
from timeline notifications) are loaded from configuration at startup so the
mapping can change without a code change.
"""

from __future__ import annotations

from dataclasses import dataclass

from .config import ChallengeTypesConfig, RolesConfig
from .errors import RoleNotFoundError
from .schemas import Challenge, ResourceRole


@dataclass(frozen=True)
class ResolvedRole:
    """An event-source role together with its legacy identifier."""
    id: str
    legacy_id: int
    name: str


class RoleCatalog:
    def __init__(self, roles: RolesConfig, challenge_types: ChallengeTypesConfig):
        self._roles = roles
        self._studio_types = frozenset(challenge_types.studio_types)

    def resolve(self, role: ResourceRole) -> ResolvedRole:
        legacy_id = role.legacyId or self._roles.legacy_ids.get(role.id)
        if not legacy_id:
            raise RoleNotFoundError(f"Resource Role {role.id} has no legacy mapping")
        return ResolvedRole(id=role.id, legacy_id=int(legacy_id), name=role.name)

    def is_studio(self, challenge: Challenge) -> bool:
        return challenge.type in self._studio_types

    def is_submitter(self, role: ResolvedRole) -> bool:
        return role.id == self._roles.submitter_role_id

    def is_submitter_class(self, role: ResolvedRole) -> bool:
        return role.legacy_id in self._roles.submitter_class_legacy_ids

    def is_reviewer(self, role: ResolvedRole) -> bool:
        return role.legacy_id in self._roles.reviewer_legacy_ids

    def is_copilot(self, role: ResolvedRole) -> bool:
        return role.legacy_id == self._roles.copilot_legacy_id

    def is_manager(self, role: ResolvedRole) -> bool:
        return role.id == self._roles.manager_role_id

    def notifications_exempt(self, role: ResolvedRole) -> bool:
        return role.id in self._roles.roles_without_notifications

    def project_role_exempt(self, project_role: str | None) -> bool:
        return project_role is not None and (
            project_role in self._roles.project_roles_without_notifications
        )

    @property
    def submitter_legacy_id(self) -> int:
        return self._roles.submitter_legacy_id
