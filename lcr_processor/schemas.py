"""
Message and upstream record schemas.

Inbound envelopes are validated here before any routing happens; a
ValidationError means the message can never succeed and is dropped.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Optional
from uuid import UUID

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    StrictInt,
    StrictStr,
)

PositiveId = Annotated[StrictInt, Field(ge=1)]


# ---------------------------------------------------------------------------
# Bus envelope
# ---------------------------------------------------------------------------


class Envelope(BaseModel):
    """Common bus envelope. `payload` is validated per topic afterwards."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    topic: StrictStr
    originator: StrictStr
    timestamp: datetime
    mime_type: StrictStr = Field(
        validation_alias=AliasChoices("mime-type", "mimeType"),
        serialization_alias="mime-type",
    )
    payload: dict[str, Any]
    attempt: Annotated[StrictInt, Field(ge=0)] = 0


class ResourcePayload(BaseModel):
    """Payload of resource create / delete events."""

    model_config = ConfigDict(extra="allow")

    challengeId: UUID
    roleId: UUID
    memberId: PositiveId
    memberHandle: Optional[StrictStr] = None

    @property
    def challenge_ref(self) -> str:
        return str(self.challengeId)


class MetadataEntry(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: StrictStr
    value: Any = None


class Prize(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: Optional[str] = None
    value: Any = None


class PrizeSet(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: str
    prizes: list[Prize] = Field(default_factory=list)


class PaymentUpdatePayload(BaseModel):
    """Payload of challenge update events that may carry a reviewer payment."""

    model_config = ConfigDict(extra="allow")

    id: UUID
    legacyId: Optional[PositiveId] = None
    updatedBy: StrictStr
    metadata: list[MetadataEntry] = Field(default_factory=list)
    prizeSets: Optional[list[PrizeSet]] = None

    @property
    def challenge_ref(self) -> str:
        return str(self.id)


# ---------------------------------------------------------------------------
# Upstream records
# ---------------------------------------------------------------------------


class Challenge(BaseModel):
    """A challenge as published by the event source."""

    model_config = ConfigDict(extra="allow")

    id: str
    legacyId: Optional[int] = None
    type: Optional[str] = None
    track: Optional[str] = None
    projectId: Optional[int] = None
    prizeSets: list[PrizeSet] = Field(default_factory=list)
    metadata: list[MetadataEntry] = Field(default_factory=list)


class ResourceRole(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    name: str = ""
    legacyId: Optional[int] = None


class ProjectMember(BaseModel):
    model_config = ConfigDict(extra="allow")

    userId: int
    role: str


class Project(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: int
    members: list[ProjectMember] = Field(default_factory=list)

    def member_role(self, user_id: int) -> str | None:
        for member in self.members:
            if member.userId == user_id:
                return member.role
        return None


class UnregistrationNotice(BaseModel):
    type: str = "USER_UNREGISTRATION"
    detail: dict[str, Any]
