"""
Error taxonomy for the processor.

- MalformedMessageError: bad JSON, topic mismatch, schema violation. Dropped.
- ChallengeNotReadyError: challenge not resolvable yet. Requeued.
- BusinessRuleError and subclasses: terminal, carry a user-facing message.
- UpstreamError / LegacyStoreError: terminal I/O failures for the message.
"""

from __future__ import annotations


class ProcessorError(Exception):
    """Base class for all processor errors."""


class MalformedMessageError(ProcessorError):
    pass


class ChallengeNotReadyError(ProcessorError):
    def __init__(self, challenge_id: str, reason: str):
        super().__init__(f"Challenge {challenge_id} is not ready: {reason}")
        self.challenge_id = challenge_id
        self.reason = reason


class BusinessRuleError(ProcessorError):
    """A rule of the legacy system rejected the operation."""


class RegistrationError(BusinessRuleError):
    pass


class UnregistrationError(BusinessRuleError):
    pass


class RoleNotFoundError(BusinessRuleError):
    pass


class NotAssignedError(BusinessRuleError):
    def __init__(self, user_id: int, role_id: int, challenge_id: int):
        super().__init__(
            f"User {user_id} does not have role {role_id} for the project {challenge_id}"
        )
        self.user_id = user_id
        self.role_id = role_id
        self.challenge_id = challenge_id


class UpstreamError(ProcessorError):
    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class NotFoundError(UpstreamError):
    pass


class LegacyStoreError(ProcessorError):
    pass
