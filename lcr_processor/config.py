"""
Configuration loading and validation.

Loads processor configuration from a YAML file. Secrets (the M2M client secret,
the legacy store URL with credentials) are resolved from environment variables
named in the config and are never stored in config files.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field, field_validator


class BusConfig(BaseModel):
    redis_url: str = "redis://localhost:6379/0"
    group_id: str = "legacy-challenge-resource-processor-group"
    consumer_name: str = "processor-1"
    block_ms: int = 5000
    stream_maxlen: int = 100_000


class TopicsConfig(BaseModel):
    create_resource: str = "challenge.action.resource.create"
    delete_resource: str = "challenge.action.resource.delete"
    payment_update: str = "challenge.notification.update"
    user_unregistration: str = "challenge.notification.events"
    dead_letter: str = "common.error.reporting"

    @property
    def inbound(self) -> list[str]:
        return [self.create_resource, self.delete_resource, self.payment_update]


class EventConfig(BaseModel):
    originator: str = "legacy-challenge-resource-processor"
    mime_type: str = "application/json"


class RetryConfig(BaseModel):
    """Readiness retry: delayed republish while a challenge is not yet resolvable."""

    delay_seconds: float = 10.0
    multiplier: float = 2.0
    max_delay_seconds: float = 300.0
    # 0 keeps retrying forever
    max_attempts: int = 20

    def delay_for(self, attempt: int) -> float:
        return min(self.delay_seconds * (self.multiplier ** attempt), self.max_delay_seconds)


class ChallengeApiConfig(BaseModel):
    challenge_url: str = "http://localhost:3001/v5/challenges"
    resource_role_url: str = "http://localhost:3001/v5/resource-roles"
    projects_url: str = "https://api.topcoder-dev.com/v5/projects"
    verify_tls: bool = True
    request_timeout_seconds: float = 30.0


class AuthConfig(BaseModel):
    url: str = "https://topcoder-dev.auth0.com/oauth/token"
    audience: str = "https://m2m.topcoder-dev.com/"
    client_id: str = ""
    client_secret_env: str = "AUTH0_CLIENT_SECRET"
    token_cache_seconds: int = 90

    @property
    def client_secret(self) -> str | None:
        return os.environ.get(self.client_secret_env)


class LegacyStoreConfig(BaseModel):
    url: str = "sqlite+aiosqlite:///./data/tcs_catalog.db"
    url_env: str = "LEGACY_STORE_URL"
    pool_size: int = 60
    statement_timeout_seconds: float = 30.0
    echo: bool = False

    @property
    def resolved_url(self) -> str:
        return os.environ.get(self.url_env) or self.url


class RolesConfig(BaseModel):
    """Role catalog. UUIDs are the event-source identifiers."""

    submitter_role_id: str = "732339e7-8e30-49d7-9198-cccf9451e221"
    manager_role_id: str = "0e9c6879-39e4-4eb6-b8df-92407890faf1"
    roles_without_notifications: list[str] = Field(
        default_factory=lambda: ["2a4dc376-a31c-4d00-b173-13934d89e286"]
    )
    project_roles_without_notifications: list[str] = Field(
        default_factory=lambda: ["manager", "customer"]
    )
    submitter_legacy_id: int = 1
    submitter_class_legacy_ids: list[int] = Field(default_factory=lambda: [1, 17])
    reviewer_legacy_ids: list[int] = Field(default_factory=lambda: [4])
    copilot_legacy_id: int = 14
    legacy_ids: dict[str, int] = Field(
        default_factory=lambda: {
            "16461876-297b-49a9-86cf-41b42f13ac97": 8,  # Aggregator
            "19546631-3133-42f1-adf9-ce332a884ad6": 7,  # Stress Reviewer
            "2a4dc376-a31c-4d00-b173-13934d89e286": 12,  # Observer
            "404bf28d-6eec-4d4d-9802-dc6cbc0c2bf0": 6,  # Failure Reviewer
            "50906190-747b-4c82-9706-7a5b11999dfb": 4,  # Reviewer
            "5cac51cc-6386-4ff8-9cd2-caca6424e5fe": 17,  # Specification Submitter
            "607c5041-272d-45be-b633-b1ca5b5ccb82": 11,  # Designer
            "658d568e-0957-44ee-86bb-84105edb2b06": 2,  # Primary Screener
            "6d88e386-7064-478b-a4aa-14d40e6381e8": 19,  # Checkpoint Screener
            "732339e7-8e30-49d7-9198-cccf9451e221": 1,  # Submitter
            "80a433cf-205d-4831-aa08-46aa53230705": 5,  # Accuracy Reviewer
            "89ebb5e3-fc58-4fac-85eb-af4c656cb87f": 9,  # Final Reviewer
            "8f0c0d35-c20d-43d1-9c63-af1a50ceb075": 10,  # Approver
            "b1df1a6e-81f7-46fc-b38d-eed46f54cde7": 18,  # Specification Reviewer
            "b52a9879-92b8-47a4-a55a-d250962692ac": 16,  # Post-Mortem Reviewer
            "be53d697-8ce5-407e-b82e-23ddb2b3d87d": 3,  # Screener
            "cc25f311-89a9-43f5-85f9-3c56b6b71a3a": 13,  # Manager
            "cfe12b3f-2a24-4639-9d8b-ec86726f76bd": 14,  # Copilot
            "e2ee18c4-096b-42ee-953a-abfe9284a6e0": 15,  # Client Manager
            "f31c7e62-8dd1-46c9-a3c2-b67b3b2913c8": 21,  # Iterative Reviewer
            "fef4d185-232e-4747-8f56-485bda803e62": 20,  # Checkpoint Reviewer
        }
    )


class ChallengeTypesConfig(BaseModel):
    studio_types: list[str] = Field(
        default_factory=lambda: [
            "Web Design",
            "Design First2Finish",
            "Studio Other",
            "Idea Generation",
            "Wireframes",
            "Print/Presentation",
            "Front-End Flash",
            "Widget or Mobile Screen Design",
            "Application Front-End Design",
            "Banners/Icons",
            "Logo Design",
        ]
    )


class RegistrationConfig(BaseModel):
    activated_status: str = "A"
    banned_countries: list[str] = Field(
        default_factory=lambda: ["Iran", "North Korea", "Cuba", "Sudan", "Syria"]
    )
    create_forum: bool = True


class PaymentConfig(BaseModel):
    reviewer_prize_type: str = "reviewer"
    copilot_prize_type: str = "copilot"
    reviewer_metadata_name: str = "reviewerPayment"
    reviewer_payment_type_id: int = 3
    manual_payment_type_id: int = 7

    @field_validator("reviewer_prize_type", "copilot_prize_type")
    @classmethod
    def _lower(cls, v: str) -> str:
        return v.lower()


class StateConfig(BaseModel):
    db_path: str = "./data/processor_state.db"


class LoggingConfig(BaseModel):
    level: str = "info"
    format: Literal["json", "text"] = "json"


class MetricsConfig(BaseModel):
    enabled: bool = True
    host: str = "127.0.0.1"
    port: int = 9090


class ProcessorConfig(BaseModel):
    bus: BusConfig = Field(default_factory=BusConfig)
    topics: TopicsConfig = Field(default_factory=TopicsConfig)
    events: EventConfig = Field(default_factory=EventConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    challenge_api: ChallengeApiConfig = Field(default_factory=ChallengeApiConfig)
    auth: AuthConfig = Field(default_factory=AuthConfig)
    legacy_store: LegacyStoreConfig = Field(default_factory=LegacyStoreConfig)
    roles: RolesConfig = Field(default_factory=RolesConfig)
    challenge_types: ChallengeTypesConfig = Field(default_factory=ChallengeTypesConfig)
    registration: RegistrationConfig = Field(default_factory=RegistrationConfig)
    payments: PaymentConfig = Field(default_factory=PaymentConfig)
    state: StateConfig = Field(default_factory=StateConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)


def load_config(path: str | Path) -> ProcessorConfig:
    """Load and validate processor configuration from a YAML file."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path) as f:
        raw = yaml.safe_load(f) or {}

    return ProcessorConfig.model_validate(raw)
