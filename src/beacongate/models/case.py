"""Case lifecycle enums and submission payload."""

from __future__ import annotations

from enum import Enum

from pydantic import Field, field_validator

from beacongate.models.base import CamelModel


class Category(str, Enum):
    """Advertisement category."""

    HEALTH = "HEALTH"
    FINANCE = "FINANCE"
    DATING = "DATING"
    GAMBLING = "GAMBLING"
    GENERAL = "GENERAL"


class CaseStatus(str, Enum):
    NEW = "NEW"
    CAPTURING = "CAPTURING"
    READY_FOR_REVIEW = "READY_FOR_REVIEW"
    IN_REVIEW = "IN_REVIEW"
    DECIDED = "DECIDED"


class CaptureRunStatus(str, Enum):
    QUEUED = "QUEUED"
    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"


class ArtifactType(str, Enum):
    SCREENSHOT = "SCREENSHOT"
    HTML_SNAPSHOT = "HTML_SNAPSHOT"
    REDIRECT_CHAIN = "REDIRECT_CHAIN"
    NETWORK_SUMMARY = "NETWORK_SUMMARY"


class EvidenceRef(str, Enum):
    """Class of evidence a rule decision is grounded on."""

    AD_TEXT = "AD_TEXT"
    LANDING_URL = "LANDING_URL"
    HTML_SNAPSHOT = "HTML_SNAPSHOT"
    REDIRECT_CHAIN = "REDIRECT_CHAIN"


class Severity(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class RiskTier(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class QueueStatus(str, Enum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"


class DocType(str, Enum):
    POLICY = "POLICY"
    PRECEDENT = "PRECEDENT"


class SubmitCaseRequest(CamelModel):
    """Reviewer-facing case submission."""

    ad_text: str = Field(min_length=1, max_length=10_000)
    category: Category
    landing_url: str = Field(min_length=1, max_length=2048)

    @field_validator("ad_text", "landing_url")
    @classmethod
    def _strip(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v
