"""Pydantic models used across the project."""

from __future__ import annotations

from beacongate.models.capture import (
    ArtifactHash,
    CaptureBundle,
    CaptureFailure,
    CaptureOutcome,
    CapturePartial,
    CaptureSuccess,
    NetworkSummary,
    RedirectHop,
)
from beacongate.models.case import (
    ArtifactType,
    CaptureRunStatus,
    CaseStatus,
    Category,
    DocType,
    EvidenceRef,
    QueueStatus,
    RiskTier,
    Severity,
    SubmitCaseRequest,
)

__all__ = [
    "ArtifactHash",
    "ArtifactType",
    "CaptureBundle",
    "CaptureFailure",
    "CaptureOutcome",
    "CapturePartial",
    "CaptureRunStatus",
    "CaptureSuccess",
    "CaseStatus",
    "Category",
    "DocType",
    "EvidenceRef",
    "NetworkSummary",
    "QueueStatus",
    "RedirectHop",
    "RiskTier",
    "Severity",
    "SubmitCaseRequest",
]
