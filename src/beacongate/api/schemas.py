"""Response models for the review API."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import ConfigDict, Field

from beacongate.models.base import CamelModel
from beacongate.models.case import (
    ArtifactType,
    CaptureRunStatus,
    CaseStatus,
    Category,
    EvidenceRef,
    QueueStatus,
    RiskTier,
    Severity,
)
from beacongate.models.retrieval import RetrievalScope


class _View(CamelModel):
    model_config = ConfigDict(from_attributes=True)


class CaseView(_View):
    id: str
    ad_text: str
    category: Category
    landing_url: str
    status: CaseStatus
    evidence_id: str
    created_at: datetime


class EvidenceView(_View):
    id: str
    landing_url: str
    evidence_hash: str
    last_captured_at: datetime | None
    current_capture_run_id: str | None
    screenshot_artifact_id: str | None


class QueueItemView(_View):
    risk_score: int
    risk_tier: RiskTier
    status: QueueStatus


class CaptureRunView(_View):
    id: str
    status: CaptureRunStatus
    attempt: int
    delivery: int
    started_at: datetime | None
    finished_at: datetime | None
    error_message: str | None


class ArtifactView(_View):
    id: str
    capture_run_id: str
    type: ArtifactType
    sha256: str
    byte_size: int
    mime_type: str


class RuleRunView(_View):
    id: str
    evaluation_id: str
    rule_id: str
    severity: Severity
    config_hash: str
    triggered: bool
    matched_text: str | None
    explanation: str
    evidence_ref: EvidenceRef


class RetrievalRunView(_View):
    id: str
    retrieval_type: str
    query_text: str
    embed_model: str
    top_k: int
    results: dict[str, Any]
    created_at: datetime


class LLMRunView(_View):
    id: str
    provider: str
    model: str
    temperature: float
    prompt_version: str
    input_hash: str
    advisory_text: str
    advisory_json: dict[str, Any] | None
    citations_json: dict[str, Any] | None
    error_message: str | None
    latency_ms: int | None
    created_at: datetime


class CaseDetailView(_View):
    case: CaseView
    evidence: EvidenceView
    queue_item: QueueItemView | None
    capture_runs: list[CaptureRunView]
    artifacts: list[ArtifactView]
    rule_runs: list[RuleRunView]
    retrieval_runs: list[RetrievalRunView]
    llm_runs: list[LLMRunView]


class EnqueueView(_View):
    case_id: str
    evidence_id: str
    attempt: int
    enqueued: bool
    error: str | None = None


class RetrievalRequest(CamelModel):
    top_k: int | None = Field(default=None, ge=1, le=50)
    scope: RetrievalScope = RetrievalScope.BOTH
