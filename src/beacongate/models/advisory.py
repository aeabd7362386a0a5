"""Advisory input snapshot and structured advisory output schema."""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import AfterValidator, BaseModel, Field, ValidationError

from beacongate.models.base import CamelModel
from beacongate.models.capture import RedirectHop
from beacongate.models.case import EvidenceRef, Severity

NON_BINDING_NOTICE = "LLM Advisory (non-binding)"


class AdvisoryValidationError(ValueError):
    """Raised when an advisory payload does not match the output schema."""


Trimmed200 = Annotated[str, Field(max_length=200), AfterValidator(str.strip)]
Trimmed300 = Annotated[str, Field(max_length=300), AfterValidator(str.strip)]
Trimmed400 = Annotated[str, Field(max_length=400), AfterValidator(str.strip)]
Trimmed500 = Annotated[str, Field(max_length=500), AfterValidator(str.strip)]
Trimmed800 = Annotated[str, Field(max_length=800), AfterValidator(str.strip)]
Trimmed1200 = Annotated[str, Field(max_length=1200), AfterValidator(str.strip)]


# Input snapshot


class AdvisoryCase(CamelModel):
    id: str
    category: str
    ad_text: str
    landing_url: str


class AdvisoryEvidence(CamelModel):
    final_url: str | None = None
    redirect_chain: list[RedirectHop] = Field(default_factory=list)
    html_snippet: str = ""
    screenshot_artifact_id: str | None = None
    evidence_hash: str
    last_captured_at: str | None = None


class AdvisoryRuleRun(CamelModel):
    id: str
    rule_id: str
    severity: Severity
    triggered: bool
    matched_text: str | None = None
    evidence_ref: EvidenceRef
    explanation: str


class RetrievalMatch(CamelModel):
    document_title: str
    chunk_id: str
    score: float
    snippet: str


class AdvisoryRetrieval(CamelModel):
    last_run_id: str | None = None
    policy_matches: list[RetrievalMatch] = Field(default_factory=list)
    precedent_matches: list[RetrievalMatch] = Field(default_factory=list)


class GenerationParams(CamelModel):
    top_k_policy: int = 6
    top_k_precedent: int = 6


class AdvisoryInput(CamelModel):
    """The exact, canonical payload an advisory is generated from."""

    case: AdvisoryCase
    evidence: AdvisoryEvidence
    rule_runs: list[AdvisoryRuleRun] = Field(default_factory=list)
    retrieval: AdvisoryRetrieval = Field(default_factory=AdvisoryRetrieval)
    generation_params: GenerationParams = Field(default_factory=GenerationParams)


# Output schema

EvidenceSource = Literal["ad_text", "html", "redirect_chain"]
Level = Literal["low", "medium", "high"]
ClaimType = Literal["health", "finance", "pricing", "guarantee", "endorsement", "other"]


class EvidencePointer(CamelModel):
    source: EvidenceSource
    quote: Trimmed500
    pointer: Trimmed200


class Claim(CamelModel):
    text: Trimmed800
    type: ClaimType
    risk: Level
    evidence: list[EvidencePointer] = Field(max_length=5)


class EvasionSignal(CamelModel):
    signal: Trimmed300
    severity: Level
    evidence: list[EvidencePointer] = Field(max_length=5)


class PolicyCitation(CamelModel):
    chunk_id: str = Field(max_length=100)
    document_title: str = Field(max_length=300)
    snippet: str = Field(max_length=600)


class PolicyConcern(CamelModel):
    concern: Trimmed500
    severity: Level
    policy_citations: list[PolicyCitation] = Field(max_length=5)


class NextAction(CamelModel):
    action: Trimmed300
    priority: Literal["P0", "P1", "P2"]


class Advisory(CamelModel):
    """Structured, non-binding advisory."""

    summary: Trimmed1200
    claims: list[Claim] = Field(max_length=10)
    evasion_signals: list[EvasionSignal] = Field(max_length=8)
    policy_concerns: list[PolicyConcern] = Field(max_length=8)
    recommended_reviewer_questions: list[Trimmed400] = Field(max_length=8)
    recommended_next_actions: list[NextAction] = Field(max_length=8)
    non_binding_notice: Literal["LLM Advisory (non-binding)"]

    def cited_chunk_ids(self) -> list[str]:
        """Cited chunk ids in first-seen order, without duplicates."""

        seen: dict[str, None] = {}
        for concern in self.policy_concerns:
            for citation in concern.policy_citations:
                seen.setdefault(citation.chunk_id, None)
        return list(seen)


def validate_advisory(payload: Any) -> Advisory:
    """Validate a decoded advisory payload.

    Raises:
        AdvisoryValidationError: With a compact description of every schema violation.
    """

    if isinstance(payload, BaseModel):
        payload = payload.model_dump(mode="json", by_alias=True)
    try:
        return Advisory.model_validate(payload)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}" for err in e.errors()
        )
        raise AdvisoryValidationError(f"Schema validation failed: {problems}") from e
