"""Canonical advisory input assembly and hashing."""

from __future__ import annotations

import re
from typing import Any, Sequence

from bs4 import BeautifulSoup

from beacongate.capture.hashing import sha256_json
from beacongate.db.models import Case, Evidence, RetrievalRun, RuleRun
from beacongate.models.advisory import (
    AdvisoryCase,
    AdvisoryEvidence,
    AdvisoryInput,
    AdvisoryRetrieval,
    AdvisoryRuleRun,
    GenerationParams,
    RetrievalMatch,
)
from beacongate.models.capture import RedirectHop

HTML_SNIPPET_CHARS = 1500

_WS_RE = re.compile(r"\s+")


def html_to_text(html: str) -> str:
    """Visible-ish text of an HTML document with whitespace collapsed."""

    soup = BeautifulSoup(html, "lxml")
    for tag in soup(["script", "style", "noscript"]):
        tag.decompose()
    return _WS_RE.sub(" ", soup.get_text(" ")).strip()


def html_snippet(html: str | None, max_chars: int = HTML_SNIPPET_CHARS) -> str:
    if not html:
        return ""
    return html_to_text(html)[:max_chars]


def _matches(results: dict[str, Any] | None, key: str, limit: int) -> list[RetrievalMatch]:
    if not results:
        return []
    return [RetrievalMatch.model_validate(item) for item in (results.get(key) or [])[:limit]]


def build_advisory_input(
    *,
    case: Case,
    evidence: Evidence,
    html: str | None,
    redirect_chain: Sequence[RedirectHop] | None,
    screenshot_artifact_id: str | None,
    rule_runs: Sequence[RuleRun],
    retrieval_run: RetrievalRun | None,
    top_k_policy: int = 6,
    top_k_precedent: int = 6,
) -> AdvisoryInput:
    """Snapshot everything the advisory may draw on.

    The final URL is the last hop of the redirect trace. Rule runs keep their stored order, and
    retrieval matches keep their ranked order truncated to the configured top-K.
    """

    chain = list(redirect_chain or [])
    results = retrieval_run.results if retrieval_run is not None else None
    return AdvisoryInput(
        case=AdvisoryCase(
            id=case.id,
            category=case.category.value,
            ad_text=case.ad_text,
            landing_url=case.landing_url,
        ),
        evidence=AdvisoryEvidence(
            final_url=chain[-1].url if chain else None,
            redirect_chain=chain,
            html_snippet=html_snippet(html),
            screenshot_artifact_id=screenshot_artifact_id,
            evidence_hash=evidence.evidence_hash,
            last_captured_at=evidence.last_captured_at.isoformat() if evidence.last_captured_at else None,
        ),
        rule_runs=[
            AdvisoryRuleRun(
                id=r.id,
                rule_id=r.rule_id,
                severity=r.severity,
                triggered=r.triggered,
                matched_text=r.matched_text,
                evidence_ref=r.evidence_ref,
                explanation=r.explanation,
            )
            for r in rule_runs
        ],
        retrieval=AdvisoryRetrieval(
            last_run_id=retrieval_run.id if retrieval_run is not None else None,
            policy_matches=_matches(results, "policy", top_k_policy),
            precedent_matches=_matches(results, "precedent", top_k_precedent),
        ),
        generation_params=GenerationParams(top_k_policy=top_k_policy, top_k_precedent=top_k_precedent),
    )


def hash_advisory_input(data: AdvisoryInput) -> str:
    """sha256 over the sorted-key JSON of the input's wire form."""

    return sha256_json(data.to_wire())
