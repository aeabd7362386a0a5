"""Deterministic advisory generator.

Used whenever no LLM provider is configured, and as the fallback when the external model fails.
The output depends only on the advisory input.
"""

from __future__ import annotations

from beacongate.models.advisory import (
    NON_BINDING_NOTICE,
    Advisory,
    AdvisoryInput,
    Claim,
    EvasionSignal,
    EvidencePointer,
    NextAction,
    PolicyCitation,
    PolicyConcern,
)
from beacongate.models.case import Severity

MOCK_MODEL = "mock-v1"

CLAIM_KEYWORDS: dict[str, list[str]] = {
    "health": ["health", "doctor", "cure", "treatment", "medical", "joint", "pain", "relief", "supplement"],
    "finance": ["guarantee", "return", "investment", "profit", "money", "cash", "refund"],
    "guarantee": ["guarantee", "promise", "ensure", "100%", "best"],
    "endorsement": ["recommended", "approved", "certified"],
}

MAX_CLAIMS = 5


def extract_sentence_containing(text: str, word: str) -> str:
    idx = text.lower().find(word)
    if idx == -1:
        return text[:120]
    start = text.rfind(".", 0, idx) + 1
    end = text.find(".", idx + 1)
    sentence = (text[start:] if end == -1 else text[start : end + 1]).strip()
    return sentence[:197] + "…" if len(sentence) > 200 else sentence


def _claims(data: AdvisoryInput) -> list[Claim]:
    ad_text = data.case.ad_text
    lower = ad_text.lower()
    claims: list[Claim] = []
    for claim_type, keywords in CLAIM_KEYWORDS.items():
        for kw in keywords:
            if kw not in lower:
                continue
            sentence = extract_sentence_containing(ad_text, kw)
            claims.append(
                Claim(
                    text=sentence,
                    type=claim_type,
                    risk="medium",
                    evidence=[
                        EvidencePointer(
                            source="ad_text", quote=sentence[:200], pointer=f"adText:chars 0-{len(ad_text)}"
                        )
                    ],
                )
            )
            if len(claims) >= MAX_CLAIMS:
                return claims
    if not claims:
        claims.append(
            Claim(
                text="General promotional claim",
                type="other",
                risk="low",
                evidence=[
                    EvidencePointer(
                        source="ad_text", quote=ad_text[:150], pointer=f"adText:chars 0-{min(150, len(ad_text))}"
                    )
                ],
            )
        )
    return claims


def _evasion_signals(data: AdvisoryInput) -> list[EvasionSignal]:
    signals: list[EvasionSignal] = []
    hops = len(data.evidence.redirect_chain)
    if hops >= 2:
        signals.append(
            EvasionSignal(
                signal="multi-hop redirect",
                severity="high" if hops > 3 else "medium",
                evidence=[
                    EvidencePointer(
                        source="redirect_chain", quote=f"{hops} hops", pointer=f"redirectChain[0..{hops - 1}]"
                    )
                ],
            )
        )
    hidden = next(
        (
            r
            for r in data.rule_runs
            if r.triggered and ("hidden" in r.rule_id.lower() or "hidden" in r.explanation.lower())
        ),
        None,
    )
    if hidden is not None:
        signals.append(
            EvasionSignal(
                signal="hidden text",
                severity="high" if hidden.severity == Severity.HIGH else "medium",
                evidence=[
                    EvidencePointer(source="html", quote=(hidden.matched_text or "")[:150], pointer="htmlSnippet")
                ],
            )
        )
    return signals[:8]


def _policy_concerns(data: AdvisoryInput) -> list[PolicyConcern]:
    high = [r for r in data.rule_runs if r.triggered and r.severity == Severity.HIGH]
    matches = data.retrieval.policy_matches[:3]
    concerns: list[PolicyConcern] = []
    if high and matches:
        rule_ids = ", ".join(r.rule_id for r in high)
        for m in matches:
            concerns.append(
                PolicyConcern(
                    concern=f"Policy relevance: {m.document_title}. Rule(s) triggered: {rule_ids}.",
                    severity="high",
                    policy_citations=[
                        PolicyCitation(chunk_id=m.chunk_id, document_title=m.document_title, snippet=m.snippet[:400])
                    ],
                )
            )
    if not concerns:
        concerns.append(
            PolicyConcern(
                concern="Review policy guidance for this category and ad type.",
                severity="medium",
                policy_citations=[
                    PolicyCitation(chunk_id=m.chunk_id, document_title=m.document_title, snippet=m.snippet[:200])
                    for m in matches
                ],
            )
        )
    return concerns


def _questions(data: AdvisoryInput) -> list[str]:
    questions: list[str] = []
    if len(data.evidence.redirect_chain) >= 2:
        questions.append("Does the redirect chain comply with disclosure requirements?")
    if any(r.triggered and r.severity == Severity.HIGH for r in data.rule_runs):
        questions.append("Are triggered rule findings substantiated by evidence?")
    questions.append("Does the ad and landing experience align with category policy?")
    return questions


def _next_actions(data: AdvisoryInput) -> list[NextAction]:
    actions = [
        NextAction(action="Check disclaimer presence where required", priority="P0"),
        NextAction(action="Verify claim substantiation against evidence", priority="P1"),
    ]
    if data.retrieval.policy_matches:
        actions.append(NextAction(action="Review policy and precedent matches", priority="P2"))
    return actions


def generate_mock_advisory(data: AdvisoryInput) -> Advisory:
    claims = _claims(data)
    signals = _evasion_signals(data)
    concerns = _policy_concerns(data)

    summary = [f"Advisory identifies {len(claims)} claim(s) and {len(signals)} evasion signal(s)."]
    if concerns:
        summary.append(f"{len(concerns)} policy concern(s) cited from retrieval.")
    summary.append("Reviewer should verify evidence and apply policy. This output is non-binding.")

    return Advisory(
        summary=" ".join(summary),
        claims=claims,
        evasion_signals=signals,
        policy_concerns=concerns,
        recommended_reviewer_questions=_questions(data),
        recommended_next_actions=_next_actions(data),
        non_binding_notice=NON_BINDING_NOTICE,
    )
