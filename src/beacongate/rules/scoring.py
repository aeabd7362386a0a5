"""Risk scoring from rule outcomes."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Protocol

from beacongate.models.case import RiskTier, Severity

BASE_SCORE = 10
MAX_SCORE = 100

SEVERITY_POINTS: dict[Severity, int] = {
    Severity.HIGH: 50,
    Severity.MEDIUM: 25,
    Severity.LOW: 10,
}


class ScoredRule(Protocol):
    triggered: bool
    severity: Severity


@dataclass(frozen=True)
class RiskScore:
    score: int
    tier: RiskTier


def tier_for(score: int) -> RiskTier:
    if score >= 70:
        return RiskTier.HIGH
    if score >= 40:
        return RiskTier.MEDIUM
    return RiskTier.LOW


def compute_risk_score(runs: Iterable[ScoredRule]) -> RiskScore:
    """Start at 10, add points per triggered rule by severity, cap at 100."""

    score = BASE_SCORE + sum(SEVERITY_POINTS[Severity(r.severity)] for r in runs if r.triggered)
    score = min(MAX_SCORE, score)
    return RiskScore(score=score, tier=tier_for(score))
