"""Deterministic rule evaluation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from beacongate.logging import get_logger
from beacongate.models.case import EvidenceRef, Severity
from beacongate.models.rules import RuleDefinition, RuleInput, RuleResult

logger = get_logger(__name__)


@dataclass(frozen=True)
class RuleOutcome:
    """One rule's verdict, with the rule metadata needed to persist and score it."""

    rule_id: str
    severity: Severity
    triggered: bool
    matched_text: str | None
    explanation: str
    evidence_ref: EvidenceRef
    config_hash: str


class RuleEngine:
    """Evaluate a fixed rule table against case data.

    Evaluation is a pure function of the table and the input; disabled rules are skipped and
    category-scoped rules report that they do not apply.
    """

    def __init__(self, rules: Sequence[RuleDefinition]) -> None:
        self._rules = list(rules)

    @property
    def rules(self) -> list[RuleDefinition]:
        return list(self._rules)

    def evaluate(self, data: RuleInput) -> list[RuleOutcome]:
        outcomes: list[RuleOutcome] = []
        for rule in self._rules:
            if not rule.enabled:
                continue
            if rule.applies_to(data.category):
                result = rule.evaluate(data)
            else:
                scope = rule.category_scope.value.title() if rule.category_scope else ""
                result = RuleResult(False, None, f"Rule applies only to {scope} category.")
            outcomes.append(
                RuleOutcome(
                    rule_id=rule.id,
                    severity=rule.severity,
                    triggered=result.triggered,
                    matched_text=result.matched_text,
                    explanation=result.explanation,
                    evidence_ref=rule.evidence_ref,
                    config_hash=rule.config_hash,
                )
            )

        triggered = [o.rule_id for o in outcomes if o.triggered]
        logger.info("Evaluated %d rules, triggered=%s", len(outcomes), triggered or "none")
        return outcomes
