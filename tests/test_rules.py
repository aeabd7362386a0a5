"""Tests for the rule table, rule engine and risk scoring."""

from __future__ import annotations

import copy
import json
from pathlib import Path

import pytest

from beacongate.models.capture import RedirectHop
from beacongate.models.case import Category, RiskTier, Severity
from beacongate.models.rules import RuleInput
from beacongate.rules.defaults import DEFAULT_RULES, RuleConfigError, load_rule_table, parse_rule_table
from beacongate.rules.engine import RuleEngine, RuleOutcome
from beacongate.rules.scoring import compute_risk_score


def _engine(rules: list[dict] | None = None) -> RuleEngine:
    return RuleEngine(parse_rule_table(rules if rules is not None else DEFAULT_RULES))


def _by_id(outcomes: list[RuleOutcome]) -> dict[str, RuleOutcome]:
    return {o.rule_id: o for o in outcomes}


def _input(ad_text: str = "Great shoes.", category: Category = Category.GENERAL, **kwargs: object) -> RuleInput:
    return RuleInput(ad_text=ad_text, category=category, landing_url="https://shop.example.com/x", **kwargs)  # type: ignore[arg-type]


def _hidden_html(n: int) -> str:
    return "<html>" + "".join(f'<span style="display:none">x{i}</span>' for i in range(n)) + "</html>"


def test_prohibited_phrase_triggers() -> None:
    """'Act now' should trigger the prohibited-phrase rule with the matched text."""

    out = _by_id(_engine().evaluate(_input("Act now or miss out.")))["RULE_PROHIBITED_PHRASE"]
    assert out.triggered is True
    assert out.matched_text == "Act now"
    assert out.explanation == 'Prohibited phrase found: "Act now"'


def test_disclaimer_present_for_health() -> None:
    """A health ad with a disclaimer should not trigger missing-disclaimer."""

    out = _by_id(_engine().evaluate(_input("Consult your doctor before use.", Category.HEALTH)))
    assert out["RULE_MISSING_DISCLAIMER"].triggered is False


def test_disclaimer_missing_for_health() -> None:
    """A health ad without any disclaimer phrase should trigger."""

    out = _by_id(_engine().evaluate(_input("Miracle pills!", Category.HEALTH)))["RULE_MISSING_DISCLAIMER"]
    assert out.triggered is True
    assert "consult your doctor" in out.explanation


@pytest.mark.parametrize("category", [c for c in Category if c != Category.HEALTH])
def test_disclaimer_never_triggers_outside_health(category: Category) -> None:
    """The health-scoped rule reports out-of-scope for every other category."""

    out = _by_id(_engine().evaluate(_input("Miracle pills!", category)))["RULE_MISSING_DISCLAIMER"]
    assert out.triggered is False
    assert out.explanation == "Rule applies only to Health category."


def test_two_hop_redirect_chain_is_suspicious() -> None:
    """A redirect chain of length 2 always triggers suspicious-redirects."""

    chain = [RedirectHop(url="https://a.example.com", status=302), RedirectHop(url="https://a.example.com/x", status=200)]
    out = _by_id(_engine().evaluate(_input(redirect_chain=chain)))["RULE_SUSPICIOUS_REDIRECTS"]
    assert out.triggered is True
    assert out.matched_text == "2"


def test_single_hop_domain_change_and_no_chain() -> None:
    """A single hop on the same domain passes; a missing chain is not evidence."""

    same = [RedirectHop(url="https://shop.example.com/x", status=200)]
    outcomes = _by_id(_engine().evaluate(_input(redirect_chain=same)))
    assert outcomes["RULE_SUSPICIOUS_REDIRECTS"].triggered is False
    assert outcomes["RULE_REDIRECT_COUNT"].explanation == "Redirect count 1 within limit (max 3)."

    missing = _by_id(_engine().evaluate(_input()))
    assert missing["RULE_SUSPICIOUS_REDIRECTS"].explanation == "No redirect chain available."


@pytest.mark.parametrize(("count", "triggered"), [(6, True), (5, True), (4, False)])
def test_hidden_text_threshold(count: int, triggered: bool) -> None:
    """Six display:none spans against threshold 5 trigger; four do not."""

    out = _by_id(_engine().evaluate(_input(html_content=_hidden_html(count))))["RULE_HIDDEN_TEXT_HEURISTIC"]
    assert out.triggered is triggered


def test_denylisted_domain() -> None:
    """A landing URL on the denylist should trigger the domain rule."""

    data = RuleInput(ad_text="x", category=Category.GENERAL, landing_url="https://RISKY-example.com/offer")
    out = _by_id(_engine().evaluate(data))["RULE_LANDING_DOMAIN_RISK"]
    assert out.triggered is True
    assert out.matched_text == "risky-example.com"


def test_disabled_rules_are_skipped_and_order_is_kept() -> None:
    """Disabled rules produce no outcome; the rest keep table order."""

    rules = copy.deepcopy(DEFAULT_RULES)
    rules[0]["enabled"] = False
    ids = [o.rule_id for o in _engine(rules).evaluate(_input())]
    assert ids == [r["id"] for r in DEFAULT_RULES[1:]]


def test_outcomes_carry_config_snapshot() -> None:
    """Each outcome records severity and a config hash that tracks the config."""

    rules = copy.deepcopy(DEFAULT_RULES)
    before = _by_id(_engine(rules).evaluate(_input()))["RULE_REDIRECT_COUNT"]
    rules[3]["config"]["maxRedirects"] = 5
    after = _by_id(_engine(rules).evaluate(_input()))["RULE_REDIRECT_COUNT"]
    assert before.severity == Severity.LOW
    assert len(before.config_hash) == 64
    assert before.config_hash != after.config_hash


def test_unknown_rule_id_is_rejected() -> None:
    """Unknown rule ids fail at load time."""

    rules = copy.deepcopy(DEFAULT_RULES) + [{"id": "RULE_NOPE", "name": "x", "severity": "LOW", "config": {}}]
    with pytest.raises(RuleConfigError):
        parse_rule_table(rules)


def test_bad_regex_and_duplicates_are_rejected() -> None:
    """Malformed patterns and duplicate ids fail at load time."""

    rules = copy.deepcopy(DEFAULT_RULES)
    rules[0]["config"]["patterns"] = [{"regex": "(unclosed", "flags": "gi"}]
    with pytest.raises(RuleConfigError):
        parse_rule_table(rules)
    with pytest.raises(RuleConfigError):
        parse_rule_table(copy.deepcopy(DEFAULT_RULES) + [copy.deepcopy(DEFAULT_RULES[0])])


def test_load_rule_table_from_file(tmp_path: Path) -> None:
    """A JSON rule file replaces the defaults."""

    path = tmp_path / "rules.json"
    path.write_text(json.dumps(DEFAULT_RULES[:2]), encoding="utf-8")
    assert [r.id for r in load_rule_table(path)] == ["RULE_PROHIBITED_PHRASE", "RULE_MISSING_DISCLAIMER"]
    assert len(load_rule_table()) == len(DEFAULT_RULES)


def _run(severity: Severity, triggered: bool = True) -> RuleOutcome:
    return RuleOutcome("R", severity, triggered, None, "", "AD_TEXT", "h")  # type: ignore[arg-type]


@pytest.mark.parametrize(
    ("runs", "score", "tier"),
    [
        ([], 10, RiskTier.LOW),
        ([Severity.HIGH], 60, RiskTier.MEDIUM),
        ([Severity.HIGH, Severity.HIGH], 100, RiskTier.HIGH),
        ([Severity.MEDIUM, Severity.MEDIUM], 60, RiskTier.MEDIUM),
        ([Severity.LOW], 20, RiskTier.LOW),
        ([Severity.HIGH, Severity.MEDIUM], 85, RiskTier.HIGH),
    ],
)
def test_compute_risk_score(runs: list[Severity], score: int, tier: RiskTier) -> None:
    """Scores start at 10, add per-severity points and cap at 100."""

    result = compute_risk_score([_run(s) for s in runs] + [_run(Severity.HIGH, triggered=False)])
    assert (result.score, result.tier) == (score, tier)
