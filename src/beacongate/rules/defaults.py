"""Default rule table and rule-table loading."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from pydantic import TypeAdapter, ValidationError

from beacongate.logging import get_logger
from beacongate.models.rules import RuleDefinition

logger = get_logger(__name__)


class RuleConfigError(ValueError):
    """Raised when a rule table cannot be loaded."""


DEFAULT_RULES: list[dict[str, Any]] = [
    {
        "id": "RULE_PROHIBITED_PHRASE",
        "name": "Prohibited phrase in ad text",
        "description": "Ad text must not contain prohibited phrases (regex list).",
        "severity": "HIGH",
        "categoryScope": None,
        "enabled": True,
        "config": {
            "patterns": [
                {"regex": r"\bguaranteed\s+results?\b", "flags": "gi"},
                {"regex": r"\b100%\s+free\b", "flags": "gi"},
                {"regex": r"\bact\s+now\b", "flags": "gi"},
            ]
        },
    },
    {
        "id": "RULE_MISSING_DISCLAIMER",
        "name": "Missing disclaimer (Health category)",
        "description": "Health category ads must include a disclaimer phrase.",
        "severity": "MEDIUM",
        "categoryScope": "HEALTH",
        "enabled": True,
        "config": {
            "requiredPhrases": ["consult your doctor", "not medical advice", "for informational purposes"],
            "matchAny": True,
        },
    },
    {
        "id": "RULE_LANDING_DOMAIN_RISK",
        "name": "Landing URL domain risk",
        "description": "Landing URL domain must not be on the risk denylist.",
        "severity": "HIGH",
        "categoryScope": None,
        "enabled": True,
        "config": {"deniedDomains": ["risky-example.com", "phish-demo.net", "blocked-test.org"]},
    },
    {
        "id": "RULE_REDIRECT_COUNT",
        "name": "Excessive redirects",
        "description": "Landing page should not redirect more than the configured number of hops.",
        "severity": "LOW",
        "categoryScope": None,
        "enabled": True,
        "config": {"maxRedirects": 3},
    },
    {
        "id": "RULE_HIDDEN_TEXT_HEURISTIC",
        "name": "Hidden text heuristic (HTML)",
        "description": "Detect display:none, visibility:hidden and font-size:0 in the HTML snapshot.",
        "severity": "MEDIUM",
        "categoryScope": None,
        "enabled": True,
        "config": {
            "threshold": 5,
            "patterns": [r"display:\s*none", r"visibility:\s*hidden", r"font-size:\s*0"],
        },
    },
    {
        "id": "RULE_SUSPICIOUS_REDIRECTS",
        "name": "Suspicious redirects",
        "description": "Triggered if the redirect chain has 2+ hops or the final domain differs from the initial one.",
        "severity": "HIGH",
        "categoryScope": None,
        "enabled": True,
        "config": {"maxRedirects": 1},
    },
]

_TABLE_ADAPTER = TypeAdapter(list[RuleDefinition])


def parse_rule_table(raw: list[dict[str, Any]]) -> list[RuleDefinition]:
    """Validate a raw rule table.

    Raises:
        RuleConfigError: On unknown rule ids, malformed configs or duplicate ids.
    """

    try:
        rules = _TABLE_ADAPTER.validate_python(raw)
    except ValidationError as e:
        raise RuleConfigError(f"Invalid rule table: {e}") from e

    seen: set[str] = set()
    for rule in rules:
        if rule.id in seen:
            raise RuleConfigError(f"Duplicate rule id: {rule.id}")
        seen.add(rule.id)
    return rules


def load_rule_table(path: Path | None = None) -> list[RuleDefinition]:
    """Load the rule table from ``path`` or fall back to :data:`DEFAULT_RULES`."""

    if path is None:
        return parse_rule_table(DEFAULT_RULES)

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise RuleConfigError(f"Cannot read rule table {path}: {e}") from e
    if not isinstance(raw, list):
        raise RuleConfigError(f"Rule table {path} must be a JSON list")

    rules = parse_rule_table(raw)
    logger.info("Loaded %d rules from %s", len(rules), path)
    return rules
