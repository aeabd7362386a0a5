"""Rule table models.

Each rule id maps to exactly one config shape. The table is a tagged union discriminated on ``id``,
so an unknown id or a config that does not fit its rule fails validation when the table is loaded.
Every rule knows how to evaluate itself against a :class:`RuleInput`.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Annotated, ClassVar, Literal, Union
from urllib.parse import urlsplit

from pydantic import Field, field_validator

from beacongate.capture.hashing import sha256_json
from beacongate.models.base import CamelModel
from beacongate.models.capture import RedirectHop
from beacongate.models.case import Category, EvidenceRef, Severity

_FLAG_MAP = {"i": re.IGNORECASE, "m": re.MULTILINE, "s": re.DOTALL, "g": 0, "u": 0}


@dataclass(frozen=True)
class RuleInput:
    """Everything a rule may look at."""

    ad_text: str
    category: Category
    landing_url: str
    html_content: str | None = None
    redirect_chain: list[RedirectHop] | None = None


@dataclass(frozen=True)
class RuleResult:
    triggered: bool
    matched_text: str | None
    explanation: str


def _hostname(url: str) -> str:
    try:
        return (urlsplit(url).hostname or "").lower()
    except ValueError:
        return ""


class PhrasePattern(CamelModel):
    """A regular expression with JavaScript-style flag letters."""

    regex: str
    flags: str = "gi"

    @field_validator("flags")
    @classmethod
    def _known_flags(cls, v: str) -> str:
        unknown = set(v) - set(_FLAG_MAP)
        if unknown:
            raise ValueError(f"unsupported regex flags: {''.join(sorted(unknown))}")
        return v

    @field_validator("regex")
    @classmethod
    def _compiles(cls, v: str) -> str:
        try:
            re.compile(v)
        except re.error as e:
            raise ValueError(f"invalid regex {v!r}: {e}") from e
        return v

    def compile(self) -> re.Pattern[str]:
        flags = 0
        for letter in self.flags:
            flags |= _FLAG_MAP[letter]
        return re.compile(self.regex, flags)


class ProhibitedPhraseConfig(CamelModel):
    patterns: list[PhrasePattern] = Field(min_length=1)


class MissingDisclaimerConfig(CamelModel):
    required_phrases: list[str] = Field(min_length=1)
    match_any: bool = True


class LandingDomainRiskConfig(CamelModel):
    denied_domains: list[str] = Field(default_factory=list)


class RedirectCountConfig(CamelModel):
    max_redirects: int = Field(ge=0)


class HiddenTextConfig(CamelModel):
    threshold: int = Field(ge=1)
    patterns: list[str] = Field(min_length=1)

    @field_validator("patterns")
    @classmethod
    def _compiles(cls, v: list[str]) -> list[str]:
        for pattern in v:
            try:
                re.compile(pattern)
            except re.error as e:
                raise ValueError(f"invalid regex {pattern!r}: {e}") from e
        return v


class SuspiciousRedirectsConfig(CamelModel):
    max_redirects: int = Field(default=1, ge=0)


class _RuleBase(CamelModel):
    name: str
    description: str = ""
    severity: Severity
    category_scope: Category | None = None
    enabled: bool = True

    evidence_ref: ClassVar[EvidenceRef] = EvidenceRef.AD_TEXT

    @property
    def config_hash(self) -> str:
        """sha256 over the sorted-key JSON of this rule's config block."""

        return sha256_json(self.config.model_dump(mode="json", by_alias=True))  # type: ignore[attr-defined]

    def applies_to(self, category: Category) -> bool:
        return self.category_scope is None or self.category_scope == category

    def evaluate(self, data: RuleInput) -> RuleResult:
        raise NotImplementedError


class ProhibitedPhraseRule(_RuleBase):
    id: Literal["RULE_PROHIBITED_PHRASE"]
    config: ProhibitedPhraseConfig

    def evaluate(self, data: RuleInput) -> RuleResult:
        for pattern in self.config.patterns:
            m = pattern.compile().search(data.ad_text)
            if m:
                return RuleResult(True, m.group(0), f'Prohibited phrase found: "{m.group(0)}"')
        return RuleResult(False, None, "No prohibited phrases found in ad text.")


class MissingDisclaimerRule(_RuleBase):
    id: Literal["RULE_MISSING_DISCLAIMER"]
    config: MissingDisclaimerConfig

    def evaluate(self, data: RuleInput) -> RuleResult:
        lower = data.ad_text.lower()
        found = [p for p in self.config.required_phrases if p.lower() in lower]
        if self.config.match_any:
            if found:
                return RuleResult(False, None, f'Disclaimer phrase found: "{found[0]}"')
            examples = ", ".join(f"'{p}'" for p in self.config.required_phrases[:2])
            return RuleResult(
                True,
                None,
                f"Ad must include at least one disclaimer phrase (e.g. {examples}).",
            )
        missing = [p for p in self.config.required_phrases if p not in found]
        if missing:
            return RuleResult(True, None, f'Missing required disclaimer phrase: "{missing[0]}"')
        return RuleResult(False, None, "All required disclaimer phrases present.")


class LandingDomainRiskRule(_RuleBase):
    id: Literal["RULE_LANDING_DOMAIN_RISK"]
    config: LandingDomainRiskConfig
    evidence_ref: ClassVar[EvidenceRef] = EvidenceRef.LANDING_URL

    def evaluate(self, data: RuleInput) -> RuleResult:
        domain = _hostname(data.landing_url)
        denied = {d.lower() for d in self.config.denied_domains}
        if domain in denied:
            return RuleResult(True, domain, f'Domain "{domain}" is on the risk denylist.')
        return RuleResult(False, None, f'Domain "{domain}" not on denylist.')


class RedirectCountRule(_RuleBase):
    id: Literal["RULE_REDIRECT_COUNT"]
    config: RedirectCountConfig
    evidence_ref: ClassVar[EvidenceRef] = EvidenceRef.REDIRECT_CHAIN

    def evaluate(self, data: RuleInput) -> RuleResult:
        if data.redirect_chain is None:
            return RuleResult(False, None, "No redirect chain available.")
        count = len(data.redirect_chain)
        limit = self.config.max_redirects
        if count > limit:
            return RuleResult(True, str(count), f"Redirect count {count} exceeds max {limit}.")
        return RuleResult(False, None, f"Redirect count {count} within limit (max {limit}).")


class HiddenTextHeuristicRule(_RuleBase):
    id: Literal["RULE_HIDDEN_TEXT_HEURISTIC"]
    config: HiddenTextConfig
    evidence_ref: ClassVar[EvidenceRef] = EvidenceRef.HTML_SNAPSHOT

    def evaluate(self, data: RuleInput) -> RuleResult:
        if not data.html_content:
            return RuleResult(False, None, "No HTML snapshot available.")
        count = sum(
            len(re.findall(pattern, data.html_content, re.IGNORECASE)) for pattern in self.config.patterns
        )
        threshold = self.config.threshold
        if count >= threshold:
            return RuleResult(
                True, None, f"Hidden-style patterns found {count} times (threshold {threshold})."
            )
        return RuleResult(False, None, f"Hidden-style count {count} below threshold {threshold}.")


class SuspiciousRedirectsRule(_RuleBase):
    id: Literal["RULE_SUSPICIOUS_REDIRECTS"]
    config: SuspiciousRedirectsConfig = Field(default_factory=SuspiciousRedirectsConfig)
    evidence_ref: ClassVar[EvidenceRef] = EvidenceRef.REDIRECT_CHAIN

    def evaluate(self, data: RuleInput) -> RuleResult:
        chain = data.redirect_chain
        if not chain:
            return RuleResult(False, None, "No redirect chain available.")
        if len(chain) >= 2:
            return RuleResult(True, str(len(chain)), f"Redirect chain length {len(chain)} >= 2.")
        initial = _hostname(chain[0].url)
        final = _hostname(chain[-1].url)
        if initial != final:
            return RuleResult(
                True, f"{initial} -> {final}", f"Final domain {final} differs from initial {initial}."
            )
        return RuleResult(False, None, "Redirect chain within limits.")


RuleDefinition = Annotated[
    Union[
        ProhibitedPhraseRule,
        MissingDisclaimerRule,
        LandingDomainRiskRule,
        RedirectCountRule,
        HiddenTextHeuristicRule,
        SuspiciousRedirectsRule,
    ],
    Field(discriminator="id"),
]
