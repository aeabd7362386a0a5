"""Citation bookkeeping for advisories."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Iterable

from beacongate.logging import get_logger
from beacongate.models.advisory import Advisory, AdvisoryInput, validate_advisory

logger = get_logger(__name__)

INVALID_CITATIONS_NOTE = "Some policy citations were invalid (chunkId not found) and were removed: "


def dedupe(ids: Iterable[str]) -> list[str]:
    """De-duplicate while keeping order."""

    seen: set[str] = set()
    out: list[str] = []
    for x in ids:
        if x not in seen:
            out.append(x)
            seen.add(x)
    return out


def build_citations(data: AdvisoryInput, advisory: Advisory) -> dict[str, Any]:
    """Audit record of everything an advisory points at."""

    return {
        "evidenceArtifactIds": [data.evidence.screenshot_artifact_id] if data.evidence.screenshot_artifact_id else [],
        "ruleRunIds": [r.id for r in data.rule_runs],
        "chunkIds": advisory.cited_chunk_ids(),
    }


@dataclass(frozen=True)
class CitationScrub:
    """Result of checking an advisory's policy citations against the knowledge base."""

    advisory: Advisory
    removed_chunk_ids: list[str] = field(default_factory=list)

    @property
    def note(self) -> str | None:
        if not self.removed_chunk_ids:
            return None
        return INVALID_CITATIONS_NOTE + ", ".join(self.removed_chunk_ids)


def scrub_citations(advisory: Advisory, known_ids: Callable[[list[str]], set[str]]) -> CitationScrub:
    """Drop policy citations whose chunk id does not exist.

    Only the dangling citations are removed; their concerns stay. The cleaned payload is
    validated again against the full schema.

    Args:
        advisory: A schema-valid advisory.
        known_ids: Returns the subset of the given chunk ids that exist.

    Raises:
        AdvisoryValidationError: If the cleaned payload no longer matches the schema.
    """

    cited = advisory.cited_chunk_ids()
    if not cited:
        return CitationScrub(advisory=advisory)
    valid = known_ids(cited)
    removed = [cid for cid in cited if cid not in valid]
    if not removed:
        return CitationScrub(advisory=advisory)

    payload = advisory.to_wire()
    for concern in payload["policyConcerns"]:
        concern["policyCitations"] = [c for c in concern["policyCitations"] if c["chunkId"] in valid]
    logger.warning("Removed dangling policy citations: %s", ", ".join(removed))
    return CitationScrub(advisory=validate_advisory(payload), removed_chunk_ids=removed)
