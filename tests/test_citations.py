"""Tests for advisory citation scrubbing."""

from __future__ import annotations

from beacongate.advisory.citations import INVALID_CITATIONS_NOTE, dedupe, scrub_citations
from beacongate.models.advisory import Advisory, validate_advisory


def _advisory(*citation_groups: list[str]) -> Advisory:
    return validate_advisory(
        {
            "summary": "s",
            "claims": [],
            "evasionSignals": [],
            "policyConcerns": [
                {
                    "concern": f"c{i}",
                    "severity": "high",
                    "policyCitations": [{"chunkId": cid, "documentTitle": "t", "snippet": "x"} for cid in ids],
                }
                for i, ids in enumerate(citation_groups)
            ],
            "recommendedReviewerQuestions": [],
            "recommendedNextActions": [],
            "nonBindingNotice": "LLM Advisory (non-binding)",
        }
    )


def _known(*ids: str):
    def lookup(candidates: list[str]) -> set[str]:
        return {c for c in candidates if c in ids}

    return lookup


def test_scrub_removes_only_dangling_ids() -> None:
    """Dangling citations go; valid citations and every concern stay."""

    adv = _advisory(["chk_good1", "chk_bad1"], ["chk_bad2"], ["chk_good2", "chk_bad1"])
    scrub = scrub_citations(adv, _known("chk_good1", "chk_good2"))
    assert scrub.removed_chunk_ids == ["chk_bad1", "chk_bad2"]
    concerns = scrub.advisory.policy_concerns
    assert [c.concern for c in concerns] == ["c0", "c1", "c2"]
    assert [[p.chunk_id for p in c.policy_citations] for c in concerns] == [["chk_good1"], [], ["chk_good2"]]
    assert scrub.note == INVALID_CITATIONS_NOTE + "chk_bad1, chk_bad2"


def test_scrub_noop_when_all_valid() -> None:
    """Nothing changes when every cited chunk exists."""

    adv = _advisory(["chk_a"], ["chk_b"])
    scrub = scrub_citations(adv, _known("chk_a", "chk_b"))
    assert scrub.advisory is adv
    assert scrub.removed_chunk_ids == []
    assert scrub.note is None


def test_scrub_without_citations_skips_lookup() -> None:
    """No citations means no store lookup."""

    def fail(_ids: list[str]) -> set[str]:
        raise AssertionError("lookup not expected")

    assert scrub_citations(_advisory([]), fail).removed_chunk_ids == []


def test_dedupe_keeps_first_seen_order() -> None:
    """It should keep first-seen order."""

    assert dedupe(["b", "a", "b", "c", "a"]) == ["b", "a", "c"]
