"""Tests for advisory input, schema, mock and generator."""

from __future__ import annotations

import json

import pytest

from beacongate.advisory.generator import AdvisoryGenerator
from beacongate.advisory.input_builder import hash_advisory_input, html_snippet
from beacongate.advisory.mock import MOCK_MODEL, generate_mock_advisory
from beacongate.advisory.prompts import PROMPT_VERSION
from beacongate.models.advisory import (
    NON_BINDING_NOTICE,
    AdvisoryCase,
    AdvisoryEvidence,
    AdvisoryInput,
    AdvisoryRetrieval,
    AdvisoryRuleRun,
    AdvisoryValidationError,
    RetrievalMatch,
    validate_advisory,
)
from beacongate.models.capture import RedirectHop
from beacongate.models.case import EvidenceRef, Severity

from conftest import FakeChatModel


def _input(*, hops: int = 1, hidden: bool = True) -> AdvisoryInput:
    chain = [RedirectHop(url=f"https://h{i}.example.com", status=302) for i in range(hops)]
    rule_runs = [
        AdvisoryRuleRun(
            id="rr_1",
            rule_id="RULE_PROHIBITED_PHRASE",
            severity=Severity.HIGH,
            triggered=True,
            matched_text="guaranteed results",
            evidence_ref=EvidenceRef.AD_TEXT,
            explanation='Prohibited phrase found: "guaranteed results"',
        ),
        AdvisoryRuleRun(
            id="rr_2",
            rule_id="RULE_HIDDEN_TEXT_HEURISTIC",
            severity=Severity.MEDIUM,
            triggered=hidden,
            matched_text=None,
            evidence_ref=EvidenceRef.HTML_SNAPSHOT,
            explanation="Hidden-style patterns found 6 times (threshold 5).",
        ),
    ]
    return AdvisoryInput(
        case=AdvisoryCase(
            id="case_1",
            category="HEALTH",
            ad_text="Joint pain relief with guaranteed results. Recommended by experts.",
            landing_url="https://h0.example.com",
        ),
        evidence=AdvisoryEvidence(
            final_url=chain[-1].url if chain else None,
            redirect_chain=chain,
            html_snippet="Buy now",
            screenshot_artifact_id="art_1",
            evidence_hash="e" * 64,
        ),
        rule_runs=rule_runs,
        retrieval=AdvisoryRetrieval(
            last_run_id="ret_1",
            policy_matches=[
                RetrievalMatch(document_title="health claims", chunk_id="chk_aaaaaaaaaaaa", score=0.9, snippet="No cures."),
                RetrievalMatch(document_title="cloaking", chunk_id="chk_bbbbbbbbbbbb", score=0.5, snippet="No hiding."),
            ],
        ),
    )


def test_input_hash_is_stable_and_sensitive() -> None:
    """Identical inputs hash alike; any change alters the hash."""

    assert hash_advisory_input(_input()) == hash_advisory_input(_input())
    assert hash_advisory_input(_input()) != hash_advisory_input(_input(hops=2))


def test_wire_form_is_camel_case() -> None:
    """The snapshot serializes with camelCase keys."""

    wire = _input().to_wire()
    assert set(wire) == {"case", "evidence", "ruleRuns", "retrieval", "generationParams"}
    assert wire["evidence"]["screenshotArtifactId"] == "art_1"
    assert wire["generationParams"] == {"topKPolicy": 6, "topKPrecedent": 6}


def test_html_snippet_strips_markup() -> None:
    """Scripts and tags are dropped and the text is bounded."""

    html = "<html><script>var x=1;</script><body><p>Hello</p>\n<p>world</p></body></html>"
    assert html_snippet(html) == "Hello world"
    assert html_snippet(None) == ""
    assert len(html_snippet("<p>" + "a " * 2000 + "</p>", 100)) == 100


def test_mock_is_deterministic() -> None:
    """The mock advisory depends only on its input."""

    a = generate_mock_advisory(_input(hops=2))
    b = generate_mock_advisory(_input(hops=2))
    assert a.to_wire() == b.to_wire()
    assert a.non_binding_notice == NON_BINDING_NOTICE


def test_mock_content() -> None:
    """Claims, evasion signals and cited concerns follow the case evidence."""

    adv = generate_mock_advisory(_input(hops=2))
    assert {c.type for c in adv.claims} >= {"health", "guarantee"}
    assert len(adv.claims) <= 5
    assert [s.signal for s in adv.evasion_signals] == ["multi-hop redirect", "hidden text"]
    assert adv.cited_chunk_ids() == ["chk_aaaaaaaaaaaa", "chk_bbbbbbbbbbbb"]
    assert adv.summary.startswith(f"Advisory identifies {len(adv.claims)} claim(s) and 2 evasion signal(s).")

    quiet = generate_mock_advisory(_input(hops=1, hidden=False))
    assert quiet.evasion_signals == []


def test_schema_requires_exact_notice() -> None:
    """Any notice other than the exact literal is a schema failure."""

    payload = generate_mock_advisory(_input()).to_wire()
    validate_advisory(payload)
    for bad in ("LLM advisory (non-binding)", "LLM Advisory", ""):
        with pytest.raises(AdvisoryValidationError, match="nonBindingNotice"):
            validate_advisory({**payload, "nonBindingNotice": bad})
    missing = dict(payload)
    del missing["nonBindingNotice"]
    with pytest.raises(AdvisoryValidationError):
        validate_advisory(missing)


def test_schema_bounds() -> None:
    """Enumerations and list bounds are enforced."""

    payload = generate_mock_advisory(_input()).to_wire()
    with pytest.raises(AdvisoryValidationError):
        validate_advisory({**payload, "recommendedNextActions": [{"action": "x", "priority": "P3"}]})
    with pytest.raises(AdvisoryValidationError):
        validate_advisory({**payload, "recommendedReviewerQuestions": ["q"] * 9})


def test_generator_without_model_uses_mock() -> None:
    """No chat model means exactly one mock result."""

    [result] = AdvisoryGenerator(None).generate(_input())
    assert (result.provider, result.model, result.prompt_version) == ("mock", MOCK_MODEL, PROMPT_VERSION)
    assert result.ok and result.error_message is None
    assert result.citations == {
        "evidenceArtifactIds": ["art_1"],
        "ruleRunIds": ["rr_1", "rr_2"],
        "chunkIds": ["chk_aaaaaaaaaaaa", "chk_bbbbbbbbbbbb"],
    }


def test_generator_external_success() -> None:
    """A valid fenced JSON reply is parsed, validated and used alone."""

    reply = "```json\n" + json.dumps(generate_mock_advisory(_input()).to_wire()) + "\n```"
    chat = FakeChatModel(reply)
    [result] = AdvisoryGenerator(chat, temperature=0.2).generate(_input())
    assert result.provider == "openai" and result.model == "fake-chat"
    assert result.ok
    assert result.input_hash == hash_advisory_input(_input())
    system, user = chat.calls[0]
    assert system.role == "system" and "NON-BINDING" in system.content
    assert '"ruleRuns"' in user.content


@pytest.mark.parametrize(
    ("chat", "error"),
    [
        (FakeChatModel("not json at all"), "Model response was not valid JSON"),
        (FakeChatModel(""), "Model response missing content"),
        (FakeChatModel('{"summary": "x"}'), "Schema validation failed"),
        (FakeChatModel(error=RuntimeError("connection reset")), "connection reset"),
    ],
)
def test_generator_falls_back_to_mock(chat: FakeChatModel, error: str) -> None:
    """External failures are recorded uncoerced, followed by a mock result."""

    failed, mock = AdvisoryGenerator(chat).generate(_input())
    assert failed.provider == "openai"
    assert failed.advisory is None and failed.citations is None
    assert error in (failed.error_message or "")
    assert mock.provider == "mock" and mock.ok
    assert failed.input_hash == mock.input_hash
