"""Tests for the review API."""

from __future__ import annotations

import asyncio

import pytest
from fastapi.testclient import TestClient

from beacongate.api.app import create_app
from beacongate.wiring import AppContext

from conftest import FakeCapturer


@pytest.fixture()
def client(context: AppContext) -> TestClient:
    return TestClient(create_app(context))


def _submit(client: TestClient, **overrides: str) -> dict:
    body = {"adText": "Act now for great shoes.", "category": "GENERAL", "landingUrl": "https://ads.example.com/promo"}
    body.update(overrides)
    resp = client.post("/cases", json=body)
    assert resp.status_code == 201, resp.text
    return resp.json()


def test_health(client: TestClient) -> None:
    assert client.get("/health").json() == {"status": "ok"}


def test_submit_and_fetch_case(client: TestClient, context: AppContext) -> None:
    """The submission is answered in camelCase and the detail shows the captured evidence."""

    submitted = _submit(client)
    assert submitted["enqueued"] is True
    assert submitted["attempt"] == 1
    assert submitted["caseId"].startswith("case_")

    asyncio.run(context.worker(FakeCapturer()).drain())

    detail = client.get(f"/cases/{submitted['caseId']}").json()
    assert detail["case"]["status"] == "READY_FOR_REVIEW"
    assert detail["case"]["adText"] == "Act now for great shoes."
    assert detail["queueItem"]["riskScore"] == 60
    assert detail["captureRuns"][0]["status"] == "SUCCEEDED"
    assert len(detail["artifacts"]) == 4
    assert any(r["ruleId"] == "RULE_PROHIBITED_PHRASE" and r["triggered"] for r in detail["ruleRuns"])


def test_submit_rejects_blank_ad_text(client: TestClient) -> None:
    resp = client.post(
        "/cases", json={"adText": "  ", "category": "GENERAL", "landingUrl": "https://ads.example.com"}
    )
    assert resp.status_code == 422


def test_submit_internal_url_is_not_enqueued(client: TestClient) -> None:
    submitted = _submit(client, landingUrl="http://metadata.internal/latest")
    assert submitted["enqueued"] is False
    assert "SSRF" in submitted["error"]


def test_unknown_case_is_404(client: TestClient) -> None:
    assert client.get("/cases/case_missing").status_code == 404
    assert client.post("/cases/case_missing/retry-capture").status_code == 404


def test_retry_conflicts_after_capture(client: TestClient, context: AppContext) -> None:
    """Retry is accepted while capturing and refused with 409 once the case is ready."""

    submitted = _submit(client)
    asyncio.run(context.worker(FakeCapturer(failure="boom")).drain())

    retry = client.post(f"/cases/{submitted['caseId']}/retry-capture")
    assert retry.status_code == 202
    assert retry.json()["attempt"] == 2

    asyncio.run(context.worker(FakeCapturer()).drain())
    assert client.post(f"/cases/{submitted['caseId']}/retry-capture").status_code == 409


def test_retrieval_and_advisory_endpoints(client: TestClient, context: AppContext, rag_dir) -> None:
    """Retrieval accepts an empty body; the advisory endpoint returns the stored runs."""

    context.ingestor().ingest_dir(rag_dir)
    submitted = _submit(client)
    asyncio.run(context.worker(FakeCapturer()).drain())
    case_id = submitted["caseId"]

    retrieval = client.post(f"/cases/{case_id}/retrieval")
    assert retrieval.status_code == 200, retrieval.text
    assert retrieval.json()["topK"] == 6

    scoped = client.post(f"/cases/{case_id}/retrieval", json={"topK": 1, "scope": "POLICY_ONLY"})
    assert scoped.json()["retrievalType"] == "POLICY_ONLY"
    assert scoped.json()["results"]["precedent"] == []

    runs = client.post(f"/cases/{case_id}/advisory").json()
    assert [r["provider"] for r in runs] == ["mock"]
    assert runs[0]["advisoryJson"]["nonBindingNotice"] == "LLM Advisory (non-binding)"


def test_artifact_download(client: TestClient, context: AppContext) -> None:
    submitted = _submit(client)
    asyncio.run(context.worker(FakeCapturer("<html><body>hello</body></html>")).drain())
    detail = client.get(f"/cases/{submitted['caseId']}").json()
    html = next(a for a in detail["artifacts"] if a["type"] == "HTML_SNAPSHOT")

    resp = client.get(f"/artifacts/{html['id']}")
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/html")
    assert b"hello" in resp.content

    assert client.get("/artifacts/art_missing").status_code == 404
