"""Shared fixtures and fakes."""

from __future__ import annotations

import hashlib
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Sequence

import pytest

from beacongate.capture.artifacts import (
    HTML_NAME,
    SCREENSHOT_NAME,
    describe_artifacts,
    write_network_summary,
    write_redirects,
)
from beacongate.capture.hashing import compute_bundle_hash
from beacongate.config import Settings
from beacongate.llm.client import ChatMessage
from beacongate.models.capture import (
    CaptureBundle,
    CaptureFailure,
    CaptureOutcome,
    CapturePartial,
    CaptureSuccess,
    NetworkSummary,
    RedirectHop,
)
from beacongate.queue.backends import InMemoryJobQueue
from beacongate.rag.embeddings import Embedder
from beacongate.wiring import AppContext, build_app_context

PUBLIC_IP = "93.184.216.34"
DIMENSION = 384

_WORD_RE = re.compile(r"[a-z0-9]+")


def fake_resolver(host: str) -> Iterable[str]:
    """Resolve every public-looking name to one public address; ``*.internal`` to a private one."""

    if host.endswith(".internal"):
        return ["10.0.0.5"]
    if host.endswith(".invalid"):
        raise OSError("Name or service not known")
    return [PUBLIC_IP]


class FakeEmbeddingBackend:
    """Bag-of-words hashing embedder: texts sharing words get similar vectors."""

    model_name = "fake-hash-embed"

    def __init__(self, dimension: int = DIMENSION) -> None:
        self.dimension = dimension
        self.calls = 0

    def embed(self, texts: Sequence[str]) -> list[list[float]]:
        self.calls += 1
        out: list[list[float]] = []
        for text in texts:
            vec = [0.0] * self.dimension
            for word in _WORD_RE.findall(text.lower()):
                slot = int(hashlib.sha256(word.encode("utf-8")).hexdigest()[:8], 16) % self.dimension
                vec[slot] += 1.0
            out.append(vec)
        return out


class FakeCapturer:
    """Writes real artifact files instead of driving a browser."""

    def __init__(
        self,
        html: str = "<html><body><p>Welcome</p></body></html>",
        *,
        redirects: list[str] | None = None,
        partial: bool = False,
        screenshot: bool = True,
        failure: str | None = None,
        raises: Exception | None = None,
    ) -> None:
        self.html = html
        self.redirects = redirects
        self.partial = partial
        self.screenshot = screenshot
        self.failure = failure
        self.raises = raises
        self.calls: list[str] = []

    async def capture(self, url: str, run_dir: Path) -> CaptureOutcome:
        self.calls.append(url)
        if self.raises is not None:
            raise self.raises
        if self.failure is not None:
            return CaptureFailure(error=self.failure)

        run_dir.mkdir(parents=True, exist_ok=True)
        if self.screenshot:
            (run_dir / SCREENSHOT_NAME).write_bytes(b"\x89PNG\r\n\x1a\nfake")
        (run_dir / HTML_NAME).write_text(self.html, encoding="utf-8")
        chain = self.redirects or [url]
        hops = [RedirectHop(url=u, status=302) for u in chain[:-1]] + [RedirectHop(url=chain[-1], status=200)]
        write_redirects(run_dir, hops)
        write_network_summary(run_dir, NetworkSummary(total_requests=1, by_type={"document": 1}, top_domains=[]))

        captured_at = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
        viewport = {"width": 1280, "height": 720}
        artifacts = describe_artifacts(run_dir)
        bundle = CaptureBundle(
            landing_url=url,
            final_url=chain[-1],
            run_dir=run_dir,
            artifacts=artifacts,
            bundle_hash=compute_bundle_hash(
                landing_url=url,
                final_url=chain[-1],
                artifacts=artifacts,
                captured_at=captured_at,
                viewport=viewport,
                user_agent="test-agent",
            ),
            captured_at=captured_at,
            viewport=viewport,
            user_agent="test-agent",
        )
        if self.partial:
            return CapturePartial(bundle=bundle, error="Navigation timeout")
        return CaptureSuccess(bundle=bundle)


class FakeChatModel:
    """Returns canned text (or raises) and records the prompts it saw."""

    model = "fake-chat"

    def __init__(self, reply: str = "", *, error: Exception | None = None) -> None:
        self.reply = reply
        self.error = error
        self.calls: list[list[ChatMessage]] = []

    def complete(
        self, messages: Sequence[ChatMessage], *, temperature: float = 0.2, json_mode: bool = False
    ) -> str:
        self.calls.append(list(messages))
        if self.error is not None:
            raise self.error
        return self.reply


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("BEACONGATE_OPENAI_API_KEY", "BEACONGATE_DATABASE_URL", "BEACONGATE_ENV_FILE"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    return Settings(
        database_url="sqlite://",
        queue_backend="memory",
        storage_root=tmp_path / "evidence",
        advisory_provider="mock",
        openai_api_key=None,
        job_backoff_s=0.0,
        worker_poll_s=0.01,
    )


@pytest.fixture()
def embedder() -> Embedder:
    return Embedder(FakeEmbeddingBackend(), dimension=DIMENSION, max_chars=512)


@pytest.fixture()
def context(settings: Settings, embedder: Embedder) -> AppContext:
    return build_app_context(settings, queue=InMemoryJobQueue(), embedder=embedder, resolver=fake_resolver)


@pytest.fixture()
def rag_dir(tmp_path: Path) -> Path:
    root = tmp_path / "rag"
    (root / "policies").mkdir(parents=True)
    (root / "precedents").mkdir()
    (root / "policies" / "health_claims.md").write_text(
        "# Health claims\n\n"
        "Ads for supplements must not promise a cure or guaranteed results.\n\n"
        "## Disclaimers\n\n"
        "Health ads must tell the reader to consult your doctor.\n",
        encoding="utf-8",
    )
    (root / "policies" / "cloaking.md").write_text(
        "# Cloaking and hidden text\n\n"
        "Landing pages must not hide text with display:none to show reviewers different content.\n",
        encoding="utf-8",
    )
    (root / "precedents" / "seed_precedents.json").write_text(
        """[
  {
    "title": "Hidden text cloaking",
    "scenarioSummary": "Landing page hid promotional claims with display:none spans.",
    "triggeredRules": ["RULE_HIDDEN_TEXT_HEURISTIC"],
    "outcome": "REJECTED",
    "rationale": "Hidden content is deceptive."
  }
]""",
        encoding="utf-8",
    )
    return root
