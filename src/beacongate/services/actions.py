"""Case actions invoked by the review UI.

Each action reads the current records, does its work, and appends new run rows; nothing here
mutates an earlier run.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import PurePosixPath
from urllib.parse import urlsplit

from beacongate.advisory.citations import scrub_citations
from beacongate.advisory.generator import AdvisoryGenerator, AdvisoryResult
from beacongate.advisory.input_builder import build_advisory_input, html_to_text
from beacongate.capture.artifacts import ArtifactStorage
from beacongate.capture.hashing import sha256_string
from beacongate.capture.url_guard import MAX_URL_LENGTH, Resolver, check_url
from beacongate.db.models import (
    Artifact,
    CaptureRun,
    Case,
    Evidence,
    LLMRun,
    QueueItem,
    RetrievalRun,
    RuleRun,
)
from beacongate.db.store import CaseNotFoundError, Store
from beacongate.logging import get_logger, job_context
from beacongate.models.advisory import AdvisoryValidationError
from beacongate.models.capture import RedirectHop
from beacongate.models.case import ArtifactType, CaseStatus, SubmitCaseRequest
from beacongate.models.retrieval import RetrievalScope
from beacongate.queue.backends import JobQueue
from beacongate.queue.jobs import CaptureJob
from beacongate.rag.retriever import PAGE_EXCERPT_CHARS, RetrievalOutcome, Retriever, build_query_text

logger = get_logger(__name__)

__all__ = [
    "ArtifactContent",
    "ArtifactNotFoundError",
    "CaseActions",
    "CaseDetail",
    "CaseNotFoundError",
    "CaseStateError",
    "EnqueueResult",
]


class CaseStateError(RuntimeError):
    """Raised when an action is not allowed in the case's current status."""


class ArtifactNotFoundError(LookupError):
    """Raised when an artifact id or its file does not exist."""


@dataclass(frozen=True)
class EnqueueResult:
    case_id: str
    evidence_id: str
    attempt: int
    enqueued: bool
    error: str | None = None


@dataclass(frozen=True)
class ArtifactContent:
    data: bytes
    mime_type: str
    filename: str


@dataclass(frozen=True)
class CaseDetail:
    """Everything the review UI shows for one case."""

    case: Case
    evidence: Evidence
    queue_item: QueueItem | None
    capture_runs: list[CaptureRun]
    artifacts: list[Artifact]
    rule_runs: list[RuleRun]
    retrieval_runs: list[RetrievalRun]
    llm_runs: list[LLMRun]


@dataclass(frozen=True)
class _CapturedEvidence:
    html: str | None
    redirects: list[RedirectHop] | None


class CaseActions:
    def __init__(
        self,
        store: Store,
        storage: ArtifactStorage,
        queue: JobQueue,
        retriever: Retriever,
        generator: AdvisoryGenerator,
        *,
        resolver: Resolver | None = None,
        url_max_length: int = MAX_URL_LENGTH,
        top_k: int = 6,
    ) -> None:
        self._store = store
        self._storage = storage
        self._queue = queue
        self._retriever = retriever
        self._generator = generator
        self._resolver = resolver
        self._url_max_length = url_max_length
        self._top_k = top_k

    async def submit_case(self, request: SubmitCaseRequest) -> EnqueueResult:
        """Create the case and enqueue its first capture.

        A landing URL the guard refuses still yields a case, with a ``FAILED`` capture run carrying
        the guard's message and no job.
        """

        case, evidence = await asyncio.to_thread(
            self._store.create_case,
            ad_text=request.ad_text,
            category=request.category,
            landing_url=request.landing_url,
            evidence_hash=sha256_string(request.landing_url),
        )
        with job_context(job_id=evidence.id, case_id=case.id):
            logger.info("Case submitted (%s)", request.category.value)
            check = await asyncio.to_thread(
                check_url, request.landing_url, resolver=self._resolver, max_length=self._url_max_length
            )
            if not check.ok:
                error = check.error or "URL rejected"
                logger.warning("Landing URL rejected: %s", error)
                await asyncio.to_thread(self._store.record_failed_capture, evidence.id, attempt=1, error=error)
                return EnqueueResult(case.id, evidence.id, 1, enqueued=False, error=error)
            return await self._enqueue(case, attempt=1)

    async def retry_capture(self, case_id: str) -> EnqueueResult:
        """Enqueue another capture attempt for a case still waiting on evidence.

        Raises:
            CaseNotFoundError: Unknown case.
            CaseStateError: The case is not ``CAPTURING``.
        """

        case = await asyncio.to_thread(self._store.get_case, case_id)
        if case.status != CaseStatus.CAPTURING:
            raise CaseStateError(f"Retry is only allowed while capturing (status is {case.status.value})")
        attempt = await asyncio.to_thread(self._store.max_attempt, case.evidence_id) + 1
        with job_context(job_id=case.evidence_id, case_id=case.id):
            logger.info("Retry requested, attempt %d", attempt)
            return await self._enqueue(case, attempt=attempt)

    async def run_retrieval(
        self, case_id: str, *, top_k: int | None = None, scope: RetrievalScope = RetrievalScope.BOTH
    ) -> RetrievalOutcome:
        case = await asyncio.to_thread(self._store.get_case, case_id)
        with job_context(job_id=case.evidence_id, case_id=case.id):
            return await asyncio.to_thread(self._run_retrieval, case, top_k or self._top_k, scope)

    async def generate_advisory(self, case_id: str) -> list[LLMRun]:
        """Generate, scrub and persist the advisory; returns the LLM runs written, last one usable."""

        case = await asyncio.to_thread(self._store.get_case, case_id)
        with job_context(job_id=case.evidence_id, case_id=case.id):
            return await asyncio.to_thread(self._generate_advisory, case)

    def read_artifact(self, artifact_id: str) -> ArtifactContent:
        """Load an artifact's bytes from storage.

        Raises:
            ArtifactNotFoundError: Unknown id or missing file.
            ArtifactPathError: The stored path escapes the storage root.
        """

        row = self._store.get_artifact(artifact_id)
        if row is None:
            raise ArtifactNotFoundError(artifact_id)
        path = self._storage.resolve(row.path)
        if not path.is_file():
            raise ArtifactNotFoundError(artifact_id)
        return ArtifactContent(data=path.read_bytes(), mime_type=row.mime_type, filename=PurePosixPath(row.path).name)

    def get_case_detail(self, case_id: str) -> CaseDetail:
        case = self._store.get_case(case_id)
        evidence = self._store.get_evidence(case.evidence_id)
        if evidence is None:
            raise CaseNotFoundError(case_id)
        return CaseDetail(
            case=case,
            evidence=evidence,
            queue_item=self._store.get_queue_item(case_id),
            capture_runs=self._store.list_capture_runs(case.evidence_id),
            artifacts=self._store.list_artifacts(case.evidence_id),
            rule_runs=self._store.latest_rule_runs(case_id),
            retrieval_runs=self._store.list_retrieval_runs(case_id),
            llm_runs=self._store.list_llm_runs(case_id),
        )

    async def _enqueue(self, case: Case, *, attempt: int) -> EnqueueResult:
        job = CaptureJob(
            case_id=case.id,
            evidence_id=case.evidence_id,
            landing_url=case.landing_url,
            ad_text=case.ad_text,
            category=case.category,
            attempt=attempt,
        )
        enqueued = await self._queue.enqueue(job)
        if enqueued:
            logger.info("Capture job enqueued (attempt %d)", attempt)
        return EnqueueResult(case.id, case.evidence_id, attempt, enqueued=enqueued)

    def _captured(self, evidence_id: str) -> _CapturedEvidence:
        latest = self._store.latest_artifacts(evidence_id)
        html_row = latest.get(ArtifactType.HTML_SNAPSHOT)
        redirects_row = latest.get(ArtifactType.REDIRECT_CHAIN)
        return _CapturedEvidence(
            html=self._storage.read_text(html_row.path) if html_row is not None else None,
            redirects=self._storage.read_redirects(redirects_row.path) if redirects_row is not None else None,
        )

    def _run_retrieval(self, case: Case, top_k: int, scope: RetrievalScope) -> RetrievalOutcome:
        captured = self._captured(case.evidence_id)
        excerpt = html_to_text(captured.html)[:PAGE_EXCERPT_CHARS] if captured.html else None
        final_domain = urlsplit(captured.redirects[-1].url).hostname if captured.redirects else None
        query = build_query_text(
            ad_text=case.ad_text,
            category=case.category.value,
            landing_url=case.landing_url,
            page_excerpt=excerpt,
            final_domain=final_domain,
        )
        return self._retriever.run(case.id, query, top_k=top_k, scope=scope)

    def _generate_advisory(self, case: Case) -> list[LLMRun]:
        evidence = self._store.get_evidence(case.evidence_id)
        if evidence is None:
            raise CaseNotFoundError(case.id)
        captured = self._captured(case.evidence_id)
        data = build_advisory_input(
            case=case,
            evidence=evidence,
            html=captured.html,
            redirect_chain=captured.redirects,
            screenshot_artifact_id=evidence.screenshot_artifact_id,
            rule_runs=self._store.latest_rule_runs(case.id),
            retrieval_run=self._store.latest_retrieval_run(case.id),
            top_k_policy=self._top_k,
            top_k_precedent=self._top_k,
        )
        return [self._persist(case.id, result) for result in self._generator.generate(data)]

    def _persist(self, case_id: str, result: AdvisoryResult) -> LLMRun:
        advisory = result.advisory
        citations = result.citations
        error = result.error_message
        if advisory is not None:
            try:
                scrub = scrub_citations(advisory, self._store.existing_chunk_ids)
            except AdvisoryValidationError as e:
                logger.warning("Advisory invalid after citation scrub: %s", e)
                advisory, citations, error = None, None, str(e)
            else:
                advisory = scrub.advisory
                if scrub.removed_chunk_ids:
                    citations = {
                        **(citations or {}),
                        "chunkIds": advisory.cited_chunk_ids(),
                        "removedChunkIds": scrub.removed_chunk_ids,
                    }
                    error = f"{error} {scrub.note}" if error else scrub.note
        run = self._store.add_llm_run(
            case_id=case_id,
            provider=result.provider,
            model=result.model,
            temperature=result.temperature,
            prompt_version=result.prompt_version,
            input_hash=result.input_hash,
            advisory_text=result.advisory_text,
            advisory_json=advisory.to_wire() if advisory is not None else None,
            citations_json=citations,
            error_message=error,
            latency_ms=result.latency_ms,
        )
        logger.info("LLM run %s recorded (provider=%s, ok=%s)", run.id, run.provider, advisory is not None)
        return run
